"""Tests for the due window and local calendar helpers."""

from datetime import UTC, date, datetime, time, timedelta

from rudder.tasks.window import (
    DueWindow,
    block_bounds,
    compute_window,
    format_local_time,
    local_to_utc,
    local_today,
)

NOW = datetime(2024, 6, 1, 13, 3, tzinfo=UTC)


# -- compute_window ------------------------------------------------------------


def test_window_bounds_default(tz) -> None:
    window = compute_window(NOW, tz)
    assert window.window_start_utc == NOW - timedelta(minutes=5)
    assert window.window_end_utc == NOW + timedelta(minutes=60)
    assert window.local_date == date(2024, 6, 1)


def test_window_includes_start_four_minutes_ago(tz) -> None:
    window = compute_window(NOW, tz)
    assert window.contains(NOW - timedelta(minutes=4))


def test_window_excludes_start_six_minutes_ago(tz) -> None:
    window = compute_window(NOW, tz)
    assert not window.contains(NOW - timedelta(minutes=6))


def test_window_is_half_open(tz) -> None:
    window = compute_window(NOW, tz)
    assert window.contains(window.window_start_utc)
    assert not window.contains(window.window_end_utc)


def test_window_custom_buffers(tz) -> None:
    window = compute_window(
        NOW, tz, back_buffer=timedelta(minutes=1), lookahead=timedelta(minutes=10)
    )
    assert window.window_start_utc == NOW - timedelta(minutes=1)
    assert window.window_end_utc == NOW + timedelta(minutes=10)


def test_window_local_date_differs_from_utc_date(tz) -> None:
    # 01:00 UTC on June 2 is 9pm on June 1 in Detroit.
    window = compute_window(datetime(2024, 6, 2, 1, 0, tzinfo=UTC), tz)
    assert window.local_date == date(2024, 6, 1)


def test_window_treats_naive_now_as_utc(tz) -> None:
    window = compute_window(datetime(2024, 6, 1, 13, 3), tz)
    assert window.window_start_utc == NOW - timedelta(minutes=5)


def test_describe_mentions_local_date(tz) -> None:
    window = DueWindow(
        local_date=date(2024, 6, 1),
        window_start_utc=NOW,
        window_end_utc=NOW + timedelta(hours=1),
    )
    assert "local date 2024-06-01" in window.describe()


# -- local calendar helpers ----------------------------------------------------


def test_local_today_uses_timezone(tz) -> None:
    assert local_today(datetime(2024, 6, 2, 3, 59, tzinfo=UTC), tz) == date(2024, 6, 1)
    assert local_today(datetime(2024, 6, 2, 4, 0, tzinfo=UTC), tz) == date(2024, 6, 2)


def test_local_to_utc_summer(tz) -> None:
    assert local_to_utc(date(2024, 6, 1), "09:00", tz) == datetime(2024, 6, 1, 13, 0, tzinfo=UTC)


def test_local_to_utc_winter(tz) -> None:
    assert local_to_utc(date(2024, 1, 15), time(9, 0), tz) == datetime(
        2024, 1, 15, 14, 0, tzinfo=UTC
    )


def test_block_bounds_same_day(tz) -> None:
    starts, ends = block_bounds(date(2024, 6, 1), "09:00", "10:30", tz)
    assert starts == datetime(2024, 6, 1, 13, 0, tzinfo=UTC)
    assert ends == datetime(2024, 6, 1, 14, 30, tzinfo=UTC)


def test_block_bounds_rolls_end_to_next_day(tz) -> None:
    starts, ends = block_bounds(date(2024, 6, 1), "23:00", "23:00", tz)
    assert ends - starts == timedelta(days=1)


def test_block_bounds_without_end(tz) -> None:
    assert block_bounds(date(2024, 6, 1), "09:00", None, tz)[1] is None


def test_format_local_time(tz) -> None:
    assert format_local_time(datetime(2024, 6, 2, 1, 5, tzinfo=UTC), tz) == "09:05 PM"
