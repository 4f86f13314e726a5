"""Due-window selection and local calendar arithmetic.

Instance ``date`` values are local calendar dates while ``start_time`` values
are UTC instants, so finding what is due "now" needs both: the local date of
``now`` in the user's timezone, and a UTC window around ``now``.  All local
date/time conversions in the package go through this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

DEFAULT_BACK_BUFFER = timedelta(minutes=5)
DEFAULT_LOOKAHEAD = timedelta(minutes=60)


def _aware(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now


def local_today(now: datetime, tz: ZoneInfo) -> date:
    """Return the calendar date of *now* in *tz* (not the UTC date)."""
    return _aware(now).astimezone(tz).date()


def parse_time_of_day(value: str) -> time:
    """Parse ``"HH:MM"`` or ``"HH:MM:SS"``."""
    return time.fromisoformat(value)


def local_to_utc(day: date, time_of_day: str | time, tz: ZoneInfo) -> datetime:
    """Interpret *time_of_day* on *day* as wall-clock time in *tz*; return UTC."""
    if isinstance(time_of_day, str):
        time_of_day = parse_time_of_day(time_of_day)
    return datetime.combine(day, time_of_day, tzinfo=tz).astimezone(UTC)


def block_bounds(
    day: date,
    start_time: str | time,
    end_time: str | time | None,
    tz: ZoneInfo,
) -> tuple[datetime, datetime | None]:
    """Return the UTC start and end of a local time block on *day*.

    A block whose end is at or before its start finishes on the next day.
    """
    starts = local_to_utc(day, start_time, tz)
    if not end_time:
        return starts, None
    ends = local_to_utc(day, end_time, tz)
    if ends <= starts:
        ends = local_to_utc(day + timedelta(days=1), end_time, tz)
    return starts, ends


def format_local_time(instant: datetime, tz: ZoneInfo) -> str:
    """Render an instant as 12-hour local time, e.g. ``"09:05 PM"``."""
    return _aware(instant).astimezone(tz).strftime("%I:%M %p")


@dataclass(frozen=True)
class DueWindow:
    """Local date plus the half-open UTC window ``[start, end)``."""

    local_date: date
    window_start_utc: datetime
    window_end_utc: datetime

    def contains(self, instant: datetime) -> bool:
        instant = _aware(instant).astimezone(UTC)
        return self.window_start_utc <= instant < self.window_end_utc

    def describe(self) -> str:
        return (
            f"{self.window_start_utc.isoformat()} - {self.window_end_utc.isoformat()}"
            f" (local date {self.local_date.isoformat()})"
        )


def compute_window(
    now: datetime,
    tz: ZoneInfo,
    *,
    back_buffer: timedelta = DEFAULT_BACK_BUFFER,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
) -> DueWindow:
    """Compute the due window anchored at *now*.

    The back-buffer absorbs scheduler jitter so an instance whose start passed
    seconds before the tick is not missed; the lookahead bounds how far ahead
    the query reaches.
    """
    now_utc = _aware(now).astimezone(UTC)
    return DueWindow(
        local_date=local_today(now_utc, tz),
        window_start_utc=now_utc - back_buffer,
        window_end_utc=now_utc + lookahead,
    )
