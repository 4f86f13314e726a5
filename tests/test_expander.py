"""Tests for TemplateExpander: idempotent instance materialization."""

from datetime import date
import pytest
from factories import make_template

from rudder.store.base import StoreError
from rudder.store.sqlite import SqliteStore
from rudder.tasks.expander import TemplateExpander
from rudder.tasks.models import Completion

JUNE_1 = date(2024, 6, 1)
JUNE_3 = date(2024, 6, 3)


@pytest.fixture
def expander(store: SqliteStore, tz) -> TemplateExpander:
    return TemplateExpander(store, timezone=tz, horizon_days=7)


class _BrokenStore:
    """Lists nothing and fails every insert."""

    async def list_instances(self, template_id, start, end):
        return []

    async def insert_instances(self, instances):
        raise StoreError("insert_instances failed: disk I/O error")


# -- expand --------------------------------------------------------------------


async def test_daily_template_over_three_days(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template()
    await store.add_template(template)

    created = await expander.expand(template, JUNE_1, JUNE_3)

    assert [i.date for i in created] == ["2024-06-01", "2024-06-02", "2024-06-03"]
    assert all(i.completion is Completion.PENDING for i in created)
    assert all(i.title == "Stretch" and i.template_id == "tpl1" for i in created)
    stored = await store.list_instances("tpl1", "2024-06-01", "2024-06-03")
    assert len(stored) == 3


async def test_expand_twice_creates_nothing_new(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template()
    await store.add_template(template)
    await expander.expand(template, JUNE_1, JUNE_3)

    again = await expander.expand(template, JUNE_1, JUNE_3)

    assert again == []
    assert len(await store.list_instances("tpl1", "2024-06-01", "2024-06-03")) == 3


async def test_expand_fills_only_missing_dates(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template()
    await store.add_template(template)
    await expander.expand(template, JUNE_1, JUNE_1)

    created = await expander.expand(template, JUNE_1, JUNE_3)

    assert [i.date for i in created] == ["2024-06-02", "2024-06-03"]


async def test_weekdays_template_skips_weekend(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template(recurrence="weekdays")
    await store.add_template(template)

    created = await expander.expand(template, JUNE_1, JUNE_3)

    assert [i.date for i in created] == ["2024-06-03"]


async def test_reversed_range_creates_nothing(expander: TemplateExpander) -> None:
    assert await expander.expand(make_template(), JUNE_3, JUNE_1) == []


async def test_time_of_day_converted_to_utc(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template(start_time="09:00", end_time="10:30", goal_id="g1")
    await store.add_template(template)

    (instance,) = await expander.expand(template, JUNE_1, JUNE_1)

    assert instance.start_time == "2024-06-01T13:00:00+00:00"
    assert instance.end_time == "2024-06-01T14:30:00+00:00"
    assert instance.goal_id == "g1"


async def test_block_ending_after_midnight_ends_next_day(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template(start_time="23:00", end_time="01:00")
    await store.add_template(template)

    (instance,) = await expander.expand(template, JUNE_1, JUNE_1)

    assert instance.start_time == "2024-06-02T03:00:00+00:00"
    assert instance.end_time == "2024-06-02T05:00:00+00:00"
    assert instance.date == "2024-06-01"


async def test_template_without_time_has_no_start(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template()
    await store.add_template(template)

    (instance,) = await expander.expand(template, JUNE_1, JUNE_1)

    assert instance.start_time is None
    assert instance.end_time is None


async def test_store_failure_propagates(tz) -> None:
    expander = TemplateExpander(_BrokenStore(), timezone=tz)
    with pytest.raises(StoreError):
        await expander.expand(make_template(), JUNE_1, JUNE_3)


# -- expand_rolling ------------------------------------------------------------


async def test_rolling_weekly_starts_at_next_monday(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template(recurrence="weekly")
    await store.add_template(template)

    created = await expander.expand_rolling(template, date(2024, 6, 6))

    assert [i.date for i in created] == ["2024-06-10"]


async def test_rolling_daily_covers_horizon(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    template = make_template()
    await store.add_template(template)

    created = await expander.expand_rolling(template, JUNE_1)

    assert len(created) == 8
    assert created[0].date == "2024-06-01"
    assert created[-1].date == "2024-06-08"


# -- expand_all ----------------------------------------------------------------


async def test_expand_all_covers_every_template(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    await store.add_template(make_template("a", "Stretch"))
    await store.add_template(make_template("b", "Review", recurrence="weekly"))

    created = await expander.expand_all(JUNE_1, JUNE_3)

    assert sorted((i.template_id, i.date) for i in created) == [
        ("a", "2024-06-01"),
        ("a", "2024-06-02"),
        ("a", "2024-06-03"),
        ("b", "2024-06-03"),
    ]


async def test_expand_all_for_one_owner(
    store: SqliteStore, expander: TemplateExpander
) -> None:
    await store.add_template(make_template("a", owner_id="user1"))
    await store.add_template(make_template("b", owner_id="user2"))

    created = await expander.expand_all(JUNE_1, JUNE_1, owner_id="user2")

    assert [i.template_id for i in created] == ["b"]
