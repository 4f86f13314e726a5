"""Tests for DispatchRun: one collect / dispatch / report cycle."""

import json
from datetime import UTC, datetime

import pytest
from factories import FakeTransport, make_instance, make_subscription, push_error

from rudder.push.dispatcher import NotificationDispatcher
from rudder.scheduler.run import DispatchRun, RunState
from rudder.store.base import StoreError
from rudder.store.sqlite import SqliteStore

NOW = datetime(2024, 6, 1, 13, 3, tzinfo=UTC)


def _run(store, transport, tz, **kwargs) -> DispatchRun:
    dispatcher = NotificationDispatcher(transport, store, timezone=tz, timeout=2)
    return DispatchRun(store, store, dispatcher, timezone=tz, **kwargs)


class _BrokenTasks:
    async def list_due_instances(self, *args, **kwargs):
        raise StoreError("list_due_instances failed: database is locked")


# -- run -----------------------------------------------------------------------


async def test_due_instance_notifies_owner(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance())
    await store.register_subscription(make_subscription())

    summary = await _run(store, transport, tz).run(NOW)

    assert summary.sent == 1
    assert summary.instances == 1
    assert summary.subscriptions == 1
    assert summary.local_date == "2024-06-01"
    assert "2024-06-01T12:58:00+00:00" in summary.window
    assert len(transport.sent) == 1


async def test_instance_outside_window_is_not_sent(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance(start_time="2024-06-01T12:57:00+00:00"))
    await store.register_subscription(make_subscription())

    summary = await _run(store, transport, tz).run(NOW)

    assert summary.instances == 0
    assert transport.sent == []


async def test_nothing_due_skips_subscription_lookup(transport, tz) -> None:
    calls: list[str] = []

    class _Store:
        async def list_due_instances(self, *args, **kwargs):
            return []

        async def list_subscriptions(self, owner_id=None):
            calls.append("list_subscriptions")
            return []

    store = _Store()
    dispatcher = NotificationDispatcher(transport, store, timezone=tz)

    summary = await DispatchRun(store, store, dispatcher, timezone=tz).run(NOW)

    assert summary.attempted == 0
    assert calls == []


async def test_local_date_used_near_midnight(store: SqliteStore, transport, tz) -> None:
    # 9pm on June 1 in Detroit is already June 2 in UTC.
    await store.add_instance(
        make_instance(day="2024-06-01", start_time="2024-06-02T01:00:00+00:00")
    )
    await store.register_subscription(make_subscription())

    summary = await _run(store, transport, tz).run(datetime(2024, 6, 2, 1, 0, tzinfo=UTC))

    assert summary.local_date == "2024-06-01"
    assert summary.sent == 1


async def test_owner_filter(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance("a", owner_id="user1"))
    await store.add_instance(make_instance("b", owner_id="user2"))
    await store.register_subscription(make_subscription("s1", owner_id="user1"))
    await store.register_subscription(make_subscription("s2", owner_id="user2"))

    summary = await _run(store, transport, tz).run(NOW, owner_id="user2")

    assert summary.sent == 1
    assert transport.sent[0][0] == "https://push.example.com/s2"


async def test_expired_subscription_pruned_during_run(store: SqliteStore, tz) -> None:
    await store.add_instance(make_instance())
    sub = make_subscription()
    await store.register_subscription(sub)
    transport = FakeTransport({sub.endpoint: push_error(410)})

    summary = await _run(store, transport, tz).run(NOW)

    assert summary.failed == 1
    assert summary.pruned_subscription_ids == ["sub1"]
    assert await store.list_subscriptions() == []


# -- Deduplication -------------------------------------------------------------


async def test_second_tick_does_not_repeat(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance())
    await store.register_subscription(make_subscription())
    run = _run(store, transport, tz, dedupe=True)

    first = await run.run(NOW)
    second = await run.run(NOW)

    assert first.sent == 1
    assert second.instances == 0
    assert (await store.get_instance("inst1")).notified_at == "2024-06-01T13:03:00+00:00"


async def test_failed_send_is_retried_next_tick(store: SqliteStore, tz) -> None:
    await store.add_instance(make_instance())
    sub = make_subscription()
    await store.register_subscription(sub)
    run = _run(store, FakeTransport({sub.endpoint: push_error(429)}), tz, dedupe=True)

    await run.run(NOW)

    assert (await store.get_instance("inst1")).notified_at is None


async def test_without_dedupe_every_tick_sends(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance())
    await store.register_subscription(make_subscription())
    run = _run(store, transport, tz, dedupe=False)

    await run.run(NOW)
    await run.run(NOW)

    assert len(transport.sent) == 2
    assert (await store.get_instance("inst1")).notified_at is None


# -- State ---------------------------------------------------------------------


async def test_store_error_propagates_and_resets_state(store, transport, tz) -> None:
    dispatcher = NotificationDispatcher(transport, store, timezone=tz)
    run = DispatchRun(_BrokenTasks(), store, dispatcher, timezone=tz)

    with pytest.raises(StoreError):
        await run.run(NOW)

    assert run.state is RunState.IDLE
    assert run.last_summary is None
    assert transport.sent == []


async def test_state_returns_to_idle_and_keeps_summary(store, transport, tz) -> None:
    run = _run(store, transport, tz)

    summary = await run.run(NOW)

    assert run.state is RunState.IDLE
    assert run.last_summary is summary


# -- Upcoming instances --------------------------------------------------------


async def test_upcoming_instance_waits_for_its_start(store: SqliteStore, transport, tz) -> None:
    await store.add_instance(make_instance(start_time="2024-06-01T13:50:00+00:00"))
    await store.register_subscription(make_subscription())
    run = _run(store, transport, tz, dedupe=True)

    early = await run.run(datetime(2024, 6, 1, 13, 0, tzinfo=UTC))

    assert early.sent == 0
    assert early.deferred == 1
    assert transport.sent == []
    assert (await store.get_instance("inst1")).notified_at is None

    on_time = await run.run(datetime(2024, 6, 1, 13, 50, tzinfo=UTC))

    assert on_time.sent == 1
    assert on_time.deferred == 0
    assert json.loads(transport.sent[0][1])["body"] == "Started at 09:50 AM"
