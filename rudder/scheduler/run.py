"""DispatchRun: collect due tasks and notify their owners, once per scheduler tick."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from rudder.config import settings
from rudder.push.models import DispatchSummary
from rudder.store.base import StoreError
from rudder.tasks.models import utc_iso
from rudder.tasks.window import DueWindow, compute_window

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from rudder.push.dispatcher import NotificationDispatcher
    from rudder.push.models import PushSubscription
    from rudder.store.base import SubscriptionStore, TaskStore
    from rudder.tasks.models import TaskInstance

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    DISPATCHING = "dispatching"
    REPORTING = "reporting"


class DispatchRun:
    """Runs one dispatch cycle per call to :meth:`run`.

    The run itself takes no lock; the scheduler is expected to avoid
    overlapping runs.  Repeating a run is safe: subscription deletes are
    idempotent and, with deduplication on, already-notified instances are
    excluded from the due query.

    Args:
        tasks: TaskStore providing the due-instance query.
        subscriptions: SubscriptionStore listing push endpoints.
        dispatcher: NotificationDispatcher doing the fan-out.
        timezone: User timezone (default from settings).
        dedupe: Record ``notified_at`` and skip notified instances
            (default from settings).
    """

    def __init__(
        self,
        tasks: TaskStore,
        subscriptions: SubscriptionStore,
        dispatcher: NotificationDispatcher,
        *,
        timezone: ZoneInfo | None = None,
        dedupe: bool | None = None,
    ) -> None:
        self._tasks = tasks
        self._subscriptions = subscriptions
        self._dispatcher = dispatcher
        self._tz = timezone or settings.get_timezone()
        self._dedupe = settings.dedupe_notifications if dedupe is None else dedupe
        self._back_buffer = timedelta(minutes=settings.due_back_buffer_minutes)
        self._lookahead = timedelta(minutes=settings.due_lookahead_minutes)
        self.state = RunState.IDLE
        self.last_summary: DispatchSummary | None = None

    def window_for(self, now: datetime) -> DueWindow:
        return compute_window(
            now, self._tz, back_buffer=self._back_buffer, lookahead=self._lookahead
        )

    async def run(
        self, now: datetime | None = None, *, owner_id: str | None = None
    ) -> DispatchSummary:
        """Run one dispatch cycle and return its summary.

        Store failures while collecting raise ``StoreError``; send failures
        never do.
        """
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        window = self.window_for(now)

        try:
            self.state = RunState.COLLECTING
            due, by_owner = await self._collect(window, owner_id)

            self.state = RunState.DISPATCHING
            summary = await self._dispatcher.dispatch(due, by_owner, now=now)

            self.state = RunState.REPORTING
            summary.local_date = window.local_date.isoformat()
            summary.window = window.describe()
            await self._record_notified(summary, now)
            self._report(summary)
        except StoreError:
            logger.exception("Dispatch run aborted while in state %s", self.state.value)
            raise
        finally:
            self.state = RunState.IDLE

        self.last_summary = summary
        return summary

    # -- Internal --------------------------------------------------------------

    async def _collect(
        self, window: DueWindow, owner_id: str | None
    ) -> tuple[list[TaskInstance], dict[str, list[PushSubscription]]]:
        due = await self._tasks.list_due_instances(
            window.local_date.isoformat(),
            window.window_start_utc,
            window.window_end_utc,
            owner_id=owner_id,
            exclude_notified=self._dedupe,
        )
        logger.info("Found %d due task(s) in window %s", len(due), window.describe())
        if not due:
            return [], {}

        by_owner: dict[str, list[PushSubscription]] = defaultdict(list)
        for sub in await self._subscriptions.list_subscriptions(owner_id):
            by_owner[sub.owner_id].append(sub)
        return due, dict(by_owner)

    async def _record_notified(self, summary: DispatchSummary, now: datetime) -> None:
        if not self._dedupe:
            return
        notified = sorted({o.instance_id for o in summary.outcomes if o.ok and o.instance_id})
        if not notified:
            return
        try:
            await self._tasks.mark_notified(notified, utc_iso(now))
        except StoreError:
            # Notifications already went out; the next tick may repeat them.
            logger.exception("Failed to record notified_at for %d task(s)", len(notified))

    def _report(self, summary: DispatchSummary) -> None:
        logger.info(
            "Dispatch run complete: sent=%d attempted=%d failed=%d tasks=%d deferred=%d"
            " subscriptions=%d pruned=%d statuses=%s",
            summary.sent,
            summary.attempted,
            summary.failed,
            summary.instances,
            summary.deferred,
            summary.subscriptions,
            len(summary.pruned_subscription_ids),
            dict(summary.by_status),
        )
