"""NotificationDispatcher: fans due-task reminders out to push subscriptions.

Every (instance, subscription) pair is sent independently and concurrently,
bounded by a semaphore.  Each send resolves to exactly one
:class:`OutcomeStatus`; failures are handled per pair and never abort the
remaining sends.  Endpoints reported expired or not found are deleted from the
registry during the run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from rudder.config import settings
from rudder.push.models import (
    DispatchOutcome,
    DispatchSummary,
    NotificationPayload,
    OutcomeStatus,
    classify_status,
)
from rudder.push.transport import PushSendError
from rudder.tasks.window import format_local_time

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime
    from zoneinfo import ZoneInfo

    from rudder.push.models import PushSubscription
    from rudder.push.transport import PushTransport
    from rudder.store.base import SubscriptionStore
    from rudder.tasks.models import TaskInstance

logger = logging.getLogger(__name__)

TEST_PAYLOAD_TAG = "test-notification"


class NotificationDispatcher:
    """Delivers notification payloads and applies outcome-driven cleanup.

    Args:
        transport: PushTransport used for every send.
        subscriptions: SubscriptionStore, for deleting dead endpoints.
        timezone: User timezone for rendering start times (default from settings).
        concurrency: Maximum sends in flight at once.
        timeout: Per-send timeout in seconds; a timed-out send is a
            ``transport_error``.
    """

    def __init__(
        self,
        transport: PushTransport,
        subscriptions: SubscriptionStore,
        *,
        timezone: ZoneInfo | None = None,
        concurrency: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self._subscriptions = subscriptions
        self._tz = timezone or settings.get_timezone()
        self._concurrency = max(1, concurrency or settings.push_concurrency)
        self._timeout = timeout if timeout is not None else settings.push_timeout_seconds

    # -- Payloads --------------------------------------------------------------

    def payload_for(self, instance: TaskInstance) -> NotificationPayload:
        """Build the reminder payload for a due instance.

        Due queries only return timed instances; the undated-time body is for
        callers passing instances without a start time directly.
        """
        return NotificationPayload(
            title=f"Task Started: {instance.title}",
            body=self._schedule_text(instance),
            icon=settings.notification_icon_url or None,
            badge=settings.notification_badge_url or None,
            tag=f"task-{instance.id}",
            require_interaction=True,
        )

    def _schedule_text(self, instance: TaskInstance) -> str:
        starts, ends = instance.starts_at, instance.ends_at
        if starts is None:
            return f"Scheduled for {instance.date}"
        if ends is None:
            return f"Started at {format_local_time(starts, self._tz)}"
        return f"{format_local_time(starts, self._tz)} - {format_local_time(ends, self._tz)}"

    # -- Dispatch --------------------------------------------------------------

    async def dispatch(
        self,
        due_instances: Iterable[TaskInstance],
        subscriptions_by_owner: Mapping[str, list[PushSubscription]],
        *,
        now: datetime | None = None,
    ) -> DispatchSummary:
        """Send one notification per (started instance, owner subscription) pair.

        With *now*, instances that have not started yet are deferred: they are
        counted in ``summary.deferred`` and left for a later tick.
        """
        instances = list(due_instances)
        deferred = 0
        if now is not None:
            started = [i for i in instances if i.starts_at is None or i.starts_at <= now]
            deferred = len(instances) - len(started)
            instances = started
        summary = DispatchSummary(
            instances=len(instances),
            subscriptions=sum(len(subs) for subs in subscriptions_by_owner.values()),
            deferred=deferred,
        )

        jobs: list[tuple[TaskInstance, PushSubscription, NotificationPayload]] = []
        for instance in instances:
            subs = subscriptions_by_owner.get(instance.owner_id) or []
            if not subs:
                logger.info(
                    "No push subscription for owner %s (task '%s')",
                    instance.owner_id,
                    instance.title,
                )
                continue
            payload = self.payload_for(instance)
            jobs.extend((instance, sub, payload) for sub in subs)

        await self._fan_out(jobs, summary)
        return summary

    async def send_test(self, subscriptions: Iterable[PushSubscription]) -> DispatchSummary:
        """Send a fixed test notification to every given subscription."""
        subs = list(subscriptions)
        payload = NotificationPayload(
            title="Test Notification",
            body="This is a test notification from Rudder.",
            icon=settings.notification_icon_url or None,
            badge=settings.notification_badge_url or None,
            tag=TEST_PAYLOAD_TAG,
            require_interaction=True,
        )
        summary = DispatchSummary(subscriptions=len(subs))
        await self._fan_out([(None, sub, payload) for sub in subs], summary)
        return summary

    async def _fan_out(
        self,
        jobs: list[tuple[TaskInstance | None, PushSubscription, NotificationPayload]],
        summary: DispatchSummary,
    ) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)
        pruned: set[str] = set()
        outcomes = await asyncio.gather(
            *(
                self._deliver(instance, sub, payload, semaphore, pruned)
                for instance, sub, payload in jobs
            )
        )
        for outcome in outcomes:
            summary.record(outcome)
        summary.pruned_subscription_ids.extend(sorted(pruned))

    async def _deliver(
        self,
        instance: TaskInstance | None,
        subscription: PushSubscription,
        payload: NotificationPayload,
        semaphore: asyncio.Semaphore,
        pruned: set[str],
    ) -> DispatchOutcome:
        """Send one pair and apply its cleanup policy. Never raises."""
        instance_id = instance.id if instance else None
        async with semaphore:
            outcome = await self._send_one(instance_id, subscription, payload)
        await self._apply_policy(outcome, subscription, pruned)
        return outcome

    async def _send_one(
        self,
        instance_id: str | None,
        subscription: PushSubscription,
        payload: NotificationPayload,
    ) -> DispatchOutcome:
        try:
            status_code = await asyncio.wait_for(
                self._transport.send(subscription, payload.to_json()), timeout=self._timeout
            )
        except TimeoutError:
            return DispatchOutcome(
                status=OutcomeStatus.TRANSPORT_ERROR,
                subscription_id=subscription.id,
                instance_id=instance_id,
                detail=f"timed out after {self._timeout}s",
            )
        except PushSendError as exc:
            return DispatchOutcome(
                status=classify_status(exc.status_code),
                subscription_id=subscription.id,
                instance_id=instance_id,
                status_code=exc.status_code,
                detail=str(exc),
            )
        except Exception as exc:
            logger.exception("Unexpected push failure for subscription %s", subscription.id)
            return DispatchOutcome(
                status=OutcomeStatus.TRANSPORT_ERROR,
                subscription_id=subscription.id,
                instance_id=instance_id,
                detail=repr(exc),
            )
        return DispatchOutcome(
            status=classify_status(status_code),
            subscription_id=subscription.id,
            instance_id=instance_id,
            status_code=status_code,
        )

    async def _apply_policy(
        self,
        outcome: DispatchOutcome,
        subscription: PushSubscription,
        pruned: set[str],
    ) -> None:
        status = outcome.status
        if status is OutcomeStatus.SENT:
            logger.debug("Push sent to %s (task %s)", subscription.id, outcome.instance_id)
            return

        if status.prunes_subscription:
            logger.warning(
                "Push endpoint %s is gone (status=%s); deleting subscription %s",
                subscription.endpoint,
                outcome.status_code,
                subscription.id,
            )
            if subscription.id in pruned:
                return
            pruned.add(subscription.id)
            try:
                await self._subscriptions.delete_subscription(subscription.id)
            except Exception:
                logger.exception("Failed to delete expired subscription %s", subscription.id)
            return

        if status is OutcomeStatus.PAYLOAD_TOO_LARGE:
            logger.error(
                "Push payload rejected as too large for subscription %s (task %s)",
                subscription.id,
                outcome.instance_id,
            )
        elif status is OutcomeStatus.RATE_LIMITED:
            logger.warning(
                "Push provider rate-limited subscription %s; will retry next tick",
                subscription.id,
            )
        else:
            logger.warning(
                "Push transport error for subscription %s (status=%s): %s",
                subscription.id,
                outcome.status_code,
                outcome.detail,
            )
