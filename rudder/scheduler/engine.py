"""SchedulerEngine: APScheduler lifecycle for the dispatch and expansion jobs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rudder.config import settings
from rudder.tasks.window import local_today

if TYPE_CHECKING:
    from rudder.push.models import DispatchSummary
    from rudder.scheduler.run import DispatchRun
    from rudder.tasks.expander import TemplateExpander
    from rudder.tasks.models import TaskInstance

logger = logging.getLogger(__name__)

DISPATCH_JOB_ID = "dispatch"
EXPANSION_JOB_ID = "expansion"


class SchedulerEngine:
    """Runs a DispatchRun every tick and a rolling template expansion daily.

    Args:
        dispatch_run: DispatchRun invoked on each tick.
        expander: TemplateExpander for the daily rolling expansion.
        interval_seconds: Dispatch cadence (default from settings).
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        dispatch_run: DispatchRun,
        expander: TemplateExpander,
        *,
        interval_seconds: int | None = None,
        timezone: str | None = None,
    ) -> None:
        self._dispatch_run = dispatch_run
        self._expander = expander
        self._interval = interval_seconds or settings.dispatch_interval_seconds
        self._timezone = timezone or settings.user_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Expand the rolling window once, register both jobs, start the scheduler."""
        await self.expand_now()
        self._scheduler.add_job(
            self.dispatch_now,
            trigger=IntervalTrigger(seconds=self._interval, timezone=self._timezone),
            id=DISPATCH_JOB_ID,
            name="Dispatch due task notifications",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.expand_now,
            trigger=CronTrigger(hour=settings.expansion_hour, minute=0, timezone=self._timezone),
            id=EXPANSION_JOB_ID,
            name="Expand recurring templates",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started: dispatch every %ds, expansion daily at %02d:00 (tz=%s)",
            self._interval,
            settings.expansion_hour,
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler without waiting for in-flight sends."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    # -- Jobs ------------------------------------------------------------------

    async def dispatch_now(self, owner_id: str | None = None) -> DispatchSummary | None:
        """Run one dispatch cycle. Failures are logged, never raised."""
        try:
            return await self._dispatch_run.run(owner_id=owner_id)
        except Exception:
            logger.exception("Dispatch tick failed")
            return None

    async def expand_now(self) -> list[TaskInstance]:
        """Expand all templates from today through the horizon. Failures are logged."""
        today = local_today(datetime.now(UTC), self._expander.timezone)
        end = today + self._expander.horizon
        try:
            return await self._expander.expand_all(today, end)
        except Exception:
            logger.exception("Template expansion failed for %s..%s", today, end)
            return []
