"""TemplateExpander: materializes dated task instances from templates."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from rudder.config import settings
from rudder.tasks.models import Completion, TaskInstance, TaskTemplate, make_id, utc_iso
from rudder.tasks.recurrence import RecurrenceRule, next_occurrence, occurrences
from rudder.tasks.window import block_bounds

if TYPE_CHECKING:
    from zoneinfo import ZoneInfo

    from rudder.store.base import TaskStore

logger = logging.getLogger(__name__)


class TemplateExpander:
    """Creates the missing instances of a template over a date range.

    Expansion is idempotent: dates that already have an instance for the
    template are skipped, and the store additionally ignores
    ``(template_id, date)`` conflicts so concurrent runs cannot duplicate.

    Args:
        store: TaskStore to read existing instances from and write new ones to.
        timezone: User timezone for time-of-day templates (default from settings).
        horizon_days: How far ahead rolling expansion reaches.
    """

    def __init__(
        self,
        store: TaskStore,
        timezone: ZoneInfo | None = None,
        horizon_days: int | None = None,
    ) -> None:
        self._store = store
        self._tz = timezone or settings.get_timezone()
        self._horizon = timedelta(
            days=horizon_days if horizon_days is not None else settings.expansion_horizon_days
        )

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    @property
    def horizon(self) -> timedelta:
        return self._horizon

    async def expand(
        self, template: TaskTemplate, start: date, end: date
    ) -> list[TaskInstance]:
        """Create instances for every qualifying date in ``[start, end]``.

        Returns only newly created instances.  A store failure raises
        ``StoreError`` and nothing is reported as created.
        """
        if start > end:
            return []

        candidates = occurrences(RecurrenceRule.for_template(template), start, end)
        if not candidates:
            return []

        existing = await self._store.list_instances(
            template.id, start.isoformat(), end.isoformat()
        )
        taken = {instance.date for instance in existing}
        new = [
            self._instantiate(template, day)
            for day in candidates
            if day.isoformat() not in taken
        ]
        if not new:
            logger.debug("Template %s already expanded for %s..%s", template.id, start, end)
            return []

        created = await self._store.insert_instances(new)
        logger.info(
            "Expanded template '%s' (%s): %d new instance(s) in %s..%s",
            template.title,
            template.id,
            len(created),
            start,
            end,
        )
        return created

    async def expand_rolling(self, template: TaskTemplate, today: date) -> list[TaskInstance]:
        """Expand from the template's next occurrence through the horizon."""
        first = next_occurrence(RecurrenceRule.for_template(template), today)
        return await self.expand(template, first, today + self._horizon)

    async def expand_all(
        self, start: date, end: date, *, owner_id: str | None = None
    ) -> list[TaskInstance]:
        """Expand every template (optionally for one owner) over ``[start, end]``."""
        templates = await self._store.list_templates(owner_id)
        created: list[TaskInstance] = []
        for template in templates:
            created.extend(await self.expand(template, start, end))
        logger.info(
            "Expanded %d template(s) for %s..%s: %d new instance(s)",
            len(templates),
            start,
            end,
            len(created),
        )
        return created

    # -- Internal --------------------------------------------------------------

    def _instantiate(self, template: TaskTemplate, day: date) -> TaskInstance:
        start_time = end_time = None
        if template.start_time:
            starts, ends = block_bounds(day, template.start_time, template.end_time, self._tz)
            start_time = utc_iso(starts)
            end_time = utc_iso(ends) if ends else None
        return TaskInstance(
            id=make_id(),
            owner_id=template.owner_id,
            title=template.title,
            date=day.isoformat(),
            template_id=template.id,
            goal_id=template.goal_id,
            description=template.description,
            start_time=start_time,
            end_time=end_time,
            completion=Completion.PENDING,
        )
