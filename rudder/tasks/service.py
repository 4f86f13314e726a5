"""TaskService: task lifecycle operations around the expander and store."""

from __future__ import annotations

import inspect
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from rudder.tasks.expander import TemplateExpander
from rudder.tasks.models import (
    Completion,
    Recurrence,
    TaskInstance,
    TaskTemplate,
    make_id,
    utc_iso,
)
from rudder.tasks.window import block_bounds, local_to_utc, local_today

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from datetime import date

    from rudder.store.base import TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    """Creates templates and one-off tasks and records completion.

    Args:
        store: TaskStore for persistence.
        expander: TemplateExpander used when a template is created.
        on_completed: Optional callback invoked with the instance after it is
            marked completed.  May be sync or async.
        clock: Returns "now" (injectable for tests).
    """

    def __init__(
        self,
        store: TaskStore,
        expander: TemplateExpander | None = None,
        *,
        on_completed: Callable[[TaskInstance], Awaitable[None] | None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._expander = expander or TemplateExpander(store)
        self._on_completed = on_completed
        self._clock = clock or (lambda: datetime.now(UTC))

    def _today(self) -> date:
        return local_today(self._clock(), self._expander.timezone)

    # -- Templates -------------------------------------------------------------

    async def create_template(
        self,
        owner_id: str,
        title: str,
        recurrence: Recurrence | str,
        *,
        custom_days: Iterable[int] = (),
        goal_id: str | None = None,
        description: str = "",
        start_time: str | None = None,
        end_time: str | None = None,
    ) -> tuple[TaskTemplate, list[TaskInstance]]:
        """Persist a template and expand it through the rolling horizon.

        Returns the template and the instances created for it.
        """
        title = title.strip()
        if not title:
            msg = "Template title must not be empty"
            raise ValueError(msg)
        recurrence = Recurrence(recurrence)
        template = TaskTemplate(
            id=make_id(),
            owner_id=owner_id,
            title=title,
            recurrence=recurrence,
            custom_days=list(custom_days) if recurrence is Recurrence.CUSTOM else [],
            goal_id=goal_id,
            description=description,
            start_time=start_time,
            end_time=end_time,
            created_at=utc_iso(self._clock()),
        )
        await self._store.add_template(template)
        created = await self._expander.expand_rolling(template, self._today())
        return template, created

    async def delete_template(self, template_id: str) -> bool:
        """Delete a template together with every instance it spawned."""
        return await self._store.delete_template(template_id)

    # -- One-off tasks ---------------------------------------------------------

    async def create_task(
        self,
        owner_id: str,
        title: str,
        *,
        on_date: date | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
        goal_id: str | None = None,
        description: str = "",
    ) -> TaskInstance:
        """Create a non-recurring task, dated today (local) unless *on_date* is given."""
        title = title.strip()
        if not title:
            msg = "Task title must not be empty"
            raise ValueError(msg)
        day = on_date or self._today()
        tz = self._expander.timezone
        starts = ends = None
        if start_time:
            starts, ends = block_bounds(day, start_time, end_time, tz)
        elif end_time:
            ends = local_to_utc(day, end_time, tz)
        instance = TaskInstance(
            id=make_id(),
            owner_id=owner_id,
            title=title,
            date=day.isoformat(),
            goal_id=goal_id,
            description=description,
            start_time=utc_iso(starts) if starts else None,
            end_time=utc_iso(ends) if ends else None,
            created_at=utc_iso(self._clock()),
        )
        return await self._store.add_instance(instance)

    # -- Completion ------------------------------------------------------------

    async def complete(self, instance_id: str) -> TaskInstance | None:
        return await self._set_completion(instance_id, Completion.COMPLETED)

    async def skip(self, instance_id: str) -> TaskInstance | None:
        return await self._set_completion(instance_id, Completion.SKIPPED)

    async def fail(self, instance_id: str) -> TaskInstance | None:
        return await self._set_completion(instance_id, Completion.FAILED)

    async def reopen(self, instance_id: str) -> TaskInstance | None:
        """Return an instance to ``pending`` and clear its completion timestamp."""
        return await self._set_completion(instance_id, Completion.PENDING)

    async def _set_completion(
        self, instance_id: str, completion: Completion
    ) -> TaskInstance | None:
        at = None if completion is Completion.PENDING else utc_iso(self._clock())
        updated = await self._store.set_completion(instance_id, completion, at)
        if not updated:
            logger.warning("Task not found for completion update: %s", instance_id)
            return None
        instance = await self._store.get_instance(instance_id)
        logger.info("Task %s marked %s", instance_id, completion.value)
        if instance is not None and self._on_completed and completion is Completion.COMPLETED:
            result = self._on_completed(instance)
            if inspect.isawaitable(result):
                await result
        return instance
