"""Store protocols: the query and write contracts the engine depends on."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rudder.push.models import PushSubscription
    from rudder.tasks.models import Completion, TaskInstance, TaskTemplate


class StoreError(RuntimeError):
    """A store read or write failed.  Aborts the operation that issued it."""


@runtime_checkable
class TaskStore(Protocol):
    """Persistence for templates and instances."""

    async def add_template(self, template: TaskTemplate) -> TaskTemplate: ...

    async def get_template(self, template_id: str) -> TaskTemplate | None: ...

    async def list_templates(self, owner_id: str | None = None) -> list[TaskTemplate]: ...

    async def delete_template(self, template_id: str) -> bool:
        """Delete a template and every instance it spawned."""
        ...

    async def add_instance(self, instance: TaskInstance) -> TaskInstance: ...

    async def get_instance(self, instance_id: str) -> TaskInstance | None: ...

    async def list_instances(
        self, template_id: str, start: str, end: str
    ) -> list[TaskInstance]:
        """Instances of *template_id* dated within ``[start, end]``."""
        ...

    async def insert_instances(self, instances: list[TaskInstance]) -> list[TaskInstance]:
        """Insert all-or-nothing, skipping existing ``(template_id, date)`` pairs.

        Returns only the rows actually created.
        """
        ...

    async def list_due_instances(
        self,
        local_date: str,
        window_start: datetime,
        window_end: datetime,
        *,
        owner_id: str | None = None,
        exclude_notified: bool = False,
    ) -> list[TaskInstance]:
        """Pending instances on *local_date* starting in ``[window_start, window_end)``."""
        ...

    async def set_completion(
        self, instance_id: str, completion: Completion, at: str | None
    ) -> bool: ...

    async def mark_notified(self, instance_ids: list[str], at: str) -> None: ...


@runtime_checkable
class SubscriptionStore(Protocol):
    """Registry of push endpoints."""

    async def register_subscription(self, subscription: PushSubscription) -> PushSubscription:
        """Store *subscription*, replacing any existing one for the same owner."""
        ...

    async def list_subscriptions(self, owner_id: str | None = None) -> list[PushSubscription]: ...

    async def delete_subscription(self, subscription_id: str) -> bool:
        """Delete by id.  Returns False (not an error) if already gone."""
        ...
