"""RestStore: PostgREST implementation of the task and subscription stores.

Talks to the hosted relational store through its REST query interface
(``/rest/v1/<table>?column=op.value``).  Every request carries an
``httpx.Timeout``; transport and HTTP errors surface as :class:`StoreError`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from rudder.config import settings
from rudder.push.models import PushSubscription
from rudder.store.base import StoreError
from rudder.tasks.models import Completion, TaskInstance, TaskTemplate, utc_iso

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

TEMPLATES_TABLE = "task_templates"
INSTANCES_TABLE = "tasks"
SUBSCRIPTIONS_TABLE = "push_subscriptions"

_RETURN_ROWS = "return=representation"


class RestStore:
    """Store backed by a remote PostgREST endpoint.

    Args:
        base_url: Project URL; ``/rest/v1`` is appended.
        api_key: Service key, sent as ``apikey`` and bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = (base_url or settings.rest_url).rstrip("/")
        api_key = api_key if api_key is not None else settings.rest_api_key
        if not base_url:
            msg = "RestStore requires REST_URL"
            raise ValueError(msg)
        self._client = httpx.AsyncClient(
            base_url=f"{base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout or settings.store_timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- Internal helpers ------------------------------------------------------

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        """Issue one request and return the decoded row list (empty if none)."""
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            msg = (
                f"{method} {table} failed: status={exc.response.status_code}"
                f" body={exc.response.text[:200]}"
            )
            raise StoreError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"{method} {table} failed: {exc!r}"
            raise StoreError(msg) from exc
        if not resp.content:
            return []
        try:
            data = resp.json()
        except ValueError as exc:
            msg = f"{method} {table} returned invalid JSON: {resp.text[:200]!r}"
            raise StoreError(msg) from exc
        return data if isinstance(data, list) else [data]

    # -- Templates -------------------------------------------------------------

    async def add_template(self, template: TaskTemplate) -> TaskTemplate:
        rows = await self._request(
            "POST", TEMPLATES_TABLE, json=template.to_record(), prefer=_RETURN_ROWS
        )
        logger.info("Added template: %s (%s)", template.title, template.id)
        return TaskTemplate.from_record(rows[0]) if rows else template

    async def get_template(self, template_id: str) -> TaskTemplate | None:
        rows = await self._request("GET", TEMPLATES_TABLE, params=[("id", f"eq.{template_id}")])
        return TaskTemplate.from_record(rows[0]) if rows else None

    async def list_templates(self, owner_id: str | None = None) -> list[TaskTemplate]:
        params = [("order", "created_at.asc")]
        if owner_id is not None:
            params.append(("user_id", f"eq.{owner_id}"))
        rows = await self._request("GET", TEMPLATES_TABLE, params=params)
        return [TaskTemplate.from_record(row) for row in rows]

    async def delete_template(self, template_id: str) -> bool:
        """Delete spawned instances first, then the template."""
        instances = await self._request(
            "DELETE",
            INSTANCES_TABLE,
            params=[("template_id", f"eq.{template_id}")],
            prefer=_RETURN_ROWS,
        )
        rows = await self._request(
            "DELETE", TEMPLATES_TABLE, params=[("id", f"eq.{template_id}")], prefer=_RETURN_ROWS
        )
        if rows:
            logger.info("Deleted template %s and %d instance(s)", template_id, len(instances))
        return bool(rows)

    # -- Instances -------------------------------------------------------------

    async def add_instance(self, instance: TaskInstance) -> TaskInstance:
        rows = await self._request(
            "POST", INSTANCES_TABLE, json=instance.to_record(), prefer=_RETURN_ROWS
        )
        logger.info("Added task: %s on %s (%s)", instance.title, instance.date, instance.id)
        return TaskInstance.from_record(rows[0]) if rows else instance

    async def get_instance(self, instance_id: str) -> TaskInstance | None:
        rows = await self._request("GET", INSTANCES_TABLE, params=[("id", f"eq.{instance_id}")])
        return TaskInstance.from_record(rows[0]) if rows else None

    async def list_instances(self, template_id: str, start: str, end: str) -> list[TaskInstance]:
        rows = await self._request(
            "GET",
            INSTANCES_TABLE,
            params=[
                ("template_id", f"eq.{template_id}"),
                ("date", f"gte.{start}"),
                ("date", f"lte.{end}"),
                ("order", "date.asc"),
            ],
        )
        return [TaskInstance.from_record(row) for row in rows]

    async def insert_instances(self, instances: list[TaskInstance]) -> list[TaskInstance]:
        """Bulk insert in a single request, ignoring ``(template_id, date)`` conflicts.

        PostgREST runs one request in one transaction, so the batch is
        all-or-nothing and the response lists only rows actually inserted.
        """
        if not instances:
            return []
        rows = await self._request(
            "POST",
            INSTANCES_TABLE,
            params=[("on_conflict", "template_id,date")],
            json=[instance.to_record() for instance in instances],
            prefer=f"resolution=ignore-duplicates,{_RETURN_ROWS}",
        )
        return [TaskInstance.from_record(row) for row in rows]

    async def list_due_instances(
        self,
        local_date: str,
        window_start: datetime,
        window_end: datetime,
        *,
        owner_id: str | None = None,
        exclude_notified: bool = False,
    ) -> list[TaskInstance]:
        params = [
            ("date", f"eq.{local_date}"),
            ("start_time", f"gte.{utc_iso(window_start)}"),
            ("start_time", f"lt.{utc_iso(window_end)}"),
            ("completion_status", f"eq.{Completion.PENDING.value}"),
            ("order", "start_time.asc"),
        ]
        if owner_id is not None:
            params.append(("user_id", f"eq.{owner_id}"))
        if exclude_notified:
            params.append(("notified_at", "is.null"))
        rows = await self._request("GET", INSTANCES_TABLE, params=params)
        return [TaskInstance.from_record(row) for row in rows]

    async def set_completion(
        self, instance_id: str, completion: Completion, at: str | None
    ) -> bool:
        rows = await self._request(
            "PATCH",
            INSTANCES_TABLE,
            params=[("id", f"eq.{instance_id}")],
            json={"completion_status": Completion(completion).value, "completed_at": at},
            prefer=_RETURN_ROWS,
        )
        return bool(rows)

    async def mark_notified(self, instance_ids: list[str], at: str) -> None:
        if not instance_ids:
            return
        await self._request(
            "PATCH",
            INSTANCES_TABLE,
            params=[("id", f"in.({','.join(instance_ids)})")],
            json={"notified_at": at},
        )

    # -- Subscriptions ---------------------------------------------------------

    async def register_subscription(self, subscription: PushSubscription) -> PushSubscription:
        await self._request(
            "DELETE", SUBSCRIPTIONS_TABLE, params=[("user_id", f"eq.{subscription.owner_id}")]
        )
        await self._request(
            "POST", SUBSCRIPTIONS_TABLE, json=subscription.to_record(), prefer=_RETURN_ROWS
        )
        logger.info(
            "Registered push subscription %s for %s", subscription.id, subscription.owner_id
        )
        return subscription

    async def list_subscriptions(self, owner_id: str | None = None) -> list[PushSubscription]:
        params = [("order", "created_at.asc")]
        if owner_id is not None:
            params.append(("user_id", f"eq.{owner_id}"))
        rows = await self._request("GET", SUBSCRIPTIONS_TABLE, params=params)
        return [PushSubscription.from_record(row) for row in rows]

    async def delete_subscription(self, subscription_id: str) -> bool:
        rows = await self._request(
            "DELETE",
            SUBSCRIPTIONS_TABLE,
            params=[("id", f"eq.{subscription_id}")],
            prefer=_RETURN_ROWS,
        )
        if rows:
            logger.info("Deleted push subscription: %s", subscription_id)
        return bool(rows)
