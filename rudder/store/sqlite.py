"""SqliteStore: aiosqlite implementation of the task and subscription stores."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import aiosqlite

from rudder.config import settings
from rudder.push.models import PushSubscription
from rudder.store.base import StoreError
from rudder.tasks.models import Completion, TaskInstance, TaskTemplate, utc_iso

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS task_templates (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        title TEXT NOT NULL,
        recurrence TEXT NOT NULL,
        custom_days TEXT NOT NULL DEFAULT '[]',
        goal_id TEXT,
        description TEXT NOT NULL DEFAULT '',
        start_time TEXT,
        end_time TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_instances (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        title TEXT NOT NULL,
        date TEXT NOT NULL,
        template_id TEXT,
        goal_id TEXT,
        description TEXT NOT NULL DEFAULT '',
        start_time TEXT,
        end_time TEXT,
        completion TEXT NOT NULL DEFAULT 'pending',
        completed_at TEXT,
        notified_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    # NULL template_ids never collide, so one-off tasks insert freely.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_instances_template_date
        ON task_instances (template_id, date)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_instances_due
        ON task_instances (date, start_time)
    """,
    """
    CREATE TABLE IF NOT EXISTS push_subscriptions (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        endpoint TEXT NOT NULL,
        p256dh TEXT NOT NULL,
        auth TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
)

_TEMPLATE_COLUMNS = (
    "id, owner_id, title, recurrence, custom_days, goal_id, description,"
    " start_time, end_time, created_at"
)
_INSTANCE_COLUMNS = (
    "id, owner_id, title, date, template_id, goal_id, description, start_time,"
    " end_time, completion, completed_at, notified_at, created_at"
)
_SUBSCRIPTION_COLUMNS = "id, owner_id, endpoint, p256dh, auth, created_at"


class SqliteStore:
    """Persists templates, instances and push subscriptions in SQLite.

    Singleton accessed via ``SqliteStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: SqliteStore | None = None

    def __init__(self, db_path: Path | None = None, timeout: float | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._timeout = timeout if timeout is not None else settings.store_timeout_seconds
        self._initialised = False

    @classmethod
    def get(cls) -> SqliteStore:
        """Return the shared SqliteStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path), timeout=self._timeout)
        if not self._initialised:
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection; convert driver errors into StoreError."""
        try:
            db = await self._connect()
        except aiosqlite.Error as exc:
            msg = f"{operation}: could not open {self._db_path}"
            raise StoreError(msg) from exc
        try:
            yield db
        except aiosqlite.Error as exc:
            await db.rollback()
            msg = f"{operation} failed: {exc}"
            raise StoreError(msg) from exc
        finally:
            await db.close()

    # -- Templates -------------------------------------------------------------

    async def add_template(self, template: TaskTemplate) -> TaskTemplate:
        """Insert a new template. Returns the same template object."""
        async with self._session("add_template") as db:
            await db.execute(
                f"INSERT INTO task_templates ({_TEMPLATE_COLUMNS})"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                template.to_row(),
            )
            await db.commit()
        logger.info(
            "Added template: %s (%s, %s)", template.title, template.id, template.recurrence.value
        )
        return template

    async def get_template(self, template_id: str) -> TaskTemplate | None:
        async with self._session("get_template") as db:
            cursor = await db.execute(
                f"SELECT {_TEMPLATE_COLUMNS} FROM task_templates WHERE id = ?", (template_id,)
            )
            row = await cursor.fetchone()
        return TaskTemplate.from_row(row) if row else None

    async def list_templates(self, owner_id: str | None = None) -> list[TaskTemplate]:
        sql = f"SELECT {_TEMPLATE_COLUMNS} FROM task_templates"
        params: tuple = ()
        if owner_id is not None:
            sql += " WHERE owner_id = ?"
            params = (owner_id,)
        async with self._session("list_templates") as db:
            cursor = await db.execute(sql + " ORDER BY created_at", params)
            rows = await cursor.fetchall()
        return [TaskTemplate.from_row(row) for row in rows]

    async def delete_template(self, template_id: str) -> bool:
        """Delete a template and, in the same transaction, all its instances."""
        async with self._session("delete_template") as db:
            cursor = await db.execute(
                "DELETE FROM task_instances WHERE template_id = ?", (template_id,)
            )
            removed_instances = cursor.rowcount
            cursor = await db.execute("DELETE FROM task_templates WHERE id = ?", (template_id,))
            deleted = cursor.rowcount > 0
            await db.commit()
        if deleted:
            logger.info(
                "Deleted template %s and %d instance(s)", template_id, removed_instances
            )
        return deleted

    # -- Instances -------------------------------------------------------------

    async def add_instance(self, instance: TaskInstance) -> TaskInstance:
        """Insert a single instance (one-off tasks)."""
        async with self._session("add_instance") as db:
            await db.execute(
                f"INSERT INTO task_instances ({_INSTANCE_COLUMNS})"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                instance.to_row(),
            )
            await db.commit()
        logger.info("Added task: %s on %s (%s)", instance.title, instance.date, instance.id)
        return instance

    async def get_instance(self, instance_id: str) -> TaskInstance | None:
        async with self._session("get_instance") as db:
            cursor = await db.execute(
                f"SELECT {_INSTANCE_COLUMNS} FROM task_instances WHERE id = ?", (instance_id,)
            )
            row = await cursor.fetchone()
        return TaskInstance.from_row(row) if row else None

    async def list_instances(self, template_id: str, start: str, end: str) -> list[TaskInstance]:
        async with self._session("list_instances") as db:
            cursor = await db.execute(
                f"SELECT {_INSTANCE_COLUMNS} FROM task_instances"
                " WHERE template_id = ? AND date >= ? AND date <= ? ORDER BY date",
                (template_id, start, end),
            )
            rows = await cursor.fetchall()
        return [TaskInstance.from_row(row) for row in rows]

    async def insert_instances(self, instances: list[TaskInstance]) -> list[TaskInstance]:
        """Insert in one transaction; existing ``(template_id, date)`` rows are kept."""
        if not instances:
            return []
        created: list[TaskInstance] = []
        async with self._session("insert_instances") as db:
            for instance in instances:
                cursor = await db.execute(
                    f"INSERT OR IGNORE INTO task_instances ({_INSTANCE_COLUMNS})"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    instance.to_row(),
                )
                if cursor.rowcount > 0:
                    created.append(instance)
            await db.commit()
        skipped = len(instances) - len(created)
        if skipped:
            logger.debug("insert_instances: %d already existed", skipped)
        return created

    async def list_due_instances(
        self,
        local_date: str,
        window_start: datetime,
        window_end: datetime,
        *,
        owner_id: str | None = None,
        exclude_notified: bool = False,
    ) -> list[TaskInstance]:
        sql = (
            f"SELECT {_INSTANCE_COLUMNS} FROM task_instances"
            " WHERE date = ? AND start_time IS NOT NULL"
            " AND start_time >= ? AND start_time < ? AND completion = ?"
        )
        params: list = [
            local_date,
            utc_iso(window_start),
            utc_iso(window_end),
            Completion.PENDING.value,
        ]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        if exclude_notified:
            sql += " AND notified_at IS NULL"
        async with self._session("list_due_instances") as db:
            cursor = await db.execute(sql + " ORDER BY start_time ASC", tuple(params))
            rows = await cursor.fetchall()
        return [TaskInstance.from_row(row) for row in rows]

    async def set_completion(
        self, instance_id: str, completion: Completion, at: str | None
    ) -> bool:
        """Set completion state and timestamp. Returns True if a row was updated."""
        async with self._session("set_completion") as db:
            cursor = await db.execute(
                "UPDATE task_instances SET completion = ?, completed_at = ? WHERE id = ?",
                (Completion(completion).value, at, instance_id),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def mark_notified(self, instance_ids: list[str], at: str) -> None:
        if not instance_ids:
            return
        async with self._session("mark_notified") as db:
            await db.executemany(
                "UPDATE task_instances SET notified_at = ? WHERE id = ?",
                [(at, instance_id) for instance_id in instance_ids],
            )
            await db.commit()

    # -- Subscriptions ---------------------------------------------------------

    async def register_subscription(self, subscription: PushSubscription) -> PushSubscription:
        """Replace the owner's existing subscription(s) with *subscription*."""
        async with self._session("register_subscription") as db:
            cursor = await db.execute(
                "DELETE FROM push_subscriptions WHERE owner_id = ?", (subscription.owner_id,)
            )
            replaced = cursor.rowcount
            await db.execute(
                f"INSERT INTO push_subscriptions ({_SUBSCRIPTION_COLUMNS})"
                " VALUES (?, ?, ?, ?, ?, ?)",
                subscription.to_row(),
            )
            await db.commit()
        logger.info(
            "Registered push subscription %s for %s (replaced %d)",
            subscription.id,
            subscription.owner_id,
            replaced,
        )
        return subscription

    async def list_subscriptions(self, owner_id: str | None = None) -> list[PushSubscription]:
        sql = f"SELECT {_SUBSCRIPTION_COLUMNS} FROM push_subscriptions"
        params: tuple = ()
        if owner_id is not None:
            sql += " WHERE owner_id = ?"
            params = (owner_id,)
        async with self._session("list_subscriptions") as db:
            cursor = await db.execute(sql + " ORDER BY created_at", params)
            rows = await cursor.fetchall()
        return [PushSubscription.from_row(row) for row in rows]

    async def delete_subscription(self, subscription_id: str) -> bool:
        async with self._session("delete_subscription") as db:
            cursor = await db.execute(
                "DELETE FROM push_subscriptions WHERE id = ?", (subscription_id,)
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted push subscription: %s", subscription_id)
        return deleted
