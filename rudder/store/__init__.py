"""Store backends for templates, instances and push subscriptions."""

from __future__ import annotations

from rudder.config import settings
from rudder.store.base import StoreError, SubscriptionStore, TaskStore
from rudder.store.rest import RestStore
from rudder.store.sqlite import SqliteStore


def open_store() -> SqliteStore | RestStore:
    """Return the store selected by ``STORE_BACKEND`` (``sqlite`` or ``rest``)."""
    backend = settings.store_backend.strip().lower()
    if backend == "rest":
        return RestStore()
    if backend == "sqlite":
        return SqliteStore.get()
    msg = f"Unknown store backend: {settings.store_backend}"
    raise ValueError(msg)


__all__ = [
    "RestStore",
    "SqliteStore",
    "StoreError",
    "SubscriptionStore",
    "TaskStore",
    "open_store",
]
