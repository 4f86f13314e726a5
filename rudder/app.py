"""Component wiring shared by the service entry point and scripts."""

from __future__ import annotations

from dataclasses import dataclass

from rudder.config import settings
from rudder.push.dispatcher import NotificationDispatcher
from rudder.push.transport import PushTransport, transport_for_settings
from rudder.scheduler.engine import SchedulerEngine
from rudder.scheduler.run import DispatchRun
from rudder.store import RestStore, SqliteStore, open_store
from rudder.tasks.expander import TemplateExpander
from rudder.tasks.service import TaskService


@dataclass
class RudderApp:
    """Fully wired components for one process."""

    store: SqliteStore | RestStore
    transport: PushTransport
    expander: TemplateExpander
    tasks: TaskService
    dispatcher: NotificationDispatcher
    dispatch_run: DispatchRun
    engine: SchedulerEngine

    async def close(self) -> None:
        await self.engine.stop()
        if isinstance(self.store, RestStore):
            await self.store.aclose()


def create_app(
    store: SqliteStore | RestStore | None = None,
    transport: PushTransport | None = None,
) -> RudderApp:
    """Build every component from settings, with optional overrides."""
    store = store or open_store()
    transport = transport or transport_for_settings()
    tz = settings.get_timezone()
    expander = TemplateExpander(store, timezone=tz)
    dispatcher = NotificationDispatcher(transport, store, timezone=tz)
    dispatch_run = DispatchRun(store, store, dispatcher, timezone=tz)
    return RudderApp(
        store=store,
        transport=transport,
        expander=expander,
        tasks=TaskService(store, expander),
        dispatcher=dispatcher,
        dispatch_run=dispatch_run,
        engine=SchedulerEngine(dispatch_run, expander),
    )
