"""Dispatch cycle orchestration and the APScheduler engine."""

from rudder.scheduler.engine import SchedulerEngine
from rudder.scheduler.run import DispatchRun, RunState

__all__ = [
    "DispatchRun",
    "RunState",
    "SchedulerEngine",
]
