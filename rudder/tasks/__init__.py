"""Task templates, recurrence, expansion, and due-window selection."""

from rudder.tasks.expander import TemplateExpander
from rudder.tasks.models import Completion, Recurrence, TaskInstance, TaskTemplate
from rudder.tasks.recurrence import RecurrenceRule, next_occurrence, qualifies
from rudder.tasks.service import TaskService
from rudder.tasks.window import DueWindow, compute_window

__all__ = [
    "Completion",
    "DueWindow",
    "Recurrence",
    "RecurrenceRule",
    "TaskInstance",
    "TaskService",
    "TaskTemplate",
    "TemplateExpander",
    "compute_window",
    "next_occurrence",
    "qualifies",
]
