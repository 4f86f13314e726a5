"""Recurrence resolution: which calendar dates a template fires on.

Everything here is a pure function of (rule, calendar date).  Weekdays use the
0=Sunday..6=Saturday numbering stored on templates; :func:`sunday_weekday` is
the only place that converts from Python's Monday=0 numbering.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta

from rudder.tasks.models import Recurrence, TaskTemplate

SUNDAY = 0
MONDAY = 1
SATURDAY = 6

WEEKDAY_SET = frozenset({1, 2, 3, 4, 5})


@dataclass(frozen=True)
class RecurrenceRule:
    """A recurrence kind plus the custom day-set it applies to."""

    kind: Recurrence
    days: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def of(cls, kind: Recurrence | str, days: Iterable[int] = ()) -> RecurrenceRule:
        return cls(kind=Recurrence(kind), days=frozenset(int(d) for d in days))

    @classmethod
    def for_template(cls, template: TaskTemplate) -> RecurrenceRule:
        return cls.of(template.recurrence, template.custom_days)


def sunday_weekday(day: date) -> int:
    """Return the weekday of *day* with Sunday as 0 and Saturday as 6."""
    return (day.weekday() + 1) % 7


def qualifies(rule: RecurrenceRule, day: date) -> bool:
    """Return True if *rule* fires on *day*."""
    weekday = sunday_weekday(day)
    if rule.kind is Recurrence.DAILY:
        return True
    if rule.kind is Recurrence.WEEKDAYS:
        return weekday in WEEKDAY_SET
    if rule.kind is Recurrence.WEEKLY:
        return weekday == MONDAY
    return weekday in rule.days


def next_occurrence(rule: RecurrenceRule, reference: date) -> date:
    """Return the next date *rule* fires on, relative to *reference*.

    ``daily`` and ``weekdays`` include the reference date itself; ``weekly``
    includes it when it is a Monday.  ``custom`` looks strictly after the
    reference weekday and wraps into the following week; an empty day-set
    falls back to the reference date.
    """
    weekday = sunday_weekday(reference)

    if rule.kind is Recurrence.DAILY:
        return reference

    if rule.kind is Recurrence.WEEKDAYS:
        if weekday in WEEKDAY_SET:
            return reference
        return reference + timedelta(days=1 if weekday == SUNDAY else 8 - weekday)

    if rule.kind is Recurrence.WEEKLY:
        return reference + timedelta(days=(8 - weekday) % 7)

    if not rule.days:
        return reference
    ordered = sorted(rule.days)
    upcoming = next((d for d in ordered if d > weekday), None)
    if upcoming is not None:
        return reference + timedelta(days=upcoming - weekday)
    return reference + timedelta(days=7 - weekday + ordered[0])


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date in ``[start, end]``."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def occurrences(rule: RecurrenceRule, start: date, end: date) -> list[date]:
    """Return every date in ``[start, end]`` on which *rule* fires."""
    return [day for day in iter_dates(start, end) if qualifies(rule, day)]
