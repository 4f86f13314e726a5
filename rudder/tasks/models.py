"""TaskTemplate and TaskInstance data models."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any


class Recurrence(str, Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class Completion(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


def utc_iso(value: datetime) -> str:
    """Format an aware datetime as a second-precision UTC ISO 8601 string.

    Naive datetimes are assumed to already be UTC.  The fixed format keeps
    stored timestamps lexicographically comparable.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="seconds")


def parse_utc(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def now_iso() -> str:
    return utc_iso(datetime.now(UTC))


def make_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex


@dataclass
class TaskTemplate:
    """A recurrence definition that produces dated task instances.

    Attributes:
        id: Unique identifier (UUID hex).
        owner_id: The user the template belongs to.
        title: Title copied onto every instance.
        recurrence: One of :class:`Recurrence`.
        custom_days: Weekday numbers, 0=Sunday..6=Saturday.  Only consulted
            for ``custom`` recurrence.
        goal_id: Optional linked goal.
        description: Optional free text copied onto instances.
        start_time: Optional local time-of-day ``"HH:MM"`` for time blocks.
        end_time: Optional local end time-of-day ``"HH:MM"``.
        created_at: ISO 8601 UTC timestamp.
    """

    id: str
    owner_id: str
    title: str
    recurrence: Recurrence = Recurrence.DAILY
    custom_days: list[int] = field(default_factory=list)
    goal_id: str | None = None
    description: str = ""
    start_time: str | None = None
    end_time: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        self.recurrence = Recurrence(self.recurrence)
        self.custom_days = sorted({int(d) for d in self.custom_days or []})
        for day in self.custom_days:
            if not 0 <= day <= 6:
                msg = f"custom day out of range: {day}"
                raise ValueError(msg)
        if not self.created_at:
            self.created_at = now_iso()

    @property
    def has_time_of_day(self) -> bool:
        return bool(self.start_time)

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``task_templates`` column order."""
        return (
            self.id,
            self.owner_id,
            self.title,
            self.recurrence.value,
            json.dumps(self.custom_days),
            self.goal_id,
            self.description,
            self.start_time,
            self.end_time,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> TaskTemplate:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            owner_id=row[1],
            title=row[2],
            recurrence=Recurrence(row[3]),
            custom_days=json.loads(row[4] or "[]"),
            goal_id=row[5],
            description=row[6] or "",
            start_time=row[7],
            end_time=row[8],
            created_at=row[9],
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict (REST column names)."""
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "title": self.title,
            "recur_type": self.recurrence.value,
            "custom_days": self.custom_days if self.recurrence is Recurrence.CUSTOM else None,
            "goal_id": self.goal_id,
            "description": self.description or None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TaskTemplate:
        return cls(
            id=str(record["id"]),
            owner_id=str(record["user_id"]),
            title=record.get("title") or "",
            recurrence=Recurrence(record.get("recur_type") or "daily"),
            custom_days=record.get("custom_days") or [],
            goal_id=record.get("goal_id"),
            description=record.get("description") or "",
            start_time=record.get("start_time"),
            end_time=record.get("end_time"),
            created_at=record.get("created_at") or "",
        )


@dataclass
class TaskInstance:
    """One concrete, dated occurrence of a task.

    ``template_id`` is None for one-off tasks.  ``date`` is the local calendar
    date; ``start_time`` and ``end_time`` are UTC instants.
    """

    id: str
    owner_id: str
    title: str
    date: str
    template_id: str | None = None
    goal_id: str | None = None
    description: str = ""
    start_time: str | None = None
    end_time: str | None = None
    completion: Completion = Completion.PENDING
    completed_at: str | None = None
    notified_at: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        self.completion = Completion(self.completion)
        # Due queries compare start_time as text, so keep one UTC format.
        if self.start_time:
            self.start_time = utc_iso(parse_utc(self.start_time))
        if self.end_time:
            self.end_time = utc_iso(parse_utc(self.end_time))
        if not self.created_at:
            self.created_at = now_iso()

    # -- Convenience properties ------------------------------------------------

    @property
    def is_one_off(self) -> bool:
        return self.template_id is None

    @property
    def day(self) -> date:
        return date.fromisoformat(self.date)

    @property
    def starts_at(self) -> datetime | None:
        return parse_utc(self.start_time) if self.start_time else None

    @property
    def ends_at(self) -> datetime | None:
        return parse_utc(self.end_time) if self.end_time else None

    @property
    def is_pending(self) -> bool:
        return self.completion is Completion.PENDING

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``task_instances`` column order."""
        return (
            self.id,
            self.owner_id,
            self.title,
            self.date,
            self.template_id,
            self.goal_id,
            self.description,
            self.start_time,
            self.end_time,
            self.completion.value,
            self.completed_at,
            self.notified_at,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> TaskInstance:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            owner_id=row[1],
            title=row[2],
            date=row[3],
            template_id=row[4],
            goal_id=row[5],
            description=row[6] or "",
            start_time=row[7],
            end_time=row[8],
            completion=Completion(row[9]),
            completed_at=row[10],
            notified_at=row[11],
            created_at=row[12],
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict (REST column names)."""
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "title": self.title,
            "date": self.date,
            "template_id": self.template_id,
            "goal_id": self.goal_id,
            "description": self.description or None,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "completion_status": self.completion.value,
            "completed_at": self.completed_at,
            "notified_at": self.notified_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TaskInstance:
        return cls(
            id=str(record["id"]),
            owner_id=str(record["user_id"]),
            title=record.get("title") or "",
            date=str(record["date"]),
            template_id=record.get("template_id"),
            goal_id=record.get("goal_id"),
            description=record.get("description") or "",
            start_time=record.get("start_time"),
            end_time=record.get("end_time"),
            completion=Completion(record.get("completion_status") or "pending"),
            completed_at=record.get("completed_at"),
            notified_at=record.get("notified_at"),
            created_at=record.get("created_at") or "",
        )
