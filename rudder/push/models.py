"""Push subscription, payload, and dispatch outcome models."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rudder.tasks.models import now_iso


class OutcomeStatus(str, Enum):
    SENT = "sent"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RATE_LIMITED = "rate_limited"
    TRANSPORT_ERROR = "transport_error"

    @property
    def prunes_subscription(self) -> bool:
        """Whether this outcome means the endpoint is gone for good."""
        return self in (OutcomeStatus.EXPIRED, OutcomeStatus.NOT_FOUND)


_STATUS_CODES = {
    404: OutcomeStatus.NOT_FOUND,
    410: OutcomeStatus.EXPIRED,
    413: OutcomeStatus.PAYLOAD_TOO_LARGE,
    429: OutcomeStatus.RATE_LIMITED,
}


def classify_status(status_code: int | None) -> OutcomeStatus:
    """Map a push provider HTTP status code to an outcome."""
    if status_code is not None and 200 <= status_code < 300:
        return OutcomeStatus.SENT
    return _STATUS_CODES.get(status_code or 0, OutcomeStatus.TRANSPORT_ERROR)


@dataclass
class PushSubscription:
    """A registered Web Push endpoint belonging to one user.

    Attributes:
        id: Unique identifier (UUID hex).
        owner_id: The user the endpoint belongs to.
        endpoint: Push service URL.
        p256dh: Client public key (base64url).
        auth: Client auth secret (base64url).
        created_at: ISO 8601 UTC timestamp.
    """

    id: str
    owner_id: str
    endpoint: str
    p256dh: str
    auth: str
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = now_iso()

    def subscription_info(self) -> dict[str, Any]:
        """Return the browser ``PushSubscription`` JSON shape."""
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        return (self.id, self.owner_id, self.endpoint, self.p256dh, self.auth, self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> PushSubscription:
        return cls(
            id=row[0],
            owner_id=row[1],
            endpoint=row[2],
            p256dh=row[3],
            auth=row[4],
            created_at=row[5],
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "subscription": self.subscription_info(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> PushSubscription:
        """Build from a REST row whose ``subscription`` column holds browser JSON."""
        info = record.get("subscription") or {}
        if isinstance(info, str):
            info = json.loads(info)
        keys = info.get("keys") or {}
        return cls(
            id=str(record["id"]),
            owner_id=str(record["user_id"]),
            endpoint=info.get("endpoint", ""),
            p256dh=keys.get("p256dh", ""),
            auth=keys.get("auth", ""),
            created_at=record.get("created_at") or "",
        )


@dataclass(frozen=True)
class NotificationPayload:
    """The closed payload shape rendered by the client-side service worker."""

    title: str
    body: str
    icon: str | None = None
    badge: str | None = None
    tag: str | None = None
    require_interaction: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"title": self.title, "body": self.body}
        if self.icon:
            data["icon"] = self.icon
        if self.badge:
            data["badge"] = self.badge
        if self.tag:
            data["tag"] = self.tag
        if self.require_interaction is not None:
            data["requireInteraction"] = self.require_interaction
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one (instance, subscription) send.  Never persisted."""

    status: OutcomeStatus
    subscription_id: str
    instance_id: str | None = None
    status_code: int | None = None
    detail: str = ""
    at: str = field(default_factory=now_iso)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SENT


@dataclass
class DispatchSummary:
    """Counts for one dispatch run, for logs and operational tooling."""

    instances: int = 0
    subscriptions: int = 0
    deferred: int = 0
    attempted: int = 0
    sent: int = 0
    by_status: Counter[str] = field(default_factory=Counter)
    pruned_subscription_ids: list[str] = field(default_factory=list)
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    local_date: str = ""
    window: str = ""

    @property
    def failed(self) -> int:
        return self.attempted - self.sent

    def record(self, outcome: DispatchOutcome) -> None:
        self.outcomes.append(outcome)
        self.attempted += 1
        self.by_status[outcome.status.value] += 1
        if outcome.ok:
            self.sent += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "attempted": self.attempted,
            "failed": self.failed,
            "instances": self.instances,
            "subscriptions": self.subscriptions,
            "deferred": self.deferred,
            "by_status": dict(self.by_status),
            "pruned_subscriptions": list(self.pruned_subscription_ids),
            "local_date": self.local_date,
            "window": self.window,
        }
