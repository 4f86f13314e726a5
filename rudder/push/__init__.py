"""Web Push delivery: subscriptions, transports, and the fan-out dispatcher."""

from rudder.push.dispatcher import NotificationDispatcher
from rudder.push.models import (
    DispatchOutcome,
    DispatchSummary,
    NotificationPayload,
    OutcomeStatus,
    PushSubscription,
    classify_status,
)
from rudder.push.transport import LogTransport, PushSendError, PushTransport, WebPushTransport

__all__ = [
    "DispatchOutcome",
    "DispatchSummary",
    "LogTransport",
    "NotificationDispatcher",
    "NotificationPayload",
    "OutcomeStatus",
    "PushSendError",
    "PushSubscription",
    "PushTransport",
    "WebPushTransport",
    "classify_status",
]
