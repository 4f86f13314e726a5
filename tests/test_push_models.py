"""Tests for push outcome classification, payloads and summaries."""

import json

import pytest

from rudder.push.models import (
    DispatchOutcome,
    DispatchSummary,
    NotificationPayload,
    OutcomeStatus,
    PushSubscription,
    classify_status,
)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (200, OutcomeStatus.SENT),
        (201, OutcomeStatus.SENT),
        (404, OutcomeStatus.NOT_FOUND),
        (410, OutcomeStatus.EXPIRED),
        (413, OutcomeStatus.PAYLOAD_TOO_LARGE),
        (429, OutcomeStatus.RATE_LIMITED),
        (500, OutcomeStatus.TRANSPORT_ERROR),
        (400, OutcomeStatus.TRANSPORT_ERROR),
        (None, OutcomeStatus.TRANSPORT_ERROR),
    ],
)
def test_classify_status(code, expected) -> None:
    assert classify_status(code) is expected


def test_only_gone_endpoints_prune() -> None:
    pruning = {s for s in OutcomeStatus if s.prunes_subscription}
    assert pruning == {OutcomeStatus.EXPIRED, OutcomeStatus.NOT_FOUND}


# -- NotificationPayload -------------------------------------------------------


def test_payload_uses_client_key_names() -> None:
    payload = NotificationPayload(
        title="Task Started: Deep work",
        body="Started at 09:00 AM",
        icon="/icon.png",
        tag="task-inst1",
        require_interaction=True,
    )
    assert payload.to_dict() == {
        "title": "Task Started: Deep work",
        "body": "Started at 09:00 AM",
        "icon": "/icon.png",
        "tag": "task-inst1",
        "requireInteraction": True,
    }


def test_payload_omits_unset_fields() -> None:
    payload = NotificationPayload(title="t", body="b")
    assert json.loads(payload.to_json()) == {"title": "t", "body": "b"}


# -- PushSubscription ----------------------------------------------------------


def test_subscription_record_holds_browser_json() -> None:
    sub = PushSubscription(
        id="s1", owner_id="u1", endpoint="https://push.example.com/x", p256dh="k", auth="a"
    )
    record = sub.to_record()
    assert record["user_id"] == "u1"
    assert record["subscription"] == {
        "endpoint": "https://push.example.com/x",
        "keys": {"p256dh": "k", "auth": "a"},
    }
    assert PushSubscription.from_record(record) == sub


# -- DispatchSummary -----------------------------------------------------------


def test_summary_counts() -> None:
    summary = DispatchSummary(instances=1, subscriptions=3)
    summary.record(DispatchOutcome(OutcomeStatus.SENT, "a", "i1", 201))
    summary.record(DispatchOutcome(OutcomeStatus.EXPIRED, "b", "i1", 410))
    summary.record(DispatchOutcome(OutcomeStatus.RATE_LIMITED, "c", "i1", 429))

    data = summary.to_dict()
    assert data["sent"] == 1
    assert data["attempted"] == 3
    assert data["failed"] == 2
    assert data["by_status"] == {"sent": 1, "expired": 1, "rate_limited": 1}
