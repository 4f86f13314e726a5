"""Subscription registration from browser ``PushSubscription`` JSON."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rudder.push.models import PushSubscription
from rudder.tasks.models import make_id

if TYPE_CHECKING:
    from rudder.store.base import SubscriptionStore


def subscription_from_browser(owner_id: str, info: dict[str, Any] | str) -> PushSubscription:
    """Build a PushSubscription from ``PushSubscription.toJSON()`` output.

    Raises ValueError when the endpoint or either key is missing.
    """
    if isinstance(info, str):
        info = json.loads(info)
    endpoint = str(info.get("endpoint") or "").strip()
    keys = info.get("keys") or {}
    p256dh = str(keys.get("p256dh") or "").strip()
    auth = str(keys.get("auth") or "").strip()
    if not endpoint.startswith("https://"):
        msg = f"Invalid push endpoint: {endpoint!r}"
        raise ValueError(msg)
    if not p256dh or not auth:
        msg = "Push subscription is missing p256dh/auth keys"
        raise ValueError(msg)
    return PushSubscription(
        id=make_id(), owner_id=owner_id, endpoint=endpoint, p256dh=p256dh, auth=auth
    )


async def register(
    store: SubscriptionStore, owner_id: str, info: dict[str, Any] | str
) -> PushSubscription:
    """Validate and store a browser subscription, replacing the owner's previous one."""
    subscription = subscription_from_browser(owner_id, info)
    return await store.register_subscription(subscription)
