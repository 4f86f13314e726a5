"""Push transports: deliver one payload to one Web Push endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import requests
from pywebpush import WebPushException, webpush

from rudder.config import settings

if TYPE_CHECKING:
    from rudder.push.models import PushSubscription

logger = logging.getLogger(__name__)


class PushSendError(Exception):
    """A push send was rejected or never reached the provider.

    ``status_code`` is the provider's HTTP status, or None for network
    failures and timeouts.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class PushTransport(Protocol):
    """Protocol that all push transports must satisfy."""

    @property
    def name(self) -> str: ...

    async def send(self, subscription: PushSubscription, payload: str) -> int:
        """Deliver *payload* (JSON text). Returns the provider status code.

        Raises PushSendError on a non-2xx response or transport failure.
        """
        ...


class WebPushTransport:
    """Sends VAPID-signed Web Push messages via pywebpush.

    pywebpush is synchronous, so each send runs in a worker thread.
    """

    def __init__(
        self,
        private_key: str | None = None,
        subject: str | None = None,
        *,
        ttl: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._private_key = private_key if private_key is not None else settings.vapid_private_key
        self._subject = subject or settings.vapid_subject
        self._ttl = ttl if ttl is not None else settings.push_ttl_seconds
        self._timeout = timeout if timeout is not None else settings.push_timeout_seconds
        if not self._private_key:
            msg = "WebPushTransport requires VAPID_PRIVATE_KEY"
            raise ValueError(msg)

    @property
    def name(self) -> str:
        return "webpush"

    def _send_sync(self, subscription: PushSubscription, payload: str) -> int:
        try:
            resp = webpush(
                subscription_info=subscription.subscription_info(),
                data=payload,
                vapid_private_key=self._private_key,
                # pywebpush mutates the claims dict (adds aud/exp), so pass a fresh one.
                vapid_claims={"sub": self._subject},
                ttl=self._ttl,
                timeout=self._timeout,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise PushSendError(str(exc), status_code=status) from exc
        except requests.RequestException as exc:
            raise PushSendError(f"network error: {exc}") from exc
        return resp.status_code

    async def send(self, subscription: PushSubscription, payload: str) -> int:
        return await asyncio.to_thread(self._send_sync, subscription, payload)


class LogTransport:
    """Logs payloads instead of sending them (local development)."""

    @property
    def name(self) -> str:
        return "log"

    async def send(self, subscription: PushSubscription, payload: str) -> int:
        logger.info(
            "LogTransport: would push to %s (%s): %s",
            subscription.id,
            subscription.endpoint,
            payload,
        )
        return 201


def transport_for_settings() -> PushTransport:
    """WebPushTransport when a VAPID key is configured, else LogTransport."""
    if settings.vapid_private_key:
        return WebPushTransport()
    logger.warning("VAPID_PRIVATE_KEY is empty; push notifications will only be logged")
    return LogTransport()
