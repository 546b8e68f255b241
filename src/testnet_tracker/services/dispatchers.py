"""Delivery channels for stored notifications."""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

from ..notifications.models import Notification

logger = logging.getLogger(__name__)

Channel = Literal["email", "push"]


class DispatchError(RuntimeError):
    """Raised when a delivery relay rejects or cannot receive a notification."""


class NotificationDispatcher(Protocol):
    """Deliver a notification over one channel."""

    channel: Channel

    async def dispatch(self, notification: Notification) -> None: ...


class LoggingDispatcher:
    """Dispatcher that only records the delivery in the application log."""

    def __init__(self, channel: Channel):
        self.channel: Channel = channel

    async def dispatch(self, notification: Notification) -> None:
        logger.info(
            "[%s] %s -> %s: %s",
            self.channel,
            notification.kind.value,
            notification.owner_id,
            notification.title,
        )


class WebhookDispatcher:
    """POST the notification as JSON to an email or push relay."""

    def __init__(
        self,
        channel: Channel,
        url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.channel: Channel = channel
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=5.0)
            )
        return self._client

    async def dispatch(self, notification: Notification) -> None:
        payload = {"channel": self.channel, "notification": notification.to_dict()}
        try:
            response = await self._get_client().post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise DispatchError(f"{self.channel} relay unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise DispatchError(
                f"{self.channel} relay returned {response.status_code}: {response.text[:200]}"
            )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "Channel",
    "DispatchError",
    "NotificationDispatcher",
    "LoggingDispatcher",
    "WebhookDispatcher",
]
