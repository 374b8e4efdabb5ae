"""Notification sinks and fire-and-forget dispatch."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from stock_livedata.alerter.formatter import FormattedAlert
    from stock_livedata.config import NotificationSettings

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10.0


class NotificationError(Exception):
    """Raised when a sink fails to deliver a notification."""


class NotificationSink(ABC):
    """Destination for user-facing notifications."""

    @abstractmethod
    async def notify(self, title: str, body: str) -> None:
        """Deliver one notification."""

    async def aclose(self) -> None:
        return None


class LogNotificationSink(NotificationSink):
    """Writes notifications to the application log."""

    async def notify(self, title: str, body: str) -> None:
        logger.info("NOTIFY %s | %s", title, body.replace("\n", " | "))


class WebhookNotificationSink(NotificationSink):
    """POSTs notifications as JSON ``{"title", "body"}`` to a webhook."""

    def __init__(self, url: str, *, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._client = client
        self._owns_client = client is None

    async def notify(self, title: str, body: str) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS)
        try:
            resp = await self._client.post(self._url, json={"title": title, "body": body})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook delivery failed: {e.__class__.__name__}") from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def build_sink(settings: NotificationSettings) -> NotificationSink:
    """Webhook sink when configured, log sink otherwise."""
    if settings.webhook_url is not None:
        logger.info("Webhook notifications enabled")
        return WebhookNotificationSink(settings.webhook_url.get_secret_value())
    return LogNotificationSink()


class NotificationDispatcher:
    """Sends notifications in the background.

    Delivery never blocks or fails the caller; errors are logged.
    """

    def __init__(self, sink: NotificationSink, *, dry_run: bool = False) -> None:
        self._sink = sink
        self._dry_run = dry_run
        self._pending: set[asyncio.Task[None]] = set()
        self.sent = 0
        self.failed = 0

    def dispatch(self, alert: FormattedAlert) -> bool:
        """Schedule delivery; returns False when nothing is sent (dry run)."""
        if self._dry_run:
            logger.info("[DRY RUN] Would notify: %s", alert.title)
            return False
        task = asyncio.create_task(self._deliver(alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _deliver(self, alert: FormattedAlert) -> None:
        try:
            await self._sink.notify(alert.title, alert.body)
            self.sent += 1
        except Exception as e:
            self.failed += 1
            logger.warning("Notification for %s failed: %s", alert.symbol, e)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=timeout)

    async def aclose(self) -> None:
        await self.drain(timeout=WEBHOOK_TIMEOUT_SECONDS)
        for task in list(self._pending):
            task.cancel()
        await self._sink.aclose()
