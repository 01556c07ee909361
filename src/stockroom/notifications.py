"""User-facing notification channels for background import work."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

import httpx

from stockroom.config import get_settings

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "warning", "error")


class Notifier(ABC):
    """Best-effort status channel; implementations must not raise."""

    @abstractmethod
    def notify(self, level: str, message: str) -> None:
        """Deliver a message at one of :data:`LEVELS`."""

    def info(self, message: str) -> None:
        self.notify("info", message)

    def success(self, message: str) -> None:
        self.notify("success", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)

    def error(self, message: str) -> None:
        self.notify("error", message)


class LogNotifier(Notifier):
    """Write notifications to the application log."""

    _LEVEL_MAP = {
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, logger_name: str = "stockroom.notifications") -> None:
        self._logger = logging.getLogger(logger_name)

    def notify(self, level: str, message: str) -> None:
        self._logger.log(self._LEVEL_MAP.get(level, logging.INFO), "[%s] %s", level, message)


class WebhookNotifier(Notifier):
    """POST notifications to a webhook as ``{"title", "level", "message"}`` JSON."""

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        title: str = "Invoice import",
        timeout: float = 10.0,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.notify_webhook_url
        self._token = token or settings.notify_webhook_token
        if not self._url:
            raise RuntimeError("Notification webhook URL is not configured.")
        self._title = title
        self._timeout = timeout
        self._pending: Set["asyncio.Task[None]"] = set()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def notify(self, level: str, message: str) -> None:
        payload = {"title": self._title, "level": level, "message": message}
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(payload)
            return
        # Inside a running loop the POST goes to a worker thread so uploads keep flowing.
        task = loop.create_task(asyncio.to_thread(self._deliver, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for deliveries scheduled from a running event loop."""

        while self._pending:
            pending = list(self._pending)
            self._pending.difference_update(pending)
            await asyncio.gather(*pending)

    def _deliver(self, payload: Dict[str, str]) -> None:
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self._url, headers=self._headers(), json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Notification webhook delivery failed level=%s error=%s", payload["level"], exc
            )


class CompositeNotifier(Notifier):
    """Fan a notification out to several channels."""

    def __init__(self, notifiers: Iterable[Notifier]) -> None:
        self._notifiers: List[Notifier] = list(notifiers)

    def notify(self, level: str, message: str) -> None:
        for notifier in self._notifiers:
            notifier.notify(level, message)


def build_notifier() -> Notifier:
    """Return the log notifier, plus the webhook when one is configured."""

    settings = get_settings()
    log_notifier = LogNotifier()
    if settings.notify_webhook_url:
        return CompositeNotifier([log_notifier, WebhookNotifier()])
    return log_notifier


__all__ = [
    "CompositeNotifier",
    "LEVELS",
    "LogNotifier",
    "Notifier",
    "WebhookNotifier",
    "build_notifier",
]
