"""
Services - Notifier

Notification sinks for new and escalated review tasks. Delivery is
best-effort: a failed notification never fails the caller.
"""

import logging
from typing import Optional, Protocol

import httpx

from veritas_server.schemas.review import ReviewTask

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, event: str, task: ReviewTask) -> None:
        ...


class LogNotifier:
    """Writes review notifications to the log."""

    async def notify(self, event: str, task: ReviewTask) -> None:
        logger.info(
            f"Review {event}: task={task.id} priority={task.priority} "
            f"assignee={task.assigned_to} deadline={task.deadline.isoformat()}"
        )


class WebhookNotifier:
    """POSTs review notifications as JSON to a webhook."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy load HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def notify(self, event: str, task: ReviewTask) -> None:
        payload = {
            "event": event,
            "task_id": task.id,
            "task_type": task.task_type,
            "priority": task.priority,
            "status": task.status,
            "assigned_to": task.assigned_to,
            "deadline": task.deadline.isoformat(),
            "confidence": task.confidence.overall,
        }
        try:
            response = await self.client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Review webhook for task {task.id} failed: {e!r}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def get_notifier(settings=None) -> Notifier:
    """Webhook notifier if a URL is configured, else log-only."""
    from veritas_server.config import get_settings
    settings = settings or get_settings()
    if settings.review.webhook_url:
        return WebhookNotifier(settings.review.webhook_url)
    return LogNotifier()
