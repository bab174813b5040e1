"""
Side-effect dispatchers for notification, automation and event actions.

Dispatch is fire-and-forget: the caller gets a correlation id back
immediately and evaluation never waits on delivery.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import httpx

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from ..rules.models import ActionType, utcnow


class ActionDispatcher(ABC):
    """Hands a side-effecting action to an external collaborator."""

    @abstractmethod
    def dispatch(self, action_type: ActionType, payload: Dict[str, Any]) -> str:
        """Queue the action and return its correlation id."""

    async def close(self):
        """Release resources held by the dispatcher."""


class LoggingDispatcher(ActionDispatcher):
    """Records side effects as structured log events only."""

    def __init__(self):
        self.logger = get_logger("rules.notifications")

    def dispatch(self, action_type: ActionType, payload: Dict[str, Any]) -> str:
        correlation_id = str(uuid.uuid4())
        self.logger.info(
            "Rule side effect dispatched",
            action_type=action_type.value,
            correlation_id=correlation_id,
            **payload
        )
        return correlation_id


class WebhookDispatcher(ActionDispatcher):
    """Posts side effects to a webhook without blocking evaluation."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.logger = get_logger("rules.notifications.webhook")
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, action_type: ActionType, payload: Dict[str, Any]) -> str:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise ExternalServiceError("webhook", "No running event loop for dispatch")

        correlation_id = str(uuid.uuid4())
        body = {
            "correlation_id": correlation_id,
            "action_type": action_type.value,
            "dispatched_at": utcnow().isoformat(),
            "payload": payload,
        }
        task = loop.create_task(self._post(body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return correlation_id

    async def _post(self, body: Dict[str, Any]):
        try:
            response = await self.client.post(self.url, json=body)
            response.raise_for_status()
            self.logger.debug(
                "Webhook delivered",
                correlation_id=body["correlation_id"],
                status_code=response.status_code
            )
        except httpx.HTTPError as e:
            self.logger.error(
                "Webhook delivery failed",
                correlation_id=body["correlation_id"],
                action_type=body["action_type"],
                error=str(e)
            )

    async def close(self):
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.client.aclose()


def create_dispatcher(webhook_url: Optional[str], timeout: float = 5.0) -> ActionDispatcher:
    """Webhook delivery when a URL is configured, log-only otherwise."""
    if webhook_url:
        return WebhookDispatcher(webhook_url, timeout=timeout)
    return LoggingDispatcher()
