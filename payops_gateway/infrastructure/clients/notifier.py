"""Dispute status-change webhook client"""

import logging
from typing import Any, Dict

import httpx

from payops_gateway.config import settings
from payops_gateway.infrastructure.observability.metrics import notification_failure_counter

logger = logging.getLogger(__name__)


class DisputeNotifier:
    """Posts dispute status changes to the configured webhook; a no-op without a URL"""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url or settings.dispute_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_status_change(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one event. There is no retry: the dispute tables remain the source of
        truth and a failed delivery is counted and re-raised to the task runner.
        """
        if not self.enabled:
            return

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
                response.raise_for_status()
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                notification_failure_counter.inc()
                logger.warning(
                    "Dispute notification failed",
                    extra={"dispute_id": payload.get("dispute_id"), "error": str(e)},
                )
                raise
