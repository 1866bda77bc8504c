"""Operational alerts for sustained reset failures."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from lives.app.core.config import settings
from lives.app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ResetAlert:
    """High-severity alert raised after consecutive failed reset cycles."""

    consecutive_failures: int
    last_error: str
    last_successful_reset: Optional[datetime]
    timestamp: datetime
    service: str = "Daily Lives Reset"
    severity: str = "HIGH"

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "severity": self.severity,
            "message": (
                f"Daily lives reset has failed {self.consecutive_failures} consecutive times"
            ),
            "consecutive_failures": self.consecutive_failures,
            "error": self.last_error,
            "timestamp": self.timestamp.isoformat(),
            "last_successful_reset": (
                self.last_successful_reset.isoformat()
                if self.last_successful_reset
                else "Never"
            ),
        }


@dataclass
class AlertNotifier:
    """Delivers reset alerts to the log and, if configured, a webhook.

    Webhook delivery is best effort: a failed POST is logged and never
    propagates into the scheduler.
    """

    webhook_url: str = field(default_factory=lambda: settings.alert_webhook_url)
    timeout: float = field(default_factory=lambda: settings.alert_timeout_seconds)
    transport: Optional[httpx.AsyncBaseTransport] = None

    async def send(self, alert: ResetAlert) -> None:
        payload = alert.to_dict()
        logger.critical("DEVOPS ALERT: daily lives reset failing", extra={"alert": payload})

        if not self.webhook_url:
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to deliver reset alert to webhook: {type(e).__name__}: {e}")
