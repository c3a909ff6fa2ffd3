"""Fire-and-forget push events for completed wins."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from twist_api.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushConfig:
    webhook_url: str | None
    channel: str
    timeout_seconds: float


def load_push_config() -> PushConfig:
    return PushConfig(
        webhook_url=settings.push_webhook_url,
        channel=settings.push_channel,
        timeout_seconds=float(settings.push_timeout_seconds),
    )


class PushBroadcaster:
    """POST `{channel, event, data}` to a webhook; never raises."""

    def __init__(
        self,
        config: PushConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_push_config()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.config.webhook_url)

    async def publish(self, event: str, data: dict[str, Any]) -> bool:
        """Send one event. Returns True if the webhook accepted it."""
        if not self.enabled:
            return False

        body = {"channel": self.config.channel, "event": event, "data": data}
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.post(self.config.webhook_url or "", json=body)
        except httpx.HTTPError as exc:
            logger.warning("Push event %s failed: %s", event, exc)
            return False

        if not response.is_success:
            logger.warning("Push event %s rejected with status %s", event, response.status_code)
            return False
        return True


def get_broadcaster() -> PushBroadcaster:
    return PushBroadcaster()
