"""
Slack Notification Service

Posts alerts as Block Kit messages through the Slack Web API.
"""

import asyncio

import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from costlens.models.alert import Alert, Channel
from costlens.modules.notifications.domain.formatting import (
    render_slack_blocks,
    severity_color,
)
from costlens.shared.core.exceptions import DeliveryError

logger = structlog.get_logger()

MAX_RETRY_AFTER_SECONDS = 30


class SlackService:
    channel = Channel.CHAT

    def __init__(self, bot_token: str, channel_id: str | None = None, timeout: int = 10):
        self.channel_id = channel_id
        self.client = AsyncWebClient(token=bot_token, timeout=timeout)

    async def _post_with_retry(self, **kwargs):
        """One retry on rate limiting, honouring Retry-After."""
        try:
            return await self.client.chat_postMessage(**kwargs)
        except SlackApiError as exc:
            if exc.response.get("error") != "ratelimited":
                raise
            retry_after = int(exc.response.headers.get("Retry-After", 1))
            logger.warning("slack_rate_limited", retry_after=retry_after)
            await asyncio.sleep(min(retry_after, MAX_RETRY_AFTER_SECONDS))
            return await self.client.chat_postMessage(**kwargs)

    async def send(self, alert: Alert, target: str | None = None) -> None:
        """Post one alert to `target` (or the default channel); raises DeliveryError."""
        channel_id = target or self.channel_id
        if not channel_id:
            raise DeliveryError("No Slack channel configured", channel=self.channel.value)

        try:
            await self._post_with_retry(
                channel=channel_id,
                text=alert.title,
                blocks=render_slack_blocks(alert),
                attachments=[{"color": severity_color(alert.severity)}],
            )
        except SlackApiError as exc:
            raise DeliveryError(
                f"Slack API error: {exc.response.get('error', 'unknown')}",
                channel=self.channel.value,
                details={"alert_id": alert.id},
            ) from exc

        logger.info("alert_slack_sent", alert_id=alert.id, channel_id=channel_id)
