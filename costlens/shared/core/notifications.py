"""
Alert Dispatcher - Multi-Channel Alert Delivery

Routes a single alert to every channel the user has enabled. Channel failures
are isolated: each is logged once and reported, and never aborts the other
channels. The alert's final status is written through the alert store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Mapping, Protocol

import structlog

from costlens.models.alert import Alert, AlertStatus, Channel
from costlens.schemas.alerts import AlertConfig
from costlens.shared.core.config import get_settings
from costlens.shared.core.exceptions import (
    DeliveryError,
    PersistenceError,
    ValidationError,
)
from costlens.shared.db.stores import AlertStore

logger = structlog.get_logger()

# Fan-out order; results are reported in this order.
CHANNEL_ORDER: tuple[Channel, ...] = (Channel.EMAIL, Channel.CHAT, Channel.IN_APP)


class ChannelSender(Protocol):
    async def send(self, alert: Alert, target: str) -> None:
        """Deliver one alert; raise DeliveryError on failure."""


@dataclass(frozen=True, slots=True)
class ChannelResult:
    channel: Channel
    ok: bool
    error: str | None = None


@dataclass(slots=True)
class DispatchReport:
    alert_id: str
    status: AlertStatus
    results: list[ChannelResult] = field(default_factory=list)
    suppressed: bool = False

    @property
    def failed_channels(self) -> list[Channel]:
        return [r.channel for r in self.results if not r.ok]


class AlertDispatcher:
    """
    Dispatcher responsible for routing alerts to the configured channels.

    Senders are registered per channel. An enabled channel that has no
    registered sender or no delivery target fails on its own, like any
    other channel error; only a malformed alert fails before fan-out.
    """

    def __init__(
        self,
        alert_store: AlertStore,
        senders: Mapping[Channel, ChannelSender],
        default_chat_channel: str | None = None,
    ) -> None:
        self.alert_store = alert_store
        self.senders = dict(senders)
        if default_chat_channel is None:
            default_chat_channel = get_settings().SLACK_CHANNEL_ID
        self.default_chat_channel = default_chat_channel

    def _resolve_target(self, channel: Channel, alert: Alert, config: AlertConfig) -> str | None:
        if channel == Channel.EMAIL:
            # Without an address on file the user id is the recipient.
            return config.email_address or alert.user_id
        if channel == Channel.CHAT:
            return config.chat_channel or self.default_chat_channel
        return alert.user_id

    def _validate(self, alert: Alert) -> None:
        missing = [name for name in ("user_id", "title") if not getattr(alert, name)]
        if missing:
            raise ValidationError(
                "Alert is missing required fields",
                details={"alert_id": alert.id, "missing": missing},
            )

    async def _deliver(
        self, channel: Channel, alert: Alert, config: AlertConfig
    ) -> ChannelResult:
        sender = self.senders.get(channel)
        target = self._resolve_target(channel, alert, config)
        try:
            if sender is None:
                raise DeliveryError("no sender registered", channel=channel.value)
            if not target:
                raise DeliveryError("no delivery target", channel=channel.value)
            await sender.send(alert, target)
        except Exception as exc:
            logger.error(
                "alert_channel_delivery_failed",
                alert_id=alert.id,
                channel=channel.value,
                error=str(exc),
            )
            return ChannelResult(channel=channel, ok=False, error=str(exc))
        return ChannelResult(channel=channel, ok=True)

    async def _mark_failed(self, alert: Alert, error: str) -> None:
        alert.status = AlertStatus.FAILED
        alert.error = error
        try:
            await self.alert_store.update_alert_status(alert.id, AlertStatus.FAILED, error)
        except Exception as exc:
            logger.error(
                "alert_status_update_failed",
                alert_id=alert.id,
                status=AlertStatus.FAILED.value,
                error=str(exc),
            )

    async def dispatch(self, alert: Alert, config: AlertConfig) -> DispatchReport:
        if alert.is_terminal:
            raise ValidationError(
                f"Alert {alert.id} was already dispatched",
                details={"alert_id": alert.id, "status": alert.status.value},
            )

        if not config.should_notify(alert.severity):
            logger.info(
                "alert_suppressed_by_preferences",
                alert_id=alert.id,
                severity=alert.severity.value,
            )
            return DispatchReport(alert_id=alert.id, status=alert.status, suppressed=True)

        try:
            self._validate(alert)
        except ValidationError as exc:
            await self._mark_failed(alert, exc.message)
            raise

        channels = [c for c in CHANNEL_ORDER if config.is_enabled(c)]
        results = list(
            await asyncio.gather(*(self._deliver(c, alert, config) for c in channels))
        )

        try:
            await self.alert_store.update_alert_status(alert.id, AlertStatus.SENT)
        except Exception as exc:
            logger.error("alert_status_update_failed", alert_id=alert.id, error=str(exc))
            await self._mark_failed(alert, str(exc))
            raise PersistenceError(
                "Failed to record alert status",
                details={"alert_id": alert.id},
            ) from exc
        alert.status = AlertStatus.SENT

        logger.info(
            "alert_dispatched",
            alert_id=alert.id,
            severity=alert.severity.value,
            channels=[r.channel.value for r in results],
            failed_channels=[r.channel.value for r in results if not r.ok],
        )
        return DispatchReport(alert_id=alert.id, status=alert.status, results=results)
