"""
Store collaborator interfaces.

Every component receives its stores through its constructor so tests (and
alternative backends) can substitute implementations freely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, Sequence

import structlog

from costlens.models.alert import Alert, AlertStatus
from costlens.models.anomaly import Anomaly
from costlens.models.cost import CostRecord, DimensionKey
from costlens.models.forecast import Forecast
from costlens.schemas.alerts import AlertConfig, default_alert_config

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class DimensionFilter:
    provider: str | None = None
    service: str | None = None
    project: str | None = None

    def matches(self, record: CostRecord) -> bool:
        key = record.dimension_key
        if self.provider and key.provider != self.provider:
            return False
        if self.service and key.service != self.service:
            return False
        if self.project and key.project != self.project:
            return False
        return True


class BillingStore(Protocol):
    async def fetch_cost_records(
        self,
        user_id: str,
        dimension_filter: DimensionFilter | None,
        start: datetime,
        end: datetime,
    ) -> Sequence[CostRecord]:
        """Cost records for the user in [start, end], oldest first."""


class SettingsStore(Protocol):
    async def get_alert_config(self, user_id: str) -> AlertConfig | None:
        """Stored alert configuration, or None when the user never saved one."""


class AnomalyStore(Protocol):
    async def save_anomalies(self, user_id: str, anomalies: Sequence[Anomaly]) -> None:
        """Persist a batch atomically: either all anomalies are stored or none."""


class AlertStore(Protocol):
    async def create_alert(self, alert: Alert) -> None:
        """Persist a new pending alert."""

    async def update_alert_status(
        self, alert_id: str, status: AlertStatus, error: str | None = None
    ) -> None:
        """Record the terminal status of an alert."""


class ForecastStore(Protocol):
    async def save_forecasts(
        self, user_id: str, key: DimensionKey | None, forecasts: Sequence[Forecast]
    ) -> None:
        """Replace the stored forecast for a dimension (None = total spend)."""


class NotificationStore(Protocol):
    async def create_notification(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        type: str,
        severity: str,
        metadata: dict[str, Any],
    ) -> str:
        """Create an unread in-app notification and return its id."""


async def resolve_alert_config(store: SettingsStore, user_id: str) -> AlertConfig:
    """Stored alert configuration with explicit defaults when none exists."""
    config = await store.get_alert_config(user_id)
    if config is None:
        logger.debug("alert_config_defaults_applied", user_id=user_id)
        return default_alert_config()
    return config
