"""
In-memory store implementations.

Reference implementations of the store protocols. They back the test suite
and local runs, and expose the read side the dashboard consumes (anomalies,
forecasts and alerts keyed by user and time range).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

from costlens.models.alert import Alert, AlertStatus
from costlens.models.anomaly import Anomaly, Severity
from costlens.models.cost import CostRecord, DimensionKey
from costlens.models.forecast import Forecast
from costlens.schemas.alerts import AlertConfig
from costlens.shared.core.exceptions import PersistenceError
from costlens.shared.db.stores import DimensionFilter


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _within(ts: datetime, start: datetime | None, end: datetime | None) -> bool:
    ts = _as_utc(ts)
    if start is not None and ts < _as_utc(start):
        return False
    if end is not None and ts > _as_utc(end):
        return False
    return True


class InMemoryBillingStore:
    def __init__(self, records: dict[str, Iterable[CostRecord]] | None = None) -> None:
        self._records: dict[str, list[CostRecord]] = {
            user_id: list(items) for user_id, items in (records or {}).items()
        }

    def add_records(self, user_id: str, records: Iterable[CostRecord]) -> None:
        self._records.setdefault(user_id, []).extend(records)

    async def fetch_cost_records(
        self,
        user_id: str,
        dimension_filter: DimensionFilter | None,
        start: datetime,
        end: datetime,
    ) -> list[CostRecord]:
        rows = [
            r
            for r in self._records.get(user_id, [])
            if _within(r.timestamp, start, end)
            and (dimension_filter is None or dimension_filter.matches(r))
        ]
        rows.sort(key=lambda r: _as_utc(r.timestamp))
        return rows


class InMemorySettingsStore:
    def __init__(self, configs: dict[str, AlertConfig] | None = None) -> None:
        self._configs: dict[str, AlertConfig] = dict(configs or {})

    def set_alert_config(self, user_id: str, config: AlertConfig) -> None:
        self._configs[user_id] = config

    async def get_alert_config(self, user_id: str) -> AlertConfig | None:
        return self._configs.get(user_id)


class InMemoryAnomalyStore:
    def __init__(self) -> None:
        self._anomalies: dict[str, list[Anomaly]] = {}

    async def save_anomalies(self, user_id: str, anomalies: Sequence[Anomaly]) -> None:
        existing_ids = {a.id for a in self._anomalies.get(user_id, [])}
        batch_ids = [a.id for a in anomalies]
        duplicates = existing_ids.intersection(batch_ids)
        if duplicates or len(set(batch_ids)) != len(batch_ids):
            # Reject the whole batch; nothing is written.
            raise PersistenceError(
                "Duplicate anomaly ids in batch",
                details={"duplicates": sorted(duplicates)},
            )
        self._anomalies.setdefault(user_id, []).extend(anomalies)

    async def list_anomalies(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        provider: str | None = None,
        service: str | None = None,
        severity: Severity | str | None = None,
    ) -> list[Anomaly]:
        """Anomalies for a user in [start, end], newest first."""
        wanted_severity = Severity(severity) if severity else None
        rows = [
            a
            for a in self._anomalies.get(user_id, [])
            if _within(a.timestamp, start, end)
            and (provider is None or a.provider == provider)
            and (service is None or a.service == service)
            and (wanted_severity is None or a.severity == wanted_severity)
        ]
        rows.sort(key=lambda a: _as_utc(a.timestamp), reverse=True)
        return rows


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}

    async def create_alert(self, alert: Alert) -> None:
        if alert.id in self._alerts:
            raise PersistenceError(f"Alert {alert.id} already exists")
        # Stored copy; the dispatcher owns the caller's instance.
        self._alerts[alert.id] = replace(alert, metadata=dict(alert.metadata))

    async def update_alert_status(
        self, alert_id: str, status: AlertStatus, error: str | None = None
    ) -> None:
        stored = self._alerts.get(alert_id)
        if stored is None:
            raise PersistenceError(f"Alert {alert_id} not found")
        if stored.is_terminal:
            raise PersistenceError(
                f"Alert {alert_id} is already {stored.status.value}",
                details={"status": stored.status.value},
            )
        stored.status = AlertStatus(status)
        stored.error = error

    async def get_alert(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    async def list_alerts(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        status: AlertStatus | str | None = None,
    ) -> list[Alert]:
        wanted_status = AlertStatus(status) if status else None
        rows = [
            a
            for a in self._alerts.values()
            if a.user_id == user_id
            and _within(a.created_at, start, end)
            and (wanted_status is None or a.status == wanted_status)
        ]
        rows.sort(key=lambda a: _as_utc(a.created_at), reverse=True)
        return rows


class InMemoryForecastStore:
    def __init__(self) -> None:
        self._forecasts: dict[tuple[str, DimensionKey | None], list[Forecast]] = {}

    async def save_forecasts(
        self, user_id: str, key: DimensionKey | None, forecasts: Sequence[Forecast]
    ) -> None:
        self._forecasts[(user_id, key)] = list(forecasts)

    async def get_forecasts(
        self, user_id: str, key: DimensionKey | None = None
    ) -> list[Forecast]:
        """Stored forecast for a dimension; key=None returns the total-spend forecast."""
        return list(self._forecasts.get((user_id, key), []))


class InMemoryNotificationStore:
    def __init__(self) -> None:
        self.notifications: list[dict[str, Any]] = []

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
        notification_id = str(uuid4())
        self.notifications.append(
            {
                "id": notification_id,
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": type,
                "severity": severity,
                "metadata": dict(metadata),
                "status": "unread",
                "created_at": datetime.now(timezone.utc),
            }
        )
        return notification_id

    async def list_unread(self, user_id: str) -> list[dict[str, Any]]:
        return [
            n
            for n in self.notifications
            if n["user_id"] == user_id and n["status"] == "unread"
        ]
