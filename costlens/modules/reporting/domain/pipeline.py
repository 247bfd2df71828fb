"""
Cost Analytics Pipeline

One analysis run for a user: fetch the lookback window once, derive patterns,
detect and persist anomalies, forecast every dimension plus total spend, and
dispatch one alert per anomaly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

import structlog

from costlens.models.alert import Alert, Channel
from costlens.models.anomaly import Anomaly
from costlens.models.cost import CostPattern, DimensionKey
from costlens.models.forecast import Forecast
from costlens.modules.notifications.domain import (
    EmailService,
    InAppNotificationService,
    SlackService,
)
from costlens.modules.reporting.domain.anomaly_detection import (
    DEFAULT_SENSITIVITY,
    CostAnomalyDetectionService,
    build_anomaly_alert,
)
from costlens.schemas.alerts import AlertConfig, SimulationInput
from costlens.shared.analysis.forecaster import ForecastEngine
from costlens.shared.analysis.patterns import PatternAnalyzer
from costlens.shared.analysis.series import group_cost_records
from costlens.shared.core.config import Settings, get_settings
from costlens.shared.core.exceptions import CostLensException, PersistenceError
from costlens.shared.core.logging import bind_run_context, setup_logging
from costlens.shared.core.notifications import (
    AlertDispatcher,
    ChannelSender,
    DispatchReport,
)
from costlens.shared.db.stores import (
    AlertStore,
    AnomalyStore,
    BillingStore,
    DimensionFilter,
    ForecastStore,
    NotificationStore,
    SettingsStore,
    resolve_alert_config,
)

logger = structlog.get_logger()


@dataclass(slots=True)
class PipelineResult:
    patterns: list[CostPattern] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
    forecasts: dict[DimensionKey, list[Forecast]] = field(default_factory=dict)
    total_forecast: list[Forecast] = field(default_factory=list)
    dispatches: list[DispatchReport] = field(default_factory=list)
    # alert id -> error of alerts whose dispatch raised
    failed_alerts: dict[str, str] = field(default_factory=dict)


def build_channel_senders(
    settings: Settings, notification_store: NotificationStore
) -> dict[Channel, ChannelSender]:
    """Senders for every channel the deployment has credentials for."""
    senders: dict[Channel, ChannelSender] = {
        Channel.IN_APP: InAppNotificationService(notification_store),
    }
    if settings.email_configured:
        senders[Channel.EMAIL] = EmailService(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM,
            timeout_seconds=settings.SMTP_TIMEOUT_SECONDS,
        )
    if settings.slack_configured:
        senders[Channel.CHAT] = SlackService(
            bot_token=settings.SLACK_BOT_TOKEN,
            channel_id=settings.SLACK_CHANNEL_ID,
            timeout=settings.SLACK_TIMEOUT_SECONDS,
        )
    return senders


class CostAnalyticsPipeline:
    def __init__(
        self,
        *,
        billing_store: BillingStore,
        anomaly_store: AnomalyStore,
        forecast_store: ForecastStore,
        settings_store: SettingsStore,
        alert_store: AlertStore,
        dispatcher: AlertDispatcher,
        analyzer: PatternAnalyzer | None = None,
        engine: ForecastEngine | None = None,
        lookback_days: int = 30,
        default_sensitivity: str = DEFAULT_SENSITIVITY,
    ) -> None:
        self.forecast_store = forecast_store
        self.settings_store = settings_store
        self.alert_store = alert_store
        self.dispatcher = dispatcher
        self.engine = engine or ForecastEngine()
        self.detection = CostAnomalyDetectionService(
            billing_store,
            anomaly_store,
            analyzer,
            lookback_days,
            default_sensitivity=default_sensitivity,
        )

    @classmethod
    def from_settings(
        cls,
        *,
        billing_store: BillingStore,
        anomaly_store: AnomalyStore,
        forecast_store: ForecastStore,
        settings_store: SettingsStore,
        alert_store: AlertStore,
        notification_store: NotificationStore,
        settings: Settings | None = None,
    ) -> "CostAnalyticsPipeline":
        settings = settings or get_settings()
        setup_logging(settings)
        dispatcher = AlertDispatcher(
            alert_store,
            build_channel_senders(settings, notification_store),
            default_chat_channel=settings.SLACK_CHANNEL_ID,
        )
        return cls(
            billing_store=billing_store,
            anomaly_store=anomaly_store,
            forecast_store=forecast_store,
            settings_store=settings_store,
            alert_store=alert_store,
            dispatcher=dispatcher,
            analyzer=PatternAnalyzer(window=settings.PATTERN_MOVING_AVERAGE_WINDOW),
            engine=ForecastEngine(
                horizon_days=settings.FORECAST_HORIZON_DAYS,
                deployment_impact=settings.FORECAST_DEPLOYMENT_IMPACT,
                confidence_z=settings.FORECAST_CONFIDENCE_Z,
            ),
            lookback_days=settings.ANOMALY_LOOKBACK_DAYS,
            default_sensitivity=settings.ANOMALY_DEFAULT_SENSITIVITY,
        )

    async def run(
        self,
        user_id: str,
        *,
        sensitivity: str | None = None,
        threshold: float | None = None,
        dimension_filter: DimensionFilter | None = None,
        simulation: SimulationInput | None = None,
        now: datetime | None = None,
    ) -> PipelineResult:
        limit = self.detection.threshold_for(sensitivity, threshold)
        bind_run_context(user_id=user_id, run_id=str(uuid4()))

        records = await self.detection.fetch_records(user_id, dimension_filter, now)
        grouped = group_cost_records(records)
        result = PipelineResult()
        result.patterns, result.anomalies = await self.detection.analyze(
            user_id, grouped, threshold=limit
        )

        result.forecasts = self.engine.forecast_series(grouped, simulation)
        result.total_forecast = self.engine.forecast_total(records, simulation)
        await self._save_forecasts(user_id, result)

        if result.anomalies:
            config = await resolve_alert_config(self.settings_store, user_id)
            for anomaly in result.anomalies:
                alert = build_anomaly_alert(user_id, anomaly)
                await self._create_alert(alert)
                await self._dispatch(alert, config, result)

        logger.info(
            "cost_analysis_completed",
            user_id=user_id,
            records=len(records),
            series=len(grouped),
            anomalies=len(result.anomalies),
            forecasted_series=len(result.forecasts),
            alerts_failed=len(result.failed_alerts),
        )
        return result

    async def _save_forecasts(self, user_id: str, result: PipelineResult) -> None:
        batches: list[tuple[DimensionKey | None, list[Forecast]]] = list(result.forecasts.items())
        if result.total_forecast:
            batches.append((None, result.total_forecast))
        for key, entries in batches:
            try:
                await self.forecast_store.save_forecasts(user_id, key, entries)
            except PersistenceError:
                logger.error("forecast_save_failed", user_id=user_id, series=str(key))
                raise
            except Exception as exc:
                logger.error(
                    "forecast_save_failed",
                    user_id=user_id,
                    series=str(key),
                    error=str(exc),
                )
                raise PersistenceError(
                    "Failed to save forecasts", details={"user_id": user_id}
                ) from exc

    async def _create_alert(self, alert: Alert) -> None:
        try:
            await self.alert_store.create_alert(alert)
        except PersistenceError:
            logger.error("alert_create_failed", alert_id=alert.id)
            raise
        except Exception as exc:
            logger.error("alert_create_failed", alert_id=alert.id, error=str(exc))
            raise PersistenceError(
                "Failed to create alert", details={"alert_id": alert.id}
            ) from exc

    async def _dispatch(
        self, alert: Alert, config: AlertConfig, result: PipelineResult
    ) -> None:
        try:
            report = await self.dispatcher.dispatch(alert, config)
        except CostLensException as exc:
            logger.error(
                "anomaly_alert_dispatch_failed",
                alert_id=alert.id,
                code=exc.code,
                error=exc.message,
            )
            result.failed_alerts[alert.id] = exc.message
            return
        result.dispatches.append(report)
