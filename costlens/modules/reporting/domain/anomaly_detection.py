"""
Deterministic Cost Anomaly Detection

Compare each series' latest cost with its moving-average baseline, classify
severity from the normalized deviation and attribute a probable cause.

Outputs: dimension, actual vs expected cost, deviation, severity, root cause.

Root-cause attribution is a pure scoring function of the pattern's own
signals, so identical inputs always yield identical causes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog

from costlens.models.alert import Alert, AlertType
from costlens.models.anomaly import Anomaly, Severity, severity_rank
from costlens.models.cost import CostPattern, CostRecord, CostSeries, DimensionKey, Trend
from costlens.shared.analysis.patterns import PatternAnalyzer
from costlens.shared.analysis.series import group_cost_records
from costlens.shared.core.exceptions import NoDataError, PersistenceError, ValidationError
from costlens.shared.core.timeframes import lookback_window
from costlens.shared.db.stores import AnomalyStore, BillingStore, DimensionFilter

logger = structlog.get_logger()

SENSITIVITY_THRESHOLDS: dict[str, float] = {"low": 0.5, "medium": 0.3, "high": 0.2}
DEFAULT_SENSITIVITY = "medium"

_NETWORK_SERVICE_HINTS = ("transfer", "bandwidth", "egress", "network", "cdn", "cloudfront", "nat")


@dataclass(frozen=True, slots=True)
class RootCauseFactor:
    name: str
    weight: float
    template: str


# Catalog order is the tie-break order.
ROOT_CAUSE_CATALOG: tuple[RootCauseFactor, ...] = (
    RootCauseFactor("untagged_resources", 0.30, "Cost spike due to untagged {service} resources"),
    RootCauseFactor("unusual_usage_patterns", 0.25, "Unusual usage pattern detected in {service}"),
    RootCauseFactor("misconfigured_resources", 0.20, "Misconfigured {service} resources causing increased costs"),
    RootCauseFactor("price_changes", 0.15, "Recent price changes affecting {service} costs"),
    RootCauseFactor("data_transfer", 0.10, "Increased data transfer costs in {service}"),
)


def resolve_threshold(sensitivity: str | None = None, threshold: float | None = None) -> float:
    """Explicit threshold wins; otherwise map sensitivity (default medium)."""
    if threshold is not None:
        if threshold <= 0:
            raise ValidationError(
                "threshold must be > 0", details={"threshold": threshold}
            )
        return float(threshold)
    level = (sensitivity or DEFAULT_SENSITIVITY).strip().lower()
    if level not in SENSITIVITY_THRESHOLDS:
        raise ValidationError(
            f"Unknown sensitivity '{sensitivity}'",
            details={"allowed": sorted(SENSITIVITY_THRESHOLDS)},
        )
    return SENSITIVITY_THRESHOLDS[level]


def compute_deviation(actual: float, expected: float) -> float | None:
    """|actual - expected| / expected, or None when the baseline is zero."""
    if expected == 0:
        return None
    return abs(actual - expected) / abs(expected)


def classify_severity(deviation: float) -> Severity:
    # Bands are evaluated high to low and never overlap.
    if deviation > 1.0:
        return Severity.CRITICAL
    if deviation > 0.5:
        return Severity.HIGH
    if deviation > 0.3:
        return Severity.MEDIUM
    return Severity.LOW


def score_root_causes(pattern: CostPattern, deviation: float) -> dict[str, float]:
    """Weight each catalog factor by how strongly the pattern's signals support it."""
    service = pattern.dimension_key.service.lower()
    network_service = any(hint in service for hint in _NETWORK_SERVICE_HINTS)
    growing = pattern.trend == Trend.INCREASING and pattern.is_increase

    multipliers = {
        "untagged_resources": 2.0 if pattern.dimension_key.is_untagged else 0.5,
        "unusual_usage_patterns": (2.0 if pattern.seasonality is not None else 1.0)
        * (1.5 if pattern.trend == Trend.STABLE else 1.0),
        "misconfigured_resources": 2.5 if deviation > 1.0 else 1.0,
        "price_changes": 2.0 if pattern.trend != Trend.STABLE and deviation <= 0.5 else 1.0,
        "data_transfer": (3.0 if network_service else 1.0) * (2.0 if growing else 1.0),
    }
    return {
        factor.name: round(factor.weight * multipliers[factor.name], 6)
        for factor in ROOT_CAUSE_CATALOG
    }


def attribute_root_cause(pattern: CostPattern, deviation: float) -> tuple[str, str]:
    """Returns (factor name, human-readable cause)."""
    scores = score_root_causes(pattern, deviation)
    best = ROOT_CAUSE_CATALOG[0]
    for factor in ROOT_CAUSE_CATALOG[1:]:
        if scores[factor.name] > scores[best.name]:
            best = factor
    return best.name, best.template.format(service=pattern.dimension_key.service)


def detect_cost_anomalies(
    patterns: Sequence[CostPattern],
    *,
    sensitivity: str | None = None,
    threshold: float | None = None,
) -> list[Anomaly]:
    """
    Emit an anomaly for every pattern whose deviation exceeds the threshold.

    Patterns with a zero expected cost are excluded.
    """
    limit = resolve_threshold(sensitivity, threshold)
    anomalies: list[Anomaly] = []
    excluded = 0

    for pattern in patterns:
        deviation = compute_deviation(pattern.actual_cost, pattern.expected_cost)
        if deviation is None:
            excluded += 1
            continue
        if deviation <= limit:
            continue

        factor, cause = attribute_root_cause(pattern, deviation)
        anomalies.append(
            Anomaly(
                timestamp=pattern.timestamp,
                dimension_key=pattern.dimension_key,
                actual_cost=pattern.actual_cost,
                expected_cost=pattern.expected_cost,
                deviation=deviation,
                severity=classify_severity(deviation),
                root_cause=cause,
                root_cause_factor=factor,
            )
        )

    if excluded:
        logger.debug("anomaly_patterns_excluded_zero_baseline", count=excluded)

    # Deterministic ordering: highest severity first, then largest deviation.
    anomalies.sort(
        key=lambda a: (severity_rank(a.severity), a.deviation),
        reverse=True,
    )
    return anomalies


def build_anomaly_alert(user_id: str, anomaly: Anomaly) -> Alert:
    key = anomaly.dimension_key
    return Alert(
        user_id=user_id,
        type=AlertType.ANOMALY,
        severity=anomaly.severity,
        title=f"Cost anomaly ({anomaly.severity.value}) - {key.service}",
        message=(
            f"Provider: {key.provider}\n"
            f"Service: {key.service}\n"
            f"Project: {key.project}\n"
            f"Actual: ${anomaly.actual_cost:,.2f}\n"
            f"Expected: ${anomaly.expected_cost:,.2f}\n"
            f"Deviation: {anomaly.deviation:.1%}\n"
            f"Cause: {anomaly.root_cause}"
        ),
        metadata={
            "anomaly_id": anomaly.id,
            "provider": key.provider,
            "service": key.service,
            "project": key.project,
            "actual_cost": round(anomaly.actual_cost, 2),
            "expected_cost": round(anomaly.expected_cost, 2),
            "deviation": round(anomaly.deviation, 4),
            "root_cause": anomaly.root_cause_factor,
            "detected_at": anomaly.timestamp.isoformat(),
        },
    )


class CostAnomalyDetectionService:
    """Store-backed anomaly detection for one user."""

    def __init__(
        self,
        billing_store: BillingStore,
        anomaly_store: AnomalyStore,
        analyzer: PatternAnalyzer | None = None,
        lookback_days: int = 30,
        default_sensitivity: str = DEFAULT_SENSITIVITY,
    ) -> None:
        self.billing_store = billing_store
        self.anomaly_store = anomaly_store
        self.analyzer = analyzer or PatternAnalyzer()
        self.lookback_days = lookback_days
        # Fail at construction rather than on the first run.
        resolve_threshold(default_sensitivity)
        self.default_sensitivity = default_sensitivity

    def threshold_for(self, sensitivity: str | None = None, threshold: float | None = None) -> float:
        """Threshold for a run; the service default applies when no sensitivity is given."""
        return resolve_threshold(sensitivity or self.default_sensitivity, threshold)

    async def fetch_records(
        self,
        user_id: str,
        dimension_filter: DimensionFilter | None = None,
        now: datetime | None = None,
    ) -> list[CostRecord]:
        """Cost records in the lookback window; raises NoDataError when there are none."""
        start, end = lookback_window(self.lookback_days, now)
        records = await self.billing_store.fetch_cost_records(
            user_id, dimension_filter, start, end
        )
        if not records:
            raise NoDataError(
                "No cost data found for analysis",
                details={
                    "user_id": user_id,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                },
            )
        return list(records)

    async def analyze(
        self,
        user_id: str,
        grouped: Mapping[DimensionKey, CostSeries],
        *,
        threshold: float,
    ) -> tuple[list[CostPattern], list[Anomaly]]:
        """Patterns and persisted anomalies for already-grouped series."""
        patterns = self.analyzer.analyze(grouped)
        anomalies = detect_cost_anomalies(patterns, threshold=threshold)
        await self.save(user_id, anomalies)
        return patterns, anomalies

    async def detect(
        self,
        user_id: str,
        *,
        sensitivity: str | None = None,
        threshold: float | None = None,
        dimension_filter: DimensionFilter | None = None,
        now: datetime | None = None,
    ) -> list[Anomaly]:
        # Reject bad input before touching any store.
        limit = self.threshold_for(sensitivity, threshold)
        records = await self.fetch_records(user_id, dimension_filter, now)
        _, anomalies = await self.analyze(
            user_id, group_cost_records(records), threshold=limit
        )
        return anomalies

    async def save(self, user_id: str, anomalies: Sequence[Anomaly]) -> None:
        """Persist a run's anomalies in one batch; any store failure is fatal."""
        if not anomalies:
            logger.info("anomaly_detection_clean", user_id=user_id)
            return
        try:
            await self.anomaly_store.save_anomalies(user_id, list(anomalies))
        except PersistenceError:
            logger.error("anomaly_save_failed", user_id=user_id, count=len(anomalies))
            raise
        except Exception as exc:
            logger.error(
                "anomaly_save_failed",
                user_id=user_id,
                count=len(anomalies),
                error=str(exc),
            )
            raise PersistenceError(
                "Failed to save anomalies", details={"user_id": user_id}
            ) from exc
        logger.info("anomalies_saved", user_id=user_id, count=len(anomalies))
