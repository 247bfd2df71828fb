"""
Cost Pattern Analysis

Per-series baseline, trend and weekday seasonality used by anomaly detection.
All functions are synchronous and operate on already-fetched records.
"""

from __future__ import annotations

from collections.abc import Mapping
from statistics import fmean

import pandas as pd
import structlog

from costlens.models.cost import CostPattern, CostSeries, DimensionKey, Seasonality, Trend

logger = structlog.get_logger()

DEFAULT_WINDOW = 7
TREND_STABLE_BAND = 0.10
SEASONALITY_MIN_POINTS = 30
SEASONALITY_VARIANCE_RATIO = 2.0


def moving_average(costs: list[float], window: int = DEFAULT_WINDOW) -> float:
    """Trailing mean over the last `window` points, or all points for short series."""
    if not costs:
        raise ValueError("moving_average requires at least one cost")
    if window < 1:
        raise ValueError("window must be >= 1")
    if len(costs) < window:
        return fmean(costs)
    return fmean(costs[-window:])


def classify_trend(costs: list[float]) -> Trend:
    """Compare the means of the two index halves of the series."""
    if len(costs) < 2:
        return Trend.STABLE

    midpoint = len(costs) // 2
    first_mean = fmean(costs[:midpoint])
    second_mean = fmean(costs[midpoint:])

    if first_mean == 0:
        # No spend in the first half: any spend afterwards is growth.
        return Trend.INCREASING if second_mean > 0 else Trend.STABLE

    change = (second_mean - first_mean) / first_mean
    if abs(change) < TREND_STABLE_BAND:
        return Trend.STABLE
    return Trend.INCREASING if change > 0 else Trend.DECREASING


def detect_weekday_seasonality(series: CostSeries) -> Seasonality | None:
    """
    Flag a day-of-week pattern when one weekday's cost variance dominates.

    Only evaluated for series with at least 30 points.
    """
    if len(series) < SEASONALITY_MIN_POINTS:
        return None

    df = pd.DataFrame(
        {
            "ts": pd.to_datetime([r.timestamp for r in series.records], utc=True),
            "y": series.costs,
        }
    )
    variances = df.groupby(df["ts"].dt.dayofweek)["y"].var(ddof=0)

    mean_variance = float(variances.mean())
    max_variance = float(variances.max())
    if mean_variance <= 0:
        return None

    if max_variance > SEASONALITY_VARIANCE_RATIO * mean_variance:
        return Seasonality(period="daily", amplitude=max_variance / mean_variance)
    return None


class PatternAnalyzer:
    """Builds one CostPattern per cost series."""

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window

    def analyze_series(self, series: CostSeries) -> CostPattern:
        costs = series.costs
        latest = series.latest
        return CostPattern(
            dimension_key=series.key,
            timestamp=latest.timestamp,
            actual_cost=float(latest.amount),
            expected_cost=moving_average(costs, self.window),
            trend=classify_trend(costs),
            seasonality=detect_weekday_seasonality(series),
            sample_count=len(costs),
        )

    def analyze(self, grouped: Mapping[DimensionKey, CostSeries]) -> list[CostPattern]:
        patterns: list[CostPattern] = []
        for series in grouped.values():
            if not series.records:
                continue
            patterns.append(self.analyze_series(series))

        logger.debug(
            "cost_patterns_analyzed",
            series=len(grouped),
            seasonal=sum(1 for p in patterns if p.seasonality is not None),
        )
        return patterns
