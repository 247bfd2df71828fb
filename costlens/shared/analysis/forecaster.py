from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import List, Optional

import numpy as np
import pandas as pd
import structlog

from costlens.models.cost import CostRecord, CostSeries, DimensionKey
from costlens.models.forecast import Forecast
from costlens.schemas.alerts import SimulationInput

logger = structlog.get_logger()

DEFAULT_HORIZON_DAYS = 30
DEFAULT_DEPLOYMENT_IMPACT = 0.10
DEFAULT_CONFIDENCE_Z = 1.96


class ForecastEngine:
    """
    Deterministic cost extrapolation.

    Projects the geometric daily growth rate observed between the first and
    last historical day over a fixed horizon. The confidence band is the same
    width for every horizon day (z * population stddev of the daily totals);
    it does not widen with distance.
    """

    def __init__(
        self,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        deployment_impact: float = DEFAULT_DEPLOYMENT_IMPACT,
        confidence_z: float = DEFAULT_CONFIDENCE_Z,
    ) -> None:
        if horizon_days < 1:
            raise ValueError("horizon_days must be >= 1")
        if deployment_impact < 0:
            raise ValueError("deployment_impact must be >= 0")
        self.horizon_days = horizon_days
        self.deployment_impact = deployment_impact
        self.confidence_z = confidence_z

    @staticmethod
    def _prepare_dataframe(records: Iterable[CostRecord]) -> pd.DataFrame:
        """Aggregates raw records into one row per UTC day, oldest first."""
        data = [{"ts": r.timestamp, "y": float(r.amount)} for r in records]
        if not data:
            return pd.DataFrame(columns=["ds", "y"])

        df = pd.DataFrame(data)
        df["ts"] = pd.to_datetime(df["ts"], utc=True)
        daily = (
            df.groupby(df["ts"].dt.date)["y"]
            .sum()
            .sort_index()
            .reset_index()
            .rename(columns={"ts": "ds"})
        )
        return daily

    @staticmethod
    def growth_rate(daily_costs: List[float]) -> float:
        """Geometric daily rate r with last = first * (1 + r) ** (days - 1)."""
        if len(daily_costs) < 2:
            return 0.0
        first, last = daily_costs[0], daily_costs[-1]
        if first <= 0 or last < 0:
            logger.warning(
                "forecast_growth_rate_undefined",
                first_cost=first,
                last_cost=last,
                msg="Falling back to flat growth.",
            )
            return 0.0
        periods = len(daily_costs) - 1
        return float((last / first) ** (1 / periods) - 1)

    def _simulation_multiplier(self, simulation: Optional[SimulationInput]) -> float:
        if simulation is None:
            return 1.0
        multiplier = 1.0
        if simulation.new_deployments > 0:
            multiplier *= 1 + simulation.new_deployments * self.deployment_impact
        if simulation.expected_growth_percent > 0:
            multiplier *= 1 + simulation.expected_growth_percent / 100
        return multiplier

    def forecast(
        self,
        records: Iterable[CostRecord],
        simulation: Optional[SimulationInput] = None,
    ) -> List[Forecast]:
        """
        Forecast one entry per day starting the day after the last historical day.

        Returns an empty list when fewer than 2 distinct days are available.
        """
        df = self._prepare_dataframe(records)
        if len(df) < 2:
            return []

        daily_costs = [float(v) for v in df["y"].tolist()]
        rate = self.growth_rate(daily_costs)
        last_cost = daily_costs[-1]
        last_day = df["ds"].iloc[-1]

        band = self.confidence_z * float(np.std(daily_costs))
        multiplier = self._simulation_multiplier(simulation)

        entries: List[Forecast] = []
        for i in range(1, self.horizon_days + 1):
            predicted = last_cost * (1 + rate) ** i * multiplier
            entries.append(
                Forecast(
                    date=last_day + timedelta(days=i),
                    predicted_cost=predicted,
                    confidence_interval=(predicted - band, predicted + band),
                )
            )
        return entries

    def forecast_series(
        self,
        grouped: Mapping[DimensionKey, CostSeries],
        simulation: Optional[SimulationInput] = None,
    ) -> dict[DimensionKey, List[Forecast]]:
        """Per-dimension forecasts; series with fewer than 2 days are left out."""
        results: dict[DimensionKey, List[Forecast]] = {}
        skipped = 0
        for key, series in grouped.items():
            entries = self.forecast(series.records, simulation)
            if not entries:
                skipped += 1
                continue
            results[key] = entries

        logger.debug(
            "cost_forecasts_generated",
            forecasted=len(results),
            skipped_insufficient_history=skipped,
        )
        return results

    def forecast_total(
        self,
        records: Iterable[CostRecord],
        simulation: Optional[SimulationInput] = None,
    ) -> List[Forecast]:
        """Forecast aggregate spend across every dimension."""
        return self.forecast(records, simulation)
