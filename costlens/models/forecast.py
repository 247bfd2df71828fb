from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True)
class Forecast:
    date: date
    predicted_cost: float
    confidence_interval: tuple[float, float]

    @property
    def confidence_lower(self) -> float:
        return self.confidence_interval[0]

    @property
    def confidence_upper(self) -> float:
        return self.confidence_interval[1]
