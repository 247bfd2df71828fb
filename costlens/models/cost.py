"""
Cost telemetry data types.

CostRecord is produced by billing ingestion and never mutated here. Series and
patterns are derived on every analysis run and are not persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

DEFAULT_PROJECT = "default"


class DimensionKey(NamedTuple):
    provider: str
    service: str
    project: str = DEFAULT_PROJECT

    def label(self) -> str:
        return f"{self.provider}:{self.service}:{self.project}"

    @property
    def is_untagged(self) -> bool:
        return self.project == DEFAULT_PROJECT


@dataclass(frozen=True, slots=True)
class CostRecord:
    timestamp: datetime
    provider: str
    service: str
    amount: float
    project: str | None = None
    id: str | None = None
    tags: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def project_tag(self) -> str | None:
        """Explicit project, falling back to the `project` resource tag."""
        if self.project:
            return self.project
        tagged = self.tags.get("project") if self.tags else None
        return str(tagged) if tagged else None

    @property
    def dimension_key(self) -> DimensionKey:
        return DimensionKey(
            provider=self.provider,
            service=self.service,
            project=self.project_tag or DEFAULT_PROJECT,
        )


@dataclass(frozen=True, slots=True)
class CostSeries:
    key: DimensionKey
    records: tuple[CostRecord, ...]

    @property
    def costs(self) -> list[float]:
        return [float(r.amount) for r in self.records]

    @property
    def latest(self) -> CostRecord:
        return self.records[-1]

    def __len__(self) -> int:
        return len(self.records)


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True, slots=True)
class Seasonality:
    period: str  # daily
    amplitude: float


@dataclass(frozen=True, slots=True)
class CostPattern:
    dimension_key: DimensionKey
    timestamp: datetime
    actual_cost: float
    expected_cost: float
    trend: Trend
    seasonality: Seasonality | None = None
    sample_count: int = 0

    @property
    def is_increase(self) -> bool:
        return self.actual_cost > self.expected_cost
