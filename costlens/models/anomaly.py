from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4

from costlens.models.cost import DimensionKey


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def severity_rank(severity: Severity | str) -> int:
    value = severity.value if isinstance(severity, Severity) else str(severity)
    return _SEVERITY_RANK.get(value, 0)


def severity_gte(severity: Severity | str, minimum: Severity | str) -> bool:
    """Compare severities with a stable ordering."""
    return severity_rank(severity) >= severity_rank(minimum)


class AnomalyStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    IGNORED = "ignored"


@dataclass(slots=True)
class Anomaly:
    timestamp: datetime
    dimension_key: DimensionKey
    actual_cost: float
    expected_cost: float
    deviation: float
    severity: Severity
    root_cause: str
    root_cause_factor: str
    status: AnomalyStatus = AnomalyStatus.ACTIVE
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def provider(self) -> str:
        return self.dimension_key.provider

    @property
    def service(self) -> str:
        return self.dimension_key.service

    @property
    def project(self) -> str:
        return self.dimension_key.project
