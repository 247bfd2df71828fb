"""
Alert records routed to notification channels.

Status transitions are one-way: pending -> sent or pending -> failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from costlens.models.anomaly import Severity


class AlertType(str, Enum):
    ANOMALY = "anomaly"
    THRESHOLD = "threshold"
    FORECAST = "forecast"


class AlertStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class Channel(str, Enum):
    EMAIL = "email"
    CHAT = "chat"
    IN_APP = "in_app"


@dataclass(slots=True)
class Alert:
    user_id: str
    type: AlertType
    severity: Severity
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    status: AlertStatus = AlertStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid4()))
    # Triggering error of a failed dispatch, kept for inspection.
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in {AlertStatus.SENT, AlertStatus.FAILED}
