from typing import Any, Self
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from costlens.models.alert import Channel
from costlens.models.anomaly import Severity
from costlens.shared.core.exceptions import ValidationError


class SeverityThresholds(BaseModel):
    """Deviation thresholds per severity (fractions, 0.3 == 30%)."""

    model_config = ConfigDict(frozen=True)

    critical: float = Field(default=1.0, gt=0)
    high: float = Field(default=0.5, gt=0)
    medium: float = Field(default=0.3, gt=0)
    low: float = Field(default=0.2, gt=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> Self:
        if not (self.critical >= self.high >= self.medium >= self.low):
            raise ValueError("thresholds must satisfy critical >= high >= medium >= low")
        return self

    def for_severity(self, severity: Severity) -> float:
        return float(getattr(self, Severity(severity).value))


def _default_notify_on_severity() -> dict[Severity, bool]:
    return {
        Severity.CRITICAL: True,
        Severity.HIGH: True,
        Severity.MEDIUM: False,
        Severity.LOW: False,
    }


class AlertConfig(BaseModel):
    """
    Per-user alert routing preferences.

    Owned by the settings store; the pipeline only reads it.
    """

    model_config = ConfigDict(frozen=True)

    channels: frozenset[Channel] = Field(
        default_factory=lambda: frozenset({Channel.EMAIL, Channel.IN_APP})
    )
    thresholds: SeverityThresholds = Field(default_factory=SeverityThresholds)
    notify_on_severity: dict[Severity, bool] = Field(
        default_factory=_default_notify_on_severity
    )
    email_address: str | None = Field(default=None, max_length=320)
    chat_channel: str | None = Field(default=None, max_length=128)

    @field_validator("notify_on_severity")
    @classmethod
    def _fill_missing_severities(cls, value: dict[Severity, bool]) -> dict[Severity, bool]:
        # Severities left out of a stored preference row never notify.
        return {severity: bool(value.get(severity, False)) for severity in Severity}

    @field_validator("email_address")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.strip()
        if "@" not in value:
            raise ValueError("email_address must be an email address")
        return value

    def should_notify(self, severity: Severity) -> bool:
        return self.notify_on_severity.get(Severity(severity), False)

    def is_enabled(self, channel: Channel) -> bool:
        return channel in self.channels


def default_alert_config() -> AlertConfig:
    """
    Settings applied when a user has no stored alert configuration:
    email and in-app on, chat off, notify on critical and high only.
    """
    return AlertConfig()


def parse_alert_config(data: dict[str, Any]) -> AlertConfig:
    """Build an AlertConfig from stored settings, surfacing malformed rows as ValidationError."""
    try:
        return AlertConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid alert configuration",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


class SimulationInput(BaseModel):
    """What-if adjustments applied on top of the extrapolated forecast."""

    model_config = ConfigDict(frozen=True)

    new_deployments: int = Field(default=0, ge=0)
    expected_growth_percent: float = Field(default=0.0, ge=0)
    planned_changes: str = Field(default="", max_length=2000)


def parse_simulation_input(data: dict[str, Any] | None) -> SimulationInput | None:
    if data is None:
        return None
    try:
        return SimulationInput.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid simulation input",
            details={"errors": exc.errors(include_url=False)},
        ) from exc
