from functools import lru_cache
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"

SENSITIVITY_LEVELS = ("low", "medium", "high")


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


def reload_settings_from_environment() -> "Settings":
    """Rebuild cached settings from the current environment."""
    logger = structlog.get_logger()
    get_settings.cache_clear()
    refreshed = get_settings()
    logger.info("settings_reloaded", environment=refreshed.ENVIRONMENT)
    return refreshed


class Settings(BaseSettings):
    """
    Main configuration for CostLens.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "CostLens"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False
    LOG_LEVEL: str = "INFO"

    # Anomaly detection
    ANOMALY_LOOKBACK_DAYS: int = Field(default=30, ge=1, le=366)
    ANOMALY_DEFAULT_SENSITIVITY: str = "medium"

    # Pattern analysis
    PATTERN_MOVING_AVERAGE_WINDOW: int = Field(default=7, ge=1)

    # Forecasting
    FORECAST_HORIZON_DAYS: int = Field(default=30, ge=1, le=366)
    # Cost multiplier applied per simulated new deployment.
    FORECAST_DEPLOYMENT_IMPACT: float = Field(default=0.10, ge=0)
    FORECAST_CONFIDENCE_Z: float = Field(default=1.96, gt=0)

    # SMTP Email
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "alerts@costlens.io"
    SMTP_TIMEOUT_SECONDS: float = 10.0

    # Slack
    SLACK_BOT_TOKEN: Optional[str] = None
    SLACK_CHANNEL_ID: Optional[str] = None
    SLACK_TIMEOUT_SECONDS: int = 10

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Cross-field validation."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        sensitivity = self.ANOMALY_DEFAULT_SENSITIVITY.strip().lower()
        if sensitivity not in SENSITIVITY_LEVELS:
            raise ValueError(
                f"ANOMALY_DEFAULT_SENSITIVITY must be one of {', '.join(SENSITIVITY_LEVELS)}"
            )
        self.ANOMALY_DEFAULT_SENSITIVITY = sensitivity
        if self.SMTP_USER and not self.SMTP_PASSWORD:
            raise ValueError("SMTP_PASSWORD is required when SMTP_USER is set.")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == ENV_PRODUCTION

    @property
    def email_configured(self) -> bool:
        return bool(self.SMTP_HOST)

    @property
    def slack_configured(self) -> bool:
        return bool(self.SLACK_BOT_TOKEN)
