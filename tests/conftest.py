"""
Global pytest fixtures for the CostLens test suite.

Provides:
- In-memory store fixtures
- Cost record factories
- Settings cache isolation
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set test environment BEFORE any costlens imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"

from costlens.models.cost import CostRecord  # noqa: E402
from costlens.shared.core.config import get_settings  # noqa: E402
from costlens.shared.db.memory import (  # noqa: E402
    InMemoryAlertStore,
    InMemoryAnomalyStore,
    InMemoryBillingStore,
    InMemoryForecastStore,
    InMemoryNotificationStore,
    InMemorySettingsStore,
)

NOW = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_series():
    """Daily records ending at NOW for one dimension, oldest first."""

    def _make(
        amounts,
        provider="aws",
        service="AmazonEC2",
        project="web",
        end=NOW,
    ):
        amounts = list(amounts)
        start = end - timedelta(days=len(amounts) - 1)
        return [
            CostRecord(
                timestamp=start + timedelta(days=i),
                provider=provider,
                service=service,
                project=project,
                amount=float(amount),
            )
            for i, amount in enumerate(amounts)
        ]

    return _make


@pytest.fixture
def billing_store():
    return InMemoryBillingStore()


@pytest.fixture
def anomaly_store():
    return InMemoryAnomalyStore()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def forecast_store():
    return InMemoryForecastStore()


@pytest.fixture
def settings_store():
    return InMemorySettingsStore()


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()
