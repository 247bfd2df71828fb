from datetime import datetime, timedelta

import numpy as np
import pytest
from structlog.testing import capture_logs

from costlens.models.cost import CostRecord, DimensionKey
from costlens.schemas.alerts import SimulationInput
from costlens.shared.analysis.forecaster import ForecastEngine
from costlens.shared.analysis.series import group_cost_records


@pytest.fixture
def engine():
    return ForecastEngine()


def test_flat_history_projects_flat_with_constant_band(engine, make_series):
    records = make_series([100] * 10)

    forecasts = engine.forecast(records)

    assert engine.growth_rate([100.0] * 10) == 0.0
    assert len(forecasts) == 30
    assert all(f.predicted_cost == pytest.approx(100.0) for f in forecasts)
    widths = {round(f.confidence_upper - f.confidence_lower, 9) for f in forecasts}
    assert widths == {0.0}


def test_band_width_is_identical_for_every_horizon_day(engine, make_series):
    daily = [100, 110, 90, 120, 105]
    forecasts = engine.forecast(make_series(daily))

    expected_half_width = 1.96 * float(np.std(daily))
    for f in forecasts:
        assert f.confidence_upper - f.predicted_cost == pytest.approx(expected_half_width)
        assert f.predicted_cost - f.confidence_lower == pytest.approx(expected_half_width)


def test_geometric_growth(engine, make_series):
    assert engine.growth_rate([100.0, 110.0, 121.0]) == pytest.approx(0.10)

    forecasts = engine.forecast(make_series([100, 110, 121]))

    assert forecasts[0].predicted_cost == pytest.approx(121.0 * 1.1)
    assert forecasts[2].predicted_cost == pytest.approx(121.0 * 1.1**3)


def test_forecast_dates_start_after_last_day(engine, make_series, now):
    forecasts = engine.forecast(make_series([50, 60]))

    assert forecasts[0].date == now.date() + timedelta(days=1)
    assert forecasts[-1].date == now.date() + timedelta(days=30)
    assert [f.date for f in forecasts] == sorted(f.date for f in forecasts)


def test_records_are_aggregated_per_day(engine, now):
    records = [
        CostRecord(timestamp=now - timedelta(days=1, hours=h), provider="aws", service="AmazonEC2", amount=25.0)
        for h in range(4)
    ] + [CostRecord(timestamp=now, provider="aws", service="AmazonEC2", amount=100.0)]

    forecasts = engine.forecast(records)

    # Two distinct days, both totalling 100.
    assert len(forecasts) == 30
    assert forecasts[0].predicted_cost == pytest.approx(100.0)


@pytest.mark.parametrize("amounts", [[], [100]])
def test_fewer_than_two_days_yields_empty(engine, make_series, amounts):
    assert engine.forecast(make_series(amounts) if amounts else []) == []


def test_same_day_records_count_as_one_day(engine, now):
    records = [
        CostRecord(timestamp=now, provider="aws", service="AmazonEC2", amount=10.0),
        CostRecord(timestamp=now + timedelta(minutes=5), provider="aws", service="AmazonEC2", amount=20.0),
    ]
    assert engine.forecast(records) == []


def test_zero_first_day_falls_back_to_flat_growth(engine, make_series):
    with capture_logs() as logs:
        forecasts = engine.forecast(make_series([0, 50, 80]))

    assert len(forecasts) == 30
    assert all(f.predicted_cost == pytest.approx(80.0) for f in forecasts)
    assert any(log["event"] == "forecast_growth_rate_undefined" for log in logs)


def test_simulation_multipliers(make_series):
    engine = ForecastEngine(deployment_impact=0.10)
    simulation = SimulationInput(new_deployments=2, expected_growth_percent=10)

    forecasts = engine.forecast(make_series([100] * 5), simulation)

    assert forecasts[0].predicted_cost == pytest.approx(100.0 * 1.2 * 1.1)


def test_deployment_impact_is_configurable(make_series):
    engine = ForecastEngine(deployment_impact=0.05)
    simulation = SimulationInput(new_deployments=2)

    forecasts = engine.forecast(make_series([100] * 5), simulation)

    assert forecasts[0].predicted_cost == pytest.approx(110.0)


def test_empty_simulation_changes_nothing(engine, make_series):
    records = make_series([100, 120, 140])
    assert engine.forecast(records, SimulationInput()) == engine.forecast(records)


def test_custom_horizon(make_series):
    assert len(ForecastEngine(horizon_days=7).forecast(make_series([1, 2]))) == 7


def test_invalid_engine_parameters():
    with pytest.raises(ValueError):
        ForecastEngine(horizon_days=0)
    with pytest.raises(ValueError):
        ForecastEngine(deployment_impact=-0.1)


def test_forecast_series_skips_short_history(engine, make_series):
    records = make_series([100, 100, 100]) + make_series([5], service="AmazonS3")

    results = engine.forecast_series(group_cost_records(records))

    assert list(results) == [DimensionKey("aws", "AmazonEC2", "web")]
    assert len(results[DimensionKey("aws", "AmazonEC2", "web")]) == 30


def test_forecast_total_sums_all_dimensions(engine, make_series):
    records = make_series([100, 100]) + make_series([50, 50], service="AmazonS3")

    total = engine.forecast_total(records)

    assert total[0].predicted_cost == pytest.approx(150.0)


def test_naive_timestamps_are_treated_as_utc(engine):
    base = datetime(2026, 1, 1)
    records = [
        CostRecord(timestamp=base + timedelta(days=i), provider="aws", service="AmazonEC2", amount=10.0)
        for i in range(3)
    ]
    forecasts = engine.forecast(records)
    assert forecasts[0].date == (base + timedelta(days=3)).date()
