"""
Tests for Pydantic schema validation.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError


def _metrics_data(**overrides):
    data = {
        "driver_id": "drv_001",
        "total_deliveries": 10,
        "completed_deliveries": 9,
        "average_rating": 4.5,
        "on_time_deliveries": 8,
        "accepted_orders": 10,
        "offered_orders": 12,
        "cancelled_orders": 1,
        "last_active_at": datetime(2026, 10, 18, tzinfo=timezone.utc),
        "account_created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return data


def test_driver_metrics_defaults():
    from atlas_score.schemas import DriverMetrics

    metrics = DriverMetrics(**_metrics_data())
    assert metrics.total_ratings == 0
    assert metrics.fraud_flags == 0


@pytest.mark.parametrize(
    "field",
    ["total_deliveries", "completed_deliveries", "on_time_deliveries", "cancelled_orders", "fraud_flags"],
)
def test_driver_metrics_rejects_negative_counters(field):
    from atlas_score.schemas import DriverMetrics

    with pytest.raises(ValidationError):
        DriverMetrics(**_metrics_data(**{field: -1}))


def test_driver_metrics_rejects_rating_out_of_range():
    from atlas_score.schemas import DriverMetrics

    with pytest.raises(ValidationError):
        DriverMetrics(**_metrics_data(average_rating=5.5))


def test_driver_metrics_missing_field():
    from atlas_score.schemas import DriverMetrics

    data = _metrics_data()
    del data["last_active_at"]
    with pytest.raises(ValidationError):
        DriverMetrics(**data)


def test_naive_timestamps_are_utc():
    from atlas_score.schemas import DriverMetrics

    metrics = DriverMetrics(**_metrics_data(last_active_at=datetime(2026, 10, 18, 9, 30)))
    assert metrics.last_active_at.tzinfo == timezone.utc
    assert metrics.last_active_at.hour == 9


def test_iso_timestamps_are_parsed():
    from atlas_score.schemas import DriverMetrics

    metrics = DriverMetrics(**_metrics_data(account_created_at="2026-01-01T00:00:00Z"))
    assert metrics.account_created_at == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_driver_metrics_is_immutable():
    from atlas_score.schemas import DriverMetrics

    metrics = DriverMetrics(**_metrics_data())
    with pytest.raises(ValidationError):
        metrics.fraud_flags = 3


def test_tier_rank_and_serialization():
    from atlas_score.schemas import BatchScoreEntry, DriverTier

    assert [t.rank for t in DriverTier] == [0, 1, 2, 3, 4]
    assert DriverTier.PLATINUM.rank > DriverTier.GOLD.rank

    entry = BatchScoreEntry(driver_id="drv_001", score=81.5, tier=DriverTier.PLATINUM)
    assert entry.model_dump(mode="json") == {"driver_id": "drv_001", "score": 81.5, "tier": "platinum"}
    assert BatchScoreEntry(driver_id="drv_002", score=20, tier="bronze").tier == DriverTier.BRONZE


def test_rating_manipulation_confidence_bounds():
    from atlas_score.schemas import RatingManipulationResult

    with pytest.raises(ValidationError):
        RatingManipulationResult(is_manipulated=True, confidence=120)


def test_peer_percentile_bounds():
    from atlas_score.schemas import PeerMetric

    with pytest.raises(ValidationError):
        PeerMetric(driver_value=10, zone_average=5, percentile=101)


def test_evaluation_request_defaults():
    from atlas_score.schemas import DriverEvaluationRequest, DriverMetrics

    request = DriverEvaluationRequest(metrics=DriverMetrics(**_metrics_data()))
    assert request.ratings is None
    assert request.score_history is None
    assert request.metric_history == {}
    assert request.zone_averages is None


def test_anomaly_pipeline_request_rejects_negative_deliveries():
    from atlas_score.schemas import AnomalyPipelineRequest

    with pytest.raises(ValidationError):
        AnomalyPipelineRequest(driver_id="drv_001", total_deliveries=-5)
