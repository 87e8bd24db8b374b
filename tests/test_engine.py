"""
Tests for the evaluation engine.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from atlas_score.analytics import AtlasScoreEngine
from atlas_score.analytics.anomaly_detection import compare_to_peers
from atlas_score.analytics.driver_scoring import (
    analyze_performance_trend,
    batch_score_drivers,
    get_score_breakdown,
)
from atlas_score.core.structured_logging import JsonFormatter, get_driver_id, get_trace_id
from atlas_score.schemas import (
    AlertSeverity,
    AnomalyPipelineRequest,
    DriverEvaluationRequest,
    DriverTier,
    ScoreHistoryPoint,
)


def _history(scores):
    return [
        ScoreHistoryPoint(date=f"2026-08-{i + 1:02d}", score=s, tier=DriverTier.GOLD)
        for i, s in enumerate(scores)
    ]


@pytest.fixture
def engine(mock_logger):
    return AtlasScoreEngine(log=mock_logger)


def test_evaluate_with_metrics_only(engine, strong_metrics, now):
    evaluation = engine.evaluate(DriverEvaluationRequest(metrics=strong_metrics), now=now)

    assert evaluation.driver_id == "drv_001"
    assert evaluation.breakdown == get_score_breakdown(strong_metrics)
    assert evaluation.breakdown.tier == DriverTier.DIAMOND
    assert evaluation.deactivation.should_deactivate is False
    assert "Diamond" in evaluation.summary
    assert evaluation.anomalies.anomalies == []
    assert evaluation.anomalies.risk_level == AlertSeverity.LOW
    assert evaluation.rating_manipulation is None
    assert evaluation.performance_trend is None
    assert evaluation.peer_comparison is None
    assert evaluation.computed_at == now


def test_evaluate_with_all_inputs(engine, strong_metrics, zone_averages, now):
    history = _history([70, 72, 74, 76, 78])
    request = DriverEvaluationRequest(
        metrics=strong_metrics,
        ratings=[5, 4, 5, 3, 4, 5, 4, 4, 5, 2, 4, 5],
        score_history=history,
        metric_history={"delivery_minutes": [10] * 9 + [100]},
        zone_averages=zone_averages,
    )
    evaluation = engine.evaluate(request, now=now)

    assert evaluation.rating_manipulation is not None
    assert evaluation.rating_manipulation.is_manipulated is False
    assert evaluation.performance_trend == analyze_performance_trend(history)
    assert evaluation.performance_trend.direction == "improving"
    assert evaluation.peer_comparison == compare_to_peers(strong_metrics, zone_averages)
    assert len(evaluation.anomalies.anomalies) == 1
    assert evaluation.anomalies.anomalies[0].timestamp == now
    assert evaluation.anomalies.should_auto_suspend is False


def test_evaluate_flags_inactive_driver(engine, make_metrics, now):
    metrics = make_metrics(last_active_at=now - timedelta(days=120))
    evaluation = engine.evaluate(DriverEvaluationRequest(metrics=metrics), now=now)

    assert evaluation.deactivation.should_deactivate is True
    assert evaluation.deactivation.reasons == ["Inactive for 120 days (max 90)"]


@pytest.mark.asyncio
async def test_score_drivers_matches_sequential_batch(engine, make_metrics, mock_logger):
    drivers = [
        make_metrics(driver_id="drv_weak", completed_deliveries=40, on_time_deliveries=10, average_rating=2.5),
        make_metrics(driver_id="drv_star"),
        make_metrics(driver_id="drv_new", total_deliveries=2, completed_deliveries=2),
    ]

    entries = await engine.score_drivers(drivers)

    assert entries == batch_score_drivers(drivers)
    assert [e.driver_id for e in entries] == ["drv_star", "drv_new", "drv_weak"]
    mock_logger.info.assert_called_once()
    assert mock_logger.info.call_args[0][0] == "Scored 3 drivers"


@pytest.mark.asyncio
async def test_score_drivers_empty(engine):
    assert await engine.score_drivers([]) == []


@pytest.mark.asyncio
async def test_evaluate_drivers_keeps_request_order(engine, make_metrics):
    requests = [
        DriverEvaluationRequest(metrics=make_metrics(driver_id=f"drv_{i:03d}"))
        for i in range(5)
    ]

    evaluations = await engine.evaluate_drivers(requests)

    assert [e.driver_id for e in evaluations] == [f"drv_{i:03d}" for i in range(5)]
    assert len({e.computed_at for e in evaluations}) == 1


@pytest.mark.asyncio
async def test_run_anomaly_pipelines(engine):
    requests = [
        AnomalyPipelineRequest(
            driver_id="drv_quiet",
            metric_history={"delivery_minutes": [20, 21, 19, 20]},
            total_deliveries=80,
        ),
        AnomalyPipelineRequest(
            driver_id="drv_erratic",
            metric_history={
                "delivery_minutes": [10] * 9 + [100],
                "cancellations_per_day": [1] * 9 + [10],
            },
            total_deliveries=80,
        ),
    ]

    results = await engine.run_anomaly_pipelines(requests)

    assert [r.driver_id for r in results] == ["drv_quiet", "drv_erratic"]
    assert results[0].should_auto_suspend is False
    assert results[1].should_auto_suspend is True
    assert results[1].risk_level == AlertSeverity.CRITICAL


# ============================================================================
# LOG CONTEXT
# ============================================================================

CRITICAL_HISTORY = {
    "delivery_minutes": [10] * 9 + [100],
    "cancellations_per_day": [1] * 9 + [10],
}


class _JsonLines(logging.Handler):
    def __init__(self):
        super().__init__()
        self.setFormatter(JsonFormatter(service="atlas-score", environment="testing"))
        self.lines = []

    def emit(self, record):
        self.lines.append(json.loads(self.format(record)))


@pytest.fixture
def json_lines():
    handler = _JsonLines()
    package_logger = logging.getLogger("atlas_score")
    level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO)
    yield handler.lines
    package_logger.removeHandler(handler)
    package_logger.setLevel(level)


def _suspend_lines(lines):
    return [line for line in lines if line["message"].startswith("Auto-suspend")]


def test_evaluate_logs_carry_driver_context(make_metrics, now, json_lines):
    request = DriverEvaluationRequest(
        metrics=make_metrics(driver_id="drv_x"),
        metric_history=CRITICAL_HISTORY,
        organization_id="org_7",
    )
    evaluation = AtlasScoreEngine().evaluate(request, now=now)

    assert evaluation.anomalies.should_auto_suspend is True
    [line] = _suspend_lines(json_lines)
    assert line["driver_id"] == "drv_x"
    assert line["organization_id"] == "org_7"
    assert line["trace_id"].startswith("run_")

    # The context is scoped to the evaluation
    assert get_driver_id() is None
    assert get_trace_id() == "unknown"


def test_evaluate_uses_given_trace_id(make_metrics, now, json_lines):
    request = DriverEvaluationRequest(
        metrics=make_metrics(driver_id="drv_x"), metric_history=CRITICAL_HISTORY
    )
    AtlasScoreEngine().evaluate(request, now=now, trace_id="nightly_2026_10_19")

    [line] = _suspend_lines(json_lines)
    assert line["trace_id"] == "nightly_2026_10_19"
    assert "organization_id" not in line


@pytest.mark.asyncio
async def test_evaluate_drivers_share_trace_id(make_metrics, json_lines):
    requests = [
        DriverEvaluationRequest(metrics=make_metrics(driver_id=driver_id), metric_history=CRITICAL_HISTORY)
        for driver_id in ("drv_a", "drv_b")
    ]
    await AtlasScoreEngine().evaluate_drivers(requests)

    lines = _suspend_lines(json_lines)
    assert sorted(line["driver_id"] for line in lines) == ["drv_a", "drv_b"]
    assert len({line["trace_id"] for line in lines}) == 1
    assert lines[0]["trace_id"] != "unknown"


@pytest.mark.asyncio
async def test_run_anomaly_pipelines_logs_carry_driver_context(json_lines):
    requests = [
        AnomalyPipelineRequest(
            driver_id="drv_erratic",
            metric_history=CRITICAL_HISTORY,
            total_deliveries=80,
            organization_id="org_7",
        )
    ]
    await AtlasScoreEngine().run_anomaly_pipelines(requests)

    [line] = _suspend_lines(json_lines)
    assert line["driver_id"] == "drv_erratic"
    assert line["organization_id"] == "org_7"
    assert line["trace_id"] != "unknown"


@pytest.mark.asyncio
async def test_score_drivers_log_has_trace_only(make_metrics, json_lines):
    await AtlasScoreEngine().score_drivers([make_metrics()])

    [line] = [line for line in json_lines if line["message"] == "Scored 1 drivers"]
    assert line["trace_id"].startswith("run_")
    assert "driver_id" not in line
    assert "processing_time_ms" in line["context"]


def test_naive_now_is_utc(strong_metrics):
    naive = datetime(2026, 10, 19, 12, 0)
    request = DriverEvaluationRequest(metrics=strong_metrics, metric_history=CRITICAL_HISTORY)
    evaluation = AtlasScoreEngine(log=MagicMock()).evaluate(request, now=naive)

    assert evaluation.computed_at.tzinfo == timezone.utc
    assert all(a.timestamp == evaluation.computed_at for a in evaluation.anomalies.anomalies)
