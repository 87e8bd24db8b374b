"""
Atlas Score Engine - orchestrator for driver evaluation.

Coordinates the scoring and anomaly components:
- Composite score, tier and deactivation rules
- Rating manipulation heuristics
- Performance trend
- Anomaly pipeline and auto-suspend
- Zone peer comparison

The async entry points fan a batch out over worker threads, bounded by the
concurrency semaphore.
"""

import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from atlas_score.core.concurrency import parallel_map
from atlas_score.core.structured_logging import ScoringLogger, get_logger, request_context
from atlas_score.schemas import (
    AggregatedAnomalies,
    AnomalyPipelineRequest,
    BatchScoreEntry,
    DriverEvaluation,
    DriverEvaluationRequest,
    DriverMetrics,
)
from . import anomaly_detection, driver_scoring

logger = get_logger(__name__)


def _utc_now(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now


class AtlasScoreEngine:
    """
    Runs every scoring component for one driver or a batch of drivers.

    Log records emitted during an evaluation carry the run's trace_id and the
    driver_id being evaluated.
    """

    def __init__(self, log: Optional[ScoringLogger] = None):
        self.log = log or logger

    def evaluate(
        self,
        request: DriverEvaluationRequest,
        now: Optional[datetime] = None,
        trace_id: Optional[str] = None,
    ) -> DriverEvaluation:
        """
        Full evaluation of a single driver.

        Optional inputs that are missing skip their component; the anomaly
        pipeline always runs and yields an empty rollup without history.
        A naive `now` is taken as UTC.
        """
        with request_context(
            trace_id,
            driver_id=request.metrics.driver_id,
            organization_id=request.organization_id,
        ):
            return self._evaluate(request, _utc_now(now))

    def _evaluate(self, request: DriverEvaluationRequest, now: datetime) -> DriverEvaluation:
        metrics = request.metrics

        breakdown = driver_scoring.get_score_breakdown(metrics)
        deactivation = driver_scoring.check_deactivation(metrics, now=now)
        summary = driver_scoring.get_driver_score_summary(metrics)

        rating_manipulation = None
        if request.ratings is not None:
            rating_manipulation = driver_scoring.detect_rating_manipulation(
                request.ratings, metrics, log=self.log
            )

        performance_trend = None
        if request.score_history is not None:
            performance_trend = driver_scoring.analyze_performance_trend(request.score_history)

        anomalies = anomaly_detection.run_anomaly_pipeline(
            metrics.driver_id,
            request.metric_history,
            metrics.total_deliveries,
            reference_time=now,
            log=self.log,
        )

        peer_comparison = None
        if request.zone_averages is not None:
            peer_comparison = anomaly_detection.compare_to_peers(metrics, request.zone_averages)

        return DriverEvaluation(
            driver_id=metrics.driver_id,
            breakdown=breakdown,
            deactivation=deactivation,
            summary=summary.summary,
            anomalies=anomalies,
            rating_manipulation=rating_manipulation,
            performance_trend=performance_trend,
            peer_comparison=peer_comparison,
            computed_at=now,
        )

    async def score_drivers(self, metrics_list: Sequence[DriverMetrics]) -> List[BatchScoreEntry]:
        """Parallel version of batch_score_drivers. Same output, best first."""
        with request_context():
            start_time = time.time()
            entries = await parallel_map(driver_scoring.score_entry, metrics_list)
            self.log.info(
                f"Scored {len(entries)} drivers",
                context={"processing_time_ms": int((time.time() - start_time) * 1000)},
            )
        return driver_scoring.sort_by_score(entries)

    async def evaluate_drivers(
        self, requests: Sequence[DriverEvaluationRequest]
    ) -> List[DriverEvaluation]:
        """
        Evaluate many drivers concurrently. Results keep the request order.

        The whole batch shares one trace_id and one evaluation time.
        """
        now = datetime.now(timezone.utc)
        with request_context() as trace_id:
            return await parallel_map(
                lambda request: self.evaluate(request, now=now, trace_id=trace_id), requests
            )

    async def run_anomaly_pipelines(
        self, requests: Sequence[AnomalyPipelineRequest]
    ) -> List[AggregatedAnomalies]:
        """Run the anomaly pipeline for many drivers. Results keep the request order."""
        now = datetime.now(timezone.utc)

        def run(request: AnomalyPipelineRequest) -> AggregatedAnomalies:
            with request_context(
                driver_id=request.driver_id, organization_id=request.organization_id
            ):
                return anomaly_detection.run_anomaly_pipeline(
                    request.driver_id,
                    request.metric_history,
                    request.total_deliveries,
                    reference_time=now,
                    log=self.log,
                )

        with request_context():
            return await parallel_map(run, requests)
