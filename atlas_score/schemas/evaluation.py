"""
Request/response models for the evaluation engine.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .anomaly import AggregatedAnomalies, PeerComparisonResult, ZoneAverages
from .driver import (
    DeactivationResult,
    DriverMetrics,
    PerformanceTrend,
    RatingManipulationResult,
    ScoreBreakdown,
    ScoreHistoryPoint,
)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class DriverEvaluationRequest(BaseModel):
    """Everything the metrics collaborator has for one driver."""

    metrics: DriverMetrics
    ratings: Optional[List[float]] = Field(
        None, description="Individual customer ratings, oldest first"
    )
    score_history: Optional[List[ScoreHistoryPoint]] = Field(
        None, description="Weekly score samples, oldest first"
    )
    metric_history: Dict[str, List[float]] = Field(
        default_factory=dict,
        description="Named metric series for anomaly detection",
    )
    zone_averages: Optional[ZoneAverages] = None
    organization_id: Optional[str] = Field(
        None, description="Tenant that owns the driver, carried on log records"
    )


class AnomalyPipelineRequest(BaseModel):
    driver_id: str
    metric_history: Dict[str, List[float]] = Field(default_factory=dict)
    total_deliveries: int = Field(..., ge=0)
    organization_id: Optional[str] = None


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class DriverEvaluation(BaseModel):
    """Full set of decisions for one driver."""

    driver_id: str
    breakdown: ScoreBreakdown
    deactivation: DeactivationResult
    summary: str
    anomalies: AggregatedAnomalies
    rating_manipulation: Optional[RatingManipulationResult] = None
    performance_trend: Optional[PerformanceTrend] = None
    peer_comparison: Optional[PeerComparisonResult] = None
    computed_at: datetime
