"""
Pydantic schemas for scoring inputs and outputs.
"""

from .driver import (
    BatchScoreEntry,
    DeactivationResult,
    DriverMetrics,
    DriverScoreSummary,
    DriverTier,
    PerformanceTrend,
    RatingManipulationResult,
    ScoreBreakdown,
    ScoreDimension,
    ScoreHistoryPoint,
    TierConfig,
)
from .anomaly import (
    AggregatedAnomalies,
    AlertSeverity,
    Anomaly,
    MovingAverageResult,
    PeerComparisonResult,
    PeerMetric,
    TrendAnalysisResult,
    ZoneAverages,
)
from .evaluation import (
    AnomalyPipelineRequest,
    DriverEvaluation,
    DriverEvaluationRequest,
)

__all__ = [
    # Driver scoring
    "BatchScoreEntry",
    "DeactivationResult",
    "DriverMetrics",
    "DriverScoreSummary",
    "DriverTier",
    "PerformanceTrend",
    "RatingManipulationResult",
    "ScoreBreakdown",
    "ScoreDimension",
    "ScoreHistoryPoint",
    "TierConfig",
    # Anomaly detection
    "AggregatedAnomalies",
    "AlertSeverity",
    "Anomaly",
    "MovingAverageResult",
    "PeerComparisonResult",
    "PeerMetric",
    "TrendAnalysisResult",
    "ZoneAverages",
    # Engine
    "AnomalyPipelineRequest",
    "DriverEvaluation",
    "DriverEvaluationRequest",
]
