"""
Anomaly detection data models.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .driver import DriverTier


class AlertSeverity(str, Enum):
    """Anomaly severity, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


MovingAverageTrend = Literal["rising", "falling", "stable"]
TrendDirection = Literal["improving", "declining", "stable"]


class Anomaly(BaseModel):
    """A value that sits far from the mean of its own series."""

    metric_name: str
    value: float
    z_score: float
    severity: AlertSeverity
    message: str
    timestamp: datetime


class ZoneAverages(BaseModel):
    """Reference aggregates for a geographic zone."""

    model_config = ConfigDict(frozen=True)

    zone_id: str
    average_rating: float = Field(..., ge=0)
    average_completion_rate: float = Field(..., ge=0)
    average_on_time_rate: float = Field(..., ge=0)
    average_acceptance_rate: float = Field(..., ge=0)
    average_cancellation_rate: float = Field(..., ge=0)
    driver_count: int = Field(default=0, ge=0)


class PeerMetric(BaseModel):
    driver_value: float
    zone_average: float
    percentile: float = Field(
        ...,
        ge=0,
        le=100,
        description="Ratio to the zone average scaled so that 50 means 'at the average'",
    )


class PeerComparisonResult(BaseModel):
    """Driver rates contrasted with the zone averages."""

    driver_id: str
    zone_id: str
    metrics: Dict[str, PeerMetric]
    overall_percentile: float
    is_outlier: bool
    score: float
    tier: DriverTier


class MovingAverageResult(BaseModel):
    values: List[float] = Field(default_factory=list)
    average: float = 0
    standard_deviation: float = 0
    latest: float = 0
    trend: MovingAverageTrend = "stable"


class TrendAnalysisResult(BaseModel):
    """Least-squares fit of a series against its index."""

    slope: float
    intercept: float
    r_squared: float
    direction: TrendDirection
    confidence: int = Field(..., ge=0, le=100)


class AggregatedAnomalies(BaseModel):
    """Per-driver rollup of anomalies and the auto-suspend decision."""

    driver_id: str
    anomalies: List[Anomaly] = Field(default_factory=list)
    risk_level: AlertSeverity = AlertSeverity.LOW
    should_auto_suspend: bool = False
    suspend_reason: Optional[str] = None
