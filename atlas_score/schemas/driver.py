"""
Driver scoring data models.
Input snapshot of a driver's counters and every scoring output.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# ENUMS
# ============================================================================

class DriverTier(str, Enum):
    """Performance tiers, lowest first."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"

    @property
    def rank(self) -> int:
        return list(DriverTier).index(self)


RecommendedAction = Literal["none", "flag", "investigate", "suspend"]
PerformanceDirection = Literal["improving", "stable", "declining"]


# ============================================================================
# INPUT MODELS
# ============================================================================

class DriverMetrics(BaseModel):
    """Aggregate counters for one driver over one evaluation window."""

    model_config = ConfigDict(frozen=True)

    driver_id: str
    total_deliveries: int = Field(..., ge=0)
    completed_deliveries: int = Field(..., ge=0)
    average_rating: float = Field(..., ge=0, le=5, description="1-5, or 0 if unrated")
    total_ratings: int = Field(default=0, ge=0)
    on_time_deliveries: int = Field(..., ge=0)
    accepted_orders: int = Field(..., ge=0)
    offered_orders: int = Field(..., ge=0)
    cancelled_orders: int = Field(..., ge=0)
    fraud_flags: int = Field(default=0, ge=0)
    last_active_at: datetime
    account_created_at: datetime

    @field_validator("last_active_at", "account_created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ScoreHistoryPoint(BaseModel):
    """One weekly sample of a driver's score."""

    date: str
    score: float
    tier: DriverTier


# ============================================================================
# TIER CONFIG
# ============================================================================

class TierConfig(BaseModel):
    """Score range and dispatch/pay benefits of a tier."""

    model_config = ConfigDict(frozen=True)

    tier: DriverTier
    min_score: float
    max_score: float
    label: str
    priority_bonus: int = Field(..., description="Bonus used for dispatch ordering")
    rate_multiplier: float = Field(..., description="Pay-rate multiplier")


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class ScoreDimension(BaseModel):
    """One weighted component of the composite score."""

    key: str
    name: str
    raw_value: float
    normalized_value: float
    weight: float
    weighted_score: float


class ScoreBreakdown(BaseModel):
    """Composite score itemized by dimension."""

    driver_id: str
    overall: float = Field(..., ge=0, le=100)
    dimensions: List[ScoreDimension]
    tier: DriverTier
    provisional: bool = Field(
        default=False,
        description="True when the driver is below the minimum sample and got the provisional score",
    )


class DeactivationResult(BaseModel):
    """Outcome of the deactivation rules."""

    should_deactivate: bool
    reasons: List[str] = Field(default_factory=list)
    grace_period_days: int
    can_appeal: bool


class RatingManipulationResult(BaseModel):
    """Outcome of the rating manipulation heuristics."""

    is_manipulated: bool
    confidence: int = Field(..., ge=0, le=100)
    indicators: List[str] = Field(default_factory=list)
    recommended_action: RecommendedAction = "none"


class PerformanceTrend(BaseModel):
    """Regression summary over recent score history."""

    direction: PerformanceDirection
    change_per_week: float
    projected_score_30_days: float
    data_points: int = 0


class BatchScoreEntry(BaseModel):
    driver_id: str
    score: float
    tier: DriverTier


class DriverScoreSummary(BaseModel):
    """Human-readable narrative of a driver's score."""

    driver_id: str
    score: float
    tier: DriverTier
    summary: str
