"""
Driver scoring and tier system.

Calculates a composite performance score (0-100) for each driver from:
- Completion rate (25%)
- Customer rating (30%)
- On-time rate (20%)
- Acceptance rate (15%)
- Cancellation rate, inverted (10%)

and derives the tier, deactivation decisions, rating manipulation heuristics
and the weekly performance trend from it. Every function is pure; the only
side effect is logging.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from atlas_score.core.structured_logging import ScoringLogger, get_logger
from atlas_score.schemas import (
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
from .normalization import clamp, normalize, normalize_inverse, round_half_up, safe_div

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

SCORE_WEIGHTS: Dict[str, float] = {
    "completion_rate": 0.25,
    "customer_rating": 0.30,
    "on_time_rate": 0.20,
    "acceptance_rate": 0.15,
    "cancellation_rate": 0.10,
}

TIER_CONFIGS: List[TierConfig] = [
    TierConfig(tier=DriverTier.BRONZE, min_score=0, max_score=39, label="Bronze",
               priority_bonus=0, rate_multiplier=1.0),
    TierConfig(tier=DriverTier.SILVER, min_score=40, max_score=59, label="Silver",
               priority_bonus=2, rate_multiplier=1.05),
    TierConfig(tier=DriverTier.GOLD, min_score=60, max_score=74, label="Gold",
               priority_bonus=5, rate_multiplier=1.1),
    TierConfig(tier=DriverTier.PLATINUM, min_score=75, max_score=89, label="Platinum",
               priority_bonus=8, rate_multiplier=1.15),
    TierConfig(tier=DriverTier.DIAMOND, min_score=90, max_score=100, label="Diamond",
               priority_bonus=12, rate_multiplier=1.25),
]

DEACTIVATION_THRESHOLDS: Dict[str, float] = {
    "min_completion_rate": 40,
    "min_rating": 2.0,
    "max_cancellation_rate": 50,
    "max_fraud_flags": 5,
    "min_acceptance_rate": 20,
    "inactive_days": 90,
}

NEW_DRIVER_THRESHOLD = 5
PROVISIONAL_SCORE = 50.0

# Appeal window for non-fraud deactivations
DEFAULT_GRACE_PERIOD_DAYS = 7

# Rating manipulation
MIN_RATINGS_FOR_ANALYSIS = 10
RECENT_RATINGS_WINDOW = 20
EXPECTED_RATINGS_PER_DELIVERY = 0.3

# Points in the score history used for the trend, roughly two months of weeks
TREND_WINDOW = 8
WEEKS_PER_30_DAYS = 4.3


# ============================================================================
# RATES
# ============================================================================

def delivery_rates(metrics: DriverMetrics) -> Dict[str, float]:
    """
    Percentages derived from the raw counters. Zero denominators yield 0.

    The on-time rate is returned uncapped; scoring caps it at 100.
    """
    return {
        "completion_rate": safe_div(metrics.completed_deliveries, metrics.total_deliveries) * 100,
        "on_time_rate": safe_div(metrics.on_time_deliveries, metrics.completed_deliveries) * 100,
        "acceptance_rate": safe_div(metrics.accepted_orders, metrics.offered_orders) * 100,
        "cancellation_rate": safe_div(metrics.cancelled_orders, metrics.total_deliveries) * 100,
    }


# ============================================================================
# CORE SCORING
# ============================================================================

def _dimension(key: str, name: str, raw_value: float, normalized_value: float) -> ScoreDimension:
    weight = SCORE_WEIGHTS[key]
    return ScoreDimension(
        key=key,
        name=name,
        raw_value=raw_value,
        normalized_value=normalized_value,
        weight=weight,
        weighted_score=normalized_value * weight,
    )


def _score_dimensions(metrics: DriverMetrics) -> List[ScoreDimension]:
    rates = delivery_rates(metrics)
    on_time_rate = min(100.0, rates["on_time_rate"])

    return [
        _dimension("completion_rate", "Completion Rate",
                   rates["completion_rate"], rates["completion_rate"]),
        _dimension("customer_rating", "Customer Rating",
                   metrics.average_rating, normalize(metrics.average_rating, 1, 5)),
        _dimension("on_time_rate", "On-Time Rate", on_time_rate, on_time_rate),
        _dimension("acceptance_rate", "Acceptance Rate",
                   rates["acceptance_rate"], rates["acceptance_rate"]),
        _dimension("cancellation_rate", "Cancellation Rate",
                   rates["cancellation_rate"], normalize_inverse(rates["cancellation_rate"], 0, 100)),
    ]


def _overall(dimensions: List[ScoreDimension]) -> float:
    total = sum(d.weighted_score for d in dimensions)
    return round_half_up(clamp(total, 0, 100))


def calculate_driver_score(metrics: DriverMetrics) -> float:
    """
    Composite score (0-100) rounded to 2 decimals.

    Drivers with fewer than NEW_DRIVER_THRESHOLD deliveries get the
    provisional score so they are never penalized on a tiny sample.
    """
    if metrics.total_deliveries < NEW_DRIVER_THRESHOLD:
        return PROVISIONAL_SCORE
    return _overall(_score_dimensions(metrics))


def get_score_breakdown(metrics: DriverMetrics) -> ScoreBreakdown:
    """
    Itemized version of calculate_driver_score.

    `overall` always equals calculate_driver_score(metrics). Provisional
    drivers still get their dimensions itemized for display.
    """
    dimensions = _score_dimensions(metrics)
    provisional = metrics.total_deliveries < NEW_DRIVER_THRESHOLD
    overall = PROVISIONAL_SCORE if provisional else _overall(dimensions)

    return ScoreBreakdown(
        driver_id=metrics.driver_id,
        overall=overall,
        dimensions=dimensions,
        tier=determine_driver_tier(overall),
        provisional=provisional,
    )


# ============================================================================
# TIER SYSTEM
# ============================================================================

def determine_driver_tier(score: float) -> DriverTier:
    """Highest tier whose minimum score the driver reaches."""
    for config in reversed(TIER_CONFIGS):
        if score >= config.min_score:
            return config.tier
    return DriverTier.BRONZE


def parse_tier(value: Union[DriverTier, str], log: Optional[ScoringLogger] = None) -> DriverTier:
    """
    Turn a stored tier value into a DriverTier.

    Unrecognized values fall back to bronze with a warning.
    """
    if isinstance(value, DriverTier):
        return value
    try:
        return DriverTier(str(value).strip().lower())
    except ValueError:
        (log or logger).warning(
            f"Unknown tier: {value}", context={"tier": str(value), "fallback": DriverTier.BRONZE.value}
        )
        return DriverTier.BRONZE


def get_tier_config(tier: Union[DriverTier, str], log: Optional[ScoringLogger] = None) -> TierConfig:
    for config in TIER_CONFIGS:
        if config.tier == tier:
            return config
    (log or logger).warning(
        f"Unknown tier: {tier}", context={"tier": str(tier), "fallback": DriverTier.BRONZE.value}
    )
    return TIER_CONFIGS[0]


def calculate_tier_priority_bonus(tier: Union[DriverTier, str], log: Optional[ScoringLogger] = None) -> int:
    """Priority bonus used when ordering drivers for dispatch."""
    return get_tier_config(tier, log).priority_bonus


def get_driver_rate_multiplier(tier: Union[DriverTier, str], log: Optional[ScoringLogger] = None) -> float:
    """Pay-rate multiplier of a tier."""
    return get_tier_config(tier, log).rate_multiplier


# ============================================================================
# DEACTIVATION RULES
# ============================================================================

def check_deactivation(metrics: DriverMetrics, now: Optional[datetime] = None) -> DeactivationResult:
    """
    Evaluate the deactivation rules.

    Rate-based rules only apply once the driver has NEW_DRIVER_THRESHOLD
    deliveries. Rating, fraud and inactivity rules always apply. Fraud
    removes the grace period and the right to appeal.
    """
    thresholds = DEACTIVATION_THRESHOLDS
    reasons: List[str] = []

    if metrics.total_deliveries >= NEW_DRIVER_THRESHOLD:
        rates = delivery_rates(metrics)

        completion_rate = rates["completion_rate"]
        if completion_rate < thresholds["min_completion_rate"]:
            reasons.append(
                f"Completion rate {completion_rate:.1f}% below minimum "
                f"{thresholds['min_completion_rate']:g}%"
            )

        cancellation_rate = rates["cancellation_rate"]
        if cancellation_rate > thresholds["max_cancellation_rate"]:
            reasons.append(
                f"Cancellation rate {cancellation_rate:.1f}% exceeds maximum "
                f"{thresholds['max_cancellation_rate']:g}%"
            )

        # No offers yet means the rule cannot trigger
        acceptance_rate = safe_div(metrics.accepted_orders, metrics.offered_orders, default=1.0) * 100
        if acceptance_rate < thresholds["min_acceptance_rate"]:
            reasons.append(
                f"Acceptance rate {acceptance_rate:.1f}% below minimum "
                f"{thresholds['min_acceptance_rate']:g}%"
            )

    if metrics.average_rating < thresholds["min_rating"]:
        reasons.append(
            f"Average rating {metrics.average_rating:.2f} below minimum {thresholds['min_rating']:g}"
        )

    has_fraud = metrics.fraud_flags >= thresholds["max_fraud_flags"]
    if has_fraud:
        reasons.append(
            f"{metrics.fraud_flags} fraud flags (max {thresholds['max_fraud_flags']:g})"
        )

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    days_since_active = (now - metrics.last_active_at).days
    if days_since_active > thresholds["inactive_days"]:
        reasons.append(
            f"Inactive for {days_since_active} days (max {thresholds['inactive_days']:g})"
        )

    return DeactivationResult(
        should_deactivate=len(reasons) > 0,
        reasons=reasons,
        grace_period_days=0 if has_fraud else DEFAULT_GRACE_PERIOD_DAYS,
        can_appeal=not has_fraud,
    )


# ============================================================================
# RATING MANIPULATION DETECTION
# ============================================================================

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def detect_rating_manipulation(
    ratings: Sequence[float],
    metrics: DriverMetrics,
    log: Optional[ScoringLogger] = None,
) -> RatingManipulationResult:
    """
    Accumulate a 0-100 suspicion score from independent heuristics.

    `ratings` are individual customer ratings, oldest first.
    """
    if len(ratings) < MIN_RATINGS_FOR_ANALYSIS:
        return RatingManipulationResult(
            is_manipulated=False,
            confidence=0,
            indicators=["Insufficient data for analysis"],
            recommended_action="none",
        )

    count = len(ratings)
    indicators: List[str] = []
    suspicion = 0

    # 1. Too many five-star ratings
    five_star_ratio = sum(1 for r in ratings if r == 5) / count
    if count > 20 and five_star_ratio > 0.95:
        indicators.append(f"{five_star_ratio * 100:.1f}% five-star ratings (suspicious pattern)")
        suspicion += 30
    elif count > 20 and five_star_ratio > 0.85:
        indicators.append(f"{five_star_ratio * 100:.1f}% five-star ratings (elevated)")
        suspicion += 15

    # 2. Sudden jump in recent ratings
    recent = ratings[-RECENT_RATINGS_WINDOW:]
    older = ratings[:max(0, count - RECENT_RATINGS_WINDOW)]
    if len(older) >= 10:
        recent_avg = _mean(recent)
        older_avg = _mean(older)
        if recent_avg - older_avg > 1.5:
            indicators.append(
                f"Recent ratings {recent_avg:.2f} significantly higher than historical {older_avg:.2f}"
            )
            suspicion += 25

    # 3. No low ratings at all over a large sample
    low_ratings = sum(1 for r in ratings if r <= 2)
    if low_ratings == 0 and count > 50:
        indicators.append("Zero low ratings across 50+ deliveries (statistically unlikely)")
        suspicion += 20

    # 4. More ratings than deliveries can explain
    expected_ratings = metrics.completed_deliveries * EXPECTED_RATINGS_PER_DELIVERY
    if metrics.total_ratings > expected_ratings * 2:
        indicators.append(
            f"Rating count ({metrics.total_ratings}) abnormally high vs deliveries "
            f"({metrics.completed_deliveries})"
        )
        suspicion += 25

    # 5. Bimodal distribution
    mid_ratings = sum(1 for r in ratings if 2 <= r <= 4)
    extreme_ratings = sum(1 for r in ratings if r == 1 or r == 5)
    if count > 20 and extreme_ratings > mid_ratings * 3:
        indicators.append("Bimodal rating distribution (many extremes, few middle values)")
        suspicion += 15

    confidence = min(100, suspicion)
    is_manipulated = confidence >= 50

    if confidence >= 75:
        action = "suspend"
    elif confidence >= 50:
        action = "investigate"
    elif confidence >= 25:
        action = "flag"
    else:
        action = "none"

    if is_manipulated:
        (log or logger).info(
            f"Rating manipulation detected for {metrics.driver_id}: confidence={confidence}%",
            context={
                "driver_id": metrics.driver_id,
                "confidence": confidence,
                "recommended_action": action,
                "indicators": indicators,
            },
        )

    return RatingManipulationResult(
        is_manipulated=is_manipulated,
        confidence=confidence,
        indicators=indicators,
        recommended_action=action,
    )


# ============================================================================
# PERFORMANCE TREND
# ============================================================================

def analyze_performance_trend(history: Sequence[ScoreHistoryPoint]) -> PerformanceTrend:
    """
    Least-squares slope over the last TREND_WINDOW weekly samples,
    projected 30 days ahead.
    """
    if len(history) < 2:
        return PerformanceTrend(
            direction="stable",
            change_per_week=0,
            projected_score_30_days=history[-1].score if history else PROVISIONAL_SCORE,
            data_points=len(history),
        )

    recent = list(history)[-TREND_WINDOW:]
    n = len(recent)
    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for i, point in enumerate(recent):
        sum_x += i
        sum_y += point.score
        sum_xy += i * point.score
        sum_x2 += i * i

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    last_score = recent[-1].score

    # Samples are roughly a week apart
    change_per_week = round_half_up(slope)
    projected = clamp(round_half_up(last_score + slope * WEEKS_PER_30_DAYS), 0, 100)

    if change_per_week > 1:
        direction = "improving"
    elif change_per_week < -1:
        direction = "declining"
    else:
        direction = "stable"

    return PerformanceTrend(
        direction=direction,
        change_per_week=change_per_week,
        projected_score_30_days=projected,
        data_points=n,
    )


# ============================================================================
# BATCH & FILTERING
# ============================================================================

def score_entry(metrics: DriverMetrics) -> BatchScoreEntry:
    score = calculate_driver_score(metrics)
    return BatchScoreEntry(driver_id=metrics.driver_id, score=score, tier=determine_driver_tier(score))


def sort_by_score(entries: List[BatchScoreEntry]) -> List[BatchScoreEntry]:
    return sorted(entries, key=lambda e: e.score, reverse=True)


def batch_score_drivers(metrics_list: Sequence[DriverMetrics]) -> List[BatchScoreEntry]:
    """Score every driver, best first."""
    return sort_by_score([score_entry(m) for m in metrics_list])


def filter_drivers_by_min_tier(
    metrics_list: Sequence[DriverMetrics],
    min_tier: DriverTier,
) -> List[DriverMetrics]:
    """Keep drivers whose computed tier is at least `min_tier`."""
    min_rank = DriverTier(min_tier).rank
    return [
        m for m in metrics_list
        if determine_driver_tier(calculate_driver_score(m)).rank >= min_rank
    ]


def get_driver_score_summary(metrics: DriverMetrics) -> DriverScoreSummary:
    """Human-readable summary of a driver's score."""
    score = calculate_driver_score(metrics)
    tier = determine_driver_tier(score)
    label = get_tier_config(tier).label

    if metrics.total_deliveries < NEW_DRIVER_THRESHOLD:
        summary = (
            f"New driver with {metrics.total_deliveries} deliveries. Provisional score assigned."
        )
    elif score >= 90:
        summary = f"Outstanding performance. {label} tier with {score:g} points. Top-tier driver."
    elif score >= 75:
        summary = f"Excellent performance. {label} tier with {score:g} points."
    elif score >= 60:
        summary = f"Good performance. {label} tier with {score:g} points."
    elif score >= 40:
        summary = f"Average performance. {label} tier with {score:g} points. Room for improvement."
    else:
        summary = f"Below average performance. {label} tier with {score:g} points. Improvement needed."

    return DriverScoreSummary(driver_id=metrics.driver_id, score=score, tier=tier, summary=summary)


# ============================================================================
# CONFIGURATION ACCESSORS
# ============================================================================

def get_score_weights() -> Dict[str, float]:
    return dict(SCORE_WEIGHTS)


def get_tier_configs() -> List[TierConfig]:
    return list(TIER_CONFIGS)


def get_deactivation_thresholds() -> Dict[str, float]:
    return dict(DEACTIVATION_THRESHOLDS)
