"""
Anomaly detection for driver behavior.

Z-score analysis, moving averages, zone peer comparison, linear-regression
trend analysis and the auto-suspend rules. All functions are pure.

Note: detect_anomalies measures each value against the mean and standard
deviation of the very series it is flagging. A value is anomalous relative to
its own window, not to a held-out historical baseline.
"""

import math
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

from atlas_score.core.structured_logging import ScoringLogger, get_logger
from atlas_score.schemas import (
    AggregatedAnomalies,
    AlertSeverity,
    Anomaly,
    DriverMetrics,
    MovingAverageResult,
    PeerComparisonResult,
    PeerMetric,
    TrendAnalysisResult,
    ZoneAverages,
)
from .driver_scoring import calculate_driver_score, delivery_rates, determine_driver_tier
from .normalization import clamp, round_half_up

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

Z_SCORE_THRESHOLDS: Dict[AlertSeverity, float] = {
    AlertSeverity.LOW: 1.5,
    AlertSeverity.MEDIUM: 2.0,
    AlertSeverity.HIGH: 2.5,
    AlertSeverity.CRITICAL: 3.0,
}

AUTO_SUSPEND_RULES = {
    "max_critical_anomalies": 2,
    "max_high_anomalies": 5,
    "max_total_anomalies": 10,
    "min_deliveries_for_suspend": 10,
}

MIN_SAMPLES_FOR_DETECTION = 3

# Peer comparison: outside this band of overall percentile the driver is an outlier
OUTLIER_LOW_PERCENTILE = 20
OUTLIER_HIGH_PERCENTILE = 90


# ============================================================================
# STATISTICS
# ============================================================================

def _mean_and_std(values: Sequence[float]) -> tuple[float, float]:
    """Population mean and standard deviation."""
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


# ============================================================================
# Z-SCORE ANALYSIS
# ============================================================================

def calculate_z_score(value: float, mean: float, std_dev: float) -> float:
    """Standard deviations between value and mean; 0 for a flat series."""
    if std_dev == 0:
        return 0.0
    return (value - mean) / std_dev


def get_severity_from_z_score(z_score: float) -> AlertSeverity:
    abs_z = abs(z_score)
    if abs_z >= Z_SCORE_THRESHOLDS[AlertSeverity.CRITICAL]:
        return AlertSeverity.CRITICAL
    elif abs_z >= Z_SCORE_THRESHOLDS[AlertSeverity.HIGH]:
        return AlertSeverity.HIGH
    elif abs_z >= Z_SCORE_THRESHOLDS[AlertSeverity.MEDIUM]:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def detect_anomalies(
    values: Sequence[float],
    metric_name: str,
    reference_time: Optional[datetime] = None,
) -> List[Anomaly]:
    """
    Flag every value at least 1.5 standard deviations from the series mean.

    Needs at least 3 samples. All anomalies share `reference_time`
    (defaults to now; a naive time is taken as UTC).
    """
    if len(values) < MIN_SAMPLES_FOR_DETECTION:
        return []

    mean, std_dev = _mean_and_std(values)
    timestamp = reference_time or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    anomalies: List[Anomaly] = []
    for value in values:
        z_score = calculate_z_score(value, mean, std_dev)
        if abs(z_score) >= Z_SCORE_THRESHOLDS[AlertSeverity.LOW]:
            anomalies.append(
                Anomaly(
                    metric_name=metric_name,
                    value=value,
                    z_score=round_half_up(z_score),
                    severity=get_severity_from_z_score(z_score),
                    message=(
                        f"{metric_name}: value {value:.2f} is {abs(z_score):.2f} "
                        f"standard deviations from mean {mean:.2f}"
                    ),
                    timestamp=timestamp,
                )
            )

    return anomalies


# ============================================================================
# MOVING AVERAGE
# ============================================================================

def calculate_moving_average(values: Sequence[float], window_size: int) -> MovingAverageResult:
    """
    Simple moving average. The window is clamped to the series length.

    The trend compares the last three MA points: a change larger than 5% of
    the MA average counts as rising or falling.
    """
    if not values:
        return MovingAverageResult()

    window = max(1, min(window_size, len(values)))
    ma_values = [
        round_half_up(sum(values[i - window + 1:i + 1]) / window)
        for i in range(window - 1, len(values))
    ]

    average, std_dev = _mean_and_std(ma_values)
    latest = ma_values[-1]

    trend = "stable"
    if len(ma_values) >= 3:
        first, last = ma_values[-3], ma_values[-1]
        if abs(last - first) > average * 0.05:
            if last > first:
                trend = "rising"
            elif last < first:
                trend = "falling"

    return MovingAverageResult(
        values=ma_values,
        average=round_half_up(average),
        standard_deviation=round_half_up(std_dev),
        latest=latest,
        trend=trend,
    )


# ============================================================================
# PEER COMPARISON
# ============================================================================

def _ratio_percentile(driver_value: float, zone_average: float) -> float:
    # 50 = at the zone average, 100 = twice the average or more
    if zone_average == 0:
        return 50.0
    return clamp(driver_value / zone_average * 50, 0, 100)


def _inverse_ratio_percentile(driver_value: float, zone_average: float) -> float:
    # Lower is better
    if zone_average == 0:
        return 100.0 if driver_value == 0 else 0.0
    return clamp(100 - driver_value / zone_average * 50, 0, 100)


def compare_to_peers(metrics: DriverMetrics, zone_averages: ZoneAverages) -> PeerComparisonResult:
    """
    Contrast a driver's rates with the zone averages.

    The per-metric "percentile" is a ratio-to-average estimate, not a rank
    among peers: driver/zone * 50, clamped to 0-100 (inverted for
    cancellation rate).
    """
    rates = delivery_rates(metrics)

    def peer(driver_value: float, zone_average: float, inverse: bool = False) -> PeerMetric:
        estimate = _inverse_ratio_percentile if inverse else _ratio_percentile
        return PeerMetric(
            driver_value=driver_value,
            zone_average=zone_average,
            percentile=estimate(driver_value, zone_average),
        )

    comparison = {
        "rating": peer(metrics.average_rating, zone_averages.average_rating),
        "completion_rate": peer(rates["completion_rate"], zone_averages.average_completion_rate),
        "on_time_rate": peer(rates["on_time_rate"], zone_averages.average_on_time_rate),
        "acceptance_rate": peer(rates["acceptance_rate"], zone_averages.average_acceptance_rate),
        "cancellation_rate": peer(
            rates["cancellation_rate"], zone_averages.average_cancellation_rate, inverse=True
        ),
    }

    overall = sum(m.percentile for m in comparison.values()) / len(comparison)
    score = calculate_driver_score(metrics)

    return PeerComparisonResult(
        driver_id=metrics.driver_id,
        zone_id=zone_averages.zone_id,
        metrics=comparison,
        overall_percentile=round_half_up(overall),
        is_outlier=overall < OUTLIER_LOW_PERCENTILE or overall > OUTLIER_HIGH_PERCENTILE,
        score=score,
        tier=determine_driver_tier(score),
    )


# ============================================================================
# TREND ANALYSIS (LINEAR REGRESSION)
# ============================================================================

def analyze_trend(values: Sequence[float]) -> TrendAnalysisResult:
    """Ordinary least squares of the series against its index."""
    if len(values) < 2:
        return TrendAnalysisResult(
            slope=0,
            intercept=values[0] if values else 0,
            r_squared=0,
            direction="stable",
            confidence=0,
        )

    n = len(values)
    sum_x = sum_y = sum_xy = sum_x2 = sum_y2 = 0.0
    for i, y in enumerate(values):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_x2 += i * i
        sum_y2 += y * y

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return TrendAnalysisResult(
            slope=0, intercept=sum_y / n, r_squared=0, direction="stable", confidence=0
        )

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    ss_total = sum_y2 - n * y_mean * y_mean
    ss_residual = sum((y - (intercept + slope * i)) ** 2 for i, y in enumerate(values))
    r_squared = 0.0 if ss_total == 0 else max(0.0, 1 - ss_residual / ss_total)

    if slope > 0.5:
        direction = "improving"
    elif slope < -0.5:
        direction = "declining"
    else:
        direction = "stable"

    return TrendAnalysisResult(
        slope=round_half_up(slope, 3),
        intercept=round_half_up(intercept),
        r_squared=round_half_up(r_squared, 3),
        direction=direction,
        confidence=min(100, int(round_half_up(r_squared * 100, 0))),
    )


# ============================================================================
# AUTO-SUSPEND
# ============================================================================

def aggregate_anomalies(
    driver_id: str,
    anomalies: Sequence[Anomaly],
    total_deliveries: int,
    log: Optional[ScoringLogger] = None,
) -> AggregatedAnomalies:
    """
    Roll up a driver's anomalies and decide on auto-suspend.

    Auto-suspend never applies below the minimum delivery volume.
    """
    rules = AUTO_SUSPEND_RULES
    critical_count = sum(1 for a in anomalies if a.severity == AlertSeverity.CRITICAL)
    high_count = sum(1 for a in anomalies if a.severity == AlertSeverity.HIGH)

    suspend_reason: Optional[str] = None
    if total_deliveries >= rules["min_deliveries_for_suspend"]:
        if critical_count >= rules["max_critical_anomalies"]:
            suspend_reason = (
                f"{critical_count} critical anomalies detected "
                f"(threshold: {rules['max_critical_anomalies']})"
            )
        elif high_count >= rules["max_high_anomalies"]:
            suspend_reason = (
                f"{high_count} high-severity anomalies detected "
                f"(threshold: {rules['max_high_anomalies']})"
            )
        elif len(anomalies) >= rules["max_total_anomalies"]:
            suspend_reason = (
                f"{len(anomalies)} total anomalies detected "
                f"(threshold: {rules['max_total_anomalies']})"
            )

    if critical_count > 0:
        risk_level = AlertSeverity.CRITICAL
    elif high_count > 0:
        risk_level = AlertSeverity.HIGH
    elif any(a.severity == AlertSeverity.MEDIUM for a in anomalies):
        risk_level = AlertSeverity.MEDIUM
    else:
        risk_level = AlertSeverity.LOW

    should_auto_suspend = suspend_reason is not None
    if should_auto_suspend:
        (log or logger).info(
            f"Auto-suspend triggered for driver {driver_id}: {suspend_reason}",
            context={
                "driver_id": driver_id,
                "critical_count": critical_count,
                "high_count": high_count,
                "total_anomalies": len(anomalies),
            },
        )

    return AggregatedAnomalies(
        driver_id=driver_id,
        anomalies=list(anomalies),
        risk_level=risk_level,
        should_auto_suspend=should_auto_suspend,
        suspend_reason=suspend_reason,
    )


def run_anomaly_pipeline(
    driver_id: str,
    metric_history: Mapping[str, Sequence[float]],
    total_deliveries: int,
    reference_time: Optional[datetime] = None,
    log: Optional[ScoringLogger] = None,
) -> AggregatedAnomalies:
    """Detect anomalies in every named series and aggregate them."""
    all_anomalies: List[Anomaly] = []
    for metric_name, values in metric_history.items():
        all_anomalies.extend(detect_anomalies(values, metric_name, reference_time))

    return aggregate_anomalies(driver_id, all_anomalies, total_deliveries, log)
