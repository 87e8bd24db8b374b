"""
Analytics for driver performance.

- Normalization primitives
- Driver scoring, tiers, deactivation and rating manipulation
- Anomaly detection, peer comparison and auto-suspend
- Engine orchestrating all of the above
"""

from .normalization import clamp, normalize, normalize_inverse, round_half_up, safe_div
from .driver_scoring import (
    analyze_performance_trend,
    batch_score_drivers,
    calculate_driver_score,
    calculate_tier_priority_bonus,
    check_deactivation,
    detect_rating_manipulation,
    determine_driver_tier,
    filter_drivers_by_min_tier,
    get_deactivation_thresholds,
    get_driver_rate_multiplier,
    get_driver_score_summary,
    get_score_breakdown,
    get_score_weights,
    get_tier_config,
    get_tier_configs,
    parse_tier,
)
from .anomaly_detection import (
    aggregate_anomalies,
    analyze_trend,
    calculate_moving_average,
    calculate_z_score,
    compare_to_peers,
    detect_anomalies,
    get_severity_from_z_score,
    run_anomaly_pipeline,
)
from .engine import AtlasScoreEngine

__all__ = [
    "clamp",
    "normalize",
    "normalize_inverse",
    "round_half_up",
    "safe_div",
    "analyze_performance_trend",
    "batch_score_drivers",
    "calculate_driver_score",
    "calculate_tier_priority_bonus",
    "check_deactivation",
    "detect_rating_manipulation",
    "determine_driver_tier",
    "filter_drivers_by_min_tier",
    "get_deactivation_thresholds",
    "get_driver_rate_multiplier",
    "get_driver_score_summary",
    "get_score_breakdown",
    "get_score_weights",
    "get_tier_config",
    "get_tier_configs",
    "parse_tier",
    "aggregate_anomalies",
    "analyze_trend",
    "calculate_moving_average",
    "calculate_z_score",
    "compare_to_peers",
    "detect_anomalies",
    "get_severity_from_z_score",
    "run_anomaly_pipeline",
    "AtlasScoreEngine",
]
