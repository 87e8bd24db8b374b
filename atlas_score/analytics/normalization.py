"""
Normalization helpers shared by every scoring dimension.
"""

import math


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Division that returns `default` instead of raising on a zero denominator."""
    if denominator == 0:
        return default
    return numerator / denominator


def round_half_up(value: float, digits: int = 2) -> float:
    """
    Round to `digits` decimals with ties going up (0.125 -> 0.13, -2.5 -> -2).

    Every reported score, rate and statistic goes through this instead of the
    built-in round(), which rounds ties to even.
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def normalize(value: float, min_value: float, max_value: float) -> float:
    """
    Rescale a value to 0-100 given min/max bounds.

    The value is clamped to the bounds first. A degenerate range carries no
    information and maps to the midpoint, 50.
    """
    if min_value == max_value:
        return 50.0
    clamped = clamp(value, min_value, max_value)
    return (clamped - min_value) / (max_value - min_value) * 100


def normalize_inverse(value: float, min_value: float, max_value: float) -> float:
    """Inverse normalization: a higher raw value gives a lower score."""
    return 100 - normalize(value, min_value, max_value)
