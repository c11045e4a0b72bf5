"""
Metric helper functions for habit analytics.
Implements the numeric primitives the services share: guarded ratios and
means, half-up rounding, and run-length streak detection over calendar days.

All statistical methods use pure numpy.
"""
import math
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    """numerator / denominator, or ``default`` when the denominator is zero."""
    if not denominator:
        return default
    return numerator / denominator


def safe_mean(values: Iterable[Optional[float]]) -> Optional[float]:
    """
    Mean of the non-null values, or None when there are none.

    Callers decide their own neutral substitution for the None case.
    """
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round with .5 going away from zero for positives, unlike banker's rounding.

    Returns an int when ndigits == 0.
    """
    factor = 10 ** ndigits
    rounded = math.floor(value * factor + 0.5) / factor
    if ndigits == 0:
        return int(rounded)
    return rounded


def round_optional(value: Optional[float], ndigits: int = 1) -> Optional[float]:
    """round_half_up that passes None through."""
    if value is None:
        return None
    return round_half_up(value, ndigits)


def percent(numerator: float, denominator: float) -> int:
    """Integer percent, half-up rounded, 0 for an empty denominator."""
    return round_half_up(safe_ratio(numerator, denominator) * 100)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def band_points(value: float, bands: Sequence, higher_is_better: bool = True) -> int:
    """
    Look up the points for ``value`` in an ordered band table.

    ``bands`` is a list of (threshold, points) checked in order. With
    higher_is_better the first threshold with value >= threshold wins;
    otherwise the first with value <= threshold wins. No match scores 0.
    """
    for threshold, points in bands:
        if higher_is_better and value >= threshold:
            return points
        if not higher_is_better and value <= threshold:
            return points
    return 0


def band_points_below(value: float, bands: Sequence) -> int:
    """First band whose threshold is strictly greater than ``value`` wins."""
    for threshold, points in bands:
        if value < threshold:
            return points
    return 0


def longest_consecutive_run(days: Iterable[date]) -> int:
    """
    Longest run of consecutive calendar days, using NumPy run-length encoding.

    Duplicates are collapsed first so two logs on one day count once.
    """
    unique_days = sorted(set(days))
    if not unique_days:
        return 0

    ordinals = np.array([d.toordinal() for d in unique_days], dtype=np.int64)
    if len(ordinals) == 1:
        return 1

    # A run breaks wherever the gap to the previous day is not exactly one
    breaks = np.flatnonzero(np.diff(ordinals) != 1)
    boundaries = np.concatenate(([-1], breaks, [len(ordinals) - 1]))
    run_lengths = np.diff(boundaries)
    return int(run_lengths.max())


def detect_trend_direction(first: float, second: float, threshold: float) -> str:
    """UP / DOWN / STABLE comparing a later value against an earlier one."""
    delta = second - first
    if delta > threshold:
        return "UP"
    if delta < -threshold:
        return "DOWN"
    return "STABLE"


def compute_trend_line(x_values: np.ndarray, y_values: np.ndarray) -> Dict[str, float]:
    """
    Computes linear regression trend line.

    Returns:
        {
            'slope': float,
            'intercept': float,
            'r_squared': float
        }
    """
    if len(x_values) < 2:
        return {'slope': 0.0, 'intercept': 0.0, 'r_squared': 0.0}

    coeffs = np.polyfit(x_values, y_values, 1)
    slope, intercept = coeffs

    y_pred = slope * x_values + intercept
    ss_res = np.sum((y_values - y_pred) ** 2)
    ss_tot = np.sum((y_values - np.mean(y_values)) ** 2)
    r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 0.0

    return {
        'slope': float(slope),
        'intercept': float(intercept),
        'r_squared': float(r_squared)
    }


def histogram(values: List[int], size: int) -> List[int]:
    """Count occurrences of each integer bucket 0..size-1."""
    if not values:
        return [0] * size
    return np.bincount(np.asarray(values, dtype=np.int64), minlength=size)[:size].tolist()
