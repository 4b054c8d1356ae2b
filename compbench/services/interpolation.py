"""
Percentile Curve Interpolation

Maps dollar (or wRVU) values to market percentiles and back using the four
survey points of a PercentileCurve (25th/50th/75th/90th).

Rules:
1. Inside [25, 90] both directions are piecewise linear between adjacent points.
2. Below the 25th, values are extrapolated with the 25-50 segment slope.
3. Above the 90th, values are extrapolated with the 75-90 segment slope.
4. The inverse lookup flags extrapolated results (below_range / above_range).
   Extrapolated percentiles are kept inside [0, 100] and the flag is always set
   when that happens.
5. A flat segment (two equal adjacent points) never divides by zero: the
   percentile of the flat segment's lower boundary is returned.

Usage:
    from compbench.services.interpolation import value_at_percentile, percentile_of_value

    cf_at_p60 = value_at_percentile(60, benchmark.cf)
    standing = percentile_of_value(52.0, benchmark.cf)
    if standing.off_scale:
        ...
"""

import math
from dataclasses import dataclass

from compbench.models import PercentileCurve, PercentileStanding


# =============================================================================
# Constants
# =============================================================================

LOWEST_BENCHMARK_PERCENTILE = 25.0
HIGHEST_BENCHMARK_PERCENTILE = 90.0

# Extrapolation slope spans (percentile points)
LOW_SEGMENT_SPAN = 25.0   # 25 -> 50
HIGH_SEGMENT_SPAN = 15.0  # 75 -> 90


@dataclass(frozen=True)
class PercentileResult:
    """
    Result of a value -> percentile lookup.

    Attributes:
        percentile: Percentile in [0, 100].
        below_range: The value was below the 25th percentile point.
        above_range: The value was above the 90th percentile point.
    """
    percentile: float
    below_range: bool = False
    above_range: bool = False

    @property
    def off_scale(self) -> bool:
        return self.below_range or self.above_range

    def to_standing(self) -> PercentileStanding:
        return PercentileStanding(
            percentile=self.percentile,
            belowRange=self.below_range,
            aboveRange=self.above_range,
        )


def is_off_scale(percentile: float) -> bool:
    """True when a percentile lies outside the benchmarked 25-90 range."""
    return percentile < LOWEST_BENCHMARK_PERCENTILE or percentile > HIGHEST_BENCHMARK_PERCENTILE


def value_at_percentile(percentile: float, curve: PercentileCurve) -> float:
    """
    Interpolate the curve value at a percentile.

    Percentiles outside [25, 90] are extrapolated, never clamped. Callers that
    display the result should flag it using is_off_scale(percentile).

    Args:
        percentile: Target percentile.
        curve: Market curve.

    Returns:
        Interpolated (or extrapolated) value.

    Example:
        >>> curve = PercentileCurve(p25=40, p50=50, p75=65, p90=80)
        >>> value_at_percentile(60, curve)
        56.0
    """
    if not math.isfinite(percentile):
        raise ValueError(f"percentile must be finite, got {percentile!r}")

    if percentile < LOWEST_BENCHMARK_PERCENTILE:
        slope = (curve.p50 - curve.p25) / LOW_SEGMENT_SPAN
        return curve.p25 - (LOWEST_BENCHMARK_PERCENTILE - percentile) * slope

    if percentile > HIGHEST_BENCHMARK_PERCENTILE:
        slope = (curve.p90 - curve.p75) / HIGH_SEGMENT_SPAN
        return curve.p90 + (percentile - HIGHEST_BENCHMARK_PERCENTILE) * slope

    points = curve.points()
    for (low_pct, low_value), (high_pct, high_value) in zip(points, points[1:]):
        if percentile <= high_pct:
            fraction = (percentile - low_pct) / (high_pct - low_pct)
            return low_value + fraction * (high_value - low_value)

    return curve.p90


def percentile_of_value(value: float, curve: PercentileCurve) -> PercentileResult:
    """
    Inverse lookup: the percentile standing of a value on the curve.

    Args:
        value: Dollar (or wRVU) value. Must be finite.
        curve: Market curve.

    Returns:
        PercentileResult with range flags set for extrapolated results.

    Raises:
        ValueError: If value is NaN or infinite.
    """
    if not math.isfinite(value):
        raise ValueError(f"value must be finite, got {value!r}")

    if value < curve.p25:
        slope = (curve.p50 - curve.p25) / LOW_SEGMENT_SPAN
        if slope <= 0:
            return PercentileResult(LOWEST_BENCHMARK_PERCENTILE, below_range=True)
        percentile = LOWEST_BENCHMARK_PERCENTILE - (curve.p25 - value) / slope
        return PercentileResult(max(0.0, percentile), below_range=True)

    if value > curve.p90:
        slope = (curve.p90 - curve.p75) / HIGH_SEGMENT_SPAN
        if slope <= 0:
            return PercentileResult(HIGHEST_BENCHMARK_PERCENTILE, above_range=True)
        percentile = HIGHEST_BENCHMARK_PERCENTILE + (value - curve.p90) / slope
        return PercentileResult(min(100.0, percentile), above_range=True)

    points = curve.points()
    for (low_pct, low_value), (high_pct, high_value) in zip(points, points[1:]):
        if value <= high_value:
            span = high_value - low_value
            if span <= 0:
                return PercentileResult(low_pct)
            fraction = (value - low_value) / span
            return PercentileResult(low_pct + fraction * (high_pct - low_pct))

    # Only reachable for curves that are not non-decreasing
    return PercentileResult(HIGHEST_BENCHMARK_PERCENTILE)


__all__ = [
    "LOWEST_BENCHMARK_PERCENTILE",
    "HIGHEST_BENCHMARK_PERCENTILE",
    "PercentileResult",
    "is_off_scale",
    "value_at_percentile",
    "percentile_of_value",
]
