"""
Test suite for percentile curve interpolation.

Verifies:
1. Linear interpolation between the 25/50/75/90 benchmark points
2. Inverse lookup (value -> percentile) and the round trip between the two
3. Extrapolation outside the benchmarked range with range flags
4. Degenerate curves (flat segments, flat tails) and non-finite input
"""

import math

import pytest

from compbench.models import PercentileCurve
from compbench.services.interpolation import (
    PercentileResult,
    is_off_scale,
    percentile_of_value,
    value_at_percentile,
)


class TestValueAtPercentile:
    """Tests for percentile -> value lookups."""

    def test_interpolates_between_50th_and_75th(self, cf_curve: PercentileCurve) -> None:
        """
        Percentile 60 on 40/50/65/80 is $50 + (60-50)/(75-50) * (65-50) = $56.
        """
        assert value_at_percentile(60, cf_curve) == pytest.approx(56.0)

    @pytest.mark.parametrize('percentile,expected', [
        (25, 40.0),
        (50, 50.0),
        (75, 65.0),
        (90, 80.0),
    ])
    def test_benchmark_points_are_exact(self, cf_curve, percentile, expected) -> None:
        """The curve's own points are returned unchanged."""
        assert value_at_percentile(percentile, cf_curve) == pytest.approx(expected)

    def test_extrapolates_below_25th_with_low_segment_slope(self, cf_curve) -> None:
        """Below the 25th the 25-50 slope ($0.40 per point) is continued."""
        assert value_at_percentile(10, cf_curve) == pytest.approx(34.0)

    def test_extrapolates_above_90th_with_high_segment_slope(self, cf_curve) -> None:
        """Above the 90th the 75-90 slope ($1 per point) is continued."""
        assert value_at_percentile(95, cf_curve) == pytest.approx(85.0)

    def test_rejects_non_finite_percentile(self, cf_curve) -> None:
        with pytest.raises(ValueError):
            value_at_percentile(math.nan, cf_curve)


class TestPercentileOfValue:
    """Tests for value -> percentile lookups."""

    def test_inverse_of_worked_example(self, cf_curve) -> None:
        result = percentile_of_value(56.0, cf_curve)
        assert result.percentile == pytest.approx(60.0)
        assert not result.off_scale

    @pytest.mark.parametrize('percentile', [25, 33.3, 50, 62.5, 75, 82, 90])
    def test_round_trip_within_benchmarked_range(self, tcc_curve, percentile) -> None:
        """percentile_of_value(value_at_percentile(p)) recovers p on a strictly increasing curve."""
        value = value_at_percentile(percentile, tcc_curve)
        assert percentile_of_value(value, tcc_curve).percentile == pytest.approx(percentile)

    def test_below_range_is_flagged(self, cf_curve) -> None:
        result = percentile_of_value(34.0, cf_curve)
        assert result.percentile == pytest.approx(10.0)
        assert result.below_range is True
        assert result.above_range is False

    def test_above_range_is_flagged(self, cf_curve) -> None:
        result = percentile_of_value(85.0, cf_curve)
        assert result.percentile == pytest.approx(95.0)
        assert result.above_range is True

    def test_extrapolation_is_clamped_to_0_and_100(self, cf_curve) -> None:
        """Only the extrapolated tails are clamped; both keep their flags."""
        low = percentile_of_value(0.0, cf_curve)
        high = percentile_of_value(1000.0, cf_curve)
        assert low.percentile == 0.0 and low.below_range
        assert high.percentile == 100.0 and high.above_range

    def test_flat_segment_returns_lower_percentile(self) -> None:
        """A value equal to a flat segment resolves to the segment's lower percentile."""
        curve = PercentileCurve(p25=40, p50=50, p75=50, p90=80)
        assert percentile_of_value(50.0, curve).percentile == pytest.approx(50.0)

    def test_flat_tail_returns_boundary_percentile(self) -> None:
        curve = PercentileCurve(p25=50, p50=50, p75=60, p90=60)
        assert percentile_of_value(40.0, curve) == PercentileResult(25.0, below_range=True)
        assert percentile_of_value(70.0, curve) == PercentileResult(90.0, above_range=True)

    def test_rejects_nan_and_infinity(self, cf_curve) -> None:
        with pytest.raises(ValueError):
            percentile_of_value(math.nan, cf_curve)
        with pytest.raises(ValueError):
            percentile_of_value(math.inf, cf_curve)

    def test_to_standing_copies_flags(self, cf_curve) -> None:
        standing = percentile_of_value(85.0, cf_curve).to_standing()
        assert standing.percentile == pytest.approx(95.0)
        assert standing.aboveRange is True
        assert standing.belowRange is False


class TestOffScale:

    @pytest.mark.parametrize('percentile,expected', [
        (24.9, True),
        (25.0, False),
        (60.0, False),
        (90.0, False),
        (90.1, True),
    ])
    def test_is_off_scale(self, percentile, expected) -> None:
        assert is_off_scale(percentile) is expected
