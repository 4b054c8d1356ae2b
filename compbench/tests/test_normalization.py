"""
Tests for FTE normalization, incentive thresholds and the effective rate.
"""

import pytest

from compbench.models import AdditionalTCC, FTEBasis, ScenarioInputs, ThresholdMethod
from compbench.services.normalization import (
    additional_tcc,
    compensation_at_cf,
    compute_effective_rate,
    compute_incentive,
    get_basis_fte,
    get_clinical_base,
    get_clinical_fte,
    get_productivity_units,
    has_benchmarkable_basis,
    normalize_to_basis,
    normalized_productivity,
    resolve_incentive_threshold,
    total_cash_at_cf,
)
from compbench.tests.conftest import make_record


class TestFTEHelpers:

    def test_clinical_fte_falls_back_to_total(self) -> None:
        assert get_clinical_fte(make_record('P', clinicalFTE=None, totalFTE=0.8)) == 0.8
        assert get_clinical_fte(make_record('P', clinicalFTE=0.0, totalFTE=0.8)) == 0.8
        assert get_clinical_fte(make_record('P', clinicalFTE=None, totalFTE=0.0)) == 0.0

    def test_basis_fte_by_basis(self) -> None:
        record = make_record('P', totalFTE=1.0, clinicalFTE=0.6)
        assert get_basis_fte(record, FTEBasis.CLINICAL) == 0.6
        assert get_basis_fte(record, FTEBasis.TOTAL) == 1.0
        assert get_basis_fte(record, FTEBasis.RAW) == 1.0

    def test_raw_basis_leaves_values_unscaled(self) -> None:
        record = make_record('P', totalFTE=0.5, clinicalFTE=0.5, workRVUs=2800.0)
        scenario = ScenarioInputs(fteBasis=FTEBasis.RAW)
        assert normalized_productivity(record, scenario) == pytest.approx(2800.0)
        assert normalized_productivity(record, ScenarioInputs()) == pytest.approx(5600.0)

    def test_clinical_base_prorates_base_salary(self) -> None:
        record = make_record('P', totalFTE=1.0, clinicalFTE=0.8, baseSalary=500000.0)
        assert get_clinical_base(record) == pytest.approx(400000.0)

    def test_clinical_base_prefers_explicit_clinical_salary(self) -> None:
        record = make_record('P', clinicalFTE=0.8, baseSalary=500000.0, clinicalFTESalary=420000.0)
        assert get_clinical_base(record) == 420000.0

    def test_productivity_units(self) -> None:
        assert get_productivity_units(make_record('P', workRVUs=5000.0, outsideWRVUs=500.0)) == 5500.0
        assert get_productivity_units(make_record('P', workRVUs=5000.0, totalWRVUs=6000.0)) == 6000.0
        assert get_productivity_units(make_record('P', workRVUs=5000.0), growth_pct=10.0) == pytest.approx(5500.0)

    @pytest.mark.parametrize('basis_fte', [0.0, -1.0, float('inf')])
    def test_normalize_without_basis_returns_none(self, basis_fte) -> None:
        assert normalize_to_basis(1000.0, basis_fte) is None

    def test_normalize_scales_to_target_fte(self) -> None:
        assert normalize_to_basis(3000.0, 0.5) == pytest.approx(6000.0)
        assert normalize_to_basis(3000.0, 0.5, target_fte=0.8) == pytest.approx(4800.0)


class TestIncentive:

    def test_derived_threshold_is_base_over_cf(self) -> None:
        record = make_record('P', baseSalary=400000.0)
        threshold = resolve_incentive_threshold(record, ScenarioInputs(), None, 50.0, 400000.0)
        assert threshold == pytest.approx(8000.0)

    def test_derived_threshold_needs_positive_cf(self) -> None:
        record = make_record('P')
        assert resolve_incentive_threshold(record, ScenarioInputs(), None, 0.0, 400000.0) is None

    def test_annual_threshold_prefers_scenario_then_record(self) -> None:
        record = make_record('P', currentThreshold=4500.0)
        scenario = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL, annualThreshold=4000.0)
        assert resolve_incentive_threshold(record, scenario, None, 50.0, 400000.0) == 4000.0
        scenario = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL)
        assert resolve_incentive_threshold(record, scenario, None, 50.0, 400000.0) == 4500.0

    def test_wrvu_percentile_threshold_scales_by_clinical_fte(self, cardiology_benchmark) -> None:
        record = make_record('P', clinicalFTE=0.5)
        scenario = ScenarioInputs(thresholdMethod=ThresholdMethod.WRVU_PERCENTILE, thresholdPercentile=50)
        threshold = resolve_incentive_threshold(record, scenario, cardiology_benchmark, 50.0, 200000.0)
        assert threshold == pytest.approx(2500.0)

    def test_compute_incentive(self) -> None:
        assert compute_incentive(6000.0, 4000.0, 50.0) == pytest.approx(100000.0)
        assert compute_incentive(3000.0, 4000.0, 50.0) == 0.0
        assert compute_incentive(6000.0, None, 50.0) == 0.0

    def test_components_follow_scenario_toggles(self) -> None:
        record = make_record(
            'P', baseSalary=300000.0, qualityPayments=10000.0, otherIncentives=5000.0, workRVUs=6000.0,
        )
        scenario = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL, annualThreshold=4000.0)
        breakdown = compensation_at_cf(record, scenario, None, 50.0)
        assert breakdown.clinicalBase == 300000.0
        assert breakdown.qualityPayments == 10000.0
        assert breakdown.otherIncentives == 0.0
        assert breakdown.incentive == pytest.approx(100000.0)
        assert breakdown.total == pytest.approx(410000.0)

        no_extras = scenario.model_copy(update={
            'includeQualityPayments': False,
            'includeProductivityIncentive': False,
            'includeOtherIncentives': True,
        })
        assert total_cash_at_cf(record, no_extras, None, 50.0) == pytest.approx(305000.0)

    def test_additional_tcc_layers(self) -> None:
        """5% of a $240k clinical base, $20k per 1.0 FTE at 0.6 FTE, and $3k flat."""
        record = make_record('P', totalFTE=1.0, clinicalFTE=0.6, baseSalary=400000.0, workRVUs=0.0)
        scenario = ScenarioInputs(
            additionalTCC=AdditionalTCC(percentOfBase=5.0, dollarPer1p0FTE=20000.0, flatDollar=3000.0),
        )
        assert additional_tcc(record, scenario, 240000.0) == pytest.approx(12000.0 + 12000.0 + 3000.0)

        breakdown = compensation_at_cf(record, scenario, None, 50.0)
        assert breakdown.additionalTCC == pytest.approx(27000.0)
        assert breakdown.total == pytest.approx(240000.0 + 27000.0)
        assert total_cash_at_cf(record, scenario, None, 50.0) == pytest.approx(breakdown.total)

    def test_no_layers_by_default(self) -> None:
        breakdown = compensation_at_cf(make_record('P'), ScenarioInputs(), None, 50.0)
        assert breakdown.additionalTCC == 0.0


class TestEffectiveRate:

    def test_effective_rate_and_cf_percentile(self, cardiology_benchmark) -> None:
        """$280k at 0.5 FTE with 2800 wRVUs normalizes to $560k / 5600 wRVUs = $100/wRVU."""
        record = make_record(
            'P', totalFTE=0.5, clinicalFTE=0.5, baseSalary=280000.0, workRVUs=2800.0,
        )
        scenario = ScenarioInputs(includeProductivityIncentive=False)
        result = compute_effective_rate(record, scenario, cardiology_benchmark, 50.0)
        assert result.hasBenchmarkableBasis is True
        assert result.normalizedCompensation == pytest.approx(560000.0)
        assert result.normalizedProductivity == pytest.approx(5600.0)
        assert result.effectiveRate == pytest.approx(100.0)
        assert result.percentile.aboveRange is True

    def test_zero_productivity_has_no_basis(self, cardiology_benchmark) -> None:
        record = make_record('P', workRVUs=0.0)
        result = compute_effective_rate(record, ScenarioInputs(), cardiology_benchmark, 50.0)
        assert result.hasBenchmarkableBasis is False
        assert result.effectiveRate is None
        assert result.percentile is None
        assert has_benchmarkable_basis(record, ScenarioInputs()) is False

    def test_zero_fte_has_no_basis(self) -> None:
        record = make_record('P', totalFTE=0.0, clinicalFTE=0.0)
        result = compute_effective_rate(record, ScenarioInputs(), None, 50.0)
        assert result.hasBenchmarkableBasis is False
        assert result.normalizedCompensation is None
