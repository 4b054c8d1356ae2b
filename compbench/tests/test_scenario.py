"""
Tests for scenario merging and per-provider evaluation.
"""

import pytest
from pydantic import ValidationError

from compbench.models import (
    CFSourceMode,
    MarketBenchmark,
    ScenarioInputs,
    ScenarioOverride,
    ScenarioOverrides,
    ThresholdMethod,
)
from compbench.services.scenario import (
    ScenarioResolver,
    default_current_cf,
    evaluate_provider,
    merge_scenario,
    pay_percentile_at_cf,
    resolve_modeled_cf,
)
from compbench.tests.conftest import make_record


class TestMergeScenario:

    def test_later_fragments_win(self) -> None:
        base = ScenarioInputs(targetPercentile=40)
        merged = merge_scenario(
            base,
            ScenarioOverride(targetPercentile=50, haircutPct=10),
            ScenarioOverride(targetPercentile=60),
        )
        assert merged.targetPercentile == 60
        assert merged.haircutPct == 10
        assert base.targetPercentile == 40

    def test_no_fragments_returns_base(self) -> None:
        base = ScenarioInputs()
        assert merge_scenario(base, None) is base

    def test_merged_scenario_is_validated(self) -> None:
        with pytest.raises(ValidationError):
            merge_scenario(ScenarioInputs(), ScenarioOverride(cfSource=CFSourceMode.FIXED))

    def test_override_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValidationError):
            ScenarioOverride(targetPercentil=50)


class TestScenarioResolver:

    def test_provider_override_applies_after_specialty_override(self) -> None:
        overrides = ScenarioOverrides(
            specialties={'cardiology': ScenarioOverride(targetPercentile=50, haircutPct=2)},
            providers={'C-1': ScenarioOverride(targetPercentile=75)},
        )
        resolver = ScenarioResolver(ScenarioInputs(), overrides)
        first = resolver.for_record(make_record('C-1'), 'Cardiology')
        second = resolver.for_record(make_record('C-2'), 'Cardiology')
        assert (first.targetPercentile, first.haircutPct) == (75, 2)
        assert (second.targetPercentile, second.haircutPct) == (50, 2)

    def test_specialty_override_matches_benchmark_label(self) -> None:
        overrides = ScenarioOverrides(specialties={'Cardiology': ScenarioOverride(targetPercentile=55)})
        resolver = ScenarioResolver(ScenarioInputs(), overrides)
        scenario = resolver.for_record(make_record('P', specialty='Cards'), 'Cardiology')
        assert scenario.targetPercentile == 55

    def test_unrelated_records_get_base(self) -> None:
        base = ScenarioInputs()
        resolver = ScenarioResolver(base, ScenarioOverrides(providers={'X': ScenarioOverride(haircutPct=1)}))
        assert resolver.for_record(make_record('P'), 'Cardiology') is base


class TestModeledCF:

    def test_fixed(self, cardiology_benchmark) -> None:
        scenario = ScenarioInputs(cfSource=CFSourceMode.FIXED, fixedCF=52.5)
        assert resolve_modeled_cf(scenario, cardiology_benchmark) == 52.5
        assert resolve_modeled_cf(scenario, None) == 52.5

    def test_target_percentile(self, cardiology_benchmark) -> None:
        scenario = ScenarioInputs(targetPercentile=60)
        assert resolve_modeled_cf(scenario, cardiology_benchmark) == pytest.approx(56.0)

    def test_target_minus_haircut(self, cardiology_benchmark) -> None:
        scenario = ScenarioInputs(cfSource=CFSourceMode.TARGET_MINUS_HAIRCUT, targetPercentile=60, haircutPct=10)
        assert resolve_modeled_cf(scenario, cardiology_benchmark) == pytest.approx(50.4)

    def test_market_mode_without_benchmark(self) -> None:
        assert resolve_modeled_cf(ScenarioInputs(), None) is None

    def test_default_current_cf(self, cardiology_benchmark) -> None:
        assert default_current_cf(make_record('P', currentCF=47.0), cardiology_benchmark) == 47.0
        assert default_current_cf(make_record('P', currentCF=None), cardiology_benchmark) == 50.0
        assert default_current_cf(make_record('P', currentCF=None), None) == 0.0


class TestEvaluateProvider:

    def test_pay_percentile_is_monotonic_in_cf(self, cardiology_benchmark) -> None:
        """With an incentive in play, pay percentile never drops as CF rises."""
        record = make_record('P', baseSalary=300000.0, workRVUs=6500.0)
        scenario = ScenarioInputs(thresholdMethod=ThresholdMethod.ANNUAL, annualThreshold=4000.0)
        percentiles = [
            pay_percentile_at_cf(record, scenario, cardiology_benchmark, cf).percentile
            for cf in [20, 30, 40, 45, 50, 55, 60, 70, 90, 120]
        ]
        assert percentiles == sorted(percentiles)
        assert percentiles[-1] > percentiles[0]

    def test_current_and_modeled_gaps(self, cardiology_benchmark) -> None:
        """$480k at 4600 wRVUs: pay 70, productivity 40, gap 30 at any CF without incentive."""
        record = make_record('C-1', baseSalary=480000.0, workRVUs=4600.0)
        evaluation = evaluate_provider(record, cardiology_benchmark, ScenarioInputs())
        assert evaluation.current_cf == 50.0
        assert evaluation.modeled_cf == pytest.approx(46.0)
        assert evaluation.current_pay.percentile == pytest.approx(70.0)
        assert evaluation.productivity.percentile == pytest.approx(40.0)
        assert evaluation.current_gap == pytest.approx(30.0)
        assert evaluation.modeled_gap == pytest.approx(30.0)
        assert evaluation.normalized_current_tcc == pytest.approx(480000.0)

    def test_unmatched_provider_has_no_percentiles(self) -> None:
        record = make_record('P', specialty='Dermatology')
        evaluation = evaluate_provider(record, None, ScenarioInputs())
        assert evaluation.current_pay is None
        assert evaluation.current_gap is None
        assert evaluation.modeled_cf == 50.0
        assert evaluation.current_compensation.total == pytest.approx(400000.0)

    def test_warnings(self, tcc_curve, cf_curve) -> None:
        benchmark = MarketBenchmark(specialty='Cardiology', tcc=tcc_curve, cf=cf_curve)
        record = make_record('P', clinicalFTE=0.5, totalFTE=0.5, currentCF=None)
        evaluation = evaluate_provider(record, benchmark, ScenarioInputs())
        assert 'LOW_FTE' in evaluation.warnings
        assert 'NO_CURRENT_CF' in evaluation.warnings
        assert 'NO_PRODUCTIVITY_CURVE' in evaluation.warnings
        assert evaluation.productivity is None
