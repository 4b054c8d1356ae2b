"""
Test suite for eligibility and outlier filtering.

Verifies:
1. Each rule exclusion is evaluated independently and every reason is kept
2. Fence computation for the IQR, MAD and z-score methods
3. The two-pass filter: fences come from the provisional population only
   and are applied to every provider
4. Manual includes override everything except missing market / FTE basis
"""

from typing import List, Optional

import numpy as np
import pytest

from compbench.models import ExclusionReason, ExclusionRules, OutlierMethod, OutlierParams
from compbench.services.eligibility import (
    MAD_Z_CONSTANT,
    EligibilityInput,
    Fence,
    apply_manual_includes,
    apply_outlier_fences,
    classify_eligibility,
    classify_rule_exclusions,
    compute_fence,
    compute_fences,
    is_new_hire_below_threshold,
    rule_reasons,
)
from compbench.tests.conftest import make_record


def make_item(
    provider_id: str,
    matched: bool = True,
    basis_fte: float = 1.0,
    normalized_wrvus: Optional[float] = 5000.0,
    normalized_tcc: Optional[float] = 400000.0,
    effective_rate: Optional[float] = 80.0,
    **record_fields,
) -> EligibilityInput:
    return EligibilityInput(
        record=make_record(provider_id, **record_fields),
        matched=matched,
        basis_fte=basis_fte,
        normalized_wrvus=normalized_wrvus,
        normalized_tcc=normalized_tcc,
        effective_rate=effective_rate,
    )


@pytest.fixture
def population() -> List[EligibilityInput]:
    """
    Six eligible providers, one with extreme wRVUs, plus one on leave with
    even more extreme wRVUs.

    Provisional wRVUs 5000..5400 and 20000: Q1 = 5125, Q3 = 5375, so the
    IQR fence is [4750, 5750]. Median 5250 and MAD 150 put the default MAD
    fence at about [4472, 6028].
    """
    return [
        make_item('E-1', normalized_wrvus=5000.0),
        make_item('E-2', normalized_wrvus=5100.0),
        make_item('E-3', normalized_wrvus=5200.0),
        make_item('E-4', normalized_wrvus=5300.0),
        make_item('E-5', normalized_wrvus=5400.0),
        make_item('E-6', normalized_wrvus=20000.0),
        make_item('L-1', normalized_wrvus=30000.0, leaveOfAbsence=True),
    ]


class TestRuleExclusions:

    def test_eligible_provider_has_no_reasons(self) -> None:
        assert rule_reasons(make_item('P'), ExclusionRules()) == ()

    def test_all_applicable_reasons_are_kept_in_order(self) -> None:
        item = make_item('P', basis_fte=0.4, leaveOfAbsence=True, manualExclude=True)
        assert rule_reasons(item, ExclusionRules()) == (
            ExclusionReason.BASIS_FTE_BELOW_MIN,
            ExclusionReason.LOA_FLAGGED,
            ExclusionReason.MANUAL_EXCLUDE,
        )

    def test_missing_market_and_no_basis(self) -> None:
        item = make_item('P', matched=False, normalized_wrvus=None, normalized_tcc=None, effective_rate=None)
        assert rule_reasons(item, ExclusionRules()) == (
            ExclusionReason.MISSING_MARKET,
            ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS,
        )

    def test_low_wrvu_volume(self) -> None:
        item = make_item('P', normalized_wrvus=800.0)
        assert rule_reasons(item, ExclusionRules()) == (ExclusionReason.LOW_WRVU_VOLUME,)

    def test_manual_exclude_by_id(self) -> None:
        rules = ExclusionRules(manualExcludeIds=['P'])
        assert rule_reasons(make_item('P'), rules) == (ExclusionReason.MANUAL_EXCLUDE,)

    def test_leave_of_absence_rule_can_be_disabled(self) -> None:
        rules = ExclusionRules(excludeLeaveOfAbsence=False)
        assert rule_reasons(make_item('P', leaveOfAbsence=True), rules) == ()

    @pytest.mark.parametrize('tenure,threshold,expected', [
        (3, 12.0, True),
        (12, 12.0, False),
        (None, 12.0, True),
        (3, None, False),
    ])
    def test_new_hire_rule(self, tenure, threshold, expected) -> None:
        record = make_record('P', newHire=True, tenureMonths=tenure)
        rules = ExclusionRules(newHireMonthsThreshold=threshold)
        assert is_new_hire_below_threshold(record, rules) is expected

    def test_tenure_without_new_hire_flag_is_ignored(self) -> None:
        record = make_record('P', newHire=False, tenureMonths=1)
        assert is_new_hire_below_threshold(record, ExclusionRules()) is False


class TestComputeFence:

    def test_iqr_fence(self) -> None:
        fence = compute_fence([10, 11, 12, 13, 14], OutlierParams(method=OutlierMethod.IQR))
        assert fence == Fence(8.0, 16.0)

    def test_iqr_multiplier(self) -> None:
        fence = compute_fence([10, 11, 12, 13, 14], OutlierParams(method=OutlierMethod.IQR, iqrMultiplier=3.0))
        assert fence == Fence(5.0, 19.0)

    def test_mad_fence(self) -> None:
        fence = compute_fence([10, 11, 12, 13, 14], OutlierParams(method=OutlierMethod.MAD_Z))
        half_width = 3.5 * 1.0 / MAD_Z_CONSTANT
        assert fence.lower == pytest.approx(12.0 - half_width)
        assert fence.upper == pytest.approx(12.0 + half_width)

    def test_zscore_fence(self) -> None:
        values = [10, 12, 14, 16]
        fence = compute_fence(values, OutlierParams(method=OutlierMethod.ZSCORE))
        std = float(np.std(values))
        assert fence.lower == pytest.approx(13.0 - 3.0 * std)
        assert fence.upper == pytest.approx(13.0 + 3.0 * std)

    def test_small_population_has_no_fence(self) -> None:
        assert compute_fence([1, 2, 3], OutlierParams()) is None

    @pytest.mark.parametrize('method', list(OutlierMethod))
    def test_zero_spread_has_no_fence(self, method) -> None:
        assert compute_fence([5, 5, 5, 5, 5], OutlierParams(method=method)) is None

    def test_fence_contains_is_inclusive(self) -> None:
        fence = Fence(1.0, 2.0)
        assert fence.contains(1.0) and fence.contains(2.0)
        assert not fence.contains(2.01)


class TestTwoPassFilter:

    def test_fences_use_provisional_population_only(self, population) -> None:
        """The provider on leave is excluded in pass 1, so its 30000 wRVUs do not widen the fence."""
        decisions = classify_rule_exclusions(population, ExclusionRules())
        fences = compute_fences(population, decisions, OutlierParams(method=OutlierMethod.IQR))
        assert fences[ExclusionReason.OUTLIER_WRVU] == Fence(4750.0, 5750.0)
        # Identical TCC and rate values have no spread, so no fence
        assert ExclusionReason.OUTLIER_TCC not in fences
        assert ExclusionReason.OUTLIER_EFFECTIVE_RATE not in fences

    def test_default_mad_fence_from_provisional_population(self, population) -> None:
        """Median 5250 and MAD 150 give a half width of 3.5 * 150 / 0.6745."""
        decisions = classify_rule_exclusions(population, ExclusionRules())
        fence = compute_fences(population, decisions, OutlierParams())[ExclusionReason.OUTLIER_WRVU]
        half_width = 3.5 * 150.0 / MAD_Z_CONSTANT
        assert fence.lower == pytest.approx(5250.0 - half_width)
        assert fence.upper == pytest.approx(5250.0 + half_width)

    def test_fences_apply_to_all_providers(self, population) -> None:
        decisions = classify_eligibility(population, ExclusionRules(), OutlierParams())
        by_id = {d.provider_id: d for d in decisions}
        assert by_id['E-6'].reasons == (ExclusionReason.OUTLIER_WRVU,)
        assert by_id['L-1'].reasons == (ExclusionReason.LOA_FLAGGED, ExclusionReason.OUTLIER_WRVU)
        assert all(by_id[f'E-{i}'].included for i in range(1, 6))

    def test_pass_two_returns_new_decisions(self, population) -> None:
        decisions = classify_rule_exclusions(population, ExclusionRules())
        fences = compute_fences(population, decisions, OutlierParams())
        reclassified = apply_outlier_fences(population, decisions, fences)
        assert reclassified is not decisions
        assert decisions[5].reasons == ()
        assert reclassified[5].reasons == (ExclusionReason.OUTLIER_WRVU,)

    def test_disabled_fences(self, population) -> None:
        decisions = classify_eligibility(population, ExclusionRules(), OutlierParams(enabled=False))
        assert [d.provider_id for d in decisions if not d.included] == ['L-1']

    def test_metric_toggle(self, population) -> None:
        decisions = classify_eligibility(population, ExclusionRules(), OutlierParams(checkWRVU=False))
        assert [d.provider_id for d in decisions if not d.included] == ['L-1']

    def test_decisions_keep_input_order(self, population) -> None:
        decisions = classify_eligibility(population, ExclusionRules(), OutlierParams())
        assert [d.provider_id for d in decisions] == [item.record.providerId for item in population]


class TestManualInclude:

    def test_manual_include_overrides_soft_reasons(self, population) -> None:
        rules = ExclusionRules(manualIncludeIds=['E-6', 'L-1'])
        decisions = classify_eligibility(population, rules, OutlierParams())
        by_id = {d.provider_id: d for d in decisions}
        assert by_id['E-6'].included and by_id['E-6'].manually_included
        assert by_id['L-1'].included

    def test_manual_include_cannot_override_missing_market(self) -> None:
        item = make_item('P', matched=False, leaveOfAbsence=True)
        rules = ExclusionRules(manualIncludeIds=['P'])
        decisions = apply_manual_includes(classify_rule_exclusions([item], rules), rules)
        assert decisions[0].reasons == (ExclusionReason.MISSING_MARKET,)
        assert not decisions[0].included
