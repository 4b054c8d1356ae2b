"""
Eligibility and Outlier Filtering Service

Classifies each provider of a specialty as included in or excluded from the
specialty statistics. Excluded providers keep every reason that applied so
they can be listed in the audit trail.

Two explicit passes:
1. Rule pass (classify_rule_exclusions): missing market, no FTE basis, FTE
   below minimum, low wRVU volume, leave of absence, new hire below tenure
   threshold, manual exclude. Providers without a rule reason form the
   provisional population.
2. Fence pass (apply_outlier_fences): fences on normalized wRVUs, normalized
   TCC and effective rate are computed from the provisional population only,
   then every provider is re-classified against them. The pass returns a new
   list of decisions; pass-1 decisions are not modified.

Manual include ids override every reason except missing market and missing
FTE basis, which make a provider impossible to benchmark.

Fence methods (OutlierMethod):
- iqr: [Q1 - k*IQR, Q3 + k*IQR] with numpy linear-interpolated quartiles
- mad_z: |0.6745 * (x - median) / MAD| > threshold
- zscore: |x - mean| / std > threshold (population std)
A population smaller than minPopulation, or with zero spread, gets no fence.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from compbench.models import (
    CompensationRecord,
    ExclusionReason,
    ExclusionRules,
    OutlierMethod,
    OutlierParams,
)


logger = logging.getLogger(__name__)


# Modified z-score constant (0.6745 = z of the 75th percentile of N(0,1))
MAD_Z_CONSTANT = 0.6745

# Reasons a manual include cannot override
HARD_EXCLUSION_REASONS = frozenset({
    ExclusionReason.MISSING_MARKET,
    ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS,
})


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class EligibilityInput:
    """
    Values the filter needs for one provider.

    Attributes:
        record: The provider record.
        matched: A market benchmark was found.
        basis_fte: FTE used for normalization.
        normalized_wrvus: wRVUs at target FTE, None without an FTE basis.
        normalized_tcc: Current TCC at target FTE, None without an FTE basis.
        effective_rate: Current effective rate, None without a benchmarkable basis.
    """
    record: CompensationRecord
    matched: bool
    basis_fte: float
    normalized_wrvus: Optional[float]
    normalized_tcc: Optional[float]
    effective_rate: Optional[float]


@dataclass(frozen=True)
class EligibilityDecision:
    """Inclusion decision with its ordered reasons."""
    provider_id: str
    reasons: Tuple[ExclusionReason, ...] = ()
    manually_included: bool = False

    @property
    def included(self) -> bool:
        return not self.reasons


@dataclass(frozen=True)
class Fence:
    """Closed interval of non-outlier values."""
    lower: float
    upper: float

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


def _ordered(reasons: Iterable[ExclusionReason]) -> Tuple[ExclusionReason, ...]:
    reason_set = set(reasons)
    return tuple(reason for reason in ExclusionReason if reason in reason_set)


def _usable(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


# =============================================================================
# Pass 1: Rule Exclusions
# =============================================================================


def is_new_hire_below_threshold(record: CompensationRecord, rules: ExclusionRules) -> bool:
    """
    New-hire rule. A flagged new hire with unknown tenure counts as below
    the threshold; a threshold of None disables the rule.
    """
    if not record.newHire or rules.newHireMonthsThreshold is None:
        return False
    if record.tenureMonths is None:
        return True
    return record.tenureMonths < rules.newHireMonthsThreshold


def rule_reasons(item: EligibilityInput, rules: ExclusionRules) -> Tuple[ExclusionReason, ...]:
    """Rule-based exclusion reasons for one provider, each evaluated independently."""
    record = item.record
    reasons = set()

    if not item.matched:
        reasons.add(ExclusionReason.MISSING_MARKET)
    if not _usable(item.normalized_wrvus) or item.normalized_wrvus <= 0:
        reasons.add(ExclusionReason.NO_BENCHMARKABLE_FTE_BASIS)
    if item.basis_fte < rules.minBasisFTE:
        reasons.add(ExclusionReason.BASIS_FTE_BELOW_MIN)
    if _usable(item.normalized_wrvus) and item.normalized_wrvus < rules.minWRVUPerFTE:
        reasons.add(ExclusionReason.LOW_WRVU_VOLUME)
    if rules.excludeLeaveOfAbsence and record.leaveOfAbsence:
        reasons.add(ExclusionReason.LOA_FLAGGED)
    if is_new_hire_below_threshold(record, rules):
        reasons.add(ExclusionReason.NEW_HIRE_BELOW_THRESHOLD)
    if record.manualExclude or record.providerId in rules.manualExcludeIds:
        reasons.add(ExclusionReason.MANUAL_EXCLUDE)

    return _ordered(reasons)


def classify_rule_exclusions(
    items: Sequence[EligibilityInput],
    rules: ExclusionRules,
) -> List[EligibilityDecision]:
    """Pass 1: rule reasons for every provider."""
    return [
        EligibilityDecision(provider_id=item.record.providerId, reasons=rule_reasons(item, rules))
        for item in items
    ]


# =============================================================================
# Pass 2: Outlier Fences
# =============================================================================


def compute_fence(values: Sequence[float], params: OutlierParams) -> Optional[Fence]:
    """
    Compute the non-outlier interval for a population.

    Args:
        values: Finite metric values of the provisional population.
        params: Fence method and multipliers.

    Returns:
        Fence, or None when the population is too small or has no spread.
    """
    if len(values) < params.minPopulation:
        return None

    data = np.asarray(values, dtype=float)

    if params.method == OutlierMethod.IQR:
        q1, q3 = np.percentile(data, [25, 75])
        iqr = float(q3 - q1)
        if iqr <= 0:
            return None
        return Fence(float(q1) - params.iqrMultiplier * iqr, float(q3) + params.iqrMultiplier * iqr)

    if params.method == OutlierMethod.MAD_Z:
        median = float(np.median(data))
        mad = float(np.median(np.abs(data - median)))
        if mad <= 0:
            return None
        half_width = params.madZThreshold * mad / MAD_Z_CONSTANT
        return Fence(median - half_width, median + half_width)

    mean = float(np.mean(data))
    std = float(np.std(data))
    if std <= 0:
        return None
    return Fence(mean - params.zThreshold * std, mean + params.zThreshold * std)


# Metric accessor per outlier reason, in reporting order
_FENCED_METRICS: Tuple[Tuple[ExclusionReason, str, Callable[[EligibilityInput], Optional[float]]], ...] = (
    (ExclusionReason.OUTLIER_WRVU, "checkWRVU", lambda item: item.normalized_wrvus),
    (ExclusionReason.OUTLIER_TCC, "checkTCC", lambda item: item.normalized_tcc),
    (ExclusionReason.OUTLIER_EFFECTIVE_RATE, "checkEffectiveRate", lambda item: item.effective_rate),
)


def compute_fences(
    items: Sequence[EligibilityInput],
    decisions: Sequence[EligibilityDecision],
    params: OutlierParams,
) -> Dict[ExclusionReason, Fence]:
    """Fences per outlier reason, computed over the provisional population only."""
    provisional = [item for item, decision in zip(items, decisions) if decision.included]
    fences: Dict[ExclusionReason, Fence] = {}
    for reason, toggle, metric in _FENCED_METRICS:
        if not getattr(params, toggle):
            continue
        values = [metric(item) for item in provisional if _usable(metric(item))]
        fence = compute_fence(values, params)
        if fence is not None:
            fences[reason] = fence
    return fences


def apply_outlier_fences(
    items: Sequence[EligibilityInput],
    decisions: Sequence[EligibilityDecision],
    fences: Dict[ExclusionReason, Fence],
) -> List[EligibilityDecision]:
    """Re-classify every provider against the fences; returns new decisions."""
    reclassified: List[EligibilityDecision] = []
    for item, decision in zip(items, decisions):
        outlier_reasons = set()
        for reason, _, metric in _FENCED_METRICS:
            fence = fences.get(reason)
            value = metric(item)
            if fence is not None and _usable(value) and not fence.contains(value):
                outlier_reasons.add(reason)
        if outlier_reasons:
            decision = replace(decision, reasons=_ordered(set(decision.reasons) | outlier_reasons))
        reclassified.append(decision)
    return reclassified


def apply_manual_includes(
    decisions: Sequence[EligibilityDecision],
    rules: ExclusionRules,
) -> List[EligibilityDecision]:
    """Drop overridable reasons for manually included providers."""
    if not rules.manualIncludeIds:
        return list(decisions)
    include_ids = set(rules.manualIncludeIds)
    result: List[EligibilityDecision] = []
    for decision in decisions:
        if decision.provider_id in include_ids:
            decision = replace(
                decision,
                reasons=_ordered(r for r in decision.reasons if r in HARD_EXCLUSION_REASONS),
                manually_included=True,
            )
        result.append(decision)
    return result


# =============================================================================
# Entry Point
# =============================================================================


def classify_eligibility(
    items: Sequence[EligibilityInput],
    rules: ExclusionRules,
    params: OutlierParams,
) -> List[EligibilityDecision]:
    """
    Classify a specialty's providers.

    Args:
        items: One EligibilityInput per provider mapped to the specialty.
        rules: Rule thresholds.
        params: Outlier fence configuration.

    Returns:
        Decisions in the same order as items.
    """
    decisions = classify_rule_exclusions(items, rules)

    if params.enabled:
        fences = compute_fences(items, decisions, params)
        if fences:
            logger.debug(
                "Outlier fences: "
                + ", ".join(f"{reason.value}=[{f.lower:.2f}, {f.upper:.2f}]" for reason, f in fences.items())
            )
        decisions = apply_outlier_fences(items, decisions, fences)

    return apply_manual_includes(decisions, rules)


__all__ = [
    "MAD_Z_CONSTANT",
    "HARD_EXCLUSION_REASONS",
    "EligibilityInput",
    "EligibilityDecision",
    "Fence",
    "is_new_hire_below_threshold",
    "rule_reasons",
    "classify_rule_exclusions",
    "compute_fence",
    "compute_fences",
    "apply_outlier_fences",
    "apply_manual_includes",
    "classify_eligibility",
]
