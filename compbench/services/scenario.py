"""
Scenario Evaluation Service

Applies a ScenarioInputs configuration to a provider and its matched market
benchmark, producing current vs. modeled compensation, percentiles and the
alignment gap (pay percentile minus productivity percentile).

Components:
1. merge_scenario: field-by-field override of a base scenario.
2. ScenarioResolver: per-run resolution of specialty and provider overrides.
3. resolve_modeled_cf: CF from the scenario's CF source mode.
4. evaluate_provider: full current/modeled evaluation for reporting.
5. pay_percentile_at_cf: the fast path called repeatedly by the CF search.

Pay percentiles use FTE-normalized total cash compensation against the
benchmark's total-compensation curve. The productivity percentile uses
normalized wRVUs against the productivity curve and is omitted when the
benchmark carries no productivity curve.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from compbench.models import (
    CFSourceMode,
    CompensationBreakdown,
    CompensationRecord,
    EffectiveRateResult,
    MarketBenchmark,
    ScenarioInputs,
    ScenarioOverride,
    ScenarioOverrides,
)
from compbench.services.interpolation import (
    PercentileResult,
    percentile_of_value,
    value_at_percentile,
)
from compbench.services.normalization import (
    compensation_at_cf,
    compute_effective_rate,
    get_basis_fte,
    get_clinical_fte,
    normalize_to_basis,
    normalized_productivity,
    total_cash_at_cf,
)
from compbench.services.specialty_match import normalize_specialty_key


# =============================================================================
# Warning Thresholds
# =============================================================================

# Clinical FTE below this is reported as a low-FTE risk
LOW_FTE_WARNING_THRESHOLD = 0.7

# Normalized wRVUs below this are reported as low volume
LOW_WRVU_WARNING_THRESHOLD = 1000.0

WARNING_LOW_FTE = "LOW_FTE"
WARNING_LOW_WRVU = "LOW_WRVU_VOLUME"
WARNING_NO_CURRENT_CF = "NO_CURRENT_CF"
WARNING_PRODUCTIVITY_OFF_SCALE = "PRODUCTIVITY_OFF_SCALE"
WARNING_PAY_OFF_SCALE = "PAY_OFF_SCALE"
WARNING_NO_PRODUCTIVITY_CURVE = "NO_PRODUCTIVITY_CURVE"


# =============================================================================
# Scenario Merging
# =============================================================================


def merge_scenario(base: ScenarioInputs, *fragments: Optional[ScenarioOverride]) -> ScenarioInputs:
    """
    Merge override fragments over a base scenario.

    Later fragments win; only fields set on a fragment replace base values.
    The merged scenario is validated again, so e.g. switching to a fixed CF
    without a fixedCF raises pydantic.ValidationError.
    """
    update: Dict[str, object] = {}
    for fragment in fragments:
        if fragment is not None:
            update.update(fragment.model_dump(exclude_none=True))
    if not update:
        return base
    return ScenarioInputs.model_validate({**base.model_dump(), **update})


class ScenarioResolver:
    """
    Resolves the effective scenario for each record of a run.

    Specialty overrides are looked up by the record's raw label and then by
    the matched benchmark specialty (both normalized). Provider overrides are
    keyed by providerId and applied last.
    """

    def __init__(self, base: ScenarioInputs, overrides: Optional[ScenarioOverrides] = None):
        self.base = base
        overrides = overrides or ScenarioOverrides()
        self._specialty_overrides = {
            normalize_specialty_key(label): fragment
            for label, fragment in overrides.specialties.items()
        }
        self._provider_overrides = dict(overrides.providers)
        self._cache: Dict[Tuple[str, Optional[str]], ScenarioInputs] = {}

    def _specialty_key(self, raw_label: str, matched_specialty: Optional[str]) -> str:
        for label in (raw_label, matched_specialty):
            key = normalize_specialty_key(label)
            if key and key in self._specialty_overrides:
                return key
        return ""

    def for_record(
        self,
        record: CompensationRecord,
        matched_specialty: Optional[str] = None,
    ) -> ScenarioInputs:
        specialty_key = self._specialty_key(record.specialty, matched_specialty)
        provider_key = record.providerId if record.providerId in self._provider_overrides else None
        cache_key = (specialty_key, provider_key)
        if cache_key not in self._cache:
            self._cache[cache_key] = merge_scenario(
                self.base,
                self._specialty_overrides.get(specialty_key),
                self._provider_overrides.get(provider_key) if provider_key else None,
            )
        return self._cache[cache_key]


# =============================================================================
# CF Resolution
# =============================================================================


def resolve_modeled_cf(scenario: ScenarioInputs, benchmark: Optional[MarketBenchmark]) -> Optional[float]:
    """
    CF implied by the scenario's CF source mode.

    Returns None when the mode needs a market curve and no benchmark is
    available.
    """
    if scenario.cfSource == CFSourceMode.FIXED:
        return scenario.fixedCF
    if benchmark is None:
        return None

    target_cf = max(0.0, value_at_percentile(scenario.targetPercentile, benchmark.cf))
    if scenario.cfSource == CFSourceMode.TARGET_MINUS_HAIRCUT:
        return target_cf * (1.0 - scenario.haircutPct / 100.0)
    return target_cf


def default_current_cf(record: CompensationRecord, benchmark: Optional[MarketBenchmark]) -> float:
    """The record's current CF, else the market median CF, else 0."""
    if record.currentCF is not None and record.currentCF > 0:
        return record.currentCF
    if benchmark is not None:
        return max(0.0, benchmark.cf.p50)
    return 0.0


# =============================================================================
# Evaluation
# =============================================================================


@dataclass(frozen=True)
class ProviderEvaluation:
    """
    Current vs. modeled evaluation of one provider under one scenario.

    Percentile fields are None when no benchmark is available or the provider
    has no FTE basis. Gaps are None when either percentile is missing.
    """
    current_cf: float
    modeled_cf: float
    current_compensation: CompensationBreakdown
    modeled_compensation: CompensationBreakdown
    current_pay: Optional[PercentileResult]
    modeled_pay: Optional[PercentileResult]
    productivity: Optional[PercentileResult]
    current_gap: Optional[float]
    modeled_gap: Optional[float]
    current_effective_rate: EffectiveRateResult
    modeled_effective_rate: EffectiveRateResult
    normalized_wrvus: Optional[float]
    normalized_current_tcc: Optional[float]
    warnings: Tuple[str, ...] = ()


def pay_percentile_at_cf(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: MarketBenchmark,
    cf: float,
) -> Optional[PercentileResult]:
    """Pay percentile (normalized TCC on the TCC curve) at a CF."""
    basis_fte = get_basis_fte(record, scenario.fteBasis)
    normalized_tcc = normalize_to_basis(
        total_cash_at_cf(record, scenario, benchmark, cf), basis_fte, scenario.targetFTE
    )
    if normalized_tcc is None:
        return None
    return percentile_of_value(normalized_tcc, benchmark.tcc)


def productivity_percentile(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: MarketBenchmark,
) -> Optional[PercentileResult]:
    """Productivity percentile, or None without a productivity curve or FTE basis."""
    if benchmark.wrvu is None:
        return None
    units = normalized_productivity(record, scenario)
    if units is None:
        return None
    return percentile_of_value(units, benchmark.wrvu)


def _gap(pay: Optional[PercentileResult], productivity: Optional[PercentileResult]) -> Optional[float]:
    if pay is None or productivity is None:
        return None
    return pay.percentile - productivity.percentile


def _collect_warnings(
    record: CompensationRecord,
    benchmark: Optional[MarketBenchmark],
    normalized_wrvus: Optional[float],
    productivity: Optional[PercentileResult],
    modeled_pay: Optional[PercentileResult],
) -> Tuple[str, ...]:
    warnings: List[str] = []
    if get_clinical_fte(record) < LOW_FTE_WARNING_THRESHOLD:
        warnings.append(WARNING_LOW_FTE)
    if normalized_wrvus is not None and normalized_wrvus < LOW_WRVU_WARNING_THRESHOLD:
        warnings.append(WARNING_LOW_WRVU)
    if record.currentCF is None or record.currentCF <= 0:
        warnings.append(WARNING_NO_CURRENT_CF)
    if benchmark is not None and benchmark.wrvu is None:
        warnings.append(WARNING_NO_PRODUCTIVITY_CURVE)
    if productivity is not None and productivity.off_scale:
        warnings.append(WARNING_PRODUCTIVITY_OFF_SCALE)
    if modeled_pay is not None and modeled_pay.off_scale:
        warnings.append(WARNING_PAY_OFF_SCALE)
    return tuple(warnings)


def evaluate_provider(
    record: CompensationRecord,
    benchmark: Optional[MarketBenchmark],
    scenario: ScenarioInputs,
    current_cf: Optional[float] = None,
    modeled_cf: Optional[float] = None,
) -> ProviderEvaluation:
    """
    Evaluate a provider at its current CF and at the modeled CF.

    Args:
        record: Provider record.
        benchmark: Matched benchmark, or None for unmatched providers
            (compensation is still computed, percentiles are omitted).
        scenario: Effective scenario (overrides already merged).
        current_cf: CF for the "current" side; defaults to the record's CF,
            then the market median CF.
        modeled_cf: CF for the "modeled" side; defaults to the scenario's
            resolved CF, then the current CF.

    Returns:
        ProviderEvaluation.
    """
    if current_cf is None:
        current_cf = default_current_cf(record, benchmark)
    if modeled_cf is None:
        modeled_cf = resolve_modeled_cf(scenario, benchmark)
        if modeled_cf is None:
            modeled_cf = current_cf

    current_compensation = compensation_at_cf(record, scenario, benchmark, current_cf)
    modeled_compensation = compensation_at_cf(record, scenario, benchmark, modeled_cf)

    basis_fte = get_basis_fte(record, scenario.fteBasis)
    normalized_wrvus = normalized_productivity(record, scenario)
    normalized_current_tcc = normalize_to_basis(
        current_compensation.total, basis_fte, scenario.targetFTE
    )
    normalized_modeled_tcc = normalize_to_basis(
        modeled_compensation.total, basis_fte, scenario.targetFTE
    )

    current_pay: Optional[PercentileResult] = None
    modeled_pay: Optional[PercentileResult] = None
    productivity: Optional[PercentileResult] = None
    if benchmark is not None:
        if normalized_current_tcc is not None:
            current_pay = percentile_of_value(normalized_current_tcc, benchmark.tcc)
        if normalized_modeled_tcc is not None:
            modeled_pay = percentile_of_value(normalized_modeled_tcc, benchmark.tcc)
        productivity = productivity_percentile(record, scenario, benchmark)

    return ProviderEvaluation(
        current_cf=current_cf,
        modeled_cf=modeled_cf,
        current_compensation=current_compensation,
        modeled_compensation=modeled_compensation,
        current_pay=current_pay,
        modeled_pay=modeled_pay,
        productivity=productivity,
        current_gap=_gap(current_pay, productivity),
        modeled_gap=_gap(modeled_pay, productivity),
        current_effective_rate=compute_effective_rate(record, scenario, benchmark, current_cf),
        modeled_effective_rate=compute_effective_rate(record, scenario, benchmark, modeled_cf),
        normalized_wrvus=normalized_wrvus,
        normalized_current_tcc=normalized_current_tcc,
        warnings=_collect_warnings(record, benchmark, normalized_wrvus, productivity, modeled_pay),
    )


__all__ = [
    "LOW_FTE_WARNING_THRESHOLD",
    "LOW_WRVU_WARNING_THRESHOLD",
    "merge_scenario",
    "ScenarioResolver",
    "resolve_modeled_cf",
    "default_current_cf",
    "ProviderEvaluation",
    "pay_percentile_at_cf",
    "productivity_percentile",
    "evaluate_provider",
]
