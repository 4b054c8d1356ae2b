"""
Compensation Normalization and Effective-Rate Calculation

Puts every provider on a common FTE basis so that pay and productivity can be
compared with market survey curves, and derives the effective pay rate
($ per normalized wRVU).

Components:
1. FTE helpers: clinical FTE with fallback to total FTE, basis FTE per scenario.
2. Clinical base: explicit clinical salary, else base salary prorated by
   clinical/total FTE.
3. Productivity incentive at a CF: max(0, wRVUs - threshold) * CF, where the
   threshold depends on the scenario's ThresholdMethod. Because the derived
   threshold is base / CF, the incentive itself depends on the CF in effect.
4. Total qualifying cash compensation: clinical base plus each component the
   scenario enables, plus the scenario's additional TCC layers (percent of
   base, dollars per 1.0 clinical FTE, flat dollars).
5. Effective rate: normalized compensation / normalized productivity, with an
   explicit "no benchmarkable basis" result instead of NaN.

All functions are pure: records, benchmarks and scenarios are never modified.
"""

import math
from typing import Optional, Tuple

from compbench.models import (
    CompensationBreakdown,
    CompensationRecord,
    EffectiveRateResult,
    FTEBasis,
    MarketBenchmark,
    ScenarioInputs,
    ThresholdMethod,
)
from compbench.services.interpolation import percentile_of_value, value_at_percentile


# =============================================================================
# FTE and Base Helpers
# =============================================================================


def get_clinical_fte(record: CompensationRecord) -> float:
    """Clinical FTE, falling back to total FTE, else 0."""
    if record.clinicalFTE is not None and record.clinicalFTE > 0:
        return record.clinicalFTE
    if record.totalFTE > 0:
        return record.totalFTE
    return 0.0


def get_basis_fte(record: CompensationRecord, basis: FTEBasis = FTEBasis.CLINICAL) -> float:
    """FTE used for normalization under the given basis (1.0 for raw)."""
    if basis == FTEBasis.RAW:
        return 1.0
    if basis == FTEBasis.TOTAL:
        return record.totalFTE if record.totalFTE > 0 else 0.0
    return get_clinical_fte(record)


def get_clinical_base(record: CompensationRecord) -> float:
    """
    Clinical base salary.

    Uses clinicalFTESalary when present; otherwise prorates baseSalary by
    clinical FTE / total FTE.
    """
    if record.clinicalFTESalary is not None:
        return record.clinicalFTESalary
    clinical_fte = get_clinical_fte(record)
    if record.totalFTE > 0 and clinical_fte > 0:
        return record.baseSalary * clinical_fte / record.totalFTE
    return record.baseSalary


def get_productivity_units(record: CompensationRecord, growth_pct: float = 0.0) -> float:
    """Total wRVUs (explicit total, else work + outside) with optional growth."""
    if record.totalWRVUs is not None:
        units = record.totalWRVUs
    else:
        units = record.workRVUs + record.outsideWRVUs
    return units * (1.0 + growth_pct / 100.0)


def normalize_to_basis(value: float, basis_fte: float, target_fte: float = 1.0) -> Optional[float]:
    """
    Scale a value from the provider's FTE to the target FTE.

    Returns None when the basis FTE is not positive or the result is not finite.
    """
    if basis_fte <= 0 or not math.isfinite(basis_fte):
        return None
    normalized = value / basis_fte * target_fte
    if not math.isfinite(normalized):
        return None
    return normalized


# =============================================================================
# Incentive
# =============================================================================


def resolve_incentive_threshold(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: Optional[MarketBenchmark],
    cf: float,
    clinical_base: float,
) -> Optional[float]:
    """
    Annual wRVU threshold above which the productivity incentive is paid.

    - annual: scenario.annualThreshold, else the record's currentThreshold
    - wrvu_percentile: market wRVU value at scenario.thresholdPercentile,
      scaled by clinical FTE
    - derived (and fallback when the above lack data): clinical base / CF

    Returns None when no threshold can be formed (derived with CF <= 0).
    """
    method = scenario.thresholdMethod

    if method == ThresholdMethod.ANNUAL:
        threshold = scenario.annualThreshold
        if threshold is None:
            threshold = record.currentThreshold
        if threshold is not None:
            return threshold

    if method == ThresholdMethod.WRVU_PERCENTILE and benchmark is not None and benchmark.wrvu is not None:
        market_wrvu = value_at_percentile(scenario.thresholdPercentile, benchmark.wrvu)
        return max(0.0, market_wrvu) * get_clinical_fte(record)

    if cf <= 0:
        return None
    return clinical_base / cf


def compute_incentive(units: float, threshold: Optional[float], cf: float) -> float:
    """Productivity incentive: max(0, units - threshold) * CF."""
    if threshold is None or cf <= 0:
        return 0.0
    return max(0.0, units - threshold) * cf


# =============================================================================
# Total Cash Compensation
# =============================================================================


def additional_tcc(record: CompensationRecord, scenario: ScenarioInputs, clinical_base: float) -> float:
    """Sum of the scenario's additional TCC layers for a provider."""
    layers = scenario.additionalTCC
    return (
        clinical_base * layers.percentOfBase / 100.0
        + layers.dollarPer1p0FTE * get_clinical_fte(record)
        + layers.flatDollar
    )


def _cash_components(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: Optional[MarketBenchmark],
    cf: float,
) -> Tuple[float, float, float, Optional[float], float, float]:
    clinical_base = get_clinical_base(record)
    quality = record.qualityPayments if scenario.includeQualityPayments else 0.0
    other = record.otherIncentives if scenario.includeOtherIncentives else 0.0

    threshold: Optional[float] = None
    incentive = 0.0
    if scenario.includeProductivityIncentive:
        units = get_productivity_units(record, scenario.wrvuGrowthPct)
        threshold = resolve_incentive_threshold(record, scenario, benchmark, cf, clinical_base)
        incentive = compute_incentive(units, threshold, cf)

    layered = additional_tcc(record, scenario, clinical_base)
    return clinical_base, quality, other, threshold, incentive, layered


def total_cash_at_cf(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: Optional[MarketBenchmark],
    cf: float,
) -> float:
    """Total qualifying cash compensation at a CF."""
    clinical_base, quality, other, _, incentive, layered = _cash_components(record, scenario, benchmark, cf)
    return clinical_base + quality + other + incentive + layered


def compensation_at_cf(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: Optional[MarketBenchmark],
    cf: float,
) -> CompensationBreakdown:
    """Total qualifying cash compensation at a CF, by component."""
    clinical_base, quality, other, threshold, incentive, layered = _cash_components(
        record, scenario, benchmark, cf
    )
    return CompensationBreakdown(
        cf=cf,
        clinicalBase=clinical_base,
        qualityPayments=quality,
        otherIncentives=other,
        incentiveThreshold=threshold,
        incentive=incentive,
        additionalTCC=layered,
        total=clinical_base + quality + other + incentive + layered,
    )


# =============================================================================
# Normalized Values and Effective Rate
# =============================================================================


def normalized_productivity(record: CompensationRecord, scenario: ScenarioInputs) -> Optional[float]:
    """wRVUs at the scenario's target FTE, or None without an FTE basis."""
    basis_fte = get_basis_fte(record, scenario.fteBasis)
    units = get_productivity_units(record, scenario.wrvuGrowthPct)
    return normalize_to_basis(units, basis_fte, scenario.targetFTE)


def has_benchmarkable_basis(record: CompensationRecord, scenario: ScenarioInputs) -> bool:
    """True when normalized productivity is positive and finite."""
    units = normalized_productivity(record, scenario)
    return units is not None and units > 0


def compute_effective_rate(
    record: CompensationRecord,
    scenario: ScenarioInputs,
    benchmark: Optional[MarketBenchmark],
    cf: float,
) -> EffectiveRateResult:
    """
    Effective pay rate at a CF and its standing on the market CF curve.

    Args:
        record: Provider record.
        scenario: Scenario deciding the included components and FTE basis.
        benchmark: Matched benchmark; the percentile is omitted without one.
        cf: CF in effect (current or modeled).

    Returns:
        EffectiveRateResult. When normalized productivity is zero or invalid,
        hasBenchmarkableBasis is False and rate/percentile are None.
    """
    basis_fte = get_basis_fte(record, scenario.fteBasis)
    total = total_cash_at_cf(record, scenario, benchmark, cf)
    norm_comp = normalize_to_basis(total, basis_fte, scenario.targetFTE)
    norm_units = normalized_productivity(record, scenario)

    if norm_comp is None or norm_units is None or norm_units <= 0:
        return EffectiveRateResult(
            hasBenchmarkableBasis=False,
            basisFTE=basis_fte,
            normalizedCompensation=norm_comp,
            normalizedProductivity=norm_units,
        )

    rate = norm_comp / norm_units
    if not math.isfinite(rate):
        return EffectiveRateResult(
            hasBenchmarkableBasis=False,
            basisFTE=basis_fte,
            normalizedCompensation=norm_comp,
            normalizedProductivity=norm_units,
        )

    standing = None
    if benchmark is not None:
        standing = percentile_of_value(rate, benchmark.cf).to_standing()

    return EffectiveRateResult(
        hasBenchmarkableBasis=True,
        basisFTE=basis_fte,
        normalizedCompensation=norm_comp,
        normalizedProductivity=norm_units,
        effectiveRate=rate,
        percentile=standing,
    )


__all__ = [
    "get_clinical_fte",
    "get_basis_fte",
    "get_clinical_base",
    "get_productivity_units",
    "normalize_to_basis",
    "resolve_incentive_threshold",
    "compute_incentive",
    "additional_tcc",
    "total_cash_at_cf",
    "compensation_at_cf",
    "normalized_productivity",
    "has_benchmarkable_basis",
    "compute_effective_rate",
]
