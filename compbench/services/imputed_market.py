"""
Imputed vs Market Service

Read-only comparison of what each specialty actually pays per wRVU with what
the market survey implies, without running the CF search.

Per provider (matched to a benchmark with a productivity curve):
1. Skip when clinical FTE is below minBasisFTE, when wRVUs per 1.0 clinical
   FTE are positive but below minWRVUPerFTE, or when the specialty label is
   empty.
2. Baseline TCC at the provider's current CF (else the market median CF),
   using the scenario's component toggles and additional TCC layers.
3. Imputed $/wRVU = baseline TCC / wRVUs; skipped when not positive and
   finite.
4. TCC percentile (TCC per 1.0 cFTE on the TCC curve) and wRVU percentile
   (wRVUs per 1.0 cFTE on the wRVU curve).

Per benchmark specialty:
- Median imputed $/wRVU and median CF used.
- Market $/wRVU at each survey point = TCC_p / WRVU_p (0 when WRVU_p is 0).
- Percentile of the median imputed rate on that market $/wRVU curve, with
  range flags (0 when the market median rate is not positive).
- Mean TCC and wRVU percentiles, and the market CF curve for reference.
Rows are sorted by specialty, case-insensitively.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from compbench.models import (
    CompensationRecord,
    ExclusionRules,
    ImputedMarketRow,
    MarketBenchmark,
    PercentileCurve,
    ScenarioInputs,
)
from compbench.services.interpolation import percentile_of_value
from compbench.services.normalization import (
    get_clinical_fte,
    get_productivity_units,
    total_cash_at_cf,
)
from compbench.services.scenario import default_current_cf
from compbench.services.specialty_match import SpecialtyLookup, normalize_specialty_key


logger = logging.getLogger(__name__)


@dataclass
class _SpecialtyAccumulator:
    benchmark: MarketBenchmark
    imputed: List[float] = field(default_factory=list)
    cf_used: List[float] = field(default_factory=list)
    tcc_percentiles: List[float] = field(default_factory=list)
    wrvu_percentiles: List[float] = field(default_factory=list)


def _safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    ratio = numerator / denominator
    return ratio if math.isfinite(ratio) else 0.0


def market_dollar_per_wrvu(benchmark: MarketBenchmark) -> PercentileCurve:
    """TCC / wRVU at each survey point; requires a productivity curve."""
    tcc, wrvu = benchmark.tcc, benchmark.wrvu
    return PercentileCurve(
        p25=_safe_ratio(tcc.p25, wrvu.p25),
        p50=_safe_ratio(tcc.p50, wrvu.p50),
        p75=_safe_ratio(tcc.p75, wrvu.p75),
        p90=_safe_ratio(tcc.p90, wrvu.p90),
    )


def _build_row(entry: _SpecialtyAccumulator) -> ImputedMarketRow:
    benchmark = entry.benchmark
    market = market_dollar_per_wrvu(benchmark)
    median_imputed = float(np.median(entry.imputed))

    your_percentile, below, above = 0.0, False, False
    if market.p50 > 0:
        standing = percentile_of_value(median_imputed, market)
        your_percentile, below, above = standing.percentile, standing.below_range, standing.above_range

    return ImputedMarketRow(
        specialty=benchmark.specialty,
        providerCount=len(entry.imputed),
        medianImputedDollarPerWRVU=median_imputed,
        medianCurrentCFUsed=float(np.median(entry.cf_used)),
        market25=market.p25,
        market50=market.p50,
        market75=market.p75,
        market90=market.p90,
        yourPercentile=your_percentile,
        belowRange=below,
        aboveRange=above,
        avgTCCPercentile=float(np.mean(entry.tcc_percentiles)),
        avgWRVUPercentile=float(np.mean(entry.wrvu_percentiles)),
        marketCF25=benchmark.cf.p25,
        marketCF50=benchmark.cf.p50,
        marketCF75=benchmark.cf.p75,
        marketCF90=benchmark.cf.p90,
    )


def compute_imputed_vs_market(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    scenario: Optional[ScenarioInputs] = None,
    exclusions: Optional[ExclusionRules] = None,
) -> List[ImputedMarketRow]:
    """
    Imputed $/wRVU by specialty against the market's implied $/wRVU.

    Args:
        records: Provider records.
        benchmarks: Market benchmarks; specialties without a productivity
            curve are left out.
        synonym_map: Raw label -> benchmark specialty.
        scenario: Component toggles and additional TCC layers for the
            baseline TCC; defaults to ScenarioInputs().
        exclusions: minBasisFTE and minWRVUPerFTE thresholds; the other
            rules do not apply here.

    Returns:
        One row per benchmark specialty with at least one usable provider.
    """
    scenario = scenario or ScenarioInputs()
    exclusions = exclusions or ExclusionRules()
    lookup = SpecialtyLookup.build(benchmarks, synonym_map)

    groups: Dict[str, _SpecialtyAccumulator] = {}
    skipped = 0
    for record in records:
        if not normalize_specialty_key(record.specialty):
            skipped += 1
            continue
        benchmark = lookup.match(record.specialty).benchmark
        if benchmark is None or benchmark.wrvu is None:
            skipped += 1
            continue

        clinical_fte = get_clinical_fte(record)
        if clinical_fte <= 0 or clinical_fte < exclusions.minBasisFTE:
            skipped += 1
            continue

        units = get_productivity_units(record, scenario.wrvuGrowthPct)
        units_per_fte = units / clinical_fte
        if 0 < units_per_fte < exclusions.minWRVUPerFTE:
            skipped += 1
            continue

        cf = default_current_cf(record, benchmark)
        tcc = total_cash_at_cf(record, scenario, benchmark, cf)
        imputed = _safe_ratio(tcc, units)
        if imputed <= 0:
            skipped += 1
            continue

        key = normalize_specialty_key(benchmark.specialty)
        entry = groups.setdefault(key, _SpecialtyAccumulator(benchmark))
        entry.imputed.append(imputed)
        entry.cf_used.append(cf)
        entry.tcc_percentiles.append(percentile_of_value(tcc / clinical_fte, benchmark.tcc).percentile)
        entry.wrvu_percentiles.append(percentile_of_value(units_per_fte, benchmark.wrvu).percentile)

    rows = [_build_row(entry) for entry in groups.values()]
    rows.sort(key=lambda row: row.specialty.casefold())

    logger.info(
        f"Imputed vs market: {len(rows)} specialties from {len(records) - skipped} providers "
        f"({skipped} skipped)"
    )
    return rows


__all__ = [
    "market_dollar_per_wrvu",
    "compute_imputed_vs_market",
]
