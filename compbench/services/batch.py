"""
Batch Orchestration Service

Drives the engine across all specialties of a run and assembles the result.

Entry points:
1. run_optimizer: per-specialty CF recommendation -> RunResult.
2. run_batch_report: flat provider x scenario rows -> List[BatchReportRow].
3. run_sweep: modeled totals per specialty at market CF percentiles.

All three build the specialty lookup and scenario resolvers once per run and
group records by resolved specialty in order of first appearance. The first
two process one specialty at a time. After each specialty a
ProgressEvent(index, total, specialty) is passed to the progress callback.
The optional cancellation check runs before every specialty; when it
returns True the run stops with RunCancelledError and no result is returned.

RunResult contains no timestamps or generated ids, so the same input always
produces the same serialized result.
"""

import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from compbench.core.exceptions import InvalidInputError, RunCancelledError
from compbench.models import (
    BatchReportRow,
    CompensationRecord,
    ExcludedProvider,
    ExclusionReason,
    ExclusionReasonCount,
    MarketBenchmark,
    OptimizerFlag,
    OptimizerSettings,
    PolicyCheck,
    ProgressEvent,
    RiskLevel,
    RunResult,
    RunSummary,
    ScenarioInputs,
    ScenarioOverrides,
    SpecialtyResult,
    SpecialtySweep,
)
from compbench.services.eligibility import EligibilityDecision
from compbench.services.optimizer import (
    DEFAULT_SWEEP_PERCENTILES,
    ProviderInput,
    SpecialtyInput,
    build_provider_context,
    optimize_specialty,
    sweep_cf_percentiles,
)
from compbench.services.scenario import ScenarioResolver, evaluate_provider
from compbench.services.specialty_match import SpecialtyLookup, normalize_specialty_key


logger = logging.getLogger(__name__)


ProgressCallback = Callable[[ProgressEvent], None]
CancelCheck = Callable[[], bool]


# =============================================================================
# Constants
# =============================================================================

UNSPECIFIED_SPECIALTY = "Unspecified"

# Number of exclusion reasons listed in the run summary
TOP_EXCLUSION_REASONS = 10

# Batch report risk bands (absolute modeled gap, percentile points)
HIGH_RISK_GAP = 15.0
MEDIUM_RISK_GAP = 5.0


# =============================================================================
# Run Preparation
# =============================================================================


def validate_records(records: Sequence[CompensationRecord]) -> None:
    """
    Reject inputs the engine cannot process.

    Raises:
        InvalidInputError: Duplicate provider ids.
    """
    counts = Counter(record.providerId for record in records)
    duplicates = sorted(provider_id for provider_id, count in counts.items() if count > 1)
    if duplicates:
        raise InvalidInputError(f"Duplicate providerId values: {', '.join(duplicates[:10])}")


def group_by_specialty(
    records: Sequence[CompensationRecord],
    lookup: SpecialtyLookup,
    resolver: ScenarioResolver,
) -> List[SpecialtyInput]:
    """
    Group records by resolved specialty, in order of first appearance.

    Matched records group under their benchmark specialty; unmatched records
    group under their own (normalized) raw label.
    """
    grouped: Dict[Tuple[bool, str], List[ProviderInput]] = {}
    headers: Dict[Tuple[bool, str], Tuple[str, Optional[str], Optional[MarketBenchmark]]] = {}

    for record in records:
        match = lookup.match(record.specialty)
        if match.is_matched:
            key = (True, normalize_specialty_key(match.matched_specialty))
            header = (match.matched_specialty, match.matched_specialty, match.benchmark)
        else:
            key = (False, normalize_specialty_key(record.specialty))
            header = (record.specialty.strip() or UNSPECIFIED_SPECIALTY, None, None)

        if key not in grouped:
            grouped[key] = []
            headers[key] = header
        grouped[key].append(ProviderInput(
            record=record,
            match=match,
            scenario=resolver.for_record(record, match.matched_specialty),
        ))

    return [
        SpecialtyInput(
            label=headers[key][0],
            matched_specialty=headers[key][1],
            benchmark=headers[key][2],
            providers=tuple(providers),
        )
        for key, providers in grouped.items()
    ]


def filter_specialties(
    specialties: Sequence[SpecialtyInput],
    specialty_filter: Optional[Iterable[str]],
) -> List[SpecialtyInput]:
    """Keep specialties whose group label or any raw provider label is listed."""
    if not specialty_filter:
        return list(specialties)
    wanted = {normalize_specialty_key(label) for label in specialty_filter}
    kept: List[SpecialtyInput] = []
    for specialty in specialties:
        labels = {normalize_specialty_key(specialty.label)}
        labels.update(normalize_specialty_key(p.record.specialty) for p in specialty.providers)
        if labels & wanted:
            kept.append(specialty)
    return kept


def prepare_run(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]],
    scenario: ScenarioInputs,
    overrides: Optional[ScenarioOverrides] = None,
    specialty_filter: Optional[Iterable[str]] = None,
) -> List[SpecialtyInput]:
    """
    Validate input and build the per-specialty work list.

    Raises:
        InvalidInputError: See validate_records.
    """
    validate_records(records)
    lookup = SpecialtyLookup.build(benchmarks, synonym_map)
    resolver = ScenarioResolver(scenario, overrides)
    specialties = filter_specialties(group_by_specialty(records, lookup, resolver), specialty_filter)
    logger.info(
        f"Prepared run: {len(records)} records, {lookup.benchmark_count} benchmarks, "
        f"{len(specialties)} specialties"
    )
    return specialties


def emit_progress(
    on_progress: Optional[ProgressCallback],
    index: int,
    total: int,
    specialty: str,
) -> None:
    if on_progress is not None:
        on_progress(ProgressEvent(index=index, total=total, specialty=specialty))


# =============================================================================
# Result Assembly
# =============================================================================


def top_exclusion_reasons(results: Sequence[SpecialtyResult]) -> List[ExclusionReasonCount]:
    """Most frequent exclusion reasons, ties in reason declaration order."""
    counts: Counter = Counter()
    for result in results:
        for provider in result.providers:
            counts.update(provider.exclusionReasons)
    ordered = sorted(
        (reason for reason in ExclusionReason if counts[reason] > 0),
        key=lambda reason: -counts[reason],
    )
    return [
        ExclusionReasonCount(reason=reason, count=counts[reason])
        for reason in ordered[:TOP_EXCLUSION_REASONS]
    ]


def build_key_messages(summary: RunSummary) -> List[str]:
    """Short run-level messages for the report header."""
    messages = [
        f"{summary.specialtiesAnalyzed} specialties analyzed: "
        f"{summary.providersIncluded} providers included, {summary.providersExcluded} excluded.",
        f"Total spend impact of recommended CFs: ${summary.totalSpendImpact:,.0f}.",
    ]
    if summary.countAbovePolicy:
        messages.append(f"{summary.countAbovePolicy} specialties remain above the 50th percentile policy line.")
    if summary.countFmvRisk:
        messages.append(f"{summary.countFmvRisk} specialties carry FMV risk and need review.")
    if summary.countCFCapped:
        messages.append(f"{summary.countCFCapped} recommendations were stopped at a CF bound.")
    if summary.countNotConverged:
        messages.append(f"{summary.countNotConverged} searches did not converge; best CF found is reported.")
    if summary.topExclusionReasons:
        top = summary.topExclusionReasons[0]
        messages.append(f"Most common exclusion: {top.reason.value} ({top.count} providers).")
    return messages


def assemble_run_result(results: Sequence[SpecialtyResult]) -> RunResult:
    """Aggregate specialty results into the run summary and audit trail."""
    audit = [
        ExcludedProvider(
            providerId=provider.providerId,
            providerName=provider.providerName,
            specialty=result.specialty,
            reasons=provider.exclusionReasons,
        )
        for result in results
        for provider in result.providers
        if not provider.included
    ]
    summary = RunSummary(
        specialtiesAnalyzed=len(results),
        providersIncluded=sum(r.includedCount for r in results),
        providersExcluded=sum(r.excludedCount for r in results),
        totalSpendImpact=sum(r.spendImpact for r in results),
        totalIncentiveDollars=sum(r.totalIncentiveDollars for r in results),
        countAbovePolicy=sum(1 for r in results if r.policyCheck != PolicyCheck.OK),
        countFmvRisk=sum(1 for r in results if OptimizerFlag.FMV_RISK in r.flags),
        countCFCapped=sum(1 for r in results if OptimizerFlag.CF_CAPPED in r.flags),
        countNotConverged=sum(1 for r in results if OptimizerFlag.NOT_CONVERGED in r.flags),
        topExclusionReasons=top_exclusion_reasons(results),
    )
    return RunResult(
        summary=summary,
        specialties=list(results),
        audit=audit,
        keyMessages=build_key_messages(summary),
    )


# =============================================================================
# Optimizer Mode
# =============================================================================


def run_optimizer(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    settings: Optional[OptimizerSettings] = None,
    overrides: Optional[ScenarioOverrides] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> RunResult:
    """
    Recommend a CF for every specialty.

    Args:
        records: Compensation records.
        benchmarks: Market benchmarks, one per specialty.
        synonym_map: Raw label -> benchmark specialty.
        settings: Optimizer settings; defaults to OptimizerSettings().
        overrides: Per-specialty / per-provider scenario fragments.
        on_progress: Called after each specialty.
        should_cancel: Checked before each specialty.

    Returns:
        RunResult.

    Raises:
        InvalidInputError: Input cannot be processed.
        RunCancelledError: should_cancel returned True.
    """
    settings = settings or OptimizerSettings()
    specialties = prepare_run(
        records, benchmarks, synonym_map, settings.scenario, overrides, settings.specialtyFilter
    )
    results: List[SpecialtyResult] = []
    total = len(specialties)
    for index, specialty in enumerate(specialties, start=1):
        if should_cancel is not None and should_cancel():
            logger.info(f"Run cancelled before specialty {index}/{total}")
            raise RunCancelledError(f"Run cancelled before specialty {index} of {total}")
        results.append(optimize_specialty(specialty, settings))
        emit_progress(on_progress, index, total, specialty.label)
    return assemble_run_result(results)


# =============================================================================
# Batch Report Mode
# =============================================================================


def derive_risk_level(row: BatchReportRow) -> RiskLevel:
    """
    Risk of a batch row.

    High: no market match, modeled pay off the benchmarked scale, or
    |modeled gap| above 15. Medium: |modeled gap| above 5 or productivity
    off scale.
    """
    if row.matchedSpecialty is None:
        return RiskLevel.HIGH
    pay = row.modeledPayPercentile
    if pay is not None and (pay.belowRange or pay.aboveRange):
        return RiskLevel.HIGH
    if row.modeledGap is not None and abs(row.modeledGap) > HIGH_RISK_GAP:
        return RiskLevel.HIGH
    if row.modeledGap is not None and abs(row.modeledGap) > MEDIUM_RISK_GAP:
        return RiskLevel.MEDIUM
    productivity = row.productivityPercentile
    if productivity is not None and (productivity.belowRange or productivity.aboveRange):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def prepare_batch_report(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]],
    scenarios: Sequence[ScenarioInputs],
    overrides: Optional[ScenarioOverrides] = None,
) -> Tuple[List[SpecialtyInput], List[ScenarioResolver]]:
    """
    Work list and one resolver per scenario for a batch report.

    Raises:
        InvalidInputError: No scenarios, or see validate_records.
    """
    if not scenarios:
        raise InvalidInputError("At least one scenario is required for a batch report")
    specialties = prepare_run(records, benchmarks, synonym_map, scenarios[0], overrides)
    resolvers = [ScenarioResolver(scenario, overrides) for scenario in scenarios]
    return specialties, resolvers


def report_specialty(
    specialty: SpecialtyInput,
    resolvers: Sequence[ScenarioResolver],
) -> List[BatchReportRow]:
    """Rows for every provider of a specialty under every scenario."""
    rows: List[BatchReportRow] = []
    for provider in specialty.providers:
        reasons = () if provider.match.is_matched else (ExclusionReason.MISSING_MARKET,)
        decision = EligibilityDecision(provider_id=provider.record.providerId, reasons=reasons)
        for resolver in resolvers:
            scenario = resolver.for_record(provider.record, provider.match.matched_specialty)
            scenario_provider = ProviderInput(provider.record, provider.match, scenario)
            evaluation = evaluate_provider(provider.record, provider.benchmark, scenario)
            context = build_provider_context(specialty, scenario_provider, evaluation, decision)
            row = BatchReportRow.model_validate(context.model_dump())
            rows.append(row.model_copy(update={"riskLevel": derive_risk_level(row)}))
    return rows


def run_batch_report(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    scenarios: Sequence[ScenarioInputs] = (),
    overrides: Optional[ScenarioOverrides] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> List[BatchReportRow]:
    """
    Evaluate every provider under every named scenario.

    Returns:
        Flat rows ordered by specialty (first appearance), provider, scenario.

    Raises:
        InvalidInputError: Input cannot be processed.
        RunCancelledError: should_cancel returned True.
    """
    specialties, resolvers = prepare_batch_report(records, benchmarks, synonym_map, scenarios, overrides)
    rows: List[BatchReportRow] = []
    total = len(specialties)
    for index, specialty in enumerate(specialties, start=1):
        if should_cancel is not None and should_cancel():
            raise RunCancelledError(f"Batch report cancelled before specialty {index} of {total}")
        rows.extend(report_specialty(specialty, resolvers))
        emit_progress(on_progress, index, total, specialty.label)
    return rows


# =============================================================================
# CF Percentile Sweep
# =============================================================================


def run_sweep(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    settings: Optional[OptimizerSettings] = None,
    overrides: Optional[ScenarioOverrides] = None,
    percentiles: Sequence[float] = DEFAULT_SWEEP_PERCENTILES,
) -> List[SpecialtySweep]:
    """
    Model every matched specialty at a series of market CF percentiles.

    Specialties are grouped and filtered exactly as in run_optimizer;
    unmatched groups are left out.

    Raises:
        InvalidInputError: Input cannot be processed.
    """
    settings = settings or OptimizerSettings()
    specialties = prepare_run(
        records, benchmarks, synonym_map, settings.scenario, overrides, settings.specialtyFilter
    )
    return [
        SpecialtySweep(
            specialty=specialty.label,
            matchedSpecialty=specialty.matched_specialty,
            points=sweep_cf_percentiles(specialty, settings, percentiles),
        )
        for specialty in specialties
        if specialty.benchmark is not None
    ]


__all__ = [
    "ProgressCallback",
    "CancelCheck",
    "UNSPECIFIED_SPECIALTY",
    "validate_records",
    "group_by_specialty",
    "filter_specialties",
    "prepare_run",
    "emit_progress",
    "top_exclusion_reasons",
    "build_key_messages",
    "assemble_run_result",
    "run_optimizer",
    "derive_risk_level",
    "prepare_batch_report",
    "report_specialty",
    "run_batch_report",
    "run_sweep",
]
