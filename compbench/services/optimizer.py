"""
CF Recommendation Search Service

For one specialty, searches for the conversion factor (CF) that best aligns
modeled pay percentiles with their objective among included providers,
within governance bounds, and reports the result.

Pipeline (optimize_specialty):
1. Eligibility: rule and outlier exclusions (see eligibility.py).
2. Initialize: specialty current CF = median of included providers' current
   CF (falling back to all providers' CF, then the market median CF).
3. Bounds (compute_cf_bounds): relative decrease/increase limits around the
   current CF, absolute CF limits, the hard cap on increases and the market
   CF percentile cap. Each side remembers which limit set it.
4. Search (search_cf): bounded loop over an explicit SearchState.
   - Per-provider error by objective kind: pay percentile minus productivity
     percentile (align_percentile), minus a fixed target percentile
     (target_fixed_percentile), or a weighted blend of both (hybrid).
     Pay percentile is non-decreasing in CF, so every error is too.
   - Objective: mean absolute (or squared) error; the mean signed error
     drives the step direction.
   - Expansion steps move away from the start CF (doubling each time) until
     the signed error changes sign, then secant and bisection steps alternate
     inside the bracket.
   - Every proposal is clipped to [lower, upper]. A clipped step that does
     not reach a sign change ends the search on the bound.
   - Stops on |mean error| <= tolerance, objective change < tolerance once
     bracketed, the bound, or maxIterations (not_converged). The
     recommendation is always the lowest-objective candidate observed.
5. Finalize: CF change, baseline/modeled gaps, MAE before/after, spend
   impact, risk counts, policy tier, flags, governance status, action and
   explanation. cf_capped is raised only when the search stopped on a bound,
   the recommendation sits on that bound and it differs from the current CF;
   the limit that set the bound is added to the constraints hit.

A specialty with no included providers is not searched: the recommended CF
equals the current CF and low_sample is flagged.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from compbench.models import (
    CompensationRecord,
    ErrorMetric,
    Explanation,
    GovernanceConfig,
    GovernanceStatus,
    MarketBenchmark,
    ObjectiveConfig,
    ObjectiveKind,
    OptimizerFlag,
    OptimizerSettings,
    PolicyCheck,
    PolicyThresholds,
    ProviderContext,
    RecommendedAction,
    ScenarioInputs,
    SearchParams,
    SearchSummary,
    SpecialtyResult,
    SweepPoint,
)
from compbench.services.eligibility import (
    EligibilityDecision,
    EligibilityInput,
    classify_eligibility,
)
from compbench.services.interpolation import percentile_of_value, value_at_percentile
from compbench.services.normalization import (
    compute_effective_rate,
    get_basis_fte,
    normalize_to_basis,
    normalized_productivity,
    total_cash_at_cf,
)
from compbench.services.scenario import (
    ProviderEvaluation,
    default_current_cf,
    evaluate_provider,
    pay_percentile_at_cf,
    productivity_percentile,
)
from compbench.services.specialty_match import SpecialtyMatch


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Governance gap bands (percentile points, pay above productivity)
LARGE_GAP_THRESHOLD = 10.0
MEDIUM_GAP_THRESHOLD = 5.0

# Effective rate percentile above which fmv_risk is raised
EFFECTIVE_RATE_FMV_PERCENTILE = 90.0

# Market CF percentiles for the modeled-TCC sweep
DEFAULT_SWEEP_PERCENTILES: Tuple[float, ...] = (25.0, 40.0, 50.0, 60.0, 75.0, 90.0)

CONSTRAINT_HARD_CAP_BLOCKS_INCREASE = "HARD_CAP_BLOCKS_INCREASE"
CONSTRAINT_CF_PERCENTILE_CAP = "CF_PERCENTILE_CAP"
CONSTRAINT_MAX_CHANGE_BOUND = "MAX_CHANGE_BOUND"
CONSTRAINT_ABSOLUTE_CF_BOUND = "ABSOLUTE_CF_BOUND"
CONSTRAINT_NO_PRODUCTIVITY_DATA = "NO_PRODUCTIVITY_DATA"
CONSTRAINT_NO_CURRENT_CF = "NO_CURRENT_CF"

BOUND_DESCRIPTIONS = {
    CONSTRAINT_MAX_CHANGE_BOUND: "the maximum CF change bound",
    CONSTRAINT_ABSOLUTE_CF_BOUND: "the absolute CF limits",
    CONSTRAINT_HARD_CAP_BLOCKS_INCREASE: "the hard cap on increases",
    CONSTRAINT_CF_PERCENTILE_CAP: "the market CF percentile cap",
}


# =============================================================================
# Specialty Inputs
# =============================================================================


@dataclass(frozen=True)
class ProviderInput:
    """A record with its match result and effective scenario."""
    record: CompensationRecord
    match: SpecialtyMatch
    scenario: ScenarioInputs

    @property
    def benchmark(self) -> Optional[MarketBenchmark]:
        return self.match.benchmark


@dataclass(frozen=True)
class SpecialtyInput:
    """
    Everything needed to process one specialty group.

    Attributes:
        label: Group label (benchmark specialty, or the raw label when unmatched).
        matched_specialty: Benchmark specialty, None for unmatched groups.
        benchmark: Shared benchmark of the group, None for unmatched groups.
        providers: Providers mapped to the group, in input order.
    """
    label: str
    matched_specialty: Optional[str]
    benchmark: Optional[MarketBenchmark]
    providers: Tuple[ProviderInput, ...]


@dataclass(frozen=True)
class AlignmentMember:
    """
    An included provider that takes part in the search objective.

    productivity_percentile is None only under target_fixed_percentile,
    which does not need it.
    """
    record: CompensationRecord
    scenario: ScenarioInputs
    benchmark: MarketBenchmark
    productivity_percentile: Optional[float]


# =============================================================================
# Search State
# =============================================================================


@dataclass(frozen=True)
class SearchState:
    """
    One evaluated candidate of the CF search.

    Attributes:
        candidate: CF evaluated.
        objective: Search objective at the candidate.
        mean_gap: Mean signed error at the candidate (pay percentile minus
            its target; pay - productivity under align_percentile).
        iteration: 0 for the starting point.
        bound_hit: The proposal was clipped to a bound.
    """
    candidate: float
    objective: float
    mean_gap: float
    iteration: int = 0
    bound_hit: bool = False


@dataclass(frozen=True)
class SearchOutcome:
    """Result of search_cf."""
    start: SearchState
    best: SearchState
    iterations: int
    converged: bool
    bound_hit: bool
    lower_bound: float
    upper_bound: float

    @property
    def not_converged(self) -> bool:
        return not self.converged and not self.bound_hit


ObjectiveFunction = Callable[[float], Tuple[float, float]]


def provider_error(
    pay_percentile: float,
    productivity_percentile: Optional[float],
    objective: ObjectiveConfig,
) -> float:
    """Signed error of one provider under the objective kind."""
    target_error = pay_percentile - objective.targetPercentile
    if objective.kind == ObjectiveKind.TARGET_FIXED_PERCENTILE:
        return target_error
    align_error = pay_percentile - productivity_percentile
    if objective.kind == ObjectiveKind.HYBRID:
        return objective.alignWeight * align_error + objective.targetWeight * target_error
    return align_error


def build_objective(
    members: Sequence[AlignmentMember],
    error_metric: ErrorMetric = ErrorMetric.ABSOLUTE,
    objective: Optional[ObjectiveConfig] = None,
) -> ObjectiveFunction:
    """
    Build cf -> (objective, mean signed error) over the alignment members.

    Members always have an FTE basis (they passed eligibility), so the pay
    percentile is defined for every member.
    """
    objective = objective or ObjectiveConfig()

    def evaluate(cf: float) -> Tuple[float, float]:
        gaps = []
        for member in members:
            pay = pay_percentile_at_cf(member.record, member.scenario, member.benchmark, cf)
            gaps.append(provider_error(pay.percentile, member.productivity_percentile, objective))
        if error_metric == ErrorMetric.SQUARED:
            errors = [gap * gap for gap in gaps]
        else:
            errors = [abs(gap) for gap in gaps]
        return sum(errors) / len(errors), sum(gaps) / len(gaps)

    return evaluate


def _next_bracket_candidate(anchor: SearchState, crossed: SearchState, use_secant: bool) -> float:
    midpoint = (anchor.candidate + crossed.candidate) / 2.0
    if not use_secant:
        return midpoint
    denominator = crossed.mean_gap - anchor.mean_gap
    if denominator == 0:
        return midpoint
    candidate = anchor.candidate - anchor.mean_gap * (crossed.candidate - anchor.candidate) / denominator
    low, high = sorted((anchor.candidate, crossed.candidate))
    if not (low < candidate < high):
        return midpoint
    return candidate


def search_cf(
    evaluate: ObjectiveFunction,
    start_cf: float,
    lower: float,
    upper: float,
    params: SearchParams,
) -> SearchOutcome:
    """
    Bounded search for the CF minimizing the alignment objective.

    Args:
        evaluate: cf -> (objective, mean signed gap); gap must be
            non-decreasing in cf.
        start_cf: Current CF clipped to [lower, upper].
        lower: Lowest CF allowed.
        upper: Highest CF allowed.
        params: Tolerance, iteration budget and first step size.

    Returns:
        SearchOutcome. Runs at most params.maxIterations evaluations after the
        starting point.
    """
    objective, gap = evaluate(start_cf)
    start = SearchState(start_cf, objective, gap)
    best = start

    def outcome(iterations: int, converged: bool, bound_hit: bool) -> SearchOutcome:
        return SearchOutcome(start, best, iterations, converged, bound_hit, lower, upper)

    if abs(gap) <= params.tolerance:
        return outcome(0, converged=True, bound_hit=False)

    # Positive gap: paid above productivity, so move the CF down
    direction = -1.0 if gap > 0 else 1.0
    limit = lower if direction < 0 else upper
    if start_cf == limit:
        return outcome(0, converged=False, bound_hit=True)

    step = abs(start_cf) * params.initialStepPct / 100.0 or abs(limit - start_cf)
    anchor = start
    crossed: Optional[SearchState] = None
    previous = start

    for iteration in range(1, params.maxIterations + 1):
        bracketed = crossed is not None
        if not bracketed:
            proposal = anchor.candidate + direction * step
            step *= 2.0
        else:
            proposal = _next_bracket_candidate(anchor, crossed, use_secant=iteration % 2 == 0)

        candidate = min(max(proposal, lower), upper)
        clipped = candidate != proposal
        objective, gap = evaluate(candidate)
        state = SearchState(candidate, objective, gap, iteration, clipped)
        if state.objective < best.objective:
            best = state

        logger.debug(
            f"CF search iteration {iteration}: cf={candidate:.4f} objective={objective:.4f} "
            f"gap={gap:.4f}{' (clipped)' if clipped else ''}"
        )

        if abs(gap) <= params.tolerance:
            return outcome(iteration, converged=True, bound_hit=False)

        if gap * start.mean_gap < 0:
            crossed = state
        else:
            anchor = state
            if clipped:
                return outcome(iteration, converged=False, bound_hit=True)

        if bracketed and abs(state.objective - previous.objective) < params.tolerance:
            return outcome(iteration, converged=True, bound_hit=False)
        previous = state

    return outcome(params.maxIterations, converged=False, bound_hit=False)


# =============================================================================
# Bounds and Policy
# =============================================================================


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.mean(values))


def _median(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.median(values))


def specialty_current_cf(
    included: Sequence[ProviderInput],
    all_providers: Sequence[ProviderInput],
    benchmark: Optional[MarketBenchmark],
) -> float:
    """
    Specialty current CF: median of included providers' positive current CF,
    else of all providers' positive current CF, else market median CF, else 0.
    """
    for group in (included, all_providers):
        median = _median([p.record.currentCF for p in group if p.record.currentCF and p.record.currentCF > 0])
        if median is not None:
            return median
    if benchmark is not None:
        return max(0.0, benchmark.cf.p50)
    return 0.0


@dataclass(frozen=True)
class CFBounds:
    """
    Search interval of a specialty.

    Attributes:
        lower: Lowest CF allowed.
        upper: Highest CF allowed.
        lower_limit: Constraint code of the limit that set `lower`.
        upper_limit: Constraint code of the limit that set `upper`.
        constraints: Governance limits that narrowed the interval, in the
            order they were applied.
    """
    lower: float
    upper: float
    lower_limit: str = CONSTRAINT_MAX_CHANGE_BOUND
    upper_limit: str = CONSTRAINT_MAX_CHANGE_BOUND
    constraints: Tuple[str, ...] = ()

    def clip(self, cf: float) -> float:
        return min(max(cf, self.lower), self.upper)

    def limit_at(self, cf: float) -> Optional[str]:
        """Constraint code of the bound `cf` sits on, or None inside the interval."""
        if cf == self.upper:
            return self.upper_limit
        if cf == self.lower:
            return self.lower_limit
        return None


def compute_cf_bounds(
    current_cf: float,
    search: SearchParams,
    governance: GovernanceConfig,
    benchmark: Optional[MarketBenchmark],
    mean_pay_percentile: Optional[float],
) -> CFBounds:
    """
    Search interval around the current CF.

    Relative limits come first: at most minChangePct below and maxChangePct
    above the current CF. Absolute limits then narrow the interval and win
    when they leave no overlap with the relative one. The hard cap and the
    market CF percentile cap only ever lower the upper bound, never below the
    lower bound or the current CF.
    """
    lower = current_cf * (1.0 - search.minChangePct / 100.0)
    upper = current_cf * (1.0 + search.maxChangePct / 100.0)
    lower_limit = upper_limit = CONSTRAINT_MAX_CHANGE_BOUND
    constraints: List[str] = []

    if search.absoluteMin is not None and search.absoluteMin > lower:
        lower, lower_limit = search.absoluteMin, CONSTRAINT_ABSOLUTE_CF_BOUND
    if search.absoluteMax is not None and search.absoluteMax < upper:
        upper, upper_limit = search.absoluteMax, CONSTRAINT_ABSOLUTE_CF_BOUND
    if lower > upper:
        if lower_limit == CONSTRAINT_ABSOLUTE_CF_BOUND:
            upper, upper_limit = lower, CONSTRAINT_ABSOLUTE_CF_BOUND
        else:
            lower, lower_limit = upper, CONSTRAINT_ABSOLUTE_CF_BOUND

    if (
        governance.blockIncreaseAboveHardCap
        and mean_pay_percentile is not None
        and mean_pay_percentile > governance.hardCapPercentile
    ):
        constraints.append(CONSTRAINT_HARD_CAP_BLOCKS_INCREASE)
        capped_upper = max(lower, current_cf)
        if capped_upper < upper:
            upper, upper_limit = capped_upper, CONSTRAINT_HARD_CAP_BLOCKS_INCREASE

    if search.maxRecommendedCFPercentile is not None and benchmark is not None:
        cap = value_at_percentile(search.maxRecommendedCFPercentile, benchmark.cf)
        capped_upper = max(lower, current_cf, cap)
        if capped_upper < upper:
            upper, upper_limit = capped_upper, CONSTRAINT_CF_PERCENTILE_CAP
            constraints.append(CONSTRAINT_CF_PERCENTILE_CAP)

    return CFBounds(lower, upper, lower_limit, upper_limit, tuple(constraints))


def classify_policy(mean_pay_percentile: Optional[float], policy: PolicyThresholds) -> PolicyCheck:
    """Policy tier of the aggregate pay percentile; no data is ok."""
    if mean_pay_percentile is None:
        return PolicyCheck.OK
    if mean_pay_percentile > policy.above90Percentile:
        return PolicyCheck.ABOVE_90
    if mean_pay_percentile > policy.above75Percentile:
        return PolicyCheck.ABOVE_75
    if mean_pay_percentile > policy.above50Percentile:
        return PolicyCheck.ABOVE_50
    return PolicyCheck.OK


def evaluate_governance(
    mean_pay_percentile: Optional[float],
    mean_gap: Optional[float],
    policy: PolicyThresholds,
    governance: GovernanceConfig,
) -> Tuple[GovernanceStatus, List[str]]:
    """
    Traffic-light status and the governance constraints hit.

    RED: at/above the FMV review line, or pay 10+ points above productivity.
    YELLOW: above the hard cap, in the soft cap zone, or a 5-10 point gap.
    """
    constraints: List[str] = []
    status = GovernanceStatus.GREEN

    if mean_pay_percentile is not None:
        if mean_pay_percentile >= policy.fmvReviewPercentile:
            status = GovernanceStatus.RED
            constraints.append(f"FMV_OVER_{policy.fmvReviewPercentile:g}")
        if mean_pay_percentile > governance.hardCapPercentile:
            if status != GovernanceStatus.RED:
                status = GovernanceStatus.YELLOW
            constraints.append(f"HARD_CAP_{governance.hardCapPercentile:g}")
            if mean_pay_percentile <= governance.softCapPercentile:
                constraints.append(f"SOFT_CAP_{governance.softCapPercentile:g}")

    if mean_gap is not None:
        if mean_gap >= LARGE_GAP_THRESHOLD:
            status = GovernanceStatus.RED
            constraints.append(f"GAP_OVER_{LARGE_GAP_THRESHOLD:g}")
        elif mean_gap >= MEDIUM_GAP_THRESHOLD:
            if status == GovernanceStatus.GREEN:
                status = GovernanceStatus.YELLOW
            constraints.append(f"GAP_{MEDIUM_GAP_THRESHOLD:g}_TO_{LARGE_GAP_THRESHOLD:g}")

    return status, constraints


def determine_action(
    search_performed: bool,
    cf_change_pct: float,
    governance: GovernanceConfig,
) -> RecommendedAction:
    """Direction of the recommendation; small changes are HOLD."""
    if not search_performed:
        return RecommendedAction.NO_RECOMMENDATION
    if abs(cf_change_pct) < governance.minMeaningfulChangePct:
        return RecommendedAction.HOLD
    return RecommendedAction.INCREASE if cf_change_pct > 0 else RecommendedAction.DECREASE


def build_explanation(
    action: RecommendedAction,
    current_cf: float,
    recommended_cf: float,
    cf_change_pct: float,
    included_count: int,
    mean_pay_percentile: Optional[float],
    mean_productivity_percentile: Optional[float],
    mean_gap: Optional[float],
    flags: Sequence[OptimizerFlag],
    constraints: Sequence[str],
    governance: GovernanceConfig,
    bound_limit: Optional[str] = None,
) -> Explanation:
    """
    Plain-language explanation of a specialty recommendation.

    bound_limit is the constraint code of the bound the recommendation was
    stopped on, when cf_capped is flagged.
    """
    why: List[str] = []
    next_steps: List[str] = []

    if action == RecommendedAction.NO_RECOMMENDATION:
        why.append(f"Only {included_count} provider(s) had enough data to analyze.")
        why.append("Providers need a clinical FTE, work RVUs and a market match with a productivity curve.")
        next_steps.append("Review excluded providers and fix missing data where possible.")
        return Explanation(
            headline="No recommendation: insufficient data for a reliable analysis.",
            why=why,
            whatToDoNext=next_steps,
        )

    if mean_pay_percentile is not None and mean_productivity_percentile is not None and mean_gap is not None:
        why.append(
            f"Pay is at the {mean_pay_percentile:.0f}th percentile and productivity at the "
            f"{mean_productivity_percentile:.0f}th (gap {mean_gap:+.1f})."
        )

    if action == RecommendedAction.HOLD:
        if CONSTRAINT_HARD_CAP_BLOCKS_INCREASE in constraints:
            headline = (
                f"Hold CF at ${current_cf:.2f}: the group is already above the "
                f"{governance.hardCapPercentile:.0f}th percentile policy cap."
            )
            next_steps.append("Review whether the policy cap should differ for this specialty.")
        else:
            headline = f"Hold CF at ${current_cf:.2f}: pay and productivity are aligned within policy."
            next_steps.append("No CF change needed; re-run when new survey data arrives.")
    else:
        verb = "Increase" if action == RecommendedAction.INCREASE else "Decrease"
        headline = (
            f"{verb} CF from ${current_cf:.2f} to ${recommended_cf:.2f} ({cf_change_pct:+.1f}%) "
            f"to align pay with productivity."
        )
        next_steps.append("Review the spend impact with finance before adopting the new CF.")

    if OptimizerFlag.CF_CAPPED in flags:
        limit = BOUND_DESCRIPTIONS.get(bound_limit, "a CF bound")
        why.append(f"The change was limited by {limit}.")
    if OptimizerFlag.NOT_CONVERGED in flags:
        why.append("The search used its full iteration budget; the best CF found is shown.")
    if OptimizerFlag.LOW_SAMPLE in flags:
        next_steps.append(f"Only {included_count} provider(s) were included; treat the result with caution.")
    if OptimizerFlag.FMV_RISK in flags:
        next_steps.append("Pay is at or above the FMV review line; document fair market value support.")

    return Explanation(headline=headline, why=why, whatToDoNext=next_steps)


# =============================================================================
# Specialty Optimization
# =============================================================================


def _eligibility_input(provider: ProviderInput) -> EligibilityInput:
    record, scenario, benchmark = provider.record, provider.scenario, provider.benchmark
    basis_fte = get_basis_fte(record, scenario.fteBasis)
    cf = default_current_cf(record, benchmark)
    normalized_tcc = normalize_to_basis(
        total_cash_at_cf(record, scenario, benchmark, cf), basis_fte, scenario.targetFTE
    )
    return EligibilityInput(
        record=record,
        matched=provider.match.is_matched,
        basis_fte=basis_fte,
        normalized_wrvus=normalized_productivity(record, scenario),
        normalized_tcc=normalized_tcc,
        effective_rate=compute_effective_rate(record, scenario, benchmark, cf).effectiveRate,
    )


def _provider_cf(record: CompensationRecord, specialty_cf: float) -> float:
    if record.currentCF is not None and record.currentCF > 0:
        return record.currentCF
    return specialty_cf


def build_provider_context(
    specialty: SpecialtyInput,
    provider: ProviderInput,
    evaluation: ProviderEvaluation,
    decision: EligibilityDecision,
) -> ProviderContext:
    """Assemble the reported ProviderContext from an evaluation and decision."""
    warnings = list(evaluation.warnings)
    if decision.manually_included:
        warnings.append("MANUAL_INCLUDE")

    def standing(result):
        return result.to_standing() if result is not None else None

    return ProviderContext(
        providerId=provider.record.providerId,
        providerName=provider.record.providerName,
        specialty=specialty.label,
        matchedSpecialty=provider.match.matched_specialty,
        matchStatus=provider.match.status,
        scenarioName=provider.scenario.name,
        included=decision.included,
        exclusionReasons=list(decision.reasons),
        currentCF=evaluation.current_cf,
        modeledCF=evaluation.modeled_cf,
        currentCompensation=evaluation.current_compensation,
        modeledCompensation=evaluation.modeled_compensation,
        currentPayPercentile=standing(evaluation.current_pay),
        modeledPayPercentile=standing(evaluation.modeled_pay),
        productivityPercentile=standing(evaluation.productivity),
        currentGap=evaluation.current_gap,
        modeledGap=evaluation.modeled_gap,
        currentEffectiveRate=evaluation.current_effective_rate,
        modeledEffectiveRate=evaluation.modeled_effective_rate,
        currentIncentive=evaluation.current_compensation.incentive,
        modeledIncentive=evaluation.modeled_compensation.incentive,
        normalizedWRVUs=evaluation.normalized_wrvus,
        normalizedTCC=evaluation.normalized_current_tcc,
        warnings=warnings,
    )


def _alignment_members(
    included: Sequence[ProviderInput],
    objective: Optional[ObjectiveConfig] = None,
) -> List[AlignmentMember]:
    needs_productivity = objective is None or objective.kind != ObjectiveKind.TARGET_FIXED_PERCENTILE
    members: List[AlignmentMember] = []
    for provider in included:
        if provider.benchmark is None:
            continue
        productivity = productivity_percentile(provider.record, provider.scenario, provider.benchmark)
        if productivity is None and needs_productivity:
            continue
        members.append(AlignmentMember(
            record=provider.record,
            scenario=provider.scenario,
            benchmark=provider.benchmark,
            productivity_percentile=productivity.percentile if productivity is not None else None,
        ))
    return members


def optimize_specialty(specialty: SpecialtyInput, settings: OptimizerSettings) -> SpecialtyResult:
    """
    Run eligibility, the CF search and finalization for one specialty.

    Args:
        specialty: Specialty group with its providers.
        settings: Optimizer settings.

    Returns:
        SpecialtyResult listing every provider of the group.
    """
    providers = specialty.providers
    decisions = classify_eligibility(
        [_eligibility_input(p) for p in providers],
        settings.exclusions,
        settings.outliers,
    )
    included = [p for p, d in zip(providers, decisions) if d.included]
    current_cf = specialty_current_cf(included, providers, specialty.benchmark)

    # Baseline pay percentile of the group, each provider at its own CF
    baseline_pay = []
    for provider in included:
        if provider.benchmark is None:
            continue
        pay = pay_percentile_at_cf(
            provider.record, provider.scenario, provider.benchmark,
            _provider_cf(provider.record, current_cf),
        )
        if pay is not None:
            baseline_pay.append(pay.percentile)

    members = _alignment_members(included, settings.search.objective)
    constraints: List[str] = []
    search_summary = SearchSummary()
    recommended_cf = current_cf
    outcome: Optional[SearchOutcome] = None
    bound_limit: Optional[str] = None

    if members and current_cf > 0:
        bounds = compute_cf_bounds(
            current_cf, settings.search, settings.governance, specialty.benchmark, _mean(baseline_pay)
        )
        constraints.extend(bounds.constraints)
        outcome = search_cf(
            build_objective(members, settings.search.errorMetric, settings.search.objective),
            bounds.clip(current_cf), bounds.lower, bounds.upper, settings.search,
        )
        recommended_cf = outcome.best.candidate
        # Only a move that the bound actually stopped counts as capped
        if outcome.bound_hit and recommended_cf != current_cf:
            bound_limit = bounds.limit_at(recommended_cf)
        if bound_limit is not None and bound_limit not in constraints:
            constraints.append(bound_limit)
        search_summary = SearchSummary(
            performed=True,
            iterations=outcome.iterations,
            converged=outcome.converged,
            boundHit=outcome.bound_hit,
            lowerBound=bounds.lower,
            upperBound=bounds.upper,
            objectiveBefore=outcome.start.objective,
            objectiveAfter=outcome.best.objective,
        )
    elif included and not members:
        constraints.append(CONSTRAINT_NO_PRODUCTIVITY_DATA)
    elif members:
        constraints.append(CONSTRAINT_NO_CURRENT_CF)

    # Evaluate every provider at its current CF and the recommended CF
    contexts: List[ProviderContext] = []
    for provider, decision in zip(providers, decisions):
        evaluation = evaluate_provider(
            provider.record,
            provider.benchmark,
            provider.scenario,
            current_cf=_provider_cf(provider.record, current_cf),
            modeled_cf=recommended_cf,
        )
        contexts.append(build_provider_context(specialty, provider, evaluation, decision))

    included_contexts = [c for c in contexts if c.included]
    current_gaps = [c.currentGap for c in included_contexts if c.currentGap is not None]
    modeled_gaps = [c.modeledGap for c in included_contexts if c.modeledGap is not None]
    pay_before = [c.currentPayPercentile.percentile for c in included_contexts if c.currentPayPercentile]
    pay_after = [c.modeledPayPercentile.percentile for c in included_contexts if c.modeledPayPercentile]
    productivity = [c.productivityPercentile.percentile for c in included_contexts if c.productivityPercentile]

    mean_pay_after = _mean(pay_after)
    mean_modeled_gap = _mean(modeled_gaps)
    cf_change_pct = (recommended_cf - current_cf) / current_cf * 100.0 if current_cf > 0 else 0.0

    policy = settings.policy
    elevated = sum(1 for p in pay_after if policy.elevatedRiskPercentile <= p < policy.highRiskPercentile)
    high = sum(1 for p in pay_after if p >= policy.highRiskPercentile)

    recommended_standing = None
    if specialty.benchmark is not None and math.isfinite(recommended_cf):
        recommended_standing = percentile_of_value(recommended_cf, specialty.benchmark.cf)

    effective_rate_fmv = any(
        c.modeledEffectiveRate is not None
        and c.modeledEffectiveRate.percentile is not None
        and (c.modeledEffectiveRate.percentile.percentile > EFFECTIVE_RATE_FMV_PERCENTILE
             or c.modeledEffectiveRate.percentile.aboveRange)
        for c in included_contexts
    )

    flag_set = set()
    if bound_limit is not None:
        flag_set.add(OptimizerFlag.CF_CAPPED)
    if outcome is not None and outcome.not_converged:
        flag_set.add(OptimizerFlag.NOT_CONVERGED)
    if len(included_contexts) < len(contexts):
        flag_set.add(OptimizerFlag.OUTLIERS_EXCLUDED)
    if recommended_standing is not None and recommended_standing.off_scale:
        flag_set.add(OptimizerFlag.OFF_SCALE)
    if len(included_contexts) < policy.lowSampleMinimum or not included_contexts:
        flag_set.add(OptimizerFlag.LOW_SAMPLE)
    if (mean_pay_after is not None and mean_pay_after >= policy.fmvReviewPercentile) or effective_rate_fmv:
        flag_set.add(OptimizerFlag.FMV_RISK)
    flags = [flag for flag in OptimizerFlag if flag in flag_set]

    status, governance_constraints = evaluate_governance(
        mean_pay_after, mean_modeled_gap, policy, settings.governance
    )
    constraints.extend(governance_constraints)
    action = determine_action(search_summary.performed, cf_change_pct, settings.governance)

    logger.info(
        f"Specialty '{specialty.label}': {len(included_contexts)} included, "
        f"{len(contexts) - len(included_contexts)} excluded, CF {current_cf:.2f} -> "
        f"{recommended_cf:.2f} ({action.value})"
    )

    return SpecialtyResult(
        specialty=specialty.label,
        matchedSpecialty=specialty.matched_specialty,
        includedCount=len(included_contexts),
        excludedCount=len(contexts) - len(included_contexts),
        currentCF=current_cf,
        recommendedCF=recommended_cf,
        cfChangePct=cf_change_pct,
        recommendedCFPercentile=recommended_standing.to_standing() if recommended_standing else None,
        meanBaselineGap=_mean(current_gaps),
        meanModeledGap=mean_modeled_gap,
        maeBefore=_mean([abs(g) for g in current_gaps]),
        maeAfter=_mean([abs(g) for g in modeled_gaps]),
        meanPayPercentileBefore=_mean(pay_before),
        meanPayPercentileAfter=mean_pay_after,
        meanProductivityPercentile=_mean(productivity),
        spendImpact=sum(c.modeledCompensation.total - c.currentCompensation.total for c in included_contexts),
        totalIncentiveDollars=sum(c.modeledIncentive for c in included_contexts),
        elevatedRiskCount=elevated,
        highRiskCount=high,
        policyCheck=classify_policy(mean_pay_after, policy),
        flags=flags,
        search=search_summary,
        governanceStatus=status,
        constraintsHit=constraints,
        recommendedAction=action,
        explanation=build_explanation(
            action, current_cf, recommended_cf, cf_change_pct, len(included_contexts),
            mean_pay_after, _mean(productivity), mean_modeled_gap, flags, constraints,
            settings.governance, bound_limit,
        ),
        providers=contexts,
    )


# =============================================================================
# CF Percentile Sweep
# =============================================================================


def sweep_cf_percentiles(
    specialty: SpecialtyInput,
    settings: OptimizerSettings,
    percentiles: Sequence[float] = DEFAULT_SWEEP_PERCENTILES,
) -> List[SweepPoint]:
    """
    Model the specialty's included providers at a series of market CF
    percentiles.

    Returns an empty list for unmatched specialties.
    """
    if specialty.benchmark is None:
        return []

    providers = specialty.providers
    decisions = classify_eligibility(
        [_eligibility_input(p) for p in providers],
        settings.exclusions,
        settings.outliers,
    )
    included = [p for p, d in zip(providers, decisions) if d.included]
    current_cf = specialty_current_cf(included, providers, specialty.benchmark)
    members = {m.record.providerId: m for m in _alignment_members(included)}

    points: List[SweepPoint] = []
    for percentile in percentiles:
        cf = max(0.0, value_at_percentile(percentile, specialty.benchmark.cf))
        pay_values: List[float] = []
        gaps: List[float] = []
        total_modeled = 0.0
        spend = 0.0
        for provider in included:
            modeled = total_cash_at_cf(provider.record, provider.scenario, provider.benchmark, cf)
            current = total_cash_at_cf(
                provider.record, provider.scenario, provider.benchmark,
                _provider_cf(provider.record, current_cf),
            )
            total_modeled += modeled
            spend += modeled - current
            pay = pay_percentile_at_cf(provider.record, provider.scenario, provider.benchmark, cf)
            if pay is None:
                continue
            pay_values.append(pay.percentile)
            member = members.get(provider.record.providerId)
            if member is not None:
                gaps.append(pay.percentile - member.productivity_percentile)
        points.append(SweepPoint(
            cfPercentile=percentile,
            cf=cf,
            meanPayPercentile=_mean(pay_values),
            meanGap=_mean(gaps),
            totalModeledTCC=total_modeled,
            spendImpact=spend,
        ))
    return points


__all__ = [
    "ProviderInput",
    "SpecialtyInput",
    "AlignmentMember",
    "SearchState",
    "SearchOutcome",
    "CFBounds",
    "provider_error",
    "build_objective",
    "search_cf",
    "specialty_current_cf",
    "compute_cf_bounds",
    "classify_policy",
    "evaluate_governance",
    "determine_action",
    "build_explanation",
    "build_provider_context",
    "optimize_specialty",
    "sweep_cf_percentiles",
]
