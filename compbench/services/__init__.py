"""
CompBench Services Module

Business logic for benchmarking providers against market survey curves and
recommending a conversion factor per specialty. Every service is stateless
apart from the run registry in runner.

Services:
- interpolation: percentile curve lookups in both directions
- specialty_match: exact / synonym / missing specialty resolution
- normalization: FTE normalization, incentive and effective-rate math
- eligibility: rule exclusions and two-pass outlier fences
- scenario: scenario merging and per-provider evaluation at a CF
- optimizer: per-specialty CF search, policy and governance
- batch: synchronous orchestrator for optimizer runs and batch reports
- runner: cancellable background runs on asyncio
- ingestion: pandas-based parsing of provider, market and synonym tables
- imputed_market: imputed $/wRVU by specialty against the market's implied $/wRVU

All services are consumed by the API layer (compbench/api/).
"""

# =============================================================================
# Interpolation Service Exports
# Percentile <-> value lookups on four-point market curves
# =============================================================================

from compbench.services.interpolation import (
    PercentileResult,
    is_off_scale,
    percentile_of_value,
    value_at_percentile,
)

# =============================================================================
# Specialty Matching Exports
# =============================================================================

from compbench.services.specialty_match import (
    SpecialtyLookup,
    SpecialtyMatch,
    normalize_specialty_key,
)

# =============================================================================
# Normalization Service Exports
# FTE normalization, incentive thresholds and effective rate
# =============================================================================

from compbench.services.normalization import (
    compensation_at_cf,
    compute_effective_rate,
    compute_incentive,
    get_basis_fte,
    normalize_to_basis,
    resolve_incentive_threshold,
)

# =============================================================================
# Eligibility Service Exports
# Rule exclusions followed by outlier fences on the provisional population
# =============================================================================

from compbench.services.eligibility import (
    EligibilityDecision,
    EligibilityInput,
    classify_eligibility,
    compute_fence,
)

# =============================================================================
# Scenario Service Exports
# =============================================================================

from compbench.services.scenario import (
    ScenarioResolver,
    evaluate_provider,
    merge_scenario,
    resolve_modeled_cf,
)

# =============================================================================
# Optimizer Service Exports
# Bounded CF search with policy classification and governance
# =============================================================================

from compbench.services.optimizer import (
    SearchOutcome,
    SpecialtyInput,
    optimize_specialty,
    search_cf,
    sweep_cf_percentiles,
)

# =============================================================================
# Orchestration Exports
# =============================================================================

from compbench.services.batch import (
    prepare_run,
    run_batch_report,
    run_optimizer,
    run_sweep,
)

from compbench.services.runner import (
    EngineRun,
    RunManager,
    run_batch_report_async,
    run_optimizer_async,
)

# =============================================================================
# Ingestion Service Exports
# =============================================================================

from compbench.services.ingestion import (
    parse_market,
    parse_providers,
    parse_synonym_rows,
    read_table,
)

# =============================================================================
# Imputed vs Market Exports
# =============================================================================

from compbench.services.imputed_market import (
    compute_imputed_vs_market,
    market_dollar_per_wrvu,
)


__all__ = [
    # Interpolation
    "PercentileResult",
    "is_off_scale",
    "percentile_of_value",
    "value_at_percentile",
    # Specialty matching
    "SpecialtyLookup",
    "SpecialtyMatch",
    "normalize_specialty_key",
    # Normalization
    "compensation_at_cf",
    "compute_effective_rate",
    "compute_incentive",
    "get_basis_fte",
    "normalize_to_basis",
    "resolve_incentive_threshold",
    # Eligibility
    "EligibilityDecision",
    "EligibilityInput",
    "classify_eligibility",
    "compute_fence",
    # Scenario
    "ScenarioResolver",
    "evaluate_provider",
    "merge_scenario",
    "resolve_modeled_cf",
    # Optimizer
    "SearchOutcome",
    "SpecialtyInput",
    "optimize_specialty",
    "search_cf",
    "sweep_cf_percentiles",
    # Orchestration
    "prepare_run",
    "run_batch_report",
    "run_optimizer",
    "run_sweep",
    "EngineRun",
    "RunManager",
    "run_batch_report_async",
    "run_optimizer_async",
    # Ingestion
    "parse_market",
    "parse_providers",
    "parse_synonym_rows",
    "read_table",
    # Imputed vs market
    "compute_imputed_vs_market",
    "market_dollar_per_wrvu",
]
