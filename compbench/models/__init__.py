"""
Package initialization file for CompBench models.

Re-exports all Pydantic schemas and enumerations so other modules can import
them from `compbench.models` directly.

Usage:
    from compbench.models import (
        CompensationRecord,
        MarketBenchmark,
        OptimizerSettings,
        RunResult,
        ExclusionReason,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from compbench.models.enums import (
    MatchStatus,
    CFSourceMode,
    ThresholdMethod,
    FTEBasis,
    ExclusionReason,
    OutlierMethod,
    ErrorMetric,
    ObjectiveKind,
    OptimizerFlag,
    PolicyCheck,
    GovernanceStatus,
    RecommendedAction,
    RiskLevel,
    RunStatus,
    RunMode,
)

# =============================================================================
# Schemas
# =============================================================================

from compbench.models.schemas import (
    # Inputs
    CompensationRecord,
    PercentileCurve,
    MarketBenchmark,
    AdditionalTCC,
    ScenarioInputs,
    ScenarioOverride,
    ScenarioOverrides,
    # Settings
    ExclusionRules,
    OutlierParams,
    ObjectiveConfig,
    SearchParams,
    PolicyThresholds,
    GovernanceConfig,
    OptimizerSettings,
    # Provider results
    PercentileStanding,
    CompensationBreakdown,
    EffectiveRateResult,
    ProviderContext,
    # Specialty / run results
    SearchSummary,
    Explanation,
    SpecialtyResult,
    ExcludedProvider,
    ExclusionReasonCount,
    RunSummary,
    RunResult,
    BatchReportRow,
    ProgressEvent,
    SweepPoint,
    SpecialtySweep,
    ImputedMarketRow,
    # Ingestion
    ValidationIssue,
)


__all__ = [
    # Enums
    "MatchStatus",
    "CFSourceMode",
    "ThresholdMethod",
    "FTEBasis",
    "ExclusionReason",
    "OutlierMethod",
    "ErrorMetric",
    "ObjectiveKind",
    "OptimizerFlag",
    "PolicyCheck",
    "GovernanceStatus",
    "RecommendedAction",
    "RiskLevel",
    "RunStatus",
    "RunMode",
    # Inputs
    "CompensationRecord",
    "PercentileCurve",
    "MarketBenchmark",
    "AdditionalTCC",
    "ScenarioInputs",
    "ScenarioOverride",
    "ScenarioOverrides",
    # Settings
    "ExclusionRules",
    "OutlierParams",
    "ObjectiveConfig",
    "SearchParams",
    "PolicyThresholds",
    "GovernanceConfig",
    "OptimizerSettings",
    # Provider results
    "PercentileStanding",
    "CompensationBreakdown",
    "EffectiveRateResult",
    "ProviderContext",
    # Specialty / run results
    "SearchSummary",
    "Explanation",
    "SpecialtyResult",
    "ExcludedProvider",
    "ExclusionReasonCount",
    "RunSummary",
    "RunResult",
    "BatchReportRow",
    "ProgressEvent",
    "SweepPoint",
    "SpecialtySweep",
    "ImputedMarketRow",
    # Ingestion
    "ValidationIssue",
]
