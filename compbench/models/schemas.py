"""
Pydantic request/response models for the CompBench engine.

This module provides type-safe data validation and serialization for every
engine contract: the immutable inputs (compensation records, market benchmarks,
scenario inputs and optimizer settings), the per-provider and per-specialty
results, the top-level run result, progress events and batch report rows.

Input models are frozen and reject NaN/inf so that a run's input snapshot can
be shared by reference without ever being mutated by the engine.

All models use Pydantic v2 syntax with camelCase field names.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from compbench.models.enums import (
    CFSourceMode,
    ErrorMetric,
    ExclusionReason,
    FTEBasis,
    GovernanceStatus,
    MatchStatus,
    ObjectiveKind,
    OptimizerFlag,
    OutlierMethod,
    PolicyCheck,
    RecommendedAction,
    RiskLevel,
    ThresholdMethod,
)


# Shared config for immutable engine inputs
FROZEN_INPUT_CONFIG = ConfigDict(
    frozen=True,
    str_strip_whitespace=True,
    allow_inf_nan=False,
)


# =============================================================================
# Engine Inputs
# =============================================================================


class CompensationRecord(BaseModel):
    """
    A single provider's compensation and productivity data row.

    Compensation components are annual dollars; productivity is in work RVUs.
    FTE fields describe the provider's total and clinical effort.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
        json_schema_extra={
            "example": {
                "providerId": "P-1001",
                "providerName": "Dr. Rivera",
                "specialty": "Cardiology",
                "division": "Heart & Vascular",
                "providerType": "Physician",
                "totalFTE": 1.0,
                "clinicalFTE": 0.9,
                "baseSalary": 420000.0,
                "qualityPayments": 15000.0,
                "workRVUs": 8200.0,
                "currentCF": 52.5,
                "newHire": False,
            }
        }
    )

    providerId: str = Field(
        ...,
        description="Unique identifier for the provider",
        min_length=1
    )
    providerName: Optional[str] = Field(
        default=None,
        description="Provider display name"
    )
    specialty: str = Field(
        default="",
        description="Raw specialty label as it appears in the source file"
    )
    division: Optional[str] = Field(
        default=None,
        description="Division or department"
    )
    providerType: Optional[str] = Field(
        default=None,
        description="Provider type (Physician, APP, ...)"
    )
    productivityModel: Optional[str] = Field(
        default=None,
        description="Productivity model tag (e.g. base, productivity)"
    )

    # FTE
    totalFTE: float = Field(
        default=1.0,
        ge=0.0,
        description="Total FTE"
    )
    clinicalFTE: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Clinical FTE; falls back to totalFTE when missing"
    )

    # Compensation components
    baseSalary: float = Field(
        default=0.0,
        ge=0.0,
        description="Annual base salary at total FTE"
    )
    clinicalFTESalary: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Clinical base salary; derived from baseSalary when missing"
    )
    qualityPayments: float = Field(
        default=0.0,
        ge=0.0,
        description="Value-based / quality payments"
    )
    otherIncentives: float = Field(
        default=0.0,
        ge=0.0,
        description="Other incentive payments"
    )

    # Productivity
    workRVUs: float = Field(
        default=0.0,
        ge=0.0,
        description="Work RVUs"
    )
    outsideWRVUs: float = Field(
        default=0.0,
        ge=0.0,
        description="Outside work RVUs added to workRVUs"
    )
    totalWRVUs: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Total work RVUs; overrides workRVUs + outsideWRVUs when set"
    )

    # Current plan
    currentCF: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Conversion factor currently in use ($/wRVU)"
    )
    currentThreshold: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Current annual wRVU incentive threshold"
    )
    tenureMonths: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Months since hire"
    )

    # Status flags
    leaveOfAbsence: bool = Field(
        default=False,
        description="Provider was on leave of absence during the period"
    )
    newHire: bool = Field(
        default=False,
        description="Provider is flagged as a new hire"
    )
    manualExclude: bool = Field(
        default=False,
        description="Analyst flagged this record for exclusion"
    )


class PercentileCurve(BaseModel):
    """Four benchmark points (25th/50th/75th/90th) of a market survey curve."""
    model_config = FROZEN_INPUT_CONFIG

    p25: float = Field(..., description="25th percentile value")
    p50: float = Field(..., description="50th percentile value")
    p75: float = Field(..., description="75th percentile value")
    p90: float = Field(..., description="90th percentile value")

    def points(self) -> Tuple[Tuple[float, float], ...]:
        """Return ((percentile, value), ...) in ascending percentile order."""
        return ((25.0, self.p25), (50.0, self.p50), (75.0, self.p75), (90.0, self.p90))


class MarketBenchmark(BaseModel):
    """
    Market survey benchmark for a single specialty.

    Carries the total cash compensation curve, the pay-rate-per-unit (CF)
    curve and, when the survey reports it, the productivity (wRVU) curve.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        allow_inf_nan=False,
        json_schema_extra={
            "example": {
                "specialty": "Cardiology",
                "tcc": {"p25": 450000, "p50": 550000, "p75": 650000, "p90": 780000},
                "cf": {"p25": 48.0, "p50": 54.0, "p75": 61.0, "p90": 70.0},
                "wrvu": {"p25": 7000, "p50": 8500, "p75": 10000, "p90": 12000},
            }
        }
    )

    specialty: str = Field(
        ...,
        description="Benchmark specialty label",
        min_length=1
    )
    providerType: Optional[str] = Field(
        default=None,
        description="Provider type the survey row applies to"
    )
    region: Optional[str] = Field(
        default=None,
        description="Survey region"
    )
    tcc: PercentileCurve = Field(
        ...,
        description="Total cash compensation curve"
    )
    cf: PercentileCurve = Field(
        ...,
        description="Pay-rate-per-unit (conversion factor) curve"
    )
    wrvu: Optional[PercentileCurve] = Field(
        default=None,
        description="Productivity (wRVU) curve, when reported"
    )


class AdditionalTCC(BaseModel):
    """
    Extra compensation layers added on top of clinical base and incentives.

    All three layers are summed: a percent of clinical base, dollars per
    1.0 clinical FTE, and a flat dollar amount.
    """
    model_config = FROZEN_INPUT_CONFIG

    percentOfBase: float = Field(
        default=0.0,
        ge=0.0,
        description="Percent of clinical base salary"
    )
    dollarPer1p0FTE: float = Field(
        default=0.0,
        ge=0.0,
        description="Dollars per 1.0 clinical FTE, scaled by the provider's clinical FTE"
    )
    flatDollar: float = Field(
        default=0.0,
        ge=0.0,
        description="Flat dollars per provider"
    )


class ScenarioInputs(BaseModel):
    """
    Named compensation-modeling configuration.

    Determines how the modeled CF is resolved, which optional compensation
    components count toward total cash compensation, how the incentive
    threshold is computed and which FTE basis is used for normalization.
    """
    model_config = ConfigDict(
        frozen=True,
        allow_inf_nan=False,
        json_schema_extra={
            "example": {
                "name": "Target P40 less 5%",
                "cfSource": "target_minus_haircut",
                "targetPercentile": 40,
                "haircutPct": 5,
                "includeQualityPayments": True,
                "includeProductivityIncentive": True,
            }
        }
    )

    name: str = Field(
        default="Base",
        description="Scenario name"
    )
    cfSource: CFSourceMode = Field(
        default=CFSourceMode.TARGET_PERCENTILE,
        description="How the modeled CF is resolved"
    )
    fixedCF: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Fixed CF in $/wRVU (cfSource=fixed)"
    )
    targetPercentile: float = Field(
        default=40.0,
        ge=0.0,
        le=100.0,
        description="Market CF percentile to target"
    )
    haircutPct: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Percent taken off the target CF (cfSource=target_minus_haircut)"
    )
    includeQualityPayments: bool = Field(
        default=True,
        description="Count quality payments toward total cash compensation"
    )
    includeProductivityIncentive: bool = Field(
        default=True,
        description="Count the productivity incentive toward total cash compensation"
    )
    includeOtherIncentives: bool = Field(
        default=False,
        description="Count other incentives toward total cash compensation"
    )
    thresholdMethod: ThresholdMethod = Field(
        default=ThresholdMethod.DERIVED,
        description="How the incentive wRVU threshold is determined"
    )
    annualThreshold: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Annual wRVU threshold (thresholdMethod=annual)"
    )
    thresholdPercentile: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Market wRVU percentile for the threshold (thresholdMethod=wrvu_percentile)"
    )
    fteBasis: FTEBasis = Field(
        default=FTEBasis.CLINICAL,
        description="FTE used for normalization"
    )
    targetFTE: float = Field(
        default=1.0,
        gt=0.0,
        description="FTE that values are normalized to"
    )
    wrvuGrowthPct: float = Field(
        default=0.0,
        ge=-100.0,
        description="Percent growth applied to productivity before modeling"
    )
    additionalTCC: AdditionalTCC = Field(
        default_factory=AdditionalTCC,
        description="Extra compensation layers counted toward total cash compensation"
    )

    @model_validator(mode="after")
    def check_fixed_cf(self) -> "ScenarioInputs":
        if self.cfSource == CFSourceMode.FIXED and self.fixedCF is None:
            raise ValueError("fixedCF is required when cfSource is 'fixed'")
        return self


class ScenarioOverride(BaseModel):
    """
    Partial ScenarioInputs. Every field that is set replaces the base value.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    name: Optional[str] = None
    cfSource: Optional[CFSourceMode] = None
    fixedCF: Optional[float] = Field(default=None, ge=0.0)
    targetPercentile: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    haircutPct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    includeQualityPayments: Optional[bool] = None
    includeProductivityIncentive: Optional[bool] = None
    includeOtherIncentives: Optional[bool] = None
    thresholdMethod: Optional[ThresholdMethod] = None
    annualThreshold: Optional[float] = Field(default=None, ge=0.0)
    thresholdPercentile: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    fteBasis: Optional[FTEBasis] = None
    additionalTCC: Optional[AdditionalTCC] = None
    targetFTE: Optional[float] = Field(default=None, gt=0.0)
    wrvuGrowthPct: Optional[float] = Field(default=None, ge=-100.0)


class ScenarioOverrides(BaseModel):
    """
    Override fragments keyed by specialty label and by provider id.

    Provider overrides are applied after specialty overrides.
    """
    model_config = ConfigDict(frozen=True)

    specialties: Dict[str, ScenarioOverride] = Field(
        default_factory=dict,
        description="Overrides keyed by specialty label (raw or benchmark)"
    )
    providers: Dict[str, ScenarioOverride] = Field(
        default_factory=dict,
        description="Overrides keyed by providerId"
    )


# =============================================================================
# Optimizer Settings
# =============================================================================


class ExclusionRules(BaseModel):
    """Rule-based eligibility thresholds."""
    model_config = FROZEN_INPUT_CONFIG

    minBasisFTE: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum basis FTE to be benchmarked"
    )
    minWRVUPerFTE: float = Field(
        default=1000.0,
        ge=0.0,
        description="Minimum normalized wRVUs (per target FTE)"
    )
    excludeLeaveOfAbsence: bool = Field(
        default=True,
        description="Exclude providers flagged with leave of absence"
    )
    newHireMonthsThreshold: Optional[float] = Field(
        default=12.0,
        ge=0.0,
        description="New hires with tenure below this many months are excluded; None disables the rule"
    )
    manualExcludeIds: List[str] = Field(
        default_factory=list,
        description="Provider ids to exclude in addition to record flags"
    )
    manualIncludeIds: List[str] = Field(
        default_factory=list,
        description="Provider ids included regardless of rule or outlier exclusions"
    )


class OutlierParams(BaseModel):
    """Statistical fence configuration for outlier exclusion."""
    model_config = FROZEN_INPUT_CONFIG

    enabled: bool = Field(default=True, description="Apply outlier fences")
    method: OutlierMethod = Field(default=OutlierMethod.MAD_Z, description="Fence method")
    iqrMultiplier: float = Field(default=1.5, gt=0.0, description="k for IQR fences")
    madZThreshold: float = Field(default=3.5, gt=0.0, description="Modified z-score threshold")
    zThreshold: float = Field(default=3.0, gt=0.0, description="Classic z-score threshold")
    minPopulation: int = Field(
        default=4,
        ge=2,
        description="Minimum provisional population needed to compute a fence"
    )
    checkWRVU: bool = Field(default=True, description="Fence normalized productivity")
    checkTCC: bool = Field(default=True, description="Fence normalized total compensation")
    checkEffectiveRate: bool = Field(default=True, description="Fence the effective rate")


class ObjectiveConfig(BaseModel):
    """
    What the CF search aligns.

    align_percentile drives pay toward each provider's productivity
    percentile; target_fixed_percentile drives pay toward targetPercentile;
    hybrid blends both errors with alignWeight and targetWeight.
    """
    model_config = FROZEN_INPUT_CONFIG

    kind: ObjectiveKind = Field(
        default=ObjectiveKind.ALIGN_PERCENTILE,
        description="Per-provider error definition"
    )
    targetPercentile: float = Field(
        default=40.0,
        ge=0.0,
        le=100.0,
        description="Pay percentile target (target_fixed_percentile and hybrid)"
    )
    alignWeight: float = Field(
        default=0.7,
        ge=0.0,
        description="Weight of the alignment error (hybrid)"
    )
    targetWeight: float = Field(
        default=0.3,
        ge=0.0,
        description="Weight of the target error (hybrid)"
    )

    @model_validator(mode="after")
    def check_weights(self) -> "ObjectiveConfig":
        if self.kind == ObjectiveKind.HYBRID and self.alignWeight + self.targetWeight <= 0:
            raise ValueError("hybrid objective needs a positive alignWeight or targetWeight")
        return self


class SearchParams(BaseModel):
    """Bounds and tolerances of the CF recommendation search."""
    model_config = FROZEN_INPUT_CONFIG

    objective: ObjectiveConfig = Field(
        default_factory=ObjectiveConfig,
        description="Per-provider error the search drives toward zero"
    )
    minChangePct: float = Field(
        default=30.0,
        ge=0.0,
        le=100.0,
        description="Maximum CF decrease from current, in percent"
    )
    maxChangePct: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum CF increase from current, in percent"
    )
    absoluteMin: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Lowest CF ever recommended, in $/wRVU"
    )
    absoluteMax: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Highest CF ever recommended, in $/wRVU"
    )
    tolerance: float = Field(
        default=0.01,
        gt=0.0,
        description="Convergence tolerance on the objective (percentile points)"
    )
    maxIterations: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Iteration budget per specialty"
    )
    initialStepPct: float = Field(
        default=5.0,
        gt=0.0,
        description="First expansion step, in percent of current CF"
    )
    errorMetric: ErrorMetric = Field(
        default=ErrorMetric.ABSOLUTE,
        description="Per-provider error used by the objective"
    )
    maxRecommendedCFPercentile: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=100.0,
        description="Never recommend a CF above this market CF percentile"
    )

    @model_validator(mode="after")
    def check_absolute_bounds(self) -> "SearchParams":
        if (
            self.absoluteMin is not None
            and self.absoluteMax is not None
            and self.absoluteMin > self.absoluteMax
        ):
            raise ValueError("absoluteMin must not exceed absoluteMax")
        return self


class PolicyThresholds(BaseModel):
    """Policy tier bands and review thresholds."""
    model_config = FROZEN_INPUT_CONFIG

    above50Percentile: float = Field(default=50.0, description="Lower edge of the above_50 tier")
    above75Percentile: float = Field(default=75.0, description="Lower edge of the above_75 tier")
    above90Percentile: float = Field(default=90.0, description="Lower edge of the above_90 tier")
    fmvReviewPercentile: float = Field(
        default=75.0,
        description="Aggregate pay percentile at or above which fmv_risk is flagged"
    )
    elevatedRiskPercentile: float = Field(default=75.0, description="Elevated risk line")
    highRiskPercentile: float = Field(default=90.0, description="High risk line")
    lowSampleMinimum: int = Field(
        default=3,
        ge=0,
        description="Included count below which low_sample is flagged"
    )


class GovernanceConfig(BaseModel):
    """Governance caps used for status, constraint codes and action guidance."""
    model_config = FROZEN_INPUT_CONFIG

    hardCapPercentile: float = Field(default=50.0, description="Comp percentile hard cap")
    softCapPercentile: float = Field(default=60.0, description="Comp percentile soft cap")
    alignmentTolerance: float = Field(
        default=3.0,
        ge=0.0,
        description="Gap (percentile points) treated as aligned"
    )
    minMeaningfulChangePct: float = Field(
        default=1.0,
        ge=0.0,
        description="CF change below this percent is reported as HOLD"
    )
    blockIncreaseAboveHardCap: bool = Field(
        default=True,
        description="Do not recommend an increase when comp percentile is above the hard cap"
    )


class OptimizerSettings(BaseModel):
    """
    Complete configuration for an optimizer run.

    Combines the base scenario with eligibility, outlier, search, policy and
    governance parameters.
    """
    model_config = ConfigDict(frozen=True)

    scenario: ScenarioInputs = Field(default_factory=ScenarioInputs)
    exclusions: ExclusionRules = Field(default_factory=ExclusionRules)
    outliers: OutlierParams = Field(default_factory=OutlierParams)
    search: SearchParams = Field(default_factory=SearchParams)
    policy: PolicyThresholds = Field(default_factory=PolicyThresholds)
    governance: GovernanceConfig = Field(default_factory=GovernanceConfig)
    specialtyFilter: Optional[List[str]] = Field(
        default=None,
        description="Only process these specialties (raw or benchmark labels)"
    )


# =============================================================================
# Per-Provider Results
# =============================================================================


class PercentileStanding(BaseModel):
    """A percentile with its out-of-range flags."""
    percentile: float = Field(..., description="Percentile in [0, 100]")
    belowRange: bool = Field(default=False, description="Extrapolated below the 25th")
    aboveRange: bool = Field(default=False, description="Extrapolated above the 90th")


class CompensationBreakdown(BaseModel):
    """Total cash compensation at a given CF, by component."""
    cf: float = Field(..., description="CF used for the incentive")
    clinicalBase: float = Field(..., description="Clinical base salary")
    qualityPayments: float = Field(default=0.0, description="Included quality payments")
    otherIncentives: float = Field(default=0.0, description="Included other incentives")
    incentiveThreshold: Optional[float] = Field(
        default=None,
        description="wRVU threshold above which the incentive is paid"
    )
    incentive: float = Field(default=0.0, description="Productivity incentive dollars")
    additionalTCC: float = Field(default=0.0, description="Scenario's additional TCC layers")
    total: float = Field(..., description="Total qualifying cash compensation")


class EffectiveRateResult(BaseModel):
    """
    Effective pay per normalized productivity unit.

    When the normalized productivity is zero or invalid the provider has no
    benchmarkable basis: the rate and percentile are None.
    """
    hasBenchmarkableBasis: bool = Field(..., description="Normalized productivity is usable")
    basisFTE: float = Field(..., description="FTE used for normalization")
    normalizedCompensation: Optional[float] = Field(default=None)
    normalizedProductivity: Optional[float] = Field(default=None)
    effectiveRate: Optional[float] = Field(default=None, description="$ per normalized wRVU")
    percentile: Optional[PercentileStanding] = Field(
        default=None,
        description="Standing on the market CF curve"
    )


class ProviderContext(BaseModel):
    """
    Per-provider, per-scenario result.

    Pay percentiles are on the total-compensation curve after FTE
    normalization; effective rate percentiles are on the CF curve.
    Gaps are pay percentile minus productivity percentile.
    """
    providerId: str
    providerName: Optional[str] = None
    specialty: str = Field(..., description="Specialty group the provider was processed in")
    matchedSpecialty: Optional[str] = Field(default=None, description="Benchmark specialty")
    matchStatus: MatchStatus
    scenarioName: str = Field(default="Base")
    included: bool
    exclusionReasons: List[ExclusionReason] = Field(default_factory=list)

    currentCF: Optional[float] = None
    modeledCF: Optional[float] = None
    currentCompensation: Optional[CompensationBreakdown] = None
    modeledCompensation: Optional[CompensationBreakdown] = None
    currentPayPercentile: Optional[PercentileStanding] = None
    modeledPayPercentile: Optional[PercentileStanding] = None
    productivityPercentile: Optional[PercentileStanding] = None
    currentGap: Optional[float] = None
    modeledGap: Optional[float] = None
    currentEffectiveRate: Optional[EffectiveRateResult] = None
    modeledEffectiveRate: Optional[EffectiveRateResult] = None
    currentIncentive: float = 0.0
    modeledIncentive: float = 0.0
    normalizedWRVUs: Optional[float] = None
    normalizedTCC: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)


# =============================================================================
# Per-Specialty Results
# =============================================================================


class SearchSummary(BaseModel):
    """Trace of the CF search for a specialty."""
    performed: bool = Field(default=False, description="A search was run")
    iterations: int = Field(default=0, description="Iterations used")
    converged: bool = Field(default=False, description="Stopped on tolerance")
    boundHit: bool = Field(default=False, description="Stopped on the CF bound")
    lowerBound: Optional[float] = Field(default=None, description="Lowest CF allowed")
    upperBound: Optional[float] = Field(default=None, description="Highest CF allowed")
    objectiveBefore: Optional[float] = Field(default=None, description="Objective at start")
    objectiveAfter: Optional[float] = Field(default=None, description="Objective at recommendation")


class Explanation(BaseModel):
    """Plain-language summary of a specialty recommendation."""
    headline: str
    why: List[str] = Field(default_factory=list)
    whatToDoNext: List[str] = Field(default_factory=list)


class SpecialtyResult(BaseModel):
    """
    Aggregate over a specialty's included providers.

    Excluded providers are listed in `providers` but never influence the
    means, error metrics, spend impact or search.
    """
    specialty: str = Field(..., description="Specialty group label")
    matchedSpecialty: Optional[str] = Field(default=None, description="Benchmark specialty")
    includedCount: int = 0
    excludedCount: int = 0
    currentCF: float = Field(..., description="Specialty current CF")
    recommendedCF: float = Field(..., description="Recommended CF")
    cfChangePct: float = Field(default=0.0, description="Percent change from current CF")
    recommendedCFPercentile: Optional[PercentileStanding] = None
    meanBaselineGap: Optional[float] = None
    meanModeledGap: Optional[float] = None
    maeBefore: Optional[float] = None
    maeAfter: Optional[float] = None
    meanPayPercentileBefore: Optional[float] = None
    meanPayPercentileAfter: Optional[float] = None
    meanProductivityPercentile: Optional[float] = None
    spendImpact: float = 0.0
    totalIncentiveDollars: float = 0.0
    elevatedRiskCount: int = 0
    highRiskCount: int = 0
    policyCheck: PolicyCheck = PolicyCheck.OK
    flags: List[OptimizerFlag] = Field(default_factory=list)
    search: SearchSummary = Field(default_factory=SearchSummary)
    governanceStatus: GovernanceStatus = GovernanceStatus.GREEN
    constraintsHit: List[str] = Field(default_factory=list)
    recommendedAction: RecommendedAction = RecommendedAction.NO_RECOMMENDATION
    explanation: Optional[Explanation] = None
    providers: List[ProviderContext] = Field(default_factory=list)


# =============================================================================
# Run-Level Results
# =============================================================================


class ExcludedProvider(BaseModel):
    """Audit trail entry for an excluded provider."""
    providerId: str
    providerName: Optional[str] = None
    specialty: str
    reasons: List[ExclusionReason]


class ExclusionReasonCount(BaseModel):
    """Frequency of an exclusion reason across the run."""
    reason: ExclusionReason
    count: int


class RunSummary(BaseModel):
    """Top-level counts and totals."""
    specialtiesAnalyzed: int = 0
    providersIncluded: int = 0
    providersExcluded: int = 0
    totalSpendImpact: float = 0.0
    totalIncentiveDollars: float = 0.0
    countAbovePolicy: int = Field(default=0, description="Specialties with policyCheck != ok")
    countFmvRisk: int = 0
    countCFCapped: int = 0
    countNotConverged: int = 0
    topExclusionReasons: List[ExclusionReasonCount] = Field(default_factory=list)


class RunResult(BaseModel):
    """
    Result of an optimizer run.

    Contains no timestamps or generated ids so identical inputs serialize to
    identical output.
    """
    summary: RunSummary
    specialties: List[SpecialtyResult] = Field(default_factory=list)
    audit: List[ExcludedProvider] = Field(default_factory=list)
    keyMessages: List[str] = Field(default_factory=list)


class BatchReportRow(ProviderContext):
    """Flat batch-report row: a ProviderContext plus its risk level."""
    riskLevel: RiskLevel = RiskLevel.LOW


class ProgressEvent(BaseModel):
    """Emitted after each specialty finishes. `index` is 1-based."""
    index: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    specialty: str


class SweepPoint(BaseModel):
    """Specialty totals when every included provider is modeled at a market CF percentile."""
    cfPercentile: float
    cf: float
    meanPayPercentile: Optional[float] = None
    meanGap: Optional[float] = None
    totalModeledTCC: float = 0.0
    spendImpact: float = 0.0


class SpecialtySweep(BaseModel):
    """CF percentile sweep of one matched specialty."""
    specialty: str = Field(..., description="Specialty group label")
    matchedSpecialty: Optional[str] = Field(default=None, description="Benchmark specialty")
    points: List[SweepPoint] = Field(default_factory=list)


class ImputedMarketRow(BaseModel):
    """
    Imputed $/wRVU of a specialty's providers against the market's implied
    $/wRVU (TCC percentile / wRVU percentile) at each survey point.
    """
    specialty: str = Field(..., description="Specialty as labeled on the provider records")
    providerCount: int = Field(..., description="Providers contributing to the medians")
    medianImputedDollarPerWRVU: float = Field(..., description="Median of TCC / wRVU")
    medianCurrentCFUsed: float = Field(..., description="Median CF used to model baseline TCC")
    market25: float = Field(default=0.0, description="TCC_25 / WRVU_25")
    market50: float = Field(default=0.0, description="TCC_50 / WRVU_50")
    market75: float = Field(default=0.0, description="TCC_75 / WRVU_75")
    market90: float = Field(default=0.0, description="TCC_90 / WRVU_90")
    yourPercentile: float = Field(
        default=0.0,
        description="Percentile of the median imputed rate on the market $/wRVU curve"
    )
    belowRange: bool = Field(default=False, description="Median imputed rate below market25")
    aboveRange: bool = Field(default=False, description="Median imputed rate above market90")
    avgTCCPercentile: float = Field(default=0.0, description="Mean TCC percentile of the group")
    avgWRVUPercentile: float = Field(default=0.0, description="Mean wRVU percentile of the group")
    marketCF25: float = Field(default=0.0)
    marketCF50: float = Field(default=0.0)
    marketCF75: float = Field(default=0.0)
    marketCF90: float = Field(default=0.0)


# =============================================================================
# Ingestion
# =============================================================================


class ValidationIssue(BaseModel):
    """
    Validation problem found while ingesting tabular data.
    """
    field: str = Field(
        ...,
        description="Column (or 'file' / 'row') with the problem"
    )
    message: str = Field(
        ...,
        description="Error message"
    )
    rowNumber: Optional[int] = Field(
        default=None,
        ge=1,
        description="1-based data row number"
    )


__all__ = [
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
