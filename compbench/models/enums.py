"""
Enumeration definitions for the CompBench engine.

All enums inherit from both `str` and `Enum` so they serialize as plain strings
in Pydantic models and API responses.

Groups:
- Matching and scenario configuration: MatchStatus, CFSourceMode,
  ThresholdMethod, FTEBasis
- Eligibility: ExclusionReason, OutlierMethod
- Recommendation search: ErrorMetric, ObjectiveKind, OptimizerFlag,
  PolicyCheck, GovernanceStatus, RecommendedAction
- Reporting: RiskLevel, RunStatus, RunMode
"""

from enum import Enum


class MatchStatus(str, Enum):
    """
    Outcome of resolving a provider's specialty label to a market benchmark.

    - exact: normalized label matched a benchmark specialty directly
    - synonym: matched after resolving through the synonym map
    - missing: no benchmark found
    """
    EXACT = "exact"
    SYNONYM = "synonym"
    MISSING = "missing"


class CFSourceMode(str, Enum):
    """
    How a scenario resolves the modeled conversion factor.

    - fixed: a fixed dollar amount per productivity unit
    - target_percentile: the market CF interpolated at a target percentile
    - target_minus_haircut: the interpolated market CF reduced by a haircut percent
    """
    FIXED = "fixed"
    TARGET_PERCENTILE = "target_percentile"
    TARGET_MINUS_HAIRCUT = "target_minus_haircut"


class ThresholdMethod(str, Enum):
    """
    How the productivity incentive threshold (in wRVUs) is determined.

    - derived: clinical base divided by CF (incentive starts once production
      pays for the base)
    - annual: a fixed annual wRVU threshold
    - wrvu_percentile: market wRVU value at a percentile, scaled by clinical FTE
    """
    DERIVED = "derived"
    ANNUAL = "annual"
    WRVU_PERCENTILE = "wrvu_percentile"


class FTEBasis(str, Enum):
    """
    FTE used when normalizing compensation and productivity.

    - clinical: effective clinical FTE (per cFTE survey basis)
    - total: total FTE (per tFTE survey basis)
    - raw: no normalization; values are compared as reported
    """
    CLINICAL = "clinical"
    TOTAL = "total"
    RAW = "raw"


class ExclusionReason(str, Enum):
    """
    Reasons a provider is excluded from specialty statistics.

    Declaration order is the order reasons are reported in.
    """
    MISSING_MARKET = "missing_market"
    NO_BENCHMARKABLE_FTE_BASIS = "no_benchmarkable_fte_basis"
    BASIS_FTE_BELOW_MIN = "basis_fte_below_min"
    LOW_WRVU_VOLUME = "low_wrvu_volume"
    LOA_FLAGGED = "loa_flagged"
    NEW_HIRE_BELOW_THRESHOLD = "new_hire_below_threshold"
    MANUAL_EXCLUDE = "manual_exclude"
    OUTLIER_WRVU = "outlier_wrvu"
    OUTLIER_TCC = "outlier_tcc"
    OUTLIER_EFFECTIVE_RATE = "outlier_effective_rate"


class OutlierMethod(str, Enum):
    """
    Statistical fence used for outlier exclusion.

    - iqr: outside [Q1 - k*IQR, Q3 + k*IQR]
    - mad_z: modified z-score 0.6745 * (x - median) / MAD beyond a threshold
    - zscore: classic z-score (population std) beyond a threshold
    """
    IQR = "iqr"
    MAD_Z = "mad_z"
    ZSCORE = "zscore"


class ErrorMetric(str, Enum):
    """Per-provider error aggregated into the alignment objective."""
    ABSOLUTE = "absolute"
    SQUARED = "squared"


class ObjectiveKind(str, Enum):
    """
    Per-provider error the CF search drives toward zero.

    - align_percentile: pay percentile minus productivity percentile
    - target_fixed_percentile: pay percentile minus a fixed target percentile
    - hybrid: weighted blend of the two errors above
    """
    ALIGN_PERCENTILE = "align_percentile"
    TARGET_FIXED_PERCENTILE = "target_fixed_percentile"
    HYBRID = "hybrid"


class OptimizerFlag(str, Enum):
    """
    Reported conditions on a specialty recommendation.

    These are informational; none of them aborts processing.
    """
    CF_CAPPED = "cf_capped"
    NOT_CONVERGED = "not_converged"
    OUTLIERS_EXCLUDED = "outliers_excluded"
    OFF_SCALE = "off_scale"
    LOW_SAMPLE = "low_sample"
    FMV_RISK = "fmv_risk"


class PolicyCheck(str, Enum):
    """Policy tier of a specialty's resulting aggregate pay percentile."""
    OK = "ok"
    ABOVE_50 = "above_50"
    ABOVE_75 = "above_75"
    ABOVE_90 = "above_90"


class GovernanceStatus(str, Enum):
    """
    Traffic-light governance status for a specialty.

    - GREEN: within caps and alignment tolerance
    - YELLOW: soft cap or moderate misalignment
    - RED: hard cap, FMV review line or large misalignment
    """
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class RecommendedAction(str, Enum):
    """Direction of the CF recommendation for a specialty."""
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    HOLD = "HOLD"
    NO_RECOMMENDATION = "NO_RECOMMENDATION"


class RiskLevel(str, Enum):
    """Per-row risk level in batch report mode."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RunStatus(str, Enum):
    """
    Lifecycle status of a background engine run.

    Terminal states are completed, failed and cancelled.
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunMode(str, Enum):
    """Which orchestrator entry point a run executes."""
    OPTIMIZER = "optimizer"
    BATCH_REPORT = "batch_report"


__all__ = [
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
]
