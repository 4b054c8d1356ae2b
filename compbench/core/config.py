"""
Settings and environment management for the CompBench service.

Configuration is loaded with pydantic-settings from environment variables
(prefixed with COMPBENCH_) and an optional .env file.

Engine defaults defined here are used whenever an API request does not carry
its own OptimizerSettings. They can be tuned per deployment without code
changes, e.g. COMPBENCH_OUTLIER_METHOD=iqr or COMPBENCH_MAX_CF_CHANGE_PCT=20.

Usage:
    from compbench.core.config import get_settings, build_optimizer_settings

    settings = get_settings()
    optimizer_settings = build_optimizer_settings(settings)
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from compbench.models.enums import ErrorMetric, ObjectiveKind, OutlierMethod
from compbench.models.schemas import (
    ExclusionRules,
    GovernanceConfig,
    ObjectiveConfig,
    OptimizerSettings,
    OutlierParams,
    PolicyThresholds,
    ScenarioInputs,
    SearchParams,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Title reported by the API.
        log_level: Root logging level configured in main.py.
        cors_origins: Origins allowed to call the API.
        single_active_run: Cancel the previous run when a new one starts.
        max_retained_runs: Finished runs kept in memory for polling.
        min_basis_fte .. lowest policy band: engine defaults, see below.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_prefix='COMPBENCH_',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Service
    # =========================================================================

    app_name: str = 'CompBench API'
    log_level: str = 'INFO'
    cors_origins: List[str] = ['http://localhost:3000']

    # Only one engine computation at a time; starting a run cancels the prior one
    single_active_run: bool = True

    # Oldest finished runs are dropped past this count
    max_retained_runs: int = 50

    # =========================================================================
    # Eligibility Defaults
    # =========================================================================

    # Providers below this basis FTE are not benchmarked
    min_basis_fte: float = 0.5

    # Normalized wRVUs (per 1.0 FTE) below this are low volume
    min_wrvu_per_fte: float = 1000.0

    exclude_leave_of_absence: bool = True

    # New hires under this tenure are excluded
    new_hire_months_threshold: Optional[float] = 12.0

    # =========================================================================
    # Outlier Fence Defaults
    # =========================================================================

    outlier_method: OutlierMethod = OutlierMethod.MAD_Z
    outlier_iqr_multiplier: float = 1.5
    outlier_mad_z_threshold: float = 3.5
    outlier_z_threshold: float = 3.0

    # Fences need at least this many provisional providers
    outlier_min_population: int = 4

    # =========================================================================
    # Search Defaults
    # =========================================================================

    # Recommended CF stays within this percent below / above current CF
    min_cf_change_pct: float = 30.0
    max_cf_change_pct: float = 30.0

    # Absolute $/wRVU limits; unset means unbounded
    absolute_cf_min: Optional[float] = None
    absolute_cf_max: Optional[float] = None

    objective_kind: ObjectiveKind = ObjectiveKind.ALIGN_PERCENTILE
    objective_target_percentile: float = 40.0

    # Objective change (percentile points) treated as converged
    search_tolerance: float = 0.01

    search_max_iterations: int = 50
    search_initial_step_pct: float = 5.0
    search_error_metric: ErrorMetric = ErrorMetric.ABSOLUTE

    # =========================================================================
    # Policy Defaults
    # =========================================================================

    fmv_review_percentile: float = 75.0
    elevated_risk_percentile: float = 75.0
    high_risk_percentile: float = 90.0
    low_sample_minimum: int = 3
    hard_cap_percentile: float = 50.0
    soft_cap_percentile: float = 60.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()


def build_optimizer_settings(
    settings: Optional[Settings] = None,
    scenario: Optional[ScenarioInputs] = None,
) -> OptimizerSettings:
    """
    Build OptimizerSettings from the environment-level defaults.

    Args:
        settings: Settings to read; defaults to get_settings().
        scenario: Base scenario; defaults to ScenarioInputs().

    Returns:
        OptimizerSettings populated from the settings values.
    """
    settings = settings or get_settings()
    return OptimizerSettings(
        scenario=scenario or ScenarioInputs(),
        exclusions=ExclusionRules(
            minBasisFTE=settings.min_basis_fte,
            minWRVUPerFTE=settings.min_wrvu_per_fte,
            excludeLeaveOfAbsence=settings.exclude_leave_of_absence,
            newHireMonthsThreshold=settings.new_hire_months_threshold,
        ),
        outliers=OutlierParams(
            method=settings.outlier_method,
            iqrMultiplier=settings.outlier_iqr_multiplier,
            madZThreshold=settings.outlier_mad_z_threshold,
            zThreshold=settings.outlier_z_threshold,
            minPopulation=settings.outlier_min_population,
        ),
        search=SearchParams(
            objective=ObjectiveConfig(
                kind=settings.objective_kind,
                targetPercentile=settings.objective_target_percentile,
            ),
            minChangePct=settings.min_cf_change_pct,
            maxChangePct=settings.max_cf_change_pct,
            absoluteMin=settings.absolute_cf_min,
            absoluteMax=settings.absolute_cf_max,
            tolerance=settings.search_tolerance,
            maxIterations=settings.search_max_iterations,
            initialStepPct=settings.search_initial_step_pct,
            errorMetric=settings.search_error_metric,
        ),
        policy=PolicyThresholds(
            fmvReviewPercentile=settings.fmv_review_percentile,
            elevatedRiskPercentile=settings.elevated_risk_percentile,
            highRiskPercentile=settings.high_risk_percentile,
            lowSampleMinimum=settings.low_sample_minimum,
        ),
        governance=GovernanceConfig(
            hardCapPercentile=settings.hard_cap_percentile,
            softCapPercentile=settings.soft_cap_percentile,
        ),
    )
