"""
FastAPI router module for read-only analyses.

Implements:
- POST /analysis/sweep: modeled totals per specialty at market CF percentiles
- POST /analysis/imputed-vs-market: imputed $/wRVU by specialty against the
  market's implied $/wRVU

Both run synchronously in a worker thread and return their result directly;
neither starts a background run.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from compbench.core.config import build_optimizer_settings
from compbench.core.dependencies import SettingsDep
from compbench.core.exceptions import InvalidInputError
from compbench.models import (
    CompensationRecord,
    ExclusionRules,
    ImputedMarketRow,
    MarketBenchmark,
    OptimizerSettings,
    ScenarioInputs,
    ScenarioOverrides,
    SpecialtySweep,
)
from compbench.services.batch import run_sweep
from compbench.services.imputed_market import compute_imputed_vs_market
from compbench.services.optimizer import DEFAULT_SWEEP_PERCENTILES


logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests and Responses
# =============================================================================

class SweepRequest(BaseModel):
    """Request body for a CF percentile sweep."""
    records: List[CompensationRecord] = Field(..., description="Provider compensation records")
    benchmarks: List[MarketBenchmark] = Field(..., description="Market survey benchmarks")
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    settings: Optional[OptimizerSettings] = Field(
        default=None,
        description="Engine settings; service defaults are used when omitted"
    )
    overrides: Optional[ScenarioOverrides] = None
    percentiles: List[float] = Field(
        default_factory=lambda: list(DEFAULT_SWEEP_PERCENTILES),
        min_length=1,
        description="Market CF percentiles to model"
    )


class SweepResponse(BaseModel):
    specialties: List[SpecialtySweep] = Field(default_factory=list)


class ImputedMarketRequest(BaseModel):
    """Request body for the imputed vs market comparison."""
    records: List[CompensationRecord] = Field(..., description="Provider compensation records")
    benchmarks: List[MarketBenchmark] = Field(..., description="Market survey benchmarks")
    synonymMap: Dict[str, str] = Field(default_factory=dict)
    scenario: Optional[ScenarioInputs] = Field(
        default=None,
        description="Components counted in baseline TCC"
    )
    exclusions: Optional[ExclusionRules] = Field(
        default=None,
        description="minBasisFTE and minWRVUPerFTE thresholds"
    )


class ImputedMarketResponse(BaseModel):
    rows: List[ImputedMarketRow] = Field(default_factory=list)


router = APIRouter()


# =============================================================================
# Endpoint Implementations
# =============================================================================


@router.post("/sweep", response_model=SweepResponse)
async def sweep(
    app_settings: SettingsDep,
    request: SweepRequest = Body(...),
) -> SweepResponse:
    """
    Model every matched specialty at each requested market CF percentile.

    Raises:
        HTTPException(400) for duplicate provider ids or out-of-range percentiles
    """
    if any(not 0.0 <= p <= 100.0 for p in request.percentiles):
        raise HTTPException(status_code=400, detail="Percentiles must be between 0 and 100")
    settings = request.settings or build_optimizer_settings(app_settings)
    try:
        specialties = await asyncio.to_thread(
            run_sweep,
            request.records,
            request.benchmarks,
            request.synonymMap,
            settings,
            request.overrides,
            request.percentiles,
        )
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error running CF percentile sweep")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to run sweep: {str(e)}"
        )
    return SweepResponse(specialties=specialties)


@router.post("/imputed-vs-market", response_model=ImputedMarketResponse)
async def imputed_vs_market(
    app_settings: SettingsDep,
    request: ImputedMarketRequest = Body(...),
) -> ImputedMarketResponse:
    """Compare each specialty's imputed $/wRVU with the market's."""
    defaults = build_optimizer_settings(app_settings)
    try:
        rows = await asyncio.to_thread(
            compute_imputed_vs_market,
            request.records,
            request.benchmarks,
            request.synonymMap,
            request.scenario or defaults.scenario,
            request.exclusions or defaults.exclusions,
        )
    except Exception as e:
        logger.exception("Error computing imputed vs market")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute imputed vs market: {str(e)}"
        )
    return ImputedMarketResponse(rows=rows)


__all__ = [
    "router",
    "SweepRequest",
    "SweepResponse",
    "ImputedMarketRequest",
    "ImputedMarketResponse",
]
