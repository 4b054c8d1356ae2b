"""
FastAPI router module for engine run management.

Implements:
- POST /runs/optimizer: start a CF recommendation run
- POST /runs/batch: start a batch report run over named scenarios
- GET /runs: list runs held by the run manager
- GET /runs/{run_id}: status, progress and (once completed) the result
- GET /runs/{run_id}/progress: progress events only
- GET /runs/{run_id}/result: result of a completed run (409 otherwise)
- DELETE /runs/{run_id}: cancel a run

Runs execute in the background; clients poll the status endpoint. Input
problems detectable up front (duplicate provider ids, no scenarios) are
rejected with 400 before a run is started.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from compbench.core.config import build_optimizer_settings
from compbench.core.dependencies import RunManagerDep, SettingsDep
from compbench.core.exceptions import InvalidInputError, RunNotFoundError
from compbench.models import (
    BatchReportRow,
    CompensationRecord,
    MarketBenchmark,
    OptimizerSettings,
    ProgressEvent,
    RunMode,
    RunResult,
    RunStatus,
    ScenarioInputs,
    ScenarioOverrides,
)
from compbench.services.batch import validate_records
from compbench.services.runner import EngineRun


logger = logging.getLogger(__name__)


# =============================================================================
# Local Pydantic Models for API Requests and Responses
# =============================================================================

class OptimizerRunRequest(BaseModel):
    """Request body for starting an optimizer run."""
    records: List[CompensationRecord] = Field(
        ...,
        description="Provider compensation records"
    )
    benchmarks: List[MarketBenchmark] = Field(
        ...,
        description="Market survey benchmarks, one per specialty"
    )
    synonymMap: Dict[str, str] = Field(
        default_factory=dict,
        description="Provider specialty label -> benchmark specialty"
    )
    settings: Optional[OptimizerSettings] = Field(
        default=None,
        description="Engine settings; service defaults are used when omitted"
    )
    overrides: Optional[ScenarioOverrides] = Field(
        default=None,
        description="Per-specialty and per-provider scenario overrides"
    )


class BatchRunRequest(BaseModel):
    """Request body for starting a batch report run."""
    records: List[CompensationRecord] = Field(
        ...,
        description="Provider compensation records"
    )
    benchmarks: List[MarketBenchmark] = Field(
        ...,
        description="Market survey benchmarks, one per specialty"
    )
    synonymMap: Dict[str, str] = Field(
        default_factory=dict,
        description="Provider specialty label -> benchmark specialty"
    )
    scenarios: List[ScenarioInputs] = Field(
        ...,
        description="Named scenarios; each provider gets one row per scenario"
    )
    overrides: Optional[ScenarioOverrides] = Field(
        default=None,
        description="Per-specialty and per-provider scenario overrides"
    )


class RunCreateResponse(BaseModel):
    """Response model for run creation."""
    runId: str = Field(..., description="Identifier used to poll the run")
    mode: RunMode
    status: RunStatus


class RunStatusResponse(BaseModel):
    """Status of a run, with its result once completed."""
    runId: str
    mode: RunMode
    status: RunStatus
    progress: List[ProgressEvent] = Field(default_factory=list)
    error: Optional[str] = None
    result: Optional[RunResult] = Field(
        default=None,
        description="Optimizer result (optimizer runs only)"
    )
    rows: Optional[List[BatchReportRow]] = Field(
        default=None,
        description="Batch report rows (batch report runs only)"
    )


class RunListResponse(BaseModel):
    """Response model for the list runs endpoint."""
    runs: List[RunStatusResponse] = Field(default_factory=list)


class RunProgressResponse(BaseModel):
    """Progress events of a run."""
    runId: str
    status: RunStatus
    progress: List[ProgressEvent] = Field(default_factory=list)


# =============================================================================
# Helper Functions
# =============================================================================

def _to_status_response(run: EngineRun, include_result: bool = True) -> RunStatusResponse:
    """Convert an EngineRun to its API representation."""
    response = RunStatusResponse(
        runId=run.run_id,
        mode=run.mode,
        status=run.status,
        progress=list(run.progress),
        error=run.error,
    )
    if include_result and run.status == RunStatus.COMPLETED:
        if run.mode == RunMode.OPTIMIZER:
            response.result = run.result
        else:
            response.rows = run.result
    return response


def _get_run_or_404(manager, run_id: str) -> EngineRun:
    try:
        return manager.get(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


router = APIRouter()


# =============================================================================
# Endpoint Implementations
# =============================================================================


@router.post("/optimizer", response_model=RunCreateResponse, status_code=202)
async def start_optimizer_run(
    manager: RunManagerDep,
    app_settings: SettingsDep,
    request: OptimizerRunRequest = Body(...),
) -> RunCreateResponse:
    """
    Start a CF recommendation run in the background.

    Raises:
        HTTPException(400) for duplicate provider ids
    """
    try:
        validate_records(request.records)
        settings = request.settings or build_optimizer_settings(app_settings)
        run = manager.start_optimizer_run(
            request.records,
            request.benchmarks,
            request.synonymMap,
            settings,
            request.overrides,
        )
        logger.info(
            f"Started optimizer run {run.run_id} with {len(request.records)} records "
            f"and {len(request.benchmarks)} benchmarks"
        )
        return RunCreateResponse(runId=run.run_id, mode=run.mode, status=run.status)

    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error starting optimizer run")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start optimizer run: {str(e)}"
        )


@router.post("/batch", response_model=RunCreateResponse, status_code=202)
async def start_batch_run(
    manager: RunManagerDep,
    request: BatchRunRequest = Body(...),
) -> RunCreateResponse:
    """
    Start a batch report run in the background.

    Raises:
        HTTPException(400) for duplicate provider ids or an empty scenario list
    """
    try:
        validate_records(request.records)
        if not request.scenarios:
            raise InvalidInputError("At least one scenario is required for a batch report")
        run = manager.start_batch_report_run(
            request.records,
            request.benchmarks,
            request.synonymMap,
            request.scenarios,
            request.overrides,
        )
        logger.info(f"Started batch report run {run.run_id} with {len(request.scenarios)} scenarios")
        return RunCreateResponse(runId=run.run_id, mode=run.mode, status=run.status)

    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error starting batch report run")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to start batch report run: {str(e)}"
        )


@router.get("", response_model=RunListResponse)
async def list_runs(manager: RunManagerDep) -> RunListResponse:
    """List runs without their results."""
    runs = [_to_status_response(run, include_result=False) for run in manager.list_runs()]
    return RunListResponse(runs=runs)


@router.get("/{run_id}", response_model=RunStatusResponse)
async def get_run(run_id: str, manager: RunManagerDep) -> RunStatusResponse:
    """
    Get run status.

    The result is included only when the run has completed; cancelled runs
    never expose a result.

    Raises:
        HTTPException(404) if run not found
    """
    run = _get_run_or_404(manager, run_id)
    return _to_status_response(run)


@router.get("/{run_id}/progress", response_model=RunProgressResponse)
async def get_run_progress(run_id: str, manager: RunManagerDep) -> RunProgressResponse:
    """Progress events emitted so far, in order."""
    run = _get_run_or_404(manager, run_id)
    return RunProgressResponse(runId=run.run_id, status=run.status, progress=list(run.progress))


@router.get("/{run_id}/result", response_model=RunStatusResponse)
async def get_run_result(run_id: str, manager: RunManagerDep) -> RunStatusResponse:
    """
    Get the result of a completed run.

    Raises:
        HTTPException(404) if run not found
        HTTPException(409) if the run is not completed
    """
    run = _get_run_or_404(manager, run_id)
    if run.status != RunStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail=f"Run {run_id} is {run.status.value}; no result available"
        )
    return _to_status_response(run)


@router.delete("/{run_id}", response_model=RunStatusResponse)
async def cancel_run(run_id: str, manager: RunManagerDep) -> RunStatusResponse:
    """
    Cancel a run.

    Raises:
        HTTPException(404) if run not found
        HTTPException(409) if the run already finished
    """
    run = _get_run_or_404(manager, run_id)
    if not run.cancel():
        raise HTTPException(
            status_code=409,
            detail=f"Run {run_id} already {run.status.value}"
        )
    logger.info(f"Cancelled run {run_id} on request")
    return _to_status_response(run, include_result=False)


__all__ = [
    "router",
    "OptimizerRunRequest",
    "BatchRunRequest",
    "RunCreateResponse",
    "RunStatusResponse",
    "RunListResponse",
    "RunProgressResponse",
]
