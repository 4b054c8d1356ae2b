"""
Background Engine Runs

Runs the batch orchestrator as a cancellable asyncio task so the engine never
blocks the API event loop.

Components:
1. run_optimizer_async / run_batch_report_async: coroutine versions of the
   orchestrator loop. Each specialty is computed in a worker thread
   (asyncio.to_thread); the coroutine only suspends between specialties.
   Cancelling the task abandons the run at the next specialty boundary.
2. EngineRun: one background task with its own input snapshot, progress
   history, a progress stream, and a terminal outcome (result, failure or
   cancellation). A cancelled run never exposes a result.
3. RunManager: starts, lists and cancels runs. With single_active_run enabled
   a new run first cancels any run still in progress.

Usage:
    manager = RunManager()
    run = manager.start_optimizer_run(records, benchmarks, synonyms, settings)
    async for event in run.stream_progress():
        print(event.index, event.total, event.specialty)
    result = await run.wait()
"""

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from compbench.core.exceptions import EngineError, RunCancelledError, RunNotFoundError
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
from compbench.services.batch import (
    ProgressCallback,
    assemble_run_result,
    emit_progress,
    prepare_batch_report,
    prepare_run,
    report_specialty,
)
from compbench.services.optimizer import optimize_specialty


logger = logging.getLogger(__name__)


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED})


# =============================================================================
# Async Orchestrator Loops
# =============================================================================


async def run_optimizer_async(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    settings: Optional[OptimizerSettings] = None,
    overrides: Optional[ScenarioOverrides] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RunResult:
    """Async run_optimizer; suspends only between specialties."""
    settings = settings or OptimizerSettings()
    specialties = await asyncio.to_thread(
        prepare_run, records, benchmarks, synonym_map, settings.scenario, overrides, settings.specialtyFilter
    )
    results = []
    total = len(specialties)
    for index, specialty in enumerate(specialties, start=1):
        results.append(await asyncio.to_thread(optimize_specialty, specialty, settings))
        emit_progress(on_progress, index, total, specialty.label)
    return assemble_run_result(results)


async def run_batch_report_async(
    records: Sequence[CompensationRecord],
    benchmarks: Sequence[MarketBenchmark],
    synonym_map: Optional[Mapping[str, str]] = None,
    scenarios: Sequence[ScenarioInputs] = (),
    overrides: Optional[ScenarioOverrides] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[BatchReportRow]:
    """Async run_batch_report; suspends only between specialties."""
    specialties, resolvers = await asyncio.to_thread(
        prepare_batch_report, records, benchmarks, synonym_map, scenarios, overrides
    )
    rows: List[BatchReportRow] = []
    total = len(specialties)
    for index, specialty in enumerate(specialties, start=1):
        rows.extend(await asyncio.to_thread(report_specialty, specialty, resolvers))
        emit_progress(on_progress, index, total, specialty.label)
    return rows


# =============================================================================
# Engine Run
# =============================================================================


RunWork = Callable[[ProgressCallback], Awaitable[Any]]


class EngineRun:
    """
    A single background engine computation.

    Progress events are kept in `progress` for polling and are also pushed to
    a queue consumed by stream_progress(). The result is only set once the
    whole run has completed.
    """

    def __init__(self, run_id: str, mode: RunMode, work: RunWork):
        self.run_id = run_id
        self.mode = mode
        self.status = RunStatus.PENDING
        self.progress: List[ProgressEvent] = []
        self.result: Any = None
        self.error: Optional[str] = None
        self._work = work
        self._exception: Optional[BaseException] = None
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def start(self) -> None:
        """Schedule the run on the running event loop."""
        self._task = asyncio.create_task(self._execute(), name=f"engine-run-{self.run_id}")

    def _record_progress(self, event: ProgressEvent) -> None:
        self.progress.append(event)
        self._queue.put_nowait(event)

    def _close_stream(self) -> None:
        self._queue.put_nowait(None)

    async def _execute(self) -> None:
        self.status = RunStatus.RUNNING
        logger.info(f"Run {self.run_id} ({self.mode.value}) started")
        try:
            result = await self._work(self._record_progress)
        except asyncio.CancelledError:
            self._mark_cancelled()
            raise
        except (EngineError, ValidationError) as exc:
            logger.warning(f"Run {self.run_id} failed: {exc}")
            self._mark_failed(exc)
        except Exception as exc:
            logger.exception(f"Run {self.run_id} failed unexpectedly")
            self._mark_failed(exc)
        else:
            if self.status == RunStatus.CANCELLED:
                return
            self.result = result
            self.status = RunStatus.COMPLETED
            self._close_stream()
            logger.info(f"Run {self.run_id} completed after {len(self.progress)} specialties")

    def _mark_failed(self, exc: BaseException) -> None:
        self._exception = exc
        self.error = str(exc)
        self.status = RunStatus.FAILED
        self._close_stream()

    def _mark_cancelled(self) -> None:
        if self.status == RunStatus.CANCELLED:
            return
        self.status = RunStatus.CANCELLED
        self.result = None
        self._close_stream()
        logger.info(f"Run {self.run_id} cancelled after {len(self.progress)} specialties")

    def cancel(self) -> bool:
        """
        Cancel the run if it has not finished.

        Returns:
            True when the run was cancelled by this call.
        """
        if self.is_terminal:
            return False
        self._mark_cancelled()
        if self._task is not None:
            self._task.cancel()
        return True

    async def join(self) -> None:
        """Wait for the background task to end without raising."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def wait(self) -> Any:
        """
        Wait for the run to finish and return its result.

        Raises:
            RunCancelledError: The run was cancelled.
            Exception: The error that failed the run.
        """
        await self.join()
        if self.status == RunStatus.CANCELLED:
            raise RunCancelledError(f"Run {self.run_id} was cancelled")
        if self._exception is not None:
            raise self._exception
        return self.result

    async def stream_progress(self) -> AsyncIterator[ProgressEvent]:
        """Yield progress events until the run reaches a terminal state."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


# =============================================================================
# Run Manager
# =============================================================================


class RunManager:
    """
    Registry of background engine runs.

    Args:
        single_active_run: Cancel the run in progress before starting another.
        max_retained_runs: Finished runs kept for polling; oldest are dropped.
    """

    def __init__(self, single_active_run: bool = True, max_retained_runs: int = 50):
        self.single_active_run = single_active_run
        self.max_retained_runs = max_retained_runs
        self._runs: Dict[str, EngineRun] = {}

    def _start(self, mode: RunMode, work: RunWork) -> EngineRun:
        if self.single_active_run:
            for run in self._runs.values():
                if run.cancel():
                    logger.info(f"Cancelled run {run.run_id} to start a new {mode.value} run")

        run = EngineRun(uuid.uuid4().hex, mode, work)
        self._runs[run.run_id] = run
        run.start()
        self._prune()
        return run

    def _prune(self) -> None:
        finished = [run_id for run_id, run in self._runs.items() if run.is_terminal]
        excess = len(self._runs) - self.max_retained_runs
        for run_id in finished[:max(0, excess)]:
            del self._runs[run_id]

    def start_optimizer_run(
        self,
        records: Sequence[CompensationRecord],
        benchmarks: Sequence[MarketBenchmark],
        synonym_map: Optional[Mapping[str, str]] = None,
        settings: Optional[OptimizerSettings] = None,
        overrides: Optional[ScenarioOverrides] = None,
    ) -> EngineRun:
        """Start an optimizer run on its own snapshot of the inputs."""
        records, benchmarks = tuple(records), tuple(benchmarks)
        synonyms = dict(synonym_map or {})

        async def work(on_progress: ProgressCallback) -> RunResult:
            return await run_optimizer_async(records, benchmarks, synonyms, settings, overrides, on_progress)

        return self._start(RunMode.OPTIMIZER, work)

    def start_batch_report_run(
        self,
        records: Sequence[CompensationRecord],
        benchmarks: Sequence[MarketBenchmark],
        synonym_map: Optional[Mapping[str, str]] = None,
        scenarios: Sequence[ScenarioInputs] = (),
        overrides: Optional[ScenarioOverrides] = None,
    ) -> EngineRun:
        """Start a batch report run on its own snapshot of the inputs."""
        records, benchmarks, scenarios = tuple(records), tuple(benchmarks), tuple(scenarios)
        synonyms = dict(synonym_map or {})

        async def work(on_progress: ProgressCallback) -> List[BatchReportRow]:
            return await run_batch_report_async(records, benchmarks, synonyms, scenarios, overrides, on_progress)

        return self._start(RunMode.BATCH_REPORT, work)

    def get(self, run_id: str) -> EngineRun:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        return run

    def cancel(self, run_id: str) -> EngineRun:
        run = self.get(run_id)
        run.cancel()
        return run

    def list_runs(self) -> List[EngineRun]:
        return list(self._runs.values())

    async def shutdown(self) -> None:
        """Cancel every unfinished run and wait for the tasks to end."""
        pending = [run for run in self._runs.values() if not run.is_terminal]
        for run in pending:
            run.cancel()
        for run in pending:
            await run.join()


__all__ = [
    "TERMINAL_STATUSES",
    "run_optimizer_async",
    "run_batch_report_async",
    "EngineRun",
    "RunManager",
]
