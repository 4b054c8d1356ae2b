"""
Tests for background engine runs.

Verifies:
1. Runs complete with the same result as the synchronous orchestrator
2. Cancellation never exposes a result
3. single_active_run cancels the run in progress
4. Failures are kept on the run and re-raised by wait()
5. Progress is both recorded and streamed
"""

import asyncio
from unittest.mock import patch

import pytest

from compbench.core.exceptions import InvalidInputError, RunCancelledError, RunNotFoundError
from compbench.models import RunMode, RunStatus, ScenarioInputs
from compbench.services.batch import run_optimizer
from compbench.services.runner import RunManager, run_optimizer_async
from compbench.tests.conftest import make_record


pytestmark = pytest.mark.asyncio


async def never_finishes(*args, **kwargs):
    await asyncio.sleep(3600)


@pytest.fixture
def records(cardiology_records, dermatology_records):
    return cardiology_records + dermatology_records


class TestAsyncOrchestrator:

    async def test_matches_synchronous_run(self, records, benchmarks) -> None:
        events = []
        result = await run_optimizer_async(records, benchmarks, on_progress=events.append)
        assert result.model_dump_json() == run_optimizer(records, benchmarks).model_dump_json()
        assert [e.specialty for e in events] == ['Cardiology', 'Dermatology']


class TestRunManager:

    async def test_run_completes(self, records, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_optimizer_run(records, benchmarks)
        result = await run.wait()
        assert run.status == RunStatus.COMPLETED
        assert run.mode == RunMode.OPTIMIZER
        assert result.summary.specialtiesAnalyzed == 2
        assert [e.index for e in run.progress] == [1, 2]

    async def test_batch_report_run(self, records, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_batch_report_run(records, benchmarks, scenarios=[ScenarioInputs()])
        rows = await run.wait()
        assert run.mode == RunMode.BATCH_REPORT
        assert len(rows) == len(records)

    async def test_cancelled_run_has_no_result(self, records, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_optimizer_run(records, benchmarks)
        assert run.cancel() is True
        with pytest.raises(RunCancelledError):
            await run.wait()
        assert run.status == RunStatus.CANCELLED
        assert run.result is None

    async def test_cancel_after_completion_is_rejected(self, records, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_optimizer_run(records, benchmarks)
        await run.wait()
        assert run.cancel() is False
        assert run.status == RunStatus.COMPLETED

    async def test_single_active_run_cancels_previous(self, records, benchmarks) -> None:
        manager = RunManager(single_active_run=True)
        first = manager.start_optimizer_run(records, benchmarks)
        second = manager.start_optimizer_run(records, benchmarks)
        await second.wait()
        assert first.status == RunStatus.CANCELLED
        assert second.status == RunStatus.COMPLETED

    async def test_concurrent_runs_when_allowed(self, records, benchmarks) -> None:
        manager = RunManager(single_active_run=False)
        first = manager.start_optimizer_run(records, benchmarks)
        second = manager.start_optimizer_run(records, benchmarks)
        await asyncio.gather(first.wait(), second.wait())
        assert first.status == second.status == RunStatus.COMPLETED

    async def test_invalid_input_fails_run(self, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_optimizer_run([make_record('P-1'), make_record('P-1')], benchmarks)
        with pytest.raises(InvalidInputError):
            await run.wait()
        assert run.status == RunStatus.FAILED
        assert 'Duplicate providerId' in run.error
        assert run.result is None

    async def test_stream_progress(self, records, benchmarks) -> None:
        manager = RunManager()
        run = manager.start_optimizer_run(records, benchmarks)
        events = [event async for event in run.stream_progress()]
        assert [(e.index, e.total) for e in events] == [(1, 2), (2, 2)]
        assert run.status == RunStatus.COMPLETED

    async def test_unknown_run(self) -> None:
        with pytest.raises(RunNotFoundError):
            RunManager().get('missing')

    async def test_finished_runs_are_pruned(self, records, benchmarks) -> None:
        manager = RunManager(single_active_run=False, max_retained_runs=1)
        first = manager.start_optimizer_run(records, benchmarks)
        await first.wait()
        second = manager.start_optimizer_run(records, benchmarks)
        with pytest.raises(RunNotFoundError):
            manager.get(first.run_id)
        assert manager.get(second.run_id) is second
        await second.wait()

    async def test_shutdown_cancels_unfinished_runs(self, records, benchmarks) -> None:
        manager = RunManager()
        with patch('compbench.services.runner.run_optimizer_async', never_finishes):
            run = manager.start_optimizer_run(records, benchmarks)
            await asyncio.sleep(0)
        await manager.shutdown()
        assert run.status == RunStatus.CANCELLED
