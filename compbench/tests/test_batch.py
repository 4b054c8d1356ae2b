"""
Test suite for batch orchestration.

Verifies:
1. Grouping by resolved specialty in order of first appearance
2. Progress events after each specialty and cooperative cancellation
3. Run summary and audit trail
4. Identical inputs produce identical serialized results
5. Batch report rows for every provider under every scenario
6. CF percentile sweeps across specialties
"""

from typing import List

import pytest

from compbench.core.exceptions import InvalidInputError, RunCancelledError
from compbench.models import (
    CFSourceMode,
    ExclusionReason,
    OptimizerFlag,
    OptimizerSettings,
    ProgressEvent,
    RiskLevel,
    ScenarioInputs,
)
from compbench.services.batch import (
    UNSPECIFIED_SPECIALTY,
    prepare_run,
    run_batch_report,
    run_optimizer,
    run_sweep,
    validate_records,
)
from compbench.tests.conftest import make_record


@pytest.fixture
def mixed_records(cardiology_records, dermatology_records):
    """Cardiology and Dermatology providers, interleaved."""
    return [
        cardiology_records[0],
        dermatology_records[0],
        *cardiology_records[1:],
        dermatology_records[1],
    ]


class TestPrepareRun:

    def test_groups_in_order_of_first_appearance(self, mixed_records, benchmarks) -> None:
        specialties = prepare_run(mixed_records, benchmarks, None, ScenarioInputs())
        assert [s.label for s in specialties] == ['Cardiology', 'Dermatology']
        assert [p.record.providerId for p in specialties[0].providers] == ['C-1', 'C-2', 'C-3', 'C-4']
        assert specialties[1].benchmark is None

    def test_synonyms_merge_groups(self, mixed_records, benchmarks) -> None:
        specialties = prepare_run(mixed_records, benchmarks, {'Dermatology': 'Cardiology'}, ScenarioInputs())
        assert [s.label for s in specialties] == ['Cardiology']
        assert len(specialties[0].providers) == 6

    def test_blank_specialty_is_unspecified(self, benchmarks) -> None:
        specialties = prepare_run([make_record('P', specialty='  ')], benchmarks, None, ScenarioInputs())
        assert specialties[0].label == UNSPECIFIED_SPECIALTY

    def test_specialty_filter(self, mixed_records, benchmarks) -> None:
        specialties = prepare_run(
            mixed_records, benchmarks, None, ScenarioInputs(), specialty_filter=['dermatology'],
        )
        assert [s.label for s in specialties] == ['Dermatology']

    def test_duplicate_provider_ids_are_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match='C-1'):
            validate_records([make_record('C-1'), make_record('C-2'), make_record('C-1')])


class TestRunOptimizer:

    def test_progress_after_each_specialty(self, mixed_records, benchmarks) -> None:
        events: List[ProgressEvent] = []
        run_optimizer(mixed_records, benchmarks, on_progress=events.append)
        assert [(e.index, e.total, e.specialty) for e in events] == [
            (1, 2, 'Cardiology'),
            (2, 2, 'Dermatology'),
        ]

    def test_cancellation_stops_before_next_specialty(self, mixed_records, benchmarks) -> None:
        events: List[ProgressEvent] = []
        with pytest.raises(RunCancelledError):
            run_optimizer(
                mixed_records, benchmarks,
                on_progress=events.append,
                should_cancel=lambda: len(events) >= 1,
            )
        assert len(events) == 1

    def test_summary_and_audit(self, mixed_records, benchmarks) -> None:
        result = run_optimizer(mixed_records, benchmarks)
        summary = result.summary
        assert summary.specialtiesAnalyzed == 2
        assert summary.providersIncluded == 2
        assert summary.providersExcluded == 4
        assert sorted(entry.providerId for entry in result.audit) == ['C-3', 'C-4', 'D-1', 'D-2']
        counts = {item.reason: item.count for item in summary.topExclusionReasons}
        assert counts == {
            ExclusionReason.MISSING_MARKET: 2,
            ExclusionReason.NEW_HIRE_BELOW_THRESHOLD: 2,
        }
        # Equal counts are listed in declaration order
        assert summary.topExclusionReasons[0].reason == ExclusionReason.MISSING_MARKET
        assert summary.countCFCapped == 0
        assert any('Most common exclusion' in message for message in result.keyMessages)

    def test_every_provider_appears_exactly_once(self, mixed_records, benchmarks) -> None:
        result = run_optimizer(mixed_records, benchmarks)
        seen = [p.providerId for s in result.specialties for p in s.providers]
        assert sorted(seen) == sorted(r.providerId for r in mixed_records)

    def test_identical_inputs_serialize_identically(self, mixed_records, benchmarks) -> None:
        first = run_optimizer(mixed_records, benchmarks, settings=OptimizerSettings())
        second = run_optimizer(mixed_records, benchmarks, settings=OptimizerSettings())
        assert first.model_dump_json() == second.model_dump_json()

    def test_empty_input(self, benchmarks) -> None:
        result = run_optimizer([], benchmarks)
        assert result.specialties == []
        assert result.summary.specialtiesAnalyzed == 0

    @pytest.mark.parametrize('base_salaries,constraint', [
        ([460000.0, 470000.0, 480000.0, 490000.0, 500000.0], 'HARD_CAP_BLOCKS_INCREASE'),
        ([300000.0, 310000.0, 320000.0, 330000.0, 340000.0], None),
    ])
    def test_flat_objective_is_not_counted_as_capped(self, benchmarks, base_salaries, constraint) -> None:
        """Without the incentive CF cannot move pay; the search ends on a bound but the CF never moves."""
        records = [
            make_record(f'F-{i}', baseSalary=base, workRVUs=4800.0 + 100.0 * i)
            for i, base in enumerate(base_salaries)
        ]
        settings = OptimizerSettings(scenario=ScenarioInputs(includeProductivityIncentive=False))
        result = run_optimizer(records, benchmarks, settings=settings)
        specialty = result.specialties[0]
        assert specialty.includedCount == 5
        assert specialty.search.boundHit
        assert specialty.recommendedCF == specialty.currentCF
        assert OptimizerFlag.CF_CAPPED not in specialty.flags
        assert 'MAX_CHANGE_BOUND' not in specialty.constraintsHit
        if constraint is not None:
            assert constraint in specialty.constraintsHit
        assert result.summary.countCFCapped == 0
        assert not any('CF bound' in message for message in result.keyMessages)


class TestBatchReport:

    @pytest.fixture
    def scenarios(self) -> List[ScenarioInputs]:
        return [
            ScenarioInputs(),
            ScenarioInputs(name='Fixed 60', cfSource=CFSourceMode.FIXED, fixedCF=60.0),
        ]

    def test_one_row_per_provider_and_scenario(self, mixed_records, benchmarks, scenarios) -> None:
        rows = run_batch_report(mixed_records, benchmarks, scenarios=scenarios)
        assert len(rows) == len(mixed_records) * len(scenarios)
        assert [(r.providerId, r.scenarioName) for r in rows[:4]] == [
            ('C-1', 'Base'), ('C-1', 'Fixed 60'), ('C-2', 'Base'), ('C-2', 'Fixed 60'),
        ]
        assert rows[1].modeledCF == 60.0

    def test_only_missing_market_is_excluded(self, mixed_records, benchmarks, scenarios) -> None:
        rows = run_batch_report(mixed_records, benchmarks, scenarios=scenarios)
        by_id = {(r.providerId, r.scenarioName): r for r in rows}
        assert by_id[('C-3', 'Base')].included
        assert by_id[('D-1', 'Base')].exclusionReasons == [ExclusionReason.MISSING_MARKET]

    def test_risk_levels(self, mixed_records, benchmarks, scenarios) -> None:
        """C-1 sits 30 points above productivity, C-2 within 5; Dermatology has no market."""
        rows = run_batch_report(mixed_records, benchmarks, scenarios=scenarios[:1])
        risk = {r.providerId: r.riskLevel for r in rows}
        assert risk['C-1'] == RiskLevel.HIGH
        assert risk['C-2'] == RiskLevel.LOW
        assert risk['D-1'] == RiskLevel.HIGH

    def test_progress(self, mixed_records, benchmarks, scenarios) -> None:
        events: List[ProgressEvent] = []
        run_batch_report(mixed_records, benchmarks, scenarios=scenarios, on_progress=events.append)
        assert [e.index for e in events] == [1, 2]

    def test_requires_a_scenario(self, mixed_records, benchmarks) -> None:
        with pytest.raises(InvalidInputError):
            run_batch_report(mixed_records, benchmarks, scenarios=[])


class TestRunSweep:

    def test_matched_specialties_only(self, mixed_records, benchmarks) -> None:
        sweeps = run_sweep(mixed_records, benchmarks, percentiles=(25, 50, 75))
        assert [s.specialty for s in sweeps] == ['Cardiology']
        assert sweeps[0].matchedSpecialty == 'Cardiology'
        assert [p.cf for p in sweeps[0].points] == pytest.approx([40.0, 50.0, 65.0])

    def test_specialty_filter_applies(self, mixed_records, benchmarks) -> None:
        settings = OptimizerSettings(specialtyFilter=['dermatology'])
        assert run_sweep(mixed_records, benchmarks, settings=settings) == []

    def test_duplicate_provider_ids_are_rejected(self, benchmarks) -> None:
        with pytest.raises(InvalidInputError):
            run_sweep([make_record('C-1'), make_record('C-1')], benchmarks)
