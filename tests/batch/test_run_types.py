"""Tests for the pure execution run types (payroll_batch/domain/types.py)."""

from datetime import datetime, timezone

import pytest

from payroll_batch.domain.types import (
    ExecutionLogData,
    ExecutionLogEntry,
    ExecutionOutcome,
    ExecutionProgress,
    WorkerRunStatus,
)
from payroll_kernel.domain.values import Cohort, EmploymentType

NOW = datetime(2025, 11, 10, 9, 0, tzinfo=timezone.utc)


def _entry(worker_id, outcome=ExecutionOutcome.SUCCESS):
    return ExecutionLogEntry(
        worker_id=worker_id,
        name=worker_id,
        employment_type=EmploymentType.EMPLOYEE,
        country="Norway",
        outcome=outcome,
    )


class TestWorkerRunStatus:

    @pytest.mark.parametrize(
        "source,target,allowed",
        [
            (WorkerRunStatus.PENDING, WorkerRunStatus.PROCESSING, True),
            (WorkerRunStatus.PENDING, WorkerRunStatus.COMPLETE, False),
            (WorkerRunStatus.PROCESSING, WorkerRunStatus.COMPLETE, True),
            (WorkerRunStatus.PROCESSING, WorkerRunStatus.FAILED, True),
            (WorkerRunStatus.COMPLETE, WorkerRunStatus.PROCESSING, False),
            (WorkerRunStatus.FAILED, WorkerRunStatus.PENDING, False),
        ],
    )
    def test_forward_only(self, source, target, allowed):
        assert source.can_transition_to(target) is allowed

    def test_terminal(self):
        assert WorkerRunStatus.COMPLETE.is_terminal
        assert WorkerRunStatus.FAILED.is_terminal
        assert not WorkerRunStatus.PROCESSING.is_terminal


class TestExecutionProgress:

    def test_fraction(self):
        progress = ExecutionProgress("run-1", total=4, succeeded=1, failed=1)
        assert progress.terminal == 2
        assert progress.fraction == 0.5

    def test_empty_run_is_complete(self):
        assert ExecutionProgress("run-1", total=0).fraction == 1.0


class TestExecutionLogData:

    def test_counts(self):
        log = ExecutionLogData(
            run_id="run-1", timestamp=NOW, cohort=Cohort.ALL,
            employee_count=3, contractor_count=0,
            entries=(_entry("a"), _entry("b", ExecutionOutcome.FAILED), _entry("c")),
            targeted_worker_ids=("a", "b", "c"),
        )
        assert log.success_count == 2
        assert log.failed_count == 1
        assert log.failed_entries[0].worker_id == "b"
        assert log.all_terminal
        assert log.entry_for("c").succeeded
        assert log.entry_for("z") is None

    def test_missing_entry_is_not_terminal(self):
        log = ExecutionLogData(
            run_id="run-1", timestamp=NOW, cohort=Cohort.ALL,
            employee_count=2, contractor_count=0,
            entries=(_entry("a"),), targeted_worker_ids=("a", "b"),
        )
        assert not log.all_terminal

    def test_partial_log_is_not_terminal(self):
        log = ExecutionLogData(
            run_id="run-1", timestamp=NOW, cohort=Cohort.ALL,
            employee_count=1, contractor_count=0,
            entries=(_entry("a"),), targeted_worker_ids=("a",), is_partial=True,
        )
        assert not log.all_terminal
