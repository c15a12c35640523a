"""
payroll_batch.domain.types -- Pure frozen dataclasses for payment execution.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Per-worker run status only moves forward:
      PENDING -> PROCESSING -> COMPLETE | FAILED.
    - ExecutionLogEntry is written once by the execution engine and never
      changed.
    - A partial (cancelled) log lists the workers that never started in
      ``pending_worker_ids`` and has no entries for them.
    - Each processed worker of the latest run has one PaymentReceipt; a
      PAID receipt is final and cannot be rescheduled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from payroll_kernel.domain.values import Cohort, EmploymentType


# =============================================================================
# Status enums
# =============================================================================


class WorkerRunStatus(str, Enum):
    """Per-worker lifecycle within one execution run."""

    PENDING = "pending"  # Selected, not yet started
    PROCESSING = "processing"  # Provider call in flight
    COMPLETE = "complete"  # Provider accepted
    FAILED = "failed"  # Provider rejected, timed out or crashed

    @property
    def is_terminal(self) -> bool:
        return self in (WorkerRunStatus.COMPLETE, WorkerRunStatus.FAILED)

    def can_transition_to(self, target: WorkerRunStatus) -> bool:
        return target in _FORWARD[self]


_FORWARD: dict[WorkerRunStatus, frozenset[WorkerRunStatus]] = {
    WorkerRunStatus.PENDING: frozenset({WorkerRunStatus.PROCESSING}),
    WorkerRunStatus.PROCESSING: frozenset(
        {WorkerRunStatus.COMPLETE, WorkerRunStatus.FAILED}
    ),
    WorkerRunStatus.COMPLETE: frozenset(),
    WorkerRunStatus.FAILED: frozenset(),
}


class ExecutionOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# =============================================================================
# Provider DTOs
# =============================================================================


@dataclass(frozen=True)
class ProviderResult:
    """What the payment/posting provider said about one worker."""

    worker_id: str
    success: bool
    error_message: str | None = None
    reference: str | None = None  # Provider-side payment/posting id


# =============================================================================
# Run DTOs
# =============================================================================


@dataclass(frozen=True)
class WorkerStatusEvent:
    """Emitted on every per-worker status change during a run."""

    run_id: str
    worker_id: str
    name: str
    status: WorkerRunStatus
    terminal_count: int  # Terminal workers so far; never decreases
    total_count: int
    occurred_at: datetime
    error_message: str | None = None


@dataclass(frozen=True)
class ExecutionProgress:
    run_id: str
    total: int
    succeeded: int = 0
    failed: int = 0

    @property
    def terminal(self) -> int:
        return self.succeeded + self.failed

    @property
    def fraction(self) -> float:
        return 1.0 if self.total == 0 else self.terminal / self.total


@dataclass(frozen=True)
class ExecutionLogEntry:
    worker_id: str
    name: str
    employment_type: EmploymentType
    country: str
    outcome: ExecutionOutcome
    error_message: str | None = None
    attempts: int = 1
    reference: str | None = None  # Provider-side id of an accepted payment

    @property
    def succeeded(self) -> bool:
        return self.outcome is ExecutionOutcome.SUCCESS


@dataclass(frozen=True)
class ExecutionLogData:
    """The log of one execution run.  Only the latest run's log is kept."""

    run_id: str
    timestamp: datetime
    cohort: Cohort
    employee_count: int  # Among targeted workers
    contractor_count: int
    entries: tuple[ExecutionLogEntry, ...]
    targeted_worker_ids: tuple[str, ...] = ()
    is_partial: bool = False
    cancelled: bool = False
    pending_worker_ids: tuple[str, ...] = ()

    @property
    def success_count(self) -> int:
        return sum(1 for e in self.entries if e.succeeded)

    @property
    def failed_entries(self) -> tuple[ExecutionLogEntry, ...]:
        return tuple(e for e in self.entries if not e.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed_entries)

    @property
    def all_terminal(self) -> bool:
        """True when every targeted worker has an entry and the run was not cut short."""
        if self.is_partial:
            return False
        return {e.worker_id for e in self.entries} == set(self.targeted_worker_ids)

    def entry_for(self, worker_id: str) -> ExecutionLogEntry | None:
        for entry in self.entries:
            if entry.worker_id == worker_id:
                return entry
        return None


# =============================================================================
# Receipts
# =============================================================================


class ReceiptStatus(str, Enum):
    PAID = "paid"
    FAILED = "failed"
    RESCHEDULED = "rescheduled"  # Failed payout moved to a new date

    @property
    def can_reschedule(self) -> bool:
        return self is not ReceiptStatus.PAID


class RescheduleReason(str, Enum):
    BANK_DELAY = "bank-delay"
    HOLIDAY = "holiday"

    @property
    def text(self) -> str:
        return self.value.replace("-", " ")


@dataclass(frozen=True)
class PaymentReceipt:
    """What one worker was (or will be) paid by the latest run."""

    worker_id: str
    name: str
    run_id: str
    currency: str
    amount: Decimal
    status: ReceiptStatus
    reference: str | None = None
    paid_at: datetime | None = None
    error_message: str | None = None
    eta: date | None = None
    reschedule_reason: RescheduleReason | None = None
