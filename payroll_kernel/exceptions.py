"""
Typed Exception Hierarchy for the Payroll Engine.

===============================================================================
WHAT IS AN ERROR HERE
===============================================================================

Most of what goes wrong in a payroll batch is NOT an exception:

  - A rule-detected condition (missing tax ID, salary below minimum wage)
    is a ValidationFinding -- it is data, a PayrollException record.
  - A per-worker provider failure is an ExecutionFailure -- it is a FAILED
    entry in the execution log, and the batch keeps going.
  - An attempted workflow transition while blocked is a GuardViolation --
    a returned value describing the reachable steps and actions.

The classes below are for the remaining cases: operator input that must be
rejected and retried (InputError), illegal lifecycle transitions, lookups
of unknown records, and concurrency conflicts.

Every class carries a ``code`` attribute (machine-readable, API-safe) and
structured fields set in ``__init__``:

    try:
        service.resolve_exception(exc_id, ResolutionAction.OVERRIDE, "")
    except MissingJustificationError as e:
        api_response(code=e.code, action=e.action)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollEngineError (base)
    |
    +-- InputError
    |   +-- MissingJustificationError
    |   +-- InvalidPayoutDateError
    |
    +-- ResolutionError
    |   +-- ExceptionNotFoundError
    |   +-- InvalidExceptionTransitionError
    |
    +-- CycleError
    |   +-- CycleNotFoundError
    |   +-- CycleLockedError
    |   +-- InvalidCycleTransitionError
    |
    +-- WorkerError
    |   +-- WorkerNotFoundError
    |   +-- DuplicateWorkerError
    |
    +-- ExecutionError
    |   +-- ExecutionInProgressError
    |   +-- ReceiptNotFoundError
    |   +-- PayoutNotReschedulableError
    |   +-- ProviderError
    |       +-- ProviderTimeoutError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                            | When Raised
-------------|---------------------------------|------------------------------------
Input        | MISSING_JUSTIFICATION           | Override / forced completion w/o text
             | INVALID_PAYOUT_DATE             | Reschedule to a date in the past
-------------|---------------------------------|------------------------------------
Resolution   | EXCEPTION_NOT_FOUND             | Unknown exception id
             | INVALID_EXCEPTION_TRANSITION    | Ignore on blocking, re-resolve, ...
-------------|---------------------------------|------------------------------------
Cycle        | CYCLE_NOT_FOUND                 | Unknown cycle id (persistence)
             | CYCLE_LOCKED                    | Mutating a completed cycle
             | INVALID_CYCLE_TRANSITION        | e.g. completing an upcoming cycle
-------------|---------------------------------|------------------------------------
Worker       | WORKER_NOT_FOUND                | Unknown worker id
             | DUPLICATE_WORKER                | Worker id registered twice
-------------|---------------------------------|------------------------------------
Execution    | EXECUTION_IN_PROGRESS           | Second run while one is active
             | RECEIPT_NOT_FOUND               | No receipt for the worker yet
             | PAYOUT_NOT_RESCHEDULABLE        | Rescheduling a paid payout
             | PROVIDER_ERROR                  | Payment/posting provider rejected
             | PROVIDER_TIMEOUT                | Provider did not answer in time
-------------|---------------------------------|------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT        | Stale worker/exception version

===============================================================================
RETRY SEMANTICS
===============================================================================

   - InputError            -> fix the input and resubmit
   - ProviderError         -> retried by RetryPolicy only if ``retryable``
   - ProviderTimeoutError  -> always retryable
   - ConcurrencyError      -> reload and reapply
   - everything else       -> not retryable
"""

from datetime import date


class PayrollEngineError(Exception):
    """
    Base exception for all payroll engine errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "PAYROLL_ENGINE_ERROR"


# Input errors


class InputError(PayrollEngineError):
    """Base exception for rejected, retryable operator input."""

    code: str = "INPUT_ERROR"


class MissingJustificationError(InputError):
    """An action that requires a written justification received none."""

    code: str = "MISSING_JUSTIFICATION"

    def __init__(self, action: str, subject_id: str | None = None):
        self.action = action
        self.subject_id = subject_id
        target = f" for {subject_id}" if subject_id else ""
        super().__init__(
            f"A non-empty justification is required to {action}{target}"
        )


class InvalidPayoutDateError(InputError):
    """A payout was rescheduled to a date before today."""

    code: str = "INVALID_PAYOUT_DATE"

    def __init__(self, worker_id: str, payout_date: date, earliest: date):
        self.worker_id = worker_id
        self.payout_date = payout_date
        self.earliest = earliest
        super().__init__(
            f"Payout for {worker_id} cannot be rescheduled to {payout_date}; "
            f"earliest date is {earliest}"
        )


# Resolution errors


class ResolutionError(PayrollEngineError):
    """Base exception for exception-lifecycle errors."""

    code: str = "RESOLUTION_ERROR"


class ExceptionNotFoundError(ResolutionError):
    """Payroll exception id does not exist in the batch."""

    code: str = "EXCEPTION_NOT_FOUND"

    def __init__(self, exception_id: str):
        self.exception_id = exception_id
        super().__init__(f"Payroll exception not found: {exception_id}")


class InvalidExceptionTransitionError(ResolutionError):
    """Requested status change is not allowed for this exception."""

    code: str = "INVALID_EXCEPTION_TRANSITION"

    def __init__(
        self,
        exception_id: str,
        current_status: str,
        action: str,
        reason: str,
    ):
        self.exception_id = exception_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action} exception {exception_id} "
            f"(status {current_status}): {reason}"
        )


# Cycle errors


class CycleError(PayrollEngineError):
    """Base exception for batch cycle lifecycle errors."""

    code: str = "CYCLE_ERROR"


class CycleNotFoundError(CycleError):
    """No stored cycle has this id."""

    code: str = "CYCLE_NOT_FOUND"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"Cycle not found: {cycle_id}")


class CycleLockedError(CycleError):
    """Cycle is completed and therefore read-only."""

    code: str = "CYCLE_LOCKED"

    def __init__(self, cycle_id: str, operation: str):
        self.cycle_id = cycle_id
        self.operation = operation
        super().__init__(
            f"Cycle {cycle_id} is completed and locked; cannot {operation}"
        )


class InvalidCycleTransitionError(CycleError):
    """Cycle status change is not part of upcoming -> active -> completed."""

    code: str = "INVALID_CYCLE_TRANSITION"

    def __init__(self, cycle_id: str, from_status: str, to_status: str):
        self.cycle_id = cycle_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cycle {cycle_id} cannot move from {from_status} to {to_status}"
        )


# Worker errors


class WorkerError(PayrollEngineError):
    """Base exception for worker registry errors."""

    code: str = "WORKER_ERROR"


class WorkerNotFoundError(WorkerError):
    """Worker id is not registered in the batch."""

    code: str = "WORKER_NOT_FOUND"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker not found: {worker_id}")


class DuplicateWorkerError(WorkerError):
    """Worker id is already registered."""

    code: str = "DUPLICATE_WORKER"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"Worker already registered: {worker_id}")


# Execution errors


class ExecutionError(PayrollEngineError):
    """Base exception for execution engine errors."""

    code: str = "EXECUTION_ERROR"


class ExecutionInProgressError(ExecutionError):
    """An execution run is already active for this batch."""

    code: str = "EXECUTION_IN_PROGRESS"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"An execution run is already in progress for {cycle_id}")


class ReceiptNotFoundError(ExecutionError):
    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        super().__init__(f"No payment receipt for worker {worker_id}")


class PayoutNotReschedulableError(ExecutionError):
    """Only failed or already rescheduled payouts can be moved."""

    code: str = "PAYOUT_NOT_RESCHEDULABLE"

    def __init__(self, worker_id: str, status: str):
        self.worker_id = worker_id
        self.status = status
        super().__init__(
            f"Payout for {worker_id} is {status} and cannot be rescheduled"
        )


class ProviderError(ExecutionError):
    """The payment/posting provider rejected a worker."""

    code: str = "PROVIDER_ERROR"

    def __init__(self, worker_id: str, message: str, retryable: bool = False):
        self.worker_id = worker_id
        self.retryable = retryable
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within the per-worker timeout."""

    code: str = "PROVIDER_TIMEOUT"

    def __init__(self, worker_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            worker_id,
            f"Provider call for worker {worker_id} timed out "
            f"after {timeout_seconds}s",
            retryable=True,
        )


# Concurrency errors


class ConcurrencyError(PayrollEngineError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )
