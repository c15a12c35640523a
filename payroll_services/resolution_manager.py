"""
Exception Resolution Manager -- the lifecycle of a payroll exception.

Responsibility:
    Pure transition functions over ``PayrollException`` plus the
    submission guard.  Every function returns new values; nothing is
    mutated in place.

Architecture position:
    Services -- pure functions, no I/O, no clock reads (timestamps are
    passed in by BatchService).

Transitions (all from ACTIVE unless noted):

    ACTIVE  --resolve-->   RESOLVED
    ACTIVE  --snooze-->    SNOOZED   (BatchService also excludes the worker)
    SNOOZED --unsnooze-->  ACTIVE
    ACTIVE  --ignore-->    IGNORED    only medium/low and non-blocking
    ACTIVE  --override-->  OVERRIDDEN only blocking; justification required

Failure modes:
    - InvalidExceptionTransitionError for any other transition.
    - MissingJustificationError for a blank override justification.
    - ExceptionNotFoundError for unknown ids in ``apply_action``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from payroll_kernel.domain.findings import (
    ExceptionKind,
    ExceptionStatus,
    LeaveResolution,
    OverrideInfo,
    PayrollException,
    ResolutionAction,
    Severity,
)
from payroll_kernel.domain.values import LeaveRecord
from payroll_kernel.exceptions import (
    ExceptionNotFoundError,
    InvalidExceptionTransitionError,
    MissingJustificationError,
)


def _require_status(
    exc: PayrollException,
    expected: ExceptionStatus,
    action: str,
) -> None:
    if exc.status is not expected:
        raise InvalidExceptionTransitionError(
            exc.exception_id,
            exc.status.value,
            action,
            f"{action} requires status {expected.value}",
        )


def resolve(exc: PayrollException) -> PayrollException:
    _require_status(exc, ExceptionStatus.ACTIVE, "resolve")
    return replace(exc, status=ExceptionStatus.RESOLVED)


def snooze(exc: PayrollException) -> PayrollException:
    _require_status(exc, ExceptionStatus.ACTIVE, "snooze")
    return replace(exc, status=ExceptionStatus.SNOOZED)


def unsnooze(exc: PayrollException) -> PayrollException:
    _require_status(exc, ExceptionStatus.SNOOZED, "unsnooze")
    return replace(exc, status=ExceptionStatus.ACTIVE)


def ignore(exc: PayrollException) -> PayrollException:
    _require_status(exc, ExceptionStatus.ACTIVE, "ignore")
    if exc.is_blocking or exc.severity is Severity.HIGH:
        raise InvalidExceptionTransitionError(
            exc.exception_id,
            exc.status.value,
            "ignore",
            "only non-blocking medium or low severity exceptions can be ignored",
        )
    return replace(exc, status=ExceptionStatus.IGNORED)


def override(
    exc: PayrollException,
    justification: str | None,
    actor: str,
    at: datetime,
) -> PayrollException:
    _require_status(exc, ExceptionStatus.ACTIVE, "override")
    if not exc.is_blocking:
        raise InvalidExceptionTransitionError(
            exc.exception_id,
            exc.status.value,
            "override",
            "only blocking exceptions can be overridden",
        )
    if justification is None or not justification.strip():
        raise MissingJustificationError("override", exc.exception_id)
    return replace(
        exc,
        status=ExceptionStatus.OVERRIDDEN,
        override=OverrideInfo(
            justification=justification.strip(),
            actor=actor,
            overridden_at=at,
        ),
    )


def can_submit(exceptions: Iterable[PayrollException]) -> bool:
    """True iff no blocking exception is still ACTIVE."""
    return not any(e.blocks_submission for e in exceptions)


def find(
    exceptions: Iterable[PayrollException],
    exception_id: str,
) -> PayrollException:
    for exc in exceptions:
        if exc.exception_id == exception_id:
            return exc
    raise ExceptionNotFoundError(exception_id)


def replace_exception(
    exceptions: Iterable[PayrollException],
    updated: PayrollException,
) -> tuple[PayrollException, ...]:
    return tuple(
        updated if e.exception_id == updated.exception_id else e
        for e in exceptions
    )


def apply_action(
    exceptions: Iterable[PayrollException],
    exception_id: str,
    action: ResolutionAction,
    *,
    justification: str | None = None,
    actor: str = "system",
    at: datetime | None = None,
) -> tuple[PayrollException, tuple[PayrollException, ...]]:
    """Apply ``action`` to one exception; return it and the new list."""
    exceptions = tuple(exceptions)
    exc = find(exceptions, exception_id)

    if action is ResolutionAction.RESOLVE:
        updated = resolve(exc)
    elif action is ResolutionAction.SNOOZE:
        updated = snooze(exc)
    elif action is ResolutionAction.IGNORE:
        updated = ignore(exc)
    elif action is ResolutionAction.OVERRIDE:
        if at is None:
            raise ValueError("override requires a timestamp")
        updated = override(exc, justification, actor, at)
    else:
        raise ValueError(f"Unknown resolution action: {action!r}")

    return updated, replace_exception(exceptions, updated)


def unsnooze_worker(
    exceptions: Iterable[PayrollException],
    worker_id: str,
) -> tuple[PayrollException, ...]:
    """Return the worker's SNOOZED exceptions to ACTIVE; others are untouched."""
    return tuple(
        unsnooze(e)
        if e.worker_id == worker_id and e.status is ExceptionStatus.SNOOZED
        else e
        for e in exceptions
    )


# =============================================================================
# Leave / attendance
# =============================================================================


def resolve_leave_attendance(
    exc: PayrollException,
    resolution: LeaveResolution,
) -> PayrollException:
    """Settle a pending-leave finding: resolved, or snoozed to next cycle."""
    if exc.kind is not ExceptionKind.PENDING_LEAVE:
        raise InvalidExceptionTransitionError(
            exc.exception_id,
            exc.status.value,
            "resolve leave for",
            f"exception kind is {exc.kind.value}, not pending-leave",
        )
    if resolution is LeaveResolution.SNOOZE:
        return snooze(exc)
    return resolve(exc)


def apply_leave_resolution(
    record: LeaveRecord | None,
    worker_id: str,
    resolution: LeaveResolution,
) -> LeaveRecord | None:
    """The leave record after ``resolution``; snoozing leaves it unchanged.

    Unpaid leave confirms the recorded days (pay stays prorated).  Worked
    days clears them (full pay for the expected days).
    """
    if resolution is LeaveResolution.SNOOZE:
        return record
    record = record or LeaveRecord(worker_id=worker_id)
    cleared = replace(
        record,
        has_pending_leave=False,
        has_missing_attendance=False,
        client_confirmed=True,
    )
    if resolution is LeaveResolution.WORKED_DAYS:
        return replace(cleared, leave_days=Decimal("0"), leave_breakdown={})
    return cleared
