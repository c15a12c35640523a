"""
Payroll exception value objects (``payroll_kernel.domain.findings``).

Responsibility
--------------
Defines the closed taxonomy of rule-detected conditions (``ExceptionKind``)
and the ``PayrollException`` record an operator acts on.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Severity, blocking, fixability and fix strategy are properties of the
  kind, never of the individual exception.  Every ``ExceptionKind`` member
  has exactly one metadata row (checked at import time).
* Status is a single enum.  ``override`` is present iff the status is
  ``OVERRIDDEN``; any other combination fails construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FixStrategy(str, Enum):
    """Where an operator goes to fix the underlying condition."""

    EDIT_WORKER = "edit-worker"
    EDIT_COMPENSATION = "edit-compensation"
    RESOLVE_LEAVE = "resolve-leave"
    ACKNOWLEDGE = "acknowledge"
    EXTERNAL_SYSTEM = "external-system"
    RETRY_EXECUTION = "retry-execution"


@dataclass(frozen=True)
class KindMetadata:
    title: str
    severity: Severity
    is_blocking: bool
    can_fix_in_payroll: bool
    fix_strategy: FixStrategy


class ExceptionKind(str, Enum):
    MISSING_BANK = "missing-bank"
    FX_MISMATCH = "fx-mismatch"
    PENDING_LEAVE = "pending-leave"
    UNVERIFIED_IDENTITY = "unverified-identity"
    BELOW_MINIMUM_WAGE = "below-minimum-wage"
    ALLOWANCE_EXCEEDS_CAP = "allowance-exceeds-cap"
    MISSING_GOVT_ID = "missing-govt-id"
    INCORRECT_CONTRIBUTION_TIER = "incorrect-contribution-tier"
    MISSING_13TH_MONTH = "missing-13th-month"
    OT_HOLIDAY_TYPE_NOT_SELECTED = "ot-holiday-type-not-selected"
    INVALID_WORK_TYPE_COMBINATION = "invalid-work-type-combination"
    NIGHT_DIFFERENTIAL_INVALID_HOURS = "night-differential-invalid-hours"
    MISSING_EMPLOYER_SSS = "missing-employer-sss"
    MISSING_WITHHOLDING_TAX = "missing-withholding-tax"
    STATUS_MISMATCH = "status-mismatch"
    EMPLOYMENT_ENDING_THIS_PERIOD = "employment-ending-this-period"
    END_DATE_BEFORE_PERIOD = "end-date-before-period"
    UPCOMING_CONTRACT_END = "upcoming-contract-end"
    MISSING_HOURS = "missing-hours"
    MISSING_DATES = "missing-dates"
    END_DATE_PASSED_ACTIVE = "end-date-passed-active"
    DEDUCTION_EXCEEDS_GROSS = "deduction-exceeds-gross"
    MISSING_TAX_FIELDS = "missing-tax-fields"
    ADJUSTMENT_EXCEEDS_CAP = "adjustment-exceeds-cap"
    CONTRIBUTION_TABLE_YEAR_MISSING = "contribution-table-year-missing"
    EXECUTION_FAILED = "execution-failed"

    @property
    def metadata(self) -> KindMetadata:
        return KIND_METADATA[self]

    @property
    def title(self) -> str:
        return KIND_METADATA[self].title

    @property
    def severity(self) -> Severity:
        return KIND_METADATA[self].severity

    @property
    def is_blocking(self) -> bool:
        return KIND_METADATA[self].is_blocking

    @property
    def can_fix_in_payroll(self) -> bool:
        return KIND_METADATA[self].can_fix_in_payroll

    @property
    def fix_strategy(self) -> FixStrategy:
        return KIND_METADATA[self].fix_strategy


_H, _M, _L = Severity.HIGH, Severity.MEDIUM, Severity.LOW
_WORKER = FixStrategy.EDIT_WORKER
_PAY = FixStrategy.EDIT_COMPENSATION
_EXT = FixStrategy.EXTERNAL_SYSTEM

KIND_METADATA: dict[ExceptionKind, KindMetadata] = {
    ExceptionKind.MISSING_BANK: KindMetadata(
        "Missing bank details", _H, True, True, _WORKER),
    ExceptionKind.FX_MISMATCH: KindMetadata(
        "Currency preference mismatch", _M, False, False, _EXT),
    ExceptionKind.PENDING_LEAVE: KindMetadata(
        "Pending leave or missing attendance", _M, False, True,
        FixStrategy.RESOLVE_LEAVE),
    ExceptionKind.UNVERIFIED_IDENTITY: KindMetadata(
        "Identity not verified", _H, True, False, _EXT),
    ExceptionKind.BELOW_MINIMUM_WAGE: KindMetadata(
        "Salary below minimum wage", _H, True, True, _PAY),
    ExceptionKind.ALLOWANCE_EXCEEDS_CAP: KindMetadata(
        "Non-taxable allowances exceed cap", _M, False, True, _PAY),
    ExceptionKind.MISSING_GOVT_ID: KindMetadata(
        "Missing government ID", _H, True, False, _EXT),
    ExceptionKind.INCORRECT_CONTRIBUTION_TIER: KindMetadata(
        "Incorrect contribution tier", _M, False, True, _PAY),
    ExceptionKind.MISSING_13TH_MONTH: KindMetadata(
        "Missing 13th month pay", _H, True, True, _PAY),
    ExceptionKind.OT_HOLIDAY_TYPE_NOT_SELECTED: KindMetadata(
        "Overtime holiday type not selected", _M, False, True, _PAY),
    ExceptionKind.INVALID_WORK_TYPE_COMBINATION: KindMetadata(
        "Invalid work type combination", _M, False, True, _PAY),
    ExceptionKind.NIGHT_DIFFERENTIAL_INVALID_HOURS: KindMetadata(
        "Night differential outside valid hours", _M, False, True, _PAY),
    ExceptionKind.MISSING_EMPLOYER_SSS: KindMetadata(
        "Missing employer contribution", _H, True, True, _PAY),
    ExceptionKind.MISSING_WITHHOLDING_TAX: KindMetadata(
        "Missing withholding tax", _M, False, True, _PAY),
    ExceptionKind.STATUS_MISMATCH: KindMetadata(
        "Inactive worker in batch", _H, False, True, _WORKER),
    ExceptionKind.EMPLOYMENT_ENDING_THIS_PERIOD: KindMetadata(
        "Employment ending this period", _M, False, True, _WORKER),
    ExceptionKind.END_DATE_BEFORE_PERIOD: KindMetadata(
        "End date before period start", _H, False, True, _WORKER),
    ExceptionKind.UPCOMING_CONTRACT_END: KindMetadata(
        "Contract ending soon", _L, False, False, FixStrategy.ACKNOWLEDGE),
    ExceptionKind.MISSING_HOURS: KindMetadata(
        "Missing hours for hourly worker", _H, True, True, _PAY),
    ExceptionKind.MISSING_DATES: KindMetadata(
        "Missing start date", _H, True, False, _EXT),
    ExceptionKind.END_DATE_PASSED_ACTIVE: KindMetadata(
        "End date passed but worker active", _H, False, True, _WORKER),
    ExceptionKind.DEDUCTION_EXCEEDS_GROSS: KindMetadata(
        "Deductions exceed gross pay", _H, True, True, _PAY),
    ExceptionKind.MISSING_TAX_FIELDS: KindMetadata(
        "Missing tax and contribution fields", _H, True, True, _PAY),
    ExceptionKind.ADJUSTMENT_EXCEEDS_CAP: KindMetadata(
        "Adjustment exceeds cap", _M, False, True, _PAY),
    ExceptionKind.CONTRIBUTION_TABLE_YEAR_MISSING: KindMetadata(
        "Contribution table not configured for year", _M, False, False, _EXT),
    ExceptionKind.EXECUTION_FAILED: KindMetadata(
        "Payment execution failed", _H, True, False,
        FixStrategy.RETRY_EXECUTION),
}

_missing = set(ExceptionKind) - set(KIND_METADATA)
if _missing:
    raise RuntimeError(f"ExceptionKind members without metadata: {_missing}")


class ExceptionStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    SNOOZED = "snoozed"
    IGNORED = "ignored"
    OVERRIDDEN = "overridden"


class ResolutionAction(str, Enum):
    RESOLVE = "resolve"
    SNOOZE = "snooze"
    IGNORE = "ignore"
    OVERRIDE = "override"


class LeaveResolution(str, Enum):
    """How a pending-leave finding was settled."""

    UNPAID_LEAVE = "unpaid-leave"
    WORKED_DAYS = "worked-days"
    SNOOZE = "snooze"


@dataclass(frozen=True)
class OverrideInfo:
    justification: str
    actor: str
    overridden_at: datetime


@dataclass(frozen=True)
class PayrollException:
    """
    A rule-detected condition on one worker.

    ``subject`` discriminates kinds that can fire more than once per worker:
    the line item id for adjustment-cap findings, the run id for execution
    failures.  ``(worker_id, kind, subject)`` is the fingerprint used when
    merging re-validation results.
    """

    exception_id: str
    worker_id: str
    worker_name: str
    worker_country: str
    kind: ExceptionKind
    description: str
    status: ExceptionStatus = ExceptionStatus.ACTIVE
    override: OverrideInfo | None = None
    subject: str | None = None

    def __post_init__(self) -> None:
        if (self.status is ExceptionStatus.OVERRIDDEN) != (self.override is not None):
            raise ValueError(
                f"Exception {self.exception_id}: override info must be present "
                f"exactly when status is overridden (status={self.status.value})"
            )

    @property
    def severity(self) -> Severity:
        return self.kind.severity

    @property
    def is_blocking(self) -> bool:
        return self.kind.is_blocking

    @property
    def can_fix_in_payroll(self) -> bool:
        return self.kind.can_fix_in_payroll

    @property
    def fix_strategy(self) -> FixStrategy:
        return self.kind.fix_strategy

    @property
    def is_active(self) -> bool:
        return self.status is ExceptionStatus.ACTIVE

    @property
    def blocks_submission(self) -> bool:
        return self.is_blocking and self.is_active

    @property
    def fingerprint(self) -> tuple[str, ExceptionKind, str | None]:
        return (self.worker_id, self.kind, self.subject)
