"""
Worker value objects (``payroll_kernel.domain.values``).

Responsibility
--------------
Immutable descriptions of the people in a payroll batch and their leave:
``Worker``, ``LineItem`` and ``LeaveRecord``, together with the closed
enums they reference.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Money is ``Decimal``; floats are converted through ``str`` so that
  ``Decimal(0.1)`` style binary noise never enters an amount.
* A worker is never deleted mid-cycle; edits produce a new instance via
  ``dataclasses.replace`` and exclusion happens through snoozing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


class EmploymentType(str, Enum):
    EMPLOYEE = "employee"
    CONTRACTOR = "contractor"


class CompensationType(str, Enum):
    MONTHLY = "monthly"
    DAILY = "daily"
    HOURLY = "hourly"
    PROJECT_BASED = "project-based"


class WorkerStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"
    CONTRACT_ENDED = "contract-ended"
    ON_HOLD = "on-hold"


class ApplyTo(str, Enum):
    """Which half of a semi-monthly cycle a line item is paid in."""

    FIRST_HALF = "first-half"
    SECOND_HALF = "second-half"
    BOTH_HALVES = "both-halves"
    FULL_MONTH = "full-month"


class Cohort(str, Enum):
    """Subset of workers targeted by an execution run."""

    ALL = "all"
    EMPLOYEES = "employees"
    CONTRACTORS = "contractors"

    def includes(self, employment_type: EmploymentType) -> bool:
        if self is Cohort.ALL:
            return True
        if self is Cohort.EMPLOYEES:
            return employment_type is EmploymentType.EMPLOYEE
        return employment_type is EmploymentType.CONTRACTOR


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a number-like value to Decimal; None stays None."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class LineItem:
    """An adjustment paid on top of base pay (allowance, bonus, 13th month)."""

    item_id: str
    name: str
    amount: Decimal
    taxable: bool = True
    cap: Decimal | None = None
    apply_to: ApplyTo = ApplyTo.FULL_MONTH

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "cap", to_decimal(self.cap))

    @property
    def exceeds_cap(self) -> bool:
        return self.cap is not None and self.amount > self.cap


@dataclass(frozen=True)
class Worker:
    """
    One worker in the batch.

    ``government_ids`` maps an id name (``"TIN"``, ``"SSS"``) to its value;
    ``contributions`` maps a contribution field (``"sss_employee"``) to the
    amount on file.  Missing keys and empty values are treated alike by the
    rules.
    """

    worker_id: str
    name: str
    country: str
    country_code: str
    currency: str
    employment_type: EmploymentType
    base_salary: Decimal | None = None
    compensation_type: CompensationType = CompensationType.MONTHLY
    hourly_rate: Decimal | None = None
    hours_worked: Decimal | None = None
    status: WorkerStatus = WorkerStatus.ACTIVE
    start_date: date | None = None
    end_date: date | None = None
    government_ids: Mapping[str, str] = field(default_factory=dict)
    contributions: Mapping[str, Decimal] = field(default_factory=dict)
    withholding_tax: Decimal | None = None
    line_items: tuple[LineItem, ...] = ()
    bank_account_on_file: bool = True
    preferred_currency: str | None = None

    def __post_init__(self) -> None:
        for name in ("base_salary", "hourly_rate", "hours_worked", "withholding_tax"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        object.__setattr__(
            self,
            "contributions",
            {k: to_decimal(v) for k, v in dict(self.contributions).items()},
        )
        object.__setattr__(self, "government_ids", dict(self.government_ids))
        object.__setattr__(self, "line_items", tuple(self.line_items))

    @property
    def is_employee(self) -> bool:
        return self.employment_type is EmploymentType.EMPLOYEE

    @property
    def is_contractor(self) -> bool:
        return self.employment_type is EmploymentType.CONTRACTOR

    @property
    def is_hourly(self) -> bool:
        return self.compensation_type is CompensationType.HOURLY

    def government_id(self, id_name: str) -> str | None:
        value = self.government_ids.get(id_name)
        return value or None

    def contribution(self, field_name: str) -> Decimal | None:
        return self.contributions.get(field_name)


@dataclass(frozen=True)
class LeaveRecord:
    """
    Leave taken by one worker in the period.

    Created on the first leave entry for a worker; ``working_days`` is the
    per-record days-per-month basis used when no country setting exists.
    """

    worker_id: str
    leave_days: Decimal = Decimal("0")
    working_days: Decimal | None = None
    client_confirmed: bool = False
    worker_reported: bool = False
    leave_breakdown: Mapping[str, Decimal] = field(default_factory=dict)
    has_pending_leave: bool = False
    has_missing_attendance: bool = False
    leave_reason: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "leave_days", to_decimal(self.leave_days))
        object.__setattr__(self, "working_days", to_decimal(self.working_days))
        object.__setattr__(
            self,
            "leave_breakdown",
            {k: to_decimal(v) for k, v in dict(self.leave_breakdown).items()},
        )
        if self.leave_days < 0:
            raise ValueError(
                f"leave_days must be non-negative for {self.worker_id}"
            )

    @property
    def needs_attention(self) -> bool:
        return self.has_pending_leave or self.has_missing_attendance
