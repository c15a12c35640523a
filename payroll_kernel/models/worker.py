"""
ORM models for workers and their leave records.

Contract:
    WorkerModel and LeaveRecordModel persist the per-cycle worker roster.
    Workers carry an optimistic ``version`` column (SQLAlchemy
    ``version_id_col``) so concurrent edits surface as StaleDataError.

Architecture: payroll_kernel/models. Imports from payroll_kernel.db.base only.

Invariants enforced:
    - (cycle_id, worker_key) is UNIQUE: a worker appears once per cycle.
    - ``seq`` is the roster position of a worker.
    - Money columns are Numeric; JSON columns hold Decimal values as strings.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from payroll_kernel.domain.values import LeaveRecord, Worker


def _str_or_none(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


class WorkerModel(TrackedBase):
    """Persistent worker record, versioned for optimistic locking."""

    __tablename__ = "payroll_workers"

    __table_args__ = (
        UniqueConstraint("cycle_id", "worker_key", name="uq_payroll_workers_cycle_worker"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_key: Mapped[str] = mapped_column(String(200), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    country_code: Mapped[str] = mapped_column(String(10), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    employment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    compensation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    base_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    hours_worked: Mapped[Decimal | None] = mapped_column(nullable=True)
    withholding_tax: Mapped[Decimal | None] = mapped_column(nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    government_ids: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    contributions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    line_items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    bank_account_on_file: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    preferred_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> Worker:
        from payroll_kernel.domain.values import (
            ApplyTo,
            CompensationType,
            EmploymentType,
            LineItem,
            Worker,
            WorkerStatus,
        )

        return Worker(
            worker_id=self.worker_key,
            name=self.name,
            country=self.country,
            country_code=self.country_code,
            currency=self.currency,
            employment_type=EmploymentType(self.employment_type),
            base_salary=self.base_salary,
            compensation_type=CompensationType(self.compensation_type),
            hourly_rate=self.hourly_rate,
            hours_worked=self.hours_worked,
            status=WorkerStatus(self.status),
            start_date=self.start_date,
            end_date=self.end_date,
            government_ids=self.government_ids or {},
            contributions={
                k: Decimal(v) for k, v in (self.contributions or {}).items()
            },
            withholding_tax=self.withholding_tax,
            line_items=tuple(
                LineItem(
                    item_id=item["item_id"],
                    name=item["name"],
                    amount=Decimal(item["amount"]),
                    taxable=item["taxable"],
                    cap=Decimal(item["cap"]) if item.get("cap") is not None else None,
                    apply_to=ApplyTo(item["apply_to"]),
                )
                for item in (self.line_items or [])
            ),
            bank_account_on_file=self.bank_account_on_file,
            preferred_currency=self.preferred_currency,
        )

    def apply_dto(self, dto: Worker) -> None:
        self.name = dto.name
        self.country = dto.country
        self.country_code = dto.country_code
        self.currency = dto.currency
        self.employment_type = dto.employment_type.value
        self.compensation_type = dto.compensation_type.value
        self.status = dto.status.value
        self.base_salary = dto.base_salary
        self.hourly_rate = dto.hourly_rate
        self.hours_worked = dto.hours_worked
        self.withholding_tax = dto.withholding_tax
        self.start_date = dto.start_date
        self.end_date = dto.end_date
        self.government_ids = dict(dto.government_ids)
        self.contributions = {k: str(v) for k, v in dto.contributions.items()}
        self.line_items = [
            {
                "item_id": item.item_id,
                "name": item.name,
                "amount": str(item.amount),
                "taxable": item.taxable,
                "cap": _str_or_none(item.cap),
                "apply_to": item.apply_to.value,
            }
            for item in dto.line_items
        ]
        self.bank_account_on_file = dto.bank_account_on_file
        self.preferred_currency = dto.preferred_currency

    @classmethod
    def from_dto(cls, dto: Worker, cycle_id: UUID, created_by_id: str) -> WorkerModel:
        model = cls(
            cycle_id=cycle_id,
            worker_key=dto.worker_id,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
        model.apply_dto(dto)
        return model


class LeaveRecordModel(TrackedBase):
    """Leave taken by one worker in one cycle."""

    __tablename__ = "payroll_leave_records"

    __table_args__ = (
        UniqueConstraint("cycle_id", "worker_key", name="uq_payroll_leave_cycle_worker"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_key: Mapped[str] = mapped_column(String(200), nullable=False)
    leave_days: Mapped[Decimal] = mapped_column(nullable=False)
    working_days: Mapped[Decimal | None] = mapped_column(nullable=True)
    client_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    worker_reported: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    leave_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    has_pending_leave: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_missing_attendance: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    leave_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> LeaveRecord:
        from payroll_kernel.domain.values import LeaveRecord

        return LeaveRecord(
            worker_id=self.worker_key,
            leave_days=self.leave_days,
            working_days=self.working_days,
            client_confirmed=self.client_confirmed,
            worker_reported=self.worker_reported,
            leave_breakdown={
                k: Decimal(v) for k, v in (self.leave_breakdown or {}).items()
            },
            has_pending_leave=self.has_pending_leave,
            has_missing_attendance=self.has_missing_attendance,
            leave_reason=self.leave_reason,
        )

    def apply_dto(self, dto: LeaveRecord) -> None:
        self.leave_days = dto.leave_days
        self.working_days = dto.working_days
        self.client_confirmed = dto.client_confirmed
        self.worker_reported = dto.worker_reported
        self.leave_breakdown = {k: str(v) for k, v in dto.leave_breakdown.items()}
        self.has_pending_leave = dto.has_pending_leave
        self.has_missing_attendance = dto.has_missing_attendance
        self.leave_reason = dto.leave_reason

    @classmethod
    def from_dto(
        cls, dto: LeaveRecord, cycle_id: UUID, created_by_id: str,
    ) -> LeaveRecordModel:
        model = cls(
            cycle_id=cycle_id,
            worker_key=dto.worker_id,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
        model.apply_dto(dto)
        return model
