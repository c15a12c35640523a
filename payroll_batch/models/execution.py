"""
ORM models for execution log persistence.

Contract:
    ExecutionLogModel and ExecutionLogEntryModel persist the latest
    execution run of a cycle and its per-worker entries.
    PaymentReceiptModel persists the receipts built from those runs.  Each
    has ``to_dto()`` / ``from_dto()`` round-trip methods.

Architecture: payroll_batch/models. Imports from payroll_kernel.db.base only.

Invariants enforced:
    - Entries keep run order through ``seq``.
    - Entries are written once; the repository replaces the whole log
      when a newer run is saved.
    - Receipts are replaced as a set; ``seq`` keeps their order.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase, UUIDString, as_utc

if TYPE_CHECKING:
    from payroll_batch.domain.types import (
        ExecutionLogData,
        ExecutionLogEntry,
        PaymentReceipt,
    )


class ExecutionLogModel(TrackedBase):
    """Persistent execution run header."""

    __tablename__ = "payroll_execution_logs"

    __table_args__ = (
        Index("ix_payroll_execution_logs_cycle", "cycle_id"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    run_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cohort: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False)
    contractor_count: Mapped[int] = mapped_column(Integer, nullable=False)
    targeted_worker_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_partial: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pending_worker_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)

    entries: Mapped[list["ExecutionLogEntryModel"]] = relationship(
        "ExecutionLogEntryModel",
        back_populates="log",
        cascade="all, delete-orphan",
        order_by="ExecutionLogEntryModel.seq",
    )

    def to_dto(self) -> ExecutionLogData:
        from payroll_batch.domain.types import ExecutionLogData
        from payroll_kernel.domain.values import Cohort

        return ExecutionLogData(
            run_id=self.run_id,
            timestamp=as_utc(self.run_at),
            cohort=Cohort(self.cohort),
            employee_count=self.employee_count,
            contractor_count=self.contractor_count,
            entries=tuple(e.to_dto() for e in self.entries),
            targeted_worker_ids=tuple(self.targeted_worker_ids or ()),
            is_partial=self.is_partial,
            cancelled=self.cancelled,
            pending_worker_ids=tuple(self.pending_worker_ids or ()),
        )

    @classmethod
    def from_dto(
        cls, dto: ExecutionLogData, cycle_id: UUID, created_by_id: str,
    ) -> ExecutionLogModel:
        return cls(
            cycle_id=cycle_id,
            run_id=dto.run_id,
            run_at=dto.timestamp,
            cohort=dto.cohort.value,
            employee_count=dto.employee_count,
            contractor_count=dto.contractor_count,
            targeted_worker_ids=list(dto.targeted_worker_ids),
            is_partial=dto.is_partial,
            cancelled=dto.cancelled,
            pending_worker_ids=list(dto.pending_worker_ids),
            entries=[
                ExecutionLogEntryModel.from_dto(entry, seq, created_by_id)
                for seq, entry in enumerate(dto.entries)
            ],
            created_by_id=created_by_id,
            updated_by_id=None,
        )


class ExecutionLogEntryModel(TrackedBase):
    """One worker's outcome within a run."""

    __tablename__ = "payroll_execution_log_entries"

    __table_args__ = (
        Index("ix_payroll_execution_entries_log_seq", "log_id", "seq"),
    )

    log_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_execution_logs.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    worker_key: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    employment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    outcome: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    provider_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    log: Mapped[ExecutionLogModel] = relationship(
        "ExecutionLogModel", back_populates="entries",
    )

    def to_dto(self) -> ExecutionLogEntry:
        from payroll_batch.domain.types import ExecutionLogEntry, ExecutionOutcome
        from payroll_kernel.domain.values import EmploymentType

        return ExecutionLogEntry(
            worker_id=self.worker_key,
            name=self.name,
            employment_type=EmploymentType(self.employment_type),
            country=self.country,
            outcome=ExecutionOutcome(self.outcome),
            error_message=self.error_message,
            attempts=self.attempts,
            reference=self.provider_reference,
        )

    @classmethod
    def from_dto(
        cls, dto: ExecutionLogEntry, seq: int, created_by_id: str,
    ) -> ExecutionLogEntryModel:
        return cls(
            seq=seq,
            worker_key=dto.worker_id,
            name=dto.name,
            employment_type=dto.employment_type.value,
            country=dto.country,
            outcome=dto.outcome.value,
            error_message=dto.error_message,
            attempts=dto.attempts,
            provider_reference=dto.reference,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


class PaymentReceiptModel(TrackedBase):
    """One worker's receipt; replaced whenever the receipt set changes."""

    __tablename__ = "payroll_payment_receipts"

    __table_args__ = (
        Index("ix_payroll_receipts_cycle_seq", "cycle_id", "seq"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    worker_key: Mapped[str] = mapped_column(String(200), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    run_id: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    eta: Mapped[date | None] = mapped_column(Date, nullable=True)
    reschedule_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self) -> PaymentReceipt:
        from payroll_batch.domain.types import (
            PaymentReceipt,
            ReceiptStatus,
            RescheduleReason,
        )

        return PaymentReceipt(
            worker_id=self.worker_key,
            name=self.name,
            run_id=self.run_id,
            currency=self.currency,
            amount=self.amount,
            status=ReceiptStatus(self.status),
            reference=self.provider_reference,
            paid_at=as_utc(self.paid_at),
            error_message=self.error_message,
            eta=self.eta,
            reschedule_reason=(
                RescheduleReason(self.reschedule_reason)
                if self.reschedule_reason else None
            ),
        )

    @classmethod
    def from_dto(
        cls, dto: PaymentReceipt, cycle_id: UUID, seq: int, created_by_id: str,
    ) -> PaymentReceiptModel:
        return cls(
            cycle_id=cycle_id,
            seq=seq,
            worker_key=dto.worker_id,
            name=dto.name,
            run_id=dto.run_id,
            currency=dto.currency,
            amount=dto.amount,
            status=dto.status.value,
            provider_reference=dto.reference,
            paid_at=dto.paid_at,
            error_message=dto.error_message,
            eta=dto.eta,
            reschedule_reason=dto.reschedule_reason.value if dto.reschedule_reason else None,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
