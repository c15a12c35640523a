"""
ORM model for payroll exceptions.

Contract:
    PayrollExceptionModel persists one rule-detected (or execution-derived)
    exception.  It is foreign-keyed to both the cycle and the worker and
    versioned for optimistic locking.

Architecture: payroll_kernel/models. Imports from payroll_kernel.db.base only.

Invariants enforced:
    - (cycle_id, exception_key) is UNIQUE; exception ids are deterministic.
    - ``seq`` is the position in the cycle's exception list.
    - override_* columns are populated only when status is "overridden"
      (the DTO constructor rejects any other combination on load).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString, as_utc

if TYPE_CHECKING:
    from payroll_kernel.domain.findings import PayrollException


class PayrollExceptionModel(TrackedBase):
    """Persistent payroll exception, versioned for optimistic locking."""

    __tablename__ = "payroll_exceptions"

    __table_args__ = (
        UniqueConstraint("cycle_id", "exception_key", name="uq_payroll_exceptions_key"),
        Index("ix_payroll_exceptions_status", "status"),
        Index("ix_payroll_exceptions_worker", "worker_id"),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_workers.id", ondelete="CASCADE"),
        nullable=False,
    )
    exception_key: Mapped[str] = mapped_column(String(300), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    worker_key: Mapped[str] = mapped_column(String(200), nullable=False)
    worker_name: Mapped[str] = mapped_column(String(300), nullable=False)
    worker_country: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(200), nullable=True)
    override_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    override_actor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    overridden_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PayrollException:
        from payroll_kernel.domain.findings import (
            ExceptionKind,
            ExceptionStatus,
            OverrideInfo,
            PayrollException,
        )

        override = None
        if self.override_actor is not None:
            override = OverrideInfo(
                justification=self.override_justification or "",
                actor=self.override_actor,
                overridden_at=as_utc(self.overridden_at),
            )
        return PayrollException(
            exception_id=self.exception_key,
            worker_id=self.worker_key,
            worker_name=self.worker_name,
            worker_country=self.worker_country,
            kind=ExceptionKind(self.kind),
            description=self.description,
            status=ExceptionStatus(self.status),
            override=override,
            subject=self.subject,
        )

    def apply_dto(self, dto: PayrollException) -> None:
        self.worker_name = dto.worker_name
        self.worker_country = dto.worker_country
        self.kind = dto.kind.value
        self.description = dto.description
        self.status = dto.status.value
        self.subject = dto.subject
        if dto.override is not None:
            self.override_justification = dto.override.justification
            self.override_actor = dto.override.actor
            self.overridden_at = dto.override.overridden_at
        else:
            self.override_justification = None
            self.override_actor = None
            self.overridden_at = None

    @classmethod
    def from_dto(
        cls,
        dto: PayrollException,
        cycle_id: UUID,
        worker_id: UUID,
        created_by_id: str,
    ) -> PayrollExceptionModel:
        model = cls(
            cycle_id=cycle_id,
            worker_id=worker_id,
            exception_key=dto.exception_id,
            worker_key=dto.worker_id,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
        model.apply_dto(dto)
        return model
