"""
ORM model for payroll batch cycles.

Contract:
    BatchCycleModel persists one cycle, its current workflow step and the
    set of snoozed workers.  ``to_dto()`` / ``from_dto()`` round-trip the
    ``BatchCycle`` value object.  BatchEventModel stores the cycle's audit
    trail, one row per event, ordered by ``seq``.

Architecture: payroll_kernel/models. Imports from payroll_kernel.db.base only.
"""

from __future__ import annotations

from datetime import date, datetime
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
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString, as_utc

if TYPE_CHECKING:
    from payroll_kernel.domain.cycle import BatchCycle, BatchEvent


class BatchCycleModel(TrackedBase):
    """Persistent batch cycle record; ``cycle_key`` is the business id."""

    __tablename__ = "payroll_cycles"

    __table_args__ = (
        Index("ix_payroll_cycles_status", "status"),
    )

    cycle_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    current_step: Mapped[str] = mapped_column(String(50), nullable=False)
    snoozed_worker_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    forced_completion: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    completion_justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> BatchCycle:
        from payroll_kernel.domain.cycle import BatchCycle, CycleStatus

        return BatchCycle(
            cycle_id=self.cycle_key,
            label=self.label,
            period_start=self.period_start,
            period_end=self.period_end,
            status=CycleStatus(self.status),
            completed_at=as_utc(self.completed_at),
            completed_by=self.completed_by,
            forced_completion=self.forced_completion,
            completion_justification=self.completion_justification,
        )

    def apply_dto(self, dto: BatchCycle) -> None:
        self.label = dto.label
        self.period_start = dto.period_start
        self.period_end = dto.period_end
        self.status = dto.status.value
        self.completed_at = dto.completed_at
        self.completed_by = dto.completed_by
        self.forced_completion = dto.forced_completion
        self.completion_justification = dto.completion_justification

    @classmethod
    def from_dto(
        cls,
        dto: BatchCycle,
        current_step: str,
        created_by_id: str,
    ) -> BatchCycleModel:
        model = cls(
            cycle_key=dto.cycle_id,
            current_step=current_step,
            snoozed_worker_ids=[],
            created_by_id=created_by_id,
            updated_by_id=None,
        )
        model.apply_dto(dto)
        return model


class BatchEventModel(TrackedBase):
    """Audit trail row.  Rows are inserted and never updated."""

    __tablename__ = "payroll_cycle_events"

    __table_args__ = (
        Index("ix_payroll_cycle_events_cycle_seq", "cycle_id", "seq", unique=True),
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_cycles.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)

    def to_dto(self) -> BatchEvent:
        from payroll_kernel.domain.cycle import BatchEvent, EventLevel

        return BatchEvent(
            at=as_utc(self.occurred_at),
            actor=self.actor,
            message=self.message,
            level=EventLevel(self.level),
        )

    @classmethod
    def from_dto(cls, dto: BatchEvent, cycle_id: UUID, seq: int) -> BatchEventModel:
        return cls(
            cycle_id=cycle_id,
            seq=seq,
            occurred_at=dto.at,
            actor=dto.actor,
            message=dto.message,
            level=dto.level.value,
            created_by_id=dto.actor,
            updated_by_id=None,
        )
