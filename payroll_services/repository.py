"""
payroll_services.repository -- ORM persistence for a batch cycle.

Responsibility:
    Save and load the records of one cycle: the cycle itself (with its
    workflow step and snoozed workers), the worker roster and leave
    records, the exception list, the latest execution log, payment
    receipts and the audit trail.  Every
    method takes and returns domain DTOs; ORM models never leave this
    module.

Architecture position:
    Services -- the only place that maps payroll DTOs onto
    payroll_kernel.models / payroll_batch.models.

Invariants enforced:
    - Records are keyed by business ids (cycle id, worker id) within a
      cycle; exceptions are foreign-keyed to both cycle and worker.
    - Workers and exceptions carry a version column; a concurrent write
      surfaces as OptimisticLockError.
    - Only the latest execution log is kept per cycle.
    - Receipts are replaced as a set.  Events are append-only: saving a
      trail inserts only the events past the stored count, and a trail
      shorter than the stored one is rejected with ValueError.

Failure modes:
    - CycleNotFoundError for unknown cycle ids.
    - WorkerNotFoundError when an exception or edit names an unknown worker.
    - OptimisticLockError on a stale version.

Session ownership:
    The caller owns the session and its transaction (see
    ``payroll_kernel.db.session_scope``).  The repository flushes but
    never commits.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payroll_batch.domain.types import ExecutionLogData, PaymentReceipt
from payroll_batch.models.execution import ExecutionLogModel, PaymentReceiptModel
from payroll_kernel.domain.cycle import BatchCycle, BatchEvent, WorkflowStep
from payroll_kernel.domain.findings import PayrollException
from payroll_kernel.domain.values import LeaveRecord, Worker
from payroll_kernel.exceptions import (
    CycleNotFoundError,
    OptimisticLockError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.cycle import BatchCycleModel, BatchEventModel
from payroll_kernel.models.finding import PayrollExceptionModel
from payroll_kernel.models.worker import LeaveRecordModel, WorkerModel

logger = get_logger("services.repository")


@dataclass(frozen=True)
class StoredCycle:
    cycle: BatchCycle
    step: WorkflowStep
    snoozed_worker_ids: frozenset[str]


class PayrollRepository:
    """Persistence adapter for batch cycles and everything hanging off them."""

    def __init__(self, session: Session):
        self._session = session

    # -------------------------------------------------------------------------
    # Cycles
    # -------------------------------------------------------------------------

    def _find_cycle(self, cycle_id: str) -> BatchCycleModel | None:
        return self._session.execute(
            select(BatchCycleModel).where(BatchCycleModel.cycle_key == cycle_id)
        ).scalar_one_or_none()

    def _cycle_model(self, cycle_id: str) -> BatchCycleModel:
        model = self._find_cycle(cycle_id)
        if model is None:
            raise CycleNotFoundError(cycle_id)
        return model

    def save_cycle(
        self,
        cycle: BatchCycle,
        step: WorkflowStep,
        snoozed_worker_ids: Iterable[str] = (),
        actor: str = "system",
    ) -> UUID:
        """Insert or update the cycle; returns its row id."""
        model = self._find_cycle(cycle.cycle_id)
        if model is None:
            model = BatchCycleModel.from_dto(cycle, step.value, actor)
            self._session.add(model)
        else:
            model.apply_dto(cycle)
            model.current_step = step.value
            model.updated_by_id = actor
        model.snoozed_worker_ids = sorted(snoozed_worker_ids)
        self._session.flush()
        logger.info(
            "cycle_saved",
            extra={
                "cycle_id": cycle.cycle_id,
                "status": cycle.status.value,
                "step": step.value,
            },
        )
        return model.id

    def load_cycle(self, cycle_id: str) -> StoredCycle:
        model = self._cycle_model(cycle_id)
        return StoredCycle(
            cycle=model.to_dto(),
            step=WorkflowStep(model.current_step),
            snoozed_worker_ids=frozenset(model.snoozed_worker_ids or ()),
        )

    # -------------------------------------------------------------------------
    # Workers and leave
    # -------------------------------------------------------------------------

    def _worker_models(self, cycle_row_id: UUID) -> dict[str, WorkerModel]:
        rows = self._session.execute(
            select(WorkerModel)
            .where(WorkerModel.cycle_id == cycle_row_id)
            .order_by(WorkerModel.seq)
        ).scalars()
        return {row.worker_key: row for row in rows}

    def save_workers(
        self,
        cycle_id: str,
        workers: Iterable[Worker],
        leave_records: Iterable[LeaveRecord] = (),
        actor: str = "system",
    ) -> None:
        cycle = self._cycle_model(cycle_id)
        existing = self._worker_models(cycle.id)
        count = 0
        for seq, worker in enumerate(workers):
            model = existing.get(worker.worker_id)
            if model is None:
                model = WorkerModel.from_dto(worker, cycle.id, actor)
                self._session.add(model)
            else:
                model.apply_dto(worker)
                model.updated_by_id = actor
            model.seq = seq
            count += 1

        leave = {
            row.worker_key: row
            for row in self._session.execute(
                select(LeaveRecordModel).where(LeaveRecordModel.cycle_id == cycle.id)
            ).scalars()
        }
        for record in leave_records:
            model = leave.get(record.worker_id)
            if model is None:
                self._session.add(LeaveRecordModel.from_dto(record, cycle.id, actor))
            else:
                model.apply_dto(record)
                model.updated_by_id = actor
        self._flush("Worker", cycle_id)
        logger.info("workers_saved", extra={"cycle_id": cycle_id, "worker_count": count})

    def load_workers(self, cycle_id: str) -> tuple[Worker, ...]:
        cycle = self._cycle_model(cycle_id)
        return tuple(m.to_dto() for m in self._worker_models(cycle.id).values())

    def load_leave_records(self, cycle_id: str) -> dict[str, LeaveRecord]:
        cycle = self._cycle_model(cycle_id)
        rows = self._session.execute(
            select(LeaveRecordModel).where(LeaveRecordModel.cycle_id == cycle.id)
        ).scalars()
        return {row.worker_key: row.to_dto() for row in rows}

    def worker_version(self, cycle_id: str, worker_id: str) -> int:
        return self._worker_model(cycle_id, worker_id).version

    def _worker_model(self, cycle_id: str, worker_id: str) -> WorkerModel:
        cycle = self._cycle_model(cycle_id)
        model = self._session.execute(
            select(WorkerModel).where(
                WorkerModel.cycle_id == cycle.id,
                WorkerModel.worker_key == worker_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise WorkerNotFoundError(worker_id)
        return model

    def update_worker(
        self,
        cycle_id: str,
        worker: Worker,
        expected_version: int,
        actor: str = "system",
    ) -> int:
        """
        Apply an edit made against ``expected_version``; returns the new version.

        Raises:
            OptimisticLockError: the stored row moved past ``expected_version``,
                either before this call or concurrently with the flush.
        """
        model = self._worker_model(cycle_id, worker.worker_id)
        if model.version != expected_version:
            raise OptimisticLockError(
                "Worker", worker.worker_id, expected_version, model.version,
            )
        model.apply_dto(worker)
        model.updated_by_id = actor
        self._flush("Worker", worker.worker_id, expected_version)
        logger.info(
            "worker_persisted",
            extra={"worker_id": worker.worker_id, "version": model.version},
        )
        return model.version

    def _flush(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
    ) -> None:
        try:
            self._session.flush()
        except StaleDataError:
            self._session.rollback()
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": entity_id},
            )
            raise OptimisticLockError(entity_type, entity_id, expected_version) from None

    # -------------------------------------------------------------------------
    # Exceptions
    # -------------------------------------------------------------------------

    def save_exceptions(
        self,
        cycle_id: str,
        exceptions: Iterable[PayrollException],
        actor: str = "system",
    ) -> None:
        cycle = self._cycle_model(cycle_id)
        workers = self._worker_models(cycle.id)
        existing = {
            row.exception_key: row
            for row in self._session.execute(
                select(PayrollExceptionModel)
                .where(PayrollExceptionModel.cycle_id == cycle.id)
            ).scalars()
        }
        count = 0
        for seq, exc in enumerate(exceptions):
            model = existing.get(exc.exception_id)
            if model is None:
                worker = workers.get(exc.worker_id)
                if worker is None:
                    raise WorkerNotFoundError(exc.worker_id)
                model = PayrollExceptionModel.from_dto(exc, cycle.id, worker.id, actor)
                self._session.add(model)
            else:
                model.apply_dto(exc)
                model.updated_by_id = actor
            model.seq = seq
            count += 1
        self._flush("PayrollException", cycle_id)
        logger.info(
            "exceptions_saved", extra={"cycle_id": cycle_id, "exception_count": count},
        )

    def load_exceptions(self, cycle_id: str) -> tuple[PayrollException, ...]:
        cycle = self._cycle_model(cycle_id)
        rows = self._session.execute(
            select(PayrollExceptionModel)
            .where(PayrollExceptionModel.cycle_id == cycle.id)
            .order_by(PayrollExceptionModel.seq)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    # -------------------------------------------------------------------------
    # Execution log
    # -------------------------------------------------------------------------

    def save_execution_log(
        self,
        cycle_id: str,
        log: ExecutionLogData,
        actor: str = "system",
    ) -> None:
        """Store ``log`` as the cycle's latest run, replacing any previous one."""
        cycle = self._cycle_model(cycle_id)
        previous = self._session.execute(
            select(ExecutionLogModel).where(ExecutionLogModel.cycle_id == cycle.id)
        ).scalars().all()
        for row in previous:
            self._session.delete(row)
        self._session.flush()
        self._session.add(ExecutionLogModel.from_dto(log, cycle.id, actor))
        self._session.flush()
        logger.info(
            "execution_log_saved",
            extra={
                "cycle_id": cycle_id,
                "run_id": log.run_id,
                "entry_count": len(log.entries),
                "replaced": len(previous),
            },
        )

    def load_latest_execution_log(self, cycle_id: str) -> ExecutionLogData | None:
        cycle = self._cycle_model(cycle_id)
        row = self._session.execute(
            select(ExecutionLogModel)
            .where(ExecutionLogModel.cycle_id == cycle.id)
            .order_by(ExecutionLogModel.run_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    # -------------------------------------------------------------------------
    # Receipts and audit trail
    # -------------------------------------------------------------------------

    def save_receipts(
        self,
        cycle_id: str,
        receipts: Iterable[PaymentReceipt],
        actor: str = "system",
    ) -> None:
        cycle = self._cycle_model(cycle_id)
        previous = self._session.execute(
            select(PaymentReceiptModel).where(PaymentReceiptModel.cycle_id == cycle.id)
        ).scalars().all()
        for row in previous:
            self._session.delete(row)
        self._session.flush()
        count = 0
        for seq, receipt in enumerate(receipts):
            self._session.add(PaymentReceiptModel.from_dto(receipt, cycle.id, seq, actor))
            count += 1
        self._session.flush()
        logger.info(
            "receipts_saved", extra={"cycle_id": cycle_id, "receipt_count": count},
        )

    def load_receipts(self, cycle_id: str) -> tuple[PaymentReceipt, ...]:
        cycle = self._cycle_model(cycle_id)
        rows = self._session.execute(
            select(PaymentReceiptModel)
            .where(PaymentReceiptModel.cycle_id == cycle.id)
            .order_by(PaymentReceiptModel.seq)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def save_events(self, cycle_id: str, events: Iterable[BatchEvent]) -> int:
        """
        Append the events not yet stored; returns how many were inserted.

        ``events`` is the full trail.  The stored rows are its prefix, so
        only the tail past the stored count is written.
        """
        cycle = self._cycle_model(cycle_id)
        stored = self._session.execute(
            select(func.count())
            .select_from(BatchEventModel)
            .where(BatchEventModel.cycle_id == cycle.id)
        ).scalar_one()
        events = tuple(events)
        if len(events) < stored:
            raise ValueError(
                f"Event trail for cycle {cycle_id} has {len(events)} events "
                f"but {stored} are already stored"
            )
        for seq in range(stored, len(events)):
            self._session.add(BatchEventModel.from_dto(events[seq], cycle.id, seq))
        self._session.flush()
        added = len(events) - stored
        logger.info(
            "events_appended", extra={"cycle_id": cycle_id, "event_count": added},
        )
        return added

    def load_events(self, cycle_id: str) -> tuple[BatchEvent, ...]:
        cycle = self._cycle_model(cycle_id)
        rows = self._session.execute(
            select(BatchEventModel)
            .where(BatchEventModel.cycle_id == cycle.id)
            .order_by(BatchEventModel.seq)
        ).scalars()
        return tuple(row.to_dto() for row in rows)
