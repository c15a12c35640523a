"""
WorkerRegistry -- in-memory roster of a batch's workers and leave records.

Contract:
    Holds the workers of one batch in insertion order, with one optimistic
    version counter per worker.  Every accepted edit bumps the version;
    an edit that names a stale ``expected_version`` is rejected.

Invariants enforced:
    - Workers are never removed mid-cycle (exclusion is snoozing).
    - Versions start at 1 and increase by one per accepted edit.
    - All access is serialized by an internal lock.

Failure modes:
    - DuplicateWorkerError on registering an id twice.
    - WorkerNotFoundError on unknown ids.
    - OptimisticLockError on stale ``expected_version``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from payroll_kernel.domain.values import LeaveRecord, Worker
from payroll_kernel.exceptions import (
    DuplicateWorkerError,
    OptimisticLockError,
    WorkerNotFoundError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.worker_registry")


class WorkerRegistry:

    def __init__(
        self,
        workers: Iterable[Worker] = (),
        leave_records: Iterable[LeaveRecord] = (),
    ):
        self._lock = threading.RLock()
        self._workers: dict[str, Worker] = {}
        self._versions: dict[str, int] = {}
        self._leave: dict[str, LeaveRecord] = {}
        for worker in workers:
            self.add_worker(worker)
        for record in leave_records:
            self.set_leave_record(record)

    def add_worker(self, worker: Worker) -> int:
        with self._lock:
            if worker.worker_id in self._workers:
                raise DuplicateWorkerError(worker.worker_id)
            self._workers[worker.worker_id] = worker
            self._versions[worker.worker_id] = 1
            return 1

    def get(self, worker_id: str) -> Worker:
        with self._lock:
            try:
                return self._workers[worker_id]
            except KeyError:
                raise WorkerNotFoundError(worker_id) from None

    def version(self, worker_id: str) -> int:
        with self._lock:
            if worker_id not in self._versions:
                raise WorkerNotFoundError(worker_id)
            return self._versions[worker_id]

    def update_worker(self, worker: Worker, expected_version: int) -> int:
        """Replace a worker if nobody else changed it since ``expected_version``.

        Returns the new version.
        """
        with self._lock:
            current = self.version(worker.worker_id)
            if current != expected_version:
                logger.warning(
                    "worker_update_conflict",
                    extra={
                        "worker_id": worker.worker_id,
                        "expected_version": expected_version,
                        "actual_version": current,
                    },
                )
                raise OptimisticLockError(
                    "Worker", worker.worker_id, expected_version, current,
                )
            self._workers[worker.worker_id] = worker
            self._versions[worker.worker_id] = current + 1
            logger.info(
                "worker_updated",
                extra={"worker_id": worker.worker_id, "version": current + 1},
            )
            return current + 1

    def workers(self) -> tuple[Worker, ...]:
        with self._lock:
            return tuple(self._workers.values())

    def __contains__(self, worker_id: object) -> bool:
        with self._lock:
            return worker_id in self._workers

    def __len__(self) -> int:
        with self._lock:
            return len(self._workers)

    # -------------------------------------------------------------------------
    # Leave records
    # -------------------------------------------------------------------------

    def leave_record(self, worker_id: str) -> LeaveRecord | None:
        with self._lock:
            return self._leave.get(worker_id)

    def set_leave_record(self, record: LeaveRecord) -> None:
        with self._lock:
            if record.worker_id not in self._workers:
                raise WorkerNotFoundError(record.worker_id)
            self._leave[record.worker_id] = record

    def leave_records(self) -> dict[str, LeaveRecord]:
        with self._lock:
            return dict(self._leave)
