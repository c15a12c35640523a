"""
ExecutionEngine -- bounded-concurrency payment execution with partial failure.

Contract:
    Runs one execution for a cohort of workers: selects the targets,
    calls the PaymentProvider for each on a bounded thread pool, and
    returns the ExecutionLogData for the run.  ``stream()`` yields the
    per-worker status events as they happen and finishes with the log.

Architecture: payroll_batch/services.  Imports from payroll_batch.domain,
    payroll_batch.providers and the kernel (clock, logging, values).

Invariants enforced:
    - Selection: filter by cohort, then drop snoozed workers; order kept.
    - Per-worker status is monotonic (PENDING -> PROCESSING -> terminal);
      a regression raises ValueError.
    - One worker's failure (rejection, timeout or crash) never stops the
      run; the worker gets a FAILED entry and the rest continue.
    - Every provider call is bounded by the per-worker timeout.  A call
      that overruns is abandoned (its thread is left to finish on its
      own) and classified as ProviderTimeoutError, which RetryPolicy may
      retry.
    - Status updates and listener calls are serialized by one lock, so
      ``terminal_count`` in events never decreases.
    - Cancellation leaves not-yet-started workers PENDING and yields a
      partial log without entries for them.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import contextvars
import queue
import threading
from collections.abc import Callable, Collection, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

from payroll_batch.domain.types import (
    ExecutionLogData,
    ExecutionLogEntry,
    ExecutionOutcome,
    ProviderResult,
    WorkerRunStatus,
    WorkerStatusEvent,
)
from payroll_batch.providers import PaymentProvider, RetryPolicy
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import Cohort, Worker
from payroll_kernel.exceptions import ProviderError, ProviderTimeoutError
from payroll_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")

StatusListener = Callable[[WorkerStatusEvent], None]


class CancellationToken:
    """Cooperative cancellation flag shared with the executing threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class _RunState:
    """Mutable bookkeeping for one run, guarded by ``lock``."""

    def __init__(
        self,
        run_id: str,
        targets: tuple[Worker, ...],
        clock: Clock,
        listener: StatusListener | None,
    ):
        self.run_id = run_id
        self.clock = clock
        self.listener = listener
        self.lock = threading.Lock()
        self.statuses = {w.worker_id: WorkerRunStatus.PENDING for w in targets}
        self.total = len(targets)
        self.succeeded = 0
        self.failed = 0
        self.calls: ThreadPoolExecutor | None = None

    def transition(
        self,
        worker: Worker,
        target: WorkerRunStatus,
        error_message: str | None = None,
    ) -> None:
        with self.lock:
            current = self.statuses[worker.worker_id]
            if not current.can_transition_to(target):
                raise ValueError(
                    f"Worker {worker.worker_id} cannot move from "
                    f"{current.value} to {target.value}"
                )
            self.statuses[worker.worker_id] = target
            if target is WorkerRunStatus.COMPLETE:
                self.succeeded += 1
            elif target is WorkerRunStatus.FAILED:
                self.failed += 1

            if self.listener is None:
                return
            event = WorkerStatusEvent(
                run_id=self.run_id,
                worker_id=worker.worker_id,
                name=worker.name,
                status=target,
                terminal_count=self.succeeded + self.failed,
                total_count=self.total,
                occurred_at=self.clock.now(),
                error_message=error_message,
            )
            try:
                self.listener(event)
            except Exception:
                logger.warning(
                    "status_listener_failed",
                    extra={"run_id": self.run_id, "worker_id": worker.worker_id},
                    exc_info=True,
                )


class ExecutionEngine:
    """Payment execution engine with per-worker isolation.

    Contract:
        - ``select_workers()`` applies cohort and snooze filtering.
        - ``execute()`` runs the selection to completion (or cancellation)
          and returns the ExecutionLogData.
        - ``stream()`` is ``execute()`` as an iterator of events.

    Non-goals:
        - Does NOT persist the log -- the caller (BatchService) owns it.
        - Does NOT decide whether execution is allowed -- guards live in
          the batch workflow.
    """

    def __init__(
        self,
        provider: PaymentProvider,
        clock: Clock | None = None,
        max_concurrency: int = 4,
        worker_timeout_seconds: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        run_id_factory: Callable[[], str] | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if worker_timeout_seconds <= 0:
            raise ValueError("worker_timeout_seconds must be positive")
        self._provider = provider
        self._clock = clock or SystemClock()
        self._max_concurrency = max_concurrency
        self._timeout = worker_timeout_seconds
        self._retry = retry_policy or RetryPolicy()
        self._run_id_factory = run_id_factory or (lambda: f"run-{uuid4().hex[:12]}")

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @staticmethod
    def select_workers(
        cohort: Cohort,
        workers: Iterable[Worker],
        excluded_worker_ids: Collection[str] = frozenset(),
    ) -> tuple[Worker, ...]:
        return tuple(
            w for w in workers
            if cohort.includes(w.employment_type)
            and w.worker_id not in excluded_worker_ids
        )

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        cohort: Cohort,
        workers: Iterable[Worker],
        excluded_worker_ids: Collection[str] = frozenset(),
        token: CancellationToken | None = None,
        listener: StatusListener | None = None,
    ) -> ExecutionLogData:
        token = token or CancellationToken()
        targets = self.select_workers(cohort, workers, excluded_worker_ids)
        run_id = self._run_id_factory()
        started_at = self._clock.now()
        state = _RunState(run_id, targets, self._clock, listener)

        with LogContext.bind(run_id=run_id):
            logger.info(
                "execution_started",
                extra={
                    "cohort": cohort.value,
                    "target_count": len(targets),
                    "excluded_count": len(excluded_worker_ids),
                    "max_concurrency": self._max_concurrency,
                },
            )

            results: list[ExecutionLogEntry | None] = []
            if targets:
                pool_size = min(self._max_concurrency, len(targets))
                # One thread per possible call, so an abandoned call never
                # delays another worker's attempt.
                state.calls = ThreadPoolExecutor(
                    max_workers=len(targets) * self._retry.max_attempts,
                    thread_name_prefix="payroll-call",
                )
                try:
                    with ThreadPoolExecutor(
                        max_workers=pool_size, thread_name_prefix="payroll-exec",
                    ) as pool:
                        futures = [
                            pool.submit(
                                contextvars.copy_context().run,
                                self._process_worker, state, worker, token,
                            )
                            for worker in targets
                        ]
                        results = [f.result() for f in futures]
                finally:
                    state.calls.shutdown(wait=False, cancel_futures=True)

            entries = tuple(e for e in results if e is not None)
            pending = tuple(
                w.worker_id for w in targets
                if state.statuses[w.worker_id] is WorkerRunStatus.PENDING
            )
            employees = sum(1 for w in targets if w.is_employee)

            log = ExecutionLogData(
                run_id=run_id,
                timestamp=started_at,
                cohort=cohort,
                employee_count=employees,
                contractor_count=len(targets) - employees,
                entries=entries,
                targeted_worker_ids=tuple(w.worker_id for w in targets),
                is_partial=bool(pending),
                cancelled=bool(pending) and token.is_cancelled,
                pending_worker_ids=pending,
            )

            logger.info(
                "execution_completed",
                extra={
                    "cohort": cohort.value,
                    "target_count": len(targets),
                    "succeeded": log.success_count,
                    "failed": log.failed_count,
                    "pending": len(pending),
                    "is_partial": log.is_partial,
                },
            )
        return log

    def stream(
        self,
        cohort: Cohort,
        workers: Iterable[Worker],
        excluded_worker_ids: Collection[str] = frozenset(),
        token: CancellationToken | None = None,
    ) -> Iterator[WorkerStatusEvent | ExecutionLogData]:
        """Yield status events as they happen, then the ExecutionLogData."""
        events: queue.Queue = queue.Queue()
        outcome: dict[str, object] = {}
        workers = tuple(workers)

        def _run() -> None:
            try:
                outcome["log"] = self.execute(
                    cohort, workers, excluded_worker_ids, token, events.put,
                )
            except BaseException as exc:  # re-raised in the consumer thread
                outcome["error"] = exc
            finally:
                events.put(_DONE)

        runner = threading.Thread(
            target=contextvars.copy_context().run, args=(_run,),
            name="payroll-exec-stream", daemon=True,
        )
        runner.start()
        while True:
            item = events.get()
            if item is _DONE:
                break
            yield item
        runner.join()
        if "error" in outcome:
            raise outcome["error"]
        yield outcome["log"]

    # -------------------------------------------------------------------------
    # Per-worker processing
    # -------------------------------------------------------------------------

    def _process_worker(
        self,
        state: _RunState,
        worker: Worker,
        token: CancellationToken,
    ) -> ExecutionLogEntry | None:
        if token.is_cancelled:
            return None

        with LogContext.bind(worker_id=worker.worker_id):
            state.transition(worker, WorkerRunStatus.PROCESSING)
            outcome, error, attempts, reference = self._call_provider(
                state, worker, token,
            )
            entry = ExecutionLogEntry(
                worker_id=worker.worker_id,
                name=worker.name,
                employment_type=worker.employment_type,
                country=worker.country,
                outcome=outcome,
                error_message=error,
                attempts=attempts,
                reference=reference,
            )
            if outcome is ExecutionOutcome.SUCCESS:
                state.transition(worker, WorkerRunStatus.COMPLETE)
            else:
                logger.warning(
                    "worker_execution_failed",
                    extra={"error_message": error, "attempts": attempts},
                )
                state.transition(worker, WorkerRunStatus.FAILED, error)
        return entry

    def _call_with_timeout(self, state: _RunState, worker: Worker) -> ProviderResult:
        future = state.calls.submit(
            contextvars.copy_context().run,
            self._provider.execute, worker, self._timeout,
        )
        try:
            return future.result(timeout=self._timeout)
        except TimeoutError:
            future.cancel()
            logger.warning(
                "provider_call_abandoned",
                extra={"timeout_seconds": self._timeout},
            )
            raise ProviderTimeoutError(worker.worker_id, self._timeout) from None

    def _call_provider(
        self,
        state: _RunState,
        worker: Worker,
        token: CancellationToken,
    ) -> tuple[ExecutionOutcome, str | None, int, str | None]:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = self._call_with_timeout(state, worker)
            except ProviderError as exc:
                if self._retry.should_retry(exc, attempt) and not token.is_cancelled:
                    logger.info(
                        "worker_execution_retry",
                        extra={"attempt": attempt, "error_code": exc.code},
                    )
                    self._clock.sleep(self._retry.backoff_seconds)
                    continue
                return ExecutionOutcome.FAILED, str(exc), attempt, None
            except Exception as exc:
                logger.error("provider_crashed", exc_info=True)
                return (
                    ExecutionOutcome.FAILED,
                    f"Unexpected provider error: {exc}",
                    attempt,
                    None,
                )
            if result.success:
                return ExecutionOutcome.SUCCESS, None, attempt, result.reference
            return (
                ExecutionOutcome.FAILED,
                result.error_message or "Provider rejected the payment",
                attempt,
                None,
            )


_DONE = object()
