"""
payroll_services.batch_service -- command handlers for one payroll batch.

Responsibility:
    Owns the state of one batch cycle (workflow step, exception list,
    snoozed workers, latest execution log) and exposes the operator
    commands over it.  Every accepted command publishes a new immutable
    ``BatchState`` snapshot to subscribers.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes WorkerRegistry, the exception rule engine, the resolution
    manager, the batch workflow and the ExecutionEngine.  All
    collaborators (country settings, clock, payment provider,
    notification sink) are injected.

Invariants enforced:
    - Commands are serialized by one re-entrant lock; snapshots are
      published in command order with an increasing ``version``.
    - A completed cycle is read-only: every mutating command raises
      CycleLockedError.
    - Only one execution run at a time (ExecutionInProgressError).  While
      a run is in flight the cycle cannot be completed or re-statused.
    - Every accepted operator action appends a BatchEvent; the trail is
      never edited.
    - Each processed worker of the latest run has a PaymentReceipt; only
      failed payouts can be rescheduled.
    - Snoozed workers are excluded from totals, execution and the
      submission guard.
    - Workflow refusals are returned as GuardViolation, not raised.

Failure modes:
    - CycleLockedError on mutation after completion.
    - InvalidCycleTransitionError from ``open_cycle`` / ``mark_complete``.
    - ExceptionNotFoundError / InvalidExceptionTransitionError /
      MissingJustificationError from resolution commands.
    - WorkerNotFoundError for unknown worker ids.
    - ExecutionInProgressError when a run is already in flight.
    - ReceiptNotFoundError / PayoutNotReschedulableError /
      InvalidPayoutDateError from ``reschedule_payout``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date

from payroll_batch.domain.types import (
    ExecutionLogData,
    ExecutionProgress,
    PaymentReceipt,
    RescheduleReason,
    WorkerRunStatus,
    WorkerStatusEvent,
)
from payroll_batch.providers import (
    PaymentProvider,
    RetryPolicy,
    SimulatedPaymentProvider,
)
from payroll_batch.services.executor import CancellationToken, ExecutionEngine
from payroll_config.provider import CountrySettingsProvider
from payroll_config.schema import EngineSettings
from payroll_engines.exception_rules import (
    findings_from_execution_log,
    merge_findings,
    validate,
)
from payroll_engines.proration import CurrencyTotal, compute_batch_totals
from payroll_engines.receipts import (
    find_receipt,
    receipts_from_execution_log,
    replace_receipt,
    reschedule,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.cycle import (
    BatchCycle,
    BatchEvent,
    CycleStatus,
    EventLevel,
    WorkflowStep,
)
from payroll_kernel.domain.findings import (
    LeaveResolution,
    PayrollException,
    ResolutionAction,
)
from payroll_kernel.domain.values import Cohort, Worker
from payroll_kernel.domain.workflow import GuardViolation
from payroll_kernel.exceptions import ExecutionInProgressError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_services import batch_workflow
from payroll_services import resolution_manager as rm
from payroll_services.batch_workflow import UnresolvedIssuesReport, WorkflowContext
from payroll_services.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
)
from payroll_services.worker_registry import WorkerRegistry

logger = get_logger("services.batch")

StateSubscriber = Callable[["BatchState"], None]


@dataclass(frozen=True)
class BatchState:
    """Immutable snapshot of a batch after one accepted command."""

    cycle: BatchCycle
    step: WorkflowStep
    exceptions: tuple[PayrollException, ...]
    snoozed_worker_ids: frozenset[str]
    latest_log: ExecutionLogData | None = None
    progress: ExecutionProgress | None = None
    is_executing: bool = False
    validated: bool = False
    receipts: tuple[PaymentReceipt, ...] = ()
    events: tuple[BatchEvent, ...] = ()
    version: int = 0

    @property
    def considered_exceptions(self) -> tuple[PayrollException, ...]:
        """Exceptions of workers that are still in the batch."""
        return tuple(
            e for e in self.exceptions if e.worker_id not in self.snoozed_worker_ids
        )

    @property
    def active_exceptions(self) -> tuple[PayrollException, ...]:
        return tuple(e for e in self.considered_exceptions if e.is_active)

    @property
    def blocking_count(self) -> int:
        return sum(1 for e in self.considered_exceptions if e.blocks_submission)

    @property
    def can_submit(self) -> bool:
        return rm.can_submit(self.considered_exceptions)

    def receipt_for(self, worker_id: str) -> PaymentReceipt | None:
        for receipt in self.receipts:
            if receipt.worker_id == worker_id:
                return receipt
        return None


class BatchService:
    """
    Operator commands for one payroll batch cycle.

    Contract:
        ``open_cycle()`` activates an upcoming cycle and runs the first
        validation.  Subsequent ``run_validation()`` calls merge new
        findings without touching existing statuses.  ``execute_batch()``
        runs the ExecutionEngine and folds failed entries back into the
        exception list.  ``mark_complete()`` closes the cycle.

    Non-goals:
        - Does NOT persist anything -- PayrollRepository does.
        - Does NOT render notifications -- the NotificationSink does.
    """

    def __init__(
        self,
        cycle: BatchCycle,
        registry: WorkerRegistry,
        settings_provider: CountrySettingsProvider,
        clock: Clock | None = None,
        payment_provider: PaymentProvider | None = None,
        engine_settings: EngineSettings | None = None,
        notification_sink: NotificationSink | None = None,
        actor: str = "system",
        exceptions: tuple[PayrollException, ...] = (),
        snoozed_worker_ids: frozenset[str] = frozenset(),
        step: WorkflowStep = WorkflowStep.REVIEW,
        latest_log: ExecutionLogData | None = None,
        receipts: tuple[PaymentReceipt, ...] = (),
        events: tuple[BatchEvent, ...] = (),
    ):
        self._clock = clock or SystemClock()
        self._registry = registry
        self._settings_provider = settings_provider
        self._engine_settings = engine_settings or EngineSettings()
        self._notifications = notification_sink or LoggingNotificationSink()
        self._actor = actor

        provider = payment_provider or SimulatedPaymentProvider(
            clock=self._clock,
            failure_rate=self._engine_settings.simulated_failure_rate,
            min_latency_seconds=self._engine_settings.simulated_min_latency_seconds,
            max_latency_seconds=self._engine_settings.simulated_max_latency_seconds,
            seed=self._engine_settings.simulated_seed,
        )
        self._engine = ExecutionEngine(
            provider,
            clock=self._clock,
            max_concurrency=self._engine_settings.max_concurrency,
            worker_timeout_seconds=self._engine_settings.worker_timeout_seconds,
            retry_policy=RetryPolicy(
                max_attempts=self._engine_settings.retry_max_attempts,
                backoff_seconds=self._engine_settings.retry_backoff_seconds,
            ),
        )

        self._lock = threading.RLock()
        self._subscribers: list[StateSubscriber] = []
        self._state = BatchState(
            cycle=cycle,
            step=batch_workflow.step_for_cycle_status(step, cycle.status),
            exceptions=tuple(exceptions),
            snoozed_worker_ids=frozenset(snoozed_worker_ids),
            latest_log=latest_log,
            validated=bool(exceptions),
            receipts=tuple(receipts),
            events=tuple(events),
        )

    # -------------------------------------------------------------------------
    # State publication
    # -------------------------------------------------------------------------

    @property
    def state(self) -> BatchState:
        with self._lock:
            return self._state

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    def subscribe(self, callback: StateSubscriber) -> Callable[[], None]:
        """Register for snapshots; returns a function that unsubscribes."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, **changes) -> BatchState:
        with self._lock:
            self._state = replace(self._state, version=self._state.version + 1, **changes)
            state = self._state
            for callback in tuple(self._subscribers):
                try:
                    callback(state)
                except Exception:
                    logger.warning(
                        "state_subscriber_failed",
                        extra={"version": state.version},
                        exc_info=True,
                    )
            return state

    def _notify(
        self,
        level: NotificationLevel,
        title: str,
        message: str = "",
        **context,
    ) -> None:
        self._notifications.notify(
            Notification(level=level, title=title, message=message, context=context)
        )

    def _context(self) -> WorkflowContext:
        state = self._state
        return WorkflowContext(
            exceptions=state.considered_exceptions,
            latest_log=state.latest_log,
            cycle_status=state.cycle.status,
        )

    def _bind(self):
        return LogContext.bind(cycle_id=self._state.cycle.cycle_id)

    def _events_with(
        self,
        message: str,
        level: EventLevel = EventLevel.INFO,
        actor: str | None = None,
    ) -> tuple[BatchEvent, ...]:
        event = BatchEvent(
            at=self._clock.now(),
            actor=actor or self._actor,
            message=message,
            level=level,
        )
        return self._state.events + (event,)

    def _ensure_idle(self) -> None:
        if self._state.is_executing:
            raise ExecutionInProgressError(self._state.cycle.cycle_id)

    # -------------------------------------------------------------------------
    # Cycle lifecycle
    # -------------------------------------------------------------------------

    def open_cycle(self) -> BatchState:
        """Activate an upcoming cycle and run the initial validation."""
        with self._lock, self._bind():
            cycle = self._state.cycle.activate()
            self._publish(
                cycle=cycle,
                step=batch_workflow.step_for_cycle_status(self._state.step, cycle.status),
                events=self._events_with(f"Cycle {cycle.label} opened"),
            )
            logger.info("cycle_opened", extra={"label": cycle.label})
            self.run_validation()
            return self._state

    def on_cycle_status_changed(self, status: CycleStatus) -> BatchState:
        """External signal: the owning cycle's status changed elsewhere."""
        with self._lock, self._bind():
            self._ensure_idle()
            previous = self._state.step
            step = batch_workflow.step_for_cycle_status(previous, status)
            logger.info(
                "cycle_status_signal",
                extra={
                    "status": status.value,
                    "from_step": previous.value,
                    "to_step": step.value,
                },
            )
            return self._publish(
                cycle=replace(self._state.cycle, status=status),
                step=step,
                events=self._events_with(f"Cycle status changed to {status.value}"),
            )

    def mark_complete(
        self,
        force: bool = False,
        justification: str | None = None,
        actor: str | None = None,
    ) -> BatchCycle | UnresolvedIssuesReport:
        with self._lock, self._bind():
            self._ensure_idle()
            state = self._state
            result = batch_workflow.mark_complete(
                state.cycle,
                state.considered_exceptions,
                state.latest_log,
                at=self._clock.now(),
                actor=actor or self._actor,
                force=force,
                justification=justification,
            )
            if isinstance(result, UnresolvedIssuesReport):
                self._notify(
                    NotificationLevel.WARNING,
                    "Cycle has unresolved issues",
                    f"{result.blocking_count} blocking exception(s), "
                    f"{result.failed_payout_count} failed payout(s), "
                    f"{result.failed_posting_count} failed posting(s)",
                    return_step=result.return_step.value,
                )
                return result

            if result.forced_completion:
                event = self._events_with(
                    f"Cycle force-completed: {result.completion_justification}",
                    EventLevel.WARNING,
                    actor=result.completed_by,
                )
            else:
                event = self._events_with(
                    "Cycle completed", EventLevel.SUCCESS, actor=result.completed_by,
                )
            self._publish(cycle=result, step=WorkflowStep.TRACK, events=event)
            self._notify(
                NotificationLevel.SUCCESS,
                "Cycle completed",
                result.label,
                forced=result.forced_completion,
            )
            return result

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def run_validation(self) -> tuple[PayrollException, ...]:
        """Detect findings and merge them into the exception list."""
        with self._lock, self._bind():
            state = self._state
            state.cycle.ensure_mutable("run validation")
            detected = validate(
                workers=self._registry.workers(),
                leave_records=self._registry.leave_records(),
                country_settings=self._settings_provider,
                period_start=state.cycle.period_start,
                period_end=state.cycle.period_end,
                as_of=self._clock.today(),
                upcoming_end_window_days=self._engine_settings.upcoming_end_window_days,
            )
            merged = merge_findings(state.exceptions, detected)
            new_state = self._publish(exceptions=merged, validated=True)
            logger.info(
                "validation_completed",
                extra={
                    "worker_count": len(self._registry),
                    "exception_count": len(merged),
                    "blocking_count": new_state.blocking_count,
                },
            )
            return merged

    def update_worker(self, worker: Worker, expected_version: int) -> int:
        """Apply an operator edit to a worker, then re-validate so fixed findings resolve."""
        with self._lock, self._bind():
            self._state.cycle.ensure_mutable("edit worker")
            version = self._registry.update_worker(worker, expected_version)
            self._publish(events=self._events_with(f"{worker.name}: details updated"))
            self.run_validation()
            return version

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve_exception(
        self,
        exception_id: str,
        action: ResolutionAction,
        justification: str | None = None,
        actor: str | None = None,
    ) -> PayrollException:
        with self._lock, self._bind():
            state = self._state
            state.cycle.ensure_mutable(f"{action.value} exception")
            updated, exceptions = rm.apply_action(
                state.exceptions,
                exception_id,
                action,
                justification=justification,
                actor=actor or self._actor,
                at=self._clock.now(),
            )
            snoozed = state.snoozed_worker_ids
            if action is ResolutionAction.SNOOZE:
                snoozed = snoozed | {updated.worker_id}

            message = f"{updated.worker_name}: {updated.kind.title} {updated.status.value}"
            level = EventLevel.INFO
            if action is ResolutionAction.OVERRIDE:
                message = f"{message} ({justification.strip()})"
                level = EventLevel.WARNING
            self._publish(
                exceptions=exceptions,
                snoozed_worker_ids=snoozed,
                events=self._events_with(message, level, actor=actor),
            )
            logger.info(
                "exception_resolved",
                extra={
                    "exception_id": exception_id,
                    "action": action.value,
                    "status": updated.status.value,
                    "worker_id": updated.worker_id,
                },
            )
            return updated

    def resolve_leave_attendance(
        self,
        exception_id: str,
        resolution: LeaveResolution,
    ) -> PayrollException:
        with self._lock, self._bind():
            state = self._state
            state.cycle.ensure_mutable("resolve leave")
            exc = rm.find(state.exceptions, exception_id)
            updated = rm.resolve_leave_attendance(exc, resolution)

            record = rm.apply_leave_resolution(
                self._registry.leave_record(exc.worker_id), exc.worker_id, resolution,
            )
            if record is not None and resolution is not LeaveResolution.SNOOZE:
                self._registry.set_leave_record(record)

            snoozed = state.snoozed_worker_ids
            if resolution is LeaveResolution.SNOOZE:
                snoozed = snoozed | {exc.worker_id}
            self._publish(
                exceptions=rm.replace_exception(state.exceptions, updated),
                snoozed_worker_ids=snoozed,
                events=self._events_with(
                    f"{exc.worker_name}: pending leave settled as {resolution.value}"
                ),
            )
            logger.info(
                "leave_resolved",
                extra={
                    "exception_id": exception_id,
                    "resolution": resolution.value,
                    "worker_id": exc.worker_id,
                },
            )
            return updated

    def snooze_worker(self, worker_id: str) -> BatchState:
        """Exclude a worker from this cycle's totals and execution."""
        with self._lock, self._bind():
            self._state.cycle.ensure_mutable("snooze worker")
            worker = self._registry.get(worker_id)
            state = self._publish(
                snoozed_worker_ids=self._state.snoozed_worker_ids | {worker_id},
                events=self._events_with(f"{worker.name}: snoozed to the next cycle"),
            )
            logger.info("worker_snoozed", extra={"worker_id": worker_id})
            self._notify(NotificationLevel.INFO, "Worker snoozed", worker.name)
            return state

    def undo_snooze(self, worker_id: str) -> BatchState:
        """Return a worker and its snoozed exceptions to the batch."""
        with self._lock, self._bind():
            self._state.cycle.ensure_mutable("undo snooze")
            worker = self._registry.get(worker_id)
            state = self._publish(
                snoozed_worker_ids=self._state.snoozed_worker_ids - {worker_id},
                exceptions=rm.unsnooze_worker(self._state.exceptions, worker_id),
                events=self._events_with(f"{worker.name}: returned to the batch"),
            )
            logger.info("worker_unsnoozed", extra={"worker_id": worker_id})
            self._notify(NotificationLevel.INFO, "Worker returned to batch", worker.name)
            return state

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    def advance_step(self, target: WorkflowStep) -> WorkflowStep | GuardViolation:
        with self._lock, self._bind():
            current = self._state.step
            result = batch_workflow.advance_step(current, target, self._context())
            if isinstance(result, WorkflowStep) and result is not current:
                self._publish(step=result)
                logger.info(
                    "workflow_step_changed",
                    extra={"from_step": current.value, "to_step": result.value},
                )
            return result

    def batch_totals(self) -> tuple[CurrencyTotal, ...]:
        with self._lock:
            excluded = self._state.snoozed_worker_ids
        return compute_batch_totals(
            self._registry.workers(),
            self._registry.leave_records(),
            self._settings_provider,
            excluded_worker_ids=excluded,
        )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_batch(
        self,
        cohort: Cohort,
        token: CancellationToken | None = None,
        listener: Callable[[WorkerStatusEvent], None] | None = None,
    ) -> ExecutionLogData | GuardViolation:
        """
        Run payments for ``cohort``; failed entries become exceptions.

        Returns the GuardViolation instead when execution is not allowed
        (wrong step, blocking exceptions, cycle not active).
        """
        with self._lock, self._bind():
            state = self._state
            self._ensure_idle()
            violation = batch_workflow.check_execute(state.step, self._context())
            if violation is not None:
                return violation
            workers = self._registry.workers()
            excluded = state.snoozed_worker_ids
            self._publish(is_executing=True, progress=None)

        counts = {"succeeded": 0, "failed": 0}

        def _on_event(event: WorkerStatusEvent) -> None:
            if event.status.is_terminal:
                with self._lock:
                    if event.status is WorkerRunStatus.COMPLETE:
                        counts["succeeded"] += 1
                    else:
                        counts["failed"] += 1
                    self._publish(
                        progress=ExecutionProgress(
                            run_id=event.run_id,
                            total=event.total_count,
                            succeeded=counts["succeeded"],
                            failed=counts["failed"],
                        )
                    )
            if listener is not None:
                listener(event)

        try:
            with self._bind():
                log = self._engine.execute(
                    cohort, workers, excluded, token=token, listener=_on_event,
                )
        except BaseException:
            self._publish(is_executing=False)
            raise

        with self._lock, self._bind():
            if self._state.cycle.is_locked:
                logger.warning(
                    "execution_finished_after_lock",
                    extra={"run_id": log.run_id, "failed": log.failed_count},
                )
                self._publish(is_executing=False)
                return log

            receipts = receipts_from_execution_log(
                self._state.receipts,
                log,
                workers,
                self._registry.leave_records(),
                self._settings_provider,
                paid_at=self._clock.now(),
            )
            level = EventLevel.ERROR if log.failed_count else EventLevel.SUCCESS
            if log.cancelled:
                level = EventLevel.WARNING
            self._publish(
                is_executing=False,
                latest_log=log,
                exceptions=findings_from_execution_log(self._state.exceptions, log),
                receipts=receipts,
                progress=ExecutionProgress(
                    run_id=log.run_id,
                    total=len(log.targeted_worker_ids),
                    succeeded=log.success_count,
                    failed=log.failed_count,
                ),
                events=self._events_with(
                    f"Run {log.run_id} ({cohort.value}): {log.success_count} paid, "
                    f"{log.failed_count} failed, {len(log.pending_worker_ids)} not started",
                    level,
                ),
            )

        if log.cancelled:
            self._notify(
                NotificationLevel.WARNING,
                "Execution cancelled",
                f"{len(log.pending_worker_ids)} worker(s) not processed",
                run_id=log.run_id,
            )
        elif log.failed_count:
            self._notify(
                NotificationLevel.ERROR,
                "Execution finished with failures",
                f"{log.failed_count} of {len(log.entries)} payment(s) failed",
                run_id=log.run_id,
            )
        else:
            self._notify(
                NotificationLevel.SUCCESS,
                "Execution complete",
                f"{log.success_count} payment(s) processed",
                run_id=log.run_id,
            )
        return log

    # -------------------------------------------------------------------------
    # Payouts
    # -------------------------------------------------------------------------

    def reschedule_payout(
        self,
        worker_id: str,
        payout_date: date,
        reason: RescheduleReason,
        notify_worker: bool = True,
        actor: str | None = None,
    ) -> PaymentReceipt:
        """Move a failed payout to ``payout_date``."""
        with self._lock, self._bind():
            state = self._state
            state.cycle.ensure_mutable("reschedule payout")
            self._ensure_idle()
            updated = reschedule(
                find_receipt(state.receipts, worker_id),
                payout_date,
                reason,
                today=self._clock.today(),
            )
            self._publish(
                receipts=replace_receipt(state.receipts, updated),
                events=self._events_with(
                    f"{updated.name}: payout rescheduled to {payout_date.isoformat()} "
                    f"due to {reason.text}",
                    EventLevel.WARNING,
                    actor=actor,
                ),
            )
            logger.info(
                "payout_rescheduled",
                extra={
                    "worker_id": worker_id,
                    "payout_date": payout_date,
                    "reason": reason.value,
                    "notify_worker": notify_worker,
                },
            )
            suffix = f" {updated.name} has been notified." if notify_worker else ""
            self._notify(
                NotificationLevel.SUCCESS,
                "Payout rescheduled",
                f"Payout rescheduled to {payout_date.isoformat()} due to {reason.text}.{suffix}",
                worker_id=worker_id,
            )
            return updated
