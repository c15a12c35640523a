"""
Batch Workflow -- the four-step review / resolve / submit / track machine.

Responsibility:
    Declares BATCH_WORKFLOW with the canonical Guard/Transition value
    objects and evaluates its guards against a WorkflowContext.  Also owns
    the completion check (UnresolvedIssuesReport) and ``mark_complete``.

Architecture position:
    Services -- pure functions over immutable inputs.  No I/O, no clock.

Invariants enforced:
    - Back-navigation is always allowed; review -> resolve -> submit is
      always navigable.
    - Entering TRACK requires ``execution_terminal``: a latest log that
      is not partial and has an entry for every targeted worker.
    - ``execute`` is an action on SUBMIT guarded by ``can_submit``.
    - A completed cycle is locked: no step change or action is allowed.
    - A refused move is a returned GuardViolation, never an exception.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from payroll_batch.domain.types import ExecutionLogData, ExecutionLogEntry
from payroll_kernel.domain.cycle import BatchCycle, CycleStatus, WorkflowStep
from payroll_kernel.domain.findings import PayrollException
from payroll_kernel.domain.values import EmploymentType
from payroll_kernel.domain.workflow import Guard, GuardViolation, Transition, Workflow
from payroll_kernel.exceptions import MissingJustificationError
from payroll_kernel.logging_config import get_logger
from payroll_services.resolution_manager import can_submit

logger = get_logger("services.batch_workflow")

EXECUTE_ACTION = "execute"


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

EXECUTION_TERMINAL = Guard(
    name="execution_terminal",
    description="Latest execution run reached a terminal state for every targeted worker",
)

CAN_SUBMIT = Guard(
    name="can_submit",
    description="No blocking exception is still active",
)

CYCLE_LOCKED = "cycle_locked"
CYCLE_NOT_ACTIVE = "cycle_not_active"
NO_TRANSITION = "no_transition"


# -----------------------------------------------------------------------------
# Batch Workflow
# -----------------------------------------------------------------------------

_ORDER = (
    WorkflowStep.REVIEW,
    WorkflowStep.RESOLVE,
    WorkflowStep.SUBMIT,
    WorkflowStep.TRACK,
)


def _build_transitions() -> tuple[Transition, ...]:
    transitions = []
    for i, source in enumerate(_ORDER):
        for j, target in enumerate(_ORDER):
            if i == j:
                continue
            if j < i:
                transitions.append(Transition(source.value, target.value, action="back"))
            elif target is WorkflowStep.TRACK:
                transitions.append(
                    Transition(source.value, target.value, action="track",
                               guard=EXECUTION_TERMINAL)
                )
            else:
                transitions.append(Transition(source.value, target.value, action="next"))
    transitions.append(
        Transition(WorkflowStep.SUBMIT.value, WorkflowStep.SUBMIT.value,
                   action=EXECUTE_ACTION, guard=CAN_SUBMIT)
    )
    return tuple(transitions)


BATCH_WORKFLOW = Workflow(
    name="payroll_batch",
    description="Operator workflow for one payroll batch cycle",
    initial_state=WorkflowStep.REVIEW.value,
    states=tuple(s.value for s in _ORDER),
    transitions=_build_transitions(),
)

logger.info(
    "batch_workflow_defined",
    extra={
        "workflow": BATCH_WORKFLOW.name,
        "transitions": len(BATCH_WORKFLOW.transitions),
        "guards": [EXECUTION_TERMINAL.name, CAN_SUBMIT.name],
    },
)


@dataclass(frozen=True)
class WorkflowContext:
    exceptions: tuple[PayrollException, ...]
    latest_log: ExecutionLogData | None
    cycle_status: CycleStatus


def _guard_failure(guard: Guard, ctx: WorkflowContext) -> str | None:
    """Reason the guard fails, or None if it holds."""
    if guard is EXECUTION_TERMINAL:
        if ctx.latest_log is None:
            return "no execution run yet"
        if ctx.latest_log.is_partial:
            return "latest execution run was cut short"
        if not ctx.latest_log.all_terminal:
            return "latest execution run has non-terminal workers"
        return None
    if guard is CAN_SUBMIT:
        if not can_submit(ctx.exceptions):
            blocking = sum(1 for e in ctx.exceptions if e.blocks_submission)
            return f"{blocking} blocking exception(s) still active"
        return None
    raise ValueError(f"Unknown guard: {guard.name}")


def allowed_targets(current: WorkflowStep, ctx: WorkflowContext) -> tuple[str, ...]:
    if ctx.cycle_status is CycleStatus.COMPLETED:
        return ()
    return tuple(
        t.to_state
        for t in BATCH_WORKFLOW.transitions_from(current.value)
        if t.to_state != current.value
        and (t.guard is None or _guard_failure(t.guard, ctx) is None)
    )


def allowed_actions(current: WorkflowStep, ctx: WorkflowContext) -> tuple[str, ...]:
    if ctx.cycle_status is not CycleStatus.ACTIVE:
        return ()
    return tuple(
        t.action
        for t in BATCH_WORKFLOW.transitions_from(current.value)
        if t.to_state == current.value
        and (t.guard is None or _guard_failure(t.guard, ctx) is None)
    )


def _violation(
    action: str,
    current: WorkflowStep,
    target: WorkflowStep | None,
    guard: str,
    reason: str,
    ctx: WorkflowContext,
) -> GuardViolation:
    violation = GuardViolation(
        action=action,
        from_step=current.value,
        to_step=target.value if target is not None else None,
        guard=guard,
        reason=reason,
        allowed_targets=allowed_targets(current, ctx),
        allowed_actions=allowed_actions(current, ctx),
    )
    logger.info(
        "workflow_guard_violation",
        extra={
            "action": action,
            "from_step": current.value,
            "to_step": violation.to_step,
            "guard": guard,
            "reason": reason,
        },
    )
    return violation


def advance_step(
    current: WorkflowStep,
    target: WorkflowStep,
    ctx: WorkflowContext,
) -> WorkflowStep | GuardViolation:
    if ctx.cycle_status is CycleStatus.COMPLETED:
        return _violation("navigate", current, target, CYCLE_LOCKED,
                          "cycle is completed and read-only", ctx)
    if target is current:
        return current

    transition = BATCH_WORKFLOW.find(current.value, target.value)
    if transition is None:
        return _violation("navigate", current, target, NO_TRANSITION,
                          f"no transition from {current.value} to {target.value}", ctx)
    if transition.guard is not None:
        reason = _guard_failure(transition.guard, ctx)
        if reason is not None:
            return _violation(transition.action, current, target,
                              transition.guard.name, reason, ctx)
    return target


def check_execute(current: WorkflowStep, ctx: WorkflowContext) -> GuardViolation | None:
    """None if ``execute`` may run now, else the violation."""
    if ctx.cycle_status is CycleStatus.COMPLETED:
        return _violation(EXECUTE_ACTION, current, None, CYCLE_LOCKED,
                          "cycle is completed and read-only", ctx)
    if ctx.cycle_status is not CycleStatus.ACTIVE:
        return _violation(EXECUTE_ACTION, current, None, CYCLE_NOT_ACTIVE,
                          f"cycle is {ctx.cycle_status.value}", ctx)
    transition = BATCH_WORKFLOW.find_action(current.value, EXECUTE_ACTION)
    if transition is None:
        return _violation(EXECUTE_ACTION, current, None, NO_TRANSITION,
                          f"execute is only available on the {WorkflowStep.SUBMIT.value} step",
                          ctx)
    reason = _guard_failure(transition.guard, ctx)
    if reason is not None:
        return _violation(EXECUTE_ACTION, current, None, transition.guard.name, reason, ctx)
    return None


def step_for_cycle_status(current: WorkflowStep, status: CycleStatus) -> WorkflowStep:
    """React to the owning cycle changing status."""
    if status is CycleStatus.COMPLETED:
        return WorkflowStep.TRACK
    if status is CycleStatus.ACTIVE and current is WorkflowStep.TRACK:
        return WorkflowStep.REVIEW
    return current


# -----------------------------------------------------------------------------
# Completion
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class UnresolvedIssuesReport:
    blocking_exceptions: tuple[PayrollException, ...]
    failed_payouts: tuple[ExecutionLogEntry, ...]  # contractors
    failed_postings: tuple[ExecutionLogEntry, ...]  # employees
    return_step: WorkflowStep

    @property
    def has_issues(self) -> bool:
        return bool(self.blocking_exceptions or self.failed_payouts or self.failed_postings)

    @property
    def blocking_count(self) -> int:
        return len(self.blocking_exceptions)

    @property
    def failed_payout_count(self) -> int:
        return len(self.failed_payouts)

    @property
    def failed_posting_count(self) -> int:
        return len(self.failed_postings)


def evaluate_completion(
    exceptions: Iterable[PayrollException],
    log: ExecutionLogData | None,
) -> UnresolvedIssuesReport:
    blocking = tuple(e for e in exceptions if e.blocks_submission)
    failed = log.failed_entries if log is not None else ()
    return UnresolvedIssuesReport(
        blocking_exceptions=blocking,
        failed_payouts=tuple(
            e for e in failed if e.employment_type is EmploymentType.CONTRACTOR
        ),
        failed_postings=tuple(
            e for e in failed if e.employment_type is EmploymentType.EMPLOYEE
        ),
        return_step=WorkflowStep.RESOLVE if blocking else WorkflowStep.SUBMIT,
    )


def mark_complete(
    cycle: BatchCycle,
    exceptions: Iterable[PayrollException],
    log: ExecutionLogData | None,
    *,
    at: datetime,
    actor: str | None,
    force: bool = False,
    justification: str | None = None,
) -> BatchCycle | UnresolvedIssuesReport:
    """
    Complete the cycle, or report why not.

    Without ``force`` any unresolved issue returns the report.  With
    ``force`` a non-blank justification is required and the cycle is
    completed regardless.

    Raises:
        InvalidCycleTransitionError: cycle is upcoming or already completed.
        MissingJustificationError: ``force`` without a justification.
    """
    if cycle.status is not CycleStatus.ACTIVE:
        # Let the cycle raise its own transition error.
        cycle.complete(at=at, actor=actor)

    report = evaluate_completion(exceptions, log)
    if report.has_issues and not force:
        logger.info(
            "cycle_completion_rejected",
            extra={
                "cycle_id": cycle.cycle_id,
                "blocking": report.blocking_count,
                "failed_payouts": report.failed_payout_count,
                "failed_postings": report.failed_posting_count,
                "return_step": report.return_step.value,
            },
        )
        return report

    if force and (justification is None or not justification.strip()):
        raise MissingJustificationError("force-complete the cycle", cycle.cycle_id)

    completed = cycle.complete(
        at=at,
        actor=actor,
        forced=force,
        justification=justification.strip() if force else None,
    )
    logger.info(
        "cycle_completed",
        extra={
            "cycle_id": cycle.cycle_id,
            "forced": force,
            "unresolved_at_completion": report.has_issues,
        },
    )
    return completed
