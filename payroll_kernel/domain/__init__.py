"""Pure domain value objects for the payroll kernel."""

from payroll_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from payroll_kernel.domain.cycle import BatchCycle, CycleStatus, WorkflowStep
from payroll_kernel.domain.findings import (
    ExceptionKind,
    ExceptionStatus,
    FixStrategy,
    LeaveResolution,
    OverrideInfo,
    PayrollException,
    ResolutionAction,
    Severity,
)
from payroll_kernel.domain.values import (
    ApplyTo,
    Cohort,
    CompensationType,
    EmploymentType,
    LeaveRecord,
    LineItem,
    Worker,
    WorkerStatus,
)
from payroll_kernel.domain.workflow import Guard, GuardViolation, Transition, Workflow

__all__ = [
    "ApplyTo",
    "BatchCycle",
    "Clock",
    "Cohort",
    "CompensationType",
    "CycleStatus",
    "DeterministicClock",
    "EmploymentType",
    "ExceptionKind",
    "ExceptionStatus",
    "FixStrategy",
    "Guard",
    "GuardViolation",
    "LeaveRecord",
    "LeaveResolution",
    "LineItem",
    "OverrideInfo",
    "PayrollException",
    "ResolutionAction",
    "SequentialClock",
    "Severity",
    "SystemClock",
    "Transition",
    "Workflow",
    "Worker",
    "WorkerStatus",
    "WorkflowStep",
]
