"""Pure run and log types for payment execution."""

from payroll_batch.domain.types import (
    ExecutionLogData,
    ExecutionLogEntry,
    ExecutionOutcome,
    ExecutionProgress,
    ProviderResult,
    WorkerRunStatus,
    WorkerStatusEvent,
)

__all__ = [
    "ExecutionLogData",
    "ExecutionLogEntry",
    "ExecutionOutcome",
    "ExecutionProgress",
    "ProviderResult",
    "WorkerRunStatus",
    "WorkerStatusEvent",
]
