"""
payroll_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines: the worker registry,
    exception resolution, the four-step batch workflow, BatchService and
    the ORM repository.  This is the only layer that holds sessions,
    reads the clock or talks to a payment provider.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layering.py):
        payroll_services/ -> payroll_engines/  (allowed)
        payroll_services/ -> payroll_batch/    (allowed)
        payroll_services/ -> payroll_kernel/   (allowed)
        payroll_engines/  -> payroll_services/ (FORBIDDEN)
        payroll_kernel/   -> payroll_services/ (FORBIDDEN)
"""

from payroll_kernel.logging_config import get_logger

logger = get_logger("services")

from payroll_services.batch_service import BatchService, BatchState
from payroll_services.batch_workflow import (
    BATCH_WORKFLOW,
    UnresolvedIssuesReport,
    WorkflowContext,
    advance_step,
    evaluate_completion,
    step_for_cycle_status,
)
from payroll_services.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationLevel,
    NotificationSink,
    RecordingNotificationSink,
)
from payroll_services.repository import PayrollRepository, StoredCycle
from payroll_services.worker_registry import WorkerRegistry

__all__ = [
    "BATCH_WORKFLOW",
    "BatchService",
    "BatchState",
    "LoggingNotificationSink",
    "Notification",
    "NotificationLevel",
    "NotificationSink",
    "PayrollRepository",
    "RecordingNotificationSink",
    "StoredCycle",
    "UnresolvedIssuesReport",
    "WorkerRegistry",
    "WorkflowContext",
    "advance_step",
    "evaluate_completion",
    "step_for_cycle_status",
]
