"""ORM models for the payroll kernel."""

from payroll_kernel.models.cycle import BatchCycleModel, BatchEventModel
from payroll_kernel.models.finding import PayrollExceptionModel
from payroll_kernel.models.worker import LeaveRecordModel, WorkerModel

__all__ = [
    "BatchCycleModel",
    "BatchEventModel",
    "LeaveRecordModel",
    "PayrollExceptionModel",
    "WorkerModel",
]
