"""ORM models for execution log and receipt persistence."""

from payroll_batch.models.execution import (
    ExecutionLogEntryModel,
    ExecutionLogModel,
    PaymentReceiptModel,
)

__all__ = ["ExecutionLogEntryModel", "ExecutionLogModel", "PaymentReceiptModel"]
