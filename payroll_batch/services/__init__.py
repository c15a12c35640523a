"""Execution services."""

from payroll_batch.services.executor import CancellationToken, ExecutionEngine

__all__ = ["CancellationToken", "ExecutionEngine"]
