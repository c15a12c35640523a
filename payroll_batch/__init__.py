"""
payroll_batch -- payment execution for a payroll batch.

Sub-packages:
    domain    -- frozen run/log DTOs (ZERO I/O)
    models    -- SQLAlchemy models for the execution log
    services  -- ExecutionEngine (bounded pool, cancellation, partial failure)

``providers`` holds the PaymentProvider port, the simulated provider and
RetryPolicy.
"""
