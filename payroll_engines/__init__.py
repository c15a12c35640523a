"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    payroll engines.  This is the import surface for payroll_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import payroll_kernel.domain, payroll_config and the run DTOs in
    payroll_batch.domain.  MUST NOT import payroll_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in by the caller.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.
"""

from payroll_engines.exception_rules import (
    RULES,
    exception_id,
    findings_from_execution_log,
    merge_findings,
    validate,
)
from payroll_engines.proration import (
    CurrencyTotal,
    NetPayBreakdown,
    ProrationResult,
    compute_batch_totals,
    compute_net_pay,
    group_by_currency,
    prorate,
)
from payroll_engines.receipts import (
    find_receipt,
    receipts_from_execution_log,
    replace_receipt,
    reschedule,
)

__all__ = [
    "RULES",
    "CurrencyTotal",
    "NetPayBreakdown",
    "ProrationResult",
    "compute_batch_totals",
    "compute_net_pay",
    "exception_id",
    "find_receipt",
    "findings_from_execution_log",
    "group_by_currency",
    "merge_findings",
    "prorate",
    "receipts_from_execution_log",
    "replace_receipt",
    "reschedule",
    "validate",
]
