"""
Payment receipts -- what each worker was paid by the latest run.

Responsibility:
    Turns an execution log into one PaymentReceipt per processed worker
    (net pay for the period, provider reference, paid/failed status) and
    moves a failed payout to a new date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Timestamps and "today"
    are passed in by the caller.

Invariants enforced:
    - Receipts of workers outside the new run are kept; a worker in the
      run gets a fresh receipt that replaces the old one.
    - Order is the previous receipts first, then new workers in run order.
    - A PAID receipt is final.  Rescheduling needs a date on or after today.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date, datetime

from payroll_batch.domain.types import (
    ExecutionLogData,
    PaymentReceipt,
    ReceiptStatus,
    RescheduleReason,
)
from payroll_config.provider import CountrySettingsProvider
from payroll_engines.proration import compute_net_pay
from payroll_kernel.domain.values import LeaveRecord, Worker
from payroll_kernel.exceptions import (
    InvalidPayoutDateError,
    PayoutNotReschedulableError,
    ReceiptNotFoundError,
)


def receipts_from_execution_log(
    previous: Iterable[PaymentReceipt],
    log: ExecutionLogData,
    workers: Iterable[Worker],
    leave_records: Mapping[str, LeaveRecord],
    settings_provider: CountrySettingsProvider,
    paid_at: datetime,
) -> tuple[PaymentReceipt, ...]:
    by_id = {w.worker_id: w for w in workers}
    fresh: dict[str, PaymentReceipt] = {}
    for entry in log.entries:
        worker = by_id.get(entry.worker_id)
        if worker is None:
            continue
        pay = compute_net_pay(worker, leave_records.get(worker.worker_id), settings_provider)
        fresh[entry.worker_id] = PaymentReceipt(
            worker_id=entry.worker_id,
            name=entry.name,
            run_id=log.run_id,
            currency=pay.currency,
            amount=pay.net_pay,
            status=ReceiptStatus.PAID if entry.succeeded else ReceiptStatus.FAILED,
            reference=entry.reference,
            paid_at=paid_at if entry.succeeded else None,
            error_message=entry.error_message,
        )

    receipts = []
    for receipt in previous:
        receipts.append(fresh.pop(receipt.worker_id, receipt))
    receipts.extend(fresh.values())
    return tuple(receipts)


def find_receipt(receipts: Iterable[PaymentReceipt], worker_id: str) -> PaymentReceipt:
    for receipt in receipts:
        if receipt.worker_id == worker_id:
            return receipt
    raise ReceiptNotFoundError(worker_id)


def reschedule(
    receipt: PaymentReceipt,
    payout_date: date,
    reason: RescheduleReason,
    today: date,
) -> PaymentReceipt:
    if not receipt.status.can_reschedule:
        raise PayoutNotReschedulableError(receipt.worker_id, receipt.status.value)
    if payout_date < today:
        raise InvalidPayoutDateError(receipt.worker_id, payout_date, today)
    return replace(
        receipt,
        status=ReceiptStatus.RESCHEDULED,
        eta=payout_date,
        reschedule_reason=reason,
    )


def replace_receipt(
    receipts: Iterable[PaymentReceipt], updated: PaymentReceipt,
) -> tuple[PaymentReceipt, ...]:
    return tuple(
        updated if r.worker_id == updated.worker_id else r for r in receipts
    )
