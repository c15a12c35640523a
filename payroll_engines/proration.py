"""
Proration Calculator -- leave proration, net pay and batch totals.

Responsibility:
    Computes a worker's pay for the period: salary prorated for leave
    days, or hourly rate times hours, plus the sum of adjustment line
    items.  Aggregates net pay per currency for the batch summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Depends on payroll_kernel.domain.values and the CountrySettingsProvider
    port only.

Invariants enforced:
    - prorated_pay is computed as ``base * pay_days / days_per_month``
      (multiply first) so zero leave reproduces the base salary exactly.
    - Amounts keep full Decimal precision; nothing here rounds.
    - Hourly workers are never prorated for leave.
    - Snoozed workers are excluded from grouping and totals.

Failure modes:
    - ValueError for non-positive days_per_month or negative leave days.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from payroll_config.provider import CountrySettingsProvider
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.values import LeaveRecord, Worker

DEFAULT_DAYS_PER_MONTH = Decimal("21.67")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ProrationResult:
    daily_rate: Decimal
    pay_days: Decimal
    prorated_pay: Decimal
    difference: Decimal


@dataclass(frozen=True)
class NetPayBreakdown:
    """How a worker's net pay for the period was built."""

    worker_id: str
    currency: str
    base_pay: Decimal
    adjustments: Decimal
    net_pay: Decimal
    proration: ProrationResult | None = None


@dataclass(frozen=True)
class CurrencyTotal:
    currency: str
    worker_count: int
    employee_count: int
    contractor_count: int
    total_net_pay: Decimal


def prorate(
    base_salary: Decimal,
    leave_days: Decimal,
    days_per_month: Decimal,
) -> ProrationResult:
    """Prorate ``base_salary`` for ``leave_days`` out of ``days_per_month``."""
    if days_per_month <= 0:
        raise ValueError(f"days_per_month must be positive, got {days_per_month}")
    if leave_days < 0:
        raise ValueError(f"leave_days must be non-negative, got {leave_days}")

    pay_days = days_per_month - leave_days
    prorated_pay = base_salary * pay_days / days_per_month
    return ProrationResult(
        daily_rate=base_salary / days_per_month,
        pay_days=pay_days,
        prorated_pay=prorated_pay,
        difference=base_salary - prorated_pay,
    )


def resolve_days_per_month(
    worker: Worker,
    leave_record: LeaveRecord | None,
    settings_provider: CountrySettingsProvider,
) -> Decimal:
    """Country setting first, then the leave record's basis, then 21.67."""
    dpm = settings_provider.days_per_month(worker.country_code)
    if dpm:
        return dpm
    if leave_record is not None and leave_record.working_days:
        return leave_record.working_days
    return DEFAULT_DAYS_PER_MONTH


def adjustments_total(worker: Worker) -> Decimal:
    return sum((item.amount for item in worker.line_items), _ZERO)


def compute_net_pay(
    worker: Worker,
    leave_record: LeaveRecord | None,
    settings_provider: CountrySettingsProvider,
) -> NetPayBreakdown:
    proration = None
    if worker.is_hourly:
        base_pay = (worker.hourly_rate or _ZERO) * (worker.hours_worked or _ZERO)
    else:
        base_pay = worker.base_salary or _ZERO
        if leave_record is not None and leave_record.leave_days > 0:
            dpm = resolve_days_per_month(worker, leave_record, settings_provider)
            proration = prorate(base_pay, leave_record.leave_days, dpm)
            base_pay = proration.prorated_pay

    adjustments = adjustments_total(worker)
    return NetPayBreakdown(
        worker_id=worker.worker_id,
        currency=worker.currency,
        base_pay=base_pay,
        adjustments=adjustments,
        net_pay=base_pay + adjustments,
        proration=proration,
    )


def group_by_currency(
    workers: Iterable[Worker],
    excluded_worker_ids: Collection[str] = frozenset(),
) -> dict[str, tuple[Worker, ...]]:
    """Group non-excluded workers by currency, in first-seen order."""
    groups: dict[str, list[Worker]] = {}
    for worker in workers:
        if worker.worker_id in excluded_worker_ids:
            continue
        groups.setdefault(worker.currency, []).append(worker)
    return {currency: tuple(members) for currency, members in groups.items()}


@traced_engine("batch_totals", "1.0", fingerprint_fields=("excluded_worker_ids",))
def compute_batch_totals(
    workers: Iterable[Worker],
    leave_records: Mapping[str, LeaveRecord],
    settings_provider: CountrySettingsProvider,
    excluded_worker_ids: Collection[str] = frozenset(),
) -> tuple[CurrencyTotal, ...]:
    totals = []
    for currency, members in group_by_currency(workers, excluded_worker_ids).items():
        total = _ZERO
        for worker in members:
            total += compute_net_pay(
                worker, leave_records.get(worker.worker_id), settings_provider
            ).net_pay
        employees = sum(1 for w in members if w.is_employee)
        totals.append(
            CurrencyTotal(
                currency=currency,
                worker_count=len(members),
                employee_count=employees,
                contractor_count=len(members) - employees,
                total_net_pay=total,
            )
        )
    return tuple(totals)
