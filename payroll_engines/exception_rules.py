"""
Exception Rule Engine -- pure validation of a payroll batch.

Responsibility:
    Runs every rule against every worker and returns the detected
    ``PayrollException`` findings.  Merges a fresh detection into the
    existing exception list without resetting operator decisions, and
    turns failed execution log entries into blocking findings.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``as_of`` and the pay
    period are passed in; nothing here reads a clock.

Invariants enforced:
    - Rules are independent: each sees the worker on its own and none
      suppresses another.
    - Exception ids are deterministic (``exc-<worker>-<kind>[-<subject>]``),
      so validating unchanged input twice yields identical findings.
    - Exactly one end-date window finding per ACTIVE worker at most.
    - ``merge_findings`` never changes a non-ACTIVE status.

Failure modes:
    - None raised for data problems: every problem is a finding.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal

from payroll_batch.domain.types import ExecutionLogData, ExecutionOutcome
from payroll_config.provider import CountrySettingsProvider
from payroll_config.schema import CountrySettings
from payroll_engines.tracer import traced_engine
from payroll_kernel.domain.findings import (
    ExceptionKind,
    ExceptionStatus,
    PayrollException,
)
from payroll_kernel.domain.values import EmploymentType, LeaveRecord, Worker, WorkerStatus
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.exception_rules")

DEFAULT_ESTIMATED_TAX_RATE = Decimal("0.15")
DEFAULT_UPCOMING_END_WINDOW_DAYS = 30

_ZERO = Decimal("0")


@dataclass(frozen=True)
class RuleContext:
    worker: Worker
    leave: LeaveRecord | None
    settings: CountrySettings | None
    period_start: date
    period_end: date
    as_of: date
    upcoming_end_window_days: int


Rule = Callable[[RuleContext], Iterable[PayrollException]]


def exception_id(worker_id: str, kind: ExceptionKind, subject: str | None = None) -> str:
    base = f"exc-{worker_id}-{kind.value}"
    return f"{base}-{subject}" if subject else base


def _finding(
    worker: Worker,
    kind: ExceptionKind,
    description: str,
    subject: str | None = None,
) -> PayrollException:
    return PayrollException(
        exception_id=exception_id(worker.worker_id, kind, subject),
        worker_id=worker.worker_id,
        worker_name=worker.name,
        worker_country=worker.country,
        kind=kind,
        description=description,
        subject=subject,
    )


def _fmt_date(d: date) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def _fmt_money(currency: str, amount: Decimal) -> str:
    return f"{currency} {amount:,.2f}"


# =============================================================================
# Compensation rules
# =============================================================================


def check_minimum_wage(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or w.base_salary is None:
        return
    if s.minimum_monthly_wage is None and s.minimum_daily_wage is None:
        return
    daily_rate = w.base_salary / s.default_divisor
    below_monthly = (
        s.minimum_monthly_wage is not None and w.base_salary < s.minimum_monthly_wage
    )
    below_daily = s.minimum_daily_wage is not None and daily_rate < s.minimum_daily_wage
    if below_monthly or below_daily:
        yield _finding(
            w,
            ExceptionKind.BELOW_MINIMUM_WAGE,
            "Salary below minimum wage for this region.",
        )


def check_allowance_cap(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or s.allowance_cap is None or not w.is_employee:
        return
    non_taxable = sum((i.amount for i in w.line_items if not i.taxable), _ZERO)
    if non_taxable > s.allowance_cap:
        yield _finding(
            w,
            ExceptionKind.ALLOWANCE_EXCEEDS_CAP,
            "Non-taxable allowance exceeds government cap. Excess will be taxable.",
        )


def check_contribution_tier(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or s.contribution_tier_field is None or not w.is_employee:
        return
    value = w.contribution(s.contribution_tier_field)
    if not value or w.base_salary is None:
        return
    bracket = s.bracket_for(w.base_salary)
    if bracket is not None and value != bracket.contribution:
        yield _finding(
            w,
            ExceptionKind.INCORRECT_CONTRIBUTION_TIER,
            "Contribution tier does not match correct salary bracket.",
        )


def check_mandatory_pay_components(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None:
        return
    for component in s.mandatory_pay_components:
        if w.employment_type.value not in component.employment_types:
            continue
        pattern = component.pattern.lower()
        if not any(pattern in item.name.lower() for item in w.line_items):
            yield _finding(
                w,
                ExceptionKind.MISSING_13TH_MONTH,
                f"{component.name} is mandatory for this worker type.",
            )


def check_employer_contributions(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or not w.is_employee:
        return
    missing = [
        employer
        for employee, employer in s.employer_contribution_pairs
        if w.contribution(employee) and not w.contribution(employer)
    ]
    if missing:
        yield _finding(
            w,
            ExceptionKind.MISSING_EMPLOYER_SSS,
            f"Employer contribution is required: {', '.join(missing)}",
        )


def check_withholding_tax(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.is_employee and w.withholding_tax is None:
        yield _finding(
            w,
            ExceptionKind.MISSING_WITHHOLDING_TAX,
            "Withholding Tax rate or fixed amount is required.",
        )


def check_missing_hours(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.is_contractor and w.is_hourly and not w.hours_worked:
        yield _finding(
            w,
            ExceptionKind.MISSING_HOURS,
            "Enter the total hours worked this period to calculate pay.",
        )


def check_deductions_exceed_gross(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if not w.is_employee or not w.base_salary:
        return
    rate = DEFAULT_ESTIMATED_TAX_RATE
    fields: tuple[str, ...] = ()
    if s is not None:
        if s.estimated_tax_rate is not None:
            rate = s.estimated_tax_rate
        fields = s.deduction_fields
    total = w.base_salary * rate + sum(
        (w.contribution(f) or _ZERO for f in fields), _ZERO
    )
    if total > w.base_salary:
        yield _finding(
            w,
            ExceptionKind.DEDUCTION_EXCEEDS_GROSS,
            f"Total deductions ({_fmt_money(w.currency, total)}) exceed gross pay "
            f"({_fmt_money(w.currency, w.base_salary)}).",
        )


def check_adjustment_caps(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    for item in w.line_items:
        if item.exceeds_cap:
            yield _finding(
                w,
                ExceptionKind.ADJUSTMENT_EXCEEDS_CAP,
                f'Adjustment "{item.name}" amount ({_fmt_money(w.currency, item.amount)}) '
                f"exceeds configured cap ({_fmt_money(w.currency, item.cap)}).",
                subject=item.item_id,
            )


# =============================================================================
# Compliance rules
# =============================================================================


def check_government_ids(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or not w.is_employee:
        return
    missing = [name for name in s.mandatory_government_ids if not w.government_id(name)]
    if missing:
        yield _finding(
            w,
            ExceptionKind.MISSING_GOVT_ID,
            f"Missing mandatory government ID: {', '.join(missing)}",
        )


def check_mandatory_contribution_fields(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or not w.is_employee:
        return
    missing = [f for f in s.mandatory_contribution_fields if not w.contribution(f)]
    if missing:
        yield _finding(
            w,
            ExceptionKind.MISSING_TAX_FIELDS,
            f"Missing mandatory contribution fields: {', '.join(missing)}",
        )


def check_contribution_table_year(ctx: RuleContext) -> Iterable[PayrollException]:
    s, w = ctx.settings, ctx.worker
    if s is None or s.contribution_table_field is None or not w.is_employee:
        return
    if not w.contribution(s.contribution_table_field):
        yield _finding(
            w,
            ExceptionKind.CONTRIBUTION_TABLE_YEAR_MISSING,
            f"Contribution table for {ctx.as_of.year} may not be configured. "
            "Please verify country settings.",
        )


def check_bank_details(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if not w.bank_account_on_file:
        yield _finding(
            w,
            ExceptionKind.MISSING_BANK,
            "Bank account details are missing. Payment cannot be sent.",
        )


def check_currency_preference(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.preferred_currency and w.preferred_currency != w.currency:
        yield _finding(
            w,
            ExceptionKind.FX_MISMATCH,
            f"Worker prefers payment in {w.preferred_currency} but is paid in "
            f"{w.currency}. FX conversion will apply.",
        )


def check_pending_leave(ctx: RuleContext) -> Iterable[PayrollException]:
    leave = ctx.leave
    if leave is None or not leave.needs_attention:
        return
    if leave.has_pending_leave:
        detail = "Leave request is pending approval"
    else:
        detail = "Attendance is missing for part of the period"
    yield _finding(
        ctx.worker,
        ExceptionKind.PENDING_LEAVE,
        f"{detail}. Confirm unpaid leave or worked days before submitting.",
    )


# =============================================================================
# Lifecycle rules
# =============================================================================


def check_status(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.status is not WorkerStatus.ACTIVE:
        yield _finding(
            w,
            ExceptionKind.STATUS_MISMATCH,
            f"This worker is not marked as Active (current status: {w.status.value}). "
            "Review if they should be included in this pay run.",
        )


def check_end_date_window(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.status is not WorkerStatus.ACTIVE or w.end_date is None:
        return
    end = w.end_date
    window_end = ctx.period_end + timedelta(days=ctx.upcoming_end_window_days)
    if ctx.period_start <= end <= ctx.period_end:
        yield _finding(
            w,
            ExceptionKind.EMPLOYMENT_ENDING_THIS_PERIOD,
            "Employment ending this period. Verify prorated pay. "
            f"Last working day: {_fmt_date(end)}.",
        )
    elif end < ctx.period_start:
        yield _finding(
            w,
            ExceptionKind.END_DATE_BEFORE_PERIOD,
            f"This worker's end date ({_fmt_date(end)}) is before this pay period. "
            "Confirm if they should be removed from this run.",
        )
    elif end <= window_end:
        yield _finding(
            w,
            ExceptionKind.UPCOMING_CONTRACT_END,
            f"This worker's contract ends on {_fmt_date(end)}. Check if any final "
            "pay or adjustments are needed next cycle.",
        )


def check_start_date(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.start_date is None:
        yield _finding(
            w,
            ExceptionKind.MISSING_DATES,
            "Start date is required for all workers.",
        )


def check_end_date_passed(ctx: RuleContext) -> Iterable[PayrollException]:
    w = ctx.worker
    if w.status is WorkerStatus.ACTIVE and w.end_date is not None and w.end_date < ctx.as_of:
        yield _finding(
            w,
            ExceptionKind.END_DATE_PASSED_ACTIVE,
            f"End date ({_fmt_date(w.end_date)}) has passed but worker is still "
            "marked as Active.",
        )


RULES: tuple[Rule, ...] = (
    check_minimum_wage,
    check_allowance_cap,
    check_government_ids,
    check_contribution_tier,
    check_mandatory_pay_components,
    check_employer_contributions,
    check_withholding_tax,
    check_status,
    check_end_date_window,
    check_missing_hours,
    check_start_date,
    check_end_date_passed,
    check_deductions_exceed_gross,
    check_mandatory_contribution_fields,
    check_adjustment_caps,
    check_contribution_table_year,
    check_bank_details,
    check_currency_preference,
    check_pending_leave,
)


@traced_engine(
    "exception_rules", "1.0",
    fingerprint_fields=("period_start", "period_end", "as_of"),
)
def validate(
    workers: Iterable[Worker],
    leave_records: Mapping[str, LeaveRecord],
    country_settings: CountrySettingsProvider,
    period_start: date,
    period_end: date,
    as_of: date,
    upcoming_end_window_days: int = DEFAULT_UPCOMING_END_WINDOW_DAYS,
    rules: tuple[Rule, ...] = RULES,
) -> tuple[PayrollException, ...]:
    """Run every rule against every worker, in worker then rule order."""
    findings: list[PayrollException] = []
    for worker in workers:
        ctx = RuleContext(
            worker=worker,
            leave=leave_records.get(worker.worker_id),
            settings=country_settings.get(worker.country_code),
            period_start=period_start,
            period_end=period_end,
            as_of=as_of,
            upcoming_end_window_days=upcoming_end_window_days,
        )
        for rule in rules:
            findings.extend(rule(ctx))
    return tuple(findings)


def merge_findings(
    existing: Iterable[PayrollException],
    detected: Iterable[PayrollException],
) -> tuple[PayrollException, ...]:
    """
    Merge a fresh detection into the existing exception list.

    - Existing exceptions keep their position and status.
    - Detected findings whose fingerprint is not yet represented are
      appended.
    - ACTIVE existing findings no longer detected become RESOLVED (the
      re-validation confirmed the fix).  Execution failures are not rule
      output and are left alone.
    """
    existing = tuple(existing)
    detected = tuple(detected)
    detected_prints = {d.fingerprint for d in detected}
    seen = set()
    merged: list[PayrollException] = []
    auto_resolved = 0

    for exc in existing:
        seen.add(exc.fingerprint)
        if (
            exc.is_active
            and exc.kind is not ExceptionKind.EXECUTION_FAILED
            and exc.fingerprint not in detected_prints
        ):
            exc = replace(exc, status=ExceptionStatus.RESOLVED)
            auto_resolved += 1
        merged.append(exc)

    added = 0
    for finding in detected:
        if finding.fingerprint not in seen:
            seen.add(finding.fingerprint)
            merged.append(finding)
            added += 1

    logger.info(
        "findings_merged",
        extra={
            "existing_count": len(existing),
            "detected_count": len(detected),
            "added_count": added,
            "auto_resolved_count": auto_resolved,
        },
    )
    return tuple(merged)


def execution_failure_id(worker_id: str, run_id: str) -> str:
    return f"exec-fail-{worker_id}-{run_id}"


def findings_from_execution_log(
    existing: Iterable[PayrollException],
    log: ExecutionLogData,
) -> tuple[PayrollException, ...]:
    """
    Surface failed log entries as blocking ``execution-failed`` findings.

    One ACTIVE execution failure per worker at most: a worker that already
    has one is not given a second.  A successful entry resolves the
    worker's ACTIVE execution failure.
    """
    result = list(existing)
    active_failures = {
        e.worker_id: i
        for i, e in enumerate(result)
        if e.kind is ExceptionKind.EXECUTION_FAILED and e.is_active
    }

    for entry in log.entries:
        if entry.outcome is ExecutionOutcome.SUCCESS:
            index = active_failures.pop(entry.worker_id, None)
            if index is not None:
                result[index] = replace(result[index], status=ExceptionStatus.RESOLVED)
            continue
        if entry.worker_id in active_failures:
            continue
        kind_hint = (
            "Payment" if entry.employment_type is EmploymentType.CONTRACTOR
            else "Payroll posting"
        )
        result.append(
            PayrollException(
                exception_id=execution_failure_id(entry.worker_id, log.run_id),
                worker_id=entry.worker_id,
                worker_name=entry.name,
                worker_country=entry.country,
                kind=ExceptionKind.EXECUTION_FAILED,
                description=(
                    f"{kind_hint} failed in run {log.run_id}: "
                    f"{entry.error_message or 'unknown error'}"
                ),
                subject=log.run_id,
            )
        )
        active_failures[entry.worker_id] = len(result) - 1

    return tuple(result)
