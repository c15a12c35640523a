"""
Roster loader -- reads a batch (cycle, workers, leave) from a YAML file.

File layout::

    cycle:
      id: 2025-11-a
      label: November 2025, first half
      period_start: 2025-11-01
      period_end: 2025-11-15
    workers:
      - id: w-001
        name: Maria Santos
        country: Philippines
        country_code: PH
        currency: PHP
        employment_type: employee
        base_salary: "30000"
        ...
    leave:
      - worker_id: w-001
        leave_days: 2

Rows are mapped onto the kernel's frozen value objects; a bad value raises
``ValueError`` and a missing required key raises ``KeyError``, as in
``payroll_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from payroll_config.loader import load_yaml_file, parse_decimal
from payroll_kernel.domain.cycle import BatchCycle, CycleStatus
from payroll_kernel.domain.values import (
    ApplyTo,
    CompensationType,
    EmploymentType,
    LeaveRecord,
    LineItem,
    Worker,
    WorkerStatus,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.roster")


@dataclass(frozen=True)
class Roster:
    cycle: BatchCycle
    workers: tuple[Worker, ...]
    leave_records: tuple[LeaveRecord, ...]


def _date(value: Any, field_name: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValueError(f"Invalid date for {field_name}: {value!r}") from None


def _decimal_or_none(row: dict[str, Any], key: str):
    value = row.get(key)
    return None if value is None else parse_decimal(value, key)


def parse_line_item(row: dict[str, Any]) -> LineItem:
    return LineItem(
        item_id=str(row["id"]),
        name=row["name"],
        amount=parse_decimal(row["amount"], "amount"),
        taxable=bool(row.get("taxable", True)),
        cap=_decimal_or_none(row, "cap"),
        apply_to=ApplyTo(row.get("apply_to", ApplyTo.FULL_MONTH.value)),
    )


def parse_worker(row: dict[str, Any]) -> Worker:
    return Worker(
        worker_id=str(row["id"]),
        name=row["name"],
        country=row["country"],
        country_code=str(row["country_code"]),
        currency=row["currency"],
        employment_type=EmploymentType(row["employment_type"]),
        base_salary=_decimal_or_none(row, "base_salary"),
        compensation_type=CompensationType(
            row.get("compensation_type", CompensationType.MONTHLY.value)
        ),
        hourly_rate=_decimal_or_none(row, "hourly_rate"),
        hours_worked=_decimal_or_none(row, "hours_worked"),
        status=WorkerStatus(row.get("status", WorkerStatus.ACTIVE.value)),
        start_date=_date(row.get("start_date"), "start_date"),
        end_date=_date(row.get("end_date"), "end_date"),
        government_ids={
            str(k): "" if v is None else str(v)
            for k, v in (row.get("government_ids") or {}).items()
        },
        contributions={
            str(k): parse_decimal(v, k)
            for k, v in (row.get("contributions") or {}).items()
        },
        withholding_tax=_decimal_or_none(row, "withholding_tax"),
        line_items=tuple(parse_line_item(i) for i in row.get("line_items") or ()),
        bank_account_on_file=bool(row.get("bank_account_on_file", True)),
        preferred_currency=row.get("preferred_currency"),
    )


def parse_leave_record(row: dict[str, Any]) -> LeaveRecord:
    return LeaveRecord(
        worker_id=str(row["worker_id"]),
        leave_days=parse_decimal(row.get("leave_days", 0), "leave_days"),
        working_days=_decimal_or_none(row, "working_days"),
        client_confirmed=bool(row.get("client_confirmed", False)),
        worker_reported=bool(row.get("worker_reported", False)),
        leave_breakdown={
            str(k): parse_decimal(v, k)
            for k, v in (row.get("leave_breakdown") or {}).items()
        },
        has_pending_leave=bool(row.get("has_pending_leave", False)),
        has_missing_attendance=bool(row.get("has_missing_attendance", False)),
        leave_reason=row.get("leave_reason"),
    )


def parse_cycle(row: dict[str, Any]) -> BatchCycle:
    return BatchCycle(
        cycle_id=str(row["id"]),
        label=row.get("label") or str(row["id"]),
        period_start=_date(row["period_start"], "period_start"),
        period_end=_date(row["period_end"], "period_end"),
        status=CycleStatus(row.get("status", CycleStatus.UPCOMING.value)),
    )


def load_roster(path: Path | str) -> Roster:
    source = Path(path)
    raw = load_yaml_file(source)
    roster = Roster(
        cycle=parse_cycle(raw["cycle"]),
        workers=tuple(parse_worker(w) for w in raw.get("workers") or ()),
        leave_records=tuple(parse_leave_record(r) for r in raw.get("leave") or ()),
    )
    logger.info(
        "roster_loaded",
        extra={
            "source": str(source),
            "cycle_id": roster.cycle.cycle_id,
            "worker_count": len(roster.workers),
            "leave_count": len(roster.leave_records),
        },
    )
    return roster
