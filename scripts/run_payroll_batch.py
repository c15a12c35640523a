#!/usr/bin/env python3
"""
Run one payroll batch end to end against the simulated payment provider.

Loads a roster YAML (cycle, workers, leave), opens the cycle, prints the
detected exceptions and per-currency totals, optionally overrides the
blocking ones, executes the chosen cohort and prints the execution log,
the payment receipts and the cycle's audit trail.  With --db-url the
resulting cycle, roster, exceptions, log, receipts and trail are saved.

Usage:
    python3 scripts/run_payroll_batch.py
    python3 scripts/run_payroll_batch.py --override-blocking "Approved by finance lead"
    python3 scripts/run_payroll_batch.py --cohort contractors --seed 7 --fast
    python3 scripts/run_payroll_batch.py --db-url sqlite:///payroll.db
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from payroll_batch.domain.types import ExecutionLogData, WorkerStatusEvent  # noqa: E402
from payroll_config import default_provider, get_engine_settings  # noqa: E402
from payroll_kernel.domain.clock import DeterministicClock, SystemClock  # noqa: E402
from payroll_kernel.domain.cycle import WorkflowStep  # noqa: E402
from payroll_kernel.domain.findings import ResolutionAction  # noqa: E402
from payroll_kernel.domain.values import Cohort  # noqa: E402
from payroll_kernel.domain.workflow import GuardViolation  # noqa: E402
from payroll_kernel.logging_config import configure_logging  # noqa: E402
from payroll_services import BatchService, WorkerRegistry  # noqa: E402
from payroll_services.roster import load_roster  # noqa: E402

DEFAULT_ROSTER = ROOT / "scripts" / "sample_roster.yaml"


def _print_exceptions(service: BatchService) -> None:
    state = service.state
    print(f"\nExceptions ({len(state.exceptions)}, {state.blocking_count} blocking):")
    for exc in state.exceptions:
        flag = "BLOCKING" if exc.is_blocking else "        "
        print(
            f"  [{exc.status.value:10}] {flag} {exc.severity.value:6} "
            f"{exc.worker_name:16} {exc.kind.title}: {exc.description}"
        )


def _print_totals(service: BatchService) -> None:
    print("\nTotals by currency:")
    for total in service.batch_totals():
        print(
            f"  {total.currency}: {total.total_net_pay:>14,.2f}  "
            f"({total.employee_count} employees, {total.contractor_count} contractors)"
        )


def _print_log(log: ExecutionLogData) -> None:
    print(
        f"\nRun {log.run_id}: {log.success_count} succeeded, {log.failed_count} failed"
        f" ({log.employee_count} employees, {log.contractor_count} contractors)"
    )
    for entry in log.entries:
        detail = f"  {entry.error_message}" if entry.error_message else ""
        print(f"  {entry.outcome.value:8} {entry.name:16}{detail}")


def _print_receipts(service: BatchService) -> None:
    print("\nReceipts:")
    for receipt in service.state.receipts:
        ref = receipt.reference or "-"
        print(
            f"  {receipt.status.value:11} {receipt.name:16} "
            f"{receipt.currency} {receipt.amount:>12,.2f}  {ref}"
        )


def _print_trail(service: BatchService) -> None:
    print("\nAudit trail:")
    for event in service.state.events:
        print(f"  {event.at:%H:%M:%S} {event.level.value:7} {event.actor}: {event.message}")


def _on_event(event: WorkerStatusEvent) -> None:
    print(
        f"  [{event.terminal_count}/{event.total_count}] "
        f"{event.name}: {event.status.value}"
    )


def _persist(db_url: str, service: BatchService) -> None:
    from payroll_kernel.db import create_tables, init_engine_from_url, session_scope
    from payroll_services.repository import PayrollRepository

    init_engine_from_url(db_url)
    create_tables()
    state = service.state
    registry = service.registry
    with session_scope() as session:
        repo = PayrollRepository(session)
        repo.save_cycle(state.cycle, state.step, state.snoozed_worker_ids)
        repo.save_workers(
            state.cycle.cycle_id,
            registry.workers(),
            registry.leave_records().values(),
        )
        repo.save_exceptions(state.cycle.cycle_id, state.exceptions)
        if state.latest_log is not None:
            repo.save_execution_log(state.cycle.cycle_id, state.latest_log)
        repo.save_receipts(state.cycle.cycle_id, state.receipts)
        repo.save_events(state.cycle.cycle_id, state.events)
    print(f"\nSaved cycle {state.cycle.cycle_id} to {db_url}")


def run(args: argparse.Namespace) -> int:
    roster = load_roster(args.roster)
    engine_settings = get_engine_settings(args.engine_settings)
    if args.seed is not None:
        engine_settings = replace(engine_settings, simulated_seed=args.seed)

    clock = DeterministicClock(datetime.now(timezone.utc)) if args.fast else SystemClock()
    service = BatchService(
        cycle=roster.cycle,
        registry=WorkerRegistry(roster.workers, roster.leave_records),
        settings_provider=default_provider(args.country_settings),
        clock=clock,
        engine_settings=engine_settings,
        actor=args.actor,
    )

    service.open_cycle()
    print(f"Cycle {roster.cycle.label} ({roster.cycle.period_start} to {roster.cycle.period_end})")
    _print_exceptions(service)
    _print_totals(service)

    if args.override_blocking:
        for exc in service.state.exceptions:
            if exc.blocks_submission:
                service.resolve_exception(
                    exc.exception_id,
                    ResolutionAction.OVERRIDE,
                    justification=args.override_blocking,
                )

    for step in (WorkflowStep.RESOLVE, WorkflowStep.SUBMIT):
        service.advance_step(step)

    print(f"\nExecuting cohort '{args.cohort.value}':")
    result = service.execute_batch(args.cohort, listener=_on_event)
    if isinstance(result, GuardViolation):
        print(f"\nExecution refused ({result.guard}): {result.reason}")
        print("Re-run with --override-blocking \"<justification>\" to proceed.")
        return 2

    _print_log(result)
    _print_receipts(service)
    service.advance_step(WorkflowStep.TRACK)
    _print_exceptions(service)
    _print_trail(service)

    if args.db_url:
        _persist(args.db_url, service)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Validate and execute a payroll batch with the simulated provider.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--roster", type=Path, default=DEFAULT_ROSTER,
                        help="Roster YAML (cycle, workers, leave)")
    parser.add_argument("--country-settings", type=Path, default=None,
                        help="Country settings YAML (default: bundled)")
    parser.add_argument("--engine-settings", type=Path, default=None,
                        help="Engine settings YAML (default: bundled)")
    parser.add_argument("--cohort", type=Cohort, choices=list(Cohort), default=Cohort.ALL)
    parser.add_argument("--override-blocking", metavar="JUSTIFICATION", default=None,
                        help="Override every blocking exception with this justification")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the simulated provider")
    parser.add_argument("--fast", action="store_true",
                        help="Use simulated time instead of real provider latency")
    parser.add_argument("--actor", default="demo-operator")
    parser.add_argument("--db-url", default=None,
                        help="Save the batch to this database URL")
    parser.add_argument("--json-logs", action="store_true",
                        help="Emit structured JSON logs on stderr")
    args = parser.parse_args()

    if args.json_logs:
        configure_logging(level=logging.INFO)
    else:
        configure_logging(level=logging.WARNING)

    if not args.roster.exists():
        print(f"ERROR: Roster file not found: {args.roster}")
        return 1
    return run(args)


if __name__ == "__main__":
    raise SystemExit(main())
