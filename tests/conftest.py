"""
Pytest fixtures for the payroll engine test suite.

Provides:
- Structured logging configuration and a JSON log capture fixture
- A DeterministicClock pinned inside the standard test period
- Worker / leave factories that produce exception-free workers by default
- The bundled country settings as a provider
- In-memory SQLite sessions for ORM tests
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from payroll_config import default_provider
from payroll_config.provider import StaticCountrySettingsProvider
from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.cycle import BatchCycle, CycleStatus
from payroll_kernel.domain.values import (
    EmploymentType,
    LeaveRecord,
    LineItem,
    Worker,
)
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

PERIOD_START = date(2025, 11, 1)
PERIOD_END = date(2025, 11, 15)
AS_OF = date(2025, 11, 10)
TEST_NOW = datetime(2025, 11, 10, 9, 0, 0, tzinfo=timezone.utc)
TEST_ACTOR = "test-operator"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.run_validation()
            logs = captured_logs()
            assert any(r["message"] == "validation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


# =============================================================================
# Domain factories
# =============================================================================


def make_employee(worker_id: str = "w-emp", **overrides) -> Worker:
    """A Philippine monthly employee that passes every rule."""
    fields = dict(
        worker_id=worker_id,
        name=f"Employee {worker_id}",
        country="Philippines",
        country_code="PH",
        currency="PHP",
        employment_type=EmploymentType.EMPLOYEE,
        base_salary=Decimal("30000"),
        withholding_tax=Decimal("0.10"),
        start_date=date(2023, 2, 1),
        government_ids={
            "TIN": "123-456-789",
            "SSS": "34-1234567-8",
            "PhilHealth": "12-345678901-2",
            "Pag-IBIG": "1234-5678-9012",
        },
        contributions={
            "sss_employee": Decimal("1350"),
            "sss_employer": Decimal("2850"),
            "philhealth_employee": Decimal("750"),
            "philhealth_employer": Decimal("750"),
            "pagibig_employee": Decimal("100"),
        },
        line_items=(
            LineItem("li-13th", "13th Month Pay", Decimal("2500"), taxable=False),
        ),
    )
    fields.update(overrides)
    return Worker(**fields)


def make_contractor(worker_id: str = "w-con", **overrides) -> Worker:
    """A Philippine monthly contractor that passes every rule."""
    fields = dict(
        worker_id=worker_id,
        name=f"Contractor {worker_id}",
        country="Philippines",
        country_code="PH",
        currency="PHP",
        employment_type=EmploymentType.CONTRACTOR,
        base_salary=Decimal("25000"),
        start_date=date(2024, 3, 1),
    )
    fields.update(overrides)
    return Worker(**fields)


def make_norway_employee(worker_id: str = "w-no", **overrides) -> Worker:
    fields = dict(
        worker_id=worker_id,
        name=f"Norway {worker_id}",
        country="Norway",
        country_code="NO",
        currency="NOK",
        employment_type=EmploymentType.EMPLOYEE,
        base_salary=Decimal("52000"),
        withholding_tax=Decimal("0.32"),
        start_date=date(2022, 9, 1),
    )
    fields.update(overrides)
    return Worker(**fields)


def make_leave(worker_id: str, leave_days="0", **overrides) -> LeaveRecord:
    return LeaveRecord(worker_id=worker_id, leave_days=Decimal(str(leave_days)), **overrides)


def make_cycle(status: CycleStatus = CycleStatus.ACTIVE, **overrides) -> BatchCycle:
    fields = dict(
        cycle_id="2025-11-a",
        label="November 2025, first half",
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        status=status,
    )
    fields.update(overrides)
    return BatchCycle(**fields)


@pytest.fixture
def settings_provider() -> StaticCountrySettingsProvider:
    """Bundled PH + NO country settings."""
    return default_provider()


# =============================================================================
# Database fixtures (in-memory SQLite)
# =============================================================================


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """A session on a fresh in-memory database with every payroll table."""
    engine = init_engine_from_url("sqlite://")
    create_tables(engine)
    session = get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        drop_tables(engine)
        reset_engine()
