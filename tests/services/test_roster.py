"""Tests for the YAML roster loader."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from payroll_kernel.domain.cycle import CycleStatus
from payroll_kernel.domain.values import (
    CompensationType,
    EmploymentType,
    WorkerStatus,
)
from payroll_services.roster import (
    load_roster,
    parse_cycle,
    parse_leave_record,
    parse_worker,
)

SAMPLE_ROSTER = Path(__file__).resolve().parents[2] / "scripts" / "sample_roster.yaml"


class TestSampleRoster:

    @pytest.fixture(scope="class")
    def roster(self):
        return load_roster(SAMPLE_ROSTER)

    def test_cycle(self, roster):
        assert roster.cycle.cycle_id == "2025-11-a"
        assert roster.cycle.period_start == date(2025, 11, 1)
        assert roster.cycle.period_end == date(2025, 11, 15)
        assert roster.cycle.status is CycleStatus.UPCOMING

    def test_workers_in_file_order(self, roster):
        assert [w.worker_id for w in roster.workers] == [
            "w-001", "w-002", "w-003", "w-004", "w-005", "w-006",
        ]

    def test_employee_fields(self, roster):
        maria = roster.workers[0]
        assert maria.employment_type is EmploymentType.EMPLOYEE
        assert maria.base_salary == Decimal("30000")
        assert maria.government_id("TIN") == "123-456-789"
        assert maria.contribution("sss_employer") == Decimal("2850")
        assert [li.item_id for li in maria.line_items] == ["li-001", "li-002"]
        assert not maria.line_items[0].taxable

    def test_optional_fields(self, roster):
        by_id = {w.worker_id: w for w in roster.workers}
        assert by_id["w-002"].government_id("SSS") is None
        assert by_id["w-002"].line_items[0].cap == Decimal("4000")
        assert by_id["w-003"].compensation_type is CompensationType.HOURLY
        assert by_id["w-003"].hours_worked is None
        assert by_id["w-004"].country_code == "NO"
        assert by_id["w-004"].preferred_currency == "EUR"
        assert by_id["w-006"].status is WorkerStatus.TERMINATED
        assert not by_id["w-006"].bank_account_on_file

    def test_leave(self, roster):
        leave = {r.worker_id: r for r in roster.leave_records}
        assert leave["w-001"].leave_days == Decimal("2")
        assert leave["w-001"].client_confirmed
        assert leave["w-004"].has_pending_leave


class TestParsing:

    def test_defaults(self):
        worker = parse_worker({
            "id": 7, "name": "Minimal", "country": "Philippines",
            "country_code": "PH", "currency": "PHP", "employment_type": "contractor",
        })
        assert worker.worker_id == "7"
        assert worker.status is WorkerStatus.ACTIVE
        assert worker.compensation_type is CompensationType.MONTHLY
        assert worker.bank_account_on_file

    def test_cycle_label_defaults_to_id(self):
        cycle = parse_cycle({"id": "c1", "period_start": "2025-11-01",
                             "period_end": "2025-11-15"})
        assert cycle.label == "c1"

    def test_bad_date(self):
        with pytest.raises(ValueError, match="period_start"):
            parse_cycle({"id": "c1", "period_start": "11/01/2025",
                         "period_end": "2025-11-15"})

    def test_bad_decimal(self):
        with pytest.raises(ValueError, match="leave_days"):
            parse_leave_record({"worker_id": "w", "leave_days": "two"})

    def test_missing_required_key(self):
        with pytest.raises(KeyError):
            parse_worker({"id": "w", "name": "No country"})

    def test_load_from_tmp_file(self, tmp_path):
        path = tmp_path / "roster.yaml"
        path.write_text(
            "cycle: {id: c1, period_start: 2025-12-01, period_end: 2025-12-15}\n"
        )
        roster = load_roster(path)
        assert roster.workers == ()
        assert roster.leave_records == ()
