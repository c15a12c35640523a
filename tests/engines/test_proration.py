"""Tests for leave proration, net pay and currency totals."""

from decimal import Decimal

import pytest

from payroll_config.provider import StaticCountrySettingsProvider
from payroll_engines.proration import (
    DEFAULT_DAYS_PER_MONTH,
    compute_batch_totals,
    compute_net_pay,
    group_by_currency,
    prorate,
    resolve_days_per_month,
)
from payroll_kernel.domain.values import CompensationType, LineItem
from tests.conftest import make_contractor, make_employee, make_leave, make_norway_employee

NO_SETTINGS = StaticCountrySettingsProvider({})


# ---------------------------------------------------------------------------
# prorate
# ---------------------------------------------------------------------------


class TestProrate:

    def test_two_leave_days_out_of_twenty_two(self):
        result = prorate(Decimal("1000"), Decimal("2"), Decimal("22"))
        assert result.pay_days == Decimal("20")
        assert result.prorated_pay.quantize(Decimal("0.01")) == Decimal("909.09")
        assert result.daily_rate.quantize(Decimal("0.01")) == Decimal("45.45")
        assert (result.prorated_pay + result.difference) == Decimal("1000")

    def test_amounts_keep_full_precision(self):
        result = prorate(Decimal("1000"), Decimal("1"), Decimal("22"))
        assert result.prorated_pay != result.prorated_pay.quantize(Decimal("0.01"))
        assert result.prorated_pay > Decimal("954.545")
        assert result.prorated_pay + result.difference == Decimal("1000")

    def test_zero_leave_reproduces_base_exactly(self):
        result = prorate(Decimal("30000"), Decimal("0"), Decimal("21.67"))
        assert result.prorated_pay == Decimal("30000")
        assert result.difference == Decimal("0")

    def test_full_month_of_leave_pays_nothing(self):
        result = prorate(Decimal("30000"), Decimal("22"), Decimal("22"))
        assert result.prorated_pay == Decimal("0")

    def test_non_positive_days_rejected(self):
        with pytest.raises(ValueError, match="days_per_month"):
            prorate(Decimal("1000"), Decimal("1"), Decimal("0"))

    def test_negative_leave_rejected(self):
        with pytest.raises(ValueError, match="leave_days"):
            prorate(Decimal("1000"), Decimal("-1"), Decimal("22"))


# ---------------------------------------------------------------------------
# days-per-month resolution
# ---------------------------------------------------------------------------


class TestDaysPerMonth:

    def test_country_setting_wins(self, settings_provider):
        leave = make_leave("w-emp", 1, working_days=Decimal("20"))
        assert resolve_days_per_month(make_employee(), leave, settings_provider) == Decimal("21.67")

    def test_leave_record_basis_when_no_country(self):
        leave = make_leave("w-emp", 1, working_days=Decimal("20"))
        assert resolve_days_per_month(make_employee(), leave, NO_SETTINGS) == Decimal("20")

    def test_fallback_default(self):
        assert resolve_days_per_month(make_employee(), None, NO_SETTINGS) == DEFAULT_DAYS_PER_MONTH


# ---------------------------------------------------------------------------
# compute_net_pay
# ---------------------------------------------------------------------------


class TestNetPay:

    def test_salary_plus_adjustments(self, settings_provider):
        worker = make_employee(base_salary=Decimal("30000"))
        pay = compute_net_pay(worker, None, settings_provider)
        assert pay.base_pay == Decimal("30000")
        assert pay.adjustments == Decimal("2500")
        assert pay.net_pay == Decimal("32500")
        assert pay.proration is None

    def test_leave_prorates_base(self, settings_provider):
        worker = make_norway_employee(base_salary=Decimal("21700"))
        pay = compute_net_pay(worker, make_leave(worker.worker_id, 1), settings_provider)
        assert pay.base_pay == Decimal("20700")
        assert pay.proration.pay_days == Decimal("20.7")

    def test_zero_leave_record_does_not_prorate(self, settings_provider):
        worker = make_employee()
        pay = compute_net_pay(worker, make_leave(worker.worker_id, 0), settings_provider)
        assert pay.proration is None
        assert pay.base_pay == worker.base_salary

    def test_hourly_uses_rate_times_hours_and_ignores_leave(self, settings_provider):
        worker = make_contractor(
            compensation_type=CompensationType.HOURLY,
            base_salary=None,
            hourly_rate=Decimal("450"),
            hours_worked=Decimal("80"),
            line_items=(LineItem("li-1", "Equipment", Decimal("500")),),
        )
        pay = compute_net_pay(worker, make_leave(worker.worker_id, 3), settings_provider)
        assert pay.base_pay == Decimal("36000")
        assert pay.net_pay == Decimal("36500")
        assert pay.proration is None

    def test_hourly_without_hours_is_zero(self, settings_provider):
        worker = make_contractor(
            compensation_type=CompensationType.HOURLY, hourly_rate=Decimal("450"),
        )
        assert compute_net_pay(worker, None, settings_provider).base_pay == Decimal("0")


# ---------------------------------------------------------------------------
# Grouping and totals
# ---------------------------------------------------------------------------


class TestBatchTotals:

    def test_group_by_currency_first_seen_order(self):
        workers = [
            make_norway_employee("n1"),
            make_employee("p1"),
            make_norway_employee("n2"),
        ]
        groups = group_by_currency(workers)
        assert list(groups) == ["NOK", "PHP"]
        assert [w.worker_id for w in groups["NOK"]] == ["n1", "n2"]

    def test_excluded_workers_skipped(self):
        groups = group_by_currency([make_employee("p1"), make_employee("p2")], {"p2"})
        assert [w.worker_id for w in groups["PHP"]] == ["p1"]

    def test_totals_per_currency(self, settings_provider):
        workers = [
            make_employee("p1"),
            make_contractor("p2"),
            make_norway_employee("n1"),
        ]
        totals = compute_batch_totals(workers, {}, settings_provider)
        by_currency = {t.currency: t for t in totals}
        php = by_currency["PHP"]
        assert php.worker_count == 2
        assert php.employee_count == 1
        assert php.contractor_count == 1
        assert php.total_net_pay == Decimal("32500") + Decimal("25000")
        assert by_currency["NOK"].total_net_pay == Decimal("52000")

    def test_snoozed_worker_excluded_from_totals(self, settings_provider):
        workers = [make_employee("p1"), make_contractor("p2")]
        totals = compute_batch_totals(
            workers, {}, settings_provider, excluded_worker_ids=frozenset({"p2"})
        )
        assert totals[0].worker_count == 1
        assert totals[0].total_net_pay == Decimal("32500")

    def test_empty_batch(self, settings_provider):
        assert compute_batch_totals([], {}, settings_provider) == ()
