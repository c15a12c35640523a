"""Property-based tests for the pure payroll engines."""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_config import default_provider
from payroll_engines.exception_rules import merge_findings, validate
from payroll_engines.proration import compute_batch_totals, compute_net_pay, prorate
from payroll_kernel.domain.findings import ExceptionKind, ExceptionStatus
from payroll_kernel.domain.values import WorkerStatus
from tests.conftest import PERIOD_END, PERIOD_START, make_contractor, make_employee

PROVIDER = default_provider()

money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000000"), places=2,
    allow_nan=False, allow_infinity=False,
)
days_per_month = st.decimals(
    min_value=Decimal("1"), max_value=Decimal("31"), places=2,
    allow_nan=False, allow_infinity=False,
)

WINDOW_KINDS = {
    ExceptionKind.EMPLOYMENT_ENDING_THIS_PERIOD,
    ExceptionKind.END_DATE_BEFORE_PERIOD,
    ExceptionKind.UPCOMING_CONTRACT_END,
}


class TestProrationProperties:

    @given(base=money, dpm=days_per_month)
    def test_zero_leave_is_identity(self, base, dpm):
        assert prorate(base, Decimal("0"), dpm).prorated_pay == base

    @given(base=money, dpm=days_per_month, data=st.data())
    def test_prorated_never_exceeds_base(self, base, dpm, data):
        leave = data.draw(st.decimals(
            min_value=Decimal("0"), max_value=dpm, places=2,
            allow_nan=False, allow_infinity=False,
        ))
        result = prorate(base, leave, dpm)
        assert Decimal("0") <= result.prorated_pay <= base

    @given(salaries=st.lists(money, min_size=1, max_size=8))
    def test_totals_equal_sum_of_net_pay(self, salaries):
        workers = [
            make_contractor(f"w{i}", base_salary=salary)
            for i, salary in enumerate(salaries)
        ]
        totals = compute_batch_totals(workers, {}, PROVIDER)
        expected = sum(
            (compute_net_pay(w, None, PROVIDER).net_pay for w in workers), Decimal("0")
        )
        assert len(totals) == 1
        assert totals[0].total_net_pay == expected
        assert totals[0].worker_count == len(workers)


class TestRuleProperties:

    @settings(max_examples=60)
    @given(
        offset=st.integers(min_value=-120, max_value=120),
        status=st.sampled_from(list(WorkerStatus)),
    )
    def test_at_most_one_end_date_window_finding(self, offset, status):
        worker = make_contractor(end_date=PERIOD_START + timedelta(days=offset), status=status)
        findings = validate(
            [worker], {}, PROVIDER,
            period_start=PERIOD_START, period_end=PERIOD_END, as_of=date(2025, 11, 10),
        )
        window = [f for f in findings if f.kind in WINDOW_KINDS]
        assert len(window) <= 1
        if status is not WorkerStatus.ACTIVE:
            assert window == []

    @settings(max_examples=40)
    @given(
        salary=money,
        withholding=st.one_of(st.none(), st.just(Decimal("0.1"))),
        bank=st.booleans(),
    )
    def test_validation_is_deterministic(self, salary, withholding, bank):
        worker = make_employee(
            base_salary=salary, withholding_tax=withholding, bank_account_on_file=bank,
        )
        kwargs = dict(period_start=PERIOD_START, period_end=PERIOD_END, as_of=date(2025, 11, 10))
        assert validate([worker], {}, PROVIDER, **kwargs) == validate([worker], {}, PROVIDER, **kwargs)

    @settings(max_examples=40)
    @given(salary=money, bank=st.booleans())
    def test_revalidating_unchanged_input_changes_nothing(self, salary, bank):
        worker = make_employee(base_salary=salary, bank_account_on_file=bank)
        kwargs = dict(period_start=PERIOD_START, period_end=PERIOD_END, as_of=date(2025, 11, 10))
        first = merge_findings((), validate([worker], {}, PROVIDER, **kwargs))
        second = merge_findings(first, validate([worker], {}, PROVIDER, **kwargs))
        assert second == first
        assert all(e.status is ExceptionStatus.ACTIVE for e in second)
