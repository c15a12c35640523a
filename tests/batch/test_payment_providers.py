"""Tests for the simulated payment provider and RetryPolicy."""

import pytest

from payroll_batch.providers import (
    CONTRACTOR_FAILURE_MESSAGE,
    EMPLOYEE_FAILURE_MESSAGE,
    PaymentProvider,
    RetryPolicy,
    SimulatedPaymentProvider,
)
from payroll_kernel.exceptions import ProviderError, ProviderTimeoutError
from tests.conftest import make_contractor, make_employee


class TestSimulatedProvider:

    def test_satisfies_protocol(self, deterministic_clock):
        assert isinstance(SimulatedPaymentProvider(clock=deterministic_clock), PaymentProvider)

    def test_latency_waits_on_clock(self, deterministic_clock):
        provider = SimulatedPaymentProvider(clock=deterministic_clock, failure_rate=0.0)
        result = provider.execute(make_employee("e1"), timeout_seconds=5.0)
        assert result.success
        assert result.reference == "sim-e1"
        assert 0.8 <= deterministic_clock.total_slept <= 1.5

    def test_failure_rate_one_always_fails(self, deterministic_clock):
        provider = SimulatedPaymentProvider(clock=deterministic_clock, failure_rate=1.0)
        assert provider.execute(make_employee("e1"), 5.0).error_message == EMPLOYEE_FAILURE_MESSAGE
        assert provider.execute(make_contractor("c1"), 5.0).error_message == CONTRACTOR_FAILURE_MESSAGE

    def test_pinned_outcomes_override_rate(self, deterministic_clock):
        provider = SimulatedPaymentProvider(
            clock=deterministic_clock, failure_rate=1.0, always_succeed={"e1"},
        )
        assert provider.execute(make_employee("e1"), 5.0).success
        provider = SimulatedPaymentProvider(
            clock=deterministic_clock, failure_rate=0.0, always_fail={"e1"},
        )
        assert not provider.execute(make_employee("e1"), 5.0).success

    def test_timeout(self, deterministic_clock):
        provider = SimulatedPaymentProvider(
            clock=deterministic_clock, min_latency_seconds=3.0, max_latency_seconds=4.0,
        )
        with pytest.raises(ProviderTimeoutError) as exc_info:
            provider.execute(make_employee("e1"), timeout_seconds=2.0)
        assert exc_info.value.retryable
        assert deterministic_clock.total_slept == pytest.approx(2.0)

    def test_seeded_runs_are_reproducible(self, deterministic_clock):
        workers = [make_contractor(f"c{i}") for i in range(20)]

        def _outcomes(order):
            provider = SimulatedPaymentProvider(
                clock=deterministic_clock, failure_rate=0.5, seed=42,
            )
            return {w.worker_id: provider.execute(w, 5.0).success for w in order}

        # call order does not matter with a seed
        assert _outcomes(workers) == _outcomes(list(reversed(workers)))

    def test_call_count(self, deterministic_clock):
        provider = SimulatedPaymentProvider(clock=deterministic_clock, failure_rate=0.0)
        provider.execute(make_employee("e1"), 5.0)
        provider.execute(make_employee("e1"), 5.0)
        assert provider.call_count("e1") == 2
        assert provider.call_count("e2") == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"failure_rate": -0.1},
            {"failure_rate": 1.1},
            {"min_latency_seconds": 2.0, "max_latency_seconds": 1.0},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            SimulatedPaymentProvider(**kwargs)


class TestRetryPolicy:

    def test_default_single_attempt(self):
        policy = RetryPolicy()
        assert not policy.should_retry(ProviderError("w", "busy", retryable=True), 1)

    def test_retries_only_retryable_provider_errors(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(ProviderError("w", "busy", retryable=True), 1)
        assert policy.should_retry(ProviderTimeoutError("w", 5.0), 2)
        assert not policy.should_retry(ProviderError("w", "bad account"), 1)
        assert not policy.should_retry(RuntimeError("boom"), 1)

    def test_stops_at_max_attempts(self):
        policy = RetryPolicy(max_attempts=3)
        assert not policy.should_retry(ProviderTimeoutError("w", 5.0), 3)

    def test_validation(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(backoff_seconds=-1)
