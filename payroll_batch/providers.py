"""
PaymentProvider protocol, the simulated provider, and RetryPolicy.

Contract:
    ``PaymentProvider`` is the seam between the execution engine and the
    real payment (contractors) or payroll posting (employees) backend.
    ``SimulatedPaymentProvider`` stands in for that backend: random
    latency and a fixed random failure rate.  It MUST be replaced by a
    genuine provider in production.

Architecture:
    payroll_batch.  Imports from payroll_batch.domain, the kernel clock,
    exceptions and worker value objects only.

Invariants enforced:
    - A provider either returns a ProviderResult or raises ProviderError.
    - The simulated provider waits through ``Clock.sleep`` so tests with a
      DeterministicClock never block.
    - With a seed, each worker's n-th call is reproducible regardless of
      thread scheduling.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Collection
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from payroll_batch.domain.types import ProviderResult
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.values import Worker
from payroll_kernel.exceptions import ProviderError, ProviderTimeoutError

EMPLOYEE_FAILURE_MESSAGE = "Payment processing error: Payroll system rejected posting"
CONTRACTOR_FAILURE_MESSAGE = "Payment processing error: Bank account validation failed"


# =============================================================================
# Provider protocol
# =============================================================================


@runtime_checkable
class PaymentProvider(Protocol):
    """Sends one worker's pay to the backend.

    Contract:
        - Returns ``ProviderResult(success=False, ...)`` for a definitive
          rejection.
        - Raises ``ProviderTimeoutError`` when no answer arrives within
          ``timeout_seconds``, or ``ProviderError`` for transport errors
          (``retryable`` says whether another attempt may help).

    Non-goals:
        - Does NOT retry -- the engine applies RetryPolicy.
    """

    def execute(self, worker: Worker, timeout_seconds: float) -> ProviderResult:
        ...


# =============================================================================
# Retry policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts a worker gets, and the pause between them.

    The default is a single attempt.  No backoff curve is assumed: the
    pause is a constant that the real provider integration will set.
    """

    max_attempts: int = 1
    backoff_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be non-negative")

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, ProviderError) and error.retryable


# =============================================================================
# Simulated provider
# =============================================================================


class SimulatedPaymentProvider:
    """Reference stand-in: 0.8-1.5s latency, 10% random failures.

    ``always_fail`` / ``always_succeed`` pin the outcome for specific
    worker ids, which keeps scenario tests deterministic.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        failure_rate: float = 0.1,
        min_latency_seconds: float = 0.8,
        max_latency_seconds: float = 1.5,
        seed: int | None = None,
        always_fail: Collection[str] = (),
        always_succeed: Collection[str] = (),
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be in [0, 1]")
        if max_latency_seconds < min_latency_seconds:
            raise ValueError("max_latency_seconds must be >= min_latency_seconds")
        self._clock = clock or SystemClock()
        self._failure_rate = failure_rate
        self._min_latency = min_latency_seconds
        self._max_latency = max_latency_seconds
        self._seed = seed
        self._always_fail = frozenset(always_fail)
        self._always_succeed = frozenset(always_succeed)
        self._lock = threading.Lock()
        self._rng = random.Random(seed)
        self._calls: dict[str, int] = {}

    def _draw(self, worker_id: str) -> tuple[float, float]:
        with self._lock:
            n = self._calls.get(worker_id, 0)
            self._calls[worker_id] = n + 1
            rng = (
                random.Random(f"{self._seed}:{worker_id}:{n}")
                if self._seed is not None
                else self._rng
            )
            return rng.uniform(self._min_latency, self._max_latency), rng.random()

    def call_count(self, worker_id: str) -> int:
        with self._lock:
            return self._calls.get(worker_id, 0)

    def execute(self, worker: Worker, timeout_seconds: float) -> ProviderResult:
        latency, roll = self._draw(worker.worker_id)
        if latency > timeout_seconds:
            self._clock.sleep(timeout_seconds)
            raise ProviderTimeoutError(worker.worker_id, timeout_seconds)
        self._clock.sleep(latency)

        if worker.worker_id in self._always_fail:
            fails = True
        elif worker.worker_id in self._always_succeed:
            fails = False
        else:
            fails = roll < self._failure_rate

        if fails:
            message = (
                CONTRACTOR_FAILURE_MESSAGE if worker.is_contractor
                else EMPLOYEE_FAILURE_MESSAGE
            )
            return ProviderResult(worker.worker_id, success=False, error_message=message)
        return ProviderResult(
            worker.worker_id, success=True, reference=f"sim-{worker.worker_id}",
        )
