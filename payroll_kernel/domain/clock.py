"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock/scheduler interface so that engine and
    service code never call ``datetime.now()``, ``date.today()`` or
    ``time.sleep()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Failure modes:
    - SequentialClock raises RuntimeError if exhausted and no fallback time.

Notes:
    ``sleep()`` is the scheduler half of the port.  The simulated payment
    provider waits through it, so tests that inject a DeterministicClock
    run instantly and observe the simulated latency as clock advance.
"""

import threading
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Iterator


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` returns the calendar date of ``now()``.
        - ``sleep()`` suspends the caller for the given number of seconds
          (or simulates doing so).
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current date."""
        return self.now().date()

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Wait for ``seconds``."""
        ...


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def now(self) -> datetime:
        """Get current system time with timezone."""
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``sleep()`` or ``set_time()`` is called.
        - ``sleep()`` returns immediately and advances the clock.
        - Safe to share between executor threads.
    """

    def __init__(self, fixed_time: datetime | None = None):
        """
        Initialize with optional fixed time.

        Args:
            fixed_time: If provided, clock starts at this time.
                       If None, uses a default epoch time.
        """
        self._fixed_time = fixed_time or datetime(
            2025, 11, 10, 9, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0.0
        self._lock = threading.Lock()
        self.total_slept = 0.0

    def now(self) -> datetime:
        """Get the fixed/controlled time."""
        with self._lock:
            return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        with self._lock:
            self._fixed_time = time
            self._advance_seconds = 0.0

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        with self._lock:
            self._advance_seconds += seconds

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self._advance_seconds += seconds
            self.total_slept += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()


class SequentialClock(Clock):
    """
    Clock that returns sequential times from a predefined list.

    Contract:
        Initialized with a non-empty list of ``datetime`` values.  After
        exhaustion, repeats the last value.  ``sleep()`` is a no-op.

    Raises:
        ValueError: If initialized with an empty list.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._times: Iterator[datetime] = iter(times)
        self._last_time: datetime | None = None
        self._exhausted = False

    def now(self) -> datetime:
        """Get the next time in sequence."""
        if self._exhausted:
            if self._last_time is None:
                raise RuntimeError("SequentialClock has no times")
            return self._last_time

        try:
            self._last_time = next(self._times)
            return self._last_time
        except StopIteration:
            self._exhausted = True
            if self._last_time is None:
                raise RuntimeError("SequentialClock exhausted with no times")
            return self._last_time

    def sleep(self, seconds: float) -> None:
        return None
