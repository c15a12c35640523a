"""
Batch cycle value object (``payroll_kernel.domain.cycle``).

A cycle is one payroll period's full lifecycle::

    upcoming -> active -> completed

``completed`` is terminal and read-only.  Transitions return a new
``BatchCycle``; illegal ones raise ``InvalidCycleTransitionError``.

``BatchEvent`` is the append-only audit trail kept alongside a cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from payroll_kernel.exceptions import CycleLockedError, InvalidCycleTransitionError


class CycleStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class WorkflowStep(str, Enum):
    REVIEW = "review"
    RESOLVE = "resolve"
    SUBMIT = "submit"
    TRACK = "track"


@dataclass(frozen=True)
class BatchCycle:
    cycle_id: str
    label: str
    period_start: date
    period_end: date
    status: CycleStatus = CycleStatus.UPCOMING
    completed_at: datetime | None = None
    completed_by: str | None = None
    forced_completion: bool = False
    completion_justification: str | None = None

    def __post_init__(self) -> None:
        if self.period_end < self.period_start:
            raise ValueError(
                f"Cycle {self.cycle_id}: period_end {self.period_end} "
                f"is before period_start {self.period_start}"
            )

    @property
    def is_locked(self) -> bool:
        return self.status is CycleStatus.COMPLETED

    def ensure_mutable(self, operation: str) -> None:
        """Raise CycleLockedError if the cycle is completed."""
        if self.is_locked:
            raise CycleLockedError(self.cycle_id, operation)

    def activate(self) -> BatchCycle:
        if self.status is not CycleStatus.UPCOMING:
            raise InvalidCycleTransitionError(
                self.cycle_id, self.status.value, CycleStatus.ACTIVE.value
            )
        return replace(self, status=CycleStatus.ACTIVE)

    def complete(
        self,
        *,
        at: datetime,
        actor: str | None,
        forced: bool = False,
        justification: str | None = None,
    ) -> BatchCycle:
        if self.status is not CycleStatus.ACTIVE:
            raise InvalidCycleTransitionError(
                self.cycle_id, self.status.value, CycleStatus.COMPLETED.value
            )
        return replace(
            self,
            status=CycleStatus.COMPLETED,
            completed_at=at,
            completed_by=actor,
            forced_completion=forced,
            completion_justification=justification,
        )


class EventLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class BatchEvent:
    """One line of a cycle's audit trail.  Events are appended, never edited."""

    at: datetime
    actor: str
    message: str
    level: EventLevel = EventLevel.INFO
