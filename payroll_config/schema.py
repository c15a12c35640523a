"""
Configuration schema (``payroll_config.schema``).

Responsibility
--------------
Frozen dataclasses describing per-country payroll rules and engine
tuning.  Instances are produced by ``payroll_config.loader`` from YAML and
consumed by the rule engine, the proration calculator and the execution
engine.

Invariants enforced
-------------------
* All money and rate values are ``Decimal``.
* ``__post_init__`` rejects structurally invalid values with
  ``ValueError``; no silent defaults for required fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ContributionBracket:
    """Salary range ``[min_salary, max_salary)`` and the expected contribution."""

    min_salary: Decimal
    max_salary: Decimal
    contribution: Decimal

    def __post_init__(self) -> None:
        if self.max_salary <= self.min_salary:
            raise ValueError(
                f"Contribution bracket max {self.max_salary} must exceed "
                f"min {self.min_salary}"
            )

    def contains(self, salary: Decimal) -> bool:
        return self.min_salary <= salary < self.max_salary


@dataclass(frozen=True)
class MandatoryPayComponent:
    """A line item that must be present, matched by name substring."""

    name: str
    pattern: str
    employment_types: tuple[str, ...] = ("employee",)


@dataclass(frozen=True)
class CountrySettings:
    """Payroll rules for one country.

    A rule whose setting is ``None`` or empty does not fire for workers in
    this country.
    """

    country_code: str
    country_name: str
    currency: str
    days_per_month: Decimal
    default_divisor: Decimal = Decimal("22")
    minimum_monthly_wage: Decimal | None = None
    minimum_daily_wage: Decimal | None = None
    allowance_cap: Decimal | None = None
    mandatory_government_ids: tuple[str, ...] = ()
    contribution_tier_field: str | None = None
    contribution_brackets: tuple[ContributionBracket, ...] = ()
    mandatory_pay_components: tuple[MandatoryPayComponent, ...] = ()
    employer_contribution_pairs: tuple[tuple[str, str], ...] = ()
    mandatory_contribution_fields: tuple[str, ...] = ()
    estimated_tax_rate: Decimal | None = None
    deduction_fields: tuple[str, ...] = ()
    contribution_table_field: str | None = None

    def __post_init__(self) -> None:
        if self.days_per_month <= 0:
            raise ValueError(
                f"{self.country_code}: days_per_month must be positive"
            )
        if self.default_divisor <= 0:
            raise ValueError(
                f"{self.country_code}: default_divisor must be positive"
            )
        if self.estimated_tax_rate is not None and not (
            Decimal("0") <= self.estimated_tax_rate <= Decimal("1")
        ):
            raise ValueError(
                f"{self.country_code}: estimated_tax_rate must be in [0, 1]"
            )

    def bracket_for(self, salary: Decimal) -> ContributionBracket | None:
        for bracket in self.contribution_brackets:
            if bracket.contains(salary):
                return bracket
        return None


@dataclass(frozen=True)
class EngineSettings:
    """Tuning for validation windows and the execution engine."""

    max_concurrency: int = 4
    worker_timeout_seconds: float = 5.0
    retry_max_attempts: int = 1
    retry_backoff_seconds: float = 0.0
    upcoming_end_window_days: int = 30
    simulated_failure_rate: float = 0.1
    simulated_min_latency_seconds: float = 0.8
    simulated_max_latency_seconds: float = 1.5
    simulated_seed: int | None = None

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.worker_timeout_seconds <= 0:
            raise ValueError("worker_timeout_seconds must be positive")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be non-negative")
        if self.upcoming_end_window_days < 0:
            raise ValueError("upcoming_end_window_days must be non-negative")
        if not 0.0 <= self.simulated_failure_rate <= 1.0:
            raise ValueError("simulated_failure_rate must be in [0, 1]")
        if self.simulated_max_latency_seconds < self.simulated_min_latency_seconds:
            raise ValueError(
                "simulated_max_latency_seconds must be >= "
                "simulated_min_latency_seconds"
            )
