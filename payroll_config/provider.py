"""Country settings provider port and its in-memory implementation."""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Protocol, runtime_checkable

from payroll_config.schema import CountrySettings


@runtime_checkable
class CountrySettingsProvider(Protocol):
    """Looks up payroll rules by country code."""

    def get(self, country_code: str) -> CountrySettings | None:
        ...

    def days_per_month(self, country_code: str) -> Decimal | None:
        ...


class StaticCountrySettingsProvider:
    """Provider backed by a fixed mapping (usually loaded from YAML)."""

    def __init__(self, settings: Mapping[str, CountrySettings]):
        self._settings = dict(settings)

    def get(self, country_code: str) -> CountrySettings | None:
        return self._settings.get(country_code)

    def days_per_month(self, country_code: str) -> Decimal | None:
        settings = self._settings.get(country_code)
        return settings.days_per_month if settings else None

    @property
    def country_codes(self) -> tuple[str, ...]:
        return tuple(sorted(self._settings))
