"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``payroll_config.schema``
dataclass instances.  Runtime callers go through
``payroll_config.get_country_settings()`` / ``get_engine_settings()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for change
  detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric amount  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    ContributionBracket,
    CountrySettings,
    EngineSettings,
    MandatoryPayComponent,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a YAML scalar into Decimal via its string form."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal for {field_name}: {value!r}") from None


def _optional_decimal(data: dict[str, Any], key: str) -> Decimal | None:
    value = data.get(key)
    return None if value is None else parse_decimal(value, key)


def parse_contribution_bracket(data: dict[str, Any]) -> ContributionBracket:
    return ContributionBracket(
        min_salary=parse_decimal(data["min_salary"], "min_salary"),
        max_salary=parse_decimal(data["max_salary"], "max_salary"),
        contribution=parse_decimal(data["contribution"], "contribution"),
    )


def parse_pay_component(data: dict[str, Any]) -> MandatoryPayComponent:
    return MandatoryPayComponent(
        name=data["name"],
        pattern=data["pattern"],
        employment_types=tuple(data.get("employment_types", ["employee"])),
    )


def parse_country_settings(data: dict[str, Any]) -> CountrySettings:
    """Parse one ``countries`` entry into CountrySettings."""
    pairs = []
    for pair in data.get("employer_contribution_pairs", []):
        if len(pair) != 2:
            raise ValueError(
                f"{data['country_code']}: employer contribution pair must have "
                f"two fields, got {pair!r}"
            )
        pairs.append((str(pair[0]), str(pair[1])))

    return CountrySettings(
        country_code=str(data["country_code"]),
        country_name=data["country_name"],
        currency=data["currency"],
        days_per_month=parse_decimal(data["days_per_month"], "days_per_month"),
        default_divisor=parse_decimal(
            data.get("default_divisor", "22"), "default_divisor"
        ),
        minimum_monthly_wage=_optional_decimal(data, "minimum_monthly_wage"),
        minimum_daily_wage=_optional_decimal(data, "minimum_daily_wage"),
        allowance_cap=_optional_decimal(data, "allowance_cap"),
        mandatory_government_ids=tuple(data.get("mandatory_government_ids", [])),
        contribution_tier_field=data.get("contribution_tier_field"),
        contribution_brackets=tuple(
            parse_contribution_bracket(b)
            for b in data.get("contribution_brackets", [])
        ),
        mandatory_pay_components=tuple(
            parse_pay_component(c)
            for c in data.get("mandatory_pay_components", [])
        ),
        employer_contribution_pairs=tuple(pairs),
        mandatory_contribution_fields=tuple(
            data.get("mandatory_contribution_fields", [])
        ),
        estimated_tax_rate=_optional_decimal(data, "estimated_tax_rate"),
        deduction_fields=tuple(data.get("deduction_fields", [])),
        contribution_table_field=data.get("contribution_table_field"),
    )


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse the ``engine`` mapping; absent keys keep EngineSettings defaults."""
    known = set(EngineSettings.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown engine settings: {sorted(unknown)}")
    return EngineSettings(**data)


def load_country_settings(path: Path) -> dict[str, CountrySettings]:
    """Load a country settings file, keyed by country code."""
    raw = load_yaml_file(path)
    result: dict[str, CountrySettings] = {}
    for entry in raw["countries"]:
        settings = parse_country_settings(entry)
        if settings.country_code in result:
            raise ValueError(
                f"Duplicate country code in {path}: {settings.country_code}"
            )
        result[settings.country_code] = settings
    return result


def load_engine_settings(path: Path) -> EngineSettings:
    raw = load_yaml_file(path)
    return parse_engine_settings(raw.get("engine") or {})


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def settings_checksum(settings: dict[str, CountrySettings]) -> str:
    return compute_checksum(
        {code: asdict(s) for code, s in sorted(settings.items())}
    )
