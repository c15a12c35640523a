"""
payroll_config -- YAML-backed payroll configuration.

Responsibility:
    Single entry point for country rules and engine tuning.  Callers use
    ``get_country_settings()`` / ``get_engine_settings()`` (or the
    ``default_provider()`` convenience) and never read YAML themselves.

Architecture position:
    Configuration -- sits beside ``payroll_kernel`` and below
    ``payroll_engines`` / ``payroll_services``.  The kernel MUST NEVER
    import from ``payroll_config``.

Failure modes:
    - ``FileNotFoundError`` -- explicit path does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
from pathlib import Path

from payroll_config.loader import (
    compute_checksum,
    load_country_settings,
    load_engine_settings,
    settings_checksum,
)
from payroll_config.provider import CountrySettingsProvider, StaticCountrySettingsProvider
from payroll_config.schema import (
    ContributionBracket,
    CountrySettings,
    EngineSettings,
    MandatoryPayComponent,
)

_logger = logging.getLogger("payroll.config")

_DEFAULTS_DIR = Path(__file__).parent / "defaults"


def get_country_settings(path: Path | str | None = None) -> dict[str, CountrySettings]:
    """Load country settings from ``path`` or the bundled defaults."""
    source = Path(path) if path is not None else _DEFAULTS_DIR / "country_settings.yaml"
    settings = load_country_settings(source)
    _logger.info(
        "country_settings_loaded",
        extra={
            "source": str(source),
            "countries": sorted(settings),
            "checksum": settings_checksum(settings),
        },
    )
    return settings


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Load engine settings from ``path`` or the bundled defaults."""
    source = Path(path) if path is not None else _DEFAULTS_DIR / "engine.yaml"
    settings = load_engine_settings(source)
    _logger.info("engine_settings_loaded", extra={"source": str(source)})
    return settings


def default_provider(path: Path | str | None = None) -> StaticCountrySettingsProvider:
    return StaticCountrySettingsProvider(get_country_settings(path))


__all__ = [
    "ContributionBracket",
    "CountrySettings",
    "CountrySettingsProvider",
    "EngineSettings",
    "MandatoryPayComponent",
    "StaticCountrySettingsProvider",
    "compute_checksum",
    "default_provider",
    "get_country_settings",
    "get_engine_settings",
]
