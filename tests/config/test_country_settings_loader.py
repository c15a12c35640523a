"""Tests for YAML-backed payroll configuration (payroll_config)."""

from decimal import Decimal

import pytest
import yaml

from payroll_config import (
    EngineSettings,
    StaticCountrySettingsProvider,
    compute_checksum,
    default_provider,
    get_country_settings,
    get_engine_settings,
)
from payroll_config.loader import parse_country_settings, parse_engine_settings
from payroll_config.provider import CountrySettingsProvider
from payroll_config.schema import ContributionBracket, CountrySettings


def _write_yaml(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


# ---------------------------------------------------------------------------
# Bundled defaults
# ---------------------------------------------------------------------------


class TestBundledCountrySettings:

    def test_ph_and_no_present(self):
        settings = get_country_settings()
        assert set(settings) == {"PH", "NO"}

    def test_philippines_rules(self):
        ph = get_country_settings()["PH"]
        assert ph.currency == "PHP"
        assert ph.days_per_month == Decimal("21.67")
        assert ph.minimum_monthly_wage == Decimal("13000")
        assert ph.minimum_daily_wage == Decimal("570")
        assert ph.mandatory_government_ids == ("TIN", "SSS", "PhilHealth", "Pag-IBIG")
        assert ph.employer_contribution_pairs == (("sss_employee", "sss_employer"),)
        assert ph.mandatory_pay_components[0].pattern == "13th month"

    def test_norway_has_no_rules(self):
        no = get_country_settings()["NO"]
        assert no.days_per_month == Decimal("21.7")
        assert no.minimum_monthly_wage is None
        assert no.mandatory_government_ids == ()
        assert no.contribution_brackets == ()

    def test_default_provider(self):
        provider = default_provider()
        assert isinstance(provider, CountrySettingsProvider)
        assert provider.country_codes == ("NO", "PH")
        assert provider.days_per_month("PH") == Decimal("21.67")
        assert provider.days_per_month("SG") is None
        assert provider.get("SG") is None

    def test_load_logged_with_checksum(self, captured_logs):
        get_country_settings()
        records = [r for r in captured_logs() if r["message"] == "country_settings_loaded"]
        assert records
        assert records[0]["countries"] == ["NO", "PH"]
        assert len(records[0]["checksum"]) == 64


class TestBundledEngineSettings:

    def test_defaults(self):
        settings = get_engine_settings()
        assert settings.max_concurrency == 4
        assert settings.retry_max_attempts == 1
        assert settings.simulated_failure_rate == pytest.approx(0.1)
        assert settings.simulated_seed is None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsing:

    def test_custom_country_file(self, tmp_path):
        path = _write_yaml(tmp_path, "countries.yaml", {
            "countries": [
                {"country_code": "SG", "country_name": "Singapore",
                 "currency": "SGD", "days_per_month": "22"},
            ],
        })
        settings = get_country_settings(path)
        assert settings["SG"].default_divisor == Decimal("22")
        assert settings["SG"].estimated_tax_rate is None

    def test_duplicate_country_rejected(self, tmp_path):
        entry = {"country_code": "SG", "country_name": "Singapore",
                 "currency": "SGD", "days_per_month": "22"}
        path = _write_yaml(tmp_path, "dup.yaml", {"countries": [entry, entry]})
        with pytest.raises(ValueError, match="Duplicate country code"):
            get_country_settings(path)

    def test_missing_required_key(self):
        with pytest.raises(KeyError):
            parse_country_settings({"country_code": "SG", "currency": "SGD"})

    def test_bad_decimal(self):
        with pytest.raises(ValueError, match="Invalid decimal"):
            parse_country_settings({
                "country_code": "SG", "country_name": "Singapore",
                "currency": "SGD", "days_per_month": "many",
            })

    def test_bad_employer_pair(self):
        with pytest.raises(ValueError, match="two fields"):
            parse_country_settings({
                "country_code": "SG", "country_name": "Singapore",
                "currency": "SGD", "days_per_month": "22",
                "employer_contribution_pairs": [["a", "b", "c"]],
            })

    def test_unknown_engine_setting_rejected(self):
        with pytest.raises(ValueError, match="Unknown engine settings"):
            parse_engine_settings({"max_threads": 8})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_country_settings(tmp_path / "nope.yaml")

    def test_partial_engine_file_keeps_defaults(self, tmp_path):
        path = _write_yaml(tmp_path, "engine.yaml", {"engine": {"max_concurrency": 2}})
        settings = get_engine_settings(path)
        assert settings.max_concurrency == 2
        assert settings.worker_timeout_seconds == 5.0


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------


class TestSchema:

    def test_bracket_bounds(self):
        with pytest.raises(ValueError):
            ContributionBracket(Decimal("100"), Decimal("100"), Decimal("1"))

    def test_bracket_is_half_open(self):
        bracket = ContributionBracket(Decimal("4250"), Decimal("4750"), Decimal("202.50"))
        assert bracket.contains(Decimal("4250"))
        assert not bracket.contains(Decimal("4750"))

    def test_bracket_for(self):
        ph = get_country_settings()["PH"]
        assert ph.bracket_for(Decimal("4500")).contribution == Decimal("202.50")
        assert ph.bracket_for(Decimal("30000")) is None

    def test_non_positive_days_rejected(self):
        with pytest.raises(ValueError, match="days_per_month"):
            CountrySettings("SG", "Singapore", "SGD", days_per_month=Decimal("0"))

    def test_tax_rate_range(self):
        with pytest.raises(ValueError, match="estimated_tax_rate"):
            CountrySettings(
                "SG", "Singapore", "SGD", Decimal("22"),
                estimated_tax_rate=Decimal("1.5"),
            )

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_concurrency": 0},
            {"worker_timeout_seconds": 0},
            {"retry_max_attempts": 0},
            {"retry_backoff_seconds": -1},
            {"simulated_failure_rate": 1.5},
            {"simulated_min_latency_seconds": 2.0, "simulated_max_latency_seconds": 1.0},
        ],
    )
    def test_engine_settings_rejected(self, overrides):
        with pytest.raises(ValueError):
            EngineSettings(**overrides)


class TestChecksum:

    def test_deterministic(self):
        assert compute_checksum({"b": 1, "a": 2}) == compute_checksum({"a": 2, "b": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_static_provider_copies_mapping(self):
        source = dict(get_country_settings())
        provider = StaticCountrySettingsProvider(source)
        source.clear()
        assert provider.get("PH") is not None
