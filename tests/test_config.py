"""Tests for configuration loading and production validation."""

from __future__ import annotations

import pytest

from clinic_followup.config import (
    ClassifierSettings,
    MessagingSettings,
    Settings,
    VapiSettings,
    VoiceSettings,
    WatiSettings,
    get_settings,
    require_valid_settings,
    validate_production_settings,
)
from clinic_followup.core.exceptions import ConfigurationError


def production(**overrides) -> Settings:
    return Settings(environment="production", **overrides)


class TestValidateProductionSettings:
    def test_development_is_never_checked(self):
        assert validate_production_settings(Settings(environment="development")) == []

    def test_missing_credentials_reported(self):
        errors = validate_production_settings(production())

        assert len(errors) == 3
        assert any("WATI" in e for e in errors)
        assert any("VAPI" in e for e in errors)
        assert any("CLASSIFIER" in e for e in errors)

    def test_suppressed_clinic_needs_no_credentials(self):
        settings = production(messaging=MessagingSettings(suppress_outbound=True))

        assert validate_production_settings(settings) == []

    def test_fully_configured(self):
        settings = production(
            messaging=MessagingSettings(wati=WatiSettings(api_url="https://wati.test", api_key="k")),
            voice=VoiceSettings(vapi=VapiSettings(api_key="k", phone_number_id="p", assistant_id="a")),
            classifier=ClassifierSettings(api_key="gsk_test"),
        )

        assert validate_production_settings(settings) == []


def test_nested_environment_override(monkeypatch):
    monkeypatch.setenv("CLINIC_NOSHOW__GRACE_PERIOD_HOURS", "3.5")

    assert Settings().noshow.grace_period_hours == 3.5


class TestGetSettings:
    @pytest.fixture(autouse=True)
    def fresh_cache(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("CLINIC_ENV", raising=False)
        monkeypatch.setenv("CLINIC_CONFIG_DIR", str(tmp_path / "configs"))
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def write(self, tmp_path, name, text):
        config_dir = tmp_path / "configs"
        config_dir.mkdir(exist_ok=True)
        (config_dir / name).write_text(text)

    def test_environment_layer_overrides_default(self, monkeypatch, tmp_path):
        self.write(tmp_path, "default.yaml", "clinic:\n  name: Default Clinic\nnoshow:\n  grace_period_hours: 2\n")
        self.write(tmp_path, "staging.yaml", "noshow:\n  grace_period_hours: 4\n")
        monkeypatch.setenv("CLINIC_ENV", "staging")

        settings = get_settings()

        assert settings.environment == "staging"
        assert settings.clinic.name == "Default Clinic"
        assert settings.noshow.grace_period_hours == 4

    def test_missing_files_fall_back_to_defaults(self):
        settings = get_settings()

        assert settings.environment == "development"
        assert settings.clinic.timezone == "Asia/Dubai"

    def test_require_valid_settings_raises_with_details(self, monkeypatch):
        monkeypatch.setenv("CLINIC_ENV", "production")

        with pytest.raises(ConfigurationError) as exc_info:
            require_valid_settings()

        assert len(exc_info.value.details["errors"]) == 3
