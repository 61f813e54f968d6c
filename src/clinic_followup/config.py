"""Application configuration.

One pydantic-settings model with a nested section per concern. Values are
layered by dynaconf: configs/default.yaml, then configs/<CLINIC_ENV>.yaml,
then .env and CLINIC_* variables (nested keys joined with "__").
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clinic_followup.core.exceptions import ConfigurationError


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///data/clinic_followup.db"
    echo: bool = False


class ClinicSettings(BaseModel):
    """Clinic identity and locale."""

    name: str = "Cosmique Aesthetics & Dermatology"
    phone: str = "+971 50 429 6888"
    # IANA zone used for "today", "tomorrow" and slot arithmetic
    timezone: str = "Asia/Dubai"
    # Prefix applied to bare local-format numbers
    country_code: str = "971"


class WatiTemplateSettings(BaseModel):
    """Approved WhatsApp template names (empty = send plain text)."""

    reminder_24hr: str = ""
    reminder_2hr: str = ""
    no_show: str = ""


class WatiSettings(BaseModel):
    """WATI WhatsApp Business API configuration."""

    api_url: str = ""
    api_key: str = ""
    timeout: float = 30.0
    templates: WatiTemplateSettings = Field(default_factory=WatiTemplateSettings)

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)


class MessagingSettings(BaseModel):
    """Outbound text messaging configuration."""

    # Simulate-only mode: state machine runs, nothing reaches a patient
    suppress_outbound: bool = False
    provider: str = "wati"  # wati, mock
    wati: WatiSettings = Field(default_factory=WatiSettings)


class VapiSettings(BaseModel):
    """Vapi outbound voice agent configuration."""

    api_url: str = "https://api.vapi.ai"
    api_key: str = ""
    phone_number_id: str = ""
    assistant_id: str = ""
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.phone_number_id and self.assistant_id)


class VoiceSettings(BaseModel):
    """Outbound voice call configuration."""

    provider: str = "vapi"  # vapi, mock
    vapi: VapiSettings = Field(default_factory=VapiSettings)


class ClassifierSettings(BaseModel):
    """Intent classification (Groq) configuration."""

    enabled: bool = True
    api_key: str = ""
    model: str = "llama-3.3-70b-versatile"
    temperature: float = 0.1
    max_tokens: int = 512
    max_retries: int = 2


class ReminderSettings(BaseModel):
    """Reminder window configuration."""

    two_hour_window_min_hours: float = 1.5
    two_hour_window_max_hours: float = 2.5
    # Do not send the 2h reminder to patients who already confirmed
    skip_confirmed_two_hour: bool = True


class NoShowSettings(BaseModel):
    """No-show detection configuration."""

    grace_period_hours: float = 2.0


class ConfirmationCallSettings(BaseModel):
    """Automatic confirmation call configuration."""

    # Hours after the 24h reminder before calling an unresponsive patient
    delay_after_reminder_hours: float = 2.0


class SchedulerSettings(BaseModel):
    """In-process job scheduler (disabled when an external cron drives jobs)."""

    enabled: bool = False
    reminders_24hr_interval: int = 3600
    reminders_2hr_interval: int = 900
    no_shows_interval: int = 900
    followups_interval: int = 3600
    confirmation_calls_interval: int = 1800


class Settings(BaseSettings):
    """Effective configuration of one clinic deployment."""

    model_config = SettingsConfigDict(
        env_prefix="CLINIC_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_mask_phones: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Subsystems
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    clinic: ClinicSettings = Field(default_factory=ClinicSettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    noshow: NoShowSettings = Field(default_factory=NoShowSettings)
    confirmation_calls: ConfirmationCallSettings = Field(
        default_factory=ConfirmationCallSettings
    )
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)


def _config_files(config_dir: Path, env: str) -> list[str]:
    """Existing YAML layers, lowest precedence first."""
    candidates = [config_dir / "default.yaml", config_dir / f"{env}.yaml"]
    return [str(path) for path in candidates if path.exists()]


def _to_plain(value: Any) -> Any:
    """Dynaconf boxes to plain dicts with lower-case keys."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {str(k).lower(): _to_plain(v) for k, v in value.items()}
    return value


@lru_cache
def get_settings() -> Settings:
    """Settings merged from the YAML layers, ``.env`` and ``CLINIC_*`` variables.

    ``CLINIC_ENV`` picks the environment layer (default ``development``).
    """
    from dynaconf import Dynaconf

    env = os.getenv("CLINIC_ENV", "development")
    layers = Dynaconf(
        envvar_prefix="CLINIC",
        settings_files=_config_files(Path(os.getenv("CLINIC_CONFIG_DIR", "configs")), env),
        load_dotenv=True,
    )

    values = {
        key.lower(): _to_plain(layers[key])
        for key in layers.keys()
        if not key.startswith("_")
    }
    values["environment"] = env
    return Settings(**values)


def validate_production_settings(settings: Settings) -> list[str]:
    """List what a production or staging deployment is missing.

    Development never fails, and neither does a clinic with outbound
    traffic suppressed, since it never reaches the providers.
    """
    if settings.environment not in ("production", "staging", "prod"):
        return []
    if settings.messaging.suppress_outbound:
        return []

    errors: list[str] = []
    if settings.messaging.provider == "wati" and not settings.messaging.wati.configured:
        errors.append(
            "CLINIC_MESSAGING__WATI__API_URL and CLINIC_MESSAGING__WATI__API_KEY "
            "must be set when WATI is the messaging provider"
        )
    if settings.voice.provider == "vapi" and not settings.voice.vapi.configured:
        errors.append(
            "CLINIC_VOICE__VAPI__API_KEY, CLINIC_VOICE__VAPI__PHONE_NUMBER_ID and "
            "CLINIC_VOICE__VAPI__ASSISTANT_ID must be set when Vapi is the voice provider"
        )
    if settings.classifier.enabled and not settings.classifier.api_key:
        errors.append(
            "CLINIC_CLASSIFIER__API_KEY must be set when intent classification is enabled"
        )
    return errors


def require_valid_settings() -> Settings:
    """Cached settings, refusing to start a misconfigured production deployment.

    Raises:
        ConfigurationError: With every problem listed under ``details``
    """
    settings = get_settings()
    errors = validate_production_settings(settings)
    if errors:
        raise ConfigurationError(
            f"{len(errors)} production configuration error(s)",
            details={"errors": errors},
        )
    return settings
