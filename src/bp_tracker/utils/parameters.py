"""
Configuration and parameter loading using Pydantic.

This module provides centralized configuration management for the entire application.
All parameters are loaded from YAML and validated using Pydantic models. OAuth
credentials may also come from the environment (``BPT_GOOGLE_CLIENT_ID`` and friends)
so they never need to live in the YAML file.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from bp_tracker.utils.exceptions import ConfigurationError

DEFAULT_REDIRECT_URI = "http://localhost:5173"

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
]


class UserConfig(BaseModel):
    """Identity of the local user and the timezone used for calendar days."""

    id: str = "local"
    timezone: str = "UTC"


class StorageConfig(BaseModel):
    """Locations of the JSON stores."""

    readings_file: str = "data/readings.json"
    targets_file: str = "data/targets.json"
    sync_config_file: str = "data/calendar_sync.json"


class CalendarConfig(BaseModel):
    """Google Calendar OAuth and event configuration."""

    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    redirect_uri: str | None = None
    scopes: list[str] = Field(default_factory=lambda: list(CALENDAR_SCOPES))
    strict_state: bool = Field(
        False, description="Reject OAuth callbacks whose state does not match"
    )
    default_calendar_id: str = "primary"
    event_duration_minutes: int = Field(15, gt=0)

    def resolved_redirect_uri(self) -> str:
        """Return the configured redirect URI, falling back to the local origin."""
        return self.redirect_uri or DEFAULT_REDIRECT_URI


class CSVConfig(BaseModel):
    """CSV parsing configuration."""

    encodings: list[str] = Field(default_factory=lambda: ["utf-8", "utf-8-sig", "latin-1"])
    delimiters: list[str] = Field(default_factory=lambda: [",", ";", "\t"])
    column_mappings: dict[str, str] = Field(default_factory=dict)


class OutputFilesConfig(BaseModel):
    """Output file names configuration."""

    readings_csv: str = "readings.csv"
    readings_json: str = "readings.json"
    readings_ics: str = "blood-pressure-readings.ics"
    daily_summary: str = "readings_daily.csv"


class OutputConfig(BaseModel):
    """Output configuration."""

    dir: str = "output"
    files: OutputFilesConfig = Field(default_factory=OutputFilesConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    console: bool = True


class AppConfig(BaseSettings):
    """Main application configuration."""

    user: UserConfig = Field(default_factory=UserConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    csv: CSVConfig = Field(default_factory=CSVConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_prefix="BPT_", case_sensitive=False)


def apply_environment_overrides(calendar: CalendarConfig) -> CalendarConfig:
    """
    Overlay OAuth credentials taken from the environment.

    Args:
        calendar: Calendar configuration loaded from YAML.

    Returns:
        Calendar configuration with environment values applied.
    """
    client_id = os.environ.get("BPT_GOOGLE_CLIENT_ID")
    client_secret = os.environ.get("BPT_GOOGLE_CLIENT_SECRET")
    redirect_uri = os.environ.get("BPT_GOOGLE_REDIRECT_URI")

    updates: dict[str, Any] = {}
    if client_id:
        updates["client_id"] = client_id
    if client_secret:
        updates["client_secret"] = SecretStr(client_secret)
    if redirect_uri:
        updates["redirect_uri"] = redirect_uri

    return calendar.model_copy(update=updates) if updates else calendar


class ParameterLoader:
    """
    Centralized parameter loader for the application.

    Loads and validates configuration from YAML files using Pydantic models.
    Provides type-safe access to all configuration parameters.
    """

    def __init__(self, config_path: str = "config/config.yaml") -> None:
        """
        Initialize parameter loader.

        Args:
            config_path: Path to the YAML configuration file.

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid.
        """
        self.config_path = Path(config_path)
        self.config: AppConfig
        self._load_config()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file.

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid.
        """
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                config_dict = yaml.safe_load(f) or {}

            self.config = AppConfig(**config_dict)
            self.config.calendar = apply_environment_overrides(self.config.calendar)

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

    def get_user_config(self) -> UserConfig:
        """Get local user configuration."""
        return self.config.user

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration."""
        return self.config.storage

    def get_calendar_config(self) -> CalendarConfig:
        """Get Google Calendar configuration."""
        return self.config.calendar

    def get_csv_config(self) -> CSVConfig:
        """Get CSV parsing configuration."""
        return self.config.csv

    def get_output_config(self) -> OutputConfig:
        """Get output configuration."""
        return self.config.output

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration."""
        return self.config.logging
