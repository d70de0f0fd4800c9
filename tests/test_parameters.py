"""Unit tests for configuration loading."""

from pathlib import Path

import pytest

from bp_tracker.utils.exceptions import ConfigurationError
from bp_tracker.utils.parameters import DEFAULT_REDIRECT_URI, ParameterLoader


def test_load_yaml_with_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that omitted sections fall back to defaults."""
    for name in ("BPT_GOOGLE_CLIENT_ID", "BPT_GOOGLE_CLIENT_SECRET", "BPT_GOOGLE_REDIRECT_URI"):
        monkeypatch.delenv(name, raising=False)

    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "user:\n  id: alice\n  timezone: Europe/Madrid\ncalendar:\n  strict_state: true\n",
        encoding="utf-8",
    )

    loader = ParameterLoader(str(config_path))

    if loader.get_user_config().timezone != "Europe/Madrid":
        raise AssertionError("Expected the configured timezone")
    calendar = loader.get_calendar_config()
    if not calendar.strict_state or calendar.event_duration_minutes != 15:
        raise AssertionError(f"Unexpected calendar config: {calendar}")
    if calendar.resolved_redirect_uri() != DEFAULT_REDIRECT_URI:
        raise AssertionError("Expected the default redirect URI")
    if loader.get_storage_config().readings_file != "data/readings.json":
        raise AssertionError("Expected the default readings file")


def test_environment_overrides_credentials(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that OAuth credentials come from the environment."""
    monkeypatch.setenv("BPT_GOOGLE_CLIENT_ID", "env-client")
    monkeypatch.setenv("BPT_GOOGLE_CLIENT_SECRET", "env-secret")
    monkeypatch.setenv("BPT_GOOGLE_REDIRECT_URI", "https://bp.example.org/callback")

    config_path = tmp_path / "config.yaml"
    config_path.write_text("calendar:\n  client_id: yaml-client\n", encoding="utf-8")

    calendar = ParameterLoader(str(config_path)).get_calendar_config()

    if calendar.client_id != "env-client":
        raise AssertionError(f"Expected env client id, got {calendar.client_id}")
    if calendar.client_secret.get_secret_value() != "env-secret":
        raise AssertionError("Expected env client secret")
    if calendar.resolved_redirect_uri() != "https://bp.example.org/callback":
        raise AssertionError("Expected env redirect URI")


def test_missing_or_invalid_config(tmp_path: Path) -> None:
    """Test configuration errors."""
    with pytest.raises(ConfigurationError):
        ParameterLoader(str(tmp_path / "missing.yaml"))

    bad = tmp_path / "bad.yaml"
    bad.write_text("user: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ParameterLoader(str(bad))
