"""Unit tests for targets and calendar sync config stores."""

import json
from pathlib import Path

import pytest
from pydantic import SecretStr

from bp_tracker.domain.calendar import CalendarSyncConfig
from bp_tracker.infrastructure.storage.settings_store import SyncConfigStore, TargetsStore
from bp_tracker.utils.exceptions import ValidationError


def test_targets_default(tmp_path: Path) -> None:
    """Test that a user without saved targets gets 120/80/70."""
    targets = TargetsStore(tmp_path / "targets.json").get("alice")

    if (targets.systolic, targets.diastolic, targets.pulse) != (120, 80, 70):
        raise AssertionError(f"Expected default targets, got {targets}")


def test_targets_partial_update_and_reset(tmp_path: Path) -> None:
    """Test partial updates persist and reset restores defaults."""
    store = TargetsStore(tmp_path / "targets.json")

    store.update("alice", systolic=130)
    targets = TargetsStore(tmp_path / "targets.json").get("alice")
    if targets.systolic != 130 or targets.diastolic != 80:
        raise AssertionError(f"Expected 130/80 after update, got {targets}")

    other = store.get("bob")
    if other.systolic != 120:
        raise AssertionError("Expected targets to be stored per user")

    store.reset("alice")
    if store.get("alice").systolic != 120:
        raise AssertionError("Expected reset to restore the default systolic target")


def test_targets_range_validation(tmp_path: Path) -> None:
    """Test target range messages."""
    store = TargetsStore(tmp_path / "targets.json")

    with pytest.raises(ValidationError) as exc_info:
        store.update("alice", systolic=250)
    if "Systolic target must be between 80 and 200 mmHg" not in str(exc_info.value):
        raise AssertionError(f"Unexpected message: {exc_info.value}")

    with pytest.raises(ValidationError):
        store.update("alice", pulse=40)

    with pytest.raises(ValidationError):
        store.update("alice", weight=80)

    if store.get("alice").systolic != 120:
        raise AssertionError("Expected rejected updates to leave targets unchanged")


def test_sync_config_round_trip(tmp_path: Path) -> None:
    """Test that tokens survive save and load."""
    store = SyncConfigStore(tmp_path / "sync.json")
    config = CalendarSyncConfig(
        enabled=True,
        access_token=SecretStr("access"),
        refresh_token=SecretStr("refresh"),
        expires_at=1_700_000_000_000,
        calendar_id="work",
    )

    store.save("alice", config)
    loaded = store.load("alice")

    if loaded.access_token is None or loaded.access_token.get_secret_value() != "access":
        raise AssertionError("Expected access token to round-trip")
    if loaded.refresh_token is None or loaded.refresh_token.get_secret_value() != "refresh":
        raise AssertionError("Expected refresh token to round-trip")
    if loaded.calendar_id != "work" or not loaded.is_connected:
        raise AssertionError(f"Expected connected config on 'work', got {loaded}")

    raw = json.loads((tmp_path / "sync.json").read_text(encoding="utf-8"))
    if raw["configs"]["alice"]["access_token"] != "access":
        raise AssertionError("Expected the store file to hold the token value")


def test_sync_config_missing_and_clear(tmp_path: Path) -> None:
    """Test defaults for unknown users and clearing."""
    store = SyncConfigStore(tmp_path / "sync.json")

    if store.load("alice").is_connected:
        raise AssertionError("Expected a disconnected config for an unknown user")

    store.save("alice", CalendarSyncConfig(enabled=True, access_token=SecretStr("a")))
    store.clear("alice")
    if store.load("alice").is_connected:
        raise AssertionError("Expected a disconnected config after clear")


def test_pending_state_is_consumed(tmp_path: Path) -> None:
    """Test that the pending OAuth state can be read only once."""
    store = SyncConfigStore(tmp_path / "sync.json")
    store.save_pending_state("alice", "abc123")

    if store.pop_pending_state("alice") != "abc123":
        raise AssertionError("Expected the saved state")
    if store.pop_pending_state("alice") is not None:
        raise AssertionError("Expected the state to be forgotten after use")
