"""Unit tests for the reading store."""

from datetime import datetime
from pathlib import Path

import pytest
import pytz

from bp_tracker.domain.reading import ReadingCreate, ReadingUpdate
from bp_tracker.infrastructure.storage.reading_store import ReadingStore
from bp_tracker.utils.exceptions import StorageError, ValidationError


def _payload(day: int, systolic: int = 120) -> ReadingCreate:
    return ReadingCreate(
        date=datetime(2024, 1, day, 8, 0, tzinfo=pytz.UTC),
        systolic=systolic,
        diastolic=80,
        pulse=70,
    )


def test_create_and_list_newest_first(tmp_path: Path) -> None:
    """Test that readings come back newest first."""
    store = ReadingStore(tmp_path / "readings.json")
    store.create(_payload(1))
    store.create(_payload(3))
    store.create(_payload(2))

    days = [r.date.day for r in store.list_readings()]
    if days != [3, 2, 1]:
        raise AssertionError(f"Expected newest-first order [3, 2, 1], got {days}")

    reloaded = ReadingStore(tmp_path / "readings.json").list_readings()
    if len(reloaded) != 3:
        raise AssertionError(f"Expected 3 readings after reload, got {len(reloaded)}")


def test_missing_file_is_empty(tmp_path: Path) -> None:
    """Test that a store without a file has no readings."""
    store = ReadingStore(tmp_path / "missing" / "readings.json")

    if store.list_readings():
        raise AssertionError("Expected no readings for a missing file")


def test_update_merges_partial_edit(tmp_path: Path) -> None:
    """Test that unset fields survive an edit."""
    store = ReadingStore(tmp_path / "readings.json")
    reading = store.create(_payload(1))

    updated = store.update(reading.id, ReadingUpdate(systolic=135, notes="after coffee"))

    if updated.systolic != 135 or updated.diastolic != 80:
        raise AssertionError(f"Expected 135/80, got {updated.systolic}/{updated.diastolic}")
    if updated.notes != "after coffee":
        raise AssertionError(f"Expected notes to be set, got {updated.notes}")
    if store.get(reading.id).systolic != 135:
        raise AssertionError("Expected edit to be persisted")


def test_update_rejects_invalid_result(tmp_path: Path) -> None:
    """Test that an edit producing an invalid reading is refused."""
    store = ReadingStore(tmp_path / "readings.json")
    reading = store.create(_payload(1))

    with pytest.raises(ValidationError):
        store.update(reading.id, ReadingUpdate.model_construct(systolic=500))


def test_unknown_id_raises(tmp_path: Path) -> None:
    """Test that missing ids raise StorageError."""
    store = ReadingStore(tmp_path / "readings.json")

    with pytest.raises(StorageError):
        store.get("nope")
    with pytest.raises(StorageError):
        store.delete("nope")
    with pytest.raises(StorageError):
        store.mark_synced("nope")


def test_sync_bookkeeping(tmp_path: Path) -> None:
    """Test mark_synced and mark_unsynced."""
    store = ReadingStore(tmp_path / "readings.json")
    reading = store.create(_payload(1))

    store.mark_synced(reading.id, "evt-1")
    synced = store.get(reading.id)
    if not synced.synced_to_calendar or synced.calendar_event_id != "evt-1":
        raise AssertionError(f"Expected synced with evt-1, got {synced}")

    store.mark_unsynced(reading.id)
    unsynced = store.get(reading.id)
    if unsynced.synced_to_calendar or unsynced.calendar_event_id is not None:
        raise AssertionError(f"Expected unsynced without event id, got {unsynced}")


def test_delete_and_delete_all(tmp_path: Path) -> None:
    """Test single and bulk deletion."""
    store = ReadingStore(tmp_path / "readings.json")
    first, _, _ = store.create_many([_payload(1), _payload(2), _payload(3)])

    store.delete(first.id)
    if len(store.list_readings()) != 2:
        raise AssertionError("Expected 2 readings after deleting one")

    count = store.delete_all()
    if count != 2:
        raise AssertionError(f"Expected delete_all to report 2, got {count}")
    if store.list_readings():
        raise AssertionError("Expected no readings after delete_all")


def test_list_by_date_range(tmp_path: Path) -> None:
    """Test inclusive date range filtering."""
    store = ReadingStore(tmp_path / "readings.json")
    store.create_many([_payload(1), _payload(5), _payload(9)])

    readings = store.list_by_date_range(
        datetime(2024, 1, 1, 8, 0, tzinfo=pytz.UTC),
        datetime(2024, 1, 5, 8, 0, tzinfo=pytz.UTC),
    )
    days = [r.date.day for r in readings]
    if days != [5, 1]:
        raise AssertionError(f"Expected days [5, 1], got {days}")


def test_corrupt_file_raises(tmp_path: Path) -> None:
    """Test that an unreadable document raises StorageError."""
    path = tmp_path / "readings.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        ReadingStore(path).list_readings()
