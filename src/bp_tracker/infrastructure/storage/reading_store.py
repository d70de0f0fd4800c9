"""
Reading store.

CRUD over the user's readings plus the calendar bookkeeping setters used by
the sync service. Readings are always returned newest-first.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from bp_tracker.domain.reading import Reading, ReadingCreate, ReadingUpdate
from bp_tracker.infrastructure.storage.json_file import JsonFileStore
from bp_tracker.utils.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)


class ReadingStore(JsonFileStore):
    """
    JSON-file backed reading store.

    The document is ``{"readings": [...]}`` where each entry is a serialized
    ``Reading``.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__(path, default={"readings": []})

    def _load_readings(self) -> list[Reading]:
        document = self._load()
        try:
            return [Reading(**item) for item in document.get("readings", [])]
        except PydanticValidationError as e:
            raise StorageError(f"Corrupt reading in {self.path}: {e}") from e

    def _save_readings(self, readings: list[Reading]) -> None:
        self._save({"readings": [r.to_dict() for r in readings]})

    @staticmethod
    def _newest_first(readings: list[Reading]) -> list[Reading]:
        return sorted(readings, key=lambda r: r.date, reverse=True)

    def _index_of(self, readings: list[Reading], reading_id: str) -> int:
        for idx, reading in enumerate(readings):
            if reading.id == reading_id:
                return idx
        raise StorageError(f"Reading not found: {reading_id}")

    def list_readings(self) -> list[Reading]:
        """Return every reading, newest first."""
        return self._newest_first(self._load_readings())

    def list_by_date_range(self, start: datetime, end: datetime) -> list[Reading]:
        """Return readings with ``start <= date <= end``, newest first."""
        return [r for r in self.list_readings() if start <= r.date <= end]

    def get(self, reading_id: str) -> Reading:
        readings = self._load_readings()
        return readings[self._index_of(readings, reading_id)]

    def create(self, data: ReadingCreate) -> Reading:
        """
        Store a new reading.

        Args:
            data: Validated reading payload.

        Returns:
            The stored reading with its generated id.
        """
        return self.create_many([data])[0]

    def create_many(self, items: list[ReadingCreate]) -> list[Reading]:
        readings = self._load_readings()
        created = [Reading(id=str(uuid.uuid4()), **item.model_dump()) for item in items]
        readings.extend(created)
        self._save_readings(readings)
        logger.info(f"Stored {len(created)} reading(s)")
        return created

    def update(self, reading_id: str, data: ReadingUpdate) -> Reading:
        """
        Apply a partial edit to a stored reading.

        Raises:
            StorageError: If the reading does not exist.
            ValidationError: If the edit produces an invalid reading.
        """
        readings = self._load_readings()
        idx = self._index_of(readings, reading_id)
        changes: dict[str, Any] = data.model_dump(exclude_unset=True)
        merged = {**readings[idx].model_dump(), **changes}
        try:
            updated = Reading(**merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid update for reading {reading_id}: {e}") from e
        readings[idx] = updated
        self._save_readings(readings)
        return updated

    def delete(self, reading_id: str) -> None:
        readings = self._load_readings()
        del readings[self._index_of(readings, reading_id)]
        self._save_readings(readings)
        logger.info(f"Deleted reading {reading_id}")

    def delete_all(self) -> int:
        count = len(self._load_readings())
        self._save_readings([])
        logger.info(f"Deleted all {count} readings")
        return count

    def mark_synced(self, reading_id: str, event_id: str | None = None) -> Reading:
        """Flag a reading as present in the calendar, remembering the event id if known."""
        readings = self._load_readings()
        idx = self._index_of(readings, reading_id)
        update: dict[str, Any] = {"synced_to_calendar": True}
        if event_id:
            update["calendar_event_id"] = event_id
        readings[idx] = readings[idx].model_copy(update=update)
        self._save_readings(readings)
        return readings[idx]

    def mark_unsynced(self, reading_id: str) -> Reading:
        """Clear the calendar flag and the remembered event id."""
        readings = self._load_readings()
        idx = self._index_of(readings, reading_id)
        readings[idx] = readings[idx].model_copy(
            update={"synced_to_calendar": False, "calendar_event_id": None}
        )
        self._save_readings(readings)
        return readings[idx]
