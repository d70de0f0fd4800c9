"""
Calendar sync domain models.

Holds the OAuth grant towards one Google Calendar, the projection of a
reading into a Calendar v3 event, and the typed outcome of batch operations.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import pytz
from pydantic import BaseModel, Field, SecretStr

from bp_tracker.domain.classification import calendar_color_id, status_label
from bp_tracker.domain.reading import Reading
from bp_tracker.utils.timezone_utils import make_timezone_aware

READING_ID_PROPERTY = "bpReadingId"
DEFAULT_CALENDAR_ID = "primary"
APP_SIGNATURE = "--- Blood Pressure Tracker App ---"


class CalendarSyncConfig(BaseModel):
    """
    One OAuth grant towards one external calendar.

    Tokens are secrets: they are excluded from ``repr`` and only revealed when
    the calendar client needs them or the config is saved to its store.
    """

    enabled: bool = False
    access_token: SecretStr | None = None
    refresh_token: SecretStr | None = None
    expires_at: int | None = Field(None, description="Access token expiry, epoch millis")
    calendar_id: str = DEFAULT_CALENDAR_ID
    auto_sync: bool = False
    last_synced_at: datetime | None = None

    def to_storage_dict(self) -> dict[str, Any]:
        """Serialize including token values, for the sync config store only."""
        data = self.model_dump(mode="json")
        data["access_token"] = (
            self.access_token.get_secret_value() if self.access_token else None
        )
        data["refresh_token"] = (
            self.refresh_token.get_secret_value() if self.refresh_token else None
        )
        return data

    @property
    def is_connected(self) -> bool:
        return self.enabled and self.access_token is not None


class AuthorizationRequest(BaseModel):
    """Where to send the user, and the anti-CSRF state to remember meanwhile."""

    url: str
    state: str


class CalendarInfo(BaseModel):
    """Calendar entry from the user's calendar list."""

    id: str
    summary: str | None = None
    primary: bool = False


def format_reading_event(
    reading: Reading, timezone: str = "UTC", duration_minutes: int = 15
) -> dict[str, Any]:
    """
    Project a reading into a Calendar v3 event body.

    The reading id is stored in a private extended property so the event can
    be found again by tag without a local event-id index.
    """
    start = reading.date.astimezone(pytz.utc)
    end = start + timedelta(minutes=duration_minutes)
    status = status_label(reading.systolic, reading.diastolic)
    recorded = make_timezone_aware(reading.date, timezone).strftime("%Y-%m-%d %H:%M")

    lines = [
        "Blood Pressure Reading",
        "",
        "📊 Measurements:",
        f"• Systolic: {reading.systolic} mmHg",
        f"• Diastolic: {reading.diastolic} mmHg",
        f"• Pulse: {reading.pulse} bpm",
        "",
        f"📈 Status: {status}",
        "",
    ]
    if reading.notes:
        lines += [f"📝 Notes: {reading.notes}", ""]
    lines += [f"🕒 Recorded: {recorded}", "", APP_SIGNATURE]

    return {
        "summary": f"BP: {reading.systolic}/{reading.diastolic} - {status}",
        "description": "\n".join(lines),
        "start": {"dateTime": start.isoformat(), "timeZone": timezone},
        "end": {"dateTime": end.isoformat(), "timeZone": timezone},
        "colorId": calendar_color_id(reading.systolic, reading.diastolic),
        "extendedProperties": {"private": {READING_ID_PROPERTY: str(reading.id)}},
    }


class SyncStatus(str, Enum):
    """Overall outcome of a batch calendar operation."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class ItemError(BaseModel):
    """A reading the batch could not process."""

    reading_id: str
    message: str


class SyncResult(BaseModel):
    """
    Typed outcome of ``sync_readings`` and ``rebuild_sync_tracking``.

    ``config`` always carries a refreshed ``last_synced_at`` for a batch that
    got as far as processing items, even when some of them failed.
    """

    status: SyncStatus
    config: CalendarSyncConfig
    total: int = 0
    created: int = 0
    marked_synced: int = 0
    marked_unsynced: int = 0
    errors: list[ItemError] = Field(default_factory=list)
    error: str | None = Field(None, description="Hard failure that stopped the batch")

    @property
    def succeeded(self) -> int:
        return self.created + self.marked_synced + self.marked_unsynced
