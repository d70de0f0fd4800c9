"""
Output service for exporting readings.

Writes readings as CSV, JSON and iCalendar files, and builds the Google
Calendar "add event" links used when no OAuth grant is available.
"""

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import pandas as pd
import pytz

from bp_tracker.domain.calendar import format_reading_event
from bp_tracker.domain.reading import Reading
from bp_tracker.utils.exceptions import ValidationError
from bp_tracker.utils.parameters import OutputConfig
from bp_tracker.utils.timezone_utils import now_utc

logger = logging.getLogger(__name__)

CALENDAR_TEMPLATE_URL = "https://calendar.google.com/calendar/render"
ICS_PRODID = "-//Blood Pressure Tracker//EN"
ICS_CALENDAR_NAME = "Blood Pressure Readings"
ICS_UID_DOMAIN = "bloodpressuretracker.app"

CSV_COLUMNS = ["id", "date", "systolic", "diastolic", "pulse", "notes", "synced_to_calendar"]

IMPORT_INSTRUCTIONS = [
    "1. Open Google Calendar (calendar.google.com)",
    "2. Click the ⚙️ Settings icon in the top right",
    '3. Select "Import & export" from the left menu',
    '4. Click "Select file from your computer"',
    "5. Choose the downloaded .ics file",
    "6. Select which calendar to import to",
    '7. Click "Import"',
    "8. Your blood pressure readings will appear in your calendar!",
]


def _utc_stamp(dt: datetime) -> str:
    """Format as ``YYYYMMDDTHHMMSSZ``."""
    return dt.astimezone(pytz.utc).strftime("%Y%m%dT%H%M%SZ")


def _escape_ics_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics(
    readings: Sequence[Reading],
    timezone: str = "UTC",
    duration_minutes: int = 15,
    now: datetime | None = None,
) -> str:
    """
    Render readings as an iCalendar document.

    One VEVENT per reading, with CRLF line endings. Event content matches
    what the calendar sync creates, so an imported file and a synced
    calendar look alike.

    Args:
        readings: Readings to include.
        timezone: Timezone announced to the importing calendar.
        duration_minutes: Length of each event.
        now: Timestamp used for DTSTAMP and UIDs.

    Returns:
        The ``.ics`` file content.
    """
    stamp = _utc_stamp(now or now_utc())
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{ICS_PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{ICS_CALENDAR_NAME}",
        f"X-WR-TIMEZONE:{timezone}",
    ]

    for reading in readings:
        event = format_reading_event(reading, timezone, duration_minutes)
        end = reading.date + timedelta(minutes=duration_minutes)
        lines += [
            "BEGIN:VEVENT",
            f"UID:bp-reading-{reading.id}@{ICS_UID_DOMAIN}",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_utc_stamp(reading.date)}",
            f"DTEND:{_utc_stamp(end)}",
            f"SUMMARY:{_escape_ics_text(event['summary'])}",
            f"DESCRIPTION:{_escape_ics_text(event['description'])}",
            "STATUS:CONFIRMED",
            "SEQUENCE:0",
            "END:VEVENT",
        ]

    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def google_calendar_link(
    reading: Reading, timezone: str = "UTC", duration_minutes: int = 15
) -> str:
    """Build a Google Calendar template link that pre-fills an event for the reading."""
    event = format_reading_event(reading, timezone, duration_minutes)
    end = reading.date + timedelta(minutes=duration_minutes)
    params = {
        "action": "TEMPLATE",
        "text": event["summary"],
        "details": event["description"],
        "dates": f"{_utc_stamp(reading.date)}/{_utc_stamp(end)}",
    }
    return f"{CALENDAR_TEMPLATE_URL}?{urlencode(params)}"


def import_instructions() -> list[str]:
    """Steps for importing an exported ``.ics`` file into Google Calendar."""
    return list(IMPORT_INSTRUCTIONS)


class OutputService:
    """
    Service for writing readings to output files.

    File names come from ``output.files``; every file is written under
    ``output.dir``.
    """

    def __init__(self, config: OutputConfig, timezone: str = "UTC") -> None:
        """
        Initialize output service.

        Args:
            config: Output configuration.
            timezone: Timezone used for ICS exports.
        """
        self.config = config
        self.timezone = timezone
        self.output_dir = Path(config.dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _require_readings(readings: Sequence[Reading]) -> None:
        if not readings:
            raise ValidationError("No readings to export")

    def write_csv(self, readings: Sequence[Reading], file_name: str | None = None) -> Path:
        """
        Write readings to a CSV file, newest first.

        Raises:
            ValidationError: If there is nothing to export.
        """
        self._require_readings(readings)
        csv_path = self.output_dir / (file_name or self.config.files.readings_csv)

        data = [r.to_dict() for r in readings]
        df = pd.DataFrame(data, columns=CSV_COLUMNS)

        df.to_csv(csv_path, index=False, encoding="utf-8")
        logger.info(f"Wrote {len(readings)} readings to {csv_path}")
        return csv_path

    def write_json(self, readings: Sequence[Reading], file_name: str | None = None) -> Path:
        """
        Write readings to a JSON file.

        Raises:
            ValidationError: If there is nothing to export.
        """
        self._require_readings(readings)
        json_path = self.output_dir / (file_name or self.config.files.readings_json)

        document: dict[str, Any] = {
            "exported_at": now_utc().isoformat(),
            "count": len(readings),
            "readings": [r.to_dict() for r in readings],
        }

        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)

        logger.info(f"Wrote {len(readings)} readings to {json_path}")
        return json_path

    def write_ics(
        self,
        readings: Sequence[Reading],
        file_name: str | None = None,
        duration_minutes: int = 15,
    ) -> Path:
        """
        Write readings to an iCalendar file for manual calendar import.

        Raises:
            ValidationError: If there is nothing to export.
        """
        self._require_readings(readings)
        ics_path = self.output_dir / (file_name or self.config.files.readings_ics)

        content = build_ics(readings, self.timezone, duration_minutes)
        # newline="" keeps the CRLF line endings intact
        with open(ics_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

        logger.info(f"Wrote {len(readings)} calendar events to {ics_path}")
        return ics_path
