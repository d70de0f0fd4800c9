"""Unit tests for exports and the daily summary."""

import json
from datetime import datetime
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pandas as pd
import pytest
import pytz

from bp_tracker.domain.reading import Reading
from bp_tracker.services.daily_summary import DailySummaryService
from bp_tracker.services.output import (
    OutputService,
    build_ics,
    google_calendar_link,
    import_instructions,
)
from bp_tracker.utils.exceptions import ValidationError
from bp_tracker.utils.parameters import OutputConfig


def _readings() -> list[Reading]:
    return [
        Reading(
            id="r2",
            date=datetime(2024, 1, 16, 20, 0, tzinfo=pytz.UTC),
            systolic=150,
            diastolic=95,
            pulse=80,
            notes="after stairs, tired",
        ),
        Reading(
            id="r1",
            date=datetime(2024, 1, 16, 8, 0, tzinfo=pytz.UTC),
            systolic=118,
            diastolic=76,
            pulse=64,
        ),
        Reading(
            id="r0",
            date=datetime(2024, 1, 15, 8, 0, tzinfo=pytz.UTC),
            systolic=124,
            diastolic=81,
            pulse=70,
        ),
    ]


def test_ics_structure() -> None:
    """Test the iCalendar document layout."""
    content = build_ics(_readings(), now=datetime(2024, 2, 1, 9, 0, tzinfo=pytz.UTC))

    if not content.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n"):
        raise AssertionError("Expected a VCALENDAR header with CRLF line endings")
    if not content.endswith("END:VCALENDAR\r\n"):
        raise AssertionError("Expected the document to end with END:VCALENDAR")
    if "\n" in content.replace("\r\n", ""):
        raise AssertionError("Expected no bare LF line endings")
    if content.count("BEGIN:VEVENT") != 3 or content.count("END:VEVENT") != 3:
        raise AssertionError("Expected one VEVENT per reading")

    lines = content.split("\r\n")
    if "DTSTART:20240116T200000Z" not in lines or "DTEND:20240116T201500Z" not in lines:
        raise AssertionError("Expected 15 minute events in UTC")
    if "DTSTAMP:20240201T090000Z" not in lines:
        raise AssertionError("Expected DTSTAMP from the given time")
    if "UID:bp-reading-r2@bloodpressuretracker.app" not in lines:
        raise AssertionError("Expected a UID derived from the reading id")

    description = next(line for line in lines if line.startswith("DESCRIPTION:") and "stairs" in line)
    if "after stairs\\, tired" not in description or "\\n" not in description:
        raise AssertionError(f"Expected escaped description text, got {description}")


def test_google_calendar_link() -> None:
    """Test the template link parameters."""
    link = google_calendar_link(_readings()[1])

    parsed = urlparse(link)
    params = parse_qs(parsed.query)

    if f"{parsed.scheme}://{parsed.netloc}{parsed.path}" != "https://calendar.google.com/calendar/render":
        raise AssertionError(f"Unexpected link base: {link}")
    if params["action"] != ["TEMPLATE"]:
        raise AssertionError("Expected action=TEMPLATE")
    if params["text"] != ["BP: 118/76 - ✅ Optimal"]:
        raise AssertionError(f"Unexpected event title: {params['text']}")
    if params["dates"] != ["20240116T080000Z/20240116T081500Z"]:
        raise AssertionError(f"Unexpected dates: {params['dates']}")


def test_import_instructions() -> None:
    """Test that import instructions are numbered steps."""
    steps = import_instructions()

    if len(steps) != 8 or not steps[0].startswith("1. "):
        raise AssertionError(f"Unexpected instructions: {steps}")


def test_output_service_writes_files(tmp_path: Path) -> None:
    """Test CSV, JSON and ICS export files."""
    service = OutputService(OutputConfig(dir=str(tmp_path / "out")))
    readings = _readings()

    csv_path = service.write_csv(readings)
    df = pd.read_csv(csv_path)
    if list(df["id"]) != ["r2", "r1", "r0"]:
        raise AssertionError(f"Unexpected CSV ids: {list(df['id'])}")
    if "calendar_event_id" in df.columns:
        raise AssertionError("Expected internal calendar ids to be left out of the CSV")

    json_path = service.write_json(readings)
    document = json.loads(json_path.read_text(encoding="utf-8"))
    if document["count"] != 3 or document["readings"][0]["systolic"] != 150:
        raise AssertionError(f"Unexpected JSON document: {document}")

    ics_path = service.write_ics(readings, "custom.ics")
    if ics_path.name != "custom.ics" or b"\r\n" not in ics_path.read_bytes():
        raise AssertionError("Expected a CRLF ICS file with the given name")


def test_output_service_rejects_empty_export(tmp_path: Path) -> None:
    """Test that exporting nothing is an error."""
    service = OutputService(OutputConfig(dir=str(tmp_path / "out")))

    with pytest.raises(ValidationError):
        service.write_ics([])


def test_daily_summary() -> None:
    """Test per-day averages and counts."""
    daily = DailySummaryService("UTC").summarize(_readings())

    if len(daily) != 2:
        raise AssertionError(f"Expected 2 days, got {len(daily)}")

    first, second = daily.iloc[0], daily.iloc[1]
    if str(first["date"]) != "2024-01-15" or first["reading_count"] != 1:
        raise AssertionError(f"Unexpected first day: {first.to_dict()}")
    if second["avg_systolic"] != 134.0 or second["reading_count"] != 2:
        raise AssertionError(f"Unexpected second day: {second.to_dict()}")
    if second["min_systolic"] != 118 or second["max_systolic"] != 150:
        raise AssertionError(f"Unexpected systolic range: {second.to_dict()}")


def test_daily_summary_empty() -> None:
    """Test that no readings give an empty frame with the summary columns."""
    daily = DailySummaryService().summarize([])

    if not daily.empty or "avg_systolic" not in daily.columns:
        raise AssertionError("Expected an empty summary with columns")
