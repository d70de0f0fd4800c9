"""Unit tests for the Google Calendar client wrapper."""

from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from bp_tracker.infrastructure.calendar_client.client import CalendarClient
from bp_tracker.utils.exceptions import CalendarClientError


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"")


def _client_failing_with(error: Exception) -> tuple[CalendarClient, MagicMock]:
    service = MagicMock()
    events = service.events.return_value
    for method in ("insert", "update", "delete", "list"):
        getattr(events, method).return_value.execute.side_effect = error
    service.calendarList.return_value.list.return_value.execute.side_effect = error
    return CalendarClient("access-1", service=service), service


def test_delete_missing_event_is_success() -> None:
    """Test that deleting an event that is already gone does not raise."""
    for status in (404, 410):
        client, service = _client_failing_with(_http_error(status))

        client.delete_event("primary", "evt-1")

        service.events.return_value.delete.assert_called_once_with(
            calendarId="primary", eventId="evt-1"
        )


def test_http_errors_carry_status() -> None:
    """Test that API errors become CalendarClientError with the HTTP status."""
    client, _ = _client_failing_with(_http_error(500))

    with pytest.raises(CalendarClientError) as exc_info:
        client.insert_event("primary", {"summary": "BP"})
    if exc_info.value.status != 500:
        raise AssertionError(f"Expected status 500, got {exc_info.value.status}")

    with pytest.raises(CalendarClientError) as exc_info:
        client.delete_event("primary", "evt-1")
    if exc_info.value.status != 500:
        raise AssertionError(f"Expected status 500 on delete, got {exc_info.value.status}")


def test_transport_errors_become_client_errors() -> None:
    """Test that network failures surface as CalendarClientError without a status."""
    for error in (httplib2.ServerNotFoundError("dns fail"), TimeoutError("timed out")):
        client, _ = _client_failing_with(error)

        with pytest.raises(CalendarClientError) as exc_info:
            client.find_events_by_private_property("primary", "bpReadingId", "r1")
        if exc_info.value.status is not None:
            raise AssertionError(f"Expected no status, got {exc_info.value.status}")

        with pytest.raises(CalendarClientError):
            client.delete_event("primary", "evt-1")
        with pytest.raises(CalendarClientError):
            client.list_calendars()


def test_find_and_list_parse_results() -> None:
    """Test event search and paginated calendar listing."""
    service = MagicMock()
    service.events.return_value.list.return_value.execute.return_value = {
        "items": [{"id": "evt-1"}]
    }
    service.calendarList.return_value.list.return_value.execute.side_effect = [
        {"items": [{"id": "primary-id", "summary": "Me", "primary": True}], "nextPageToken": "p2"},
        {"items": [{"id": "other", "summary": "Health"}]},
    ]
    client = CalendarClient("access-1", service=service)

    events = client.find_events_by_private_property("primary", "bpReadingId", "r1")
    if [e["id"] for e in events] != ["evt-1"]:
        raise AssertionError(f"Unexpected events: {events}")
    service.events.return_value.list.assert_called_once_with(
        calendarId="primary",
        privateExtendedProperty="bpReadingId=r1",
        showDeleted=False,
        maxResults=10,
    )

    calendars = client.list_calendars()
    if [(c.id, c.primary) for c in calendars] != [("primary-id", True), ("other", False)]:
        raise AssertionError(f"Unexpected calendars: {calendars}")
