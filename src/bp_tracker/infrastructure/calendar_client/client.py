"""
Google Calendar v3 client.

Thin wrapper over the discovery-based API client: event CRUD, search by
private extended property, and calendar listing. HTTP failures surface as
``CalendarClientError`` carrying the response status; transport failures
(DNS, timeouts, refused connections) surface as ``CalendarClientError``
without one.
"""

import logging
from typing import Any

from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from bp_tracker.domain.calendar import CalendarInfo
from bp_tracker.utils.exceptions import CalendarClientError

logger = logging.getLogger(__name__)


TRANSPORT_ERRORS = (HttpLib2Error, TransportError, OSError)
API_ERRORS = (HttpError, *TRANSPORT_ERRORS)


def _error_message(e: HttpError) -> str:
    reason = getattr(e, "reason", None)
    return reason or str(e) or "Unknown error"


def _client_error(action: str, e: Exception) -> CalendarClientError:
    if isinstance(e, HttpError):
        return CalendarClientError(f"Failed to {action}: {_error_message(e)}", status=e.resp.status)
    return CalendarClientError(f"Failed to {action}: {str(e) or type(e).__name__}")


class CalendarClient:
    """
    Calendar API client bound to one access token.

    Token freshness is the caller's job; this client never refreshes.
    """

    def __init__(self, access_token: str, service: Any = None) -> None:
        """
        Initialize Calendar client.

        Args:
            access_token: Valid OAuth access token.
            service: Pre-built API resource, mainly for tests.
        """
        self.service = service or build(
            "calendar",
            "v3",
            credentials=Credentials(token=access_token),
            cache_discovery=False,
        )

    def insert_event(self, calendar_id: str, body: dict[str, Any]) -> str:
        """
        Create an event and return its id.

        Raises:
            CalendarClientError: If the API rejects the event.
        """
        try:
            created = self.service.events().insert(calendarId=calendar_id, body=body).execute()
        except API_ERRORS as e:
            raise _client_error("create event", e) from e
        event_id: str = created["id"]
        logger.debug(f"Created calendar event {event_id}")
        return event_id

    def update_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> None:
        """
        Replace an existing event.

        Raises:
            CalendarClientError: If the API rejects the update.
        """
        try:
            self.service.events().update(
                calendarId=calendar_id, eventId=event_id, body=body
            ).execute()
        except API_ERRORS as e:
            raise _client_error("update event", e) from e

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        """
        Delete an event. An event that is already gone counts as deleted.

        Raises:
            CalendarClientError: For any failure other than 404/410.
        """
        try:
            self.service.events().delete(calendarId=calendar_id, eventId=event_id).execute()
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.info(f"Event {event_id} already deleted")
                return
            raise _client_error("delete event", e) from e
        except TRANSPORT_ERRORS as e:
            raise _client_error("delete event", e) from e

    def find_events_by_private_property(
        self, calendar_id: str, key: str, value: str
    ) -> list[dict[str, Any]]:
        """
        List events tagged with ``key=value`` in their private extended properties.

        Raises:
            CalendarClientError: If the query fails.
        """
        try:
            result = (
                self.service.events()
                .list(
                    calendarId=calendar_id,
                    privateExtendedProperty=f"{key}={value}",
                    showDeleted=False,
                    maxResults=10,
                )
                .execute()
            )
        except API_ERRORS as e:
            raise _client_error("search events", e) from e
        items: list[dict[str, Any]] = result.get("items", [])
        return items

    def list_calendars(self) -> list[CalendarInfo]:
        """
        List the user's calendars, following pagination.

        Raises:
            CalendarClientError: If listing fails.
        """
        calendars: list[CalendarInfo] = []
        page_token = None

        try:
            while True:
                result = self.service.calendarList().list(pageToken=page_token).execute()
                for item in result.get("items", []):
                    calendars.append(
                        CalendarInfo(
                            id=item["id"],
                            summary=item.get("summary"),
                            primary=bool(item.get("primary", False)),
                        )
                    )
                page_token = result.get("nextPageToken")
                if not page_token:
                    break
        except API_ERRORS as e:
            raise _client_error("list calendars", e) from e

        logger.info(f"Listed {len(calendars)} calendars")
        return calendars
