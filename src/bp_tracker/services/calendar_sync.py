"""
Calendar reconciliation service.

Keeps readings and their Google Calendar events in agreement. Each reading
maps to at most one event, found by the reading id stored in the event's
private extended properties. The local ``synced_to_calendar`` flag is only a
hint; the remote tag is what decides whether an event exists.

The service holds no user tokens. Every operation takes the caller's
``CalendarSyncConfig``; a token refresh updates that object in place and the
caller is responsible for saving it afterwards.
"""

import logging
import secrets
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from pydantic import SecretStr

from bp_tracker.domain.calendar import (
    READING_ID_PROPERTY,
    AuthorizationRequest,
    CalendarInfo,
    CalendarSyncConfig,
    ItemError,
    SyncResult,
    SyncStatus,
    format_reading_event,
)
from bp_tracker.domain.reading import Reading
from bp_tracker.infrastructure.calendar_client.auth import GoogleOAuth, generate_state
from bp_tracker.infrastructure.calendar_client.client import TRANSPORT_ERRORS, CalendarClient
from bp_tracker.infrastructure.storage.reading_store import ReadingStore
from bp_tracker.utils.exceptions import AuthenticationError, BPTrackerError
from bp_tracker.utils.parameters import CalendarConfig
from bp_tracker.utils.timezone_utils import now_utc, to_epoch_millis

logger = logging.getLogger(__name__)

# Refresh access tokens that expire within this margin
REFRESH_MARGIN = timedelta(minutes=5)

ProgressCallback = Callable[[int, int], None]


class CalendarSyncService:
    """
    Service for reconciling readings with Google Calendar.

    Orchestrates the OAuth helper, the calendar client and the reading store.
    Batch operations run sequentially and never abort on a single item.
    """

    def __init__(
        self,
        calendar_config: CalendarConfig,
        store: ReadingStore,
        timezone: str = "UTC",
        oauth: GoogleOAuth | None = None,
        client_factory: Callable[[str], CalendarClient] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the sync service.

        Args:
            calendar_config: Application-level calendar settings.
            store: Reading store receiving the sync bookkeeping.
            timezone: Timezone written into created events.
            oauth: OAuth helper; built from ``calendar_config`` when omitted.
            client_factory: Builds a calendar client from an access token.
            clock: Returns the current aware datetime.
        """
        self.calendar_config = calendar_config
        self.store = store
        self.timezone = timezone
        self.oauth = oauth or GoogleOAuth(calendar_config)
        self.client_factory = client_factory or CalendarClient
        self.clock = clock or now_utc

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def begin_authorization(self) -> AuthorizationRequest:
        """
        Start the OAuth flow.

        Returns:
            Consent URL plus the fresh state the caller must keep until the
            redirect comes back.

        Raises:
            ConfigurationError: If no client id is configured.
        """
        state = generate_state()
        url = self.oauth.authorization_url(state)
        logger.info("Generated Google Calendar authorization URL")
        return AuthorizationRequest(url=url, state=state)

    def complete_authorization(
        self, code: str, returned_state: str | None, expected_state: str | None
    ) -> CalendarSyncConfig:
        """
        Finish the OAuth flow by exchanging the authorization code.

        A state mismatch is rejected when ``calendar.strict_state`` is on and
        only logged otherwise.

        Returns:
            A new enabled config on the default calendar, auto-sync off.

        Raises:
            AuthenticationError: On a rejected state or a failed exchange.
        """
        if not self._state_matches(returned_state, expected_state):
            if self.calendar_config.strict_state:
                raise AuthenticationError("OAuth state mismatch. Please restart the authorization.")
            logger.warning("OAuth state mismatch, continuing because strict_state is off")

        grant = self.oauth.exchange_code(code)
        logger.info("Connected to Google Calendar")
        return CalendarSyncConfig(
            enabled=True,
            access_token=SecretStr(grant.access_token),
            refresh_token=SecretStr(grant.refresh_token) if grant.refresh_token else None,
            expires_at=grant.expires_at,
            calendar_id=self.calendar_config.default_calendar_id,
            auto_sync=False,
        )

    @staticmethod
    def _state_matches(returned_state: str | None, expected_state: str | None) -> bool:
        if not returned_state or not expected_state:
            return False
        return secrets.compare_digest(returned_state.encode(), expected_state.encode())

    def ensure_valid_token(self, config: CalendarSyncConfig) -> str:
        """
        Return a usable access token, refreshing it first if it is about to expire.

        A refresh writes the new token and expiry into ``config``.

        Raises:
            AuthenticationError: If there is no token, no refresh token when
                one is needed, or the refresh is rejected.
        """
        if config.access_token is None:
            raise AuthenticationError("Not authenticated with Google Calendar")

        expires_soon = to_epoch_millis(self.clock() + REFRESH_MARGIN)
        if config.expires_at is not None and config.expires_at < expires_soon:
            if config.refresh_token is None:
                raise AuthenticationError("Refresh token not available. Please re-authenticate.")

            logger.info("Access token expiring, refreshing")
            grant = self.oauth.refresh(config.refresh_token.get_secret_value())
            config.access_token = SecretStr(grant.access_token)
            config.expires_at = grant.expires_at
            if grant.refresh_token:
                config.refresh_token = SecretStr(grant.refresh_token)

        return config.access_token.get_secret_value()

    def _client(self, config: CalendarSyncConfig) -> CalendarClient:
        return self.client_factory(self.ensure_valid_token(config))

    # ------------------------------------------------------------------
    # Single-event operations
    # ------------------------------------------------------------------

    def create_event(
        self, reading: Reading, config: CalendarSyncConfig, check_existing: bool = True
    ) -> str:
        """
        Create the calendar event for a reading and mark the reading synced.

        If an event tagged with the reading id already exists it is reused
        instead of creating a duplicate.

        Returns:
            The event id.

        Raises:
            AuthenticationError: If no valid token can be obtained.
            CalendarClientError: If the event cannot be created.
        """
        client = self._client(config)
        if check_existing:
            existing = self._lookup_or_none(client, config, reading.id)
            if existing:
                logger.info(f"Reading {reading.id} already has event {existing}")
                self._record_synced(reading.id, existing)
                return existing

        event_id = self._insert(client, config, reading)
        self._record_synced(reading.id, event_id)
        return event_id

    def update_event(self, event_id: str, reading: Reading, config: CalendarSyncConfig) -> None:
        """
        Replace the event's content with the reading's current values.

        Raises:
            AuthenticationError: If no valid token can be obtained.
            CalendarClientError: If the update fails.
        """
        client = self._client(config)
        body = format_reading_event(
            reading, self.timezone, self.calendar_config.event_duration_minutes
        )
        client.update_event(config.calendar_id, event_id, body)
        logger.info(f"Updated calendar event {event_id} for reading {reading.id}")

    def delete_event(self, event_id: str, config: CalendarSyncConfig) -> None:
        """
        Delete an event. An event that no longer exists counts as deleted.

        Raises:
            AuthenticationError: If no valid token can be obtained.
            CalendarClientError: For any other failure.
        """
        client = self._client(config)
        client.delete_event(config.calendar_id, event_id)
        logger.info(f"Deleted calendar event {event_id}")

    def check_reading_exists(self, reading_id: str, config: CalendarSyncConfig) -> bool:
        """
        Whether an event tagged with ``reading_id`` exists remotely.

        Query failures are logged and reported as absent.
        """
        try:
            client = self._client(config)
        except BPTrackerError as e:
            logger.warning(f"Cannot check calendar for reading {reading_id}: {e}")
            return False
        return self._lookup_or_none(client, config, reading_id) is not None

    def find_event_id(self, reading_id: str, config: CalendarSyncConfig) -> str | None:
        """
        Return the id of the event tagged with ``reading_id``, if any.

        Raises:
            AuthenticationError: If no valid token can be obtained.
            CalendarClientError: If the search fails.
        """
        return self._lookup(self._client(config), config, reading_id)

    def resolve_event_id(self, reading: Reading, config: CalendarSyncConfig) -> str | None:
        """Event id for a reading: the remembered one, else a tag search."""
        if reading.calendar_event_id:
            return reading.calendar_event_id
        return self.find_event_id(reading.id, config)

    def update_reading_event(self, reading: Reading, config: CalendarSyncConfig) -> str:
        """
        Push an edited reading to its event, creating the event if there is none.

        Returns:
            The event id.
        """
        event_id = self.resolve_event_id(reading, config)
        if event_id is None:
            return self.create_event(reading, config, check_existing=False)
        self.update_event(event_id, reading, config)
        return event_id

    def delete_reading_event(self, reading: Reading, config: CalendarSyncConfig) -> bool:
        """
        Remove a reading's event if it has one.

        Returns:
            True if an event was found and deleted.
        """
        event_id = self.resolve_event_id(reading, config)
        if event_id is None:
            return False
        self.delete_event(event_id, config)
        return True

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    def sync_readings(
        self,
        readings: Sequence[Reading],
        config: CalendarSyncConfig,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Push every unsynced reading to the calendar.

        Each pending reading is checked remotely before creation so that a
        stale local flag never produces a duplicate. Item failures are
        collected and the batch carries on.

        Args:
            readings: Candidate readings; already-synced ones are skipped.
            config: Sync config, updated in place on token refresh.
            on_progress: Called with ``(done, total)`` after each item.

        Returns:
            Typed result whose config has a refreshed ``last_synced_at``
            unless the batch could not start at all.
        """
        pending = [r for r in readings if not r.synced_to_calendar]
        total = len(pending)
        logger.info(f"Syncing {total} unsynced reading(s) to calendar {config.calendar_id}")

        if not pending:
            return self._finish(SyncResult(status=SyncStatus.SUCCESS, config=config), "Sync")

        try:
            client = self._client(config)
        except BPTrackerError as e:
            logger.error(f"Calendar sync failed: {e}")
            return SyncResult(status=SyncStatus.FAILURE, config=config, total=total, error=str(e))

        result = SyncResult(status=SyncStatus.SUCCESS, config=config, total=total)

        for done, reading in enumerate(pending, start=1):
            try:
                existing = self._lookup_or_none(client, config, reading.id)
                if existing:
                    self._record_synced(reading.id, existing)
                    result.marked_synced += 1
                else:
                    event_id = self._insert(client, config, reading)
                    self._record_synced(reading.id, event_id)
                    result.created += 1
            except Exception as e:
                logger.error(f"Failed to sync reading {reading.id}: {e}")
                result.errors.append(ItemError(reading_id=reading.id, message=str(e)))

            if on_progress:
                on_progress(done, total)

        return self._finish(result, "Sync")

    def rebuild_sync_tracking(
        self,
        readings: Sequence[Reading],
        config: CalendarSyncConfig,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Correct every reading's sync flag from what the calendar actually holds.

        Readings whose event was deleted remotely become unsynced; readings
        with an event but no flag become synced. A reading whose lookup fails
        keeps its flag and is reported as an item error.
        """
        total = len(readings)
        logger.info(f"Rebuilding sync tracking for {total} reading(s)")

        if not readings:
            return self._finish(SyncResult(status=SyncStatus.SUCCESS, config=config), "Rebuild")

        try:
            client = self._client(config)
        except BPTrackerError as e:
            logger.error(f"Rebuilding sync tracking failed: {e}")
            return SyncResult(status=SyncStatus.FAILURE, config=config, total=total, error=str(e))

        result = SyncResult(status=SyncStatus.SUCCESS, config=config, total=total)

        for done, reading in enumerate(readings, start=1):
            try:
                event_id = self._lookup(client, config, reading.id)
                if event_id and not reading.synced_to_calendar:
                    self.store.mark_synced(reading.id, event_id)
                    result.marked_synced += 1
                elif event_id and reading.calendar_event_id != event_id:
                    self.store.mark_synced(reading.id, event_id)
                elif not event_id and reading.synced_to_calendar:
                    self.store.mark_unsynced(reading.id)
                    result.marked_unsynced += 1
            except Exception as e:
                logger.error(f"Failed to verify reading {reading.id}: {e}")
                result.errors.append(ItemError(reading_id=reading.id, message=str(e)))

            if on_progress:
                on_progress(done, total)

        return self._finish(result, "Rebuild")

    def _finish(self, result: SyncResult, label: str) -> SyncResult:
        result.config.last_synced_at = self.clock()
        if result.errors:
            result.status = (
                SyncStatus.PARTIAL_FAILURE
                if len(result.errors) < result.total
                else SyncStatus.FAILURE
            )
        logger.info(
            f"{label} complete: {result.created} created, {result.marked_synced} marked synced, "
            f"{result.marked_unsynced} marked unsynced, {len(result.errors)} failed"
        )
        return result

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def list_calendars(self, config: CalendarSyncConfig) -> list[CalendarInfo]:
        """
        List the calendars the grant can see.

        Raises:
            AuthenticationError: If no valid token can be obtained.
            CalendarClientError: If listing fails.
        """
        return self._client(config).list_calendars()

    def test_connection(self, config: CalendarSyncConfig) -> bool:
        """Whether the grant can currently list calendars."""
        try:
            self.list_calendars(config)
        except BPTrackerError as e:
            logger.warning(f"Calendar connection test failed: {e}")
            return False
        return True

    def disconnect(self, config: CalendarSyncConfig) -> CalendarSyncConfig:
        """
        Revoke the grant and return a disconnected config.

        Revocation is best effort: the local grant is discarded even when
        Google cannot be reached.
        """
        token = config.refresh_token or config.access_token
        if token is not None:
            try:
                self.oauth.revoke(token.get_secret_value())
            except Exception as e:
                logger.warning(f"Token revocation failed, discarding grant anyway: {e}")
        logger.info("Disconnected from Google Calendar")
        return CalendarSyncConfig()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(self, client: CalendarClient, config: CalendarSyncConfig, reading: Reading) -> str:
        body = format_reading_event(
            reading, self.timezone, self.calendar_config.event_duration_minutes
        )
        event_id = client.insert_event(config.calendar_id, body)
        logger.info(f"Created calendar event {event_id} for reading {reading.id}")
        return event_id

    def _lookup(
        self, client: CalendarClient, config: CalendarSyncConfig, reading_id: str
    ) -> str | None:
        events = client.find_events_by_private_property(
            config.calendar_id, READING_ID_PROPERTY, str(reading_id)
        )
        if len(events) > 1:
            logger.warning(f"Reading {reading_id} has {len(events)} calendar events")
        return events[0]["id"] if events else None

    def _lookup_or_none(
        self, client: CalendarClient, config: CalendarSyncConfig, reading_id: str
    ) -> str | None:
        # A failed query counts as "no event", which may create a duplicate
        # rather than skip a reading.
        try:
            return self._lookup(client, config, reading_id)
        except (BPTrackerError, *TRANSPORT_ERRORS) as e:
            logger.warning(f"Event lookup failed for reading {reading_id}: {e}")
            return None

    def _record_synced(self, reading_id: str, event_id: str) -> None:
        # The event already exists; a failed local write is logged, not raised.
        try:
            self.store.mark_synced(reading_id, event_id)
        except BPTrackerError as e:
            logger.error(f"Event {event_id} created but reading {reading_id} not marked synced: {e}")
