"""
Google OAuth2 helpers for the calendar integration.

Covers the authorization-code flow (authorize URL and code exchange), the
refresh grant and token revocation.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from pydantic import BaseModel

from bp_tracker.utils.exceptions import AuthenticationError, ConfigurationError
from bp_tracker.utils.parameters import CalendarConfig
from bp_tracker.utils.timezone_utils import to_epoch_millis

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class TokenGrant(BaseModel):
    """Tokens returned by a code exchange or refresh."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None


def generate_state() -> str:
    """Random 32-byte anti-CSRF state, hex encoded."""
    return secrets.token_hex(32)


def _expiry_millis(expiry: datetime | None) -> int | None:
    # google-auth reports expiry as a naive UTC datetime
    if expiry is None:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return to_epoch_millis(expiry)


class GoogleOAuth:
    """
    OAuth2 client for Google Calendar.

    Holds only the application's client credentials; user tokens are passed
    in and returned, never kept.
    """

    def __init__(self, config: CalendarConfig) -> None:
        """
        Initialize the OAuth helper.

        Args:
            config: Calendar configuration with client id, secret and redirect URI.
        """
        self.config = config

    def _require_client_id(self) -> str:
        if not self.config.client_id:
            raise ConfigurationError(
                "Google Client ID not configured. Set BPT_GOOGLE_CLIENT_ID or calendar.client_id."
            )
        return self.config.client_id

    def _require_credentials(self) -> tuple[str, str]:
        client_secret = self.config.client_secret.get_secret_value()
        if not self.config.client_id or not client_secret:
            raise ConfigurationError("Google OAuth credentials not configured")
        return self.config.client_id, client_secret

    def _client_config(self) -> dict[str, Any]:
        return {
            "web": {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret.get_secret_value(),
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.config.resolved_redirect_uri()],
            }
        }

    def _flow(self, state: str | None = None) -> Flow:
        # The code exchange may run in another process than the redirect, so no
        # PKCE verifier can be carried between the two steps.
        flow = Flow.from_client_config(
            self._client_config(),
            self.config.scopes,
            state=state,
            autogenerate_code_verifier=False,
        )
        flow.redirect_uri = self.config.resolved_redirect_uri()
        return flow

    def authorization_url(self, state: str) -> str:
        """
        Build the consent URL for the authorization-code flow.

        Offline access and a forced consent prompt make Google return a
        refresh token every time.

        Raises:
            ConfigurationError: If no client id is configured.
        """
        self._require_client_id()
        url, _ = self._flow(state).authorization_url(access_type="offline", prompt="consent")
        return url

    def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchange an authorization code for tokens.

        Raises:
            ConfigurationError: If client credentials are missing.
            AuthenticationError: If Google rejects the exchange.
        """
        self._require_credentials()
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise AuthenticationError(f"OAuth error: {e}") from e

        creds = flow.credentials
        logger.info("Exchanged authorization code for calendar tokens")
        return TokenGrant(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expires_at=_expiry_millis(creds.expiry),
        )

    def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Obtain a new access token with the refresh grant.

        Raises:
            ConfigurationError: If client credentials are missing.
            AuthenticationError: If the refresh is rejected.
        """
        client_id, client_secret = self._require_credentials()
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
            scopes=self.config.scopes,
        )
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            raise AuthenticationError(f"Token refresh error: {e}") from e

        logger.info("Refreshed calendar access token")
        return TokenGrant(
            access_token=creds.token,
            refresh_token=creds.refresh_token or refresh_token,
            expires_at=_expiry_millis(creds.expiry),
        )

    def revoke(self, token: str) -> bool:
        """
        Revoke a token. Returns whether Google acknowledged the revocation.

        Transport failures propagate; callers treat revocation as best effort.
        """
        response = Request()(
            url=REVOKE_URI,
            method="POST",
            body=urlencode({"token": token}),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status != 200:
            logger.warning(f"Token revocation returned HTTP {response.status}")
            return False
        return True
