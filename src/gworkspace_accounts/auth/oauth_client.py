"""OAuth exchange client for Google identity.

Wraps the three interactions with the identity provider:

- building the consent URL (offline access, forced consent prompt),
- exchanging a one-time authorization code for a token,
- exchanging a refresh token for a new access token.

Provider calls are blocking (google-auth / requests), so they run in the
default executor and are bounded by ``Settings.oauth_timeout_seconds``.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from requests import RequestException

from gworkspace_accounts.auth.models import OAuthToken, datetime_to_millis
from gworkspace_accounts.config import GOOGLE_TOKEN_URI, Settings
from gworkspace_accounts.errors import (
    AuthCodeError,
    ErrorAction,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)

# OAuth state used when the caller does not correlate the consent to an account
DEFAULT_STATE = "default"


class GoogleOAuthClient:
    """Identity provider client for one OAuth application.

    Attributes:
        settings: Client credentials, redirect URI and timeout.

    Example:
        ```python
        client = GoogleOAuthClient(Settings.from_env())
        url = client.generate_auth_url(registry.get_all_scopes())
        token = await client.exchange_code(code_from_user)
        token = await client.refresh(token.refresh_token)
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def timeout(self) -> float:
        return self.settings.oauth_timeout_seconds

    def _create_flow(self, scopes: list[str] | None) -> Flow:
        # The code comes back in a separate call, so no PKCE verifier to keep
        return Flow.from_client_config(
            self.settings.client_config(),
            scopes=scopes,
            redirect_uri=self.settings.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def generate_auth_url(self, scopes: list[str], state: str | None = None) -> str:
        """Build the consent URL for a scope list.

        The same scopes and state always produce the same URL. The URL must be
        handed to the user unmodified.

        Args:
            scopes: Scopes to request.
            state: Opaque value echoed back on the redirect.

        Returns:
            Authorization URL.

        Raises:
            AuthConfigError: If client credentials are not configured.
        """
        flow = self._create_flow(scopes)
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state or DEFAULT_STATE,
        )
        return auth_url

    def _credentials_to_token(self, credentials: Credentials, scope: Any) -> OAuthToken:
        """Convert google-auth Credentials to OAuthToken.

        Credentials without an expiry get a one hour lifetime.
        """
        if credentials.expiry:
            expires_at = credentials.expiry
        else:
            expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

        return OAuthToken(  # nosec B106 - "Bearer" is OAuth token type, not a password
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            scope=scope or "",
            token_type="Bearer",
            expiry_epoch_millis=datetime_to_millis(expires_at),
        )

    def _fetch_token(self, code: str) -> OAuthToken:
        flow = self._create_flow(None)
        flow.fetch_token(code=code)
        granted = flow.oauth2session.token.get("scope")
        return self._credentials_to_token(flow.credentials, granted)

    async def exchange_code(self, code: str) -> OAuthToken:
        """Exchange a one-time authorization code for a token.

        Codes are single-use, so this is never retried.

        Raises:
            AuthCodeError: If the code is invalid, expired, already used, or
                the exchange timed out.
            AuthConfigError: If client credentials are not configured.
        """
        loop = asyncio.get_event_loop()
        try:
            token = await asyncio.wait_for(
                loop.run_in_executor(None, self._fetch_token, code),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise AuthCodeError(
                f"Authorization code exchange timed out after {self.timeout}s",
                "Request a new authorization code and try again",
            ) from e
        except (OAuth2Error, RequestException, ValueError, Warning) as e:
            raise AuthCodeError(f"Failed to exchange authorization code for tokens: {e}") from e

        logger.info("Authorization code exchanged for token")
        return token

    def _refresh_credentials(
        self, refresh_token: str, scopes: list[str] | None = None
    ) -> OAuthToken:
        credentials = Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            scopes=scopes,
        )
        credentials.refresh(Request())
        granted = getattr(credentials, "granted_scopes", None)
        return self._credentials_to_token(credentials, granted)

    async def refresh(
        self, refresh_token: str, scopes: list[str] | None = None
    ) -> OAuthToken:
        """Exchange a refresh token for a new access token.

        The returned token's ``refresh_token`` is the one the provider sent
        back, or the given one if none was issued. ``scope`` is what the
        provider reports as granted for ``scopes``, or empty when it reports
        nothing.

        Raises:
            TokenRefreshError: On revoked or invalid grants (re-authenticate),
                or on transport failures and timeouts (retry).
        """
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._refresh_credentials, refresh_token, scopes),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TokenRefreshError(
                f"Token refresh timed out after {self.timeout}s",
                "Retry the request; re-authenticate if the problem persists",
                action=ErrorAction.RETRY,
            ) from e
        except TransportError as e:
            raise TokenRefreshError(
                f"Failed to reach the token endpoint: {e}",
                "Check your network connection and retry the request",
                action=ErrorAction.RETRY,
            ) from e
        except RefreshError as e:
            raise TokenRefreshError(f"Failed to refresh token: {e}") from e
