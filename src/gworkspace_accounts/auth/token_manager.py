"""Token lifecycle management.

The TokenManager decides whether an account's stored token can be used,
refreshes it when it has expired, checks that it covers the scopes an
operation needs, and otherwise produces the consent URL the user has to
visit.

Token states per account::

    ABSENT -> VALID -> EXPIRED -> REFRESHING -> VALID (refreshed)
                                            \\-> REFRESH_FAILED

ABSENT and REFRESH_FAILED both end in "re-authentication required".

Validation is local and optimistic: no API call is made to check a token.
Revoked access surfaces as a 401/403 from the Workspace API, after which the
caller validates again passing the rejected access token, which forces one
refresh.

All work for one account runs under a per-account lock, so concurrent
validations of the same expired token share a single refresh.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager

from google.oauth2.credentials import Credentials

from gworkspace_accounts.auth.models import (
    DEFAULT_EXPIRY_BUFFER_MILLIS,
    OAuthToken,
    TokenState,
    TokenStatus,
    now_millis,
)
from gworkspace_accounts.auth.oauth_client import GoogleOAuthClient
from gworkspace_accounts.auth.scope_registry import ScopeRegistry
from gworkspace_accounts.auth.token_storage import (
    InvalidTokenRecordError,
    TokenStorage,
    sanitize_email,
)
from gworkspace_accounts.config import GOOGLE_TOKEN_URI
from gworkspace_accounts.errors import ErrorAction, MissingScopeError, TokenRefreshError

logger = logging.getLogger(__name__)


class TokenManager:
    """Validates, refreshes and persists per-account OAuth tokens.

    Attributes:
        storage: Credential store. Only this class writes to it.
        oauth_client: Identity provider client used for refresh and code exchange.
        scope_registry: Registered scope requirements.
        buffer_millis: Tokens expiring within this window count as expired.

    Example:
        ```python
        manager = TokenManager(storage, oauth_client, registry)

        status = await manager.validate_token("a@example.com", gmail_scopes)
        if status.valid:
            headers = {"Authorization": f"Bearer {status.token.access_token}"}
        else:
            return status.to_response()  # contains auth_url
        ```
    """

    def __init__(
        self,
        storage: TokenStorage,
        oauth_client: GoogleOAuthClient,
        scope_registry: ScopeRegistry,
        buffer_millis: int = DEFAULT_EXPIRY_BUFFER_MILLIS,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.storage = storage
        self.oauth_client = oauth_client
        self.scope_registry = scope_registry
        self.buffer_millis = buffer_millis
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _account_lock(self, email: str) -> AsyncIterator[None]:
        """Hold the account's lock. The lock is dropped once nobody holds or awaits it."""
        key = sanitize_email(email)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def load_token(self, email: str) -> OAuthToken | None:
        """Read the stored token for an account, or None."""
        logger.debug(f"Loading token for account: {email}")
        async with self._account_lock(email):
            return self.storage.retrieve(email)

    async def save_token(self, email: str, token: OAuthToken) -> None:
        """Persist a token as the account's current record.

        Raises:
            StorageUnavailableError: If the record cannot be written.
        """
        async with self._account_lock(email):
            self._save(email, token)

    def _save(self, email: str, token: OAuthToken) -> None:
        logger.info(f"Saving token for account: {email}")
        self.storage.store(email, token)

    async def delete_token(self, email: str) -> bool:
        """Remove an account's token. Deleting a missing token succeeds.

        Returns:
            True if a token was deleted, False if there was none.

        Raises:
            StorageUnavailableError: On any failure other than "not found".
        """
        async with self._account_lock(email):
            deleted = self.storage.delete(email)
        if deleted:
            logger.info(f"Deleted token for account: {email}")
        else:
            logger.debug(f"No token to delete for account: {email}")
        return deleted

    def get_auth_url(self, scopes: Iterable[str] | None = None, email: str | None = None) -> str:
        """Consent URL for a scope list.

        Args:
            scopes: Scopes to request. Defaults to every registered scope.
            email: Account the consent is for; its sanitized form is sent as
                the OAuth state.

        Raises:
            AuthConfigError: If client credentials are not configured.
        """
        requested = list(scopes) if scopes else self.scope_registry.get_all_scopes()
        state = sanitize_email(email) if email else None
        return self.oauth_client.generate_auth_url(requested, state=state)

    async def exchange_code(self, email: str, code: str) -> OAuthToken:
        """Exchange an authorization code and store the resulting token.

        Raises:
            AuthCodeError: If the code is rejected. Not retried.
            StorageUnavailableError: If the token cannot be saved.
        """
        token = await self.oauth_client.exchange_code(code)
        await self.save_token(email, token)
        return token

    def get_credentials(self, email: str) -> Credentials | None:
        """google-auth Credentials for the stored token, for Google API clients.

        No validation or refresh happens here; call validate_token first.
        """
        token = self.storage.retrieve(email)
        if token is None:
            return None

        settings = self.oauth_client.settings
        return Credentials(  # nosec B106 - token_uri is public Google OAuth endpoint
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scopes=token.scopes or None,
        )

    async def validate_token(
        self,
        email: str,
        required_scopes: Iterable[str] | None = None,
        rejected_access_token: str | None = None,
    ) -> TokenStatus:
        """Return a usable token for an account, or what to do to get one.

        Args:
            email: Account email.
            required_scopes: Scopes the operation needs. When omitted only
                expiry is checked, and the consent URL requests every
                registered scope.
            rejected_access_token: Access token the API just answered with
                401/403. If it is still the stored one, it is refreshed even
                if not expired.

        Returns:
            TokenStatus. ``valid`` is True only if the token is unexpired
            (with buffer) and covers ``required_scopes``.

        Raises:
            StorageUnavailableError: If the credential store cannot be read
                or the refreshed token cannot be written.
        """
        required = list(dict.fromkeys(required_scopes)) if required_scopes else None
        async with self._account_lock(email):
            return await self._validate(email, required, rejected_access_token)

    def _reauth_status(
        self,
        email: str,
        state: TokenState,
        reason: str,
        required: list[str] | None,
        error_code: str | None = None,
        retryable: bool = False,
    ) -> TokenStatus:
        consent_scopes = required or self.scope_registry.get_all_scopes()
        return TokenStatus(
            valid=False,
            state=state,
            reason=reason,
            auth_url=self.get_auth_url(consent_scopes, email=email),
            required_scopes=consent_scopes,
            error_code=error_code,
            retryable=retryable,
        )

    async def _validate(
        self,
        email: str,
        required: list[str] | None,
        rejected_access_token: str | None,
    ) -> TokenStatus:
        logger.debug(f"Validating token for account: {email}")

        try:
            token = self.storage.retrieve(email)
        except InvalidTokenRecordError as e:
            logger.warning(f"Stored token for {email} is unreadable: {e}")
            return self._reauth_status(
                email, TokenState.INVALID, "Invalid token format", required, error_code=e.code
            )

        if token is None:
            logger.debug(f"No token found for {email}")
            return self._reauth_status(email, TokenState.ABSENT, "No token found", required)

        state = TokenState.VALID
        rejected = (
            rejected_access_token is not None and token.access_token == rejected_access_token
        )
        if rejected or token.is_expired(self.buffer_millis, self._clock()):
            if not token.refresh_token:
                logger.debug(f"Token for {email} expired and has no refresh token")
                return self._reauth_status(email, TokenState.EXPIRED, "Token expired", required)

            logger.info(f"Token for {email} expired, attempting refresh")
            try:
                refreshed = await self.oauth_client.refresh(
                    token.refresh_token, token.scopes or None
                )
            except TokenRefreshError as e:
                # Stored token is left untouched so a later attempt can retry
                logger.warning(f"Token refresh failed for {email}: {e}")
                return self._reauth_status(
                    email,
                    TokenState.REFRESH_FAILED,
                    "Token refresh failed",
                    required,
                    error_code=e.code,
                    retryable=e.action is ErrorAction.RETRY,
                )

            token = _merge_refreshed(token, refreshed)
            self._save(email, token)
            logger.info(f"Token refreshed successfully for {email}")
            state = TokenState.REFRESHED

        if required:
            try:
                self.scope_registry.validate_scopes(token.scopes, required)
            except MissingScopeError as e:
                logger.info(f"Token for {email} is missing scope {e.first_missing}")
                return self._reauth_status(
                    email, TokenState.MISSING_SCOPE, e.message, required, error_code=e.code
                )

        return TokenStatus(valid=True, state=state, token=token)


def _merge_refreshed(old: OAuthToken, new: OAuthToken) -> OAuthToken:
    """Keep the old refresh token and scope when the provider sent none."""
    return new.model_copy(
        update={
            "refresh_token": new.refresh_token or old.refresh_token,
            "scope": new.scope or old.scope,
            "token_type": new.token_type or old.token_type,
        }
    )
