"""Data models for accounts, OAuth tokens and validation results.

Token records are persisted with camelCase keys
(``accessToken``, ``refreshToken``, ``scope``, ``tokenType``,
``expiryEpochMillis``). Records written by the Google client libraries
(``access_token``, ``expiry_date``, ...) are accepted on load.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Tokens expiring within this window are treated as expired
DEFAULT_EXPIRY_BUFFER_MILLIS = 5 * 60 * 1000

AUTH_INSTRUCTIONS = [
    "1. Share the authorization URL below with the user as a clickable link",
    "2. The user signs in with the Google account being authenticated",
    "3. The user allows the requested permissions",
    "4. The user copies the authorization code shown after consent",
    "5. Run this request again with the auth_code parameter set to that code",
]


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def datetime_to_millis(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class TokenState(str, Enum):
    """Lifecycle state of an account's token at validation time."""

    ABSENT = "absent"
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    REFRESHED = "refreshed"
    REFRESH_FAILED = "refresh_failed"
    MISSING_SCOPE = "missing_scope"
    INVALID = "invalid"


class OAuthToken(BaseModel):
    """OAuth token record for a single account.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token used to mint new access tokens.
        scope: Space-separated list of granted scopes.
        token_type: Token type, normally "Bearer".
        expiry_epoch_millis: Access token expiry in epoch milliseconds.
    """

    access_token: str = Field(
        ...,
        alias="accessToken",
        validation_alias=AliasChoices("accessToken", "access_token"),
    )
    refresh_token: str | None = Field(
        default=None,
        alias="refreshToken",
        validation_alias=AliasChoices("refreshToken", "refresh_token"),
    )
    scope: str = Field(default="", description="Space-separated granted scopes")
    token_type: str = Field(
        default="Bearer",
        alias="tokenType",
        validation_alias=AliasChoices("tokenType", "token_type"),
    )
    expiry_epoch_millis: int = Field(
        ...,
        alias="expiryEpochMillis",
        validation_alias=AliasChoices("expiryEpochMillis", "expiry_epoch_millis", "expiry_date"),
    )

    model_config = {"populate_by_name": True}

    @field_validator("scope", mode="before")
    @classmethod
    def _join_scope_list(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, list | tuple | set | frozenset):
            return " ".join(value)
        return value

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list."""
        return self.scope.split()

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expiry_epoch_millis / 1000, tz=timezone.utc)

    def is_expired(
        self,
        buffer_millis: int = DEFAULT_EXPIRY_BUFFER_MILLIS,
        now: int | None = None,
    ) -> bool:
        """Check if the token is expired or about to expire.

        Args:
            buffer_millis: Safety margin before the real expiry.
            now: Current time in epoch milliseconds. Defaults to wall clock.

        Returns:
            True if ``now >= expiry - buffer``.
        """
        current = now_millis() if now is None else now
        return current >= self.expiry_epoch_millis - buffer_millis

    def to_record(self) -> dict[str, Any]:
        """JSON-serializable credential store record."""
        return self.model_dump(by_alias=True)


class ScopeRequirement(BaseModel):
    """A scope registered by a module.

    Attributes:
        module: Logical module name (e.g. "gmail").
        scope: OAuth scope string.
        description: Why the module needs the scope.
    """

    module: str = Field(..., description="Module requiring the scope")
    scope: str = Field(..., description="OAuth scope string")
    description: str = Field(default="", description="Why the scope is needed")


class TokenStatus(BaseModel):
    """Result of validating an account's token. Computed per call, never stored.

    Attributes:
        valid: True if ``token`` may be used right now.
        state: Lifecycle state the validation ended in.
        token: The usable token, when valid.
        reason: Why the token is not usable.
        auth_url: Consent URL to re-authenticate with, when interactive action is needed.
        required_scopes: Scopes the consent URL requests.
        error_code: Error kind behind a failure, when one was raised.
        retryable: True if retrying the same call may succeed without user action.
    """

    valid: bool
    state: TokenState
    token: OAuthToken | None = None
    reason: str | None = None
    auth_url: str | None = None
    required_scopes: list[str] | None = None
    error_code: str | None = None
    retryable: bool = False

    def to_response(self) -> dict[str, Any]:
        """Structured, token-free payload for end users.

        Returns:
            ``{"status": "valid"}`` with expiry info, ``{"status": "retry"}``
            for transient failures, or ``{"status": "auth_required"}`` with
            the authorization URL and instructions.
        """
        if self.valid and self.token is not None:
            return {
                "status": "valid",
                "state": self.state.value,
                "expires_at": self.token.expires_at.isoformat(),
                "scopes": self.token.scopes,
            }

        response: dict[str, Any] = {
            "status": "retry" if self.retryable else "auth_required",
            "state": self.state.value,
            "reason": self.reason,
        }
        if self.error_code:
            response["code"] = self.error_code
        if self.auth_url:
            response["auth_url"] = self.auth_url
            response["required_scopes"] = self.required_scopes or []
            response["message"] = "Please complete authentication:"
            response["instructions"] = "\n".join(AUTH_INSTRUCTIONS)
        return response


class Account(BaseModel):
    """A known Workspace account.

    Attributes:
        email: Account email, unique key.
        category: Free-form grouping (e.g. "work", "personal").
        description: Free-text description.
        auth_status: Token status computed on read, never persisted.
    """

    email: str = Field(..., description="Account email")
    category: str = Field(..., description="Account category")
    description: str = Field(..., description="Account description")
    auth_status: TokenStatus | None = Field(default=None, description="Derived token status")

    def to_record(self) -> dict[str, str]:
        """Persisted fields only."""
        return self.model_dump(include={"email", "category", "description"})

    def to_response(self) -> dict[str, Any]:
        data: dict[str, Any] = self.to_record()
        if self.auth_status is not None:
            data["auth_status"] = self.auth_status.to_response()
        return data
