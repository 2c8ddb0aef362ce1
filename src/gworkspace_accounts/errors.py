"""Error taxonomy for the credential lifecycle.

Every failure the core surfaces is an ``AccountError`` subclass carrying a
machine-readable ``code`` (an ``ErrorKind`` value), a human-readable
``resolution`` hint and an ``action`` telling the caller whether to retry
the same call or send the user through re-authentication.

Example:
    ```python
    try:
        await accounts.validate_account("someone@example.com")
    except AccountError as e:
        if e.kind is ErrorKind.ACCOUNT_NOT_FOUND:
            ...
        return e.to_dict()
    ```
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced by the core."""

    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    DUPLICATE_ACCOUNT = "DUPLICATE_ACCOUNT"
    INVALID_EMAIL = "INVALID_EMAIL"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    AUTH_CODE_INVALID = "AUTH_CODE_INVALID"
    MISSING_SCOPE = "MISSING_SCOPE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    AUTH_CONFIG_INVALID = "AUTH_CONFIG_INVALID"


class ErrorAction(str, Enum):
    """What the caller has to do about an error."""

    RETRY = "retry"
    REAUTHENTICATE = "reauthenticate"
    FIX_REQUEST = "fix_request"


class AccountError(Exception):
    """Base class for all credential lifecycle errors.

    Attributes:
        kind: The error kind.
        resolution: Hint for resolving the error.
        action: Whether the call can be retried as-is or needs user action.
    """

    kind: ErrorKind = ErrorKind.STORAGE_UNAVAILABLE
    default_resolution: str = ""
    default_action: ErrorAction = ErrorAction.FIX_REQUEST

    def __init__(
        self,
        message: str,
        resolution: str | None = None,
        action: ErrorAction | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.resolution = resolution or self.default_resolution
        self.action = action or self.default_action

    @property
    def code(self) -> str:
        """Machine-readable error code."""
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Structured error payload for tool and HTTP responses."""
        return {
            "status": "retry" if self.action is ErrorAction.RETRY else "error",
            "code": self.code,
            "error": self.message,
            "resolution": self.resolution,
            "action": self.action.value,
        }


class AccountNotFoundError(AccountError):
    kind = ErrorKind.ACCOUNT_NOT_FOUND
    default_resolution = "Please provide category and description for new accounts"


class DuplicateAccountError(AccountError):
    kind = ErrorKind.DUPLICATE_ACCOUNT
    default_resolution = "Use update_account to modify existing accounts"


class InvalidEmailError(AccountError):
    kind = ErrorKind.INVALID_EMAIL
    default_resolution = "Please provide a valid email address"


class TokenNotFoundError(AccountError):
    """No usable token for an account.

    Carries the re-authentication payload so the dispatch layer can pass it
    to the caller verbatim.
    """

    kind = ErrorKind.TOKEN_NOT_FOUND
    default_resolution = "Please authenticate the account"
    default_action = ErrorAction.REAUTHENTICATE

    def __init__(
        self,
        message: str,
        resolution: str | None = None,
        action: ErrorAction | None = None,
        auth_url: str | None = None,
        required_scopes: list[str] | None = None,
    ) -> None:
        super().__init__(message, resolution, action)
        self.auth_url = auth_url
        self.required_scopes = required_scopes or []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.auth_url:
            payload["status"] = "auth_required"
            payload["auth_url"] = self.auth_url
            payload["required_scopes"] = self.required_scopes
        return payload


class TokenRefreshError(AccountError):
    kind = ErrorKind.TOKEN_REFRESH_FAILED
    default_resolution = "Please re-authenticate the account"
    default_action = ErrorAction.REAUTHENTICATE


class AuthCodeError(AccountError):
    kind = ErrorKind.AUTH_CODE_INVALID
    default_resolution = "Please ensure the authorization code is valid and not expired"
    default_action = ErrorAction.REAUTHENTICATE


class MissingScopeError(AccountError):
    """Granted scopes do not cover a requirement.

    Attributes:
        missing_scopes: Every uncovered scope, first unmet requirement first.
    """

    kind = ErrorKind.MISSING_SCOPE
    default_resolution = "Please re-authenticate to grant the required scopes"
    default_action = ErrorAction.REAUTHENTICATE

    def __init__(
        self,
        message: str,
        missing_scopes: list[str],
        resolution: str | None = None,
    ) -> None:
        super().__init__(message, resolution)
        self.missing_scopes = missing_scopes

    @property
    def first_missing(self) -> str:
        return self.missing_scopes[0]


class StorageUnavailableError(AccountError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    default_resolution = "Please ensure the credentials directory is readable and writable"


class AuthConfigError(AccountError):
    kind = ErrorKind.AUTH_CONFIG_INVALID
    default_resolution = (
        "Set GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET, "
        "or point AUTH_CONFIG_FILE at a JSON file with client_id and client_secret"
    )
