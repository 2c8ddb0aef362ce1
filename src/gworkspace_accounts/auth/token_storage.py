"""Per-account OAuth token storage.

Each account's token lives in its own JSON file:

    <credentials_dir>/<sanitized-email>.token.json

where the sanitized email has every non-alphanumeric character replaced by
``-`` and is lower-cased. Files are written atomically (temp file +
``os.replace``) with owner-only permissions, so a concurrent reader sees
either the old record or the new one, never a partial write.

Only the TokenManager writes through this class; other components go
through the manager to keep locking in one place.
"""

import json
import logging
import os
import re
from pathlib import Path

from pydantic import ValidationError

from gworkspace_accounts.auth.models import OAuthToken
from gworkspace_accounts.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

TOKEN_FILE_SUFFIX = ".token.json"

_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


def sanitize_email(email: str) -> str:
    """Turn an email address into a storage key.

    Example:
        >>> sanitize_email("Jane.Doe@Example.com")
        'jane-doe-example-com'
    """
    return _NON_ALPHANUMERIC.sub("-", email).lower()


class InvalidTokenRecordError(StorageUnavailableError):
    """A token file exists but does not hold a valid token record."""

    default_resolution = "Please re-authenticate the account to overwrite the corrupted token"


class TokenStorage:
    """File-backed credential store, one record per account.

    Attributes:
        credentials_dir: Directory holding the token files.

    Example:
        ```python
        storage = TokenStorage(Path(".gworkspace-accounts/credentials"))
        storage.store("a@example.com", token)
        token = storage.retrieve("a@example.com")
        ```
    """

    def __init__(self, credentials_dir: Path) -> None:
        self.credentials_dir = credentials_dir

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        if not self.credentials_dir.exists():
            self.credentials_dir.mkdir(parents=True, mode=0o700)
        else:
            self.credentials_dir.chmod(0o700)

    def token_path(self, email: str) -> Path:
        """Path of the token file for an account."""
        return self.credentials_dir / f"{sanitize_email(email)}{TOKEN_FILE_SUFFIX}"

    def store(self, email: str, token: OAuthToken) -> None:
        """Write the token record for an account, replacing any previous one.

        Raises:
            StorageUnavailableError: If the record cannot be written.
        """
        path = self.token_path(email)
        tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
        try:
            self._ensure_credentials_dir()
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(token.to_record(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailableError(
                f"Failed to save token for {email}: {e}",
                "Please ensure the credentials directory is writable",
            ) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.debug(f"Token saved at: {path}")

    def retrieve(self, email: str) -> OAuthToken | None:
        """Read the token record for an account.

        Returns:
            The token, or None if the account has no token file.

        Raises:
            InvalidTokenRecordError: If the file is not a valid token record.
            StorageUnavailableError: If the file exists but cannot be read.
        """
        path = self.token_path(email)
        try:
            content = path.read_text()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise InvalidTokenRecordError(f"Token record for {email} is invalid: {e}") from e
        except OSError as e:
            raise StorageUnavailableError(
                f"Failed to load token for {email}: {e}",
                "Please ensure the token file exists and is readable",
            ) from e

        try:
            return OAuthToken.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise InvalidTokenRecordError(f"Token record for {email} is invalid: {e}") from e

    def delete(self, email: str) -> bool:
        """Delete the token record for an account.

        Returns:
            True if a record was deleted, False if there was none.

        Raises:
            StorageUnavailableError: If the file exists but cannot be removed.
        """
        path = self.token_path(email)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageUnavailableError(
                f"Failed to delete token for {email}: {e}",
                "Please ensure you have permission to delete the token file",
            ) from e
        return True

    def list_keys(self) -> list[str]:
        """Sanitized keys of every stored token."""
        if not self.credentials_dir.exists():
            return []
        return sorted(
            p.name[: -len(TOKEN_FILE_SUFFIX)]
            for p in self.credentials_dir.glob(f"*{TOKEN_FILE_SUFFIX}")
        )
