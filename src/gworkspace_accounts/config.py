"""Environment-driven configuration.

Environment Variables:
    GOOGLE_OAUTH_CLIENT_ID: Google OAuth client ID
    GOOGLE_OAUTH_CLIENT_SECRET: Google OAuth client secret
    GOOGLE_OAUTH_REDIRECT_URI: Redirect URI (default: http://127.0.0.1:8789/callback)
    AUTH_CONFIG_FILE: JSON file with client_id/client_secret/redirect_uri,
        used for any value not set through the variables above
    GWORKSPACE_ACCOUNTS_DIR: Base directory (default: ./.gworkspace-accounts)
    ACCOUNTS_FILE: Account list location (default: <base>/accounts.json)
    GWORKSPACE_CREDENTIALS_DIR: Per-account token directory (default: <base>/credentials)
    GWORKSPACE_OAUTH_TIMEOUT: Seconds before a provider call is abandoned (default: 30)
    GWORKSPACE_TOKEN_BUFFER_SECONDS: Expiry safety margin (default: 300)
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from gworkspace_accounts.errors import AuthConfigError

logger = logging.getLogger(__name__)

DEFAULT_OAUTH_HOST = "127.0.0.1"
DEFAULT_OAUTH_PORT = 8789
DEFAULT_REDIRECT_URI = f"http://{DEFAULT_OAUTH_HOST}:{DEFAULT_OAUTH_PORT}/callback"
DEFAULT_CONFIG_DIR = Path.cwd() / ".gworkspace-accounts"

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public endpoint


class Settings(BaseModel):
    """Runtime settings for the credential lifecycle.

    Attributes:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        redirect_uri: Redirect URI registered for the OAuth client.
        config_dir: Base directory for accounts and credentials.
        accounts_file: Location of the account list.
        credentials_dir: Directory holding one token file per account.
        oauth_timeout_seconds: Upper bound for a single provider call.
        expiry_buffer_seconds: Tokens expiring within this window count as expired.
    """

    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    redirect_uri: str = Field(default=DEFAULT_REDIRECT_URI, description="OAuth redirect URI")
    config_dir: Path = Field(default=DEFAULT_CONFIG_DIR, description="Base directory")
    accounts_file: Path | None = Field(default=None, description="Account list path")
    credentials_dir: Path | None = Field(default=None, description="Token directory")
    oauth_timeout_seconds: float = Field(default=30.0, gt=0)
    expiry_buffer_seconds: int = Field(default=300, ge=0)

    def model_post_init(self, __context: Any) -> None:
        if self.accounts_file is None:
            self.accounts_file = self.config_dir / "accounts.json"
        if self.credentials_dir is None:
            self.credentials_dir = self.config_dir / "credentials"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            env: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Populated Settings.

        Raises:
            AuthConfigError: If AUTH_CONFIG_FILE is set but unreadable, or a
                numeric variable does not parse.
        """
        env = os.environ if env is None else env

        file_config: dict[str, Any] = {}
        auth_config_file = env.get("AUTH_CONFIG_FILE")
        if auth_config_file:
            file_config = load_auth_config_file(Path(auth_config_file))

        values: dict[str, Any] = {
            "client_id": env.get("GOOGLE_OAUTH_CLIENT_ID") or file_config.get("client_id"),
            "client_secret": env.get("GOOGLE_OAUTH_CLIENT_SECRET")
            or file_config.get("client_secret"),
            "redirect_uri": env.get("GOOGLE_OAUTH_REDIRECT_URI")
            or file_config.get("redirect_uri")
            or DEFAULT_REDIRECT_URI,
        }
        optional = {
            "config_dir": "GWORKSPACE_ACCOUNTS_DIR",
            "accounts_file": "ACCOUNTS_FILE",
            "credentials_dir": "GWORKSPACE_CREDENTIALS_DIR",
            "oauth_timeout_seconds": "GWORKSPACE_OAUTH_TIMEOUT",
            "expiry_buffer_seconds": "GWORKSPACE_TOKEN_BUFFER_SECONDS",
        }
        for field_name, var in optional.items():
            if env.get(var):
                values[field_name] = env[var]

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise AuthConfigError(f"Invalid configuration: {e}") from e

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def client_config(self) -> dict[str, Any]:
        """Client configuration in the format google-auth-oauthlib expects.

        Raises:
            AuthConfigError: If client ID or secret is missing.
        """
        if not self.has_client_credentials:
            raise AuthConfigError("OAuth client ID and secret are not configured")

        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }


def load_auth_config_file(path: Path) -> dict[str, Any]:
    """Read OAuth client settings from a JSON file.

    Accepts a flat ``{client_id, client_secret, redirect_uri}`` object or the
    ``{"web": {...}}`` / ``{"installed": {...}}`` file downloaded from the
    Google Cloud console.

    Raises:
        AuthConfigError: If the file cannot be read or parsed.
    """
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise AuthConfigError(f"Failed to load OAuth configuration from {path}: {e}") from e

    if not isinstance(data, dict):
        raise AuthConfigError(f"OAuth configuration in {path} must be a JSON object")

    for client_type in ("web", "installed"):
        if isinstance(data.get(client_type), dict):
            section = data[client_type]
            redirect_uris = section.get("redirect_uris") or []
            return {
                "client_id": section.get("client_id"),
                "client_secret": section.get("client_secret"),
                "redirect_uri": redirect_uris[0] if redirect_uris else None,
            }

    logger.debug(f"Loaded OAuth configuration from {path}")
    return data
