"""Shared pytest fixtures for gworkspace-accounts tests.

This module provides reusable fixtures for token models, per-account token
storage, a fixed clock, and a mocked OAuth exchange client so that no test
talks to Google.
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from gworkspace_accounts.auth.models import OAuthToken
from gworkspace_accounts.config import Settings

# Fixed "now" for every clock-dependent test: 2025-01-15T12:00:00Z
NOW_MILLIS = 1_736_942_400_000
HOUR_MILLIS = 60 * 60 * 1000

ACCOUNT_EMAIL = "jane.doe@example.com"

GMAIL_SEND = "https://www.googleapis.com/auth/gmail.send"
GMAIL_READONLY = "https://www.googleapis.com/auth/gmail.readonly"
CALENDAR = "https://www.googleapis.com/auth/calendar"
DRIVE = "https://www.googleapis.com/auth/drive"

# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def valid_token() -> OAuthToken:
    """Create a token that expires one hour after NOW_MILLIS."""
    return OAuthToken(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        scope=f"{GMAIL_SEND} {GMAIL_READONLY} {CALENDAR}",
        token_type="Bearer",
        expiry_epoch_millis=NOW_MILLIS + HOUR_MILLIS,
    )


@pytest.fixture
def expired_token() -> OAuthToken:
    """Create a token that expired one hour before NOW_MILLIS."""
    return OAuthToken(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        scope=f"{GMAIL_SEND} {CALENDAR}",
        token_type="Bearer",
        expiry_epoch_millis=NOW_MILLIS - HOUR_MILLIS,
    )


@pytest.fixture
def refreshed_token() -> OAuthToken:
    """Token as returned by a refresh: new access token, no refresh token."""
    return OAuthToken(
        access_token="refreshed_access_token",
        refresh_token=None,
        scope="",
        expiry_epoch_millis=NOW_MILLIS + HOUR_MILLIS,
    )


# =============================================================================
# Settings and Storage Fixtures
# =============================================================================


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary base directory for accounts and credentials."""
    config_dir = tmp_path / ".gworkspace-accounts"
    config_dir.mkdir(parents=True, mode=0o700)
    return config_dir


@pytest.fixture
def settings(temp_config_dir: Path) -> Settings:
    """Settings pointing at temporary storage with test client credentials."""
    return Settings(
        client_id="test_client_id.apps.googleusercontent.com",
        client_secret="test_client_secret",  # pragma: allowlist secret
        config_dir=temp_config_dir,
    )


@pytest.fixture
def token_storage(settings: Settings):
    """Create a TokenStorage instance with temporary storage."""
    from gworkspace_accounts.auth.token_storage import TokenStorage

    return TokenStorage(settings.credentials_dir)


# =============================================================================
# OAuth and Manager Fixtures
# =============================================================================


@pytest.fixture
def mock_oauth_client(settings: Settings, refreshed_token: OAuthToken) -> MagicMock:
    """Mock GoogleOAuthClient: deterministic auth URL, async refresh/exchange."""

    def _auth_url(scopes: list[str], state: str | None = None) -> str:
        return (
            "https://accounts.google.com/o/oauth2/auth"
            f"?scope={'+'.join(scopes)}&state={state or 'default'}"
        )

    client = MagicMock()
    client.settings = settings
    client.generate_auth_url.side_effect = _auth_url
    client.refresh = AsyncMock(return_value=refreshed_token)
    client.exchange_code = AsyncMock()
    return client


@pytest.fixture
def scope_registry():
    """Registry with the default Gmail, Calendar and Drive scopes."""
    from gworkspace_accounts.auth import ScopeRegistry, register_default_scopes

    return register_default_scopes(ScopeRegistry())


@pytest.fixture
def token_manager(token_storage, mock_oauth_client: MagicMock, scope_registry):
    """Create a TokenManager with a fixed clock and mocked OAuth client."""
    from gworkspace_accounts.auth.token_manager import TokenManager

    return TokenManager(
        token_storage,
        mock_oauth_client,
        scope_registry,
        clock=lambda: NOW_MILLIS,
    )


@pytest.fixture
def account_manager(settings: Settings, token_manager):
    """Create an AccountManager backed by temporary storage."""
    from gworkspace_accounts.accounts import AccountManager

    return AccountManager(settings.accounts_file, token_manager)


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
