"""Unit tests for environment-driven settings."""

import json
from pathlib import Path

import pytest

from gworkspace_accounts.config import DEFAULT_REDIRECT_URI, Settings, load_auth_config_file
from gworkspace_accounts.errors import AuthConfigError


@pytest.mark.unit
class TestSettingsFromEnv:
    """Tests for Settings.from_env()."""

    def test_should_apply_defaults(self, tmp_path: Path) -> None:
        """Verify unset variables fall back to defaults under the base directory."""
        settings = Settings.from_env({"GWORKSPACE_ACCOUNTS_DIR": str(tmp_path)})

        assert settings.client_id is None
        assert settings.redirect_uri == DEFAULT_REDIRECT_URI
        assert settings.accounts_file == tmp_path / "accounts.json"
        assert settings.credentials_dir == tmp_path / "credentials"
        assert settings.oauth_timeout_seconds == 30.0
        assert settings.expiry_buffer_seconds == 300
        assert settings.has_client_credentials is False

    def test_should_read_client_credentials(self) -> None:
        """Verify client ID and secret come from the environment."""
        settings = Settings.from_env(
            {
                "GOOGLE_OAUTH_CLIENT_ID": "id.apps.googleusercontent.com",
                "GOOGLE_OAUTH_CLIENT_SECRET": "secret",  # pragma: allowlist secret
            }
        )

        assert settings.has_client_credentials is True
        assert settings.client_config()["web"]["client_id"] == "id.apps.googleusercontent.com"
        assert settings.client_config()["web"]["redirect_uris"] == [DEFAULT_REDIRECT_URI]

    def test_should_override_paths_and_numbers(self, tmp_path: Path) -> None:
        """Verify explicit file locations and numeric settings are parsed."""
        settings = Settings.from_env(
            {
                "ACCOUNTS_FILE": str(tmp_path / "a.json"),
                "GWORKSPACE_CREDENTIALS_DIR": str(tmp_path / "creds"),
                "GWORKSPACE_OAUTH_TIMEOUT": "5",
                "GWORKSPACE_TOKEN_BUFFER_SECONDS": "60",
            }
        )

        assert settings.accounts_file == tmp_path / "a.json"
        assert settings.credentials_dir == tmp_path / "creds"
        assert settings.oauth_timeout_seconds == 5.0
        assert settings.expiry_buffer_seconds == 60

    def test_should_reject_invalid_number(self) -> None:
        """Verify an unparsable timeout is a configuration error."""
        with pytest.raises(AuthConfigError, match="Invalid configuration"):
            Settings.from_env({"GWORKSPACE_OAUTH_TIMEOUT": "soon"})

    def test_should_read_auth_config_file(self, tmp_path: Path) -> None:
        """Verify AUTH_CONFIG_FILE supplies values not set in the environment."""
        config_file = tmp_path / "oauth.json"
        config_file.write_text(
            json.dumps(
                {
                    "client_id": "file-id",
                    "client_secret": "file-secret",  # pragma: allowlist secret
                    "redirect_uri": "http://localhost:9000/cb",
                }
            )
        )

        settings = Settings.from_env(
            {"AUTH_CONFIG_FILE": str(config_file), "GOOGLE_OAUTH_CLIENT_ID": "env-id"}
        )

        assert settings.client_id == "env-id"
        assert settings.client_secret == "file-secret"  # pragma: allowlist secret
        assert settings.redirect_uri == "http://localhost:9000/cb"


@pytest.mark.unit
class TestLoadAuthConfigFile:
    """Tests for load_auth_config_file()."""

    def test_should_read_installed_client_file(self, tmp_path: Path) -> None:
        """Verify the Cloud console download format is accepted."""
        config_file = tmp_path / "client_secret.json"
        config_file.write_text(
            json.dumps(
                {
                    "installed": {
                        "client_id": "cid",
                        "client_secret": "csecret",  # pragma: allowlist secret
                        "redirect_uris": ["http://127.0.0.1:8789/callback"],
                    }
                }
            )
        )

        config = load_auth_config_file(config_file)

        assert config == {
            "client_id": "cid",
            "client_secret": "csecret",  # pragma: allowlist secret
            "redirect_uri": "http://127.0.0.1:8789/callback",
        }

    def test_should_raise_for_missing_file(self, tmp_path: Path) -> None:
        """Verify an unreadable file raises AuthConfigError."""
        with pytest.raises(AuthConfigError):
            load_auth_config_file(tmp_path / "missing.json")

    def test_should_raise_for_non_object(self, tmp_path: Path) -> None:
        """Verify a JSON array is rejected."""
        config_file = tmp_path / "oauth.json"
        config_file.write_text("[]")

        with pytest.raises(AuthConfigError, match="must be a JSON object"):
            load_auth_config_file(config_file)

    def test_should_raise_client_config_without_credentials(self) -> None:
        """Verify client_config() requires both ID and secret."""
        with pytest.raises(AuthConfigError):
            Settings(client_id="only-id").client_config()
