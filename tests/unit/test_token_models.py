"""Unit tests for token, status and account models."""

from datetime import datetime, timezone

import pytest

from gworkspace_accounts.auth.models import (
    DEFAULT_EXPIRY_BUFFER_MILLIS,
    Account,
    OAuthToken,
    TokenState,
    TokenStatus,
    datetime_to_millis,
)

NOW_MILLIS = 1_736_942_400_000


@pytest.mark.unit
class TestOAuthToken:
    """Tests for OAuthToken model."""

    def test_should_create_valid_token(self, valid_token: OAuthToken) -> None:
        """Verify token creation with valid data."""
        assert valid_token.access_token == "test_access_token_abc123"
        assert valid_token.refresh_token == "test_refresh_token_xyz789"
        assert valid_token.token_type == "Bearer"
        assert len(valid_token.scopes) == 3

    def test_should_detect_non_expired_token(self, valid_token: OAuthToken) -> None:
        """Verify is_expired returns False for a token an hour from expiry."""
        assert valid_token.is_expired(now=NOW_MILLIS) is False

    def test_should_detect_expired_token(self, expired_token: OAuthToken) -> None:
        """Verify is_expired returns True for expired token."""
        assert expired_token.is_expired(now=NOW_MILLIS) is True

    def test_should_treat_token_inside_buffer_as_expired(self) -> None:
        """Verify a token expiring within the 5 minute buffer counts as expired."""
        token = OAuthToken(access_token="t", expiry_epoch_millis=NOW_MILLIS + 4 * 60 * 1000)

        assert token.is_expired(now=NOW_MILLIS) is True
        assert token.is_expired(buffer_millis=60 * 1000, now=NOW_MILLIS) is False

    def test_should_treat_exact_buffer_boundary_as_expired(self) -> None:
        """Verify now == expiry - buffer is already expired."""
        token = OAuthToken(
            access_token="t",
            expiry_epoch_millis=NOW_MILLIS + DEFAULT_EXPIRY_BUFFER_MILLIS,
        )

        assert token.is_expired(now=NOW_MILLIS) is True
        assert token.is_expired(now=NOW_MILLIS - 1) is False

    def test_should_serialize_with_camel_case_keys(self, valid_token: OAuthToken) -> None:
        """Verify the persisted record uses the credential store field names."""
        record = valid_token.to_record()

        assert set(record) == {
            "accessToken",
            "refreshToken",
            "scope",
            "tokenType",
            "expiryEpochMillis",
        }
        assert record["expiryEpochMillis"] == valid_token.expiry_epoch_millis

    def test_should_accept_google_library_field_names(self) -> None:
        """Verify records written by Google client libraries load."""
        token = OAuthToken.model_validate(
            {
                "access_token": "ya29.abc",
                "refresh_token": "1//refresh",
                "scope": "a b",
                "token_type": "Bearer",
                "expiry_date": NOW_MILLIS,
            }
        )

        assert token.access_token == "ya29.abc"
        assert token.refresh_token == "1//refresh"
        assert token.expiry_epoch_millis == NOW_MILLIS

    def test_should_join_scope_list(self) -> None:
        """Verify a scope list is stored space-separated."""
        token = OAuthToken(access_token="t", scope=["a", "b"], expiry_epoch_millis=0)

        assert token.scope == "a b"
        assert token.scopes == ["a", "b"]

    def test_should_return_empty_scopes_for_blank_scope(self) -> None:
        """Verify an empty scope string yields no scopes."""
        token = OAuthToken(access_token="t", scope=None, expiry_epoch_millis=0)

        assert token.scopes == []

    def test_should_expose_expiry_as_datetime(self) -> None:
        """Verify expires_at converts epoch millis to an aware datetime."""
        token = OAuthToken(access_token="t", expiry_epoch_millis=NOW_MILLIS)

        assert token.expires_at == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestDatetimeToMillis:
    """Tests for datetime_to_millis helper."""

    def test_should_treat_naive_datetime_as_utc(self) -> None:
        """Verify naive datetimes (as google-auth returns) are read as UTC."""
        naive = datetime(2025, 1, 15, 12, 0)
        aware = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

        assert datetime_to_millis(naive) == datetime_to_millis(aware) == NOW_MILLIS


@pytest.mark.unit
class TestTokenStatus:
    """Tests for TokenStatus responses."""

    def test_should_have_expected_states(self) -> None:
        """Verify all lifecycle states exist."""
        assert {s.value for s in TokenState} == {
            "absent",
            "valid",
            "expired",
            "refreshing",
            "refreshed",
            "refresh_failed",
            "missing_scope",
            "invalid",
        }

    def test_should_not_leak_token_in_valid_response(self, valid_token: OAuthToken) -> None:
        """Verify the valid response carries expiry and scopes but no token values."""
        status = TokenStatus(valid=True, state=TokenState.VALID, token=valid_token)

        response = status.to_response()

        assert response["status"] == "valid"
        assert response["scopes"] == valid_token.scopes
        assert valid_token.access_token not in str(response)
        assert valid_token.refresh_token not in str(response)

    def test_should_build_auth_required_response(self) -> None:
        """Verify the re-auth payload includes URL, scopes and instructions."""
        status = TokenStatus(
            valid=False,
            state=TokenState.ABSENT,
            reason="No token found",
            auth_url="https://accounts.google.com/o/oauth2/auth?x=1",
            required_scopes=["s1"],
        )

        response = status.to_response()

        assert response["status"] == "auth_required"
        assert response["reason"] == "No token found"
        assert response["auth_url"] == "https://accounts.google.com/o/oauth2/auth?x=1"
        assert response["required_scopes"] == ["s1"]
        assert "auth_code" in response["instructions"]

    def test_should_report_retry_for_retryable_failure(self) -> None:
        """Verify a transient refresh failure is reported as retry."""
        status = TokenStatus(
            valid=False,
            state=TokenState.REFRESH_FAILED,
            reason="Token refresh failed",
            error_code="TOKEN_REFRESH_FAILED",
            retryable=True,
        )

        response = status.to_response()

        assert response["status"] == "retry"
        assert response["code"] == "TOKEN_REFRESH_FAILED"


@pytest.mark.unit
class TestAccount:
    """Tests for Account model."""

    def test_should_persist_only_record_fields(self) -> None:
        """Verify auth_status is never part of the persisted record."""
        account = Account(
            email="a@example.com",
            category="work",
            description="Work inbox",
            auth_status=TokenStatus(valid=False, state=TokenState.ABSENT),
        )

        assert account.to_record() == {
            "email": "a@example.com",
            "category": "work",
            "description": "Work inbox",
        }

    def test_should_include_auth_status_in_response(self) -> None:
        """Verify to_response adds the derived auth status."""
        account = Account(
            email="a@example.com",
            category="work",
            description="Work inbox",
            auth_status=TokenStatus(valid=False, state=TokenState.ABSENT, reason="No token found"),
        )

        response = account.to_response()

        assert response["auth_status"]["status"] == "auth_required"
        assert response["auth_status"]["reason"] == "No token found"
