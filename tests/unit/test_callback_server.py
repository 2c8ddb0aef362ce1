"""Unit tests for the one-shot OAuth redirect receiver."""

import io
from unittest.mock import MagicMock, patch

import pytest

from gworkspace_accounts.auth.callback_server import wait_for_auth_code
from gworkspace_accounts.errors import AuthCodeError

REDIRECT_URI = "http://127.0.0.1:8789/callback"


def _setup_mock_server(mock_server_class: MagicMock, request_path: str) -> MagicMock:
    """Setup mock server that simulates one callback request.

    The handler class is defined inside wait_for_auth_code, so it is captured
    when HTTPServer is instantiated and driven directly from handle_request().
    """
    mock_server = MagicMock()
    responses: list[int] = []

    def capture_handler(addr_tuple, handler_class):
        def simulate_callback():
            handler = handler_class.__new__(handler_class)
            handler.path = request_path
            handler.wfile = io.BytesIO()
            handler.send_response = responses.append
            handler.send_header = MagicMock()
            handler.end_headers = MagicMock()
            handler.do_GET()

        mock_server.handle_request.side_effect = simulate_callback
        mock_server.bound_to = addr_tuple
        return mock_server

    mock_server_class.side_effect = capture_handler
    mock_server.responses = responses
    return mock_server


@pytest.mark.unit
class TestWaitForAuthCode:
    """Tests for wait_for_auth_code()."""

    def test_should_return_code_from_callback(self) -> None:
        """Verify the authorization code is extracted from the redirect."""
        with patch("gworkspace_accounts.auth.callback_server.HTTPServer") as mock_server_class:
            server = _setup_mock_server(
                mock_server_class, "/callback?code=4/0AX4XfWh&state=jane-example-com"
            )

            code = wait_for_auth_code(REDIRECT_URI, expected_state="jane-example-com")

        assert code == "4/0AX4XfWh"
        assert server.bound_to == ("127.0.0.1", 8789)
        assert server.responses == [200]
        server.server_close.assert_called_once()

    def test_should_raise_on_consent_denied(self) -> None:
        """Verify an error redirect raises AuthCodeError."""
        with patch("gworkspace_accounts.auth.callback_server.HTTPServer") as mock_server_class:
            _setup_mock_server(mock_server_class, "/callback?error=access_denied")

            with pytest.raises(AuthCodeError, match="access_denied"):
                wait_for_auth_code(REDIRECT_URI)

    def test_should_raise_on_state_mismatch(self) -> None:
        """Verify a callback for another account is rejected."""
        with patch("gworkspace_accounts.auth.callback_server.HTTPServer") as mock_server_class:
            _setup_mock_server(mock_server_class, "/callback?code=abc&state=someone-else")

            with pytest.raises(AuthCodeError, match="state mismatch"):
                wait_for_auth_code(REDIRECT_URI, expected_state="jane-example-com")

    def test_should_raise_when_no_code_received(self) -> None:
        """Verify a timeout without a callback raises AuthCodeError."""
        with patch("gworkspace_accounts.auth.callback_server.HTTPServer") as mock_server_class:
            mock_server = MagicMock()
            mock_server_class.return_value = mock_server

            with pytest.raises(AuthCodeError, match="No authorization code"):
                wait_for_auth_code(REDIRECT_URI, timeout=1)

        assert mock_server.timeout == 1
        mock_server.server_close.assert_called_once()

    def test_should_ignore_unknown_paths(self) -> None:
        """Verify requests to other paths get a 404 and no code."""
        with patch("gworkspace_accounts.auth.callback_server.HTTPServer") as mock_server_class:
            server = _setup_mock_server(mock_server_class, "/favicon.ico")

            with pytest.raises(AuthCodeError):
                wait_for_auth_code(REDIRECT_URI)

        assert server.responses == [404]
