"""One-shot local HTTP receiver for the OAuth redirect.

Used by the interactive ``login`` command: the browser is sent to the
consent URL and Google redirects back to the local redirect URI with
``?code=...&state=...``. The receiver answers a single request and returns
the code.
"""

import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from gworkspace_accounts.config import DEFAULT_OAUTH_HOST, DEFAULT_OAUTH_PORT
from gworkspace_accounts.errors import AuthCodeError

logger = logging.getLogger(__name__)

# 5 minute wait for the user to finish consent
CALLBACK_TIMEOUT_SECONDS = 300

_SUCCESS_PAGE = (
    b"<html><body><h1>Authentication Successful!</h1>"
    b"<p>You can close this window and return to the terminal.</p>"
    b"</body></html>"
)
_FAILURE_PAGE = (
    b"<html><body><h1>Authentication Failed</h1>"
    b"<p>Please close this window and try again.</p></body></html>"
)


def wait_for_auth_code(
    redirect_uri: str,
    expected_state: str | None = None,
    timeout: int = CALLBACK_TIMEOUT_SECONDS,
) -> str:
    """Serve one request on the redirect URI and return its authorization code.

    Args:
        redirect_uri: Redirect URI registered for the OAuth client
            (e.g. http://127.0.0.1:8789/callback).
        expected_state: If set, the callback's ``state`` must match it.
        timeout: Seconds to wait for the callback.

    Returns:
        The authorization code.

    Raises:
        AuthCodeError: If consent was denied, the state does not match, or no
            code arrived.
    """
    parsed = urlparse(redirect_uri)
    host = parsed.hostname or DEFAULT_OAUTH_HOST
    port = parsed.port or DEFAULT_OAUTH_PORT
    callback_path = parsed.path or "/callback"

    auth_code: list[str | None] = [None]
    error_message: list[str | None] = [None]

    class OAuthCallbackHandler(BaseHTTPRequestHandler):
        """HTTP handler for OAuth callback."""

        def log_message(self, format: str, *args) -> None:
            """Suppress HTTP server logs."""
            pass

        def _respond(self, status: int, body: bytes) -> None:
            self.send_response(status)
            self.send_header("Content-type", "text/html")
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:
            """Handle GET request from OAuth redirect."""
            request_parsed = urlparse(self.path)
            if request_parsed.path != callback_path:
                self.send_response(404)
                self.end_headers()
                self.wfile.write(b"Not Found")
                return

            query_params = parse_qs(request_parsed.query)

            if "error" in query_params:
                error_message[0] = query_params["error"][0]
                self._respond(400, _FAILURE_PAGE)
                return

            state = query_params.get("state", [None])[0]
            if expected_state is not None and state != expected_state:
                error_message[0] = "state mismatch"
                self._respond(400, _FAILURE_PAGE)
                return

            if "code" in query_params:
                auth_code[0] = query_params["code"][0]
                self._respond(200, _SUCCESS_PAGE)
            else:
                self._respond(400, _FAILURE_PAGE)

    server = HTTPServer((host, port), OAuthCallbackHandler)
    server.timeout = timeout
    logger.debug(f"Waiting for OAuth callback on {host}:{port}{callback_path}")

    try:
        server.handle_request()
    finally:
        server.server_close()

    if error_message[0]:
        raise AuthCodeError(f"OAuth authentication failed: {error_message[0]}")

    if not auth_code[0]:
        raise AuthCodeError("No authorization code received from Google")

    return auth_code[0]
