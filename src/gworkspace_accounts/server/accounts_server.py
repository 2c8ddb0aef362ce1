"""MCP server exposing Workspace account management.

Tools:
- list_workspace_accounts: known accounts with their token status
- authenticate_workspace_account: create an account and run the consent
  handshake (authorization URL, then authorization code)
- remove_workspace_account: delete an account and its token

The server also carries the request helper Workspace tools build on: it
asks the TokenManager for a valid token before every call and, when the API
answers 401/403, validates again (forcing a refresh of the rejected token)
and retries once.
"""

import asyncio
import json
import logging
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from gworkspace_accounts.accounts import AccountManager
from gworkspace_accounts.auth import (
    GoogleOAuthClient,
    ScopeRegistry,
    TokenManager,
    TokenStorage,
    register_default_scopes,
)
from gworkspace_accounts.auth.scopes import scope_url
from gworkspace_accounts.config import Settings
from gworkspace_accounts.errors import AccountError, ErrorAction, TokenNotFoundError

logger = logging.getLogger(__name__)

SERVER_NAME = "gworkspace-accounts"

# Status codes after which the token is re-validated and the call retried once
AUTH_RETRY_STATUS_CODES = (401, 403)


def build_token_manager(settings: Settings, scope_registry: ScopeRegistry) -> TokenManager:
    """Wire storage, OAuth client and scope registry into a TokenManager."""
    return TokenManager(
        TokenStorage(settings.credentials_dir),
        GoogleOAuthClient(settings),
        scope_registry,
        buffer_millis=settings.expiry_buffer_seconds * 1000,
    )


class WorkspaceAccountsServer:
    """MCP server for Workspace account authentication.

    Attributes:
        server: MCP Server instance.
        settings: Runtime settings.
        scope_registry: Scopes requested at consent time.
        token_manager: Token validation, refresh and storage.
        accounts: Account registry.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        token_manager: TokenManager | None = None,
        accounts: AccountManager | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            settings: Runtime settings. Read from the environment if not provided.
            token_manager: Token manager. Built from settings if not provided.
            accounts: Account registry. Built from settings if not provided.
        """
        self.settings = settings or Settings.from_env()
        if token_manager is None:
            self.scope_registry = register_default_scopes(ScopeRegistry())
            token_manager = build_token_manager(self.settings, self.scope_registry)
        else:
            self.scope_registry = token_manager.scope_registry
        self.token_manager = token_manager
        self.accounts = accounts or AccountManager(self.settings.accounts_file, token_manager)
        self.server = Server(SERVER_NAME)
        self._http_client: httpx.AsyncClient | None = None
        self._setup_handlers()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return [
                Tool(
                    name="list_workspace_accounts",
                    description="List configured Google Workspace accounts and their auth status",
                    inputSchema={
                        "type": "object",
                        "properties": {},
                        "required": [],
                    },
                ),
                Tool(
                    name="authenticate_workspace_account",
                    description=(
                        "Add and authenticate a Google Workspace account. Without auth_code, "
                        "returns an authorization URL for the user to visit; call again with "
                        "the code shown after consent."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "email": {
                                "type": "string",
                                "description": "Email address of the account",
                            },
                            "category": {
                                "type": "string",
                                "description": "Account category, required for new accounts",
                            },
                            "description": {
                                "type": "string",
                                "description": "Account description, required for new accounts",
                            },
                            "auth_code": {
                                "type": "string",
                                "description": "Authorization code from the consent page (optional)",
                            },
                            "required_scopes": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Scopes to check, full URLs or short names like gmail.send",
                            },
                        },
                        "required": ["email"],
                    },
                ),
                Tool(
                    name="remove_workspace_account",
                    description="Remove a Google Workspace account and delete its stored token",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "email": {
                                "type": "string",
                                "description": "Email address of the account to remove",
                            },
                        },
                        "required": ["email"],
                    },
                ),
            ]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            try:
                result = await self._dispatch_tool(name, arguments)
            except AccountError as e:
                logger.warning(f"Tool {name} failed: {e.code}: {e}")
                result = e.to_dict()
            except Exception as e:
                logger.exception(f"Error calling tool {name}")
                result = {"status": "error", "error": str(e)}
            return [TextContent(type="text", text=json.dumps(result, indent=2))]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            "list_workspace_accounts": self._list_workspace_accounts,
            "authenticate_workspace_account": self._authenticate_workspace_account,
            "remove_workspace_account": self._remove_workspace_account,
        }
        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")
        return await handler(arguments)

    async def _list_workspace_accounts(self, arguments: dict[str, Any]) -> dict[str, Any]:
        accounts = await self.accounts.list_accounts()
        return {"accounts": [account.to_response() for account in accounts]}

    async def _authenticate_workspace_account(self, arguments: dict[str, Any]) -> dict[str, Any]:
        email = arguments["email"]
        required_scopes = [scope_url(s) for s in arguments.get("required_scopes") or []]

        account = await self.accounts.validate_account(
            email, arguments.get("category"), arguments.get("description")
        )

        auth_code = arguments.get("auth_code")
        if auth_code:
            await self.token_manager.exchange_code(email, auth_code)
            return {
                "status": "success",
                "message": "Authentication successful! Token saved. Please retry your request.",
            }

        if required_scopes:
            status = await self.token_manager.validate_token(email, required_scopes)
        else:
            status = account.auth_status

        if status.valid:
            return {
                "status": "success",
                "message": f"Account {email} is already authenticated",
                "auth_status": status.to_response(),
            }
        return status.to_response()

    async def _remove_workspace_account(self, arguments: dict[str, Any]) -> dict[str, Any]:
        email = arguments["email"]
        await self.accounts.remove_account(email)
        return {
            "status": "success",
            "message": f"Successfully removed account {email} and deleted associated tokens",
        }

    async def get_access_token(
        self,
        email: str,
        required_scopes: list[str] | None = None,
        rejected_access_token: str | None = None,
    ) -> str:
        """Get a valid access token for an account, refreshing if necessary.

        Raises:
            TokenNotFoundError: If no usable token exists. Carries the
                authorization URL the user has to visit.
        """
        status = await self.token_manager.validate_token(
            email, required_scopes, rejected_access_token=rejected_access_token
        )
        if status.valid and status.token is not None:
            return status.token.access_token

        raise TokenNotFoundError(
            f"No valid token for {email}: {status.reason}",
            action=ErrorAction.RETRY if status.retryable else None,
            auth_url=status.auth_url,
            required_scopes=status.required_scopes,
        )

    async def request(
        self,
        email: str,
        method: str,
        url: str,
        required_scopes: list[str] | None = None,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to a Google API on behalf of an account.

        A 401/403 answer triggers one re-validation that refreshes the
        rejected token, then one retry.

        Raises:
            TokenNotFoundError: If no usable token can be obtained.
            httpx.HTTPStatusError: If the request still fails.
        """
        client = await self._get_http_client()
        access_token = await self.get_access_token(email, required_scopes)
        response = await self._send(client, method, url, access_token, params, json_data)

        if response.status_code in AUTH_RETRY_STATUS_CODES:
            logger.info(f"{method} {url} returned {response.status_code}, re-validating token")
            access_token = await self.get_access_token(
                email, required_scopes, rejected_access_token=access_token
            )
            response = await self._send(client, method, url, access_token, params, json_data)

        response.raise_for_status()
        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None,
        json_data: dict[str, Any] | None,
    ) -> httpx.Response:
        return await client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        await self.accounts.load_accounts()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def main() -> None:
    """Entry point for the Workspace accounts MCP server."""
    logging.basicConfig(level=logging.INFO)
    server = WorkspaceAccountsServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
