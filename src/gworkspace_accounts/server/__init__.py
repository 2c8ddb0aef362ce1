"""MCP server for Google Workspace account management.

Tools:
- list_workspace_accounts
- authenticate_workspace_account
- remove_workspace_account

Transport: Stdio (for Claude Desktop)
Authentication: per-account OAuth 2.0 with automatic token refresh
"""

from gworkspace_accounts.config import Settings
from gworkspace_accounts.server.accounts_server import (
    WorkspaceAccountsServer,
    main,
)


def create_server(settings: Settings | None = None) -> WorkspaceAccountsServer:
    """Create and configure a Workspace accounts MCP server.

    Example:
        >>> server = create_server()
        >>> asyncio.run(server.run())
    """
    return WorkspaceAccountsServer(settings=settings)


__all__ = ["create_server", "WorkspaceAccountsServer", "main"]
