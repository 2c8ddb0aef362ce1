"""OAuth credential lifecycle for Google Workspace accounts.

Quick Start:
    ```python
    from gworkspace_accounts.auth import (
        GoogleOAuthClient,
        ScopeRegistry,
        TokenManager,
        TokenStorage,
        register_default_scopes,
    )
    from gworkspace_accounts.config import Settings

    settings = Settings.from_env()
    registry = register_default_scopes(ScopeRegistry())
    manager = TokenManager(
        TokenStorage(settings.credentials_dir),
        GoogleOAuthClient(settings),
        registry,
    )

    status = await manager.validate_token("a@example.com")
    if not status.valid:
        print(status.auth_url)
    ```
"""

from gworkspace_accounts.auth.models import (
    Account,
    OAuthToken,
    ScopeRequirement,
    TokenState,
    TokenStatus,
)
from gworkspace_accounts.auth.oauth_client import GoogleOAuthClient
from gworkspace_accounts.auth.scope_registry import ScopeRegistry
from gworkspace_accounts.auth.scopes import register_default_scopes
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.auth.token_storage import TokenStorage, sanitize_email

__all__ = [
    "Account",
    "GoogleOAuthClient",
    "OAuthToken",
    "ScopeRegistry",
    "ScopeRequirement",
    "TokenManager",
    "TokenState",
    "TokenStatus",
    "TokenStorage",
    "register_default_scopes",
    "sanitize_email",
]
