"""Command-line interface for gworkspace-accounts."""

import asyncio
import sys
import webbrowser
from typing import Any

import click

from gworkspace_accounts.__version__ import __version__
from gworkspace_accounts.errors import AccountError


def _build(ctx: click.Context) -> tuple[Any, Any]:
    """Create the TokenManager and AccountManager from settings."""
    from gworkspace_accounts.accounts import AccountManager
    from gworkspace_accounts.auth import ScopeRegistry, register_default_scopes
    from gworkspace_accounts.config import Settings
    from gworkspace_accounts.server.accounts_server import build_token_manager

    settings = Settings.from_env()
    overrides = {k: v for k, v in ctx.obj.items() if v}
    if overrides:
        settings = settings.model_copy(update=overrides)

    token_manager = build_token_manager(settings, register_default_scopes(ScopeRegistry()))
    accounts = AccountManager(settings.accounts_file, token_manager)
    return token_manager, accounts


def _fail(error: AccountError) -> None:
    click.echo(f"❌ {error.message}")
    if error.resolution:
        click.echo(f"   {error.resolution}")
    sys.exit(1)


def _scope_list(scopes: tuple[str, ...]) -> list[str] | None:
    from gworkspace_accounts.auth.scopes import scope_url

    return [scope_url(s) for s in scopes] or None


@click.group()
@click.version_option(version=__version__)
@click.option("--client-id", envvar="GOOGLE_OAUTH_CLIENT_ID", help="Google OAuth client ID")
@click.option(
    "--client-secret", envvar="GOOGLE_OAUTH_CLIENT_SECRET", help="Google OAuth client secret"
)
@click.pass_context
def main(ctx: click.Context, client_id: str | None, client_secret: str | None) -> None:
    """Google Workspace Accounts - per-account OAuth for Gmail, Calendar and Drive.

    Tokens are stored per account and refreshed automatically. When an
    account has no usable token, an authorization URL is printed; the code
    shown after consent completes authentication.
    """
    ctx.obj = {"client_id": client_id, "client_secret": client_secret}


@main.command("accounts")
@click.pass_context
def list_accounts(ctx: click.Context) -> None:
    """List configured accounts and their token status."""
    _, accounts = _build(ctx)

    try:
        listed = asyncio.run(accounts.list_accounts())
    except AccountError as e:
        _fail(e)
        return

    if not listed:
        click.echo("No accounts configured.")
        return

    for account in listed:
        status = account.auth_status
        mark = "✓" if status is not None and status.valid else "❌"
        reason = "" if status is None or status.valid else f" ({status.reason})"
        click.echo(f"{mark} {account.email} [{account.category}] {account.description}{reason}")


@main.command("auth-url")
@click.argument("email", required=False)
@click.option("--scope", "scopes", multiple=True, help="Scope to request (repeatable)")
@click.pass_context
def auth_url(ctx: click.Context, email: str | None, scopes: tuple[str, ...]) -> None:
    """Print the authorization URL for an account."""
    token_manager, _ = _build(ctx)
    try:
        click.echo(token_manager.get_auth_url(_scope_list(scopes), email=email))
    except AccountError as e:
        _fail(e)


@main.command()
@click.argument("email")
@click.option("--code", required=True, help="Authorization code from the consent page")
@click.option("--category", help="Category for a new account")
@click.option("--description", help="Description for a new account")
@click.pass_context
def authenticate(
    ctx: click.Context,
    email: str,
    code: str,
    category: str | None,
    description: str | None,
) -> None:
    """Complete authentication for EMAIL with an authorization code."""
    token_manager, accounts = _build(ctx)

    async def _run() -> None:
        await accounts.load_accounts()
        await accounts.validate_account(email, category, description)
        await token_manager.exchange_code(email, code)

    try:
        asyncio.run(_run())
    except AccountError as e:
        _fail(e)
        return

    click.echo(f"✓ Authentication successful for {email}!")
    click.echo(f"Token stored at: {token_manager.storage.token_path(email)}")


@main.command()
@click.argument("email")
@click.option("--category", help="Category for a new account")
@click.option("--description", help="Description for a new account")
@click.pass_context
def login(
    ctx: click.Context,
    email: str,
    category: str | None,
    description: str | None,
) -> None:
    """Authenticate EMAIL interactively through the browser.

    Opens the consent page and waits for the redirect on the local
    callback URI (GOOGLE_OAUTH_REDIRECT_URI).
    """
    from gworkspace_accounts.auth.callback_server import wait_for_auth_code
    from gworkspace_accounts.auth.token_storage import sanitize_email

    token_manager, accounts = _build(ctx)

    async def _prepare() -> None:
        await accounts.load_accounts()
        await accounts.validate_account(email, category, description)

    try:
        asyncio.run(_prepare())
        url = token_manager.get_auth_url(email=email)
    except AccountError as e:
        _fail(e)
        return

    click.echo("Opening browser for Google authorization...")
    click.echo(f"If browser doesn't open, visit: {url}")
    webbrowser.open(url)

    try:
        code = wait_for_auth_code(
            token_manager.oauth_client.settings.redirect_uri,
            expected_state=sanitize_email(email),
        )
        asyncio.run(token_manager.exchange_code(email, code))
    except AccountError as e:
        _fail(e)
        return

    click.echo(f"✓ Authentication successful for {email}!")


@main.command()
@click.argument("email")
@click.pass_context
def remove(ctx: click.Context, email: str) -> None:
    """Remove EMAIL and delete its stored token."""
    _, accounts = _build(ctx)

    async def _run() -> None:
        await accounts.load_accounts()
        await accounts.remove_account(email)

    try:
        asyncio.run(_run())
    except AccountError as e:
        _fail(e)
        return

    click.echo(f"✓ Removed {email}")


@main.command()
@click.argument("email")
@click.option("--scope", "scopes", multiple=True, help="Scope the token must cover (repeatable)")
@click.pass_context
def status(ctx: click.Context, email: str, scopes: tuple[str, ...]) -> None:
    """Check whether EMAIL has a usable token, refreshing it if expired."""
    token_manager, _ = _build(ctx)

    try:
        result = asyncio.run(token_manager.validate_token(email, _scope_list(scopes)))
    except AccountError as e:
        _fail(e)
        return

    if result.valid and result.token is not None:
        click.echo(f"✓ {email}: token valid ({result.state.value})")
        click.echo(f"  Token expires: {result.token.expires_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        click.echo(f"  Scopes: {len(result.token.scopes)} granted")
        return

    click.echo(f"❌ {email}: {result.reason}")
    if result.auth_url:
        click.echo("")
        click.echo("Authorize at:")
        click.echo(f"  {result.auth_url}")
        click.echo("")
        click.echo(f"Then run: gworkspace-accounts authenticate {email} --code=...")
    sys.exit(1)


@main.command()
def mcp() -> None:
    """Start the MCP server for Claude Desktop integration."""
    from gworkspace_accounts.server import main as server_main

    try:
        click.echo("Starting Google Workspace accounts MCP server...", err=True)
        server_main()
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
