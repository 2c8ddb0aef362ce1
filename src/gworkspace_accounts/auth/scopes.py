"""Default scope sets for the Workspace modules.

The full Gmail scopes are registered on purpose: the metadata scope alone
rejects search queries (``q``) and ``format=FULL`` message fetches.
"""

from gworkspace_accounts.auth.scope_registry import ScopeRegistry

_BASE = "https://www.googleapis.com/auth/"

GMAIL_SCOPES = {
    "readonly": (_BASE + "gmail.readonly", "Required for reading full email content and search"),
    "modify": (_BASE + "gmail.modify", "Required for modifying emails and managing labels"),
    "send": (_BASE + "gmail.send", "Required for sending emails"),
    "metadata": (
        _BASE + "gmail.metadata",
        "Supplementary metadata access (headers/labels), combined with fuller scopes",
    ),
    "settings_basic": (_BASE + "gmail.settings.basic", "Required for managing Gmail settings"),
    "settings_sharing": (
        _BASE + "gmail.settings.sharing",
        "Required for managing delegation and sharing settings",
    ),
}

# Core scopes first, settings last: consent URLs list scopes in this order
CALENDAR_SCOPES = {
    "readonly": (_BASE + "calendar.readonly", "Required for reading calendars and events"),
    "events": (_BASE + "calendar.events", "Required for managing calendar events"),
    "full": (_BASE + "calendar", "Required for managing calendars"),
    "settings_readonly": (
        _BASE + "calendar.settings.readonly",
        "Required for reading calendar settings",
    ),
}

DRIVE_SCOPES = {
    "full": (_BASE + "drive", "Required for listing, downloading and sharing files"),
    "file": (_BASE + "drive.file", "Required for uploading files created by this app"),
}

MODULE_SCOPES = {
    "gmail": GMAIL_SCOPES,
    "calendar": CALENDAR_SCOPES,
    "drive": DRIVE_SCOPES,
}


def _register(registry: ScopeRegistry, module: str) -> None:
    for scope, description in MODULE_SCOPES[module].values():
        registry.register_scope(module, scope, description)


def register_gmail_scopes(registry: ScopeRegistry) -> None:
    _register(registry, "gmail")


def register_calendar_scopes(registry: ScopeRegistry) -> None:
    _register(registry, "calendar")


def register_drive_scopes(registry: ScopeRegistry) -> None:
    _register(registry, "drive")


def register_default_scopes(registry: ScopeRegistry) -> ScopeRegistry:
    """Register Gmail, Calendar and Drive scopes.

    Returns:
        The same registry, for chaining.
    """
    register_gmail_scopes(registry)
    register_calendar_scopes(registry)
    register_drive_scopes(registry)
    return registry


def scope_url(name: str) -> str:
    """Expand a short scope name like ``gmail.send`` to its full URL."""
    if name.startswith(("https://", "openid")):
        return name
    return _BASE + name
