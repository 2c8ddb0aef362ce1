"""Multi-account Google Workspace credential lifecycle.

Stores per-account OAuth tokens, refreshes them transparently, checks
scope coverage and hands back a re-authentication handshake when no
usable token exists.
"""

from gworkspace_accounts.__version__ import __version__

__all__ = ["__version__"]
