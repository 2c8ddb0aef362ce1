"""Account registry for Google Workspace accounts."""

from gworkspace_accounts.accounts.manager import AccountManager, is_valid_email

__all__ = ["AccountManager", "is_valid_email"]
