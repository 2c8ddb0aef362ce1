"""Registry of known Workspace accounts.

Accounts (email, category, description) are kept separately from their
tokens in a single JSON file::

    {"accounts": [{"email": ..., "category": ..., "description": ...}]}

The file is created empty on first load. Accounts are created lazily the
first time ``validate_account`` is called with a category and description.
Removing an account deletes its token first.
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path

from pydantic import ValidationError

from gworkspace_accounts.auth.models import Account
from gworkspace_accounts.auth.token_manager import TokenManager
from gworkspace_accounts.errors import (
    AccountNotFoundError,
    DuplicateAccountError,
    InvalidEmailError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email))


class AccountManager:
    """Durable list of accounts, with token status on read.

    Attributes:
        accounts_path: Path to the accounts JSON file.
        token_manager: Used to attach auth status and to delete tokens.

    Example:
        ```python
        accounts = AccountManager(settings.accounts_file, token_manager)
        await accounts.load_accounts()

        account = await accounts.validate_account(
            "a@example.com", category="work", description="Work inbox"
        )
        if not account.auth_status.valid:
            print(account.auth_status.auth_url)
        ```
    """

    def __init__(self, accounts_path: Path, token_manager: TokenManager) -> None:
        self.accounts_path = accounts_path
        self.token_manager = token_manager
        self._accounts: dict[str, Account] = {}
        self._lock = asyncio.Lock()

    async def load_accounts(self) -> None:
        """Read the account list, creating an empty one if the file is missing.

        Raises:
            StorageUnavailableError: If the file cannot be read or parsed.
        """
        async with self._lock:
            self._load()

    def _load(self) -> None:
        logger.debug(f"Loading accounts from {self.accounts_path}")
        try:
            content = self.accounts_path.read_text()
        except FileNotFoundError:
            logger.info(f"Creating new accounts file at {self.accounts_path}")
            self._save({})
            self._accounts = {}
            return
        except UnicodeDecodeError as e:
            raise StorageUnavailableError(
                f"Failed to parse accounts configuration: {e}",
                "Please ensure the accounts file contains valid JSON",
            ) from e
        except OSError as e:
            raise StorageUnavailableError(
                f"Failed to read accounts configuration: {e}",
                "Please ensure the accounts file is readable",
            ) from e

        try:
            data = json.loads(content)
            records = data["accounts"] if isinstance(data, dict) else data
            accounts = [Account.model_validate(record) for record in records]
        except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            raise StorageUnavailableError(
                f"Failed to parse accounts configuration: {e}",
                "Please ensure the accounts file contains valid JSON",
            ) from e

        self._accounts = {account.email: account for account in accounts}
        logger.debug(f"Loaded {len(self._accounts)} accounts")

    def _save(self, accounts: dict[str, Account]) -> None:
        """Write ``accounts`` to disk. Callers assign ``self._accounts`` only after success."""
        payload = {"accounts": [account.to_record() for account in accounts.values()]}
        tmp_path = self.accounts_path.with_name(f".{self.accounts_path.name}.tmp-{os.getpid()}")
        try:
            self.accounts_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2))
            os.replace(tmp_path, self.accounts_path)
        except OSError as e:
            raise StorageUnavailableError(
                f"Failed to save accounts configuration: {e}",
                "Please ensure the accounts file is writable",
            ) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    async def list_accounts(self) -> list[Account]:
        """Every account, each with a freshly computed auth status."""
        await self.load_accounts()
        accounts = list(self._accounts.values())
        for account in accounts:
            account.auth_status = await self.token_manager.validate_token(account.email)
        logger.debug(f"Found {len(accounts)} accounts")
        return accounts

    async def get_account(self, email: str) -> Account | None:
        return self._accounts.get(email)

    async def add_account(self, email: str, category: str, description: str) -> Account:
        """Create and persist a new account.

        Raises:
            InvalidEmailError: If the email is malformed.
            DuplicateAccountError: If the account already exists.
            StorageUnavailableError: If the list cannot be saved.
        """
        if not is_valid_email(email):
            logger.error(f"Invalid email format: {email}")
            raise InvalidEmailError(f"Invalid email format: {email}")

        async with self._lock:
            if email in self._accounts:
                raise DuplicateAccountError(f"Account already exists: {email}")

            account = Account(email=email, category=category, description=description)
            accounts = {**self._accounts, email: account}
            self._save(accounts)
            self._accounts = accounts

        logger.info(f"Added account: {email}")
        return account

    async def update_account(
        self,
        email: str,
        category: str | None = None,
        description: str | None = None,
    ) -> Account:
        """Change an account's category and/or description.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        async with self._lock:
            account = self._accounts.get(email)
            if account is None:
                raise AccountNotFoundError(
                    f"Account not found: {email}",
                    "Please ensure the account exists before updating",
                )

            updates = {}
            if category is not None:
                updates["category"] = category
            if description is not None:
                updates["description"] = description

            updated = account.model_copy(update=updates)
            accounts = {**self._accounts, email: updated}
            self._save(accounts)
            self._accounts = accounts

        return updated

    async def validate_account(
        self,
        email: str,
        category: str | None = None,
        description: str | None = None,
    ) -> Account:
        """Look up an account, creating it if category and description are given.

        Returns:
            The account with ``auth_status`` attached.

        Raises:
            AccountNotFoundError: If the account is unknown and category or
                description is missing.
        """
        logger.debug(f"Validating account: {email}")
        account = await self.get_account(email)

        if account is None:
            if not (category and description):
                raise AccountNotFoundError(f"Account not found: {email}")
            account = await self.add_account(email, category, description)

        account.auth_status = await self.token_manager.validate_token(email)
        return account

    async def remove_account(self, email: str) -> None:
        """Delete an account and its token. Removing an unknown account is a no-op.

        The token goes first: a transient orphaned token is acceptable, an
        account pointing at a deleted token is not.
        """
        await self.token_manager.delete_token(email)

        async with self._lock:
            if email not in self._accounts:
                logger.debug(f"Account {email} already removed")
                return
            accounts = {k: v for k, v in self._accounts.items() if k != email}
            self._save(accounts)
            self._accounts = accounts

        logger.info(f"Removed account: {email}")
