"""Registry of the OAuth scopes each Workspace module requires.

Modules register their scopes once at startup. The registry then answers two
questions: which scopes a consent URL should request (the union across all
modules, so users are prompted once), and whether a token's granted scopes
cover what an operation needs.

Example:
    ```python
    registry = ScopeRegistry()
    registry.register_scope(
        "gmail",
        "https://www.googleapis.com/auth/gmail.send",
        "Required for sending emails",
    )

    registry.get_all_scopes()
    registry.validate_scopes(token.scopes, registry.get_module_scopes("gmail"))
    ```
"""

import logging
from collections.abc import Iterable

from gworkspace_accounts.auth.models import ScopeRequirement
from gworkspace_accounts.errors import MissingScopeError

logger = logging.getLogger(__name__)


class ScopeRegistry:
    """In-memory table of module -> required scopes.

    Construct one per process and hand it to the TokenManager.
    """

    def __init__(self) -> None:
        # Insertion order is registration order
        self._scopes: dict[str, ScopeRequirement] = {}
        self._modules: dict[str, list[str]] = {}

    def register_scope(self, module: str, scope: str, description: str = "") -> None:
        """Register a scope requirement for a module.

        Registering the same scope twice is a no-op. A scope already owned by
        another module keeps its first owner but is also listed for ``module``.

        Args:
            module: Module requiring the scope (e.g. "gmail").
            scope: OAuth scope string.
            description: Why the module needs the scope.
        """
        module_scopes = self._modules.setdefault(module, [])
        if scope not in module_scopes:
            module_scopes.append(scope)

        existing = self._scopes.get(scope)
        if existing is not None:
            if existing.module != module:
                logger.warning(
                    f"Scope {scope} already registered by {existing.module}, "
                    f"now also requested by {module}"
                )
            return

        self._scopes[scope] = ScopeRequirement(module=module, scope=scope, description=description)

    def get_all_scopes(self) -> list[str]:
        """Deduplicated union of every registered scope, in registration order."""
        return list(self._scopes)

    def get_module_scopes(self, module: str) -> list[str]:
        """Scopes registered for one module (empty if the module is unknown)."""
        return list(self._modules.get(module, []))

    def get_scope_details(self) -> list[ScopeRequirement]:
        return list(self._scopes.values())

    @property
    def modules(self) -> list[str]:
        return list(self._modules)

    def validate_scopes(
        self,
        granted_scopes: Iterable[str],
        required_scopes: Iterable[str] | None = None,
    ) -> None:
        """Check that granted scopes cover a requirement.

        Args:
            granted_scopes: Scopes carried by the token.
            required_scopes: Scopes the operation needs. Defaults to every
                registered scope.

        Raises:
            MissingScopeError: Naming the first unmet scope, with details of
                all missing ones.
        """
        granted = set(granted_scopes)
        required = self.get_all_scopes() if required_scopes is None else list(required_scopes)

        missing: list[str] = []
        for scope in required:
            if scope not in granted and scope not in missing:
                missing.append(scope)

        if not missing:
            return

        details = []
        for scope in missing:
            requirement = self._scopes.get(scope)
            if requirement is None:
                details.append(scope)
            elif requirement.description:
                details.append(
                    f"{scope} (required by {requirement.module}: {requirement.description})"
                )
            else:
                details.append(f"{scope} (required by {requirement.module})")

        raise MissingScopeError(
            f"Missing required scope: {missing[0]}. All missing scopes:\n" + "\n".join(details),
            missing_scopes=missing,
        )
