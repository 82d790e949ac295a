"""External secret store interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ...utils.errors import ReconcileError


class SecretStoreError(ReconcileError):
    """A secret store call failed."""

    reason = "SecretStoreFailed"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status == 404


@dataclass(frozen=True)
class SecretScope:
    """Location secrets and variables live in: a repository or one of its environments."""

    owner: str
    repository: str
    environment: str = ""

    def __str__(self) -> str:
        target = f"{self.owner}/{self.repository}"
        if self.environment:
            target = f"{target} (environment {self.environment})"
        return target


class SecretStore(Protocol):
    """Protocol defining secret store operations.

    All methods raise SecretStoreError on failure.
    """

    def ensure_environment(self, scope: SecretScope) -> None:
        """Create the scope's environment if it does not exist."""
        ...

    def secret_exists(self, scope: SecretScope, name: str) -> bool:
        """Check whether a secret exists."""
        ...

    def put_secret(self, scope: SecretScope, name: str, value: str) -> None:
        """Create or replace a secret."""
        ...

    def delete_secret(self, scope: SecretScope, name: str) -> None:
        """Delete a secret; missing secrets raise with status 404."""
        ...

    def get_variable(self, scope: SecretScope, name: str) -> str | None:
        """Read a variable, None when it does not exist."""
        ...

    def create_variable(self, scope: SecretScope, name: str, value: str) -> None:
        """Create a variable."""
        ...

    def update_variable(self, scope: SecretScope, name: str, value: str) -> None:
        """Update an existing variable."""
        ...

    def delete_variable(self, scope: SecretScope, name: str) -> None:
        """Delete a variable."""
        ...
