"""Mirror kubeconfigs into an external secret store without clobbering foreign secrets.

The store keeps a marker variable per scope listing, comma separated, the
secret names this operator created. A secret that exists but is missing from
the marker belongs to someone else and is never written or deleted.
"""

from __future__ import annotations

import enum
import logging

from .constants import MANAGED_SECRETS_VARIABLE
from .metrics import NullObserver, ReconcileObserver
from .services.store.base import SecretScope, SecretStore, SecretStoreError

logger = logging.getLogger(__name__)


class PushResult(enum.Enum):
    WRITTEN = "Written"
    SKIPPED = "Skipped"


def parse_marker(value: str | None) -> list[str]:
    """Names listed in a marker value, trimmed, without empties or duplicates."""
    names: list[str] = []
    for item in (value or "").split(","):
        item = item.strip()
        if item and item not in names:
            names.append(item)
    return names


def format_marker(names: list[str]) -> str:
    return ",".join(names)


class KubeconfigMirror:
    """Ownership-aware writes of kubeconfig secrets.

    Args:
        store: External secret store
        observer: Metrics sink
        marker: Name of the owned-secrets marker variable
    """

    def __init__(
        self,
        store: SecretStore,
        observer: ReconcileObserver | None = None,
        marker: str = MANAGED_SECRETS_VARIABLE,
    ):
        self.store = store
        self.observer = observer or NullObserver()
        self.marker = marker

    def managed(self, scope: SecretScope) -> list[str]:
        """Secret names the operator owns in a scope."""
        return parse_marker(self.store.get_variable(scope, self.marker))

    def _mark(self, scope: SecretScope, name: str) -> None:
        current = self.store.get_variable(scope, self.marker)
        if current is None:
            try:
                self.store.create_variable(scope, self.marker, name)
                return
            except SecretStoreError as e:
                # Created concurrently by another pass; fall through to update
                if e.status not in (409, 422):
                    raise
                current = self.store.get_variable(scope, self.marker)
        names = parse_marker(current)
        if name in names:
            return
        names.append(name)
        self.store.update_variable(scope, self.marker, format_marker(names))

    def _unmark(self, scope: SecretScope, name: str) -> None:
        current = self.store.get_variable(scope, self.marker)
        if current is None:
            return
        names = [n for n in parse_marker(current) if n != name]
        if names:
            self.store.update_variable(scope, self.marker, format_marker(names))
            return
        try:
            self.store.delete_variable(scope, self.marker)
        except SecretStoreError as e:
            if not e.not_found:
                raise

    def push(self, scope: SecretScope, name: str, value: str) -> PushResult:
        """Write a secret unless a foreign secret of that name exists.

        A new secret is registered in the marker before it is written, so a
        failed marker update never leaves an unowned secret behind.

        Raises:
            SecretStoreError: If a store call fails
        """
        self.store.ensure_environment(scope)

        exists = self.store.secret_exists(scope, name)
        if exists and name not in self.managed(scope):
            logger.warning(f"Secret {name} in {scope} is not managed by the operator, skipping")
            self.observer.mirror("push", "skipped")
            return PushResult.SKIPPED

        if not exists:
            self._mark(scope, name)
        self.store.put_secret(scope, name, value)
        self.observer.mirror("push", "written")
        logger.info(f"Wrote secret {name} to {scope}")
        return PushResult.WRITTEN

    def remove(self, scope: SecretScope, name: str) -> bool:
        """Delete a secret the operator owns and drop it from the marker.

        Returns:
            True if the secret was owned and is now gone, False if it was left alone

        Raises:
            SecretStoreError: If a store call fails
        """
        if name not in self.managed(scope):
            logger.info(f"Secret {name} in {scope} is not managed by the operator, not deleting")
            self.observer.mirror("remove", "skipped")
            return False

        try:
            self.store.delete_secret(scope, name)
        except SecretStoreError as e:
            if not e.not_found:
                raise
        self._unmark(scope, name)
        self.observer.mirror("remove", "deleted")
        logger.info(f"Removed secret {name} from {scope}")
        return True
