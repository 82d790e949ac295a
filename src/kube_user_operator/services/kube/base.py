"""Kubernetes object store interface."""

from __future__ import annotations

from typing import Any, Protocol

from .kinds import ResourceKind


class ObjectStore(Protocol):
    """Protocol defining the cluster operations the operator needs.

    Objects travel as plain manifest dictionaries. Failures surface as
    ``kubernetes.client.exceptions.ApiException`` carrying the HTTP status.
    """

    def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict[str, Any] | None:
        """Read an object, None if it does not exist."""
        ...

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List objects, across all namespaces when namespace is None."""
        ...

    def create(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        """Create an object."""
        ...

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        """Merge patch an object.

        A ``metadata.resourceVersion`` in the body turns the patch into an
        optimistic-lock write failing with 409 on a stale version.
        """
        ...

    def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        """Delete an object."""
        ...
