"""Handler for User CRD."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from ..apply import ObjectSetApplier
from ..builders.rbac import build_bindings, build_service_account, build_token_secret
from ..config import OperatorConfig
from ..constants import (
    API_GROUP_VERSION,
    KIND_USER,
    REASON_DISABLED,
    SET_ID_USER,
    TOKEN_SECRET_MIN_MINOR_VERSION,
)
from ..metrics import ReconcileObserver
from ..services.kube.base import ObjectStore
from ..services.kube.kinds import KUBECONFIG, USER_OUTPUT_KINDS
from ..utils.conditions import set_status_ready
from ..utils.errors import ReconcileError
from .generating import GeneratingHandler
from .shared import get_cluster_minor_version, get_config, get_observer, get_store


def is_enabled(spec: dict[str, Any]) -> bool:
    """Users are enabled unless spec.enabled is explicitly false."""
    return spec.get("enabled") is not False


class UserHandler(GeneratingHandler):
    """Handler for User resources.

    Generates the user's ServiceAccount, its token Secret on clusters that no
    longer create one automatically, and the requested role bindings.
    """

    def __init__(
        self,
        config: OperatorConfig,
        store: ObjectStore,
        minor_version: int,
        observer: ReconcileObserver | None = None,
    ):
        """Initialize user handler."""
        super().__init__(
            KIND_USER,
            SET_ID_USER,
            ObjectSetApplier(store, USER_OUTPUT_KINDS, observer),
            self.compute,
            observer=observer,
        )
        self.config = config
        self.store = store
        self.minor_version = minor_version

    def remove_kubeconfig(self, name: str) -> bool:
        """Delete a user's Kubeconfig.

        Returns:
            True if a Kubeconfig was deleted

        Raises:
            ReconcileError: If the delete fails for any reason but absence
        """
        try:
            self.store.delete(KUBECONFIG, name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise ReconcileError(f"Failed to delete Kubeconfig {name}: {e.reason}") from e
        return True

    def compute(self, body: dict[str, Any], status: dict[str, Any]) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Desired objects for a User."""
        meta = body.get("metadata", {})
        spec = body.get("spec") or {}
        name = meta["name"]
        generation = meta.get("generation")

        if not is_enabled(spec):
            if self.remove_kubeconfig(name):
                self.log_info(meta, f"Deleted Kubeconfig of disabled user {name}", reason="KubeconfigDeleted")
            return [], set_status_ready(status, False, "User is disabled", generation, REASON_DISABLED)

        namespace = self.config.namespace
        objects = [build_service_account(name, namespace)]
        if self.minor_version >= TOKEN_SECRET_MIN_MINOR_VERSION:
            objects.append(build_token_secret(name, namespace))
        objects.extend(build_bindings(name, spec, namespace, self.config.default_cluster_role))

        return objects, set_status_ready(status, True, "User is provisioned", generation)

    def reconcile(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Reconcile User resource."""
        self.run(body, patch)

    def delete(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle User deletion: prune generated objects and the Kubeconfig."""
        meta = body.get("metadata", {})
        try:
            self.remove(body)
            self.remove_kubeconfig(meta["name"])
        except ReconcileError as e:
            self.log_error(meta, "Failed to clean up user", error=e, reason="CleanupFailed")
            raise kopf.TemporaryError(f"Cleanup of user {meta['name']} failed, retrying", delay=15) from e
        self.log_info(meta, "User cleaned up", reason="Deleted")
        self.remove_finalizer(meta, patch)


@lru_cache(maxsize=1)
def get_handler() -> UserHandler:
    return UserHandler(get_config(), get_store(), get_cluster_minor_version(), observer=get_observer())


@kopf.on.create(API_GROUP_VERSION, KIND_USER)
@kopf.on.update(API_GROUP_VERSION, KIND_USER)
@kopf.on.resume(API_GROUP_VERSION, KIND_USER)
def handle_user(
    body: kopf.Body,
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle User resource reconciliation."""
    handler = get_handler()
    handler.ensure_finalizer(meta, patch)
    handler.reconcile_with_metrics(dict(body), lambda: handler.reconcile(dict(body), patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_USER)
def handle_user_delete(
    body: kopf.Body,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle User resource deletion."""
    get_handler().delete(dict(body), patch)
