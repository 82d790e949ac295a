"""Handler for KubeconfigSync CRD."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import kopf

from ..apply import ObjectSetApplier
from ..builders.kubeconfig import render_kubeconfig
from ..config import OperatorConfig
from ..constants import (
    ANNOTATION_SYNC_TRIGGER,
    API_GROUP_VERSION,
    KIND_KUBECONFIG_SYNC,
    OUTCOME_SKIPPED,
    OUTCOME_WRITTEN,
)
from ..metrics import ReconcileObserver
from ..mirror import KubeconfigMirror, PushResult
from ..services.kube.base import ObjectStore
from ..services.kube.kinds import KUBECONFIG
from ..services.store.base import SecretScope
from ..tracing import trace_span
from ..utils.conditions import set_status_ready
from ..utils.errors import FeatureDisabledError, NotReadyError, PolicyError, ReconcileError
from ..utils.events import emit_secret_mirrored, emit_secret_removed, emit_secret_skipped
from .generating import GeneratingHandler
from .shared import get_config, get_mirror, get_observer, get_store

SET_ID_SYNC = "kubeconfig-sync"


def sync_revision(body: dict[str, Any]) -> str:
    """Revision marker of a KubeconfigSync.

    Changes with the spec generation and whenever the referenced Kubeconfig
    changes, but not with status or finalizer writes.
    """
    meta = body.get("metadata", {})
    trigger = (meta.get("annotations") or {}).get(ANNOTATION_SYNC_TRIGGER, "")
    return f"{meta.get('generation', 0)}/{trigger}"


def github_target(spec: dict[str, Any]) -> tuple[SecretScope, str]:
    """Secret scope and name from a KubeconfigSync spec.

    Raises:
        PolicyError: If owner, repository or secretName is missing
    """
    github = spec.get("github") or {}
    owner = github.get("owner") or ""
    repository = github.get("repository") or ""
    secret_name = github.get("secretName") or ""
    if not (owner and repository and secret_name):
        raise PolicyError("Not enough GitHub data to create a GitHub secret: owner, repository and secretName are required")
    return SecretScope(owner, repository, github.get("environment") or ""), secret_name


class KubeconfigSyncHandler(GeneratingHandler):
    """Handler for KubeconfigSync resources.

    Mirrors a user's Kubeconfig into a GitHub Actions secret. The sync
    produces no cluster objects; its only side effect is the external write.
    """

    def __init__(
        self,
        config: OperatorConfig,
        store: ObjectStore,
        mirror: KubeconfigMirror | None,
        observer: ReconcileObserver | None = None,
    ):
        super().__init__(
            KIND_KUBECONFIG_SYNC,
            SET_ID_SYNC,
            ObjectSetApplier(store, (), observer),
            self.compute,
            unique_per_revision=True,
            revision=sync_revision,
            observer=observer,
        )
        self.config = config
        self.store = store
        self.mirror = mirror

    @property
    def enabled(self) -> bool:
        return self.config.github.enabled and self.mirror is not None

    def compute(self, body: dict[str, Any], status: dict[str, Any]) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Push the referenced Kubeconfig to its GitHub secret."""
        meta = body.get("metadata", {})
        spec = body.get("spec") or {}

        if not self.enabled:
            self.log_warning(meta, "GitHub synchronization is disabled but KubeconfigSync objects exist", reason="Disabled")
            raise FeatureDisabledError("GitHub synchronization is disabled")

        user = spec.get("user")
        if not user:
            raise PolicyError("spec.user is required")
        scope, secret_name = github_target(spec)

        kubeconfig = self.store.get(KUBECONFIG, user)
        if kubeconfig is None:
            raise NotReadyError(f"Kubeconfig for user {user} is not yet ready")

        with trace_span("mirror_kubeconfig", kind=self.kind, attributes={"github.target": str(scope)}):
            result = self.mirror.push(scope, secret_name, render_kubeconfig(kubeconfig.get("spec") or {}))

        if result is PushResult.SKIPPED:
            emit_secret_skipped(body, secret_name, str(scope))
            message = f"Secret {secret_name} already exists in {scope} and is not managed by the operator"
            outcome = OUTCOME_SKIPPED
        else:
            emit_secret_mirrored(body, secret_name, str(scope))
            message = f"Kubeconfig of user {user} written to secret {secret_name} in {scope}"
            outcome = OUTCOME_WRITTEN

        new_status = set_status_ready(status, True, message, meta.get("generation"))
        new_status["secretName"] = secret_name
        new_status["outcome"] = outcome
        return [], new_status

    def reconcile(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Reconcile KubeconfigSync resource."""
        self.run(body, patch)

    def delete(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Remove the mirrored secret if the operator owns it."""
        meta = body.get("metadata", {})
        self.forget(body)

        if not self.enabled:
            self.log_warning(meta, "GitHub synchronization is disabled, leaving mirrored secret in place", reason="Disabled")
            self.remove_finalizer(meta, patch)
            return

        try:
            scope, secret_name = github_target(body.get("spec") or {})
        except PolicyError as e:
            self.log_warning(meta, f"Nothing to remove: {e}", reason="InvalidSpec")
            self.remove_finalizer(meta, patch)
            return

        try:
            removed = self.mirror.remove(scope, secret_name)
        except ReconcileError as e:
            self.log_error(meta, "Failed to remove mirrored secret", error=e, reason="CleanupFailed")
            raise kopf.TemporaryError(f"Removing secret {secret_name} from {scope} failed, retrying", delay=15) from e

        if removed:
            emit_secret_removed(body, secret_name, str(scope))
        self.remove_finalizer(meta, patch)


@lru_cache(maxsize=1)
def get_handler() -> KubeconfigSyncHandler:
    return KubeconfigSyncHandler(get_config(), get_store(), get_mirror(), observer=get_observer())


@kopf.on.create(API_GROUP_VERSION, KIND_KUBECONFIG_SYNC)
@kopf.on.update(API_GROUP_VERSION, KIND_KUBECONFIG_SYNC)
@kopf.on.resume(API_GROUP_VERSION, KIND_KUBECONFIG_SYNC)
def handle_kubeconfig_sync(
    body: kopf.Body,
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle KubeconfigSync resource reconciliation."""
    handler = get_handler()
    handler.ensure_finalizer(meta, patch)
    handler.reconcile_with_metrics(dict(body), lambda: handler.reconcile(dict(body), patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_KUBECONFIG_SYNC)
def handle_kubeconfig_sync_delete(
    body: kopf.Body,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle KubeconfigSync resource deletion."""
    get_handler().delete(dict(body), patch)
