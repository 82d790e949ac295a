"""Handler deriving Kubeconfigs from ServiceAccount token Secrets."""

from __future__ import annotations

import time
from functools import lru_cache
from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from ..apply import ObjectSetApplier
from ..builders.kubeconfig import build_kubeconfig, default_context_namespace
from ..config import OperatorConfig
from ..constants import (
    ANNOTATION_OWNER_KIND,
    ANNOTATION_OWNER_NAME,
    ANNOTATION_SA_NAME,
    ANNOTATION_SA_UID,
    ANNOTATION_SET_ID,
    ANNOTATION_USER,
    KIND_SECRET,
    KIND_USER,
    SECRET_TYPE_SA_TOKEN,
    SET_ID_SECRET,
    SET_ID_USER,
)
from ..metrics import ReconcileObserver
from ..services.kube.base import ObjectStore
from ..services.kube.kinds import SECRET_OUTPUT_KINDS, SERVICE_ACCOUNT, USER
from ..utils.errors import NotReadyError, ReconcileError
from ..utils.events import emit_kubeconfig_generated, emit_reconcile_failed
from ..utils.secrets import get_secret_field, get_secret_field_raw
from .generating import GeneratingHandler, SyncResult, describe_error
from .shared import get_config, get_observer, get_store
from .user import is_enabled

# Watch events are not redelivered, so retryable failures are retried inline
MAX_ATTEMPTS = 3
RETRY_BACKOFF = 1.0


class SecretHandler(GeneratingHandler):
    """Handler for token Secrets in the operator namespace.

    Each token Secret owned by a User yields that user's Kubeconfig, with the
    Secret as owner so deleting the Secret prunes the Kubeconfig.
    """

    def __init__(
        self,
        config: OperatorConfig,
        store: ObjectStore,
        observer: ReconcileObserver | None = None,
    ):
        super().__init__(
            KIND_SECRET,
            SET_ID_SECRET,
            ObjectSetApplier(store, SECRET_OUTPUT_KINDS, observer),
            self.compute,
            observer=observer,
        )
        self.config = config
        self.store = store

    def resolve_user_name(self, secret: dict[str, Any]) -> str | None:
        """Name of the User a token Secret belongs to, None if it is not ours.

        Token Secrets generated for a User carry ownership annotations. Tokens
        auto-created for a ServiceAccount on older clusters do not; for those
        the ServiceAccount is looked up and must match the token's UID.
        """
        if secret.get("type") != SECRET_TYPE_SA_TOKEN:
            return None

        meta = secret.get("metadata", {})
        annotations = meta.get("annotations") or {}
        if (
            annotations.get(ANNOTATION_SET_ID) == SET_ID_USER
            and annotations.get(ANNOTATION_OWNER_KIND) == KIND_USER
            and annotations.get(ANNOTATION_OWNER_NAME)
        ):
            return annotations[ANNOTATION_OWNER_NAME]

        sa_name = annotations.get(ANNOTATION_SA_NAME)
        if not sa_name:
            return None
        sa = self.store.get(SERVICE_ACCOUNT, sa_name, meta.get("namespace"))
        if sa is None:
            return None
        sa_meta = sa.get("metadata", {})
        if not sa_meta.get("uid") or sa_meta.get("uid") != annotations.get(ANNOTATION_SA_UID):
            return None
        return (sa_meta.get("annotations") or {}).get(ANNOTATION_USER) or None

    def backfill_defaults(self, user: dict[str, Any]) -> dict[str, Any]:
        """Persist default context settings on a User that has none.

        The patch carries the read resourceVersion, so a concurrent update
        fails with a conflict instead of being overwritten.

        Returns:
            The User spec with defaults applied
        """
        meta = user.get("metadata", {})
        spec = dict(user.get("spec") or {})
        defaults: dict[str, Any] = {}
        if not spec.get("context"):
            defaults["context"] = self.config.context_name
        if not spec.get("contextNamespace"):
            defaults["contextNamespace"] = default_context_namespace(spec)
        if not defaults:
            return spec

        self.store.patch(
            USER,
            meta["name"],
            {"metadata": {"resourceVersion": meta.get("resourceVersion")}, "spec": defaults},
        )
        self.log_info(meta, f"Defaulted context settings of user {meta['name']}", reason="Defaulted", **defaults)
        spec.update(defaults)
        return spec

    def compute(self, body: dict[str, Any], status: dict[str, Any]) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Kubeconfig for the User owning a token Secret."""
        user_name = self.resolve_user_name(body)
        if user_name is None:
            raise NotReadyError("Secret is no longer associated with a user")

        user = self.store.get(USER, user_name)
        if user is None:
            raise NotReadyError(f"User {user_name} not found")
        if not is_enabled(user.get("spec") or {}):
            return [], status

        spec = self.backfill_defaults(user)
        ca_data = self.config.ca or get_secret_field_raw(body, "ca.crt")
        token = get_secret_field(body, "token")
        kubeconfig = build_kubeconfig(
            user_name,
            spec["context"],
            spec["contextNamespace"],
            self.config.server,
            ca_data,
            token,
        )
        return [kubeconfig], status

    def handle_event(self, event_type: str | None, body: dict[str, Any]) -> SyncResult | None:
        """Process a watch event for a Secret.

        Returns:
            The sync result, None if the Secret is not a token of a User or has no token yet
        """
        meta = body.get("metadata", {})
        if event_type == "DELETED":
            if body.get("type") != SECRET_TYPE_SA_TOKEN:
                return None
            plan = self.remove(body)
            if plan.delete:
                self.log_info(meta, "Token secret deleted, pruned generated Kubeconfig", reason="Pruned")
            return SyncResult(status={}, changed=False, plan=plan)

        user_name = self.resolve_user_name(body)
        if user_name is None:
            return None
        if not get_secret_field(body, "token"):
            self.log_info(meta, "Token not populated yet", reason="Waiting")
            return None

        for attempt in range(1, MAX_ATTEMPTS + 1):
            result = self.sync(body)
            error = result.error
            if error is None:
                if result.plan is not None and not result.plan.empty:
                    emit_kubeconfig_generated(body, user_name)
                return result
            retryable = isinstance(error, ApiException) or (isinstance(error, ReconcileError) and error.retryable)
            if not retryable or attempt == MAX_ATTEMPTS:
                break
            time.sleep(RETRY_BACKOFF * attempt)

        self.log_error(meta, "Failed to generate Kubeconfig", error=error, reason="KubeconfigFailed")
        emit_reconcile_failed(body, f"Failed to generate Kubeconfig: {describe_error(error)}")
        return result


@lru_cache(maxsize=1)
def get_handler() -> SecretHandler:
    return SecretHandler(get_config(), get_store(), observer=get_observer())


def is_operator_token_secret(namespace: str | None, body: kopf.Body, **_: Any) -> bool:
    return namespace == get_config().namespace and body.get("type") == SECRET_TYPE_SA_TOKEN


@kopf.on.event("v1", "secrets", when=is_operator_token_secret)
def handle_secret_event(
    type: str | None,
    body: kopf.Body,
    **kwargs: Any,
) -> None:
    """Derive the Kubeconfig of a User from its token Secret."""
    handler = get_handler()
    handler.reconcile_with_metrics(dict(body), lambda: handler.handle_event(type, dict(body)))
