"""Fan Kubeconfig changes out to the KubeconfigSyncs referencing them."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable

import kopf
from kubernetes.client.exceptions import ApiException

from ..constants import ANNOTATION_SYNC_TRIGGER, API_GROUP_VERSION, KIND_KUBECONFIG
from ..metrics import ReconcileObserver
from ..services.kube.base import ObjectStore
from ..services.kube.kinds import KUBECONFIG_SYNC
from ..utils.errors import ReconcileError
from .base import BaseHandler
from .shared import get_observer, get_store

# Marks a KubeconfigSync dirty: (sync body, kubeconfig revision) -> None
Enqueue = Callable[[dict[str, Any], str], None]


def annotate_trigger(store: ObjectStore) -> Enqueue:
    """Enqueue by stamping the Kubeconfig revision onto the sync's trigger annotation.

    The annotation change makes kopf deliver an update for the sync, which
    then runs through its own handler asynchronously.
    """

    def enqueue(sync: dict[str, Any], revision: str) -> None:
        meta = sync.get("metadata", {})
        if (meta.get("annotations") or {}).get(ANNOTATION_SYNC_TRIGGER) == revision:
            return
        store.patch(
            KUBECONFIG_SYNC,
            meta["name"],
            {"metadata": {"annotations": {ANNOTATION_SYNC_TRIGGER: revision}}},
            meta.get("namespace"),
        )

    return enqueue


class KubeconfigHandler(BaseHandler):
    """Handler for Kubeconfig change notifications."""

    def __init__(
        self,
        store: ObjectStore,
        enqueue: Enqueue | None = None,
        observer: ReconcileObserver | None = None,
    ):
        super().__init__(KIND_KUBECONFIG, observer)
        self.store = store
        self.enqueue = enqueue or annotate_trigger(store)

    def fan_out(self, kubeconfig: dict[str, Any]) -> list[str]:
        """Enqueue every KubeconfigSync whose spec.user is this Kubeconfig.

        A sync deleted since the list is skipped. Other failures do not stop
        the remaining syncs from being enqueued.

        Returns:
            Names of the enqueued syncs

        Raises:
            ReconcileError: If any sync could not be enqueued
        """
        meta = kubeconfig.get("metadata", {})
        name = meta.get("name")
        revision = meta.get("resourceVersion", "")

        enqueued = []
        failed = []
        # Listed fresh on every change; spec.user is not selectable server side
        for sync in self.store.list(KUBECONFIG_SYNC):
            if (sync.get("spec") or {}).get("user") != name:
                continue
            sync_name = sync["metadata"]["name"]
            try:
                self.enqueue(sync, revision)
            except ApiException as e:
                if e.status == 404:
                    continue
                self.log_error(meta, f"Failed to enqueue KubeconfigSync {sync_name}", error=e, reason="EnqueueFailed")
                failed.append(sync_name)
                continue
            enqueued.append(sync_name)

        if enqueued:
            self.log_info(meta, f"Synchronizing credentials for {', '.join(enqueued)}", reason="Enqueued")
        if failed:
            raise ReconcileError(f"Failed to enqueue KubeconfigSyncs: {', '.join(failed)}")
        return enqueued

    def handle_event(self, event_type: str | None, body: dict[str, Any]) -> list[str]:
        if event_type == "DELETED":
            return []
        return self.fan_out(body)


@lru_cache(maxsize=1)
def get_handler() -> KubeconfigHandler:
    return KubeconfigHandler(get_store(), observer=get_observer())


@kopf.on.event(API_GROUP_VERSION, KIND_KUBECONFIG)
def handle_kubeconfig_event(
    type: str | None,
    body: kopf.Body,
    **kwargs: Any,
) -> None:
    """Re-sync the KubeconfigSyncs of a changed Kubeconfig."""
    handler = get_handler()
    handler.reconcile_with_metrics(dict(body), lambda: handler.handle_event(type, dict(body)))
