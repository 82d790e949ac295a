"""Generating handler: run a policy for a resource and apply what it produces."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable

import kopf
from kubernetes.client.exceptions import ApiException

from ..apply import ApplyPlan, ObjectSetApplier
from ..constants import REASON_RECONCILE_FAILED
from ..metrics import ReconcileObserver
from ..utils.conditions import is_ready, set_status_ready
from ..utils.errors import FeatureDisabledError, ReconcileError, sanitize_exception
from .base import BaseHandler

# (resource body, current status) -> (desired objects, new status); raises on failure
Policy = Callable[[dict[str, Any], dict[str, Any]], tuple[list[dict[str, Any]], dict[str, Any]]]
Revision = Callable[[dict[str, Any]], str]

# Retry delays handed to kopf, in seconds
CONFLICT_RETRY_DELAY = 1
TEMPORARY_RETRY_DELAY = 15


def resource_version(body: dict[str, Any]) -> str:
    """Default revision marker: the server-assigned resourceVersion."""
    return body.get("metadata", {}).get("resourceVersion", "")


def is_conflict(error: BaseException) -> bool:
    return isinstance(error, ApiException) and error.status == 409


def describe_error(error: Exception) -> str:
    """Short sanitized message for status conditions and kopf errors."""
    if isinstance(error, ApiException):
        return f"Kubernetes API error {error.status}: {error.reason}"
    return sanitize_exception(error)


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    status: dict[str, Any]
    changed: bool
    error: Exception | None = None
    skipped: bool = False
    plan: ApplyPlan | None = None


class GeneratingHandler(BaseHandler):
    """Drive one resource kind through policy, apply and status update.

    Args:
        kind: Kind of the source resource
        set_id: Name of the object set the policy produces
        applier: Apply engine for the produced kinds
        policy: Computes desired objects and the new status
        unique_per_revision: Skip policy and apply for a revision already applied
        revision: Revision marker of a resource, resourceVersion by default
        observer: Metrics sink
    """

    def __init__(
        self,
        kind: str,
        set_id: str,
        applier: ObjectSetApplier,
        policy: Policy,
        unique_per_revision: bool = False,
        revision: Revision | None = None,
        observer: ReconcileObserver | None = None,
    ):
        super().__init__(kind, observer)
        self.set_id = set_id
        self.applier = applier
        self.policy = policy
        self.unique_per_revision = unique_per_revision
        self.revision = revision or resource_version
        self._applied: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def owner_key(body: dict[str, Any]) -> tuple[str, str]:
        meta = body.get("metadata", {})
        return meta.get("namespace") or "", meta.get("name", "")

    def applied_revision(self, body: dict[str, Any]) -> str | None:
        """Last revision successfully applied for the resource, if any."""
        with self._lock:
            return self._applied.get(self.owner_key(body))

    def _failed(self, body: dict[str, Any], status: dict[str, Any], error: Exception) -> SyncResult:
        if is_conflict(error):
            # Conflicting writes are retried without touching status
            return SyncResult(status=status, changed=False, error=error)
        reason = getattr(error, "reason", None) if isinstance(error, ReconcileError) else None
        new_status = set_status_ready(
            status,
            False,
            describe_error(error),
            body.get("metadata", {}).get("generation"),
            reason or REASON_RECONCILE_FAILED,
        )
        return SyncResult(status=new_status, changed=new_status != status, error=error)

    def sync(self, body: dict[str, Any]) -> SyncResult:
        """Run one pass for a resource.

        Never raises for policy or apply failures; they are reported in the
        result's status and error.
        """
        meta = body.get("metadata", {})
        status = copy.deepcopy(body.get("status") or {})

        if meta.get("deletionTimestamp"):
            return SyncResult(status=status, changed=False, skipped=True)

        revision = self.revision(body)
        if self.unique_per_revision and revision and self.applied_revision(body) == revision:
            self.log_info(meta, "Revision already applied", reason="Unchanged", revision=revision)
            return SyncResult(status=status, changed=False, skipped=True)

        try:
            objects, new_status = self.policy(body, copy.deepcopy(status))
        except Exception as e:
            return self._failed(body, status, e)

        try:
            plan = self.applier.apply(body, objects, self.set_id)
        except (ReconcileError, ApiException) as e:
            return self._failed(body, status, e)

        if revision:
            with self._lock:
                self._applied[self.owner_key(body)] = revision
        return SyncResult(status=new_status, changed=new_status != status, plan=plan)

    def remove(self, body: dict[str, Any]) -> ApplyPlan:
        """Prune everything applied for a deleted resource.

        Raises:
            ApplyError: If pruning fails
        """
        with self._lock:
            self._applied.pop(self.owner_key(body), None)
        return self.applier.apply(body, [], self.set_id)

    def forget(self, body: dict[str, Any]) -> None:
        """Drop the applied revision so the next pass recomputes."""
        with self._lock:
            self._applied.pop(self.owner_key(body), None)

    def run(self, body: dict[str, Any], patch: kopf.Patch) -> SyncResult:
        """kopf adapter around sync.

        Writes the status only when it changed and maps failures onto kopf's
        retry model.

        Raises:
            kopf.TemporaryError: For retryable failures
            kopf.PermanentError: For failures that need a spec change
        """
        meta = body.get("metadata", {})
        result = self.sync(body)

        if result.changed:
            patch.status.update(result.status)
            self.observer.resource_status(self.kind, is_ready(result.status.get("conditions", [])))

        error = result.error
        if error is None:
            return result

        message = describe_error(error)
        if isinstance(error, FeatureDisabledError):
            self.log_info(meta, message, reason=error.reason)
            return result
        if is_conflict(error):
            raise kopf.TemporaryError(f"Conflict: {message}", delay=CONFLICT_RETRY_DELAY)
        if isinstance(error, ReconcileError):
            if error.retryable:
                raise kopf.TemporaryError(message, delay=TEMPORARY_RETRY_DELAY)
            raise kopf.PermanentError(message)
        if isinstance(error, ApiException):
            raise kopf.TemporaryError(message, delay=TEMPORARY_RETRY_DELAY)
        raise error
