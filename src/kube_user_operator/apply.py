"""Object-set apply engine.

Converges the set of objects owned by one owner key onto a desired list.
Ownership is recorded on the objects themselves (a set-hash label plus owner
annotations), so the previously applied set is recomputed from the cluster on
every pass and no external ledger is kept.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from kubernetes.client.exceptions import ApiException

from .constants import (
    ANNOTATION_APPLIED_HASH,
    ANNOTATION_OWNER_KIND,
    ANNOTATION_OWNER_NAME,
    ANNOTATION_OWNER_NAMESPACE,
    ANNOTATION_SET_ID,
    CONTROLLER_NAME,
    LABEL_MANAGED_BY,
    LABEL_SET_HASH,
)
from .metrics import NullObserver, ReconcileObserver
from .services.kube.base import ObjectStore
from .services.kube.kinds import ResourceKind
from .utils.errors import ApplyError

logger = logging.getLogger(__name__)

ObjectKey = tuple[str, str, str]


def object_key(obj: dict[str, Any]) -> ObjectKey:
    """Identity of an object: (kind, namespace, name)."""
    meta = obj.get("metadata", {})
    return obj.get("kind", ""), meta.get("namespace") or "", meta.get("name", "")


def owner_set_hash(set_id: str, owner: dict[str, Any]) -> str:
    """Label value selecting every object applied for (set_id, owner)."""
    meta = owner.get("metadata", {})
    raw = "/".join((set_id, owner.get("kind", ""), meta.get("namespace") or "", meta.get("name", "")))
    return hashlib.sha1(raw.encode("utf-8"), usedforsecurity=False).hexdigest()


def content_hash(obj: dict[str, Any]) -> str:
    """Stable digest of a manifest."""
    canonical = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def contains(current: Any, desired: Any) -> bool:
    """Whether every field set in desired holds the same value in current.

    Fields only present on the live object (uid, resourceVersion, server
    defaults) are ignored; lists must match element by element.
    """
    if isinstance(desired, dict):
        if not isinstance(current, dict):
            return not desired and current is None
        return all(contains(current.get(k), v) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(current, list):
            return not desired and current is None
        return len(current) == len(desired) and all(contains(c, d) for c, d in zip(current, desired))
    return current == desired


def _owner_reference(owner: dict[str, Any], obj: dict[str, Any]) -> dict[str, Any] | None:
    """Owner reference for obj, None where garbage collection cannot honour one."""
    meta = owner.get("metadata", {})
    uid = meta.get("uid")
    if not uid or not owner.get("apiVersion") or not owner.get("kind"):
        return None
    owner_ns = meta.get("namespace") or ""
    obj_ns = obj.get("metadata", {}).get("namespace") or ""
    # Cluster-scoped owners may own anything; namespaced owners only their own namespace
    if owner_ns and owner_ns != obj_ns:
        return None
    return {
        "apiVersion": owner["apiVersion"],
        "kind": owner["kind"],
        "name": meta.get("name"),
        "uid": uid,
        "controller": True,
        "blockOwnerDeletion": False,
    }


def decorate(desired: dict[str, Any], owner: dict[str, Any], set_id: str) -> dict[str, Any]:
    """Return a copy of desired tagged with ownership labels and annotations."""
    obj = copy.deepcopy(desired)
    meta = obj.setdefault("metadata", {})
    owner_meta = owner.get("metadata", {})

    labels = meta.setdefault("labels", {})
    labels[LABEL_MANAGED_BY] = CONTROLLER_NAME
    labels[LABEL_SET_HASH] = owner_set_hash(set_id, owner)

    annotations = meta.setdefault("annotations", {})
    annotations[ANNOTATION_SET_ID] = set_id
    annotations[ANNOTATION_OWNER_KIND] = owner.get("kind", "")
    annotations[ANNOTATION_OWNER_NAME] = owner_meta.get("name", "")
    annotations[ANNOTATION_OWNER_NAMESPACE] = owner_meta.get("namespace") or ""

    owner_ref = _owner_reference(owner, obj)
    if owner_ref is not None:
        meta["ownerReferences"] = [owner_ref]

    annotations[ANNOTATION_APPLIED_HASH] = content_hash(obj)
    return obj


def is_owned_by(obj: dict[str, Any], owner: dict[str, Any], set_id: str) -> bool:
    """Check the ownership annotations of obj against (set_id, owner)."""
    annotations = obj.get("metadata", {}).get("annotations") or {}
    owner_meta = owner.get("metadata", {})
    return (
        annotations.get(ANNOTATION_SET_ID) == set_id
        and annotations.get(ANNOTATION_OWNER_KIND) == owner.get("kind", "")
        and annotations.get(ANNOTATION_OWNER_NAME) == owner_meta.get("name", "")
        and (annotations.get(ANNOTATION_OWNER_NAMESPACE) or "") == (owner_meta.get("namespace") or "")
    )


@dataclass
class ApplyPlan:
    """Writes needed to converge an owned set."""

    create: list[dict[str, Any]] = field(default_factory=list)
    update: list[dict[str, Any]] = field(default_factory=list)
    delete: list[dict[str, Any]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.create or self.update or self.delete)


class ObjectSetApplier:
    """Apply desired object sets for owners through an ObjectStore.

    Args:
        store: Cluster access
        kinds: Kinds this applier may write and prune
        observer: Sink for write metrics
    """

    def __init__(
        self,
        store: ObjectStore,
        kinds: Iterable[ResourceKind],
        observer: ReconcileObserver | None = None,
    ):
        self.store = store
        self.kinds = {k.kind: k for k in kinds}
        self.observer = observer or NullObserver()

    def _order(self, obj: dict[str, Any]) -> int:
        return self.kinds[obj.get("kind", "")].order

    def owned(self, owner: dict[str, Any], set_id: str) -> dict[ObjectKey, dict[str, Any]]:
        """Objects currently applied for (set_id, owner), keyed by object key.

        Raises:
            ApplyError: If listing fails
        """
        selector = f"{LABEL_SET_HASH}={owner_set_hash(set_id, owner)}"
        found: dict[ObjectKey, dict[str, Any]] = {}
        for kind in self.kinds.values():
            try:
                items = self.store.list(kind, label_selector=selector)
            except ApiException as e:
                raise ApplyError(f"Failed to list {kind.kind} objects: {e.reason}", kind=kind.kind) from e
            for item in items:
                if not is_owned_by(item, owner, set_id):
                    continue
                item = {**item, "kind": kind.kind}
                found[object_key(item)] = item
        return found

    def plan(self, owner: dict[str, Any], desired: list[dict[str, Any]], set_id: str) -> ApplyPlan:
        """Diff desired objects against the owned set.

        Raises:
            ApplyError: If a desired object has an unsupported kind or duplicates another, or listing fails
        """
        wanted: dict[ObjectKey, dict[str, Any]] = {}
        for obj in desired:
            kind = obj.get("kind", "")
            if kind not in self.kinds:
                raise ApplyError(f"Cannot apply object of unsupported kind {kind!r}", kind=kind)
            key = object_key(obj)
            if key in wanted:
                raise ApplyError(f"Duplicate desired object {kind} {key[2]}", kind=kind, name=key[2])
            wanted[key] = decorate(obj, owner, set_id)

        existing = self.owned(owner, set_id)
        result = ApplyPlan()
        for key, obj in wanted.items():
            current = existing.get(key)
            if current is None:
                result.create.append(obj)
                continue
            current_hash = (current.get("metadata", {}).get("annotations") or {}).get(ANNOTATION_APPLIED_HASH)
            # Hand edits leave the hash alone, so the live content is checked too
            if current_hash != obj["metadata"]["annotations"][ANNOTATION_APPLIED_HASH] or not contains(current, obj):
                result.update.append(obj)
        result.delete = [obj for key, obj in existing.items() if key not in wanted]

        result.create.sort(key=self._order)
        result.update.sort(key=self._order)
        result.delete.sort(key=self._order, reverse=True)
        return result

    def apply(self, owner: dict[str, Any], desired: list[dict[str, Any]], set_id: str) -> ApplyPlan:
        """Converge the owned set of (set_id, owner) onto desired.

        Creates and updates run principals first, then deletes run in reverse
        order. The first failing write stops the batch; writes already done are
        kept and the next call resumes from the cluster state.

        Args:
            owner: Owner manifest (apiVersion, kind, metadata.name/namespace/uid)
            desired: Desired manifests
            set_id: Name of the object set within the owner

        Returns:
            The plan that was executed

        Raises:
            ApplyError: On the first failed write
        """
        result = self.plan(owner, desired, set_id)
        writes = [("create", o) for o in result.create] + [("update", o) for o in result.update]
        writes.sort(key=lambda item: self._order(item[1]))

        for operation, obj in writes:
            if operation == "create":
                self._create(obj)
            else:
                self._patch(obj, "update")
        for obj in result.delete:
            self._delete(obj)
        return result

    def _create(self, obj: dict[str, Any]) -> None:
        kind = self.kinds[obj["kind"]]
        _, namespace, name = object_key(obj)
        try:
            self.store.create(kind, obj)
        except ApiException as e:
            if e.status == 409:
                # Already present but not labelled for this owner: adopt it
                self._patch(obj, "adopt")
                return
            raise ApplyError(f"Failed to create {kind.kind} {_display(namespace, name)}: {e.reason}", kind.kind, name) from e
        self.observer.applied(kind.kind, "create")
        logger.info(f"Created {kind.kind} {_display(namespace, name)}")

    def _patch(self, obj: dict[str, Any], operation: str) -> None:
        kind = self.kinds[obj["kind"]]
        _, namespace, name = object_key(obj)
        try:
            self.store.patch(kind, name, obj, namespace or None)
        except ApiException as e:
            raise ApplyError(f"Failed to update {kind.kind} {_display(namespace, name)}: {e.reason}", kind.kind, name) from e
        self.observer.applied(kind.kind, operation)
        logger.info(f"Updated {kind.kind} {_display(namespace, name)}")

    def _delete(self, obj: dict[str, Any]) -> None:
        kind = self.kinds[obj["kind"]]
        _, namespace, name = object_key(obj)
        try:
            self.store.delete(kind, name, namespace or None)
        except ApiException as e:
            if e.status == 404:
                return
            raise ApplyError(f"Failed to delete {kind.kind} {_display(namespace, name)}: {e.reason}", kind.kind, name) from e
        self.observer.applied(kind.kind, "delete")
        logger.info(f"Deleted {kind.kind} {_display(namespace, name)}")


def _display(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name
