"""Shared fixtures: in-memory stand-ins for the cluster and the secret store."""

from __future__ import annotations

import copy
import itertools
from typing import Any

import pytest
from kubernetes.client.exceptions import ApiException

from kube_user_operator.config import GitHubConfig, OperatorConfig
from kube_user_operator.metrics import NullObserver
from kube_user_operator.services.kube.kinds import ResourceKind
from kube_user_operator.services.store.base import SecretScope, SecretStoreError


def _merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """JSON merge patch: dicts merge, None deletes, everything else replaces."""
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _matches(obj: dict[str, Any], selector: str | None) -> bool:
    if not selector:
        return True
    labels = obj.get("metadata", {}).get("labels") or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeObjectStore:
    """ObjectStore keeping manifests in a dict, keyed by (kind, namespace, name)."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.failures: dict[tuple[str, str], ApiException] = {}
        self._counter = itertools.count(1)

    def _key(self, kind: ResourceKind, name: str, namespace: str | None) -> tuple[str, str, str]:
        return kind.kind, (namespace or "") if kind.namespaced else "", name

    def _stamp(self, obj: dict[str, Any]) -> None:
        meta = obj.setdefault("metadata", {})
        meta["resourceVersion"] = str(next(self._counter))

    def _check(self, operation: str, kind: ResourceKind) -> None:
        error = self.failures.get((operation, kind.kind))
        if error is not None:
            raise error

    def fail(self, operation: str, kind: str, status: int = 500, reason: str = "Internal Server Error") -> None:
        """Make every call of operation on kind raise ApiException."""
        self.failures[(operation, kind)] = ApiException(status=status, reason=reason)

    def add(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        """Seed an object without recording a call."""
        obj = copy.deepcopy(body)
        obj.setdefault("kind", kind.kind)
        obj.setdefault("apiVersion", kind.api_version)
        meta = obj.setdefault("metadata", {})
        meta.setdefault("uid", f"uid-{meta['name']}")
        self._stamp(obj)
        self.objects[self._key(kind, meta["name"], meta.get("namespace"))] = obj
        return copy.deepcopy(obj)

    def find(self, kind: str, name: str, namespace: str = "") -> dict[str, Any] | None:
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(o) for (k, _, _), o in sorted(self.objects.items()) if k == kind]

    @property
    def writes(self) -> list[tuple[str, str, str]]:
        return [c for c in self.calls if c[0] in ("create", "patch", "delete")]

    def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict[str, Any] | None:
        self.calls.append(("get", kind.kind, name))
        self._check("get", kind)
        obj = self.objects.get(self._key(kind, name, namespace))
        return copy.deepcopy(obj) if obj is not None else None

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("list", kind.kind, label_selector or ""))
        self._check("list", kind)
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self.objects.items())
            if k == kind.kind and (namespace is None or ns == namespace) and _matches(obj, label_selector)
        ]

    def create(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        meta = body.get("metadata", {})
        self.calls.append(("create", kind.kind, meta.get("name", "")))
        self._check("create", kind)
        key = self._key(kind, meta["name"], meta.get("namespace"))
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        obj = copy.deepcopy(body)
        obj["metadata"].setdefault("uid", f"uid-{meta['name']}")
        self._stamp(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("patch", kind.kind, name))
        self._check("patch", kind)
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise ApiException(status=404, reason="NotFound")
        current = self.objects[key]
        body = copy.deepcopy(body)
        expected = body.get("metadata", {}).pop("resourceVersion", None)
        if expected is not None and expected != current["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        _merge(current, body)
        self._stamp(current)
        return copy.deepcopy(current)

    def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        self.calls.append(("delete", kind.kind, name))
        self._check("delete", kind)
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise ApiException(status=404, reason="NotFound")
        del self.objects[key]


class FakeSecretStore:
    """SecretStore keeping secrets and variables in dicts."""

    def __init__(self) -> None:
        self.secrets: dict[tuple[SecretScope, str], str] = {}
        self.variables: dict[tuple[SecretScope, str], str] = {}
        self.environments: set[tuple[str, str, str]] = set()
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, SecretStoreError] = {}

    def _call(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def fail(self, operation: str, status: int = 500) -> None:
        self.failures[operation] = SecretStoreError(f"{operation} failed", status=status)

    @property
    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] not in ("secret_exists", "get_variable")]

    def ensure_environment(self, scope: SecretScope) -> None:
        if not scope.environment:
            return
        self._call("ensure_environment", scope.environment)
        self.environments.add((scope.owner, scope.repository, scope.environment))

    def secret_exists(self, scope: SecretScope, name: str) -> bool:
        self._call("secret_exists", name)
        return (scope, name) in self.secrets

    def put_secret(self, scope: SecretScope, name: str, value: str) -> None:
        self._call("put_secret", name)
        self.secrets[(scope, name)] = value

    def delete_secret(self, scope: SecretScope, name: str) -> None:
        self._call("delete_secret", name)
        if (scope, name) not in self.secrets:
            raise SecretStoreError(f"secret {name} not found", status=404)
        del self.secrets[(scope, name)]

    def get_variable(self, scope: SecretScope, name: str) -> str | None:
        self._call("get_variable", name)
        return self.variables.get((scope, name))

    def create_variable(self, scope: SecretScope, name: str, value: str) -> None:
        self._call("create_variable", name)
        if (scope, name) in self.variables:
            raise SecretStoreError(f"variable {name} already exists", status=409)
        self.variables[(scope, name)] = value

    def update_variable(self, scope: SecretScope, name: str, value: str) -> None:
        self._call("update_variable", name)
        if (scope, name) not in self.variables:
            raise SecretStoreError(f"variable {name} not found", status=404)
        self.variables[(scope, name)] = value

    def delete_variable(self, scope: SecretScope, name: str) -> None:
        self._call("delete_variable", name)
        if (scope, name) not in self.variables:
            raise SecretStoreError(f"variable {name} not found", status=404)
        del self.variables[(scope, name)]


@pytest.fixture
def kube_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def secret_store() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture
def observer() -> NullObserver:
    return NullObserver()


@pytest.fixture
def operator_config() -> OperatorConfig:
    return OperatorConfig(
        namespace="kube-user-system",
        context_name="prod",
        server="https://api.example.com:6443",
        ca="",
        default_cluster_role="",
        github=GitHubConfig(token="ghp_testtoken", write_interval=0.0),
    )


@pytest.fixture(autouse=True)
def no_kopf_events(monkeypatch):
    """kopf.event needs a running operator; tests record events instead."""
    events: list[dict[str, Any]] = []

    def record(body, *, reason, message, type="Normal"):
        events.append({"reason": reason, "message": message, "type": type})

    monkeypatch.setattr("kopf.event", record)
    return events
