"""Kubernetes object store backed by the official Python client."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from ... import metrics
from ...utils.rate_limit import handle_rate_limit_error, rate_limit_k8s
from .kinds import ResourceKind

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def parse_minor_version(minor: str) -> int:
    """Parse a server minor version such as "24" or "24+".

    Raises:
        ValueError: If the value holds no version number
    """
    match = re.match(r"\s*(\d+)", minor or "")
    if match is None:
        raise ValueError(f"Cannot parse Kubernetes minor version {minor!r}")
    return int(match.group(1))


def get_cluster_minor_version() -> int:
    """Query the API server for its minor version."""
    info = client.VersionApi().get_code()
    return parse_minor_version(info.minor)


class KubeStore:
    """ObjectStore implementation on CoreV1Api, RbacAuthorizationV1Api and CustomObjectsApi."""

    def __init__(self, api_client: client.ApiClient | None = None):
        self.api_client = api_client or client.ApiClient()
        self._apis = {
            "core": client.CoreV1Api(self.api_client),
            "rbac": client.RbacAuthorizationV1Api(self.api_client),
            "custom": client.CustomObjectsApi(self.api_client),
        }

    def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        """Run an API call with rate limiting, metrics and 429 backoff."""
        attempt = 0
        while True:
            start_time = time.time()
            try:
                result = rate_limit_k8s(fn)(**kwargs)
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
                return result
            except ApiException as e:
                metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
                if handle_rate_limit_error(e, attempt):
                    attempt += 1
                    continue
                raise
            finally:
                duration = time.time() - start_time
                metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self.api_client.sanitize_for_serialization(obj)

    def _typed(self, kind: ResourceKind, verb: str, namespace: str | None, all_namespaces: bool = False):
        api = self._apis[kind.api]
        if not kind.namespaced:
            return getattr(api, f"{verb}_{kind.resource}")
        if all_namespaces:
            return getattr(api, f"{verb}_{kind.resource}_for_all_namespaces")
        return getattr(api, f"{verb}_namespaced_{kind.resource}")

    def _custom_kwargs(self, kind: ResourceKind, namespace: str | None) -> dict[str, Any]:
        kwargs = {"group": kind.group, "version": kind.version, "plural": kind.plural}
        if kind.namespaced:
            kwargs["namespace"] = namespace
        return kwargs

    def _custom(self, kind: ResourceKind, verb: str):
        api = self._apis["custom"]
        scope = "namespaced" if kind.namespaced else "cluster"
        return getattr(api, f"{verb}_{scope}_custom_object")

    def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> dict[str, Any] | None:
        operation = f"get_{kind.plural}"
        try:
            if kind.api == "custom":
                obj = self._call(operation, self._custom(kind, "get"), name=name, **self._custom_kwargs(kind, namespace))
            else:
                kwargs: dict[str, Any] = {"name": name}
                if kind.namespaced:
                    kwargs["namespace"] = namespace
                obj = self._call(operation, self._typed(kind, "read", namespace), **kwargs)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return self._to_dict(obj)

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        operation = f"list_{kind.plural}"
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector

        if kind.api == "custom":
            if kind.namespaced and namespace is None:
                fn = self._apis["custom"].list_cluster_custom_object
                result = self._call(operation, fn, group=kind.group, version=kind.version, plural=kind.plural, **kwargs)
            else:
                result = self._call(operation, self._custom(kind, "list"), **self._custom_kwargs(kind, namespace), **kwargs)
            return list(result.get("items", []))

        if kind.namespaced and namespace is not None:
            kwargs["namespace"] = namespace
        fn = self._typed(kind, "list", namespace, all_namespaces=kind.namespaced and namespace is None)
        result = self._to_dict(self._call(operation, fn, **kwargs))
        items = result.get("items") or []
        for item in items:
            # Typed list responses omit kind/apiVersion on items
            item.setdefault("kind", kind.kind)
            item.setdefault("apiVersion", kind.api_version)
        return items

    def create(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        operation = f"create_{kind.plural}"
        namespace = body.get("metadata", {}).get("namespace")
        if kind.api == "custom":
            obj = self._call(operation, self._custom(kind, "create"), body=body, **self._custom_kwargs(kind, namespace))
        else:
            kwargs: dict[str, Any] = {"body": body}
            if kind.namespaced:
                kwargs["namespace"] = namespace
            obj = self._call(operation, self._typed(kind, "create", namespace), **kwargs)
        return self._to_dict(obj)

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> dict[str, Any]:
        operation = f"patch_{kind.plural}"
        if kind.api == "custom":
            # Custom resources do not support strategic merge patches
            obj = self._call(
                operation,
                self._custom(kind, "patch"),
                name=name,
                body=body,
                _content_type=MERGE_PATCH,
                **self._custom_kwargs(kind, namespace),
            )
        else:
            kwargs: dict[str, Any] = {"name": name, "body": body}
            if kind.namespaced:
                kwargs["namespace"] = namespace
            obj = self._call(operation, self._typed(kind, "patch", namespace), **kwargs)
        return self._to_dict(obj)

    def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        operation = f"delete_{kind.plural}"
        if kind.api == "custom":
            self._call(operation, self._custom(kind, "delete"), name=name, **self._custom_kwargs(kind, namespace))
            return
        kwargs: dict[str, Any] = {"name": name}
        if kind.namespaced:
            kwargs["namespace"] = namespace
        self._call(operation, self._typed(kind, "delete", namespace), **kwargs)
