"""Builder for the Kubeconfig generated from a token Secret."""

from __future__ import annotations

from typing import Any

import yaml

from ..constants import API_GROUP_VERSION, KIND_KUBECONFIG


def default_context_namespace(spec: dict[str, Any]) -> str:
    """First namespace a user has a role in, "default" otherwise."""
    for entry in spec.get("roles") or []:
        if entry.get("namespace"):
            return entry["namespace"]
    return "default"


def build_kubeconfig(
    user: str,
    context: str,
    context_namespace: str,
    server: str,
    ca_data: str,
    token: str,
) -> dict[str, Any]:
    """Kubeconfig resource for a user.

    Args:
        user: User name, also the Kubeconfig name
        context: Context and cluster name
        context_namespace: Namespace the context points at
        server: API server URL
        ca_data: Base64 encoded CA bundle
        token: Bearer token

    Returns:
        Kubeconfig manifest
    """
    return {
        "apiVersion": API_GROUP_VERSION,
        "kind": KIND_KUBECONFIG,
        "metadata": {"name": user},
        "spec": {
            "clusters": [
                {
                    "name": context,
                    "cluster": {"server": server, "certificate-authority-data": ca_data},
                }
            ],
            "users": [{"name": user, "user": {"token": token}}],
            "contexts": [
                {
                    "name": context,
                    "context": {"cluster": context, "user": user, "namespace": context_namespace},
                }
            ],
            "current-context": context,
        },
    }


def render_kubeconfig(spec: dict[str, Any]) -> str:
    """Serialize a Kubeconfig spec to the YAML a kubectl client reads."""
    document = {"apiVersion": "v1", "kind": "Config", "preferences": {}}
    document.update(spec)
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
