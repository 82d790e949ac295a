"""Builders for the identity objects generated from a User."""

from __future__ import annotations

from typing import Any

from ..constants import (
    ANNOTATION_SA_NAME,
    ANNOTATION_USER,
    KIND_CLUSTER_ROLE_BINDING,
    KIND_ROLE_BINDING,
    KIND_SECRET,
    KIND_SERVICE_ACCOUNT,
    RBAC_API_GROUP,
    SECRET_TYPE_SA_TOKEN,
)
from ..naming import binding_name

RBAC_API_VERSION = f"{RBAC_API_GROUP}/v1"


def build_service_account(user: str, namespace: str) -> dict[str, Any]:
    """ServiceAccount acting as the user's principal."""
    return {
        "apiVersion": "v1",
        "kind": KIND_SERVICE_ACCOUNT,
        "metadata": {
            "name": user,
            "namespace": namespace,
            "annotations": {ANNOTATION_USER: user},
        },
    }


def build_token_secret(user: str, namespace: str) -> dict[str, Any]:
    """Token Secret requesting a long-lived token for the user's ServiceAccount."""
    return {
        "apiVersion": "v1",
        "kind": KIND_SECRET,
        "metadata": {
            "name": user,
            "namespace": namespace,
            "annotations": {ANNOTATION_SA_NAME: user},
        },
        "type": SECRET_TYPE_SA_TOKEN,
    }


def _subjects(user: str, namespace: str) -> list[dict[str, Any]]:
    return [{"kind": KIND_SERVICE_ACCOUNT, "name": user, "namespace": namespace}]


def build_cluster_role_binding(user: str, namespace: str, cluster_role: str) -> dict[str, Any]:
    """ClusterRoleBinding of a cluster role to the user's ServiceAccount."""
    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": KIND_CLUSTER_ROLE_BINDING,
        "metadata": {"name": binding_name(user, "", cluster_role, "")},
        "subjects": _subjects(user, namespace),
        "roleRef": {"apiGroup": RBAC_API_GROUP, "kind": "ClusterRole", "name": cluster_role},
    }


def build_role_binding(
    user: str,
    namespace: str,
    target_namespace: str,
    role: str = "",
    cluster_role: str = "",
) -> dict[str, Any]:
    """RoleBinding in target_namespace for either a Role or a ClusterRole.

    Exactly one of role and cluster_role must be given.
    """
    if bool(role) == bool(cluster_role):
        raise ValueError("exactly one of role and cluster_role must be set")
    ref_kind, ref_name = ("Role", role) if role else ("ClusterRole", cluster_role)
    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": KIND_ROLE_BINDING,
        "metadata": {
            "name": binding_name(user, target_namespace, cluster_role, role),
            "namespace": target_namespace,
        },
        "subjects": _subjects(user, namespace),
        "roleRef": {"apiGroup": RBAC_API_GROUP, "kind": ref_kind, "name": ref_name},
    }


def build_bindings(
    user: str,
    spec: dict[str, Any],
    namespace: str,
    default_cluster_role: str = "",
) -> list[dict[str, Any]]:
    """Bindings granting the roles requested in a User spec.

    Args:
        user: User name
        spec: User spec with clusterRoles and roles
        namespace: Namespace of the user's ServiceAccount
        default_cluster_role: Cluster role granted when nothing is requested

    Returns:
        List of binding manifests
    """
    cluster_roles = spec.get("clusterRoles") or []
    roles = spec.get("roles") or []

    if not cluster_roles and not roles:
        if not default_cluster_role:
            return []
        return [build_cluster_role_binding(user, namespace, default_cluster_role)]

    bindings = [build_cluster_role_binding(user, namespace, cr) for cr in cluster_roles if cr]
    for entry in roles:
        target = entry.get("namespace") or ""
        role = entry.get("role") or ""
        cluster_role = entry.get("clusterRole") or ""
        # Malformed entries are dropped
        if not target or not (role or cluster_role):
            continue
        if role:
            bindings.append(build_role_binding(user, namespace, target, role=role))
        if cluster_role:
            bindings.append(build_role_binding(user, namespace, target, cluster_role=cluster_role))
    return bindings
