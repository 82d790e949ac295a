"""Deterministic names for generated objects."""

from __future__ import annotations

import hashlib

from .constants import NAME_PREFIX

MAX_NAME_LENGTH = 63
HASH_LENGTH = 8


def safe_concat_name(*parts: str, max_length: int = MAX_NAME_LENGTH) -> str:
    """Join parts with dashes, keeping the last part intact when clipping.

    The head is cut so the result fits into max_length; trailing separators
    left behind by the cut are dropped so the name stays a valid DNS label.

    Args:
        *parts: Name components, the last one is always preserved
        max_length: Maximum length of the result

    Returns:
        Name of at most max_length characters
    """
    full = "-".join(parts)
    if len(full) <= max_length:
        return full

    suffix = parts[-1]
    head = "-".join(parts[:-1])[: max(max_length - len(suffix) - 1, 0)]
    head = head.rstrip("-.")
    if not head:
        return suffix[:max_length]
    return f"{head}-{suffix}"


def binding_hash(user: str, namespace: str, cluster_role: str, role: str) -> str:
    """Short content hash over the full binding tuple."""
    digest = hashlib.md5(
        "/".join((user, namespace, cluster_role, role)).encode("utf-8"),
        usedforsecurity=False,
    )
    return digest.hexdigest()[:HASH_LENGTH]


def binding_name(user: str, namespace: str, cluster_role: str, role: str) -> str:
    """Name of the (Cluster)RoleBinding granting a role to a user.

    Args:
        user: User name
        namespace: Binding namespace, empty for cluster bindings
        cluster_role: Cluster role name or empty
        role: Role name or empty; the cluster role is used as label when empty

    Returns:
        Name unique per (user, namespace, cluster_role, role)
    """
    label = role or cluster_role
    return safe_concat_name(NAME_PREFIX, user, label, binding_hash(user, namespace, cluster_role, role))
