"""Descriptors for the resource kinds the operator reads and writes."""

from __future__ import annotations

from dataclasses import dataclass

from ...constants import (
    API_GROUP,
    API_VERSION,
    KIND_CLUSTER_ROLE_BINDING,
    KIND_KUBECONFIG,
    KIND_KUBECONFIG_SYNC,
    KIND_ROLE_BINDING,
    KIND_SECRET,
    KIND_SERVICE_ACCOUNT,
    KIND_USER,
    PLURAL_KUBECONFIG_SYNCS,
    PLURAL_KUBECONFIGS,
    PLURAL_USERS,
    RBAC_API_GROUP,
)


@dataclass(frozen=True)
class ResourceKind:
    """How to reach one kind through the Kubernetes API.

    ``api`` selects the client: "core" and "rbac" use the typed clients with
    ``resource`` as the snake case method stem, "custom" uses
    CustomObjectsApi with ``group``/``version``/``plural``.

    ``order`` places the kind in apply order: lower values are created first
    and deleted last, so principals outlive the bindings pointing at them.
    """

    kind: str
    api_version: str
    api: str
    plural: str
    namespaced: bool
    order: int
    resource: str = ""
    group: str = ""
    version: str = ""


SERVICE_ACCOUNT = ResourceKind(
    kind=KIND_SERVICE_ACCOUNT,
    api_version="v1",
    api="core",
    plural="serviceaccounts",
    namespaced=True,
    order=0,
    resource="service_account",
)

SECRET = ResourceKind(
    kind=KIND_SECRET,
    api_version="v1",
    api="core",
    plural="secrets",
    namespaced=True,
    order=1,
    resource="secret",
)

ROLE_BINDING = ResourceKind(
    kind=KIND_ROLE_BINDING,
    api_version=f"{RBAC_API_GROUP}/v1",
    api="rbac",
    plural="rolebindings",
    namespaced=True,
    order=2,
    resource="role_binding",
)

CLUSTER_ROLE_BINDING = ResourceKind(
    kind=KIND_CLUSTER_ROLE_BINDING,
    api_version=f"{RBAC_API_GROUP}/v1",
    api="rbac",
    plural="clusterrolebindings",
    namespaced=False,
    order=2,
    resource="cluster_role_binding",
)

KUBECONFIG = ResourceKind(
    kind=KIND_KUBECONFIG,
    api_version=f"{API_GROUP}/{API_VERSION}",
    api="custom",
    plural=PLURAL_KUBECONFIGS,
    namespaced=False,
    order=3,
    group=API_GROUP,
    version=API_VERSION,
)

USER = ResourceKind(
    kind=KIND_USER,
    api_version=f"{API_GROUP}/{API_VERSION}",
    api="custom",
    plural=PLURAL_USERS,
    namespaced=False,
    order=4,
    group=API_GROUP,
    version=API_VERSION,
)

KUBECONFIG_SYNC = ResourceKind(
    kind=KIND_KUBECONFIG_SYNC,
    api_version=f"{API_GROUP}/{API_VERSION}",
    api="custom",
    plural=PLURAL_KUBECONFIG_SYNCS,
    namespaced=False,
    order=4,
    group=API_GROUP,
    version=API_VERSION,
)

# Kinds produced by the User handler
USER_OUTPUT_KINDS = (SERVICE_ACCOUNT, SECRET, ROLE_BINDING, CLUSTER_ROLE_BINDING)

# Kinds produced by the token Secret handler
SECRET_OUTPUT_KINDS = (KUBECONFIG,)
