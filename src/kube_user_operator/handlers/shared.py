"""Shared, lazily built collaborators for handlers."""

from __future__ import annotations

from functools import lru_cache

from ..config import OperatorConfig
from ..metrics import PrometheusObserver
from ..mirror import KubeconfigMirror
from ..services.github.client import GitHubSecretStore
from ..services.kube import client as kube_client


@lru_cache(maxsize=1)
def get_config() -> OperatorConfig:
    """Operator configuration, read once from the environment."""
    return OperatorConfig.from_env()


@lru_cache(maxsize=1)
def get_observer() -> PrometheusObserver:
    return PrometheusObserver()


@lru_cache(maxsize=1)
def get_store() -> kube_client.KubeStore:
    """Kubernetes object store.

    Returns:
        KubeStore instance
    """
    kube_client.load_kube_config()
    return kube_client.KubeStore()


@lru_cache(maxsize=1)
def get_cluster_minor_version() -> int:
    """Cluster minor version, queried once."""
    get_store()
    return kube_client.get_cluster_minor_version()


@lru_cache(maxsize=1)
def get_mirror() -> KubeconfigMirror | None:
    """Kubeconfig mirror, None when GitHub synchronization is disabled."""
    config = get_config()
    if not config.github.enabled:
        return None
    return KubeconfigMirror(GitHubSecretStore(config.github), observer=get_observer())
