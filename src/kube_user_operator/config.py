"""Operator configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class GitHubConfig:
    """Connection settings for the GitHub secret store."""

    url: str = ""
    token: str = ""
    write_interval: float = 1.0

    @property
    def enabled(self) -> bool:
        """Mirroring is enabled only when a token is configured."""
        return bool(self.token)

    @property
    def api_url(self) -> str:
        """REST base URL; GitHub Enterprise serves the API under /api/v3."""
        if not self.url:
            return DEFAULT_GITHUB_API_URL
        return f"{self.url.rstrip('/')}/api/v3"


@dataclass(frozen=True)
class OperatorConfig:
    """Static operator configuration."""

    namespace: str = "kube-user-system"
    context_name: str = "default"
    server: str = "https://kubernetes.default.svc"
    ca: str = ""
    default_cluster_role: str = ""
    github: GitHubConfig = field(default_factory=GitHubConfig)

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Build configuration from environment variables.

        Raises:
            ValueError: If GITHUB_WRITE_INTERVAL_SECONDS is not a number
        """
        interval = os.getenv("GITHUB_WRITE_INTERVAL_SECONDS", "1.0")
        try:
            write_interval = float(interval)
        except ValueError as e:
            raise ValueError(f"GITHUB_WRITE_INTERVAL_SECONDS must be a number, got {interval!r}") from e

        return cls(
            namespace=os.getenv("OPERATOR_NAMESPACE", "kube-user-system"),
            context_name=os.getenv("CONTEXT_NAME", "default"),
            server=os.getenv("CLUSTER_SERVER", "https://kubernetes.default.svc"),
            ca=os.getenv("CLUSTER_CA", ""),
            default_cluster_role=os.getenv("DEFAULT_CLUSTER_ROLE", ""),
            github=GitHubConfig(
                url=os.getenv("GITHUB_URL", ""),
                token=os.getenv("GITHUB_TOKEN", ""),
                write_interval=max(write_interval, 0.0),
            ),
        )
