"""GitHub Actions secret store client."""

from __future__ import annotations

import base64
import logging
import time
from typing import Any
from urllib.parse import quote

import requests
from nacl import encoding, public
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ... import metrics
from ...config import GitHubConfig
from ...utils.rate_limit import MinIntervalLimiter
from ..store.base import SecretScope, SecretStoreError

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 30


def encrypt_secret(public_key: str, value: str) -> str:
    """Encrypt a value with a sealed box for a base64 encoded public key.

    Raises:
        SecretStoreError: If the key is not a 32 byte Curve25519 key
    """
    try:
        key = public.PublicKey(public_key.encode("ascii"), encoding.Base64Encoder())
    except (TypeError, ValueError) as e:
        raise SecretStoreError(f"Invalid secret store public key: {e}") from e
    sealed = public.SealedBox(key).encrypt(value.encode("utf-8"))
    return base64.b64encode(sealed).decode("ascii")


class GitHubSecretStore:
    """SecretStore on the GitHub REST API for Actions secrets and variables.

    Every write waits on a shared limiter so consecutive writes across all
    reconcile workers are spaced at least ``write_interval`` seconds apart.
    """

    def __init__(
        self,
        config: GitHubConfig,
        session: requests.Session | None = None,
        write_limiter: MinIntervalLimiter | None = None,
    ) -> None:
        self.base_url = config.api_url
        self.write_limiter = write_limiter or MinIntervalLimiter(config.write_interval, "github")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            }
        )
        # Retry strategy for transient errors
        retry = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "PUT", "DELETE"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _scope_path(self, scope: SecretScope) -> str:
        path = f"/repos/{quote(scope.owner, safe='')}/{quote(scope.repository, safe='')}"
        if scope.environment:
            path = f"{path}/environments/{quote(scope.environment, safe='')}"
        return path

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json_body: Any = None,
        ok: tuple[int, ...] = (200, 201, 204),
        allow_missing: bool = False,
    ) -> requests.Response | None:
        """Make an API request, mapping failures to SecretStoreError.

        Returns None for a 404 when allow_missing is set.
        """
        if method != "GET":
            self.write_limiter.wait()

        url = f"{self.base_url}{path}"
        logger.debug("GitHub %s %s", method, url)
        start_time = time.time()
        try:
            resp = self.session.request(method, url, json=json_body, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            metrics.api_call_total.labels(api_type="github", operation=operation, result="error").inc()
            raise SecretStoreError(f"GitHub {operation} failed: {type(e).__name__}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="github", operation=operation).observe(duration)

        if resp.status_code == 404 and allow_missing:
            metrics.api_call_total.labels(api_type="github", operation=operation, result="not_found").inc()
            return None
        if resp.status_code not in ok:
            metrics.api_call_total.labels(api_type="github", operation=operation, result="error").inc()
            logger.debug("GitHub error: %s %s -> %d: %s", method, url, resp.status_code, resp.text[:500])
            raise SecretStoreError(
                f"GitHub {operation} failed with HTTP {resp.status_code}",
                status=resp.status_code,
            )
        metrics.api_call_total.labels(api_type="github", operation=operation, result="success").inc()
        return resp

    def ensure_environment(self, scope: SecretScope) -> None:
        if not scope.environment:
            return
        path = self._scope_path(scope)
        if self._request("GET", path, "get_environment", allow_missing=True) is None:
            logger.info(f"Creating GitHub environment {scope.environment} in {scope.owner}/{scope.repository}")
            self._request("PUT", path, "create_environment", json_body={})

    def _public_key(self, scope: SecretScope) -> dict[str, Any]:
        resp = self._request("GET", f"{self._scope_path(scope)}/secrets/public-key", "get_public_key")
        return resp.json()

    def secret_exists(self, scope: SecretScope, name: str) -> bool:
        path = f"{self._scope_path(scope)}/secrets/{quote(name, safe='')}"
        return self._request("GET", path, "get_secret", allow_missing=True) is not None

    def put_secret(self, scope: SecretScope, name: str, value: str) -> None:
        key = self._public_key(scope)
        body = {"encrypted_value": encrypt_secret(key["key"], value), "key_id": key["key_id"]}
        path = f"{self._scope_path(scope)}/secrets/{quote(name, safe='')}"
        self._request("PUT", path, "put_secret", json_body=body)

    def delete_secret(self, scope: SecretScope, name: str) -> None:
        path = f"{self._scope_path(scope)}/secrets/{quote(name, safe='')}"
        self._request("DELETE", path, "delete_secret")

    def get_variable(self, scope: SecretScope, name: str) -> str | None:
        path = f"{self._scope_path(scope)}/variables/{quote(name, safe='')}"
        resp = self._request("GET", path, "get_variable", allow_missing=True)
        if resp is None:
            return None
        return resp.json().get("value", "")

    def create_variable(self, scope: SecretScope, name: str, value: str) -> None:
        path = f"{self._scope_path(scope)}/variables"
        self._request("POST", path, "create_variable", json_body={"name": name, "value": value})

    def update_variable(self, scope: SecretScope, name: str, value: str) -> None:
        path = f"{self._scope_path(scope)}/variables/{quote(name, safe='')}"
        self._request("PATCH", path, "update_variable", json_body={"name": name, "value": value})

    def delete_variable(self, scope: SecretScope, name: str) -> None:
        path = f"{self._scope_path(scope)}/variables/{quote(name, safe='')}"
        self._request("DELETE", path, "delete_variable")
