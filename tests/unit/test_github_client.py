"""Tests for the GitHub secret store client."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest
import requests
from nacl import encoding, public
from urllib3.util.retry import Retry

from kube_user_operator.config import GitHubConfig
from kube_user_operator.services.github.client import GitHubSecretStore, encrypt_secret
from kube_user_operator.services.store.base import SecretScope, SecretStoreError

API = "https://api.github.com"
REPO = f"{API}/repos/acme/deploy"
SCOPE = SecretScope("acme", "deploy")
ENV_SCOPE = SecretScope("acme", "deploy", "prod env")


@pytest.fixture
def private_key():
    return public.PrivateKey.generate()


@pytest.fixture
def limiter():
    return MagicMock()


@pytest.fixture
def store(limiter):
    return GitHubSecretStore(GitHubConfig(token="ghp_testtoken", write_interval=0.0), write_limiter=limiter)


def public_key_b64(private_key) -> str:
    return private_key.public_key.encode(encoding.Base64Encoder).decode("ascii")


class TestEncryptSecret:
    """Test cases for encrypt_secret."""

    def test_sealed_box_round_trip(self, private_key):
        """Test that the holder of the private key can decrypt the value."""
        encrypted = encrypt_secret(public_key_b64(private_key), "kubeconfig")
        plain = public.SealedBox(private_key).decrypt(base64.b64decode(encrypted))
        assert plain == b"kubeconfig"

    def test_invalid_key(self):
        """Test that a malformed key is reported as a store error."""
        with pytest.raises(SecretStoreError):
            encrypt_secret(base64.b64encode(b"short").decode(), "value")


class TestGitHubSecretStore:
    """Test cases for GitHubSecretStore."""

    def test_headers(self, store, requests_mock):
        """Test authentication and API version headers."""
        requests_mock.get(f"{REPO}/secrets/KUBECONFIG", json={"name": "KUBECONFIG"})

        store.secret_exists(SCOPE, "KUBECONFIG")

        headers = requests_mock.last_request.headers
        assert headers["Authorization"] == "Bearer ghp_testtoken"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["Accept"] == "application/vnd.github+json"

    def test_enterprise_url(self, requests_mock):
        """Test that GitHub Enterprise hosts use the /api/v3 prefix."""
        store = GitHubSecretStore(GitHubConfig(url="https://github.example.com/", token="t", write_interval=0.0))
        requests_mock.get("https://github.example.com/api/v3/repos/acme/deploy/secrets/X", status_code=404)

        assert store.secret_exists(SCOPE, "X") is False

    def test_secret_exists(self, store, requests_mock):
        """Test existence checks."""
        requests_mock.get(f"{REPO}/secrets/A", json={"name": "A"})
        requests_mock.get(f"{REPO}/secrets/B", status_code=404)

        assert store.secret_exists(SCOPE, "A") is True
        assert store.secret_exists(SCOPE, "B") is False

    def test_put_secret_encrypts_with_repository_key(self, store, requests_mock, private_key, limiter):
        """Test that secrets are sealed with the scope's public key."""
        requests_mock.get(f"{REPO}/secrets/public-key", json={"key_id": "k1", "key": public_key_b64(private_key)})
        put = requests_mock.put(f"{REPO}/secrets/KUBECONFIG", status_code=201)

        store.put_secret(SCOPE, "KUBECONFIG", "config-yaml")

        body = put.last_request.json()
        assert body["key_id"] == "k1"
        assert public.SealedBox(private_key).decrypt(base64.b64decode(body["encrypted_value"])) == b"config-yaml"
        assert limiter.wait.call_count == 1

    def test_environment_scope_paths(self, store, requests_mock, private_key):
        """Test that environment scopes use the environment endpoints."""
        env = f"{REPO}/environments/prod%20env"
        requests_mock.get(f"{env}/secrets/public-key", json={"key_id": "k2", "key": public_key_b64(private_key)})
        put = requests_mock.put(f"{env}/secrets/KUBECONFIG", status_code=204)

        store.put_secret(ENV_SCOPE, "KUBECONFIG", "v")

        assert put.called

    def test_ensure_environment_creates_missing(self, store, requests_mock):
        """Test that a missing environment is created."""
        env = f"{REPO}/environments/prod%20env"
        requests_mock.get(env, status_code=404)
        create = requests_mock.put(env, json={"name": "prod env"})

        store.ensure_environment(ENV_SCOPE)

        assert create.called

    def test_ensure_environment_existing(self, store, requests_mock, limiter):
        """Test that an existing environment is left as is."""
        requests_mock.get(f"{REPO}/environments/prod%20env", json={"name": "prod env"})

        store.ensure_environment(ENV_SCOPE)

        assert requests_mock.call_count == 1
        limiter.wait.assert_not_called()

    def test_ensure_environment_repository_scope(self, store, requests_mock):
        """Test that repository scopes need no environment."""
        store.ensure_environment(SCOPE)
        assert requests_mock.call_count == 0

    def test_variables(self, store, requests_mock):
        """Test variable reads and writes."""
        requests_mock.get(f"{REPO}/variables/MARKER", json={"name": "MARKER", "value": "A,B"})
        requests_mock.get(f"{REPO}/variables/MISSING", status_code=404)
        create = requests_mock.post(f"{REPO}/variables", status_code=201)
        update = requests_mock.patch(f"{REPO}/variables/MARKER", status_code=204)
        delete = requests_mock.delete(f"{REPO}/variables/MARKER", status_code=204)

        assert store.get_variable(SCOPE, "MARKER") == "A,B"
        assert store.get_variable(SCOPE, "MISSING") is None
        store.create_variable(SCOPE, "MARKER", "A")
        store.update_variable(SCOPE, "MARKER", "A,B,C")
        store.delete_variable(SCOPE, "MARKER")

        assert create.last_request.json() == {"name": "MARKER", "value": "A"}
        assert update.last_request.json() == {"name": "MARKER", "value": "A,B,C"}
        assert delete.called

    def test_delete_missing_secret_reports_not_found(self, store, requests_mock):
        """Test that a 404 on delete surfaces as not_found."""
        requests_mock.delete(f"{REPO}/secrets/GONE", status_code=404)

        with pytest.raises(SecretStoreError) as exc_info:
            store.delete_secret(SCOPE, "GONE")

        assert exc_info.value.not_found

    def test_http_error(self, store, requests_mock):
        """Test that failures carry the HTTP status."""
        requests_mock.post(f"{REPO}/variables", status_code=409, json={"message": "Already exists"})

        with pytest.raises(SecretStoreError) as exc_info:
            store.create_variable(SCOPE, "MARKER", "A")

        assert exc_info.value.status == 409
        assert exc_info.value.retryable

    def test_connection_error(self, store, requests_mock):
        """Test that transport failures become store errors."""
        requests_mock.get(f"{REPO}/secrets/X", exc=requests.exceptions.ConnectTimeout)

        with pytest.raises(SecretStoreError):
            store.secret_exists(SCOPE, "X")

    def test_error_message_does_not_leak_token(self, store, requests_mock):
        """Test that the credentials never reach error messages."""
        requests_mock.get(f"{REPO}/secrets/X", status_code=401, text="Bad credentials ghp_testtoken")

        with pytest.raises(SecretStoreError) as exc_info:
            store.secret_exists(SCOPE, "X")

        assert "ghp_testtoken" not in str(exc_info.value)


class TestSession:
    """Test cases for the HTTP session setup."""

    def test_retries_transient_errors(self):
        """Test that the session retries server errors through urllib3."""
        store = GitHubSecretStore(GitHubConfig(token="ghp_testtoken"))

        retry = store.session.get_adapter(f"{API}/repos").max_retries

        assert isinstance(retry, Retry)
        assert retry.total == 3
        assert 503 in retry.status_forcelist
