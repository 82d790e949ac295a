"""Rate limiting utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from kubernetes.client.exceptions import ApiException

from .. import metrics

_F = TypeVar("_F", bound=Callable[..., Any])

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))


class MinIntervalLimiter:
    """Enforce a minimum interval between calls across all threads."""

    def __init__(self, min_interval: float, api_type: str):
        self.min_interval = min_interval
        self.api_type = api_type
        self._last_call_time = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        """Block until the next call is allowed."""
        with self._lock:
            time_since_last_call = time.monotonic() - self._last_call_time
            if time_since_last_call < self.min_interval:
                metrics.rate_limit_hits_total.labels(api_type=self.api_type).inc()
                time.sleep(self.min_interval - time_since_last_call)
            self._last_call_time = time.monotonic()

    def __call__(self, func: _F) -> _F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self.wait()
            return func(*args, **kwargs)

        return wrapper  # type: ignore


_k8s_limiter = MinIntervalLimiter(1.0 / _K8S_RATE_LIMIT_PER_SECOND, "k8s")


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""
    return _k8s_limiter(func)


def handle_rate_limit_error(e: Exception, attempt: int = 0, max_retries: int = 3) -> bool:
    """Check if an API exception is a rate limit error and back off.

    Args:
        e: Exception raised by the API call
        attempt: Number of retries already made for this call
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry, False otherwise
    """
    if not isinstance(e, ApiException):
        return False
    # Kubernetes API rate limit errors typically return 429 or 503
    if e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower()):
        if attempt < max_retries:
            # Exponential backoff: 1s, 2s, 4s
            time.sleep(2 ** attempt)
            return True
    return False
