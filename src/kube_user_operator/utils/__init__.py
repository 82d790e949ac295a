"""Utility functions for the Kube User Operator."""

from .conditions import is_ready, set_ready_condition, set_status_ready, update_condition
from .errors import (
    ApplyError,
    FeatureDisabledError,
    NotReadyError,
    PolicyError,
    ReconcileError,
    sanitize_exception,
)
from .events import emit_event
from .rate_limit import handle_rate_limit_error, rate_limit_k8s
from .secrets import decode_secret_value, get_secret_field

__all__ = [
    "update_condition",
    "set_ready_condition",
    "set_status_ready",
    "is_ready",
    "ReconcileError",
    "PolicyError",
    "NotReadyError",
    "FeatureDisabledError",
    "ApplyError",
    "sanitize_exception",
    "emit_event",
    "rate_limit_k8s",
    "handle_rate_limit_error",
    "decode_secret_value",
    "get_secret_field",
]
