"""Operator errors and sanitization utilities to prevent information leakage."""

from __future__ import annotations

import re

from ..constants import (
    REASON_APPLY_FAILED,
    REASON_DISABLED,
    REASON_INVALID_SPEC,
    REASON_NOT_READY,
    REASON_RECONCILE_FAILED,
)


class ReconcileError(Exception):
    """Base class for reconciliation failures."""

    retryable = True
    reason = REASON_RECONCILE_FAILED


class PolicyError(ReconcileError):
    """The desired state could not be computed from the resource spec."""

    retryable = False
    reason = REASON_INVALID_SPEC


class NotReadyError(PolicyError):
    """A dependency of the resource does not exist yet."""

    retryable = True
    reason = REASON_NOT_READY


class FeatureDisabledError(PolicyError):
    """The resource needs a feature that is switched off by configuration."""

    retryable = False
    reason = REASON_DISABLED


class ApplyError(ReconcileError):
    """Writing the desired object set failed part way."""

    reason = REASON_APPLY_FAILED

    def __init__(self, message: str, kind: str | None = None, name: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.name = name


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"bearer\s+([A-Za-z0-9\-_\.=]+)",
    r"(eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+)",
    r"(gh[pousr]_[A-Za-z0-9]{20,})",
    r"certificate-authority-data[:\s]+([A-Za-z0-9/+=]+)",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "token",
    "password",
    "secret",
    "credentials",
    "encrypted_value",
    "key",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=]\s*([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))
