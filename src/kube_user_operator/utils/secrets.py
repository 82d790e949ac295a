"""Utilities for reading Kubernetes secrets delivered as raw bodies."""

from __future__ import annotations

import base64
import binascii
from typing import Any


def decode_secret_value(value: str | bytes | None) -> str:
    """Decode a base64 value from a secret's data map.

    Args:
        value: Value as found under ``data``

    Returns:
        Decoded string, empty when the value is missing

    Raises:
        ValueError: If the value is not valid base64 or not UTF-8
    """
    if not value:
        return ""
    if isinstance(value, bytes):
        value = value.decode("ascii")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("Secret value is not valid base64 encoded text") from e


def get_secret_field(secret: dict[str, Any], key: str) -> str:
    """Get a decoded field from a secret body, empty when absent."""
    return decode_secret_value((secret.get("data") or {}).get(key))


def get_secret_field_raw(secret: dict[str, Any], key: str) -> str:
    """Get a field from a secret body still base64 encoded, empty when absent."""
    value = (secret.get("data") or {}).get(key) or ""
    return value.decode("ascii") if isinstance(value, bytes) else value
