"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_KUBECONFIG_GENERATED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_SECRET_MIRRORED,
    EVENT_REASON_SECRET_REMOVED,
    EVENT_REASON_SECRET_SKIPPED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (or anything kopf accepts as an event target)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_kubeconfig_generated(body: dict[str, Any], user: str) -> None:
    """Emit kubeconfig generated event."""
    emit_event(body, EVENT_REASON_KUBECONFIG_GENERATED, f"Kubeconfig for user {user} generated")


def emit_secret_mirrored(body: dict[str, Any], secret_name: str, target: str) -> None:
    """Emit secret mirrored event."""
    emit_event(body, EVENT_REASON_SECRET_MIRRORED, f"Secret {secret_name} written to {target}")


def emit_secret_skipped(body: dict[str, Any], secret_name: str, target: str) -> None:
    """Emit secret skipped event."""
    emit_event(
        body,
        EVENT_REASON_SECRET_SKIPPED,
        f"Secret {secret_name} in {target} is not managed by the operator, leaving it untouched",
        type_="Warning",
    )


def emit_secret_removed(body: dict[str, Any], secret_name: str, target: str) -> None:
    """Emit secret removed event."""
    emit_event(body, EVENT_REASON_SECRET_REMOVED, f"Secret {secret_name} removed from {target}")
