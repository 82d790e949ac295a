"""Utilities for managing Kubernetes conditions."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from ..constants import COND_READY, REASON_NOT_READY, REASON_READY


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Update or add a condition to the conditions list.

    The input list is not modified.

    Args:
        conditions: List of existing conditions
        condition_type: Type of condition
        status: Status of condition ("True", "False", "Unknown")
        reason: Reason for the condition
        message: Human-readable message
        observed_generation: Generation when condition was observed

    Returns:
        Updated list of conditions
    """
    now = datetime.now(timezone.utc).isoformat()
    updated = copy.deepcopy(conditions)

    new_condition = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": now,
    }
    if observed_generation is not None:
        new_condition["observedGeneration"] = observed_generation

    for idx, existing in enumerate(updated):
        if existing.get("type") == condition_type:
            # Only update lastTransitionTime if status changed
            if existing.get("status") == status:
                new_condition["lastTransitionTime"] = existing.get("lastTransitionTime", now)
            updated[idx] = new_condition
            break
    else:
        updated.append(new_condition)

    return updated


def get_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    """Return the condition of the given type, if present."""
    for cond in conditions:
        if cond.get("type") == condition_type:
            return cond
    return None


def is_ready(conditions: list[dict[str, Any]]) -> bool:
    """Check whether the Ready condition is True."""
    cond = get_condition(conditions, COND_READY)
    return cond is not None and cond.get("status") == "True"


def set_ready_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    message: str,
    observed_generation: int | None = None,
    reason: str | None = None,
) -> list[dict[str, Any]]:
    """Set the Ready condition."""
    return update_condition(
        conditions,
        COND_READY,
        "True" if status else "False",
        reason or (REASON_READY if status else REASON_NOT_READY),
        message,
        observed_generation,
    )


def set_status_ready(
    status: dict[str, Any],
    ready: bool,
    message: str,
    observed_generation: int | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Return a copy of a status block with its Ready condition set."""
    new_status = copy.deepcopy(status)
    new_status["conditions"] = set_ready_condition(
        new_status.get("conditions", []),
        ready,
        message,
        observed_generation,
        reason,
    )
    if observed_generation is not None:
        new_status["observedGeneration"] = observed_generation
    return new_status
