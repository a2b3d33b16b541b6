"""Utilities for managing Kubernetes conditions."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from ..constants import COND_READY, COND_STATE, REASON_RECONCILED

# Conditions owned by the engine itself; every other type is a domain condition.
ENGINE_CONDITIONS = frozenset({COND_READY, COND_STATE})


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Update or add a condition to the conditions list.

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

    # Find existing condition
    existing_idx = None
    for idx, cond in enumerate(conditions):
        if cond.get("type") == condition_type:
            existing_idx = idx
            break

    new_condition = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": now,
    }

    if observed_generation is not None:
        new_condition["observedGeneration"] = observed_generation

    if existing_idx is not None:
        existing = conditions[existing_idx]
        # Only update lastTransitionTime if status changed
        if existing.get("status") == status:
            new_condition["lastTransitionTime"] = existing.get("lastTransitionTime", now)
        conditions[existing_idx] = new_condition
    else:
        conditions.append(new_condition)

    return conditions


def merge_conditions(
    conditions: list[dict[str, Any]],
    updates: list[dict[str, Any]],
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Apply condition updates by type onto a copy of conditions."""
    merged = copy.deepcopy(conditions)
    for cond in updates:
        merged = update_condition(
            merged,
            cond["type"],
            cond["status"],
            cond.get("reason", ""),
            cond.get("message", ""),
            cond.get("observedGeneration", observed_generation),
        )
    return merged


def find_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    for cond in conditions:
        if cond.get("type") == condition_type:
            return cond
    return None


def remove_conditions(conditions: list[dict[str, Any]], condition_types: set[str]) -> list[dict[str, Any]]:
    return [cond for cond in conditions if cond.get("type") not in condition_types]


def set_ready_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Ready condition."""
    return update_condition(
        conditions,
        COND_READY,
        "True" if status else "False",
        reason,
        message,
        observed_generation,
    )


def set_state_condition(
    conditions: list[dict[str, Any]],
    state: str,
    ok: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the State condition; its reason holds the lifecycle state name."""
    return update_condition(
        conditions,
        COND_STATE,
        "True" if ok else "False",
        state,
        message,
        observed_generation,
    )


def domain_condition(
    condition_type: str,
    ok: bool,
    message: str = "",
    reason: str | None = None,
) -> dict[str, Any]:
    """Build a domain condition update for Result.conditions."""
    return {
        "type": condition_type,
        "status": "True" if ok else "False",
        "reason": reason or (REASON_RECONCILED if ok else "Error"),
        "message": message,
    }


def first_failing_domain(conditions: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Return the first domain condition that is not True, if any."""
    for cond in conditions:
        if cond.get("type") in ENGINE_CONDITIONS:
            continue
        if cond.get("status") != "True":
            return cond
    return None
