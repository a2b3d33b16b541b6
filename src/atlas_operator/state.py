"""Lifecycle states, handler results and the state bookkeeping kept in conditions."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    ANNOTATION_EXTERNAL_PREFIX,
    ANNOTATION_REAPPLY_PERIOD,
    ANNOTATION_REAPPLY_TIMESTAMP,
    COND_STATE,
    REASON_ERROR,
    REASON_PENDING,
    REASON_SETTLED,
)
from .utils.conditions import find_condition


class LifecycleState(str, Enum):
    INITIAL = "Initial"
    IMPORT_REQUESTED = "ImportRequested"
    IMPORTED = "Imported"
    CREATING = "Creating"
    CREATED = "Created"
    UPDATING = "Updating"
    UPDATED = "Updated"
    DELETION_REQUESTED = "DeletionRequested"
    DELETING = "Deleting"
    # Internal terminal state: release the finalizer, write no status.
    DELETED = "Deleted"


SETTLED_STATES = frozenset({LifecycleState.IMPORTED, LifecycleState.CREATED, LifecycleState.UPDATED})
PENDING_STATES = frozenset({
    LifecycleState.CREATING,
    LifecycleState.UPDATING,
    LifecycleState.DELETION_REQUESTED,
    LifecycleState.DELETING,
})

# Edges on which the State condition keeps the generation it was entered with.
_CARRIED_GENERATION_EDGES = frozenset({
    (LifecycleState.UPDATING, LifecycleState.UPDATING),
    (LifecycleState.UPDATING, LifecycleState.UPDATED),
    (LifecycleState.CREATING, LifecycleState.CREATING),
    (LifecycleState.CREATING, LifecycleState.CREATED),
    (LifecycleState.DELETION_REQUESTED, LifecycleState.DELETING),
    (LifecycleState.DELETING, LifecycleState.DELETING),
    (LifecycleState.DELETING, LifecycleState.DELETED),
})

MIN_REAPPLY_PERIOD_SECONDS = 60 * 60
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0}


@dataclass
class Result:
    """Outcome of one lifecycle callback.

    The reconciler applies whatever next_state says; it never hardcodes edges.
    """

    next_state: LifecycleState
    message: str = ""
    requeue_after: float | None = None
    conditions: list[dict[str, Any]] = field(default_factory=list)
    clear_conditions: set[str] = field(default_factory=set)
    status: dict[str, Any] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


def next_state(state: LifecycleState, message: str = "", **kwargs: Any) -> Result:
    return Result(next_state=state, message=message, **kwargs)


def get_state(conditions: list[dict[str, Any]]) -> str:
    """Return the lifecycle state recorded in the State condition.

    Unknown values are returned as-is so the caller can report them.
    """
    cond = find_condition(conditions, COND_STATE)
    if cond is None or not cond.get("reason"):
        return LifecycleState.INITIAL.value
    return cond["reason"]


def select_state(obj: dict[str, Any], recorded: str) -> str:
    """Apply the import and deletion overrides to the recorded state."""
    meta = obj.get("metadata", {})
    current = recorded
    if current == LifecycleState.INITIAL.value:
        if any(key.startswith(ANNOTATION_EXTERNAL_PREFIX) for key in (meta.get("annotations") or {})):
            current = LifecycleState.IMPORT_REQUESTED.value
    if meta.get("deletionTimestamp") and current != LifecycleState.DELETING.value:
        current = LifecycleState.DELETION_REQUESTED.value
    return current


def observed_generation_for(
    generation: int,
    prev_conditions: list[dict[str, Any]],
    to_state: LifecycleState,
) -> int:
    """Pick the observedGeneration stamped on the State condition."""
    prev = find_condition(prev_conditions, COND_STATE)
    if prev is None:
        return generation
    try:
        from_state = LifecycleState(prev.get("reason") or LifecycleState.INITIAL.value)
    except ValueError:
        return generation
    if (from_state, to_state) in _CARRIED_GENERATION_EDGES:
        return prev.get("observedGeneration", generation)
    return generation


def ready_for_state(state: LifecycleState | str) -> tuple[bool, str, str]:
    """Ready condition (status, reason, message) implied by a next state."""
    try:
        state = LifecycleState(state)
    except ValueError:
        return False, REASON_ERROR, f"unknown state: {state}"
    if state == LifecycleState.INITIAL:
        return False, REASON_PENDING, "Resource is in initial state."
    if state == LifecycleState.IMPORT_REQUESTED:
        return False, REASON_PENDING, "Resource is being imported."
    if state in PENDING_STATES:
        return False, REASON_PENDING, "Resource is pending."
    if state == LifecycleState.IMPORTED:
        return True, REASON_SETTLED, "Resource is imported."
    if state in (LifecycleState.CREATED, LifecycleState.UPDATED):
        return True, REASON_SETTLED, "Resource is settled."
    return False, REASON_ERROR, f"unknown state: {state.value}"


def parse_duration(value: str) -> float:
    """Parse a duration such as "2h", "90m" or "1h30m" into seconds."""
    text = value.strip()
    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not text or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def reapply_period(annotations: dict[str, str]) -> float | None:
    """Reapply period in seconds, or None when not requested.

    Raises:
        ValueError: If the annotation is malformed or shorter than 60m
    """
    raw = annotations.get(ANNOTATION_REAPPLY_PERIOD)
    if raw is None:
        return None
    period = parse_duration(raw)
    if period < MIN_REAPPLY_PERIOD_SECONDS:
        raise ValueError(f"reapply period {raw!r} must be greater than 60m")
    return period


def reapply_timestamp(annotations: dict[str, str]) -> float | None:
    """Last reapply time in epoch seconds, or None when never stamped."""
    raw = annotations.get(ANNOTATION_REAPPLY_TIMESTAMP)
    if raw is None:
        return None
    try:
        return int(raw) / 1000.0
    except ValueError as e:
        raise ValueError(f"invalid reapply timestamp {raw!r}") from e


def should_reapply(annotations: dict[str, str], now: float | None = None) -> bool:
    period = reapply_period(annotations)
    stamped = reapply_timestamp(annotations)
    if period is None or stamped is None:
        return False
    return stamped + period < (now if now is not None else time.time())
