"""Utility functions for the Atlas Operator."""

from .conditions import (
    domain_condition,
    find_condition,
    merge_conditions,
    set_ready_condition,
    set_state_condition,
    update_condition,
)
from .context import (
    get_context_dict,
    with_correlation_id,
)
from .events import emit_event
from .rate_limit import handle_rate_limit_error, rate_limit_atlas, rate_limit_k8s
from .secrets import read_secret_data

__all__ = [
    "update_condition",
    "merge_conditions",
    "find_condition",
    "domain_condition",
    "set_ready_condition",
    "set_state_condition",
    "emit_event",
    "read_secret_data",
    "rate_limit_k8s",
    "rate_limit_atlas",
    "handle_rate_limit_error",
    "with_correlation_id",
    "get_context_dict",
]
