"""Prometheus metrics for the Atlas Operator."""

from prometheus_client import Counter, Gauge, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "atlas_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "atlas_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "atlas_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "atlas_operator_resource_status_total",
    "Resource status observations after a reconcile pass",
    ["kind", "status"],
)

state_transitions_total = Counter(
    "atlas_operator_state_transitions_total",
    "Lifecycle state transitions",
    ["kind", "from_state", "to_state"],
)

# Deletion protection metrics
deletion_protection_blocks_total = Counter(
    "atlas_operator_deletion_protection_blocks_total",
    "Writes refused by deletion protection",
    ["kind", "domain"],
)

# Dependent watch metrics
dependent_requeues_total = Counter(
    "atlas_operator_dependent_requeues_total",
    "Reconcile requests produced by changes to referenced objects",
    ["kind", "referenced_kind"],
)

# Work queue metrics
workqueue_depth = Gauge(
    "atlas_operator_workqueue_depth",
    "Number of keys waiting in the work queue",
)

workqueue_retries_total = Counter(
    "atlas_operator_workqueue_retries_total",
    "Keys re-added with backoff after a failed pass",
    ["kind"],
)

# API call metrics
api_call_total = Counter(
    "atlas_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "atlas_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "atlas_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)
