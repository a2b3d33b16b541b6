"""Tests for Prometheus metrics."""

from __future__ import annotations

from prometheus_client import REGISTRY

from atlas_operator.metrics import (
    api_call_total,
    deletion_protection_blocks_total,
    dependent_requeues_total,
    error_total,
    reconcile_duration_seconds,
    reconcile_total,
    state_transitions_total,
    workqueue_depth,
    workqueue_retries_total,
)


class TestMetricsExist:
    """Test that all expected metrics are defined."""

    def test_counter_names(self):
        """Test counters are registered under the operator prefix."""
        # Prometheus counters don't include "_total" in their _name attribute
        assert reconcile_total._name == "atlas_operator_reconcile"
        assert error_total._name == "atlas_operator_error"
        assert state_transitions_total._name == "atlas_operator_state_transitions"
        assert deletion_protection_blocks_total._name == "atlas_operator_deletion_protection_blocks"
        assert dependent_requeues_total._name == "atlas_operator_dependent_requeues"
        assert workqueue_retries_total._name == "atlas_operator_workqueue_retries"
        assert api_call_total._name == "atlas_operator_api_call"

    def test_histogram_and_gauge_names(self):
        """Test histogram and gauge names."""
        assert reconcile_duration_seconds._name == "atlas_operator_reconcile_duration_seconds"
        assert workqueue_depth._name == "atlas_operator_workqueue_depth"


class TestMetricsRecord:
    """Test that metrics record values."""

    def test_reconcile_total_increments(self):
        """Test reconcile_total counts by kind and result."""
        labels = {"kind": "MetricsTestKind", "result": "success"}
        before = REGISTRY.get_sample_value("atlas_operator_reconcile_total", labels) or 0.0

        reconcile_total.labels(**labels).inc()

        assert REGISTRY.get_sample_value("atlas_operator_reconcile_total", labels) == before + 1

    def test_workqueue_depth_sets(self):
        """Test the queue depth gauge."""
        workqueue_depth.set(7)

        assert REGISTRY.get_sample_value("atlas_operator_workqueue_depth") == 7
