"""Tests for the watch handlers and the operator runtime."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import MagicMock, patch

from atlas_operator.config import OperatorConfig
from atlas_operator.constants import API_GROUP
from atlas_operator.handlers import controller
from atlas_operator.indexer import FieldIndex, ObjectKey
from atlas_operator.resources import build_registry
from atlas_operator.router import DependentWatchRouter
from atlas_operator.store import KubeObjectStore, ReadOnlyObjectStore

FLEX = {
    "kind": "FlexCluster",
    "metadata": {"name": "f1", "namespace": "ns"},
    "spec": {"connectionSecretRef": {"name": "creds"}, "v20250312": {"groupRef": {"name": "g1"}}},
}
GROUP = {
    "metadata": {"name": "g1", "namespace": "ns"},
    "spec": {"connectionSecretRef": {"name": "creds"}, "v20250312": {"entry": {"name": "p"}}},
}


def _runtime() -> controller.OperatorRuntime:
    registry = build_registry()
    index = FieldIndex(registry)
    index.upsert(FLEX)
    return controller.OperatorRuntime(
        config=OperatorConfig(),
        registry=registry,
        index=index,
        router=DependentWatchRouter(registry, index),
        reconciler=MagicMock(),
        queue=MagicMock(),
        stop_event=threading.Event(),
    )


def _queued(runtime: controller.OperatorRuntime) -> list[ObjectKey]:
    return [c[0][0] for c in runtime.queue.add.call_args_list]


class TestOperatorRuntime:
    """Test cases for routing watch events."""

    def test_managed_event(self):
        """Test a managed object is indexed and queued with its dependents."""
        runtime = _runtime()

        runtime.observe_managed(runtime.registry.get("Group"), "ADDED", dict(GROUP))

        assert _queued(runtime) == [ObjectKey("Group", "ns", "g1"), ObjectKey("FlexCluster", "ns", "f1")]
        assert runtime.index.lookup("group.connectionSecretRef", "ns/creds") == {ObjectKey("Group", "ns", "g1")}

    def test_managed_delete(self):
        """Test a deleted object leaves the index but still wakes its dependents."""
        runtime = _runtime()
        registration = runtime.registry.get("FlexCluster")

        runtime.observe_managed(registration, "DELETED", dict(FLEX))

        assert _queued(runtime) == []
        assert len(runtime.index) == 0

    def test_referenced_event(self):
        """Test a Secret change queues every referencing object."""
        runtime = _runtime()

        runtime.observe_referenced("", "Secret", {"metadata": {"name": "creds", "namespace": "ns"}})

        assert _queued(runtime) == [ObjectKey("FlexCluster", "ns", "f1")]

    def test_start_and_stop(self):
        """Test the queue is started and drained with the runtime."""
        runtime = _runtime()

        async def scenario():
            runtime.queue.start = MagicMock(return_value=asyncio.sleep(0))
            runtime.queue.shutdown = MagicMock(return_value=asyncio.sleep(0))
            await runtime.start()
            await runtime.stop()

        asyncio.run(scenario())

        runtime.queue.start.assert_called_once()
        runtime.queue.shutdown.assert_called_once()
        assert runtime.stop_event.is_set()


class TestWatchHandlers:
    """Test cases for the kopf handlers."""

    def teardown_method(self):
        controller.install_runtime(None)

    def test_inert_without_runtime(self):
        """Test events before start-up are dropped."""
        handler = controller._managed_handler(build_registry().get("Group"))

        asyncio.run(handler(event={"type": "ADDED"}, body=dict(GROUP)))

    def test_managed_handler_routes(self):
        """Test managed events reach the installed runtime."""
        runtime = MagicMock()
        controller.install_runtime(runtime)
        registration = build_registry().get("Group")
        handler = controller._managed_handler(registration)

        asyncio.run(handler(event={"type": "MODIFIED"}, body=dict(GROUP)))

        runtime.observe_managed.assert_called_once_with(registration, "MODIFIED", GROUP)

    def test_referenced_handler_routes(self):
        """Test referenced events reach the installed runtime."""
        runtime = MagicMock()
        controller.install_runtime(runtime)
        body = {"metadata": {"name": "creds", "namespace": "ns"}}

        asyncio.run(controller._referenced_handler("", "Secret")(body=body))

        runtime.observe_referenced.assert_called_once_with("", "Secret", body)


class TestBuildRuntime:
    """Test cases for build_runtime."""

    @patch("atlas_operator.handlers.controller.create_kube_apis")
    def test_live_store(self, mock_apis):
        """Test a normal run writes through the live store."""
        mock_apis.return_value = (MagicMock(), MagicMock())

        runtime = controller.build_runtime(OperatorConfig(max_concurrent_reconciles=2))

        assert type(runtime.reconciler.store) is KubeObjectStore
        assert runtime.reconciler.dispatcher.recorder is None
        assert runtime.queue.max_workers == 2
        assert runtime.reconciler.events is not None

    @patch("atlas_operator.handlers.controller.create_kube_apis")
    def test_dry_run_store(self, mock_apis):
        """Test dry run wires the read-only store and a tagged recorder."""
        mock_apis.return_value = (MagicMock(), MagicMock())

        runtime = controller.build_runtime(OperatorConfig(dry_run=True))

        assert isinstance(runtime.reconciler.store, ReadOnlyObjectStore)
        assert "mongodb.com/dry-run-instance" in runtime.reconciler.dispatcher.recorder.annotations

    @patch("atlas_operator.handlers.controller.create_kube_apis")
    def test_queue_reconciles_keys(self, mock_apis):
        """Test the queue's reconcile function unpacks the key."""
        mock_apis.return_value = (MagicMock(), MagicMock())
        runtime = controller.build_runtime(OperatorConfig())
        runtime.reconciler.reconcile = MagicMock()

        runtime.queue.reconcile_fn(ObjectKey("Group", "ns", "g1"))

        runtime.reconciler.reconcile.assert_called_once_with("Group", "ns", "g1")


class TestRegistration:
    """Test cases for handler registration."""

    def test_group_constant(self):
        """Test the managed kinds live in the Atlas API group."""
        assert all(r.group == API_GROUP for r in controller.REGISTRY.kinds())
