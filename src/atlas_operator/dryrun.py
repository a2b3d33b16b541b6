"""One-shot dry run over every managed resource.

Reconciles each resource once against a read-only store and an Atlas client
that refuses writes, so the events left behind describe what a real run would
change. Exits when every resource has been visited.
"""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import replace
from typing import Any

from . import logging as structured_logging
from .builders.client import create_kube_apis
from .config import OperatorConfig
from .connection import ConnectionResolver
from .constants import DRY_RUN_FINISHED_MSG, EVENT_REASON_DRY_RUN
from .dispatcher import VersionDispatcher
from .exceptions import DryRunError
from .reconciler import StateReconciler
from .registry import Registry
from .resources import build_registry
from .services.atlas.dryrun import dry_run_recorder
from .store import KubeObjectStore, ReadOnlyObjectStore
from .utils.errors import sanitize_exception
from .utils.events import EventRecorder, emit_event

logger = logging.getLogger(__name__)


class DryRunManager:
    """Visits every managed resource once and reports the outcome as events.

    Args:
        registry: Kinds to visit
        store: Read-only object store
        reconciler: Reconciler wired with a dry-run Atlas client
        recorder: Recorder tagging events with the dry-run instance
        config: Operator configuration
    """

    def __init__(
        self,
        registry: Registry,
        store: KubeObjectStore,
        reconciler: StateReconciler,
        recorder: EventRecorder,
        config: OperatorConfig,
    ):
        self.registry = registry
        self.store = store
        self.reconciler = reconciler
        self.recorder = recorder
        self.config = config

    def operator_object(self) -> dict[str, Any]:
        """Object the final event is attached to."""
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": self.config.operator_pod_name,
                "namespace": self.config.operator_namespace,
            },
        }

    def run(self) -> int:
        """Reconcile everything once; returns the number of resources visited."""
        visited = 0
        try:
            for registration in self.registry.kinds():
                for namespace in self.config.watch_namespaces or (None,):
                    for obj in self.store.list(registration.kind, namespace):
                        obj.setdefault("kind", registration.kind)
                        obj.setdefault("apiVersion", registration.api_version_string)
                        self.visit(obj)
                        visited += 1
        finally:
            emit_event(self.recorder, self.operator_object(), EVENT_REASON_DRY_RUN, DRY_RUN_FINISHED_MSG)
        logger.info(f"Dry run finished after {visited} resources")
        return visited

    def visit(self, obj: dict[str, Any]) -> None:
        meta = obj.get("metadata", {})
        try:
            error = self.reconciler.reconcile(obj["kind"], meta.get("namespace", ""), meta.get("name", "")).error
        except Exception as e:
            logger.error(f"Dry run of {obj['kind']} {meta.get('name')} failed: {e}", exc_info=True)
            error = e
        # Refused writes were already recorded by the dry-run client.
        if error is not None and not isinstance(error, DryRunError):
            emit_event(self.recorder, obj, EVENT_REASON_DRY_RUN, sanitize_exception(error), "Warning")
        emit_event(self.recorder, obj, EVENT_REASON_DRY_RUN, "done")


def build_manager(config: OperatorConfig, registry: Registry | None = None) -> DryRunManager:
    """Wire a DryRunManager against the cluster the process runs in."""
    registry = registry or build_registry()
    config = replace(config, dry_run=True)
    custom_api, core_api = create_kube_apis()
    store = ReadOnlyObjectStore(registry, custom_api, core_api)
    recorder = dry_run_recorder(core_api, str(uuid.uuid4()))
    dispatcher = VersionDispatcher(
        registry,
        store,
        ConnectionResolver(store.read_secret, config.global_secret),
        config,
        recorder=recorder,
    )
    reconciler = StateReconciler(store, dispatcher, config)
    return DryRunManager(registry, store, reconciler, recorder, config)


def main() -> None:
    """Run a dry run and exit."""
    config = OperatorConfig.from_environment()
    structured_logging.setup_structured_logging(config.log_level, config.log_encoder)
    try:
        build_manager(config).run()
    except Exception as e:
        logger.error(f"Dry run failed: {sanitize_exception(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
