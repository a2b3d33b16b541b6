"""Kopf watch handlers feeding the field index and the work queue.

Handlers for every managed kind and every referenced kind are registered when
this module is imported. They stay inert until the start-up hook installs an
OperatorRuntime.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import kopf

from ..builders.client import create_kube_apis
from ..config import OperatorConfig
from ..connection import ConnectionResolver
from ..dispatcher import VersionDispatcher
from ..indexer import FieldIndex, ObjectKey
from ..reconciler import StateReconciler
from ..registry import KindRegistration, Registry, describe, resource_args
from ..resources import build_registry
from ..router import DependentWatchRouter
from ..services.atlas.dryrun import dry_run_recorder
from ..store import KubeObjectStore, ReadOnlyObjectStore
from ..utils.events import EventRecorder
from ..workqueue import WorkQueue

logger = logging.getLogger(__name__)

DELETED = "DELETED"

REGISTRY = build_registry()


@dataclass
class OperatorRuntime:
    """Process-wide collaborators, created at start-up and drained at shutdown."""

    config: OperatorConfig
    registry: Registry
    index: FieldIndex
    router: DependentWatchRouter
    reconciler: StateReconciler
    queue: WorkQueue
    stop_event: threading.Event

    async def start(self) -> None:
        for registration in self.registry.kinds():
            logger.info(f"Managing {describe(registration)}")
        await self.queue.start()

    async def stop(self) -> None:
        self.stop_event.set()
        await self.queue.shutdown()

    def observe_managed(self, registration: KindRegistration, event_type: str | None, body: dict[str, Any]) -> None:
        """Index and enqueue a managed object, then wake its dependents."""
        body.setdefault("kind", registration.kind)
        meta = body.get("metadata", {})
        key = ObjectKey(registration.kind, meta.get("namespace", ""), meta.get("name", ""))
        if event_type == DELETED:
            self.index.remove(key)
        else:
            self.index.upsert(body)
            self.queue.add(key)
        self.observe_referenced(registration.group, registration.kind, body)

    def observe_referenced(self, group: str, kind: str, body: dict[str, Any]) -> None:
        meta = body.get("metadata", {})
        for key in self.router.requests_for(group, kind, meta.get("namespace", ""), meta.get("name", "")):
            self.queue.add(key)


_runtime: OperatorRuntime | None = None


def install_runtime(runtime: OperatorRuntime | None) -> None:
    global _runtime
    _runtime = runtime


def current_runtime() -> OperatorRuntime | None:
    return _runtime


def build_runtime(config: OperatorConfig, registry: Registry = REGISTRY) -> OperatorRuntime:
    """Wire the engine against the cluster the process runs in."""
    custom_api, core_api = create_kube_apis()
    stop_event = threading.Event()
    recorder = None
    if config.dry_run:
        store: KubeObjectStore = ReadOnlyObjectStore(registry, custom_api, core_api)
        recorder = dry_run_recorder(core_api, str(uuid.uuid4()))
    else:
        store = KubeObjectStore(registry, custom_api, core_api)
    dispatcher = VersionDispatcher(
        registry,
        store,
        ConnectionResolver(store.read_secret, config.global_secret),
        config,
        stop_event=stop_event,
        recorder=recorder,
    )
    reconciler = StateReconciler(store, dispatcher, config, events=EventRecorder(core_api))
    index = FieldIndex(registry)
    return OperatorRuntime(
        config=config,
        registry=registry,
        index=index,
        router=DependentWatchRouter(registry, index),
        reconciler=reconciler,
        queue=WorkQueue(lambda key: reconciler.reconcile(*key), max_workers=config.max_concurrent_reconciles),
        stop_event=stop_event,
    )


def _managed_handler(registration: KindRegistration) -> Callable[..., Awaitable[None]]:
    async def handler(event: dict[str, Any], body: kopf.Body, **_: Any) -> None:
        runtime = current_runtime()
        if runtime is not None:
            runtime.observe_managed(registration, event.get("type"), dict(body))

    return handler


def _referenced_handler(group: str, kind: str) -> Callable[..., Awaitable[None]]:
    async def handler(body: kopf.Body, **_: Any) -> None:
        runtime = current_runtime()
        if runtime is not None:
            runtime.observe_referenced(group, kind, dict(body))

    return handler


def register_handlers(registry: Registry) -> None:
    """Register one event handler per managed kind and per other referenced kind."""
    managed = set()
    for registration in registry.kinds():
        managed.add((registration.group, registration.version, registration.plural))
        kopf.on.event(
            *resource_args(registration.group, registration.version, registration.plural),
            id=f"watch-{registration.plural}",
        )(_managed_handler(registration))

    for group, version, plural, kind in registry.referenced_resources():
        if (group, version, plural) in managed:
            continue
        kopf.on.event(
            *resource_args(group, version, plural),
            id=f"dependents-{plural}",
        )(_referenced_handler(group, kind))


register_handlers(REGISTRY)
