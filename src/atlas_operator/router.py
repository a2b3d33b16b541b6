"""Dependent-watch router: turns a change of a referenced object into reconcile requests."""

from __future__ import annotations

import logging

from . import metrics
from .indexer import FieldIndex, ObjectKey
from .registry import Registry

logger = logging.getLogger(__name__)


class DependentWatchRouter:
    """Maps a changed object onto every managed object that references it."""

    def __init__(self, registry: Registry, index: FieldIndex):
        self.registry = registry
        self.index = index

    def requests_for(self, group: str, kind: str, namespace: str, name: str) -> list[ObjectKey]:
        """Reconcile requests for the dependents of group/kind namespace/name.

        Returns:
            Deduplicated object keys in a stable order
        """
        key = f"{namespace}/{name}"
        requests: set[ObjectKey] = set()
        for registration, ref in self.registry.dependents_of(group, kind):
            matches = self.index.lookup(ref.index_name, key)
            if matches:
                metrics.dependent_requeues_total.labels(
                    kind=registration.kind, referenced_kind=kind
                ).inc(len(matches))
            requests.update(matches)
        if requests:
            logger.debug(f"{kind} {key} changed, requeueing {len(requests)} dependents")
        return sorted(requests)
