"""Reference indexer: foreign keys of managed objects and the field index built from them."""

from __future__ import annotations

import logging
import threading
from typing import Any, NamedTuple

from .registry import PathSegment, ReferenceField, Registry

logger = logging.getLogger(__name__)


class ObjectKey(NamedTuple):
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.namespace}/{self.name}"

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "ObjectKey":
        meta = obj.get("metadata", {})
        return cls(obj.get("kind", ""), meta.get("namespace", ""), meta.get("name", ""))


class _VoidField(Exception):
    """A required segment resolved to nothing."""


def _walk(root: Any, segments: tuple[PathSegment, ...]) -> list[str]:
    frontier = [root]
    names: list[str] = []
    last = len(segments) - 1
    for depth, segment in enumerate(segments):
        next_frontier: list[Any] = []
        for node in frontier:
            value = node.get(segment.name) if isinstance(node, dict) else None
            if segment.array:
                if not isinstance(value, list):
                    if segment.required:
                        raise _VoidField(segment.name)
                    continue
                next_frontier.extend(value)
            elif depth == last:
                if isinstance(value, str) and value:
                    names.append(value)
                elif segment.required:
                    raise _VoidField(segment.name)
            elif isinstance(value, dict):
                next_frontier.append(value)
            elif segment.required:
                raise _VoidField(segment.name)
        frontier = next_frontier
    return names


def field_keys(obj: dict[str, Any], version: str | None, ref: ReferenceField) -> list[str]:
    """namespace/name keys one reference field contributes for obj.

    One key per matching leaf, in walk order; an absent or empty version
    block contributes nothing.
    """
    spec = obj.get("spec")
    if not isinstance(spec, dict):
        return []
    root = spec if version is None else spec.get(version)
    if not isinstance(root, dict) or not root:
        return []
    namespace = obj.get("metadata", {}).get("namespace", "")
    try:
        names = _walk(root, ref.segments)
    except _VoidField:
        return []
    return [f"{namespace}/{name}" for name in names]


class FieldIndex:
    """Process-wide index of reference keys, shared by all managed kinds.

    Maps index name -> key -> set of object keys. Reads and incremental
    updates are safe from any thread.
    """

    def __init__(self, registry: Registry):
        self.registry = registry
        self._lock = threading.RLock()
        self._entries: dict[str, dict[str, set[ObjectKey]]] = {}
        self._owned: dict[ObjectKey, dict[str, list[str]]] = {}

    def index_keys(self, obj: dict[str, Any]) -> dict[str, list[str]]:
        """Keys of obj per index name."""
        kind = obj.get("kind", "")
        if kind not in self.registry:
            return {}
        registration = self.registry.get(kind)
        result: dict[str, list[str]] = {}
        for version, ref in registration.reference_fields():
            keys = field_keys(obj, version, ref)
            if keys:
                result.setdefault(ref.index_name, []).extend(keys)
        return result

    def keys(self, obj: dict[str, Any]) -> list[str]:
        """All foreign keys of obj across its reference fields."""
        return [key for keys in self.index_keys(obj).values() for key in keys]

    def upsert(self, obj: dict[str, Any]) -> None:
        """Re-index obj after an add or update."""
        object_key = ObjectKey.from_object(obj)
        if object_key.kind not in self.registry:
            return
        new_keys = self.index_keys(obj)
        with self._lock:
            self._drop(object_key)
            for index_name, keys in new_keys.items():
                bucket = self._entries.setdefault(index_name, {})
                for key in keys:
                    bucket.setdefault(key, set()).add(object_key)
            if new_keys:
                self._owned[object_key] = new_keys
        logger.debug(f"Indexed {object_key}: {new_keys}")

    def remove(self, object_key: ObjectKey) -> None:
        with self._lock:
            self._drop(object_key)

    def lookup(self, index_name: str, key: str) -> set[ObjectKey]:
        with self._lock:
            return set(self._entries.get(index_name, {}).get(key, ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._owned)

    def _drop(self, object_key: ObjectKey) -> None:
        previous = self._owned.pop(object_key, None)
        if not previous:
            return
        for index_name, keys in previous.items():
            bucket = self._entries.get(index_name, {})
            for key in keys:
                members = bucket.get(key)
                if members is None:
                    continue
                members.discard(object_key)
                if not members:
                    del bucket[key]
