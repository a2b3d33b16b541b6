"""Kubernetes object store used by the reconciler and handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

from kubernetes import client

from . import metrics
from .constants import FIELD_MANAGER, FINALIZER
from .exceptions import ConflictError, DependencyNotFoundError
from .registry import Registry
from .utils.rate_limit import handle_rate_limit_error, rate_limit_k8s
from .utils.secrets import read_secret_data

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KubeObjectStore:
    """Reads and optimistic-concurrency writes of managed custom resources."""

    def __init__(
        self,
        registry: Registry,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
    ):
        self.registry = registry
        self.custom_api = custom_api
        self.core_api = core_api

    def _call(self, operation: str, fn: Callable[..., T], **kwargs: Any) -> T:
        start_time = time.time()
        attempt = 0
        try:
            while True:
                try:
                    result = rate_limit_k8s(fn)(**kwargs)
                    metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
                    return result
                except client.exceptions.ApiException as e:
                    if handle_rate_limit_error(e, attempt):
                        attempt += 1
                        continue
                    metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
                    raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def _target(self, kind: str) -> dict[str, str]:
        registration = self.registry.get(kind)
        return {"group": registration.group, "version": registration.version, "plural": registration.plural}

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """Fetch a custom resource, None when it does not exist."""
        try:
            return self._call(
                "get",
                self.custom_api.get_namespaced_custom_object,
                namespace=namespace,
                name=name,
                **self._target(kind),
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        if namespace:
            result = self._call(
                "list",
                self.custom_api.list_namespaced_custom_object,
                namespace=namespace,
                **self._target(kind),
            )
        else:
            result = self._call(
                "list",
                self.custom_api.list_cluster_custom_object,
                **self._target(kind),
            )
        items = result.get("items", [])
        registration = self.registry.get(kind)
        # List items come back without apiVersion/kind.
        for item in items:
            item.setdefault("apiVersion", registration.api_version_string)
            item.setdefault("kind", kind)
        return items

    def get_dependency(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """Fetch a referenced resource.

        Raises:
            DependencyNotFoundError: If it does not exist
        """
        obj = self.get(kind, namespace, name)
        if obj is None:
            raise DependencyNotFoundError(f'{kind} "{name}" not found')
        return obj

    def replace_status(self, obj: dict[str, Any], status: dict[str, Any]) -> dict[str, Any]:
        """Write status guarded by the object's resourceVersion.

        Raises:
            ConflictError: If the object changed since it was read
        """
        meta = obj["metadata"]
        body = {
            "apiVersion": obj.get("apiVersion"),
            "kind": obj.get("kind"),
            "metadata": {
                "name": meta["name"],
                "namespace": meta["namespace"],
                "resourceVersion": meta.get("resourceVersion"),
            },
            "status": status,
        }
        try:
            return self._call(
                "replace_status",
                self.custom_api.replace_namespaced_custom_object_status,
                namespace=meta["namespace"],
                name=meta["name"],
                body=body,
                field_manager=FIELD_MANAGER,
                **self._target(obj["kind"]),
            )
        except client.exceptions.ApiException as e:
            if e.status == 409:
                raise ConflictError(f"{obj['kind']} {meta['namespace']}/{meta['name']} was modified, retrying") from e
            raise

    def patch_metadata(
        self,
        obj: dict[str, Any],
        finalizers: list[str] | None = None,
        annotations: dict[str, str | None] | None = None,
    ) -> dict[str, Any]:
        """Merge-patch finalizers and/or annotations, guarded by resourceVersion.

        Raises:
            ConflictError: If the object changed since it was read
        """
        meta = obj["metadata"]
        patch_meta: dict[str, Any] = {"resourceVersion": meta.get("resourceVersion")}
        if finalizers is not None:
            patch_meta["finalizers"] = finalizers
        if annotations:
            patch_meta["annotations"] = annotations
        try:
            return self._call(
                "patch",
                self.custom_api.patch_namespaced_custom_object,
                namespace=meta["namespace"],
                name=meta["name"],
                body={"metadata": patch_meta},
                **self._target(obj["kind"]),
            )
        except client.exceptions.ApiException as e:
            if e.status == 409:
                raise ConflictError(f"{obj['kind']} {meta['namespace']}/{meta['name']} was modified, retrying") from e
            if e.status == 404:
                return obj
            raise

    def ensure_finalizer(self, obj: dict[str, Any]) -> dict[str, Any]:
        finalizers = list(obj["metadata"].get("finalizers") or [])
        if FINALIZER in finalizers:
            return obj
        finalizers.append(FINALIZER)
        return self.patch_metadata(obj, finalizers=finalizers)

    def remove_finalizer(self, obj: dict[str, Any]) -> dict[str, Any]:
        finalizers = list(obj["metadata"].get("finalizers") or [])
        if FINALIZER not in finalizers:
            return obj
        finalizers.remove(FINALIZER)
        return self.patch_metadata(obj, finalizers=finalizers)

    def read_secret(self, namespace: str, name: str) -> dict[str, str]:
        """Decoded secret data; never cached or persisted."""
        return self._call(
            "read_secret",
            read_secret_data,
            api=self.core_api,
            namespace=namespace,
            secret_name=name,
        )


class ReadOnlyObjectStore(KubeObjectStore):
    """Store for dry runs: reads pass through, writes are logged and dropped."""

    def replace_status(self, obj: dict[str, Any], status: dict[str, Any]) -> dict[str, Any]:
        logger.info(f"dry run: skipping status write of {obj.get('kind')} {obj['metadata'].get('name')}")
        return {**obj, "status": status}

    def patch_metadata(
        self,
        obj: dict[str, Any],
        finalizers: list[str] | None = None,
        annotations: dict[str, str | None] | None = None,
    ) -> dict[str, Any]:
        logger.info(f"dry run: skipping metadata patch of {obj.get('kind')} {obj['metadata'].get('name')}")
        return obj
