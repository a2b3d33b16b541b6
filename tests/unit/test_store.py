"""Tests for the Kubernetes object store."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, Mock

import pytest
from kubernetes import client

from atlas_operator.constants import FINALIZER
from atlas_operator.exceptions import ConflictError, DependencyNotFoundError
from atlas_operator.resources import build_registry
from atlas_operator.store import KubeObjectStore, ReadOnlyObjectStore

TARGET = {"group": "atlas.generated.mongodb.com", "version": "v1", "plural": "groups"}


def _store(cls=KubeObjectStore) -> KubeObjectStore:
    return cls(build_registry(), MagicMock(), MagicMock())


def _group(finalizers: list[str] | None = None) -> dict:
    return {
        "apiVersion": "atlas.generated.mongodb.com/v1",
        "kind": "Group",
        "metadata": {"name": "g", "namespace": "ns", "resourceVersion": "42", "finalizers": finalizers or []},
    }


class TestRead:
    """Test cases for reads."""

    def test_get(self):
        """Test fetching a custom resource."""
        store = _store()
        store.custom_api.get_namespaced_custom_object.return_value = _group()

        assert store.get("Group", "ns", "g") == _group()
        store.custom_api.get_namespaced_custom_object.assert_called_once_with(namespace="ns", name="g", **TARGET)

    def test_get_not_found(self):
        """Test a missing resource reads as None."""
        store = _store()
        store.custom_api.get_namespaced_custom_object.side_effect = client.exceptions.ApiException(status=404)

        assert store.get("Group", "ns", "g") is None

    def test_get_error(self):
        """Test other API errors propagate."""
        store = _store()
        store.custom_api.get_namespaced_custom_object.side_effect = client.exceptions.ApiException(status=500)

        with pytest.raises(client.exceptions.ApiException):
            store.get("Group", "ns", "g")

    def test_list_fills_kind(self):
        """Test list items get their kind and apiVersion."""
        store = _store()
        store.custom_api.list_namespaced_custom_object.return_value = {"items": [{"metadata": {"name": "a"}}]}

        items = store.list("Group", "ns")

        assert items[0]["kind"] == "Group"
        assert items[0]["apiVersion"] == "atlas.generated.mongodb.com/v1"

    def test_list_cluster_wide(self):
        """Test listing without a namespace."""
        store = _store()
        store.custom_api.list_cluster_custom_object.return_value = {"items": []}

        assert store.list("FlexCluster") == []
        store.custom_api.list_cluster_custom_object.assert_called_once()

    def test_get_dependency_missing(self):
        """Test a missing dependency."""
        store = _store()
        store.custom_api.get_namespaced_custom_object.side_effect = client.exceptions.ApiException(status=404)

        with pytest.raises(DependencyNotFoundError, match='Group "g" not found'):
            store.get_dependency("Group", "ns", "g")

    def test_read_secret(self):
        """Test secret data is decoded."""
        store = _store()
        secret = Mock()
        secret.data = {"orgId": base64.b64encode(b"org-1").decode()}
        store.core_api.read_namespaced_secret.return_value = secret

        assert store.read_secret("ns", "creds") == {"orgId": "org-1"}


class TestWrite:
    """Test cases for writes."""

    def test_replace_status(self):
        """Test status writes carry the resourceVersion."""
        store = _store()

        store.replace_status(_group(), {"conditions": []})

        kwargs = store.custom_api.replace_namespaced_custom_object_status.call_args[1]
        assert kwargs["body"]["metadata"]["resourceVersion"] == "42"
        assert kwargs["body"]["status"] == {"conditions": []}
        assert kwargs["field_manager"] == "atlas-operator"

    def test_replace_status_conflict(self):
        """Test a stale write raises ConflictError."""
        store = _store()
        store.custom_api.replace_namespaced_custom_object_status.side_effect = client.exceptions.ApiException(status=409)

        with pytest.raises(ConflictError):
            store.replace_status(_group(), {})

    def test_ensure_finalizer(self):
        """Test the finalizer is added once."""
        store = _store()

        store.ensure_finalizer(_group(["other"]))

        body = store.custom_api.patch_namespaced_custom_object.call_args[1]["body"]
        assert body["metadata"]["finalizers"] == ["other", FINALIZER]
        assert body["metadata"]["resourceVersion"] == "42"

    def test_ensure_finalizer_present(self):
        """Test no patch when the finalizer is already set."""
        store = _store()
        obj = _group([FINALIZER])

        assert store.ensure_finalizer(obj) is obj
        store.custom_api.patch_namespaced_custom_object.assert_not_called()

    def test_remove_finalizer(self):
        """Test the finalizer is removed and others kept."""
        store = _store()

        store.remove_finalizer(_group([FINALIZER, "other"]))

        body = store.custom_api.patch_namespaced_custom_object.call_args[1]["body"]
        assert body["metadata"]["finalizers"] == ["other"]

    def test_patch_annotations(self):
        """Test annotation patches."""
        store = _store()

        store.patch_metadata(_group(), annotations={"a": "b"})

        body = store.custom_api.patch_namespaced_custom_object.call_args[1]["body"]
        assert body["metadata"]["annotations"] == {"a": "b"}
        assert "finalizers" not in body["metadata"]

    def test_patch_gone_object(self):
        """Test patching an object that no longer exists."""
        store = _store()
        store.custom_api.patch_namespaced_custom_object.side_effect = client.exceptions.ApiException(status=404)
        obj = _group([FINALIZER])

        assert store.remove_finalizer(obj) is obj

    def test_patch_conflict(self):
        """Test a stale patch raises ConflictError."""
        store = _store()
        store.custom_api.patch_namespaced_custom_object.side_effect = client.exceptions.ApiException(status=409)

        with pytest.raises(ConflictError):
            store.ensure_finalizer(_group())


class TestReadOnlyObjectStore:
    """Test cases for the dry-run store."""

    def test_writes_are_dropped(self):
        """Test status and metadata writes never reach the API."""
        store = _store(ReadOnlyObjectStore)
        obj = _group()

        assert store.replace_status(obj, {"a": 1})["status"] == {"a": 1}
        assert store.ensure_finalizer(obj) is obj
        store.custom_api.replace_namespaced_custom_object_status.assert_not_called()
        store.custom_api.patch_namespaced_custom_object.assert_not_called()
