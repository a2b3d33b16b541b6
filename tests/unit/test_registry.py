"""Tests for the kind registry."""

from __future__ import annotations

import pytest

from atlas_operator.constants import API_GROUP
from atlas_operator.registry import (
    KindRegistration,
    ReferenceField,
    Registry,
    describe,
    parse_path,
    resource_args,
)
from atlas_operator.resources import build_registry


class TestParsePath:
    """Test cases for reference path parsing."""

    def test_parse_nested_path(self):
        """Test arrays and required markers."""
        segments = parse_path("integrations[].credentials![].secretRef.name")

        assert [s.name for s in segments] == ["integrations", "credentials", "secretRef", "name"]
        assert [s.array for s in segments] == [True, True, False, False]
        assert [s.required for s in segments] == [False, True, False, False]

    @pytest.mark.parametrize("expr", ["a..b", "items[]", ""])
    def test_invalid_paths(self, expr):
        """Test malformed paths are rejected."""
        with pytest.raises(ValueError):
            parse_path(expr)

    def test_reference_field_validates_path(self):
        """Test a reference field cannot be declared with a bad path."""
        with pytest.raises(ValueError):
            ReferenceField("bad", "refs[]", "Group")


class TestRegistry:
    """Test cases for Registry."""

    def test_register_twice(self):
        """Test a kind can only be registered once."""
        registry = Registry()
        registry.register(KindRegistration(kind="Group", plural="groups", spec_versions=("v1",)))

        with pytest.raises(ValueError):
            registry.register(KindRegistration(kind="Group", plural="groups", spec_versions=("v1",)))

    def test_get_unknown(self):
        """Test looking up an unregistered kind."""
        with pytest.raises(KeyError):
            Registry().get("Nope")

    def test_add_undeclared_version(self):
        """Test version registrations must match a declared spec version."""
        registration = KindRegistration(kind="Group", plural="groups", spec_versions=("v20250312",))
        version = build_registry().get("Group").versions["v20250312"]

        registration.add_version(version)
        with pytest.raises(ValueError):
            KindRegistration(kind="Group", plural="groups", spec_versions=("v2",)).add_version(version)

    def test_built_registry(self):
        """Test the managed kinds and their references."""
        registry = build_registry()

        assert "Group" in registry
        assert "FlexCluster" in registry
        flex = registry.get("FlexCluster")
        assert flex.api_version_string == "atlas.generated.mongodb.com/v1"
        assert [(v, ref.index_name) for v, ref in flex.reference_fields()] == [
            (None, "flexcluster.connectionSecretRef"),
            ("v20250312", "flexcluster.groupRef"),
        ]

    def test_dependents_of(self):
        """Test reverse lookup of reference fields."""
        registry = build_registry()

        group_dependents = registry.dependents_of(API_GROUP, "Group")
        assert [(r.kind, ref.index_name) for r, ref in group_dependents] == [("FlexCluster", "flexcluster.groupRef")]

        secret_dependents = registry.dependents_of("", "Secret")
        assert sorted(r.kind for r, _ in secret_dependents) == ["FlexCluster", "Group"]

    def test_referenced_resources(self):
        """Test distinct referenced resources."""
        resources = build_registry().referenced_resources()

        assert sorted(resources) == [
            ("", "v1", "secrets", "Secret"),
            (API_GROUP, "v1", "groups", "Group"),
        ]

    def test_describe(self):
        """Test start-up description of a kind."""
        summary = describe(build_registry().get("Group"))

        assert summary["specVersions"] == ["v20250312", "v20250219"]
        assert summary["registeredVersions"] == ["v20250312"]
        assert summary["references"] == ["group.connectionSecretRef"]


class TestResourceArgs:
    """Test cases for resource_args."""

    def test_core_resource(self):
        """Test core resources have no group."""
        assert resource_args("", "v1", "secrets") == ("v1", "secrets")

    def test_custom_resource(self):
        """Test custom resources carry their group."""
        assert resource_args(API_GROUP, "v1", "groups") == (API_GROUP, "v1", "groups")
