"""Tests for the version dispatcher."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from atlas_operator.config import OperatorConfig
from atlas_operator.connection import ConnectionConfig, Credentials
from atlas_operator.dispatcher import VersionDispatcher, populated_versions
from atlas_operator.exceptions import (
    MultipleSpecVersionsError,
    NoSpecVersionError,
    SecretNotFoundError,
    TranslationError,
)
from atlas_operator.resources import build_registry
from atlas_operator.resources.group import GroupHandler

CONNECTION = ConnectionConfig("org-1", Credentials("pub", "priv"), "ns/creds")


def _group(spec: dict) -> dict:
    return {"kind": "Group", "metadata": {"name": "g", "namespace": "ns"}, "spec": spec}


def _dispatcher(**kwargs) -> VersionDispatcher:
    resolver = MagicMock()
    resolver.resolve.return_value = CONNECTION
    return VersionDispatcher(build_registry(), MagicMock(), resolver, OperatorConfig(), **kwargs)


class TestSelectVersion:
    """Test cases for picking the spec version."""

    def test_populated_versions_ignores_empty_blocks(self):
        """Test empty version blocks do not count."""
        registration = build_registry().get("Group")

        assert populated_versions(registration, _group({"v20250312": {"entry": {}}, "v20250219": {}})) == [
            "v20250312"
        ]

    def test_no_version(self):
        """Test a spec without version blocks."""
        with pytest.raises(NoSpecVersionError):
            _dispatcher().select_version(_group({"connectionSecretRef": {"name": "creds"}}))

    def test_multiple_versions(self):
        """Test a spec with two version blocks."""
        with pytest.raises(MultipleSpecVersionsError) as exc_info:
            _dispatcher().select_version(_group({"v20250312": {"a": 1}, "v20250219": {"a": 1}}))

        assert exc_info.value.versions == ["v20250312", "v20250219"]

    def test_version_without_translator(self):
        """Test a declared version nobody registered a handler for."""
        with pytest.raises(TranslationError, match="v20250219"):
            _dispatcher().select_version(_group({"v20250219": {"a": 1}}))

    def test_selects_registered_version(self):
        """Test the registration of the populated version is returned."""
        registration, version = _dispatcher().select_version(_group({"v20250312": {"entry": {"name": "p"}}}))

        assert registration.kind == "Group"
        assert version.api_version == "2025-03-12"


class TestResolve:
    """Test cases for resolving the handler."""

    def test_builds_handler(self):
        """Test the handler gets the client and connection of the pass."""
        factory = MagicMock()
        dispatcher = _dispatcher(client_factory=factory)
        obj = _group({"v20250312": {"entry": {"name": "p"}}})

        handler = dispatcher.resolve(obj)

        assert isinstance(handler, GroupHandler)
        assert handler.client is factory.return_value
        assert handler.ctx.connection == CONNECTION
        factory.assert_called_once()
        assert factory.call_args[0][0] == CONNECTION
        assert factory.call_args[0][2] is obj

    def test_secret_errors_propagate(self):
        """Test connection failures stop the pass before any client is built."""
        factory = MagicMock()
        dispatcher = _dispatcher(client_factory=factory)
        dispatcher.resolver.resolve.side_effect = SecretNotFoundError("creds", "ns")

        with pytest.raises(SecretNotFoundError):
            dispatcher.resolve(_group({"v20250312": {"entry": {}}}))

        factory.assert_not_called()

    def test_version_checked_before_secrets(self):
        """Test spec errors are raised without reading secrets."""
        dispatcher = _dispatcher()

        with pytest.raises(NoSpecVersionError):
            dispatcher.resolve(_group({}))

        dispatcher.resolver.resolve.assert_not_called()

    @patch("atlas_operator.dispatcher.create_atlas_client")
    def test_default_client_factory(self, mock_create):
        """Test the default factory passes the recorder and involved object."""
        recorder = MagicMock()
        dispatcher = _dispatcher(recorder=recorder)
        obj = _group({"v20250312": {"entry": {"name": "p"}}})

        dispatcher.resolve(obj)

        args, kwargs = mock_create.call_args
        assert args[0] == CONNECTION
        assert args[1] == "2025-03-12"
        assert kwargs["recorder"] is recorder
        assert kwargs["involved"] is obj
