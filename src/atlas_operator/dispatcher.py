"""Version dispatcher: binds a resource to the handler of its populated spec version."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from .builders.client import create_atlas_client
from .config import OperatorConfig
from .connection import ConnectionConfig, ConnectionResolver
from .exceptions import MultipleSpecVersionsError, NoSpecVersionError, TranslationError
from .handlers.base import HandlerContext, StateHandler
from .registry import KindRegistration, Registry, VersionRegistration
from .services.atlas.base import AtlasClient
from .utils.events import EventRecorder
from .store import KubeObjectStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectionConfig, VersionRegistration, dict[str, Any]], AtlasClient]


def populated_versions(registration: KindRegistration, obj: dict[str, Any]) -> list[str]:
    """Declared spec versions whose block is present and non-empty."""
    spec = obj.get("spec") or {}
    return [version for version in registration.spec_versions if spec.get(version)]


class VersionDispatcher:
    """Resolves the handler for a resource instance.

    Args:
        registry: Registered kinds and their version registrations
        store: Kubernetes object store handed to handlers
        resolver: Connection resolver used once per pass
        config: Operator configuration
        client_factory: Builds the Atlas client; defaults to create_atlas_client
        stop_event: Shutdown signal propagated into Atlas retries
        recorder: Dry-run event recorder
    """

    def __init__(
        self,
        registry: Registry,
        store: KubeObjectStore,
        resolver: ConnectionResolver,
        config: OperatorConfig,
        client_factory: ClientFactory | None = None,
        stop_event: threading.Event | None = None,
        recorder: EventRecorder | None = None,
    ):
        self.registry = registry
        self.store = store
        self.resolver = resolver
        self.config = config
        self.stop_event = stop_event
        self.recorder = recorder
        self.client_factory = client_factory or self._default_client

    def _default_client(
        self,
        connection: ConnectionConfig,
        version: VersionRegistration,
        obj: dict[str, Any],
    ) -> AtlasClient:
        return create_atlas_client(
            connection,
            version.api_version,
            self.config,
            stop_event=self.stop_event,
            recorder=self.recorder,
            involved=obj,
        )

    def select_version(self, obj: dict[str, Any]) -> tuple[KindRegistration, VersionRegistration]:
        """Pick the version registration of obj without touching secrets or Atlas.

        Raises:
            NoSpecVersionError: If no version block is populated
            MultipleSpecVersionsError: If more than one is
            TranslationError: If the populated version has no registered translator
        """
        registration = self.registry.get(obj["kind"])
        versions = populated_versions(registration, obj)
        if not versions:
            raise NoSpecVersionError()
        if len(versions) > 1:
            raise MultipleSpecVersionsError(versions)
        version = registration.versions.get(versions[0])
        if version is None:
            raise TranslationError(f"no translator registered for {registration.kind} spec version {versions[0]}")
        return registration, version

    def resolve(self, obj: dict[str, Any]) -> StateHandler:
        """Return the handler bound to obj's spec version.

        Raises:
            ValidationError: If the version blocks are not exactly one
            TranslationError: If the version has no translator
            ConnectionSecretError: If the connection secret cannot be resolved
        """
        registration, version = self.select_version(obj)
        connection = self.resolver.resolve(obj)
        ctx = HandlerContext(
            registration=registration,
            version=version,
            client=self.client_factory(connection, version, obj),
            store=self.store,
            config=self.config,
            connection=connection,
        )
        logger.debug(f"Dispatching {registration.kind} {obj['metadata'].get('name')} to {version.version}")
        return version.handler_factory(ctx)
