"""Base handler classes shared by all managed kinds."""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..constants import CONTROLLER_NAME
from ..exceptions import AtlasAPIError, DependencyNotFoundError, ValidationError
from ..logging import log_resource_event
from ..protection import is_resource_policy_keep_or_default
from ..state import LifecycleState, Result, next_state, should_reapply
from ..translate import ApiRequest, Translator, dig
from ..utils.errors import sanitize_exception

if TYPE_CHECKING:
    from ..config import OperatorConfig
    from ..connection import ConnectionConfig
    from ..registry import KindRegistration, VersionRegistration
    from ..services.atlas.base import AtlasClient
    from ..store import KubeObjectStore

STATE_TRACKER_FIELD = "stateTracker"


@dataclass
class HandlerContext:
    """Everything a version handler needs for one reconcile pass."""

    registration: "KindRegistration"
    version: "VersionRegistration"
    client: "AtlasClient"
    store: "KubeObjectStore"
    config: "OperatorConfig"
    connection: "ConnectionConfig"

    @property
    def translator(self) -> Translator:
        return self.version.translator


class BaseHandler:
    """Base class for all handlers with structured logging helpers."""

    def __init__(self, kind: str):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "Group", "FlexCluster")
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace", "default"),
            "uid": meta.get("uid", "unknown"),
        }

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **kwargs: Any) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            event: Event type (default: "info")
            reason: Reason for the event (default: "Info")
            **kwargs: Additional fields to include in the log
        """
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        self._log(logging.ERROR, meta, message, event, reason, **log_data)


class StateHandler(BaseHandler, ABC):
    """One callback per lifecycle state.

    Callbacks return a Result naming the next state; they raise OperatorError
    subclasses to keep the current state and report the failure.
    """

    @abstractmethod
    def handle_initial(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_import_requested(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_imported(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_creating(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_created(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_updating(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_updated(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_deletion_requested(self, obj: dict[str, Any]) -> Result: ...

    @abstractmethod
    def handle_deleting(self, obj: dict[str, Any]) -> Result: ...

    def close(self) -> None:
        """Release what the handler holds once its pass is over."""


class AtlasResourceHandler(StateHandler):
    """Lifecycle of one Atlas object addressed by a collection and an item path.

    Subclasses set the paths, the display name and the Atlas states that mean
    "still provisioning"; they override the body hooks when the create or
    update payload differs from the version block's entry.
    """

    display_name = "resource"
    collection_path = ""
    item_path = ""
    state_field = "stateName"
    pending_states: frozenset[str] = frozenset()
    not_found_codes: frozenset[str] = frozenset()
    # annotation -> path parameter read on import
    import_annotations: dict[str, str] = {}

    def __init__(self, ctx: HandlerContext):
        super().__init__(ctx.registration.kind)
        self.ctx = ctx
        self.client = ctx.client
        self.translator = ctx.translator

    # Hooks

    def create_body(self, obj: dict[str, Any], request: ApiRequest) -> Any:
        return request.body

    def update_body(self, obj: dict[str, Any], request: ApiRequest) -> Any:
        return request.body

    def close(self) -> None:
        self.client.close()

    # Helpers

    def get_dependencies(self, obj: dict[str, Any], missing_ok: bool = False) -> dict[str, dict[str, Any]]:
        """Referenced resources keyed by reference field.

        With missing_ok, absent dependencies are left out so path parameters
        fall back to the resource's own status block.

        Raises:
            DependencyNotFoundError: If a referenced resource does not exist
        """
        namespace = obj["metadata"].get("namespace", "default")
        dependencies = {}
        for ref, kind, name in self.translator.dependency_refs(obj):
            try:
                dependencies[ref] = self.ctx.store.get_dependency(kind, namespace, name)
            except DependencyNotFoundError as e:
                if not missing_ok:
                    raise
                self.log_info(obj["metadata"], f"Continuing without dependency: {e.message}", reason=e.reason)
        return dependencies

    def state_tracker(self, obj: dict[str, Any], dependencies: dict[str, dict[str, Any]]) -> str:
        """Hash of the desired block and the dependency values it resolves to."""
        resolved = {}
        for binding in self.translator.params:
            if binding.ref and binding.ref in dependencies:
                resolved[binding.name] = dig(
                    dependencies[binding.ref].get("status") or {}, binding.ref_status_path or ""
                )
        payload = json.dumps(
            {"spec": self.translator.spec_block(obj), "dependencies": resolved},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    def should_update(self, obj: dict[str, Any], dependencies: dict[str, dict[str, Any]]) -> bool:
        recorded = (obj.get("status") or {}).get(STATE_TRACKER_FIELD)
        if recorded != self.state_tracker(obj, dependencies):
            return True
        return should_reapply(obj["metadata"].get("annotations") or {})

    def observed_status(
        self,
        obj: dict[str, Any],
        response: Any,
        dependencies: dict[str, dict[str, Any]] | None = None,
        track: bool = True,
    ) -> dict[str, Any]:
        status = self.translator.from_api(obj, response)
        if track:
            status[STATE_TRACKER_FIELD] = self.state_tracker(obj, dependencies or {})
        return status

    def is_not_found(self, error: AtlasAPIError) -> bool:
        return error.status_code == 404 or error.has_code(*self.not_found_codes)

    def fetch(
        self,
        obj: dict[str, Any],
        dependencies: dict[str, dict[str, Any]],
        extra_params: dict[str, str] | None = None,
    ) -> Any:
        request = self.translator.to_api(obj, dependencies, self.item_path, extra_params)
        return self.client.get(request.path)

    # Lifecycle

    def handle_initial(self, obj: dict[str, Any]) -> Result:
        dependencies = self.get_dependencies(obj)
        request = self.translator.to_api(obj, dependencies, self.collection_path)
        response = self.client.post(request.path, self.create_body(obj, request))
        self.log_info(obj["metadata"], f"Created {self.display_name} in Atlas", reason="Created")
        return next_state(
            LifecycleState.CREATING,
            f"Creating {self.display_name}.",
            status=self.observed_status(obj, response, track=False),
        )

    def handle_import_requested(self, obj: dict[str, Any]) -> Result:
        annotations = obj["metadata"].get("annotations") or {}
        extra_params = {}
        for annotation, param in self.import_annotations.items():
            if annotation not in annotations:
                raise ValidationError(f"missing {annotation}")
            extra_params[param] = annotations[annotation]
        dependencies = self.get_dependencies(obj)
        response = self.fetch(obj, dependencies, extra_params)
        return next_state(
            LifecycleState.IMPORTED,
            f"Imported {self.display_name}.",
            status=self.observed_status(obj, response, dependencies),
        )

    def handle_imported(self, obj: dict[str, Any]) -> Result:
        return self.handle_idle(obj, LifecycleState.IMPORTED)

    def handle_creating(self, obj: dict[str, Any]) -> Result:
        return self.handle_upserting(obj, LifecycleState.CREATING, LifecycleState.CREATED)

    def handle_created(self, obj: dict[str, Any]) -> Result:
        return self.handle_idle(obj, LifecycleState.CREATED)

    def handle_updating(self, obj: dict[str, Any]) -> Result:
        return self.handle_upserting(obj, LifecycleState.UPDATING, LifecycleState.UPDATED)

    def handle_updated(self, obj: dict[str, Any]) -> Result:
        return self.handle_idle(obj, LifecycleState.UPDATED)

    def handle_upserting(
        self,
        obj: dict[str, Any],
        current: LifecycleState,
        final: LifecycleState,
    ) -> Result:
        dependencies = self.get_dependencies(obj)
        response = self.fetch(obj, dependencies)
        status = self.observed_status(obj, response, dependencies)
        if isinstance(response, dict) and response.get(self.state_field) in self.pending_states:
            return next_state(current, f"Upserting {self.display_name}.", status=status)
        return next_state(final, f"Upserted {self.display_name}.", status=status)

    def handle_idle(self, obj: dict[str, Any], current: LifecycleState) -> Result:
        dependencies = self.get_dependencies(obj)
        if not self.should_update(obj, dependencies):
            return next_state(current, f"{self.display_name} up to date. No update required.")

        request = self.translator.to_api(obj, dependencies, self.item_path)
        response = self.client.patch(request.path, self.update_body(obj, request))
        self.log_info(obj["metadata"], f"Updated {self.display_name} in Atlas", reason="Updated")
        return next_state(
            LifecycleState.UPDATING,
            f"Updating {self.display_name}.",
            status=self.observed_status(obj, response, dependencies),
        )

    def handle_deletion_requested(self, obj: dict[str, Any]) -> Result:
        if is_resource_policy_keep_or_default(obj, self.ctx.config.object_deletion_protection):
            return next_state(LifecycleState.DELETED, f"{self.display_name} deleted.")
        if self.translator.status_block(obj) is None:
            return next_state(LifecycleState.DELETED, f"{self.display_name} is unmanaged.")

        dependencies = self.get_dependencies(obj, missing_ok=True)
        request = self.translator.to_api(obj, dependencies, self.item_path)
        try:
            self.client.delete(request.path)
        except AtlasAPIError as e:
            if self.is_not_found(e):
                return next_state(LifecycleState.DELETED, f"{self.display_name} was deleted in Atlas.")
            raise
        return next_state(LifecycleState.DELETING, f"Deleting {self.display_name}.")

    def handle_deleting(self, obj: dict[str, Any]) -> Result:
        dependencies = self.get_dependencies(obj, missing_ok=True)
        try:
            self.fetch(obj, dependencies)
        except AtlasAPIError as e:
            if self.is_not_found(e):
                return next_state(LifecycleState.DELETED, "Deleted")
            raise
        return next_state(LifecycleState.DELETING, f"Deleting {self.display_name}.")
