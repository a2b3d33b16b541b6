"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from kubernetes import client

from ..constants import (
    CONTROLLER_NAME,
    EVENT_REASON_DELETION_PROTECTION,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_STATE_CHANGED,
    EVENT_REASON_VALIDATE_FAILED,
)

logger = logging.getLogger(__name__)


class EventRecorder:
    """Creates core/v1 Events for an involved object.

    Args:
        core_api: Kubernetes CoreV1Api
        component: Source and reporting component of the events
        annotations: Annotations stamped on every event
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        component: str = CONTROLLER_NAME,
        annotations: dict[str, str] | None = None,
    ):
        self.core_api = core_api
        self.component = component
        self.annotations = annotations or {}

    def build(self, body: dict[str, Any], reason: str, message: str, type_: str = "Normal") -> client.CoreV1Event:
        meta = body.get("metadata", {})
        namespace = meta.get("namespace") or "default"
        now = datetime.now(timezone.utc)
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                name=f"{meta.get('name')}.{time.time_ns():x}",
                namespace=namespace,
                annotations=dict(self.annotations) or None,
            ),
            involved_object=client.V1ObjectReference(
                api_version=body.get("apiVersion"),
                kind=body.get("kind"),
                name=meta.get("name"),
                namespace=meta.get("namespace"),
                uid=meta.get("uid"),
                resource_version=meta.get("resourceVersion"),
            ),
            reason=reason,
            message=message,
            type=type_,
            count=1,
            first_timestamp=now,
            last_timestamp=now,
            reporting_component=self.component,
            source=client.V1EventSource(component=self.component),
        )

    def emit(self, body: dict[str, Any], reason: str, message: str, type_: str = "Normal") -> None:
        """Create an event.

        Raises:
            ApiException: If the event cannot be created
        """
        event = self.build(body, reason, message, type_)
        self.core_api.create_namespaced_event(namespace=event.metadata.namespace, body=event)


def emit_event(
    recorder: EventRecorder | None,
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event, logging instead of failing the pass.

    Args:
        recorder: Event recorder; events are skipped when None
        body: Involved object (apiVersion, kind and metadata are required)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    if recorder is None:
        return
    try:
        recorder.emit(body, reason, message, type_)
    except client.exceptions.ApiException as e:
        logger.warning(f"Failed to emit {reason} event for {body.get('metadata', {}).get('name')}: {e.reason}")


def emit_reconcile_failed(recorder: EventRecorder | None, body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(recorder, body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_failed(recorder: EventRecorder | None, body: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(recorder, body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_state_changed(recorder: EventRecorder | None, body: dict[str, Any], from_state: str, to_state: str) -> None:
    emit_event(recorder, body, EVENT_REASON_STATE_CHANGED, f"State changed from {from_state} to {to_state}")


def emit_deletion_protection(recorder: EventRecorder | None, body: dict[str, Any], message: str) -> None:
    emit_event(recorder, body, EVENT_REASON_DELETION_PROTECTION, message, type_="Warning")
