"""Dry-run wrapper: reads go to Atlas, writes become Kubernetes events."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes import client

from ...constants import ANNOTATION_DRY_RUN_INSTANCE, DRY_RUN_COMPONENT, EVENT_REASON_DRY_RUN
from ...exceptions import DryRunError
from ...utils.events import EventRecorder, emit_event
from .base import AtlasClient

logger = logging.getLogger(__name__)


def dry_run_recorder(core_api: client.CoreV1Api, instance_uid: str) -> EventRecorder:
    """Recorder for events tagged with the dry-run instance uid."""
    return EventRecorder(
        core_api,
        component=DRY_RUN_COMPONENT,
        annotations={ANNOTATION_DRY_RUN_INSTANCE: instance_uid},
    )


class DryRunAtlasClient:
    """AtlasClient that refuses every mutating call.

    Each refused call is recorded as an event on the involved resource and
    stops the pass with DryRunError, so nothing downstream assumes the write
    happened.
    """

    def __init__(self, delegate: AtlasClient, recorder: EventRecorder, involved: dict[str, Any]):
        self.delegate = delegate
        self.recorder = recorder
        self.involved = involved
        self.api_version = delegate.api_version

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.delegate.get(path, params=params)

    def post(self, path: str, body: Any) -> Any:
        self._refuse("POST", path)

    def patch(self, path: str, body: Any) -> Any:
        self._refuse("PATCH", path)

    def delete(self, path: str) -> Any:
        self._refuse("DELETE", path)

    def close(self) -> None:
        self.delegate.close()

    def _refuse(self, method: str, path: str) -> None:
        message = f"would {method} {path}"
        logger.info(f"dry run: {message}")
        emit_event(self.recorder, self.involved, EVENT_REASON_DRY_RUN, message)
        raise DryRunError(message)
