"""Builders for Kubernetes and Atlas API clients."""

from __future__ import annotations

import threading
from typing import Any

from kubernetes import client, config

from ..config import OperatorConfig
from ..connection import ConnectionConfig
from ..services.atlas.base import AtlasClient
from ..services.atlas.client import AtlasHTTPClient
from ..services.atlas.dryrun import DryRunAtlasClient
from ..utils.events import EventRecorder


def create_kube_apis() -> tuple[client.CustomObjectsApi, client.CoreV1Api]:
    """Load cluster credentials and return the custom-objects and core APIs."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    return client.CustomObjectsApi(), client.CoreV1Api()


def create_atlas_client(
    connection: ConnectionConfig,
    api_version: str,
    operator_config: OperatorConfig,
    stop_event: threading.Event | None = None,
    recorder: EventRecorder | None = None,
    involved: dict[str, Any] | None = None,
) -> AtlasClient:
    """Create an Atlas client for one API version.

    Args:
        connection: Resolved credentials of the resource
        api_version: Atlas API date, e.g. "2025-03-12"
        operator_config: Process settings (domain, timeout, retries, dry run)
        stop_event: Set on shutdown to abort in-flight retries
        recorder: Dry-run event recorder, required when dry run is enabled
        involved: Resource the dry-run events are attached to

    Returns:
        Configured client, wrapped for dry run when enabled

    Raises:
        ValueError: If dry run is enabled without a recorder
    """
    atlas_client = AtlasHTTPClient(
        base_url=operator_config.atlas_domain,
        credentials=connection.credentials,
        api_version=api_version,
        timeout=operator_config.request_timeout,
        max_attempts=operator_config.max_retries,
        stop_event=stop_event,
    )
    if not operator_config.dry_run:
        return atlas_client
    if recorder is None or involved is None:
        raise ValueError("dry run requires an event recorder and an involved object")
    return DryRunAtlasClient(atlas_client, recorder, involved)
