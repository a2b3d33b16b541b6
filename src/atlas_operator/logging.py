"""Structured logging configuration for the Atlas Operator."""

import json
import logging
import sys
from typing import Any

from .utils.context import get_context_dict

CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

SECRET_FIELDS = {"publicApiKey", "privateApiKey", "private_key", "public_key", "password", "authorization"}


def setup_structured_logging(level: str = "info", encoder: str = "json") -> None:
    """Configure structured JSON logging.

    The json encoder leaves records untouched because resource events are
    already serialized by log_resource_event.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s" if encoder == "json" else CONSOLE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured resource event."""
    log_data = {
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
        "message": message,
    }
    log_data.update(get_context_dict(kwargs))
    logger.log(level, json.dumps(sanitize_secrets(log_data), default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Remove secret fields from log data."""
    sanitized = log_data.copy()
    for field in SECRET_FIELDS:
        if field in sanitized:
            sanitized[field] = "***REDACTED***"
    return sanitized
