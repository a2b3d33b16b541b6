"""Operator configuration loaded from the environment at start-up."""

from __future__ import annotations

import os
from dataclasses import dataclass

MIN_SYNC_PERIOD_MINUTES = 5
LOG_ENCODERS = ("json", "console")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


@dataclass(frozen=True)
class OperatorConfig:
    """Process-wide operator settings.

    Deletion protection flags are fixed for the lifetime of the process and are
    never overridden per resource.
    """

    watch_namespaces: tuple[str, ...] = ()
    operator_namespace: str = "default"
    operator_pod_name: str = "atlas-operator"
    global_secret_name: str = "mongodb-atlas-operator-api-key"
    atlas_domain: str = "https://cloud.mongodb.com/"
    object_deletion_protection: bool = True
    subobject_deletion_protection: bool = False
    independent_sync_period_minutes: int = 15
    dry_run: bool = False
    max_concurrent_reconciles: int = 5
    metrics_port: int = 8080
    log_level: str = "info"
    log_encoder: str = "json"
    request_timeout: float = 30.0
    max_retries: int = 3
    validation_requeue_seconds: float = 30.0
    pending_requeue_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.independent_sync_period_minutes < MIN_SYNC_PERIOD_MINUTES:
            raise ValueError(
                f"independent sync period must be at least {MIN_SYNC_PERIOD_MINUTES} minutes, "
                f"got {self.independent_sync_period_minutes}"
            )
        if self.log_encoder not in LOG_ENCODERS:
            raise ValueError(f"unsupported log encoder {self.log_encoder!r}, expected one of {LOG_ENCODERS}")
        if self.max_concurrent_reconciles < 1:
            raise ValueError("max concurrent reconciles must be at least 1")

    @property
    def sync_period_seconds(self) -> float:
        return self.independent_sync_period_minutes * 60.0

    @property
    def global_secret(self) -> tuple[str, str] | None:
        """Namespace and name of the global connection secret, if configured."""
        if not self.global_secret_name:
            return None
        return self.operator_namespace, self.global_secret_name

    @classmethod
    def from_environment(cls) -> "OperatorConfig":
        """Create OperatorConfig from environment variables."""
        namespaces = tuple(
            ns.strip() for ns in os.getenv("WATCH_NAMESPACE", "").split(",") if ns.strip()
        )
        return cls(
            watch_namespaces=namespaces,
            operator_namespace=os.getenv("OPERATOR_NAMESPACE", "default"),
            operator_pod_name=os.getenv("OPERATOR_POD_NAME", "atlas-operator"),
            global_secret_name=os.getenv("GLOBAL_API_SECRET_NAME", "mongodb-atlas-operator-api-key"),
            atlas_domain=os.getenv("ATLAS_DOMAIN", "https://cloud.mongodb.com/"),
            object_deletion_protection=_env_bool("OBJECT_DELETION_PROTECTION", True),
            subobject_deletion_protection=_env_bool("SUBOBJECT_DELETION_PROTECTION", False),
            independent_sync_period_minutes=_env_int("INDEPENDENT_SYNC_PERIOD", 15),
            dry_run=_env_bool("DRY_RUN", False),
            max_concurrent_reconciles=_env_int("MDB_MAX_CONCURRENT_RECONCILES", 5),
            metrics_port=_env_int("METRICS_PORT", 8080),
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
            log_encoder=os.getenv("LOG_ENCODER", "json").lower(),
            request_timeout=_env_float("ATLAS_REQUEST_TIMEOUT", 30.0),
            max_retries=_env_int("ATLAS_MAX_RETRIES", 3),
            validation_requeue_seconds=_env_float("VALIDATION_REQUEUE_SECONDS", 30.0),
            pending_requeue_seconds=_env_float("PENDING_REQUEUE_SECONDS", 60.0),
        )
