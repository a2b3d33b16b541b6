"""Error taxonomy of the reconciliation engine.

Every error a handler or collaborator can raise during a reconcile pass derives
from OperatorError and carries the condition reason it is reported with. Errors
outside this hierarchy are treated as programming errors and propagate to the
work queue.
"""

from __future__ import annotations

from typing import Any

from .constants import REASON_DELETION_PROTECTION, REASON_ERROR

NO_SPEC_VERSION_MESSAGE = "no resource spec version specified - please set one of the available spec versions"
MULTIPLE_SPEC_VERSIONS_MESSAGE = "multiple resource spec versions specified - please set only one spec version"

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class OperatorError(Exception):
    """Base class for errors recovered at the reconcile-pass boundary."""

    reason = REASON_ERROR

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class ValidationError(OperatorError):
    """The desired spec is self-contradictory or incomplete."""

    reason = "ValidationError"


class NoSpecVersionError(ValidationError):
    reason = "NoSpecVersion"

    def __init__(self) -> None:
        super().__init__(NO_SPEC_VERSION_MESSAGE)


class MultipleSpecVersionsError(ValidationError):
    reason = "MultipleSpecVersions"

    def __init__(self, versions: list[str]):
        super().__init__(MULTIPLE_SPEC_VERSIONS_MESSAGE)
        self.versions = versions


class TranslationError(OperatorError):
    """A declared spec version has no registered translator."""

    reason = "TranslationError"


class DeletionProtectionError(OperatorError):
    """A write was refused because it would discard state not declared in the spec."""

    reason = REASON_DELETION_PROTECTION

    def __init__(self, domain: str, condition_type: str, message: str):
        super().__init__(message)
        self.domain = domain
        self.condition_type = condition_type


class ConnectionSecretError(OperatorError):
    """The Atlas connection secret is missing or malformed."""

    reason = "ConnectionSecretInvalid"


class SecretNotFoundError(ConnectionSecretError):
    reason = "ConnectionSecretNotFound"

    def __init__(self, name: str, namespace: str | None = None):
        super().__init__(f'Secret "{name}" not found')
        self.name = name
        self.namespace = namespace


class DependencyNotFoundError(OperatorError):
    """A referenced resource does not exist or has not been reconciled yet."""

    reason = "DependencyNotReady"


class ConflictError(OperatorError):
    """An optimistic-concurrency write lost against a newer resource version."""

    reason = "Conflict"


class DryRunError(OperatorError):
    """A mutating Atlas call was intercepted in dry-run mode."""

    reason = "DryRun"


class AtlasAPIError(OperatorError):
    """Error returned by (or while reaching) the Atlas Admin API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        detail: str | None = None,
    ):
        super().__init__(message, reason=error_code or REASON_ERROR)
        self.status_code = status_code
        self.error_code = error_code
        self.detail = detail

    @property
    def transient(self) -> bool:
        """True for network failures, rate limiting and server-side errors."""
        return self.status_code is None or self.status_code in TRANSIENT_STATUS_CODES

    def has_code(self, *codes: str) -> bool:
        return self.error_code is not None and self.error_code in codes

    @classmethod
    def from_payload(cls, status_code: int, payload: Any) -> "AtlasAPIError":
        """Build an error from an Atlas error document."""
        if not isinstance(payload, dict):
            return cls(f"Atlas API request failed with HTTP {status_code}", status_code=status_code)
        error_code = payload.get("errorCode")
        detail = payload.get("detail") or payload.get("reason")
        message = f"{error_code}: {detail}" if error_code and detail else (detail or error_code)
        return cls(
            message or f"Atlas API request failed with HTTP {status_code}",
            status_code=status_code,
            error_code=error_code,
            detail=detail,
        )
