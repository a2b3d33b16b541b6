"""Deletion-protection guard.

A domain is one independently reconciled slice of an Atlas object (IP access
list, maintenance window, ...). With protection enabled, a write to a domain is
refused when Atlas holds state the desired spec does not re-declare, unless
that state is exactly what the operator applied last time.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, TypeVar

from . import metrics
from .constants import (
    ANNOTATION_RECONCILIATION_POLICY,
    ANNOTATION_RESOURCE_POLICY,
    COND_AUDITING_READY,
    COND_CLOUD_PROVIDER_ACCESS_READY,
    COND_CLOUD_PROVIDER_INTEGRATION_READY,
    COND_ENCRYPTION_AT_REST_READY,
    COND_INTEGRATION_READY,
    COND_IP_ACCESS_LIST_READY,
    COND_MAINTENANCE_WINDOW_READY,
    COND_NETWORK_PEER_READY,
    COND_PRIVATE_ENDPOINT_READY,
    COND_PROJECT_CUSTOM_ROLES_READY,
    COND_PROJECT_SETTINGS_READY,
    COND_PROJECT_TEAMS_READY,
    COND_SERVERLESS_PRIVATE_ENDPOINT_READY,
    DELETION_PROTECTION_DOC_LINK,
    RECONCILIATION_POLICY_SKIP,
    RESOURCE_POLICY_DELETE,
    RESOURCE_POLICY_KEEP,
)
from .exceptions import DeletionProtectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

LIST_DOMAIN = "list"
OBJECT_DOMAIN = "object"


@dataclass(frozen=True)
class Domain:
    key: str
    name: str
    condition_type: str
    shape: str = LIST_DOMAIN


DOMAINS: dict[str, Domain] = {
    domain.key: domain
    for domain in (
        Domain("ipAccessList", "IP Access List", COND_IP_ACCESS_LIST_READY),
        Domain("cloudProviderIntegrations", "Cloud Provider Integrations", COND_CLOUD_PROVIDER_INTEGRATION_READY),
        Domain("networkPeers", "Network Peering", COND_NETWORK_PEER_READY),
        Domain("integrations", "Integrations", COND_INTEGRATION_READY),
        Domain("maintenanceWindow", "Maintenance Window", COND_MAINTENANCE_WINDOW_READY, OBJECT_DOMAIN),
        Domain("auditing", "Auditing", COND_AUDITING_READY, OBJECT_DOMAIN),
        Domain("settings", "Project Settings", COND_PROJECT_SETTINGS_READY, OBJECT_DOMAIN),
        Domain("encryptionAtRest", "Encryption At Rest", COND_ENCRYPTION_AT_REST_READY, OBJECT_DOMAIN),
        Domain("customRoles", "Custom Roles", COND_PROJECT_CUSTOM_ROLES_READY),
        Domain("teams", "Assigned Teams", COND_PROJECT_TEAMS_READY),
        Domain("privateEndpoints", "Private Endpoint(s)", COND_PRIVATE_ENDPOINT_READY),
        Domain("cloudProviderAccessRoles", "Cloud Provider Access", COND_CLOUD_PROVIDER_ACCESS_READY),
        Domain("serverlessPrivateEndpoints", "Serverless Private Endpoints", COND_SERVERLESS_PRIVATE_ENDPOINT_READY),
    )
}


def deletion_protection_message(domain_name: str) -> str:
    """Documented hold message; automation parses it, keep the wording stable."""
    return (
        f"unable to reconcile {domain_name} due to deletion protection being enabled. "
        f"see {DELETION_PROTECTION_DOC_LINK} for further information"
    )


@dataclass(frozen=True)
class DomainConflict:
    domain: Domain
    # Atlas entries (list domains) or field names (object domains) that would be lost.
    undeclared: list[Any] = field(default_factory=list)

    @property
    def message(self) -> str:
        return deletion_protection_message(self.domain.name)


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _normalize(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_normalize(item) for item in value if item is not None]
    return value


def _canonical(value: Any) -> str:
    return json.dumps(_normalize(value), sort_keys=True)


def _same(left: Any, right: Any) -> bool:
    if isinstance(left, list) and isinstance(right, list):
        return sorted(_canonical(item) for item in left) == sorted(_canonical(item) for item in right)
    return _canonical(left) == _canonical(right)


def domain_conflict(
    domain: Domain,
    desired: Any,
    observed: Any,
    last_applied: Any = None,
) -> DomainConflict | None:
    """Destructive drift of one domain, or None when the write is safe."""
    observed = _normalize(observed)
    if not observed:
        return None
    if last_applied is not None and _same(last_applied, observed):
        return None

    if domain.shape == LIST_DOMAIN:
        declared = {_canonical(item) for item in (desired or [])}
        undeclared = [item for item in observed if _canonical(item) not in declared]
        return DomainConflict(domain, undeclared) if undeclared else None

    if desired is None:
        return None
    desired = _normalize(desired)
    changed = sorted(key for key, value in desired.items() if _canonical(observed.get(key)) != _canonical(value))
    return DomainConflict(domain, changed) if changed else None


def detect_destructive_drift(
    desired: Mapping[str, Any],
    observed: Mapping[str, Any],
    last_applied: Mapping[str, Any] | None = None,
) -> list[DomainConflict]:
    """Every domain whose reconciliation would discard undeclared Atlas state.

    Domains are evaluated independently; the result carries no ordering meaning.
    """
    last_applied = last_applied or {}
    conflicts = []
    for key in observed:
        domain = DOMAINS.get(key)
        if domain is None:
            continue
        conflict = domain_conflict(domain, desired.get(key), observed.get(key), last_applied.get(key))
        if conflict is not None:
            conflicts.append(conflict)
    return conflicts


def guard(
    domain: Domain,
    protection_enabled: bool,
    action: Callable[[], T],
    desired: Any = None,
    observed: Any = None,
    last_applied: Any = None,
) -> T:
    """Run action unless protection is on and the domain shows destructive drift.

    Raises:
        DeletionProtectionError: If the write is refused
    """
    if protection_enabled:
        conflict = domain_conflict(domain, desired, observed, last_applied)
        if conflict is not None:
            logger.info(f"Deletion protection holds {domain.name}: undeclared {conflict.undeclared}")
            raise DeletionProtectionError(domain.name, domain.condition_type, conflict.message)
    return action()


class DeletionProtectionGuard:
    """guard() bound to the process-wide protection flag of one handler."""

    def __init__(self, protection_enabled: bool, kind: str = ""):
        self.protection_enabled = protection_enabled
        self.kind = kind

    def run(
        self,
        domain: Domain,
        action: Callable[[], T],
        desired: Any = None,
        observed: Any = None,
        last_applied: Any = None,
    ) -> T:
        try:
            return guard(domain, self.protection_enabled, action, desired, observed, last_applied)
        except DeletionProtectionError:
            metrics.deletion_protection_blocks_total.labels(kind=self.kind, domain=domain.name).inc()
            raise


def is_resource_policy_keep_or_default(obj: dict[str, Any], protection_enabled: bool) -> bool:
    """Whether deleting obj must leave the Atlas object in place."""
    annotations = obj.get("metadata", {}).get("annotations") or {}
    policy = annotations.get(ANNOTATION_RESOURCE_POLICY)
    if policy == RESOURCE_POLICY_KEEP:
        return True
    if policy == RESOURCE_POLICY_DELETE:
        return False
    return protection_enabled


def reconciliation_should_be_skipped(obj: dict[str, Any]) -> bool:
    annotations = obj.get("metadata", {}).get("annotations") or {}
    return annotations.get(ANNOTATION_RECONCILIATION_POLICY) == RECONCILIATION_POLICY_SKIP
