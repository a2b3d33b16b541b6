"""Group kind: an Atlas project and its sub-resource domains.

Besides the project itself, a Group reconciles the IP access list,
maintenance window, auditing and project settings once the project is
settled. Every domain is guarded independently by sub-object deletion
protection and reports its own condition.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ..constants import (
    ANNOTATION_EXTERNAL_ID,
    ANNOTATION_LAST_APPLIED_CONFIG,
    KIND_GROUP,
    REASON_DELETION_PROTECTION,
)
from ..exceptions import AtlasAPIError, DeletionProtectionError
from ..handlers.base import AtlasResourceHandler, HandlerContext
from ..protection import DOMAINS, LIST_DOMAIN, DeletionProtectionGuard, Domain
from ..registry import KindRegistration, VersionRegistration
from ..state import LifecycleState, Result
from ..translate import ApiRequest, ParamBinding, Translator
from ..utils.conditions import domain_condition
from .common import connection_secret_ref

UPDATABLE_FIELDS = ("name", "tags")
# Largest page the access list endpoint serves.
ITEMS_PER_PAGE = 500


@dataclass(frozen=True)
class GroupDomain:
    domain: Domain
    path: str


GROUP_DOMAINS = (
    GroupDomain(DOMAINS["ipAccessList"], "/groups/{groupId}/accessList"),
    GroupDomain(DOMAINS["maintenanceWindow"], "/groups/{groupId}/maintenanceWindow"),
    GroupDomain(DOMAINS["auditing"], "/groups/{groupId}/auditLog"),
    GroupDomain(DOMAINS["settings"], "/groups/{groupId}/settings"),
)


def access_list_identity(entry: dict[str, Any]) -> str:
    """The key an access list entry is matched by.

    Atlas reports a single address with both ipAddress and its host cidrBlock,
    so addresses are keyed as CIDR blocks and a bare IP becomes ip/32 (or /128).
    """
    if entry.get("awsSecurityGroup"):
        return entry["awsSecurityGroup"]
    address = entry.get("cidrBlock") or entry.get("ipAddress")
    if not address:
        return ""
    if "/" in address:
        return address
    return f"{address}/128" if ":" in address else f"{address}/32"


def project(observed: Any, keys: Any) -> dict[str, Any]:
    """Restrict an Atlas object to the declared keys."""
    if not isinstance(observed, dict):
        return {}
    return {key: observed.get(key) for key in keys}


class GroupHandler(AtlasResourceHandler):
    display_name = "Group"
    collection_path = "/groups"
    item_path = "/groups/{groupId}"
    import_annotations = {ANNOTATION_EXTERNAL_ID: "groupId"}

    def __init__(self, ctx: HandlerContext):
        super().__init__(ctx)
        self.guard = DeletionProtectionGuard(ctx.config.subobject_deletion_protection, self.kind)

    def create_body(self, obj: dict[str, Any], request: ApiRequest) -> Any:
        body = dict(request.body)
        body.setdefault("orgId", self.ctx.connection.org_id)
        return body

    def update_body(self, obj: dict[str, Any], request: ApiRequest) -> Any:
        return {key: request.body[key] for key in UPDATABLE_FIELDS if key in request.body}

    def handle_idle(self, obj: dict[str, Any], current: LifecycleState) -> Result:
        result = super().handle_idle(obj, current)
        if result.next_state != current:
            return result
        return self.reconcile_domains(obj, result)

    def last_applied(self, obj: dict[str, Any]) -> dict[str, Any]:
        raw = (obj["metadata"].get("annotations") or {}).get(ANNOTATION_LAST_APPLIED_CONFIG)
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except ValueError:
            self.log_warning(obj["metadata"], f"Ignoring unparsable {ANNOTATION_LAST_APPLIED_CONFIG} annotation")
            return {}
        return value if isinstance(value, dict) else {}

    def reconcile_domains(self, obj: dict[str, Any], result: Result) -> Result:
        """Reconcile every declared domain independently.

        A refused or failed domain does not stop the others; the last-applied
        annotation is only rewritten when every declared domain succeeded.
        """
        block = self.translator.spec_block(obj)
        request = self.translator.to_api(obj, {}, self.item_path)
        group_id = request.params["groupId"]
        last_applied = self.last_applied(obj)
        applied: dict[str, Any] = {}
        failed = False

        for group_domain in GROUP_DOMAINS:
            domain = group_domain.domain
            desired = block.get(domain.key)
            if desired is None:
                result.clear_conditions.add(domain.condition_type)
                continue
            path = group_domain.path.format(groupId=group_id)
            reconcile = self.reconcile_list if domain.shape == LIST_DOMAIN else self.reconcile_object
            try:
                reconcile(domain, path, desired, last_applied.get(domain.key))
            except DeletionProtectionError as e:
                self.log_hold(obj, e)
                result.conditions.append(
                    domain_condition(domain.condition_type, False, e.message, REASON_DELETION_PROTECTION)
                )
                failed = True
                continue
            except AtlasAPIError as e:
                if e.transient:
                    raise
                result.conditions.append(domain_condition(domain.condition_type, False, e.message, e.reason))
                failed = True
                continue
            result.conditions.append(domain_condition(domain.condition_type, True))
            applied[domain.key] = desired

        if failed:
            result.requeue_after = self.ctx.config.validation_requeue_seconds
            return result

        annotation = json.dumps(applied, sort_keys=True)
        if (obj["metadata"].get("annotations") or {}).get(ANNOTATION_LAST_APPLIED_CONFIG) != annotation:
            result.annotations[ANNOTATION_LAST_APPLIED_CONFIG] = annotation
        return result

    def log_hold(self, obj: dict[str, Any], error: DeletionProtectionError) -> None:
        self.log_warning(obj["metadata"], error.message, reason=REASON_DELETION_PROTECTION, domain=error.domain)

    def list_all(self, path: str) -> list[dict[str, Any]]:
        """Every result of a paginated Atlas collection."""
        entries: list[dict[str, Any]] = []
        page = 1
        while True:
            response = self.client.get(path, params={"itemsPerPage": ITEMS_PER_PAGE, "pageNum": page}) or {}
            results = response.get("results") or []
            entries.extend(results)
            total = response.get("totalCount")
            if len(results) < ITEMS_PER_PAGE or (total is not None and len(entries) >= total):
                return entries
            page += 1

    def reconcile_list(self, domain: Domain, path: str, desired: list[dict[str, Any]], last: Any) -> None:
        observed = self.list_all(path)
        desired_ids = {access_list_identity(entry): entry for entry in desired}
        observed_ids = {access_list_identity(entry) for entry in observed}
        to_add = [entry for key, entry in desired_ids.items() if key not in observed_ids]
        to_remove = sorted(observed_ids - set(desired_ids))
        if not to_add and not to_remove:
            return

        def apply() -> None:
            if to_add:
                self.client.post(path, to_add)
            for entry_id in to_remove:
                self.client.delete(f"{path}/{quote(entry_id, safe='')}")

        self.guard.run(
            domain,
            apply,
            desired=sorted(desired_ids),
            observed=sorted(observed_ids),
            last_applied=sorted(access_list_identity(entry) for entry in last) if isinstance(last, list) else None,
        )

    def reconcile_object(self, domain: Domain, path: str, desired: dict[str, Any], last: Any) -> None:
        observed = project(self.client.get(path), desired)
        if observed == desired:
            return

        def apply() -> Any:
            return self.client.patch(path, desired)

        self.guard.run(
            domain,
            apply,
            desired=desired,
            observed=observed,
            last_applied=project(last, desired) if last is not None else None,
        )


translator_v20250312 = Translator(
    version="v20250312",
    api_version="2025-03-12",
    params=(ParamBinding("groupId", status_field="id"),),
)


def build_registration() -> KindRegistration:
    registration = KindRegistration(
        kind=KIND_GROUP,
        plural="groups",
        # v20250219 is declared by the schema but this build has no translator for it.
        spec_versions=("v20250312", "v20250219"),
        references=(connection_secret_ref(KIND_GROUP),),
    )
    registration.add_version(
        VersionRegistration(
            version="v20250312",
            api_version="2025-03-12",
            translator=translator_v20250312,
            handler_factory=GroupHandler,
        )
    )
    return registration
