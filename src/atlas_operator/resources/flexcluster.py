"""FlexCluster kind: a flex cluster inside an Atlas project."""

from __future__ import annotations

from typing import Any

from ..constants import ANNOTATION_EXTERNAL_GROUP_ID, ANNOTATION_EXTERNAL_NAME, KIND_FLEX_CLUSTER, KIND_GROUP
from ..handlers.base import AtlasResourceHandler, HandlerContext
from ..registry import KindRegistration, ReferenceField, VersionRegistration
from ..translate import ApiRequest, ParamBinding, Translator
from .common import connection_secret_ref

# Fields the flex update endpoint accepts.
UPDATABLE_FIELDS = ("tags", "terminationProtectionEnabled")


class FlexClusterHandler(AtlasResourceHandler):
    display_name = "Flex Cluster"
    collection_path = "/groups/{groupId}/flexClusters"
    item_path = "/groups/{groupId}/flexClusters/{name}"
    pending_states = frozenset({"CREATING", "UPDATING"})
    not_found_codes = frozenset({"CLUSTER_NOT_FOUND"})
    import_annotations = {
        ANNOTATION_EXTERNAL_NAME: "name",
        ANNOTATION_EXTERNAL_GROUP_ID: "groupId",
    }

    def update_body(self, obj: dict[str, Any], request: ApiRequest) -> Any:
        return {key: request.body[key] for key in UPDATABLE_FIELDS if key in request.body}


translator_v20250312 = Translator(
    version="v20250312",
    api_version="2025-03-12",
    params=(
        ParamBinding(
            "groupId",
            field="groupId",
            ref="groupRef",
            ref_kind=KIND_GROUP,
            ref_status_path="v20250312.id",
            status_field="groupId",
        ),
        ParamBinding("name", field="entry.name", status_field="name"),
    ),
)


def build_registration() -> KindRegistration:
    registration = KindRegistration(
        kind=KIND_FLEX_CLUSTER,
        plural="flexclusters",
        spec_versions=("v20250312",),
        references=(connection_secret_ref(KIND_FLEX_CLUSTER),),
    )
    registration.add_version(
        VersionRegistration(
            version="v20250312",
            api_version="2025-03-12",
            translator=translator_v20250312,
            handler_factory=FlexClusterHandler,
            references=(ReferenceField("flexcluster.groupRef", "groupRef.name", KIND_GROUP),),
        )
    )
    return registration
