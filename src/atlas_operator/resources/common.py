"""Reference fields shared by every managed kind."""

from __future__ import annotations

from ..constants import KIND_SECRET
from ..registry import ReferenceField


def connection_secret_ref(kind: str) -> ReferenceField:
    """spec.connectionSecretRef.name of kind, pointing at a core Secret."""
    return ReferenceField(
        index_name=f"{kind.lower()}.connectionSecretRef",
        path="connectionSecretRef.name",
        target_kind=KIND_SECRET,
        target_group="",
        target_version="v1",
        target_plural="secrets",
    )
