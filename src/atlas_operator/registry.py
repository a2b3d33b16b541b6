"""Declarative registration of managed kinds, their spec versions and reference fields.

Each managed kind declares its mutually exclusive spec version blocks. A version
block becomes usable once a VersionRegistration (translator plus handler
factory) is registered for it; new Atlas API versions are added here, never in
the reconciler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from .constants import API_GROUP, API_VERSION

if TYPE_CHECKING:
    from .handlers.base import HandlerContext, StateHandler
    from .translate import Translator


@dataclass(frozen=True)
class PathSegment:
    """One hop of a reference field path.

    array marks a list container whose items are walked in order. A required
    segment that resolves to nothing voids the whole field for that object,
    an optional one only drops the branch it sits on.
    """

    name: str
    array: bool = False
    required: bool = False


def parse_path(expr: str) -> tuple[PathSegment, ...]:
    """Parse "integrations[].credentials![].secretRef.name" style paths.

    "[]" marks an array container and "!" a required segment.
    """
    segments = []
    for part in expr.split("."):
        required = False
        array = False
        if part.endswith("[]"):
            array = True
            part = part[:-2]
        if part.endswith("!"):
            required = True
            part = part[:-1]
        if not part:
            raise ValueError(f"invalid reference path {expr!r}")
        segments.append(PathSegment(part, array=array, required=required))
    if segments[-1].array:
        raise ValueError(f"reference path {expr!r} must end on a name, not an array")
    return tuple(segments)


@dataclass(frozen=True)
class ReferenceField:
    """A spec field naming another resource in the same namespace."""

    index_name: str
    path: str
    target_kind: str
    target_group: str = API_GROUP
    target_version: str = API_VERSION
    target_plural: str | None = None

    def __post_init__(self) -> None:
        parse_path(self.path)

    @property
    def segments(self) -> tuple[PathSegment, ...]:
        return parse_path(self.path)

    @property
    def plural(self) -> str:
        return self.target_plural or f"{self.target_kind.lower()}s"


@dataclass(frozen=True)
class VersionRegistration:
    """Translator and handler factory for one spec version block."""

    version: str
    api_version: str
    translator: "Translator"
    handler_factory: Callable[["HandlerContext"], "StateHandler"]
    # Paths are relative to the version block.
    references: tuple[ReferenceField, ...] = ()


@dataclass
class KindRegistration:
    kind: str
    plural: str
    spec_versions: tuple[str, ...]
    group: str = API_GROUP
    version: str = API_VERSION
    versions: dict[str, VersionRegistration] = field(default_factory=dict)
    # Paths are relative to spec.
    references: tuple[ReferenceField, ...] = ()

    def add_version(self, registration: VersionRegistration) -> None:
        if registration.version not in self.spec_versions:
            raise ValueError(f"{self.kind} declares no spec version {registration.version!r}")
        self.versions[registration.version] = registration

    def reference_fields(self) -> list[tuple[str | None, ReferenceField]]:
        """All reference fields as (version block or None for spec-level, field)."""
        fields: list[tuple[str | None, ReferenceField]] = [(None, ref) for ref in self.references]
        for version in self.spec_versions:
            registration = self.versions.get(version)
            if registration is None:
                continue
            fields.extend((version, ref) for ref in registration.references)
        return fields

    @property
    def api_version_string(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


def resource_args(group: str, version: str, plural: str) -> tuple[str, ...]:
    """kopf resource selector arguments; core resources have no group."""
    if not group:
        return (version, plural)
    return (group, version, plural)


class Registry:
    """Registry of managed kinds."""

    def __init__(self) -> None:
        self._kinds: dict[str, KindRegistration] = {}

    def register(self, registration: KindRegistration) -> KindRegistration:
        if registration.kind in self._kinds:
            raise ValueError(f"kind {registration.kind} is already registered")
        self._kinds[registration.kind] = registration
        return registration

    def get(self, kind: str) -> KindRegistration:
        try:
            return self._kinds[kind]
        except KeyError:
            raise KeyError(f"kind {kind} is not registered") from None

    def __contains__(self, kind: object) -> bool:
        return kind in self._kinds

    def kinds(self) -> list[KindRegistration]:
        return list(self._kinds.values())

    def dependents_of(self, group: str, kind: str) -> list[tuple[KindRegistration, ReferenceField]]:
        """Every (dependent kind, reference field) pointing at group/kind."""
        dependents = []
        for registration in self._kinds.values():
            for _, ref in registration.reference_fields():
                if ref.target_kind == kind and ref.target_group == group:
                    dependents.append((registration, ref))
        return dependents

    def referenced_resources(self) -> list[tuple[str, str, str, str]]:
        """Distinct (group, version, plural, kind) targets of all reference fields."""
        seen: dict[tuple[str, str, str], tuple[str, str, str, str]] = {}
        for registration in self._kinds.values():
            for _, ref in registration.reference_fields():
                key = (ref.target_group, ref.target_version, ref.plural)
                seen.setdefault(key, (ref.target_group, ref.target_version, ref.plural, ref.target_kind))
        return list(seen.values())


def describe(registration: KindRegistration) -> dict[str, Any]:
    """Summary used in start-up logging."""
    return {
        "kind": registration.kind,
        "specVersions": list(registration.spec_versions),
        "registeredVersions": sorted(registration.versions),
        "references": [ref.index_name for _, ref in registration.reference_fields()],
    }
