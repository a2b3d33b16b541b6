"""Version translators between spec/status blocks and Atlas API request/response shapes."""

from __future__ import annotations

import copy
import string
from dataclasses import dataclass, field
from typing import Any, Mapping

from .exceptions import DependencyNotFoundError, ValidationError


def dig(data: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts, None when any hop is missing."""
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


@dataclass(frozen=True)
class ParamBinding:
    """Where the value of one Atlas path parameter comes from.

    Sources are tried in order: a literal field of the version block, the
    observed status of a referenced dependency, the resource's own status
    block.
    """

    name: str
    field: str | None = None
    ref: str | None = None
    ref_kind: str | None = None
    ref_status_path: str | None = None
    status_field: str | None = None


@dataclass
class ApiRequest:
    path: str
    params: dict[str, str]
    body: dict[str, Any] = field(default_factory=dict)


class Translator:
    """Converts one spec version block to Atlas requests and Atlas responses to status."""

    def __init__(
        self,
        version: str,
        api_version: str,
        params: tuple[ParamBinding, ...] = (),
        status_fields: tuple[str, ...] | None = None,
        body_field: str = "entry",
    ):
        self.version = version
        self.api_version = api_version
        self.params = params
        self.status_fields = status_fields
        self.body_field = body_field

    def spec_block(self, obj: dict[str, Any]) -> dict[str, Any]:
        return (obj.get("spec") or {}).get(self.version) or {}

    def status_block(self, obj: dict[str, Any]) -> dict[str, Any] | None:
        return (obj.get("status") or {}).get(self.version)

    def dependency_refs(self, obj: dict[str, Any]) -> list[tuple[str, str, str]]:
        """(ref field, kind, name) for every dependency named in the block."""
        block = self.spec_block(obj)
        refs = []
        for binding in self.params:
            if binding.ref is None or binding.ref_kind is None:
                continue
            name = dig(block, f"{binding.ref}.name")
            if name:
                refs.append((binding.ref, binding.ref_kind, name))
        return refs

    def resolve_param(
        self,
        obj: dict[str, Any],
        binding: ParamBinding,
        dependencies: Mapping[str, dict[str, Any]],
    ) -> str | None:
        block = self.spec_block(obj)
        if binding.field:
            value = dig(block, binding.field)
            if value:
                return str(value)
        observed = None
        if binding.status_field:
            observed = dig(self.status_block(obj) or {}, binding.status_field)
        if binding.ref and dig(block, f"{binding.ref}.name"):
            dependency = dependencies.get(binding.ref)
            if dependency is None:
                # A resource that already exists in Atlas stays addressable after its dependency is gone.
                if observed:
                    return str(observed)
                raise DependencyNotFoundError(
                    f'{binding.ref_kind} "{dig(block, f"{binding.ref}.name")}" not found'
                )
            value = dig(dependency.get("status") or {}, binding.ref_status_path or "")
            if not value:
                name = dependency.get("metadata", {}).get("name")
                raise DependencyNotFoundError(f'{binding.ref_kind} "{name}" is not ready: no {binding.name} yet')
            return str(value)
        if observed:
            return str(observed)
        return None

    def to_api(
        self,
        obj: dict[str, Any],
        dependencies: Mapping[str, dict[str, Any]] | None = None,
        path_template: str = "",
        extra_params: Mapping[str, str] | None = None,
    ) -> ApiRequest:
        """Build the Atlas request for path_template.

        Raises:
            ValidationError: If a parameter the path needs cannot be resolved
            DependencyNotFoundError: If a referenced dependency is missing or not ready
        """
        dependencies = dependencies or {}
        params: dict[str, str] = dict(extra_params or {})
        for binding in self.params:
            if binding.name in params:
                continue
            value = self.resolve_param(obj, binding, dependencies)
            if value is not None:
                params[binding.name] = value

        needed = [name for _, name, _, _ in string.Formatter().parse(path_template) if name]
        missing = [name for name in needed if name not in params]
        if missing:
            raise ValidationError(f"unable to resolve {', '.join(missing)} for {self.version}")

        body = copy.deepcopy(self.spec_block(obj).get(self.body_field) or {})
        return ApiRequest(path=path_template.format(**params), params=params, body=body)

    def from_api(self, obj: dict[str, Any], response: Mapping[str, Any]) -> dict[str, Any]:
        """Translate an Atlas response into the status block for this version.

        Raises:
            TypeError: If the response is not an object
        """
        if not isinstance(response, Mapping):
            raise TypeError(f"{self.version} translator expected an object, got {type(response).__name__}")
        if self.status_fields is None:
            observed = copy.deepcopy(dict(response))
        else:
            observed = {key: copy.deepcopy(response[key]) for key in self.status_fields if key in response}
        return {self.version: observed}
