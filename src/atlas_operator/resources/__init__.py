"""Managed kinds and the registry that wires them into the engine."""

from ..registry import Registry
from . import flexcluster, group


def build_registry() -> Registry:
    """Registry of every kind this operator manages."""
    registry = Registry()
    registry.register(group.build_registration())
    registry.register(flexcluster.build_registration())
    return registry


__all__ = ["build_registry"]
