"""Builders for API clients."""

from .client import create_atlas_client, create_kube_apis

__all__ = ["create_atlas_client", "create_kube_apis"]
