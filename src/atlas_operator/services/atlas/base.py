"""Base Atlas client interface."""

from __future__ import annotations

from typing import Any, Protocol


class AtlasClient(Protocol):
    """Protocol of a versioned Atlas Admin API client.

    Paths are relative to the versioned API root, e.g. "/groups/{groupId}".
    Errors are raised as AtlasAPIError.
    """

    api_version: str

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Read a resource or collection."""
        ...

    def post(self, path: str, body: Any) -> Any:
        """Create a resource."""
        ...

    def patch(self, path: str, body: Any) -> Any:
        """Update a resource."""
        ...

    def delete(self, path: str) -> Any:
        """Delete a resource."""
        ...

    def close(self) -> None:
        """Release the connections held by the client."""
        ...
