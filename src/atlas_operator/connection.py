"""Connection resolver: picks the Atlas credentials for a resource."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from .constants import SECRET_KEY_ORG_ID, SECRET_KEY_PRIVATE_API_KEY, SECRET_KEY_PUBLIC_API_KEY
from .exceptions import ConnectionSecretError

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (SECRET_KEY_ORG_ID, SECRET_KEY_PUBLIC_API_KEY, SECRET_KEY_PRIVATE_API_KEY)


@dataclass(frozen=True)
class Credentials:
    public_key: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class ConnectionConfig:
    org_id: str
    credentials: Credentials
    # namespace/name of the secret the credentials came from
    source: str


class ConnectionResolver:
    """Resolves the instance-local connection secret, falling back to the global one.

    Args:
        read_secret: Callable (namespace, name) -> decoded secret data; raises
            SecretNotFoundError when the secret does not exist
        global_secret: (namespace, name) of the process-wide fallback secret
    """

    def __init__(
        self,
        read_secret: Callable[[str, str], dict[str, str]],
        global_secret: tuple[str, str] | None = None,
    ):
        self.read_secret = read_secret
        self.global_secret = global_secret

    def secret_ref(self, obj: dict[str, Any]) -> tuple[str, str]:
        """(namespace, name) of the secret obj should use."""
        local = ((obj.get("spec") or {}).get("connectionSecretRef") or {}).get("name")
        if local:
            return obj.get("metadata", {}).get("namespace", "default"), local
        if self.global_secret is None:
            raise ConnectionSecretError("no connection secret referenced and no global secret configured")
        return self.global_secret

    def resolve(self, obj: dict[str, Any]) -> ConnectionConfig:
        """Resolve the connection for obj.

        Raises:
            SecretNotFoundError: If the selected secret does not exist
            ConnectionSecretError: If it lacks orgId, publicApiKey or privateApiKey
        """
        namespace, name = self.secret_ref(obj)
        data = self.read_secret(namespace, name)
        missing = [key for key in REQUIRED_KEYS if not data.get(key)]
        if missing:
            raise ConnectionSecretError(f'Secret "{name}" is invalid: missing {", ".join(missing)}')
        logger.debug(f"Using connection secret {namespace}/{name}")
        return ConnectionConfig(
            org_id=data[SECRET_KEY_ORG_ID],
            credentials=Credentials(
                public_key=data[SECRET_KEY_PUBLIC_API_KEY],
                private_key=data[SECRET_KEY_PRIVATE_API_KEY],
            ),
            source=f"{namespace}/{name}",
        )
