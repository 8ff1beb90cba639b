"""
Secret Store Port

Architectural Intent:
- Port interface for resolving cloud credentials by organization and secret id
- Implemented by a vault client in production, an in-memory store in tests
"""

from typing import Protocol, runtime_checkable

from clusterforge.domain.value_objects.credentials import Credentials


@runtime_checkable
class SecretStorePort(Protocol):
    def get_secret(self, organization_id: int, secret_id: str) -> Credentials:
        """Return the credentials or raise SecretNotFoundError."""
        ...
