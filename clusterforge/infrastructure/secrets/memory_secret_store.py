"""
In-Memory Secret Store

Architectural Intent:
- Implements SecretStorePort with a dict keyed by (organization, secret id)
- Used for local development and tests; production wires a vault client
  behind the same port
"""

import logging
from typing import Optional

from clusterforge.domain.exceptions import SecretNotFoundError
from clusterforge.domain.value_objects.credentials import Credentials

logger = logging.getLogger(__name__)


class InMemorySecretStore:
    def __init__(self, secrets: Optional[dict[tuple[int, str], dict[str, str]]] = None) -> None:
        self._secrets: dict[tuple[int, str], dict[str, str]] = dict(secrets or {})

    def put_secret(self, organization_id: int, secret_id: str, values: dict[str, str]) -> None:
        self._secrets[(organization_id, secret_id)] = dict(values)

    def get_secret(self, organization_id: int, secret_id: str) -> Credentials:
        values = self._secrets.get((organization_id, secret_id))
        if values is None:
            raise SecretNotFoundError(organization_id, secret_id)
        logger.debug("Resolved secret %s for organization %s", secret_id, organization_id)
        return Credentials(secret_id=secret_id, values=dict(values))
