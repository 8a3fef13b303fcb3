"""Construction and caching of remote connectors.

Connectors are built from explicit credentials and owned by the caller.
``ConnectorCache`` is an optional, injectable cache keyed by credential
identity (a SHA-256 of the API key, never the key itself).
"""

import hashlib
import logging
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from timesync.connectors.clockify_connector import ClockifyConnector

log = logging.getLogger(__name__)


class RemoteCredentials(BaseModel):
    """Per-user remote credentials supplied by the credential store."""
    api_key: str
    workspace_id: str
    external_user_id: str

    @property
    def identity(self) -> str:
        return credential_identity(self.api_key)


def credential_identity(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def build_connector(credentials: RemoteCredentials, **kwargs) -> ClockifyConnector:
    """Create a new connector for the given credentials."""
    return ClockifyConnector(credentials.api_key, **kwargs)


ConnectorBuilder = Callable[[RemoteCredentials], ClockifyConnector]


class ConnectorCache:
    """Reuses one connector (and its rate limiter) per credential."""

    def __init__(self, builder: Optional[ConnectorBuilder] = None):
        self._builder = builder or build_connector
        self._connectors: Dict[str, ClockifyConnector] = {}

    def get(self, credentials: RemoteCredentials) -> ClockifyConnector:
        key = credentials.identity
        connector = self._connectors.get(key)
        if connector is None:
            connector = self._builder(credentials)
            self._connectors[key] = connector
            log.debug(f"Created connector for credential {key[:8]}")
        return connector

    async def evict(self, api_key: str) -> None:
        connector = self._connectors.pop(credential_identity(api_key), None)
        if connector is not None:
            await connector.close()

    async def close_all(self) -> None:
        connectors = list(self._connectors.values())
        self._connectors.clear()
        for connector in connectors:
            await connector.close()

    def __contains__(self, credentials: RemoteCredentials) -> bool:
        return credentials.identity in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)
