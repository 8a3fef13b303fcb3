"""Shared FastAPI dependencies backed by application state."""

from fastapi import Request

from timesync.connectors.factory import ConnectorCache
from timesync.services.locks import UserSyncLocks


def get_connector_cache(request: Request) -> ConnectorCache:
    return request.app.state.connector_cache


def get_sync_locks(request: Request) -> UserSyncLocks:
    return request.app.state.sync_locks
