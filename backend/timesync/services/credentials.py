"""Credential store: per-user remote API keys, encrypted at rest."""

import logging
from typing import Optional

from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from timesync.connectors.factory import RemoteCredentials
from timesync.models.connection import ExternalConnection
from timesync.services.errors import NoActiveConnection
from timesync.utils.encrypt import decrypt_api_key, encrypt_api_key

log = logging.getLogger(__name__)


def get_connection(db: Session, user_id: int, active_only: bool = True) -> Optional[ExternalConnection]:
    query = db.query(ExternalConnection).filter(ExternalConnection.user_id == user_id)
    if active_only:
        query = query.filter(ExternalConnection.is_active == True)
    return query.first()


def get_credentials(db: Session, user_id: int) -> RemoteCredentials:
    """Decrypted credentials of the user's active connection."""
    connection = get_connection(db, user_id)
    if not connection:
        raise NoActiveConnection(f"User {user_id} has no active time-tracking connection")
    try:
        api_key = decrypt_api_key(connection.api_key)
    except InvalidToken:
        log.error(f"Stored API key of connection {connection.id} cannot be decrypted; check ENCRYPTION_KEY")
        raise NoActiveConnection(f"Stored credentials for user {user_id} are unreadable; reconnect the account")
    return RemoteCredentials(
        api_key=api_key,
        workspace_id=connection.workspace_id,
        external_user_id=connection.external_user_id,
    )


def stored_api_key(db: Session, user_id: int) -> Optional[str]:
    """Decrypted key of the user's connection, or None if there is none or it is unreadable."""
    connection = get_connection(db, user_id, active_only=False)
    if connection is None:
        return None
    try:
        return decrypt_api_key(connection.api_key)
    except InvalidToken:
        return None


def save_connection(
    db: Session,
    user_id: int,
    api_key: str,
    workspace_id: str,
    external_user_id: str,
    auto_sync_enabled: bool = True,
) -> ExternalConnection:
    """Create or replace the user's connection, storing the key encrypted."""
    connection = get_connection(db, user_id, active_only=False)
    if connection is None:
        connection = ExternalConnection(user_id=user_id)
        db.add(connection)

    connection.api_key = encrypt_api_key(api_key)
    connection.workspace_id = workspace_id
    connection.external_user_id = external_user_id
    connection.is_active = True
    connection.auto_sync_enabled = auto_sync_enabled
    connection.sync_status = 'pending'
    connection.last_sync_error = None

    db.commit()
    db.refresh(connection)
    log.info(f"Saved time-tracking connection for user {user_id} (workspace {workspace_id})")
    return connection


def remove_connection(db: Session, user_id: int) -> Optional[str]:
    """Delete the user's connection; returns the decrypted key so callers can evict cached clients."""
    connection = get_connection(db, user_id, active_only=False)
    if connection is None:
        raise NoActiveConnection(f"User {user_id} has no time-tracking connection")
    api_key = stored_api_key(db, user_id)
    db.delete(connection)
    db.commit()
    log.info(f"Removed time-tracking connection for user {user_id}")
    return api_key
