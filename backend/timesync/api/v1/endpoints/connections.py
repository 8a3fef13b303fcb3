from typing import Annotated
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from timesync.api.v1.deps import get_connector_cache
from timesync.auth import get_current_active_user
from timesync.connectors.errors import AuthError, ConnectorError
from timesync.connectors.factory import ConnectorCache, RemoteCredentials
from timesync.database import get_db
from timesync.models.mapping import ProjectGoalMapping
from timesync.schemas.auth import User
from timesync.schemas.connection import ConnectionCreate, ConnectionInDB, ProjectList, RemoteProjectOut
from timesync.services import credentials as credential_store
from timesync.services.errors import NoActiveConnection
from timesync.utils.audit_logger import create_audit_log

log = logging.getLogger(__name__)
router = APIRouter()

@router.post("/", response_model=ConnectionInDB, status_code=status.HTTP_201_CREATED)
async def create_connection(
    request: Request,
    connection: ConnectionCreate,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """
    Connect the user's time-tracking account.

    The API key is validated against the remote service before it is stored
    (encrypted). Without an explicit workspace the account's active one is used.
    """
    candidate = RemoteCredentials(api_key=connection.api_key, workspace_id=connection.workspace_id or "", external_user_id="")
    already_cached = candidate in connector_cache
    connector = connector_cache.get(candidate)

    async def discard_candidate():
        # A connector already in use by a run stays cached
        if not already_cached:
            await connector_cache.evict(connection.api_key)

    try:
        remote_user = await connector.authenticate()
    except AuthError as e:
        await connector_cache.evict(connection.api_key)
        log.warning(f"Rejected time-tracking API key for user {current_user.id}: {e.message}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid API key")
    except ConnectorError as e:
        await discard_candidate()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Time-tracking service unavailable: {e.message}"
        )

    workspace_id = connection.workspace_id or remote_user.active_workspace or remote_user.default_workspace
    if not workspace_id:
        await discard_candidate()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No workspace available for this account")

    previous_key = credential_store.stored_api_key(db, current_user.id)
    if previous_key and previous_key != connection.api_key:
        await connector_cache.evict(previous_key)

    db_connection = credential_store.save_connection(
        db,
        current_user.id,
        api_key=connection.api_key,
        workspace_id=workspace_id,
        external_user_id=remote_user.id,
        auto_sync_enabled=connection.auto_sync_enabled,
    )

    create_audit_log(
        db=db,
        request=request,
        action="connection_created",
        entity_type="connection",
        entity_id=db_connection.id,
        user=current_user.username,
        details={"workspace_id": workspace_id, "external_user_id": remote_user.id}
    )
    return db_connection

@router.get("/", response_model=ConnectionInDB)
async def read_connection(
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    db_connection = credential_store.get_connection(db, current_user.id, active_only=False)
    if db_connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No time-tracking connection")
    return db_connection

@router.delete("/", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    request: Request,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Disconnect the account. Synced entries stay in the local ledger."""
    try:
        api_key = credential_store.remove_connection(db, current_user.id)
    except NoActiveConnection:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No time-tracking connection")
    if api_key:
        await connector_cache.evict(api_key)

    create_audit_log(db=db, request=request, action="connection_deleted", entity_type="connection", user=current_user.username)
    return None

@router.get("/projects", response_model=ProjectList)
async def read_remote_projects(
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Remote projects of the connected workspace, with the goal each is mapped to."""
    try:
        credentials = credential_store.get_credentials(db, current_user.id)
    except NoActiveConnection as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    try:
        projects = await connector_cache.get(credentials).get_projects(credentials.workspace_id)
    except AuthError as e:
        await connector_cache.evict(credentials.api_key)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Time-tracking service rejected the credentials: {e.message}")
    except ConnectorError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Time-tracking service unavailable: {e.message}")

    mapped = {
        m.external_project_id: m.goal_id
        for m in db.query(ProjectGoalMapping).filter(
            ProjectGoalMapping.user_id == current_user.id,
            ProjectGoalMapping.is_active == True
        ).all()
    }
    return ProjectList(data=[
        RemoteProjectOut(
            id=p.id,
            name=p.name,
            client_name=p.client_name,
            color=p.color,
            mapped_goal_id=mapped.get(p.id),
        )
        for p in projects
    ])
