from typing import Annotated
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from timesync.api.v1.deps import get_connector_cache
from timesync.auth import get_current_active_user
from timesync.connectors.base import RemoteTimeEntry
from timesync.connectors.errors import AuthError, ConnectorError, NotFoundError
from timesync.connectors.factory import ConnectorCache, RemoteCredentials
from timesync.database import get_db
from timesync.schemas.auth import User
from timesync.schemas.timer import CurrentTimer, TimerOut, TimerStart, TimerStop
from timesync.services.credentials import get_credentials
from timesync.services.errors import Conflict, GoalNotFound, NoActiveConnection, TimerNotRunning
from timesync.services.remote_timer import RemoteTimer
from timesync.utils.audit_logger import create_audit_log
from timesync.utils.timeutils import as_utc

log = logging.getLogger(__name__)
router = APIRouter()

def _credentials(db: Session, user_id: int) -> RemoteCredentials:
    try:
        return get_credentials(db, user_id)
    except NoActiveConnection as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

async def _remote_failure(e: ConnectorError, credentials: RemoteCredentials, connector_cache: ConnectorCache) -> HTTPException:
    if isinstance(e, AuthError):
        await connector_cache.evict(credentials.api_key)
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Time-tracking service rejected the credentials: {e.message}")
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timer not found")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Time-tracking service unavailable: {e.message}")

def _timer_out(timer: RemoteTimer, user_id: int, entry: RemoteTimeEntry) -> TimerOut:
    if entry.end is not None:
        duration = int((as_utc(entry.end) - as_utc(entry.start)).total_seconds())
    else:
        duration = timer.elapsed_seconds(entry)
    return TimerOut(
        id=entry.id,
        description=entry.description,
        start=entry.start,
        end=entry.end,
        duration_seconds=duration,
        project_id=entry.project_id,
        goal_id=timer.goal_of(user_id, entry),
    )

@router.get("/current", response_model=CurrentTimer)
async def read_current_timer(
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """The remote timer currently running for the user, if any."""
    try:
        credentials = get_credentials(db, current_user.id)
    except NoActiveConnection:
        return CurrentTimer(connected=False)

    timer = RemoteTimer(db, connector_cache.get(credentials), credentials)
    try:
        entry = await timer.current()
    except ConnectorError as e:
        raise await _remote_failure(e, credentials, connector_cache)

    if entry is None:
        return CurrentTimer(connected=True)
    return CurrentTimer(connected=True, timer=_timer_out(timer, current_user.id, entry))

@router.post("/start", response_model=TimerOut, status_code=status.HTTP_201_CREATED)
async def start_timer(
    request: Request,
    body: TimerStart,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Start a remote timer. A goal with an active mapping puts it on the mapped project."""
    credentials = _credentials(db, current_user.id)
    timer = RemoteTimer(db, connector_cache.get(credentials), credentials)
    try:
        entry = await timer.start(current_user.id, body.description, goal_id=body.goal_id)
    except GoalNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ConnectorError as e:
        raise await _remote_failure(e, credentials, connector_cache)

    create_audit_log(
        db=db,
        request=request,
        action="timer_started",
        entity_type="timer",
        user=current_user.username,
        details={"external_entry_id": entry.id, "goal_id": body.goal_id, "project_id": entry.project_id}
    )
    return _timer_out(timer, current_user.id, entry)

@router.post("/stop", response_model=TimerOut)
async def stop_timer(
    request: Request,
    body: TimerStop,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Stop a remote timer; the entry is pulled into the ledger by the next sync."""
    credentials = _credentials(db, current_user.id)
    timer = RemoteTimer(db, connector_cache.get(credentials), credentials)
    try:
        entry = await timer.stop(current_user.id, entry_id=body.entry_id)
    except TimerNotRunning as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ConnectorError as e:
        raise await _remote_failure(e, credentials, connector_cache)

    create_audit_log(
        db=db,
        request=request,
        action="timer_stopped",
        entity_type="timer",
        user=current_user.username,
        details={"external_entry_id": entry.id}
    )
    return _timer_out(timer, current_user.id, entry)

@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_timer(
    request: Request,
    entry_id: str,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Discard a remote timer entry."""
    credentials = _credentials(db, current_user.id)
    timer = RemoteTimer(db, connector_cache.get(credentials), credentials)
    try:
        await timer.discard(current_user.id, entry_id)
    except ConnectorError as e:
        raise await _remote_failure(e, credentials, connector_cache)

    create_audit_log(
        db=db,
        request=request,
        action="timer_deleted",
        entity_type="timer",
        user=current_user.username,
        details={"external_entry_id": entry_id}
    )
    return None
