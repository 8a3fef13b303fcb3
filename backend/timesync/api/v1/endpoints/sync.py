from typing import Annotated, Optional
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from timesync.api.v1.deps import get_connector_cache, get_sync_locks
from timesync.auth import get_current_active_user
from timesync.connectors.base import SyncWindow
from timesync.connectors.factory import ConnectorCache
from timesync.database import get_db
from timesync.models.sync_run import SyncRun
from timesync.schemas.auth import User
from timesync.schemas.sync import SyncRequest, SyncRunResponse, SyncRunInDB, PaginatedSyncRuns
from timesync.services.credentials import get_credentials
from timesync.services.errors import NoActiveConnection, SyncAbortedError
from timesync.services.locks import RunInProgress, UserSyncLocks
from timesync.services.sync_service import SyncService
from timesync.utils.audit_logger import create_audit_log

log = logging.getLogger(__name__)
router = APIRouter()

@router.post("/run", response_model=SyncRunResponse)
async def run_sync(
    http_request: Request,
    request: SyncRequest,
    db: Session = Depends(get_db),
    connector_cache: ConnectorCache = Depends(get_connector_cache),
    sync_locks: UserSyncLocks = Depends(get_sync_locks),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """
    Reconcile the user's time entries with the remote service for a date window.

    A run that completes with per-entry failures still answers 200; the
    failures are listed in the response. Errors are returned only when the
    run cannot start or is aborted by an authentication failure.
    """
    if request.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot sync another user's entries")

    window = SyncWindow(user_id=request.user_id, start_date=request.start_date, end_date=request.end_date)
    try:
        SyncService.validate_window(current_user.id, window)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        credentials = get_credentials(db, current_user.id)
    except NoActiveConnection as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    create_audit_log(
        db=db,
        request=http_request,
        action="sync_triggered",
        user=current_user.username,
        details={"start_date": str(window.start_date), "end_date": str(window.end_date), "trigger_type": "manual"}
    )

    log.info(f"Sync request received for user {current_user.id}: {window.start_date} to {window.end_date}")
    service = SyncService(db, connector_cache.get(credentials), credentials)

    try:
        async with sync_locks.hold(current_user.id):
            result = await service.run(current_user.id, window, trigger_type='manual')
    except RunInProgress as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except SyncAbortedError as e:
        await connector_cache.evict(credentials.api_key)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Time-tracking service rejected the credentials: {e.message}"
        )

    return SyncRunResponse(
        **result.model_dump(),
        user_id=current_user.id,
        start_date=window.start_date,
        end_date=window.end_date,
    )

@router.get("/runs", response_model=PaginatedSyncRuns)
async def read_sync_runs(
    skip: int = 0,
    limit: int = 20,
    status_filter: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Run history of the current user, newest first."""
    query = db.query(SyncRun).filter(SyncRun.user_id == current_user.id)
    if status_filter:
        query = query.filter(SyncRun.status == status_filter)
    total = query.count()
    runs = query.order_by(SyncRun.start_time.desc(), SyncRun.id.desc()).offset(skip).limit(limit).all()
    return PaginatedSyncRuns(data=[SyncRunInDB.model_validate(run) for run in runs], total=total)

@router.get("/runs/{run_id}", response_model=SyncRunInDB)
async def read_sync_run(
    run_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    run = db.query(SyncRun).filter(SyncRun.id == run_id, SyncRun.user_id == current_user.id).first()
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync run not found")
    return run
