from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from sqlalchemy.orm import Session

from timesync.auth import get_current_active_user
from timesync.database import get_db
from timesync.models.conflict import SyncConflict
from timesync.schemas.auth import User
from timesync.schemas.conflict import ConflictResolve, ConflictWithEntry, PaginatedConflicts
from timesync.services.errors import ConflictNotFound
from timesync.services.sync_service import resolve_conflict
from timesync.utils.audit_logger import create_audit_log

router = APIRouter()

@router.get("/", response_model=PaginatedConflicts)
async def read_conflicts(
    resolution_status: Optional[str] = Query('pending', description="'pending', 'resolved' or empty for all"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Conflicts of the current user, with the local entry they concern."""
    query = db.query(SyncConflict).filter(SyncConflict.user_id == current_user.id)
    if resolution_status:
        query = query.filter(SyncConflict.resolution_status == resolution_status)
    total = query.count()
    conflicts = query.order_by(SyncConflict.created_at.desc(), SyncConflict.id.desc()).offset(skip).limit(limit).all()
    return PaginatedConflicts(data=[ConflictWithEntry.model_validate(c) for c in conflicts], total=total)

@router.get("/{conflict_id}", response_model=ConflictWithEntry)
async def read_conflict(
    conflict_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    conflict = db.query(SyncConflict).filter(
        SyncConflict.id == conflict_id,
        SyncConflict.user_id == current_user.id
    ).first()
    if conflict is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conflict not found")
    return conflict

@router.post("/{conflict_id}/resolve", response_model=ConflictWithEntry)
async def resolve(
    request: Request,
    conflict_id: int,
    body: ConflictResolve,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """
    Resolve a conflict.

    keep_remote overwrites the local entry with the remote version.
    keep_local queues the local version to overwrite the remote entry on the next run.
    """
    try:
        conflict = resolve_conflict(db, current_user.id, conflict_id, body.action)
    except ConflictNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    create_audit_log(
        db=db,
        request=request,
        action="conflict_resolved",
        entity_type="conflict",
        entity_id=conflict.id,
        user=current_user.username,
        details={"resolution_action": body.action, "time_entry_id": conflict.time_entry_id}
    )
    db.refresh(conflict)
    return conflict
