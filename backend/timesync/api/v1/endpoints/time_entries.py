from datetime import datetime
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from timesync.auth import get_current_active_user
from timesync.database import get_db
from timesync.models.time_entry import SyncStatus
from timesync.schemas.auth import User
from timesync.schemas.time_entry import (
    GoalTime,
    PaginatedTimeEntries,
    TimeEntryCreate,
    TimeEntryInDB,
    TimeEntryStop,
    TimeEntryUpdate,
)
from timesync.services import time_entries as entries_service
from timesync.services.errors import Conflict, EntryNotFound, GoalNotFound

router = APIRouter()

def _translate(e: Exception) -> HTTPException:
    if isinstance(e, (EntryNotFound, GoalNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if isinstance(e, Conflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.get("/", response_model=PaginatedTimeEntries)
async def read_time_entries(
    start: Optional[datetime] = Query(None, description="Entries starting at or after"),
    end: Optional[datetime] = Query(None, description="Entries starting at or before"),
    sync_status: Optional[SyncStatus] = Query(None, description="Filter by sync status"),
    goal_id: Optional[int] = None,
    skip: int = 0,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    entries, total = entries_service.list_entries(
        db,
        current_user.id,
        start=start,
        end=end,
        sync_status=sync_status.value if sync_status else None,
        goal_id=goal_id,
        skip=skip,
        limit=limit,
    )
    return PaginatedTimeEntries(data=[TimeEntryInDB.model_validate(e) for e in entries], total=total)

@router.get("/stats/by-goal", response_model=List[GoalTime])
async def read_time_by_goal(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Tracked time per goal; running entries are not counted until stopped."""
    return entries_service.time_by_goal(db, current_user.id, start=start, end=end)

@router.post("/", response_model=TimeEntryInDB, status_code=status.HTTP_201_CREATED)
async def create_time_entry(
    entry: TimeEntryCreate,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    try:
        return entries_service.create_manual_entry(
            db,
            current_user.id,
            start_time=entry.start_time,
            end_time=entry.end_time,
            description=entry.description,
            goal_id=entry.goal_id,
            external_project_id=entry.external_project_id,
            billable=entry.billable,
            source=entry.source.value,
        )
    except (GoalNotFound, ValueError) as e:
        raise _translate(e)

@router.get("/{entry_id}", response_model=TimeEntryInDB)
async def read_time_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    try:
        return entries_service.get_entry(db, current_user.id, entry_id)
    except EntryNotFound as e:
        raise _translate(e)

@router.patch("/{entry_id}", response_model=TimeEntryInDB)
async def update_time_entry(
    entry_id: int,
    entry: TimeEntryUpdate,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Edit an entry. Editing a field mirrored remotely queues a linked entry for push."""
    try:
        return entries_service.update_entry(db, current_user.id, entry_id, entry.model_dump(exclude_unset=True))
    except (EntryNotFound, GoalNotFound, ValueError) as e:
        raise _translate(e)

@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Delete an entry locally. Linked remote entries are not deleted."""
    try:
        entries_service.delete_entry(db, current_user.id, entry_id)
    except EntryNotFound as e:
        raise _translate(e)
    return None

@router.post("/{entry_id}/push", response_model=TimeEntryInDB)
async def push_time_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Queue an entry for export on the next sync run."""
    try:
        return entries_service.mark_for_push(db, current_user.id, entry_id)
    except (EntryNotFound, Conflict) as e:
        raise _translate(e)

@router.post("/{entry_id}/stop", response_model=TimeEntryInDB)
async def stop_time_entry(
    entry_id: int,
    body: Optional[TimeEntryStop] = None,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Stop a running entry, now or at the given time."""
    end_time = body.end_time if body else None
    try:
        return entries_service.close_entry(db, current_user.id, entry_id, end_time=end_time)
    except (EntryNotFound, Conflict, ValueError) as e:
        raise _translate(e)
