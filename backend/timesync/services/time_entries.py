"""Local operations on the time-entry ledger and their sync-status transitions."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from timesync.models.goal import Goal
from timesync.models.time_entry import EntrySource, REMOTE_FIELDS, SyncStatus, TimeEntry
from timesync.services.errors import Conflict, EntryNotFound, GoalNotFound
from timesync.utils.timeutils import as_utc, utcnow

log = logging.getLogger(__name__)

# Statuses from which a local edit of a mirrored field queues a push
_EDITABLE_SYNCED = (SyncStatus.SYNCED.value, SyncStatus.PENDING_PULL.value)


def get_entry(db: Session, user_id: int, entry_id: int) -> TimeEntry:
    entry = db.query(TimeEntry).filter(TimeEntry.id == entry_id, TimeEntry.user_id == user_id).first()
    if not entry:
        raise EntryNotFound(f"Time entry {entry_id} not found")
    return entry


def _check_goal(db: Session, user_id: int, goal_id: Optional[int]) -> None:
    if goal_id is None:
        return
    if not db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first():
        raise GoalNotFound(f"Goal {goal_id} not found")


def _check_interval(start_time: datetime, end_time: Optional[datetime]) -> None:
    if end_time is not None and as_utc(end_time) <= as_utc(start_time):
        raise ValueError("end_time must be after start_time")


def create_manual_entry(
    db: Session,
    user_id: int,
    start_time: datetime,
    end_time: Optional[datetime] = None,
    description: Optional[str] = None,
    goal_id: Optional[int] = None,
    external_project_id: Optional[str] = None,
    billable: bool = False,
    source: str = EntrySource.MANUAL.value,
) -> TimeEntry:
    """A user-created entry. It is not linked remotely and starts out synced."""
    if source == EntrySource.EXTERNAL.value:
        raise ValueError("External entries are created by synchronisation only")
    _check_interval(start_time, end_time)
    _check_goal(db, user_id, goal_id)

    entry = TimeEntry(
        user_id=user_id,
        description=description,
        goal_id=goal_id,
        external_project_id=external_project_id,
        billable=billable,
        source=source,
        sync_status=SyncStatus.SYNCED.value,
    )
    entry.set_interval(start_time, end_time)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    log.info(f"Created {source} time entry {entry.id} for user {user_id}")
    return entry


def update_entry(db: Session, user_id: int, entry_id: int, changes: Dict[str, Any]) -> TimeEntry:
    """
    Apply a partial update.

    Changing a remotely mirrored field of a linked entry that has no pending
    edits moves it to ``pending_push``. Entries in ``conflict`` keep that
    status until the conflict is resolved.
    """
    entry = get_entry(db, user_id, entry_id)

    if "goal_id" in changes:
        _check_goal(db, user_id, changes["goal_id"])

    start_time = changes.get("start_time", entry.start_time)
    end_time = changes.get("end_time", entry.end_time)
    if start_time is None:
        raise ValueError("start_time is required")
    _check_interval(start_time, end_time)

    before = {field: _comparable(getattr(entry, field)) for field in REMOTE_FIELDS}

    for field in ("description", "goal_id", "external_project_id", "billable"):
        if field in changes:
            setattr(entry, field, changes[field])
    entry.set_interval(start_time, end_time)

    mirrored_change = any(_comparable(getattr(entry, field)) != before[field] for field in REMOTE_FIELDS)
    if mirrored_change and entry.external_entry_id and entry.sync_status in _EDITABLE_SYNCED:
        entry.sync_status = SyncStatus.PENDING_PUSH.value
        log.debug(f"Entry {entry.id} edited locally; now pending_push")

    db.commit()
    db.refresh(entry)
    return entry


def _comparable(value):
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def delete_entry(db: Session, user_id: int, entry_id: int) -> None:
    """Delete locally. The remote entry, if any, is left untouched."""
    entry = get_entry(db, user_id, entry_id)
    if entry.external_entry_id:
        log.info(f"Deleting entry {entry.id} locally; remote entry {entry.external_entry_id} is kept")
    db.delete(entry)
    db.commit()


def mark_for_push(db: Session, user_id: int, entry_id: int) -> TimeEntry:
    """Queue an entry for export to the remote service on the next run."""
    entry = get_entry(db, user_id, entry_id)
    if entry.sync_status == SyncStatus.CONFLICT.value:
        raise Conflict(f"Time entry {entry_id} has an unresolved conflict")
    if entry.sync_status != SyncStatus.PENDING_PUSH.value:
        entry.sync_status = SyncStatus.PENDING_PUSH.value
        db.commit()
        db.refresh(entry)
    return entry


def close_entry(db: Session, user_id: int, entry_id: int, end_time: Optional[datetime] = None) -> TimeEntry:
    """Stop a running entry."""
    entry = get_entry(db, user_id, entry_id)
    if not entry.is_running:
        raise Conflict(f"Time entry {entry_id} is not running")
    return update_entry(db, user_id, entry_id, {"end_time": end_time or utcnow()})


def list_entries(
    db: Session,
    user_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    sync_status: Optional[str] = None,
    goal_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> Tuple[List[TimeEntry], int]:
    query = db.query(TimeEntry).filter(TimeEntry.user_id == user_id)
    if start is not None:
        query = query.filter(TimeEntry.start_time >= as_utc(start))
    if end is not None:
        query = query.filter(TimeEntry.start_time <= as_utc(end))
    if sync_status:
        query = query.filter(TimeEntry.sync_status == sync_status)
    if goal_id is not None:
        query = query.filter(TimeEntry.goal_id == goal_id)

    total = query.count()
    entries = query.order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc()).offset(skip).limit(limit).all()
    return entries, total


def time_by_goal(
    db: Session,
    user_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Total tracked seconds per goal. Running entries have no duration and are left out."""
    query = db.query(
        TimeEntry.goal_id,
        func.sum(TimeEntry.duration_seconds),
        func.count(TimeEntry.id),
    ).filter(
        TimeEntry.user_id == user_id,
        TimeEntry.end_time.isnot(None),
        TimeEntry.duration_seconds.isnot(None),
    )
    if start is not None:
        query = query.filter(TimeEntry.start_time >= as_utc(start))
    if end is not None:
        query = query.filter(TimeEntry.start_time <= as_utc(end))

    rows = query.group_by(TimeEntry.goal_id).all()
    return [
        {"goal_id": goal_id, "total_seconds": int(total or 0), "entry_count": count}
        for goal_id, total, count in rows
    ]
