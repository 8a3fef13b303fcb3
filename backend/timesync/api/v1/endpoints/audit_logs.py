from datetime import date, datetime, time, timezone
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from timesync.auth import get_current_active_user
from timesync.database import get_db
from timesync.models.audit_log import AuditLog
from timesync.schemas.audit import AuditLogInDB, AuditLogStats, PaginatedAuditLogs
from timesync.schemas.auth import User
from timesync.services.audit_cleanup import audit_log_stats

router = APIRouter()

@router.get("/", response_model=PaginatedAuditLogs)
async def read_audit_logs(
    skip: int = 0,
    limit: int = 100,
    action: Optional[str] = Query(None, description="Filter by specific action"),
    action_type: Optional[str] = Query(None, description="Filter by action type: 'access', 'sync', or 'all'"),
    start_date: Optional[date] = Query(None, description="Filter created_at >= YYYY-MM-DD"),
    end_date: Optional[date] = Query(None, description="Filter created_at <= YYYY-MM-DD"),
    current_user: Annotated[User, Depends(get_current_active_user)] = None,
    db: Session = Depends(get_db)
):
    """Audit trail of the current user, newest first."""
    query = db.query(AuditLog).filter(AuditLog.user == current_user.username)

    if action:
        query = query.filter(AuditLog.action == action)

    if action_type == 'access':
        query = query.filter(~AuditLog.action.like('sync%'))
    elif action_type == 'sync':
        query = query.filter(AuditLog.action.like('sync%'))

    if start_date:
        query = query.filter(AuditLog.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
    if end_date:
        query = query.filter(AuditLog.created_at <= datetime.combine(end_date, time(23, 59, 59), tzinfo=timezone.utc))

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()
    return PaginatedAuditLogs(data=[AuditLogInDB.model_validate(entry) for entry in logs], total=total)

@router.get("/stats", response_model=AuditLogStats)
async def read_audit_log_stats(
    current_user: Annotated[User, Depends(get_current_active_user)] = None,
    db: Session = Depends(get_db)
):
    """Storage overview of the current user's audit trail."""
    return audit_log_stats(db, current_user.username)

@router.get("/{log_id}", response_model=AuditLogInDB)
async def read_audit_log(
    log_id: int,
    current_user: Annotated[User, Depends(get_current_active_user)] = None,
    db: Session = Depends(get_db)
):
    db_log = db.query(AuditLog).filter(AuditLog.id == log_id, AuditLog.user == current_user.username).first()
    if db_log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit log not found")
    return db_log
