"""Retention of the audit trail.

Access logs (logins, mapping and connection changes, conflict resolutions)
expire after ``audit_retention_days``. Sync logs (actions starting with
``sync``) are kept.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from timesync.config import settings
from timesync.models.audit_log import AuditLog
from timesync.utils.timeutils import utcnow

log = logging.getLogger(__name__)

SYNC_ACTIONS = 'sync%'


def purge_access_logs(db: Session, days_to_keep: Optional[int] = None) -> int:
    """Delete access logs older than ``days_to_keep``; returns the number removed."""
    days_to_keep = settings.audit_retention_days if days_to_keep is None else days_to_keep
    cutoff = utcnow() - timedelta(days=days_to_keep)

    deleted = db.query(AuditLog).filter(
        AuditLog.created_at < cutoff,
        ~AuditLog.action.like(SYNC_ACTIONS),
    ).delete(synchronize_session=False)
    db.commit()

    log.info(f"Audit cleanup: deleted {deleted} access log entries older than {days_to_keep} days (cutoff {cutoff.isoformat()})")
    return deleted


def audit_log_stats(db: Session, username: str) -> dict:
    """Counts and oldest timestamps of a user's access and sync logs."""
    base = db.query(AuditLog).filter(AuditLog.user == username)
    access = base.filter(~AuditLog.action.like(SYNC_ACTIONS))
    sync = base.filter(AuditLog.action.like(SYNC_ACTIONS))

    oldest_access = access.order_by(AuditLog.created_at.asc()).first()
    oldest_sync = sync.order_by(AuditLog.created_at.asc()).first()

    return {
        "total_logs": base.count(),
        "access_logs": access.count(),
        "sync_logs": sync.count(),
        "oldest_access_log": oldest_access.created_at if oldest_access else None,
        "oldest_sync_log": oldest_sync.created_at if oldest_sync else None,
    }
