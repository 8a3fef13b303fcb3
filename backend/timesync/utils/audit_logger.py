"""Audit logging helper for consistent audit trail creation."""

from typing import Optional, Dict, Any
from fastapi import Request
from sqlalchemy.orm import Session

from timesync.models.audit_log import AuditLog
from timesync.utils.ip_extractor import get_client_ip, get_user_agent


def create_audit_log(
    db: Session,
    request: Optional[Request],
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    user: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Create an audit log entry with IP and user agent taken from the request.

    Args:
        db: Database session
        request: Triggering request; None for scheduler-initiated actions
        action: Action being performed (e.g. 'sync_triggered', 'mapping_created')
        entity_type: Type of entity affected (e.g. 'mapping', 'connection')
        entity_id: ID of affected entity
        user: Username performing the action
        details: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    ip_address = get_client_ip(request) if request is not None else None
    user_agent = get_user_agent(request) if request is not None else None

    audit_log = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user=user,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )

    db.add(audit_log)
    db.commit()
    db.refresh(audit_log)

    return audit_log
