"""Audit log model for tracking user-facing operations."""

from sqlalchemy import Column, Integer, String, DateTime, Index, JSON
from sqlalchemy.sql import func
from timesync.database import Base


class AuditLog(Base):
    """Audit trail for mapping, connection and sync operations."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Action details
    action = Column(String(100), nullable=False)  # 'sync_triggered', 'mapping_created', ...
    entity_type = Column(String(50), nullable=True)  # 'mapping', 'connection', 'conflict'
    entity_id = Column(Integer, nullable=True)

    # User and context
    user = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_logs_action', 'action'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity='{self.entity_type}')>"
