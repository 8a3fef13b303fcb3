"""External connection model: per-user credentials for the remote service."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from timesync.database import Base


class ExternalConnection(Base):
    """Remote time-tracking account of a user."""

    __tablename__ = "external_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    api_key = Column(Text, nullable=False)  # Encrypted
    workspace_id = Column(String(64), nullable=False)
    external_user_id = Column(String(64), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_sync_enabled = Column(Boolean, default=True, nullable=False)

    # Last sync outcome
    sync_status = Column(String(20), default='pending', nullable=False)  # 'pending', 'syncing', 'success', 'error'
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_successful_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ExternalConnection(id={self.id}, user={self.user_id}, workspace='{self.workspace_id}')>"
