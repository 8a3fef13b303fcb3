"""Conflict model for entries changed on both sides since the last sync."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from timesync.database import Base


class SyncConflict(Base):
    """Detected conflict awaiting a user decision."""

    __tablename__ = "sync_conflicts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    time_entry_id = Column(Integer, ForeignKey("time_entries.id", ondelete="CASCADE"), nullable=False)

    # Both sides at detection time
    remote_data = Column(JSON, nullable=False)
    remote_hash = Column(String(64), nullable=False)
    local_hash = Column(String(64), nullable=False)

    # Resolution
    resolution_status = Column(String(50), default='pending', nullable=False, index=True)  # 'pending', 'resolved'
    resolution_action = Column(String(50), nullable=True)  # 'keep_local', 'keep_remote'
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    time_entry = relationship("TimeEntry", back_populates="conflicts")

    __table_args__ = (
        Index('idx_sync_conflicts_entry_status', 'time_entry_id', 'resolution_status'),
    )

    def __repr__(self):
        return f"<SyncConflict(id={self.id}, entry={self.time_entry_id}, status='{self.resolution_status}')>"
