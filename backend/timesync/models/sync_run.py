"""Sync run model for tracking reconciliation executions."""

from sqlalchemy import Column, Integer, String, DateTime, Date, Text, ForeignKey, JSON
from sqlalchemy.sql import func
from timesync.database import Base


class SyncRun(Base):
    """Reconciliation run history and outcome."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Execution details
    trigger_type = Column(String(50), nullable=False, default='manual')  # 'scheduled', 'manual'
    window_start = Column(Date, nullable=False)
    window_end = Column(Date, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(50), nullable=False)  # 'running', 'completed', 'partial', 'failed'

    # Statistics
    entries_fetched = Column(Integer, default=0, nullable=False)
    entries_created = Column(Integer, default=0, nullable=False)
    entries_updated = Column(Integer, default=0, nullable=False)
    entries_skipped = Column(Integer, default=0, nullable=False)
    entries_pushed = Column(Integer, default=0, nullable=False)
    entries_failed = Column(Integer, default=0, nullable=False)
    conflicts_detected = Column(Integer, default=0, nullable=False)

    # Error information
    failures = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<SyncRun(id={self.id}, user={self.user_id}, trigger='{self.trigger_type}', status='{self.status}')>"
