"""Time entry model: the locally owned ledger and its sync state."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from timesync.database import Base
from timesync.utils.timeutils import as_utc


class EntrySource(str, enum.Enum):
    MANUAL = "manual"
    EXTERNAL = "external"
    CALENDAR_DERIVED = "calendar_derived"


class SyncStatus(str, enum.Enum):
    SYNCED = "synced"
    PENDING_PUSH = "pending_push"
    PENDING_PULL = "pending_pull"
    CONFLICT = "conflict"


# Fields that also exist in the remote ledger; editing one of them locally
# makes a linked entry pending_push.
REMOTE_FIELDS = ("description", "start_time", "end_time", "external_project_id", "billable")


class TimeEntry(Base):
    """A record of time spent, optionally linked to a remote entry and a goal."""

    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)  # NULL while the timer is running
    duration_seconds = Column(Integer, nullable=True)

    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="SET NULL"), nullable=True, index=True)

    # Remote linkage
    external_entry_id = Column(String(64), nullable=True)
    external_project_id = Column(String(64), nullable=True)
    billable = Column(Boolean, default=False, nullable=False)

    source = Column(String(20), default=EntrySource.MANUAL.value, nullable=False, index=True)
    sync_status = Column(String(20), default=SyncStatus.SYNCED.value, nullable=False, index=True)
    content_hash = Column(String(64), nullable=True)  # fingerprint of the last synced content
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    conflicts = relationship("SyncConflict", back_populates="time_entry", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_time_entries_user_external', 'user_id', 'external_entry_id', unique=True),
        Index('idx_time_entries_user_time', 'user_id', 'start_time', 'end_time'),
        CheckConstraint("source != 'external' OR external_entry_id IS NOT NULL", name='ck_time_entries_external_linked'),
    )

    def set_interval(self, start_time, end_time):
        """Set start/end and keep duration_seconds consistent with them."""
        self.start_time = as_utc(start_time)
        self.end_time = as_utc(end_time)
        self.duration_seconds = compute_duration(self.start_time, self.end_time)

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    def __repr__(self):
        return f"<TimeEntry(id={self.id}, user={self.user_id}, external='{self.external_entry_id}', status='{self.sync_status}')>"


def compute_duration(start_time, end_time):
    """Seconds between start and end, or None for open or inverted intervals."""
    if start_time is None or end_time is None:
        return None
    seconds = int((as_utc(end_time) - as_utc(start_time)).total_seconds())
    return seconds if seconds > 0 else None
