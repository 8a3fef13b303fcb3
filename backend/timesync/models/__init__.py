"""Database models."""

from timesync.models.user import User
from timesync.models.goal import Goal
from timesync.models.connection import ExternalConnection
from timesync.models.time_entry import TimeEntry, EntrySource, SyncStatus
from timesync.models.mapping import ProjectGoalMapping
from timesync.models.sync_run import SyncRun
from timesync.models.conflict import SyncConflict
from timesync.models.audit_log import AuditLog

__all__ = [
    "User",
    "Goal",
    "ExternalConnection",
    "TimeEntry",
    "EntrySource",
    "SyncStatus",
    "ProjectGoalMapping",
    "SyncRun",
    "SyncConflict",
    "AuditLog",
]
