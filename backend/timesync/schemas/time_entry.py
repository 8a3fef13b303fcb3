from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator

from timesync.models.time_entry import EntrySource, SyncStatus
from timesync.utils.timeutils import as_utc

class TimeEntryBase(BaseModel):
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = Field(None, description="Omit for a running entry")
    goal_id: Optional[int] = None
    external_project_id: Optional[str] = Field(None, max_length=64)
    billable: bool = False

    @model_validator(mode="after")
    def check_interval(self):
        if self.end_time is not None and as_utc(self.end_time) <= as_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

class TimeEntryCreate(TimeEntryBase):
    source: EntrySource = EntrySource.MANUAL

class TimeEntryUpdate(BaseModel):
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    goal_id: Optional[int] = None
    external_project_id: Optional[str] = Field(None, max_length=64)
    billable: Optional[bool] = None

class TimeEntryStop(BaseModel):
    end_time: Optional[datetime] = None

class TimeEntryInDB(BaseModel):
    id: int
    user_id: int
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    goal_id: Optional[int] = None
    external_entry_id: Optional[str] = None
    external_project_id: Optional[str] = None
    billable: bool
    source: EntrySource
    sync_status: SyncStatus
    content_hash: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class PaginatedTimeEntries(BaseModel):
    data: List[TimeEntryInDB]
    total: int

class GoalTime(BaseModel):
    goal_id: Optional[int] = None
    total_seconds: int
    entry_count: int
