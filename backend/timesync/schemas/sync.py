from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, model_validator

class SyncRequest(BaseModel):
    user_id: int
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

class SyncFailure(BaseModel):
    external_entry_id: Optional[str] = None
    entry_id: Optional[int] = None
    reason: str
    error_kind: str  # ErrorKind value, or 'storage'

class SyncResult(BaseModel):
    """Outcome of one reconciliation run."""
    run_id: Optional[int] = None
    status: str = "running"  # 'completed', 'partial', 'failed'
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    conflicted: int = 0
    pushed: int = 0
    failed: int = 0
    failures: List[SyncFailure] = Field(default_factory=list)
    deadline_exceeded: bool = False

class SyncRunResponse(SyncResult):
    """Response of POST /sync/run."""
    user_id: int
    start_date: date
    end_date: date

class SyncRunInDB(BaseModel):
    id: int
    user_id: int
    trigger_type: str
    window_start: date
    window_end: date
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str
    entries_fetched: int = 0
    entries_created: int = 0
    entries_updated: int = 0
    entries_skipped: int = 0
    entries_pushed: int = 0
    entries_failed: int = 0
    conflicts_detected: int = 0
    failures: Optional[List[SyncFailure]] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class PaginatedSyncRuns(BaseModel):
    data: List[SyncRunInDB]
    total: int
