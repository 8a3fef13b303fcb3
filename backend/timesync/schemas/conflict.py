from typing import Optional, Literal, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from timesync.schemas.time_entry import TimeEntryInDB

class ConflictInDB(BaseModel):
    id: int
    time_entry_id: int
    remote_data: dict = Field(..., description="Remote entry as seen when the conflict was last detected")
    remote_hash: str
    local_hash: str
    resolution_status: str = Field(..., description="'pending' or 'resolved'")
    resolution_action: Optional[str] = Field(None, description="'keep_local' or 'keep_remote'")
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class ConflictWithEntry(ConflictInDB):
    time_entry: TimeEntryInDB

class ConflictResolve(BaseModel):
    action: Literal['keep_local', 'keep_remote']

class PaginatedConflicts(BaseModel):
    data: List[ConflictWithEntry]
    total: int
