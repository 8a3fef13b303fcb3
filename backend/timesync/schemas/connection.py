from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

class ConnectionCreate(BaseModel):
    api_key: str = Field(..., min_length=1, description="Remote API key; stored encrypted")
    workspace_id: Optional[str] = Field(None, description="Defaults to the account's active workspace")
    auto_sync_enabled: bool = True

class ConnectionInDB(BaseModel):
    id: int
    user_id: int
    workspace_id: str
    external_user_id: str
    is_active: bool
    auto_sync_enabled: bool
    sync_status: str
    last_sync_at: Optional[datetime] = None
    last_successful_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

class RemoteProjectOut(BaseModel):
    id: str
    name: str
    client_name: Optional[str] = None
    color: Optional[str] = None
    mapped_goal_id: Optional[int] = None

class ProjectList(BaseModel):
    data: List[RemoteProjectOut]
