from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

class TimerStart(BaseModel):
    description: str = Field(..., min_length=1, max_length=3000)
    goal_id: Optional[int] = Field(None, description="Goal whose mapped project the timer runs on")

class TimerStop(BaseModel):
    entry_id: Optional[str] = Field(None, description="Remote entry to stop; defaults to the running timer")

class TimerOut(BaseModel):
    id: str
    description: Optional[str] = None
    start: datetime
    end: Optional[datetime] = None
    duration_seconds: int
    project_id: Optional[str] = None
    goal_id: Optional[int] = None

class CurrentTimer(BaseModel):
    connected: bool
    timer: Optional[TimerOut] = None
