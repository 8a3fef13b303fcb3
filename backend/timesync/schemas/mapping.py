from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

class MappingBase(BaseModel):
    external_project_id: str = Field(..., min_length=1, max_length=64, description="Remote project id")
    goal_id: int = Field(..., description="Local goal the project is bound to")
    auto_categorize: bool = True

class MappingCreate(MappingBase):
    pass

class MappingUpdate(BaseModel):
    goal_id: Optional[int] = None
    is_active: Optional[bool] = None
    auto_categorize: Optional[bool] = None

class MappingInDB(MappingBase):
    id: int
    user_id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
