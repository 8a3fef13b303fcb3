from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel

class AuditLogInDB(BaseModel):
    id: int
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    user: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PaginatedAuditLogs(BaseModel):
    data: List[AuditLogInDB]
    total: int

class AuditLogStats(BaseModel):
    total_logs: int
    access_logs: int
    sync_logs: int
    oldest_access_log: Optional[datetime] = None
    oldest_sync_log: Optional[datetime] = None
