from fastapi import APIRouter

from timesync.api.v1.endpoints import auth, audit_logs, conflicts, connections, mappings, sync, time_entries, timer

api_router = APIRouter()
api_router.include_router(connections.router, prefix="/connections", tags=["connections"])
api_router.include_router(conflicts.router, prefix="/conflicts", tags=["conflicts"])
api_router.include_router(mappings.router, prefix="/mappings", tags=["mappings"])
api_router.include_router(time_entries.router, prefix="/time-entries", tags=["time-entries"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(timer.router, prefix="/timer", tags=["timer"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["audit-logs"])
api_router.include_router(auth.router, tags=["auth"])
