"""Main FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timesync import __version__, TRACE
from timesync.api.v1.api import api_router
from timesync.config import settings
from timesync.connectors.factory import ConnectorCache
from timesync.services.locks import UserSyncLocks

# Configure root logger early
log_level_str = settings.log_level.upper()
log_level = TRACE if log_level_str == "TRACE" else getattr(logging, log_level_str, logging.INFO)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)-8s - %(message)s'
    )

    root = logging.getLogger()

    # Handle VERBOSE mode and set specific loggers
    if log_level_str == "VERBOSE":
        root_level = logging.DEBUG
        httpx_level = logging.DEBUG
        connectors_level = TRACE
        sync_level = logging.DEBUG
        root.info("VERBOSE mode enabled: HTTP details and connector traces active for debugging.")
    elif log_level_str == "TRACE":
        root_level = TRACE
        httpx_level = TRACE
        connectors_level = TRACE
        sync_level = TRACE
    else:
        root_level = log_level
        httpx_level = logging.WARNING
        connectors_level = log_level
        sync_level = root_level

    root.setLevel(root_level)
    logging.getLogger("httpcore").setLevel(httpx_level)
    logging.getLogger("httpx").setLevel(httpx_level)
    logging.getLogger("apscheduler").setLevel(max(root_level, logging.INFO))
    logging.getLogger("timesync.connectors").setLevel(connectors_level)
    logging.getLogger("timesync.services.sync_service").setLevel(sync_level)

    root.trace("Trace logging enabled at startup (verbose details).") if log_level_str == "TRACE" else root.debug("Debug logging enabled at startup.")

log = logging.getLogger(__name__)

app = FastAPI(
    title="Time Entry Sync",
    description="Reconciles local time entries with a remote time-tracking service",
    version=__version__
)

# Shared per-process state; tests may replace it
app.state.connector_cache = ConnectorCache()
app.state.sync_locks = UserSyncLocks()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__
    }

@app.get("/")
async def root():
    """Root endpoint - redirect to docs."""
    return {
        "message": "Time Entry Sync API",
        "version": __version__,
        "docs": "/docs"
    }

app.include_router(api_router, prefix=settings.api_v1_str)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

@app.on_event("startup")
async def startup_event():
    if settings.auto_create_tables:
        from timesync.database import Base, engine
        import timesync.models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        log.info("Database tables created")

    if settings.scheduler_enabled:
        from timesync.scheduler import start_scheduler

        start_scheduler(app.state.connector_cache, app.state.sync_locks)

@app.on_event("shutdown")
async def shutdown_event():
    if settings.scheduler_enabled:
        from timesync.scheduler import shutdown_scheduler

        shutdown_scheduler()
    await app.state.connector_cache.close_all()
    log.info("Remote connectors closed")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="debug" if log_level_str in ("TRACE", "VERBOSE") else settings.log_level.lower())
