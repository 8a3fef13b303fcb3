"""APScheduler integration for periodic auto-sync and audit cleanup."""

import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from timesync.config import settings
from timesync.connectors.base import SyncWindow
from timesync.connectors.factory import ConnectorCache
from timesync.database import SessionLocal
from timesync.models.connection import ExternalConnection
from timesync.models.user import User
from timesync.services.audit_cleanup import purge_access_logs
from timesync.services.credentials import get_credentials
from timesync.services.errors import NoActiveConnection, SyncAbortedError
from timesync.services.locks import RunInProgress, UserSyncLocks
from timesync.services.sync_service import SyncService
from timesync.utils.audit_logger import create_audit_log
from timesync.utils.timeutils import utcnow

log = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

JOB_ID = "auto_sync_job"
CLEANUP_JOB_ID = "audit_cleanup_job"


def auto_sync_window(user_id: int) -> SyncWindow:
    """The trailing window reconciled by scheduled runs, ending today (UTC)."""
    today = utcnow().date()
    return SyncWindow(
        user_id=user_id,
        start_date=today - timedelta(days=settings.auto_sync_window_days - 1),
        end_date=today,
    )


async def run_auto_sync(connector_cache: ConnectorCache, sync_locks: UserSyncLocks, session_factory=SessionLocal) -> dict:
    """
    Reconcile connections with auto-sync enabled, one user at a time.

    Up to ``auto_sync_batch_size`` connections are taken per run, the least
    recently synced (never synced first), so every user gets a turn.

    Users with a run already in flight are skipped. A failure for one user is
    logged and does not stop the others.
    """
    stats = {"users": 0, "skipped": 0, "failed": 0}

    db = session_factory()
    try:
        user_ids = [
            user_id for (user_id,) in db.query(ExternalConnection.user_id).filter(
                ExternalConnection.is_active == True,
                ExternalConnection.auto_sync_enabled == True,
            ).order_by(
                ExternalConnection.last_successful_sync_at.is_(None).desc(),
                ExternalConnection.last_successful_sync_at.asc(),
                ExternalConnection.id.asc(),
            ).limit(settings.auto_sync_batch_size).all()
        ]
    finally:
        db.close()

    log.info(f"Starting scheduled sync for {len(user_ids)} connections")

    for user_id in user_ids:
        if sync_locks.is_running(user_id):
            log.info(f"Scheduled sync skipped for user {user_id}: run already in progress")
            stats["skipped"] += 1
            continue

        db = session_factory()
        credentials = None
        try:
            credentials = get_credentials(db, user_id)
            service = SyncService(db, connector_cache.get(credentials), credentials)
            async with sync_locks.hold(user_id):
                result = await service.run(user_id, auto_sync_window(user_id), trigger_type='scheduled')
            log.info(f"Scheduled sync for user {user_id} {result.status}: {result.failed} failures")
            owner = db.get(User, user_id)
            create_audit_log(
                db=db,
                request=None,
                action="sync_scheduled",
                entity_type="sync_run",
                entity_id=result.run_id,
                user=owner.username if owner else None,
                details={"status": result.status, "created": result.created, "pushed": result.pushed, "failed": result.failed}
            )
            stats["users"] += 1
        except RunInProgress:
            log.info(f"Scheduled sync skipped for user {user_id}: run already in progress")
            stats["skipped"] += 1
        except NoActiveConnection as e:
            log.warning(f"Scheduled sync skipped for user {user_id}: {e.message}")
            stats["skipped"] += 1
        except SyncAbortedError as e:
            log.error(f"Scheduled sync aborted for user {user_id}: {e.message}")
            if credentials is not None:
                await connector_cache.evict(credentials.api_key)
            stats["failed"] += 1
        except Exception as e:
            log.error(f"Scheduled sync failed for user {user_id}: {e}", exc_info=True)
            stats["failed"] += 1
        finally:
            db.close()

    log.info(f"Scheduled sync finished: {stats}")
    return stats


def run_audit_cleanup(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        return purge_access_logs(db)
    finally:
        db.close()


def start_scheduler(connector_cache: ConnectorCache, sync_locks: UserSyncLocks):
    """Register the auto-sync and audit cleanup jobs and start the scheduler."""
    scheduler.add_job(
        run_auto_sync,
        IntervalTrigger(minutes=settings.sync_schedule_minutes),
        id=JOB_ID,
        kwargs={"connector_cache": connector_cache, "sync_locks": sync_locks},
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_audit_cleanup,
        CronTrigger(hour=3, minute=0, timezone="UTC"),
        id=CLEANUP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if not scheduler.running:
        scheduler.start()
        log.info(f"APScheduler started; auto-sync every {settings.sync_schedule_minutes} minutes")


def shutdown_scheduler():
    """Shutdown the APScheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        log.info("APScheduler shut down successfully")
