from datetime import timedelta

import pytest

from timesync.config import settings
from timesync.connectors.errors import AuthError
from timesync.connectors.factory import ConnectorCache
from timesync.models import AuditLog, SyncRun, TimeEntry
from timesync.scheduler import auto_sync_window, run_auto_sync
from timesync.services.credentials import save_connection
from timesync.services.locks import UserSyncLocks
from timesync.utils.timeutils import utcnow

from fakes import FakeConnector, remote_entry


def test_auto_sync_window_ends_today(user):
    window = auto_sync_window(user.id)
    assert window.end_date == utcnow().date()
    assert window.days == settings.auto_sync_window_days


@pytest.mark.asyncio
async def test_scheduled_run_syncs_enabled_connections(db, user, other_user, connection, session_factory):
    save_connection(db, other_user.id, api_key="bob-key", workspace_id="ws-2", external_user_id="remote-user-2", auto_sync_enabled=False)
    start = utcnow().replace(microsecond=0) - timedelta(hours=2)
    connector = FakeConnector([remote_entry("ext-1", "Standup", start, start + timedelta(minutes=15))])
    cache = ConnectorCache(builder=lambda credentials: connector)

    stats = await run_auto_sync(cache, UserSyncLocks(), session_factory=session_factory)

    assert stats == {"users": 1, "skipped": 0, "failed": 0}
    run = db.query(SyncRun).one()
    assert run.user_id == user.id
    assert run.trigger_type == "scheduled"
    assert run.status == "completed"
    assert db.query(TimeEntry).filter(TimeEntry.user_id == user.id).count() == 1
    audit = db.query(AuditLog).filter(AuditLog.action == "sync_scheduled").one()
    assert audit.user == "alice"
    assert audit.ip_address is None


@pytest.mark.asyncio
async def test_scheduled_run_skips_users_with_a_run_in_flight(db, user, connection, session_factory):
    connector = FakeConnector()
    locks = UserSyncLocks()
    await locks._lock(user.id).acquire()

    stats = await run_auto_sync(ConnectorCache(builder=lambda credentials: connector), locks, session_factory=session_factory)

    assert stats == {"users": 0, "skipped": 1, "failed": 0}
    assert connector.calls == []


@pytest.mark.asyncio
async def test_auth_failure_evicts_the_connector(db, user, connection, session_factory):
    connector = FakeConnector()
    connector.list_errors[1] = AuthError("revoked", status_code=401)
    cache = ConnectorCache(builder=lambda credentials: connector)

    stats = await run_auto_sync(cache, UserSyncLocks(), session_factory=session_factory)

    assert stats["failed"] == 1
    assert connector.closed is True
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_least_recently_synced_connections_go_first(db, user, other_user, connection, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "auto_sync_batch_size", 1)
    connection.last_successful_sync_at = utcnow()
    db.commit()
    save_connection(db, other_user.id, api_key="bob-key", workspace_id="ws-2", external_user_id="remote-user-2")
    cache = ConnectorCache(builder=lambda credentials: FakeConnector())

    stats = await run_auto_sync(cache, UserSyncLocks(), session_factory=session_factory)

    assert stats["users"] == 1
    assert db.query(SyncRun).one().user_id == other_user.id

    stats = await run_auto_sync(cache, UserSyncLocks(), session_factory=session_factory)

    assert stats["users"] == 1
    db.expire_all()
    assert {run.user_id for run in db.query(SyncRun).all()} == {user.id, other_user.id}
