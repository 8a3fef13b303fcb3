from datetime import timedelta

from timesync.models import AuditLog
from timesync.scheduler import run_audit_cleanup
from timesync.services.audit_cleanup import audit_log_stats, purge_access_logs
from timesync.utils.timeutils import utcnow


def _log(db, action, age_days, user="alice"):
    entry = AuditLog(action=action, user=user, created_at=utcnow() - timedelta(days=age_days))
    db.add(entry)
    db.commit()
    return entry


def test_old_access_logs_are_purged(db):
    _log(db, "login_success", 120)
    _log(db, "mapping_created", 5)
    _log(db, "sync_triggered", 400)

    assert purge_access_logs(db, days_to_keep=90) == 1

    remaining = sorted(entry.action for entry in db.query(AuditLog).all())
    assert remaining == ["mapping_created", "sync_triggered"]


def test_scheduled_cleanup_uses_configured_retention(db, session_factory):
    _log(db, "login_failed", 365)
    assert run_audit_cleanup(session_factory=session_factory) == 1
    assert db.query(AuditLog).count() == 0


def test_stats_are_per_user(db):
    _log(db, "login_success", 10)
    _log(db, "sync_triggered", 3)
    _log(db, "login_success", 1, user="bob")

    stats = audit_log_stats(db, "alice")

    assert stats["total_logs"] == 2
    assert stats["access_logs"] == 1
    assert stats["sync_logs"] == 1
    assert stats["oldest_access_log"] is not None
