import asyncio
import logging
import time
import traceback
from typing import Callable, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timesync.config import settings
from timesync.connectors.base import BaseConnector, EntryFields, RemoteTimeEntry, SyncWindow
from timesync.connectors.errors import AuthError, ConnectorError
from timesync.connectors.factory import RemoteCredentials
from timesync.models.conflict import SyncConflict
from timesync.models.sync_run import SyncRun
from timesync.models.time_entry import EntrySource, REMOTE_FIELDS, SyncStatus, TimeEntry
from timesync.schemas.sync import SyncFailure, SyncResult
from timesync.services.credentials import get_connection
from timesync.services.errors import ConflictNotFound, SyncAbortedError
from timesync.services.hasher import fingerprint, fingerprint_batch, fingerprint_entry
from timesync.services.mapping_resolver import MappingResolver
from timesync.services.reconciler import ReconciliationAction, decide
from timesync.utils.timeutils import as_utc, utcnow

log = logging.getLogger(__name__)


def apply_remote_fields(entry: TimeEntry, remote: RemoteTimeEntry) -> None:
    """Copy the remotely owned fields of ``remote`` onto a local row."""
    entry.description = remote.description
    entry.set_interval(remote.start, remote.end)
    entry.external_project_id = remote.project_id
    entry.billable = remote.billable


def _local_snapshot(entry: TimeEntry) -> Tuple:
    values = []
    for field in REMOTE_FIELDS:
        value = getattr(entry, field)
        if field in ("start_time", "end_time"):
            value = as_utc(value)
        values.append(value)
    return tuple(values)


class SyncService:
    """
    Reconciles the local time-entry ledger of one user against the remote
    service for a date window.

    A run has two phases:

    1. Pull: remote pages are fetched, fingerprinted and diffed against local
       rows by ``external_entry_id``; every entry is committed on its own.
    2. Push: local rows with pending edits are written back through the
       gateway on a bounded worker pool.

    Per-entry failures are collected in the result and never abort the run.
    An ``AuthError`` aborts the run with ``SyncAbortedError``.
    """

    def __init__(
        self,
        db: Session,
        connector: BaseConnector,
        credentials: RemoteCredentials,
        resolver: Optional[MappingResolver] = None,
        max_workers: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        max_pages: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.connector = connector
        self.credentials = credentials
        self.resolver = resolver or MappingResolver(db)
        self.max_workers = max_workers or settings.sync_max_workers
        self.deadline_seconds = settings.sync_run_deadline_seconds if deadline_seconds is None else deadline_seconds
        self.max_pages = max_pages or settings.sync_max_pages
        self._clock = clock

    @staticmethod
    def validate_window(user_id: int, window: SyncWindow) -> None:
        if window.user_id != user_id:
            raise ValueError("Sync window belongs to a different user")
        if window.start_date > window.end_date:
            raise ValueError("Sync window start date is after its end date")
        if window.days > settings.sync_max_window_days:
            raise ValueError(f"Sync window exceeds {settings.sync_max_window_days} days")

    def _deadline_passed(self, deadline: float) -> bool:
        return self._clock() >= deadline

    def _record_failure(
        self,
        result: SyncResult,
        error_kind: str,
        reason: str,
        external_entry_id: Optional[str] = None,
        entry_id: Optional[int] = None,
    ) -> None:
        result.failed += 1
        result.failures.append(SyncFailure(
            external_entry_id=external_entry_id,
            entry_id=entry_id,
            reason=reason,
            error_kind=error_kind,
        ))
        log.warning(f"Sync failure ({error_kind}) for entry {entry_id or external_entry_id or '-'}: {reason}")

    async def run(self, user_id: int, window: SyncWindow, trigger_type: str = 'manual') -> SyncResult:
        """Run one reconciliation over ``window`` and return its summary."""
        self.validate_window(user_id, window)

        deadline = self._clock() + self.deadline_seconds
        result = SyncResult()

        sync_run = SyncRun(
            user_id=user_id,
            trigger_type=trigger_type,
            window_start=window.start_date,
            window_end=window.end_date,
            start_time=utcnow(),
            status='running',
        )
        self.db.add(sync_run)
        connection = get_connection(self.db, user_id)
        if connection:
            connection.sync_status = 'syncing'
        self.db.commit()
        self.db.refresh(sync_run)
        result.run_id = sync_run.id

        log.info(f"Starting sync run {sync_run.id} for user {user_id}: {window.start_date} to {window.end_date} ({trigger_type})")

        try:
            pull_complete, seen, flagged = await self._pull(user_id, window, result, deadline)
            await self._push(user_id, window, result, deadline, pull_complete, seen, flagged)
        except AuthError as e:
            log.error(f"Sync run {sync_run.id} aborted: {e.message}")
            self.db.rollback()
            self._finish(sync_run, result, 'failed', error_message=f"Authentication failed: {e.message}")
            raise SyncAbortedError(e.message, run_id=sync_run.id, cause=e) from e
        except Exception as e:
            log.error(f"Sync run {sync_run.id} failed: {e}")
            log.debug(traceback.format_exc())
            self.db.rollback()
            self._finish(sync_run, result, 'failed', error_message=str(e))
            raise

        status = 'partial' if result.failed or result.deadline_exceeded else 'completed'
        self._finish(sync_run, result, status)

        log.info(
            f"Sync run {sync_run.id} {status}: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.conflicted} conflicts, {result.pushed} pushed, {result.failed} failed"
        )
        return result

    def _finish(self, sync_run: SyncRun, result: SyncResult, status: str, error_message: Optional[str] = None) -> None:
        now = utcnow()
        result.status = status

        sync_run.end_time = now
        sync_run.status = status
        sync_run.entries_fetched = result.fetched
        sync_run.entries_created = result.created
        sync_run.entries_updated = result.updated
        sync_run.entries_skipped = result.skipped
        sync_run.entries_pushed = result.pushed
        sync_run.entries_failed = result.failed
        sync_run.conflicts_detected = result.conflicted
        sync_run.failures = [failure.model_dump() for failure in result.failures]
        sync_run.error_message = error_message

        connection = get_connection(self.db, sync_run.user_id)
        if connection:
            connection.last_sync_at = now
            if status == 'failed':
                connection.sync_status = 'error'
                connection.last_sync_error = error_message
            else:
                connection.sync_status = 'success'
                connection.last_successful_sync_at = now
                connection.last_sync_error = f"{result.failed} entries failed" if result.failed else None

        self.db.commit()

    # Pull

    async def _pull(
        self,
        user_id: int,
        window: SyncWindow,
        result: SyncResult,
        deadline: float,
    ) -> Tuple[bool, Set[str], Set[int]]:
        """
        Fetch and diff every remote page of the window.

        Returns whether the pull saw the whole window, the remote ids seen and
        the local ids held back from the push phase (new conflicts and
        rows whose remote entry was unreadable).
        """
        seen: Set[str] = set()
        flagged: Set[int] = set()
        page_size = self.connector.page_size
        page = 1

        while True:
            if self._deadline_passed(deadline):
                log.warning(f"Run deadline reached before page {page}; stopping pull")
                result.deadline_exceeded = True
                return False, seen, flagged
            if page > self.max_pages:
                self._record_failure(result, 'protocol', f"Pagination stopped after {self.max_pages} pages")
                return False, seen, flagged

            try:
                listing = await self.connector.list_entries(
                    self.credentials.workspace_id,
                    self.credentials.external_user_id,
                    window,
                    page,
                )
            except AuthError:
                raise
            except ConnectorError as e:
                # Pages already processed stay committed
                self._record_failure(result, e.kind.value, f"Pulling page {page} failed: {e.reason}")
                return False, seen, flagged

            entries = listing.entries
            result.fetched += listing.size
            for rejected in listing.rejected:
                self._hold_back(user_id, rejected.external_id, flagged)
                self._record_failure(result, 'protocol', rejected.reason, external_entry_id=rejected.external_id)
            hashes = fingerprint_batch(entries)

            for remote in entries:
                if self._deadline_passed(deadline):
                    log.warning(f"Run deadline reached on page {page}; stopping pull")
                    result.deadline_exceeded = True
                    return False, seen, flagged
                seen.add(remote.id)
                try:
                    self._apply_remote(user_id, remote, hashes[remote.id], result, flagged)
                except SQLAlchemyError as e:
                    self.db.rollback()
                    self._record_failure(result, 'storage', str(e), external_entry_id=remote.id)

            if listing.size < page_size:
                return True, seen, flagged
            page += 1

    def _hold_back(self, user_id: int, external_id: Optional[str], flagged: Set[int]) -> None:
        # Remote state unknown; never push over it in this run
        if not external_id:
            return
        local = self.db.query(TimeEntry.id).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.external_entry_id == external_id,
        ).first()
        if local is not None:
            flagged.add(local.id)

    def _apply_remote(
        self,
        user_id: int,
        remote: RemoteTimeEntry,
        remote_hash: str,
        result: SyncResult,
        flagged: Set[int],
    ) -> None:
        local = self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.external_entry_id == remote.id,
        ).first()
        action = decide(local, remote_hash)

        if action == ReconciliationAction.CREATE:
            entry = TimeEntry(
                user_id=user_id,
                external_entry_id=remote.id,
                source=EntrySource.EXTERNAL.value,
                sync_status=SyncStatus.SYNCED.value,
                goal_id=self.resolver.resolve(user_id, remote.project_id),
            )
            apply_remote_fields(entry, remote)
            entry.content_hash = remote_hash
            entry.last_synced_at = utcnow()
            self.db.add(entry)
            self.db.commit()
            result.created += 1
            log.debug(f"Created local entry {entry.id} from remote {remote.id}")

        elif action == ReconciliationAction.UPDATE:
            apply_remote_fields(local, remote)
            goal_id = self.resolver.resolve(user_id, remote.project_id)
            if goal_id is not None:
                local.goal_id = goal_id
            local.content_hash = remote_hash
            local.sync_status = SyncStatus.SYNCED.value
            local.last_synced_at = utcnow()
            self.db.commit()
            result.updated += 1
            log.debug(f"Updated local entry {local.id} from remote {remote.id}")

        elif action == ReconciliationAction.CONFLICT:
            local.sync_status = SyncStatus.CONFLICT.value
            self.db.add(SyncConflict(
                user_id=user_id,
                time_entry_id=local.id,
                remote_data=remote.model_dump(mode="json"),
                remote_hash=remote_hash,
                local_hash=fingerprint_entry(local),
            ))
            self.db.commit()
            flagged.add(local.id)
            result.conflicted += 1
            log.info(f"Conflict on entry {local.id} (remote {remote.id}): changed locally and remotely")

        else:
            if local.sync_status == SyncStatus.CONFLICT.value:
                self._refresh_conflict(local, remote, remote_hash)
            result.skipped += 1

    def _refresh_conflict(self, local: TimeEntry, remote: RemoteTimeEntry, remote_hash: str) -> None:
        """Keep the pending conflict's remote snapshot current."""
        conflict = self.db.query(SyncConflict).filter(
            SyncConflict.time_entry_id == local.id,
            SyncConflict.resolution_status == 'pending',
        ).order_by(SyncConflict.id.desc()).first()

        if conflict is None:
            conflict = SyncConflict(
                user_id=local.user_id,
                time_entry_id=local.id,
                local_hash=fingerprint_entry(local),
            )
            self.db.add(conflict)
        elif conflict.remote_hash == remote_hash:
            return

        conflict.remote_data = remote.model_dump(mode="json")
        conflict.remote_hash = remote_hash
        self.db.commit()
        log.debug(f"Refreshed remote snapshot of conflict {conflict.id} (entry {local.id})")

    # Push

    def _load_entry(self, user_id: int, entry_id: int) -> Optional[TimeEntry]:
        # Local edits land through other sessions; always re-read the row
        return self.db.query(TimeEntry).populate_existing().filter(
            TimeEntry.id == entry_id,
            TimeEntry.user_id == user_id,
        ).first()

    def _push_candidates(
        self,
        user_id: int,
        window: SyncWindow,
        pull_complete: bool,
        seen: Set[str],
        flagged: Set[int],
    ) -> List[int]:
        entries = self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.sync_status == SyncStatus.PENDING_PUSH.value,
            TimeEntry.start_time >= window.start_at,
            TimeEntry.start_time <= window.end_at,
        ).order_by(TimeEntry.start_time).all()

        candidates = []
        for entry in entries:
            if entry.id in flagged:
                continue
            if not pull_complete and entry.external_entry_id and entry.external_entry_id not in seen:
                log.debug(f"Not pushing entry {entry.id}: its remote state was not seen in this run")
                continue
            candidates.append(entry.id)
        return candidates

    async def _push(
        self,
        user_id: int,
        window: SyncWindow,
        result: SyncResult,
        deadline: float,
        pull_complete: bool,
        seen: Set[str],
        flagged: Set[int],
    ) -> None:
        candidates = self._push_candidates(user_id, window, pull_complete, seen, flagged)
        if not candidates:
            return
        log.info(f"Pushing {len(candidates)} locally modified entries for user {user_id}")

        semaphore = asyncio.Semaphore(self.max_workers)
        aborted = asyncio.Event()

        async def worker(entry_id: int) -> None:
            async with semaphore:
                if aborted.is_set():
                    return
                if self._deadline_passed(deadline):
                    result.deadline_exceeded = True
                    return
                try:
                    await self._push_entry(user_id, entry_id, result)
                except AuthError:
                    aborted.set()
                    raise

        outcomes = await asyncio.gather(*(worker(entry_id) for entry_id in candidates), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, AuthError):
                raise outcome
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _push_entry(self, user_id: int, entry_id: int, result: SyncResult) -> None:
        entry = self._load_entry(user_id, entry_id)
        if entry is None or entry.sync_status != SyncStatus.PENDING_PUSH.value:
            return

        snapshot = _local_snapshot(entry)
        fields = EntryFields(
            description=entry.description,
            start=as_utc(entry.start_time),
            end=as_utc(entry.end_time),
            project_id=entry.external_project_id,
            billable=bool(entry.billable),
        )
        pushed_hash = fingerprint(fields.description, fields.start, fields.end, fields.project_id)
        external_id = entry.external_entry_id
        # End the read transaction before suspending
        self.db.commit()

        try:
            if external_id:
                remote = await self.connector.update_entry(self.credentials.workspace_id, external_id, fields)
            else:
                remote = await self.connector.create_entry(self.credentials.workspace_id, fields)
        except AuthError:
            raise
        except ConnectorError as e:
            self._record_failure(result, e.kind.value, e.reason, external_entry_id=external_id, entry_id=entry_id)
            return

        try:
            entry = self._load_entry(user_id, entry_id)
            if entry is None:
                log.warning(f"Entry {entry_id} was deleted locally while being pushed")
                result.pushed += 1
                return

            if not external_id:
                entry.external_entry_id = remote.id
            entry.content_hash = pushed_hash
            entry.last_synced_at = utcnow()
            if entry.sync_status == SyncStatus.PENDING_PUSH.value and _local_snapshot(entry) == snapshot:
                entry.sync_status = SyncStatus.SYNCED.value
            else:
                log.info(f"Entry {entry_id} changed locally during push; it stays {entry.sync_status}")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._record_failure(result, 'storage', str(e), external_entry_id=external_id or remote.id, entry_id=entry_id)
            return

        result.pushed += 1
        log.debug(f"Pushed entry {entry_id} (remote {entry.external_entry_id})")


def resolve_conflict(db: Session, user_id: int, conflict_id: int, action: str) -> SyncConflict:
    """
    Resolve a pending conflict.

    - ``keep_remote``: the remote snapshot overwrites the local row, which becomes synced.
    - ``keep_local``: the remote fingerprint becomes the baseline and the row is
      queued for push, so the next run overwrites the remote entry.
    """
    if action not in ('keep_local', 'keep_remote'):
        raise ValueError(f"Unknown resolution action '{action}'")

    conflict = db.query(SyncConflict).filter(
        SyncConflict.id == conflict_id,
        SyncConflict.user_id == user_id,
        SyncConflict.resolution_status == 'pending',
    ).first()
    if not conflict:
        raise ConflictNotFound(f"Pending conflict {conflict_id} not found")

    entry = conflict.time_entry
    if action == 'keep_remote':
        remote = RemoteTimeEntry.model_validate(conflict.remote_data)
        apply_remote_fields(entry, remote)
        goal_id = MappingResolver(db).resolve(user_id, remote.project_id)
        if goal_id is not None:
            entry.goal_id = goal_id
        entry.content_hash = conflict.remote_hash
        entry.sync_status = SyncStatus.SYNCED.value
        entry.last_synced_at = utcnow()
    else:
        entry.content_hash = conflict.remote_hash
        entry.sync_status = SyncStatus.PENDING_PUSH.value

    conflict.resolution_status = 'resolved'
    conflict.resolution_action = action
    conflict.resolved_at = utcnow()
    db.commit()
    db.refresh(conflict)

    log.info(f"Resolved conflict {conflict_id} on entry {entry.id} with {action}")
    return conflict
