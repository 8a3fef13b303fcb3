import logging
from enum import Enum
from typing import Optional

from timesync.models.time_entry import SyncStatus, TimeEntry

log = logging.getLogger(__name__)


class ReconciliationAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    CONFLICT = "conflict"
    SKIP = "skip"


def decide(local: Optional[TimeEntry], remote_hash: str) -> ReconciliationAction:
    """
    Decide what to do with one pulled remote entry.

    - no local row: create it
    - fingerprints equal: nothing changed, skip
    - local row has no pending edits (synced / pending_pull): remote wins, update
    - local row has pending edits (pending_push): both sides changed, conflict
    - local row already in conflict: skip, the user has to resolve it

    A row without a stored fingerprint is treated as changed.
    """
    if local is None:
        return ReconciliationAction.CREATE

    if local.content_hash is not None and local.content_hash == remote_hash:
        log.trace(f"Entry {local.external_entry_id}: hash unchanged")
        return ReconciliationAction.SKIP

    status = local.sync_status
    if status in (SyncStatus.SYNCED.value, SyncStatus.PENDING_PULL.value):
        return ReconciliationAction.UPDATE
    if status == SyncStatus.PENDING_PUSH.value:
        log.debug(f"Entry {local.external_entry_id}: changed on both sides")
        return ReconciliationAction.CONFLICT
    if status == SyncStatus.CONFLICT.value:
        return ReconciliationAction.SKIP

    log.warning(f"Entry {local.external_entry_id} has unknown sync status '{status}', skipping")
    return ReconciliationAction.SKIP
