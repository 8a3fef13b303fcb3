"""Remote timer: start, inspect, stop and discard the running entry on the
remote service directly.

Timers live remotely only; the stopped entry reaches the local ledger with
the next sync run.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from timesync.connectors.base import BaseConnector, EntryFields, RemoteTimeEntry
from timesync.connectors.factory import RemoteCredentials
from timesync.services.errors import Conflict, TimerNotRunning
from timesync.services.mapping_resolver import MappingResolver
from timesync.utils.timeutils import as_utc, utcnow

log = logging.getLogger(__name__)


class RemoteTimer:
    def __init__(
        self,
        db: Session,
        connector: BaseConnector,
        credentials: RemoteCredentials,
        now: Callable = utcnow,
    ):
        self.db = db
        self.connector = connector
        self.credentials = credentials
        self.resolver = MappingResolver(db)
        self._now = now

    def goal_of(self, user_id: int, entry: RemoteTimeEntry) -> Optional[int]:
        return self.resolver.resolve(user_id, entry.project_id)

    def elapsed_seconds(self, entry: RemoteTimeEntry) -> int:
        return max(0, int((self._now() - as_utc(entry.start)).total_seconds()))

    async def current(self) -> Optional[RemoteTimeEntry]:
        return await self.connector.get_running_entry(self.credentials.workspace_id, self.credentials.external_user_id)

    async def start(self, user_id: int, description: str, goal_id: Optional[int] = None) -> RemoteTimeEntry:
        """Start a timer, on the project mapped to ``goal_id`` if there is one."""
        project_id = self.resolver.project_for_goal(user_id, goal_id) if goal_id is not None else None

        running = await self.current()
        if running is not None:
            raise Conflict(f"Timer {running.id} is already running")

        fields = EntryFields(description=description, start=self._now(), project_id=project_id)
        entry = await self.connector.create_entry(self.credentials.workspace_id, fields)
        log.info(f"Started remote timer {entry.id} for user {user_id} (project {project_id or '-'})")
        return entry

    async def stop(self, user_id: int, entry_id: Optional[str] = None) -> RemoteTimeEntry:
        """Stop the given timer, or the running one when no id is given."""
        if entry_id:
            entry = await self.connector.get_entry(self.credentials.workspace_id, entry_id)
        else:
            entry = await self.current()
        if entry is None or entry.end is not None:
            raise TimerNotRunning(f"Timer {entry_id} is not running" if entry_id else "No timer is running")

        # The remote replaces every field on update
        fields = EntryFields(
            description=entry.description,
            start=entry.start,
            end=self._now(),
            project_id=entry.project_id,
            billable=entry.billable,
        )
        stopped = await self.connector.update_entry(self.credentials.workspace_id, entry.id, fields)
        log.info(f"Stopped remote timer {stopped.id} for user {user_id}")
        return stopped

    async def discard(self, user_id: int, entry_id: str) -> None:
        await self.connector.delete_entry(self.credentials.workspace_id, entry_id)
        log.info(f"Deleted remote timer {entry_id} for user {user_id}")
