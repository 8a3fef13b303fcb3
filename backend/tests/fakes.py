"""In-memory stand-in for the remote time-tracking service."""

from datetime import datetime
from typing import Callable, Dict, List, Optional

from timesync.connectors.base import (
    BaseConnector,
    EntryFields,
    RejectedEntry,
    RemoteEntryPage,
    RemoteProject,
    RemoteTimeEntry,
    RemoteUser,
    SyncWindow,
)
from timesync.connectors.errors import ConnectorError, NotFoundError
from timesync.utils.timeutils import as_utc


def remote_entry(
    entry_id: str,
    description: Optional[str],
    start: datetime,
    end: Optional[datetime],
    project_id: Optional[str] = None,
    billable: bool = False,
) -> RemoteTimeEntry:
    return RemoteTimeEntry(
        id=entry_id,
        description=description,
        user_id="remote-user-1",
        workspace_id="ws-1",
        project_id=project_id,
        billable=billable,
        start=start,
        end=end,
    )


class FakeConnector(BaseConnector):
    def __init__(self, entries: Optional[List[RemoteTimeEntry]] = None, page_size: int = 50):
        self.remote: Dict[str, RemoteTimeEntry] = {e.id: e for e in (entries or [])}
        self.page_size = page_size
        self.projects: List[RemoteProject] = []
        self.user = RemoteUser(id="remote-user-1", email="alice@example.com", active_workspace="ws-1")

        self.calls: List[tuple] = []
        # Failures to inject, keyed by page number / remote id
        self.list_errors: Dict[int, ConnectorError] = {}
        self.unreadable: Dict[int, List[RejectedEntry]] = {}
        self.update_errors: Dict[str, ConnectorError] = {}
        self.create_error: Optional[ConnectorError] = None
        self.auth_error: Optional[ConnectorError] = None
        # Called with the remote id right before an update is applied
        self.on_update: Optional[Callable[[str], None]] = None
        self.closed = False
        self._created = 0

    def add(self, entry: RemoteTimeEntry) -> None:
        self.remote[entry.id] = entry

    def calls_of(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def authenticate(self) -> RemoteUser:
        self.calls.append(("authenticate",))
        if self.auth_error:
            raise self.auth_error
        return self.user

    async def list_entries(self, workspace_id: str, user_id: str, window: SyncWindow, page: int) -> RemoteEntryPage:
        self.calls.append(("list", page))
        if page in self.list_errors:
            raise self.list_errors[page]
        in_window = sorted(
            (e for e in self.remote.values() if window.start_at <= as_utc(e.start) <= window.end_at),
            key=lambda e: (e.start, e.id),
        )
        rejected = self.unreadable.get(page, [])
        # Unreadable items take slots of their page like real ones
        offset = sum(self.page_size - len(self.unreadable.get(p, [])) for p in range(1, page))
        entries = in_window[offset:offset + self.page_size - len(rejected)]
        return RemoteEntryPage(entries=entries, rejected=rejected)

    async def get_entry(self, workspace_id: str, entry_id: str) -> RemoteTimeEntry:
        self.calls.append(("get", entry_id))
        if entry_id not in self.remote:
            raise NotFoundError(f"Time entry {entry_id} not found", status_code=404)
        return self.remote[entry_id]

    async def get_running_entry(self, workspace_id: str, user_id: str) -> Optional[RemoteTimeEntry]:
        self.calls.append(("running",))
        running = [e for e in self.remote.values() if e.end is None]
        return running[0] if running else None

    def _from_fields(self, entry_id: str, fields: EntryFields) -> RemoteTimeEntry:
        return remote_entry(
            entry_id,
            fields.description,
            fields.start,
            fields.end,
            project_id=fields.project_id,
            billable=fields.billable,
        )

    async def create_entry(self, workspace_id: str, fields: EntryFields) -> RemoteTimeEntry:
        self.calls.append(("create", fields))
        if self.create_error:
            raise self.create_error
        self._created += 1
        entry = self._from_fields(f"created-{self._created}", fields)
        self.remote[entry.id] = entry
        return entry

    async def update_entry(self, workspace_id: str, entry_id: str, fields: EntryFields) -> RemoteTimeEntry:
        self.calls.append(("update", entry_id, fields))
        if entry_id in self.update_errors:
            raise self.update_errors[entry_id]
        if entry_id not in self.remote:
            raise NotFoundError(f"Time entry {entry_id} not found", status_code=404)
        if self.on_update:
            self.on_update(entry_id)
        entry = self._from_fields(entry_id, fields)
        self.remote[entry_id] = entry
        return entry

    async def delete_entry(self, workspace_id: str, entry_id: str) -> None:
        self.calls.append(("delete", entry_id))
        if self.remote.pop(entry_id, None) is None:
            raise NotFoundError(f"Time entry {entry_id} not found", status_code=404)

    async def get_projects(self, workspace_id: str) -> List[RemoteProject]:
        self.calls.append(("projects", workspace_id))
        return list(self.projects)

    async def close(self) -> None:
        self.closed = True
