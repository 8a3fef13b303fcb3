from abc import ABC, abstractmethod
from datetime import date, datetime, time, timezone
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field

from timesync.utils.timeutils import to_iso_z


class RemoteTimeEntry(BaseModel):
    """Time entry as returned by the remote service."""
    id: str = Field(..., description="Remote identifier of the time entry")
    description: Optional[str] = Field(None, description="Free text description")
    user_id: Optional[str] = Field(None, description="Remote user that owns the entry")
    workspace_id: Optional[str] = Field(None, description="Remote workspace")
    project_id: Optional[str] = Field(None, description="Remote project, if any")
    billable: bool = Field(False, description="Whether the time is billable")
    start: datetime = Field(..., description="Start of the interval (UTC)")
    end: Optional[datetime] = Field(None, description="End of the interval; None while running")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteTimeEntry":
        interval = data.get("timeInterval") or {}
        return cls(
            id=data["id"],
            description=data.get("description"),
            user_id=data.get("userId"),
            workspace_id=data.get("workspaceId"),
            project_id=data.get("projectId") or None,
            billable=bool(data.get("billable", False)),
            start=interval["start"],
            end=interval.get("end") or None,
        )


class RejectedEntry(BaseModel):
    """Item of a listing that could not be parsed."""
    external_id: Optional[str] = None
    reason: str


class RemoteEntryPage(BaseModel):
    """One page of a time-entry listing.

    Items that cannot be parsed land in ``rejected`` instead of failing the
    page; ``size`` counts both and decides whether another page follows.
    """
    entries: List[RemoteTimeEntry] = Field(default_factory=list)
    rejected: List[RejectedEntry] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.entries) + len(self.rejected)


class RemoteUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    active_workspace: Optional[str] = None
    default_workspace: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteUser":
        return cls(
            id=data["id"],
            email=data.get("email"),
            name=data.get("name"),
            active_workspace=data.get("activeWorkspace"),
            default_workspace=data.get("defaultWorkspace"),
        )


class RemoteProject(BaseModel):
    id: str
    name: str
    client_name: Optional[str] = None
    color: Optional[str] = None
    archived: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteProject":
        return cls(
            id=data["id"],
            name=data["name"],
            client_name=data.get("clientName") or None,
            color=data.get("color"),
            archived=bool(data.get("archived", False)),
        )


class EntryFields(BaseModel):
    """Writable fields of a remote time entry."""
    description: Optional[str] = None
    start: datetime
    end: Optional[datetime] = None
    project_id: Optional[str] = None
    billable: bool = False

    def to_api(self) -> Dict[str, Any]:
        return {
            "description": self.description or "",
            "start": to_iso_z(self.start),
            "end": to_iso_z(self.end),
            "projectId": self.project_id,
            "billable": self.billable,
        }


class SyncWindow(BaseModel):
    """Date range reconciled in one run (both ends inclusive)."""
    user_id: int
    start_date: date
    end_date: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start_date, time.min, tzinfo=timezone.utc)

    @property
    def end_at(self) -> datetime:
        return datetime.combine(self.end_date, time(23, 59, 59), tzinfo=timezone.utc)

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class BaseConnector(ABC):
    """Abstract Base Class for remote time-tracking connectors."""

    # A page shorter than this ends pagination
    page_size: int = 200

    @abstractmethod
    async def authenticate(self) -> RemoteUser:
        """Validates the credential with a lightweight identity call."""
        pass

    @abstractmethod
    async def list_entries(self, workspace_id: str, user_id: str, window: SyncWindow, page: int) -> RemoteEntryPage:
        """Fetches one page of entries intersecting the window."""
        pass

    @abstractmethod
    async def get_entry(self, workspace_id: str, entry_id: str) -> RemoteTimeEntry:
        """Fetches a single time entry."""
        pass

    @abstractmethod
    async def get_running_entry(self, workspace_id: str, user_id: str) -> Optional[RemoteTimeEntry]:
        """Fetches the user's running timer, if any."""
        pass

    @abstractmethod
    async def create_entry(self, workspace_id: str, fields: EntryFields) -> RemoteTimeEntry:
        """Creates a time entry in the remote system."""
        pass

    @abstractmethod
    async def update_entry(self, workspace_id: str, entry_id: str, fields: EntryFields) -> RemoteTimeEntry:
        """Updates an existing time entry in the remote system."""
        pass

    @abstractmethod
    async def delete_entry(self, workspace_id: str, entry_id: str) -> None:
        """Deletes a time entry from the remote system."""
        pass

    @abstractmethod
    async def get_projects(self, workspace_id: str) -> List[RemoteProject]:
        """Fetches the projects available for mapping."""
        pass

    async def close(self) -> None:
        pass
