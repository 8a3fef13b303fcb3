"""Timezone helpers.

All timestamps are handled as UTC. Some databases (SQLite) hand back naive
datetimes for ``DateTime(timezone=True)`` columns, so naive values are read
as UTC wall-clock times.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return an aware UTC datetime, treating naive input as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def to_iso_z(value: Optional[datetime]) -> Optional[str]:
    """Format as ``YYYY-MM-DDTHH:MM:SSZ`` (the remote wire format)."""
    if value is None:
        return None
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
