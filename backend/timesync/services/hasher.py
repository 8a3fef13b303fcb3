"""Content fingerprints of time entries.

The fingerprint covers exactly the fields whose change must trigger a write:
description, start, end and remote project. Values are normalised before
hashing so that transport differences (whitespace, timestamp notation,
timezone offset) never produce a different hash:

- ``None`` becomes the empty string
- the description is stripped of surrounding whitespace
- timestamps become ``YYYY-MM-DDTHH:MM:SSZ`` in UTC (naive values are UTC)

The normalised values are joined with ``|`` and digested with SHA-256.
Everything here is pure and safe to call from concurrent tasks.
"""

import hashlib
from datetime import datetime
from typing import Dict, Iterable, Optional, Union

from timesync.connectors.base import RemoteTimeEntry
from timesync.models.time_entry import TimeEntry
from timesync.utils.timeutils import parse_timestamp, to_iso_z

DELIMITER = "|"

Timestamp = Union[str, datetime, None]


def canonical_timestamp(value: Timestamp) -> str:
    if value is None or value == "":
        return ""
    return to_iso_z(parse_timestamp(value))


def fingerprint(
    description: Optional[str],
    start: Timestamp,
    end: Timestamp,
    external_project_id: Optional[str],
) -> str:
    parts = [
        (description or "").strip(),
        canonical_timestamp(start),
        canonical_timestamp(end),
        external_project_id or "",
    ]
    return hashlib.sha256(DELIMITER.join(parts).encode("utf-8")).hexdigest()


def fingerprint_entry(entry: Union[RemoteTimeEntry, TimeEntry]) -> str:
    """Fingerprint a remote record or a local row."""
    if isinstance(entry, RemoteTimeEntry):
        return fingerprint(entry.description, entry.start, entry.end, entry.project_id)
    return fingerprint(entry.description, entry.start_time, entry.end_time, entry.external_project_id)


def fingerprint_batch(entries: Iterable[Union[RemoteTimeEntry, TimeEntry]]) -> Dict[str, str]:
    """Map each entry's id to its fingerprint; equal to ``fingerprint_entry`` per element."""
    return {str(entry.id): fingerprint_entry(entry) for entry in entries}
