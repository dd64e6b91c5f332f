"""
Value types shared by the decoders and the anomaly engine:
decoded events, log-file identities and flagged filesystem entries.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

# Windows FILETIME: 100-nanosecond intervals since 1601-01-01
FILETIME_EPOCH_DIFF = 116444736000000000
_TICKS_PER_SECOND = 10_000_000


def filetime_to_unix(ticks: int) -> int:
    """Convert Windows FILETIME to Unix epoch seconds (truncating toward zero)."""
    delta = ticks - FILETIME_EPOCH_DIFF
    if delta < 0:
        return -(-delta // _TICKS_PER_SECOND)
    return delta // _TICKS_PER_SECOND


def unix_to_iso(seconds: int) -> str:
    """UTC ISO string for display, or a marker if out of range."""
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return f"(invalid: {seconds})"


@dataclass
class LogEvent:
    """
    Fixed identity/timestamp prefix of one on-disk log record.

    Decoded events are never modified. The only instances that change after
    construction are the private copies held by an incident anchor, whose
    bounds are tightened or widened as windows merge.
    """
    event_id: int
    created: int  # Unix seconds
    written: int  # Unix seconds

    def copy(self) -> "LogEvent":
        return LogEvent(self.event_id, self.created, self.written)

    def created_iso(self) -> str:
        return unix_to_iso(self.created)

    def written_iso(self) -> str:
        return unix_to_iso(self.written)


@dataclass(frozen=True)
class LogSource:
    """Log file an anomaly window was found in."""
    path: str
    name: str

    def full_path(self) -> str:
        return self.path + self.name


@dataclass(frozen=True)
class FileRef:
    """Filesystem entry whose MAC time falls inside an incident's anomalous interval."""
    path: str
    name: str

    def full_path(self) -> str:
        return self.path + self.name
