"""unistore data models.

Immutable value types returned by store operations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class ObjectAttributes:
    """Snapshot of an object's attributes at retrieval time.

    Attributes:
        size: Stored (physical, possibly compressed) size in bytes.
        last_modified: Last modification time, timezone-aware UTC.
    """

    size: int
    last_modified: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "size": self.size,
            "last_modified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_timestamp(cls, size: int, timestamp: float) -> ObjectAttributes:
        """Build attributes from a POSIX timestamp."""
        return cls(size=size, last_modified=datetime.fromtimestamp(timestamp, tz=UTC))

    @classmethod
    def from_datetime(cls, size: int, last_modified: datetime) -> ObjectAttributes:
        """Build attributes from an SDK datetime, assuming UTC when naive."""
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=UTC)
        return cls(size=size, last_modified=last_modified)
