"""
Core types for TeleBlob.

This module defines the data structures passed between components:
- Enums for cache outcomes
- Frozen dataclasses for media metadata and resolved payloads
- Cache directory statistics
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from uuid6 import uuid7

# Media types accepted for upload
ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/mpeg",
    "video/quicktime",
})


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID.

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class CacheStatus(str, Enum):
    """Outcome of the cache lookup for a single retrieval."""

    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True)
class MediaRecord:
    """Metadata for one uploaded media object.

    remote_ref is the Telegram file_id and must never leave the service
    boundary; use public_view() for anything user-facing.
    """

    media_id: str
    remote_ref: str
    content_type: str
    original_name: str
    size: int
    created_at: datetime

    def public_view(self) -> dict[str, Any]:
        """Return the record without the remote reference."""
        return {
            "media_id": self.media_id,
            "content_type": self.content_type,
            "original_name": self.original_name,
            "size": self.size,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ResolveResult:
    """Bytes returned by the orchestrator along with how they were obtained."""

    data: bytes
    status: CacheStatus


@dataclass(frozen=True)
class MediaPayload:
    """Everything a front end needs to answer a media request."""

    data: bytes
    content_type: str
    display_name: str
    cache_status: CacheStatus

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class CacheDirectoryStats:
    """Snapshot of the cache directory contents."""

    entries: int = 0
    fresh: int = 0
    expired: int = 0
    total_bytes: int = 0


@dataclass
class RetrievalStats:
    """Counters kept by the retrieval orchestrator for the process lifetime."""

    hits: int = 0
    misses: int = 0
    remote_fetches: int = 0
    write_failures: int = 0
    coalesced: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "remote_fetches": self.remote_fetches,
            "write_failures": self.write_failures,
            "coalesced": self.coalesced,
        }
