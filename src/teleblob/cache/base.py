"""
Base interface for cache stores.

The retrieval orchestrator only talks to CacheStore, so the on-disk
mtime-as-clock implementation can be replaced by one that keeps explicit
timestamps without touching retrieval code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from teleblob.types import CacheDirectoryStats


class CacheStore(ABC):
    """Abstract interface for TTL-bounded key->bytes stores."""

    @abstractmethod
    def derive_key(self, identifier: str) -> str:
        """Map a logical identifier to a fixed-width, filesystem-safe key."""
        ...

    @abstractmethod
    def is_fresh(self, identifier: str) -> bool:
        """Return True if a fresh entry exists, evicting it if it is stale."""
        ...

    @abstractmethod
    def read(self, identifier: str) -> bytes | None:
        """Return the cached bytes, or None if nothing fresh is cached."""
        ...

    @abstractmethod
    def write(self, identifier: str, data: bytes) -> None:
        """Store bytes for the identifier, replacing any prior entry."""
        ...

    @abstractmethod
    def delete(self, identifier: str) -> bool:
        """Remove the entry for the identifier. Returns True if one existed."""
        ...

    @abstractmethod
    def sweep_expired(self) -> int:
        """Delete every expired entry and return how many were removed."""
        ...

    @abstractmethod
    def clear_all(self) -> int:
        """Delete every entry unconditionally and return how many were removed."""
        ...

    @abstractmethod
    def stats(self) -> CacheDirectoryStats:
        """Summarize the entries currently held."""
        ...
