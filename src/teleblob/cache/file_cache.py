"""
File-based TTL cache for media blobs.

Layout: one flat directory, one file per entry.
- File name: MD5 hex digest of the logical identifier (32 chars)
- File contents: the raw cached bytes
- File mtime: the time the entry was written, used as the freshness clock

There is no index file; the directory listing is the source of truth.

Writes go to a temporary file in the same directory and are moved into place
with os.replace(), so readers and sweeps only ever see complete artifacts.
Deletes compare inode and mtime with what was inspected first and leave the
file alone if it changed in between, so an entry rewritten mid-sweep is kept.
The re-check and the unlink are two calls, so a rewrite landing between them
can still be lost; the next read then misses and refetches.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
import time
from pathlib import Path
from typing import Callable

from teleblob.cache.base import CacheStore
from teleblob.exceptions import StorageError
from teleblob.logging import get_logger
from teleblob.types import CacheDirectoryStats

logger = get_logger(__name__)

_TMP_SUFFIX = ".tmp"


def _is_temp_name(name: str) -> bool:
    return name.startswith(".") and name.endswith(_TMP_SUFFIX)


class FileCache(CacheStore):
    """On-disk cache with TTL freshness based on file modification time.

    Thread-safe and process-safe for concurrent readers and writers sharing
    one directory; last writer wins.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache and create its directory.

        Args:
            cache_dir: Directory owned exclusively by this cache.
            ttl_seconds: Maximum age of a servable entry.
            clock: Returns the current time as a POSIX timestamp.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def derive_key(self, identifier: str) -> str:
        """Return the 128-bit MD5 digest of the identifier as 32 hex chars."""
        return hashlib.md5(identifier.encode("utf-8"), usedforsecurity=False).hexdigest()

    def _entry_path(self, key: str) -> Path:
        return self.cache_dir / key

    def _is_expired(self, st: os.stat_result) -> bool:
        return self._clock() - st.st_mtime >= self.ttl_seconds

    def _remove_if_unchanged(self, path: Path, seen: os.stat_result) -> bool:
        """Delete path only if it is still the file described by seen.

        Returns:
            True if this call removed the file.
        """
        try:
            current = path.stat()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                "Failed to inspect cache entry",
                context={"key": path.name, "operation": "stat", "error": str(e)},
            ) from e

        if (current.st_ino, current.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
            logger.debug("Entry rewritten before eviction, keeping it", key=path.name)
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                "Failed to delete cache entry",
                context={"key": path.name, "operation": "delete", "error": str(e)},
            ) from e
        return True

    def is_fresh(self, identifier: str) -> bool:
        """Check whether a fresh entry exists for the identifier.

        A stale entry is deleted as part of the check.
        """
        key = self.derive_key(identifier)
        path = self._entry_path(key)

        try:
            st = path.stat()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                "Failed to inspect cache entry",
                context={"key": key, "operation": "stat", "error": str(e)},
            ) from e

        if not self._is_expired(st):
            return True

        try:
            if self._remove_if_unchanged(path, st):
                logger.debug("Evicted stale entry", key=key)
        except StorageError as e:
            logger.warning("Could not evict stale entry", key=key, error=str(e))
        return False

    def read(self, identifier: str) -> bytes | None:
        """Return cached bytes for the identifier, or None if not cached.

        Raises:
            StorageError: If a fresh entry exists but cannot be read.
        """
        key = self.derive_key(identifier)
        if not self.is_fresh(identifier):
            logger.debug("Cache miss", key=key)
            return None

        try:
            data = self._entry_path(key).read_bytes()
        except FileNotFoundError:
            # Cleared between the freshness check and the read.
            logger.debug("Entry vanished before read", key=key)
            return None
        except OSError as e:
            raise StorageError(
                "Failed to read cache entry",
                context={"key": key, "operation": "read", "error": str(e)},
            ) from e

        logger.debug("Cache hit", key=key, size=len(data))
        return data

    def write(self, identifier: str, data: bytes) -> None:
        """Persist data for the identifier, atomically replacing any prior entry.

        Raises:
            StorageError: If the entry could not be written.
        """
        key = self.derive_key(identifier)
        path = self._entry_path(key)
        tmp_path: str | None = None

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{key}.", suffix=_TMP_SUFFIX, dir=self.cache_dir
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            now = self._clock()
            os.utime(tmp_path, (now, now))
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
                except OSError:
                    logger.warning("Could not remove temp file", path=tmp_path)
            raise StorageError(
                "Failed to write cache entry",
                context={"key": key, "operation": "write", "error": str(e)},
            ) from e

        logger.debug("Cached entry", key=key, size=len(data))

    def delete(self, identifier: str) -> bool:
        """Remove the entry for the identifier regardless of age."""
        key = self.derive_key(identifier)
        try:
            self._entry_path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                "Failed to delete cache entry",
                context={"key": key, "operation": "delete", "error": str(e)},
            ) from e
        logger.debug("Deleted entry", key=key)
        return True

    def _scan(self) -> list[os.DirEntry[str]]:
        try:
            with os.scandir(self.cache_dir) as it:
                return [entry for entry in it if entry.is_file(follow_symlinks=False)]
        except FileNotFoundError:
            return []

    def sweep_expired(self) -> int:
        """Delete every entry at or past the TTL.

        Orphaned temp files older than the TTL are removed too but are not
        counted. A failure to delete one file is logged and the sweep goes on.

        Returns:
            Number of cache entries deleted.
        """
        deleted = 0

        for entry in self._scan():
            path = Path(entry.path)
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Sweep could not inspect entry", key=entry.name, error=str(e))
                continue

            if not self._is_expired(st):
                continue

            try:
                removed = self._remove_if_unchanged(path, st)
            except StorageError as e:
                logger.warning("Sweep could not delete entry", key=entry.name, error=str(e))
                continue

            if removed and not _is_temp_name(entry.name):
                deleted += 1

        if deleted:
            logger.info("Swept expired cache entries", deleted=deleted)
        return deleted

    def clear_all(self) -> int:
        """Delete every entry and temp file unconditionally.

        Returns:
            Number of cache entries deleted.
        """
        deleted = 0

        for entry in self._scan():
            try:
                os.unlink(entry.path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(
                    "Failed to clear cache entry",
                    context={"key": entry.name, "operation": "delete", "error": str(e)},
                ) from e
            if not _is_temp_name(entry.name):
                deleted += 1

        logger.info("Cleared cache", deleted=deleted)
        return deleted

    def stats(self) -> CacheDirectoryStats:
        """Count entries and bytes without evicting anything."""
        stats = CacheDirectoryStats()

        for entry in self._scan():
            if _is_temp_name(entry.name):
                continue
            try:
                st = entry.stat(follow_symlinks=False)
            except FileNotFoundError:
                continue

            stats.entries += 1
            stats.total_bytes += st.st_size
            if self._is_expired(st):
                stats.expired += 1
            else:
                stats.fresh += 1

        return stats
