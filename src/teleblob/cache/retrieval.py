"""
Cache-aside retrieval.

RetrievalOrchestrator resolves one identifier to bytes:

    CACHE_LOOKUP -> HIT -> done
                 -> MISS -> REMOTE_FETCH -> OK -> CACHE_WRITE (best effort) -> done
                                         -> FAIL -> error propagated as-is

Remote fetch failures are never retried or wrapped here; retry policy belongs
to the remote client. A failed cache write is logged and counted but the
fetched bytes are still returned.

Concurrent misses for the same key share one fetch when coalescing is on.
The fetch-and-store step runs in its own task and callers await it through
asyncio.shield(), so a caller that goes away does not cancel the fetch and
the cache is still populated for the next request.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from teleblob.cache.base import CacheStore
from teleblob.exceptions import StorageError
from teleblob.logging import get_logger
from teleblob.types import CacheStatus, ResolveResult, RetrievalStats

logger = get_logger(__name__)

RemoteFetch = Callable[[str], Awaitable[bytes]]


class RetrievalOrchestrator:
    """Resolves identifiers to bytes, minimizing remote fetches.

    Holds no persistent state; the only shared state is the map of
    in-flight fetches used for coalescing.
    """

    def __init__(self, cache: CacheStore, coalesce: bool = True) -> None:
        """Initialize the orchestrator.

        Args:
            cache: Store consulted before, and populated after, remote fetches.
            coalesce: Share one remote fetch between concurrent misses on a key.
        """
        self.cache = cache
        self.coalesce = coalesce
        self.stats = RetrievalStats()
        self._in_flight: dict[str, asyncio.Task[bytes]] = {}
        self._tasks: set[asyncio.Task[bytes]] = set()

    async def resolve(self, identifier: str, remote_fetch: RemoteFetch) -> bytes:
        """Return the bytes for identifier, from cache or from remote_fetch."""
        result = await self.resolve_detailed(identifier, remote_fetch)
        return result.data

    async def resolve_detailed(
        self, identifier: str, remote_fetch: RemoteFetch
    ) -> ResolveResult:
        """Like resolve(), but also report whether the cache was hit.

        Raises:
            StorageError: If a fresh cache entry exists but cannot be read.
            Exception: Whatever remote_fetch raised, unchanged.
        """
        loop = asyncio.get_running_loop()
        key = self.cache.derive_key(identifier)

        cached = await loop.run_in_executor(None, self.cache.read, identifier)
        if cached is not None:
            self.stats.hits += 1
            logger.info("Cache hit", key=key, size=len(cached))
            return ResolveResult(data=cached, status=CacheStatus.HIT)

        self.stats.misses += 1
        logger.info("Cache miss", key=key)

        task = self._in_flight.get(key) if self.coalesce else None
        if task is not None and not task.done():
            self.stats.coalesced += 1
            logger.debug("Joining in-flight fetch", key=key)
        else:
            # No await between lookup and insert, so this is atomic on the loop.
            task = self._spawn(key, identifier, remote_fetch)

        data = await asyncio.shield(task)
        return ResolveResult(data=data, status=CacheStatus.MISS)

    def _spawn(self, key: str, identifier: str, remote_fetch: RemoteFetch) -> asyncio.Task[bytes]:
        task = asyncio.create_task(self._fetch_and_store(key, identifier, remote_fetch))
        self._tasks.add(task)
        if self.coalesce:
            self._in_flight[key] = task
        task.add_done_callback(lambda t: self._forget(key, t))
        return task

    def _forget(self, key: str, task: asyncio.Task[bytes]) -> None:
        self._tasks.discard(task)
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception retrieved; callers that stayed get it via shield().
        if not task.cancelled():
            task.exception()

    async def _fetch_and_store(
        self, key: str, identifier: str, remote_fetch: RemoteFetch
    ) -> bytes:
        self.stats.remote_fetches += 1
        data = await remote_fetch(identifier)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.cache.write, identifier, data)
        except (StorageError, OSError) as e:
            self.stats.write_failures += 1
            logger.warning(
                "Cache write failed, returning fetched bytes uncached",
                key=key,
                error=str(e),
            )

        return data

    @property
    def in_flight(self) -> int:
        """Number of fetches currently running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for background fetches to finish, ignoring their outcome."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
