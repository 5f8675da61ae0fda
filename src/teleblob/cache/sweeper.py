"""
Periodic expiry sweep.

Lazy eviction on read keeps served data fresh on its own; the sweeper only
reclaims disk space held by entries nobody asks for anymore.
"""

from __future__ import annotations

import asyncio

from teleblob.cache.base import CacheStore
from teleblob.logging import get_logger

logger = get_logger(__name__)


class CacheSweeper:
    """Runs CacheStore.sweep_expired() on a fixed interval in the background."""

    def __init__(self, cache: CacheStore, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.total_deleted = 0
        self.runs = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Run one sweep off the event loop and return the number deleted."""
        loop = asyncio.get_running_loop()
        deleted = await loop.run_in_executor(None, self.cache.sweep_expired)
        self.runs += 1
        self.total_deleted += deleted
        return deleted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception:
                # Keep the schedule alive; the next run may succeed.
                logger.exception("Periodic cache sweep failed")

    def start(self) -> None:
        """Start sweeping in the background. Calling twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the background sweep and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache sweeper stopped", runs=self.runs, deleted=self.total_deleted)
