"""
MediaService: the operations a front end exposes.

Composes the metadata repository, the Telegram client and the cache-aside
orchestrator. Unknown media IDs are rejected here, after the metadata lookup
and before the orchestrator is ever asked to resolve anything.
"""

from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Any

from teleblob.cache.base import CacheStore
from teleblob.cache.file_cache import FileCache
from teleblob.cache.retrieval import RetrievalOrchestrator
from teleblob.cache.sweeper import CacheSweeper
from teleblob.config import Settings
from teleblob.exceptions import MediaNotFoundError, MediaValidationError
from teleblob.logging import get_logger, log_context
from teleblob.metadata.store import MediaRepository
from teleblob.remote.telegram_client import TelegramClient
from teleblob.types import ALLOWED_CONTENT_TYPES, MediaPayload, MediaRecord, generate_id

logger = get_logger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class MediaService:
    """Upload, fetch and describe media objects."""

    def __init__(
        self,
        repository: MediaRepository,
        remote: TelegramClient,
        cache: CacheStore,
        coalesce: bool = True,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        sweep_interval_seconds: float | None = None,
    ) -> None:
        self.repository = repository
        self.remote = remote
        self.cache = cache
        self.orchestrator = RetrievalOrchestrator(cache, coalesce=coalesce)
        self.max_upload_bytes = max_upload_bytes
        self.sweeper = (
            CacheSweeper(cache, sweep_interval_seconds) if sweep_interval_seconds else None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> MediaService:
        """Wire up the service from application settings."""
        settings.ensure_directories()
        return cls(
            repository=MediaRepository(settings.METADATA_DB_PATH),
            remote=TelegramClient.from_settings(settings),
            cache=FileCache(settings.CACHE_DIR, settings.CACHE_TTL_SECONDS),
            coalesce=settings.COALESCE_FETCHES,
            max_upload_bytes=settings.MAX_UPLOAD_BYTES,
            sweep_interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS,
        )

    async def start(self) -> None:
        """Open the repository, sweep expired entries and start the sweeper."""
        await self.repository.init()

        loop = asyncio.get_running_loop()
        deleted = await loop.run_in_executor(None, self.cache.sweep_expired)
        logger.info("Startup cache sweep complete", deleted=deleted)

        if self.sweeper is not None:
            self.sweeper.start()

    async def close(self) -> None:
        """Stop background work and release connections."""
        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.orchestrator.wait_idle()
        await self.remote.close()
        await self.repository.close()

    async def __aenter__(self) -> MediaService:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def validate_upload(self, content: bytes, content_type: str) -> None:
        """Reject uploads with a disallowed type or an oversized body.

        Raises:
            MediaValidationError: If the upload is not acceptable.
        """
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise MediaValidationError(
                "Invalid file type. Only images and videos are allowed.",
                context={"field": "content_type", "value": content_type},
            )
        if not content:
            raise MediaValidationError(
                "Uploaded file is empty", context={"field": "size", "value": 0}
            )
        if len(content) > self.max_upload_bytes:
            raise MediaValidationError(
                "Uploaded file is too large",
                context={
                    "field": "size",
                    "value": len(content),
                    "limit": self.max_upload_bytes,
                },
            )

    async def upload(self, content: bytes, filename: str, content_type: str) -> MediaRecord:
        """Store content remotely and record its metadata.

        The cache is not populated on upload; the first fetch does that.
        """
        with log_context(request_id=generate_id("req"), operation="upload"):
            self.validate_upload(content, content_type)
            logger.info(
                "Uploading media", filename=filename, content_type=content_type, size=len(content)
            )

            remote_ref = await self.remote.upload_file(content, filename, content_type)
            record = await self.repository.save_media(
                remote_ref=remote_ref,
                content_type=content_type,
                original_name=filename,
                size=len(content),
            )
            return record

    async def _require(self, media_id: str) -> MediaRecord:
        record = await self.repository.get_media(media_id)
        if record is None:
            raise MediaNotFoundError("Media not found", context={"media_id": media_id})
        return record

    async def fetch(self, media_id: str) -> MediaPayload:
        """Return the bytes and serving metadata for media_id.

        Raises:
            MediaNotFoundError: If media_id has no metadata record.
            RemoteFetchError: If the bytes were not cached and Telegram failed.
            StorageError: If a fresh cached copy could not be read.
        """
        with log_context(request_id=generate_id("req"), media_id=media_id, operation="fetch"):
            record = await self._require(media_id)

            async def remote_fetch(_identifier: str) -> bytes:
                return await self.remote.fetch(record.remote_ref)

            result = await self.orchestrator.resolve_detailed(media_id, remote_fetch)
            return MediaPayload(
                data=result.data,
                content_type=record.content_type,
                display_name=record.original_name,
                cache_status=result.status,
            )

    async def get_info(self, media_id: str) -> dict[str, Any]:
        """Return the public metadata for media_id."""
        record = await self._require(media_id)
        return record.public_view()

    async def list_media(self, limit: int = 100) -> list[dict[str, Any]]:
        """Return public metadata for the most recent uploads."""
        records = await self.repository.list_media(limit)
        return [record.public_view() for record in records]

    async def delete(self, media_id: str) -> None:
        """Forget media_id and drop its cached bytes.

        The Telegram message itself is left in place.
        """
        with log_context(media_id=media_id, operation="delete"):
            await self._require(media_id)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.cache.delete, media_id)
            await self.repository.delete_media(media_id)
