"""
Media metadata repository.

Maps the public media ID handed to clients onto the Telegram file_id the
bytes live under, plus the content type and original file name needed to
serve them. Stored in SQLite at METADATA_DB_PATH.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import aiosqlite

from teleblob.logging import get_logger
from teleblob.types import MediaRecord, generate_id, utc_now

logger = get_logger(__name__)


class MediaRepository:
    """SQLite-backed store of media metadata records."""

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS media (
                media_id TEXT PRIMARY KEY,
                remote_ref TEXT NOT NULL,
                content_type TEXT NOT NULL,
                original_name TEXT NOT NULL,
                size INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_media_created ON media(created_at)"
        )
        await self._db.commit()
        logger.info("Media repository initialized", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("MediaRepository not initialized. Call init() first.")
        return self._db

    async def save_media(
        self,
        remote_ref: str,
        content_type: str,
        original_name: str,
        size: int,
    ) -> MediaRecord:
        """Record a newly uploaded media object and return it with its new ID."""
        db = self._conn()
        record = MediaRecord(
            media_id=generate_id(),
            remote_ref=remote_ref,
            content_type=content_type,
            original_name=original_name,
            size=size,
            created_at=utc_now(),
        )

        await db.execute(
            """
            INSERT INTO media (
                media_id, remote_ref, content_type, original_name, size, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.media_id,
                record.remote_ref,
                record.content_type,
                record.original_name,
                record.size,
                record.created_at.isoformat(),
            ),
        )
        await db.commit()

        logger.info("Saved media metadata", media_id=record.media_id)
        return record

    async def get_media(self, media_id: str) -> MediaRecord | None:
        """Look up one record. Returns None if the ID is unknown."""
        db = self._conn()
        async with db.execute(
            "SELECT * FROM media WHERE media_id = ?", (media_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            return None
        return self._row_to_record(row)

    async def list_media(self, limit: int = 100) -> list[MediaRecord]:
        """List records, newest first."""
        db = self._conn()
        async with db.execute(
            "SELECT * FROM media ORDER BY created_at DESC, media_id DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_record(row) for row in rows]

    async def delete_media(self, media_id: str) -> bool:
        """Delete a record. Returns True if one was removed."""
        db = self._conn()
        cursor = await db.execute("DELETE FROM media WHERE media_id = ?", (media_id,))
        await db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted media metadata", media_id=media_id)
        return deleted

    async def count(self) -> int:
        """Get total number of records."""
        db = self._conn()
        async with db.execute("SELECT COUNT(*) FROM media") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> MediaRecord:
        return MediaRecord(
            media_id=row["media_id"],
            remote_ref=row["remote_ref"],
            content_type=row["content_type"],
            original_name=row["original_name"],
            size=row["size"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
