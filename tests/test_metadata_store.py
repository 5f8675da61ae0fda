"""
Tests for the media metadata repository.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from teleblob.metadata.store import MediaRepository


@pytest.fixture
async def repository(temp_dir: Path) -> MediaRepository:
    """Create an initialized repository for testing."""
    repo = MediaRepository(temp_dir / "db" / "teleblob.db")
    await repo.init()
    yield repo
    await repo.close()


class TestMediaRepository:
    """Test basic CRUD operations."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, repository: MediaRepository) -> None:
        record = await repository.save_media(
            remote_ref="AgACAgQAAx0",
            content_type="image/png",
            original_name="diagram.png",
            size=2048,
        )

        fetched = await repository.get_media(record.media_id)

        assert fetched == record
        assert fetched.remote_ref == "AgACAgQAAx0"
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, repository: MediaRepository) -> None:
        assert await repository.get_media("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, repository: MediaRepository) -> None:
        ids = {
            (await repository.save_media("ref", "image/png", "a.png", 1)).media_id
            for _ in range(10)
        }
        assert len(ids) == 10

    @pytest.mark.asyncio
    async def test_list_newest_first_with_limit(self, repository: MediaRepository) -> None:
        saved = [
            await repository.save_media(f"ref-{i}", "video/mp4", f"{i}.mp4", i)
            for i in range(5)
        ]

        listed = await repository.list_media(limit=3)

        assert [r.media_id for r in listed] == [r.media_id for r in reversed(saved)][:3]

    @pytest.mark.asyncio
    async def test_delete_and_count(self, repository: MediaRepository) -> None:
        record = await repository.save_media("ref", "image/gif", "a.gif", 10)
        assert await repository.count() == 1

        assert await repository.delete_media(record.media_id) is True
        assert await repository.delete_media(record.media_id) is False
        assert await repository.count() == 0
        assert await repository.get_media(record.media_id) is None

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, temp_dir: Path) -> None:
        db_path = temp_dir / "persist.db"

        repo = MediaRepository(db_path)
        await repo.init()
        record = await repo.save_media("ref", "image/webp", "a.webp", 5)
        await repo.close()

        reopened = MediaRepository(db_path)
        await reopened.init()
        try:
            assert await reopened.get_media(record.media_id) == record
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_use_before_init_raises(self, temp_dir: Path) -> None:
        repo = MediaRepository(temp_dir / "x.db")
        with pytest.raises(RuntimeError, match="not initialized"):
            await repo.get_media("anything")

    def test_public_view_hides_remote_ref(self) -> None:
        from teleblob.types import MediaRecord, utc_now

        record = MediaRecord(
            media_id="m1",
            remote_ref="secret-file-id",
            content_type="image/png",
            original_name="a.png",
            size=3,
            created_at=utc_now(),
        )

        view = record.public_view()

        assert "remote_ref" not in view
        assert "secret-file-id" not in view.values()
        assert view["media_id"] == "m1"
