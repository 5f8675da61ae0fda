"""
Pytest configuration and fixtures for TeleBlob tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from teleblob.cache.file_cache import FileCache
from teleblob.config import Settings, clear_settings_cache

TEST_BOT_TOKEN = "123456789:test-secret-token-abcdef"


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "TELEGRAM_BOT_TOKEN": TEST_BOT_TOKEN,
        "TELEGRAM_CHAT_ID": "-1001234567890",
        "CACHE_DIR": ".test_cache",
        "CACHE_TTL_SECONDS": "120",
        "METADATA_DB_PATH": ".test_cache/teleblob.db",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(
    mock_env_vars: dict[str, str], temp_dir: Path
) -> Generator[Settings, None, None]:
    """Provide a Settings instance whose directories live in temp_dir."""
    with patch.dict(
        os.environ,
        {
            "CACHE_DIR": str(temp_dir / "cache"),
            "METADATA_DB_PATH": str(temp_dir / "db" / "teleblob.db"),
        },
    ):
        clear_settings_cache()
        from teleblob.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def file_cache(temp_dir: Path, clock: FakeClock) -> FileCache:
    """FileCache with a 60 second TTL driven by the fake clock."""
    return FileCache(temp_dir / "cache", ttl_seconds=60, clock=clock)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
