"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files once at startup.
Settings are treated as immutable afterwards; there is no runtime reconfiguration.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BOT_TOKEN_RE = re.compile(r"^\d+:[A-Za-z0-9_-]+$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Required:
        TELEGRAM_BOT_TOKEN: Bot token issued by BotFather (<id>:<secret>)
        TELEGRAM_CHAT_ID: Chat the bot uploads media into

    Optional:
        TELEGRAM_API_BASE: Bot API base URL
        CACHE_DIR: Directory holding cached media
        CACHE_TTL_SECONDS: Maximum age of a cached entry
        CACHE_SWEEP_INTERVAL_SECONDS: Run the expiry sweep on this interval
        COALESCE_FETCHES: Share one remote fetch between concurrent misses
        METADATA_DB_PATH: SQLite database for media metadata
        REMOTE_TIMEOUT_SECONDS: Timeout for Bot API requests
        REMOTE_MAX_ATTEMPTS: Attempts per Bot API call before giving up
        MAX_UPLOAD_BYTES: Largest accepted upload
        LOG_LEVEL: Logging level
        LOG_FILE: JSON lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Required - Telegram bot identity
    TELEGRAM_BOT_TOKEN: str = Field(..., description="Telegram bot token")
    TELEGRAM_CHAT_ID: str = Field(..., description="Telegram chat ID for uploads")
    TELEGRAM_API_BASE: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API base URL"
    )

    # Cache
    CACHE_DIR: Path = Field(default=Path("cache"), description="Cache directory")
    CACHE_TTL_SECONDS: int = Field(
        default=3600, ge=1, description="Cache entry time-to-live in seconds"
    )
    CACHE_SWEEP_INTERVAL_SECONDS: int | None = Field(
        default=None, ge=1, description="Interval for the periodic expiry sweep"
    )
    COALESCE_FETCHES: bool = Field(
        default=True, description="Coalesce concurrent remote fetches per key"
    )

    # Metadata
    METADATA_DB_PATH: Path = Field(
        default=Path("teleblob.db"), description="SQLite metadata database"
    )

    # Remote
    REMOTE_TIMEOUT_SECONDS: float = Field(
        default=30.0, gt=0.0, description="Bot API request timeout"
    )
    REMOTE_MAX_ATTEMPTS: int = Field(
        default=3, ge=1, le=10, description="Attempts per Bot API call"
    )

    # Uploads (Telegram bots are limited to 50MB)
    MAX_UPLOAD_BYTES: int = Field(
        default=50 * 1024 * 1024, ge=1, description="Maximum upload size in bytes"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON log file")

    @field_validator("TELEGRAM_BOT_TOKEN")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        """Validate that the bot token has the <id>:<secret> shape."""
        v = v.strip()
        if not _BOT_TOKEN_RE.match(v):
            raise ValueError("TELEGRAM_BOT_TOKEN must look like '<bot id>:<secret>'")
        return v

    @field_validator("TELEGRAM_CHAT_ID")
    @classmethod
    def validate_chat_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("TELEGRAM_CHAT_ID must not be empty")
        return v

    @field_validator("TELEGRAM_API_BASE")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def ensure_directories(self) -> None:
        """Create the cache directory and the metadata database parent."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        self.METADATA_DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with the bot token redacted for display."""
        token = self.TELEGRAM_BOT_TOKEN
        bot_id, _, secret = token.partition(":")
        redacted_token = f"{bot_id}:{secret[:4]}..." if len(secret) > 8 else "***"

        return {
            "TELEGRAM_BOT_TOKEN": redacted_token,
            "TELEGRAM_CHAT_ID": self.TELEGRAM_CHAT_ID,
            "TELEGRAM_API_BASE": self.TELEGRAM_API_BASE,
            "CACHE_DIR": str(self.CACHE_DIR),
            "CACHE_TTL_SECONDS": self.CACHE_TTL_SECONDS,
            "CACHE_SWEEP_INTERVAL_SECONDS": self.CACHE_SWEEP_INTERVAL_SECONDS,
            "COALESCE_FETCHES": self.COALESCE_FETCHES,
            "METADATA_DB_PATH": str(self.METADATA_DB_PATH),
            "REMOTE_TIMEOUT_SECONDS": self.REMOTE_TIMEOUT_SECONDS,
            "REMOTE_MAX_ATTEMPTS": self.REMOTE_MAX_ATTEMPTS,
            "MAX_UPLOAD_BYTES": self.MAX_UPLOAD_BYTES,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
