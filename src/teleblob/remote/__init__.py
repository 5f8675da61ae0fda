"""Remote blob store clients."""

from teleblob.remote.telegram_client import RateLimiter, TelegramClient

__all__ = ["RateLimiter", "TelegramClient"]
