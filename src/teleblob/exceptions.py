"""
Custom exception hierarchy for TeleBlob.

All exceptions inherit from TeleBlobError, which provides optional context
for structured error handling and logging.

A cache miss is not an exception: FileCache.read() returns None.
"""

from __future__ import annotations

from typing import Any


class TeleBlobError(Exception):
    """Base exception for all TeleBlob errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(TeleBlobError):
    """Raised when configuration is invalid or missing."""

    pass


class StorageError(TeleBlobError):
    """Raised when reading, writing or deleting a cache artifact fails.

    Context should include:
        - key: The cache key involved
        - operation: read, write or delete
    """

    pass


class RemoteFetchError(TeleBlobError):
    """Raised when the remote blob store fails.

    Context should include:
        - method: The remote API method
        - status_code: HTTP status code if applicable
    """

    pass


class RemoteUnavailableError(RemoteFetchError):
    """The remote store timed out, refused the connection or returned 5xx."""

    pass


class RemoteNotFoundError(RemoteFetchError):
    """The remote store does not know the requested reference."""

    pass


class RateLimitedError(RemoteFetchError):
    """The remote store asked us to slow down (HTTP 429).

    Attributes:
        retry_after: Seconds the server asked us to wait, if it said.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, context)
        self.retry_after = retry_after


class MediaNotFoundError(TeleBlobError):
    """Raised when a media ID has no metadata record."""

    pass


class MediaValidationError(TeleBlobError):
    """Raised when an upload is rejected.

    Context should include:
        - field: content_type or size
        - value: The rejected value
    """

    pass
