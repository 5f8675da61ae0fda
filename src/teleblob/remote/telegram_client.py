"""
Telegram Bot API client used as the remote blob store.

Uploads go through sendPhoto/sendVideo/sendDocument and are identified by the
returned file_id. Downloads resolve a file_id to a file path with getFile and
then fetch the file itself.

Errors are mapped onto the remote failure taxonomy:
- RemoteUnavailableError: timeouts, connection errors, HTTP 5xx
- RemoteNotFoundError: HTTP 404, or 400 with a "not found" description
- RateLimitedError: HTTP 429 (honors retry_after when the server sends one)

Unavailable and rate-limited calls are retried with exponential backoff.
Uploads only retry on rate limiting so a slow 5xx never posts a file twice.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from teleblob.config import Settings
from teleblob.exceptions import (
    RateLimitedError,
    RemoteFetchError,
    RemoteNotFoundError,
    RemoteUnavailableError,
)
from teleblob.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_API_BASE = "https://api.telegram.org"

# Stay well under the Bot API's ~30 requests/second ceiling
RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_PERIOD = 1.0  # seconds

# Upper bound on a server-requested retry_after we are willing to sleep
MAX_RETRY_AFTER = 30.0


class RateLimiter:
    """Sliding-window rate limiter shared by all requests of one client."""

    def __init__(self, max_requests: int, period: float) -> None:
        self.max_requests = max_requests
        self.period = period
        self._timestamps: list[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request fits within the rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()

            self._timestamps = [ts for ts in self._timestamps if now - ts < self.period]

            if len(self._timestamps) >= self.max_requests:
                sleep_time = self.period - (now - self._timestamps[0])
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                self._timestamps = self._timestamps[1:]

            self._timestamps.append(loop.time())


class wait_retry_after(wait_base):
    """Wait what a RateLimitedError asked for, otherwise defer to a fallback."""

    def __init__(self, fallback: wait_base) -> None:
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
                return min(float(exc.retry_after), MAX_RETRY_AFTER)
        return self.fallback(retry_state)


class TelegramClient:
    """Async client for the subset of the Bot API used as blob storage."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            bot_token: Bot token, kept out of logs and error messages.
            chat_id: Chat that receives uploads.
            api_base: Bot API base URL.
            timeout: Per-request timeout in seconds.
            max_attempts: Attempts per call, including the first.
            retry_wait: tenacity wait strategy between attempts.
            transport: Optional httpx transport (used by tests).
            rate_limiter: Optional shared rate limiter.
        """
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._bot_token = bot_token
        self._wait = wait_retry_after(
            retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        )
        self._transport = transport
        self._rate_limiter = rate_limiter or RateLimiter(
            RATE_LIMIT_REQUESTS, RATE_LIMIT_PERIOD
        )
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> TelegramClient:
        return cls(
            bot_token=settings.TELEGRAM_BOT_TOKEN,
            chat_id=settings.TELEGRAM_CHAT_ID,
            api_base=settings.TELEGRAM_API_BASE,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
            max_attempts=settings.REMOTE_MAX_ATTEMPTS,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _with_retries(
        self,
        call: Callable[[], Awaitable[T]],
        retry_on: tuple[type[Exception], ...] = (RemoteUnavailableError, RateLimitedError),
    ) -> T:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(retry_on),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "Retrying Telegram request",
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await call()
        raise RemoteUnavailableError("Telegram retries exhausted")  # pragma: no cover

    async def _send(
        self,
        http_method: str,
        url: str,
        what: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request, turning transport failures into remote errors."""
        await self._rate_limiter.acquire()
        client = await self._get_client()
        try:
            return await client.request(http_method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(
                "Telegram request timed out", context={"method": what}
            ) from e
        except httpx.TransportError as e:
            raise RemoteUnavailableError(
                "Telegram request failed", context={"method": what, "error": type(e).__name__}
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str, payload: dict[str, Any]) -> None:
        status = response.status_code
        if response.is_success and payload.get("ok", True):
            return

        description = str(payload.get("description") or response.reason_phrase)
        context = {"method": what, "status_code": status, "description": description}

        if status == 429:
            parameters = payload.get("parameters") or {}
            raise RateLimitedError(
                "Telegram rate limit hit",
                context=context,
                retry_after=parameters.get("retry_after"),
            )
        if status >= 500:
            raise RemoteUnavailableError("Telegram server error", context=context)
        if status == 404 or (status == 400 and "not found" in description.lower()):
            raise RemoteNotFoundError("Telegram file not found", context=context)
        raise RemoteFetchError("Telegram API error", context=context)

    async def _call_api(self, method: str, http_method: str = "GET", **kwargs: Any) -> Any:
        """Call a Bot API method once and return its ``result`` field."""
        url = f"{self.api_base}/bot{self._bot_token}/{method}"
        response = await self._send(http_method, url, method, **kwargs)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        self._raise_for_status(response, method, payload)
        return payload.get("result")

    async def get_file_url(self, remote_ref: str) -> str:
        """Resolve a file_id to a download URL.

        The URL embeds the bot token; do not log or return it to end users.
        """
        result = await self._with_retries(
            lambda: self._call_api("getFile", params={"file_id": remote_ref})
        )
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise RemoteNotFoundError(
                "Telegram returned no file path", context={"method": "getFile"}
            )
        return f"{self.api_base}/file/bot{self._bot_token}/{file_path}"

    async def download_file(self, remote_ref: str) -> bytes:
        """Download the bytes stored under a file_id."""
        url = await self.get_file_url(remote_ref)

        async def _download() -> bytes:
            response = await self._send("GET", url, "download")
            self._raise_for_status(response, "download", {})
            return response.content

        content = await self._with_retries(_download)
        logger.info("Downloaded from Telegram", size=len(content))
        return content

    async def fetch(self, remote_ref: str) -> bytes:
        """Remote fetch entry point used by the retrieval orchestrator."""
        return await self.download_file(remote_ref)

    @staticmethod
    def _upload_method(content_type: str) -> tuple[str, str]:
        if content_type.startswith("image/"):
            return "sendPhoto", "photo"
        if content_type.startswith("video/"):
            return "sendVideo", "video"
        return "sendDocument", "document"

    @staticmethod
    def _extract_file_id(result: dict[str, Any], field: str) -> str:
        """Pick the file_id out of a send* result.

        Photos come back as a list of sizes, largest last. Telegram may also
        store an upload under a different kind than requested (a GIF sent
        with sendPhoto comes back as an animation), so other kinds are
        checked as a fallback.
        """
        for kind in (field, "video", "animation", "document"):
            value = result.get(kind)
            if isinstance(value, list) and value:
                return str(value[-1]["file_id"])
            if isinstance(value, dict) and "file_id" in value:
                return str(value["file_id"])
        raise RemoteFetchError(
            "Telegram upload response has no file_id", context={"field": field}
        )

    async def upload_file(self, content: bytes, filename: str, content_type: str) -> str:
        """Upload content to the configured chat and return its file_id."""
        method, field = self._upload_method(content_type)

        result = await self._with_retries(
            lambda: self._call_api(
                method,
                http_method="POST",
                data={"chat_id": self.chat_id},
                files={field: (filename, content, content_type)},
            ),
            retry_on=(RateLimitedError,),
        )
        file_id = self._extract_file_id(result or {}, field)
        logger.info("Uploaded to Telegram", method=method, size=len(content))
        return file_id
