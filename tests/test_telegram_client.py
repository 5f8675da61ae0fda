"""
Tests for the Telegram Bot API client.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest
from tenacity import wait_none

from teleblob.config import Settings
from teleblob.exceptions import (
    RateLimitedError,
    RemoteFetchError,
    RemoteNotFoundError,
    RemoteUnavailableError,
)
from teleblob.remote.telegram_client import RateLimiter, TelegramClient

from conftest import TEST_BOT_TOKEN

API = "https://api.telegram.test"


def make_client(
    handler: Callable[[httpx.Request], httpx.Response], max_attempts: int = 3
) -> TelegramClient:
    return TelegramClient(
        bot_token=TEST_BOT_TOKEN,
        chat_id="-100500",
        api_base=API,
        max_attempts=max_attempts,
        retry_wait=wait_none(),
        transport=httpx.MockTransport(handler),
    )


def get_file_ok(file_path: str = "photos/file_7.jpg") -> httpx.Response:
    return httpx.Response(
        200, json={"ok": True, "result": {"file_id": "F1", "file_path": file_path}}
    )


class TestRateLimiter:
    """Test rate limiter functionality."""

    @pytest.mark.asyncio
    async def test_allows_requests_within_limit(self) -> None:
        limiter = RateLimiter(max_requests=5, period=1.0)
        for _ in range(5):
            await limiter.acquire()

    @pytest.mark.asyncio
    async def test_delays_when_exceeded(self) -> None:
        limiter = RateLimiter(max_requests=2, period=0.1)
        loop = asyncio.get_running_loop()

        await limiter.acquire()
        await limiter.acquire()

        start = loop.time()
        await limiter.acquire()
        assert loop.time() - start >= 0.05


class TestDownload:
    """Test getFile + file download."""

    @pytest.mark.asyncio
    async def test_download_file(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            if request.url.path.endswith("/getFile"):
                assert request.url.params["file_id"] == "F1"
                return get_file_ok()
            return httpx.Response(200, content=b"\x89PNG bytes")

        client = make_client(handler)
        try:
            data = await client.fetch("F1")
        finally:
            await client.close()

        assert data == b"\x89PNG bytes"
        assert seen == [
            f"/bot{TEST_BOT_TOKEN}/getFile",
            f"/file/bot{TEST_BOT_TOKEN}/photos/file_7.jpg",
        ]

    @pytest.mark.asyncio
    async def test_get_file_url(self) -> None:
        client = make_client(lambda request: get_file_ok("videos/v.mp4"))
        try:
            url = await client.get_file_url("F1")
        finally:
            await client.close()

        assert url == f"{API}/file/bot{TEST_BOT_TOKEN}/videos/v.mp4"

    @pytest.mark.asyncio
    async def test_unknown_file_is_not_found_and_not_retried(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(
                400, json={"ok": False, "error_code": 400, "description": "Bad Request: file not found"}
            )

        client = make_client(handler)
        with pytest.raises(RemoteNotFoundError) as exc_info:
            await client.download_file("missing")
        await client.close()

        assert calls["n"] == 1
        assert exc_info.value.context["status_code"] == 400

    @pytest.mark.asyncio
    async def test_download_404_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/getFile"):
                return get_file_ok()
            return httpx.Response(404)

        client = make_client(handler)
        with pytest.raises(RemoteNotFoundError):
            await client.download_file("F1")
        await client.close()

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self) -> None:
        responses = iter([httpx.Response(502), httpx.Response(503), get_file_ok()])

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/getFile"):
                return next(responses)
            return httpx.Response(200, content=b"ok")

        client = make_client(handler, max_attempts=3)
        try:
            assert await client.download_file("F1") == b"ok"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_attempts(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(500, json={"ok": False, "description": "Internal"})

        client = make_client(handler, max_attempts=2)
        with pytest.raises(RemoteUnavailableError):
            await client.download_file("F1")
        await client.close()

        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried_then_surfaced(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(
                429,
                json={
                    "ok": False,
                    "description": "Too Many Requests: retry after 0",
                    "parameters": {"retry_after": 0},
                },
            )

        client = make_client(handler, max_attempts=2)
        with pytest.raises(RateLimitedError) as exc_info:
            await client.download_file("F1")
        await client.close()

        assert calls["n"] == 2
        assert exc_info.value.retry_after == 0

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler, max_attempts=1)
        with pytest.raises(RemoteUnavailableError, match="timed out"):
            await client.download_file("F1")
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler, max_attempts=1)
        with pytest.raises(RemoteUnavailableError):
            await client.download_file("F1")
        await client.close()

    @pytest.mark.asyncio
    async def test_errors_do_not_leak_bot_token(self) -> None:
        client = make_client(lambda request: httpx.Response(500), max_attempts=1)
        with pytest.raises(RemoteUnavailableError) as exc_info:
            await client.download_file("F1")
        await client.close()

        assert TEST_BOT_TOKEN not in str(exc_info.value)
        assert TEST_BOT_TOKEN not in repr(exc_info.value)


class TestUpload:
    """Test sendPhoto / sendVideo / sendDocument."""

    @pytest.mark.asyncio
    async def test_upload_photo_returns_largest_size(self) -> None:
        captured: dict[str, httpx.Request] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(
                200,
                json={
                    "ok": True,
                    "result": {
                        "message_id": 1,
                        "photo": [
                            {"file_id": "small", "width": 90},
                            {"file_id": "large", "width": 1280},
                        ],
                    },
                },
            )

        client = make_client(handler)
        try:
            file_id = await client.upload_file(b"jpegdata", "cat.jpg", "image/jpeg")
        finally:
            await client.close()

        request = captured["request"]
        body = request.read()
        assert file_id == "large"
        assert request.method == "POST"
        assert request.url.path.endswith("/sendPhoto")
        assert b'name="chat_id"' in body
        assert b"-100500" in body
        assert b'name="photo"; filename="cat.jpg"' in body

    @pytest.mark.asyncio
    async def test_upload_video(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/sendVideo")
            return httpx.Response(
                200, json={"ok": True, "result": {"video": {"file_id": "VID"}}}
            )

        client = make_client(handler)
        try:
            assert await client.upload_file(b"mp4", "clip.mp4", "video/mp4") == "VID"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_gif_stored_as_animation(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"ok": True, "result": {"animation": {"file_id": "ANIM"}}},
            )

        client = make_client(handler)
        try:
            assert await client.upload_file(b"gif", "a.gif", "image/gif") == "ANIM"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_other_types_use_send_document(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/sendDocument")
            return httpx.Response(
                200, json={"ok": True, "result": {"document": {"file_id": "DOC"}}}
            )

        client = make_client(handler)
        try:
            assert await client.upload_file(b"%PDF", "a.pdf", "application/pdf") == "DOC"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_upload_server_error_is_not_retried(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(502)

        client = make_client(handler, max_attempts=3)
        with pytest.raises(RemoteUnavailableError):
            await client.upload_file(b"x", "x.png", "image/png")
        await client.close()

        assert calls["n"] == 1

    @pytest.mark.asyncio
    async def test_api_error_with_ok_false(self) -> None:
        client = make_client(
            lambda request: httpx.Response(
                403, json={"ok": False, "description": "Forbidden: bot was kicked"}
            )
        )
        with pytest.raises(RemoteFetchError) as exc_info:
            await client.upload_file(b"x", "x.png", "image/png")
        await client.close()

        assert type(exc_info.value) is RemoteFetchError
        assert "kicked" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_upload_response_without_file_id(self) -> None:
        client = make_client(
            lambda request: httpx.Response(200, json={"ok": True, "result": {"message_id": 3}})
        )
        with pytest.raises(RemoteFetchError):
            await client.upload_file(b"x", "x.png", "image/png")
        await client.close()


def test_from_settings(mock_settings: Settings) -> None:
    client = TelegramClient.from_settings(mock_settings)

    assert client.chat_id == mock_settings.TELEGRAM_CHAT_ID
    assert client.api_base == "https://api.telegram.org"
    assert client.max_attempts == mock_settings.REMOTE_MAX_ATTEMPTS
