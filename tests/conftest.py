"""Pytest fixtures for tubewatch tests."""

import asyncio
import json
from typing import Any, Callable

import pytest
from starlette.websockets import WebSocketDisconnect

from tubewatch.config.settings import Settings
from tubewatch.live.config import LiveConfig
from tubewatch.live.connection import LiveConnection
from tubewatch.live.schemas import ConnectionState
from tubewatch.youtube.schemas import VideoSummary


class FakeTransport:
    """In-memory stand-in for a WebSocket."""

    def __init__(self, fail_send: bool = False, hang_send: bool = False) -> None:
        self.sent: list[str] = []
        self.fail_send = fail_send
        self.hang_send = hang_send
        self.send_attempts = 0
        self.accepted = False
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        self.send_attempts += 1
        if self.hang_send:
            # A peer that stopped reading: the write never completes
            await asyncio.Event().wait()
        if self.fail_send:
            raise RuntimeError("connection lost")
        self.sent.append(data)

    async def receive_text(self) -> str:
        item = await self._inbound.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(None)

    def push(self, message: Any) -> None:
        """Queue an inbound message (dicts are JSON-encoded)."""
        self._inbound.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def disconnect(self) -> None:
        self._inbound.put_nowait(None)

    def messages(self, message_type: str | None = None) -> list[dict]:
        parsed = [json.loads(s) for s in self.sent]
        if message_type is None:
            return parsed
        return [m for m in parsed if m.get("type") == message_type]


class FakeGateway:
    """Scripted video search gateway.

    ``script(keyword, result1, result2, ...)`` queues one result per call;
    a result that is an exception instance is raised instead.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self._scripts: dict[str, list[Any]] = {}

    def script(self, keyword: str, *results: Any) -> None:
        self._scripts.setdefault(keyword, []).extend(results)

    def calls_for(self, keyword: str) -> int:
        return sum(1 for k, _ in self.calls if k == keyword)

    async def search(self, keyword: str, max_results: int) -> list[VideoSummary]:
        self.calls.append((keyword, max_results))
        pending = self._scripts.get(keyword)
        if not pending:
            return []
        result = pending.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def _make_video(video_id: str | None = "v1", title: str | None = None, **overrides: Any) -> VideoSummary:
    fields = {
        "title": title or f"Video {video_id}",
        "description": f"Description of {video_id}",
        "channel_title": "Test Channel",
        "channel_id": "UC_test",
        "thumbnail_url": f"https://i.ytimg.com/vi/{video_id}/default.jpg",
        "video_id": video_id,
        "video_url": f"https://www.youtube.com/watch?v={video_id}",
    }
    fields.update(overrides)
    return VideoSummary(**fields)


@pytest.fixture
def make_video() -> Callable[..., VideoSummary]:
    """Factory for VideoSummary values."""
    return _make_video


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def make_connection() -> Callable[..., LiveConnection]:
    """Factory for OPEN connections over a FakeTransport."""

    def factory(fail_send: bool = False, hang_send: bool = False, send_timeout: float = 10.0) -> LiveConnection:
        return LiveConnection(
            transport=FakeTransport(fail_send=fail_send, hang_send=hang_send),
            state=ConnectionState.OPEN,
            send_timeout=send_timeout,
        )

    return factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def live_config() -> LiveConfig:
    """Live config with long intervals; tests drive ticks by hand."""
    return LiveConfig(
        poll_interval_seconds=3600,
        heartbeat_interval_seconds=3600,
        gateway_timeout_seconds=1.0,
        max_results=10,
        seen_capacity=200,
        circuit_breaker_enabled=False,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        youtube_api_keys="test-key-1,test-key-2",
        youtube_api_url="https://youtube.test/v3",
        max_http_retries=2,
    )
