"""Broadcast dispatcher for live video and heartbeat messages.

Video messages go only to the connections watching the video's keyword,
each echoing the keyword as that connection spelled it at subscribe time;
heartbeats go to every registered connection. Sends to different
connections run concurrently. A failed send never reaches the caller:
the connection is handed to the failure callback (the connection
manager's close path, which unregisters it) and the fan-out continues.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Iterable

import structlog

from tubewatch.live.registry import SubscriptionRegistry
from tubewatch.live.schemas import (
    MESSAGE_HEARTBEAT,
    MESSAGE_VIDEO,
    TransportError,
    heartbeat_message,
    video_message,
)
from tubewatch.observability.metrics import MetricsCollector
from tubewatch.youtube.schemas import VideoSummary

if TYPE_CHECKING:
    from tubewatch.live.connection import LiveConnection

logger = structlog.get_logger(__name__)

SendFailureHandler = Callable[["LiveConnection", Exception], Awaitable[None]]


class BroadcastDispatcher:
    """Fans messages out to registered live connections.

    Args:
        registry: Source of watchers and connections.
        on_send_failure: Awaited with the connection and the error whenever
            a send fails.
        metrics: Optional Prometheus collector.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        on_send_failure: SendFailureHandler | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._registry = registry
        self._on_send_failure = on_send_failure
        self._metrics = metrics
        self._running = False

    def set_failure_handler(self, handler: SendFailureHandler) -> None:
        self._on_send_failure = handler

    async def notify_video(self, keyword: str, video: VideoSummary) -> int:
        """Send a ``video`` message to every watcher of ``keyword``.

        Each watcher gets the keyword back in its own spelling; the payload is
        serialized once per distinct spelling.

        Returns:
            Number of connections the message reached.
        """
        watchers = self._registry.watchers_of(keyword)
        if not watchers:
            return 0
        texts: dict[str, str] = {}
        deliveries = []
        for connection in watchers:
            spelling = self._registry.spelling_of(connection, keyword)
            if spelling not in texts:
                texts[spelling] = json.dumps(video_message(spelling, video))
            deliveries.append((connection, texts[spelling]))
        sent = await self._fan_out(deliveries, MESSAGE_VIDEO)
        logger.debug("Video broadcast", keyword=keyword, video_id=video.video_id, sent=sent)
        return sent

    async def heartbeat(self) -> int:
        """Send a ``heartbeat`` message to every registered connection."""
        connections = self._registry.all_connections()
        if not connections:
            return 0
        text = json.dumps(heartbeat_message())
        return await self._fan_out(((conn, text) for conn in connections), MESSAGE_HEARTBEAT)

    async def run_heartbeats(self, interval: float) -> None:
        """Background task: heartbeat every ``interval`` seconds until cancelled."""
        self._running = True
        try:
            while self._running:
                await asyncio.sleep(interval)
                sent = await self.heartbeat()
                logger.debug("Heartbeat sent", connections=sent)
        except asyncio.CancelledError:
            pass
        finally:
            self._running = False

    async def _fan_out(
        self,
        deliveries: Iterable[tuple["LiveConnection", str]],
        message_type: str,
    ) -> int:
        targets = list(deliveries)
        results = await asyncio.gather(
            *(self._send_one(conn, text) for conn, text in targets),
        )
        sent = sum(1 for ok in results if ok)
        if self._metrics:
            self._metrics.record_delivery(message_type, sent=sent, failed=len(targets) - sent)
        return sent

    async def _send_one(self, connection: "LiveConnection", text: str) -> bool:
        try:
            await connection.send_text(text)
            return True
        except TransportError as e:
            logger.info(
                "Send failed, closing connection",
                connection_id=connection.connection_id,
                error=str(e),
            )
            await self._handle_failure(connection, e)
            return False

    async def _handle_failure(self, connection: "LiveConnection", error: Exception) -> None:
        if self._on_send_failure is None:
            return
        try:
            await self._on_send_failure(connection, error)
        except Exception as e:
            logger.warning(
                "Send failure handler raised",
                connection_id=connection.connection_id,
                error=str(e),
            )
