"""
Live feed service - wires the keyword polling and broadcast engine.

Owns one of each component and the two background tasks (poll ticker and
heartbeat ticker):

    gateway ─▶ PollScheduler ─▶ SeenVideoCache ─▶ BroadcastDispatcher ─▶ connections
                    ▲                                     │
                    └──── SubscriptionRegistry ◀── ConnectionManager

Lifecycle:
    1. ``start()`` - spawn the poll and heartbeat tasks
    2. ``serve(transport)`` - run one client connection to completion
    3. ``stop()`` - cancel background tasks, close every connection
"""

import asyncio
from typing import Any

import structlog

from tubewatch.live.config import LiveConfig
from tubewatch.live.connection import ConnectionManager, Transport
from tubewatch.live.dispatcher import BroadcastDispatcher
from tubewatch.live.registry import SubscriptionRegistry
from tubewatch.live.scheduler import PollScheduler
from tubewatch.live.seen_cache import SeenVideoCache
from tubewatch.observability.metrics import MetricsCollector
from tubewatch.youtube.client import VideoSearchGateway

logger = structlog.get_logger(__name__)


class LiveFeedService:
    """Keyword subscriptions in, new-video notifications out.

    Args:
        gateway: Video search backend (``YouTubeClient`` or a test fake).
        config: Live feed tuning. Defaults to ``LiveConfig()`` (env driven).
        metrics: Optional Prometheus collector.
    """

    def __init__(
        self,
        gateway: VideoSearchGateway,
        config: LiveConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config or LiveConfig()
        self.gateway = gateway

        self.seen_cache = SeenVideoCache(capacity=self.config.seen_capacity)
        self.registry = SubscriptionRegistry()
        self.connections = ConnectionManager(
            self.registry,
            max_connections=self.config.max_connections,
            idle_timeout=self.config.idle_timeout_seconds,
            metrics=metrics,
            send_timeout=self.config.send_timeout_seconds,
        )
        self.dispatcher = BroadcastDispatcher(
            self.registry,
            on_send_failure=self.connections.on_send_failure,
            metrics=metrics,
        )
        self.scheduler = PollScheduler(
            gateway,
            self.seen_cache,
            self.dispatcher,
            config=self.config,
            metrics=metrics,
        )
        self.registry.set_listener(self.scheduler)

        self._poll_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        """Start the poll and heartbeat background tasks (idempotent)."""
        if self.running:
            return
        self._poll_task = asyncio.create_task(self.scheduler.run(), name="live-poll-scheduler")
        self._heartbeat_task = asyncio.create_task(
            self.dispatcher.run_heartbeats(self.config.heartbeat_interval_seconds),
            name="live-heartbeat",
        )
        logger.info(
            "Live feed started",
            poll_interval=self.config.poll_interval_seconds,
            heartbeat_interval=self.config.heartbeat_interval_seconds,
            seen_capacity=self.config.seen_capacity,
        )

    async def stop(self) -> None:
        """Cancel background work and close all connections."""
        for task in (self._poll_task, self._heartbeat_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._poll_task = None
        self._heartbeat_task = None

        await self.scheduler.stop()
        await self.connections.close_all()
        logger.info("Live feed stopped")

    async def serve(self, transport: Transport) -> None:
        """Accept ``transport`` and run its session until it closes."""
        connection = await self.connections.accept(transport)
        if connection is None:
            return
        await self.connections.run(connection)

    def stats(self) -> dict[str, Any]:
        """Snapshot for the health endpoint."""
        return {
            "running": self.running,
            "connections": self.connections.active_connections,
            "subscribed_connections": self.registry.connection_count,
            "keywords": self.registry.keyword_count,
            "scheduler": self.scheduler.get_stats(),
        }
