"""
Poll scheduler - periodically searches YouTube for every watched keyword.

On each tick of a global timer, every ``KeywordWatch`` without a poll in
flight gets its own asyncio task that:

1. marks the watch in flight,
2. calls the gateway (bounded by ``gateway_timeout_seconds`` and, when
   enabled, guarded by a per-keyword circuit breaker),
3. filters the results through the seen-video cache,
4. hands each new video to the dispatcher, in gateway order,
5. clears the in-flight flag.

Watches still in flight are skipped for the tick, which applies natural
backpressure to a slow or rate-limited API. Any failure is logged and the
keyword is simply tried again next tick. A watch destroyed while its poll
is in flight is not aborted; its results are discarded on return.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Protocol

import structlog

from tubewatch.live.config import LiveConfig
from tubewatch.live.schemas import KeywordWatch
from tubewatch.live.seen_cache import SeenVideoCache
from tubewatch.observability.metrics import MetricsCollector
from tubewatch.youtube.circuit_breaker import CircuitBreaker, CircuitOpenError
from tubewatch.youtube.client import GatewayError, VideoSearchGateway
from tubewatch.youtube.schemas import VideoSummary

logger = structlog.get_logger(__name__)


class VideoNotifier(Protocol):
    async def notify_video(self, keyword: str, video: VideoSummary) -> int: ...


class PollScheduler:
    """
    Drives keyword polls on a fixed interval.

    Usage:
        scheduler = PollScheduler(gateway, seen_cache, dispatcher, config)
        registry.set_listener(scheduler)
        task = asyncio.create_task(scheduler.run())
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        gateway: VideoSearchGateway,
        seen_cache: SeenVideoCache,
        notifier: VideoNotifier,
        config: LiveConfig | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._gateway = gateway
        self._seen = seen_cache
        self._notifier = notifier
        self._config = config or LiveConfig()
        self._metrics = metrics

        self._watches: dict[str, KeywordWatch] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._poll_tasks: set[asyncio.Task] = set()
        self._running = False

        self._stats = {
            "ticks": 0,
            "polls": 0,
            "poll_errors": 0,
            "skipped": 0,
            "discarded": 0,
            "videos_discovered": 0,
        }

    @property
    def watched_keywords(self) -> list[str]:
        return list(self._watches)

    @property
    def running(self) -> bool:
        return self._running

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "in_flight": len(self._poll_tasks)}

    # ── Registry signals ─────────────────────────────────

    def start_watching(self, watch: KeywordWatch) -> None:
        """Schedule ``watch`` from the next tick on (or now, if configured)."""
        self._watches[watch.keyword] = watch
        if self._config.circuit_breaker_enabled:
            self._breakers[watch.keyword] = CircuitBreaker(
                failure_threshold=self._config.circuit_failure_threshold,
                recovery_timeout=self._config.circuit_recovery_seconds,
                name=f"search:{watch.keyword}",
            )
        logger.debug("Keyword scheduled", keyword=watch.keyword)

        if self._config.immediate_first_poll and self._running:
            self._spawn(watch)

    def stop_watching(self, watch: KeywordWatch) -> None:
        """Cancel future ticks for ``watch`` and forget what it has seen."""
        if self._watches.get(watch.keyword) is watch:
            del self._watches[watch.keyword]
            self._breakers.pop(watch.keyword, None)
            self._seen.clear(watch.keyword)
            logger.debug("Keyword unscheduled", keyword=watch.keyword)

    # ── Ticking ──────────────────────────────────────────

    async def run(self) -> None:
        """Tick every ``poll_interval_seconds`` until stopped."""
        self._running = True
        logger.info(
            "Poll scheduler started",
            interval=self._config.poll_interval_seconds,
            max_results=self._config.max_results,
        )
        try:
            while self._running:
                await asyncio.sleep(self._config.poll_interval_seconds)
                self.tick()
        except asyncio.CancelledError:
            pass
        finally:
            self._running = False

    def tick(self) -> list[asyncio.Task]:
        """Start a poll for every watch that has none outstanding."""
        self._stats["ticks"] += 1
        started = []
        for watch in list(self._watches.values()):
            if watch.in_flight:
                self._stats["skipped"] += 1
                if self._metrics:
                    self._metrics.record_skipped_tick()
                logger.debug("Poll still in flight, skipping tick", keyword=watch.keyword)
                continue
            started.append(self._spawn(watch))
        return started

    async def poll_once(self) -> None:
        """Run one tick and wait for all of its polls to finish."""
        tasks = self.tick()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop ticking and cancel outstanding polls."""
        self._running = False
        tasks = list(self._poll_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Poll scheduler stopped")

    def _spawn(self, watch: KeywordWatch) -> asyncio.Task:
        # The flag is set before the task runs so a tick in between cannot double-poll
        watch.in_flight = True
        task = asyncio.create_task(self._poll(watch), name=f"poll:{watch.keyword}")
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        # A task cancelled before its first step never reaches _poll's finally
        task.add_done_callback(lambda _: setattr(watch, "in_flight", False))
        return task

    # ── Polling ──────────────────────────────────────────

    async def _search(self, keyword: str) -> list[VideoSummary]:
        breaker = self._breakers.get(keyword)
        if breaker is None:
            return await self._gateway.search(keyword, self._config.max_results)
        return await breaker.call(self._gateway.search, keyword, self._config.max_results)

    async def _poll(self, watch: KeywordWatch) -> None:
        keyword = watch.keyword
        watch.in_flight = True
        watch.last_polled_at = datetime.now(timezone.utc)
        self._stats["polls"] += 1
        start = time.perf_counter()

        try:
            try:
                videos = await asyncio.wait_for(
                    self._search(keyword),
                    timeout=self._config.gateway_timeout_seconds,
                )
            except asyncio.TimeoutError:
                self._record_failure("timeout")
                logger.warning(
                    "Search timed out",
                    keyword=keyword,
                    timeout=self._config.gateway_timeout_seconds,
                )
                return
            except CircuitOpenError as e:
                self._record_failure("circuit_open")
                logger.debug("Search skipped, circuit open", keyword=keyword, retry_after=e.retry_after)
                return
            except GatewayError as e:
                self._record_failure("error")
                logger.warning("Search failed", keyword=keyword, error=str(e), status_code=e.status_code)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._record_failure("error")
                logger.error("Unexpected search failure", keyword=keyword, error=str(e), exc_info=True)
                return

            latency = time.perf_counter() - start

            if self._watches.get(keyword) is not watch:
                self._stats["discarded"] += 1
                if self._metrics:
                    self._metrics.record_poll("discarded", latency)
                logger.debug("Keyword no longer watched, discarding results", keyword=keyword)
                return

            if self._metrics:
                self._metrics.record_poll("success", latency)

            delivered = await self._deliver(watch, videos)
            logger.debug(
                "Keyword polled",
                keyword=keyword,
                results=len(videos),
                new_videos=delivered,
                latency_ms=round(latency * 1000, 2),
            )
        finally:
            watch.in_flight = False

    async def _deliver(self, watch: KeywordWatch, videos: list[VideoSummary]) -> int:
        """Forward unseen videos to the notifier in gateway order."""
        new_count = 0
        for video in videos:
            if not video.is_deliverable:
                continue
            if self._watches.get(watch.keyword) is not watch:
                break
            if not self._seen.check_and_mark(watch.keyword, video.video_id):
                continue

            new_count += 1
            await self._notifier.notify_video(watch.keyword, video)

        if new_count:
            self._stats["videos_discovered"] += new_count
            if self._metrics:
                self._metrics.record_discovered(new_count)
        return new_count

    def _record_failure(self, outcome: str) -> None:
        self._stats["poll_errors"] += 1
        if self._metrics:
            self._metrics.record_poll(outcome)
