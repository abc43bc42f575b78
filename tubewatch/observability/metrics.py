"""
Prometheus metrics for the live keyword feed.

Defines and exposes metrics for:
- Live connections and watched keywords
- Poll outcomes and skipped ticks
- Video discovery and message delivery
- Gateway latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from tubewatch.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for gateway latency (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for tubewatch.

    Usage:
        metrics = get_metrics()
        metrics.start_server()
        metrics.record_poll("success", latency=0.42)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self._registry = registry or REGISTRY

        self.active_connections = Gauge(
            "tubewatch_live_connections",
            "Number of open live WebSocket connections",
            registry=self._registry,
        )
        self.watched_keywords = Gauge(
            "tubewatch_watched_keywords",
            "Number of keywords currently being polled",
            registry=self._registry,
        )

        self.polls = Counter(
            "tubewatch_polls_total",
            "Keyword polls by outcome",
            ["outcome"],  # success, error, timeout, circuit_open, discarded
            registry=self._registry,
        )
        self.skipped_ticks = Counter(
            "tubewatch_skipped_ticks_total",
            "Ticks skipped because the previous poll was still in flight",
            registry=self._registry,
        )

        self.videos_discovered = Counter(
            "tubewatch_videos_discovered_total",
            "Videos not previously seen for their keyword",
            registry=self._registry,
        )
        self.messages_sent = Counter(
            "tubewatch_messages_sent_total",
            "Outbound live messages delivered",
            ["type"],  # video, heartbeat
            registry=self._registry,
        )
        self.send_failures = Counter(
            "tubewatch_send_failures_total",
            "Outbound sends that failed and closed their connection",
            ["type"],
            registry=self._registry,
        )

        self.gateway_latency = Histogram(
            "tubewatch_gateway_latency_seconds",
            "Time spent in YouTube search calls",
            buckets=LATENCY_BUCKETS,
            registry=self._registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start HTTP server for Prometheus scraping.

        Args:
            port: Port to listen on (default from settings)
        """
        port = port or get_settings().metrics_port
        start_http_server(port, registry=self._registry)
        logger.info("Metrics server started on port %d", port)

    def record_poll(self, outcome: str, latency: float | None = None) -> None:
        """Record a finished poll and, when known, its gateway latency."""
        self.polls.labels(outcome=outcome).inc()
        if latency is not None:
            self.gateway_latency.observe(latency)

    def record_skipped_tick(self) -> None:
        self.skipped_ticks.inc()

    def record_discovered(self, count: int = 1) -> None:
        self.videos_discovered.inc(count)

    def record_delivery(self, message_type: str, sent: int, failed: int) -> None:
        """Record fan-out results for one outbound message."""
        if sent:
            self.messages_sent.labels(type=message_type).inc(sent)
        if failed:
            self.send_failures.labels(type=message_type).inc(failed)

    def set_live_gauges(self, connections: int, keywords: int) -> None:
        self.active_connections.set(connections)
        self.watched_keywords.set(keywords)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
