"""Observability layer - logging and metrics."""

from tubewatch.observability.logging import setup_logging
from tubewatch.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
