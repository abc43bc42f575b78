"""
Structured logging configuration using structlog.

JSON lines in production, colored console output everywhere else. Modules
using plain ``logging.getLogger`` write to the same stdout stream.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from tubewatch.config.settings import get_settings

# Libraries that are chatty at INFO and only interesting when they fail
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "websockets", "uvicorn.access")


def _build_processors(json_logs: bool) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_logs:
        return shared + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return shared + [structlog.dev.ConsoleRenderer(colors=True)]


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level name. Defaults to ``Settings.log_level``.
        json_logs: Force JSON output on or off. Defaults to production-only.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Keyword polled", keyword="jazz", new_videos=2)
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    if json_logs is None:
        json_logs = settings.is_production

    structlog.configure(
        processors=_build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (defaults to the root logger name)."""
    return structlog.get_logger(name)


@contextmanager
def bound_context(**kwargs) -> Iterator[None]:
    """
    Bind context variables for the duration of a block.

    Every log line emitted inside the block (including from other modules)
    carries the bound fields, e.g. ``connection_id`` for a WebSocket session.
    """
    structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*kwargs)
