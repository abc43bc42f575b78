"""Live keyword polling and notification broadcast.

Components:
- LiveFeedService: wires everything and owns the background tasks
- SubscriptionRegistry: connection ↔ keyword mapping with reference counts
- PollScheduler: periodic per-keyword searches, one in flight per keyword
- SeenVideoCache: bounded per-keyword dedup of delivered video ids
- BroadcastDispatcher: video and heartbeat fan-out with failure isolation
- ConnectionManager / LiveConnection: connection lifecycle
- LiveConfig: Pydantic settings (``LIVE_*`` env vars)
- InvalidInputError / TransportError: error taxonomy
"""

from tubewatch.live.config import LiveConfig
from tubewatch.live.connection import ConnectionManager, LiveConnection
from tubewatch.live.dispatcher import BroadcastDispatcher
from tubewatch.live.registry import SubscriptionRegistry
from tubewatch.live.scheduler import PollScheduler
from tubewatch.live.schemas import (
    ConnectionState,
    InvalidInputError,
    KeywordWatch,
    TransportError,
    keyword_spellings,
    normalize_keyword,
    normalize_keywords,
)
from tubewatch.live.seen_cache import SeenVideoCache
from tubewatch.live.service import LiveFeedService

__all__ = [
    "BroadcastDispatcher",
    "ConnectionManager",
    "ConnectionState",
    "InvalidInputError",
    "KeywordWatch",
    "LiveConfig",
    "LiveConnection",
    "LiveFeedService",
    "PollScheduler",
    "SeenVideoCache",
    "SubscriptionRegistry",
    "TransportError",
    "keyword_spellings",
    "normalize_keyword",
    "normalize_keywords",
]
