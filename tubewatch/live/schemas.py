"""Keyword watch state, error taxonomy and the live wire messages.

Outbound messages are plain dicts serialized with ``json.dumps``; the
field names are camelCase because browsers consume them directly.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tubewatch.youtube.schemas import VideoSummary

MESSAGE_INIT = "init"
MESSAGE_PING = "ping"
MESSAGE_PONG = "pong"
MESSAGE_VIDEO = "video"
MESSAGE_HEARTBEAT = "heartbeat"
MESSAGE_ERROR = "error"


class InvalidInputError(ValueError):
    """A subscription or search request carried no usable keyword."""


class TransportError(Exception):
    """Sending to or receiving from a live connection failed."""


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_keyword(keyword: Any) -> str:
    """Trim, collapse inner whitespace and case-fold a search term.

    Inner runs of whitespace collapse to one space, so ``"lofi  jazz"`` and
    ``"lofi jazz"`` share a single watch and a single poll.

    Returns an empty string for blank or non-string input.
    """
    if not isinstance(keyword, str):
        return ""
    return " ".join(keyword.split()).casefold()


def keyword_spellings(keywords: Any) -> dict[str, str]:
    """Map each normalized keyword to the spelling the client first used for it.

    Keys keep first-seen order; later spellings of the same term are dropped.

    Raises:
        InvalidInputError: If ``keywords`` is not a list or holds no usable term.
    """
    if not isinstance(keywords, (list, tuple)):
        raise InvalidInputError("keywords must be a list of strings")

    spellings: dict[str, str] = {}
    for raw in keywords:
        keyword = normalize_keyword(raw)
        if keyword and keyword not in spellings:
            spellings[keyword] = raw

    if not spellings:
        raise InvalidInputError("at least one non-blank keyword is required")
    return spellings


def normalize_keywords(keywords: Any) -> list[str]:
    """Normalize and deduplicate, keeping first-seen order.

    Raises:
        InvalidInputError: If ``keywords`` is not a list or holds no usable term.
    """
    return list(keyword_spellings(keywords))


@dataclass(eq=False)
class KeywordWatch:
    """Live polling state for one normalized search term.

    ``ref_count`` always equals the number of registered connections
    subscribed to ``keyword``; the watch is destroyed when it reaches zero.
    """

    keyword: str
    ref_count: int = 0
    in_flight: bool = False
    last_polled_at: datetime | None = None
    created_at: datetime = field(default_factory=_utc_now)


def video_message(keyword: str, video: VideoSummary) -> dict[str, Any]:
    return {
        "type": MESSAGE_VIDEO,
        "keyword": keyword,
        "videoId": video.video_id,
        "title": video.title,
        "description": video.description,
        "channelId": video.channel_id,
        "channelTitle": video.channel_title,
        "thumbnailUrl": video.thumbnail_url,
        "videoUrl": video.video_url,
    }


def heartbeat_message() -> dict[str, Any]:
    return {"type": MESSAGE_HEARTBEAT, "timestamp": _utc_now().isoformat()}


def error_message(error: str, message: str) -> dict[str, Any]:
    return {"type": MESSAGE_ERROR, "error": error, "message": message}
