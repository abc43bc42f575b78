"""Video and channel value types parsed from YouTube Data API responses.

``VideoSummary`` is the unit flowing through the live feed: the poll
scheduler dedups on ``video_id`` and the dispatcher serializes it into the
outbound ``video`` message. Parsing mirrors what the API actually returns
for ``search`` and ``videos`` listings, where ``id`` is either an object
(``{"kind": "youtube#video", "videoId": ...}``) or a bare string.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

BASE_VIDEO_URL = "https://www.youtube.com/watch?v="

DEFAULT_TITLE = "No Title"
DEFAULT_CHANNEL_TITLE = "Unknown Channel"
DEFAULT_CHANNEL_ID = "Unknown Channel ID"


@dataclass(frozen=True)
class VideoSummary:
    """Immutable summary of one video.

    Attributes:
        title: Video title.
        description: Snippet description (may be empty).
        channel_title: Display name of the uploading channel.
        channel_id: YouTube channel identifier.
        thumbnail_url: Default-size thumbnail URL (may be empty).
        video_id: YouTube video identifier, the dedup key. ``None`` or
            empty means the summary is not deliverable.
        video_url: Watch page URL.
    """

    title: str
    description: str
    channel_title: str
    channel_id: str
    thumbnail_url: str
    video_id: str | None
    video_url: str

    @property
    def is_deliverable(self) -> bool:
        return bool(self.video_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ChannelProfile:
    """Channel metadata plus its most recent uploads."""

    channel_id: str
    title: str
    description: str
    thumbnail_url: str
    custom_url: str | None = None
    published_at: str | None = None
    videos: list[VideoSummary] = field(default_factory=list)


def _extract_video_id(item: dict[str, Any]) -> str | None:
    id_field = item.get("id")
    if isinstance(id_field, dict):
        return id_field.get("videoId") or None
    if isinstance(id_field, str):
        return id_field or None
    return None


def _thumbnail(snippet: dict[str, Any]) -> str:
    thumbnails = snippet.get("thumbnails") or {}
    default = thumbnails.get("default") or {}
    return default.get("url", "")


def parse_video(item: dict[str, Any] | None) -> VideoSummary | None:
    """Parse a single API item into a ``VideoSummary``.

    Returns:
        The summary, or None for an empty item.
    """
    if not item:
        return None

    snippet = item.get("snippet") or {}
    video_id = _extract_video_id(item)

    return VideoSummary(
        title=snippet.get("title", DEFAULT_TITLE),
        description=snippet.get("description", ""),
        channel_title=snippet.get("channelTitle", DEFAULT_CHANNEL_TITLE),
        channel_id=snippet.get("channelId", DEFAULT_CHANNEL_ID),
        thumbnail_url=_thumbnail(snippet),
        video_id=video_id,
        video_url=f"{BASE_VIDEO_URL}{video_id}",
    )


def parse_videos(items: list[dict[str, Any]] | None) -> list[VideoSummary]:
    """Parse an ``items`` array, skipping empty entries, preserving order."""
    videos = []
    for item in items or []:
        video = parse_video(item)
        if video is not None:
            videos.append(video)
    return videos


def parse_tags(items: list[dict[str, Any]] | None) -> list[str]:
    """Return the tags of the first item, or an empty list."""
    if not items:
        return []
    snippet = items[0].get("snippet") or {}
    return [str(tag) for tag in snippet.get("tags", [])]


def parse_channel(channel_id: str, item: dict[str, Any]) -> ChannelProfile:
    """Build a ``ChannelProfile`` (without videos) from a ``channels`` item."""
    snippet = item.get("snippet") or {}
    return ChannelProfile(
        channel_id=item.get("id") or channel_id,
        title=snippet.get("title", DEFAULT_CHANNEL_TITLE),
        description=snippet.get("description", ""),
        thumbnail_url=_thumbnail(snippet),
        custom_url=snippet.get("customUrl"),
        published_at=snippet.get("publishedAt"),
    )
