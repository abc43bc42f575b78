"""
YouTube Data API gateway.

``YouTubeClient`` is the only component that talks to the network. The
live feed depends on the narrower ``VideoSearchGateway`` protocol so tests
(and the CLI) can substitute any object with an async ``search`` method.

Every failure (HTTP errors after retries, quota exhaustion, malformed JSON,
missing API keys) surfaces as ``GatewayError``.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from tubewatch.config.settings import Settings, get_settings
from tubewatch.youtube.http_client import (
    APIKeyRotator,
    HTTPClient,
    HTTPClientError,
    RetryConfig,
)
from tubewatch.youtube.schemas import (
    ChannelProfile,
    VideoSummary,
    parse_channel,
    parse_tags,
    parse_videos,
)

logger = structlog.get_logger(__name__)


class GatewayError(Exception):
    """A YouTube API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class VideoSearchGateway(Protocol):
    """What the live feed needs from a video search backend."""

    async def search(self, keyword: str, max_results: int) -> list[VideoSummary]: ...


@dataclass
class YouTubeConfig:
    """Explicit gateway configuration, built once from settings."""

    api_url: str = "https://www.googleapis.com/youtube/v3"
    api_keys: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "YouTubeConfig":
        settings = settings or get_settings()
        return cls(
            api_url=settings.youtube_api_url.rstrip("/"),
            api_keys=settings.youtube_api_keys,
            timeout_seconds=settings.http_timeout_seconds,
            retry=RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
        )


class YouTubeClient:
    """
    Async client for the subset of the YouTube Data API v3 tubewatch uses.

    Usage:
        async with YouTubeClient(YouTubeConfig.from_settings()) as youtube:
            videos = await youtube.search("jazz", 10)
    """

    def __init__(
        self,
        config: YouTubeConfig | None = None,
        http_client: HTTPClient | None = None,
    ):
        self._config = config or YouTubeConfig.from_settings()
        self._rotator = APIKeyRotator.from_env_var(self._config.api_keys)
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def configured(self) -> bool:
        return self._rotator is not None

    async def __aenter__(self) -> "YouTubeClient":
        await self._ensure_http()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.__aexit__(None, None, None)
            self._http = None

    async def _ensure_http(self) -> HTTPClient:
        if self._http is None:
            self._http = await HTTPClient(
                retry_config=self._config.retry,
                timeout=self._config.timeout_seconds,
            ).__aenter__()
            self._owns_http = True
        return self._http

    async def _get_items(self, resource: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """GET ``{api_url}/{resource}`` and return its ``items`` array."""
        if self._rotator is None:
            raise GatewayError("YouTube API key is not configured (set YOUTUBE_API_KEYS)")

        http = await self._ensure_http()
        url = f"{self._config.api_url}/{resource}"
        try:
            response = await http.get(url, params=params, api_key_rotator=self._rotator)
            payload = response.json()
        except HTTPClientError as e:
            raise GatewayError(f"YouTube {resource} request failed: {e}", e.status_code) from e
        except ValueError as e:
            raise GatewayError(f"YouTube {resource} returned invalid JSON") from e

        items = payload.get("items") if isinstance(payload, dict) else None
        if items is None:
            return []
        if not isinstance(items, list):
            raise GatewayError(f"YouTube {resource} returned malformed items")
        return items

    async def search(self, keyword: str, max_results: int) -> list[VideoSummary]:
        """Search the most recent videos matching ``keyword``, newest first."""
        items = await self._get_items(
            "search",
            {
                "part": "snippet",
                "q": keyword,
                "type": "video",
                "order": "date",
                "maxResults": max_results,
            },
        )
        videos = parse_videos(items)
        logger.debug("YouTube search", keyword=keyword, results=len(videos))
        return videos

    async def get_video_tags(self, video_id: str) -> list[str]:
        items = await self._get_items("videos", {"part": "snippet", "id": video_id})
        return parse_tags(items)

    async def get_channel_info(self, channel_id: str) -> dict[str, Any]:
        """Return the raw ``channels`` item for ``channel_id``."""
        items = await self._get_items("channels", {"part": "snippet", "id": channel_id})
        if not items:
            raise GatewayError(f"Channel not found: {channel_id}", status_code=404)
        return items[0]

    async def get_channel_videos(self, channel_id: str, max_results: int) -> list[VideoSummary]:
        items = await self._get_items(
            "search",
            {
                "part": "snippet",
                "type": "video",
                "channelId": channel_id,
                "maxResults": max_results,
                "order": "date",
            },
        )
        return parse_videos(items)

    async def get_channel_profile(self, channel_id: str, max_results: int = 10) -> ChannelProfile:
        """Channel metadata together with its latest uploads."""
        profile = parse_channel(channel_id, await self.get_channel_info(channel_id))
        profile.videos = await self.get_channel_videos(channel_id, max_results)
        return profile
