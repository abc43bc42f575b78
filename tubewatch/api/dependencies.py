"""
Dependency injection for FastAPI endpoints.

Holds the process-wide YouTube client and live feed service. Both are
created lazily and torn down by the application lifespan; tests replace
them with ``app.dependency_overrides`` or ``set_live_service``.
"""

from tubewatch.config.settings import get_settings
from tubewatch.live.config import LiveConfig
from tubewatch.live.service import LiveFeedService
from tubewatch.observability.metrics import get_metrics
from tubewatch.youtube.client import YouTubeClient, YouTubeConfig

# Global service instances (initialized on first use)
_youtube_client: YouTubeClient | None = None
_live_service: LiveFeedService | None = None


async def get_youtube_client() -> YouTubeClient:
    """Get the shared YouTube client."""
    global _youtube_client

    if _youtube_client is None:
        _youtube_client = YouTubeClient(YouTubeConfig.from_settings(get_settings()))

    return _youtube_client


def get_live_service() -> LiveFeedService | None:
    """Current live feed service, or None when it is not running."""
    return _live_service


def set_live_service(service: LiveFeedService | None) -> None:
    """Install a live feed service (called during startup and by tests)."""
    global _live_service
    _live_service = service


async def start_live_service(config: LiveConfig | None = None) -> LiveFeedService:
    """Create (once) and start the live feed service over the shared client."""
    global _live_service

    if _live_service is None:
        _live_service = LiveFeedService(
            gateway=await get_youtube_client(),
            config=config,
            metrics=get_metrics(),
        )
    await _live_service.start()
    return _live_service


async def cleanup_dependencies() -> None:
    """Stop the live feed and close the YouTube client."""
    global _youtube_client, _live_service

    if _live_service is not None:
        await _live_service.stop()
        _live_service = None

    if _youtube_client is not None:
        await _youtube_client.aclose()
        _youtube_client = None
