"""YouTube Data API gateway.

Components:
- YouTubeClient: search, video tags, channel profile lookups
- YouTubeConfig: explicit gateway configuration built from settings
- VideoSearchGateway: protocol the live feed depends on
- GatewayError: any failed YouTube call
- VideoSummary / ChannelProfile: parsed value types
- HTTPClient / RetryConfig / APIKeyRotator: retrying transport with key rotation
- CircuitBreaker: per-keyword protection for repeated gateway failures
"""

from tubewatch.youtube.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from tubewatch.youtube.client import (
    GatewayError,
    VideoSearchGateway,
    YouTubeClient,
    YouTubeConfig,
)
from tubewatch.youtube.http_client import (
    APIKeyRotator,
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)
from tubewatch.youtube.schemas import (
    ChannelProfile,
    VideoSummary,
    parse_tags,
    parse_video,
    parse_videos,
)

__all__ = [
    "APIKeyRotator",
    "ChannelProfile",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "GatewayError",
    "HTTPClient",
    "HTTPClientError",
    "RateLimitError",
    "RetryConfig",
    "VideoSearchGateway",
    "VideoSummary",
    "YouTubeClient",
    "YouTubeConfig",
    "parse_tags",
    "parse_video",
    "parse_videos",
]
