"""Live feed configuration.

Controls poll cadence, heartbeat cadence, dedup retention and connection
limits. All settings can be overridden via ``LIVE_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LiveConfig(BaseSettings):
    """Configuration for keyword polling and WebSocket fan-out."""

    model_config = SettingsConfigDict(
        env_prefix="LIVE_",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Serve the /ws live endpoint and run the poll loop",
    )

    # Polling
    poll_interval_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between poll ticks for every watched keyword",
    )
    max_results: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Results requested from YouTube per keyword poll",
    )
    gateway_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Upper bound on a single search call before the tick is abandoned",
    )
    immediate_first_poll: bool = Field(
        default=False,
        description="Poll a newly watched keyword right away instead of on the next tick",
    )

    # Deduplication
    seen_capacity: int = Field(
        default=200,
        ge=1,
        le=100_000,
        description="Video ids remembered per keyword (oldest evicted first)",
    )

    # Heartbeat
    heartbeat_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between heartbeat messages to every connection",
    )

    # Connections
    max_connections: int = Field(
        default=500,
        ge=1,
        description="Concurrent live connections accepted by this process",
    )
    idle_timeout_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Close connections silent for this long (0 = never)",
    )
    send_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Upper bound on one outbound send; a stalled peer is closed",
    )

    # Gateway circuit breaker (per keyword)
    circuit_breaker_enabled: bool = True
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_seconds: float = Field(default=60.0, gt=0.0)
