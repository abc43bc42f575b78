"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the tubewatch application.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., YOUTUBE_API_KEYS).
    Live feed tuning lives in ``tubewatch.live.config.LiveConfig``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # YouTube Data API (comma-separated for multiple keys with rotation)
    youtube_api_keys: str | None = None
    youtube_api_url: str = "https://www.googleapis.com/youtube/v3"
    default_search_results: int = Field(default=10, ge=1, le=50)

    # HTTP retry configuration
    max_http_retries: int = Field(default=3, ge=0, le=10)
    max_backoff_seconds: float = Field(default=60.0, ge=1.0, le=300.0)
    http_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8001
    cors_origins: str = "http://localhost:3000,http://localhost:9000"
    cors_allow_credentials: bool = True
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Max request duration for HTTP endpoints (0 = disabled)",
    )

    # Observability
    metrics_port: int = 8000

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def youtube_configured(self) -> bool:
        """Check if at least one YouTube API key is configured."""
        return bool(self.youtube_api_keys and self.youtube_api_keys.strip(", "))


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
