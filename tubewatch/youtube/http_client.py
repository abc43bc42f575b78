"""
HTTP layer for the YouTube Data API with retry logic and API key rotation.

Provides:
- APIKeyRotator: Round-robin rotation over comma-separated API keys
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async GET client with automatic retry and per-attempt key rotation

Keeps transport concerns (retries, backoff, quota handling) away from the
response parsing in ``tubewatch.youtube.client``.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# YouTube reports an exhausted daily quota as 403 with this reason
QUOTA_EXCEEDED_MARKERS = ("quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded")


@dataclass
class APIKeyRotator:
    """
    Round-robin API key rotation.

    Each YouTube API key carries its own daily quota, so spreading polls
    across several keys multiplies the available budget.

    Example:
        rotator = APIKeyRotator.from_env_var("key1,key2")
        key = await rotator.get_key()
    """

    keys: list[str]
    _current_index: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> "APIKeyRotator | None":
        """
        Create rotator from a comma-separated value.

        Returns:
            APIKeyRotator instance or None if no usable keys are present
        """
        if not value:
            return None
        keys = [k.strip() for k in value.split(",") if k.strip()]
        return cls(keys=keys) if keys else None

    async def get_key(self) -> str:
        """Return the next key in rotation (safe under concurrent polls)."""
        async with self._lock:
            key = self.keys[self._current_index]
            self._current_index = (self._current_index + 1) % len(self.keys)
            return key

    @property
    def key_count(self) -> int:
        return len(self.keys)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    @staticmethod
    def is_retryable_status(status_code: int) -> bool:
        """429 and transient 5xx responses are retried."""
        return status_code in {429, 500, 502, 503, 504}


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit or quota is hit and all retries exhausted."""


def _is_quota_error(response: httpx.Response) -> bool:
    return response.status_code == 403 and any(
        marker in response.text for marker in QUOTA_EXCEEDED_MARKERS
    )


class HTTPClient:
    """
    Async HTTP client with retry logic and API key rotation.

    Features:
    - Exponential backoff with jitter on 429, 5xx, timeouts and connection errors
    - Quota errors (403 quotaExceeded) retried at once with the next key
    - Optional API key rotation for each attempt
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_retries=2)) as client:
            response = await client.get(
                "https://www.googleapis.com/youtube/v3/search",
                params={"q": "jazz", "part": "snippet"},
                api_key_rotator=rotator,
                api_key_param="key",
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_param: str = "key",
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Args:
            url: Request URL
            params: Query parameters
            api_key_rotator: Optional key rotator; the key is sent as a query param
            api_key_param: Query parameter name for the API key

        Returns:
            httpx.Response on success

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        max_attempts = self.retry_config.max_retries + 1
        last_status: int | None = None
        last_body: str | None = None

        for attempt in range(max_attempts):
            request_params = dict(params) if params else {}
            if api_key_rotator:
                request_params[api_key_param] = await api_key_rotator.get_key()

            try:
                response = await self._client.get(url, params=request_params or None)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as e:
                if attempt + 1 < max_attempts:
                    await self._backoff(url, attempt, type(e).__name__)
                    continue
                raise HTTPClientError(
                    f"Request failed after {attempt + 1} attempts: {e}",
                    status_code=last_status,
                ) from e

            if response.status_code < 400:
                return response

            last_status = response.status_code
            last_body = response.text

            if _is_quota_error(response):
                if api_key_rotator and api_key_rotator.key_count > 1 and attempt + 1 < max_attempts:
                    logger.warning(
                        "Quota exceeded for current key on %s, rotating (attempt %d/%d)",
                        url, attempt + 1, max_attempts,
                    )
                    continue
                raise RateLimitError(
                    f"Quota exceeded for {url}",
                    status_code=response.status_code,
                    response_body=last_body,
                )

            if not self.retry_config.is_retryable_status(response.status_code):
                raise HTTPClientError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=last_body,
                )

            if attempt + 1 < max_attempts:
                await self._backoff(url, attempt, f"status {response.status_code}")
                continue

            error_cls = RateLimitError if response.status_code == 429 else HTTPClientError
            raise error_cls(
                f"Request failed with status {response.status_code} after {attempt + 1} attempts",
                status_code=response.status_code,
                response_body=last_body,
            )

        # Only reachable when every attempt rotated away from a quota error
        raise RateLimitError(
            f"Quota exceeded for every configured key on {url}",
            status_code=last_status,
            response_body=last_body,
        )

    async def _backoff(self, url: str, attempt: int, reason: str) -> None:
        delay = self.retry_config.calculate_backoff(attempt)
        logger.warning(
            "Retryable %s from %s, attempt %d/%d, backing off %.2fs",
            reason, url, attempt + 1, self.retry_config.max_retries + 1, delay,
        )
        await asyncio.sleep(delay)
