"""
Request timeout middleware.

Bounds every plain HTTP request so a stalled YouTube call cannot hold a
worker forever. Returns 504 Gateway Timeout on expiration. Health and the
live WebSocket endpoint are excluded.
"""

import asyncio

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

# Paths excluded from timeout enforcement
_EXCLUDED_PREFIXES = ("/health", "/ws")


def _is_excluded(request: Request) -> bool:
    if request.headers.get("upgrade", "").lower() == "websocket":
        return True
    return request.url.path.startswith(_EXCLUDED_PREFIXES)


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Enforce a maximum request duration, returning 504 on timeout."""

    def __init__(self, app, timeout_seconds: float = 30.0):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, request: Request, call_next):
        if _is_excluded(request):
            return await call_next(request)

        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Request timed out",
                path=request.url.path,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={
                    "detail": "Request timed out",
                    "error_type": "timeout",
                },
            )
