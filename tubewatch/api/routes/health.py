"""
Health check endpoint.
"""

import structlog
from fastapi import APIRouter

from tubewatch import __version__
from tubewatch.api.dependencies import get_live_service
from tubewatch.api.models import HealthResponse
from tubewatch.config.settings import get_settings

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Report live feed state and whether YouTube access is configured.",
)
async def health_check() -> HealthResponse:
    """
    Status logic:
    - degraded: no YouTube API key, or the live feed is not running
    - healthy: otherwise
    """
    settings = get_settings()
    service = get_live_service()

    live = service.stats() if service is not None else {"running": False}
    healthy = settings.youtube_configured and live.get("running", False)

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        youtube_configured=settings.youtube_configured,
        live=live,
        version=__version__,
    )
