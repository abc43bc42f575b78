"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tubewatch import __version__
from tubewatch.api.dependencies import cleanup_dependencies, start_live_service
from tubewatch.api.middleware.timeout import TimeoutMiddleware
from tubewatch.api.routes import health, search, ws_live
from tubewatch.config.settings import get_settings
from tubewatch.live.config import LiveConfig

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("tubewatch API starting up")

    settings = get_settings()
    if not settings.youtube_configured:
        logger.warning("YOUTUBE_API_KEYS is not set; searches will fail until it is")

    live_config = LiveConfig()
    if live_config.enabled:
        try:
            await start_live_service(live_config)
            logger.info("Live feed started")
        except Exception as e:
            logger.warning("Failed to start live feed: %s", e)

    yield

    logger.info("tubewatch API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "search", "description": "One-shot YouTube search, channel and tag lookups"},
        {"name": "websocket", "description": "Live new-video notifications per keyword"},
    ]

    app = FastAPI(
        title="tubewatch",
        description="""
Live YouTube keyword watching.

## Live feed

Connect to `/ws`, send `{"type": "init", "keywords": ["jazz", "news"]}`, and
receive a `video` message for every newly published video matching one of
the keywords, plus periodic `heartbeat` messages.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # CORS (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    # Request logging and correlation ID
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(search.router, tags=["search"])
    app.include_router(ws_live.router, tags=["websocket"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "tubewatch",
            "version": __version__,
            "docs": "/docs",
            "live": "/ws",
        }

    return app
