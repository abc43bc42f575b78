"""
Request/response YouTube lookups: keyword search, channel profile, video tags.

Thin wrappers over ``YouTubeClient``; none of them touch the live feed.
"""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from tubewatch.api.dependencies import get_youtube_client
from tubewatch.api.models import (
    ChannelProfileResponse,
    ErrorResponse,
    SearchResponse,
    TagsResponse,
    VideoItem,
)
from tubewatch.config.settings import get_settings
from tubewatch.live.schemas import normalize_keyword
from tubewatch.youtube.client import GatewayError, YouTubeClient

logger = structlog.get_logger(__name__)
router = APIRouter()


def _gateway_failure(action: str, error: GatewayError) -> HTTPException:
    logger.warning("YouTube lookup failed", action=action, error=str(error))
    if error.status_code == 404:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"YouTube {action} failed",
    )


@router.get(
    "/search",
    response_model=SearchResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Blank keyword"},
        502: {"model": ErrorResponse, "description": "YouTube request failed"},
    },
    summary="Search videos by keyword",
    description="One-shot search for the most recent videos matching a keyword.",
)
async def search_videos(
    q: str | None = Query(default=None, description="Search keyword"),
    max_results: int | None = Query(default=None, ge=1, le=50),
    youtube: YouTubeClient = Depends(get_youtube_client),
) -> SearchResponse:
    keyword = normalize_keyword(q)
    if not keyword:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="invalid_input: a non-blank keyword is required",
        )

    limit = max_results or get_settings().default_search_results
    start_time = time.perf_counter()
    try:
        videos = await youtube.search(keyword, limit)
    except GatewayError as e:
        raise _gateway_failure("search", e) from e

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info("Search completed", keyword=keyword, results=len(videos), latency_ms=round(latency_ms, 2))

    return SearchResponse(
        keyword=keyword,
        total=len(videos),
        videos=[VideoItem.from_summary(v) for v in videos],
        latency_ms=round(latency_ms, 2),
    )


@router.get(
    "/channels/{channel_id}",
    response_model=ChannelProfileResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Channel not found"},
        502: {"model": ErrorResponse, "description": "YouTube request failed"},
    },
    summary="Channel profile",
)
async def channel_profile(
    channel_id: str,
    max_results: int = Query(default=10, ge=1, le=50),
    youtube: YouTubeClient = Depends(get_youtube_client),
) -> ChannelProfileResponse:
    try:
        profile = await youtube.get_channel_profile(channel_id, max_results)
    except GatewayError as e:
        raise _gateway_failure("channel lookup", e) from e
    return ChannelProfileResponse.from_profile(profile)


@router.get(
    "/videos/{video_id}/tags",
    response_model=TagsResponse,
    responses={502: {"model": ErrorResponse, "description": "YouTube request failed"}},
    summary="Video tags",
)
async def video_tags(
    video_id: str,
    youtube: YouTubeClient = Depends(get_youtube_client),
) -> TagsResponse:
    try:
        tags = await youtube.get_video_tags(video_id)
    except GatewayError as e:
        raise _gateway_failure("tags lookup", e) from e
    return TagsResponse(video_id=video_id, tags=tags)
