"""
Response models for the tubewatch API.
"""

from pydantic import BaseModel, Field

from tubewatch.youtube.schemas import ChannelProfile, VideoSummary


class VideoItem(BaseModel):
    """One video in a search or channel listing."""

    video_id: str | None = Field(..., description="YouTube video id")
    title: str
    description: str = ""
    channel_id: str
    channel_title: str
    thumbnail_url: str = ""
    video_url: str

    @classmethod
    def from_summary(cls, video: VideoSummary) -> "VideoItem":
        return cls(**video.to_dict())


class SearchResponse(BaseModel):
    """Response model for one-shot keyword search."""

    keyword: str = Field(..., description="Normalized keyword that was searched")
    total: int = Field(..., description="Number of videos returned")
    videos: list[VideoItem] = Field(default_factory=list)
    latency_ms: float = Field(..., description="Time spent calling YouTube")


class ChannelProfileResponse(BaseModel):
    """Channel metadata with its latest uploads."""

    channel_id: str
    title: str
    description: str = ""
    thumbnail_url: str = ""
    custom_url: str | None = None
    published_at: str | None = None
    videos: list[VideoItem] = Field(default_factory=list)

    @classmethod
    def from_profile(cls, profile: ChannelProfile) -> "ChannelProfileResponse":
        return cls(
            channel_id=profile.channel_id,
            title=profile.title,
            description=profile.description,
            thumbnail_url=profile.thumbnail_url,
            custom_url=profile.custom_url,
            published_at=profile.published_at,
            videos=[VideoItem.from_summary(v) for v in profile.videos],
        )


class TagsResponse(BaseModel):
    video_id: str
    tags: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy or degraded",
    )
    youtube_configured: bool = Field(
        default=False,
        description="Whether a YouTube API key is configured",
    )
    live: dict = Field(
        default_factory=dict,
        description="Live feed statistics (connections, keywords, polls)",
    )
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    error_type: str | None = None
