"""Pydantic models for API requests and responses."""

from pydantic import BaseModel, Field, HttpUrl

from stream_ingest.core.schemas import (
    CaptionSegment,
    IngestMethodLiteral,
    ProcessingStateLiteral,
)

# =============================================================================
# Request Models
# =============================================================================


class DirectUploadRequest(BaseModel):
    """Request model for a one-time browser upload URL."""

    max_duration_seconds: int | None = Field(
        default=None,
        gt=0,
        description="Reject uploads longer than this (default from settings)",
    )
    meta: dict[str, str] = Field(
        default_factory=dict,
        description="Metadata stored on the video record",
        examples=[{"name": "My clip", "owner": "user-123"}],
    )


class UrlIngestRequest(BaseModel):
    """Request model for ingesting a video from a URL."""

    url: HttpUrl = Field(
        ...,
        description="Publicly reachable video URL",
        examples=["https://example.com/videos/clip.mp4"],
    )
    meta: dict[str, str] = Field(
        default_factory=dict,
        description="Metadata stored on the video record",
    )


class TokenRequest(BaseModel):
    """Request model for a signed playback URL."""

    ttl_seconds: int | None = Field(
        default=None,
        gt=0,
        le=86400 * 7,
        description="Token lifetime in seconds (default from settings)",
    )
    downloadable: bool = Field(
        default=False,
        description="Allow MP4 downloads with this token",
    )
    thumbnail_time_seconds: float | None = Field(
        default=None,
        ge=0,
        description="Position of the signed thumbnail",
    )
    domain_override: str | None = Field(
        default=None,
        description="Serve from this domain instead of the account domain",
        examples=["customer-abc123.cloudflarestream.com"],
    )


class CaptionGenerateRequest(BaseModel):
    """Request model for AI caption generation."""

    language: str | None = Field(
        default=None,
        pattern=r"^[a-z]{2}$",
        description="Caption language (default from settings)",
    )


# =============================================================================
# Response Models
# =============================================================================


class IngestResponse(BaseModel):
    """Response model for any ingestion request."""

    uid: str = Field(..., description="Store identifier of the new video")
    method: IngestMethodLiteral = Field(..., description="Strategy that succeeded")
    upload_url: str | None = Field(
        default=None,
        description="One-time upload URL (direct-browser only)",
    )
    thumbnail_url: str | None = Field(default=None, description="Default thumbnail")
    bytes_transferred: int = Field(default=0, description="Bytes pushed via stream-through")


class SignedUrlResponse(BaseModel):
    """Response model for a signed playback URL."""

    video_id: str
    user_id: str | None = Field(default=None, description="Session user the token was issued to")
    playback_url: str
    thumbnail_url: str
    expires_at: str = Field(..., description="ISO 8601 expiry")
    token: str


class CaptionGenerateResponse(BaseModel):
    """Response model for a caption generation request."""

    uid: str
    language: str
    status: str = Field(..., description="Track status as reported by the store")
    message: str


class CaptionsResponse(BaseModel):
    """Response model for a transcoded caption track."""

    uid: str
    language: str
    segment_count: int
    segments: list[CaptionSegment]
    plain_text: str
    csv_transcript: str


class WebhookAck(BaseModel):
    """Response model for a received webhook."""

    received: bool = True
    uid: str | None = None
    state: ProcessingStateLiteral | None = None
    ready_to_stream: bool = False
