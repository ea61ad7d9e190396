"""Pydantic schemas for ingestion, playback and AI analysis."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from stream_ingest.core.constants import CATEGORIES, CONTENT_RATINGS, MOODS, PROCESSING_STATES

ProcessingStateLiteral = Literal["queued", "inprogress", "ready", "error"]
IngestMethodLiteral = Literal["copy", "stream-through", "direct-browser"]
CategoryLiteral = Literal[
    "Entertainment",
    "Education",
    "Gaming",
    "Music",
    "Sports",
    "News",
    "Cooking",
    "Travel",
    "Technology",
    "Fashion",
    "Fitness",
    "Art",
    "Comedy",
    "Documentary",
    "Kids",
]
MoodLiteral = Literal[
    "Happy", "Calm", "Energetic", "Serious", "Funny", "Inspiring", "Dramatic", "Relaxing"
]
ContentRatingLiteral = Literal["safe", "sensitive", "explicit"]
StepStatus = Literal["ok", "unavailable", "failed", "skipped"]


# =============================================================================
# Remote store records
# =============================================================================


class ErrorInfo(BaseModel):
    """Processing error reported by the store."""

    code: str | None = None
    message: str | None = None


class VideoRecord(BaseModel):
    """A video as held by the remote store."""

    uid: str
    duration_seconds: float | None = Field(None, description="Absent until processed")
    ready_to_stream: bool = False
    processing_state: ProcessingStateLiteral = "queued"
    pct_complete: float | None = None
    error_info: ErrorInfo | None = None
    playback_manifest_url: str | None = None
    thumbnail_url: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_ready(self) -> bool:
        """Ready only when the store also reports a duration and a manifest."""
        return (
            self.ready_to_stream
            and self.duration_seconds is not None
            and self.duration_seconds > 0
            and bool(self.playback_manifest_url)
        )

    @classmethod
    def from_api(cls, result: dict[str, Any]) -> "VideoRecord":
        """Build a record from the store's ``result`` object."""
        status = result.get("status") or {}
        state = status.get("state") or "queued"
        if state not in PROCESSING_STATES:
            state = "queued"

        pct = status.get("pctComplete")
        try:
            pct_complete = float(pct) if pct not in (None, "") else None
        except (TypeError, ValueError):
            pct_complete = None

        error_info = None
        if status.get("errorReasonCode") or status.get("errorReasonText"):
            error_info = ErrorInfo(
                code=status.get("errorReasonCode") or None,
                message=status.get("errorReasonText") or None,
            )

        duration = result.get("duration")
        if duration is not None and duration < 0:
            # The store reports -1 before processing finishes
            duration = None

        return cls(
            uid=result["uid"],
            duration_seconds=duration,
            ready_to_stream=bool(result.get("readyToStream")),
            processing_state=state,
            pct_complete=pct_complete,
            error_info=error_info,
            playback_manifest_url=(result.get("playback") or {}).get("hls"),
            thumbnail_url=result.get("thumbnail"),
            meta=result.get("meta") or {},
        )


class CaptionTrack(BaseModel):
    """A caption track listed for a video."""

    language: str
    label: str | None = None
    generated: bool = False
    status: str | None = None


# =============================================================================
# Ingestion
# =============================================================================


class IngestResult(BaseModel):
    """Outcome of a single upload attempt."""

    uid: str
    method: IngestMethodLiteral
    thumbnail_url: str | None = None
    upload_url: str | None = Field(None, description="Only set for direct-browser uploads")
    bytes_transferred: int = 0


# =============================================================================
# Signed playback
# =============================================================================


class SignedUrl(BaseModel):
    """A token-scoped playback surface for one video."""

    video_id: str
    token: str
    playback_url: str
    thumbnail_url: str
    expires_at: int = Field(..., description="Epoch seconds")
    not_before: int = Field(..., description="Epoch seconds")
    downloadable: bool = False

    @property
    def expires_at_iso(self) -> str:
        """Expiry rendered as ISO 8601."""
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat()

    def to_response(self) -> dict[str, Any]:
        """Client-facing rendering."""
        return {
            "video_id": self.video_id,
            "playback_url": self.playback_url,
            "thumbnail_url": self.thumbnail_url,
            "expires_at": self.expires_at_iso,
            "token": self.token,
        }


# =============================================================================
# Captions
# =============================================================================


class CaptionSegment(BaseModel):
    """One cue. Timecodes stay as the raw source strings."""

    start: str
    end: str
    text: str


class CaptionTranscript(BaseModel):
    """Parsed caption track with its two renderings."""

    segments: list[CaptionSegment] = Field(default_factory=list)
    plain_text: str = ""
    csv_transcript: str = ""

    @property
    def segment_count(self) -> int:
        return len(self.segments)


# =============================================================================
# Status
# =============================================================================


class StatusPayload(BaseModel):
    """Client-facing processing status."""

    uid: str
    state: ProcessingStateLiteral
    ready_to_stream: bool
    pct_complete: float | None = None
    duration_seconds: float | None = None
    error_code: str | None = None
    error_message: str | None = None
    playback: SignedUrl | None = None
    thumbnails: list[SignedUrl] = Field(default_factory=list)
    captions: list[CaptionTrack] = Field(default_factory=list)
    captions_status: StepStatus = "ok"


# =============================================================================
# Analysis
# =============================================================================


class AnalysisResult(BaseModel):
    """Metadata synthesized by the vision-language model."""

    title: str = Field(..., min_length=1, max_length=60)
    description: str = Field(..., min_length=1)
    category: CategoryLiteral
    tags: list[str] = Field(..., min_length=5, max_length=5)
    content_rating: ContentRatingLiteral
    language: str = Field(..., pattern=r"^[a-z]{2}$", description="ISO 639-1")
    mood: MoodLiteral
    confidence: float = Field(..., ge=0, le=1)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def canonical_category(cls, v: Any) -> Any:
        return _canonical(v, CATEGORIES)

    @field_validator("mood", mode="before")
    @classmethod
    def canonical_mood(cls, v: Any) -> Any:
        return _canonical(v, MOODS)

    @field_validator("content_rating", mode="before")
    @classmethod
    def canonical_rating(cls, v: Any) -> Any:
        return _canonical(v, CONTENT_RATINGS)

    @field_validator("language", mode="before")
    @classmethod
    def lower_language(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("tags")
    @classmethod
    def non_empty_tags(cls, v: list[str]) -> list[str]:
        tags = [t.strip() for t in v]
        if any(not t for t in tags):
            raise ValueError("Tags must be non-empty")
        return tags

    def to_store_meta(self) -> dict[str, str]:
        """Fields written back onto the store record."""
        return {
            "name": self.title,
            "description": self.description,
            "tags": ",".join(self.tags),
            "category": self.category,
            "content_rating": self.content_rating,
            "language": self.language,
            "mood": self.mood,
            "ai_generated": "true",
            "ai_confidence": f"{self.confidence:.2f}",
        }


class KeyframeInfo(BaseModel):
    """Sampled keyframes and which survived the reachability check."""

    timestamps: list[float]
    candidates: int
    validated_urls: list[str]


class WriteBackStatus(BaseModel):
    status: Literal["ok", "failed", "skipped"]
    error: str | None = None


class AnalysisDebug(BaseModel):
    """Exact model inputs, returned on request."""

    system_prompt: str
    user_prompt: str
    screenshots: list[str]
    transcription: str | None = None


class AnalysisReport(BaseModel):
    """Full outcome of a synthesis run."""

    uid: str
    result: AnalysisResult
    duration_seconds: float | None = None
    duration_status: StepStatus = "ok"
    captions_status: StepStatus = "ok"
    caption_segments: int = 0
    keyframes: KeyframeInfo
    write_back: WriteBackStatus
    model: str
    processing_time_seconds: float = 0.0
    debug: AnalysisDebug | None = None


def _canonical(value: Any, allowed: tuple[str, ...]) -> Any:
    """Map a case-insensitive match onto its canonical label."""
    if not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    for label in allowed:
        if label.lower() == lowered:
            return label
    return value
