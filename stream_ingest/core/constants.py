"""Application constants and metadata.

This module centralizes all application-wide constants for:
- Application metadata
- API versioning
- Error codes
- Remote store and keyframe defaults
"""

from datetime import datetime, timezone

# Application start time (for uptime calculation)
START_TIME = datetime.now(timezone.utc)

# =============================================================================
# Application Metadata
# =============================================================================

APP_NAME = "Stream Ingest Pipeline API"
APP_DESCRIPTION = """
Video ingestion and metadata synthesis on top of a managed streaming backend.

## Features

- **Ingestion**: Remote copy from a URL with a bounded stream-through fallback,
  or one-time direct upload URLs for browsers
- **Playback**: Signed, time-limited manifest and thumbnail URLs
- **Captions**: AI caption generation and transcript rendering
- **Analysis**: Keyframe sampling plus a vision-language model that writes
  title, description, tags and rating back to the video

## Authentication

Admin ingestion requires an API key passed via the `X-API-Key` header.
Playback tokens require a session bearer token when session auth is enabled.
"""
APP_VERSION = "0.3.0"

# =============================================================================
# API Configuration
# =============================================================================

API_V1_PREFIX = "/api/v1"

API_TAGS = [
    {
        "name": "uploads",
        "description": "Ingestion endpoints. Copy from URL, stream-through fallback, direct uploads.",
    },
    {
        "name": "videos",
        "description": "Processing status and signed playback URLs.",
    },
    {
        "name": "captions",
        "description": "Caption generation and transcript rendering.",
    },
    {
        "name": "analysis",
        "description": "AI metadata synthesis with write-back to the store.",
    },
    {
        "name": "webhooks",
        "description": "Notifications sent by the remote video store.",
    },
    {
        "name": "health",
        "description": "Health check and monitoring endpoints.",
    },
]

# =============================================================================
# Error Code Constants
# =============================================================================


class ErrorCodes:
    """Standardized error codes for consistent error handling."""

    # Validation errors (400-422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    UNPROCESSABLE_ENTITY = "UNPROCESSABLE_ENTITY"
    NO_KEYFRAMES = "NO_KEYFRAMES"
    SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"
    CAPTIONS_NOT_FOUND = "CAPTIONS_NOT_FOUND"

    # Authentication errors (401-403)
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_API_KEY = "INVALID_API_KEY"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # Rate limiting (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (500-504)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"

    # Concurrency
    ANALYSIS_IN_PROGRESS = "ANALYSIS_IN_PROGRESS"


# =============================================================================
# HTTP Status Code Mappings
# =============================================================================

ERROR_CODE_TO_STATUS = {
    ErrorCodes.VALIDATION_ERROR: 422,
    ErrorCodes.INVALID_PARAMETER: 400,
    ErrorCodes.UNPROCESSABLE_ENTITY: 422,
    ErrorCodes.NO_KEYFRAMES: 422,
    ErrorCodes.SCHEMA_VALIDATION_FAILED: 422,
    ErrorCodes.PAYLOAD_TOO_LARGE: 413,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.VIDEO_NOT_FOUND: 404,
    ErrorCodes.CAPTIONS_NOT_FOUND: 404,
    ErrorCodes.AUTHENTICATION_ERROR: 401,
    ErrorCodes.UNAUTHORIZED: 401,
    ErrorCodes.INVALID_API_KEY: 401,
    ErrorCodes.INVALID_SIGNATURE: 401,
    ErrorCodes.RATE_LIMIT_EXCEEDED: 429,
    ErrorCodes.INTERNAL_ERROR: 500,
    ErrorCodes.CONFIGURATION_ERROR: 500,
    ErrorCodes.UPSTREAM_ERROR: 502,
    ErrorCodes.SERVICE_UNAVAILABLE: 503,
    ErrorCodes.TIMEOUT_ERROR: 504,
    ErrorCodes.ANALYSIS_IN_PROGRESS: 409,
}

# =============================================================================
# Keyframe Constants
# =============================================================================

DEFAULT_KEYFRAME_COUNT = 8
KEYFRAME_SAFETY_MARGIN = 0.5
KEYFRAME_MIN_TIME = 0.1
SHORT_VIDEO_MAX_SECONDS = 10
MEDIUM_VIDEO_MAX_SECONDS = 60
FALLBACK_KEYFRAME_TIMES = (1, 5, 10, 20, 30, 45, 60, 90)
LONG_VIDEO_OFFSETS = (0.02, 0.1, 0.2, 0.35, 0.5, 0.65, 0.8, 0.95)
MAX_MODEL_IMAGES = 8

# =============================================================================
# Remote Store Constants
# =============================================================================

TUS_VERSION = "1.0.0"
MEDIA_ID_HEADER = "stream-media-id"
PUBLIC_THUMBNAIL_BASE = "https://videodelivery.net"


class ProcessingState:
    """Processing states reported by the remote store."""

    QUEUED = "queued"
    INPROGRESS = "inprogress"
    READY = "ready"
    ERROR = "error"


PROCESSING_STATES = [
    ProcessingState.QUEUED,
    ProcessingState.INPROGRESS,
    ProcessingState.READY,
    ProcessingState.ERROR,
]


class IngestMethod:
    """Ingestion strategies for an upload attempt."""

    COPY = "copy"
    STREAM_THROUGH = "stream-through"
    DIRECT_BROWSER = "direct-browser"


# =============================================================================
# Analysis Enums
# =============================================================================

CATEGORIES = (
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
)
MOODS = ("Happy", "Calm", "Energetic", "Serious", "Funny", "Inspiring", "Dramatic", "Relaxing")
CONTENT_RATINGS = ("safe", "sensitive", "explicit")
