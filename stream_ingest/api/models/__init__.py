"""API models module."""

from stream_ingest.api.models.errors import (
    ErrorResponse,
    InternalServerErrorResponse,
    ValidationErrorResponse,
)
from stream_ingest.api.models.requests import (
    CaptionGenerateRequest,
    CaptionGenerateResponse,
    CaptionsResponse,
    DirectUploadRequest,
    IngestResponse,
    SignedUrlResponse,
    TokenRequest,
    UrlIngestRequest,
    WebhookAck,
)

__all__ = [
    "ErrorResponse",
    "InternalServerErrorResponse",
    "ValidationErrorResponse",
    "CaptionGenerateRequest",
    "CaptionGenerateResponse",
    "CaptionsResponse",
    "DirectUploadRequest",
    "IngestResponse",
    "SignedUrlResponse",
    "TokenRequest",
    "UrlIngestRequest",
    "WebhookAck",
]
