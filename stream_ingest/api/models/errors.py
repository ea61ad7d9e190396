"""Error response models for the API.

All errors share one JSON shape carrying a request_id for tracing.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from stream_ingest.core.constants import ErrorCodes


class ErrorResponse(BaseModel):
    """Standard error response model.

    Attributes:
        error: Error type identifier (e.g., "VALIDATION_ERROR", "NOT_FOUND")
        error_code: Machine-readable error code for programmatic handling
        message: Human-readable error message
        details: Additional error context (upstream body, validation errors, ...)
        request_id: Unique request identifier for tracing
        timestamp: ISO 8601 timestamp of when the error occurred
    """

    error: str = Field(
        ...,
        description="Error type identifier",
        examples=["UPSTREAM_ERROR"],
    )
    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["VIDEO_NOT_FOUND"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["get-record: not found"],
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details and context",
        examples=[{"upstream_status": 500, "upstream_body": "..."}],
    )
    request_id: str = Field(
        ...,
        description="Unique request identifier for tracing",
        examples=["3f0c2c1e-8d5b-4f53-9a53-8d1d6f0f9d41"],
    )
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO 8601 timestamp of error occurrence",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "NOT_FOUND",
                "error_code": "VIDEO_NOT_FOUND",
                "message": "get-record: not found",
                "details": {"uid": "ea95132c15732412d22c1476fa83f27a"},
                "request_id": "3f0c2c1e-8d5b-4f53-9a53-8d1d6f0f9d41",
                "timestamp": "2024-01-15T10:30:00Z",
            }
        }
    }


class ValidationErrorResponse(ErrorResponse):
    """Validation error response for request validation failures."""

    error: str = Field(default="VALIDATION_ERROR", frozen=True)
    error_code: str = Field(default=ErrorCodes.VALIDATION_ERROR)
    details: dict[str, Any] = Field(  # type: ignore[assignment]
        default_factory=dict,
        description="Validation errors by field",
    )


class InternalServerErrorResponse(ErrorResponse):
    """Internal server error response for unexpected failures."""

    error: str = Field(default="INTERNAL_SERVER_ERROR", frozen=True)
    error_code: str = Field(default=ErrorCodes.INTERNAL_ERROR, frozen=True)
    message: str = Field(
        default="An unexpected error occurred. Please try again later.",
        description="Generic error message to avoid leaking internal details",
    )


# Error type identifier per HTTP status
STATUS_TO_ERROR_TYPE = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "UNPROCESSABLE_ENTITY",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_SERVER_ERROR",
    502: "UPSTREAM_ERROR",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT",
}


def error_type_for_status(status_code: int) -> str:
    return STATUS_TO_ERROR_TYPE.get(status_code, "HTTP_ERROR")
