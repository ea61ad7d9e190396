"""Custom exceptions for the ingestion and analysis pipeline."""

from typing import Any

from stream_ingest.core.constants import ERROR_CODE_TO_STATUS, ErrorCodes


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    error_code: str = ErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    @property
    def status_code(self) -> int:
        """HTTP status this error maps to."""
        return ERROR_CODE_TO_STATUS.get(self.error_code, 500)


class UnauthorizedError(PipelineError):
    """Caller credential missing or invalid."""

    error_code = ErrorCodes.UNAUTHORIZED


class WebhookSignatureError(UnauthorizedError):
    """Webhook signature missing, stale or mismatched."""

    error_code = ErrorCodes.INVALID_SIGNATURE


class NotFoundError(PipelineError):
    """Video identifier unknown to the store."""

    error_code = ErrorCodes.VIDEO_NOT_FOUND


class UpstreamError(PipelineError):
    """The store or model backend returned a non-success status."""

    error_code = ErrorCodes.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        upstream_body: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        if upstream_body is not None:
            details["upstream_body"] = upstream_body
        super().__init__(message, details)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class PayloadTooLargeError(PipelineError):
    """Stream-through source exceeds the byte ceiling."""

    error_code = ErrorCodes.PAYLOAD_TOO_LARGE


class UnprocessableEntityError(PipelineError):
    """Analysis cannot proceed with what was produced."""

    error_code = ErrorCodes.UNPROCESSABLE_ENTITY


class NoKeyframesError(UnprocessableEntityError):
    """No sampled thumbnail survived the reachability check."""

    error_code = ErrorCodes.NO_KEYFRAMES


class SchemaValidationError(UnprocessableEntityError):
    """Model output was not valid JSON or failed schema validation."""

    error_code = ErrorCodes.SCHEMA_VALIDATION_FAILED


class ConfigurationError(PipelineError):
    """Required secret or key is missing or unparsable."""

    error_code = ErrorCodes.CONFIGURATION_ERROR


class AnalysisInProgressError(PipelineError):
    """Another analysis already holds the lease for this video."""

    error_code = ErrorCodes.ANALYSIS_IN_PROGRESS


class AnalysisTimeoutError(PipelineError):
    """Analysis exceeded its overall deadline."""

    error_code = ErrorCodes.TIMEOUT_ERROR
