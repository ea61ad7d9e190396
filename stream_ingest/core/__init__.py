"""Core package for the stream ingest pipeline."""

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.http_session import (
    close_all_clients,
    close_client,
    get_client,
    request_with_retry,
)
from stream_ingest.core.logging_config import (
    log_analysis_event,
    log_api_request,
    log_ingest_event,
    setup_logging,
)
from stream_ingest.core.schemas import (
    AnalysisReport,
    AnalysisResult,
    CaptionSegment,
    CaptionTranscript,
    IngestResult,
    SignedUrl,
    StatusPayload,
    VideoRecord,
)

__all__ = [
    "Settings",
    "get_settings",
    "AnalysisReport",
    "AnalysisResult",
    "CaptionSegment",
    "CaptionTranscript",
    "IngestResult",
    "SignedUrl",
    "StatusPayload",
    "VideoRecord",
    # Logging
    "setup_logging",
    "log_api_request",
    "log_ingest_event",
    "log_analysis_event",
    # HTTP
    "get_client",
    "close_client",
    "close_all_clients",
    "request_with_retry",
]
