"""Middleware module for the API.

This module provides middleware components for:
- Error handling and standardization
- Request/response logging with request IDs
- Rate limiting
- Prometheus metrics
"""

from stream_ingest.api.middleware.error_handler import (
    ErrorHandlerMiddleware,
    setup_error_handler,
)
from stream_ingest.api.middleware.logging import LoggingMiddleware, setup_logging_middleware
from stream_ingest.api.middleware.prometheus import (
    PrometheusMiddleware,
    record_analysis_complete,
    record_analysis_start,
    record_ingest_attempt,
    record_ingest_bytes,
    record_keyframes,
    setup_prometheus,
)
from stream_ingest.api.middleware.rate_limiter import get_limiter, setup_rate_limiter

__all__ = [
    "ErrorHandlerMiddleware",
    "setup_error_handler",
    "LoggingMiddleware",
    "setup_logging_middleware",
    "PrometheusMiddleware",
    "setup_prometheus",
    "setup_rate_limiter",
    "get_limiter",
    # Metrics helpers
    "record_analysis_complete",
    "record_analysis_start",
    "record_ingest_attempt",
    "record_ingest_bytes",
    "record_keyframes",
]
