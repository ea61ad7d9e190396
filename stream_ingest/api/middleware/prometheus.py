"""Prometheus metrics middleware and instrumentation.

This module provides:
- Ingestion and analysis metrics
- API request metrics
- /metrics endpoint for Prometheus scraping

Usage:
    from stream_ingest.api.middleware.prometheus import setup_prometheus

    app = FastAPI()
    setup_prometheus(app)
"""

import logging
import re
import time
from collections.abc import Callable
from typing import Any

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from stream_ingest.core.config import get_settings
from stream_ingest.core.constants import APP_VERSION

logger = logging.getLogger(__name__)

# Store identifiers are 32 lowercase hex characters
UID_PATTERN = re.compile(r"/[0-9a-f]{32}(?=/|$)")
NUMERIC_PATTERN = re.compile(r"/\d+(?=/|$)")


# Ingestion metrics
ingest_attempts_total = Counter(
    "ingest_attempts_total",
    "Total number of ingestion attempts",
    ["method", "status"],
)

ingest_bytes_total = Counter(
    "ingest_bytes_total",
    "Bytes pushed to the store via stream-through",
)

# Analysis metrics
analysis_runs_total = Counter(
    "analysis_runs_total",
    "Total number of metadata synthesis runs",
    ["status"],
)

analysis_in_progress = Gauge(
    "analysis_in_progress",
    "Number of metadata synthesis runs currently in progress",
)

analysis_duration_seconds = Histogram(
    "analysis_duration_seconds",
    "Time spent on metadata synthesis",
    ["status"],
    buckets=(1, 5, 10, 20, 30, 60, 90, 120, float("inf")),
)

keyframes_validated_total = Counter(
    "keyframes_validated_total",
    "Keyframe candidates checked for reachability",
    ["result"],
)

# API request metrics
api_requests_total = Counter(
    "api_requests_total",
    "Total number of API requests",
    ["method", "endpoint", "status"],
)

api_request_duration_seconds = Histogram(
    "api_request_duration_seconds",
    "API request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, float("inf")),
)

app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for API requests."""

    def __init__(self, app: Any, metrics_path: str = "/metrics") -> None:
        super().__init__(app)
        self.metrics_path = metrics_path

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        if request.url.path == self.metrics_path:
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.perf_counter() - start_time
            endpoint = normalize_endpoint(request.url.path)
            method = request.method

            api_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status_code,
            ).inc()
            api_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint,
            ).observe(duration)

        return response


def normalize_endpoint(path: str) -> str:
    """Collapse identifiers in a path so label cardinality stays bounded."""
    path = UID_PATTERN.sub("/{uid}", path)
    return NUMERIC_PATTERN.sub("/{id}", path)


def setup_prometheus(app: FastAPI) -> None:
    """Set up Prometheus metrics and endpoint.

    Args:
        app: FastAPI application
    """
    settings = get_settings()

    if not settings.prometheus_enabled:
        logger.info("Prometheus metrics disabled")
        return

    app_info.labels(version=APP_VERSION).set(1)
    app.add_middleware(PrometheusMiddleware, metrics_path=settings.prometheus_path)

    @app.get(settings.prometheus_path, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics in text format."""
        return StarletteResponse(
            content=generate_latest(REGISTRY),
            status_code=200,
            media_type=CONTENT_TYPE_LATEST,
        )

    logger.info(
        "Prometheus metrics enabled",
        extra={"path": settings.prometheus_path},
    )


# Helper functions for recording metrics


def record_ingest_attempt(method: str, status: str = "success") -> None:
    """Record one ingestion attempt.

    Args:
        method: copy, stream-through or direct-browser
        status: success or failed
    """
    ingest_attempts_total.labels(method=method, status=status).inc()


def record_ingest_bytes(num_bytes: int) -> None:
    if num_bytes > 0:
        ingest_bytes_total.inc(num_bytes)


def record_analysis_start() -> None:
    analysis_in_progress.inc()


def record_analysis_complete(duration_seconds: float, status: str = "success") -> None:
    """Record the end of a synthesis run.

    Args:
        duration_seconds: Wall time of the run
        status: success, or the failing error code
    """
    analysis_in_progress.dec()
    analysis_runs_total.labels(status=status).inc()
    analysis_duration_seconds.labels(status=status).observe(duration_seconds)


def record_keyframes(validated: int, rejected: int) -> None:
    """Record reachability results for sampled keyframes."""
    if validated:
        keyframes_validated_total.labels(result="ok").inc(validated)
    if rejected:
        keyframes_validated_total.labels(result="rejected").inc(rejected)


__all__ = [
    "setup_prometheus",
    "PrometheusMiddleware",
    "normalize_endpoint",
    "record_ingest_attempt",
    "record_ingest_bytes",
    "record_analysis_start",
    "record_analysis_complete",
    "record_keyframes",
    "ingest_attempts_total",
    "ingest_bytes_total",
    "analysis_runs_total",
    "analysis_in_progress",
    "analysis_duration_seconds",
    "keyframes_validated_total",
    "api_requests_total",
    "api_request_duration_seconds",
    "app_info",
]
