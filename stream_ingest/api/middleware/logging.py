"""Request logging middleware.

Every request gets an X-Request-ID (taken from the caller when present)
that is echoed on the response and reused by the error handler.
"""

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from stream_ingest.core.logging_config import log_api_request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes and scrapes are not worth a log line each
QUIET_PATHS = frozenset({"/health/live", "/health/ready", "/metrics"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging with request IDs.

    Usage:
        app = FastAPI()
        app.add_middleware(LoggingMiddleware)
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else None

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Request failed",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id

        if path not in QUIET_PATHS:
            log_api_request(
                logger,
                method,
                path,
                response.status_code,
                duration_ms,
                client_ip=client_ip,
            )

        return response


def setup_logging_middleware(app: FastAPI) -> None:
    """Set up logging middleware for the application."""
    app.add_middleware(LoggingMiddleware)
    logger.info("Logging middleware initialized")


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    return getattr(request.state, "request_id", None) or request.headers.get(
        REQUEST_ID_HEADER,
        str(uuid.uuid4()),
    )
