"""Rate limiting middleware using SlowAPI.

This module provides:
- A default per-caller limit applied to every request
- Per-API-key rate limiting with IP fallback
- Optional Redis-backed storage shared between workers

The default limit is enforced by ``DefaultRateLimitMiddleware`` against the
limiter's own storage, so it holds for mounted routers and unmatched paths
alike. Route decorators from ``app.state.limiter`` keep working as usual.

Usage:
    from stream_ingest.api.middleware.rate_limiter import setup_rate_limiter

    app = FastAPI()
    setup_rate_limiter(app)
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from limits import RateLimitItem, parse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from stream_ingest.core.config import get_settings
from stream_ingest.core.constants import ErrorCodes

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60


def get_rate_limit_key(request: Request) -> str:
    """Extract rate limit key from request.

    Uses the API key if present, otherwise the client IP address.
    """
    api_key = getattr(request.state, "api_key", None) or request.headers.get("X-API-Key")
    if api_key:
        return f"apikey:{api_key}"
    return f"ip:{get_remote_address(request)}"


def rate_limit_response(request: Request, retry_after: int, limit: str) -> JSONResponse:
    """Build the 429 in the standard error shape with a Retry-After header."""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "key": get_rate_limit_key(request),
            "path": request.url.path,
            "retry_after": retry_after,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "error_code": ErrorCodes.RATE_LIMIT_EXCEEDED,
            "message": "Too many requests. Please slow down.",
            "details": {"retry_after_seconds": retry_after, "limit": limit},
            "request_id": getattr(request.state, "request_id", None),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers={"Retry-After": str(retry_after)},
    )


def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> JSONResponse:
    """Handle limits raised by route decorators."""
    retry_after = DEFAULT_RETRY_AFTER
    limit = getattr(exc, "limit", None)
    if limit is not None:
        try:
            retry_after = int(limit.limit.get_expiry())
        except (AttributeError, TypeError, ValueError):
            pass
    return rate_limit_response(request, retry_after, str(exc.detail))


class DefaultRateLimitMiddleware(BaseHTTPMiddleware):
    """Count every request against the default limit for its caller."""

    def __init__(self, app: ASGIApp, limiter: Limiter, default_limit: str) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.item: RateLimitItem = parse(default_limit)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        key = get_rate_limit_key(request)
        try:
            allowed = self.limiter.limiter.hit(self.item, key)
        except Exception as e:
            # Same policy as the limiter's swallow_errors: serve without a limit
            logger.warning("Rate limit storage unavailable: %s", e)
            allowed = True

        if not allowed:
            return rate_limit_response(request, int(self.item.get_expiry()), str(self.item))
        return await call_next(request)


def get_limiter() -> Limiter:
    """Create the rate limiter from settings."""
    settings = get_settings()

    if not settings.rate_limit_enabled:
        return Limiter(
            key_func=get_remote_address,
            default_limits=[],
            enabled=False,
        )

    storage_uri = "memory://"
    if settings.rate_limit_storage == "redis" and settings.redis_enabled:
        storage_uri = settings.redis_url

    return Limiter(
        key_func=get_rate_limit_key,
        default_limits=[settings.rate_limit_default],
        storage_uri=storage_uri,
        # Keep serving if the storage backend drops out
        swallow_errors=True,
    )


def setup_rate_limiter(app: FastAPI) -> Limiter:
    """Set up rate limiting middleware.

    Args:
        app: FastAPI application

    Returns:
        Configured Limiter instance
    """
    settings = get_settings()
    limiter = get_limiter()
    app.state.limiter = limiter

    if not settings.rate_limit_enabled:
        logger.info("Rate limiting is disabled")
        return limiter

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(
        DefaultRateLimitMiddleware,
        limiter=limiter,
        default_limit=settings.rate_limit_default,
    )

    logger.info(
        "Rate limiting enabled",
        extra={
            "storage": settings.rate_limit_storage,
            "default_limit": settings.rate_limit_default,
        },
    )

    return limiter
