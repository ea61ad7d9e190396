"""Main FastAPI application.

This module creates the FastAPI application with:
- OpenAPI schema with security schemes
- Middleware for error handling and logging
- Rate limiting and Prometheus metrics
- Redis-backed analysis leases
- Health check endpoints
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from stream_ingest.api.middleware import (
    setup_error_handler,
    setup_logging_middleware,
    setup_prometheus,
    setup_rate_limiter,
)
from stream_ingest.api.routers import (
    analysis_router,
    captions_router,
    health_router,
    uploads_router,
    videos_router,
    webhooks_router,
)
from stream_ingest.api.security import get_security_schemes
from stream_ingest.core.config import get_settings
from stream_ingest.core.constants import (
    API_TAGS,
    API_V1_PREFIX,
    APP_DESCRIPTION,
    APP_NAME,
    APP_VERSION,
)
from stream_ingest.core.exceptions import ConfigurationError
from stream_ingest.core.http_session import close_all_clients
from stream_ingest.core.logging_config import setup_logging
from stream_ingest.database.redis import close_redis, init_redis
from stream_ingest.stream.signing import get_token_issuer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup loads the signing key once and connects Redis; shutdown closes
    Redis and the shared HTTP clients.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    logger.info("Starting %s v%s", APP_NAME, APP_VERSION)

    try:
        get_token_issuer()
    except ConfigurationError as e:
        # Only the signing endpoints need the key
        logger.warning("Signed playback unavailable: %s", e.message)

    if settings.redis_enabled:
        lease_manager = await init_redis()
        if not lease_manager.is_available:
            logger.warning("Redis unavailable, analysis leases use in-memory fallback")
    else:
        logger.info("Redis disabled in configuration")

    try:
        yield
    finally:
        logger.info("Shutting down %s", APP_NAME)
        if settings.redis_enabled:
            await close_redis()
        await close_all_clients()


def create_openapi_schema(app: FastAPI) -> dict[str, Any]:
    """Build the OpenAPI schema with security schemes attached."""
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=API_TAGS,
    )
    schema.setdefault("components", {})["securitySchemes"] = get_security_schemes()
    app.openapi_schema = schema
    return schema


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.openapi = lambda: create_openapi_schema(app)  # type: ignore[method-assign]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-ID"],
    )

    setup_logging_middleware(app)
    setup_error_handler(app)
    setup_rate_limiter(app)
    setup_prometheus(app)

    app.include_router(uploads_router, prefix=API_V1_PREFIX)
    app.include_router(videos_router, prefix=API_V1_PREFIX)
    app.include_router(captions_router, prefix=API_V1_PREFIX)
    app.include_router(analysis_router, prefix=API_V1_PREFIX)
    app.include_router(webhooks_router, prefix=API_V1_PREFIX)
    app.include_router(health_router)  # Health endpoints at root level

    logger.info("Application created successfully")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stream_ingest.api.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
