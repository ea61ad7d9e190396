"""Health check endpoints for monitoring.

This module provides:
- GET /health - Basic health check
- GET /health/live - Liveness probe (always returns 200 if running)
- GET /health/ready - Readiness probe (checks configuration and Redis)
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from stream_ingest.core.config import get_settings
from stream_ingest.core.constants import APP_VERSION, START_TIME
from stream_ingest.core.exceptions import ConfigurationError
from stream_ingest.database.redis import get_lease_manager
from stream_ingest.stream.signing import get_token_issuer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_store_config() -> dict[str, Any]:
    """Store credentials are required for every ingestion and analysis call."""
    settings = get_settings()
    if settings.stream_account_id and settings.stream_api_token:
        return {"status": "healthy", "available": True}
    return {"status": "unhealthy", "available": False, "error": "Store account not configured"}


def check_signing_config() -> dict[str, Any]:
    """Signing is only needed for private playback."""
    try:
        issuer = get_token_issuer()
    except ConfigurationError as e:
        return {"status": "degraded", "available": False, "error": e.message}
    return {"status": "healthy", "available": True, "kid": issuer.key_id}


def check_model_config() -> dict[str, Any]:
    settings = get_settings()
    if settings.llm_api_key:
        return {"status": "healthy", "available": True, "model": settings.llm_model}
    return {"status": "degraded", "available": False, "error": "Model API key not configured"}


async def check_redis_health() -> dict[str, Any]:
    """Redis backs analysis leases; without it leases fall back to memory."""
    result = await get_lease_manager().health_check()
    if result["status"] == "unhealthy":
        result["status"] = "degraded"
    return result


@router.get(
    "/health",
    response_model=dict[str, Any],
    summary="Basic health check",
    description="Quick health check for load balancers. Returns 200 if API is responding.",
    operation_id="health_check",
)
async def health_check() -> JSONResponse:
    """Basic health check endpoint. Does not check dependencies."""
    uptime = (datetime.now(timezone.utc) - START_TIME).total_seconds()
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "healthy",
            "version": APP_VERSION,
            "timestamp": _now(),
            "uptime_seconds": round(uptime, 2),
        },
    )


@router.get(
    "/health/live",
    response_model=dict[str, Any],
    summary="Liveness probe",
    description="Returns 200 if process is running.",
    operation_id="liveness_probe",
)
async def liveness_probe() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "alive", "timestamp": _now()},
    )


@router.get(
    "/health/ready",
    response_model=dict[str, Any],
    summary="Readiness probe",
    description="Checks if service is ready to accept traffic.",
    operation_id="readiness_probe",
    responses={
        200: {"description": "Service is ready (possibly degraded)"},
        503: {"description": "Service is not ready"},
    },
)
async def readiness_probe() -> JSONResponse:
    """Readiness probe endpoint.

    Missing store credentials make the service unready. Missing signing keys,
    a missing model key or an unreachable Redis only degrade it.
    """
    settings = get_settings()

    components: dict[str, Any] = {
        "api": {"status": "healthy"},
        "store": check_store_config(),
        "signing": check_signing_config(),
        "model": check_model_config(),
    }
    if settings.redis_enabled:
        components["redis"] = await check_redis_health()

    statuses = [comp.get("status") for comp in components.values()]
    if any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif all(s == "healthy" for s in statuses):
        overall_status = "healthy"
        status_code = status.HTTP_200_OK
    else:
        overall_status = "degraded"
        status_code = status.HTTP_200_OK

    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall_status,
            "version": APP_VERSION,
            "timestamp": _now(),
            "components": components,
        },
    )
