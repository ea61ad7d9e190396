"""Ingestion endpoints.

This module provides endpoints for:
- Minting one-time direct upload URLs for browsers
- Ingesting a video from a URL (remote copy with stream-through fallback)
"""

import logging

from fastapi import APIRouter, Depends, status

from stream_ingest.api.dependencies import get_uploader
from stream_ingest.api.middleware.prometheus import record_ingest_attempt, record_ingest_bytes
from stream_ingest.api.models.requests import DirectUploadRequest, IngestResponse, UrlIngestRequest
from stream_ingest.api.security import APIKeyContext, validate_api_key
from stream_ingest.core.constants import IngestMethod
from stream_ingest.core.exceptions import PipelineError
from stream_ingest.stream.uploader import UploadOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["uploads"])


@router.post(
    "/direct",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a direct upload URL",
    description="""
    Mint a one-time upload URL. The browser uploads the file straight to the
    store; no bytes pass through this service.
    """,
    operation_id="create_direct_upload",
    responses={
        201: {"description": "Upload URL created"},
        502: {"description": "Store rejected the request"},
    },
)
async def create_direct_upload_endpoint(
    request: DirectUploadRequest,
    uploader: UploadOrchestrator = Depends(get_uploader),
) -> IngestResponse:
    try:
        result = await uploader.create_direct_upload(
            meta=request.meta,
            max_duration_seconds=request.max_duration_seconds,
        )
    except PipelineError:
        record_ingest_attempt(IngestMethod.DIRECT_BROWSER, "failed")
        raise

    record_ingest_attempt(IngestMethod.DIRECT_BROWSER, "success")
    return IngestResponse.model_validate(result.model_dump())


@router.post(
    "/url",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a video from a URL",
    description="""
    Ask the store to copy the video server-side. If the store rejects the copy,
    the source is fetched here and pushed through a resumable upload exactly
    once, subject to the stream-through size ceiling.

    **Authentication:** requires `X-API-Key` whenever API keys are configured.
    """,
    operation_id="ingest_from_url",
    responses={
        201: {"description": "Video created"},
        401: {"description": "Invalid or missing API key"},
        413: {"description": "Source exceeds the stream-through ceiling"},
        502: {"description": "Copy and stream-through both failed"},
    },
)
async def ingest_url_endpoint(
    request: UrlIngestRequest,
    uploader: UploadOrchestrator = Depends(get_uploader),
    auth_ctx: APIKeyContext | None = Depends(validate_api_key),
) -> IngestResponse:
    meta = dict(request.meta)
    if auth_ctx:
        meta.setdefault("ingested_by", auth_ctx.key_hash)

    try:
        result = await uploader.ingest(str(request.url), meta=meta)
    except PipelineError:
        record_ingest_attempt(IngestMethod.COPY, "failed")
        record_ingest_attempt(IngestMethod.STREAM_THROUGH, "failed")
        raise

    if result.method == IngestMethod.STREAM_THROUGH:
        record_ingest_attempt(IngestMethod.COPY, "failed")
        record_ingest_bytes(result.bytes_transferred)
    record_ingest_attempt(result.method, "success")

    return IngestResponse.model_validate(result.model_dump())
