"""Caption endpoints.

This module provides endpoints for:
- Requesting an AI-generated caption track from the store
- Fetching a caption track rendered as plain text and CSV
"""

import logging

from fastapi import APIRouter, Body, Depends, Path, Query, status

from stream_ingest.api.dependencies import get_settings_dep, get_stream_client
from stream_ingest.api.models.requests import (
    CaptionGenerateRequest,
    CaptionGenerateResponse,
    CaptionsResponse,
)
from stream_ingest.captions.transcoder import transcode_captions
from stream_ingest.core.config import Settings
from stream_ingest.stream.client import StreamClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/captions", tags=["captions"])


@router.post(
    "/generate/{uid}",
    response_model=CaptionGenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Generate AI captions",
    description="""
    Ask the store to generate a caption track. Generation is asynchronous on
    the store's side; poll `/status/{uid}` to see when the track is ready.
    """,
    operation_id="generate_captions",
    responses={
        202: {"description": "Generation requested"},
        404: {"description": "Unknown video"},
        502: {"description": "Store error"},
    },
)
async def generate_captions_endpoint(
    uid: str = Path(..., min_length=1, max_length=64),
    request: CaptionGenerateRequest | None = Body(default=None),
    store: StreamClient = Depends(get_stream_client),
    settings: Settings = Depends(get_settings_dep),
) -> CaptionGenerateResponse:
    language = (request.language if request else None) or settings.caption_language
    result = await store.generate_captions(uid, language)
    track_status = str(result.get("status") or "inprogress")

    logger.info("Caption generation requested for %s (%s)", uid, language)

    return CaptionGenerateResponse(
        uid=uid,
        language=language,
        status=track_status,
        message=f"Caption generation requested for language '{language}'",
    )


@router.get(
    "/{uid}",
    response_model=CaptionsResponse,
    summary="Get captions",
    description="""
    Fetch a caption track and render it as timestamped plain text and as the
    CSV transcript given to the analysis model.
    """,
    operation_id="get_captions",
    responses={
        200: {"description": "Captions rendered"},
        404: {"description": "Unknown video or no track for this language"},
        502: {"description": "Store error"},
    },
)
async def get_captions_endpoint(
    uid: str = Path(..., min_length=1, max_length=64),
    language: str | None = Query(default=None, pattern=r"^[a-z]{2}$"),
    store: StreamClient = Depends(get_stream_client),
    settings: Settings = Depends(get_settings_dep),
) -> CaptionsResponse:
    language = language or settings.caption_language
    raw = await store.fetch_caption_vtt(uid, language)
    transcript = transcode_captions(raw)

    return CaptionsResponse(
        uid=uid,
        language=language,
        segment_count=transcript.segment_count,
        segments=transcript.segments,
        plain_text=transcript.plain_text,
        csv_transcript=transcript.csv_transcript,
    )
