"""Video status and playback endpoints.

This module provides endpoints for:
- Polling processing status (with signed URLs once ready)
- Issuing signed playback tokens to session users
"""

import logging

from fastapi import APIRouter, Body, Depends, Path

from stream_ingest.api.dependencies import get_issuer, get_status_reporter
from stream_ingest.api.models.requests import SignedUrlResponse, TokenRequest
from stream_ingest.api.security import SessionUser, get_session_user
from stream_ingest.core.schemas import StatusPayload
from stream_ingest.stream.signing import SignedTokenIssuer
from stream_ingest.stream.status import StatusReporter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["videos"])


@router.get(
    "/status/{uid}",
    response_model=StatusPayload,
    summary="Get processing status",
    description="""
    Report the store's processing state for a video.

    Once the video is ready to stream, the response also carries a signed
    manifest URL and one signed thumbnail per sampled keyframe. Caption
    listing is best-effort: a failure sets `captions_status` to
    `unavailable` instead of failing the request.
    """,
    operation_id="get_video_status",
    responses={
        200: {"description": "Status retrieved"},
        404: {"description": "Unknown video"},
        500: {"description": "Video is ready but signing keys are not configured"},
        502: {"description": "Store error"},
    },
)
async def get_status_endpoint(
    uid: str = Path(..., min_length=1, max_length=64, description="Store identifier of the video"),
    reporter: StatusReporter = Depends(get_status_reporter),
) -> StatusPayload:
    return await reporter.get_status(uid)


@router.post(
    "/videos/{uid}/token",
    response_model=SignedUrlResponse,
    summary="Issue a signed playback URL",
    description="""
    Sign a time-limited token for a video and return the manifest and
    thumbnail URLs built from it.

    **Authentication:** `Authorization: Bearer <session>` when session auth is enabled.
    """,
    operation_id="issue_playback_token",
    responses={
        200: {"description": "Token issued"},
        401: {"description": "Missing or invalid session"},
        500: {"description": "Signing keys not configured"},
    },
)
async def issue_token_endpoint(
    uid: str = Path(..., min_length=1, max_length=64, description="Store identifier of the video"),
    request: TokenRequest | None = Body(default=None),
    user: SessionUser | None = Depends(get_session_user),
    issuer: SignedTokenIssuer = Depends(get_issuer),
) -> SignedUrlResponse:
    options = request or TokenRequest()
    signed = issuer.issue(
        uid,
        ttl_seconds=options.ttl_seconds,
        downloadable=options.downloadable,
        thumbnail_time_seconds=options.thumbnail_time_seconds,
        domain_override=options.domain_override,
    )

    logger.info(
        "Issued playback token for %s",
        uid,
        extra={"uid": uid, "user_id": user.user_id if user else None},
    )

    return SignedUrlResponse(
        **signed.to_response(),
        user_id=user.user_id if user else None,
    )
