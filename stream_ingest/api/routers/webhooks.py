"""Webhook receiver for store notifications.

The store signs each delivery with ``Webhook-Signature: time=<ts>,sig1=<hex>``
where ``sig1`` is HMAC-SHA256 over ``"{time}.{raw body}"`` keyed with the
webhook secret.
"""

import hashlib
import hmac
import json
import logging
import time

from fastapi import APIRouter, Depends, Request

from stream_ingest.api.dependencies import get_settings_dep
from stream_ingest.api.models.requests import WebhookAck
from stream_ingest.core.config import Settings
from stream_ingest.core.constants import ErrorCodes
from stream_ingest.core.exceptions import UnprocessableEntityError, WebhookSignatureError
from stream_ingest.core.schemas import VideoRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

SIGNATURE_HEADER = "Webhook-Signature"


def parse_signature_header(header: str) -> tuple[str, str]:
    """Split ``time=...,sig1=...`` into (time, signature).

    Raises:
        WebhookSignatureError: Header is malformed
    """
    parts: dict[str, str] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key] = value
    if not parts.get("time") or not parts.get("sig1"):
        raise WebhookSignatureError("Malformed webhook signature header")
    return parts["time"], parts["sig1"]


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    message = timestamp.encode() + b"." + body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    header: str | None,
    body: bytes,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> None:
    """Check a delivery's signature and freshness.

    Raises:
        WebhookSignatureError: Missing, stale or mismatched signature
    """
    if not header:
        raise WebhookSignatureError("Missing webhook signature")

    timestamp, signature = parse_signature_header(header)
    try:
        sent_at = int(timestamp)
    except ValueError as e:
        raise WebhookSignatureError("Malformed webhook timestamp") from e

    current = time.time() if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        raise WebhookSignatureError(
            "Webhook signature is stale",
            details={"tolerance_seconds": tolerance_seconds},
        )

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise WebhookSignatureError("Webhook signature mismatch")


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Receive store notifications",
    description="""
    Receive a video state change from the store. When a webhook secret is
    configured the `Webhook-Signature` header is verified and deliveries older
    than the tolerance window are rejected.
    """,
    operation_id="receive_webhook",
    responses={
        200: {"description": "Notification received"},
        401: {"description": "Missing, stale or invalid signature"},
        422: {"description": "Body is not a video object"},
    },
)
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
) -> WebhookAck:
    body = await request.body()

    if settings.webhook_secret:
        verify_signature(
            settings.webhook_secret,
            request.headers.get(SIGNATURE_HEADER),
            body,
            tolerance_seconds=settings.webhook_tolerance_seconds,
        )

    try:
        payload = json.loads(body or b"{}")
    except ValueError as e:
        raise UnprocessableEntityError(
            "Webhook body is not valid JSON",
            error_code=ErrorCodes.VALIDATION_ERROR,
        ) from e

    if not isinstance(payload, dict) or not payload.get("uid"):
        raise UnprocessableEntityError(
            "Webhook body carries no video uid",
            error_code=ErrorCodes.VALIDATION_ERROR,
        )

    record = VideoRecord.from_api(payload)
    logger.info(
        "Webhook: %s is %s",
        record.uid,
        record.processing_state,
        extra={
            "uid": record.uid,
            "state": record.processing_state,
            "ready_to_stream": record.ready_to_stream,
            "error_code": record.error_info.code if record.error_info else None,
        },
    )

    return WebhookAck(
        received=True,
        uid=record.uid,
        state=record.processing_state,
        ready_to_stream=record.ready_to_stream,
    )
