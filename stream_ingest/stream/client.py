"""Async client for the remote video store (Cloudflare Stream API v4).

Each method is one upstream operation with a single attempt, except
``get_record`` which is a safe read and goes through the explicit retry
wrapper. Errors surface as typed pipeline exceptions carrying the upstream
body.
"""

import base64
import logging
from typing import Any

import httpx

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.constants import MEDIA_ID_HEADER, TUS_VERSION, ErrorCodes
from stream_ingest.core.exceptions import ConfigurationError, NotFoundError, UpstreamError
from stream_ingest.core.http_session import request_with_retry
from stream_ingest.core.schemas import CaptionTrack, VideoRecord

logger = logging.getLogger(__name__)

# Upstream bodies are echoed back to callers; keep them bounded
MAX_ERROR_BODY = 2000


def encode_upload_metadata(
    meta: dict[str, str] | None = None,
    require_signed_urls: bool = False,
    max_duration_seconds: int | None = None,
) -> str:
    """
    Build a tus ``Upload-Metadata`` header value.

    Pairs are ``key base64(value)`` joined by commas. The store reads
    ``requiresignedurls`` as a bare flag, so it is only present when set.
    """
    pairs: list[str] = []
    for key, value in (meta or {}).items():
        safe_key = "".join(ch for ch in str(key) if ch not in " ,")
        if not safe_key:
            continue
        encoded = base64.b64encode(str(value).encode()).decode()
        pairs.append(f"{safe_key} {encoded}")
    if max_duration_seconds:
        encoded = base64.b64encode(str(max_duration_seconds).encode()).decode()
        pairs.append(f"maxdurationseconds {encoded}")
    if require_signed_urls:
        pairs.append("requiresignedurls")
    return ",".join(pairs)


class StreamClient:
    """Operations consumed from the remote video store."""

    def __init__(
        self,
        account_id: str,
        api_token: str,
        api_base: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 30.0,
        record_attempts: int = 3,
        record_backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not account_id or not api_token:
            raise ConfigurationError(
                "Stream account is not configured",
                details={"required": ["STREAM_ACCOUNT_ID", "STREAM_API_TOKEN"]},
            )
        self.account_id = account_id
        self.base_url = f"{api_base.rstrip('/')}/accounts/{account_id}/stream"
        self.record_attempts = record_attempts
        self.record_backoff = record_backoff
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Authorization": f"Bearer {api_token}"},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "StreamClient":
        settings = settings or get_settings()
        return cls(
            account_id=settings.stream_account_id,
            api_token=settings.stream_api_token,
            api_base=settings.stream_api_base,
            timeout=settings.upstream_timeout_seconds,
            record_attempts=settings.record_fetch_attempts,
            record_backoff=settings.record_fetch_backoff,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _url(self, path: str = "") -> str:
        return f"{self.base_url}{path}"

    async def _send(
        self,
        method: str,
        url: str,
        action: str,
        retry: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            if retry:
                return await request_with_retry(
                    self._client,
                    method,
                    url,
                    attempts=self.record_attempts,
                    backoff_factor=self.record_backoff,
                    **kwargs,
                )
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{action} failed: {type(e).__name__}: {e}") from e

    @staticmethod
    def _check(
        response: httpx.Response,
        action: str,
        not_found_code: str | None = None,
    ) -> None:
        if response.status_code == 404 and not_found_code:
            raise NotFoundError(
                f"{action}: not found",
                details={"upstream_body": response.text[:MAX_ERROR_BODY]},
                error_code=not_found_code,
            )
        if not response.is_success:
            raise UpstreamError(
                f"{action} failed with HTTP {response.status_code}",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )

    @classmethod
    def _result(
        cls,
        response: httpx.Response,
        action: str,
        not_found_code: str | None = None,
    ) -> Any:
        """Unwrap the ``{success, errors, result}`` envelope."""
        cls._check(response, action, not_found_code)
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{action} returned invalid JSON",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            ) from e
        if isinstance(body, dict) and body.get("success") is False:
            raise UpstreamError(
                f"{action} was rejected",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )
        return body.get("result") if isinstance(body, dict) else body

    # Ingestion

    async def copy_from_url(
        self,
        url: str,
        meta: dict[str, str] | None = None,
        require_signed_urls: bool = False,
    ) -> dict[str, Any]:
        """
        Ask the store to fetch ``url`` server-side.

        Returns:
            The created video object (``uid``, ``thumbnail``, ...)
        """
        response = await self._send(
            "POST",
            self._url("/copy"),
            "copy-from-url",
            json={"url": url, "meta": meta or {}, "requireSignedURLs": require_signed_urls},
        )
        result = self._result(response, "copy-from-url")
        if not isinstance(result, dict) or not result.get("uid"):
            raise UpstreamError(
                "copy-from-url returned no uid",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )
        return result

    async def create_tus_session(
        self,
        upload_length: int,
        meta: dict[str, str] | None = None,
        require_signed_urls: bool = False,
    ) -> tuple[str, str]:
        """
        Open a resumable upload declaring the full length up front.

        Returns:
            Tuple of (session URL, uid)
        """
        headers = {
            "Tus-Resumable": TUS_VERSION,
            "Upload-Length": str(upload_length),
        }
        metadata = encode_upload_metadata(meta, require_signed_urls)
        if metadata:
            headers["Upload-Metadata"] = metadata

        response = await self._send("POST", self._url(), "tus-create", headers=headers)
        self._check(response, "tus-create")

        location = response.headers.get("Location")
        if not location:
            raise UpstreamError(
                "tus-create returned no Location",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )
        session_url = str(httpx.URL(self.base_url + "/").join(location))
        uid = response.headers.get(MEDIA_ID_HEADER)
        if not uid:
            uid = httpx.URL(session_url).path.rstrip("/").split("/")[-1]
        return session_url, uid

    async def write_tus_payload(self, session_url: str, data: bytes) -> None:
        """Write the whole payload at offset 0 in one request."""
        response = await self._send(
            "PATCH",
            session_url,
            "tus-patch",
            headers={
                "Tus-Resumable": TUS_VERSION,
                "Upload-Offset": "0",
                "Content-Type": "application/offset+octet-stream",
            },
            content=data,
        )
        self._check(response, "tus-patch")

    async def create_direct_upload(
        self,
        max_duration_seconds: int,
        meta: dict[str, str] | None = None,
        require_signed_urls: bool = False,
    ) -> dict[str, Any]:
        """
        Mint a one-time upload URL for a browser.

        Returns:
            Dict with ``uid`` and ``uploadURL``
        """
        response = await self._send(
            "POST",
            self._url("/direct_upload"),
            "create-direct-upload",
            json={
                "maxDurationSeconds": max_duration_seconds,
                "requireSignedURLs": require_signed_urls,
                "meta": meta or {},
            },
        )
        result = self._result(response, "create-direct-upload")
        if not isinstance(result, dict) or not result.get("uid") or not result.get("uploadURL"):
            raise UpstreamError(
                "create-direct-upload returned an incomplete session",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )
        return result

    # Records

    async def get_record(self, uid: str) -> VideoRecord:
        response = await self._send("GET", self._url(f"/{uid}"), "get-record", retry=True)
        result = self._result(response, "get-record", ErrorCodes.VIDEO_NOT_FOUND)
        if not isinstance(result, dict) or not result.get("uid"):
            raise UpstreamError(
                "get-record returned no video object",
                upstream_status=response.status_code,
                upstream_body=response.text[:MAX_ERROR_BODY],
            )
        return VideoRecord.from_api(result)

    async def update_metadata(
        self,
        uid: str,
        fields: dict[str, str],
        existing: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Merge ``fields`` over the record's current meta and save it.

        The store replaces ``meta`` wholesale, so the current map is read
        first unless the caller already has it.
        """
        if existing is None:
            existing = (await self.get_record(uid)).meta
        merged = {**existing, **fields}
        response = await self._send(
            "POST",
            self._url(f"/{uid}"),
            "update-metadata",
            json={"meta": merged},
        )
        self._result(response, "update-metadata", ErrorCodes.VIDEO_NOT_FOUND)
        return merged

    # Captions

    async def list_captions(self, uid: str) -> list[CaptionTrack]:
        response = await self._send("GET", self._url(f"/{uid}/captions"), "list-captions")
        result = self._result(response, "list-captions", ErrorCodes.VIDEO_NOT_FOUND)
        if isinstance(result, dict):
            result = result.get("captions") or []
        return [
            CaptionTrack(
                language=item.get("language", ""),
                label=item.get("label"),
                generated=bool(item.get("generated")),
                status=item.get("status"),
            )
            for item in result or []
            if isinstance(item, dict)
        ]

    async def fetch_caption_vtt(self, uid: str, language: str) -> str:
        response = await self._send(
            "GET",
            self._url(f"/{uid}/captions/{language}/vtt"),
            "fetch-caption-track",
        )
        self._check(response, "fetch-caption-track", ErrorCodes.CAPTIONS_NOT_FOUND)
        return response.text

    async def generate_captions(self, uid: str, language: str) -> dict[str, Any]:
        response = await self._send(
            "POST",
            self._url(f"/{uid}/captions/{language}/generate"),
            "generate-caption-track",
        )
        result = self._result(response, "generate-caption-track", ErrorCodes.VIDEO_NOT_FOUND)
        return result if isinstance(result, dict) else {"result": result}
