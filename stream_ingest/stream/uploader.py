"""Upload orchestration against the remote video store.

URL sources are first handed to the store as a remote copy. If the store
rejects the copy, the bytes are fetched here and pushed through a tus
session exactly once, under a hard size ceiling. Browser uploads only get a
one-time upload URL and never pass through this process.
"""

import logging

import httpx

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.constants import IngestMethod
from stream_ingest.core.exceptions import PayloadTooLargeError, UpstreamError
from stream_ingest.core.logging_config import log_ingest_event
from stream_ingest.core.schemas import IngestResult
from stream_ingest.stream.client import MAX_ERROR_BODY, StreamClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 100 * 1024 * 1024


class UploadOrchestrator:
    """Drive copy, stream-through and direct-browser ingestion."""

    def __init__(
        self,
        store: StreamClient,
        http_client: httpx.AsyncClient,
        max_bytes: int = DEFAULT_MAX_BYTES,
        require_signed_urls: bool = False,
        max_duration_seconds: int = 3600,
    ) -> None:
        """
        Args:
            store: Client for the remote video store
            http_client: Plain client used to fetch source URLs (no store credentials)
            max_bytes: Stream-through ceiling
            require_signed_urls: Mark new videos as private
            max_duration_seconds: Limit for direct-browser uploads
        """
        self.store = store
        self.http = http_client
        self.max_bytes = max_bytes
        self.require_signed_urls = require_signed_urls
        self.max_duration_seconds = max_duration_seconds

    @classmethod
    def from_settings(
        cls,
        store: StreamClient,
        http_client: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> "UploadOrchestrator":
        settings = settings or get_settings()
        return cls(
            store=store,
            http_client=http_client,
            max_bytes=settings.stream_through_max_bytes,
            require_signed_urls=settings.stream_require_signed_urls,
            max_duration_seconds=settings.stream_max_duration_seconds,
        )

    async def ingest(self, source_url: str, meta: dict[str, str] | None = None) -> IngestResult:
        """
        Ingest a video from a URL.

        Args:
            source_url: Publicly reachable video URL
            meta: Caller metadata stored on the video

        Returns:
            IngestResult with the method that succeeded

        Raises:
            PayloadTooLargeError: Fallback source exceeds the ceiling
            UpstreamError: Fallback fetch, session create or payload write failed
        """
        meta = {**(meta or {}), "source": source_url}
        log_ingest_event(logger, source_url, "started")

        try:
            result = await self.store.copy_from_url(
                source_url,
                meta=meta,
                require_signed_urls=self.require_signed_urls,
            )
        except UpstreamError as e:
            log_ingest_event(
                logger,
                source_url,
                "fallback",
                method=IngestMethod.STREAM_THROUGH,
                error=e.message,
            )
        else:
            log_ingest_event(
                logger, source_url, "completed", method=IngestMethod.COPY, uid=result["uid"]
            )
            return IngestResult(
                uid=result["uid"],
                method=IngestMethod.COPY,
                thumbnail_url=result.get("thumbnail"),
            )

        try:
            data = await self._fetch_source(source_url)
            return await self._stream_through(data, meta, source_url)
        except (PayloadTooLargeError, UpstreamError) as e:
            log_ingest_event(
                logger,
                source_url,
                "failed",
                method=IngestMethod.STREAM_THROUGH,
                error=e.message,
            )
            raise

    async def ingest_bytes(
        self,
        data: bytes,
        meta: dict[str, str] | None = None,
        label: str = "<bytes>",
    ) -> IngestResult:
        """
        Ingest an in-memory payload. There is nothing to copy from, so this
        goes straight to stream-through under the same ceiling.
        """
        if len(data) > self.max_bytes:
            raise PayloadTooLargeError(
                f"Payload of {len(data)} bytes exceeds the {self.max_bytes} byte limit",
                details={"size": len(data), "limit": self.max_bytes},
            )
        log_ingest_event(logger, label, "started")
        return await self._stream_through(data, dict(meta or {}), label)

    async def create_direct_upload(
        self,
        meta: dict[str, str] | None = None,
        max_duration_seconds: int | None = None,
    ) -> IngestResult:
        """Mint a one-time upload URL for a browser client."""
        result = await self.store.create_direct_upload(
            max_duration_seconds or self.max_duration_seconds,
            meta=meta,
            require_signed_urls=self.require_signed_urls,
        )
        log_ingest_event(
            logger,
            "browser",
            "completed",
            method=IngestMethod.DIRECT_BROWSER,
            uid=result["uid"],
        )
        return IngestResult(
            uid=result["uid"],
            method=IngestMethod.DIRECT_BROWSER,
            upload_url=result["uploadURL"],
        )

    async def _fetch_source(self, url: str) -> bytes:
        """Download the source, enforcing the ceiling on both header and body."""
        too_large = PayloadTooLargeError(
            f"Source exceeds the {self.max_bytes} byte stream-through limit",
            details={"source": url, "limit": self.max_bytes},
        )
        try:
            async with self.http.stream("GET", url) as response:
                if not response.is_success:
                    body = await _read_prefix(response, MAX_ERROR_BODY)
                    raise UpstreamError(
                        f"Source fetch failed with HTTP {response.status_code}",
                        upstream_status=response.status_code,
                        upstream_body=body,
                    )

                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise too_large

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise too_large
                return bytes(buffer)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Source fetch failed: {type(e).__name__}: {e}") from e

    async def _stream_through(
        self,
        data: bytes,
        meta: dict[str, str],
        label: str,
    ) -> IngestResult:
        session_url, uid = await self.store.create_tus_session(
            len(data),
            meta=meta,
            require_signed_urls=self.require_signed_urls,
        )
        await self.store.write_tus_payload(session_url, data)
        log_ingest_event(
            logger, label, "completed", method=IngestMethod.STREAM_THROUGH, uid=uid
        )
        return IngestResult(
            uid=uid,
            method=IngestMethod.STREAM_THROUGH,
            bytes_transferred=len(data),
        )


async def _read_prefix(response: httpx.Response, limit: int) -> str:
    collected = bytearray()
    async for chunk in response.aiter_bytes():
        collected.extend(chunk)
        if len(collected) >= limit:
            break
    return collected[:limit].decode(errors="replace")
