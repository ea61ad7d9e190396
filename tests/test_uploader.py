"""Tests for upload orchestration (copy, stream-through fallback, direct upload)."""

import httpx
import pytest

from conftest import TEST_UID, RouteStub, envelope
from stream_ingest.core.exceptions import PayloadTooLargeError, UpstreamError
from stream_ingest.stream.uploader import UploadOrchestrator

SOURCE = "https://cdn.example.com/video.mp4"
TUS_URL = "https://upload.videodelivery.net/tus/abc"
PAYLOAD = b"\x00\x01video-bytes" * 4


@pytest.fixture
def tus_ready(store_stub: RouteStub) -> RouteStub:
    """Store that rejects copies but accepts tus uploads."""
    store_stub.on("POST", "/copy", status=400, json_body={"success": False, "errors": []})
    store_stub.on(
        "POST",
        "",
        status=201,
        headers={"Location": TUS_URL, "stream-media-id": TEST_UID},
    )
    store_stub.on("PATCH", TUS_URL, status=204)
    return store_stub


def orchestrator(store_stub: RouteStub, http_stub: RouteStub, **kwargs) -> UploadOrchestrator:
    return UploadOrchestrator(
        store=store_stub.store_client(),
        http_client=http_stub.http_client(),
        **kwargs,
    )


class TestCopyIngest:
    """Test the server-side copy path."""

    async def test_copy_succeeds(self, store_stub: RouteStub, http_stub: RouteStub):
        """
        Given the store accepts the copy
        When a URL is ingested
        Then the copy uid is returned and the source is never fetched here
        """
        store_stub.on(
            "POST",
            "/copy",
            json_body=envelope({"uid": TEST_UID, "thumbnail": "https://t.example/x.jpg"}),
        )

        result = await orchestrator(store_stub, http_stub).ingest(SOURCE, meta={"owner": "u1"})

        assert result.uid == TEST_UID
        assert result.method == "copy"
        assert result.thumbnail_url == "https://t.example/x.jpg"
        assert http_stub.calls == []
        assert store_stub.bodies("POST", "/copy")[0]["meta"] == {"owner": "u1", "source": SOURCE}

    async def test_copy_marks_private(self, store_stub: RouteStub, http_stub: RouteStub):
        store_stub.on("POST", "/copy", json_body=envelope({"uid": TEST_UID}))
        await orchestrator(store_stub, http_stub, require_signed_urls=True).ingest(SOURCE)
        assert store_stub.bodies("POST", "/copy")[0]["requireSignedURLs"] is True


class TestStreamThroughFallback:
    """Test the single fallback after a rejected copy."""

    async def test_fallback_after_rejection(self, tus_ready: RouteStub, http_stub: RouteStub):
        """
        Given the store rejects the copy and the source is reachable
        When a URL is ingested
        Then the bytes are pushed through one tus session
        """
        http_stub.on("GET", SOURCE, content=PAYLOAD)

        result = await orchestrator(tus_ready, http_stub).ingest(SOURCE)

        assert result.uid == TEST_UID
        assert result.method == "stream-through"
        assert result.bytes_transferred == len(PAYLOAD)
        assert tus_ready.count("POST", "/copy") == 1
        assert tus_ready.count("POST", "") == 1
        assert tus_ready.count("PATCH", TUS_URL) == 1
        patch_request = [r for r in tus_ready.calls if r.method == "PATCH"][0]
        assert patch_request.content == PAYLOAD

    async def test_source_fetch_has_no_store_credentials(
        self, tus_ready: RouteStub, http_stub: RouteStub
    ):
        http_stub.on("GET", SOURCE, content=PAYLOAD)
        await orchestrator(tus_ready, http_stub).ingest(SOURCE)
        assert "Authorization" not in http_stub.calls[0].headers

    async def test_unreachable_source(self, tus_ready: RouteStub, http_stub: RouteStub):
        """
        Given the copy is rejected and the source returns 500
        When a URL is ingested
        Then an upstream error carries the source status and no session is opened
        """
        http_stub.on("GET", SOURCE, status=500, content=b"origin down")

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator(tus_ready, http_stub).ingest(SOURCE)

        assert exc_info.value.upstream_status == 500
        assert exc_info.value.upstream_body == "origin down"
        assert tus_ready.count("POST", "") == 0
        assert tus_ready.count("POST", "/copy") == 1

    async def test_declared_length_over_ceiling(self, tus_ready: RouteStub, http_stub: RouteStub):
        http_stub.on("GET", SOURCE, content=b"x" * 20)

        with pytest.raises(PayloadTooLargeError) as exc_info:
            await orchestrator(tus_ready, http_stub, max_bytes=10).ingest(SOURCE)

        assert exc_info.value.status_code == 413
        assert tus_ready.count("POST", "") == 0

    async def test_streamed_body_over_ceiling(self, tus_ready: RouteStub, http_stub: RouteStub):
        """
        Given a source without Content-Length that streams past the ceiling
        When a URL is ingested
        Then the download is cut off with a payload-too-large error
        """

        async def body():
            for _ in range(3):
                yield b"x" * 8

        def chunked(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        http_stub.on("GET", SOURCE, handler=chunked)

        with pytest.raises(PayloadTooLargeError):
            await orchestrator(tus_ready, http_stub, max_bytes=10).ingest(SOURCE)
        assert tus_ready.count("POST", "") == 0

    async def test_no_second_fallback(self, tus_ready: RouteStub, http_stub: RouteStub):
        """
        Given the copy is rejected and the tus session cannot be created
        When a URL is ingested
        Then the error surfaces after exactly one attempt of each
        """
        http_stub.on("GET", SOURCE, content=PAYLOAD)
        tus_ready.on("POST", "", status=500, content=b"tus unavailable")

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator(tus_ready, http_stub).ingest(SOURCE)

        assert exc_info.value.upstream_body == "tus unavailable"
        assert tus_ready.count("POST", "/copy") == 1
        assert tus_ready.count("POST", "") == 1
        assert tus_ready.count("PATCH", TUS_URL) == 0

    async def test_patch_failure_surfaces(self, tus_ready: RouteStub, http_stub: RouteStub):
        http_stub.on("GET", SOURCE, content=PAYLOAD)
        tus_ready.on("PATCH", TUS_URL, status=460)

        with pytest.raises(UpstreamError):
            await orchestrator(tus_ready, http_stub).ingest(SOURCE)
        assert tus_ready.count("PATCH", TUS_URL) == 1


class TestBytesAndDirectUpload:
    """Test raw-payload and browser uploads."""

    async def test_ingest_bytes(self, tus_ready: RouteStub, http_stub: RouteStub):
        result = await orchestrator(tus_ready, http_stub).ingest_bytes(PAYLOAD, meta={"a": "b"})

        assert result.method == "stream-through"
        assert tus_ready.count("POST", "/copy") == 0

    async def test_ingest_bytes_over_ceiling(self, tus_ready: RouteStub, http_stub: RouteStub):
        with pytest.raises(PayloadTooLargeError):
            await orchestrator(tus_ready, http_stub, max_bytes=4).ingest_bytes(PAYLOAD)
        assert tus_ready.calls == []

    async def test_direct_upload(self, store_stub: RouteStub, http_stub: RouteStub):
        """
        Given a browser client needs to upload
        When a direct upload is created
        Then a one-time URL is returned and no bytes pass through
        """
        store_stub.on(
            "POST",
            "/direct_upload",
            json_body=envelope({"uid": TEST_UID, "uploadURL": "https://upload.example/once"}),
        )

        result = await orchestrator(
            store_stub, http_stub, max_duration_seconds=900
        ).create_direct_upload(meta={"owner": "u1"})

        assert result.method == "direct-browser"
        assert result.upload_url == "https://upload.example/once"
        assert result.bytes_transferred == 0
        assert store_stub.bodies("POST", "/direct_upload")[0]["maxDurationSeconds"] == 900

    def test_from_settings(self, store_stub: RouteStub, http_stub: RouteStub, configure):
        settings = configure(stream_through_max_bytes=1234, stream_require_signed_urls="true")
        uploader = UploadOrchestrator.from_settings(
            store_stub.store_client(), http_stub.http_client(), settings
        )
        assert uploader.max_bytes == 1234
        assert uploader.require_signed_urls is True
