"""Tests for the processing status reporter."""

from unittest.mock import MagicMock

import pytest

from conftest import TEST_KEY_ID, TEST_UID, RouteStub, envelope, video_object
from stream_ingest.core.exceptions import ConfigurationError, NotFoundError
from stream_ingest.stream.signing import SignedTokenIssuer
from stream_ingest.stream.status import StatusReporter

DOMAIN = "customer-test.cloudflarestream.com"
CAPTION_LIST = [{"language": "en", "label": "English", "generated": True, "status": "ready"}]


@pytest.fixture
def issuer(rsa_private_key):
    return SignedTokenIssuer(
        key_id=TEST_KEY_ID,
        private_key=rsa_private_key,
        delivery_domain=DOMAIN,
    )


class TestStatusReporter:
    """Test status composition."""

    async def test_ready_video(self, store_stub: RouteStub, issuer):
        """
        Given a ready 30 second video with one caption track
        When its status is requested
        Then signed playback and eight signed thumbnails are included
        """
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(video_object(duration=30)))
        store_stub.on("GET", f"/{TEST_UID}/captions", json_body=envelope(CAPTION_LIST))

        reporter = StatusReporter(store_stub.store_client(), lambda: issuer)
        payload = await reporter.get_status(TEST_UID)

        assert payload.state == "ready"
        assert payload.ready_to_stream is True
        assert payload.duration_seconds == 30
        assert payload.playback.playback_url.startswith(f"https://{DOMAIN}/")
        assert payload.playback.playback_url.endswith("/manifest/video.m3u8")
        assert len(payload.thumbnails) == 8
        assert payload.thumbnails[0].thumbnail_url.endswith("time=0.1s&width=640")
        assert payload.thumbnails[-1].thumbnail_url.endswith("time=29s&width=640")
        assert [c.language for c in payload.captions] == ["en"]
        assert payload.captions_status == "ok"

    async def test_processing_video_needs_no_key(self, store_stub: RouteStub):
        """
        Given a video still processing and no signing key configured
        When its status is requested
        Then the status is returned without signed URLs
        """
        record = video_object(ready=False, duration=-1, state="inprogress")
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(record))
        store_stub.on("GET", f"/{TEST_UID}/captions", json_body=envelope([]))
        provider = MagicMock(side_effect=ConfigurationError("no key"))

        payload = await StatusReporter(store_stub.store_client(), provider).get_status(TEST_UID)

        assert payload.state == "inprogress"
        assert payload.ready_to_stream is False
        assert payload.pct_complete == 40.5
        assert payload.playback is None
        assert payload.thumbnails == []
        provider.assert_not_called()

    async def test_ready_video_without_key(self, store_stub: RouteStub):
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(video_object()))
        provider = MagicMock(side_effect=ConfigurationError("no key"))

        with pytest.raises(ConfigurationError):
            await StatusReporter(store_stub.store_client(), provider).get_status(TEST_UID)

    async def test_error_state(self, store_stub: RouteStub, issuer):
        record = video_object(ready=False, state="error")
        record["status"].update(errorReasonCode="ERR_DURATION", errorReasonText="Too long")
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(record))

        payload = await StatusReporter(store_stub.store_client(), lambda: issuer).get_status(
            TEST_UID
        )

        assert payload.state == "error"
        assert payload.error_code == "ERR_DURATION"
        assert payload.error_message == "Too long"

    async def test_caption_listing_failure_is_soft(self, store_stub: RouteStub, issuer):
        """
        Given the caption listing fails
        When status is requested
        Then the status still succeeds with captions marked unavailable
        """
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(video_object()))
        store_stub.on("GET", f"/{TEST_UID}/captions", status=500)

        payload = await StatusReporter(store_stub.store_client(), lambda: issuer).get_status(
            TEST_UID
        )

        assert payload.captions == []
        assert payload.captions_status == "unavailable"

    async def test_unknown_video(self, store_stub: RouteStub, issuer):
        with pytest.raises(NotFoundError):
            await StatusReporter(store_stub.store_client(), lambda: issuer).get_status("nope")

    async def test_thumbnail_count(self, store_stub: RouteStub, issuer):
        store_stub.on("GET", f"/{TEST_UID}", json_body=envelope(video_object(duration=100)))
        store_stub.on("GET", f"/{TEST_UID}/captions", json_body=envelope([]))

        reporter = StatusReporter(
            store_stub.store_client(), lambda: issuer, keyframe_count=3, thumbnail_width=320
        )
        payload = await reporter.get_status(TEST_UID)

        assert len(payload.thumbnails) == 3
        assert all(t.thumbnail_url.endswith("&width=320") for t in payload.thumbnails)
