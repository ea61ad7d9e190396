"""Processing status with signed playback URLs."""

import logging
from collections.abc import Callable

from stream_ingest.core.exceptions import NotFoundError, UpstreamError
from stream_ingest.core.schemas import StatusPayload
from stream_ingest.pipeline.keyframes import sample_keyframe_times
from stream_ingest.stream.client import StreamClient
from stream_ingest.stream.signing import SignedTokenIssuer

logger = logging.getLogger(__name__)


class StatusReporter:
    """Compose store state, signed URLs and caption tracks for a client."""

    def __init__(
        self,
        store: StreamClient,
        issuer_provider: Callable[[], SignedTokenIssuer],
        keyframe_count: int = 8,
        thumbnail_width: int = 640,
    ) -> None:
        """
        Args:
            store: Client for the remote video store
            issuer_provider: Returns the token issuer; only called once a
                video is ready, so an unconfigured key does not break status
                polling for videos still processing
            keyframe_count: Number of signed thumbnails to return
            thumbnail_width: Width of each thumbnail
        """
        self.store = store
        self.issuer_provider = issuer_provider
        self.keyframe_count = keyframe_count
        self.thumbnail_width = thumbnail_width

    async def get_status(self, uid: str) -> StatusPayload:
        """
        Get the client-facing status of a video.

        Raises:
            NotFoundError: Unknown uid
            UpstreamError: Store returned another non-success status
            ConfigurationError: Video is ready but no signing key is configured
        """
        record = await self.store.get_record(uid)

        payload = StatusPayload(
            uid=record.uid,
            state=record.processing_state,
            ready_to_stream=record.is_ready,
            pct_complete=record.pct_complete,
            duration_seconds=record.duration_seconds,
            error_code=record.error_info.code if record.error_info else None,
            error_message=record.error_info.message if record.error_info else None,
        )

        if record.is_ready:
            issuer = self.issuer_provider()
            payload.playback = issuer.issue(record.uid)
            payload.thumbnails = [
                issuer.issue(
                    record.uid,
                    thumbnail_time_seconds=t,
                    thumbnail_width=self.thumbnail_width,
                )
                for t in sample_keyframe_times(record.duration_seconds, self.keyframe_count)
            ]

        try:
            payload.captions = await self.store.list_captions(uid)
        except (NotFoundError, UpstreamError) as e:
            logger.warning("Caption listing unavailable for %s: %s", uid, e.message)
            payload.captions_status = "unavailable"

        return payload
