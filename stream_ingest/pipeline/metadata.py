"""AI metadata synthesis with write-back to the store.

Steps:
1. Fetch the record for its duration (non-fatal)
2. Fetch and transcode captions (non-fatal)
3. Sample keyframes and keep only thumbnails that actually resolve
   (zero survivors is fatal, and the model is never called)
4. Ask the vision-language model for metadata and validate the answer
5. Merge the result into the store's metadata (failure is reported, not raised)
"""

import asyncio
import functools
import logging
import time
from collections.abc import Callable

import httpx

from stream_ingest.captions.transcoder import transcode_captions
from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.exceptions import (
    AnalysisInProgressError,
    AnalysisTimeoutError,
    NoKeyframesError,
    NotFoundError,
    PipelineError,
    UpstreamError,
)
from stream_ingest.core.logging_config import log_analysis_event
from stream_ingest.core.schemas import (
    AnalysisReport,
    KeyframeInfo,
    StepStatus,
    VideoRecord,
    WriteBackStatus,
)
from stream_ingest.database.redis import LeaseManager
from stream_ingest.llm_agents.metadata_agent import MetadataAgent
from stream_ingest.pipeline.keyframes import build_thumbnail_url, sample_keyframe_times
from stream_ingest.stream.client import StreamClient
from stream_ingest.stream.signing import SignedTokenIssuer

logger = logging.getLogger(__name__)

LEASE_KIND = "analysis"


class MetadataSynthesizer:
    """Orchestrate one analysis run for a video."""

    def __init__(
        self,
        store: StreamClient,
        http_client: httpx.AsyncClient,
        agent_provider: Callable[[], MetadataAgent],
        lease_manager: LeaseManager | None = None,
        issuer_provider: Callable[[], SignedTokenIssuer] | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Args:
            store: Client for the remote video store
            http_client: Plain client for thumbnail probes
            agent_provider: Returns the model agent; only called once keyframes exist
            lease_manager: Per-uid lease backend, None disables locking
            issuer_provider: Token issuer for private videos' thumbnails
            settings: Settings override
        """
        self.store = store
        self.http = http_client
        self.agent_provider = agent_provider
        self.lease_manager = lease_manager
        self.issuer_provider = issuer_provider
        self.settings = settings or get_settings()
        self._pending_releases: set[asyncio.Task] = set()

    async def synthesize(
        self,
        uid: str,
        include_debug: bool = False,
        write_back: bool = True,
    ) -> AnalysisReport:
        """
        Analyze a video and write the metadata back.

        Args:
            uid: Store identifier of the video
            include_debug: Return the exact prompts and screenshots sent
            write_back: Save the result onto the store record

        Returns:
            AnalysisReport with the result and per-step statuses

        Raises:
            AnalysisInProgressError: Another run holds the lease for ``uid``
            AnalysisTimeoutError: The overall deadline passed
            NotFoundError: Unknown uid
            NoKeyframesError: No thumbnail could be fetched
            SchemaValidationError: Model answer was unusable
            UpstreamError: Model backend failed
        """
        token = None
        if self.lease_manager is not None and self.settings.analysis_lock_enabled:
            token = await self.lease_manager.acquire(
                LEASE_KIND, uid, self.settings.analysis_lock_ttl_seconds
            )
            if token is None:
                raise AnalysisInProgressError(
                    f"Analysis already running for {uid}", details={"uid": uid}
                )

        model_calls: list[asyncio.Future] = []
        started = time.perf_counter()
        log_analysis_event(logger, uid, "started")
        try:
            report = await asyncio.wait_for(
                self._run(uid, include_debug, write_back, model_calls),
                timeout=self.settings.analysis_deadline_seconds,
            )
        except asyncio.TimeoutError as e:
            log_analysis_event(logger, uid, "failed", error="deadline exceeded")
            raise AnalysisTimeoutError(
                f"Analysis exceeded {self.settings.analysis_deadline_seconds}s",
                details={"uid": uid},
            ) from e
        except PipelineError as e:
            log_analysis_event(logger, uid, "failed", error=e.message)
            raise
        finally:
            if token is not None:
                running = [call for call in model_calls if not call.done()]
                if running:
                    self._release_when_done(running[0], uid, token)
                else:
                    await self.lease_manager.release(LEASE_KIND, uid, token)  # type: ignore[union-attr]

        report.processing_time_seconds = round(time.perf_counter() - started, 3)
        log_analysis_event(
            logger,
            uid,
            "completed",
            duration_seconds=report.processing_time_seconds,
            keyframes=len(report.keyframes.validated_urls),
        )
        return report

    def _release_when_done(self, call: asyncio.Future, uid: str, token: str) -> None:
        """Hold the lease until an abandoned model call returns."""
        logger.warning("Model call for %s outlived the deadline, lease held until it returns", uid)

        def _release(finished: asyncio.Future) -> None:
            if not finished.cancelled():
                finished.exception()
            task = asyncio.ensure_future(
                self.lease_manager.release(LEASE_KIND, uid, token)  # type: ignore[union-attr]
            )
            self._pending_releases.add(task)
            task.add_done_callback(self._pending_releases.discard)

        call.add_done_callback(_release)

    async def _run(
        self,
        uid: str,
        include_debug: bool,
        write_back: bool,
        model_calls: list[asyncio.Future],
    ) -> AnalysisReport:
        record, duration_status = await self._fetch_record(uid)
        duration = record.duration_seconds if record else None
        if duration is None:
            duration_status = "unavailable"

        captions_csv, segment_count, captions_status = await self._fetch_captions(uid)

        timestamps = sample_keyframe_times(duration, self.settings.keyframe_count)
        candidates = self._thumbnail_urls(uid, timestamps)
        validated = await self._validate_urls(candidates)
        if not validated:
            raise NoKeyframesError(
                "No keyframes could be fetched for analysis",
                details={"uid": uid, "candidates": len(candidates)},
            )

        agent = self.agent_provider()
        loop = asyncio.get_running_loop()
        # Worker threads cannot be cancelled; the shielded future outlives a deadline.
        model_call = loop.run_in_executor(
            None,
            functools.partial(agent.analyze, validated, duration, captions_csv),
        )
        model_calls.append(model_call)
        result, debug = await asyncio.shield(model_call)

        write_back_status = WriteBackStatus(status="ok")
        if write_back:
            try:
                await self.store.update_metadata(
                    uid,
                    result.to_store_meta(),
                    existing=record.meta if record else None,
                )
            except PipelineError as e:
                logger.error("Metadata write-back failed for %s: %s", uid, e.message)
                write_back_status = WriteBackStatus(status="failed", error=e.message)
        else:
            write_back_status = WriteBackStatus(status="skipped")

        return AnalysisReport(
            uid=uid,
            result=result,
            duration_seconds=duration,
            duration_status=duration_status,
            captions_status=captions_status,
            caption_segments=segment_count,
            keyframes=KeyframeInfo(
                timestamps=timestamps,
                candidates=len(candidates),
                validated_urls=validated,
            ),
            write_back=write_back_status,
            model=agent.model,
            debug=debug if include_debug else None,
        )

    async def _fetch_record(self, uid: str) -> tuple[VideoRecord | None, StepStatus]:
        try:
            return await self.store.get_record(uid), "ok"
        except NotFoundError:
            raise
        except UpstreamError as e:
            logger.warning("Duration unavailable for %s: %s", uid, e.message)
            return None, "unavailable"

    async def _fetch_captions(self, uid: str) -> tuple[str | None, int, StepStatus]:
        try:
            raw = await self.store.fetch_caption_vtt(uid, self.settings.caption_language)
        except (NotFoundError, UpstreamError) as e:
            logger.info("Captions unavailable for %s: %s", uid, e.message)
            return None, 0, "unavailable"

        transcript = transcode_captions(raw)
        if not transcript.segments:
            return None, 0, "unavailable"
        return transcript.csv_transcript, transcript.segment_count, "ok"

    def _thumbnail_urls(self, uid: str, timestamps: list[float]) -> list[str]:
        width = self.settings.keyframe_width
        if self.settings.stream_require_signed_urls and self.issuer_provider is not None:
            issuer = self.issuer_provider()
            return [
                issuer.issue(uid, thumbnail_time_seconds=t, thumbnail_width=width).thumbnail_url
                for t in timestamps
            ]
        base_url = self.settings.public_thumbnail_base
        return [build_thumbnail_url(uid, t, width, base_url) for t in timestamps]

    async def _validate_urls(self, urls: list[str]) -> list[str]:
        """HEAD every candidate concurrently, keeping order."""
        results = await asyncio.gather(*(self._probe(url) for url in urls))
        return [url for url, ok in zip(urls, results) if ok]

    async def _probe(self, url: str) -> bool:
        try:
            response = await self.http.head(url, timeout=self.settings.keyframe_probe_timeout)
        except httpx.HTTPError as e:
            logger.debug("Keyframe probe failed for %s: %s", url, e)
            return False
        if not response.is_success:
            logger.debug("Keyframe probe for %s returned HTTP %s", url, response.status_code)
            return False
        return True
