"""AI metadata synthesis endpoint."""

import logging
import time

from fastapi import APIRouter, Depends, Path, Query

from stream_ingest.api.dependencies import get_synthesizer
from stream_ingest.api.middleware.prometheus import (
    record_analysis_complete,
    record_analysis_start,
    record_keyframes,
)
from stream_ingest.core.exceptions import PipelineError
from stream_ingest.core.schemas import AnalysisReport
from stream_ingest.pipeline.metadata import MetadataSynthesizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["analysis"])


@router.post(
    "/{uid}",
    response_model=AnalysisReport,
    response_model_exclude_none=True,
    summary="Synthesize metadata",
    description="""
    Sample keyframes, keep the ones whose thumbnails actually resolve, and ask
    the vision-language model for title, description, category, tags, rating,
    language and mood. The validated result is merged into the video's
    metadata on the store.

    **Partial success:** missing duration or captions only degrade the
    analysis (`duration_status`, `captions_status`); a failed write-back is
    reported in `write_back` while the result is still returned.

    **Failures:** no reachable keyframe or an invalid model answer is a 422;
    a concurrent run for the same video is a 409.
    """,
    operation_id="analyze_video",
    responses={
        200: {"description": "Analysis completed"},
        404: {"description": "Unknown video"},
        409: {"description": "Analysis already running for this video"},
        422: {"description": "No keyframes, or the model answer failed validation"},
        502: {"description": "Model backend error"},
        504: {"description": "Analysis deadline exceeded"},
    },
)
async def analyze_video_endpoint(
    uid: str = Path(..., min_length=1, max_length=64),
    include_debug: bool = Query(default=False, description="Return the exact model inputs"),
    write_back: bool = Query(default=True, description="Save the result onto the video"),
    synthesizer: MetadataSynthesizer = Depends(get_synthesizer),
) -> AnalysisReport:
    record_analysis_start()
    started = time.perf_counter()
    try:
        report = await synthesizer.synthesize(
            uid,
            include_debug=include_debug,
            write_back=write_back,
        )
    except PipelineError as e:
        record_analysis_complete(time.perf_counter() - started, status=e.error_code)
        raise

    record_analysis_complete(time.perf_counter() - started)
    validated = len(report.keyframes.validated_urls)
    record_keyframes(validated, report.keyframes.candidates - validated)
    return report
