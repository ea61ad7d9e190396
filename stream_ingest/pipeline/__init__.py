"""Keyframe sampling and metadata synthesis.

``stream_ingest.pipeline.metadata`` is imported directly by callers; it
depends on the stream client, which itself uses the sampler.
"""

from stream_ingest.pipeline.keyframes import (
    build_thumbnail_url,
    build_thumbnail_urls,
    format_time_param,
    sample_keyframe_times,
)

__all__ = [
    "build_thumbnail_url",
    "build_thumbnail_urls",
    "format_time_param",
    "sample_keyframe_times",
]
