"""Duration-aware keyframe sampling.

The store rejects thumbnail requests past the end of the video, and evenly
spaced samples over very short clips bunch up against the trailing edge, so
the policy is tiered by duration:

- unknown or zero duration: fixed fallback times
- up to 10s: even spread over ``[0, d - 0.5]`` with one decimal
- up to 60s: even spread over ``[0, d - 0.5]`` in whole seconds
- longer: fixed relative offsets of ``d``

Every sample is then clamped to ``[0.1, floor(d - 0.5)]``.
"""

import math

from stream_ingest.core.constants import (
    DEFAULT_KEYFRAME_COUNT,
    FALLBACK_KEYFRAME_TIMES,
    KEYFRAME_MIN_TIME,
    KEYFRAME_SAFETY_MARGIN,
    LONG_VIDEO_OFFSETS,
    MEDIUM_VIDEO_MAX_SECONDS,
    PUBLIC_THUMBNAIL_BASE,
    SHORT_VIDEO_MAX_SECONDS,
)


def _round_tenth(value: float) -> float:
    """Round to one decimal with halves going up, so 0.25 becomes 0.3."""
    return math.floor(value * 10 + 0.5) / 10


def _spread(max_time: float, index: int, count: int) -> float:
    if count < 2:
        return 0.0
    return max_time * index / (count - 1)


def sample_keyframe_times(
    duration: float | None,
    count: int = DEFAULT_KEYFRAME_COUNT,
) -> list[float]:
    """
    Compute thumbnail timestamps for a video. Pure and never raises.

    Args:
        duration: Video length in seconds, None when the store has not reported it
        count: Number of samples wanted

    Returns:
        Non-decreasing timestamps in seconds
    """
    if count <= 0:
        return []

    if duration is None or math.isnan(duration) or duration <= 0:
        return [float(t) for t in FALLBACK_KEYFRAME_TIMES[:count]]

    max_time = max(0.0, duration - KEYFRAME_SAFETY_MARGIN)

    if duration <= SHORT_VIDEO_MAX_SECONDS:
        times = [_round_tenth(_spread(max_time, i, count)) for i in range(count)]
    elif duration <= MEDIUM_VIDEO_MAX_SECONDS:
        times = [float(math.floor(_spread(max_time, i, count))) for i in range(count)]
    else:
        times = [float(math.floor(duration * p)) for p in LONG_VIDEO_OFFSETS[:count]]

    upper = max(KEYFRAME_MIN_TIME, float(math.floor(max_time)))
    return [min(max(t, KEYFRAME_MIN_TIME), upper) for t in times]


def format_time_param(seconds: float) -> str:
    """Render a timestamp for the ``time=`` query parameter, e.g. ``5s`` or ``0.1s``."""
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{_round_tenth(seconds)}s"


def build_thumbnail_url(
    uid: str,
    seconds: float,
    width: int = 640,
    base_url: str = PUBLIC_THUMBNAIL_BASE,
) -> str:
    """Public delivery URL for a thumbnail at ``seconds``."""
    return (
        f"{base_url.rstrip('/')}/{uid}/thumbnails/thumbnail.jpg"
        f"?time={format_time_param(seconds)}&width={width}"
    )


def build_thumbnail_urls(
    uid: str,
    duration: float | None,
    count: int = DEFAULT_KEYFRAME_COUNT,
    width: int = 640,
    base_url: str = PUBLIC_THUMBNAIL_BASE,
) -> list[str]:
    return [
        build_thumbnail_url(uid, t, width, base_url)
        for t in sample_keyframe_times(duration, count)
    ]
