"""WebVTT caption transcoding.

Turns a raw subtitle track into ordered segments plus two renderings: a
``[start] text`` listing for humans and a compact CSV transcript that the
analysis model consumes instead of the verbose VTT.
"""

import re

from stream_ingest.core.schemas import CaptionSegment, CaptionTranscript

BLOCK_SPLIT = re.compile(r"\r?\n\r?\n")
LINE_SPLIT = re.compile(r"\r?\n")
TIMECODE_SEPARATOR = "-->"

CSV_TITLE = "Audio Captions and Timestamps Reference for Video"
CSV_HEADER = "Start Time, End Time, Caption Text"


def parse_segments(raw_track: str) -> list[CaptionSegment]:
    """
    Parse cue blocks into segments, skipping anything malformed.

    Args:
        raw_track: Raw WebVTT text

    Returns:
        Segments in source order
    """
    segments: list[CaptionSegment] = []
    if not raw_track:
        return segments

    for block in BLOCK_SPLIT.split(raw_track):
        lines = [line.strip() for line in LINE_SPLIT.split(block)]
        lines = [line for line in lines if line]
        if len(lines) < 2 or lines[0].startswith("WEBVTT"):
            continue

        time_index = next(
            (i for i, line in enumerate(lines) if TIMECODE_SEPARATOR in line),
            None,
        )
        if time_index is None:
            continue

        start, _, end = lines[time_index].partition(TIMECODE_SEPARATOR)
        start = start.strip()
        # Drop cue settings such as "align:start position:10%"
        end_parts = end.split()
        end = end_parts[0] if end_parts else ""
        text = " ".join(lines[time_index + 1 :])

        if start and end and text:
            segments.append(CaptionSegment(start=start, end=end, text=text))

    return segments


def _quote(text: str) -> str:
    escaped = text.replace('"', '""')
    return f'"{escaped}"'


def render_plain_text(segments: list[CaptionSegment]) -> str:
    return "\n".join(f"[{s.start}] {s.text}" for s in segments)


def render_csv(segments: list[CaptionSegment]) -> str:
    """
    Render the CSV transcript.

    Text fields are always quoted with embedded quotes doubled. A summary
    line closes the transcript when at least one segment exists.
    """
    rows = "\n".join(f"{s.start}, {s.end}, {_quote(s.text)}" for s in segments)
    summary = ""
    if segments:
        summary = f"\n\n--- Total segments: {len(segments)}, Last timestamp: {segments[-1].end} ---"
    return f"{CSV_TITLE}\n{CSV_HEADER}\n{rows}{summary}"


def transcode_captions(raw_track: str | None) -> CaptionTranscript:
    """
    Transcode a raw caption track. Never raises.

    Args:
        raw_track: Raw WebVTT text, possibly empty

    Returns:
        CaptionTranscript with segments, plain text and CSV renderings
    """
    segments = parse_segments(raw_track or "")
    return CaptionTranscript(
        segments=segments,
        plain_text=render_plain_text(segments),
        csv_transcript=render_csv(segments),
    )
