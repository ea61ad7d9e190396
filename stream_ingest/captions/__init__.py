"""Caption track handling."""

from stream_ingest.captions.transcoder import parse_segments, render_csv, transcode_captions

__all__ = ["parse_segments", "render_csv", "transcode_captions"]
