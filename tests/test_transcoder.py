"""Tests for WebVTT caption transcoding."""

from stream_ingest.captions.transcoder import (
    CSV_HEADER,
    CSV_TITLE,
    parse_segments,
    render_csv,
    transcode_captions,
)
from conftest import SAMPLE_VTT


class TestParseSegments:
    """Test cue parsing."""

    def test_parses_cues_in_order(self):
        """
        Given a track with three cues, one with settings and one without an id
        When it is parsed
        Then three segments come back in source order
        """
        segments = parse_segments(SAMPLE_VTT)

        assert [(s.start, s.end) for s in segments] == [
            ("00:00:00.000", "00:00:02.000"),
            ("00:00:02.000", "00:00:04.000"),
            ("00:00:04.000", "00:00:06.500"),
        ]

    def test_multiline_text_joined_with_spaces(self):
        segments = parse_segments(SAMPLE_VTT)
        assert segments[1].text == "Second line continues"

    def test_cue_settings_dropped_from_end(self):
        segments = parse_segments(SAMPLE_VTT)
        assert segments[1].end == "00:00:04.000"

    def test_crlf_line_endings(self):
        track = SAMPLE_VTT.replace("\n", "\r\n")
        assert len(parse_segments(track)) == 3

    def test_malformed_blocks_skipped(self):
        """
        Given blocks without a timing line or without text
        When the track is parsed
        Then only well-formed cues become segments
        """
        track = (
            "WEBVTT\n\n"
            "NOTE this is a comment\nstill a comment\n\n"
            "00:00:01.000 --> 00:00:02.000\n\n"
            "00:00:03.000 --> 00:00:04.000\nkept\n"
        )
        segments = parse_segments(track)
        assert len(segments) == 1
        assert segments[0].text == "kept"

    def test_header_only(self):
        assert parse_segments("WEBVTT\n") == []
        assert parse_segments("WEBVTT - generated\n\n") == []

    def test_empty_input(self):
        assert parse_segments("") == []


class TestRenderings:
    """Test plain-text and CSV renderings."""

    def test_plain_text(self):
        transcript = transcode_captions(SAMPLE_VTT)
        assert transcript.plain_text == (
            '[00:00:00.000] Hello "world"\n'
            "[00:00:02.000] Second line continues\n"
            "[00:00:04.000] Third"
        )

    def test_csv_transcript(self):
        """
        Given parsed segments
        When rendered as CSV
        Then text is quoted, quotes doubled and a summary line is appended
        """
        transcript = transcode_captions(SAMPLE_VTT)

        assert transcript.csv_transcript == (
            f"{CSV_TITLE}\n{CSV_HEADER}\n"
            '00:00:00.000, 00:00:02.000, "Hello ""world"""\n'
            '00:00:02.000, 00:00:04.000, "Second line continues"\n'
            '00:00:04.000, 00:00:06.500, "Third"\n\n'
            "--- Total segments: 3, Last timestamp: 00:00:06.500 ---"
        )

    def test_csv_without_segments_has_no_summary(self):
        assert render_csv([]) == f"{CSV_TITLE}\n{CSV_HEADER}\n"

    def test_transcode_never_raises(self):
        for raw in (None, "", "garbage", "-->", "WEBVTT\n\n-->\n"):
            transcript = transcode_captions(raw)
            assert transcript.segment_count == 0
            assert transcript.plain_text == ""
