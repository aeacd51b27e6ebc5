"""Tests for caption format normalization in ytcaptions/normalize.py."""

import json

from tests.fakes import JSON3_BODY, SRV3_BODY, TRANSCRIPT_BODY, VTT_BODY
from ytcaptions.normalize import (
    decode_html_entities,
    json3_to_text,
    parse_caption_body,
    srv3_to_text,
    vtt_to_text,
)


class TestJson3:
    """Tests for json3_to_text."""

    def test_segments_joined(self):
        """Test that segments of one event form one line."""
        data = {"events": [{"segs": [{"utf8": "Hello"}, {"utf8": " world"}]}]}
        assert json3_to_text(data) == "Hello world"

    def test_events_without_segments_skipped(self):
        """Test that window/style events without segs contribute nothing."""
        data = {
            "events": [
                {"tStartMs": 0, "wWinId": 1},
                {"segs": [{"utf8": "one"}]},
                {"segs": []},
                {"segs": [{"utf8": "\n"}]},
                {"segs": [{"utf8": "two\nlines"}]},
            ]
        }
        assert json3_to_text(data) == "one\ntwo lines"

    def test_non_object_input(self):
        """Test that unexpected shapes yield empty text."""
        assert json3_to_text([]) == ""
        assert json3_to_text({"events": "nope"}) == ""


class TestVtt:
    """Tests for vtt_to_text."""

    def test_cues_become_lines(self):
        """Test that header is dropped and tags are stripped."""
        assert vtt_to_text(VTT_BODY) == "Hello world\nThis is a test subtitle"

    def test_block_without_timing_line_skipped(self):
        """Test that NOTE blocks and stray text produce no output."""
        vtt = "WEBVTT\n\nNOTE this is a comment\n\n00:00:01.000 --> 00:00:02.000\nkept\n"
        assert vtt_to_text(vtt) == "kept"

    def test_whitespace_only_cue_skipped(self):
        """Test that a cue with only whitespace after its timing line is dropped."""
        vtt = "WEBVTT\n\n00:00:01.000 --> 00:00:02.000\n   \n\n00:00:02.000 --> 00:00:03.000\nnext\n"
        assert vtt_to_text(vtt) == "next"

    def test_crlf_and_cue_identifiers(self):
        """Test CRLF line endings and numbered cues."""
        vtt = "WEBVTT\r\n\r\n1\r\n00:00:01.000 --> 00:00:02.000 align:start\r\nfirst\r\nsecond\r\n"
        assert vtt_to_text(vtt) == "first second"

    def test_empty(self):
        assert vtt_to_text("") == ""


class TestSrv3:
    """Tests for srv3_to_text and entity decoding."""

    def test_entities_decoded_literal_tags_kept(self):
        """Test that escaped markup survives as literal text."""
        assert srv3_to_text("<p>A &amp; B &lt;tag&gt;</p>") == "A & B <tag>"

    def test_line_breaks_and_inner_tags(self):
        """Test <br> and <s> handling inside paragraphs."""
        xml = '<p t="0"><s>Hello</s><s> there</s></p><p t="1">a<br/>b</p><p> </p>'
        assert srv3_to_text(xml) == "Hello there\na b"

    def test_timedtext_document(self):
        assert srv3_to_text(SRV3_BODY) == "A & B <tag>"

    def test_double_escaped_ampersand(self):
        """Test that &amp;lt; decodes once, to &lt;."""
        assert decode_html_entities("&amp;lt; &quot;x&quot; it&#39;s") == "&lt; \"x\" it's"


class TestParseCaptionBody:
    """Tests for format sniffing."""

    def test_json3(self):
        assert parse_caption_body("json3", JSON3_BODY) == "Hello world"

    def test_json3_rejects_non_json(self):
        """Test that HTML or XML returned for a json3 request is not accepted."""
        assert parse_caption_body("json3", "<html>blocked</html>") == ""
        assert parse_caption_body("json3", "{not json") == ""

    def test_srv3_requires_transcript_root(self):
        """Test that srv3 is sniffed by its <transcript> root."""
        assert parse_caption_body("srv3", TRANSCRIPT_BODY) == "First line\nSecond line"
        assert parse_caption_body("srv3", SRV3_BODY) == ""

    def test_vtt_requires_timing_line(self):
        assert parse_caption_body("vtt", VTT_BODY).startswith("Hello world")
        assert parse_caption_body("vtt", "WEBVTT\n\n") == ""

    def test_mismatched_format(self):
        """Test that a json3 body is not parsed as vtt."""
        assert parse_caption_body("vtt", json.dumps({"events": []})) == ""

    def test_empty_and_unknown(self):
        assert parse_caption_body("json3", "") == ""
        assert parse_caption_body("ttml", VTT_BODY) == ""
