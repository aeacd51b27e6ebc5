"""
Subtitle format normalization.

Converts the three caption encodings YouTube serves (timed-JSON "json3",
XML "srv3" and WebVTT) into plain text with one caption line per output
line. Fetched bodies are sniffed before parsing: the upstream sometimes
answers a request for one format with content in another.
"""

import json
import re
from typing import Any

CAPTION_FORMATS = ("json3", "srv3", "vtt")

WHITESPACE_PATTERN = re.compile(r"\s+")
TAG_REMOVAL_PATTERN = re.compile(r"<[^>]+>")
BLOCK_SPLIT_PATTERN = re.compile(r"\n\n+")
SRV3_PARAGRAPH_PATTERN = re.compile(r"<p\b[^>]*>(.*?)</p>", re.DOTALL)
BR_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)

# Only the five entities the timedtext endpoint emits; "&amp;" goes last
# so "&amp;lt;" decodes to "&lt;" rather than "<".
_HTML_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


def _collapse(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def decode_html_entities(text: str) -> str:
    """Decode &amp; &lt; &gt; &quot; and &#39;."""
    for entity, char in _HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def json3_to_text(data: Any) -> str:
    """
    Convert a json3 document to plain text.

    Each event with a non-empty `segs` array contributes one line made of
    its segments' `utf8` fields, whitespace-collapsed. Events without
    segments or with empty text are skipped.
    """
    if not isinstance(data, dict):
        return ""
    events = data.get("events") or []
    if not isinstance(events, list):
        return ""

    lines = []
    for event in events:
        if not isinstance(event, dict) or not event.get("segs"):
            continue
        text = "".join(
            str(seg.get("utf8") or "") for seg in event["segs"] if isinstance(seg, dict)
        )
        text = _collapse(text)
        if text:
            lines.append(text)
    return "\n".join(lines)


def vtt_to_text(vtt: str) -> str:
    """
    Convert WebVTT content to plain text.

    The input is split into cue blocks on blank lines. Lines after the
    timing line ("-->") form the cue text; tags are stripped. Blocks without
    a timing line (header, NOTE, STYLE) or without text are skipped.
    """
    if not vtt:
        return ""

    lines = []
    for block in BLOCK_SPLIT_PATTERN.split(vtt.replace("\r\n", "\n")):
        parts = [line for line in block.split("\n") if line]
        timing_idx = next((i for i, line in enumerate(parts) if "-->" in line), -1)
        if timing_idx == -1:
            continue

        text = " ".join(parts[timing_idx + 1 :])
        text = _collapse(TAG_REMOVAL_PATTERN.sub("", text))
        if text:
            lines.append(text)
    return "\n".join(lines)


def srv3_to_text(xml: str) -> str:
    """
    Convert srv3 XML to plain text.

    Every <p> element becomes one line. Tags (including <br>) are replaced
    with whitespace, the basic HTML entities are decoded and whitespace is
    collapsed. Tags are stripped before entity decoding, so escaped markup
    such as "&lt;tag&gt;" survives as literal text.
    """
    if not xml:
        return ""

    lines = []
    for match in SRV3_PARAGRAPH_PATTERN.finditer(xml):
        raw = BR_PATTERN.sub("\n", match.group(1))
        raw = TAG_REMOVAL_PATTERN.sub(" ", raw)
        text = _collapse(decode_html_entities(raw))
        if text:
            lines.append(text)
    return "\n".join(lines)


def parse_caption_body(fmt: str, body: str) -> str:
    """
    Sniff a fetched body for the requested format and normalize it.

    Args:
        fmt: Requested format ("json3", "srv3" or "vtt")
        body: Decoded response body

    Returns:
        Plain text, or "" when the body does not look like `fmt` or
        yields no caption lines
    """
    if not body:
        return ""

    if fmt == "json3":
        if not body.strip().startswith("{"):
            return ""
        try:
            data = json.loads(body)
        except ValueError:
            return ""
        return json3_to_text(data)

    if fmt == "srv3":
        return srv3_to_text(body) if "<transcript" in body else ""

    if fmt == "vtt":
        return vtt_to_text(body) if "-->" in body else ""

    return ""
