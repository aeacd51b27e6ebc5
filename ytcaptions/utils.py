"""
Shared utility functions for the caption service.

This module provides the pure helpers used across the pipeline: video id
resolution, balanced JSON extraction from HTML, log sanitizing and the
first-success combinator that drives every retry cascade.
"""

import json
import re
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar
from urllib.parse import parse_qs, urlsplit

from ytcaptions.exceptions import (
    MarkerNotFoundError,
    NoOpeningBraceError,
    UnbalancedJsonError,
)

T = TypeVar("T")
R = TypeVar("R")

# Pre-compiled regex pattern for a bare video id
YOUTUBE_ID_PATTERN_COMPILED = re.compile(r"^[A-Za-z0-9_-]{11}$")

SHORT_LINK_HOST = "youtu.be"
VIDEO_ID_LENGTH = 11


def extract_video_id(value: str | None) -> str | None:
    """
    Extract an 11-character video id from a YouTube URL or a raw id.

    Handles:
    - Raw 11-character video id
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/watch?v=VIDEO_ID (with any extra parameters)
    - https://www.youtube.com/shorts/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID

    Args:
        value: YouTube URL or video id

    Returns:
        The video id, or None if the input cannot be resolved

    Examples:
        >>> extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id(" dQw4w9WgXcQ ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("not-a-url") is None
        True
    """
    if not value:
        return None

    candidate = str(value).strip()
    if YOUTUBE_ID_PATTERN_COMPILED.match(candidate):
        return candidate

    # Fail closed on anything that is not an absolute URL
    try:
        parsed = urlsplit(candidate)
        query = parse_qs(parsed.query)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    host = (parsed.hostname or "").lower()
    parts = [part for part in parsed.path.split("/") if part]

    if SHORT_LINK_HOST in host:
        if parts and len(parts[0]) == VIDEO_ID_LENGTH:
            return parts[0]
        return None

    v = query.get("v", [None])[0]
    if v and len(v) == VIDEO_ID_LENGTH:
        return v

    for token in ("shorts", "embed"):
        if token in parts:
            idx = parts.index(token)
            if idx + 1 < len(parts) and len(parts[idx + 1]) == VIDEO_ID_LENGTH:
                return parts[idx + 1]

    return None


def extract_json_by_brace(text: str, marker: str) -> Any:
    """
    Extract the JSON object that follows `marker` in an arbitrary text blob.

    Scans from the first '{' after the marker, tracking brace depth and
    double-quoted string state so braces inside string literals are ignored.
    The slice ending where depth returns to zero is parsed with json.loads.

    Args:
        text: HTML or other text containing an embedded JSON object
        marker: Substring that precedes the object

    Returns:
        The parsed JSON value

    Raises:
        MarkerNotFoundError: marker does not occur in text
        NoOpeningBraceError: no '{' after the marker
        UnbalancedJsonError: braces never balance, or the balanced slice
            is not valid JSON
    """
    idx = text.find(marker)
    if idx == -1:
        raise MarkerNotFoundError(f"Marker not found: {marker}")

    start = text.find("{", idx)
    if start == -1:
        raise NoOpeningBraceError(f"No opening brace after marker: {marker}")

    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except ValueError as e:
                    raise UnbalancedJsonError(
                        f"Balanced object after {marker} is not valid JSON: {e}"
                    ) from e

    raise UnbalancedJsonError(f"Unbalanced braces after marker: {marker}")


async def first_success(
    candidates: Iterable[T],
    attempt: Callable[[T], Awaitable[R | None]],
) -> R | None:
    """
    Await `attempt` for each candidate in order and return the first non-None result.

    Candidates are tried strictly one at a time so diagnostic logs keep a
    deterministic order. Returns None when every candidate is exhausted.
    """
    for candidate in candidates:
        result = await attempt(candidate)
        if result is not None:
            return result
    return None


def sanitize_for_log(input_str: str) -> str:
    """
    Sanitize user input for logging to prevent log injection attacks.

    Replaces newlines, carriage returns, and tabs with their escaped
    representations.
    """
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
