"""
Caption content download.

A track's content is fetched in two phases: first from the track's own
baseUrl, then from the direct timedtext endpoint. Each phase walks the
formats json3 -> srv3 -> vtt, and each format walks a list of header
variants. Some networks get HTTP 200 with an empty body from these
endpoints, so a zero-byte response is never treated as success; every
attempt is recorded so the response can show what happened.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import httpx

from ytcaptions.models import ASR_KIND, ContentResult, FetchAttempt
from ytcaptions.normalize import CAPTION_FORMATS, parse_caption_body
from ytcaptions.utils import first_success

logger = logging.getLogger(__name__)

TIMEDTEXT_URL = "https://video.google.com/timedtext"
YOUTUBE_ORIGIN = "https://www.youtube.com"

# Debug entries keep only a prefix of each URL
DEBUG_URL_LIMIT = 240


@dataclass(frozen=True)
class HeaderPresets:
    """
    Header sets for caption downloads.

    Attributes:
        native: Headers for the track's baseUrl host (carries Referer/Origin)
        direct: Headers for the direct timedtext endpoint
    """

    native: dict[str, str]
    direct: dict[str, str]

    def native_variants(self) -> list[dict[str, str]]:
        """Full headers, then Accept */* with identity encoding, then user-agent only."""
        user_agent = self.native.get("User-Agent", "")
        relaxed = {
            "User-Agent": user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
            "Accept-Language": self.native.get("Accept-Language"),
            "Referer": self.native.get("Referer"),
            "Origin": self.native.get("Origin"),
        }
        return [
            dict(self.native),
            {k: v for k, v in relaxed.items() if v},
            {"User-Agent": user_agent, "Accept-Encoding": "identity"},
        ]

    def direct_variants(self) -> list[dict[str, str]]:
        """Direct headers, then user-agent only."""
        return [
            dict(self.direct),
            {"User-Agent": self.direct.get("User-Agent", ""), "Accept-Encoding": "identity"},
        ]


def build_header_presets(user_agent: str, hl: str, gl: str, watch_url: str) -> HeaderPresets:
    """Build the per-request header presets for the region that served the player."""
    accept_language = f"{hl}-{gl},{hl};q=0.9,en;q=0.8"
    return HeaderPresets(
        native={
            "User-Agent": user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
            "Accept-Language": accept_language,
            "Referer": watch_url,
            "Origin": YOUTUBE_ORIGIN,
        },
        direct={
            "User-Agent": user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
            "Accept-Language": accept_language,
        },
    )


def with_fmt(url: str, fmt: str) -> str:
    """
    Set or overwrite the `fmt` query parameter of a URL.

    Falls back to appending the parameter textually when the URL cannot be
    parsed as an absolute URL.
    """
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"Not an absolute URL: {url}")
        query = [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key != "fmt"
        ]
    except ValueError:
        sep = "&" if "?" in url else "?"
        return f"{url}{sep}fmt={quote(fmt)}"

    query.append(("fmt", fmt))
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_timedtext_url(video_id: str, lang: str, is_auto: bool, fmt: str) -> str:
    """Build a direct timedtext URL; kind=asr is set only for auto tracks."""
    params = {"v": video_id, "lang": lang or "en"}
    if is_auto:
        params["kind"] = ASR_KIND
    params["fmt"] = fmt
    return f"{TIMEDTEXT_URL}?{urlencode(params)}"


class CaptionContentFetcher:
    """
    Downloads and normalizes the content of one caption track.

    fetch() never raises for network or parse failures; an exhausted attempt
    space comes back as ContentResult.empty() with the full attempt log.
    """

    def __init__(self, client: httpx.AsyncClient, presets: HeaderPresets):
        self.client = client
        self.presets = presets

    async def fetch_text_with_variants(
        self, url: str, variants: list[dict[str, str]], debug: list[FetchAttempt]
    ) -> str | None:
        """
        Try each header variant in order; return the first 2xx non-empty body.

        A 200 with zero bytes from an earlier variant does not stop later
        variants from being tried.
        """
        short_url = url[:DEBUG_URL_LIMIT]

        async def attempt(indexed: tuple[int, dict[str, str]]) -> str | None:
            variant, headers = indexed
            try:
                response = await self.client.get(url, headers=headers)
            except httpx.HTTPError as e:
                debug.append(
                    FetchAttempt(short_url, variant, "ERROR", 0, str(e) or type(e).__name__)
                )
                return None

            body = response.content
            debug.append(FetchAttempt(short_url, variant, response.status_code, len(body)))
            if not response.is_success:
                return None
            if not body:
                logger.warning(f"HTTP {response.status_code} with empty body (variant {variant}): {short_url}")
                return None
            return body.decode("utf-8", errors="replace")

        return await first_success(enumerate(variants), attempt)

    async def _try_formats(
        self,
        url_for_format: Callable[[str], str],
        variants: list[dict[str, str]],
        debug: list[FetchAttempt],
    ) -> ContentResult | None:
        async def attempt(fmt: str) -> ContentResult | None:
            url = url_for_format(fmt)
            body = await self.fetch_text_with_variants(url, variants, debug)
            if body is None:
                return None
            text = parse_caption_body(fmt, body)
            if not text:
                logger.debug(f"Body for fmt={fmt} did not parse as {fmt}")
                return None
            return ContentResult(format=fmt, text=text, download=url, debug=debug)

        return await first_success(CAPTION_FORMATS, attempt)

    async def fetch(
        self, base_url: str, video_id: str, lang: str, is_auto: bool
    ) -> ContentResult:
        """
        Fetch a track's content as plain text.

        Args:
            base_url: The track's baseUrl from the player response
            video_id: 11-character video id
            lang: Track language code
            is_auto: Whether the track is auto-generated (adds kind=asr
                on the direct endpoint)

        Returns:
            ContentResult with format/text/download of the first success,
            or an empty result; `debug` holds every attempt in order
        """
        debug: list[FetchAttempt] = []

        result = None
        if base_url:
            result = await self._try_formats(
                lambda fmt: with_fmt(base_url, fmt), self.presets.native_variants(), debug
            )
        if result is None:
            result = await self._try_formats(
                lambda fmt: build_timedtext_url(video_id, lang, is_auto, fmt),
                self.presets.direct_variants(),
                debug,
            )
        if result is None:
            logger.info(f"No caption content for {video_id} ({lang}, auto={is_auto}) after {len(debug)} attempts")
            return ContentResult.empty(debug)
        return result
