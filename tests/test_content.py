"""Tests for caption content download in ytcaptions/content.py."""

import httpx
import pytest

from tests.fakes import JSON3_BODY, TEST_VIDEO_ID, TRANSCRIPT_BODY, VTT_BODY
from ytcaptions.content import (
    DEBUG_URL_LIMIT,
    CaptionContentFetcher,
    build_header_presets,
    build_timedtext_url,
    with_fmt,
)

BASE_URL = f"https://www.youtube.com/api/timedtext?v={TEST_VIDEO_ID}&lang=en&fmt=srv1&sig=abc"
WATCH = f"https://www.youtube.com/watch?v={TEST_VIDEO_ID}&hl=en&gl=US"


@pytest.fixture
def presets():
    return build_header_presets("TestAgent/1.0", "en", "US", WATCH)


class TestUrlBuilders:
    """Tests for with_fmt and build_timedtext_url."""

    def test_with_fmt_overwrites_existing(self):
        url = with_fmt(BASE_URL, "json3")
        params = httpx.URL(url).params

        assert params["fmt"] == "json3"
        assert params.get_list("fmt") == ["json3"]
        assert params["sig"] == "abc"

    def test_with_fmt_adds_missing(self):
        assert httpx.URL(with_fmt("https://x.test/tt?v=1", "vtt")).params["fmt"] == "vtt"

    def test_with_fmt_relative_url_appends(self):
        """Test the textual fallback for URLs that are not absolute."""
        assert with_fmt("/api/timedtext?v=1", "srv3") == "/api/timedtext?v=1&fmt=srv3"
        assert with_fmt("timedtext", "srv3") == "timedtext?fmt=srv3"

    def test_timedtext_manual(self):
        """Test that manual tracks do not carry kind=asr."""
        url = httpx.URL(build_timedtext_url(TEST_VIDEO_ID, "en", False, "json3"))

        assert url.host == "video.google.com"
        assert url.path == "/timedtext"
        assert dict(url.params) == {"v": TEST_VIDEO_ID, "lang": "en", "fmt": "json3"}

    def test_timedtext_auto(self):
        url = httpx.URL(build_timedtext_url(TEST_VIDEO_ID, "de", True, "vtt"))
        assert url.params["kind"] == "asr"
        assert url.params["lang"] == "de"


class TestHeaderPresets:
    """Tests for header presets and variants."""

    def test_native_headers(self, presets):
        assert presets.native["Accept-Language"] == "en-US,en;q=0.9,en;q=0.8"
        assert presets.native["Referer"] == WATCH
        assert presets.native["Origin"] == "https://www.youtube.com"

    def test_direct_headers_have_no_referer(self, presets):
        assert "Referer" not in presets.direct
        assert "Origin" not in presets.direct
        assert presets.direct["Accept-Encoding"] == "identity"

    def test_variant_counts(self, presets):
        native = presets.native_variants()
        direct = presets.direct_variants()

        assert len(native) == 3
        assert len(direct) == 2
        assert native[-1] == {"User-Agent": "TestAgent/1.0", "Accept-Encoding": "identity"}
        assert all(v["User-Agent"] == "TestAgent/1.0" for v in native + direct)


class TestCaptionContentFetcher:
    """Tests for CaptionContentFetcher.fetch cascade."""

    @pytest.mark.asyncio
    async def test_json3_from_base_url(self, fake_youtube, presets):
        """Test the happy path: first format, first variant, native URL."""
        fake_youtube.captions[("www.youtube.com", "en", "json3", "")] = (200, JSON3_BODY)

        async with httpx.AsyncClient(transport=fake_youtube.transport) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", False)

        assert result.format == "json3"
        assert result.text == "Hello world"
        assert httpx.URL(result.download).params["fmt"] == "json3"
        assert [(a.variant, a.status) for a in result.debug] == [(0, 200)]

    @pytest.mark.asyncio
    async def test_zero_byte_200_is_not_success(self, presets):
        """Test that an empty 200 moves on to the next header variant."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(200, content=b"")
            return httpx.Response(200, text=JSON3_BODY)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", False)

        assert result.text == "Hello world"
        assert [(a.variant, a.status, a.byte_count) for a in result.debug] == [
            (0, 200, 0),
            (1, 200, len(JSON3_BODY)),
        ]
        assert calls[1].headers["Accept-Encoding"] == "identity"

    @pytest.mark.asyncio
    async def test_falls_through_formats(self, fake_youtube, presets):
        """Test json3 -> srv3 -> vtt on the native URL."""
        fake_youtube.captions[("www.youtube.com", "en", "json3", "")] = (404, "")
        fake_youtube.captions[("www.youtube.com", "en", "srv3", "")] = (200, "<html>nope</html>")
        fake_youtube.captions[("www.youtube.com", "en", "vtt", "")] = (200, VTT_BODY)

        async with httpx.AsyncClient(transport=fake_youtube.transport) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", False)

        assert result.format == "vtt"
        assert result.text.startswith("Hello world")
        # 3 variants for json3 (all 404), 1 for srv3 (200 but wrong format), 1 for vtt
        assert len(result.debug) == 5
        assert [a.status for a in result.debug[:3]] == [404, 404, 404]

    @pytest.mark.asyncio
    async def test_direct_endpoint_after_native(self, fake_youtube, presets):
        """Test that the direct timedtext endpoint is tried once the native URL is exhausted."""
        fake_youtube.captions[("video.google.com", "en", "srv3", "asr")] = (200, TRANSCRIPT_BODY)

        async with httpx.AsyncClient(transport=fake_youtube.transport) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", True)

        assert result.format == "srv3"
        assert result.text == "First line\nSecond line"
        assert httpx.URL(result.download).host == "video.google.com"
        # Native: 3 formats x 3 variants; direct: json3 x 2 variants, then srv3 hit
        assert len(result.debug) == 9 + 2 + 1
        direct_requests = [r for r in fake_youtube.caption_requests() if r.url.host == "video.google.com"]
        assert all(r.url.params["kind"] == "asr" for r in direct_requests)
        assert "Referer" not in direct_requests[0].headers

    @pytest.mark.asyncio
    async def test_no_base_url_skips_native_phase(self, fake_youtube, presets):
        async with httpx.AsyncClient(transport=fake_youtube.transport) as client:
            result = await CaptionContentFetcher(client, presets).fetch("", TEST_VIDEO_ID, "en", False)

        assert result.text == ""
        assert len(result.debug) == 3 * 2
        assert all(r.url.host == "video.google.com" for r in fake_youtube.caption_requests())
        assert all("kind" not in r.url.params for r in fake_youtube.caption_requests())

    @pytest.mark.asyncio
    async def test_exhausted_returns_empty_with_debug(self, fake_youtube, presets):
        """Test that exhausting every attempt returns an empty result, not an error."""
        async with httpx.AsyncClient(transport=fake_youtube.transport) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", False)

        assert result.format is None
        assert result.text == ""
        assert result.download is None
        assert len(result.debug) == 3 * 3 + 3 * 2
        assert all(a.byte_count == 0 for a in result.debug)

    @pytest.mark.asyncio
    async def test_transport_errors_recorded(self, presets):
        """Test that network errors are recorded as ERROR attempts."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await CaptionContentFetcher(client, presets).fetch(BASE_URL, TEST_VIDEO_ID, "en", False)

        assert result.text == ""
        assert result.debug[0].status == "ERROR"
        assert result.debug[0].to_dict()["error"] == "timed out"

    @pytest.mark.asyncio
    async def test_debug_urls_truncated(self, presets):
        long_url = BASE_URL + "&pad=" + "x" * 500

        def handler(request):
            return httpx.Response(500)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await CaptionContentFetcher(client, presets).fetch(long_url, TEST_VIDEO_ID, "en", False)

        assert all(len(a.url) <= DEBUG_URL_LIMIT for a in result.debug)
