"""
Caption retrieval service.

Sequences the pipeline for one request:

    resolve id -> player metadata (region retries) -> track selection
    -> manual content -> auto content -> yt-dlp fallback (if needed)

Each request gets its own HTTP client and attempt logs; nothing is shared
between concurrent requests. The whole pipeline runs under one deadline,
and expiry cancels whichever phase is in flight.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from ytcaptions.config import Settings
from ytcaptions.content import CaptionContentFetcher, build_header_presets
from ytcaptions.exceptions import DeadlineExceededError, InvalidInputError
from ytcaptions.fallback import MANUAL, SubtitleExtractor, SubtitleFallback, YtDlpSubtitleExtractor
from ytcaptions.models import CaptionResult, CaptionTrack, ContentResult, FallbackResult, PlayerInfo
from ytcaptions.player import WATCH_URL, PlayerFetcher
from ytcaptions.tracks import TrackSelection, select_tracks, tracks_from_player
from ytcaptions.utils import extract_video_id, sanitize_for_log

logger = logging.getLogger(__name__)

INVALID_INPUT_MESSAGE = "Invalid YouTube URL or video id"

MESSAGE_SUCCESS = "Captions fetched successfully."
MESSAGE_FALLBACK = "Captions fetched via yt-dlp fallback."
MESSAGE_BLOCKED = "Track found but caption download returned empty/blocked."
MESSAGE_NO_CAPTIONS = "No captions found for this video."

SOURCE_YOUTUBEI = "youtubei"
SOURCE_YTDLP = "yt-dlp"


@dataclass
class CaptionsOutcome:
    """Everything the HTTP layer needs to shape a caption response."""

    video_id: str
    requested_lang: str
    hl: str
    gl_requested: str
    player: PlayerInfo
    selection: TrackSelection
    manual: CaptionResult | None
    auto: CaptionResult | None
    manual_content: ContentResult = field(default_factory=ContentResult.empty)
    auto_content: ContentResult = field(default_factory=ContentResult.empty)
    fallback: FallbackResult | None = None

    @property
    def fallback_used(self) -> bool:
        return bool(self.fallback and self.fallback.text)

    @property
    def track_source(self) -> str:
        return SOURCE_YTDLP if self.fallback_used else SOURCE_YOUTUBEI

    @property
    def no_captions(self) -> bool:
        return not (self.selection.has_tracks or self.fallback_used)

    @property
    def message(self) -> str:
        if (self.manual and self.manual.ok) or (self.auto and self.auto.ok):
            return MESSAGE_FALLBACK if self.fallback_used else MESSAGE_SUCCESS
        if self.selection.has_tracks:
            return MESSAGE_BLOCKED
        return MESSAGE_NO_CAPTIONS


def _caption_result(
    track: CaptionTrack | None, content: ContentResult, default_name: str
) -> CaptionResult | None:
    if track is None:
        return None
    return CaptionResult(
        language_code=track.language_code,
        name=track.name or default_name,
        format=content.format,
        text=content.text,
        download=content.download,
    )


class CaptionService:
    """
    Retrieves manual and auto-generated captions for a YouTube video.

    The HTTP transport and the subtitle extractor are injectable so the
    pipeline can run against mocked upstreams in tests.
    """

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        extractor: SubtitleExtractor | None = None,
    ):
        self.config = config or Settings()
        self.transport = transport
        self.extractor = extractor or YtDlpSubtitleExtractor(self.config)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.fetch_timeout),
            follow_redirects=True,
            transport=self.transport,
        )

    async def get_captions(
        self, url: str | None, lang: str = "en", hl: str = "en", gl: str = "IN"
    ) -> CaptionsOutcome:
        """
        Run the full caption pipeline for one video.

        Args:
            url: YouTube URL or raw video id
            lang: Requested caption language
            hl: UI language hint for the watch page
            gl: Preferred region

        Returns:
            CaptionsOutcome; captions that could not be fetched are
            represented as empty text, not as errors

        Raises:
            InvalidInputError: url does not resolve to a video id
            NoApiConfigError, AllRegionsFailedError: player metadata could
                not be resolved
            DeadlineExceededError: the request deadline expired
        """
        video_id = extract_video_id(url)
        if video_id is None:
            logger.warning(f"Invalid video reference: {sanitize_for_log(str(url))}")
            raise InvalidInputError(INVALID_INPUT_MESSAGE)

        deadline = self.config.request_deadline
        try:
            async with asyncio.timeout(deadline):
                async with self._client() as client:
                    return await self._run(client, video_id, lang, hl, gl)
        except TimeoutError as e:
            logger.error(f"Caption request for {video_id} exceeded {deadline}s deadline")
            raise DeadlineExceededError(
                f"Caption request exceeded the {deadline:g}s deadline"
            ) from e

    async def _fetch_track(
        self, fetcher: CaptionContentFetcher, track: CaptionTrack | None, video_id: str
    ) -> ContentResult:
        if track is None:
            return ContentResult.empty()
        return await fetcher.fetch(track.base_url, video_id, track.language_code, track.is_auto)

    async def _run(
        self, client: httpx.AsyncClient, video_id: str, lang: str, hl: str, gl: str
    ) -> CaptionsOutcome:
        logger.info(f"Fetching captions for {video_id} (lang={lang}, hl={hl}, gl={gl})")

        info = await PlayerFetcher(client, self.config).fetch(video_id, hl, gl)
        selection = select_tracks(tracks_from_player(info.player), lang)

        presets = build_header_presets(
            self.config.user_agent, hl, info.meta.gl, info.meta.watch_url
        )
        fetcher = CaptionContentFetcher(client, presets)

        manual_content = await self._fetch_track(fetcher, selection.manual_best, video_id)
        auto_content = await self._fetch_track(fetcher, selection.auto_best, video_id)

        manual = _caption_result(selection.manual_best, manual_content, "Manual")
        auto = _caption_result(selection.auto_best, auto_content, "Auto")

        fallback = None
        if (
            not manual_content.text
            and not auto_content.text
            and selection.has_tracks
            and self.config.ytdlp_fallback_enabled
        ):
            logger.info(f"Caption downloads for {video_id} came back empty; trying yt-dlp fallback")
            watch_url = f"{WATCH_URL}?v={video_id}"
            fallback = await SubtitleFallback(self.extractor, self.config).fetch(watch_url, lang)

            if fallback.text:
                label = "Manual" if fallback.mode == MANUAL else "Auto"
                replacement = CaptionResult(
                    language_code=lang,
                    name=f"{label} ({SOURCE_YTDLP})",
                    format=fallback.format,
                    text=fallback.text,
                    download=None,
                )
                if fallback.mode == MANUAL:
                    manual = replacement
                else:
                    auto = replacement

        return CaptionsOutcome(
            video_id=video_id,
            requested_lang=lang,
            hl=hl,
            gl_requested=gl,
            player=info,
            selection=selection,
            manual=manual,
            auto=auto,
            manual_content=manual_content,
            auto_content=auto_content,
            fallback=fallback,
        )


def get_service() -> CaptionService:
    """
    Get a configured CaptionService instance.

    This function is used as a FastAPI dependency for dependency injection.
    """
    from ytcaptions.config import settings

    return CaptionService(settings)
