"""
Player metadata resolution via the web INNERTUBE player endpoint.

For each region the watch page is loaded, the embedded INNERTUBE config
(API key, client version, client context) is scraped from it, and the
youtubei player endpoint is called with that context. Regions are tried in
order until one returns usable caption metadata.
"""

import logging
import re
from typing import Any
from urllib.parse import urlencode

import httpx

from ytcaptions.config import Settings
from ytcaptions.exceptions import (
    AllRegionsFailedError,
    CaptionServiceError,
    JsonExtractionError,
    NoApiConfigError,
    UpstreamStatusError,
)
from ytcaptions.models import PlayerContext, PlayerInfo, PlayerMeta, RegionAttempt
from ytcaptions.tracks import tracks_from_player
from ytcaptions.utils import extract_json_by_brace, first_success

logger = logging.getLogger(__name__)

YOUTUBE_ORIGIN = "https://www.youtube.com"
WATCH_URL = f"{YOUTUBE_ORIGIN}/watch"
PLAYER_API_URL = f"{YOUTUBE_ORIGIN}/youtubei/v1/player"

API_KEY_PATTERN = re.compile(r'"INNERTUBE_API_KEY":"([^"]+)"')
CLIENT_VERSION_PATTERN = re.compile(r'"INNERTUBE_CLIENT_VERSION":"([^"]+)"')
CONTEXT_MARKER = "INNERTUBE_CONTEXT"

WEB_CLIENT = "WEB"
WEB_CLIENT_NAME_ID = "1"
UNPLAYABLE = "UNPLAYABLE"

# Errors that fail a single region without aborting the region loop
_REGION_ERRORS = (httpx.HTTPError, CaptionServiceError, ValueError)


def build_watch_url(video_id: str, hl: str, gl: str) -> str:
    return f"{WATCH_URL}?{urlencode({'v': video_id, 'hl': hl, 'gl': gl})}"


def build_region_list(preferred: str | None, fallback: list[str]) -> list[str]:
    """Preferred region first, then the fallback regions, deduplicated in order."""
    regions: list[str] = []
    for region in [preferred, *fallback]:
        if region and region not in regions:
            regions.append(region)
    return regions


def extract_player_context(html: str, default_client_version: str) -> PlayerContext:
    """
    Scrape the INNERTUBE API key, client version and context from a watch page.

    Raises:
        NoApiConfigError: the API key or the client context is missing
    """
    key_match = API_KEY_PATTERN.search(html)
    version_match = CLIENT_VERSION_PATTERN.search(html)

    try:
        context = extract_json_by_brace(html, CONTEXT_MARKER)
    except JsonExtractionError as e:
        logger.debug(f"INNERTUBE_CONTEXT extraction failed: {e}")
        context = None

    if not key_match or not isinstance(context, dict):
        raise NoApiConfigError("Could not extract INNERTUBE config from watch page.")

    return PlayerContext(
        api_key=key_match.group(1),
        client_version=version_match.group(1) if version_match else default_client_version,
        context=context,
    )


class PlayerFetcher:
    """
    Resolves the player response for a video, retrying across regions.

    One instance is used per request; it holds no state between calls.
    """

    def __init__(self, client: httpx.AsyncClient, config: Settings):
        self.client = client
        self.config = config

    async def _fetch_watch_page(self, video_id: str, hl: str, gl: str) -> tuple[str, str]:
        watch_url = build_watch_url(video_id, hl, gl)
        response = await self.client.get(
            watch_url, headers={"User-Agent": self.config.user_agent}
        )
        if not response.is_success:
            raise UpstreamStatusError(f"Failed to load watch page ({response.status_code})")
        return response.text, watch_url

    async def player_for_region(self, video_id: str, hl: str, gl: str) -> PlayerInfo:
        """
        Run the watch page + player call for a single region.

        Raises:
            NoApiConfigError: watch page has no usable INNERTUBE config
            UpstreamStatusError: either endpoint answered non-2xx
            httpx.HTTPError: transport failure
            ValueError: the player response is not a JSON object
        """
        html, watch_url = await self._fetch_watch_page(video_id, hl, gl)
        cfg = extract_player_context(html, self.config.default_client_version)

        response = await self.client.post(
            PLAYER_API_URL,
            params={"key": cfg.api_key},
            json={"context": cfg.context, "videoId": video_id},
            headers={
                "Content-Type": "application/json",
                "User-Agent": self.config.user_agent,
                "Origin": YOUTUBE_ORIGIN,
                "Referer": watch_url,
                "x-youtube-client-name": WEB_CLIENT_NAME_ID,
                "x-youtube-client-version": cfg.client_version,
            },
        )
        if not response.is_success:
            raise UpstreamStatusError(f"WEB player failed ({response.status_code})")

        player: Any = response.json()
        if not isinstance(player, dict):
            raise ValueError("Player response is not a JSON object")

        return PlayerInfo(
            player=player,
            meta=PlayerMeta(
                client=WEB_CLIENT,
                hl=hl,
                gl=gl,
                watch_url=watch_url,
                client_version=cfg.client_version,
                api_key_found=True,
            ),
        )

    async def fetch(self, video_id: str, hl: str = "en", preferred_gl: str = "IN") -> PlayerInfo:
        """
        Fetch the player response, trying regions in priority order.

        A region is accepted when its playability status is anything but
        UNPLAYABLE, or when it is UNPLAYABLE but still lists caption tracks.

        Args:
            video_id: 11-character video id
            hl: UI language hint
            preferred_gl: Region tried first

        Returns:
            PlayerInfo of the accepted region, or of the last region if
            none was accepted but the last one parsed

        Raises:
            AllRegionsFailedError: no region was accepted and the last one
                did not produce a player response
        """
        regions = build_region_list(preferred_gl, self.config.fallback_regions)
        attempts: list[RegionAttempt] = []
        last: PlayerInfo | None = None
        last_error: str | None = None

        async def try_region(gl: str) -> PlayerInfo | None:
            nonlocal last, last_error
            try:
                info = await self.player_for_region(video_id, hl, gl)
            except _REGION_ERRORS as e:
                message = str(e) or type(e).__name__
                logger.warning(f"Player lookup failed for {video_id} in region {gl}: {message}")
                attempts.append(RegionAttempt(WEB_CLIENT, gl, "ERROR", message, 0))
                last, last_error = None, message
                return None

            status = info.playability.get("status")
            reason = info.playability.get("reason")
            track_count = len(tracks_from_player(info.player))
            attempts.append(RegionAttempt(WEB_CLIENT, gl, status, reason, track_count))
            info.attempts = attempts

            if status != UNPLAYABLE:
                return info
            if track_count > 0:
                logger.warning(
                    f"Accepting UNPLAYABLE response for {video_id} in region {gl} "
                    f"because it lists {track_count} caption tracks"
                )
                return info

            last, last_error = info, None
            return None

        accepted = await first_success(regions, try_region)
        if accepted is not None:
            logger.info(f"Player response for {video_id} accepted from region {accepted.meta.gl}")
            return accepted
        if last is not None:
            return last
        raise AllRegionsFailedError(last_error or "All region attempts failed")
