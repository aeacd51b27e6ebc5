"""Caption track discovery and selection."""

from dataclasses import dataclass, field
from typing import Any

from ytcaptions.models import CaptionTrack


@dataclass(frozen=True)
class TrackSelection:
    """Best manual/auto tracks for a language, plus the full partitions."""

    manual_best: CaptionTrack | None
    auto_best: CaptionTrack | None
    manual_all: list[CaptionTrack] = field(default_factory=list)
    auto_all: list[CaptionTrack] = field(default_factory=list)

    @property
    def has_tracks(self) -> bool:
        return self.manual_best is not None or self.auto_best is not None


def tracks_from_player(player: dict[str, Any] | None) -> list[CaptionTrack]:
    """Return the caption tracks listed in a player response."""
    captions = player.get("captions") if isinstance(player, dict) else None
    renderer = captions.get("playerCaptionsTracklistRenderer") if isinstance(captions, dict) else None
    raw_tracks = renderer.get("captionTracks") if isinstance(renderer, dict) else None
    if not isinstance(raw_tracks, list):
        return []
    return [CaptionTrack.from_player(raw) for raw in raw_tracks if isinstance(raw, dict)]


def _best(tracks: list[CaptionTrack], lang: str) -> CaptionTrack | None:
    wanted = lang.lower()
    for track in tracks:
        if track.language_code.lower() == wanted:
            return track
    return tracks[0] if tracks else None


def select_tracks(tracks: list[CaptionTrack], lang: str = "en") -> TrackSelection:
    """
    Partition tracks into manual and auto-generated, and pick the best of each.

    The best track is the first whose language code matches `lang`
    case-insensitively, else the first track of that partition.
    """
    manual = [track for track in tracks if not track.is_auto]
    auto = [track for track in tracks if track.is_auto]
    return TrackSelection(
        manual_best=_best(manual, lang),
        auto_best=_best(auto, lang),
        manual_all=manual,
        auto_all=auto,
    )
