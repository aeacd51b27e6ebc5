"""
Data models for the caption retrieval pipeline.

Everything here is per-request: nothing is cached or persisted, because
YouTube rotates API keys and client versions without notice.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

ASR_KIND = "asr"


@dataclass(frozen=True)
class PlayerContext:
    """INNERTUBE client configuration scraped from one watch page."""

    api_key: str
    client_version: str
    context: dict[str, Any]


@dataclass(frozen=True)
class CaptionTrack:
    """
    One selectable caption stream from the player response.

    Attributes:
        language_code: BCP-47-ish language code (e.g. "en", "pt-BR")
        name: Human-readable track name
        kind: "asr" for auto-generated tracks, "" for manual ones
        base_url: Timedtext URL; needs a fmt parameter before it is fetched
    """

    language_code: str
    name: str
    kind: str
    base_url: str

    @property
    def is_auto(self) -> bool:
        return self.kind == ASR_KIND

    @classmethod
    def from_player(cls, raw: dict[str, Any]) -> "CaptionTrack":
        """Create a CaptionTrack from a captionTracks entry."""
        name = raw.get("name") or {}
        if isinstance(name, dict):
            runs = name.get("runs")
            display = str(name.get("simpleText") or "") or "".join(
                str(run.get("text") or "")
                for run in (runs if isinstance(runs, list) else [])
                if isinstance(run, dict)
            )
        else:
            display = str(name)

        return cls(
            language_code=str(raw.get("languageCode") or ""),
            name=display,
            kind=str(raw.get("kind") or ""),
            base_url=str(raw.get("baseUrl") or ""),
        )


@dataclass
class RegionAttempt:
    """Diagnostic entry for one region's player lookup."""

    client: str
    gl: str
    status: str | None
    reason: str | None
    tracks: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "client": self.client,
            "gl": self.gl,
            "status": self.status,
            "reason": self.reason,
            "tracks": self.tracks,
        }


@dataclass(frozen=True)
class PlayerMeta:
    """Which client and region produced the accepted player response."""

    client: str
    hl: str
    gl: str
    watch_url: str
    client_version: str
    api_key_found: bool


@dataclass
class PlayerInfo:
    """Parsed player response plus the region attempt log."""

    player: dict[str, Any]
    meta: PlayerMeta
    attempts: list[RegionAttempt] = field(default_factory=list)

    @property
    def playability(self) -> dict[str, Any]:
        playability = self.player.get("playabilityStatus")
        return playability if isinstance(playability, dict) else {}


@dataclass
class FetchAttempt:
    """One HTTP attempt made while downloading caption content."""

    url: str
    variant: int
    status: int | str
    byte_count: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "url": self.url,
            "variant": self.variant,
            "status": self.status,
            "bytes": self.byte_count,
        }
        if self.error is not None:
            entry["error"] = self.error
        return entry


@dataclass(frozen=True)
class ContentResult:
    """
    Outcome of fetching one track's content.

    `text` is non-empty only when some attempt returned a 2xx with a
    non-zero body that parsed in a recognized format.
    """

    format: str | None
    text: str
    download: str | None
    debug: list[FetchAttempt] = field(default_factory=list)

    @classmethod
    def empty(cls, debug: list[FetchAttempt] | None = None) -> "ContentResult":
        return cls(format=None, text="", download=None, debug=debug or [])


@dataclass(frozen=True)
class CaptionResult:
    """Final caption data for one category (manual or auto)."""

    language_code: str
    name: str
    format: str | None
    text: str
    download: str | None

    @property
    def ok(self) -> bool:
        return bool(self.text)


@dataclass
class ExtractionAttempt:
    """One invocation of the external subtitle tool."""

    client: str | None
    mode: str
    code: int | None
    stdout: str
    stderr: str
    file: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "client": self.client,
            "type": self.mode,
            "code": self.code,
            "out": self.stdout,
            "err": self.stderr,
            "file": self.file.name if self.file else None,
        }


@dataclass
class FallbackResult:
    """Outcome of the external-tool fallback."""

    mode: str | None
    format: str | None
    text: str
    file: Path | None
    command: list[str] = field(default_factory=list)
    attempts: list[ExtractionAttempt] = field(default_factory=list)

    @property
    def debug(self) -> dict[str, Any]:
        return {
            "cmd": " ".join(self.command),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }
