"""
yt-dlp fallback for caption extraction.

Used only when every network path returned empty content even though the
player response listed caption tracks. yt-dlp carries its own extraction
strategies and retry logic, so it is run as a child process rather than
reimplemented: manual subtitles first, then auto-generated ones, each
writing into its own directory under a per-request temporary directory.
"""

import asyncio
import contextlib
import itertools
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Protocol

from ytcaptions.config import Settings
from ytcaptions.models import ExtractionAttempt, FallbackResult
from ytcaptions.normalize import vtt_to_text
from ytcaptions.utils import first_success

logger = logging.getLogger(__name__)

MANUAL = "manual"
AUTO = "auto"
MODES = (MANUAL, AUTO)

SUBTITLE_EXT = ".vtt"
YTDLP_BINARY = "yt-dlp"

# Keep captured tool output manageable in the response payload
OUTPUT_LIMIT = 500


class SubtitleExtractor(Protocol):
    """Capability interface for anything that can drop a subtitle file into a directory."""

    command: list[str]

    async def extract(
        self, url: str, lang: str, mode: str, out_dir: Path, client: str | None = None
    ) -> ExtractionAttempt: ...


def resolve_ytdlp_command(configured_path: str | None) -> list[str]:
    """
    Locate the yt-dlp executable.

    Order: the configured path if it exists, then yt-dlp on PATH, then the
    installed yt_dlp package run as a module.
    """
    if configured_path:
        path = Path(configured_path).expanduser()
        if path.exists():
            return [str(path.resolve())]
        logger.warning(f"Configured YTDLP_PATH does not exist: {configured_path}")

    found = shutil.which(YTDLP_BINARY)
    if found:
        return [found]
    return [sys.executable, "-m", "yt_dlp"]


def pick_subtitle_file(directory: Path, lang: str) -> Path | None:
    """Prefer a subtitle file named for `lang` (e.g. ID.en.vtt), else any subtitle file."""
    if not directory.is_dir():
        return None

    files = sorted(p for p in directory.iterdir() if p.name.lower().endswith(SUBTITLE_EXT))
    wanted = f".{(lang or 'en').lower()}{SUBTITLE_EXT}"
    for path in files:
        if wanted in path.name.lower():
            return path
    return files[0] if files else None


def _truncate(output: bytes | None) -> str:
    return (output or b"").decode("utf-8", errors="replace")[:OUTPUT_LIMIT]


async def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


class YtDlpSubtitleExtractor:
    """Runs the yt-dlp CLI to download one kind of subtitles without media."""

    def __init__(self, config: Settings):
        self.config = config
        self.command = resolve_ytdlp_command(config.ytdlp_path)

    def build_args(
        self, url: str, lang: str, mode: str, out_dir: Path, client: str | None = None
    ) -> list[str]:
        """Build the full yt-dlp argument vector for one invocation."""
        args = [
            *self.command,
            "--skip-download",
            "--no-playlist",
            "--no-check-certificates",
            "--sub-lang", lang,
            "--sub-format", "vtt",
            "--user-agent", self.config.user_agent,
        ]

        # Cookies only help the web client
        cookies = Path(self.config.ytdlp_cookies_path)
        if client in (None, "web") and cookies.is_file():
            args += ["--cookies", str(cookies)]

        extractor_args = []
        if client:
            extractor_args.append(f"player_client={client}")
        if self.config.youtube_po_token:
            extractor_args.append(f"po_token=web+{self.config.youtube_po_token}")
        if extractor_args:
            args += ["--extractor-args", "youtube:" + ",".join(extractor_args)]

        args += [
            "--write-subs" if mode == MANUAL else "--write-auto-subs",
            "-o", str(out_dir / "%(id)s.%(ext)s"),
            url,
        ]
        return args

    async def extract(
        self, url: str, lang: str, mode: str, out_dir: Path, client: str | None = None
    ) -> ExtractionAttempt:
        """
        Run yt-dlp once and report what it produced.

        Never raises for tool failures: a missing binary, a non-zero exit
        or a timeout are all returned as an attempt without a file. The
        child is killed if the surrounding request is cancelled.
        """
        args = self.build_args(url, lang, mode, out_dir, client)
        timeout = self.config.subprocess_timeout

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start yt-dlp ({self.command[0]}): {e}")
            return ExtractionAttempt(client, mode, None, "", str(e)[:OUTPUT_LIMIT])

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            await _kill(proc)
            logger.warning(f"yt-dlp timed out after {timeout}s ({mode}, client={client})")
            return ExtractionAttempt(client, mode, None, "", f"yt-dlp timed out after {timeout}s")
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        logger.info(f"yt-dlp exited with {proc.returncode} ({mode}, client={client})")
        return ExtractionAttempt(
            client=client,
            mode=mode,
            code=proc.returncode,
            stdout=_truncate(stdout),
            stderr=_truncate(stderr),
            file=pick_subtitle_file(out_dir, lang),
        )


class SubtitleFallback:
    """Drives a SubtitleExtractor through manual then auto subtitles."""

    def __init__(self, extractor: SubtitleExtractor, config: Settings):
        self.extractor = extractor
        self.config = config

    async def fetch(self, url: str, lang: str = "en") -> FallbackResult:
        """
        Extract captions with the external tool.

        For each configured player client (or a single default pass), manual
        subtitles are requested first and auto-generated ones only if no
        file was produced. The first file found is parsed as WebVTT.

        Returns:
            FallbackResult tagged "manual" or "auto", or an empty result
            whose attempts explain what the tool did
        """
        clients: list[str | None] = list(self.config.ytdlp_player_clients) or [None]
        attempts: list[ExtractionAttempt] = []

        try:
            tmp = tempfile.TemporaryDirectory(prefix="ytcap-", dir=self.config.ytdlp_temp_dir)
        except OSError as e:
            logger.error(f"Could not create yt-dlp temp dir in {self.config.ytdlp_temp_dir}: {e}")
            attempts.append(ExtractionAttempt(clients[0], MANUAL, None, "", str(e)[:OUTPUT_LIMIT]))
            return self._empty(attempts)

        with tmp as tmp_root:

            async def attempt(candidate: tuple[str | None, str]) -> FallbackResult | None:
                client, mode = candidate
                out_dir = Path(tmp_root) / f"{client or 'default'}-{mode}"
                out_dir.mkdir(parents=True, exist_ok=True)

                result = await self.extractor.extract(url, lang, mode, out_dir, client)
                attempts.append(result)
                if result.file is None or not result.file.is_file():
                    return None

                vtt = result.file.read_text(encoding="utf-8", errors="replace")
                return FallbackResult(
                    mode=mode,
                    format="vtt",
                    text=vtt_to_text(vtt),
                    file=result.file,
                    command=self.extractor.command,
                    attempts=attempts,
                )

            found = await first_success(itertools.product(clients, MODES), attempt)

        if found is not None:
            return found
        logger.warning(f"yt-dlp fallback produced no subtitle file after {len(attempts)} attempts")
        return self._empty(attempts)

    def _empty(self, attempts: list[ExtractionAttempt]) -> FallbackResult:
        return FallbackResult(
            mode=None, format=None, text="", file=None,
            command=self.extractor.command, attempts=attempts,
        )
