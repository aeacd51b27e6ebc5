"""
Configuration module for the caption service.

Uses pydantic-settings to load configuration from environment variables.
Upstream keys and client versions rotate without notice, so nothing scraped
from YouTube lives here; only tuning knobs for the retrieval pipeline.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be set either prefixed (YTCAPTIONS_<SETTING_NAME>) or,
    for the aliased ones, by their alias (e.g. HOST, YTDLP_PATH).

    Environment Variables:
        HOST: Server host (default: 0.0.0.0)
        PORT: Server port (default: 8000)
        LOG_LEVEL: Logging level (default: info)
        USER_AGENT: User-Agent sent to YouTube on every request
        FALLBACK_REGIONS: JSON list of region codes tried after the
            preferred one (default: ["IN", "US", "GB", "CA", "AU", "SG", "AE"])
        FETCH_TIMEOUT: Timeout for a single HTTP attempt in seconds (default: 15)
        REQUEST_DEADLINE: Overall deadline for one caption request (default: 120)
        SUBPROCESS_TIMEOUT: Timeout for one yt-dlp invocation (default: 60)
        YTDLP_FALLBACK_ENABLED: Run yt-dlp when every network path is empty
        YTDLP_PATH: Path to the yt-dlp executable (default: yt-dlp on PATH)
        YTDLP_PLAYER_CLIENTS: JSON list of yt-dlp player clients to try in
            order, e.g. ["web", "mweb", "ios", "android"] (default: [])
        YTDLP_COOKIES_PATH: Netscape cookies file passed to the web client
        YOUTUBE_PO_TOKEN: Proof-of-origin token forwarded to yt-dlp
        YTDLP_TEMP_DIR: Base directory for per-request temp dirs
        RATE_LIMIT_ENABLED: Enable rate limiting (default: true)
        RATE_LIMIT_PER_MINUTE: Requests per minute per IP (default: 10)
        ENABLE_SECURITY_HEADERS: Enable security headers middleware (default: true)
    """

    # ========== Server Configuration ==========

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # ========== Upstream Settings ==========

    user_agent: str = DEFAULT_USER_AGENT

    # Used when the watch page omits INNERTUBE_CLIENT_VERSION
    default_client_version: str = "2.20241219.01.00"

    # Caption availability and playability vary by region
    fallback_regions: list[str] = Field(
        default_factory=lambda: ["IN", "US", "GB", "CA", "AU", "SG", "AE"]
    )

    # ========== Timeouts ==========

    fetch_timeout: float = 15.0
    request_deadline: float = 120.0
    subprocess_timeout: float = 60.0

    # ========== yt-dlp Fallback ==========

    ytdlp_fallback_enabled: bool = True
    ytdlp_path: str | None = Field(default=None, alias="YTDLP_PATH")
    ytdlp_player_clients: list[str] = Field(default_factory=list)
    ytdlp_cookies_path: str = "cookies.txt"
    youtube_po_token: str | None = Field(default=None, alias="YOUTUBE_PO_TOKEN")
    ytdlp_temp_dir: str | None = None

    # ========== Security Settings ==========

    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 10
    enable_security_headers: bool = True

    model_config = SettingsConfigDict(
        env_prefix="YTCAPTIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance - loaded at startup with environment variables
settings = Settings()
