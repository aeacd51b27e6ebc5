"""
Entry point for the ytcaptions service.

Run this file directly to start the FastAPI server:
    python main.py
    python -m main

Or use uvicorn directly:
    uvicorn ytcaptions.main:app --reload --host 0.0.0.0 --port 8000
"""

import uvicorn

from ytcaptions.config import settings


def main() -> None:
    """
    Start the uvicorn server.

    Server configuration can be overridden via environment variables:
    - HOST: Server host (default: 0.0.0.0)
    - PORT: Server port (default: 8000)
    - YTDLP_PATH: yt-dlp executable used by the fallback
    - YOUTUBE_PO_TOKEN: Proof-of-origin token forwarded to yt-dlp
    """
    print("=" * 60)
    print("YouTube Caption Service")
    print("=" * 60)
    print(f"Starting server on http://{settings.host}:{settings.port}")
    print("Retrieval config:")
    print(f"  - Regions after preferred: {', '.join(settings.fallback_regions)}")
    print(f"  - yt-dlp fallback: {'enabled' if settings.ytdlp_fallback_enabled else 'disabled'}")
    print("=" * 60)

    uvicorn.run(
        "ytcaptions.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
