"""Pytest fixtures for caption retrieval tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from tests.fakes import JSON3_BODY, FakeExtractor, FakeYouTube, caption_track, player_response
from ytcaptions.config import Settings
from ytcaptions.main import app
from ytcaptions.service import CaptionService, get_service


@pytest.fixture
def fake_youtube():
    """Fake YouTube upstream with no caption tracks configured."""
    return FakeYouTube()


@pytest.fixture
def fake_extractor():
    """Fake yt-dlp that never produces a file."""
    return FakeExtractor()


@pytest.fixture
def test_settings(tmp_path):
    """Settings with a short region list and a throwaway temp dir."""
    return Settings(
        fallback_regions=["US", "GB"],
        fetch_timeout=5.0,
        request_deadline=10.0,
        subprocess_timeout=5.0,
        ytdlp_temp_dir=str(tmp_path),
        ytdlp_cookies_path=str(tmp_path / "missing-cookies.txt"),
    )


@pytest.fixture
def service(test_settings, fake_youtube, fake_extractor):
    """CaptionService wired to the fake upstream and fake extractor."""
    return CaptionService(
        config=test_settings,
        transport=fake_youtube.transport,
        extractor=fake_extractor,
    )


@pytest.fixture
def client(service):
    """FastAPI TestClient for endpoint testing."""
    app.dependency_overrides[get_service] = lambda: service
    # Mock rate limiting to always allow during tests
    with patch("ytcaptions.main._check_rate_limit", return_value=True):
        try:
            yield TestClient(app)
        finally:
            app.dependency_overrides.clear()


@pytest.fixture
def english_manual_track(fake_youtube):
    """One manual English track whose json3 download works."""
    fake_youtube.default_player = player_response([caption_track("en", "English")])
    fake_youtube.captions[("www.youtube.com", "en", "json3", "")] = (200, JSON3_BODY)
    return fake_youtube
