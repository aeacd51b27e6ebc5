"""Tests for caption track discovery and selection."""

from tests.fakes import caption_track, player_response
from ytcaptions.models import CaptionTrack
from ytcaptions.tracks import select_tracks, tracks_from_player


def _track(lang: str, auto: bool = False) -> CaptionTrack:
    return CaptionTrack(language_code=lang, name=lang, kind="asr" if auto else "", base_url="")


class TestTracksFromPlayer:
    """Tests for tracks_from_player."""

    def test_reads_caption_tracks(self):
        player = player_response([caption_track("en", "English"), caption_track("en", "Auto", auto=True)])
        tracks = tracks_from_player(player)

        assert [t.language_code for t in tracks] == ["en", "en"]
        assert tracks[0].name == "English"
        assert not tracks[0].is_auto
        assert tracks[1].is_auto

    def test_missing_containers(self):
        """Test that absent or null containers mean no tracks."""
        assert tracks_from_player(None) == []
        assert tracks_from_player({}) == []
        assert tracks_from_player({"captions": None}) == []
        assert tracks_from_player({"captions": {"playerCaptionsTracklistRenderer": None}}) == []

    def test_name_from_runs(self):
        """Test track names given as text runs."""
        raw = {"languageCode": "de", "name": {"runs": [{"text": "Deutsch"}, {"text": " (auto)"}]}}
        assert CaptionTrack.from_player(raw).name == "Deutsch (auto)"


class TestSelectTracks:
    """Tests for select_tracks."""

    def test_prefers_requested_language(self):
        """Test that the matching track wins over list order."""
        selection = select_tracks([_track("es"), _track("en")], "en")
        assert selection.manual_best.language_code == "en"

    def test_case_insensitive_match(self):
        selection = select_tracks([_track("fr"), _track("pt-BR")], "PT-br")
        assert selection.manual_best.language_code == "pt-BR"

    def test_falls_back_to_first_track(self):
        """Test that without a match the first track of each kind is chosen."""
        selection = select_tracks([_track("es"), _track("de"), _track("ja", auto=True)], "en")
        assert selection.manual_best.language_code == "es"
        assert selection.auto_best.language_code == "ja"

    def test_partitions(self):
        tracks = [_track("en"), _track("en", auto=True), _track("fr")]
        selection = select_tracks(tracks, "en")

        assert len(selection.manual_all) == 2
        assert len(selection.auto_all) == 1
        assert selection.auto_best.is_auto
        assert selection.has_tracks

    def test_no_tracks(self):
        selection = select_tracks([], "en")
        assert selection.manual_best is None
        assert selection.auto_best is None
        assert not selection.has_tracks


class TestMalformedPlayer:
    """Tests for player responses whose containers have unexpected types."""

    def test_non_object_containers(self):
        assert tracks_from_player({"captions": []}) == []
        assert tracks_from_player({"captions": "none"}) == []
        assert tracks_from_player({"captions": {"playerCaptionsTracklistRenderer": ["x"]}}) == []
        assert tracks_from_player(
            {"captions": {"playerCaptionsTracklistRenderer": {"captionTracks": {"en": {}}}}}
        ) == []

    def test_odd_track_fields(self):
        """Test that non-string fields are coerced rather than breaking selection."""
        track = CaptionTrack.from_player({"languageCode": 7, "name": {"runs": "oops"}, "kind": None})

        assert track.language_code == "7"
        assert track.name == ""
        assert not track.is_auto
        assert select_tracks([track], "en").manual_best is track
