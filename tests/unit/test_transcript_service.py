"""
Tests for transcript retrieval with mocked SearchAPI and YouTube responses.
"""

from types import SimpleNamespace

import pytest
import requests
import responses

from valueminer import config, transcript_service
from valueminer.transcript_service import (
    SEARCH_API_ENDPOINT,
    TranscriptError,
    fetch_transcript,
    fetch_transcript_text,
    fetch_video_title,
    normalize_transcript,
    transcript_to_text,
)

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.fixture
def searchapi_key(monkeypatch):
    monkeypatch.setattr(config, "SEARCHAPI_KEY", "search-key")


class TestNormalizeTranscript:
    """Tests for normalize_transcript() across SearchAPI response shapes"""

    def test_transcripts_list(self):
        data = {"transcripts": [{"text": "a"}], "transcript": "ignored"}
        assert normalize_transcript(data) == [{"text": "a"}]

    def test_transcript_list(self):
        assert normalize_transcript({"transcript": [{"text": "b"}]}) == [{"text": "b"}]

    def test_transcript_string(self):
        assert normalize_transcript({"transcript": "plain"}) == "plain"

    def test_missing(self):
        assert normalize_transcript({"error": "nope"}) is None

    def test_to_text_joins_segments(self):
        assert transcript_to_text([{"text": "hello"}, {"text": "world"}]) == "hello world"
        assert transcript_to_text("already text") == "already text"


class TestSearchApi:
    """Tests for the SearchAPI path of fetch_transcript()"""

    @responses.activate
    def test_success(self, searchapi_key):
        responses.add(
            responses.GET,
            SEARCH_API_ENDPOINT,
            json={
                "transcripts": [{"text": "Hello", "start": 0.0}, {"text": "there", "start": 1.2}],
                "language": "en",
                "transcript_type": "auto",
            },
            status=200,
        )

        result = fetch_transcript(VIDEO_ID, lang="en")

        assert result["source"] == "searchapi"
        assert result["language"] == "en"
        assert result["transcript_type"] == "auto"
        query = responses.calls[0].request.url
        assert "engine=youtube_transcripts" in query
        assert f"video_id={VIDEO_ID}" in query
        assert "api_key=search-key" in query
        assert "lang=en" in query

    @responses.activate
    def test_text_is_joined(self, searchapi_key):
        responses.add(
            responses.GET,
            SEARCH_API_ENDPOINT,
            json={"transcript": [{"text": "one"}, {"text": "two"}]},
            status=200,
        )
        assert fetch_transcript_text(VIDEO_ID) == "one two"

    @responses.activate
    def test_upstream_error_keeps_status(self, searchapi_key):
        responses.add(responses.GET, SEARCH_API_ENDPOINT, body="rate limited", status=429)

        with pytest.raises(TranscriptError) as exc:
            fetch_transcript(VIDEO_ID)
        assert exc.value.status_code == 429
        assert exc.value.message == "SearchAPI request failed."
        assert exc.value.details == "rate limited"

    @responses.activate
    def test_network_error_is_502(self, searchapi_key):
        responses.add(
            responses.GET,
            SEARCH_API_ENDPOINT,
            body=requests.exceptions.ConnectionError("boom"),
        )

        with pytest.raises(TranscriptError) as exc:
            fetch_transcript(VIDEO_ID)
        assert exc.value.status_code == 502

    @responses.activate
    def test_no_transcript_is_404(self, searchapi_key):
        responses.add(responses.GET, SEARCH_API_ENDPOINT, json={"search_metadata": {}}, status=200)

        with pytest.raises(TranscriptError) as exc:
            fetch_transcript(VIDEO_ID)
        assert exc.value.status_code == 404
        assert exc.value.message == "Transcript not available."


class TestYouTubeFallback:
    """Without a SearchAPI key captions are read through youtube-transcript-api"""

    def _fake_api(self, snippets=None, error=None):
        fetched = SimpleNamespace(
            snippets=snippets or [],
            language_code="en",
            is_generated=True,
        )

        class FakeTranscript:
            def fetch(self):
                return fetched

        class FakeTranscriptList:
            def find_transcript(self, languages):
                return FakeTranscript()

            def __iter__(self):
                return iter([FakeTranscript()])

        class FakeApi:
            def list(self, video_id):
                if error:
                    raise error
                return FakeTranscriptList()

        return FakeApi

    def test_uses_youtube_when_no_key(self, monkeypatch):
        snippets = [
            SimpleNamespace(text="hi", start=0.0, duration=1.0),
            SimpleNamespace(text="there", start=1.0, duration=1.0),
        ]
        monkeypatch.setattr(transcript_service, "YouTubeTranscriptApi", self._fake_api(snippets))

        result = fetch_transcript(VIDEO_ID)

        assert result["source"] == "youtube"
        assert result["transcript_type"] == "auto"
        assert transcript_to_text(result["transcript"]) == "hi there"

    def test_disabled_captions_are_404(self, monkeypatch):
        from youtube_transcript_api import TranscriptsDisabled

        monkeypatch.setattr(
            transcript_service,
            "YouTubeTranscriptApi",
            self._fake_api(error=TranscriptsDisabled(VIDEO_ID)),
        )

        with pytest.raises(TranscriptError) as exc:
            fetch_transcript(VIDEO_ID)
        assert exc.value.status_code == 404

    @responses.activate
    def test_network_failure_is_502(self):
        # No registered responses: every request youtube-transcript-api makes is refused
        with pytest.raises(TranscriptError) as exc:
            fetch_transcript(VIDEO_ID)

        assert exc.value.status_code == 502
        assert exc.value.message == "Transcript not available."


class TestFetchVideoTitle:
    """Tests for the oEmbed title lookup"""

    @responses.activate
    def test_title(self):
        responses.add(
            responses.GET,
            "https://www.youtube.com/oembed",
            json={"title": " Morning Routine "},
            status=200,
        )
        assert fetch_video_title(VIDEO_ID) == "Morning Routine"

    @responses.activate
    def test_failure_returns_none(self):
        responses.add(responses.GET, "https://www.youtube.com/oembed", status=404)
        assert fetch_video_title(VIDEO_ID) is None
