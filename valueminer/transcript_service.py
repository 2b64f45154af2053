"""
Transcript retrieval.

Transcripts come from SearchAPI's ``youtube_transcripts`` engine. When no
SEARCHAPI_KEY is configured the captions are read straight from YouTube with
youtube-transcript-api, which is handy for local development.
"""
import logging
from typing import Optional

import requests
from youtube_transcript_api import YouTubeTranscriptApi, CouldNotRetrieveTranscript

from . import config

logger = logging.getLogger(__name__)

SEARCH_API_ENDPOINT = "https://www.searchapi.io/api/v1/search"
REQUEST_TIMEOUT = 30
PREFERRED_LANGUAGES = ["en", "en-US", "en-GB"]


class TranscriptError(Exception):
    def __init__(self, message: str, status_code: int = 502, details: Optional[str] = None):
        super().__init__(details or message)
        self.message = message
        self.status_code = status_code
        self.details = details


def normalize_transcript(data: dict):
    """Return a list of segments or a plain string, whichever shape SearchAPI sent."""
    if isinstance(data.get("transcripts"), list):
        return data["transcripts"]
    if isinstance(data.get("transcript"), list):
        return data["transcript"]
    if isinstance(data.get("transcript"), str):
        return data["transcript"]
    return None


def transcript_to_text(transcript) -> str:
    if isinstance(transcript, str):
        return transcript
    return " ".join(
        segment.get("text", "") if isinstance(segment, dict) else str(segment)
        for segment in transcript
    )


def fetch_from_searchapi(video_id: str, lang: Optional[str] = None) -> dict:
    params = {
        "engine": "youtube_transcripts",
        "api_key": config.SEARCHAPI_KEY,
        "video_id": video_id,
    }
    if lang:
        params["lang"] = lang

    try:
        response = requests.get(
            SEARCH_API_ENDPOINT,
            params=params,
            headers={"Accept": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise TranscriptError("SearchAPI request failed.", status_code=502, details=str(e))

    if not response.ok:
        raise TranscriptError(
            "SearchAPI request failed.",
            status_code=response.status_code,
            details=response.text,
        )

    try:
        data = response.json()
    except ValueError:
        raise TranscriptError("SearchAPI request failed.", status_code=502, details=response.text)

    transcript = normalize_transcript(data)
    if transcript is None:
        raise TranscriptError("Transcript not available.", status_code=404)

    return {
        "transcript": transcript,
        "language": data.get("language"),
        "transcript_type": data.get("transcriptType") or data.get("transcript_type"),
        "source": "searchapi",
    }


def fetch_from_youtube(video_id: str, lang: Optional[str] = None) -> dict:
    languages = [lang] + PREFERRED_LANGUAGES if lang else PREFERRED_LANGUAGES
    try:
        transcript_list = YouTubeTranscriptApi().list(video_id)
        try:
            transcript = transcript_list.find_transcript(languages)
        except CouldNotRetrieveTranscript:
            available = list(transcript_list)
            if not available:
                raise
            transcript = available[0]
        fetched = transcript.fetch()
    except CouldNotRetrieveTranscript as e:
        logger.warning(f"YouTube captions unavailable for {video_id}: {e}")
        raise TranscriptError("Transcript not available.", status_code=404, details=str(e))
    except requests.RequestException as e:
        logger.warning(f"YouTube caption request failed for {video_id}: {e}")
        raise TranscriptError("Transcript not available.", status_code=502, details=str(e))

    return {
        "transcript": [
            {"text": snippet.text, "start": snippet.start, "duration": snippet.duration}
            for snippet in fetched.snippets
        ],
        "language": fetched.language_code,
        "transcript_type": "auto" if fetched.is_generated else "manual",
        "source": "youtube",
    }


def fetch_transcript(video_id: str, lang: Optional[str] = None) -> dict:
    if config.SEARCHAPI_KEY:
        return fetch_from_searchapi(video_id, lang)
    return fetch_from_youtube(video_id, lang)


def fetch_transcript_text(video_id: str) -> str:
    result = fetch_transcript(video_id)
    return transcript_to_text(result["transcript"])


def fetch_video_title(video_id: str) -> Optional[str]:
    """Look up the public title through YouTube's oEmbed endpoint, None on failure."""
    try:
        response = requests.get(
            "https://www.youtube.com/oembed",
            params={"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"},
            timeout=10,
        )
        response.raise_for_status()
        title = (response.json().get("title") or "").strip()
        return title or None
    except (requests.RequestException, ValueError) as e:
        logger.info(f"oEmbed title lookup failed for {video_id}: {e}")
        return None
