import logging
from typing import Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from . import clip_store, summarizer, transcript_service
from .utils import extract_video_id

logger = logging.getLogger(__name__)

TRANSCRIPT_UNAVAILABLE = "Transcript not available."
DEFAULT_TITLE = "Clip"


def fallback_analysis() -> dict:
    return {
        "analysis": TRANSCRIPT_UNAVAILABLE,
        "actionPlan": [],
        "category": summarizer.DEFAULT_CATEGORY,
    }


async def mine_video(video_id: str) -> Tuple[str, dict, Optional[str]]:
    """Fetch and summarize a transcript.

    Returns (transcript_text, analysis, error). Provider failures are not raised;
    the clip is still saved with placeholder content and the error is returned.
    """
    try:
        transcript_text = await run_in_threadpool(transcript_service.fetch_transcript_text, video_id)
        analysis = await run_in_threadpool(summarizer.analyze_transcript, transcript_text)
        return transcript_text, analysis, None
    except (transcript_service.TranscriptError, summarizer.SummarizerError) as e:
        message = e.details or e.message
    except Exception as e:
        message = str(e) or e.__class__.__name__

    logger.warning(f"Mining {video_id} fell back to placeholders: {message}")
    return TRANSCRIPT_UNAVAILABLE, fallback_analysis(), message


async def process_intake_request(
    user_id: str,
    url: str,
    source: str,
    intake_id: Optional[str] = None,
) -> Tuple[str, str]:
    """Turn a submitted URL into a stored clip. Returns (video_id, clip_id)."""
    video_id = extract_video_id(url)
    if not video_id:
        raise ValueError("Invalid YouTube URL.")

    transcript_text, analysis, transcript_error = await mine_video(video_id)
    folder_id = await clip_store.resolve_folder_id(user_id, analysis["category"])
    title = await run_in_threadpool(transcript_service.fetch_video_title, video_id) or DEFAULT_TITLE

    clip = await clip_store.insert_clip(
        user_id=user_id,
        video_id=video_id,
        title=title,
        transcript=transcript_text,
        analysis=analysis["analysis"],
        action_plan=analysis["actionPlan"],
        category=analysis["category"],
        folder_id=folder_id,
        source=source,
    )

    if intake_id:
        await clip_store.complete_intake_request(intake_id, clip["id"], transcript_error)

    return video_id, clip["id"]
