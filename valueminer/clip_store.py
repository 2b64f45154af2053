"""
MongoDB access for clips, folders, intake requests, API tokens and report
preferences. Every query is scoped by ``user_id``.
"""
import logging
import secrets
from datetime import datetime
from typing import Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import database
from .summarizer import ALLOWED_CATEGORIES, DEFAULT_CATEGORY
from .utils import clean_document, hash_token, new_id, utcnow

logger = logging.getLogger(__name__)

CLIP_LIMIT = 500
TOKEN_PREFIX_LENGTH = 6

INTAKE_QUEUED = "queued"
INTAKE_COMPLETE = "complete"
INTAKE_ERROR = "error"


class DuplicateFolderError(Exception):
    pass


# ---------------- Clips ----------------
async def insert_clip(
    user_id: str,
    video_id: str,
    title: str,
    transcript: str,
    analysis: str,
    action_plan: list,
    category: str,
    folder_id: Optional[str],
    source: Optional[str] = None,
) -> dict:
    clip_doc = {
        "id": new_id(),
        "user_id": user_id,
        "video_id": video_id,
        "title": title,
        "transcript": transcript,
        "analysis": analysis,
        "action_plan": list(action_plan or [])[:3],
        "category": category,
        "folder_id": folder_id,
        "source": source,
        "created_at": utcnow(),
    }
    await database.clips_collection.insert_one(clip_doc)
    return clean_document(clip_doc)


async def list_clips(user_id: str, limit: int = CLIP_LIMIT) -> list:
    cursor = database.clips_collection.find({"user_id": user_id}).sort("created_at", DESCENDING).limit(limit)
    clips = await cursor.to_list(length=limit)
    return [clean_document(c) for c in clips]


async def get_clip(user_id: str, clip_id: str) -> Optional[dict]:
    clip = await database.clips_collection.find_one({"user_id": user_id, "id": clip_id})
    return clean_document(clip)


async def find_clip_by_video(user_id: str, video_id: str) -> Optional[dict]:
    clip = await database.clips_collection.find_one({"user_id": user_id, "video_id": video_id})
    return clean_document(clip)


async def move_clip(user_id: str, clip_id: str, folder_id: Optional[str], category: str) -> Optional[dict]:
    """Reassign a clip's folder and category, the only edit a clip allows."""
    result = await database.clips_collection.update_one(
        {"user_id": user_id, "id": clip_id},
        {"$set": {"folder_id": folder_id, "category": category}},
    )
    if result.matched_count == 0:
        return None
    return await get_clip(user_id, clip_id)


async def clips_since(user_id: str, since: datetime) -> list:
    cursor = database.clips_collection.find(
        {"user_id": user_id, "created_at": {"$gte": since}},
        {"_id": 0, "title": 1, "analysis": 1, "action_plan": 1, "category": 1, "created_at": 1},
    ).sort("created_at", DESCENDING)
    return await cursor.to_list(length=CLIP_LIMIT)


# ---------------- Folders ----------------
def _folder_sort_key(folder: dict):
    name = folder["name"]
    return (name.lower() == "other", name.lower())


async def list_folders(user_id: str) -> list:
    cursor = database.folders_collection.find({"user_id": user_id}).sort("name", ASCENDING)
    folders = await cursor.to_list(length=None)

    seen = {}
    for folder in folders:
        name = folder["name"].strip()
        key = name.lower()
        if key not in seen:
            seen[key] = {
                "id": folder["id"],
                "name": name,
                "is_system": bool(folder.get("is_system")),
            }
    return sorted(seen.values(), key=_folder_sort_key)


async def get_folder(user_id: str, folder_id: str) -> Optional[dict]:
    folder = await database.folders_collection.find_one({"user_id": user_id, "id": folder_id})
    return clean_document(folder)


async def _insert_folder(user_id: str, name: str, is_system: bool) -> dict:
    folder_doc = {
        "id": new_id(),
        "user_id": user_id,
        "name": name,
        "name_key": name.lower(),
        "is_system": is_system,
        "created_at": utcnow(),
    }
    await database.folders_collection.insert_one(folder_doc)
    return clean_document(folder_doc)


async def ensure_default_folders(user_id: str) -> None:
    """Seed the category folders the first time a user opens their library"""
    existing = await database.folders_collection.find_one({"user_id": user_id})
    if existing:
        return
    for name in ALLOWED_CATEGORIES:
        try:
            await _insert_folder(user_id, name, is_system=True)
        except DuplicateKeyError:
            # Raced with another request seeding the same user
            continue


async def create_folder(user_id: str, name: str) -> dict:
    name = name.strip()
    existing = await database.folders_collection.find_one({"user_id": user_id, "name_key": name.lower()})
    if existing:
        raise DuplicateFolderError(f"A folder named '{name}' already exists.")
    try:
        return await _insert_folder(user_id, name, is_system=False)
    except DuplicateKeyError:
        raise DuplicateFolderError(f"A folder named '{name}' already exists.")


async def resolve_folder_id(user_id: str, category: str) -> Optional[str]:
    """Find the folder matching a category, creating a system folder when missing."""
    category = category or DEFAULT_CATEGORY
    match = await database.folders_collection.find_one(
        {"user_id": user_id, "name_key": category.strip().lower()}
    )
    if match:
        return match["id"]

    try:
        folder = await _insert_folder(user_id, category.strip(), is_system=True)
    except PyMongoError as e:
        logger.warning(f"Could not create folder '{category}' for {user_id}: {e}")
        return None
    return folder["id"]


# ---------------- Intake requests ----------------
async def create_intake_request(user_id: str, url: str, video_id: str, source: str) -> dict:
    intake_doc = {
        "id": new_id(),
        "user_id": user_id,
        "url": url,
        "video_id": video_id,
        "source": source,
        "status": INTAKE_QUEUED,
        "error": None,
        "processed_at": None,
        "clip_id": None,
        "created_at": utcnow(),
    }
    await database.intake_requests_collection.insert_one(intake_doc)
    return clean_document(intake_doc)


async def get_intake_request(intake_id: str) -> Optional[dict]:
    intake = await database.intake_requests_collection.find_one({"id": intake_id})
    return clean_document(intake)


async def complete_intake_request(intake_id: str, clip_id: str, error: Optional[str] = None) -> None:
    await database.intake_requests_collection.update_one(
        {"id": intake_id},
        {"$set": {
            "status": INTAKE_COMPLETE,
            "error": error,
            "processed_at": utcnow(),
            "clip_id": clip_id,
        }},
    )


async def fail_intake_request(intake_id: str, error: str) -> None:
    await database.intake_requests_collection.update_one(
        {"id": intake_id},
        {"$set": {"status": INTAKE_ERROR, "error": error, "processed_at": utcnow()}},
    )


# ---------------- API tokens ----------------
async def revoke_api_tokens(user_id: str) -> int:
    result = await database.api_tokens_collection.update_many(
        {"user_id": user_id, "revoked_at": None},
        {"$set": {"revoked_at": utcnow()}},
    )
    return result.modified_count


async def issue_api_token(user_id: str) -> dict:
    """Rotate the user's intake token. Only the raw token's hash is stored."""
    raw_token = secrets.token_hex(24)
    prefix = raw_token[:TOKEN_PREFIX_LENGTH]

    await revoke_api_tokens(user_id)
    await database.api_tokens_collection.insert_one({
        "user_id": user_id,
        "token_hash": hash_token(raw_token),
        "token_prefix": prefix,
        "created_at": utcnow(),
        "revoked_at": None,
    })
    return {"token": raw_token, "prefix": prefix}


async def find_api_token(token_hash: str) -> Optional[dict]:
    token = await database.api_tokens_collection.find_one({"token_hash": token_hash})
    return clean_document(token)


async def get_active_token(user_id: str) -> Optional[dict]:
    token = await database.api_tokens_collection.find_one(
        {"user_id": user_id, "revoked_at": None},
        {"_id": 0, "token_prefix": 1, "created_at": 1},
    )
    return token


# ---------------- Report preferences ----------------
async def get_report_preference(user_id: str) -> Optional[dict]:
    pref = await database.report_preferences_collection.find_one({"user_id": user_id})
    return clean_document(pref)


async def upsert_report_preference(
    user_id: str,
    frequency: str,
    time_of_day: str,
    day_of_week: Optional[str],
    timezone: str,
) -> dict:
    await database.report_preferences_collection.update_one(
        {"user_id": user_id},
        {
            "$set": {
                "frequency": frequency,
                "time_of_day": time_of_day,
                "day_of_week": day_of_week if frequency == "weekly" else None,
                "timezone": timezone,
                "updated_at": utcnow(),
            },
            "$setOnInsert": {"last_sent_at": None},
        },
        upsert=True,
    )
    return await get_report_preference(user_id)


async def list_report_preferences() -> list:
    """All preferences joined with the owner's email."""
    prefs = await database.report_preferences_collection.find({}).to_list(length=None)
    user_ids = [p["user_id"] for p in prefs]
    users = await database.users_collection.find(
        {"user_id": {"$in": user_ids}}, {"_id": 0, "user_id": 1, "email": 1}
    ).to_list(length=None)
    emails = {u["user_id"]: u.get("email") for u in users}

    for pref in prefs:
        clean_document(pref)
        pref["email"] = emails.get(pref["user_id"])
    return prefs


async def mark_report_sent(user_id: str, sent_at: datetime) -> None:
    await database.report_preferences_collection.update_one(
        {"user_id": user_id},
        {"$set": {"last_sent_at": sent_at}},
    )
