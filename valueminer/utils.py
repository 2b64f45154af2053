# utils.py
import hashlib
import re
import secrets
from datetime import datetime, timezone
from urllib.parse import urlparse, parse_qs

VIDEO_ID_REGEX = re.compile(r"[a-zA-Z0-9_-]{11}")
URL_IN_TEXT_REGEX = re.compile(r"https?://\S+")
TRAILING_PUNCTUATION_REGEX = re.compile(r"[)\].,!?]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return secrets.token_urlsafe(16)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store intake bearer tokens"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _valid_id(candidate):
    if candidate and VIDEO_ID_REGEX.fullmatch(candidate):
        return candidate
    return None


def _extract_from_url_string(raw: str):
    normalized = raw if raw.startswith("http") else f"https://{raw}"
    try:
        url = urlparse(normalized)
        hostname = (url.hostname or "").lower()
    except ValueError:
        return None

    if hostname.startswith("www."):
        hostname = hostname[4:]

    path_parts = [part for part in url.path.split("/") if part]
    query = parse_qs(url.query)

    if hostname == "youtu.be":
        return _valid_id(path_parts[0] if path_parts else "")

    if hostname.endswith("youtube.com") or hostname.endswith("youtube-nocookie.com"):
        if path_parts and path_parts[0] == "shorts" and len(path_parts) > 1:
            return _valid_id(path_parts[1])
        if path_parts and path_parts[0] == "watch":
            return _valid_id(query.get("v", [""])[0])
        if path_parts and path_parts[0] == "embed" and len(path_parts) > 1:
            return _valid_id(path_parts[1])
        return _valid_id(query.get("v", [""])[0])

    return None


def extract_video_id(value: str):
    """Return the 11-character YouTube id found in a URL, bare id or shared text."""
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    if VIDEO_ID_REGEX.fullmatch(trimmed):
        return trimmed

    direct = _extract_from_url_string(trimmed)
    if direct:
        return direct

    for candidate in URL_IN_TEXT_REGEX.findall(trimmed):
        cleaned = TRAILING_PUNCTUATION_REGEX.sub("", candidate)
        found = _extract_from_url_string(cleaned)
        if found:
            return found

    return None


def pick_url(value):
    """Dig a URL out of whatever an iOS Shortcut decided to send."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return pick_url(value[0])
    if isinstance(value, dict):
        for key in ("url", "URL", "href", "link"):
            if value.get(key) is not None:
                return pick_url(value[key])
        return None
    return None


def clean_document(doc):
    """Drop Mongo's internal _id before a document leaves the API"""
    if doc is not None:
        doc.pop("_id", None)
    return doc


def as_utc(value):
    """Mongo hands back naive UTC datetimes unless the client is tz-aware."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
