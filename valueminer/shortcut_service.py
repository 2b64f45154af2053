"""
Personalized iOS Shortcut downloads.

The published Shortcut template is fetched from iCloud, every occurrence of the
token placeholder is replaced with the user's intake token, and the result is
re-encoded as a binary property list that the Shortcuts app can import.
"""
import logging
import plistlib
import re

import requests

from . import config

logger = logging.getLogger(__name__)

ICLOUD_RECORDS_URL = "https://www.icloud.com/shortcuts/api/records/{shortcut_id}"
SHORTCUT_ID_REGEX = re.compile(r"shortcuts/([0-9a-f]{32})", re.IGNORECASE)
SHORTCUT_FILENAME = "ValueMiner.shortcut"
REQUEST_TIMEOUT = 20


class ShortcutError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def extract_shortcut_id(template_url: str):
    match = SHORTCUT_ID_REGEX.search(template_url or "")
    return match.group(1) if match else None


def replace_tokens(value, token: str, placeholders: list):
    """Recursively swap placeholders for the token in every string of a plist tree."""
    if isinstance(value, str):
        for placeholder in placeholders:
            value = value.replace(placeholder, token)
        return value
    if isinstance(value, list):
        return [replace_tokens(item, token, placeholders) for item in value]
    if isinstance(value, dict):
        return {key: replace_tokens(nested, token, placeholders) for key, nested in value.items()}
    return value


def placeholders_for(placeholder: str) -> list:
    # Shortcuts sometimes wraps text fields in parentheses
    return [placeholder, f"({placeholder})"]


def download_template() -> bytes:
    shortcut_id = extract_shortcut_id(config.SHORTCUT_TEMPLATE_URL)
    if not shortcut_id:
        raise ShortcutError("Shortcut template URL is not configured.", status_code=500)

    try:
        record_response = requests.get(
            ICLOUD_RECORDS_URL.format(shortcut_id=shortcut_id), timeout=REQUEST_TIMEOUT
        )
    except requests.RequestException as e:
        logger.error(f"iCloud record request failed: {e}")
        raise ShortcutError("Failed to load shortcut template.")
    if not record_response.ok:
        raise ShortcutError("Failed to load shortcut template.")

    try:
        record = record_response.json()
    except ValueError:
        raise ShortcutError("Failed to load shortcut template.")

    download_url = (
        ((record.get("fields") or {}).get("shortcut") or {}).get("value") or {}
    ).get("downloadURL")
    if not download_url:
        raise ShortcutError("Shortcut download URL not found.")

    try:
        download_response = requests.get(download_url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"Shortcut download failed: {e}")
        raise ShortcutError("Unable to download shortcut file.")
    if not download_response.ok:
        raise ShortcutError("Unable to download shortcut file.")

    return download_response.content


def personalize_shortcut(template: bytes, token: str, placeholder: str = None) -> bytes:
    placeholder = placeholder or config.SHORTCUT_TOKEN_PLACEHOLDER
    try:
        parsed = plistlib.loads(template)
    except (plistlib.InvalidFileException, ValueError) as e:
        raise ShortcutError(f"Shortcut generation failed: {e}", status_code=500)

    updated = replace_tokens(parsed, token, placeholders_for(placeholder))
    return plistlib.dumps(updated, fmt=plistlib.FMT_BINARY)


def build_personalized_shortcut(token: str) -> bytes:
    return personalize_shortcut(download_template(), token)
