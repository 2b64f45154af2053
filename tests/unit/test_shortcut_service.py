"""
Tests for iOS Shortcut personalization with mocked iCloud responses.
"""

import plistlib

import pytest
import responses

from valueminer import config
from valueminer.shortcut_service import (
    ShortcutError,
    build_personalized_shortcut,
    extract_shortcut_id,
    personalize_shortcut,
    replace_tokens,
)

SHORTCUT_ID = "0123456789abcdef0123456789abcdef"
RECORD_URL = f"https://www.icloud.com/shortcuts/api/records/{SHORTCUT_ID}"
DOWNLOAD_URL = "https://cvws.icloud-content.com/B/shortcut-file"
PLACEHOLDER = "PASTE YOUR TOKEN HERE"


def template_bytes():
    shortcut = {
        "WFWorkflowName": "Value Miner",
        "WFWorkflowActions": [
            {
                "WFWorkflowActionIdentifier": "is.workflow.actions.downloadurl",
                "WFWorkflowActionParameters": {
                    "WFHTTPHeaders": {"Authorization": f"Bearer {PLACEHOLDER}"},
                    "WFJSONValues": ["keep", 3, True],
                },
            }
        ],
    }
    return plistlib.dumps(shortcut, fmt=plistlib.FMT_BINARY)


@pytest.fixture
def template_url(monkeypatch):
    monkeypatch.setattr(config, "SHORTCUT_TEMPLATE_URL", f"https://www.icloud.com/shortcuts/{SHORTCUT_ID}")
    monkeypatch.setattr(config, "SHORTCUT_TOKEN_PLACEHOLDER", PLACEHOLDER)


class TestReplaceTokens:
    def test_nested_structures(self):
        value = {"a": ["x TOKEN y", {"b": "TOKEN"}], "n": 5}
        assert replace_tokens(value, "secret", ["TOKEN"]) == {"a": ["x secret y", {"b": "secret"}], "n": 5}

    def test_parenthesized_placeholder(self):
        assert replace_tokens("(TOKEN)", "s", ["TOKEN", "(TOKEN)"]) == "(s)"

    def test_non_strings_untouched(self):
        assert replace_tokens(b"TOKEN", "s", ["TOKEN"]) == b"TOKEN"
        assert replace_tokens(None, "s", ["TOKEN"]) is None


class TestExtractShortcutId:
    def test_icloud_link(self):
        assert extract_shortcut_id(f"https://www.icloud.com/shortcuts/{SHORTCUT_ID}") == SHORTCUT_ID

    def test_missing(self):
        assert extract_shortcut_id("") is None
        assert extract_shortcut_id("https://www.icloud.com/shortcuts/xyz") is None


class TestPersonalizeShortcut:
    def test_binary_roundtrip(self):
        output = personalize_shortcut(template_bytes(), "abc123", PLACEHOLDER)

        assert output.startswith(b"bplist00")
        parsed = plistlib.loads(output)
        params = parsed["WFWorkflowActions"][0]["WFWorkflowActionParameters"]
        assert params["WFHTTPHeaders"]["Authorization"] == "Bearer abc123"
        assert params["WFJSONValues"] == ["keep", 3, True]

    def test_invalid_template(self):
        with pytest.raises(ShortcutError) as exc:
            personalize_shortcut(b"not a plist", "abc123", PLACEHOLDER)
        assert exc.value.status_code == 500


class TestBuildPersonalizedShortcut:
    """Tests for the full iCloud download + personalize path"""

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(config, "SHORTCUT_TEMPLATE_URL", "")
        with pytest.raises(ShortcutError) as exc:
            build_personalized_shortcut("abc123")
        assert exc.value.status_code == 500
        assert exc.value.message == "Shortcut template URL is not configured."

    @responses.activate
    def test_success(self, template_url):
        responses.add(
            responses.GET,
            RECORD_URL,
            json={"fields": {"shortcut": {"value": {"downloadURL": DOWNLOAD_URL}}}},
            status=200,
        )
        responses.add(responses.GET, DOWNLOAD_URL, body=template_bytes(), status=200)

        parsed = plistlib.loads(build_personalized_shortcut("abc123"))
        assert "abc123" in str(parsed)
        assert PLACEHOLDER not in str(parsed)

    @responses.activate
    def test_record_failure(self, template_url):
        responses.add(responses.GET, RECORD_URL, status=404)
        with pytest.raises(ShortcutError) as exc:
            build_personalized_shortcut("abc123")
        assert exc.value.status_code == 502
        assert exc.value.message == "Failed to load shortcut template."

    @responses.activate
    def test_missing_download_url(self, template_url):
        responses.add(responses.GET, RECORD_URL, json={"fields": {}}, status=200)
        with pytest.raises(ShortcutError) as exc:
            build_personalized_shortcut("abc123")
        assert exc.value.message == "Shortcut download URL not found."

    @responses.activate
    def test_download_failure(self, template_url):
        responses.add(
            responses.GET,
            RECORD_URL,
            json={"fields": {"shortcut": {"value": {"downloadURL": DOWNLOAD_URL}}}},
            status=200,
        )
        responses.add(responses.GET, DOWNLOAD_URL, status=500)
        with pytest.raises(ShortcutError) as exc:
            build_personalized_shortcut("abc123")
        assert exc.value.message == "Unable to download shortcut file."
