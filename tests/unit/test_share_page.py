"""
Tests for the share redirect page.
"""

import pytest
import requests
import responses
from bs4 import BeautifulSoup

from valueminer.share_page import (
    ShareUrlError,
    build_share_page,
    get_meta_content,
    parse_share_target,
    render_share_page,
)

TARGET = "https://www.youtube.com/shorts/dQw4w9WgXcQ"


class TestParseShareTarget:
    def test_plain_url(self):
        assert parse_share_target(TARGET) == TARGET

    def test_encoded_url(self):
        assert parse_share_target("https%3A%2F%2Fexample.com%2Fa%3Fb%3D1") == "https://example.com/a?b=1"

    def test_missing(self):
        with pytest.raises(ShareUrlError, match="Missing share URL."):
            parse_share_target("")

    def test_invalid(self):
        with pytest.raises(ShareUrlError, match="Invalid share URL."):
            parse_share_target("not a url")

    def test_unsupported_protocol(self):
        with pytest.raises(ShareUrlError, match="Unsupported URL protocol."):
            parse_share_target("javascript://alert(1)")


class TestGetMetaContent:
    def test_property_and_name(self):
        soup = BeautifulSoup(
            '<meta property="og:title" content=" Title "><meta name="twitter:image" content="img.png">',
            "html.parser",
        )
        assert get_meta_content(soup, "og:title") == "Title"
        assert get_meta_content(soup, "twitter:image") == "img.png"
        assert get_meta_content(soup, "og:image") == ""


class TestBuildSharePage:
    def test_escapes_target(self):
        html = build_share_page('https://example.com/?q="><script>', "Saved", "Saved", "")
        assert '"><script>' not in html
        assert "&quot;&gt;&lt;script&gt;" in html

    def test_image_tags_only_when_present(self):
        assert "og:image" not in build_share_page(TARGET, "Saved", "Saved", "")
        assert 'content="https://img/x.jpg"' in build_share_page(TARGET, "Saved", "Saved", "https://img/x.jpg")


class TestRenderSharePage:
    @responses.activate
    def test_uses_open_graph_title(self):
        responses.add(
            responses.GET,
            TARGET,
            body='<html><head><meta property="og:title" content="Morning Routine">'
                 '<meta property="og:image" content="https://i.ytimg.com/x.jpg"></head></html>',
            status=200,
            content_type="text/html",
        )

        html = render_share_page(TARGET)

        assert "Saved with ScrollMiner • Morning Routine" in html
        assert "https://i.ytimg.com/x.jpg" in html
        assert f'content="1;url={TARGET}"' in html

    @responses.activate
    def test_fetch_failure_still_renders(self):
        responses.add(responses.GET, TARGET, body=requests.exceptions.ConnectionError())

        html = render_share_page(TARGET)

        assert 'content="Saved with ScrollMiner"' in html
        assert "og:image" not in html
