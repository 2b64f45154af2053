import json
import logging
from html import escape
from urllib.parse import quote, unquote, urlparse

import requests
from bs4 import BeautifulSoup

from . import config

logger = logging.getLogger(__name__)

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
META_TITLE = "Saved with ScrollMiner"


class ShareUrlError(ValueError):
    pass


def parse_share_target(raw_target: str) -> str:
    if not raw_target:
        raise ShareUrlError("Missing share URL.")

    decoded = unquote(raw_target).strip()
    try:
        parsed = urlparse(decoded)
    except ValueError:
        raise ShareUrlError("Invalid share URL.")
    if not parsed.scheme or not parsed.netloc:
        raise ShareUrlError("Invalid share URL.")
    if parsed.scheme not in ("http", "https"):
        raise ShareUrlError("Unsupported URL protocol.")
    return decoded


def get_meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
    if tag and tag.get("content"):
        return tag["content"].strip()
    return ""


def fetch_open_graph(url: str) -> dict:
    """Scrape OpenGraph/Twitter title and image; empty dict when the page can't be read"""
    try:
        html = requests.get(url, headers={"User-Agent": MOBILE_USER_AGENT}, timeout=10).text
    except requests.RequestException as e:
        logger.info(f"Share preview fetch failed for {url}: {e}")
        return {}

    soup = BeautifulSoup(html, "html.parser")
    return {
        "og_title": get_meta_content(soup, "og:title"),
        "og_image": get_meta_content(soup, "og:image"),
        "twitter_title": get_meta_content(soup, "twitter:title"),
        "twitter_image": get_meta_content(soup, "twitter:image"),
    }


def build_share_page(target_url: str, meta_title: str, meta_description: str, og_image: str) -> str:
    escaped_target = escape(target_url, quote=True)
    escaped_title = escape(meta_title, quote=True)
    escaped_description = escape(meta_description, quote=True)
    share_url = f"{config.PUBLIC_BASE_URL}/s?u={quote(target_url, safe='')}"
    image_tags = ""
    if og_image:
        escaped_image = escape(og_image, quote=True)
        image_tags = (
            f'<meta property="og:image" content="{escaped_image}" />\n'
            f'    <meta name="twitter:image" content="{escaped_image}" />'
        )
    # no raw "<" may reach the inline script
    script_target = json.dumps(target_url).replace("<", "\\u003c")

    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{escaped_title}</title>
    <meta property="og:title" content="{escaped_title}" />
    <meta property="og:description" content="{escaped_description}" />
    <meta property="og:site_name" content="ScrollMiner" />
    <meta property="og:type" content="website" />
    <meta property="og:url" content="{escape(share_url, quote=True)}" />
    {image_tags}
    <meta name="twitter:card" content="summary_large_image" />
    <meta http-equiv="refresh" content="1;url={escaped_target}" />
    <style>
      :root {{ color-scheme: light dark; font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif; }}
      body {{ margin: 0; min-height: 100vh; display: flex; align-items: center; justify-content: center; background: #0f1120; color: #f7f5ff; }}
      .card {{ max-width: 520px; padding: 28px; border-radius: 20px; background: rgba(22, 24, 42, 0.95); border: 1px solid rgba(164, 93, 233, 0.7); text-align: center; }}
      .brand {{ font-weight: 700; color: #b18bff; margin-bottom: 8px; }}
      .title {{ font-size: 18px; margin-bottom: 20px; }}
      .button {{ display: inline-block; margin-top: 12px; padding: 12px 20px; border-radius: 999px; background: #a45de9; color: white; text-decoration: none; font-weight: 600; }}
      .secondary {{ margin-left: 8px; background: transparent; border: 1px solid rgba(164, 93, 233, 0.7); color: #f7f5ff; }}
      .note {{ margin-top: 16px; font-size: 13px; opacity: 0.75; }}
    </style>
  </head>
  <body>
    <div class="card">
      <div class="brand">Saved with ScrollMiner</div>
      <div class="title">Opening your clip…</div>
      <a class="button" href="{escaped_target}" rel="noopener noreferrer">Watch the original</a>
      <a class="button secondary" href="{escape(config.PUBLIC_BASE_URL, quote=True)}" rel="noopener noreferrer">Get ScrollMiner</a>
      <div class="note">If nothing happens, tap “Watch the original.”</div>
    </div>
    <script>
      setTimeout(function () {{
        window.location.replace({script_target});
      }}, 800);
    </script>
  </body>
</html>"""


def render_share_page(raw_target: str) -> str:
    target_url = parse_share_target(raw_target)
    og_data = fetch_open_graph(target_url)
    og_title = og_data.get("og_title") or og_data.get("twitter_title") or ""
    og_image = og_data.get("og_image") or og_data.get("twitter_image") or ""

    meta_description = f"{META_TITLE} • {og_title}" if og_title else META_TITLE
    return build_share_page(target_url, META_TITLE, meta_description, og_image)
