"""
图片解析 (Image Resolver)
Best-effort representative image: feed-native fields during discovery, the
page's og:image during generation. Never raises.
"""

import logging
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_OG_PROPERTIES = ("og:image", "og:image:url", "og:image:secure_url")


def _url_from(value: object) -> str | None:
    """Pull a URL out of the shapes feedparser uses (str, dict, list of dicts)."""
    if not value:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        for key in ("url", "href"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return None
    if isinstance(value, (list, tuple)):
        for item in value:
            found = _url_from(item)
            if found:
                return found
    return None


def _media_content_url(entry: dict) -> str | None:
    for media in entry.get("media_content") or []:
        medium = (media.get("medium") or "").lower()
        mime = (media.get("type") or "").lower()
        # Skip video/audio renditions; untyped media is assumed to be an image
        if medium and medium != "image":
            continue
        if mime and not mime.startswith("image/"):
            continue
        url = _url_from(media)
        if url:
            return url
    return None


def _enclosure_url(entry: dict) -> str | None:
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").lower().startswith("image/"):
            url = _url_from(enclosure)
            if url:
                return url
    return None


def _first_img_src(html: str) -> str | None:
    if not html or "<img" not in html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    img = soup.find("img", src=True)
    return img["src"].strip() if img and img["src"].strip() else None


def extract_feed_image(entry: dict) -> str | None:
    """
    Check feed-native image fields in priority order:
    media:content > image enclosure > itunes:image > media:thumbnail >
    generic image field > first <img> in the item HTML.
    """
    lookups = (
        lambda: _media_content_url(entry),
        lambda: _enclosure_url(entry),
        lambda: _url_from(entry.get("itunes_image")),
        lambda: _url_from(entry.get("media_thumbnail")),
        lambda: _url_from(entry.get("image")),
    )
    for lookup in lookups:
        url = lookup()
        if url:
            return url

    bodies = [part.get("value", "") for part in entry.get("content") or []]
    bodies.append(entry.get("summary") or "")
    for body in bodies:
        url = _first_img_src(body)
        if url:
            return urljoin(entry.get("link") or "", url)
    return None


def extract_og_image(html: str, base_url: str) -> str | None:
    """Primary social-preview image from page HTML, made absolute."""
    soup = BeautifulSoup(html, "html.parser")
    for prop in _OG_PROPERTIES:
        tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
        content = (tag.get("content") or "").strip() if tag else ""
        if content:
            return urljoin(base_url, content)
    return None


def resolve_page_image(
    url: str,
    timeout: float = 5.0,
    session: requests.Session | None = None,
    user_agent: str = "",
) -> str | None:
    """
    Fetch the canonical page and read its og:image. Timeouts and fetch/parse
    errors are logged and yield None.
    """
    if not url:
        return None
    req = session or requests
    headers = {"User-Agent": user_agent} if user_agent else None
    try:
        resp = req.get(url, headers=headers, timeout=timeout)
        resp.raise_for_status()
        final_url = resp.url if isinstance(resp.url, str) and resp.url else url
        image = extract_og_image(resp.text, final_url)
    except requests.Timeout:
        logger.warning("[IMAGE] Page fetch timed out after %.0fs: %s", timeout, url)
        return None
    except Exception as exc:
        logger.warning("[IMAGE] Could not resolve og:image for %s: %s", url, exc)
        return None

    if image:
        logger.info("[IMAGE] Resolved og:image for %s", url)
    else:
        logger.info("[IMAGE] No og:image on %s", url)
    return image
