"""
RSS 订阅源抓取器 (RSS Feed Fetcher)
Fetches a feed with a bounded timeout and parses it into FeedItem records.
"""

import logging
import re
from datetime import datetime
from typing import Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from lumina.errors import ExternalServiceError
from lumina.models import FeedItem
from lumina.scrapers.image_resolver import extract_feed_image

logger = logging.getLogger(__name__)

_RE_TAGS = re.compile(r"<[^>]+>")
_RE_WHITESPACE = re.compile(r"\s+")


def build_session(user_agent: str, retries: int = 1) -> requests.Session:
    """
    创建带有重试机制的 HTTP 会话 (Session with automatic retries).
    Only error statuses are retried; a connect or read timeout fails at once so
    a slow host never costs more than the caller's timeout.
    """
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=0,
        read=0,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


def parse_date(entry: dict) -> Optional[datetime]:
    """
    从 RSS 条目中解析日期 (Parse date from RSS entry).
    Reads 'published_parsed' first, then 'updated_parsed'.
    """
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            try:
                return datetime(*parsed[:6])
            except (TypeError, ValueError):
                continue
    return None


def get_content_snippet(entry: dict, max_len: int = 500) -> str:
    """
    获取内容摘要 (Extract plain-text snippet).
    Priority: summary > description > content.
    """
    if entry.get("summary"):
        text = entry.get("summary", "")
    elif entry.get("description"):
        text = entry.get("description", "")
    elif entry.get("content"):
        text = entry["content"][0].get("value", "")
    else:
        text = ""

    text = _RE_TAGS.sub(" ", text)
    text = _RE_WHITESPACE.sub(" ", text).strip()
    return text[:max_len]


def get_categories(entry: dict) -> list[str]:
    """Feed-provided category labels (<category> / Atom term)."""
    labels: list[str] = []
    for tag in entry.get("tags") or []:
        term = (tag.get("term") or tag.get("label") or "").strip()
        if term and term not in labels:
            labels.append(term)
    return labels


def entry_to_item(entry: dict) -> FeedItem | None:
    """Convert one feedparser entry; None when the entry has no canonical link."""
    link = (entry.get("link") or "").strip()
    if not link:
        return None
    return FeedItem(
        title=(entry.get("title") or "").strip(),
        link=link,
        snippet=get_content_snippet(entry),
        categories=get_categories(entry),
        image_url=extract_feed_image(entry),
        published_date=parse_date(entry),
    )


def fetch_feed(
    url: str,
    timeout: float = 15.0,
    session: requests.Session | None = None,
    user_agent: str = "",
) -> list[dict]:
    """
    抓取并解析 RSS 源 (Fetch and parse a feed).
    Raises ExternalServiceError when the feed is unreachable or unparseable.
    """
    req = session or requests
    headers = {"User-Agent": user_agent} if user_agent else None
    logger.info("[RSS] Fetching: %s", url)
    try:
        resp = req.get(url, headers=headers, timeout=timeout)
        resp.raise_for_status()
    except requests.Timeout as exc:
        raise ExternalServiceError(f"Feed request timed out after {timeout:.0f}s: {url}") from exc
    except requests.RequestException as exc:
        raise ExternalServiceError(f"Feed request failed for {url}: {exc}") from exc

    feed = feedparser.parse(resp.content)
    if feed.bozo and not feed.entries:
        raise ExternalServiceError(f"Feed parse error for {url}: {feed.bozo_exception}")
    return list(feed.entries)


def fetch_feed_items(
    url: str,
    max_items: int = 5,
    timeout: float = 15.0,
    session: requests.Session | None = None,
    user_agent: str = "",
) -> list[FeedItem]:
    """The ``max_items`` most recent entries that carry a link."""
    entries = fetch_feed(url, timeout=timeout, session=session, user_agent=user_agent)
    # Most recent first; undated entries keep feed order after dated ones
    dated = [(parse_date(e), idx, e) for idx, e in enumerate(entries)]
    dated.sort(key=lambda row: (row[0] is None, -(row[0].timestamp()) if row[0] else 0, row[1]))

    items: list[FeedItem] = []
    for _, _, entry in dated[:max_items]:
        item = entry_to_item(entry)
        if item is None:
            logger.debug("[RSS] Skipping entry without link: %s", (entry.get("title") or "")[:70])
            continue
        items.append(item)
    logger.info("[RSS] Got %s items from %s", len(items), url)
    return items
