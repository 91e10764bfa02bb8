"""
可达性检查 (Reachability Checks)
Feed URLs from the registry (HEAD, falling back to GET) and article image URLs
(HEAD only). Checks run in parallel; each URL gets its own bounded timeout.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import requests

from lumina.sources.registry import SourceRegistry
from lumina.storage.articles import ARTICLES
from lumina.storage.document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

FEED_CHECK_TIMEOUT_SECONDS = 15.0
IMAGE_CHECK_TIMEOUT_SECONDS = 10.0
FEED_CHECKER_USER_AGENT = "Lumina-RSS-Feed-Checker/1.0"
IMAGE_CHECKER_USER_AGENT = "Lumina-Image-URL-Checker/1.0"
MAX_CHECK_WORKERS = 8


@dataclass
class UrlCheck:
    url: str
    reachable: bool
    status_code: int | None = None
    error: str = ""
    context: str = ""


def _request(method: str, url: str, timeout: float, user_agent: str, session=None) -> requests.Response:
    client = session or requests
    return client.request(
        method,
        url,
        timeout=timeout,
        headers={"User-Agent": user_agent},
        allow_redirects=True,
    )


def check_url(
    url: str,
    timeout: float = FEED_CHECK_TIMEOUT_SECONDS,
    user_agent: str = FEED_CHECKER_USER_AGENT,
    get_fallback: bool = True,
    session: requests.Session | None = None,
) -> UrlCheck:
    """HEAD the URL; some servers mishandle HEAD, so optionally retry with GET."""
    try:
        resp = _request("HEAD", url, timeout, user_agent, session)
        if resp.ok:
            return UrlCheck(url=url, reachable=True, status_code=resp.status_code)
        head_error = f"HEAD request failed with HTTP status {resp.status_code}"
        head_status = resp.status_code
    except requests.Timeout:
        return UrlCheck(url=url, reachable=False, error=f"Request timed out after {timeout:.0f}s")
    except requests.RequestException as exc:
        head_error = str(exc) or type(exc).__name__
        head_status = None

    if not get_fallback:
        return UrlCheck(url=url, reachable=False, status_code=head_status, error=head_error)

    try:
        resp = _request("GET", url, timeout, user_agent, session)
    except requests.Timeout:
        return UrlCheck(url=url, reachable=False, error=f"Request timed out after {timeout:.0f}s")
    except requests.RequestException as exc:
        return UrlCheck(url=url, reachable=False, error=str(exc) or type(exc).__name__)
    if resp.ok:
        return UrlCheck(url=url, reachable=True, status_code=resp.status_code)
    return UrlCheck(
        url=url,
        reachable=False,
        status_code=resp.status_code,
        error=f"GET request failed with HTTP status {resp.status_code}",
    )


def _run_checks(targets: list[tuple[str, str]], check) -> list[UrlCheck]:
    if not targets:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_CHECK_WORKERS, len(targets))) as executor:
        results = list(executor.map(lambda target: check(target[0]), targets))
    for result, (_, context) in zip(results, targets):
        result.context = context
    return results


def check_feeds(
    registry: SourceRegistry,
    timeout: float = FEED_CHECK_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
) -> list[UrlCheck]:
    targets = [
        (entry.feed_url, f"{entry.domain} (pillar: {entry.pillar}, region: {entry.region})")
        for entry in registry.with_feeds()
    ]
    logger.info("[CHECK] Checking %s feed URL(s)", len(targets))
    results = _run_checks(
        targets,
        lambda url: check_url(url, timeout, FEED_CHECKER_USER_AGENT, get_fallback=True, session=session),
    )
    _log_report("feeds", results)
    return results


def check_images(
    store: InMemoryDocumentStore,
    timeout: float = IMAGE_CHECK_TIMEOUT_SECONDS,
    session: requests.Session | None = None,
) -> list[UrlCheck]:
    rows = store.query(ARTICLES, [("imageUrl", "!=", None)])
    targets = [
        (doc["imageUrl"], f"article {doc_id}: {(doc.get('title') or '')[:60]}")
        for doc_id, doc in rows
        if doc.get("imageUrl")
    ]
    logger.info("[CHECK] Checking %s image URL(s)", len(targets))
    results = _run_checks(
        targets,
        lambda url: check_url(url, timeout, IMAGE_CHECKER_USER_AGENT, get_fallback=False, session=session),
    )
    _log_report("images", results)
    return results


def _log_report(label: str, results: list[UrlCheck]) -> None:
    unreachable = [r for r in results if not r.reachable]
    for result in unreachable:
        logger.warning("[CHECK] Unreachable: %s | %s | %s", result.url, result.context, result.error)
    logger.info(
        "[CHECK] %s: reachable=%s unreachable=%s",
        label,
        len(results) - len(unreachable),
        len(unreachable),
    )
