"""
发现扫描器 (Discovery Scanner)
Per source: fetch feed -> dedupe by sourceUrl -> classify -> create Draft.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import requests

from config import Settings
from lumina.errors import PipelineError, ValidationFailure, describe
from lumina.models import (
    Article,
    ArticleStatus,
    DiscoveryMethod,
    FeedItem,
    SourceEntry,
    utcnow,
)
from lumina.processing.title_normalizer import normalize_title
from lumina.scrapers.rss_scraper import build_session, fetch_feed_items
from lumina.sources.registry import SourceRegistry, article_type_for_pillar
from lumina.storage.articles import ArticleRepository

logger = logging.getLogger(__name__)

MAX_CATEGORIES = 3
FLASH_SNIPPET_LIMIT = 280


class IngestOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass
class SourceScanResult:
    """Per-source outcome of a discovery run."""
    source: SourceEntry
    created_ids: list[str] = field(default_factory=list)
    duplicates: int = 0
    skipped: int = 0
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


FetchItems = Callable[..., list[FeedItem]]


def select_categories(feed_categories: list[str], supported: tuple[str, ...]) -> list[str]:
    """Feed categories that are in the supported vocabulary, in feed order, max 3."""
    lookup = {name.lower(): name for name in supported}
    picked: list[str] = []
    for label in feed_categories:
        match = lookup.get(label.strip().lower())
        if match and match not in picked:
            picked.append(match)
        if len(picked) >= MAX_CATEGORIES:
            break
    return picked


def build_flash_from_snippet(item: FeedItem, limit: int = FLASH_SNIPPET_LIMIT) -> str:
    """Trivial flash summary used when generation is bypassed."""
    text = (item.snippet or item.title).strip()
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return f"{cut}..."


class DiscoveryScanner:
    """Turns registry feeds into Draft articles."""

    def __init__(
        self,
        repository: ArticleRepository,
        registry: SourceRegistry,
        settings: Settings | None = None,
        session: requests.Session | None = None,
        fetch_items: FetchItems = fetch_feed_items,
    ):
        self.repository = repository
        self.registry = registry
        self.settings = settings or Settings.from_env()
        self.session = session or build_session(self.settings.user_agent)
        self._fetch_items = fetch_items

    def fetch_items(self, source: SourceEntry, max_items: int) -> list[FeedItem]:
        return self._fetch_items(
            source.feed_url,
            max_items=max_items,
            timeout=self.settings.feed_timeout_seconds,
            session=self.session,
            user_agent=self.settings.user_agent,
        )

    def ingest_item(
        self,
        source: SourceEntry,
        item: FeedItem,
        publish_immediately: bool = False,
        discovery_method: DiscoveryMethod = DiscoveryMethod.RSS,
    ) -> tuple[IngestOutcome, str | None]:
        """
        Create one article from a feed item, honouring sourceUrl uniqueness.
        Raises ValidationFailure for unknown pillars or empty titles.
        """
        if not item.link:
            return IngestOutcome.SKIPPED, None

        if self.repository.find_by_source_url(item.link) is not None:
            logger.debug("[DISCOVERY] Duplicate, skipping: %s", item.link)
            return IngestOutcome.DUPLICATE, None

        article_type = article_type_for_pillar(source.pillar)
        title = normalize_title(item.title, self.settings.title_colon_window)
        if not title:
            raise ValidationFailure(f"Feed item without title: {item.link}")

        now = utcnow()
        article = Article(
            title=title,
            article_type=article_type,
            categories=select_categories(item.categories, self.settings.supported_categories),
            region=source.region,
            short_description=item.snippet,
            image_url=item.image_url,
            source_url=item.link,
            source_title=source.display_name,
            discovery_method=discovery_method,
            created_at=now,
            discovered_at=now,
        )
        if publish_immediately:
            article.status = ArticleStatus.PUBLISHED
            article.flash_content = build_flash_from_snippet(item)
            article.published_at = now

        article_id = self.repository.create_if_absent(article)
        if article_id is None:
            return IngestOutcome.DUPLICATE, None
        logger.info(
            "[DISCOVERY] Created %s article %s: %s",
            article.status.value,
            article_id,
            title[:70],
        )
        return IngestOutcome.CREATED, article_id

    def scan_source(
        self,
        source: SourceEntry,
        max_items: int | None = None,
        publish_immediately: bool = False,
    ) -> SourceScanResult:
        """Scan one source; failures are recorded on the result, never raised."""
        result = SourceScanResult(source=source)
        if max_items is None:
            max_items = self.settings.discovery_max_items
        try:
            # Fail fast on unknown pillars before hitting the network
            article_type_for_pillar(source.pillar)
            items = self.fetch_items(source, max_items)
        except PipelineError as exc:
            result.error = describe(exc)
            logger.error("[DISCOVERY] Source failed: %s | %s", source.domain, result.error)
            return result

        for item in items:
            try:
                outcome, article_id = self.ingest_item(
                    source, item, publish_immediately=publish_immediately
                )
            except ValidationFailure as exc:
                logger.warning("[DISCOVERY] Skipping item from %s: %s", source.domain, exc)
                result.skipped += 1
                continue
            if outcome is IngestOutcome.CREATED:
                result.created_ids.append(article_id)
            elif outcome is IngestOutcome.DUPLICATE:
                result.duplicates += 1
            else:
                result.skipped += 1
        return result

    def scan_all(
        self,
        max_items: int | None = None,
        publish_immediately: bool = False,
        sources: list[SourceEntry] | None = None,
    ) -> list[SourceScanResult]:
        """
        Scan every configured source independently with bounded parallelism.
        Results keep registry order.
        """
        sources = sources if sources is not None else self.registry.with_feeds()
        logger.info("[DISCOVERY] Scanning %s sources", len(sources))
        if not sources:
            return []

        with ThreadPoolExecutor(max_workers=self.settings.discovery_max_workers) as executor:
            futures = [
                executor.submit(self.scan_source, source, max_items, publish_immediately)
                for source in sources
            ]
            results = []
            for source, future in zip(sources, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    logger.error("[DISCOVERY] Scanner worker failed for %s: %s", source.domain, exc)
                    results.append(SourceScanResult(source=source, error=str(exc)))

        created = sum(len(r.created_ids) for r in results)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "[DISCOVERY] Done | sources=%s created=%s duplicates=%s failed_sources=%s",
            len(results),
            created,
            sum(r.duplicates for r in results),
            failed,
        )
        return results
