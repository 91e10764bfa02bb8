"""
数据源注册表 (Source Registry)
Static (pillar, region) buckets of allow-listed sources, read-only at runtime.
"""

from __future__ import annotations

import json
import logging
import os
from collections import OrderedDict

from lumina.errors import ValidationFailure
from lumina.models import ArticleType, SourceEntry

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = os.path.join(os.path.dirname(__file__), "source_registry.json")

# Pillar -> article type (1:1)
PILLAR_ARTICLE_TYPES: dict[str, ArticleType] = {
    "trending_topics": ArticleType.TRENDING_TOPIC,
    "positive_news": ArticleType.POSITIVE_NEWS,
    "research_breakthroughs": ArticleType.RESEARCH_BREAKTHROUGH,
    "fact_checks": ArticleType.MISINFORMATION,
}

# Small fixed set used by the "micro" source test
MICRO_TEST_DOMAINS = ("bbc.co.uk", "positive.news", "sciencedaily.com", "fullfact.org")


def article_type_for_pillar(pillar: str) -> ArticleType:
    try:
        return PILLAR_ARTICLE_TYPES[pillar]
    except KeyError:
        raise ValidationFailure(f"Unknown pillar '{pillar}'") from None


def pillar_for_article_type(article_type: ArticleType) -> str:
    for pillar, mapped in PILLAR_ARTICLE_TYPES.items():
        if mapped is article_type:
            return pillar
    raise ValidationFailure(f"No pillar for article type '{article_type.value}'")


class SourceRegistry:
    """Immutable view over the registry file."""

    def __init__(self, entries: list[SourceEntry]):
        self._entries = tuple(entries)

    @classmethod
    def load(cls, path: str = "") -> SourceRegistry:
        path = path or DEFAULT_REGISTRY_PATH
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
        registry = cls.from_dict(raw)
        logger.info("[REGISTRY] Loaded %s sources from %s", len(registry), path)
        return registry

    @classmethod
    def from_dict(cls, raw: dict) -> SourceRegistry:
        entries: list[SourceEntry] = []
        for pillar, regions in (raw.get("sources") or {}).items():
            for region, bucket in regions.items():
                if region == "notes" or not isinstance(bucket, dict):
                    continue
                for source in bucket.get("allowlist") or []:
                    domain = (source.get("domain") or "").strip()
                    if not domain:
                        logger.warning("[REGISTRY] Skipping entry without domain in %s/%s", pillar, region)
                        continue
                    entries.append(
                        SourceEntry(
                            domain=domain,
                            feed_url=(source.get("rssUrl") or "").strip(),
                            display_name=source.get("displayName") or domain,
                            pillar=pillar,
                            region=region,
                        )
                    )
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def all(self) -> list[SourceEntry]:
        return list(self._entries)

    def with_feeds(self) -> list[SourceEntry]:
        return [entry for entry in self._entries if entry.feed_url]

    def domains_for_pillar(self, pillar: str, region: str | None = None) -> list[str]:
        """Distinct allow-listed domains for a pillar (optionally one region)."""
        seen: OrderedDict[str, None] = OrderedDict()
        for entry in self._entries:
            if entry.pillar == pillar and (region is None or entry.region == region):
                seen[entry.domain] = None
        return list(seen)

    def sample_one_per_bucket(self) -> list[SourceEntry]:
        """First source with a feed from every (pillar, region) bucket."""
        picked: OrderedDict[tuple[str, str], SourceEntry] = OrderedDict()
        for entry in self.with_feeds():
            picked.setdefault((entry.pillar, entry.region), entry)
        return list(picked.values())

    def micro_set(self, domains: tuple[str, ...] = MICRO_TEST_DOMAINS) -> list[SourceEntry]:
        chosen: OrderedDict[str, SourceEntry] = OrderedDict()
        for entry in self.with_feeds():
            if entry.domain in domains and entry.domain not in chosen:
                chosen[entry.domain] = entry
        return list(chosen.values())
