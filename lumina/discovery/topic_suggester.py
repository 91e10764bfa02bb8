"""
选题建议 (Topic Suggestions)
For each (article type, region) pair, ask the model, with search limited to
the pillar's allow-listed domains, for candidate topics. New ones go to
``suggested_topics`` for an editor to pick up, deduplicated by normalized title.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from config import Settings
from lumina.analyzers.llm_client import LLMClient
from lumina.analyzers.prompts import SYSTEM_INSTRUCTION
from lumina.discovery.scanner import select_categories
from lumina.errors import ConfigurationError, PipelineError, describe
from lumina.models import ArticleType, utcnow
from lumina.processing.title_normalizer import normalize_title
from lumina.sources.registry import SourceRegistry, pillar_for_article_type
from lumina.storage.articles import SUGGESTED_TOPICS
from lumina.storage.document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
DEFAULT_REGIONS = ("Worldwide", "USA", "India", "Europe")
DEFAULT_TYPES = (ArticleType.TRENDING_TOPIC, ArticleType.POSITIVE_NEWS)

SUGGESTION_SCHEMA = {
    "type": "object",
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "shortDescription": {"type": "string"},
                    "categories": {"type": "array", "items": {"type": "string"}},
                    "sourceUrl": {"type": "string"},
                    "sourceTitle": {"type": "string"},
                },
                "required": ["title", "shortDescription", "categories", "sourceUrl", "sourceTitle"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["suggestions"],
    "additionalProperties": False,
}


@dataclass
class SuggestionRunResult:
    article_type: ArticleType
    region: str
    added: int = 0
    skipped: int = 0
    error: str = ""


def suggestion_prompt(article_type: ArticleType, region: str, categories: tuple[str, ...]) -> str:
    vocabulary = ", ".join(categories)
    if article_type is ArticleType.POSITIVE_NEWS:
        ask = (
            f"Find {MAX_SUGGESTIONS} recent, genuinely uplifting news stories from {region}. "
            "For each, give a concise title and a 1-2 sentence description"
        )
    else:
        ask = (
            f"Find the top {MAX_SUGGESTIONS} news topics trending in {region} right now. "
            "For each, give a neutral, factual title and a 1-2 sentence description of why it matters"
        )
    return (
        f"{ask}, up to 3 categories from [{vocabulary}], and the source URL and source title "
        "(empty strings when there is no single source)."
    )


class TopicSuggester:
    def __init__(
        self,
        store: InMemoryDocumentStore,
        llm: LLMClient,
        registry: SourceRegistry,
        settings: Settings | None = None,
    ):
        self.store = store
        self.llm = llm
        self.registry = registry
        self.settings = settings or Settings.from_env()

    def _exists(self, title: str) -> bool:
        return bool(self.store.query(SUGGESTED_TOPICS, [("title", "==", title)], limit=1))

    def suggest(self, article_type: ArticleType, region: str) -> SuggestionRunResult:
        result = SuggestionRunResult(article_type=article_type, region=region)
        domains = self.registry.domains_for_pillar(pillar_for_article_type(article_type), region)
        data = self.llm.generate_json(
            SYSTEM_INSTRUCTION,
            suggestion_prompt(article_type, region, self.settings.supported_categories),
            SUGGESTION_SCHEMA,
            "lumina_topic_suggestions",
            search_domains=domains or None,
        )

        batch = self.store.batch()
        seen: set[str] = set()
        for raw in (data.get("suggestions") or [])[:MAX_SUGGESTIONS]:
            if not isinstance(raw, dict):
                result.skipped += 1
                continue
            title = normalize_title(str(raw.get("title") or ""), self.settings.title_colon_window)
            key = title.lower()
            if not title or key in seen or self._exists(title):
                result.skipped += 1
                continue
            seen.add(key)
            batch.create(
                SUGGESTED_TOPICS,
                {
                    "title": title,
                    "shortDescription": str(raw.get("shortDescription") or "").strip(),
                    "categories": select_categories(
                        [str(c) for c in raw.get("categories") or []],
                        self.settings.supported_categories,
                    ),
                    "sourceUrl": str(raw.get("sourceUrl") or "").strip(),
                    "sourceTitle": str(raw.get("sourceTitle") or "").strip(),
                    "articleType": article_type.value,
                    "region": region,
                    "createdAt": utcnow(),
                },
            )
            result.added += 1
        batch.commit()
        return result

    def run(
        self,
        article_types: tuple[ArticleType, ...] = DEFAULT_TYPES,
        regions: tuple[str, ...] = DEFAULT_REGIONS,
    ) -> list[SuggestionRunResult]:
        """Every (type, region) pair; one failing pair never stops the rest."""
        results: list[SuggestionRunResult] = []
        for article_type in article_types:
            for region in regions:
                logger.info("[SUGGEST] Discovering %s for %s", article_type.value, region)
                try:
                    result = self.suggest(article_type, region)
                except ConfigurationError:
                    raise
                except PipelineError as exc:
                    logger.error(
                        "[SUGGEST] Failed for %s in %s: %s", article_type.value, region, describe(exc)
                    )
                    result = SuggestionRunResult(article_type, region, error=describe(exc))
                else:
                    logger.info(
                        "[SUGGEST] %s/%s: added=%s skipped=%s",
                        article_type.value,
                        region,
                        result.added,
                        result.skipped,
                    )
                results.append(result)
        return results
