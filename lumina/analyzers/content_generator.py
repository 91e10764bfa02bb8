"""
内容生成 (Content Generator)
Image -> positivity check -> prompt variant -> structured model call ->
status resolution -> persist. Writes its own terminal state on success and failure.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from config import Settings
from lumina.analyzers.llm_client import LLMClient
from lumina.analyzers.prompts import (
    SYSTEM_INSTRUCTION,
    DeepDivePrompt,
    PromptVariant,
    select_prompt,
)
from lumina.errors import (
    ConfigurationError,
    ContentGenerationError,
    ExternalServiceError,
    StoreError,
    describe,
)
from lumina.filters.positivity_filter import resolve_article_type
from lumina.models import Article, ArticleStatus, utcnow
from lumina.processing.title_normalizer import normalize_title
from lumina.scrapers.image_resolver import resolve_page_image
from lumina.sources.registry import SourceRegistry, pillar_for_article_type
from lumina.storage.articles import ArticleRepository
from lumina.storage.document_store import DELETE_FIELD

logger = logging.getLogger(__name__)

ImageResolver = Callable[..., Optional[str]]


def failure_note(error: Exception) -> str:
    if isinstance(error, ConfigurationError):
        return (
            f"AI configuration error: {describe(error)} "
            "An operator must fix the configuration, then re-queue this article."
        )
    return (
        f"AI content generation failed. Error: {describe(error)}. "
        "Re-queue the article, or write the content manually."
    )


class ContentGenerator:
    """Generates and persists content for one article at a time."""

    def __init__(
        self,
        repository: ArticleRepository,
        llm: LLMClient,
        registry: SourceRegistry | None = None,
        settings: Settings | None = None,
        session: requests.Session | None = None,
        image_resolver: ImageResolver = resolve_page_image,
    ):
        self.repository = repository
        self.llm = llm
        self.registry = registry
        self.settings = settings or Settings.from_env()
        self.session = session
        self._resolve_image = image_resolver

    def _page_image(self, article: Article) -> str | None:
        if not article.is_sourced:
            return None
        return self._resolve_image(
            article.source_url,
            timeout=self.settings.page_timeout_seconds,
            session=self.session,
            user_agent=self.settings.user_agent,
        )

    def _search_domains(self, article: Article, variant: PromptVariant) -> list[str] | None:
        """Allow-listed domains for grounded search, or None when search is off."""
        if not self.settings.grounded_search:
            return None
        if isinstance(variant, DeepDivePrompt) and self.registry is not None:
            domains = self.registry.domains_for_pillar(pillar_for_article_type(article.article_type))
            return domains or None
        if article.is_sourced:
            netloc = urlparse(article.source_url).netloc.lower()
            return [netloc[4:] if netloc.startswith("www.") else netloc] if netloc else None
        return None

    def generate(self, article: Article) -> ArticleStatus:
        """
        Run generation for ``article`` and persist the outcome.

        Returns the final status. On failure the article is written to
        GenerationFailed first, then ContentGenerationError is raised
        (ConfigurationError is raised as-is).
        """
        title = normalize_title(article.title, self.settings.title_colon_window)
        logger.info(
            "[GENERATE] %s | type=%s sourced=%s | %s",
            article.id,
            article.article_type.value,
            article.is_sourced,
            title[:70],
        )
        try:
            # Image first so its quality never depends on the model
            image_url = self._page_image(article)

            article_type = resolve_article_type(
                self.llm, article, title, on_failure=self.settings.positivity_on_failure
            )
            working = dataclasses.replace(article, article_type=article_type)
            variant = select_prompt(working, title, self.settings.display_title_threshold)

            data = self.llm.generate_json(
                SYSTEM_INSTRUCTION,
                variant.prompt,
                variant.schema,
                variant.name,
                search_domains=self._search_domains(working, variant),
            )
            content = variant.parse(data)

            status = (
                ArticleStatus.AWAITING_EXPERT_REVIEW
                if isinstance(variant, DeepDivePrompt)
                else ArticleStatus.PUBLISHED
            )
            changes = {
                "title": title,
                "displayTitle": content.display_title or title,
                "articleType": article_type.value,
                "flashContent": content.flash_content,
                "imagePrompt": content.image_prompt,
                "deepDiveContent": content.deep_dive_content or DELETE_FIELD,
                "status": status.value,
                "adminRevisionNotes": DELETE_FIELD,
            }
            if image_url:
                changes["imageUrl"] = image_url
            if status is ArticleStatus.PUBLISHED:
                changes["publishedAt"] = utcnow()
            self.repository.update(article.id, changes)
        except Exception as exc:
            self._mark_failed(article, exc)
            if isinstance(exc, ConfigurationError):
                raise
            transient = isinstance(exc, (ExternalServiceError, StoreError))
            raise ContentGenerationError(
                f"Generation failed for {article.id}: {describe(exc)}", cause=exc, transient=transient
            ) from exc

        logger.info("[GENERATE] %s -> %s", article.id, status.value)
        return status

    def _mark_failed(self, article: Article, error: Exception) -> None:
        logger.error("[GENERATE] %s failed: %s", article.id, describe(error))
        self.repository.update(
            article.id,
            {
                "status": ArticleStatus.GENERATION_FAILED.value,
                "adminRevisionNotes": failure_note(error),
            },
        )
