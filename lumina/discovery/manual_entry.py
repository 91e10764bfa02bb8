"""Manual article entry (curator-created Drafts)."""

from __future__ import annotations

import logging

from config import Settings
from lumina.discovery.scanner import select_categories
from lumina.errors import ValidationFailure
from lumina.models import Article, ArticleType, DiscoveryMethod
from lumina.processing.title_normalizer import normalize_title
from lumina.storage.articles import ArticleRepository

logger = logging.getLogger(__name__)


def parse_article_type(value: str | ArticleType) -> ArticleType:
    if isinstance(value, ArticleType):
        return value
    for article_type in ArticleType:
        if value.strip().lower() in (article_type.value.lower(), article_type.name.lower()):
            return article_type
    raise ValidationFailure(f"Unsupported article type '{value}'")


def create_manual_article(
    repository: ArticleRepository,
    title: str,
    article_type: str | ArticleType,
    categories: list[str] | None = None,
    region: str = "Worldwide",
    short_description: str = "",
    source_url: str = "",
    source_title: str = "",
    settings: Settings | None = None,
) -> str | None:
    """
    Create a Draft with discoveryMethod=Manual. The create trigger dispatches it.
    Returns the new id, or None when ``source_url`` is already taken.
    """
    settings = settings or Settings.from_env()
    normalized = normalize_title(title, settings.title_colon_window)
    if not normalized:
        raise ValidationFailure("Title is required")

    article = Article(
        title=normalized,
        article_type=parse_article_type(article_type),
        categories=select_categories(categories or [], settings.supported_categories),
        region=region,
        short_description=short_description.strip(),
        source_url=source_url.strip(),
        source_title=source_title.strip(),
        discovery_method=DiscoveryMethod.MANUAL,
    )
    article_id = repository.create_if_absent(article)
    if article_id is None:
        logger.warning("[ADD] An article with sourceUrl %s already exists", article.source_url)
        return None
    logger.info("[ADD] Created Draft %s: %s", article_id, normalized[:70])
    return article_id
