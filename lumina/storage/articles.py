"""Article repository: typed access to the ``articles`` collection."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from lumina.models import Article, ArticleStatus
from lumina.storage.document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

ARTICLES = "articles"
SUGGESTED_TOPICS = "suggested_topics"


class ArticleRepository:
    """Maps store documents to ``Article`` and guards sourceUrl uniqueness."""

    def __init__(self, store: InMemoryDocumentStore):
        self.store = store
        # Serializes check-then-create so two creators cannot race on one sourceUrl
        self._create_lock = threading.Lock()

    def get(self, article_id: str) -> Article | None:
        doc = self.store.get(ARTICLES, article_id)
        if doc is None:
            return None
        return Article.from_document(article_id, doc)

    def find_by_source_url(self, source_url: str) -> Article | None:
        source_url = (source_url or "").strip()
        if not source_url:
            return None
        rows = self.store.query(ARTICLES, [("sourceUrl", "==", source_url)], limit=1)
        if not rows:
            return None
        doc_id, doc = rows[0]
        return Article.from_document(doc_id, doc)

    def create(self, article: Article) -> str:
        article.id = self.store.add(ARTICLES, article.to_document())
        return article.id

    def create_if_absent(self, article: Article) -> str | None:
        """
        Create the article unless another one already carries its sourceUrl.
        Returns the new id, or None when a duplicate was found.
        """
        if not article.is_sourced:
            return self.create(article)
        with self._create_lock:
            existing = self.find_by_source_url(article.source_url)
            if existing is not None:
                logger.debug(
                    "[STORE] Duplicate sourceUrl %s (existing id=%s)",
                    article.source_url,
                    existing.id,
                )
                return None
            return self.create(article)

    def update(self, article_id: str, changes: dict) -> None:
        self.store.update(ARTICLES, article_id, changes)

    def transition(
        self, article_id: str, expected: ArticleStatus, target: ArticleStatus, extra: dict | None = None
    ) -> bool:
        """Status-gated transition; False when the article is no longer ``expected``."""
        changes = {"status": target.value, **(extra or {})}
        return self.store.compare_and_update(
            ARTICLES, article_id, {"status": expected.value}, changes
        )

    def list_by_status(self, statuses: Iterable[ArticleStatus]) -> list[Article]:
        values = [s.value for s in statuses]
        rows = self.store.query(ARTICLES, [("status", "in", values)], order_by="createdAt")
        return [Article.from_document(doc_id, doc) for doc_id, doc in rows]

    def list_all(self) -> list[Article]:
        rows = self.store.query(ARTICLES, order_by="createdAt")
        return [Article.from_document(doc_id, doc) for doc_id, doc in rows]
