"""
分发器 (Dispatcher)
Reacts to newly created Draft articles: flips Draft -> Queued first, then
enqueues a generation task. The two writes are not transactional; a failed
enqueue is recorded as GenerationFailed so an admin can re-queue it.
"""

import logging

from lumina.errors import NotFoundError, describe
from lumina.models import ArticleStatus
from lumina.pipeline.task_queue import TaskQueue
from lumina.storage.articles import ARTICLES, ArticleRepository
from lumina.storage.document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def task_payload(article_id: str) -> dict:
    return {"articleId": article_id}


class Dispatcher:
    def __init__(self, repository: ArticleRepository, queue: TaskQueue):
        self.repository = repository
        self.queue = queue

    def attach(self, store: InMemoryDocumentStore) -> None:
        """Register as the create trigger for the articles collection."""
        store.on_create(ARTICLES, self.on_article_created)

    def on_article_created(self, article_id: str, doc: dict) -> None:
        if doc.get("status") != ArticleStatus.DRAFT.value:
            logger.debug("[DISPATCH] %s created as %s, ignoring", article_id, doc.get("status"))
            return
        self.dispatch(article_id)

    def dispatch(self, article_id: str) -> bool:
        """
        Queue one Draft for generation. Returns True when a task was enqueued.
        A second call for the same article sees status != Draft and does nothing.
        """
        try:
            moved = self.repository.transition(article_id, ArticleStatus.DRAFT, ArticleStatus.QUEUED)
        except NotFoundError:
            logger.warning("[DISPATCH] %s no longer exists", article_id)
            return False
        if not moved:
            logger.info("[DISPATCH] %s is not a Draft, skipping", article_id)
            return False

        try:
            self.queue.enqueue(task_payload(article_id))
        except Exception as exc:
            logger.error("[DISPATCH] Enqueue failed for %s: %s", article_id, exc)
            self.repository.transition(
                article_id,
                ArticleStatus.QUEUED,
                ArticleStatus.GENERATION_FAILED,
                {
                    "adminRevisionNotes": (
                        f"Could not queue AI content generation. Error: {describe(exc)}. "
                        "Re-queue the article to try again."
                    )
                },
            )
            return False

        logger.info("[DISPATCH] %s queued for generation", article_id)
        return True
