"""
生成 Worker (Generation Worker)
Queue handler: loads the article and runs ContentGenerator. Classified
generation failures are already written to the article, so they are
acknowledged; transient and configuration errors propagate to the queue.
"""

import logging

from lumina.analyzers.content_generator import ContentGenerator
from lumina.errors import ContentGenerationError
from lumina.models import ArticleStatus
from lumina.pipeline.task_queue import Task
from lumina.storage.articles import ArticleRepository

logger = logging.getLogger(__name__)


class Worker:
    def __init__(self, repository: ArticleRepository, generator: ContentGenerator):
        self.repository = repository
        self.generator = generator

    def _should_process(self, status: ArticleStatus, attempt: int) -> bool:
        if status is ArticleStatus.QUEUED:
            return True
        # A retry after a transient failure finds the article already marked failed
        return status is ArticleStatus.GENERATION_FAILED and attempt > 1

    def handle(self, task: Task) -> None:
        article_id = task.payload.get("articleId")
        if not article_id:
            logger.error("[WORKER] Task %s has no articleId, dropping", task.id)
            return

        article = self.repository.get(article_id)
        if article is None:
            logger.warning("[WORKER] Article %s not found, acknowledging", article_id)
            return

        if not self._should_process(article.status, task.attempt):
            logger.info(
                "[WORKER] %s is %s (attempt %s), nothing to do",
                article_id,
                article.status.value,
                task.attempt,
            )
            return

        logger.info("[WORKER] Processing %s (attempt %s)", article_id, task.attempt)
        try:
            status = self.generator.generate(article)
        except ContentGenerationError as exc:
            if exc.transient:
                raise
            logger.warning("[WORKER] %s ended in GenerationFailed: %s", article_id, exc.message)
            return
        logger.info("[WORKER] %s done -> %s", article_id, status.value)
