"""
运行时装配 (Runtime Wiring)
Builds the store, registry, model client and pipeline components from Settings,
and connects Dispatcher -> TaskQueue -> Worker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import config
from config import Settings
from lumina.admin.callables import AdminCallables, allow_list_role_check
from lumina.analyzers.content_generator import ContentGenerator
from lumina.analyzers.llm_client import LLMClient
from lumina.batch.orchestrator import BatchOrchestrator
from lumina.batch.report import ReportAggregator
from lumina.discovery.scanner import DiscoveryScanner
from lumina.models import ArticleStatus
from lumina.pipeline.dispatcher import Dispatcher, task_payload
from lumina.pipeline.task_queue import MAX_ENQUEUE_BATCH, TaskQueue
from lumina.pipeline.worker import Worker
from lumina.scrapers.rss_scraper import build_session
from lumina.sources.registry import SourceRegistry
from lumina.storage.articles import ArticleRepository
from lumina.storage.document_store import InMemoryDocumentStore, open_store

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: InMemoryDocumentStore
    repository: ArticleRepository
    registry: SourceRegistry
    llm: LLMClient
    queue: TaskQueue
    dispatcher: Dispatcher
    generator: ContentGenerator
    worker: Worker
    scanner: DiscoveryScanner
    reports: ReportAggregator
    orchestrator: BatchOrchestrator

    def admin(self, admin_users: list[str] | None = None) -> AdminCallables:
        users = config.ADMIN_USERS if admin_users is None else admin_users
        return AdminCallables(self.orchestrator, allow_list_role_check(users))

    def recover_pending(self) -> int:
        """
        Re-attach work left by earlier processes: dispatch leftover Drafts and
        enqueue Queued articles (the in-process queue does not survive restarts).
        """
        for article in self.repository.list_by_status([ArticleStatus.DRAFT]):
            self.dispatcher.dispatch(article.id)

        queued = [a.id for a in self.repository.list_by_status([ArticleStatus.QUEUED])]
        pending = {task.payload.get("articleId") for task in self.queue.pending_tasks()}
        orphans = [article_id for article_id in queued if article_id not in pending]
        for start in range(0, len(orphans), MAX_ENQUEUE_BATCH):
            self.queue.enqueue_many([task_payload(i) for i in orphans[start:start + MAX_ENQUEUE_BATCH]])
        if orphans:
            logger.info("[RUNTIME] Re-attached %s Queued article(s) to the task queue", len(orphans))
        return len(orphans)


def build_runtime(
    settings: Settings | None = None,
    store: InMemoryDocumentStore | None = None,
    registry: SourceRegistry | None = None,
    llm: LLMClient | None = None,
) -> Runtime:
    settings = settings or Settings.from_env()
    store = store if store is not None else open_store(config.STORE_PATH, settings.store_batch_limit)
    registry = registry if registry is not None else SourceRegistry.load(config.SOURCE_REGISTRY_PATH)
    llm = llm if llm is not None else LLMClient()
    session = build_session(settings.user_agent)

    repository = ArticleRepository(store)
    generator = ContentGenerator(repository, llm, registry=registry, settings=settings, session=session)
    worker = Worker(repository, generator)
    queue = TaskQueue(
        worker.handle,
        concurrency=settings.worker_concurrency,
        max_attempts=settings.task_max_attempts,
        min_backoff_seconds=settings.task_min_backoff_seconds,
    )
    dispatcher = Dispatcher(repository, queue)
    dispatcher.attach(store)

    scanner = DiscoveryScanner(repository, registry, settings=settings, session=session)
    reports = ReportAggregator(store)
    orchestrator = BatchOrchestrator(repository, queue, scanner, registry, reports, settings=settings)
    return Runtime(
        settings=settings,
        store=store,
        repository=repository,
        registry=registry,
        llm=llm,
        queue=queue,
        dispatcher=dispatcher,
        generator=generator,
        worker=worker,
        scanner=scanner,
        reports=reports,
        orchestrator=orchestrator,
    )
