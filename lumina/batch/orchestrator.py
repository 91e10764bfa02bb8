"""
批处理编排 (Batch Orchestrator)
Administrative bulk operations:
- re-queue one failed article / all failed articles (chunked, status flip before enqueue)
- source health tests (full / sample / micro / batched), sequential with fixed delays
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from config import Settings
from lumina.batch.report import ReportAggregator
from lumina.discovery.scanner import DiscoveryScanner, IngestOutcome
from lumina.errors import PipelineError, ValidationFailure, describe
from lumina.models import (
    ArticleStatus,
    DiscoveryMethod,
    SourceEntry,
    SourceResultStatus,
    SourceTestResult,
    SourceTestType,
)
from lumina.pipeline.dispatcher import task_payload
from lumina.pipeline.task_queue import MAX_ENQUEUE_BATCH, TaskQueue
from lumina.sources.registry import SourceRegistry
from lumina.storage.articles import ARTICLES, ArticleRepository
from lumina.storage.document_store import DELETE_FIELD

logger = logging.getLogger(__name__)

# Pause between sources, per mode (third-party rate limits)
SOURCE_TEST_DELAYS = {
    SourceTestType.FULL: 1.2,
    SourceTestType.SAMPLE: 0.5,
    SourceTestType.MICRO: 0.2,
    SourceTestType.BATCHED: 1.0,
}
# Items pulled per source; the micro test exercises two items each
SOURCE_TEST_ITEMS = {SourceTestType.MICRO: 2}
BATCH_PAUSE_SECONDS = 5.0
DEFAULT_TEST_BATCH_SIZE = 10


@dataclass
class RequeueSummary:
    requested: int = 0
    queued: int = 0
    enqueue_calls: int = 0
    failed_chunks: int = 0
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.failed_chunks == 0


class BatchOrchestrator:
    def __init__(
        self,
        repository: ArticleRepository,
        queue: TaskQueue,
        scanner: DiscoveryScanner,
        registry: SourceRegistry,
        reports: ReportAggregator,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.queue = queue
        self.scanner = scanner
        self.registry = registry
        self.reports = reports
        self.settings = settings or Settings.from_env()
        self._sleep = sleep

    # --- Re-queue ---
    def requeue_article(self, article_id: str) -> bool:
        """GenerationFailed -> Queued (notes cleared), then enqueue."""
        moved = self.repository.transition(
            article_id,
            ArticleStatus.GENERATION_FAILED,
            ArticleStatus.QUEUED,
            {"adminRevisionNotes": DELETE_FIELD},
        )
        if not moved:
            logger.info("[BATCH] %s is not in GenerationFailed, not re-queued", article_id)
            return False
        self.queue.enqueue(task_payload(article_id))
        logger.info("[BATCH] %s re-queued", article_id)
        return True

    def _chunk_size(self) -> int:
        return max(1, min(self.settings.requeue_chunk_size, MAX_ENQUEUE_BATCH, self.repository.store.batch_limit))

    def requeue_all_failed(self) -> RequeueSummary:
        """
        Re-queue every GenerationFailed article in chunks. Each chunk is flipped
        to Queued in one atomic batch before its tasks are enqueued in one call.
        """
        failed = self.repository.list_by_status([ArticleStatus.GENERATION_FAILED])
        summary = RequeueSummary(requested=len(failed))
        if not failed:
            logger.info("[BATCH] No failed articles to re-queue")
            return summary

        size = self._chunk_size()
        for start in range(0, len(failed), size):
            chunk = [article.id for article in failed[start:start + size]]
            # Re-checked under the store lock: articles deleted or moved since the listing are skipped
            moved = self.repository.store.update_where(
                ARTICLES,
                chunk,
                {"status": ArticleStatus.GENERATION_FAILED.value},
                {"status": ArticleStatus.QUEUED.value, "adminRevisionNotes": DELETE_FIELD},
            )
            summary.queued += len(moved)
            summary.skipped += len(chunk) - len(moved)
            if len(moved) < len(chunk):
                logger.info(
                    "[BATCH] %s article(s) left GenerationFailed before re-queue, skipped",
                    len(chunk) - len(moved),
                )
            if not moved:
                continue

            try:
                self.queue.enqueue_many([task_payload(article_id) for article_id in moved])
                summary.enqueue_calls += 1
            except Exception as exc:
                # Articles stay Queued without a task until the next worker start re-attaches them
                summary.failed_chunks += 1
                logger.error(
                    "[BATCH] Enqueue failed for chunk starting at %s (%s articles): %s",
                    start,
                    len(moved),
                    exc,
                )

        logger.info(
            "[BATCH] Re-queued %s/%s failed articles in %s chunk(s)",
            summary.queued,
            summary.requested,
            summary.enqueue_calls,
        )
        return summary

    # --- Source tests ---
    def select_sources(self, test_type: SourceTestType) -> list[SourceEntry]:
        if test_type is SourceTestType.SAMPLE:
            return self.registry.sample_one_per_bucket()
        if test_type is SourceTestType.MICRO:
            return self.registry.micro_set()
        return self.registry.all()

    def test_source(self, source: SourceEntry, max_items: int = 1) -> SourceTestResult:
        """Fetch and publish-immediately a few items from one source; never raises."""

        def _result(status: SourceResultStatus, detail: str) -> SourceTestResult:
            return SourceTestResult(
                domain=source.domain,
                pillar=source.pillar,
                region=source.region,
                status=status,
                detail=detail,
            )

        if not source.feed_url:
            return _result(SourceResultStatus.FAILURE, "No feed URL configured")
        try:
            items = self.scanner.fetch_items(source, max_items)
        except PipelineError as exc:
            return _result(SourceResultStatus.FAILURE, describe(exc))
        if not items:
            return _result(SourceResultStatus.FAILURE, "Feed returned no items")

        created: list[str] = []
        duplicates = 0
        errors: list[str] = []
        for item in items:
            try:
                outcome, article_id = self.scanner.ingest_item(
                    source,
                    item,
                    publish_immediately=True,
                    discovery_method=DiscoveryMethod.SOURCE_TEST,
                )
            except ValidationFailure as exc:
                errors.append(describe(exc))
                continue
            if outcome is IngestOutcome.CREATED:
                created.append(article_id)
            elif outcome is IngestOutcome.DUPLICATE:
                duplicates += 1
            else:
                errors.append("Feed item has no link")

        if created:
            return _result(SourceResultStatus.SUCCESS, f"Created {len(created)} article(s): {', '.join(created)}")
        if duplicates:
            return _result(SourceResultStatus.SUCCESS_DUPLICATE, f"{duplicates} item(s) already exist")
        return _result(SourceResultStatus.FAILURE, "; ".join(errors) or "No usable items")

    def run_source_test(self, test_type: SourceTestType, batch_size: int | None = None) -> str:
        """
        Run one source test and return its report id. Sources are processed
        one at a time; the report is completed after every source has a result.
        """
        sources = self.select_sources(test_type)
        report_id = self.reports.start(test_type, len(sources))
        delay = SOURCE_TEST_DELAYS[test_type]
        max_items = SOURCE_TEST_ITEMS.get(test_type, 1)
        group = len(sources) or 1
        if test_type is SourceTestType.BATCHED:
            group = max(1, batch_size or DEFAULT_TEST_BATCH_SIZE)

        for index, source in enumerate(sources):
            if index:
                self._sleep(BATCH_PAUSE_SECONDS if index % group == 0 else delay)
            try:
                result = self.test_source(source, max_items=max_items)
            except Exception as exc:
                logger.error("[BATCH] Unexpected error testing %s: %s", source.domain, exc)
                result = SourceTestResult(
                    domain=source.domain,
                    pillar=source.pillar,
                    region=source.region,
                    status=SourceResultStatus.FAILURE,
                    detail=str(exc),
                )
            self.reports.record(report_id, result)
            logger.info(
                "[BATCH] (%s/%s) %s -> %s",
                index + 1,
                len(sources),
                source.domain,
                result.status.value,
            )

        self.reports.complete(report_id)
        return report_id
