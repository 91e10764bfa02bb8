"""
数据清理 (Store Maintenance)
Operator clean-up jobs over the articles collection. Every destructive job
writes through store batches of at most ``batch_limit`` operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

from lumina.models import ArticleStatus, ArticleType
from lumina.storage.articles import ARTICLES
from lumina.storage.document_store import DELETE_FIELD, InMemoryDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceResult:
    matched: list[str] = field(default_factory=list)
    changed: int = 0
    dry_run: bool = False
    batches: int = 0


def end_of_day_utc(day: date) -> datetime:
    """Inclusive cutoff: the last instant of ``day`` in UTC."""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def _chunks(ids: list[str], size: int):
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


def delete_old_articles(
    store: InMemoryDocumentStore, cutoff: date, dry_run: bool = True
) -> MaintenanceResult:
    """Delete articles created on or before ``cutoff`` (dry run lists them only)."""
    cutoff_ts = end_of_day_utc(cutoff)
    rows = store.query(ARTICLES, [("createdAt", "<=", cutoff_ts)], order_by="createdAt")
    result = MaintenanceResult(matched=[doc_id for doc_id, _ in rows], dry_run=dry_run)
    logger.info("[MAINT] %s article(s) created on or before %s", len(rows), cutoff_ts.isoformat())

    if dry_run:
        for doc_id, doc in rows:
            logger.info("[MAINT] would delete %s | %s", doc_id, (doc.get("title") or "")[:70])
        return result

    for chunk in _chunks(result.matched, store.batch_limit):
        batch = store.batch()
        for doc_id in chunk:
            batch.delete(ARTICLES, doc_id)
        batch.commit()
        result.batches += 1
        result.changed += len(chunk)
        logger.info("[MAINT] committed batch %s, deleted %s article(s)", result.batches, len(chunk))
    return result


def cleanup_deep_dives(store: InMemoryDocumentStore) -> MaintenanceResult:
    """Remove deepDiveContent from every article that is not Misinformation."""
    types = [t.value for t in ArticleType if t is not ArticleType.MISINFORMATION]
    rows = store.query(ARTICLES, [("articleType", "in", types)])
    ids = [doc_id for doc_id, doc in rows if "deepDiveContent" in doc]
    result = MaintenanceResult(matched=ids)
    if not ids:
        logger.info("[MAINT] No articles need deep-dive cleanup")
        return result

    for chunk in _chunks(ids, store.batch_limit):
        batch = store.batch()
        for doc_id in chunk:
            batch.update(ARTICLES, doc_id, {"deepDiveContent": DELETE_FIELD})
        batch.commit()
        result.batches += 1
        result.changed += len(chunk)
    logger.info("[MAINT] Cleaned up deepDiveContent on %s article(s)", result.changed)
    return result


def delete_queued_articles(store: InMemoryDocumentStore, confirm: bool = False) -> MaintenanceResult:
    """
    Delete articles stuck in Queued (e.g. after a failed enqueue). Without
    ``confirm`` this only reports what would be deleted.
    """
    rows = store.query(ARTICLES, [("status", "==", ArticleStatus.QUEUED.value)])
    result = MaintenanceResult(matched=[doc_id for doc_id, _ in rows], dry_run=not confirm)
    logger.info("[MAINT] %s Queued article(s) found", len(rows))
    if not confirm:
        return result

    for chunk in _chunks(result.matched, store.batch_limit):
        batch = store.batch()
        for doc_id in chunk:
            batch.delete(ARTICLES, doc_id)
        batch.commit()
        result.batches += 1
        result.changed += len(chunk)
    logger.info("[MAINT] Deleted %s Queued article(s)", result.changed)
    return result
