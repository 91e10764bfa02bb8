"""
测试报告汇总 (Source Test Report Aggregator)
One report document per batch run plus a child collection of per-source
results. Success/failure counters only move through AtomicCounter.
"""

from __future__ import annotations

import logging

from lumina.errors import NotFoundError, StoreError
from lumina.models import (
    ReportStatus,
    SourceTestReport,
    SourceTestResult,
    SourceTestType,
    utcnow,
)
from lumina.storage.document_store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

REPORTS = "source_test_reports"
MAX_CAS_RETRIES = 20


def results_collection(report_id: str) -> str:
    return f"{REPORTS}/{report_id}/results"


class AtomicCounter:
    """
    Single-document atomic add. Uses the store's native increment; with
    ``native=False`` falls back to a compare-and-swap retry loop.
    """

    def __init__(
        self,
        store: InMemoryDocumentStore,
        collection: str,
        doc_id: str,
        field_name: str,
        native: bool = True,
    ):
        self.store = store
        self.collection = collection
        self.doc_id = doc_id
        self.field_name = field_name
        self.native = native

    def add(self, amount: int = 1) -> int:
        if self.native:
            return self.store.increment(self.collection, self.doc_id, self.field_name, amount)

        for _ in range(MAX_CAS_RETRIES):
            doc = self.store.get(self.collection, self.doc_id)
            if doc is None:
                raise NotFoundError(f"{self.collection}/{self.doc_id} does not exist")
            current = doc.get(self.field_name, 0)
            if self.store.compare_and_update(
                self.collection,
                self.doc_id,
                {self.field_name: current},
                {self.field_name: current + amount},
            ):
                return current + amount
        raise StoreError(
            f"Counter {self.collection}/{self.doc_id}.{self.field_name} kept changing, giving up"
        )


class ReportAggregator:
    def __init__(self, store: InMemoryDocumentStore, native_counters: bool = True):
        self.store = store
        self.native_counters = native_counters

    def start(self, test_type: SourceTestType, total_sources: int) -> str:
        report_id = self.store.add(
            REPORTS,
            {
                "status": ReportStatus.RUNNING.value,
                "testType": test_type.value,
                "totalSources": total_sources,
                "successCount": 0,
                "failureCount": 0,
                "createdAt": utcnow(),
            },
        )
        logger.info("[BATCH] Report %s started: %s test over %s sources", report_id, test_type.value, total_sources)
        return report_id

    def counter(self, report_id: str, field_name: str) -> AtomicCounter:
        return AtomicCounter(self.store, REPORTS, report_id, field_name, native=self.native_counters)

    def record(self, report_id: str, result: SourceTestResult) -> None:
        """Write the per-source result, then bump the matching counter."""
        self.store.add(results_collection(report_id), result.to_document())
        field_name = "successCount" if result.status.is_success else "failureCount"
        self.counter(report_id, field_name).add()

    def complete(self, report_id: str) -> None:
        batch = self.store.batch()
        batch.update(
            REPORTS,
            report_id,
            {"status": ReportStatus.COMPLETED.value, "completedAt": utcnow()},
        )
        batch.commit()
        report = self.get(report_id)
        logger.info(
            "[BATCH] Report %s completed | success=%s failure=%s total=%s",
            report_id,
            report.success_count,
            report.failure_count,
            report.total_sources,
        )

    def get(self, report_id: str) -> SourceTestReport:
        doc = self.store.get(REPORTS, report_id)
        if doc is None:
            raise NotFoundError(f"Report {report_id} does not exist")
        return SourceTestReport.from_document(report_id, doc)

    def results(self, report_id: str) -> list[dict]:
        rows = self.store.query(results_collection(report_id), order_by="timestamp")
        return [doc for _, doc in rows]
