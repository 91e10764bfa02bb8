"""
管理端调用 (Admin Callables)
Role-gated operations for the admin console. Each returns a summary dict
``{success, message, count | reportId}``; a caller that fails the role check
gets PermissionDeniedError.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from lumina.batch.orchestrator import BatchOrchestrator
from lumina.errors import PermissionDeniedError, PipelineError, ValidationFailure, describe
from lumina.models import SourceTestType

logger = logging.getLogger(__name__)

RoleCheck = Callable[[str], bool]


def allow_list_role_check(admin_users: Iterable[str]) -> RoleCheck:
    """Role check backed by a static list of admin user ids."""
    admins = frozenset(admin_users)
    return lambda caller: bool(caller) and caller in admins


class AdminCallables:
    def __init__(self, orchestrator: BatchOrchestrator, is_admin: RoleCheck):
        self.orchestrator = orchestrator
        self.is_admin = is_admin

    def _require_admin(self, caller: str, operation: str) -> None:
        if not self.is_admin(caller):
            logger.warning("[ADMIN] %s denied for caller %r", operation, caller)
            raise PermissionDeniedError(f"Only administrators can call {operation}")

    def requeue_article(self, caller: str, article_id: str) -> dict:
        self._require_admin(caller, "requeue_article")
        if not article_id:
            raise ValidationFailure("articleId is required")
        try:
            queued = self.orchestrator.requeue_article(article_id)
        except PipelineError as exc:
            logger.error("[ADMIN] requeue_article %s failed: %s", article_id, describe(exc))
            return {"success": False, "message": describe(exc), "count": 0}
        if not queued:
            return {
                "success": False,
                "message": f"Article {article_id} is not in GenerationFailed.",
                "count": 0,
            }
        return {"success": True, "message": f"Article {article_id} re-queued.", "count": 1}

    def requeue_all_failed(self, caller: str) -> dict:
        self._require_admin(caller, "requeue_all_failed")
        try:
            summary = self.orchestrator.requeue_all_failed()
        except PipelineError as exc:
            logger.error("[ADMIN] requeue_all_failed failed: %s", describe(exc))
            return {"success": False, "message": describe(exc), "count": 0}
        if not summary.requested:
            return {"success": True, "message": "No failed articles to re-queue.", "count": 0}
        message = f"Successfully re-queued {summary.queued} failed articles."
        if not summary.ok:
            message = (
                f"Re-queued {summary.queued} articles, but {summary.failed_chunks} chunk(s) "
                "could not be enqueued."
            )
        return {"success": summary.ok, "message": message, "count": summary.queued}

    def run_source_test(self, caller: str, test_type: str, batch_size: int | None = None) -> dict:
        self._require_admin(caller, "run_source_test")
        try:
            kind = SourceTestType(test_type)
        except ValueError:
            raise ValidationFailure(f"Unknown source test type '{test_type}'") from None
        if kind is SourceTestType.BATCHED and batch_size is not None and batch_size < 1:
            raise ValidationFailure("batchSize must be a positive integer")

        try:
            report_id = self.orchestrator.run_source_test(kind, batch_size=batch_size)
        except PipelineError as exc:
            logger.error("[ADMIN] %s source test failed: %s", kind.value, describe(exc))
            return {"success": False, "message": describe(exc), "reportId": None}
        report = self.orchestrator.reports.get(report_id)
        return {
            "success": True,
            "message": (
                f"{kind.value.capitalize()} source test completed: {report.success_count} succeeded, "
                f"{report.failure_count} failed of {report.total_sources}."
            ),
            "reportId": report_id,
        }
