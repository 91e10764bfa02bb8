#!/usr/bin/env python3
"""主流程入口: 发现 -> 分发 -> 生成 -> 批处理/维护 (Discover -> Dispatch -> Generate -> Batch/Maintenance)."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import traceback
from datetime import date, datetime

from config import validate_config
from lumina.errors import PipelineError, describe

logger = logging.getLogger(__name__)

# Subcommand -> validate_config mode
COMMAND_MODES = {
    "discover": "discover",
    "add": "discover",
    "worker": "generate",
    "requeue": "admin",
    "requeue-failed": "admin",
    "source-test": "discover",
    "suggest-topics": "generate",
    "delete-old": "maintenance",
    "cleanup-deepdives": "maintenance",
    "delete-queued": "maintenance",
    "check-feeds": "maintenance",
    "check-images": "maintenance",
}


class JsonFormatter(logging.Formatter):
    """
    简单的 JSON 日志格式化器 (Simple JSON Log Formatter)
    用于生成机器可读的流水线日志，便于后续分析或监控。
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("event", "stage", "article_id"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(log_format: str) -> None:
    """配置日志系统 (Configure Logging)"""
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{value}'") from None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """解析命令行参数 (Parse Command Line Arguments)"""
    parser = argparse.ArgumentParser(description="Lumina news content pipeline")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="日志格式 (text|json)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    discover = sub.add_parser("discover", help="扫描订阅源并创建 Draft (Scan registry feeds)")
    discover.add_argument("--max-items", type=int, default=None, help="每个源最多条目 (Default: 5)")
    discover.add_argument("--generate", action="store_true", help="扫描后立即运行生成 (Drain the queue afterwards)")

    add = sub.add_parser("add", help="手动创建文章 (Create a manual Draft)")
    add.add_argument("--title", required=True)
    add.add_argument(
        "--type",
        dest="article_type",
        default="Trending Topic",
        help="Trending Topic | Positive News | Research Breakthrough | Misinformation",
    )
    add.add_argument("--category", dest="categories", action="append", default=[])
    add.add_argument("--region", default="Worldwide")
    add.add_argument("--description", default="", help="给 AI 的上下文 (Context for the model)")
    add.add_argument("--source-url", default="")
    add.add_argument("--source-title", default="")
    add.add_argument("--generate", action="store_true", help="创建后立即生成 (Drain the queue afterwards)")

    worker = sub.add_parser("worker", help="处理队列中的生成任务 (Process generation tasks)")
    worker.add_argument(
        "--daemon",
        action="store_true",
        help="常驻运行直到 Ctrl+C (Keep worker threads running)",
    )
    worker.add_argument(
        "--no-backoff",
        action="store_true",
        help="重试不等待退避间隔 (Retry immediately, for local runs)",
    )

    requeue = sub.add_parser("requeue", help="重新排队单篇失败文章 (Re-queue one failed article)")
    requeue.add_argument("article_id")
    requeue.add_argument("--as-user", default="", help="调用者 ID，用于权限检查 (Caller id for the role check)")
    requeue.add_argument("--generate", action="store_true")

    requeue_failed = sub.add_parser("requeue-failed", help="重新排队所有失败文章 (Re-queue all failed)")
    requeue_failed.add_argument("--as-user", default="")
    requeue_failed.add_argument("--generate", action="store_true")

    source_test = sub.add_parser("source-test", help="数据源健康测试 (Source health test)")
    source_test.add_argument("mode", choices=["full", "sample", "micro", "batched"])
    source_test.add_argument("--batch-size", type=int, default=None)
    source_test.add_argument("--as-user", default="")

    sub.add_parser("suggest-topics", help="生成选题建议 (Suggest topics)")

    delete_old = sub.add_parser("delete-old", help="删除指定日期及之前的文章 (Delete old articles)")
    delete_old.add_argument("date", type=_iso_date, help="YYYY-MM-DD (inclusive)")
    mode = delete_old.add_mutually_exclusive_group(required=True)
    mode.add_argument("--dry-run", action="store_true")
    mode.add_argument("--confirm-delete", action="store_true")

    sub.add_parser("cleanup-deepdives", help="清理非辟谣文章的 deepDiveContent")

    delete_queued = sub.add_parser("delete-queued", help="删除滞留在 Queued 的文章")
    delete_queued.add_argument("--confirm-delete", action="store_true")

    sub.add_parser("check-feeds", help="检查订阅源可达性 (Check feed reachability)")
    sub.add_parser("check-images", help="检查图片 URL 可达性 (Check image URLs)")
    return parser.parse_args(argv)


def _drain(runtime, honor_backoff: bool = True) -> int:
    processed = runtime.queue.run_until_idle(honor_backoff=honor_backoff)
    dead = len(runtime.queue.dead_letters)
    logger.info("[WORKER] processed=%s dead_letters=%s", processed, dead)
    return 1 if dead else 0


def _report_admin(result: dict) -> int:
    logger.info("[ADMIN] %s", result["message"])
    return 0 if result["success"] else 1


def run_command(args: argparse.Namespace) -> int:
    """执行子命令 (Run one subcommand). Returns the exit code."""
    mode = COMMAND_MODES[args.command]
    generating = getattr(args, "generate", False) or mode == "generate"
    valid, config_errors = validate_config(mode="generate" if generating else mode)
    if not valid:
        for item in config_errors:
            logger.error("[CONFIG] %s", item)
        return 1

    from lumina.runtime import build_runtime

    runtime = build_runtime()

    if args.command == "discover":
        results = runtime.scanner.scan_all(max_items=args.max_items)
        code = 0 if any(r.ok for r in results) or not results else 1
        if args.generate:
            code = max(code, _drain(runtime))
        return code

    if args.command == "add":
        from lumina.discovery.manual_entry import create_manual_article

        article_id = create_manual_article(
            runtime.repository,
            title=args.title,
            article_type=args.article_type,
            categories=args.categories,
            region=args.region,
            short_description=args.description,
            source_url=args.source_url,
            source_title=args.source_title,
            settings=runtime.settings,
        )
        if article_id is None:
            return 1
        print(article_id)
        return _drain(runtime) if args.generate else 0

    if args.command == "worker":
        runtime.recover_pending()
        if not args.daemon:
            return _drain(runtime, honor_backoff=not args.no_backoff)
        runtime.queue.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("[WORKER] Stopping")
        finally:
            runtime.queue.stop()
        return 0

    if args.command == "requeue":
        code = _report_admin(runtime.admin().requeue_article(args.as_user, args.article_id))
        return max(code, _drain(runtime)) if args.generate else code

    if args.command == "requeue-failed":
        code = _report_admin(runtime.admin().requeue_all_failed(args.as_user))
        return max(code, _drain(runtime)) if args.generate else code

    if args.command == "source-test":
        result = runtime.admin().run_source_test(args.as_user, args.mode, batch_size=args.batch_size)
        if result.get("reportId"):
            print(result["reportId"])
        return _report_admin(result)

    if args.command == "suggest-topics":
        from lumina.discovery.topic_suggester import TopicSuggester

        results = TopicSuggester(runtime.store, runtime.llm, runtime.registry, runtime.settings).run()
        return 0 if any(not r.error for r in results) else 1

    if args.command == "delete-old":
        from lumina.maintenance.cleanup import delete_old_articles

        delete_old_articles(runtime.store, args.date, dry_run=args.dry_run)
        return 0

    if args.command == "cleanup-deepdives":
        from lumina.maintenance.cleanup import cleanup_deep_dives

        cleanup_deep_dives(runtime.store)
        return 0

    if args.command == "delete-queued":
        from lumina.maintenance.cleanup import delete_queued_articles

        result = delete_queued_articles(runtime.store, confirm=args.confirm_delete)
        if result.dry_run and result.matched:
            logger.info("[MAINT] Run with --confirm-delete to delete %s article(s)", len(result.matched))
        return 0

    if args.command == "check-feeds":
        from lumina.maintenance.reachability import check_feeds

        results = check_feeds(runtime.registry)
        return 0 if all(r.reachable for r in results) else 1

    if args.command == "check-images":
        from lumina.maintenance.reachability import check_images

        results = check_images(runtime.store)
        return 0 if all(r.reachable for r in results) else 1

    logger.error("Unknown command: %s", args.command)
    return 1


def main(argv: list[str] | None = None) -> int:
    """程序入口点：解析参数，运行子命令，处理异常。"""
    args = parse_args(argv)
    configure_logging(args.log_format)

    started = time.perf_counter()
    try:
        code = run_command(args)
    except PipelineError as exc:
        logger.error("[%s] %s", exc.category, describe(exc))
        return 1
    except Exception as exc:
        logger.critical("Command '%s' failed unexpectedly: %s", args.command, exc)
        traceback.print_exc()
        return 1

    logger.info("Done | command=%s exit=%s duration=%.2fs", args.command, code, time.perf_counter() - started)
    return code


if __name__ == "__main__":
    sys.exit(main())
