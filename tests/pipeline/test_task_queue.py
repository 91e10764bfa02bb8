import threading

import pytest

from lumina.errors import ContentGenerationError, ExternalServiceError, NotFoundError, ValidationFailure
from lumina.pipeline.task_queue import TaskQueue


def test_enqueue_many_limit():
    queue = TaskQueue(lambda task: None)
    with pytest.raises(ValidationFailure):
        queue.enqueue_many([{"n": i} for i in range(101)])
    assert len(queue.enqueue_many([{"n": i} for i in range(100)])) == 100


def test_run_until_idle_processes_in_order():
    seen = []
    queue = TaskQueue(lambda task: seen.append(task.payload["n"]))
    queue.enqueue_many([{"n": i} for i in range(3)])
    assert queue.run_until_idle() == 3
    assert seen == [0, 1, 2]
    assert queue.completed == 3


def test_transient_errors_retry_until_max_attempts():
    attempts = []

    def handler(task):
        attempts.append(task.attempt)
        raise ExternalServiceError("down")

    queue = TaskQueue(handler, max_attempts=3, min_backoff_seconds=60)
    queue.enqueue({"articleId": "a"})
    queue.run_until_idle(honor_backoff=False)

    assert attempts == [1, 2, 3]
    assert len(queue.dead_letters) == 1
    assert queue.dead_letters[0].category == "TRANSIENT"


def test_retry_then_success():
    calls = []

    def handler(task):
        calls.append(task.attempt)
        if task.attempt == 1:
            raise ContentGenerationError("flaky", transient=True)

    queue = TaskQueue(handler)
    queue.enqueue({})
    queue.run_until_idle(honor_backoff=False)
    assert calls == [1, 2]
    assert queue.dead_letters == []


def test_non_retryable_errors_are_dead_lettered_immediately():
    calls = []

    def handler(task):
        calls.append(task.attempt)
        raise NotFoundError("gone")

    queue = TaskQueue(handler)
    queue.enqueue({})
    queue.run_until_idle(honor_backoff=False)
    assert calls == [1]
    assert queue.dead_letters[0].category == "NOT_FOUND"


def test_backoff_is_exponential_from_minimum():
    queue = TaskQueue(lambda task: None, min_backoff_seconds=60)
    assert [queue.backoff_for(n) for n in (1, 2, 3)] == [60, 120, 240]


def test_delayed_retry_is_not_run_early():
    def handler(task):
        raise ExternalServiceError("down")

    queue = TaskQueue(handler, min_backoff_seconds=3600)
    queue.enqueue({})
    with queue._cond:
        task = queue._take(wait_for_delayed=False)
    queue._process(task)
    # Retry sits in the heap an hour out; the drain loop leaves it alone
    with queue._cond:
        assert queue._take(wait_for_delayed=False) is None
    assert len(queue) == 1
    assert queue.pending_tasks()[0].attempt == 2


def test_worker_threads_never_overlap_with_concurrency_one():
    lock = threading.Lock()
    active = []
    overlaps = []

    def handler(task):
        if not lock.acquire(blocking=False):
            overlaps.append(task.id)
            return
        try:
            active.append(task.id)
        finally:
            lock.release()

    queue = TaskQueue(handler, concurrency=1)
    queue.enqueue_many([{"n": i} for i in range(50)])
    queue.start()
    try:
        assert queue.wait_idle(timeout=10)
    finally:
        queue.stop(timeout=5)
    assert overlaps == []
    assert len(active) == 50
