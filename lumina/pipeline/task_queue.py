"""
任务队列 (Task Queue)
In-process at-least-once queue: a fixed pool of worker threads pulls one task
at a time, failed tasks are retried with exponential backoff, and tasks that
exhaust their attempts (or fail non-retryably) land in ``dead_letters``.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from lumina.errors import ValidationFailure, describe, retryable

logger = logging.getLogger(__name__)

MAX_ENQUEUE_BATCH = 100


@dataclass
class Task:
    payload: dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    attempt: int = 1
    last_error: str = ""


@dataclass
class DeadLetter:
    task: Task
    error: str
    category: str


TaskHandler = Callable[[Task], None]


class TaskQueue:
    """Bounded-concurrency consumer with a retry policy (max attempts, min backoff)."""

    def __init__(
        self,
        handler: TaskHandler,
        concurrency: int = 1,
        max_attempts: int = 3,
        min_backoff_seconds: float = 60.0,
        name: str = "generate",
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.handler = handler
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.min_backoff_seconds = min_backoff_seconds
        self.name = name
        self.dead_letters: list[DeadLetter] = []
        self.completed = 0

        self._heap: list[tuple[float, int, Task]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._active = 0
        self._threads: list[threading.Thread] = []
        self._stopping = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)

    def pending_tasks(self) -> list[Task]:
        with self._cond:
            return [task for _, _, task in sorted(self._heap)]

    # --- Producer side ---
    def enqueue(self, payload: dict) -> str:
        return self.enqueue_many([payload])[0]

    def enqueue_many(self, payloads: list[dict]) -> list[str]:
        """Enqueue up to 100 tasks in one call; returns their task ids."""
        if len(payloads) > MAX_ENQUEUE_BATCH:
            raise ValidationFailure(
                f"enqueue_many accepts at most {MAX_ENQUEUE_BATCH} tasks, got {len(payloads)}"
            )
        tasks = [Task(payload=dict(payload)) for payload in payloads]
        now = time.monotonic()
        with self._cond:
            for task in tasks:
                heapq.heappush(self._heap, (now, next(self._seq), task))
            self._cond.notify_all()
        logger.debug("[QUEUE] %s: enqueued %s task(s)", self.name, len(tasks))
        return [task.id for task in tasks]

    def backoff_for(self, attempt: int) -> float:
        """Delay before attempt ``attempt + 1``."""
        return self.min_backoff_seconds * (2 ** (attempt - 1))

    # --- Consumer side ---
    def _process(self, task: Task) -> None:
        try:
            self.handler(task)
        except Exception as exc:
            task.last_error = describe(exc)
            if retryable(exc) and task.attempt < self.max_attempts:
                delay = self.backoff_for(task.attempt)
                logger.warning(
                    "[QUEUE] %s: task %s attempt %s/%s failed (%s), retry in %.0fs",
                    self.name,
                    task.id,
                    task.attempt,
                    self.max_attempts,
                    task.last_error,
                    delay,
                )
                task.attempt += 1
                with self._cond:
                    heapq.heappush(self._heap, (time.monotonic() + delay, next(self._seq), task))
                    self._cond.notify_all()
                return
            category = getattr(exc, "category", type(exc).__name__)
            logger.error(
                "[QUEUE] %s: task %s dead-lettered after %s attempt(s): %s",
                self.name,
                task.id,
                task.attempt,
                task.last_error,
            )
            with self._cond:
                self.dead_letters.append(DeadLetter(task=task, error=task.last_error, category=category))
            return
        with self._cond:
            self.completed += 1

    def _take(self, wait_for_delayed: bool) -> Task | None:
        """Pop the next due task. Caller holds ``self._cond``."""
        while self._heap and not self._stopping:
            ready_at, _, task = self._heap[0]
            wait_s = ready_at - time.monotonic()
            if wait_s <= 0:
                heapq.heappop(self._heap)
                return task
            if not wait_for_delayed:
                return None
            self._cond.wait(timeout=wait_s)
        return None

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                while not self._stopping and not self._heap:
                    self._cond.wait()
                if self._stopping:
                    return
                task = self._take(wait_for_delayed=True)
                if task is None:
                    continue
                self._active += 1
            try:
                self._process(task)
            finally:
                with self._cond:
                    self._active -= 1
                    self._cond.notify_all()

    def start(self) -> None:
        with self._cond:
            if self._threads:
                return
            self._stopping = False
            for i in range(self.concurrency):
                thread = threading.Thread(
                    target=self._worker_loop, name=f"{self.name}-worker-{i}", daemon=True
                )
                self._threads.append(thread)
        for thread in self._threads:
            thread.start()
        logger.info("[QUEUE] %s: started %s worker thread(s)", self.name, self.concurrency)

    def stop(self, timeout: float | None = None) -> None:
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join(timeout)
        with self._cond:
            self._stopping = False
        logger.info("[QUEUE] %s: stopped", self.name)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is pending or running (threaded mode)."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._heap or self._active:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(timeout=remaining)
        return True

    def run_until_idle(self, honor_backoff: bool = True) -> int:
        """
        Drain the queue in the calling thread, one task at a time.
        With ``honor_backoff=False`` retries run immediately. Returns the
        number of handler invocations.
        """
        if self._threads:
            raise RuntimeError("run_until_idle cannot be used while worker threads are running")
        processed = 0
        while True:
            with self._cond:
                if not self._heap:
                    return processed
                if honor_backoff:
                    task = self._take(wait_for_delayed=True)
                else:
                    task = heapq.heappop(self._heap)[2]
            if task is None:
                return processed
            self._process(task)
            processed += 1
