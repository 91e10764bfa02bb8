"""
文档存储 (Document Store)
Thread-safe document store with key lookup, filtered/ordered queries, atomic
single-document increments, atomic multi-document batches and create triggers.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from lumina.errors import BatchLimitExceeded, NotFoundError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 500


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"


# Sentinel value: remove the field on update
DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class Increment:
    """Update value: atomically add ``amount`` to a numeric field."""
    amount: int | float = 1


CreateListener = Callable[[str, dict], None]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


def _apply_changes(doc: dict, changes: dict) -> None:
    for key, value in changes.items():
        if value is DELETE_FIELD:
            doc.pop(key, None)
        elif isinstance(value, Increment):
            doc[key] = (doc.get(key) or 0) + value.amount
        else:
            doc[key] = copy.deepcopy(value)


class WriteBatch:
    """Collects writes and applies them all-or-nothing on ``commit``."""

    def __init__(self, store: InMemoryDocumentStore, limit: int):
        self._store = store
        self._limit = limit
        self._ops: list[tuple[str, str, str, dict]] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def _append(self, op: str, collection: str, doc_id: str, data: dict) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        if len(self._ops) >= self._limit:
            raise BatchLimitExceeded(
                f"Batch exceeds {self._limit} operations (store batch-write limit)"
            )
        self._ops.append((op, collection, doc_id, data))

    def create(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        doc_id = doc_id or self._store.new_id()
        self._append("create", collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._append("set", collection, doc_id, data)

    def update(self, collection: str, doc_id: str, changes: dict) -> None:
        self._append("update", collection, doc_id, changes)

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> None:
        self._append("update", collection, doc_id, {field_name: Increment(amount)})

    def delete(self, collection: str, doc_id: str) -> None:
        self._append("delete", collection, doc_id, {})

    def commit(self) -> None:
        self._store._commit(self._ops)
        self._committed = True


class InMemoryDocumentStore:
    """In-process document store. All writes go through ``_commit`` under one lock."""

    def __init__(self, batch_limit: int = DEFAULT_BATCH_LIMIT):
        self.batch_limit = batch_limit
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._lock = threading.RLock()
        self._listeners: dict[str, list[CreateListener]] = defaultdict(list)

    # --- Reads ---
    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:20]

    def get(self, collection: str, doc_id: str) -> dict | None:
        with self._lock:
            doc = self._collections[collection].get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(
        self,
        collection: str,
        filters: Iterable[tuple[str, str, Any]] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        """Equality/range/membership filtering with optional ordering and limit."""
        filters = list(filters)
        for _, op, _ in filters:
            if op not in _OPERATORS:
                raise StoreError(f"Unsupported filter operator '{op}'")

        with self._lock:
            rows = [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in self._collections[collection].items()
                if all(_OPERATORS[op](doc.get(name), value) for name, op, value in filters)
            ]

        if order_by:
            present = [row for row in rows if row[1].get(order_by) is not None]
            missing = [row for row in rows if row[1].get(order_by) is None]
            present.sort(key=lambda row: row[1][order_by], reverse=descending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return rows

    # --- Writes ---
    def batch(self) -> WriteBatch:
        return WriteBatch(self, self.batch_limit)

    def add(self, collection: str, data: dict) -> str:
        batch = self.batch()
        doc_id = batch.create(collection, data)
        batch.commit()
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        batch = self.batch()
        batch.set(collection, doc_id, data)
        batch.commit()

    def update(self, collection: str, doc_id: str, changes: dict) -> None:
        batch = self.batch()
        batch.update(collection, doc_id, changes)
        batch.commit()

    def delete(self, collection: str, doc_id: str) -> None:
        batch = self.batch()
        batch.delete(collection, doc_id)
        batch.commit()

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> int:
        """Atomic single-document add. Returns the new value."""
        with self._lock:
            self.update(collection, doc_id, {field_name: Increment(amount)})
            return self._collections[collection][doc_id][field_name]

    def compare_and_update(
        self, collection: str, doc_id: str, expected: dict, changes: dict
    ) -> bool:
        """
        Status-gated write: apply ``changes`` only if every ``expected`` field
        currently matches. Returns False (and writes nothing) otherwise.
        """
        with self._lock:
            doc = self._collections[collection].get(doc_id)
            if doc is None:
                raise NotFoundError(f"{collection}/{doc_id} does not exist")
            if any(doc.get(key) != value for key, value in expected.items()):
                return False
            self.update(collection, doc_id, changes)
            return True

    def update_where(
        self, collection: str, doc_ids: Iterable[str], expected: dict, changes: dict
    ) -> list[str]:
        """
        One atomic batch over ``doc_ids``: documents whose ``expected`` fields
        still match get ``changes``; missing or already-moved ones are skipped.
        Returns the ids that were updated.
        """
        with self._lock:
            docs = self._collections[collection]
            matched = [
                doc_id
                for doc_id in doc_ids
                if doc_id in docs and all(docs[doc_id].get(k) == v for k, v in expected.items())
            ]
            batch = self.batch()
            for doc_id in matched:
                batch.update(collection, doc_id, changes)
            batch.commit()
        return matched

    def on_create(self, collection: str, listener: CreateListener) -> None:
        """Register a trigger fired after a document is created in ``collection``."""
        self._listeners[collection].append(listener)

    def _commit(self, ops: list[tuple[str, str, str, dict]]) -> None:
        created: list[tuple[str, str, dict]] = []
        with self._lock:
            # Validate first so nothing is applied when any op would fail
            exists: dict[tuple[str, str], bool] = {}
            for op, collection, doc_id, _ in ops:
                key = (collection, doc_id)
                present = exists.get(key, doc_id in self._collections[collection])
                if op == "create" and present:
                    raise StoreError(f"{collection}/{doc_id} already exists")
                if op == "update" and not present:
                    raise NotFoundError(f"{collection}/{doc_id} does not exist")
                exists[key] = op != "delete"

            for op, collection, doc_id, data in ops:
                docs = self._collections[collection]
                if op in ("create", "set"):
                    docs[doc_id] = {}
                    _apply_changes(docs[doc_id], data)
                    if op == "create":
                        created.append((collection, doc_id, copy.deepcopy(docs[doc_id])))
                elif op == "update":
                    _apply_changes(docs[doc_id], data)
                elif op == "delete":
                    docs.pop(doc_id, None)
            if ops:
                self._persist()

        for collection, doc_id, doc in created:
            for listener in self._listeners.get(collection, []):
                try:
                    listener(doc_id, doc)
                except Exception as exc:
                    logger.error(
                        "[STORE] Create trigger failed for %s/%s: %s", collection, doc_id, exc
                    )

    def _persist(self) -> None:
        """Hook for durable subclasses; called under the lock after each commit."""


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"__datetime__"}:
            return datetime.fromisoformat(value["__datetime__"])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Document store persisted to a JSON file after every commit."""

    def __init__(self, path: str, batch_limit: int = DEFAULT_BATCH_LIMIT):
        super().__init__(batch_limit=batch_limit)
        self.path = path
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        with open(self.path, encoding="utf-8") as handle:
            raw = json.load(handle)
        for collection, docs in raw.items():
            self._collections[collection] = _decode(docs)
        logger.info("[STORE] Loaded %s collections from %s", len(raw), self.path)

    def _persist(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(_encode(dict(self._collections)), handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)


def open_store(path: str = "", batch_limit: int = DEFAULT_BATCH_LIMIT) -> InMemoryDocumentStore:
    if path:
        return JsonFileDocumentStore(path, batch_limit=batch_limit)
    return InMemoryDocumentStore(batch_limit=batch_limit)
