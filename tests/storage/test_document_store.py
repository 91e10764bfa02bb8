import threading
from datetime import datetime, timezone

import pytest

from lumina.errors import BatchLimitExceeded, NotFoundError, StoreError
from lumina.storage.document_store import (
    DELETE_FIELD,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    open_store,
)


def test_add_get_update_delete():
    store = InMemoryDocumentStore()
    doc_id = store.add("articles", {"title": "a", "status": "Draft"})
    store.update("articles", doc_id, {"status": "Queued", "title": DELETE_FIELD})
    assert store.get("articles", doc_id) == {"status": "Queued"}
    store.delete("articles", doc_id)
    assert store.get("articles", doc_id) is None


def test_get_returns_a_copy():
    store = InMemoryDocumentStore()
    doc_id = store.add("c", {"tags": ["x"]})
    store.get("c", doc_id)["tags"].append("y")
    assert store.get("c", doc_id) == {"tags": ["x"]}


def test_update_missing_document():
    with pytest.raises(NotFoundError):
        InMemoryDocumentStore().update("c", "nope", {"a": 1})


def test_query_filters_order_and_limit():
    store = InMemoryDocumentStore()
    for n, status in enumerate(["Draft", "Queued", "Queued", "Published"]):
        store.add("articles", {"n": n, "status": status})

    rows = store.query("articles", [("status", "in", ["Queued", "Published"])], order_by="n", descending=True)
    assert [doc["n"] for _, doc in rows] == [3, 2, 1]
    rows = store.query("articles", [("n", ">=", 1), ("status", "!=", "Published")], order_by="n", limit=1)
    assert [doc["n"] for _, doc in rows] == [1]


def test_query_rejects_unknown_operator():
    with pytest.raises(StoreError):
        InMemoryDocumentStore().query("c", [("a", "like", "x")])


def test_batch_is_all_or_nothing():
    store = InMemoryDocumentStore()
    keep = store.add("c", {"v": 1})
    batch = store.batch()
    batch.update("c", keep, {"v": 2})
    batch.update("c", "missing", {"v": 2})
    with pytest.raises(NotFoundError):
        batch.commit()
    assert store.get("c", keep) == {"v": 1}


def test_batch_limit():
    store = InMemoryDocumentStore(batch_limit=2)
    batch = store.batch()
    batch.create("c", {})
    batch.create("c", {})
    with pytest.raises(BatchLimitExceeded):
        batch.create("c", {})


def test_increment_is_atomic():
    store = InMemoryDocumentStore()
    doc_id = store.add("reports", {"count": 0})

    def bump():
        for _ in range(200):
            store.increment("reports", doc_id, "count")

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert store.get("reports", doc_id)["count"] == 800


def test_compare_and_update():
    store = InMemoryDocumentStore()
    doc_id = store.add("articles", {"status": "Draft"})
    assert store.compare_and_update("articles", doc_id, {"status": "Draft"}, {"status": "Queued"}) is True
    assert store.compare_and_update("articles", doc_id, {"status": "Draft"}, {"status": "Queued"}) is False
    with pytest.raises(NotFoundError):
        store.compare_and_update("articles", "nope", {"status": "Draft"}, {})


def test_create_listener_runs_after_commit_and_errors_are_contained():
    store = InMemoryDocumentStore()
    seen = []

    def listener(doc_id, doc):
        seen.append((doc_id, doc["status"], store.get("articles", doc_id) is not None))
        raise RuntimeError("listener bug")

    store.on_create("articles", listener)
    doc_id = store.add("articles", {"status": "Draft"})
    store.update("articles", doc_id, {"status": "Queued"})
    store.add("other", {"status": "Draft"})
    assert seen == [(doc_id, "Draft", True)]


def test_json_file_store_round_trip(tmp_path):
    path = tmp_path / "store.json"
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    store = open_store(str(path))
    assert isinstance(store, JsonFileDocumentStore)
    doc_id = store.add("articles", {"title": "a", "createdAt": created})

    reopened = JsonFileDocumentStore(str(path))
    assert reopened.get("articles", doc_id) == {"title": "a", "createdAt": created}


def test_open_store_without_path_is_in_memory():
    assert type(open_store("")) is InMemoryDocumentStore


def test_update_where_skips_missing_and_moved_documents():
    store = InMemoryDocumentStore()
    store.set("articles", "a", {"status": "GenerationFailed"})
    store.set("articles", "b", {"status": "Published"})
    store.set("articles", "c", {"status": "GenerationFailed", "note": "x"})

    moved = store.update_where(
        "articles", ["a", "b", "gone", "c"], {"status": "GenerationFailed"}, {"status": "Queued", "note": DELETE_FIELD}
    )

    assert moved == ["a", "c"]
    assert store.get("articles", "b")["status"] == "Published"
    assert store.get("articles", "c") == {"status": "Queued"}
