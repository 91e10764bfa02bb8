from datetime import date, datetime, timezone

from lumina.maintenance.cleanup import (
    cleanup_deep_dives,
    delete_old_articles,
    delete_queued_articles,
    end_of_day_utc,
)
from lumina.storage.articles import ARTICLES
from lumina.storage.document_store import InMemoryDocumentStore


def _store(batch_limit=500):
    store = InMemoryDocumentStore(batch_limit=batch_limit)
    store.set(ARTICLES, "old", {"title": "Old", "createdAt": datetime(2024, 1, 1, 8, tzinfo=timezone.utc)})
    store.set(ARTICLES, "edge", {"title": "Edge", "createdAt": datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc)})
    store.set(ARTICLES, "new", {"title": "New", "createdAt": datetime(2024, 2, 1, 0, 0, tzinfo=timezone.utc)})
    return store


def test_cutoff_includes_the_whole_day():
    cutoff = end_of_day_utc(date(2024, 1, 31))
    assert cutoff.date() == date(2024, 1, 31)
    assert cutoff.tzinfo is timezone.utc
    assert cutoff > datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_delete_old_dry_run_changes_nothing():
    store = _store()
    result = delete_old_articles(store, date(2024, 1, 31), dry_run=True)
    assert result.matched == ["old", "edge"]
    assert result.changed == 0
    assert len(store.query(ARTICLES)) == 3


def test_delete_old_commits_in_batches():
    store = _store(batch_limit=1)
    result = delete_old_articles(store, date(2024, 1, 31), dry_run=False)
    assert (result.changed, result.batches) == (2, 2)
    assert [doc_id for doc_id, _ in store.query(ARTICLES)] == ["new"]


def test_cleanup_deep_dives_keeps_misinformation():
    store = InMemoryDocumentStore()
    store.set(ARTICLES, "a", {"articleType": "Trending Topic", "deepDiveContent": "<h2>x</h2>"})
    store.set(ARTICLES, "b", {"articleType": "Misinformation", "deepDiveContent": "<h2>Verdict: False</h2>"})
    store.set(ARTICLES, "c", {"articleType": "Positive News"})

    result = cleanup_deep_dives(store)

    assert result.matched == ["a"]
    assert "deepDiveContent" not in store.get(ARTICLES, "a")
    assert "deepDiveContent" in store.get(ARTICLES, "b")


def test_delete_queued_requires_confirmation():
    store = InMemoryDocumentStore()
    store.set(ARTICLES, "q", {"status": "Queued"})
    store.set(ARTICLES, "p", {"status": "Published"})

    preview = delete_queued_articles(store)
    assert preview.dry_run and preview.matched == ["q"]
    assert store.get(ARTICLES, "q") is not None

    result = delete_queued_articles(store, confirm=True)
    assert result.changed == 1
    assert store.get(ARTICLES, "q") is None
    assert store.get(ARTICLES, "p") is not None
