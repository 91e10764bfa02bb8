from unittest.mock import MagicMock

from lumina.models import Article, ArticleStatus, ArticleType
from lumina.pipeline.dispatcher import Dispatcher
from lumina.pipeline.task_queue import TaskQueue
from lumina.storage.articles import ARTICLES, ArticleRepository
from lumina.storage.document_store import InMemoryDocumentStore


def _setup(attach=True):
    store = InMemoryDocumentStore()
    repository = ArticleRepository(store)
    queue = TaskQueue(MagicMock())
    dispatcher = Dispatcher(repository, queue)
    if attach:
        dispatcher.attach(store)
    return store, repository, queue, dispatcher


def _draft(**fields):
    return Article(title="Story", article_type=ArticleType.TRENDING_TOPIC, **fields)


def test_create_trigger_queues_new_drafts():
    store, repository, queue, _ = _setup()
    article_id = repository.create(_draft())

    assert repository.get(article_id).status is ArticleStatus.QUEUED
    assert [t.payload for t in queue.pending_tasks()] == [{"articleId": article_id}]


def test_trigger_ignores_non_draft_creations():
    store, repository, queue, _ = _setup()
    repository.create(_draft(status=ArticleStatus.PUBLISHED))
    assert len(queue) == 0


def test_dispatch_is_idempotent():
    store, repository, queue, dispatcher = _setup(attach=False)
    article_id = repository.create(_draft())

    assert dispatcher.dispatch(article_id) is True
    assert dispatcher.dispatch(article_id) is False
    assert len(queue) == 1


def test_dispatch_missing_article():
    _, _, queue, dispatcher = _setup(attach=False)
    assert dispatcher.dispatch("nope") is False
    assert len(queue) == 0


def test_enqueue_failure_marks_article_failed():
    store, repository, queue, dispatcher = _setup(attach=False)
    article_id = repository.create(_draft())
    dispatcher.queue = MagicMock()
    dispatcher.queue.enqueue.side_effect = RuntimeError("queue unavailable")

    assert dispatcher.dispatch(article_id) is False

    doc = store.get(ARTICLES, article_id)
    assert doc["status"] == "GenerationFailed"
    assert "Could not queue AI content generation" in doc["adminRevisionNotes"]
    assert "queue unavailable" in doc["adminRevisionNotes"]
