from unittest.mock import MagicMock

from config import Settings
from lumina.discovery.scanner import DiscoveryScanner, build_flash_from_snippet, select_categories
from lumina.errors import ExternalServiceError
from lumina.models import ArticleStatus, ArticleType, DiscoveryMethod, FeedItem
from lumina.sources.registry import SourceRegistry
from lumina.storage.articles import ArticleRepository
from lumina.storage.document_store import InMemoryDocumentStore

SUPPORTED = Settings().supported_categories

REGISTRY = SourceRegistry.from_dict(
    {
        "sources": {
            "trending_topics": {
                "Worldwide": {
                    "allowlist": [
                        {"domain": "bbc.co.uk", "rssUrl": "https://feeds.test/bbc", "displayName": "BBC News"},
                        {"domain": "reuters.com", "rssUrl": "https://feeds.test/reuters"},
                    ]
                }
            },
            "positive_news": {
                "USA": {"allowlist": [{"domain": "goodnews.test", "rssUrl": "https://feeds.test/good"}]}
            },
        }
    }
)


def _scanner(feeds, repository=None):
    def fetch(feed_url, max_items, **kwargs):
        value = feeds[feed_url]
        if isinstance(value, Exception):
            raise value
        return value[:max_items]

    repository = repository or ArticleRepository(InMemoryDocumentStore())
    scanner = DiscoveryScanner(
        repository,
        REGISTRY,
        settings=Settings(discovery_max_workers=2),
        session=MagicMock(),
        fetch_items=fetch,
    )
    return scanner, repository


def test_select_categories_intersects_supported_vocabulary():
    picked = select_categories(
        ["science & technology", "Sports", "Health & Wellness", "Science & Technology", "History & Culture",
         "Politics & Society"],
        SUPPORTED,
    )
    assert picked == ["Science & Technology", "Health & Wellness", "History & Culture"]


def test_flash_from_snippet_is_cut_on_a_word():
    item = FeedItem(title="t", link="l", snippet="word " * 100)
    flash = build_flash_from_snippet(item, limit=20)
    assert flash.endswith("...")
    assert len(flash) <= 23


def test_scan_creates_drafts_with_source_attribution():
    feeds = {
        "https://feeds.test/bbc": [
            FeedItem(
                title="Breaking: Rivers recover (WATCH)",
                link="https://bbc.test/rivers",
                snippet="Cleaner water",
                categories=["Environment & Sustainability", "Nature"],
            )
        ],
        "https://feeds.test/reuters": [],
        "https://feeds.test/good": [FeedItem(title="Town plants trees", link="https://good.test/trees")],
    }
    scanner, repository = _scanner(feeds)

    results = scanner.scan_all()

    assert [len(r.created_ids) for r in results] == [1, 0, 1]
    rivers = repository.get(results[0].created_ids[0])
    assert rivers.title == "Rivers recover"
    assert rivers.status is ArticleStatus.DRAFT
    assert rivers.article_type is ArticleType.TRENDING_TOPIC
    assert rivers.categories == ["Environment & Sustainability"]
    assert rivers.source_title == "BBC News"
    assert rivers.region == "Worldwide"
    assert rivers.discovery_method is DiscoveryMethod.RSS
    assert rivers.discovered_at is not None
    trees = repository.get(results[2].created_ids[0])
    assert trees.article_type is ArticleType.POSITIVE_NEWS
    assert trees.region == "USA"


def test_duplicate_links_are_skipped_and_scanning_continues():
    feeds = {
        "https://feeds.test/bbc": [
            FeedItem(title="Seen before", link="https://bbc.test/seen"),
            FeedItem(title="Fresh story", link="https://bbc.test/fresh"),
        ],
        "https://feeds.test/reuters": [],
        "https://feeds.test/good": [],
    }
    scanner, repository = _scanner(feeds)
    first = scanner.scan_source(REGISTRY.all()[0], max_items=1)
    assert len(first.created_ids) == 1

    second = scanner.scan_source(REGISTRY.all()[0], max_items=5)

    assert second.duplicates == 1
    assert len(second.created_ids) == 1
    assert len(repository.list_all()) == 2


def test_one_failing_source_does_not_stop_the_others():
    feeds = {
        "https://feeds.test/bbc": ExternalServiceError("HTTP 500"),
        "https://feeds.test/reuters": [FeedItem(title="Ok", link="https://reuters.test/ok")],
        "https://feeds.test/good": [FeedItem(title="", link="https://good.test/untitled")],
    }
    scanner, _ = _scanner(feeds)

    results = scanner.scan_all()

    assert not results[0].ok and "HTTP 500" in results[0].error
    assert results[1].ok and len(results[1].created_ids) == 1
    assert results[2].ok and results[2].skipped == 1


def test_publish_immediately_bypasses_generation():
    feeds = {"https://feeds.test/bbc": [FeedItem(title="Quick", link="https://bbc.test/q", snippet="Short.")]}
    scanner, repository = _scanner(feeds)

    result = scanner.scan_source(REGISTRY.all()[0], publish_immediately=True)

    article = repository.get(result.created_ids[0])
    assert article.status is ArticleStatus.PUBLISHED
    assert article.flash_content == "Short."
    assert article.published_at is not None


def test_explicit_zero_max_items_is_respected():
    fetch = MagicMock(return_value=[])
    scanner = DiscoveryScanner(
        ArticleRepository(InMemoryDocumentStore()),
        REGISTRY,
        settings=Settings(discovery_max_items=5),
        session=MagicMock(),
        fetch_items=fetch,
    )

    scanner.scan_source(REGISTRY.all()[0], max_items=0)
    scanner.scan_source(REGISTRY.all()[0])

    assert [c.kwargs["max_items"] for c in fetch.call_args_list] == [0, 5]
