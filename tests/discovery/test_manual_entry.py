import pytest

from config import Settings
from lumina.discovery.manual_entry import create_manual_article, parse_article_type
from lumina.errors import ValidationFailure
from lumina.models import ArticleStatus, ArticleType, DiscoveryMethod
from lumina.storage.articles import ArticleRepository
from lumina.storage.document_store import InMemoryDocumentStore


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Misinformation", ArticleType.MISINFORMATION),
        ("positive news", ArticleType.POSITIVE_NEWS),
        ("RESEARCH_BREAKTHROUGH", ArticleType.RESEARCH_BREAKTHROUGH),
        (ArticleType.TRENDING_TOPIC, ArticleType.TRENDING_TOPIC),
    ],
)
def test_parse_article_type(value, expected):
    assert parse_article_type(value) is expected


def test_unknown_article_type():
    with pytest.raises(ValidationFailure):
        parse_article_type("Opinion")


def test_manual_article_is_a_normalized_draft():
    repository = ArticleRepository(InMemoryDocumentStore())
    article_id = create_manual_article(
        repository,
        title="Fact check: Viral photo of flooded airport",
        article_type="Misinformation",
        categories=["Digital & Media Literacy", "Gossip"],
        short_description="  Shared 40k times  ",
        settings=Settings(),
    )

    article = repository.get(article_id)
    assert article.title == "Viral photo of flooded airport"
    assert article.status is ArticleStatus.DRAFT
    assert article.discovery_method is DiscoveryMethod.MANUAL
    assert article.categories == ["Digital & Media Literacy"]
    assert article.short_description == "Shared 40k times"
    assert not article.is_sourced


def test_manual_article_requires_a_title():
    repository = ArticleRepository(InMemoryDocumentStore())
    with pytest.raises(ValidationFailure):
        create_manual_article(repository, title="   ", article_type="Trending Topic", settings=Settings())


def test_manual_article_with_taken_source_url():
    repository = ArticleRepository(InMemoryDocumentStore())
    kwargs = dict(article_type="Trending Topic", source_url="https://news.test/1", settings=Settings())
    assert create_manual_article(repository, title="First", **kwargs) is not None
    assert create_manual_article(repository, title="Second", **kwargs) is None
