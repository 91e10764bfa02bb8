import pytest

from lumina.errors import ValidationFailure
from lumina.models import ArticleType
from lumina.sources.registry import (
    SourceRegistry,
    article_type_for_pillar,
    pillar_for_article_type,
)

RAW = {
    "version": 3,
    "sources": {
        "trending_topics": {
            "notes": "wires",
            "Worldwide": {
                "allowlist": [
                    {"domain": "bbc.co.uk", "rssUrl": "https://feeds.test/bbc", "displayName": "BBC"},
                    {"domain": "reuters.com", "rssUrl": "https://feeds.test/reuters"},
                ]
            },
            "USA": {"allowlist": [{"domain": "npr.org", "rssUrl": "https://feeds.test/npr"}]},
        },
        "fact_checks": {
            "Worldwide": {
                "allowlist": [
                    {"domain": "afp.com", "rssUrl": ""},
                    {"domain": "fullfact.org", "rssUrl": "https://feeds.test/fullfact"},
                    {"rssUrl": "https://feeds.test/nodomain"},
                ]
            }
        },
    },
}


def test_pillar_mapping_is_one_to_one():
    for article_type in ArticleType:
        assert article_type_for_pillar(pillar_for_article_type(article_type)) is article_type


def test_unknown_pillar():
    with pytest.raises(ValidationFailure):
        article_type_for_pillar("horoscopes")


def test_from_dict_skips_notes_and_entries_without_domain():
    registry = SourceRegistry.from_dict(RAW)
    assert len(registry) == 5
    assert [e.domain for e in registry.with_feeds()] == ["bbc.co.uk", "reuters.com", "npr.org", "fullfact.org"]
    reuters = registry.all()[1]
    assert reuters.display_name == "reuters.com"
    assert (reuters.pillar, reuters.region) == ("trending_topics", "Worldwide")


def test_domains_for_pillar():
    registry = SourceRegistry.from_dict(RAW)
    assert registry.domains_for_pillar("fact_checks") == ["afp.com", "fullfact.org"]
    assert registry.domains_for_pillar("trending_topics", "USA") == ["npr.org"]


def test_sample_one_per_bucket():
    sample = SourceRegistry.from_dict(RAW).sample_one_per_bucket()
    assert [e.domain for e in sample] == ["bbc.co.uk", "npr.org", "fullfact.org"]


def test_micro_set():
    micro = SourceRegistry.from_dict(RAW).micro_set()
    assert [e.domain for e in micro] == ["bbc.co.uk", "fullfact.org"]


def test_bundled_registry_loads():
    registry = SourceRegistry.load()
    assert len(registry) > 0
    pillars = {entry.pillar for entry in registry}
    assert pillars == {"trending_topics", "positive_news", "research_breakthroughs", "fact_checks"}
    assert len(registry.micro_set()) == 4
