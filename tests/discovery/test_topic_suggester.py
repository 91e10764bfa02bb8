from unittest.mock import MagicMock

import pytest

from config import Settings
from lumina.discovery.topic_suggester import MAX_SUGGESTIONS, TopicSuggester
from lumina.errors import ConfigurationError, SchemaViolation
from lumina.models import ArticleType
from lumina.sources.registry import SourceRegistry
from lumina.storage.articles import SUGGESTED_TOPICS
from lumina.storage.document_store import InMemoryDocumentStore

REGISTRY = SourceRegistry.from_dict(
    {
        "sources": {
            "trending_topics": {
                "USA": {"allowlist": [{"domain": "npr.org", "rssUrl": "https://feeds.test/npr"}]},
                "Worldwide": {"allowlist": [{"domain": "bbc.co.uk", "rssUrl": "https://feeds.test/bbc"}]},
            }
        }
    }
)


def _suggestion(title, **fields):
    values = dict(title=title, shortDescription="Why it matters", categories=[], sourceUrl="", sourceTitle="")
    values.update(fields)
    return values


def _suggester(llm, store=None):
    store = store if store is not None else InMemoryDocumentStore()
    return TopicSuggester(store, llm, REGISTRY, settings=Settings()), store


def test_suggestions_are_normalized_and_deduplicated():
    llm = MagicMock()
    llm.generate_json.return_value = {
        "suggestions": [
            _suggestion("Breaking: Rail strike ends", categories=["Business & Finance", "Sport"]),
            _suggestion("Rail strike ends"),
            _suggestion("   "),
            _suggestion("Heatwave warning", sourceUrl=" https://npr.test/heat ", sourceTitle="NPR"),
        ]
    }
    suggester, store = _suggester(llm)

    result = suggester.suggest(ArticleType.TRENDING_TOPIC, "USA")

    assert (result.added, result.skipped) == (2, 2)
    docs = [doc for _, doc in store.query(SUGGESTED_TOPICS)]
    assert [d["title"] for d in docs] == ["Rail strike ends", "Heatwave warning"]
    assert docs[0]["categories"] == ["Business & Finance"]
    assert docs[1]["sourceUrl"] == "https://npr.test/heat"
    assert all(d["articleType"] == "Trending Topic" and d["region"] == "USA" for d in docs)
    assert llm.generate_json.call_args.kwargs["search_domains"] == ["npr.org"]


def test_existing_suggestions_are_not_repeated():
    llm = MagicMock()
    llm.generate_json.return_value = {"suggestions": [_suggestion("Rail strike ends")]}
    suggester, store = _suggester(llm)

    suggester.suggest(ArticleType.TRENDING_TOPIC, "USA")
    again = suggester.suggest(ArticleType.TRENDING_TOPIC, "USA")

    assert again.added == 0
    assert len(store.query(SUGGESTED_TOPICS)) == 1


def test_suggestions_are_capped():
    llm = MagicMock()
    llm.generate_json.return_value = {"suggestions": [_suggestion(f"Topic {i}") for i in range(8)]}
    suggester, store = _suggester(llm)
    suggester.suggest(ArticleType.TRENDING_TOPIC, "Worldwide")
    assert len(store.query(SUGGESTED_TOPICS)) == MAX_SUGGESTIONS


def test_run_isolates_failing_pairs():
    llm = MagicMock()
    llm.generate_json.side_effect = [SchemaViolation("no json"), {"suggestions": [_suggestion("Ok")]}]
    suggester, _ = _suggester(llm)

    results = suggester.run(article_types=(ArticleType.TRENDING_TOPIC,), regions=("USA", "Worldwide"))

    assert results[0].error == "no json"
    assert results[1].added == 1


def test_run_stops_on_configuration_error():
    llm = MagicMock()
    llm.generate_json.side_effect = ConfigurationError("no key")
    suggester, _ = _suggester(llm)
    with pytest.raises(ConfigurationError):
        suggester.run()
