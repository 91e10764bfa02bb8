"""
正向新闻校验 (Positive News Verification)
Items discovered through positive-news feeds are re-checked before publishing;
anything the model does not confirm is downgraded to a Trending Topic.
"""

import logging

from lumina.analyzers.llm_client import LLMClient
from lumina.analyzers.prompts import POSITIVITY_SYSTEM_INSTRUCTION, positivity_prompt
from lumina.errors import ConfigurationError
from lumina.models import Article, ArticleType

logger = logging.getLogger(__name__)

ON_FAILURE_DOWNGRADE = "downgrade"
ON_FAILURE_KEEP = "keep"


def check_positivity(client: LLMClient, title: str, description: str = "") -> bool | None:
    """
    使用 LLM 判断是否为正向新闻.
    Returns True/False, or None when the check failed or the answer was unclear.
    ConfigurationError propagates (missing credentials is not a classification failure).
    """
    try:
        verdict = client.ask_yes_no(POSITIVITY_SYSTEM_INSTRUCTION, positivity_prompt(title, description))
    except ConfigurationError:
        raise
    except Exception as e:
        logger.warning("[POSITIVITY] Check failed for '%s': %s", title[:60], e)
        return None
    if verdict is None:
        logger.warning("[POSITIVITY] Unclear answer for '%s'", title[:60])
    return verdict


def resolve_article_type(
    client: LLMClient,
    article: Article,
    title: str,
    on_failure: str = ON_FAILURE_DOWNGRADE,
) -> ArticleType:
    """
    Final article type after the positivity check. Only Positive News is
    re-checked; a NO always downgrades, a failed check follows ``on_failure``.
    """
    if article.article_type is not ArticleType.POSITIVE_NEWS:
        return article.article_type

    verdict = check_positivity(client, title, article.short_description)
    if verdict is True:
        return ArticleType.POSITIVE_NEWS
    if verdict is None and on_failure == ON_FAILURE_KEEP:
        logger.info("[POSITIVITY] Keeping Positive News after failed check: %s", title[:60])
        return ArticleType.POSITIVE_NEWS

    logger.info("[POSITIVITY] Downgrading to Trending Topic: %s", title[:60])
    return ArticleType.TRENDING_TOPIC
