"""
Prompt and schema variants for content generation.

Two closed variants, chosen by article type:
- SummaryPrompt: flash summary + image prompt (auto-publishable types,
  and Misinformation items that cite a source)
- DeepDivePrompt: flash + long-form fact-check HTML (unsourced Misinformation)
Each parses into its own typed content record.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Union

from lumina.errors import SchemaViolation
from lumina.models import Article, ArticleType

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You write for Lumina, a calm, trustworthy news digest. "
    "Be factual, neutral and concise; never sensationalize. "
    "Only state what the provided context or reputable sources support, and say so when "
    "something is unverified. Do not invent quotes, numbers or sources. "
    "Write in plain English for a general audience. "
    "Return only the JSON object requested, with no extra text."
)

POSITIVITY_SYSTEM_INSTRUCTION = (
    "You are a strict editor for a positive-news section. "
    "Reply with only YES or NO."
)

_PERSONAS: dict[ArticleType, str] = {
    ArticleType.TRENDING_TOPIC: (
        "You are a neutral, objective journalist. Explain the trending topic in a balanced, "
        "factual and easy-to-understand way."
    ),
    ArticleType.POSITIVE_NEWS: (
        "You are an optimistic but accurate storyteller. Highlight the hopeful outcome and the "
        "people behind it without overstating the facts."
    ),
    ArticleType.RESEARCH_BREAKTHROUGH: (
        "You are a science communicator. Explain what was found, why it matters and what the "
        "limitations are, without hype."
    ),
    ArticleType.MISINFORMATION: (
        "You are a careful fact-checker. Explain the claim and what the evidence actually shows."
    ),
}

_RE_VERDICT_HEADING = re.compile(r"<h[1-4][^>]*>[^<]*verdict", re.IGNORECASE)
_RE_SECTION_HEADINGS = {
    "what was claimed": re.compile(r"<h[1-4][^>]*>[^<]*claimed", re.IGNORECASE),
    "analysis": re.compile(r"<h[1-4][^>]*>[^<]*analysis", re.IGNORECASE),
    "context": re.compile(r"<h[1-4][^>]*>[^<]*context", re.IGNORECASE),
}


def _schema(properties: dict[str, str]) -> dict:
    return {
        "type": "object",
        "properties": {name: {"type": "string", "description": desc} for name, desc in properties.items()},
        "required": list(properties),
        "additionalProperties": False,
    }


@dataclass(frozen=True)
class SummaryContent:
    flash_content: str
    image_prompt: str
    display_title: str | None = None
    deep_dive_content: None = None


@dataclass(frozen=True)
class DeepDiveContent:
    flash_content: str
    deep_dive_content: str
    image_prompt: str
    display_title: str | None = None


@dataclass(frozen=True)
class SummaryPrompt:
    prompt: str
    schema: dict
    wants_display_title: bool
    name: str = "lumina_summary"

    def parse(self, data: dict) -> SummaryContent:
        return SummaryContent(
            flash_content=_required_text(data, "flashContent"),
            image_prompt=_required_text(data, "imagePrompt"),
            display_title=_optional_text(data, "displayTitle") if self.wants_display_title else None,
        )


@dataclass(frozen=True)
class DeepDivePrompt:
    prompt: str
    schema: dict
    wants_display_title: bool
    name: str = "lumina_deep_dive"

    def parse(self, data: dict) -> DeepDiveContent:
        deep_dive = _required_text(data, "deepDiveContent")
        if not _RE_VERDICT_HEADING.search(deep_dive):
            raise SchemaViolation("deepDiveContent is missing the verdict heading")
        missing = [name for name, pattern in _RE_SECTION_HEADINGS.items() if not pattern.search(deep_dive)]
        if missing:
            logger.warning("[GENERATE] Deep dive missing sections: %s", ", ".join(missing))
        return DeepDiveContent(
            flash_content=_required_text(data, "flashContent"),
            deep_dive_content=deep_dive,
            image_prompt=_required_text(data, "imagePrompt"),
            display_title=_optional_text(data, "displayTitle") if self.wants_display_title else None,
        )


PromptVariant = Union[SummaryPrompt, DeepDivePrompt]
GeneratedContent = Union[SummaryContent, DeepDiveContent]


def _required_text(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SchemaViolation(f"Model response is missing required field '{key}'")
    return value.strip()


def _optional_text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _context_block(article: Article, title: str) -> str:
    lines = [f'Topic: "{title}"']
    if article.categories:
        lines.append(f"Categories: {', '.join(article.categories)}")
    if article.region:
        lines.append(f"Region: {article.region}")
    if article.source_title or article.source_url:
        lines.append(f"Source: {article.source_title} {article.source_url}".strip())
    if article.short_description:
        lines.append(f'Context provided by the curator or feed: "{article.short_description}"')
    return "\n".join(lines)


def select_prompt(article: Article, title: str, display_title_threshold: int = 70) -> PromptVariant:
    """Pick the prompt/schema variant for an article (explicit switch on type)."""
    wants_display_title = len(title) > display_title_threshold
    persona = _PERSONAS[article.article_type]
    context = _context_block(article, title)

    fields = {
        "flashContent": "Plain-text summary of 60-100 words. No markdown.",
        "imagePrompt": "Vivid, non-controversial prompt for an illustration of the topic. Not a URL.",
    }
    display_rule = ""
    if wants_display_title:
        fields["displayTitle"] = f"Shorter headline, at most {display_title_threshold} characters."
        display_rule = (
            f"\n- displayTitle: the title is long; suggest a faithful headline of at most "
            f"{display_title_threshold} characters."
        )

    article_type = article.article_type
    if article_type is ArticleType.MISINFORMATION and not article.is_sourced:
        fields = {
            "flashContent": fields["flashContent"],
            "deepDiveContent": "HTML fact-check with the four required sections.",
            **{k: v for k, v in fields.items() if k != "flashContent"},
        }
        prompt = (
            f"{persona}\n\n{context}\n\n"
            "Write a fact-check of this claim.\n"
            "- flashContent: 60-100 words stating what was claimed and what the evidence shows.\n"
            "- deepDiveContent: HTML using only <h2>, <h3>, <p>, <ul>, <li>, <strong>, with exactly "
            "these sections in order: <h2>Verdict: ...</h2> (one of True, Mostly True, Misleading, "
            "False, Unproven), <h3>What Was Claimed</h3>, <h3>Point-by-Point Analysis</h3>, "
            "<h3>Context</h3>.\n"
            "- imagePrompt: a neutral symbolic illustration, no real people."
            f"{display_rule}"
        )
        return DeepDivePrompt(prompt=prompt, schema=_schema(fields), wants_display_title=wants_display_title)

    if article_type in (
        ArticleType.TRENDING_TOPIC,
        ArticleType.POSITIVE_NEWS,
        ArticleType.RESEARCH_BREAKTHROUGH,
        ArticleType.MISINFORMATION,
    ):
        tone = {
            ArticleType.POSITIVE_NEWS: "Make the summary engaging and uplifting.",
            ArticleType.RESEARCH_BREAKTHROUGH: "Mention who did the research and one limitation.",
            ArticleType.MISINFORMATION: "Summarize the fact-check's conclusion and cite the source.",
        }.get(article_type, "Keep it balanced and factual.")
        prompt = (
            f"{persona}\n\n{context}\n\n"
            f"- flashContent: 60-100 words. {tone}\n"
            "- imagePrompt: a vivid, symbolic illustration of the topic."
            f"{display_rule}"
        )
        return SummaryPrompt(prompt=prompt, schema=_schema(fields), wants_display_title=wants_display_title)

    raise SchemaViolation(f"No prompt variant for article type '{article_type}'")


def positivity_prompt(title: str, description: str = "") -> str:
    context = f"\nContext: {description[:400]}" if description else ""
    return (
        f'Headline: "{title}"{context}\n\n'
        "Is this story genuinely positive or uplifting for a general reader "
        "(progress, kindness, recovery, discovery), not merely neutral, "
        "tragic, or positive only for a narrow interest?\n"
        "Reply with only YES or NO."
    )
