"""Article, source and report data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleStatus(str, Enum):
    """Lifecycle status of an article (文章生命周期状态)."""

    DRAFT = "Draft"
    QUEUED = "Queued"
    GENERATION_FAILED = "GenerationFailed"
    AWAITING_EXPERT_REVIEW = "AwaitingExpertReview"
    AWAITING_ADMIN_REVIEW = "AwaitingAdminReview"
    NEEDS_REVISION = "NeedsRevision"
    PUBLISHED = "Published"


class ArticleType(str, Enum):
    TRENDING_TOPIC = "Trending Topic"
    POSITIVE_NEWS = "Positive News"
    RESEARCH_BREAKTHROUGH = "Research Breakthrough"
    MISINFORMATION = "Misinformation"


class DiscoveryMethod(str, Enum):
    MANUAL = "Manual"
    RSS = "RSS"
    SOURCE_TEST = "SourceTest"


# Allowed status transitions; Published is terminal.
ALLOWED_TRANSITIONS: dict[ArticleStatus, frozenset[ArticleStatus]] = {
    ArticleStatus.DRAFT: frozenset({ArticleStatus.QUEUED, ArticleStatus.GENERATION_FAILED}),
    ArticleStatus.QUEUED: frozenset(
        {
            ArticleStatus.PUBLISHED,
            ArticleStatus.AWAITING_EXPERT_REVIEW,
            ArticleStatus.GENERATION_FAILED,
        }
    ),
    ArticleStatus.GENERATION_FAILED: frozenset({ArticleStatus.QUEUED}),
    ArticleStatus.AWAITING_EXPERT_REVIEW: frozenset(
        {ArticleStatus.AWAITING_ADMIN_REVIEW, ArticleStatus.NEEDS_REVISION}
    ),
    ArticleStatus.NEEDS_REVISION: frozenset({ArticleStatus.AWAITING_ADMIN_REVIEW}),
    ArticleStatus.AWAITING_ADMIN_REVIEW: frozenset(
        {ArticleStatus.PUBLISHED, ArticleStatus.NEEDS_REVISION}
    ),
    ArticleStatus.PUBLISHED: frozenset(),
}

# Statuses a worker may leave an article in once processing ends
WORKER_TERMINAL_STATUSES = frozenset(
    {
        ArticleStatus.PUBLISHED,
        ArticleStatus.AWAITING_EXPERT_REVIEW,
        ArticleStatus.GENERATION_FAILED,
    }
)


def can_transition(current: ArticleStatus, target: ArticleStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass
class Article:
    """
    文章实体 (Article entity)
    The central document: classification, content, attribution and workflow state.
    """
    title: str
    article_type: ArticleType
    status: ArticleStatus = ArticleStatus.DRAFT
    id: str | None = None                   # Assigned by the store
    categories: list[str] = field(default_factory=list)
    region: str = ""
    display_title: str | None = None        # Shorter alternate title for long originals
    short_description: str = ""             # Curator/feed context, never shown publicly
    flash_content: str | None = None        # Short public summary (plain text)
    deep_dive_content: str | None = None    # Long-form HTML, unsourced Misinformation only
    image_prompt: str | None = None
    image_url: str | None = None
    source_url: str = ""
    source_title: str = ""
    discovery_method: DiscoveryMethod = DiscoveryMethod.MANUAL
    expert_id: str | None = None
    expert_display_name: str | None = None
    admin_revision_notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    discovered_at: datetime | None = None
    published_at: datetime | None = None

    @property
    def is_sourced(self) -> bool:
        return bool((self.source_url or "").strip())

    def to_document(self) -> dict[str, Any]:
        """Serialize to a store document (camelCase keys, unset optionals omitted)."""
        doc: dict[str, Any] = {
            "title": self.title,
            "articleType": self.article_type.value,
            "status": self.status.value,
            "categories": list(self.categories),
            "region": self.region,
            "shortDescription": self.short_description,
            "sourceUrl": self.source_url,
            "sourceTitle": self.source_title,
            "discoveryMethod": self.discovery_method.value,
            "createdAt": self.created_at,
        }
        optional = {
            "displayTitle": self.display_title,
            "flashContent": self.flash_content,
            "deepDiveContent": self.deep_dive_content,
            "imagePrompt": self.image_prompt,
            "imageUrl": self.image_url,
            "expertId": self.expert_id,
            "expertDisplayName": self.expert_display_name,
            "adminRevisionNotes": self.admin_revision_notes,
            "discoveredAt": self.discovered_at,
            "publishedAt": self.published_at,
        }
        for key, value in optional.items():
            if value is not None:
                doc[key] = value
        return doc

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> Article:
        return cls(
            id=doc_id,
            title=doc.get("title", ""),
            article_type=ArticleType(doc.get("articleType", ArticleType.TRENDING_TOPIC.value)),
            status=ArticleStatus(doc.get("status", ArticleStatus.DRAFT.value)),
            categories=list(doc.get("categories") or []),
            region=doc.get("region", "") or "",
            display_title=doc.get("displayTitle"),
            short_description=doc.get("shortDescription", "") or "",
            flash_content=doc.get("flashContent"),
            deep_dive_content=doc.get("deepDiveContent"),
            image_prompt=doc.get("imagePrompt"),
            image_url=doc.get("imageUrl"),
            source_url=doc.get("sourceUrl", "") or "",
            source_title=doc.get("sourceTitle", "") or "",
            discovery_method=DiscoveryMethod(doc.get("discoveryMethod", DiscoveryMethod.MANUAL.value)),
            expert_id=doc.get("expertId"),
            expert_display_name=doc.get("expertDisplayName"),
            admin_revision_notes=doc.get("adminRevisionNotes"),
            created_at=doc.get("createdAt") or utcnow(),
            discovered_at=doc.get("discoveredAt"),
            published_at=doc.get("publishedAt"),
        )


@dataclass(frozen=True)
class SourceEntry:
    """One allow-listed source in the registry (数据源定义)."""
    domain: str
    feed_url: str
    display_name: str
    pillar: str
    region: str


class ReportStatus(str, Enum):
    RUNNING = "Running"
    COMPLETED = "Completed"


class SourceResultStatus(str, Enum):
    SUCCESS = "Success"
    SUCCESS_DUPLICATE = "Success (Duplicate)"
    FAILURE = "Failure"

    @property
    def is_success(self) -> bool:
        return self is not SourceResultStatus.FAILURE


class SourceTestType(str, Enum):
    FULL = "full"
    SAMPLE = "sample"
    MICRO = "micro"
    BATCHED = "batched"


@dataclass
class SourceTestResult:
    """Outcome of testing a single source."""
    domain: str
    pillar: str
    region: str
    status: SourceResultStatus
    detail: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "pillar": self.pillar,
            "region": self.region,
            "status": self.status.value,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }


@dataclass
class SourceTestReport:
    id: str
    status: ReportStatus
    test_type: SourceTestType
    total_sources: int
    success_count: int = 0
    failure_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> SourceTestReport:
        return cls(
            id=doc_id,
            status=ReportStatus(doc["status"]),
            test_type=SourceTestType(doc["testType"]),
            total_sources=int(doc.get("totalSources", 0)),
            success_count=int(doc.get("successCount", 0)),
            failure_count=int(doc.get("failureCount", 0)),
            created_at=doc.get("createdAt") or utcnow(),
            completed_at=doc.get("completedAt"),
        )


@dataclass
class FeedItem:
    """
    Feed 条目 (Parsed feed item)
    Just the fields discovery needs from a feedparser entry.
    """
    title: str
    link: str
    snippet: str = ""
    categories: list[str] = field(default_factory=list)
    image_url: str | None = None
    published_date: datetime | None = None
