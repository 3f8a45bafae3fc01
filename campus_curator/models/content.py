"""
Content models for the curation system.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse


class ContentStatus:
    """Lifecycle states of a persisted news item."""
    APPROVED = "approved"
    DRAFT = "draft"
    REJECTED = "rejected"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 value into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class RawCandidate:
    """An unfiltered article returned by the search provider."""

    title: str
    description: str
    url: str
    source_name: Optional[str] = None
    source_id: Optional[str] = None
    content: str = ""
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    author: Optional[str] = None

    @classmethod
    def from_api(cls, article: Dict[str, Any]) -> "RawCandidate":
        source = article.get('source') or {}
        return cls(
            title=(article.get('title') or '').strip(),
            description=(article.get('description') or '').strip(),
            url=article.get('url') or '',
            source_name=source.get('name'),
            source_id=source.get('id'),
            content=article.get('content') or '',
            published_at=parse_timestamp(article.get('publishedAt')),
            image_url=article.get('urlToImage'),
            author=article.get('author'),
        )

    @property
    def text(self) -> str:
        """Title, description and content joined for keyword matching."""
        return f"{self.title} {self.description} {self.content}".lower()


@dataclass
class ScoredCandidate:
    """A candidate with the score and category assigned during selection."""

    candidate: RawCandidate
    score: float
    category: str

    def sort_key(self):
        published = self.candidate.published_at
        return (-self.score, -(published.timestamp() if published else 0.0))


@dataclass
class CuratedItem:
    """A news item as persisted in the content store."""

    title: str
    excerpt: str
    body: str
    category: str
    publisher: str
    original_url: str
    content_hash: str
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status: str = ContentStatus.APPROVED
    is_featured: bool = False
    is_trending: bool = False
    is_top3: bool = False
    likes: int = 0
    saves: int = 0
    shares: int = 0
    comments: int = 0
    views: int = 0
    importance_score: float = 0.0
    id: Optional[int] = None

    def to_summary(self, summary_id: int) -> Dict[str, Any]:
        """Compact form sent to the ranking model."""
        published = self.published_at or self.created_at
        return {
            'id': summary_id,
            'title': self.title,
            'description': self.excerpt,
            'source': self.publisher,
            'category': self.category,
            'published': published.strftime('%Y-%m-%d') if published else 'unknown',
        }


@dataclass
class EngagementSnapshot:
    """Read-only counters of one item at reranking time."""

    item_id: int
    likes: int = 0
    saves: int = 0
    shares: int = 0
    comments: int = 0
    created_at: Optional[datetime] = None

    def engagement_score(self, weights: Dict[str, float]) -> float:
        return (
            self.likes * weights.get('likes', 0.0)
            + self.saves * weights.get('saves', 0.0)
            + self.shares * weights.get('shares', 0.0)
            + self.comments * weights.get('comments', 0.0)
        )


@dataclass
class FeedPage:
    """One cursor page of a social feed."""

    items: List[Dict[str, Any]]
    has_more: bool
    next_cursor: Optional[str]
    algorithm: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': self.items,
            'pagination': {
                'hasMore': self.has_more,
                'nextCursor': self.next_cursor,
                'algorithm': self.algorithm,
            },
            'metadata': self.metadata,
        }
