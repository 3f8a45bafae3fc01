"""
Content category adapters.

Each curated category (news, events, social posts) is a small adapter that
knows its table, which status counts as live, how to summarize an item for
the ranking model and which counter an engagement action touches. The
adapter is chosen once from ``CATEGORY_REGISTRY``.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from campus_curator.models.content import ContentStatus
from campus_curator.services.content_store import ContentStore


ENGAGEMENT_ACTIONS = ('like', 'save', 'share', 'comment', 'view')


@dataclass(frozen=True)
class ContentCategory:
    """Per-category persistence and ranking hooks."""
    name: str
    label: str
    table: str
    live_status: str
    title_field: str = 'title'
    description_field: str = 'description'

    async def fetch_candidates(self, store: ContentStore, limit: int) -> List[Dict[str, Any]]:
        """Most recent live items, newest first."""
        return await store.fetch_recent_rows(self.table, self.live_status, limit)

    async def persist_rankings(
        self,
        store: ContentStore,
        top_ids: Sequence[int],
        featured_id: Optional[int]
    ) -> None:
        await store.apply_category_rankings(self.table, top_ids, featured_id)

    async def homepage_items(self, store: ContentStore, limit: int) -> List[Dict[str, Any]]:
        return await store.fetch_flagged_rows(self.table, 'is_top3', self.live_status, limit)

    async def featured_item(self, store: ContentStore) -> Optional[Dict[str, Any]]:
        return await store.fetch_most_liked_row(self.table, self.live_status)

    async def record_engagement(self, store: ContentStore, item_id: int, action: str, delta: int = 1) -> None:
        await store.increment_counter(self.table, item_id, self.counter_field(action), delta)

    @staticmethod
    def counter_field(action: str) -> str:
        """Counter column touched by an engagement action."""
        if action not in ENGAGEMENT_ACTIONS:
            raise ValueError(f"Unknown engagement action: {action}")
        return f"{action}s"

    def to_summary(self, item: Dict[str, Any], summary_id: int) -> Dict[str, Any]:
        created = item.get('created_at') or ''
        return {
            'id': summary_id,
            'title': item.get(self.title_field) or '',
            'description': (item.get(self.description_field) or '')[:280],
            'category': item.get('category') or self.label,
            'published': created[:10],
            'engagement': (
                f"{item.get('likes', 0)} likes, {item.get('comments', 0)} comments, "
                f"{item.get('shares', 0)} shares, {item.get('saves', 0)} saves"
            ),
        }

    @staticmethod
    def rank_by_engagement(items: List[Dict[str, Any]], weights: Dict[str, float]) -> List[Dict[str, Any]]:
        """Engagement fallback ordering: weighted score, then newest first."""
        newest_first = sorted(items, key=lambda i: (i.get('created_at') or '', i.get('id') or 0), reverse=True)
        return sorted(
            newest_first,
            key=lambda i: sum(i.get(counter, 0) * weight for counter, weight in weights.items()),
            reverse=True,
        )


CATEGORY_REGISTRY: Dict[str, ContentCategory] = {
    'news': ContentCategory(
        name='news',
        label='News',
        table='news_items',
        live_status=ContentStatus.APPROVED,
        description_field='excerpt',
    ),
    'events': ContentCategory(
        name='events',
        label='Events',
        table='events',
        live_status='published',
    ),
    'social': ContentCategory(
        name='social',
        label='Social',
        table='social_posts',
        live_status='active',
        description_field='body',
    ),
}


def get_category(name: str) -> ContentCategory:
    try:
        return CATEGORY_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown content category: {name}") from None
