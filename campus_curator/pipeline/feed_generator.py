"""
Personalized social feeds with cursor pagination.

A page holds posts strictly older than the cursor; the next cursor is the
``created_at`` of the last post returned. ``hasMore`` is true when the page
came back full.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from campus_curator.models.content import FeedPage, parse_timestamp
from campus_curator.models.settings import CurationSettings
from campus_curator.services.content_store import ContentStore
from campus_curator.services.ttl_cache import TTLCache

FEED_ALGORITHMS = ('chronological', 'engagement', 'mixed')
POST_TARGET_TYPE = 'social_post'


class FeedAccessError(Exception):
    """The user may not read the requested feed."""
    pass


class FeedGenerator:
    """Builds, enriches and caches social feeds."""

    def __init__(
        self,
        store: ContentStore,
        cache: Optional[TTLCache] = None,
        settings: Optional[CurationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.cache = cache or TTLCache()
        self.settings = settings or CurationSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    async def generate_personalized_feed(
        self,
        user_id: str,
        algorithm: str = 'chronological',
        limit: int = 10,
        cursor: Optional[str] = None,
        include_groups: bool = True,
        include_following: bool = True
    ) -> Dict[str, Any]:
        """
        Raises:
            ValueError: unknown algorithm, bad limit or unparseable cursor
        """
        if algorithm not in FEED_ALGORITHMS:
            raise ValueError(f"Unknown feed algorithm '{algorithm}'. Expected one of {FEED_ALGORITHMS}")
        if limit <= 0:
            raise ValueError("limit must be positive")
        before = self._parse_cursor(cursor)

        async def compute() -> Dict[str, Any]:
            following = await self.store.get_following_ids(user_id) if include_following else []
            groups = await self.store.get_user_group_ids(user_id) if include_groups else []

            query: Dict[str, Any] = {
                'user_id': user_id,
                'following_ids': following,
                'group_ids': groups,
                'limit': limit,
                'before': before,
            }
            if algorithm == 'engagement':
                query['ordering'] = 'engagement'
            else:
                query['ordering'] = 'recency'
            if algorithm == 'mixed':
                query['engagement_weights'] = self.settings.mixed_weights
                query['min_engagement'] = self.settings.mixed_min_engagement

            posts = await self.store.query_feed_posts(**query)
            items = await self._enrich(user_id, posts)
            page = self._paginate(items, limit, algorithm, {
                'userId': user_id,
                'followingCount': len(following),
                'groupCount': len(groups),
                'generatedAt': self._clock().isoformat(),
            })
            self.logger.debug(f"Feed for {user_id} ({algorithm}): {len(items)} posts")
            return page.to_dict()

        key = TTLCache.feed_key(user_id, algorithm, cursor, limit, include_groups, include_following)
        return await self.cache.get_or_set(key, compute, self.settings.feed_cache_ttl)

    async def get_trending_posts(
        self,
        timeframe_hours: Optional[int] = None,
        limit: Optional[int] = None,
        min_engagement: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        timeframe_hours = timeframe_hours or self.settings.trending_timeframe_hours
        limit = limit or self.settings.trending_limit
        threshold = self.settings.trending_min_engagement if min_engagement is None else min_engagement

        async def compute() -> List[Dict[str, Any]]:
            since = self._clock() - timedelta(hours=timeframe_hours)
            posts = await self.store.query_trending_posts(
                since, self.settings.trending_weights, threshold, limit
            )
            return [self._with_counts(p) for p in posts]

        if threshold != self.settings.trending_min_engagement:
            # Cached entries hold the configured threshold only
            return await compute()
        key = TTLCache.trending_key(timeframe_hours, limit)
        return await self.cache.get_or_set(key, compute, self.settings.trending_cache_ttl)

    async def get_group_feed(
        self,
        group_id: str,
        user_id: str,
        limit: int = 20,
        cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Posts of one group. Only active members may read it.

        Pinned posts lead the first page and are left out of cursor pages,
        so the ``created_at`` cursor only ever walks the unpinned posts.
        """
        if not await self.store.is_active_member(group_id, user_id):
            raise FeedAccessError(f"User {user_id} is not an active member of group {group_id}")

        posts = await self.store.query_group_posts(group_id, limit, self._parse_cursor(cursor))
        items = await self._enrich(user_id, posts)
        page = self._paginate(items, limit, 'group', {'groupId': group_id})
        if items and all(i.get('is_pinned') for i in items):
            # A page of pinned posts only; unpinned ones start from now
            page.next_cursor = self._clock().isoformat()
        return page.to_dict()

    def invalidate_user_feed(self, user_id: str) -> int:
        return self.cache.invalidate_pattern(f"feed:{user_id}:")

    async def _enrich(self, user_id: str, posts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach per-user interaction flags using one store query for the whole page."""
        if not posts:
            return []
        actions = await self.store.get_user_interactions(
            user_id, POST_TARGET_TYPE, [p['id'] for p in posts]
        )
        enriched = []
        for post in posts:
            mine = actions.get(post['id'], set())
            item = self._with_counts(post)
            item['user_interactions'] = {
                'liked': 'like' in mine,
                'saved': 'save' in mine,
                'shared': 'share' in mine,
            }
            enriched.append(item)
        return enriched

    @staticmethod
    def _with_counts(post: Dict[str, Any]) -> Dict[str, Any]:
        item = dict(post)
        item['like_count'] = post.get('likes', 0)
        item['comment_count'] = post.get('comments', 0)
        item['share_count'] = post.get('shares', 0)
        item['save_count'] = post.get('saves', 0)
        return item

    @staticmethod
    def _paginate(items: List[Dict[str, Any]], limit: int, algorithm: str, metadata: Dict[str, Any]) -> FeedPage:
        return FeedPage(
            items=items,
            has_more=len(items) == limit,
            next_cursor=items[-1]['created_at'] if items else None,
            algorithm=algorithm,
            metadata={**metadata, 'count': len(items)},
        )

    @staticmethod
    def _parse_cursor(cursor: Optional[str]) -> Optional[datetime]:
        if not cursor:
            return None
        parsed = parse_timestamp(cursor)
        if parsed is None:
            raise ValueError(f"Invalid feed cursor: {cursor!r}")
        return parsed
