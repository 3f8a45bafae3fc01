"""
SQLite-backed content store for curated news, events and social posts.

Every operation opens its own aiosqlite connection; SQLite serializes writers.
Timestamps are stored as fixed-width UTC strings so that lexical order equals
time order.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import aiosqlite

from campus_curator.models.content import (
    ContentStatus,
    CuratedItem,
    EngagementSnapshot,
    parse_timestamp,
)


RANKABLE_TABLES = ('news_items', 'events', 'social_posts')
COUNTER_FIELDS = ('likes', 'saves', 'shares', 'comments', 'views')
BOOLEAN_COLUMNS = ('is_featured', 'is_trending', 'is_top3', 'is_pinned')

FEED_ORDERINGS = {
    'recency': 'created_at DESC, id DESC',
    'engagement': 'likes DESC, comments DESC, created_at DESC, id DESC',
    'pinned': 'is_pinned DESC, created_at DESC, id DESC',
    'trending': 'likes DESC, comments DESC, created_at DESC, id DESC',
}

# Keeps IN (...) lists well under SQLite's host parameter limit
_MAX_IN_PARAMS = 500

_NEWS_COLUMNS = (
    'title', 'excerpt', 'body', 'category', 'image_url', 'publisher', 'original_url',
    'content_hash', 'published_at', 'created_at', 'status', 'is_featured', 'is_trending',
    'is_top3', 'likes', 'saves', 'shares', 'comments', 'views', 'importance_score',
)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Render an aware datetime in the store's sortable UTC format."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


class ContentStoreError(Exception):
    pass


class ContentStore:
    """
    Narrow async persistence API used by the curation pipeline and feeds.

    Call ``await initialize_db()`` once after constructing.
    """

    def __init__(self, db_path: str = "data/campus_curator.db"):
        self.db_path = db_path
        self.logger = logging.getLogger(__name__)

    async def initialize_db(self) -> None:
        """Create tables and indexes."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS news_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    excerpt TEXT,
                    body TEXT,
                    category TEXT,
                    image_url TEXT,
                    publisher TEXT,
                    original_url TEXT,
                    content_hash TEXT NOT NULL,
                    published_at TEXT,
                    created_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'approved',
                    is_featured INTEGER DEFAULT 0,
                    is_trending INTEGER DEFAULT 0,
                    is_top3 INTEGER DEFAULT 0,
                    likes INTEGER DEFAULT 0,
                    saves INTEGER DEFAULT 0,
                    shares INTEGER DEFAULT 0,
                    comments INTEGER DEFAULT 0,
                    views INTEGER DEFAULT 0,
                    importance_score REAL DEFAULT 0
                );
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    category TEXT,
                    image_url TEXT,
                    location TEXT,
                    start_date TEXT,
                    status TEXT NOT NULL DEFAULT 'published',
                    created_at TEXT NOT NULL,
                    is_top3 INTEGER DEFAULT 0,
                    is_featured INTEGER DEFAULT 0,
                    likes INTEGER DEFAULT 0,
                    saves INTEGER DEFAULT 0,
                    shares INTEGER DEFAULT 0,
                    comments INTEGER DEFAULT 0,
                    views INTEGER DEFAULT 0
                );
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS social_posts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    author_id TEXT NOT NULL,
                    group_id TEXT,
                    title TEXT,
                    body TEXT,
                    visibility TEXT NOT NULL DEFAULT 'public',
                    status TEXT NOT NULL DEFAULT 'active',
                    is_pinned INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    is_top3 INTEGER DEFAULT 0,
                    is_featured INTEGER DEFAULT 0,
                    likes INTEGER DEFAULT 0,
                    saves INTEGER DEFAULT 0,
                    shares INTEGER DEFAULT 0,
                    comments INTEGER DEFAULT 0,
                    views INTEGER DEFAULT 0
                );
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS follows (
                    follower_id TEXT NOT NULL,
                    following_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'accepted',
                    PRIMARY KEY (follower_id, following_id)
                );
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS group_memberships (
                    group_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    PRIMARY KEY (group_id, user_id)
                );
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS interactions (
                    user_id TEXT NOT NULL,
                    target_type TEXT NOT NULL,
                    target_id INTEGER NOT NULL,
                    action TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, target_type, target_id, action)
                );
                """
            )

            await db.execute("CREATE INDEX IF NOT EXISTS idx_news_hash ON news_items(content_hash);")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_news_status_created ON news_items(status, created_at);")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_events_created ON events(status, created_at);")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_posts_created ON social_posts(status, created_at);")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_posts_author ON social_posts(author_id);")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_posts_group ON social_posts(group_id);")
            await db.commit()

    # ------------------------------------------------------------------
    # News items
    # ------------------------------------------------------------------

    async def get_existing_hashes(self, hashes: Iterable[str]) -> Set[str]:
        """Return the subset of ``hashes`` already persisted."""
        wanted = list(dict.fromkeys(h for h in hashes if h))
        if not wanted:
            return set()
        found: Set[str] = set()
        async with aiosqlite.connect(self.db_path) as db:
            for start in range(0, len(wanted), _MAX_IN_PARAMS):
                chunk = wanted[start:start + _MAX_IN_PARAMS]
                placeholders = ','.join('?' for _ in chunk)
                async with db.execute(
                    f"SELECT DISTINCT content_hash FROM news_items WHERE content_hash IN ({placeholders})",
                    chunk,
                ) as cur:
                    rows = await cur.fetchall()
                found.update(r[0] for r in rows)
        return found

    async def insert_news_items(self, items: Sequence[CuratedItem]) -> List[CuratedItem]:
        """
        Insert all items in a single transaction.

        Either every item is written or none is; the caller decides how to
        recover from a failed batch.
        """
        if not items:
            return []
        placeholders = ','.join('?' for _ in _NEWS_COLUMNS)
        sql = f"INSERT INTO news_items ({','.join(_NEWS_COLUMNS)}) VALUES ({placeholders})"
        async with aiosqlite.connect(self.db_path) as db:
            ids: List[int] = []
            for item in items:
                cur = await db.execute(sql, self._news_params(item))
                ids.append(cur.lastrowid)
            await db.commit()
        for item, row_id in zip(items, ids):
            item.id = row_id
        return list(items)

    async def insert_news_item(self, item: CuratedItem) -> CuratedItem:
        placeholders = ','.join('?' for _ in _NEWS_COLUMNS)
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute(
                f"INSERT INTO news_items ({','.join(_NEWS_COLUMNS)}) VALUES ({placeholders})",
                self._news_params(item),
            )
            await db.commit()
            item.id = cur.lastrowid
        return item

    async def get_news_item(self, item_id: int) -> Optional[CuratedItem]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM news_items WHERE id = ?", (item_id,)) as cur:
                row = await cur.fetchone()
        return self._row_to_news_item(row) if row else None

    async def list_news_items(self, status: Optional[str] = None) -> List[CuratedItem]:
        sql = "SELECT * FROM news_items"
        params: List[Any] = []
        if status:
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, id DESC"
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [self._row_to_news_item(r) for r in rows]

    async def find_engaged_news(
        self,
        since: datetime,
        exclude_hashes: Iterable[str],
        limit: int,
        min_views: int = 10
    ) -> List[CuratedItem]:
        """Approved items since ``since`` that readers interacted with, best first."""
        where, params = self._news_window_clause(since, None, exclude_hashes)
        where += " AND (likes > 0 OR saves > 0 OR views > ?)"
        params.append(min_views)
        sql = (
            f"SELECT * FROM news_items WHERE {where} "
            "ORDER BY likes DESC, saves DESC, views DESC, created_at DESC, id DESC LIMIT ?"
        )
        params.append(limit)
        return await self._fetch_news(sql, params)

    async def find_recent_news(
        self,
        since: datetime,
        exclude_hashes: Iterable[str],
        limit: int,
        until: Optional[datetime] = None
    ) -> List[CuratedItem]:
        """Approved items created in [since, until), newest first."""
        where, params = self._news_window_clause(since, until, exclude_hashes)
        sql = f"SELECT * FROM news_items WHERE {where} ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return await self._fetch_news(sql, params)

    async def get_news_engagement_snapshots(self) -> List[EngagementSnapshot]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT id, likes, saves, shares, comments, created_at FROM news_items WHERE status = ?",
                (ContentStatus.APPROVED,),
            ) as cur:
                rows = await cur.fetchall()
        return [
            EngagementSnapshot(
                item_id=r['id'],
                likes=r['likes'] or 0,
                saves=r['saves'] or 0,
                shares=r['shares'] or 0,
                comments=r['comments'] or 0,
                created_at=parse_timestamp(r['created_at']),
            )
            for r in rows
        ]

    async def update_news_flags(self, flags: Sequence[Tuple[int, bool, bool]]) -> None:
        """Batch-write ``(item_id, is_featured, is_trending)`` tuples."""
        if not flags:
            return
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                "UPDATE news_items SET is_featured = ?, is_trending = ? WHERE id = ?",
                [(int(featured), int(trending), item_id) for item_id, featured, trending in flags],
            )
            await db.commit()

    async def delete_news_older_than(self, cutoff: datetime, statuses: Sequence[str]) -> int:
        if not statuses:
            return 0
        placeholders = ','.join('?' for _ in statuses)
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute(
                f"DELETE FROM news_items WHERE status IN ({placeholders}) AND created_at < ?",
                (*statuses, to_db_time(cutoff)),
            )
            await db.commit()
            return cur.rowcount or 0

    # ------------------------------------------------------------------
    # Category ranking (news, events, social posts)
    # ------------------------------------------------------------------

    async def fetch_recent_rows(self, table: str, status: str, limit: int) -> List[Dict[str, Any]]:
        self._check_table(table)
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM {table} WHERE status = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (status, limit),
            ) as cur:
                rows = await cur.fetchall()
        return [self._row_to_dict(r) for r in rows]

    async def apply_category_rankings(
        self,
        table: str,
        top_ids: Sequence[int],
        featured_id: Optional[int]
    ) -> None:
        """Clear every is_top3/is_featured flag in ``table`` then set the new ones."""
        self._check_table(table)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(f"UPDATE {table} SET is_top3 = 0, is_featured = 0 WHERE is_top3 = 1 OR is_featured = 1")
            if top_ids:
                await db.executemany(f"UPDATE {table} SET is_top3 = 1 WHERE id = ?", [(i,) for i in top_ids])
            if featured_id is not None:
                await db.execute(f"UPDATE {table} SET is_featured = 1 WHERE id = ?", (featured_id,))
            await db.commit()

    async def fetch_flagged_rows(self, table: str, flag: str, status: str, limit: int) -> List[Dict[str, Any]]:
        self._check_table(table)
        if flag not in BOOLEAN_COLUMNS:
            raise ContentStoreError(f"Unknown flag column: {flag}")
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM {table} WHERE {flag} = 1 AND status = ? "
                "ORDER BY likes DESC, created_at DESC, id DESC LIMIT ?",
                (status, limit),
            ) as cur:
                rows = await cur.fetchall()
        return [self._row_to_dict(r) for r in rows]

    async def fetch_most_liked_row(self, table: str, status: str) -> Optional[Dict[str, Any]]:
        self._check_table(table)
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT * FROM {table} WHERE status = ? ORDER BY likes DESC, created_at DESC, id DESC LIMIT 1",
                (status,),
            ) as cur:
                row = await cur.fetchone()
        return self._row_to_dict(row) if row else None

    async def increment_counter(self, table: str, row_id: int, counter: str, delta: int = 1) -> None:
        self._check_table(table)
        if counter not in COUNTER_FIELDS:
            raise ContentStoreError(f"Unknown counter field: {counter}")
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                f"UPDATE {table} SET {counter} = MAX(0, {counter} + ?) WHERE id = ?",
                (delta, row_id),
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Events, social graph and interactions
    # ------------------------------------------------------------------

    async def add_event(
        self,
        title: str,
        created_at: datetime,
        description: str = "",
        category: str = "General",
        status: str = "published",
        start_date: Optional[datetime] = None,
        **counters: int
    ) -> int:
        return await self._insert_row('events', {
            'title': title,
            'description': description,
            'category': category,
            'status': status,
            'start_date': to_db_time(start_date),
            'created_at': to_db_time(created_at),
            **self._counter_values(counters),
        })

    async def add_social_post(
        self,
        author_id: str,
        created_at: datetime,
        body: str = "",
        title: Optional[str] = None,
        group_id: Optional[str] = None,
        visibility: str = "public",
        status: str = "active",
        is_pinned: bool = False,
        **counters: int
    ) -> int:
        return await self._insert_row('social_posts', {
            'author_id': author_id,
            'group_id': group_id,
            'title': title,
            'body': body,
            'visibility': visibility,
            'status': status,
            'is_pinned': int(is_pinned),
            'created_at': to_db_time(created_at),
            **self._counter_values(counters),
        })

    async def add_follow(self, follower_id: str, following_id: str, status: str = "accepted") -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO follows (follower_id, following_id, status) VALUES (?, ?, ?)
                ON CONFLICT(follower_id, following_id) DO UPDATE SET status = excluded.status
                """,
                (follower_id, following_id, status),
            )
            await db.commit()

    async def add_group_membership(self, group_id: str, user_id: str, status: str = "active") -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO group_memberships (group_id, user_id, status) VALUES (?, ?, ?)
                ON CONFLICT(group_id, user_id) DO UPDATE SET status = excluded.status
                """,
                (group_id, user_id, status),
            )
            await db.commit()

    async def record_interaction(
        self,
        user_id: str,
        target_type: str,
        target_id: int,
        action: str,
        is_active: bool = True
    ) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO interactions (user_id, target_type, target_id, action, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, target_type, target_id, action)
                DO UPDATE SET is_active = excluded.is_active, created_at = excluded.created_at
                """,
                (user_id, target_type, target_id, action, int(is_active), to_db_time(datetime.now(timezone.utc))),
            )
            await db.commit()

    async def get_following_ids(self, user_id: str) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT following_id FROM follows WHERE follower_id = ? AND status = 'accepted'",
                (user_id,),
            ) as cur:
                rows = await cur.fetchall()
        return [r[0] for r in rows]

    async def get_user_group_ids(self, user_id: str) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT group_id FROM group_memberships WHERE user_id = ? AND status = 'active'",
                (user_id,),
            ) as cur:
                rows = await cur.fetchall()
        return [r[0] for r in rows]

    async def is_active_member(self, group_id: str, user_id: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT 1 FROM group_memberships WHERE group_id = ? AND user_id = ? AND status = 'active'",
                (group_id, user_id),
            ) as cur:
                row = await cur.fetchone()
        return row is not None

    async def get_user_interactions(
        self,
        user_id: str,
        target_type: str,
        target_ids: Sequence[int]
    ) -> Dict[int, Set[str]]:
        """Active actions per target id for one user, in a single query."""
        if not target_ids:
            return {}
        placeholders = ','.join('?' for _ in target_ids)
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                f"""
                SELECT target_id, action FROM interactions
                WHERE user_id = ? AND target_type = ? AND is_active = 1 AND target_id IN ({placeholders})
                """,
                (user_id, target_type, *target_ids),
            ) as cur:
                rows = await cur.fetchall()
        actions: Dict[int, Set[str]] = {}
        for target_id, action in rows:
            actions.setdefault(target_id, set()).add(action)
        return actions

    async def query_feed_posts(
        self,
        user_id: str,
        following_ids: Sequence[str],
        group_ids: Sequence[str],
        ordering: str,
        limit: int,
        before: Optional[datetime] = None,
        engagement_weights: Optional[Dict[str, float]] = None,
        min_engagement: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """
        Active posts visible in a user's feed.

        A post qualifies if its author is followed, it belongs to one of the
        user's groups, the user wrote it, or another user shared it as
        public or club-members.
        """
        sources = ["author_id = ?", "(visibility IN ('public', 'club-members') AND author_id != ?)"]
        params: List[Any] = [user_id, user_id]
        if following_ids:
            sources.append(f"author_id IN ({','.join('?' for _ in following_ids)})")
            params.extend(following_ids)
        if group_ids:
            sources.append(f"group_id IN ({','.join('?' for _ in group_ids)})")
            params.extend(group_ids)

        where = f"status = 'active' AND ({' OR '.join(sources)})"
        if engagement_weights is not None and min_engagement is not None:
            where += (
                " AND (likes * ? + comments * ? + shares * ?) > ?"
            )
            params.extend([
                engagement_weights.get('likes', 0.0),
                engagement_weights.get('comments', 0.0),
                engagement_weights.get('shares', 0.0),
                min_engagement,
            ])
        if before is not None:
            where += " AND created_at < ?"
            params.append(to_db_time(before))

        sql = f"SELECT * FROM social_posts WHERE {where} ORDER BY {self._ordering(ordering)} LIMIT ?"
        params.append(limit)
        return await self._fetch_rows(sql, params)

    async def query_trending_posts(
        self,
        since: datetime,
        weights: Dict[str, float],
        min_engagement: float,
        limit: int
    ) -> List[Dict[str, Any]]:
        sql = (
            "SELECT * FROM social_posts WHERE status = 'active' AND created_at >= ? "
            "AND (likes * ? + comments * ? + shares * ?) >= ? "
            f"ORDER BY {self._ordering('trending')} LIMIT ?"
        )
        params = [
            to_db_time(since),
            weights.get('likes', 0.0),
            weights.get('comments', 0.0),
            weights.get('shares', 0.0),
            min_engagement,
            limit,
        ]
        return await self._fetch_rows(sql, params)

    async def query_group_posts(
        self,
        group_id: str,
        limit: int,
        before: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        where = "status = 'active' AND group_id = ?"
        params: List[Any] = [group_id]
        if before is not None:
            # Pinned posts lead the first page only
            where += " AND is_pinned = 0 AND created_at < ?"
            params.append(to_db_time(before))
        sql = f"SELECT * FROM social_posts WHERE {where} ORDER BY {self._ordering('pinned')} LIMIT ?"
        params.append(limit)
        return await self._fetch_rows(sql, params)

    async def get_statistics(self) -> Dict[str, Any]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT status, COUNT(*) FROM news_items GROUP BY status") as cur:
                by_status = {r[0]: r[1] for r in await cur.fetchall()}
            async with db.execute(
                "SELECT category, COUNT(*) FROM news_items WHERE status = ? GROUP BY category ORDER BY 2 DESC",
                (ContentStatus.APPROVED,),
            ) as cur:
                by_category = {r[0]: r[1] for r in await cur.fetchall()}
            async with db.execute("SELECT MIN(created_at), MAX(created_at) FROM news_items") as cur:
                oldest, newest = await cur.fetchone()
            async with db.execute("SELECT COUNT(*) FROM events") as cur:
                events = (await cur.fetchone())[0]
            async with db.execute("SELECT COUNT(*) FROM social_posts") as cur:
                posts = (await cur.fetchone())[0]
        return {
            'total_news': sum(by_status.values()),
            'news_by_status': by_status,
            'news_by_category': by_category,
            'date_range': {'oldest': oldest, 'newest': newest} if oldest else None,
            'events': events,
            'social_posts': posts,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _news_window_clause(
        self,
        since: datetime,
        until: Optional[datetime],
        exclude_hashes: Iterable[str]
    ) -> Tuple[str, List[Any]]:
        where = "status = ? AND created_at >= ?"
        params: List[Any] = [ContentStatus.APPROVED, to_db_time(since)]
        if until is not None:
            where += " AND created_at < ?"
            params.append(to_db_time(until))
        excluded = list(dict.fromkeys(exclude_hashes))
        if excluded:
            where += f" AND content_hash NOT IN ({','.join('?' for _ in excluded)})"
            params.extend(excluded)
        return where, params

    async def _fetch_news(self, sql: str, params: Sequence[Any]) -> List[CuratedItem]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [self._row_to_news_item(r) for r in rows]

    async def _fetch_rows(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [self._row_to_dict(r) for r in rows]

    async def _insert_row(self, table: str, values: Dict[str, Any]) -> int:
        columns = ','.join(values)
        placeholders = ','.join('?' for _ in values)
        async with aiosqlite.connect(self.db_path) as db:
            cur = await db.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            await db.commit()
            return cur.lastrowid

    @staticmethod
    def _counter_values(counters: Dict[str, int]) -> Dict[str, int]:
        unknown = set(counters) - set(COUNTER_FIELDS)
        if unknown:
            raise ContentStoreError(f"Unknown counter fields: {sorted(unknown)}")
        return {name: int(counters.get(name, 0)) for name in COUNTER_FIELDS}

    @staticmethod
    def _check_table(table: str) -> None:
        if table not in RANKABLE_TABLES:
            raise ContentStoreError(f"Unknown content table: {table}")

    @staticmethod
    def _ordering(name: str) -> str:
        try:
            return FEED_ORDERINGS[name]
        except KeyError:
            raise ContentStoreError(f"Unknown ordering: {name}") from None

    @staticmethod
    def _news_params(item: CuratedItem) -> Tuple[Any, ...]:
        return (
            item.title,
            item.excerpt,
            item.body,
            item.category,
            item.image_url,
            item.publisher,
            item.original_url,
            item.content_hash,
            to_db_time(item.published_at),
            to_db_time(item.created_at or datetime.now(timezone.utc)),
            item.status,
            int(item.is_featured),
            int(item.is_trending),
            int(item.is_top3),
            item.likes,
            item.saves,
            item.shares,
            item.comments,
            item.views,
            item.importance_score,
        )

    @staticmethod
    def _row_to_news_item(row: aiosqlite.Row) -> CuratedItem:
        return CuratedItem(
            id=row['id'],
            title=row['title'],
            excerpt=row['excerpt'] or '',
            body=row['body'] or '',
            category=row['category'] or '',
            image_url=row['image_url'],
            publisher=row['publisher'] or '',
            original_url=row['original_url'] or '',
            content_hash=row['content_hash'],
            published_at=parse_timestamp(row['published_at']),
            created_at=parse_timestamp(row['created_at']),
            status=row['status'],
            is_featured=bool(row['is_featured']),
            is_trending=bool(row['is_trending']),
            is_top3=bool(row['is_top3']),
            likes=row['likes'] or 0,
            saves=row['saves'] or 0,
            shares=row['shares'] or 0,
            comments=row['comments'] or 0,
            views=row['views'] or 0,
            importance_score=row['importance_score'] or 0.0,
        )

    @staticmethod
    def _row_to_dict(row: aiosqlite.Row) -> Dict[str, Any]:
        data = dict(row)
        for column in BOOLEAN_COLUMNS:
            if column in data:
                data[column] = bool(data[column])
        return data
