"""
In-process TTL cache for feed and curation reads.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


_MISSING = object()


@dataclass
class CacheEntry:
    """Cached value with an absolute expiry on the cache clock"""
    value: Any
    expires_at: float

    def is_stale(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """
    Key/value cache where every entry expires after its own TTL.

    Expired entries are dropped lazily on read and by a periodic sweep.
    Writers are last-writer-wins; there is no cross-key atomicity.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self.stats: Dict[str, int] = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0}
        self.logger = logging.getLogger(__name__)

    # Key builders
    @staticmethod
    def feed_key(
        user_id: str,
        algorithm: str,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        include_groups: bool = True,
        include_following: bool = True
    ) -> str:
        key = f"feed:{user_id}:{algorithm}:{cursor or 'initial'}"
        if limit is None:
            return key
        return f"{key}:{limit}:g{int(include_groups)}f{int(include_following)}"

    @staticmethod
    def trending_key(timeframe_hours: int, limit: int) -> str:
        return f"trending:{timeframe_hours}h:{limit}"

    @staticmethod
    def group_feed_key(group_id: str, cursor: Optional[str] = None) -> str:
        return f"group_feed:{group_id}:{cursor or 'initial'}"

    @staticmethod
    def user_key(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def group_key(group_id: str) -> str:
        return f"group:{group_id}"

    @staticmethod
    def post_engagement_key(post_id: Union[int, str]) -> str:
        return f"post_engagement:{post_id}"

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self.stats["sets"] += 1

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def has(self, key: str) -> bool:
        return self._lookup(key, count=False) is not _MISSING

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_set(
        self,
        key: str,
        compute_fn: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float] = None
    ) -> Any:
        """
        Return the cached value or compute, store and return it.

        Exceptions from ``compute_fn`` propagate and nothing is stored.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        result = compute_fn()
        if inspect.isawaitable(result):
            result = await result
        self.set(key, result, ttl)
        return result

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key that contains ``pattern``."""
        doomed = [k for k in self._entries if pattern in k]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self.logger.debug(f"Invalidated {len(doomed)} cache keys matching '{pattern}'")
        return len(doomed)

    def cleanup(self) -> int:
        """Purge expired entries."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.is_stale(now)]
        for key in expired:
            del self._entries[key]
        self.stats["evictions"] += len(expired)
        return len(expired)

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.cleanup()
            if removed:
                self.logger.debug(f"🧹 Cache sweep removed {removed} expired entries")

    def get_stats(self) -> Dict[str, Any]:
        lookups = self.stats["hits"] + self.stats["misses"]
        keys: List[str] = list(self._entries)
        return {
            "size": len(keys),
            "keys": keys,
            **self.stats,
            "hit_rate": self.stats["hits"] / lookups if lookups else 0.0,
        }

    def _lookup(self, key: str, count: bool = True) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            if count:
                self.stats["misses"] += 1
            return _MISSING
        if entry.is_stale(self._clock()):
            del self._entries[key]
            self.stats["evictions"] += 1
            if count:
                self.stats["misses"] += 1
            return _MISSING
        if count:
            self.stats["hits"] += 1
        return entry.value
