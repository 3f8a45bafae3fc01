"""
Engagement-based reranking of featured and trending news.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from campus_curator.models.content import EngagementSnapshot
from campus_curator.models.settings import CurationSettings
from campus_curator.services.content_store import ContentStore


@dataclass
class RerankResult:
    ranked_ids: List[int] = field(default_factory=list)
    featured_ids: List[int] = field(default_factory=list)
    trending_ids: List[int] = field(default_factory=list)


class EngagementReranker:
    """
    Recomputes featured/trending flags for every approved item from its
    counters alone, so two passes over unchanged data write identical flags.

    ``last_run`` lives on the instance; share one reranker between callers
    to share the throttle.
    """

    def __init__(
        self,
        store: ContentStore,
        settings: Optional[CurationSettings] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.settings = settings or CurationSettings()
        self._clock = clock
        self.last_run: Optional[float] = None
        self.logger = logging.getLogger(__name__)

    def is_throttled(self) -> bool:
        if self.last_run is None:
            return False
        return self._clock() - self.last_run < self.settings.rerank_throttle_seconds

    async def update_rankings(self, force: bool = False) -> Optional[RerankResult]:
        """
        Rerank unless a pass ran within the throttle window.

        Returns None when throttled.
        """
        if not force and self.is_throttled():
            self.logger.debug("Rerank skipped, last pass is inside the throttle window")
            return None
        # Claim the window before awaiting so concurrent callers back off
        previous_run = self.last_run
        self.last_run = self._clock()

        try:
            snapshots = await self.store.get_news_engagement_snapshots()
            ranked = self.rank(snapshots)

            featured = set(ranked[:self.settings.featured_count])
            trending = set(ranked[:self.settings.trending_count])
            await self.store.update_news_flags(
                [(item_id, item_id in featured, item_id in trending) for item_id in ranked]
            )
        except Exception:
            # A failed pass must not hold the throttle
            self.last_run = previous_run
            raise

        self.logger.info(
            f"🔁 Reranked {len(ranked)} items: {len(featured)} featured, {len(trending)} trending"
        )
        return RerankResult(
            ranked_ids=ranked,
            featured_ids=ranked[:self.settings.featured_count],
            trending_ids=ranked[:self.settings.trending_count],
        )

    def rank(self, snapshots: List[EngagementSnapshot]) -> List[int]:
        """Item ids by engagement score, newest first on ties, then by id."""
        weights = self.settings.engagement_weights

        def sort_key(s: EngagementSnapshot):
            created = s.created_at.timestamp() if s.created_at else 0.0
            return (-s.engagement_score(weights), -created, s.item_id)

        return [s.item_id for s in sorted(snapshots, key=sort_key)]

    async def run_periodically(self, shutdown_event: asyncio.Event, interval: Optional[float] = None) -> None:
        """Independent timer used by the scheduler."""
        interval = interval or self.settings.rerank_throttle_seconds
        while not shutdown_event.is_set():
            try:
                await self.update_rankings()
            except Exception as e:
                self.logger.error(f"Engagement rerank failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
