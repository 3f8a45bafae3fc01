"""
Per-category homepage curation for news, events and social posts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from campus_curator.models.settings import CurationSettings
from campus_curator.services.content_categories import CATEGORY_REGISTRY, ContentCategory
from campus_curator.services.content_store import ContentStore
from campus_curator.services.scoring_selector import ScoringSelector
from campus_curator.services.ttl_cache import TTLCache
from campus_curator.utils.error_monitoring import ErrorCategory, ErrorHandler

CURATION_CACHE_PREFIX = "curation:"


@dataclass
class CategoryRanking:
    category: str
    top: List[Dict[str, Any]] = field(default_factory=list)
    featured: Optional[Dict[str, Any]] = None
    method: str = "none"
    error: Optional[str] = None


class CategoryCurator:
    """
    Ranks every category concurrently. A failure in one category is recorded
    on its result and never touches the others.
    """

    def __init__(
        self,
        store: ContentStore,
        selector: ScoringSelector,
        cache: Optional[TTLCache] = None,
        settings: Optional[CurationSettings] = None,
        categories: Optional[List[ContentCategory]] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.store = store
        self.selector = selector
        self.cache = cache or TTLCache()
        self.settings = settings or CurationSettings()
        self.categories = categories or list(CATEGORY_REGISTRY.values())
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)

    async def curate_featured_content(self) -> Dict[str, CategoryRanking]:
        results = await asyncio.gather(
            *(self.rank_category(category) for category in self.categories),
            return_exceptions=True
        )

        rankings: Dict[str, CategoryRanking] = {}
        for category, res in zip(self.categories, results):
            if isinstance(res, Exception):
                self.error_handler.handle_error(
                    res, service=f'category_curator.{category.name}', operation='rank_category',
                    category=ErrorCategory.PARTIAL,
                )
                rankings[category.name] = CategoryRanking(category=category.name, error=str(res))
                continue
            rankings[category.name] = res

        self.cache.invalidate_pattern(CURATION_CACHE_PREFIX)
        ok = sum(1 for r in rankings.values() if r.error is None)
        self.logger.info(f"🏷️ Category curation finished: {ok}/{len(rankings)} categories ranked")
        return rankings

    async def rank_category(self, category: ContentCategory) -> CategoryRanking:
        candidates = await category.fetch_candidates(self.store, self.settings.category_candidate_cap)
        if not candidates:
            await category.persist_rankings(self.store, [], None)
            return CategoryRanking(category=category.name)

        top_n = self.settings.category_top_n
        summaries = [category.to_summary(item, idx + 1) for idx, item in enumerate(candidates)]
        indices = await self.selector.rank_summaries(
            summaries, top_n, "category_ranking", category=category.label
        )

        if indices:
            method = "ai"
            top = [candidates[i] for i in indices][:top_n]
        else:
            method = "engagement"
            top = category.rank_by_engagement(candidates, self.settings.engagement_weights)[:top_n]

        top_ids = [item['id'] for item in top]
        featured_id = top_ids[0] if top_ids else None
        await category.persist_rankings(self.store, top_ids, featured_id)

        self.logger.info(f"🏷️ {category.label}: top {len(top_ids)} chosen by {method}")
        return CategoryRanking(
            category=category.name,
            top=top,
            featured=top[0] if top else None,
            method=method,
        )

    async def get_homepage_content(self) -> Dict[str, List[Dict[str, Any]]]:
        """Top-3 items of every category, cached."""
        async def compute() -> Dict[str, List[Dict[str, Any]]]:
            content: Dict[str, List[Dict[str, Any]]] = {}
            for category in self.categories:
                content[category.name] = await category.homepage_items(self.store, self.settings.category_top_n)
            return content

        return await self.cache.get_or_set(
            f"{CURATION_CACHE_PREFIX}homepage", compute, self.settings.curation_cache_ttl
        )

    async def get_featured_content(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """Most liked live item of every category, cached."""
        async def compute() -> Dict[str, Optional[Dict[str, Any]]]:
            return {
                category.name: await category.featured_item(self.store)
                for category in self.categories
            }

        return await self.cache.get_or_set(
            f"{CURATION_CACHE_PREFIX}featured", compute, self.settings.curation_cache_ttl
        )
