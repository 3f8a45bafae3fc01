"""
Retention curation: guarantee a full batch, persist it without duplicates and
evict expired items.

The backfill chain is an ordered list of ``FallbackTier`` strategies. Each
strategy receives how many items are still needed and the hashes already
chosen, and returns ``(items, still_needed)``. The chain stops as soon as the
target is met or the strategies run out.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from campus_curator.models.content import ContentStatus, CuratedItem, ScoredCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.services.content_store import ContentStore
from campus_curator.services.relevance_filter import candidate_hash, count_category_matches
from campus_curator.services.scoring_selector import ScoringSelector
from campus_curator.utils.error_monitoring import ErrorCategory, ErrorHandler, NonCriticalError
from campus_curator.utils.news_constants import FALLBACKS, TECH_KEYWORDS

TierFetch = Callable[[int, Set[str]], Awaitable[Tuple[List[CuratedItem], int]]]

# Importance recency steps: (max age in hours, points)
IMPORTANCE_RECENCY = ((6, 20), (12, 15), (18, 10))


@dataclass
class FallbackTier:
    """One backfill strategy in the retention chain."""
    name: str
    fetch: TierFetch


@dataclass
class RetentionResult:
    items: List[CuratedItem]
    saved: List[CuratedItem] = field(default_factory=list)
    duplicates_skipped: int = 0
    failed: int = 0
    evicted: Dict[str, int] = field(default_factory=dict)
    tiers_used: Dict[str, int] = field(default_factory=dict)
    shortfall: int = 0


class RetentionCurator:
    """
    Turns a selection into a persisted batch of exactly ``target_articles``
    items whenever enough fresh or stored content exists.
    """

    def __init__(
        self,
        store: ContentStore,
        selector: ScoringSelector,
        settings: Optional[CurationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.store = store
        self.selector = selector
        self.settings = settings or CurationSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)

        self.tiers: List[FallbackTier] = [
            FallbackTier('engaged_previous', self._engaged_previous),
            FallbackTier('ai_reselected_previous', self._ai_reselected_previous),
            FallbackTier('any_previous', self._any_previous),
        ]

    async def run(self, selected: List[ScoredCandidate]) -> RetentionResult:
        """Backfill, save, then evict. Eviction only runs once the save returned."""
        result = await self.ensure_target_count(selected)
        saved, duplicates, failed = await self.save_batch(result.items)
        result.saved = saved
        result.duplicates_skipped = duplicates
        result.failed = failed
        if self.save_succeeded(saved, failed):
            result.evicted = await self.evict_expired()
        else:
            self.logger.warning(f"⚠️ No items saved ({failed} failed), keeping existing content")
        return result

    @staticmethod
    def save_succeeded(saved: List[CuratedItem], failed: int) -> bool:
        """Eviction is only safe once a save stored something or nothing failed."""
        return bool(saved) or failed == 0

    async def ensure_target_count(self, selected: List[ScoredCandidate]) -> RetentionResult:
        target = self.settings.target_articles
        now = self._clock()

        items: List[CuratedItem] = []
        chosen: Set[str] = set()
        for scored in selected:
            if len(items) >= target:
                break
            item = self.to_curated_item(scored, now)
            if item.content_hash in chosen:
                continue
            chosen.add(item.content_hash)
            items.append(item)

        tiers_used: Dict[str, int] = {}
        still_needed = target - len(items)
        for tier in self.tiers:
            if still_needed <= 0:
                break
            found, still_needed = await tier.fetch(still_needed, set(chosen))
            for item in found:
                chosen.add(item.content_hash)
                items.append(item)
            tiers_used[tier.name] = len(found)
            self.logger.info(f"♻️ Tier '{tier.name}' added {len(found)} items, {still_needed} still needed")

        if still_needed > 0:
            self.error_handler.handle_error(
                NonCriticalError(f"Only {len(items)} of {target} items available"),
                service='retention_curator',
                operation='ensure_target_count',
                context={'tiers_used': tiers_used},
                category=ErrorCategory.FALLBACK_EXHAUSTED,
            )

        return RetentionResult(items=items, tiers_used=tiers_used, shortfall=max(0, still_needed))

    async def _engaged_previous(self, needed: int, exclude: Set[str]) -> Tuple[List[CuratedItem], int]:
        since = self._clock() - timedelta(hours=self.settings.fallback_recent_hours)
        found = await self.store.find_engaged_news(since, exclude, needed)
        return found, needed - len(found)

    async def _ai_reselected_previous(self, needed: int, exclude: Set[str]) -> Tuple[List[CuratedItem], int]:
        since = self._clock() - timedelta(hours=self.settings.fallback_recent_hours)
        pool = await self.store.find_recent_news(since, exclude, needed * self.settings.reselect_multiplier)
        picks = await self.selector.select_from_previous(needed, pool)
        picks = [p for p in picks if p.content_hash not in exclude][:needed]
        return picks, needed - len(picks)

    async def _any_previous(self, needed: int, exclude: Set[str]) -> Tuple[List[CuratedItem], int]:
        since = self._clock() - timedelta(days=self.settings.fallback_any_days)
        found = await self.store.find_recent_news(since, exclude, needed)
        return found, needed - len(found)

    async def save_batch(self, items: List[CuratedItem]) -> Tuple[List[CuratedItem], int, int]:
        """
        Persist the new items of ``items``.

        Returns ``(saved, duplicates_skipped, failed)``. One query finds the
        hashes already stored; new items go in as a single transaction, and if
        that fails each item is retried on its own.
        """
        if not items:
            return [], 0, 0

        now = self._clock()
        fresh: List[CuratedItem] = []
        duplicates = 0
        try:
            existing = await self.store.get_existing_hashes(i.content_hash for i in items)
        except Exception as e:
            self.logger.warning(f"Existing-hash lookup failed, checking items one by one: {e}")
            return await self._save_individually(items, now)

        seen: Set[str] = set()
        for index, item in enumerate(items):
            if item.content_hash in existing or item.content_hash in seen:
                duplicates += 1
                continue
            seen.add(item.content_hash)
            self._prepare_for_insert(item, index, now)
            fresh.append(item)

        if not fresh:
            self.logger.info(f"💾 Nothing new to save ({duplicates} duplicates)")
            return [], duplicates, 0

        try:
            saved = await self.store.insert_news_items(fresh)
            self.logger.info(f"💾 Saved {len(saved)} items in one batch, skipped {duplicates} duplicates")
            return saved, duplicates, 0
        except Exception as e:
            self.logger.warning(f"Batch insert failed, saving {len(fresh)} items individually: {e}")

        saved: List[CuratedItem] = []
        failed = 0
        for item in fresh:
            try:
                saved.append(await self.store.insert_news_item(item))
            except Exception as e:
                failed += 1
                self.error_handler.handle_error(
                    e, service='content_store', operation='insert_news_item',
                    context={'content_hash': item.content_hash},
                    category=ErrorCategory.PARTIAL,
                )
        self.logger.info(f"💾 Saved {len(saved)} items individually, {failed} failed, {duplicates} duplicates")
        return saved, duplicates, failed

    async def _save_individually(self, items: List[CuratedItem], now: datetime) -> Tuple[List[CuratedItem], int, int]:
        saved: List[CuratedItem] = []
        duplicates = failed = 0
        for index, item in enumerate(items):
            try:
                if await self.store.get_existing_hashes([item.content_hash]):
                    duplicates += 1
                    continue
                self._prepare_for_insert(item, index, now)
                saved.append(await self.store.insert_news_item(item))
            except Exception as e:
                failed += 1
                self.error_handler.handle_error(
                    e, service='content_store', operation='insert_news_item',
                    context={'content_hash': item.content_hash},
                    category=ErrorCategory.PARTIAL,
                )
        return saved, duplicates, failed

    async def evict_expired(self) -> Dict[str, int]:
        now = self._clock()
        approved = await self.store.delete_news_older_than(
            now - timedelta(hours=self.settings.approved_retention_hours),
            [ContentStatus.APPROVED],
        )
        unpublished = await self.store.delete_news_older_than(
            now - timedelta(hours=self.settings.draft_retention_hours),
            [ContentStatus.DRAFT, ContentStatus.REJECTED],
        )
        if approved or unpublished:
            self.logger.info(f"🗑️ Evicted {approved} approved and {unpublished} draft/rejected items")
        return {'approved': approved, 'draft_rejected': unpublished}

    def _prepare_for_insert(self, item: CuratedItem, index: int, now: datetime) -> None:
        item.importance_score = self.calculate_importance_score(item, index, now)
        item.is_featured = index < self.settings.featured_count
        item.is_trending = index < self.settings.trending_count
        item.created_at = item.created_at or now

    def calculate_importance_score(self, item: CuratedItem, index: int, now: datetime) -> float:
        score = float((self.settings.target_articles - index) * 10)
        text = f"{item.title} {item.excerpt}".lower()
        for name, spec in TECH_KEYWORDS.items():
            score += count_category_matches(text, name) * spec['priority']
        if item.published_at:
            hours_old = (now - item.published_at).total_seconds() / 3600
            for max_hours, points in IMPORTANCE_RECENCY:
                if hours_old < max_hours:
                    score += points
                    break
        return score

    @staticmethod
    def to_curated_item(scored: ScoredCandidate, now: datetime) -> CuratedItem:
        c = scored.candidate
        image = c.image_url if c.image_url and c.image_url.startswith(('http://', 'https://')) else None
        return CuratedItem(
            title=c.title,
            excerpt=c.description or FALLBACKS['excerpt'],
            body=c.content or c.description or FALLBACKS['body'],
            category=scored.category,
            publisher=c.source_name or FALLBACKS['publisher'],
            original_url=c.url,
            content_hash=candidate_hash(c),
            image_url=image or FALLBACKS['image_url'],
            published_at=c.published_at,
            created_at=now,
            status=ContentStatus.APPROVED,
        )
