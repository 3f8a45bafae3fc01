"""
Selects the best candidates for a run.

The ranking model is tried first. When it is unavailable or returns nothing
usable, a deterministic weighted-keyword scorer takes over, so a selection
always comes back for a non-empty input.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from campus_curator.models.content import CuratedItem, RawCandidate, ScoredCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.services.ai_service import AIServiceError
from campus_curator.services.relevance_filter import (
    categorize_text,
    compile_terms,
    count_category_matches,
)
from campus_curator.services.source_ranking_service import SourceRankingService
from campus_curator.utils.news_constants import (
    BREAKTHROUGH_KEYWORDS,
    ENGAGEMENT_KEYWORDS,
    TECH_KEYWORDS,
)

AI_ML_BOOST = 15
BREAKTHROUGH_BOOST = 25
RECENCY_BOOST = 20
ENGAGEMENT_KEYWORD_BONUS = 5

# (max age in hours, share of RECENCY_BOOST)
RECENCY_STEPS = ((6, 1.0), (12, 0.7), (18, 0.4))

_BREAKTHROUGH_PATTERN = compile_terms(BREAKTHROUGH_KEYWORDS, allow_plural=True)
_ENGAGEMENT_PATTERN = compile_terms(ENGAGEMENT_KEYWORDS)


def recency_bonus(published_at: Optional[datetime], now: datetime, boost: float = RECENCY_BOOST) -> float:
    if not published_at:
        return 0.0
    hours_old = (now - published_at).total_seconds() / 3600
    if hours_old < 0:
        hours_old = 0
    for max_hours, share in RECENCY_STEPS:
        if hours_old < max_hours:
            return round(boost * share, 2)
    return 0.0


class ScoringSelector:
    """
    Chooses ``target`` candidates and returns them in an explicit order.
    """

    def __init__(
        self,
        ai_service: Optional[Any] = None,
        source_ranking: Optional[SourceRankingService] = None,
        settings: Optional[CurationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.ai_service = ai_service
        self.source_ranking = source_ranking or SourceRankingService()
        self.settings = settings or CurationSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)
        self.last_method: Optional[str] = None

    async def select_best(
        self,
        candidates: List[RawCandidate],
        target: Optional[int] = None
    ) -> List[ScoredCandidate]:
        target = target or self.settings.target_articles
        if not candidates:
            return []

        pool = candidates[:self.settings.max_ai_candidates]
        categories = [self.categorize(c) for c in pool]
        summaries = [
            {
                'id': idx + 1,
                'title': c.title,
                'description': c.description,
                'source': c.source_name or 'Unknown',
                'category': category,
                'published': c.published_at.strftime('%Y-%m-%d') if c.published_at else 'unknown',
            }
            for idx, (c, category) in enumerate(zip(pool, categories))
        ]

        ids = await self.rank_with_ai(summaries, target, "article_selection")
        if ids:
            self.last_method = "ai"
            selected = [
                ScoredCandidate(candidate=pool[i], score=float(len(ids) - rank), category=categories[i])
                for rank, i in enumerate(ids)
            ]
            self.logger.info(f"🤖 AI selected {len(selected)} of {len(candidates)} candidates")
            return selected

        self.last_method = "fallback"
        selected = self.select_manually(candidates, target)
        self.logger.info(f"📐 Fallback scorer selected {len(selected)} of {len(candidates)} candidates")
        return selected

    async def rank_with_ai(
        self,
        summaries: List[Dict[str, Any]],
        target: int,
        prompt_key: str,
        **context: Any
    ) -> List[int]:
        """
        0-based indices into ``summaries`` in ranked order, or ``[]`` when the
        model is unavailable or answered with nothing usable.
        """
        if self.ai_service is None or not summaries:
            return []
        try:
            ids = await self.ai_service.select_ids(summaries, target, prompt_key=prompt_key, **context)
        except AIServiceError as e:
            self.logger.warning(f"AI ranking unavailable for '{prompt_key}', using fallback: {e}")
            return []
        return [i - 1 for i in ids][:target]

    async def rank_summaries(self, summaries: List[Dict[str, Any]], target: int, prompt_key: str, **context: Any) -> List[int]:
        """Renumber arbitrary summaries 1..N and rank them with the model."""
        numbered = [{**s, 'id': idx + 1} for idx, s in enumerate(summaries)]
        return await self.rank_with_ai(numbered, target, prompt_key, **context)

    def select_manually(self, candidates: List[RawCandidate], target: int) -> List[ScoredCandidate]:
        now = self._clock()
        scored = [
            ScoredCandidate(
                candidate=c,
                score=self.calculate_article_score(c, now),
                category=self.categorize(c),
            )
            for c in candidates
        ]
        scored.sort(key=ScoredCandidate.sort_key)
        return scored[:target]

    async def select_from_previous(self, needed: int, items: List[CuratedItem]) -> List[CuratedItem]:
        """Pick ``needed`` stored items, by model when possible, else by reader engagement."""
        if needed <= 0 or not items:
            return []
        pool = items[:self.settings.previous_batch_ai_cap]
        summaries = [item.to_summary(idx + 1) for idx, item in enumerate(pool)]

        indices = await self.rank_with_ai(summaries, needed, "previous_batch_selection")
        if indices:
            return [pool[i] for i in indices][:needed]

        def engagement_key(item: CuratedItem):
            created = item.created_at.timestamp() if item.created_at else 0.0
            return (-item.likes, -item.saves, -created)

        return sorted(items, key=engagement_key)[:needed]

    def calculate_article_score(self, candidate: RawCandidate, now: Optional[datetime] = None) -> float:
        """Deterministic relevance score used when the model is unavailable."""
        now = now or self._clock()
        text = f"{candidate.title} {candidate.description}".lower()
        score = 0.0

        for name, spec in TECH_KEYWORDS.items():
            matches = count_category_matches(text, name)
            if matches:
                score += matches * spec['priority']
                if name == 'AI/ML':
                    score += AI_ML_BOOST

        score += len({m.group(0).lower() for m in _BREAKTHROUGH_PATTERN.finditer(text)}) * BREAKTHROUGH_BOOST
        score += recency_bonus(candidate.published_at, now)
        score += self.source_ranking.score_source(candidate)
        score += self.calculate_quality_score(candidate)
        return score

    @staticmethod
    def calculate_quality_score(candidate: RawCandidate) -> float:
        quality = 0.0

        description_length = len(candidate.description or '')
        if description_length > 200:
            quality += min(20.0, description_length / 100)

        title = candidate.title or ''
        if 30 < len(title) < 120:
            quality += 15

        text = f"{title} {candidate.description or ''}".lower()
        quality += len({m.group(0) for m in _ENGAGEMENT_PATTERN.finditer(text)}) * ENGAGEMENT_KEYWORD_BONUS

        uppercase = len(re.findall(r'[A-Z]', title))
        if uppercase / max(len(title), 1) > 0.3:
            quality -= 10
        if title.count('!') > 1:
            quality -= 15

        return max(0.0, quality)

    @staticmethod
    def categorize(candidate: RawCandidate) -> str:
        return categorize_text(f"{candidate.title} {candidate.description}".lower())
