"""
Relevance filtering, deduplication and recency windowing for raw candidates.
"""

import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Pattern

from campus_curator.models.content import RawCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.utils.news_constants import (
    AGGREGATOR_DOMAINS,
    AGGREGATOR_SOURCE_MARKERS,
    AGGREGATOR_TITLE_PREFIXES,
    DEFAULT_CATEGORY,
    EDUCATIONAL_TECH_INDICATORS,
    EXCLUDED_KEYWORDS,
    TECH_KEYWORDS,
)


def generate_content_hash(title: Optional[str], url: Optional[str], source_name: Optional[str]) -> str:
    """Stable identity of an article: sha256 of ``title|url|source``, 32 hex chars."""
    raw = f"{title or ''}|{url or ''}|{source_name or 'Unknown'}"
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()[:32]


def candidate_hash(candidate: RawCandidate) -> str:
    return generate_content_hash(candidate.title, candidate.url, candidate.source_name)


def compile_terms(terms: Iterable[str], allow_plural: bool = False) -> Pattern[str]:
    """One case-insensitive alternation that only matches whole words."""
    # Longest first so multi-word phrases win over their prefixes
    ordered = sorted({t.lower() for t in terms}, key=len, reverse=True)
    suffix = r"(?:s|es)?" if allow_plural else ""
    body = "|".join(re.escape(t) for t in ordered)
    return re.compile(rf"\b(?:{body}){suffix}\b", re.IGNORECASE)


_CATEGORY_PATTERNS: Dict[str, Pattern[str]] = {
    name: compile_terms(spec['keywords'], allow_plural=True)
    for name, spec in TECH_KEYWORDS.items()
}


def count_category_matches(text: str, category: str) -> int:
    """Number of distinct keywords of ``category`` present in ``text``."""
    pattern = _CATEGORY_PATTERNS.get(category)
    if pattern is None:
        return 0
    return len({m.group(0).lower() for m in pattern.finditer(text)})


def categorize_text(text: str) -> str:
    best_category, best_count = DEFAULT_CATEGORY, 0
    for name in TECH_KEYWORDS:
        count = count_category_matches(text, name)
        if count > best_count:
            best_category, best_count = name, count
    return best_category


class RelevanceFilter:
    """
    Three-pass filter: topic/safety, hash dedup, recency window.

    Matching is on whole words, so an excluded term like "war" never
    rejects "software".
    """

    def __init__(
        self,
        settings: Optional[CurationSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.settings = settings or CurationSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

        self.excluded_pattern = compile_terms(EXCLUDED_KEYWORDS)
        tech_terms = [kw for spec in TECH_KEYWORDS.values() for kw in spec['keywords']]
        self.indicator_pattern = compile_terms(EDUCATIONAL_TECH_INDICATORS + tech_terms, allow_plural=True)

        self.stats: Dict[str, int] = {}

    def filter_articles(self, candidates: List[RawCandidate]) -> List[RawCandidate]:
        """Run all three passes and return the bounded candidate pool."""
        relevant = [c for c in candidates if self.is_relevant(c)]
        self.logger.info(f"🔍 Relevance filter: {len(candidates)} → {len(relevant)} articles")

        unique = self.remove_duplicates(relevant)
        self.logger.info(f"🧬 Dedup: {len(relevant)} → {len(unique)} unique articles")

        pool = self.filter_by_recency(unique)
        self.logger.info(f"🕒 Recency window: {len(unique)} → {len(pool)} articles")

        self.stats = {
            'input': len(candidates),
            'relevant': len(relevant),
            'unique': len(unique),
            'pool': len(pool),
        }
        return pool

    def is_relevant(self, candidate: RawCandidate) -> bool:
        if self.is_aggregator(candidate):
            return False
        text = candidate.text
        if self.excluded_pattern.search(text):
            return False
        return self.indicator_pattern.search(text) is not None

    @staticmethod
    def is_aggregator(candidate: RawCandidate) -> bool:
        source = (candidate.source_name or '').lower()
        if any(marker in source for marker in AGGREGATOR_SOURCE_MARKERS):
            return True
        url = (candidate.url or '').lower()
        if any(domain in url for domain in AGGREGATOR_DOMAINS):
            return True
        title = (candidate.title or '').lower()
        return any(prefix in title for prefix in AGGREGATOR_TITLE_PREFIXES)

    @staticmethod
    def remove_duplicates(candidates: List[RawCandidate]) -> List[RawCandidate]:
        """Keep the first candidate of every content hash, preserving order."""
        seen = set()
        unique: List[RawCandidate] = []
        for candidate in candidates:
            key = candidate_hash(candidate)
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)
        return unique

    def filter_by_recency(self, candidates: List[RawCandidate]) -> List[RawCandidate]:
        """
        Prefer the recency window; when fewer than ``min_recent_articles`` fall
        inside it, append the older items newest first. The pool is capped at
        ``max_candidate_pool`` either way.
        """
        cutoff = self._clock() - timedelta(days=self.settings.recency_window_days)

        def newest_first(items: List[RawCandidate]) -> List[RawCandidate]:
            return sorted(
                items,
                key=lambda c: c.published_at.timestamp() if c.published_at else float('-inf'),
                reverse=True,
            )

        recent = [c for c in candidates if c.published_at and c.published_at >= cutoff]
        older = [c for c in candidates if not c.published_at or c.published_at < cutoff]

        pool = newest_first(recent)
        if len(pool) < self.settings.min_recent_articles and older:
            pool.extend(newest_first(older))
            self.logger.info(
                f"Only {len(recent)} articles inside the recency window, backfilled with {len(older)} older ones"
            )

        return pool[:self.settings.max_candidate_pool]

    def categorize(self, candidate: RawCandidate) -> str:
        return categorize_text(f"{candidate.title} {candidate.description}".lower())
