"""
Tunable curation settings.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Dict


def _default_engagement_weights() -> Dict[str, float]:
    # Comments are the strongest signal of interest
    return {'likes': 10.0, 'saves': 10.0, 'shares': 10.0, 'comments': 20.0}


def _default_mixed_weights() -> Dict[str, float]:
    return {'likes': 2.0, 'comments': 3.0, 'shares': 1.0}


def _default_trending_weights() -> Dict[str, float]:
    return {'likes': 1.0, 'comments': 2.0, 'shares': 3.0}


@dataclass
class CurationSettings:
    """Counts, windows, weights and intervals used across the curation pipeline."""
    # Selection
    target_articles: int = 20
    max_ai_candidates: int = 100
    previous_batch_ai_cap: int = 50

    # Relevance / recency
    recency_window_days: int = 7
    min_recent_articles: int = 50
    max_candidate_pool: int = 100

    # Retention fallbacks
    fallback_recent_hours: int = 48
    fallback_any_days: int = 7
    reselect_multiplier: int = 3

    # Eviction
    approved_retention_hours: int = 48
    draft_retention_hours: int = 24

    # Engagement reranking
    rerank_throttle_seconds: float = 300.0
    featured_count: int = 3
    trending_count: int = 5
    engagement_weights: Dict[str, float] = field(default_factory=_default_engagement_weights)

    # Feeds
    mixed_weights: Dict[str, float] = field(default_factory=_default_mixed_weights)
    mixed_min_engagement: float = 0.0
    trending_weights: Dict[str, float] = field(default_factory=_default_trending_weights)
    trending_min_engagement: float = 5.0
    trending_timeframe_hours: int = 24
    trending_limit: int = 20
    feed_cache_ttl: float = 120.0
    trending_cache_ttl: float = 300.0
    curation_cache_ttl: float = 300.0
    cache_sweep_interval: float = 60.0

    # Category curation
    category_candidate_cap: int = 50
    category_top_n: int = 3

    # Fetching / AI
    api_delay_seconds: float = 1.0
    max_retries: int = 3
    rate_limit_base_delay: float = 5.0
    ai_base_delay: float = 1.0
    request_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls, prefix: str = "CURATION_") -> "CurationSettings":
        """
        Build settings with scalar overrides from the environment.

        ``CURATION_TARGET_ARTICLES=25`` overrides ``target_articles``. Weight
        tables take ``CURATION_ENGAGEMENT_WEIGHTS=likes:10,comments:25`` style
        values and only replace the named keys.
        """
        settings = cls()
        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            current = getattr(settings, f.name)
            if isinstance(current, dict):
                setattr(settings, f.name, {**current, **_parse_weights(raw)})
            elif isinstance(current, int):
                setattr(settings, f.name, int(raw))
            else:
                setattr(settings, f.name, float(raw))
        return settings


def _parse_weights(raw: str) -> Dict[str, float]:
    weights: Dict[str, float] = {}
    for pair in raw.split(','):
        if ':' not in pair:
            continue
        name, value = pair.split(':', 1)
        weights[name.strip()] = float(value)
    return weights
