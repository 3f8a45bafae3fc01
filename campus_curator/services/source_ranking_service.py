"""
Source credibility scoring for news candidates.
Scores come from a tiered authority configuration keyed by domain, plus a
flat boost for premium provider source ids.
"""

import json
import logging
import os
from typing import Dict, List, Optional
from urllib.parse import urlparse

from campus_curator.models.content import RawCandidate


class SourceRankingService:
    """
    Maps an article's domain and provider source id to a credibility bonus.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)

        if config_path is None:
            config_path = os.path.join(
                os.path.dirname(os.path.dirname(__file__)),
                'config',
                'sources_authority.json'
            )

        self.authority_config = self._load_authority_config(config_path)
        self.domain_scores = self._build_domain_score_map()

        cfg = self.authority_config.get('config', {})
        self.premium_source_ids: List[str] = [s.lower() for s in cfg.get('premium_source_ids', [])]
        self.premium_source_boost: float = float(cfg.get('premium_source_boost', 15))

        self.logger.debug(f"Source ranking initialized with {len(self.domain_scores)} scored domains")

    def _load_authority_config(self, config_path: str) -> Dict:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load source authority config from {config_path}: {e}")
            return {
                'premium_tech': {'score': 20, 'sources': ['techcrunch.com', 'wired.com', 'arstechnica.com']},
                'config': {
                    'premium_source_ids': ['techcrunch', 'the-verge', 'wired', 'mit-technology-review'],
                    'premium_source_boost': 15,
                },
            }

    def _build_domain_score_map(self) -> Dict[str, float]:
        scores: Dict[str, float] = {}
        for tier_name, tier_data in self.authority_config.items():
            if tier_name == 'config':
                continue
            score = float(tier_data.get('score', 0))
            for source in tier_data.get('sources', []):
                scores[source.lower()] = max(score, scores.get(source.lower(), 0.0))
        return scores

    def _extract_domain(self, url: str) -> str:
        parsed = urlparse(url or '')
        domain = (parsed.netloc or parsed.path).split(':')[0].lower()
        if domain.startswith('www.'):
            domain = domain[4:]
        return domain

    def domain_score(self, url: str) -> float:
        """
        Best tier score for the URL's domain.

        Entries match the domain itself or any parent suffix, so ``edu``
        covers ``cs.stanford.edu`` and ``github.com`` covers
        ``gist.github.com``.
        """
        domain = self._extract_domain(url)
        if not domain:
            return 0.0
        parts = domain.split('.')
        best = 0.0
        for i in range(len(parts)):
            suffix = '.'.join(parts[i:])
            best = max(best, self.domain_scores.get(suffix, 0.0))
        return best

    def score_source(self, candidate: RawCandidate) -> float:
        """Credibility bonus for one candidate."""
        score = self.domain_score(candidate.url)
        source_key = (candidate.source_id or (candidate.source_name or '').lower().replace(' ', '-'))
        if source_key in self.premium_source_ids:
            score += self.premium_source_boost
        return score
