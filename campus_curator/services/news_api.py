"""
NewsAPI service for fetching tech news candidates.

Queries run strictly one after another with a fixed delay in between to stay
inside the provider's rate limits. Rate-limited requests back off
exponentially; an authentication failure aborts the whole fetch.
"""

import asyncio
import logging
import os
import random
import ssl
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
import certifi

from campus_curator.models.content import RawCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.utils.error_monitoring import CriticalError
from campus_curator.utils.news_constants import (
    NEWS_API_URL,
    TECH_QUERIES,
    TECH_SOURCES,
    USER_AGENT,
)

logger = logging.getLogger(__name__)


class NewsAPIAuthError(CriticalError):
    """The provider rejected the API key. Never retried."""
    pass


class NewsAPIService:
    """
    Fetches raw article candidates from NewsAPI's ``/v2/everything`` endpoint.

    Retry policy per query:
    - 429: wait ``rate_limit_base_delay * 2**attempt`` (or Retry-After), retry
    - 5xx, timeouts, connection errors: same backoff, retry
    - 401: raise NewsAPIAuthError
    - other 4xx / provider ``status: error``: give up on this query
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[CurationSettings] = None,
        sources: Optional[List[str]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self.api_key = api_key or os.getenv("NEWS_API_KEY")
        if not self.api_key:
            raise ValueError("NewsAPI key required. Set NEWS_API_KEY or pass api_key parameter.")

        self.settings = settings or CurationSettings()
        self.sources = sources if sources is not None else list(TECH_SOURCES)
        self.logger = logger

        self.headers = {
            "X-Api-Key": self.api_key,
            "User-Agent": USER_AGENT,
        }
        self.session = session
        self._owns_session = session is None
        self.timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
        self._sleep = sleep or asyncio.sleep

        self.max_retries = self.settings.max_retries
        self.base_delay = self.settings.rate_limit_base_delay
        self.page_size = 20

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session with certifi-backed SSL."""
        if self.session is None or self.session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=self.timeout,
                connector=connector
            )
            self._owns_session = True
        return self.session

    async def close_session(self):
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
            self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_session()
        return False

    async def fetch_latest_articles(self, queries: Optional[List[str]] = None) -> List[RawCandidate]:
        """
        Run every query in order and concatenate the results.

        Raises:
            NewsAPIAuthError: the provider answered 401
        """
        queries = queries if queries is not None else TECH_QUERIES
        session = await self._get_session()
        from_date = (datetime.now(timezone.utc) - timedelta(days=self.settings.recency_window_days))

        all_candidates: List[RawCandidate] = []
        for index, query in enumerate(queries):
            if index > 0:
                await self._sleep(self.settings.api_delay_seconds)
            candidates = await self._fetch_query(session, query, from_date)
            self.logger.info(f"📰 Query {index + 1}/{len(queries)} returned {len(candidates)} articles")
            all_candidates.extend(candidates)

        self.logger.info(f"✅ Fetched {len(all_candidates)} raw candidates from {len(queries)} queries")
        return all_candidates

    async def _fetch_query(
        self,
        session: aiohttp.ClientSession,
        query: str,
        from_date: datetime
    ) -> List[RawCandidate]:
        params = {
            "q": query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": str(self.page_size),
            "from": from_date.strftime('%Y-%m-%dT%H:%M:%S'),
        }
        if self.sources:
            params["sources"] = ",".join(self.sources)

        short_query = query[:60]
        for attempt in range(self.max_retries):
            try:
                async with session.get(NEWS_API_URL, params=params, headers=self.headers) as response:
                    if response.status == 401:
                        raise NewsAPIAuthError("NewsAPI rejected the API key (401 Unauthorized)")

                    if response.status == 429 or response.status >= 500:
                        await self._wait_before_retry(
                            attempt, f"HTTP {response.status}", short_query, response.headers.get('Retry-After')
                        )
                        continue

                    if response.status >= 400:
                        self.logger.error(f"HTTP {response.status} for query '{short_query}', skipping query")
                        return []

                    data = await response.json()

                if not isinstance(data, dict) or data.get("status") != "ok":
                    message = data.get("message") if isinstance(data, dict) else None
                    self.logger.error(f"NewsAPI error for query '{short_query}': {message or 'unexpected payload'}")
                    return []

                return [
                    RawCandidate.from_api(article)
                    for article in data.get("articles", [])
                    if isinstance(article, dict) and article.get("title") and article.get("url")
                ]

            except NewsAPIAuthError:
                raise
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                await self._wait_before_retry(attempt, type(e).__name__, short_query)

        self.logger.error(f"Giving up on query '{short_query}' after {self.max_retries} attempts")
        return []

    async def _wait_before_retry(
        self,
        attempt: int,
        reason: str,
        short_query: str,
        retry_after: Optional[str] = None
    ) -> None:
        if attempt >= self.max_retries - 1:
            self.logger.warning(f"{reason} for query '{short_query}' on the last attempt")
            return
        delay = self._backoff_delay(attempt, retry_after)
        self.logger.warning(
            f"{reason} for query '{short_query}' "
            f"(attempt {attempt + 1}/{self.max_retries}). Retrying after {delay:.1f}s..."
        )
        await self._sleep(delay)

    def _backoff_delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        """Exponential backoff; a Retry-After header is honored up to the largest backoff step."""
        ceiling = self.base_delay * (2 ** max(self.max_retries - 1, 0))
        if retry_after:
            try:
                return min(max(float(retry_after), 0.0), ceiling) + random.uniform(0, 1)
            except ValueError:
                pass
        return self.base_delay * (2 ** attempt) + random.uniform(0, 1)
