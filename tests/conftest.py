from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from campus_curator.models.content import ContentStatus, CuratedItem, RawCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.services.content_store import ContentStore
from campus_curator.services.relevance_filter import generate_content_hash

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeAIService:
    """
    Stands in for the Gemini ranker.

    ``picker(summaries, target)`` returns the ids to answer with; by default
    the last ``target`` ids in reverse so tests can tell AI order from input order.
    """

    def __init__(self, picker: Optional[Callable[[List[Dict[str, Any]], int], List[int]]] = None,
                 error: Optional[Exception] = None):
        self.picker = picker or (lambda summaries, target: [s['id'] for s in reversed(summaries)][:target])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def select_ids(self, summaries, target_count, prompt_key="article_selection", **context):
        self.calls.append({
            'summaries': summaries,
            'target_count': target_count,
            'prompt_key': prompt_key,
            'context': context,
        })
        if self.error is not None:
            raise self.error
        return self.picker(summaries, target_count)


class FakeClock:
    """Mutable monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings():
    return CurationSettings()


@pytest.fixture
async def store(tmp_path):
    s = ContentStore(str(tmp_path / "curator.db"))
    await s.initialize_db()
    return s


@pytest.fixture
def make_candidate():
    def _make(i: int = 0, title: Optional[str] = None, description: Optional[str] = None,
              published_at: Optional[datetime] = None, source_name: Optional[str] = "TechCrunch",
              url: Optional[str] = None, **kwargs) -> RawCandidate:
        return RawCandidate(
            title=title if title is not None else f"OpenAI releases developer platform update {i}",
            description=description if description is not None else
            "The new software gives developers faster machine learning tools in the cloud.",
            url=url or f"https://techcrunch.com/2026/03/story-{i}",
            source_name=source_name,
            published_at=published_at or (NOW - timedelta(hours=i + 1)),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_item():
    def _make(i: int = 0, created_at: Optional[datetime] = None, status: str = ContentStatus.APPROVED,
              **kwargs) -> CuratedItem:
        title = kwargs.pop('title', f"Stored story {i}")
        url = kwargs.pop('original_url', f"https://example.com/stored-{i}")
        return CuratedItem(
            title=title,
            excerpt=kwargs.pop('excerpt', f"Excerpt {i}"),
            body=kwargs.pop('body', f"Body {i}"),
            category=kwargs.pop('category', 'Tech Industry'),
            publisher=kwargs.pop('publisher', 'Example'),
            original_url=url,
            content_hash=generate_content_hash(title, url, 'Example'),
            created_at=created_at or (NOW - timedelta(hours=1)),
            published_at=kwargs.pop('published_at', None),
            status=status,
            **kwargs,
        )
    return _make
