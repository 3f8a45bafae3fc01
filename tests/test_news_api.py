import asyncio

import aiohttp
import pytest

from campus_curator.models.settings import CurationSettings
from campus_curator.services.news_api import NewsAPIAuthError, NewsAPIService


class FakeResponse:
    def __init__(self, status=200, payload=None, headers=None):
        self.status = status
        self.payload = payload
        self.headers = headers or {}

    async def json(self):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None, headers=None):
        self.calls.append(params)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def ok(*titles):
    return FakeResponse(200, {
        "status": "ok",
        "articles": [
            {
                "title": title,
                "description": f"About {title}",
                "url": f"https://wired.com/{i}",
                "publishedAt": "2026-03-01T10:00:00Z",
                "urlToImage": None,
                "source": {"id": "wired", "name": "Wired"},
            }
            for i, title in enumerate(titles)
        ],
    })


def make_service(responses, **settings):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    session = FakeSession(responses)
    service = NewsAPIService(
        api_key="test-key",
        settings=CurationSettings(**settings),
        session=session,
        sleep=fake_sleep,
    )
    return service, session, sleeps


async def test_rate_limit_backs_off_then_succeeds():
    service, session, sleeps = make_service([FakeResponse(429), ok("GPU launch")])

    articles = await service.fetch_latest_articles(queries=["gpu"])

    assert [a.title for a in articles] == ["GPU launch"]
    assert len(session.calls) == 2
    assert len(sleeps) == 1
    assert 5.0 <= sleeps[0] < 6.0


async def test_retry_after_header_is_honored():
    service, _, sleeps = make_service([FakeResponse(429, headers={"Retry-After": "2"}), ok("A")])
    await service.fetch_latest_articles(queries=["q"])
    assert 2.0 <= sleeps[0] < 3.0


async def test_retry_after_is_capped_at_largest_backoff():
    service, _, sleeps = make_service([FakeResponse(429, headers={"Retry-After": "3600"}), ok("A")])
    await service.fetch_latest_articles(queries=["q"])
    # base 5s, 3 attempts: the longest regular wait is 20s
    assert 20.0 <= sleeps[0] < 21.0


async def test_rate_limit_exhaustion_gives_up_on_query():
    service, session, sleeps = make_service([FakeResponse(429)] * 3)

    assert await service.fetch_latest_articles(queries=["q"]) == []
    assert len(session.calls) == 3
    # no pause after the final attempt
    assert [int(d // 5) for d in sleeps] == [1, 2]


async def test_unauthorized_is_fatal():
    service, session, sleeps = make_service([FakeResponse(401), ok("never")])

    with pytest.raises(NewsAPIAuthError):
        await service.fetch_latest_articles(queries=["a", "b"])
    assert len(session.calls) == 1
    assert sleeps == []


async def test_transient_errors_retry():
    service, session, _ = make_service([
        aiohttp.ClientConnectionError("reset"),
        asyncio.TimeoutError(),
        FakeResponse(503),
        ok("Back online"),
    ], max_retries=4)

    articles = await service.fetch_latest_articles(queries=["q"])
    assert [a.title for a in articles] == ["Back online"]
    assert len(session.calls) == 4


async def test_provider_error_body_and_client_errors_skip_query():
    service, _, _ = make_service([
        FakeResponse(200, {"status": "error", "message": "bad query"}),
        FakeResponse(400),
        ok("Survivor"),
    ])

    articles = await service.fetch_latest_articles(queries=["a", "b", "c"])
    assert [a.title for a in articles] == ["Survivor"]


async def test_queries_run_sequentially_with_delay():
    service, session, sleeps = make_service([ok("One"), ok("Two", "Three")], api_delay_seconds=1.5)

    articles = await service.fetch_latest_articles(queries=["first", "second"])

    assert [a.title for a in articles] == ["One", "Two", "Three"]
    assert [c["q"] for c in session.calls] == ["first", "second"]
    assert sleeps == [1.5]
    assert "techcrunch" in session.calls[0]["sources"]
    assert articles[0].source_id == "wired"
    assert articles[0].published_at.tzinfo is not None


async def test_articles_without_title_or_url_are_dropped():
    response = FakeResponse(200, {"status": "ok", "articles": [
        {"title": None, "url": "https://x.io/1", "source": {}},
        {"title": "No url", "url": None, "source": {}},
        {"title": "Keeper", "url": "https://x.io/2", "source": {"name": "X"}},
    ]})
    service, _, _ = make_service([response])
    articles = await service.fetch_latest_articles(queries=["q"])
    assert [a.title for a in articles] == ["Keeper"]


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("NEWS_API_KEY", raising=False)
    with pytest.raises(ValueError):
        NewsAPIService()
