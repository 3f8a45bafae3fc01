from datetime import datetime, timedelta, timezone

import pytest

from campus_curator.main import MainPipeline, PipelineConfig, PipelineError
from campus_curator.models.content import RawCandidate
from campus_curator.pipeline.category_curator import CURATION_CACHE_PREFIX
from campus_curator.services.news_api import NewsAPIAuthError
from campus_curator.services.ttl_cache import TTLCache
from campus_curator.utils.error_monitoring import ErrorCategory


class FakeNewsAPI:
    def __init__(self, articles=None, error=None):
        self.articles = articles or []
        self.error = error
        self.closed = False

    async def fetch_latest_articles(self, queries=None):
        if self.error is not None:
            raise self.error
        return list(self.articles)

    async def close_session(self):
        self.closed = True


def fresh_articles(count):
    now = datetime.now(timezone.utc)
    return [
        RawCandidate(
            title=f"Startup ships open source developer platform {i}",
            description="The software helps students build machine learning apps in the cloud.",
            url=f"https://techcrunch.com/2026/story-{i}",
            source_name="TechCrunch",
            published_at=now - timedelta(hours=i + 1),
        )
        for i in range(count)
    ]


def make_pipeline(store, news_api, **config):
    cfg = PipelineConfig(news_api_key="test", gemini_api_key="", database_path=store.db_path, **config)
    return MainPipeline(cfg, services={'store': store, 'news_api': news_api, 'ai': None})


async def seed_old_item(store, make_item):
    return await store.insert_news_item(
        make_item(1, created_at=datetime.now(timezone.utc) - timedelta(hours=72))
    )


async def test_full_run_saves_target_count(store):
    news = FakeNewsAPI(fresh_articles(25))
    pipeline = make_pipeline(store, news)
    await pipeline.initialize_services()
    cache: TTLCache = pipeline.services['cache']
    cache.set(f"{CURATION_CACHE_PREFIX}homepage", {'events': []})

    assert await pipeline.run_daily_pipeline() is True

    metrics = pipeline.get_metrics()
    assert metrics.items_fetched == 25
    assert metrics.items_selected == 20
    assert metrics.items_saved == 20
    assert metrics.selection_method == "fallback"
    assert metrics.end_time is not None
    assert len(await store.list_news_items()) == 20
    assert not cache.has(f"{CURATION_CACHE_PREFIX}homepage")
    assert news.closed


async def test_empty_fetch_leaves_store_untouched(store, make_item):
    old = await seed_old_item(store, make_item)
    pipeline = make_pipeline(store, FakeNewsAPI([]))

    assert await pipeline.run_daily_pipeline() is True

    assert pipeline.get_metrics().aborted_stage == "fetch"
    assert [i.id for i in await store.list_news_items()] == [old.id]


async def test_nothing_relevant_aborts_before_store(store, make_item):
    old = await seed_old_item(store, make_item)
    off_topic = RawCandidate(title="Pizza dough recipe for busy weekends", description="", url="https://x.io/1",
                             published_at=datetime.now(timezone.utc))
    pipeline = make_pipeline(store, FakeNewsAPI([off_topic]))

    saved = await pipeline.run_curation_pipeline()

    assert saved == []
    assert pipeline.get_metrics().aborted_stage == "filter"
    assert [i.id for i in await store.list_news_items()] == [old.id]


async def test_auth_failure_is_fatal_for_the_run(store, make_item):
    old = await seed_old_item(store, make_item)
    pipeline = make_pipeline(store, FakeNewsAPI(error=NewsAPIAuthError("401")))

    assert await pipeline.run_daily_pipeline() is False

    assert pipeline.error_handler.error_history[-1].category == ErrorCategory.FATAL.value
    assert [i.id for i in await store.list_news_items()] == [old.id]


async def test_failed_save_skips_eviction(store, make_item, monkeypatch):
    old = await seed_old_item(store, make_item)

    async def locked(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "insert_news_items", locked)
    monkeypatch.setattr(store, "insert_news_item", locked)
    pipeline = make_pipeline(store, FakeNewsAPI(fresh_articles(3)))

    assert await pipeline.run_curation_pipeline() == []

    metrics = pipeline.get_metrics()
    assert metrics.aborted_stage == "save"
    assert metrics.items_failed == 3
    assert metrics.items_evicted == 0
    assert [i.id for i in await store.list_news_items()] == [old.id]


async def test_dry_run_writes_nothing(store):
    pipeline = make_pipeline(store, FakeNewsAPI(fresh_articles(5)), dry_run=True)

    items = await pipeline.run_curation_pipeline()

    assert len(items) == 5
    assert await store.list_news_items() == []


async def test_missing_news_key_is_reported(store):
    cfg = PipelineConfig(news_api_key="", gemini_api_key="", database_path=store.db_path)
    pipeline = MainPipeline(cfg, services={'store': store})
    with pytest.raises(PipelineError):
        await pipeline.initialize_services()


def test_next_run_uses_chicago_time(store):
    pipeline = make_pipeline(store, FakeNewsAPI(), curation_hour=6)

    # 10:00 UTC is 04:00 in Chicago during standard time
    early = pipeline._calculate_next_run_time(datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc))
    assert (early.day, early.hour) == (15, 6)

    late = pipeline._calculate_next_run_time(datetime(2026, 1, 15, 13, 0, tzinfo=timezone.utc))
    assert (late.day, late.hour) == (16, 6)
    assert late.utcoffset() == timedelta(hours=-6)


async def test_health_check_without_ai(store):
    pipeline = make_pipeline(store, FakeNewsAPI())
    assert await pipeline.health_check() == {'ai': False, 'store': True}
