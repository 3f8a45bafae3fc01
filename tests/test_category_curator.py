from datetime import timedelta

import pytest

from campus_curator.models.settings import CurationSettings
from campus_curator.pipeline.category_curator import CategoryCurator
from campus_curator.services.ai_service import AIServiceError
from campus_curator.services.content_categories import CATEGORY_REGISTRY, ContentCategory, get_category
from campus_curator.services.scoring_selector import ScoringSelector
from campus_curator.services.ttl_cache import TTLCache
from tests.conftest import NOW, FakeAIService, FakeClock


async def seed_events(store, counters):
    ids = []
    for i, values in enumerate(counters):
        ids.append(await store.add_event(f"Event {i}", NOW - timedelta(hours=i + 1), **values))
    return ids


def make_curator(store, ai=None, categories=None, cache=None):
    selector = ScoringSelector(ai_service=ai, clock=lambda: NOW)
    return CategoryCurator(
        store, selector, cache=cache or TTLCache(clock=FakeClock()),
        settings=CurationSettings(), categories=categories,
    )


async def test_ai_ranking_sets_top3_and_featured(store):
    ids = await seed_events(store, [{}, {}, {}, {}, {}])
    # candidates arrive newest first: ids[0] is summary 1
    ai = FakeAIService(picker=lambda summaries, target: [4, 2, 5])
    curator = make_curator(store, ai, categories=[CATEGORY_REGISTRY['events']])

    rankings = await curator.curate_featured_content()

    events = rankings['events']
    assert events.method == "ai"
    assert [e['id'] for e in events.top] == [ids[3], ids[1], ids[4]]
    assert events.featured['id'] == ids[3]
    assert ai.calls[0]['prompt_key'] == "category_ranking"
    assert ai.calls[0]['context'] == {'category': 'Events'}

    top3 = await store.fetch_flagged_rows('events', 'is_top3', 'published', 10)
    featured = await store.fetch_flagged_rows('events', 'is_featured', 'published', 10)
    assert {r['id'] for r in top3} == {ids[3], ids[1], ids[4]}
    assert [r['id'] for r in featured] == [ids[3]]


async def test_engagement_fallback_when_model_fails(store):
    ids = await seed_events(store, [{'likes': 1}, {'comments': 3}, {}, {'likes': 2}])
    curator = make_curator(store, FakeAIService(error=AIServiceError("down")),
                           categories=[CATEGORY_REGISTRY['events']])

    rankings = await curator.curate_featured_content()

    assert rankings['events'].method == "engagement"
    assert [e['id'] for e in rankings['events'].top] == [ids[1], ids[3], ids[0]]


async def test_rerun_clears_previous_flags(store):
    ids = await seed_events(store, [{'likes': 5}, {'likes': 4}, {'likes': 3}, {}])
    curator = make_curator(store, categories=[CATEGORY_REGISTRY['events']])
    await curator.curate_featured_content()

    await store.increment_counter('events', ids[3], 'likes', 10)
    await curator.curate_featured_content()

    top3 = await store.fetch_flagged_rows('events', 'is_top3', 'published', 10)
    assert {r['id'] for r in top3} == {ids[3], ids[0], ids[1]}
    featured = await store.fetch_flagged_rows('events', 'is_featured', 'published', 10)
    assert [r['id'] for r in featured] == [ids[3]]


async def test_one_failing_category_does_not_block_others(store, make_item):
    await seed_events(store, [{'likes': 1}, {'likes': 2}])
    await store.add_social_post("u1", NOW - timedelta(hours=1), body="Hackathon this weekend", likes=3)
    await store.insert_news_item(make_item(1, likes=1))
    broken = ContentCategory(name='resources', label='Resources', table='resources', live_status='active')
    categories = [CATEGORY_REGISTRY['news'], broken, CATEGORY_REGISTRY['events'], CATEGORY_REGISTRY['social']]
    curator = make_curator(store, categories=categories)

    rankings = await curator.curate_featured_content()

    assert rankings['resources'].error is not None
    assert rankings['resources'].top == []
    for name in ('news', 'events', 'social'):
        assert rankings[name].error is None
        assert rankings[name].top
    stats = curator.error_handler.get_error_statistics()
    assert stats['categories'] == {'partial': 1}


async def test_empty_category_clears_flags(store):
    curator = make_curator(store, categories=[CATEGORY_REGISTRY['social']])
    rankings = await curator.curate_featured_content()
    assert rankings['social'].top == []
    assert rankings['social'].featured is None


async def test_homepage_is_cached_until_curation(store):
    await seed_events(store, [{'likes': 2}, {'likes': 1}])
    curator = make_curator(store, categories=[CATEGORY_REGISTRY['events']])

    assert await curator.get_homepage_content() == {'events': []}
    await store.apply_category_rankings('events', [1], 1)
    assert await curator.get_homepage_content() == {'events': []}

    await curator.curate_featured_content()
    homepage = await curator.get_homepage_content()
    assert [e['id'] for e in homepage['events']] == [1, 2]
    assert homepage['events'][0]['is_top3'] is True


async def test_featured_content_is_most_liked(store):
    ids = await seed_events(store, [{'likes': 1}, {'likes': 7}])
    curator = make_curator(store, categories=[CATEGORY_REGISTRY['events'], CATEGORY_REGISTRY['social']])

    featured = await curator.get_featured_content()

    assert featured['events']['id'] == ids[1]
    assert featured['social'] is None


async def test_engagement_actions_map_to_counters(store):
    events = get_category('events')
    [event_id] = await seed_events(store, [{}])

    await events.record_engagement(store, event_id, 'like')
    await events.record_engagement(store, event_id, 'comment', 2)
    await events.record_engagement(store, event_id, 'like', -5)

    [row] = await store.fetch_recent_rows('events', 'published', 1)
    assert row['likes'] == 0
    assert row['comments'] == 2
    with pytest.raises(ValueError):
        events.counter_field('repost')
    with pytest.raises(ValueError):
        get_category('podcasts')
