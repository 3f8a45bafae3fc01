from datetime import timedelta

from campus_curator.models.content import ContentStatus, ScoredCandidate
from campus_curator.models.settings import CurationSettings
from campus_curator.pipeline.retention_curator import RetentionCurator
from campus_curator.services.relevance_filter import candidate_hash
from campus_curator.services.scoring_selector import ScoringSelector
from campus_curator.utils.error_monitoring import ErrorCategory, ErrorHandler
from tests.conftest import NOW


def scored(candidates):
    return [ScoredCandidate(candidate=c, score=float(len(candidates) - i), category='AI/ML')
            for i, c in enumerate(candidates)]


def make_curator(store, ai=None, **settings):
    cfg = CurationSettings(**settings)
    selector = ScoringSelector(ai_service=ai, settings=cfg, clock=lambda: NOW)
    return RetentionCurator(store, selector, settings=cfg, clock=lambda: NOW, error_handler=ErrorHandler())


async def test_twelve_fresh_plus_five_engaged_gives_seventeen(store, make_candidate, make_item):
    for i in range(5):
        await store.insert_news_item(make_item(i, likes=3 + i, created_at=NOW - timedelta(hours=10 + i)))
    curator = make_curator(store)

    result = await curator.ensure_target_count(scored([make_candidate(i) for i in range(12)]))

    assert len(result.items) == 17
    assert result.tiers_used['engaged_previous'] == 5
    assert result.shortfall == 3
    assert len({i.content_hash for i in result.items}) == 17
    history = curator.error_handler.error_history
    assert history[-1].category == ErrorCategory.FALLBACK_EXHAUSTED.value


async def test_exact_target_when_enough_exists(store, make_candidate, make_item):
    for i in range(30):
        await store.insert_news_item(make_item(i, created_at=NOW - timedelta(hours=1 + i)))
    curator = make_curator(store)

    result = await curator.ensure_target_count(scored([make_candidate(i) for i in range(12)]))

    assert len(result.items) == 20
    assert result.tiers_used == {'engaged_previous': 0, 'ai_reselected_previous': 8}
    assert result.shortfall == 0


async def test_surplus_selection_is_trimmed(store, make_candidate):
    curator = make_curator(store)
    result = await curator.ensure_target_count(scored([make_candidate(i) for i in range(25)]))
    assert len(result.items) == 20
    assert result.tiers_used == {}


async def test_stale_items_only_reachable_through_last_tier(store, make_candidate, make_item):
    for i in range(4):
        await store.insert_news_item(make_item(i, created_at=NOW - timedelta(days=3, hours=i)))
    curator = make_curator(store, target_articles=5)

    result = await curator.ensure_target_count(scored([make_candidate(0)]))

    assert len(result.items) == 5
    assert result.tiers_used['any_previous'] == 4


async def test_repeated_runs_never_store_duplicates(store, make_candidate):
    curator = make_curator(store, target_articles=5)
    batch = [make_candidate(i) for i in range(5)]

    first = await curator.run(scored(batch))
    second = await curator.run(scored(batch))

    assert len(first.saved) == 5
    assert second.saved == []
    assert second.duplicates_skipped == 5
    stored = await store.list_news_items()
    assert len(stored) == 5
    assert {s.content_hash for s in stored} == {candidate_hash(c) for c in batch}


async def test_batch_failure_falls_back_to_single_inserts(store, make_candidate):
    curator = make_curator(store, target_articles=4)
    broken = make_candidate(2)
    broken.title = None

    saved, duplicates, failed = await curator.save_batch(
        [curator.to_curated_item(s, NOW) for s in scored([make_candidate(0), make_candidate(1), broken, make_candidate(3)])]
    )

    assert len(saved) == 3
    assert failed == 1
    assert duplicates == 0
    assert len(await store.list_news_items()) == 3
    assert curator.error_handler.get_error_statistics()['total_errors'] == 1


async def test_nothing_saved_keeps_stale_content(store, make_candidate, make_item):
    stale = await store.insert_news_item(make_item(1, created_at=NOW - timedelta(hours=60)))
    curator = make_curator(store, target_articles=2)
    broken = [make_candidate(0), make_candidate(1)]
    for candidate in broken:
        candidate.title = None

    result = await curator.run(scored(broken))

    assert result.saved == []
    assert result.failed == 2
    assert result.evicted == {}
    assert [i.id for i in await store.list_news_items()] == [stale.id]

    # A run that stores something evicts as usual
    result = await curator.run(scored([make_candidate(5), make_candidate(6)]))
    assert len(result.saved) == 2
    assert result.evicted['approved'] == 1
    assert stale.id not in [i.id for i in await store.list_news_items()]


async def test_saved_items_get_rank_flags_and_importance(store, make_candidate):
    curator = make_curator(store, target_articles=6)
    result = await curator.run(scored([make_candidate(i) for i in range(6)]))

    flags = [(i.is_featured, i.is_trending) for i in result.saved]
    assert flags[:3] == [(True, True)] * 3
    assert flags[3:5] == [(False, True)] * 2
    assert flags[5] == (False, False)
    scores = [i.importance_score for i in result.saved]
    assert scores[0] > scores[-1]


async def test_fallback_values_fill_missing_fields(make_candidate):
    candidate = make_candidate(0, description="", image_url="ftp://nope")
    candidate.source_name = None
    item = RetentionCurator.to_curated_item(scored([candidate])[0], NOW)

    assert item.excerpt.startswith("Stay updated")
    assert item.publisher == "Tech News"
    assert item.image_url.startswith("https://")
    assert item.status == ContentStatus.APPROVED


async def test_eviction_by_status_and_age(store, make_item):
    await store.insert_news_item(make_item(1, created_at=NOW - timedelta(hours=49)))
    await store.insert_news_item(make_item(2, created_at=NOW - timedelta(hours=47)))
    await store.insert_news_item(make_item(3, created_at=NOW - timedelta(hours=25), status=ContentStatus.DRAFT))
    await store.insert_news_item(make_item(4, created_at=NOW - timedelta(hours=25), status=ContentStatus.REJECTED))
    await store.insert_news_item(make_item(5, created_at=NOW - timedelta(hours=2), status=ContentStatus.DRAFT))
    curator = make_curator(store)

    evicted = await curator.evict_expired()

    assert evicted == {'approved': 1, 'draft_rejected': 2}
    remaining = sorted(i.title for i in await store.list_news_items())
    assert remaining == ["Stored story 2", "Stored story 5"]
