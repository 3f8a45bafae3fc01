from datetime import timedelta

import pytest

from campus_curator.models.content import RawCandidate
from campus_curator.services.ai_service import AIServiceError
from campus_curator.services.scoring_selector import RECENCY_BOOST, ScoringSelector, recency_bonus
from tests.conftest import NOW, FakeAIService


def make_selector(ai=None, **kwargs):
    return ScoringSelector(ai_service=ai, clock=lambda: NOW, **kwargs)


async def test_ai_order_becomes_score_order(make_candidate):
    candidates = [make_candidate(i) for i in range(5)]
    ai = FakeAIService(picker=lambda summaries, target: [3, 1, 5])
    selector = make_selector(ai)

    selected = await selector.select_best(candidates, target=3)

    assert [s.candidate for s in selected] == [candidates[2], candidates[0], candidates[4]]
    assert [s.score for s in selected] == [3.0, 2.0, 1.0]
    assert selector.last_method == "ai"
    assert ai.calls[0]['prompt_key'] == "article_selection"
    assert ai.calls[0]['summaries'][0]['id'] == 1
    assert ai.calls[0]['summaries'][0]['source'] == "TechCrunch"


async def test_only_first_hundred_candidates_go_to_the_model(make_candidate):
    ai = FakeAIService()
    selector = make_selector(ai)
    await selector.select_best([make_candidate(i) for i in range(130)], target=20)
    assert len(ai.calls[0]['summaries']) == 100


async def test_ai_failure_falls_back_to_deterministic_scorer(make_candidate):
    # 120 raw → 40 pass the filter → the model is down
    candidates = [make_candidate(i, published_at=NOW - timedelta(hours=i % 30)) for i in range(40)]
    ai = FakeAIService(error=AIServiceError("Gemini unavailable"))
    selector = make_selector(ai)

    selected = await selector.select_best(candidates, target=40)

    assert selector.last_method == "fallback"
    assert 0 < len(selected) <= 40
    keys = [s.sort_key() for s in selected]
    assert keys == sorted(keys)


async def test_no_ai_service_uses_fallback(make_candidate):
    selector = make_selector()
    selected = await selector.select_best([make_candidate(i) for i in range(5)], target=3)
    assert len(selected) == 3
    assert selector.last_method == "fallback"


async def test_empty_model_answer_uses_fallback(make_candidate):
    selector = make_selector(FakeAIService(picker=lambda s, t: []))
    selected = await selector.select_best([make_candidate(i) for i in range(3)], target=2)
    assert len(selected) == 2
    assert selector.last_method == "fallback"


def test_recency_bonus_steps():
    assert recency_bonus(NOW - timedelta(hours=1), NOW) == RECENCY_BOOST
    assert recency_bonus(NOW - timedelta(hours=10), NOW) == pytest.approx(RECENCY_BOOST * 0.7)
    assert recency_bonus(NOW - timedelta(hours=17), NOW) == pytest.approx(RECENCY_BOOST * 0.4)
    assert recency_bonus(NOW - timedelta(hours=30), NOW) == 0
    assert recency_bonus(None, NOW) == 0


def test_fallback_prefers_ai_topics_and_fresh_news(make_candidate):
    selector = make_selector()
    ai_story = make_candidate(1, title="OpenAI unveils a new large language model for developers")
    gadget_story = make_candidate(2, title="A closer look at this year's smartwatch lineup",
                                  description="Battery life and display quality compared.",
                                  published_at=NOW - timedelta(days=3))
    assert selector.calculate_article_score(ai_story) > selector.calculate_article_score(gadget_story)


def test_quality_penalizes_shouting_titles():
    calm = RawCandidate(title="Startup raises funding to build developer tools", description="", url="u")
    loud = RawCandidate(title="STARTUP RAISES FUNDING TO BUILD DEVELOPER TOOLS!!", description="", url="u")
    assert ScoringSelector.calculate_quality_score(calm) > ScoringSelector.calculate_quality_score(loud)


async def test_select_from_previous_fallback_orders_by_engagement(make_item):
    a = make_item(1, likes=1, saves=9, created_at=NOW - timedelta(hours=2))
    b = make_item(2, likes=5, saves=0, created_at=NOW - timedelta(hours=3))
    c = make_item(3, likes=1, saves=9, created_at=NOW - timedelta(hours=1))
    selector = make_selector(FakeAIService(error=AIServiceError("down")))

    picks = await selector.select_from_previous(2, [a, b, c])
    assert picks == [b, c]


async def test_rank_summaries_renumbers_ids():
    ai = FakeAIService(picker=lambda summaries, target: [2])
    selector = make_selector(ai)

    indices = await selector.rank_summaries(
        [{'id': 40, 'title': 'x'}, {'id': 41, 'title': 'y'}], 1, "category_ranking", category="Events"
    )

    assert indices == [1]
    assert [s['id'] for s in ai.calls[0]['summaries']] == [1, 2]
    assert ai.calls[0]['context'] == {'category': 'Events'}
