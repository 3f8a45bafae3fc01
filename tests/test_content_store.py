from datetime import timedelta

import pytest

from campus_curator.services.content_store import ContentStoreError
from tests.conftest import NOW


async def test_existing_hashes(store, make_item):
    saved = await store.insert_news_items([make_item(1), make_item(2)])
    assert all(i.id for i in saved)

    wanted = [saved[0].content_hash, "missing", saved[1].content_hash, saved[0].content_hash]
    assert await store.get_existing_hashes(wanted) == {saved[0].content_hash, saved[1].content_hash}
    assert await store.get_existing_hashes([]) == set()


async def test_failed_batch_writes_nothing(store, make_item):
    broken = make_item(2)
    broken.title = None
    with pytest.raises(Exception):
        await store.insert_news_items([make_item(1), broken])
    assert await store.list_news_items() == []


async def test_engaged_news_respects_window_and_exclusions(store, make_item):
    liked = await store.insert_news_item(make_item(1, likes=4))
    viewed = await store.insert_news_item(make_item(2, views=11))
    await store.insert_news_item(make_item(3, views=10))
    await store.insert_news_item(make_item(4, likes=9, created_at=NOW - timedelta(hours=60)))
    excluded = await store.insert_news_item(make_item(5, likes=50))

    found = await store.find_engaged_news(NOW - timedelta(hours=48), {excluded.content_hash}, 10)

    assert [i.id for i in found] == [liked.id, viewed.id]


async def test_news_round_trip(store, make_item):
    item = make_item(1, published_at=NOW - timedelta(days=1), is_top3=True, importance_score=42.5)
    saved = await store.insert_news_item(item)

    loaded = await store.get_news_item(saved.id)

    assert loaded.created_at == item.created_at
    assert loaded.published_at == item.published_at
    assert loaded.is_top3 is True
    assert loaded.importance_score == 42.5


async def test_update_flags(store, make_item):
    a = await store.insert_news_item(make_item(1))
    b = await store.insert_news_item(make_item(2))
    await store.update_news_flags([(a.id, True, True), (b.id, False, True)])

    assert (await store.get_news_item(a.id)).is_featured
    assert not (await store.get_news_item(b.id)).is_featured
    assert (await store.get_news_item(b.id)).is_trending


async def test_unknown_table_and_counter_rejected(store):
    with pytest.raises(ContentStoreError):
        await store.fetch_recent_rows("users; DROP TABLE news_items", "active", 1)
    event_id = await store.add_event("Hack night", NOW)
    with pytest.raises(ContentStoreError):
        await store.increment_counter("events", event_id, "downloads")
    with pytest.raises(ContentStoreError):
        await store.add_event("Bad", NOW, downloads=3)


async def test_statistics(store, make_item):
    await store.insert_news_item(make_item(1, category='AI/ML'))
    await store.insert_news_item(make_item(2, category='AI/ML'))
    await store.insert_news_item(make_item(3, status='draft'))
    await store.add_event("Career fair", NOW)

    stats = await store.get_statistics()

    assert stats['total_news'] == 3
    assert stats['news_by_status'] == {'approved': 2, 'draft': 1}
    assert stats['news_by_category'] == {'AI/ML': 2}
    assert stats['events'] == 1
    assert stats['social_posts'] == 0
