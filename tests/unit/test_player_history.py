"""
発見履歴のユニットテスト
"""

import pytest

from src.models.game import GameItem, ItemType, Rarity
from src.services.player_history import PlayerHistoryService, history_key


def movie_item(movie_id: int, name: str = "", **details) -> GameItem:
    return GameItem(id=movie_id, name=name or f"Movie {movie_id}", type=ItemType.MOVIE, details=details)


def actor_item(actor_id: int, popularity: float = 50.0) -> GameItem:
    return GameItem(
        id=actor_id, name=f"Actor {actor_id}", type=ItemType.ACTOR, details={"popularity": popularity}
    )


@pytest.fixture
def history_service(kv_store, settings):
    return PlayerHistoryService(kv_store, settings)


@pytest.mark.asyncio
async def test_add_item_new_and_repeat(history_service):
    """新規は先頭に追加し、既存は回数を加算して先頭に移動"""
    await history_service.add_item("p1", movie_item(1))
    await history_service.add_item("p1", movie_item(2))
    history = await history_service.add_item("p1", movie_item(1))

    assert [m.id for m in history.movies] == [1, 2]
    assert history.movies[0].count == 2
    assert history.movies[1].count == 1
    assert history.actors == []


@pytest.mark.asyncio
async def test_add_item_trims_to_max(history_service, settings):
    """上限件数を超えた古いアイテムは削除"""
    settings.max_history_items = 3

    for i in range(5):
        await history_service.add_item("p1", actor_item(i))

    history = await history_service.load("p1")
    assert [a.id for a in history.actors] == [4, 3, 2]


@pytest.mark.asyncio
async def test_add_item_calculates_rarity(history_service):
    """レアリティを詳細から算出"""
    history = await history_service.add_item("p1", actor_item(7, popularity=2.0))

    assert history.actors[0].rarity == Rarity.LEGENDARY


@pytest.mark.asyncio
async def test_is_new_item(history_service):
    """履歴にないアイテムかどうか"""
    assert await history_service.is_new_item("p1", movie_item(1))

    await history_service.add_item("p1", movie_item(1))

    assert not await history_service.is_new_item("p1", movie_item(1))
    # 種別が違えば別のアイテム
    assert await history_service.is_new_item("p1", actor_item(1))


@pytest.mark.asyncio
async def test_most_used_and_recent(history_service):
    """使用回数順と最近使用した順"""
    for movie_id in (1, 2, 2, 3, 2, 1):
        await history_service.add_item("p1", movie_item(movie_id))

    most_used = await history_service.get_most_used_items("p1", ItemType.MOVIE, limit=2)
    recent = await history_service.get_recent_items("p1", ItemType.MOVIE)

    assert [m.id for m in most_used] == [2, 1]
    assert [m.id for m in recent] == [1, 2, 3]


@pytest.mark.asyncio
async def test_items_by_rarity(history_service):
    """レアリティで絞り込み・並び替え"""
    await history_service.add_item("p1", actor_item(1, popularity=90.0))
    await history_service.add_item("p1", actor_item(2, popularity=1.0))
    await history_service.add_item("p1", actor_item(3, popularity=25.0))

    legendary = await history_service.get_items_by_rarity("p1", ItemType.ACTOR, Rarity.LEGENDARY)
    ordered = await history_service.get_items_by_rarity("p1", ItemType.ACTOR)

    assert [a.id for a in legendary] == [2]
    assert [a.rarity for a in ordered] == [Rarity.LEGENDARY, Rarity.RARE, Rarity.COMMON]


@pytest.mark.asyncio
async def test_corrupt_history_loads_empty(history_service, kv_store):
    """壊れた履歴は空として扱う"""
    await kv_store.set(history_key("p1"), "not json")

    history = await history_service.load("p1")

    assert history.movies == []
    assert history.actors == []


@pytest.mark.asyncio
async def test_clear(history_service):
    """履歴を削除"""
    await history_service.add_item("p1", movie_item(1))

    await history_service.clear("p1")

    assert (await history_service.load("p1")).movies == []
