"""
ゲームサービスのユニットテスト
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.game import Difficulty, GameFilters, GameItem, ItemType
from src.models.tmdb import ActorCredits, MovieCredits, MoviePage
from src.services.error_handler import StorageError, TMDBAPIError
from src.services.game_service import GameService

MATRIX = {
    "id": 603,
    "title": "The Matrix",
    "poster_path": "/matrix.jpg",
    "release_date": "2015-03-31",
    "popularity": 70.0,
    "vote_count": 24000,
    "genre_ids": [28, 878],
    "original_language": "en",
}


@pytest.fixture
def mock_client():
    """TMDB クライアントのモック"""
    client = MagicMock()
    client.discover_movies = AsyncMock(return_value=MoviePage(results=[MATRIX]))
    client.popular_actors = AsyncMock()
    client.movie_credits = AsyncMock(
        return_value=MovieCredits(
            id=603,
            cast=[
                {"id": 6384, "name": "Keanu Reeves", "profile_path": "/keanu.jpg"},
                {"id": 2975, "name": "Laurence Fishburne"},
            ],
        )
    )
    client.actor_credits = AsyncMock(
        return_value=ActorCredits(id=6384, cast=[MATRIX, {"id": 1578, "title": "Speed"}])
    )
    client.fetch_and_cache_credits = AsyncMock()
    return client


@pytest.fixture
def service(mock_client, cache, kv_store, settings):
    return GameService(mock_client, cache, kv_store, settings)


@pytest.mark.asyncio
async def test_start_session_resets_state(service):
    """セッションごとに使用済み ID と直近の記録が独立"""
    first = service.start_session(Difficulty.EASY)
    first.used_ids.add(1)
    second = service.start_session(Difficulty.HARD, GameFilters(include_foreign=False))

    assert second.used_ids == set()
    assert second.selection_state is not first.selection_state
    assert second.filters.include_foreign is False
    assert service.get_session(first.session_id) is first


@pytest.mark.asyncio
async def test_get_random_movie_marks_used(service):
    """出題した映画は使用済みになる"""
    session = service.start_session(Difficulty.EASY)

    result = await service.get_random_movie(session.session_id)

    assert result.success
    assert result.item.id == 603
    assert 603 in session.used_ids
    assert session.current_item.id == 603


@pytest.mark.asyncio
async def test_get_random_movie_unknown_session(service):
    """存在しないセッションは失敗結果"""
    result = await service.get_random_movie("missing")

    assert not result.success
    assert result.message == "Game session not found"


@pytest.mark.asyncio
async def test_get_random_movie_never_raises(service, mock_client):
    """下位層の予期しない例外は結果に変換"""
    mock_client.discover_movies.side_effect = RuntimeError("boom")
    session = service.start_session()

    result = await service.get_random_movie(session.session_id)

    assert not result.success
    assert result.message == "An unexpected error occurred. Please try again."


@pytest.mark.asyncio
async def test_validate_answer_advances_session(service):
    """正解は使用済みにして現在のアイテムにする"""
    session = service.start_session(Difficulty.EASY)
    await service.get_random_movie(session.session_id)

    result = await service.validate_answer(session.session_id, "keanu reeves", ItemType.ACTOR)

    assert result.valid
    assert 6384 in session.used_ids
    assert session.current_item.id == 6384

    # 同じ俳優は二度と正解にならない
    result = await service.validate_answer(
        session.session_id, "Keanu Reeves", ItemType.ACTOR, current_item=GameItem(
            id=603, name="The Matrix", type=ItemType.MOVIE
        )
    )
    assert not result.valid


@pytest.mark.asyncio
async def test_validate_answer_records_connection_for_player(service):
    """プレイヤー指定時は接続と発見履歴を記録"""
    session = service.start_session(Difficulty.EASY, player_id="p1")
    await service.get_random_movie(session.session_id)

    await service.validate_answer(session.session_id, "Keanu Reeves", ItemType.ACTOR)

    connections = await service.load_connections("p1")
    assert [c.pair_key for c in connections] == ["603-6384"]
    history = await service.get_player_history("p1")
    assert [m.id for m in history.movies] == [603]
    assert [a.id for a in history.actors] == [6384]


@pytest.mark.asyncio
async def test_validate_answer_without_current_item(service):
    """現在のアイテムがなければ失敗結果"""
    session = service.start_session()

    result = await service.validate_answer(session.session_id, "Keanu", ItemType.ACTOR)

    assert not result.valid
    assert result.error_code == "SYSTEM_ERROR"


@pytest.mark.asyncio
async def test_validate_answer_unknown_session(service):
    result = await service.validate_answer("missing", "Keanu", ItemType.ACTOR)

    assert result.error_code == "SESSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_search_helpers(service, mock_client):
    """検索は GameItem のリストを返し、失敗時は空"""
    actors = await service.search_actors_by_movie(603)
    movies = await service.search_movies_by_actor(6384)

    assert [a.name for a in actors] == ["Keanu Reeves", "Laurence Fishburne"]
    assert [m.id for m in movies] == [603, 1578]

    mock_client.movie_credits.side_effect = TMDBAPIError("down")
    assert await service.search_actors_by_movie(603) == []


@pytest.mark.asyncio
async def test_prefetch_game_data(service, mock_client, settings):
    """アイテムと候補上位のクレジットを先読み"""
    settings.prefetch_batch_size = 1

    result = await service.prefetch_game_data(603, ItemType.MOVIE)

    assert result.success
    assert result.data == {"prefetched": 2}
    mock_client.actor_credits.assert_awaited_once_with(6384)


@pytest.mark.asyncio
async def test_prefetch_failure_is_reported(service, mock_client):
    mock_client.actor_credits.side_effect = TMDBAPIError("TMDB API error: 500")

    result = await service.prefetch_game_data(6384, ItemType.ACTOR)

    assert not result.success
    assert result.message == "TMDB API error: 500"


@pytest.mark.asyncio
async def test_cache_stats_and_clear(service, cache):
    """キャッシュ統計と削除"""
    cache.set("/movie/603", {"id": 603}, "/movie/603")

    assert service.get_cache_stats().movie_details == 1

    result = await service.clear_cache()
    assert result.success
    assert service.get_cache_stats().total_items == 0


@pytest.mark.asyncio
async def test_connection_operations(service, mock_client):
    """接続の保存・手動追加・更新・削除"""
    saved = await service.save_connection("p1", 603, 6384, "The Matrix", "Keanu Reeves")
    assert saved.success

    manual = await service.add_manual_connection("p1", 603, 2975, "The Matrix", "Laurence Fishburne")
    assert manual.success

    mock_client.actor_credits.return_value = ActorCredits(id=31, cast=[])
    rejected = await service.add_manual_connection("p1", 603, 31, "The Matrix", "Tom Hanks")
    assert not rejected.success

    refreshed = await service.refresh_connections("p1")
    assert refreshed.success
    assert len(refreshed.data) == 2

    cleared = await service.clear_connections("p1")
    assert cleared.success
    assert await service.load_connections("p1") == []


@pytest.mark.asyncio
async def test_storage_failures_do_not_escape(service, kv_store):
    """ストアの例外は境界で捕捉"""
    kv_store.get = AsyncMock(side_effect=StorageError("Failed to read from key-value store"))

    assert await service.load_connections("p1") == []
    result = await service.refresh_connections("p1")
    assert not result.success
    assert result.message == "Failed to read from key-value store"


@pytest.mark.asyncio
async def test_record_discovery_caches_credits(service, mock_client):
    """発見履歴に追加し、クレジットをキャッシュ"""
    item = GameItem(id=6384, name="Keanu Reeves", type=ItemType.ACTOR)

    result = await service.record_discovery("p1", item)

    assert result.success
    mock_client.fetch_and_cache_credits.assert_awaited_once_with(6384, ItemType.ACTOR)
