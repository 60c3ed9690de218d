"""Integration tests for game API"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.main import create_app
from src.models.tmdb import ActorCredits, MovieCredits, MoviePage
from src.services.api_cache import TieredCache
from src.services.game_service import GameService
from src.services.kv_store import KeyValueStore

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
TOY_STORY = {"id": 862, "title": "Toy Story", "genre_ids": [16], "original_language": "en"}


@pytest.fixture
def memory_store():
    """辞書をバックエンドにしたストアのモック"""
    data: dict[str, str] = {}
    store = MagicMock(spec=KeyValueStore)
    store.get = AsyncMock(side_effect=lambda key: data.get(key))
    store.set = AsyncMock(side_effect=lambda key, value: data.__setitem__(key, value))
    store.delete = AsyncMock(side_effect=lambda key: data.pop(key, None))
    return store


@pytest.fixture
def mock_tmdb():
    """TMDB クライアントのモック"""
    client = MagicMock()
    client.discover_movies = AsyncMock(return_value=MoviePage(results=[MATRIX]))
    client.popular_actors = AsyncMock()
    client.movie_credits = AsyncMock(
        return_value=MovieCredits(id=603, cast=[{"id": 6384, "name": "Keanu Reeves"}])
    )
    client.actor_credits = AsyncMock(return_value=ActorCredits(id=6384, cast=[MATRIX, TOY_STORY]))
    client.fetch_and_cache_credits = AsyncMock()
    return client


@pytest.fixture
def client(settings, memory_store, mock_tmdb):
    """Test client for FastAPI app"""
    app = create_app()
    cache = TieredCache(memory_store, settings)
    app.state.game_service = GameService(mock_tmdb, cache, memory_store, settings)
    return TestClient(app)


def test_health(client):
    """ヘルスチェック"""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache_items"] == 0


def test_root(client):
    response = client.get("/")

    assert response.json()["name"] == "Movie Game API"


def test_game_round(client):
    """セッション開始から回答まで"""
    response = client.post("/api/v1/sessions", json={"difficulty": "easy"})
    assert response.status_code == 200
    session_id = response.json()["session_id"]

    movie = client.get(f"/api/v1/sessions/{session_id}/movie").json()
    assert movie["success"] is True
    assert movie["item"]["id"] == 603
    assert movie["item"]["type"] == "movie"

    answer = client.post(
        f"/api/v1/sessions/{session_id}/validate",
        json={"search": "Keanu Reves", "expected_type": "actor"},
    ).json()
    assert answer["valid"] is True
    assert answer["item"]["id"] == 6384

    # 使用済みの映画は回答にならない
    answer = client.post(
        f"/api/v1/sessions/{session_id}/validate",
        json={"search": "The Matrix", "expected_type": "movie"},
    ).json()
    assert answer["valid"] is False
    assert answer["error"] == "The Matrix is not a movie that Keanu Reeves appeared in"


def test_unknown_session_returns_404(client):
    """存在しないセッション"""
    assert client.get("/api/v1/sessions/missing/movie").status_code == 404
    response = client.post(
        "/api/v1/sessions/missing/validate", json={"search": "x", "expected_type": "actor"}
    )
    assert response.status_code == 404


def test_search_endpoints(client):
    """出演者・出演作の検索"""
    actors = client.get("/api/v1/movies/603/actors").json()
    assert [a["name"] for a in actors] == ["Keanu Reeves"]

    movies = client.get("/api/v1/actors/6384/movies").json()
    assert [m["id"] for m in movies] == [603, 862]

    movies = client.get("/api/v1/actors/6384/movies", params={"include_animated": False}).json()
    assert [m["id"] for m in movies] == [603]


def test_prefetch(client):
    response = client.post("/api/v1/prefetch", json={"item_id": 603, "item_type": "movie"})

    assert response.status_code == 200
    assert response.json()["success"] is True


def test_cache_endpoints(client):
    """キャッシュ統計と削除"""
    stats = client.get("/api/v1/cache/stats").json()
    assert stats["total_items"] == 0

    response = client.delete("/api/v1/cache")
    assert response.json()["success"] is True


def test_connection_endpoints(client):
    """接続の保存・取得・削除"""
    response = client.post(
        "/api/v1/players/p1/connections",
        json={"movie_id": 603, "actor_id": 6384, "movie_name": "The Matrix", "actor_name": "Keanu Reeves"},
    )
    assert response.json()["success"] is True

    connections = client.get("/api/v1/players/p1/connections").json()
    assert [(c["movie_id"], c["actor_id"], c["source"]) for c in connections] == [(603, 6384, "explicit")]

    refreshed = client.post("/api/v1/players/p1/connections/refresh").json()
    assert refreshed["success"] is True

    debug = client.get("/api/v1/players/p1/connections/debug").json()
    assert debug["connections"] == 1

    assert client.delete("/api/v1/players/p1/connections").json()["success"] is True
    assert client.get("/api/v1/players/p1/connections").json() == []


def test_history_endpoints(client):
    """発見履歴の追加と取得"""
    item = {"id": 6384, "name": "Keanu Reeves", "type": "actor", "details": {"popularity": 50.0}}

    response = client.post("/api/v1/players/p1/history", json=item)
    assert response.json()["success"] is True

    history = client.get("/api/v1/players/p1/history").json()
    assert [a["id"] for a in history["actors"]] == [6384]
    assert history["actors"][0]["rarity"] == "uncommon"
