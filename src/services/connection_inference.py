"""
接続推論サービス

キャッシュ済みのクレジットと発見履歴を突き合わせ、プレイヤーが両方を
発見している映画と俳優の組を接続として推論する。
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any, Literal, Optional

from pydantic import ValidationError

from src.config.logging import get_logger
from src.models.game import Connection, ConnectionSource, PlayerHistory, connection_key
from src.models.tmdb import Actor, ActorCredits, Movie, MovieCredits
from src.services.api_cache import PERSIST_KEY, TieredCache
from src.services.error_handler import ApplicationError
from src.services.kv_store import KeyValueStore
from src.services.player_history import PlayerHistoryService
from src.services.tmdb_client import TMDBClient

logger = get_logger(__name__)

CONNECTIONS_KEY_PREFIX = "movieGameConnections"


def connections_key(player_id: str) -> str:
    """プレイヤーごとの保存キー"""
    return f"{CONNECTIONS_KEY_PREFIX}:{player_id}"


def safe_parse_json(text: Optional[str], fallback: Any = None) -> Any:
    """JSON を解析し、失敗した場合は fallback を返す"""
    if not text:
        return fallback
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Error parsing JSON: {str(e)}")
        return fallback


def extract_id(key: str, kind: Literal["movie", "person"]) -> Optional[int]:
    """キャッシュキーから ID を抽出

    Args:
        key: キャッシュキー（例: /movie/603/credits?language=en-US）
        kind: "movie" または "person"

    Returns:
        ID（見つからない場合は None）
    """
    path = key.split("?", 1)[0].split("|", 1)[0]
    parts = path.split("/")
    if kind not in parts:
        return None
    index = parts.index(kind)
    if index + 1 >= len(parts):
        return None
    try:
        return int(parts[index + 1])
    except ValueError:
        return None


def _is_movie_credits_key(key: str) -> bool:
    return "/movie/" in key and "/credits" in key


def _is_actor_credits_key(key: str) -> bool:
    return "/person/" in key and "/movie_credits" in key


def infer_connections(
    cache_entries: Mapping[str, Any],
    discovery_history: PlayerHistory,
    existing_connections: Iterable[Connection],
) -> list[Connection]:
    """キャッシュと発見履歴から接続を推論

    既存の接続はそのまま保持し、まだない (映画, 俳優) の組だけを
    source=inferred として末尾に追加する。入力が壊れている場合は既存の接続を
    そのまま返す。

    Args:
        cache_entries: キャッシュキー → ペイロード
        discovery_history: 発見履歴
        existing_connections: 既存の接続

    Returns:
        既存の接続と新たに推論した接続
    """
    connections = list(existing_connections)

    try:
        discovered_movies = {item.id: item for item in discovery_history.movies}
        discovered_actors = {item.id: item for item in discovery_history.actors}
    except AttributeError:
        logger.warning("Discovery history is unreadable, skipping inference")
        return connections

    if not discovered_movies or not discovered_actors or not cache_entries:
        return connections

    movie_cast: dict[int, set[int]] = {}
    actor_filmography: dict[int, set[int]] = {}
    movie_names: dict[int, str] = {}
    actor_names: dict[int, str] = {}

    for key, payload in cache_entries.items():
        if not isinstance(key, str) or not isinstance(payload, dict):
            continue

        try:
            if _is_movie_credits_key(key):
                movie_id = extract_id(key, "movie")
                if movie_id is None or movie_id not in discovered_movies:
                    continue
                credits = MovieCredits.model_validate(payload)
                cast = movie_cast.setdefault(movie_id, set())
                for actor in credits.cast:
                    cast.add(actor.id)
                    if actor.name:
                        actor_names[actor.id] = actor.name

            elif _is_actor_credits_key(key):
                actor_id = extract_id(key, "person")
                if actor_id is None or actor_id not in discovered_actors:
                    continue
                filmography = ActorCredits.model_validate(payload)
                movies = actor_filmography.setdefault(actor_id, set())
                for movie in filmography.cast:
                    movies.add(movie.id)
                    if movie.title:
                        movie_names[movie.id] = movie.title

            elif "/movie/" in key and payload.get("title"):
                movie_id = extract_id(key, "movie")
                if movie_id is not None:
                    movie_names[movie_id] = Movie.model_validate(payload).title

            elif "/person/" in key and payload.get("name"):
                actor_id = extract_id(key, "person")
                if actor_id is not None:
                    actor_names[actor_id] = Actor.model_validate(payload).name

        except ValidationError:
            logger.debug(f"Skipping malformed cache payload: {key}")

    known = {connection.pair_key for connection in connections}
    added = 0

    def add(movie_id: int, actor_id: int) -> None:
        nonlocal added
        pair = connection_key(movie_id, actor_id)
        if pair in known:
            return
        movie_name = discovered_movies[movie_id].name or movie_names.get(movie_id) or f"Movie {movie_id}"
        actor_name = discovered_actors[actor_id].name or actor_names.get(actor_id) or f"Actor {actor_id}"
        connections.append(
            Connection(
                movie_id=movie_id,
                actor_id=actor_id,
                movie_name=movie_name,
                actor_name=actor_name,
                source=ConnectionSource.INFERRED,
            )
        )
        known.add(pair)
        added += 1

    for movie_id in discovered_movies:
        for actor_id in sorted(movie_cast.get(movie_id, ())):
            if actor_id in discovered_actors:
                add(movie_id, actor_id)

    for actor_id in discovered_actors:
        for movie_id in sorted(actor_filmography.get(actor_id, ())):
            if movie_id in discovered_movies:
                add(movie_id, actor_id)

    logger.info(f"Added {added} new inferred connections ({len(connections)} total)")
    return connections


class ConnectionService:
    """接続の保存・推論・検証"""

    def __init__(
        self,
        store: KeyValueStore,
        cache: TieredCache,
        client: TMDBClient,
        history: PlayerHistoryService,
    ):
        self.store = store
        self.cache = cache
        self.client = client
        self.history = history

    async def _load_saved(self, player_id: str) -> list[Connection]:
        """保存済みの接続を読み込む（壊れた要素は読み飛ばす）"""
        saved = safe_parse_json(await self.store.get(connections_key(player_id)), [])
        if not isinstance(saved, list):
            return []

        connections = []
        for item in saved:
            try:
                connections.append(Connection.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed saved connection", extra={"player_id": player_id})
        return connections

    async def _save(self, player_id: str, connections: list[Connection]) -> None:
        payload = json.dumps([connection.model_dump(mode="json") for connection in connections])
        await self.store.set(connections_key(player_id), payload)

    async def _cache_payloads(self) -> dict[str, Any]:
        """推論に使うキャッシュのペイロード（メモリが空なら永続化層から）"""
        entries = {key: entry.value for key, entry in self.cache.snapshot().items()}
        if entries:
            return entries

        persisted = safe_parse_json(await self.store.get(PERSIST_KEY), {})
        if not isinstance(persisted, dict):
            return {}
        return {
            key: item.get("value")
            for key, item in persisted.items()
            if isinstance(item, dict)
        }

    async def load_connections(self, player_id: str) -> list[Connection]:
        """保存済みの接続を読み込み、推論した接続を追加して保存

        Args:
            player_id: プレイヤー ID

        Returns:
            すべての接続
        """
        existing = await self._load_saved(player_id)
        history = await self.history.load(player_id)
        connections = infer_connections(await self._cache_payloads(), history, existing)

        if len(connections) != len(existing):
            await self._save(player_id, connections)
        return connections

    async def save_connection(
        self,
        player_id: str,
        movie_id: int,
        actor_id: int,
        movie_name: str,
        actor_name: str,
        game_id: Optional[str] = None,
        source: ConnectionSource = ConnectionSource.EXPLICIT,
    ) -> bool:
        """接続を保存

        同じ組が推論で登録済みの場合は作成元だけを更新する。

        Returns:
            保存内容が変わった場合は True
        """
        connections = await self._load_saved(player_id)
        pair = connection_key(movie_id, actor_id)
        current = next((c for c in connections if c.pair_key == pair), None)

        if current is not None:
            if current.source != ConnectionSource.INFERRED or source == ConnectionSource.INFERRED:
                return False
            current.source = source
        else:
            connections.append(
                Connection(
                    movie_id=movie_id,
                    actor_id=actor_id,
                    movie_name=movie_name,
                    actor_name=actor_name,
                    game_id=game_id,
                    source=source,
                )
            )

        await self._save(player_id, connections)
        logger.info(
            f"Saved {source.value} connection {pair}", extra={"player_id": player_id}
        )
        return True

    async def validate_connection(self, movie_id: int, actor_id: int, force_refresh: bool = False) -> bool:
        """映画のクレジットまたは俳優の出演作から接続が正しいか確認"""
        try:
            credits = await self.client.movie_credits(movie_id, force_refresh=force_refresh)
            if any(actor.id == actor_id for actor in credits.cast):
                return True
        except ApplicationError as e:
            logger.warning(f"Movie credits unavailable for {movie_id}: {e.message}")

        try:
            filmography = await self.client.actor_credits(actor_id, force_refresh=force_refresh)
            if any(movie.id == movie_id for movie in filmography.cast):
                return True
        except ApplicationError as e:
            logger.warning(f"Actor credits unavailable for {actor_id}: {e.message}")

        return False

    async def add_manual_connection(
        self,
        player_id: str,
        movie_id: int,
        actor_id: int,
        movie_name: str,
        actor_name: str,
    ) -> bool:
        """手動で接続を追加（TMDB のクレジットで確認できた場合のみ）

        Returns:
            接続が確認できた場合は True
        """
        if not await self.validate_connection(movie_id, actor_id, force_refresh=True):
            logger.info(
                f"Manual connection {connection_key(movie_id, actor_id)} could not be verified",
                extra={"player_id": player_id},
            )
            return False

        await self.save_connection(
            player_id, movie_id, actor_id, movie_name, actor_name, source=ConnectionSource.MANUAL
        )
        return True

    async def refresh_all_connections(self, player_id: str) -> list[Connection]:
        """既存の接続を保持したまま推論をやり直す"""
        logger.info("Refreshing connections", extra={"player_id": player_id})
        return await self.load_connections(player_id)

    async def clear_connections(self, player_id: str) -> None:
        """接続をすべて削除"""
        await self.store.delete(connections_key(player_id))
        logger.info("Connections cleared", extra={"player_id": player_id})

    async def debug_connection_data(self, player_id: str) -> dict[str, Any]:
        """推論の入力データの概要"""
        history = await self.history.load(player_id)
        payloads = await self._cache_payloads()
        connections = await self._load_saved(player_id)

        return {
            "history_movies": len(history.movies),
            "history_actors": len(history.actors),
            "cache_entries": len(payloads),
            "movie_credit_entries": sum(1 for key in payloads if _is_movie_credits_key(key)),
            "actor_credit_entries": sum(1 for key in payloads if _is_actor_credits_key(key)),
            "connections": len(connections),
            "connections_by_source": {
                source.value: sum(1 for c in connections if c.source == source)
                for source in ConnectionSource
            },
        }
