"""
ゲームサービス

UI 層に公開する操作の境界。下位層の例外はここですべて捕捉し、
OperationResult / ValidationResult などの結果に変換する。
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from src.config.logging import get_logger, get_logger_with_context
from src.config.settings import Settings, get_settings
from src.models.game import (
    Connection,
    Difficulty,
    GameFilters,
    GameItem,
    ItemType,
    OperationResult,
    PlayerHistory,
    ValidationResult,
)
from src.services.answer_validation import UNEXPECTED_ERROR_MESSAGE, AnswerValidator
from src.services.api_cache import CacheStats, TieredCache
from src.services.connection_inference import ConnectionService
from src.services.error_handler import (
    ApplicationError,
    ErrorCode,
    SessionNotFoundError,
    handle_error,
)
from src.services.filters import passes_content_filters
from src.services.kv_store import KeyValueStore
from src.services.player_history import PlayerHistoryService
from src.services.resource_selector import ResourceSelector, SelectionState
from src.services.tmdb_client import TMDBClient

logger = get_logger(__name__)


@dataclass
class GameSession:
    """ゲームセッション"""

    session_id: str
    difficulty: Difficulty = Difficulty.MEDIUM
    filters: GameFilters = field(default_factory=GameFilters)
    player_id: Optional[str] = None
    used_ids: set[int] = field(default_factory=set)
    selection_state: SelectionState = field(default_factory=SelectionState)
    current_item: Optional[GameItem] = None

    def use(self, item: GameItem) -> None:
        """アイテムを使用済みにして現在のアイテムにする"""
        self.used_ids.add(item.id)
        self.current_item = item


def _failure(error: Exception, action: str, context: Optional[dict[str, Any]] = None) -> OperationResult:
    """例外を失敗結果に変換"""
    response = handle_error(error, {"action": action, **(context or {})})
    if isinstance(error, ApplicationError):
        return OperationResult(success=False, message=response.message)
    return OperationResult(success=False, message=UNEXPECTED_ERROR_MESSAGE)


class GameService:
    """ゲームの利用者向け操作"""

    def __init__(
        self,
        client: TMDBClient,
        cache: TieredCache,
        store: KeyValueStore,
        settings: Settings | None = None,
        selector: ResourceSelector | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.cache = cache
        self.store = store
        self.selector = selector or ResourceSelector(client, self.settings)
        self.validator = AnswerValidator(client, self.settings)
        self.history = PlayerHistoryService(store, self.settings)
        self.connections = ConnectionService(store, cache, client, self.history)
        self._sessions: dict[str, GameSession] = {}

    # セッション

    def start_session(
        self,
        difficulty: Difficulty = Difficulty.MEDIUM,
        filters: GameFilters | None = None,
        player_id: Optional[str] = None,
    ) -> GameSession:
        """新しいゲームセッションを開始（使用済み ID はここでのみリセットされる）"""
        session = GameSession(
            session_id=uuid.uuid4().hex,
            difficulty=difficulty,
            filters=filters or GameFilters(),
            player_id=player_id,
            selection_state=SelectionState.from_settings(self.settings),
        )
        self._sessions[session.session_id] = session
        logger.info(
            f"Game session started (difficulty={difficulty.value})",
            extra={"session_id": session.session_id, "player_id": player_id},
        )
        return session

    def get_session(self, session_id: str) -> GameSession:
        """セッションを取得

        Raises:
            SessionNotFoundError: セッションが存在しない場合
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError("Game session not found", details={"session_id": session_id})
        return session

    def end_session(self, session_id: str) -> bool:
        """セッションを破棄"""
        return self._sessions.pop(session_id, None) is not None

    # 出題

    async def get_random_movie(self, session_id: str) -> OperationResult:
        """ランダムな映画を選出して現在のアイテムにする"""
        try:
            session = self.get_session(session_id)
            item = await self.selector.select_movie(
                session.difficulty, session.filters, session.used_ids, session.selection_state
            )
            session.use(item)
            await self._record_selection(session, item)
            return OperationResult(success=True, message=item.name, item=item)
        except Exception as e:
            return _failure(e, "get_random_movie", {"session_id": session_id})

    async def get_random_actor(self, session_id: str) -> OperationResult:
        """ランダムな俳優を選出して現在のアイテムにする"""
        try:
            session = self.get_session(session_id)
            item = await self.selector.select_actor(
                session.difficulty, session.used_ids, session.selection_state
            )
            session.use(item)
            await self._record_selection(session, item)
            return OperationResult(success=True, message=item.name, item=item)
        except Exception as e:
            return _failure(e, "get_random_actor", {"session_id": session_id})

    # 検索

    async def search_actors_by_movie(self, movie_id: int) -> list[GameItem]:
        """映画の出演者一覧（取得に失敗した場合は空）"""
        try:
            credits = await self.client.movie_credits(movie_id)
        except Exception as e:
            handle_error(e, {"action": "search_actors_by_movie", "movie_id": movie_id})
            return []

        base_url = self.settings.tmdb_image_base_url
        return [GameItem.from_actor(actor, base_url) for actor in credits.cast]

    async def search_movies_by_actor(
        self, actor_id: int, filters: GameFilters | None = None
    ) -> list[GameItem]:
        """俳優の出演作一覧（フィルター適用、取得に失敗した場合は空）"""
        try:
            credits = await self.client.actor_credits(actor_id)
        except Exception as e:
            handle_error(e, {"action": "search_movies_by_actor", "actor_id": actor_id})
            return []

        filters = filters or GameFilters()
        base_url = self.settings.tmdb_image_base_url
        return [
            GameItem.from_movie(movie, base_url)
            for movie in credits.cast
            if passes_content_filters(movie, filters)
        ]

    # 回答

    async def validate_answer(
        self,
        session_id: str,
        search: str,
        expected_type: ItemType,
        selected_item_id: Optional[int] = None,
        current_item: Optional[GameItem] = None,
    ) -> ValidationResult:
        """回答を検証し、正解なら使用済みにして現在のアイテムを進める

        Args:
            session_id: セッション ID
            search: プレイヤーの入力
            expected_type: 期待する回答の種別
            selected_item_id: 候補リストから選ばれた ID
            current_item: 照合対象（省略時はセッションの現在のアイテム）

        Returns:
            検証結果
        """
        session = self._sessions.get(session_id)
        if session is None:
            return ValidationResult(
                valid=False,
                error="Game session not found",
                error_code=ErrorCode.SESSION_NOT_FOUND.value,
            )

        target = current_item or session.current_item
        if target is None:
            return ValidationResult(
                valid=False,
                error="No current item to answer against",
                error_code=ErrorCode.SYSTEM_ERROR.value,
            )

        log = get_logger_with_context(
            __name__, session_id=session_id, player_id=session.player_id
        )
        result = await self.validator.validate_answer(
            search, target, expected_type, session.used_ids, session.filters, selected_item_id
        )
        if not result.valid or result.item is None:
            log.info(f"Answer rejected: {result.error_code}")
            return result

        session.use(result.item)
        log.info(f"Answer accepted: {result.item.type.value} {result.item.id}")

        if session.player_id:
            movie, actor = (target, result.item) if target.type == ItemType.MOVIE else (result.item, target)
            await self.save_connection(session.player_id, movie.id, actor.id, movie.name, actor.name, session_id)
            await self.record_discovery(session.player_id, result.item)

        return result

    async def _record_selection(self, session: GameSession, item: GameItem) -> None:
        if session.player_id:
            await self.record_discovery(session.player_id, item)

    # プリフェッチ・キャッシュ

    async def prefetch_game_data(self, item_id: int, item_type: ItemType) -> OperationResult:
        """アイテムのクレジットと、その候補上位のクレジットを先読み

        Args:
            item_id: アイテム ID
            item_type: アイテム種別

        Returns:
            先読みした件数を data に含む結果
        """
        try:
            prefetched = 0
            batch_size = self.settings.prefetch_batch_size
            if item_type == ItemType.MOVIE:
                credits = await self.client.movie_credits(item_id)
                prefetched += 1
                for actor in credits.cast[:batch_size]:
                    await self.client.actor_credits(actor.id)
                    prefetched += 1
            else:
                filmography = await self.client.actor_credits(item_id)
                prefetched += 1
                for movie in filmography.cast[:batch_size]:
                    await self.client.movie_credits(movie.id)
                    prefetched += 1

            logger.info(f"Prefetched {prefetched} credit payloads for {item_type.value} {item_id}")
            return OperationResult(
                success=True, message="Game data prefetched", data={"prefetched": prefetched}
            )
        except Exception as e:
            return _failure(e, "prefetch_game_data", {"item_id": item_id})

    def get_cache_stats(self) -> CacheStats:
        """キャッシュ統計"""
        return self.cache.stats()

    async def clear_cache(self) -> OperationResult:
        """キャッシュをすべて削除"""
        try:
            await self.cache.clear_all()
            return OperationResult(success=True, message="Cache cleared")
        except Exception as e:
            return _failure(e, "clear_cache")

    # 接続・発見履歴

    async def load_connections(self, player_id: str) -> list[Connection]:
        """接続一覧（読み込みに失敗した場合は空）"""
        try:
            return await self.connections.load_connections(player_id)
        except Exception as e:
            handle_error(e, {"action": "load_connections", "player_id": player_id})
            return []

    async def save_connection(
        self,
        player_id: str,
        movie_id: int,
        actor_id: int,
        movie_name: str,
        actor_name: str,
        game_id: Optional[str] = None,
    ) -> OperationResult:
        """ゲーム中に作られた接続を保存"""
        try:
            added = await self.connections.save_connection(
                player_id, movie_id, actor_id, movie_name, actor_name, game_id=game_id
            )
            message = "Connection saved" if added else "Connection already exists"
            return OperationResult(success=True, message=message)
        except Exception as e:
            return _failure(e, "save_connection", {"player_id": player_id})

    async def add_manual_connection(
        self,
        player_id: str,
        movie_id: int,
        actor_id: int,
        movie_name: str,
        actor_name: str,
    ) -> OperationResult:
        """手動で接続を追加"""
        try:
            verified = await self.connections.add_manual_connection(
                player_id, movie_id, actor_id, movie_name, actor_name
            )
            if not verified:
                return OperationResult(
                    success=False,
                    message=f"Could not verify that {actor_name} appeared in {movie_name}",
                )
            return OperationResult(success=True, message="Connection added")
        except Exception as e:
            return _failure(e, "add_manual_connection", {"player_id": player_id})

    async def refresh_connections(self, player_id: str) -> OperationResult:
        """推論をやり直して接続一覧を返す"""
        try:
            connections = await self.connections.refresh_all_connections(player_id)
            return OperationResult(
                success=True,
                message=f"Refreshed connections: {len(connections)} total",
                data=[connection.model_dump(mode="json") for connection in connections],
            )
        except Exception as e:
            return _failure(e, "refresh_connections", {"player_id": player_id})

    async def clear_connections(self, player_id: str) -> OperationResult:
        """接続をすべて削除"""
        try:
            await self.connections.clear_connections(player_id)
            return OperationResult(success=True, message="Connections cleared")
        except Exception as e:
            return _failure(e, "clear_connections", {"player_id": player_id})

    async def debug_connection_data(self, player_id: str) -> dict[str, Any]:
        """推論の入力データの概要（失敗した場合は空）"""
        try:
            return await self.connections.debug_connection_data(player_id)
        except Exception as e:
            handle_error(e, {"action": "debug_connection_data", "player_id": player_id})
            return {}

    async def record_discovery(self, player_id: str, item: GameItem) -> OperationResult:
        """発見履歴に追加し、接続推論のためにクレジットをキャッシュ"""
        try:
            await self.history.add_item(player_id, item)
        except Exception as e:
            return _failure(e, "record_discovery", {"player_id": player_id})

        try:
            await self.client.fetch_and_cache_credits(item.id, item.type)
        except Exception as e:
            # 履歴は保存済みなので成功として扱う
            handle_error(e, {"action": "fetch_and_cache_credits", "item_id": item.id})

        return OperationResult(success=True, message="Discovery recorded", item=item)

    async def get_player_history(self, player_id: str) -> PlayerHistory:
        """発見履歴（読み込みに失敗した場合は空）"""
        try:
            return await self.history.load(player_id)
        except Exception as e:
            handle_error(e, {"action": "get_player_history", "player_id": player_id})
            return PlayerHistory()
