"""
ゲーム API エンドポイント
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.config.logging import get_logger
from src.models.game import (
    Difficulty,
    GameFilters,
    GameItem,
    ItemType,
    OperationResult,
    ValidationResult,
)
from src.services.error_handler import SessionNotFoundError
from src.services.game_service import GameService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Game"])


def get_game_service(request: Request) -> GameService:
    """アプリケーションの GameService を取得"""
    return request.app.state.game_service


class SessionInput(BaseModel):
    """セッション開始入力スキーマ"""

    difficulty: Difficulty = Field(default=Difficulty.MEDIUM, description="難易度")
    filters: GameFilters = Field(default_factory=GameFilters, description="コンテンツフィルター")
    player_id: Optional[str] = Field(default=None, description="プレイヤー ID（履歴・接続の記録用）")


class SessionResponse(BaseModel):
    """セッションレスポンススキーマ"""

    session_id: str = Field(description="セッション ID")
    difficulty: Difficulty = Field(description="難易度")
    filters: GameFilters = Field(description="コンテンツフィルター")
    player_id: Optional[str] = Field(description="プレイヤー ID")


class ValidateInput(BaseModel):
    """回答検証入力スキーマ"""

    search: str = Field(description="プレイヤーの入力")
    expected_type: ItemType = Field(description="期待する回答の種別")
    selected_item_id: Optional[int] = Field(default=None, description="候補リストから選ばれた ID")
    current_item: Optional[GameItem] = Field(
        default=None, description="照合対象（省略時はセッションの現在のアイテム）"
    )


class PrefetchInput(BaseModel):
    """プリフェッチ入力スキーマ"""

    item_id: int = Field(description="アイテム ID")
    item_type: ItemType = Field(description="アイテム種別")


def _require_session(service: GameService, session_id: str) -> None:
    try:
        service.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.post("/sessions", response_model=SessionResponse)
async def start_session(
    input_data: SessionInput,
    service: GameService = Depends(get_game_service),
):
    """ゲームセッションを開始

    Args:
        input_data: 難易度・フィルター・プレイヤー ID
        service: ゲームサービス

    Returns:
        作成されたセッション
    """
    logger.info(f"POST /sessions: difficulty={input_data.difficulty.value}")
    session = service.start_session(input_data.difficulty, input_data.filters, input_data.player_id)
    return SessionResponse(
        session_id=session.session_id,
        difficulty=session.difficulty,
        filters=session.filters,
        player_id=session.player_id,
    )


@router.get("/sessions/{session_id}/movie", response_model=OperationResult)
async def get_random_movie(session_id: str, service: GameService = Depends(get_game_service)):
    """ランダムな映画を出題"""
    _require_session(service, session_id)
    return await service.get_random_movie(session_id)


@router.get("/sessions/{session_id}/actor", response_model=OperationResult)
async def get_random_actor(session_id: str, service: GameService = Depends(get_game_service)):
    """ランダムな俳優を出題"""
    _require_session(service, session_id)
    return await service.get_random_actor(session_id)


@router.post("/sessions/{session_id}/validate", response_model=ValidationResult)
async def validate_answer(
    session_id: str,
    input_data: ValidateInput,
    service: GameService = Depends(get_game_service),
):
    """回答を検証

    Args:
        session_id: セッション ID
        input_data: 回答内容
        service: ゲームサービス

    Returns:
        検証結果

    Raises:
        HTTPException: セッションが存在しない場合
    """
    _require_session(service, session_id)
    return await service.validate_answer(
        session_id,
        input_data.search,
        input_data.expected_type,
        selected_item_id=input_data.selected_item_id,
        current_item=input_data.current_item,
    )


@router.get("/movies/{movie_id}/actors", response_model=list[GameItem])
async def search_actors_by_movie(movie_id: int, service: GameService = Depends(get_game_service)):
    """映画の出演者一覧"""
    return await service.search_actors_by_movie(movie_id)


@router.get("/actors/{actor_id}/movies", response_model=list[GameItem])
async def search_movies_by_actor(
    actor_id: int,
    include_animated: bool = Query(True, description="アニメーションを含める"),
    include_sequels: bool = Query(True, description="続編を含める"),
    include_foreign: bool = Query(True, description="英語以外の作品を含める"),
    service: GameService = Depends(get_game_service),
):
    """俳優の出演作一覧"""
    filters = GameFilters(
        include_animated=include_animated,
        include_sequels=include_sequels,
        include_foreign=include_foreign,
    )
    return await service.search_movies_by_actor(actor_id, filters)


@router.post("/prefetch", response_model=OperationResult)
async def prefetch_game_data(
    input_data: PrefetchInput,
    service: GameService = Depends(get_game_service),
):
    """クレジットを先読みしてキャッシュ"""
    return await service.prefetch_game_data(input_data.item_id, input_data.item_type)
