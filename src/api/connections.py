"""
接続・発見履歴 API エンドポイント
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.game import get_game_service
from src.config.logging import get_logger
from src.models.game import Connection, GameItem, OperationResult, PlayerHistory
from src.services.game_service import GameService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/players/{player_id}", tags=["Connections"])


class ConnectionInput(BaseModel):
    """接続入力スキーマ"""

    movie_id: int = Field(description="映画 ID")
    actor_id: int = Field(description="俳優 ID")
    movie_name: str = Field(description="映画名")
    actor_name: str = Field(description="俳優名")
    manual: bool = Field(default=False, description="手動追加（TMDB で確認する）")


@router.get("/connections", response_model=list[Connection])
async def load_connections(player_id: str, service: GameService = Depends(get_game_service)):
    """接続一覧を取得（推論した接続を含む）"""
    return await service.load_connections(player_id)


@router.post("/connections", response_model=OperationResult)
async def save_connection(
    player_id: str,
    input_data: ConnectionInput,
    service: GameService = Depends(get_game_service),
):
    """接続を保存

    Args:
        player_id: プレイヤー ID
        input_data: 接続内容
        service: ゲームサービス

    Returns:
        操作結果
    """
    logger.info(
        f"POST /connections: {input_data.movie_id}-{input_data.actor_id} manual={input_data.manual}"
    )
    if input_data.manual:
        return await service.add_manual_connection(
            player_id,
            input_data.movie_id,
            input_data.actor_id,
            input_data.movie_name,
            input_data.actor_name,
        )
    return await service.save_connection(
        player_id,
        input_data.movie_id,
        input_data.actor_id,
        input_data.movie_name,
        input_data.actor_name,
    )


@router.delete("/connections", response_model=OperationResult)
async def clear_connections(player_id: str, service: GameService = Depends(get_game_service)):
    """接続をすべて削除"""
    return await service.clear_connections(player_id)


@router.post("/connections/refresh", response_model=OperationResult)
async def refresh_connections(player_id: str, service: GameService = Depends(get_game_service)):
    """接続の推論をやり直す"""
    return await service.refresh_connections(player_id)


@router.get("/connections/debug")
async def debug_connection_data(
    player_id: str, service: GameService = Depends(get_game_service)
) -> dict[str, Any]:
    """推論の入力データの概要"""
    return await service.debug_connection_data(player_id)


@router.get("/history", response_model=PlayerHistory)
async def get_player_history(player_id: str, service: GameService = Depends(get_game_service)):
    """発見履歴を取得"""
    return await service.get_player_history(player_id)


@router.post("/history", response_model=OperationResult)
async def record_discovery(
    player_id: str,
    item: GameItem,
    service: GameService = Depends(get_game_service),
):
    """発見履歴に追加"""
    return await service.record_discovery(player_id, item)
