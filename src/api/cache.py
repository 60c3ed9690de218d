"""
キャッシュ API エンドポイント
"""

from fastapi import APIRouter, Depends

from src.api.game import get_game_service
from src.config.logging import get_logger
from src.models.game import OperationResult
from src.services.api_cache import CacheStats
from src.services.game_service import GameService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Cache"])


@router.get("/cache/stats", response_model=CacheStats)
async def get_cache_stats(service: GameService = Depends(get_game_service)):
    """キャッシュ統計を取得"""
    return service.get_cache_stats()


@router.delete("/cache", response_model=OperationResult)
async def clear_cache(service: GameService = Depends(get_game_service)):
    """キャッシュをすべて削除（永続化層を含む）"""
    logger.info("DELETE /cache")
    return await service.clear_cache()
