"""
ヘルスチェックエンドポイント
"""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""

    status: str
    timestamp: datetime
    cache_items: int = 0
    cache_maintenance: bool = False
    version: str = "0.1.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """ヘルスチェック

    サービスが初期化される前は status=starting を返す

    Returns:
        HealthResponse: ヘルスチェック結果
    """
    service = getattr(request.app.state, "game_service", None)
    if service is None:
        return HealthResponse(status="starting", timestamp=datetime.utcnow())

    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        cache_items=len(service.cache),
        cache_maintenance=service.cache.is_running,
    )


@router.get("/")
async def root() -> dict[str, str]:
    """ルートエンドポイント

    Returns:
        dict: API情報
    """
    return {"name": "Movie Game API", "version": "0.1.0"}
