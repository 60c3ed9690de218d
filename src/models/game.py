"""
ゲーム関連モデル

GameItem, GameFilters, Connection, PlayerHistory, ValidationResult, OperationResult
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.models.tmdb import Actor, Movie


class ItemType(str, Enum):
    """アイテム種別"""

    MOVIE = "movie"
    ACTOR = "actor"


class Difficulty(str, Enum):
    """難易度"""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Rarity(str, Enum):
    """レアリティ"""

    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class ConnectionSource(str, Enum):
    """接続の作成元"""

    EXPLICIT = "explicit"
    INFERRED = "inferred"
    MANUAL = "manual"


class GameFilters(BaseModel):
    """コンテンツフィルター"""

    include_animated: bool = True
    include_sequels: bool = True
    include_foreign: bool = True


class GameItem(BaseModel):
    """ゲームで使用される映画または俳優"""

    id: int
    name: str
    type: ItemType
    image: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    rarity: Optional[Rarity] = None
    selected_by: Optional[str] = None

    @classmethod
    def from_movie(cls, movie: Movie, image_base_url: str) -> "GameItem":
        """Movie から GameItem を作成"""
        return cls(
            id=movie.id,
            name=movie.display_name,
            type=ItemType.MOVIE,
            image=f"{image_base_url}{movie.poster_path}" if movie.poster_path else None,
            details=movie.raw(),
        )

    @classmethod
    def from_actor(cls, actor: Actor, image_base_url: str) -> "GameItem":
        """Actor から GameItem を作成"""
        return cls(
            id=actor.id,
            name=actor.name,
            type=ItemType.ACTOR,
            image=f"{image_base_url}{actor.profile_path}" if actor.profile_path else None,
            details=actor.raw(),
        )


class Connection(BaseModel):
    """映画と俳優の接続"""

    movie_id: int
    actor_id: int
    movie_name: str
    actor_name: str
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    game_id: Optional[str] = None
    source: ConnectionSource = ConnectionSource.EXPLICIT

    @property
    def pair_key(self) -> str:
        """(movie_id, actor_id) の一意キー"""
        return connection_key(self.movie_id, self.actor_id)


def connection_key(movie_id: int, actor_id: int) -> str:
    """接続の一意キーを生成"""
    return f"{movie_id}-{actor_id}"


class PlayerHistoryItem(BaseModel):
    """発見履歴のアイテム"""

    id: int
    name: str = ""
    date: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    count: int = 1
    image: Optional[str] = None
    rarity: Optional[Rarity] = None


class PlayerHistory(BaseModel):
    """プレイヤーの発見履歴"""

    movies: list[PlayerHistoryItem] = Field(default_factory=list)
    actors: list[PlayerHistoryItem] = Field(default_factory=list)

    def items_for(self, item_type: ItemType) -> list[PlayerHistoryItem]:
        """種別ごとのアイテムリスト"""
        return self.movies if item_type == ItemType.MOVIE else self.actors


class ValidationResult(BaseModel):
    """回答検証結果"""

    valid: bool
    item: Optional[GameItem] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class OperationResult(BaseModel):
    """利用者向け操作の結果"""

    success: bool
    message: str = ""
    item: Optional[GameItem] = None
    data: Optional[Any] = None
