"""
TMDB レスポンスモデル

Movie, Actor, MovieCredits, ActorCredits, MoviePage, ActorPage

各エンドポイントのレスポンスはフェッチ境界でこれらのモデルに正規化され、
下流のコードは生の JSON の形状を再確認しない。
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# TMDB のジャンル ID
ANIMATION_GENRE_ID = 16
DOCUMENTARY_GENRE_ID = 99


class TMDBModel(BaseModel):
    """TMDB モデル基底クラス（未知のフィールドは保持）"""

    model_config = ConfigDict(extra="allow")


class Genre(TMDBModel):
    """ジャンル"""

    id: int
    name: str = ""


class Movie(TMDBModel):
    """映画"""

    id: int
    title: str = ""
    name: str | None = None
    poster_path: str | None = None
    release_date: str | None = None
    overview: str = ""
    popularity: float = 0.0
    vote_count: int = 0
    vote_average: float = 0.0
    genre_ids: list[int] = Field(default_factory=list)
    genres: list[Genre] = Field(default_factory=list)
    belongs_to_collection: Any | None = None
    original_language: str | None = None
    character: str | None = None

    @property
    def display_name(self) -> str:
        """表示名（title がない場合は name）"""
        return self.title or self.name or ""

    @property
    def release_year(self) -> int | None:
        """公開年"""
        if not self.release_date:
            return None
        try:
            return int(self.release_date.split("-")[0])
        except ValueError:
            return None

    def genre_id_set(self) -> set[int]:
        """genre_ids と genres を統合したジャンル ID の集合"""
        return set(self.genre_ids) | {genre.id for genre in self.genres}

    def raw(self) -> dict[str, Any]:
        """生のペイロード（未知のフィールドを含む）"""
        return self.model_dump(mode="json")


class Actor(TMDBModel):
    """俳優"""

    id: int
    name: str = ""
    profile_path: str | None = None
    popularity: float = 0.0
    known_for: list[dict[str, Any]] | None = None
    known_for_department: str | None = None
    character: str | None = None

    @property
    def display_name(self) -> str:
        return self.name

    def raw(self) -> dict[str, Any]:
        """生のペイロード（未知のフィールドを含む）"""
        return self.model_dump(mode="json")


class MovieCredits(TMDBModel):
    """映画のクレジット（出演者一覧）"""

    id: int | None = None
    cast: list[Actor] = Field(default_factory=list)


class ActorCredits(TMDBModel):
    """俳優の出演作一覧"""

    id: int | None = None
    cast: list[Movie] = Field(default_factory=list)


class MoviePage(TMDBModel):
    """映画一覧のページ（discover）"""

    page: int = 1
    results: list[Movie] = Field(default_factory=list)
    total_pages: int | None = None


class ActorPage(TMDBModel):
    """俳優一覧のページ（person/popular）"""

    page: int = 1
    results: list[Actor] = Field(default_factory=list)
    total_pages: int | None = None
