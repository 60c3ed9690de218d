"""
出題リソース選出サービス

難易度とフィルター設定に応じて映画・俳優をランダムに選出する。
条件に合う候補がない場合は決められた順序で条件を緩和する。
"""

import random
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.models.game import Difficulty, GameFilters, GameItem
from src.models.tmdb import ANIMATION_GENRE_ID, DOCUMENTARY_GENRE_ID, Actor, Movie
from src.services.error_handler import ApplicationError, SelectionError
from src.services.fallback_data import FALLBACK_ACTORS, FALLBACK_MOVIES
from src.services.filters import (
    MIN_MOVIE_VOTE_COUNT,
    categorize_actor,
    franchise_key,
    is_common_franchise,
    is_recently_used_franchise,
    passes_actor_floor,
    passes_movie_floor,
)
from src.services.tmdb_client import TMDBClient

logger = get_logger(__name__)

# 難易度ごとのページ範囲
MAX_PAGES = {Difficulty.EASY: 5, Difficulty.MEDIUM: 8, Difficulty.HARD: 12}

# 難易度ごとのソート順（難しいほど昇順を含めて広げる）
SORT_ORDERS = {
    Difficulty.EASY: ["popularity.desc"],
    Difficulty.MEDIUM: ["popularity.desc", "vote_count.desc"],
    Difficulty.HARD: [
        "popularity.desc",
        "vote_count.desc",
        "vote_average.desc",
        "popularity.asc",
        "vote_count.asc",
    ],
}

# 追加フェッチ時の設定
FALLBACK_SORT = "vote_count.desc"
FALLBACK_MIN_VOTE_COUNT = 1000
FALLBACK_MAX_PAGE = 3

# 公開年ウィンドウ（hard のみ）
RELEASE_WINDOW_START = 1970
RELEASE_WINDOW_YEARS = 10


@dataclass
class MovieThresholds:
    """映画の難易度閾値"""

    min_vote_count: Optional[int] = None
    max_vote_count: Optional[int] = None
    min_popularity: Optional[float] = None
    max_popularity: Optional[float] = None
    min_release_year: Optional[int] = None
    exclude_common_franchises: bool = False


@dataclass
class ActorThresholds:
    """俳優の難易度閾値"""

    min_popularity: Optional[float] = None
    max_popularity: Optional[float] = None
    require_known_for: bool = False


def get_movie_difficulty_thresholds(
    difficulty: Difficulty, current_year: int | None = None
) -> MovieThresholds:
    """難易度から映画の閾値を取得"""
    year = current_year or datetime.utcnow().year
    if difficulty == Difficulty.EASY:
        # 直近20年の人気作
        return MovieThresholds(min_vote_count=5000, min_popularity=50, min_release_year=year - 20)
    if difficulty == Difficulty.MEDIUM:
        return MovieThresholds(
            min_vote_count=1000,
            max_vote_count=5000,
            min_popularity=20,
            max_popularity=50,
            min_release_year=year - 30,
        )
    # hard: 時代を問わずマイナー寄り
    return MovieThresholds(max_vote_count=1000, max_popularity=20, exclude_common_franchises=True)


def get_actor_difficulty_thresholds(difficulty: Difficulty) -> ActorThresholds:
    """難易度から俳優の閾値を取得"""
    if difficulty == Difficulty.EASY:
        return ActorThresholds(min_popularity=30, require_known_for=True)
    if difficulty == Difficulty.MEDIUM:
        return ActorThresholds(min_popularity=10, max_popularity=30)
    return ActorThresholds(max_popularity=10)


def _within(value: float, minimum: float | None, maximum: float | None) -> bool:
    if minimum is not None and value < minimum:
        return False
    if maximum is not None and value > maximum:
        return False
    return True


def meets_movie_thresholds(movie: Movie, thresholds: MovieThresholds) -> bool:
    """映画が難易度閾値を満たすか"""
    if not _within(movie.vote_count, thresholds.min_vote_count, thresholds.max_vote_count):
        return False
    if not _within(movie.popularity, thresholds.min_popularity, thresholds.max_popularity):
        return False
    if thresholds.min_release_year is not None:
        if (movie.release_year or 0) < thresholds.min_release_year:
            return False
    if thresholds.exclude_common_franchises and is_common_franchise(movie):
        return False
    return True


def meets_actor_thresholds(actor: Actor, thresholds: ActorThresholds) -> bool:
    """俳優が難易度閾値を満たすか"""
    if not _within(actor.popularity, thresholds.min_popularity, thresholds.max_popularity):
        return False
    if thresholds.require_known_for and not actor.known_for:
        return False
    return True


def _remember(window: deque, value: Any) -> None:
    """重複しない値だけをローリングウィンドウに追加"""
    if value not in window:
        window.append(value)


@dataclass
class SelectionState:
    """セッションごとの直近出題の記録"""

    recent_franchises: deque = field(default_factory=lambda: deque(maxlen=5))
    recent_actor_types: deque = field(default_factory=lambda: deque(maxlen=2))
    recent_movie_ids: deque = field(default_factory=lambda: deque(maxlen=10))
    recent_actor_ids: deque = field(default_factory=lambda: deque(maxlen=10))

    @classmethod
    def from_settings(cls, settings: Settings) -> "SelectionState":
        return cls(
            recent_franchises=deque(maxlen=settings.recent_franchise_window),
            recent_actor_types=deque(maxlen=settings.recent_actor_type_window),
            recent_movie_ids=deque(maxlen=settings.recent_item_window),
            recent_actor_ids=deque(maxlen=settings.recent_item_window),
        )

    def remember_movie(self, movie: Movie) -> None:
        key = franchise_key(movie)
        if key:
            _remember(self.recent_franchises, key)
        _remember(self.recent_movie_ids, movie.id)

    def remember_actor(self, actor: Actor) -> None:
        _remember(self.recent_actor_types, categorize_actor(actor))
        _remember(self.recent_actor_ids, actor.id)


class ResourceSelector:
    """映画・俳優の選出サービス"""

    def __init__(
        self,
        client: TMDBClient,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()

    def build_discover_params(
        self,
        difficulty: Difficulty,
        filters: GameFilters,
        sort_by: str | None = None,
        page: int | None = None,
        min_vote_count: int = MIN_MOVIE_VOTE_COUNT,
    ) -> dict[str, Any]:
        """discover エンドポイントのパラメータを構築

        Args:
            difficulty: 難易度
            filters: コンテンツフィルター
            sort_by: ソート順（省略時は難易度に応じてランダム）
            page: ページ番号（省略時は難易度に応じてランダム）
            min_vote_count: 投票数の下限

        Returns:
            クエリパラメータ
        """
        excluded_genres = [DOCUMENTARY_GENRE_ID]
        if not filters.include_animated:
            excluded_genres.insert(0, ANIMATION_GENRE_ID)

        params: dict[str, Any] = {
            "language": "en-US",
            "sort_by": sort_by or self.rng.choice(SORT_ORDERS[difficulty]),
            "page": page or self.rng.randint(1, MAX_PAGES[difficulty]),
            "vote_count.gte": min_vote_count,
            "without_genres": ",".join(str(genre_id) for genre_id in excluded_genres),
        }

        if not filters.include_foreign:
            params["with_original_language"] = "en"

        if difficulty == Difficulty.HARD and sort_by is None:
            current_year = datetime.utcnow().year
            start_year = self.rng.randint(RELEASE_WINDOW_START, current_year - RELEASE_WINDOW_YEARS)
            params["primary_release_date.gte"] = f"{start_year}-01-01"
            params["primary_release_date.lte"] = f"{start_year + RELEASE_WINDOW_YEARS - 1}-12-31"

        return params

    def _first_non_empty(self, stages: Sequence[tuple[str, list]]) -> tuple[str, list]:
        for name, candidates in stages:
            if candidates:
                return name, candidates
        return "", []

    async def select_movie(
        self,
        difficulty: Difficulty,
        filters: GameFilters,
        used_ids: Iterable[int],
        state: SelectionState,
    ) -> GameItem:
        """難易度とフィルターに応じて映画を選出

        Args:
            difficulty: 難易度
            filters: コンテンツフィルター
            used_ids: このセッションで使用済みの ID
            state: 直近出題の記録（選出結果が記録される）

        Returns:
            選出された映画

        Raises:
            SelectionError: 候補が見つからない場合
        """
        used = set(used_ids)
        thresholds = get_movie_difficulty_thresholds(difficulty)
        params = self.build_discover_params(difficulty, filters)
        page = await self.client.discover_movies(params)
        logger.info(f"Fetched {len(page.results)} movies before filtering")

        floor = [movie for movie in page.results if passes_movie_floor(movie, filters, used)]
        in_range = [movie for movie in floor if meets_movie_thresholds(movie, thresholds)]
        fresh = [
            movie
            for movie in in_range
            if movie.id not in state.recent_movie_ids
            and not is_recently_used_franchise(movie, state.recent_franchises)
        ]

        stage, candidates = self._first_non_empty(
            [("all filters", fresh), ("without recency", in_range), ("floor only", floor)]
        )

        if not candidates:
            stage, candidates = "refetch", await self._refetch_movies(params, filters, used)

        if not candidates:
            stage = "static fallback"
            fallback = [Movie.model_validate(movie) for movie in FALLBACK_MOVIES]
            candidates = [movie for movie in fallback if passes_movie_floor(movie, filters, used)]

        if not candidates:
            raise SelectionError(
                "Could not find any movies matching the criteria",
                details={"difficulty": difficulty.value},
            )

        selected = self.rng.choice(candidates)
        state.remember_movie(selected)
        logger.info(
            f"Selected movie: {selected.display_name} (stage={stage}, pool={len(candidates)})"
        )
        return GameItem.from_movie(selected, self.settings.tmdb_image_base_url)

    async def _refetch_movies(
        self, previous_params: dict[str, Any], filters: GameFilters, used: set[int]
    ) -> list[Movie]:
        """ソート順・ページを変えてもう一度だけ取得"""
        page_number = self.rng.randint(1, FALLBACK_MAX_PAGE)
        if previous_params.get("sort_by") == FALLBACK_SORT and previous_params.get("page") == page_number:
            page_number += 1

        params = self.build_discover_params(
            Difficulty.EASY,
            filters,
            sort_by=FALLBACK_SORT,
            page=page_number,
            min_vote_count=FALLBACK_MIN_VOTE_COUNT,
        )
        logger.info("No movies matched basic filters, making another API call")
        try:
            page = await self.client.discover_movies(params)
        except ApplicationError as e:
            logger.warning(f"Refetch for movies failed: {e.message}")
            return []
        return [movie for movie in page.results if passes_movie_floor(movie, filters, used)]

    async def select_actor(
        self,
        difficulty: Difficulty,
        used_ids: Iterable[int],
        state: SelectionState,
    ) -> GameItem:
        """難易度に応じて俳優を選出

        Args:
            difficulty: 難易度
            used_ids: このセッションで使用済みの ID
            state: 直近出題の記録（選出結果が記録される）

        Returns:
            選出された俳優

        Raises:
            SelectionError: 候補が見つからない場合
        """
        used = set(used_ids)
        thresholds = get_actor_difficulty_thresholds(difficulty)
        page_number = self.rng.randint(1, MAX_PAGES[difficulty])
        page = await self.client.popular_actors(page_number)

        floor = [actor for actor in page.results if passes_actor_floor(actor, used)]
        in_range = [actor for actor in floor if meets_actor_thresholds(actor, thresholds)]
        fresh = [
            actor
            for actor in in_range
            if actor.id not in state.recent_actor_ids
            and categorize_actor(actor) not in state.recent_actor_types
        ]

        stage, candidates = self._first_non_empty(
            [("all filters", fresh), ("without recency", in_range), ("floor only", floor)]
        )

        if not candidates:
            stage, candidates = "refetch", await self._refetch_actors(difficulty, page_number, used)

        if not candidates:
            stage = "static fallback"
            fallback = [Actor.model_validate(actor) for actor in FALLBACK_ACTORS]
            candidates = [actor for actor in fallback if passes_actor_floor(actor, used)]

        if not candidates:
            raise SelectionError(
                "Could not find any actors matching the criteria",
                details={"difficulty": difficulty.value},
            )

        selected = self.rng.choice(candidates)
        state.remember_actor(selected)
        logger.info(f"Selected actor: {selected.name} (stage={stage}, pool={len(candidates)})")
        return GameItem.from_actor(selected, self.settings.tmdb_image_base_url)

    async def _refetch_actors(
        self, difficulty: Difficulty, previous_page: int, used: set[int]
    ) -> list[Actor]:
        """別のページをもう一度だけ取得"""
        page_number = self.rng.randint(1, MAX_PAGES[difficulty])
        if page_number == previous_page:
            page_number = page_number % MAX_PAGES[difficulty] + 1

        logger.info("No actors matched basic filters, making another API call")
        try:
            page = await self.client.popular_actors(page_number)
        except ApplicationError as e:
            logger.warning(f"Refetch for actors failed: {e.message}")
            return []
        return [actor for actor in page.results if passes_actor_floor(actor, used)]
