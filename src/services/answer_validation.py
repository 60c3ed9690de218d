"""
回答検証サービス

プレイヤーの入力（名前または候補リストから選んだ ID）を、現在のアイテムの
出演者・出演作と照合する。
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

import Levenshtein
from pydantic import BaseModel

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.models.game import GameFilters, GameItem, ItemType, ValidationResult
from src.models.tmdb import Actor, Movie
from src.services.error_handler import ApplicationError, ErrorCode
from src.services.filters import passes_content_filters
from src.services.tmdb_client import TMDBClient

logger = get_logger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


class MatchResult(BaseModel):
    """あいまい一致の結果"""

    id: int
    name: str
    similarity: float


class ValidationIssue(BaseModel):
    """候補取得時のエラー"""

    code: ErrorCode
    message: str


def string_similarity(s1: str, s2: str) -> float:
    """正規化したレーベンシュタイン類似度（大文字小文字を区別しない）

    Args:
        s1: 比較する文字列
        s2: 比較する文字列

    Returns:
        0.0〜1.0 の類似度（両方空なら 1.0）
    """
    a = s1.lower()
    b = s2.lower()
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / max_length


def find_best_match(
    search: str,
    options: Sequence[Mapping[str, Any]],
    threshold: float = 0.8,
) -> Optional[MatchResult]:
    """最も類似度の高い候補を返す

    Args:
        search: 入力文字列
        options: {"id", "name"} を持つ候補
        threshold: 採用する類似度の下限

    Returns:
        閾値以上の最良候補（なければ None）
    """
    best: Optional[MatchResult] = None
    for option in options:
        similarity = string_similarity(search, option["name"])
        if best is None or similarity > best.similarity:
            best = MatchResult(id=option["id"], name=option["name"], similarity=similarity)

    if best is not None and best.similarity >= threshold:
        return best
    return None


def generate_not_found_error_message(search: str, expected_type: ItemType, current_item: GameItem) -> str:
    """期待する種別に応じた不一致メッセージを生成"""
    if expected_type == ItemType.ACTOR:
        return f"{search} is not an actor in {current_item.name}"
    return f"{search} is not a movie that {current_item.name} appeared in"


def _option_name(option: Movie | Actor) -> str:
    return option.display_name


class AnswerValidator:
    """回答検証"""

    def __init__(self, client: TMDBClient, settings: Settings | None = None):
        self.client = client
        self.settings = settings or get_settings()

    async def get_available_actors_for_movie(
        self, movie_id: int, used_ids: Iterable[int]
    ) -> tuple[list[Actor], Optional[ValidationIssue]]:
        """映画の出演者のうち未使用のものを取得"""
        used = set(used_ids)
        try:
            credits = await self.client.movie_credits(movie_id)
        except ApplicationError as e:
            logger.error(f"Error fetching actors for movie {movie_id}: {e.message}")
            return [], ValidationIssue(
                code=ErrorCode.API_ERROR, message="Failed to fetch actors. Please try again."
            )

        actors = [actor for actor in credits.cast if actor.id not in used]
        if not actors:
            return [], ValidationIssue(
                code=ErrorCode.NO_OPTIONS, message="No more actors available for this movie!"
            )
        return actors, None

    async def get_available_movies_for_actor(
        self, actor_id: int, used_ids: Iterable[int], filters: GameFilters
    ) -> tuple[list[Movie], Optional[ValidationIssue]]:
        """俳優の出演作のうち未使用かつフィルターを満たすものを取得"""
        used = set(used_ids)
        try:
            credits = await self.client.actor_credits(actor_id)
        except ApplicationError as e:
            logger.error(f"Error fetching movies for actor {actor_id}: {e.message}")
            return [], ValidationIssue(
                code=ErrorCode.API_ERROR, message="Failed to fetch movies. Please try again."
            )

        movies = [
            movie
            for movie in credits.cast
            if movie.id not in used and passes_content_filters(movie, filters)
        ]
        if not movies:
            return [], ValidationIssue(
                code=ErrorCode.NO_OPTIONS,
                message="There are no more unused movies for this actor!",
            )
        return movies, None

    def _find_by_name(self, options: Sequence[Movie | Actor], search: str) -> Optional[Movie | Actor]:
        """完全一致（大文字小文字無視）→ あいまい一致の順で検索"""
        lowered = search.lower()
        for option in options:
            if _option_name(option).lower() == lowered:
                return option

        match = find_best_match(
            search,
            [{"id": option.id, "name": _option_name(option)} for option in options],
            threshold=self.settings.fuzzy_match_threshold,
        )
        if match is None:
            return None
        return next((option for option in options if option.id == match.id), None)

    async def validate_answer(
        self,
        search: str,
        current_item: GameItem,
        expected_type: ItemType,
        used_ids: Iterable[int],
        filters: GameFilters,
        selected_item_id: Optional[int] = None,
    ) -> ValidationResult:
        """回答を検証

        Args:
            search: プレイヤーの入力
            current_item: 現在のアイテム
            expected_type: 期待する回答の種別
            used_ids: 使用済み ID
            filters: コンテンツフィルター
            selected_item_id: 候補リストから選ばれた ID（指定時は ID のみで照合）

        Returns:
            検証結果（例外は送出しない）
        """
        try:
            if expected_type == ItemType.ACTOR and current_item.type != ItemType.MOVIE:
                return ValidationResult(
                    valid=False,
                    error="System error: Expected a movie to search for actors",
                    error_code=ErrorCode.INVALID_TYPE.value,
                )
            if expected_type == ItemType.MOVIE and current_item.type != ItemType.ACTOR:
                return ValidationResult(
                    valid=False,
                    error="System error: Expected an actor to search for movies",
                    error_code=ErrorCode.INVALID_TYPE.value,
                )

            if expected_type == ItemType.ACTOR:
                options, issue = await self.get_available_actors_for_movie(current_item.id, used_ids)
            else:
                options, issue = await self.get_available_movies_for_actor(
                    current_item.id, used_ids, filters
                )

            if issue is not None:
                return ValidationResult(valid=False, error=issue.message, error_code=issue.code.value)

            if selected_item_id is not None:
                matched = next((option for option in options if option.id == selected_item_id), None)
            else:
                matched = self._find_by_name(options, search)

            if matched is None:
                return ValidationResult(
                    valid=False,
                    error=generate_not_found_error_message(search, expected_type, current_item),
                    error_code=ErrorCode.NOT_FOUND.value,
                )

            base_url = self.settings.tmdb_image_base_url
            if isinstance(matched, Actor):
                item = GameItem.from_actor(matched, base_url)
            else:
                item = GameItem.from_movie(matched, base_url)
            logger.info(f"Accepted answer '{search}' as {item.type.value} {item.id}")
            return ValidationResult(valid=True, item=item)

        except Exception as e:
            logger.exception(f"Error in validate_answer: {str(e)}")
            return ValidationResult(
                valid=False,
                error=UNEXPECTED_ERROR_MESSAGE,
                error_code=ErrorCode.SYSTEM_ERROR.value,
            )
