"""
レアリティ算出

映画は公開からの年数・人気度・投票数・言語から、俳優は人気度から算出する。
人気が低いほどレアになる。
"""

from datetime import datetime

from src.models.game import Rarity
from src.models.tmdb import Actor, Movie

# 俳優の人気度の下限（これ以上ならそのレアリティ）
ACTOR_RARITY_THRESHOLDS = [
    (80, Rarity.COMMON),
    (40, Rarity.UNCOMMON),
    (20, Rarity.RARE),
    (5, Rarity.EPIC),
]

# 映画のスコアの下限
MOVIE_RARITY_SCORES = [
    (70, Rarity.LEGENDARY),
    (50, Rarity.EPIC),
    (30, Rarity.RARE),
    (15, Rarity.UNCOMMON),
]


def _age_score(age: int) -> int:
    if age > 50:
        return 40
    if age > 30:
        return 30
    if age > 15:
        return 15
    if age > 5:
        return 5
    return 0


def _popularity_score(popularity: float) -> int:
    if popularity < 5:
        return 40
    if popularity < 15:
        return 30
    if popularity < 30:
        return 15
    if popularity < 50:
        return 5
    return 0


def calculate_movie_rarity(movie: Movie | None, current_year: int | None = None) -> Rarity:
    """映画のレアリティを算出

    Args:
        movie: 映画
        current_year: 基準年（省略時は現在の年）

    Returns:
        レアリティ
    """
    if movie is None:
        return Rarity.COMMON

    year = current_year or datetime.utcnow().year
    age = year - (movie.release_year or year)

    score = _age_score(age) + _popularity_score(movie.popularity)

    # カルト的名作の可能性
    if 1000 < movie.vote_count < 5000 and movie.popularity < 30:
        score += 20

    if movie.original_language and movie.original_language != "en":
        score += 15

    for minimum, rarity in MOVIE_RARITY_SCORES:
        if score >= minimum:
            return rarity
    return Rarity.COMMON


def calculate_actor_rarity(actor: Actor | None) -> Rarity:
    """俳優のレアリティを算出"""
    if actor is None:
        return Rarity.COMMON

    for minimum, rarity in ACTOR_RARITY_THRESHOLDS:
        if actor.popularity >= minimum:
            return rarity
    return Rarity.LEGENDARY
