"""
コンテンツフィルター

映画・俳優の候補を絞り込むための判定関数群
"""

import re
from collections.abc import Iterable

from src.models.game import GameFilters
from src.models.tmdb import ANIMATION_GENRE_ID, DOCUMENTARY_GENRE_ID, Actor, Movie

# あまりにマイナーな作品を除外するための下限
MIN_MOVIE_POPULARITY = 1.0
MIN_MOVIE_VOTE_COUNT = 100
MIN_ACTOR_POPULARITY = 1.0
MIN_ACTOR_KNOWN_FOR_COUNT = 2

# 連続出題を避けたい有名フランチャイズ
COMMON_FRANCHISES = [
    "avengers",
    "marvel",
    "star wars",
    "harry potter",
    "fast and furious",
    "mission impossible",
    "james bond",
    "jurassic",
    "transformers",
    "batman",
    "superman",
    "spider-man",
    "x-men",
]

DOCUMENTARY_KEYWORDS = [
    "documentary",
    "documenting",
    "real-life story",
    "true story",
    "behind the scenes",
    "making of",
]

SEQUEL_PATTERNS = [
    re.compile(r"\d+$"),  # Terminator 2
    re.compile(r"part\s+\d+", re.IGNORECASE),
    re.compile(r"chapter\s+\d+", re.IGNORECASE),
    re.compile(r"\d+\s*:\s*.+"),  # 2: Judgment Day
    re.compile(r"the\s+\w+\s+\d+", re.IGNORECASE),  # The Purge 2
    re.compile(r"\s+\d+\s*:\s*.+"),  # Alien 3: ...
    re.compile(r"\s+\d+\s*$"),
    re.compile(r"\s+\w+\s+\d+\s*$"),
]


def is_likely_sequel(movie: Movie) -> bool:
    """タイトルやコレクション所属から続編かどうかを推定"""
    if movie.belongs_to_collection:
        return True

    title = movie.display_name
    return any(pattern.search(title) for pattern in SEQUEL_PATTERNS)


def is_foreign_film(movie: Movie) -> bool:
    """英語以外の作品かどうか"""
    return movie.original_language != "en"


def is_documentary(movie: Movie) -> bool:
    """ドキュメンタリーかどうか（ジャンル ID またはキーワード）"""
    if DOCUMENTARY_GENRE_ID in movie.genre_id_set():
        return True

    title = movie.display_name.lower()
    overview = movie.overview.lower()
    return any(keyword in title or keyword in overview for keyword in DOCUMENTARY_KEYWORDS)


def is_animated_movie(movie: Movie) -> bool:
    """アニメーション作品かどうか"""
    return ANIMATION_GENRE_ID in movie.genre_id_set()


def is_too_niche_movie(movie: Movie) -> bool:
    """人気・投票数が極端に少ない、またはポスターがない作品かどうか"""
    if movie.popularity < MIN_MOVIE_POPULARITY or movie.vote_count < MIN_MOVIE_VOTE_COUNT:
        return True
    return not movie.poster_path


def is_too_niche_actor(actor: Actor) -> bool:
    """知名度が極端に低い俳優かどうか"""
    if actor.popularity < MIN_ACTOR_POPULARITY:
        return True

    # 画像なしは知名度が低い場合のみ除外
    if not actor.profile_path and actor.popularity < 5:
        return True

    # known_for はレスポンスによっては存在しない
    if (
        actor.known_for is not None
        and len(actor.known_for) < MIN_ACTOR_KNOWN_FOR_COUNT
        and actor.popularity < 3
    ):
        return True

    return False


def is_common_franchise(movie: Movie) -> bool:
    """有名フランチャイズの作品かどうか"""
    title = movie.display_name.lower()
    overview = movie.overview.lower()
    return any(franchise in title or franchise in overview for franchise in COMMON_FRANCHISES)


def franchise_key(movie: Movie) -> str:
    """タイトルの先頭2語からフランチャイズキーを生成"""
    return " ".join(movie.display_name.split()[:2]).lower()


def is_recently_used_franchise(movie: Movie, recent_franchises: Iterable[str]) -> bool:
    """直近に出題したフランチャイズかどうか"""
    title = movie.display_name.lower()
    return any(franchise and franchise in title for franchise in recent_franchises)


def categorize_actor(actor: Actor) -> str:
    """人気度から俳優を分類"""
    if actor.popularity >= 30:
        return "a-list"
    if actor.popularity >= 10:
        return "b-list"
    return "character-actor"


def passes_content_filters(movie: Movie, filters: GameFilters) -> bool:
    """プレイヤーのフィルター設定（アニメ・続編・外国語）を満たすか"""
    if not filters.include_animated and is_animated_movie(movie):
        return False
    if not filters.include_sequels and is_likely_sequel(movie):
        return False
    if not filters.include_foreign and is_foreign_film(movie):
        return False
    return True


def passes_movie_floor(movie: Movie, filters: GameFilters, used_ids: Iterable[int]) -> bool:
    """常に適用する映画の条件（使用済み除外・下限・ドキュメンタリー除外・フィルター設定）"""
    if movie.id in used_ids:
        return False
    if is_too_niche_movie(movie):
        return False
    if is_documentary(movie):
        return False
    return passes_content_filters(movie, filters)


def passes_actor_floor(actor: Actor, used_ids: Iterable[int]) -> bool:
    """常に適用する俳優の条件（使用済み除外・下限）"""
    if actor.id in used_ids:
        return False
    return not is_too_niche_actor(actor)
