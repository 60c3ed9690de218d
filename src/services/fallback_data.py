"""
フォールバックデータ

TMDB API が利用できない場合に返す固定ペイロード
"""

import re
from typing import Any

FALLBACK_MOVIES: list[dict[str, Any]] = [
    {
        "id": 603,
        "title": "The Matrix",
        "poster_path": "/f89U3ADr1oiB1s9GkdPOEpXUk5H.jpg",
        "release_date": "1999-03-31",
        "overview": "A computer hacker learns about the true nature of reality.",
        "popularity": 60.5,
        "vote_count": 24000,
        "vote_average": 8.2,
        "genre_ids": [28, 878],
        "original_language": "en",
    },
    {
        "id": 27205,
        "title": "Inception",
        "poster_path": "/oYuLEt3zVCKq57qu2F8dT7NIa6f.jpg",
        "release_date": "2010-07-15",
        "overview": "A thief who steals corporate secrets through dream-sharing technology.",
        "popularity": 80.2,
        "vote_count": 35000,
        "vote_average": 8.4,
        "genre_ids": [28, 878, 12],
        "original_language": "en",
    },
    {
        "id": 13,
        "title": "Forrest Gump",
        "poster_path": "/arw2vcBveWOVZr6pxd9XTd1TdQa.jpg",
        "release_date": "1994-06-23",
        "overview": "A man with a low IQ recounts several decades of American history.",
        "popularity": 55.1,
        "vote_count": 26000,
        "vote_average": 8.5,
        "genre_ids": [35, 18, 10749],
        "original_language": "en",
    },
    {
        "id": 597,
        "title": "Titanic",
        "poster_path": "/9xjZS2rlVxm8SFx8kPC3aIGCOYQ.jpg",
        "release_date": "1997-11-18",
        "overview": "A seventeen-year-old aristocrat falls in love aboard the ill-fated R.M.S. Titanic.",
        "popularity": 70.4,
        "vote_count": 24500,
        "vote_average": 7.9,
        "genre_ids": [18, 10749],
        "original_language": "en",
    },
    {
        "id": 862,
        "title": "Toy Story",
        "poster_path": "/uXDfjJbdP4ijW5hWSBrPrlKpxab.jpg",
        "release_date": "1995-10-30",
        "overview": "A cowboy doll is profoundly threatened by a new spaceman action figure.",
        "popularity": 65.3,
        "vote_count": 17500,
        "vote_average": 8.0,
        "genre_ids": [16, 12, 10751, 35],
        "original_language": "en",
    },
]

FALLBACK_ACTORS: list[dict[str, Any]] = [
    {
        "id": 6384,
        "name": "Keanu Reeves",
        "profile_path": "/4D0PpNI0kmP58hgrwGC3wCjxhnm.jpg",
        "popularity": 50.2,
        "known_for_department": "Acting",
        "known_for": [{"id": 603, "title": "The Matrix", "media_type": "movie"}],
    },
    {
        "id": 6193,
        "name": "Leonardo DiCaprio",
        "profile_path": "/wo2hJpn04vbtmh0B9utCFdsQhxM.jpg",
        "popularity": 45.7,
        "known_for_department": "Acting",
        "known_for": [
            {"id": 27205, "title": "Inception", "media_type": "movie"},
            {"id": 597, "title": "Titanic", "media_type": "movie"},
        ],
    },
    {
        "id": 31,
        "name": "Tom Hanks",
        "profile_path": "/xndWFsBlClOJFRdhSt4NBwiPq2o.jpg",
        "popularity": 48.9,
        "known_for_department": "Acting",
        "known_for": [
            {"id": 13, "title": "Forrest Gump", "media_type": "movie"},
            {"id": 862, "title": "Toy Story", "media_type": "movie"},
        ],
    },
    {
        "id": 204,
        "name": "Kate Winslet",
        "profile_path": "/e3tdop3WhseRnn8KwMVLAV25Ybv.jpg",
        "popularity": 32.6,
        "known_for_department": "Acting",
        "known_for": [{"id": 597, "title": "Titanic", "media_type": "movie"}],
    },
    {
        "id": 2975,
        "name": "Laurence Fishburne",
        "profile_path": "/iwx7h0AfwwUqzwgBnqbBOUsxGjV.jpg",
        "popularity": 24.1,
        "known_for_department": "Acting",
        "known_for": [{"id": 603, "title": "The Matrix", "media_type": "movie"}],
    },
]

# 映画 ID → 出演者 ID
_FALLBACK_CAST: dict[int, list[int]] = {
    603: [6384, 2975],
    27205: [6193],
    13: [31],
    597: [6193, 204],
    862: [31],
}

_MOVIE_CREDITS_PATTERN = re.compile(r"/movie/(\d+)/credits")
_ACTOR_CREDITS_PATTERN = re.compile(r"/person/(\d+)/movie_credits")


def _movie_by_id(movie_id: int) -> dict[str, Any] | None:
    return next((movie for movie in FALLBACK_MOVIES if movie["id"] == movie_id), None)


def _actor_by_id(actor_id: int) -> dict[str, Any] | None:
    return next((actor for actor in FALLBACK_ACTORS if actor["id"] == actor_id), None)


def fallback_movie_credits(movie_id: int) -> dict[str, Any]:
    """映画クレジットのフォールバック"""
    cast = [_actor_by_id(actor_id) for actor_id in _FALLBACK_CAST.get(movie_id, [])]
    return {"id": movie_id, "cast": [dict(actor) for actor in cast if actor]}


def fallback_actor_credits(actor_id: int) -> dict[str, Any]:
    """俳優出演作のフォールバック"""
    movie_ids = [movie_id for movie_id, cast in _FALLBACK_CAST.items() if actor_id in cast]
    movies = [_movie_by_id(movie_id) for movie_id in movie_ids]
    return {"id": actor_id, "cast": [dict(movie) for movie in movies if movie]}


def fallback_payload_for(url: str) -> dict[str, Any] | None:
    """URL の形状に応じたフォールバックペイロードを返す

    Args:
        url: リクエストパスまたは URL

    Returns:
        フォールバックペイロード（該当する形状がない場合は None）
    """
    match = _MOVIE_CREDITS_PATTERN.search(url)
    if match:
        return fallback_movie_credits(int(match.group(1)))

    match = _ACTOR_CREDITS_PATTERN.search(url)
    if match:
        return fallback_actor_credits(int(match.group(1)))

    if "/discover/movie" in url:
        return {
            "page": 1,
            "results": [dict(movie) for movie in FALLBACK_MOVIES],
            "total_pages": 1,
        }

    if "/person/popular" in url:
        return {
            "page": 1,
            "results": [dict(actor) for actor in FALLBACK_ACTORS],
            "total_pages": 1,
        }

    return None
