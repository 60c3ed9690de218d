"""
TMDB API クライアント

レート制限・指数バックオフ付きリトライ・キャッシュ・フォールバックを備えた
映画メタデータ API クライアント
"""

import asyncio
import json
from typing import Any, TypeVar
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.models.game import ItemType
from src.models.tmdb import Actor, ActorCredits, ActorPage, Movie, MovieCredits, MoviePage
from src.services.api_cache import TieredCache
from src.services.error_handler import (
    ApplicationError,
    PayloadValidationError,
    TMDBAPIError,
    TMDBTimeoutError,
)
from src.services.fallback_data import fallback_payload_for
from src.services.rate_limiter import RateLimiter

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# キャッシュキーに含めないパラメータ
_KEY_EXCLUDED_PARAMS = {"api_key", "_t"}


def build_cache_key(path: str, params: dict[str, Any] | None = None, body: Any = None) -> str:
    """リクエストの正規化キーを生成

    Args:
        path: API パス（例: /movie/550/credits）
        params: クエリパラメータ
        body: リクエストボディ

    Returns:
        キャッシュキー
    """
    key = path
    if params:
        items = sorted(
            (name, str(value))
            for name, value in params.items()
            if name not in _KEY_EXCLUDED_PARAMS and value is not None
        )
        if items:
            key = f"{path}?{urlencode(items)}"
    if body is not None:
        key = f"{key}|{json.dumps(body, sort_keys=True)}"
    return key


class TMDBClient:
    """TMDB API クライアント"""

    def __init__(
        self,
        cache: TieredCache,
        settings: Settings | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache
        self.base_url = self.settings.tmdb_api_url
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.settings.max_requests_per_second,
            buffer=self.settings.rate_limit_buffer,
        )
        self._client: httpx.AsyncClient | None = None
        self._pending: dict[str, asyncio.Task] = {}

        if not self.settings.tmdb_api_key:
            logger.warning("TMDB API key not configured, requests will rely on fallbacks")

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTPクライアントを取得（遅延初期化）"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.settings.tmdb_api_timeout),
            )
        return self._client

    async def close(self):
        """HTTPクライアントをクローズ"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        body: Any = None,
        force_refresh: bool = False,
    ) -> Any:
        """キャッシュ経由で JSON を取得

        Args:
            path: API パス
            params: クエリパラメータ
            body: リクエストボディ（指定時は POST）
            force_refresh: キャッシュを無視して再取得するか

        Returns:
            レスポンスの JSON

        Raises:
            TMDBAPIError: リトライ・フォールバックがすべて失敗した場合
        """
        key = build_cache_key(path, params, body)

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached

        # 同一キーの実行中リクエストがあれば結果を共有する
        pending = self._pending.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight request: {key}")
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch_with_retry(path, params, body, key))
        self._pending[key] = task
        task.add_done_callback(lambda done: self._release_pending(key, done))
        return await asyncio.shield(task)

    def _release_pending(self, key: str, task: asyncio.Task) -> None:
        """完了したリクエストを実行中マップから外す"""
        if self._pending.get(key) is task:
            del self._pending[key]

    async def _fetch_with_retry(
        self, path: str, params: dict[str, Any] | None, body: Any, key: str
    ) -> Any:
        """指数バックオフでリトライしながら取得"""
        request_params = {"api_key": self.settings.tmdb_api_key, **(params or {})}
        url = f"{self.base_url}{path}"
        last_error: ApplicationError | None = None

        for attempt in range(self.settings.max_retries):
            if attempt > 0:
                backoff_time = self.settings.initial_retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Retrying TMDB request in {backoff_time}s "
                    f"(attempt {attempt + 1}/{self.settings.max_retries})",
                    extra={"cache_key": key},
                )
                await asyncio.sleep(backoff_time)

            await self.rate_limiter.acquire_slot()

            try:
                client = await self._get_client()
                if body is None:
                    response = await client.get(path, params=request_params)
                else:
                    response = await client.post(path, params=request_params, json=body)

                if not 200 <= response.status_code < 300:
                    last_error = TMDBAPIError(
                        f"TMDB API error: {response.status_code}",
                        details={"status_code": response.status_code, "path": path},
                    )
                    logger.warning(str(last_error), extra={"cache_key": key})
                    continue

                payload = response.json()
                self.cache.set(key, payload, url)
                return payload

            except httpx.TimeoutException as e:
                last_error = TMDBTimeoutError("TMDB API request timed out", original_error=e)
                logger.warning(f"TMDB API timeout: {str(e)}", extra={"cache_key": key})

            except httpx.HTTPError as e:
                last_error = TMDBAPIError(f"TMDB API request error: {str(e)}", original_error=e)
                logger.warning(f"TMDB API request error: {str(e)}", extra={"cache_key": key})

            except ValueError as e:
                last_error = TMDBAPIError("Failed to decode TMDB response", original_error=e)
                logger.warning("Failed to decode TMDB response", extra={"cache_key": key})

        # リトライ上限到達
        stale = self.cache.get(key, allow_stale=True)
        if stale is not None:
            logger.warning("Serving stale cache entry after retries failed", extra={"cache_key": key})
            return stale

        fallback = fallback_payload_for(path)
        if fallback is not None:
            logger.warning("Serving static fallback payload after retries failed", extra={"cache_key": key})
            return fallback

        logger.error(f"TMDB request failed after {self.settings.max_retries} attempts: {path}")
        raise last_error or TMDBAPIError("TMDB API failed after retries")

    def _parse(self, model: type[ModelT], payload: Any, path: str) -> ModelT:
        """ペイロードをモデルに変換"""
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Unexpected payload shape for {path}: {str(e)}")
            raise PayloadValidationError(
                f"Unexpected TMDB payload for {path}", details={"path": path}, original_error=e
            )

    async def discover_movies(self, params: dict[str, Any]) -> MoviePage:
        """映画を検索（discover）"""
        path = "/discover/movie"
        return self._parse(MoviePage, await self.fetch_json(path, params), path)

    async def popular_actors(self, page: int = 1) -> ActorPage:
        """人気俳優の一覧を取得"""
        path = "/person/popular"
        payload = await self.fetch_json(path, {"language": "en-US", "page": page})
        return self._parse(ActorPage, payload, path)

    async def movie_credits(self, movie_id: int, force_refresh: bool = False) -> MovieCredits:
        """映画の出演者一覧を取得"""
        path = f"/movie/{movie_id}/credits"
        payload = await self.fetch_json(path, {"language": "en-US"}, force_refresh=force_refresh)
        return self._parse(MovieCredits, payload, path)

    async def actor_credits(self, actor_id: int, force_refresh: bool = False) -> ActorCredits:
        """俳優の出演作一覧を取得"""
        path = f"/person/{actor_id}/movie_credits"
        payload = await self.fetch_json(path, {"language": "en-US"}, force_refresh=force_refresh)
        return self._parse(ActorCredits, payload, path)

    async def movie_details(self, movie_id: int) -> Movie:
        """映画の詳細を取得"""
        path = f"/movie/{movie_id}"
        return self._parse(Movie, await self.fetch_json(path, {"language": "en-US"}), path)

    async def actor_details(self, actor_id: int) -> Actor:
        """俳優の詳細を取得"""
        path = f"/person/{actor_id}"
        return self._parse(Actor, await self.fetch_json(path, {"language": "en-US"}), path)

    async def fetch_and_cache_credits(self, item_id: int, item_type: ItemType) -> None:
        """接続推論用にクレジットを取得してキャッシュする"""
        if item_type == ItemType.MOVIE:
            await self.movie_credits(item_id)
        else:
            await self.actor_credits(item_id)
        logger.debug(f"Cached credits for {item_type.value} {item_id}")
