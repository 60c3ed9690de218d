"""
TMDB API レスポンスキャッシュ

メモリ上のプライマリ層とキーバリューストア上の永続化層からなる二層キャッシュ。
TTL はリソース種別（URL パターン）ごとに異なる。
"""

import asyncio
import json
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.services.error_handler import ApplicationError
from src.services.kv_store import KeyValueStore

logger = get_logger(__name__)

# 永続化層のキー
PERSIST_KEY = "tmdbApiCache"


class CacheBucket(str, Enum):
    """TTL 区分"""

    MOVIE_DETAILS = "movie_details"
    ACTOR_DETAILS = "actor_details"
    MOVIE_CREDITS = "movie_credits"
    ACTOR_CREDITS = "actor_credits"
    DISCOVER = "discover"
    POPULAR = "popular"
    DEFAULT = "default"


def classify(url: str) -> CacheBucket:
    """URL から TTL 区分を判定

    Args:
        url: リクエスト URL またはキャッシュキー

    Returns:
        TTL 区分
    """
    if "/movie/" in url and "/credits" in url:
        return CacheBucket.MOVIE_CREDITS
    if "/person/" in url and "/movie_credits" in url:
        return CacheBucket.ACTOR_CREDITS
    # /person/popular, /movie/popular は詳細ではなく人気リスト
    if "/popular" in url:
        return CacheBucket.POPULAR
    if "/movie/" in url and "/credits" not in url:
        return CacheBucket.MOVIE_DETAILS
    if "/person/" in url and "/credits" not in url:
        return CacheBucket.ACTOR_DETAILS
    if "/discover/" in url:
        return CacheBucket.DISCOVER
    return CacheBucket.DEFAULT


def ttl_for_bucket(bucket: CacheBucket, settings: Settings) -> int:
    """TTL 区分の有効期間（秒）"""
    return {
        CacheBucket.MOVIE_DETAILS: settings.cache_ttl_movie_details,
        CacheBucket.ACTOR_DETAILS: settings.cache_ttl_actor_details,
        CacheBucket.MOVIE_CREDITS: settings.cache_ttl_movie_credits,
        CacheBucket.ACTOR_CREDITS: settings.cache_ttl_actor_credits,
        CacheBucket.DISCOVER: settings.cache_ttl_discover,
        CacheBucket.POPULAR: settings.cache_ttl_popular,
        CacheBucket.DEFAULT: settings.cache_ttl_default,
    }[bucket]


class CacheEntry(BaseModel):
    """キャッシュエントリ"""

    key: str
    value: Any
    created_at: float
    expires_at: float
    source_url: str = ""

    def is_expired(self, now: float) -> bool:
        """ハード期限切れかどうか"""
        return now > self.expires_at


class CacheStats(BaseModel):
    """キャッシュ統計"""

    total_items: int = 0
    movie_details: int = 0
    actor_details: int = 0
    movie_credits: int = 0
    actor_credits: int = 0
    discover: int = 0
    popular: int = 0
    other: int = 0
    expired: int = 0
    total_size_mb: float = 0.0


class TieredCache:
    """二層 API レスポンスキャッシュ"""

    def __init__(self, store: KeyValueStore | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.store = store
        self._entries: dict[str, CacheEntry] = {}
        self.is_running = False
        self._persist_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _now(self) -> float:
        return time.time()

    def get(self, key: str, allow_stale: bool = False) -> Any | None:
        """キャッシュから値を取得

        期限切れのエントリは通常読み出しでは返さないが、次回の掃除まで保持し、
        フェッチ失敗時のフォールバック（allow_stale=True）で利用できるようにする。

        Args:
            key: キャッシュキー
            allow_stale: 期限切れでも返すか

        Returns:
            キャッシュされた値（存在しない・期限切れの場合は None）
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._now()) and not allow_stale:
            logger.debug(f"Cache expired: {key}")
            return None

        return entry.value

    def set(self, key: str, value: Any, source_url: str) -> CacheEntry:
        """キャッシュに値を保存

        Args:
            key: キャッシュキー
            value: JSON 互換の値
            source_url: TTL 区分の判定に使う URL

        Returns:
            保存したエントリ
        """
        now = self._now()
        bucket = classify(source_url)
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl_for_bucket(bucket, self.settings),
            source_url=source_url,
        )
        # 上書き時も作成順を更新するため一度削除する
        self._entries.pop(key, None)
        self._entries[key] = entry

        self.evict_over_capacity()
        return entry

    def delete(self, key: str) -> bool:
        """エントリを削除"""
        return self._entries.pop(key, None) is not None

    def evict_expired(self) -> int:
        """期限切れエントリを削除

        Returns:
            削除した件数
        """
        now = self._now()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.info(f"Cleared {len(expired_keys)} expired items from cache")
        return len(expired_keys)

    def evict_over_capacity(self, max_items: int | None = None) -> int:
        """上限件数を超えた分を作成日時の古い順に削除

        Args:
            max_items: 上限件数（省略時は設定値）

        Returns:
            削除した件数
        """
        limit = self.settings.cache_max_items if max_items is None else max_items
        overflow = len(self._entries) - limit
        if overflow <= 0:
            return 0

        oldest = sorted(self._entries.values(), key=lambda entry: entry.created_at)[:overflow]
        for entry in oldest:
            del self._entries[entry.key]

        logger.debug(f"Evicted {overflow} oldest cache items (limit={limit})")
        return overflow

    def clear(self) -> None:
        """メモリ上のキャッシュをすべて削除"""
        self._entries.clear()
        logger.info("Cache cleared")

    async def clear_all(self) -> None:
        """メモリ上と永続化層のキャッシュをすべて削除"""
        self.clear()
        if self.store is not None:
            await self.store.delete(PERSIST_KEY)

    def snapshot(self) -> dict[str, CacheEntry]:
        """全エントリのスナップショット（期限切れを含む）"""
        return dict(self._entries)

    def stats(self) -> CacheStats:
        """キャッシュ統計を取得"""
        now = self._now()
        stats = CacheStats(total_items=len(self._entries))
        counters = {
            CacheBucket.MOVIE_DETAILS: "movie_details",
            CacheBucket.ACTOR_DETAILS: "actor_details",
            CacheBucket.MOVIE_CREDITS: "movie_credits",
            CacheBucket.ACTOR_CREDITS: "actor_credits",
            CacheBucket.DISCOVER: "discover",
            CacheBucket.POPULAR: "popular",
            CacheBucket.DEFAULT: "other",
        }
        for key, entry in self._entries.items():
            field = counters[classify(key)]
            setattr(stats, field, getattr(stats, field) + 1)
            if entry.is_expired(now):
                stats.expired += 1

        stats.total_size_mb = len(self._serialize(self._entries.values())) / (1024 * 1024)
        return stats

    @staticmethod
    def _serialize(entries) -> str:
        return json.dumps({entry.key: entry.model_dump(mode="json") for entry in entries})

    async def persist(self) -> int:
        """期限内のエントリを永続化層に保存

        Returns:
            保存した件数
        """
        if self.store is None:
            return 0

        now = self._now()
        entries = [entry for entry in self._entries.values() if not entry.is_expired(now)]
        payload = self._serialize(entries)

        if len(payload.encode("utf-8")) >= self.settings.cache_max_persist_bytes:
            logger.warning("Cache too large to persist, keeping most recent entries only")
            entries = sorted(entries, key=lambda entry: entry.created_at, reverse=True)
            entries = entries[: self.settings.cache_persist_fallback_items]
            payload = self._serialize(entries)

        await self.store.set(PERSIST_KEY, payload)
        logger.info(f"Saved {len(entries)} cached items to persistent store")
        return len(entries)

    async def hydrate(self) -> int:
        """永続化層からメモリ上のキャッシュを復元

        壊れたデータや期限切れのエントリは読み飛ばす。

        Returns:
            復元した件数
        """
        if self.store is None:
            return 0

        raw = await self.store.get(PERSIST_KEY)
        if not raw:
            return 0

        try:
            saved = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error loading cache from persistent store: {str(e)}")
            return 0

        if not isinstance(saved, dict):
            logger.error("Persisted cache has unexpected shape, ignoring")
            return 0

        now = self._now()
        loaded = 0
        for key, item in saved.items():
            try:
                entry = CacheEntry.model_validate(item)
            except ValidationError:
                logger.warning(f"Skipping malformed cache entry: {key}")
                continue

            if entry.is_expired(now):
                continue

            current = self._entries.get(entry.key)
            if current is None or current.created_at < entry.created_at:
                self._entries[entry.key] = entry
                loaded += 1

        self.evict_over_capacity()
        logger.info(f"Loaded {loaded} cached items from persistent store")
        return loaded

    async def start(self) -> None:
        """永続化層から復元し、定期永続化と定期掃除を開始"""
        if self.is_running:
            logger.warning("Cache maintenance already running")
            return

        self.is_running = True
        try:
            await self.hydrate()
        except ApplicationError as e:
            logger.error(f"Cache hydration failed: {e.message}")

        self._persist_task = asyncio.create_task(
            self._periodic(self.settings.cache_persist_interval, self.persist, "persist")
        )
        self._sweep_task = asyncio.create_task(
            self._periodic(self.settings.cache_sweep_interval, self._sweep, "sweep")
        )
        logger.info("Cache maintenance started")

    async def stop(self) -> None:
        """定期処理を停止し、最後に永続化する"""
        if not self.is_running:
            return

        self.is_running = False
        for task in (self._persist_task, self._sweep_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._persist_task = None
        self._sweep_task = None

        try:
            await self.persist()
        except ApplicationError as e:
            logger.error(f"Final cache persistence failed: {e.message}")

        logger.info("Cache maintenance stopped")

    async def _sweep(self) -> int:
        return self.evict_expired()

    async def _periodic(self, interval: float, action, name: str) -> None:
        """一定間隔で処理を実行するループ"""
        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await action()
            except asyncio.CancelledError:
                logger.info(f"Cache {name} loop cancelled")
                raise
            except Exception as e:
                logger.exception(f"Error in cache {name} loop: {str(e)}")
