"""
API キャッシュのユニットテスト
"""

import json
from unittest.mock import patch

import pytest

from src.config.settings import DAY, HOUR
from src.services.api_cache import PERSIST_KEY, CacheBucket, TieredCache, classify, ttl_for_bucket


@pytest.mark.parametrize(
    "url,bucket",
    [
        ("/movie/550/credits?language=en-US", CacheBucket.MOVIE_CREDITS),
        ("/person/31/movie_credits?language=en-US", CacheBucket.ACTOR_CREDITS),
        ("/movie/550?language=en-US", CacheBucket.MOVIE_DETAILS),
        ("/person/31", CacheBucket.ACTOR_DETAILS),
        ("/discover/movie?page=2&sort_by=popularity.desc", CacheBucket.DISCOVER),
        ("/person/popular?page=3", CacheBucket.POPULAR),
        ("/configuration", CacheBucket.DEFAULT),
    ],
)
def test_classify(url, bucket):
    """URL パターンから TTL 区分を判定"""
    assert classify(url) == bucket


def test_ttl_buckets(settings):
    """区分ごとの TTL"""
    assert ttl_for_bucket(CacheBucket.MOVIE_DETAILS, settings) == 7 * DAY
    assert ttl_for_bucket(CacheBucket.ACTOR_DETAILS, settings) == 7 * DAY
    assert ttl_for_bucket(CacheBucket.MOVIE_CREDITS, settings) == 3 * DAY
    assert ttl_for_bucket(CacheBucket.ACTOR_CREDITS, settings) == 3 * DAY
    assert ttl_for_bucket(CacheBucket.DISCOVER, settings) == DAY
    assert ttl_for_bucket(CacheBucket.POPULAR, settings) == 12 * HOUR
    assert ttl_for_bucket(CacheBucket.DEFAULT, settings) == DAY


def test_set_computes_expiry_from_source_url(settings):
    """source_url の区分から有効期限を計算"""
    cache = TieredCache(settings=settings)

    with patch.object(cache, "_now", return_value=1000.0):
        credits = cache.set("/movie/1/credits", {"cast": []}, "https://x/movie/1/credits")
        details = cache.set("/movie/1", {"id": 1}, "https://x/movie/1")

    assert credits.expires_at == 1000.0 + 3 * DAY
    assert details.expires_at == 1000.0 + 7 * DAY
    assert credits.expires_at > credits.created_at


def test_expired_entry_not_returned_by_normal_read(settings):
    """期限切れのエントリは通常の読み出しでは返らない"""
    cache = TieredCache(settings=settings)
    entry = cache.set("/movie/1", {"id": 1}, "/movie/1")
    entry.expires_at = cache._now() - 1

    assert cache.get("/movie/1") is None
    # 掃除までは保持され、stale 読み出しでは返る
    assert "/movie/1" in cache
    assert cache.get("/movie/1", allow_stale=True) == {"id": 1}


def test_fresh_entry_returned_unchanged(settings):
    """期限内のエントリはそのまま返る"""
    cache = TieredCache(settings=settings)
    payload = {"id": 1, "title": "Alien"}
    entry = cache.set("/movie/1", payload, "/movie/1")
    entry.expires_at = cache._now() + 1000

    assert cache.get("/movie/1") == payload


def test_evict_expired(settings):
    """期限切れのエントリのみ削除"""
    cache = TieredCache(settings=settings)
    cache.set("/movie/1", {"id": 1}, "/movie/1").expires_at = 0
    cache.set("/movie/2", {"id": 2}, "/movie/2")

    assert cache.evict_expired() == 1
    assert "/movie/1" not in cache
    assert "/movie/2" in cache


def test_evict_over_capacity_removes_oldest(settings):
    """上限を超えると作成日時の古い順に削除"""
    settings.cache_max_items = 3
    cache = TieredCache(settings=settings)

    for i in range(5):
        with patch.object(cache, "_now", return_value=1000.0 + i):
            cache.set(f"/movie/{i}", {"id": i}, f"/movie/{i}")

    assert len(cache) == 3
    assert set(cache.snapshot()) == {"/movie/2", "/movie/3", "/movie/4"}


def test_stats(settings):
    """区分ごとの件数を集計"""
    cache = TieredCache(settings=settings)
    cache.set("/movie/1/credits", {"cast": []}, "/movie/1/credits")
    cache.set("/person/2/movie_credits", {"cast": []}, "/person/2/movie_credits")
    cache.set("/person/popular?page=1", {"results": []}, "/person/popular?page=1")
    cache.set("/configuration", {}, "/configuration").expires_at = 0

    stats = cache.stats()

    assert stats.total_items == 4
    assert stats.movie_credits == 1
    assert stats.actor_credits == 1
    assert stats.popular == 1
    assert stats.other == 1
    assert stats.expired == 1
    assert stats.total_size_mb > 0


@pytest.mark.asyncio
async def test_persist_and_hydrate_round_trip(kv_store, settings):
    """永続化したエントリを別インスタンスで復元（期限切れは除外）"""
    cache = TieredCache(kv_store, settings)
    cache.set("/movie/1", {"id": 1}, "/movie/1")
    cache.set("/movie/2", {"id": 2}, "/movie/2").expires_at = 0

    assert await cache.persist() == 1

    restored = TieredCache(kv_store, settings)
    assert await restored.hydrate() == 1
    assert restored.get("/movie/1") == {"id": 1}
    assert "/movie/2" not in restored


@pytest.mark.asyncio
async def test_persist_keeps_most_recent_when_oversize(kv_store, settings):
    """サイズ上限を超える場合は最新のエントリのみ永続化"""
    settings.cache_max_persist_bytes = 200
    settings.cache_persist_fallback_items = 2
    cache = TieredCache(kv_store, settings)

    for i in range(5):
        with patch.object(cache, "_now", return_value=1000.0 + i):
            cache.set(f"/movie/{i}", {"id": i}, f"/movie/{i}")

    with patch.object(cache, "_now", return_value=1010.0):
        assert await cache.persist() == 2

    saved = json.loads(await kv_store.get(PERSIST_KEY))
    assert set(saved) == {"/movie/3", "/movie/4"}


@pytest.mark.asyncio
async def test_hydrate_ignores_corrupt_data(kv_store, settings):
    """壊れた永続化データでも例外を出さない"""
    await kv_store.set(PERSIST_KEY, "{not json")
    cache = TieredCache(kv_store, settings)

    assert await cache.hydrate() == 0
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_hydrate_skips_malformed_entries(kv_store, settings):
    """不正なエントリは読み飛ばす"""
    cache = TieredCache(kv_store, settings)
    now = cache._now()
    await kv_store.set(
        PERSIST_KEY,
        json.dumps(
            {
                "/movie/1": {
                    "key": "/movie/1",
                    "value": {"id": 1},
                    "created_at": now,
                    "expires_at": now + 100,
                    "source_url": "/movie/1",
                },
                "/movie/2": {"value": "missing fields"},
            }
        ),
    )

    assert await cache.hydrate() == 1
    assert cache.get("/movie/1") == {"id": 1}


@pytest.mark.asyncio
async def test_clear_all_removes_persisted_tier(kv_store, settings):
    """clear_all は永続化層も削除"""
    cache = TieredCache(kv_store, settings)
    cache.set("/movie/1", {"id": 1}, "/movie/1")
    await cache.persist()

    await cache.clear_all()

    assert len(cache) == 0
    assert await kv_store.get(PERSIST_KEY) is None


@pytest.mark.asyncio
async def test_start_and_stop_flushes(kv_store, settings):
    """stop で最後の永続化を行う"""
    cache = TieredCache(kv_store, settings)
    await cache.start()
    assert cache.is_running

    cache.set("/movie/1", {"id": 1}, "/movie/1")
    await cache.stop()

    assert not cache.is_running
    saved = json.loads(await kv_store.get(PERSIST_KEY))
    assert "/movie/1" in saved
