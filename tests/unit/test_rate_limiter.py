"""
レートリミッターのユニットテスト
"""

import asyncio
import time

import pytest

from src.services.rate_limiter import RateLimiter


@pytest.mark.asyncio
async def test_acquire_within_budget_does_not_wait():
    """上限以内なら待機しない"""
    limiter = RateLimiter(max_requests=4)

    start = time.monotonic()
    for _ in range(4):
        await limiter.acquire_slot()

    assert time.monotonic() - start < 0.5
    assert len(limiter.timestamps) == 4


@pytest.mark.asyncio
async def test_ten_calls_take_at_least_two_windows():
    """4件/秒で10件発行すると2ウィンドウ以上かかる"""
    limiter = RateLimiter(max_requests=4)
    issued: list[float] = []

    start = time.monotonic()
    for _ in range(10):
        await limiter.acquire_slot()
        issued.append(time.monotonic())
    elapsed = time.monotonic() - start

    assert elapsed >= 2.0

    # どの1秒間をとっても4件以下
    for i, ts in enumerate(issued):
        in_window = [other for other in issued[i:] if other - ts < 1.0]
        assert len(in_window) <= 4


@pytest.mark.asyncio
async def test_concurrent_callers_respect_budget():
    """並行呼び出しでも上限を超えない"""
    limiter = RateLimiter(max_requests=2, window=0.2)
    issued: list[float] = []

    async def call():
        await limiter.acquire_slot()
        issued.append(time.monotonic())

    await asyncio.gather(*(call() for _ in range(6)))

    issued.sort()
    assert len(issued) == 6
    for i, ts in enumerate(issued):
        in_window = [other for other in issued[i:] if other - ts < 0.2]
        assert len(in_window) <= 2


@pytest.mark.asyncio
async def test_old_timestamps_are_pruned():
    """ウィンドウ外の記録は削除される"""
    limiter = RateLimiter(max_requests=2, window=0.1)

    await limiter.acquire_slot()
    await limiter.acquire_slot()
    await asyncio.sleep(0.15)
    await limiter.acquire_slot()

    assert len(limiter.timestamps) == 1
