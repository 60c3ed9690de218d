"""
レート制限

直近1秒間のリクエスト数を固定の上限に抑える
"""

import asyncio
import time
from collections import deque

from src.config.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """スライディングウィンドウ方式のレートリミッター"""

    def __init__(self, max_requests: int = 4, window: float = 1.0, buffer: float = 0.01):
        self.max_requests = max_requests
        self.window = window
        self.buffer = buffer
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()  # 解放順序は FIFO

    @property
    def timestamps(self) -> list[float]:
        """記録済みのリクエスト時刻（古い順）"""
        return list(self._timestamps)

    def _prune(self, now: float) -> None:
        """ウィンドウ外の時刻を削除"""
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    async def acquire_slot(self) -> None:
        """リクエスト枠を取得するまで待機"""
        async with self._lock:
            now = time.monotonic()
            self._prune(now)

            while len(self._timestamps) >= self.max_requests:
                wait_time = self.window - (now - self._timestamps[0]) + self.buffer
                logger.debug(f"Rate limit reached, waiting {wait_time:.3f}s")
                await asyncio.sleep(wait_time)
                now = time.monotonic()
                self._prune(now)

            self._timestamps.append(time.monotonic())
