"""Test configuration"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config.settings import Settings
from src.database.connection import Base

# Import all models to ensure they are registered
from src.models.kv_store import KeyValueRecord  # noqa: F401
from src.services.api_cache import TieredCache
from src.services.kv_store import KeyValueStore


@pytest.fixture
def settings():
    """テスト用設定（リトライ待機を短くする）"""
    return Settings(
        tmdb_api_key="test_api_key",
        initial_retry_delay=0.01,
        rate_limit_buffer=0.0,
        max_requests_per_second=100,
    )


@pytest.fixture
async def session_maker():
    """テスト用セッションメーカー"""
    # インメモリ SQLite（接続を共有する）
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def kv_store(session_maker):
    """テスト用キーバリューストア"""
    return KeyValueStore(session_maker)


@pytest.fixture
def cache(kv_store, settings):
    """テスト用キャッシュ"""
    return TieredCache(kv_store, settings)
