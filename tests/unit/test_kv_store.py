"""
キーバリューストアのユニットテスト
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.services.error_handler import StorageError
from src.services.kv_store import KeyValueStore


@pytest.mark.asyncio
async def test_get_missing_key(kv_store):
    """存在しないキーは None"""
    assert await kv_store.get("missing") is None


@pytest.mark.asyncio
async def test_set_and_overwrite(kv_store):
    """保存と上書き"""
    await kv_store.set("key", "first")
    await kv_store.set("key", "second")

    assert await kv_store.get("key") == "second"


@pytest.mark.asyncio
async def test_delete(kv_store):
    """削除"""
    await kv_store.set("key", "value")

    await kv_store.delete("key")

    assert await kv_store.get("key") is None


@pytest.mark.asyncio
async def test_keys_with_prefix(kv_store):
    """プレフィックスでキーを絞り込み"""
    await kv_store.set("movieGameConnections:p1", "[]")
    await kv_store.set("movieGameConnections:p2", "[]")
    await kv_store.set("tmdbApiCache", "{}")

    keys = await kv_store.keys("movieGameConnections:")

    assert sorted(keys) == ["movieGameConnections:p1", "movieGameConnections:p2"]
    assert len(await kv_store.keys()) == 3


@pytest.mark.asyncio
async def test_database_error_wrapped():
    """データベースエラーは StorageError に変換"""
    session_maker = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("locked")))
    store = KeyValueStore(session_maker)

    with pytest.raises(StorageError):
        await store.get("key")
