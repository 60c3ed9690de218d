"""
キーバリューストアサービス

キャッシュの永続化層、接続履歴、発見履歴を保存するシンプルな get/set ストア
"""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config.logging import get_logger
from src.database.connection import get_session_maker
from src.models.kv_store import KeyValueRecord
from src.services.error_handler import StorageError

logger = get_logger(__name__)


class KeyValueStore:
    """SQLAlchemy をバックエンドとするキーバリューストア"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self.session_maker = session_maker or get_session_maker()

    async def get(self, key: str) -> str | None:
        """値を取得

        Args:
            key: キー

        Returns:
            保存された値（存在しない場合は None）

        Raises:
            StorageError: データベースエラー
        """
        try:
            async with self.session_maker() as session:
                stmt = select(KeyValueRecord).where(KeyValueRecord.key == key)
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
                return record.value if record else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read key {key}: {str(e)}")
            raise StorageError("Failed to read from key-value store", original_error=e)

    async def set(self, key: str, value: str) -> None:
        """値を保存（既存の場合は上書き）

        Args:
            key: キー
            value: 保存する値

        Raises:
            StorageError: データベースエラー
        """
        try:
            async with self.session_maker() as session:
                stmt = select(KeyValueRecord).where(KeyValueRecord.key == key)
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()

                if record:
                    record.value = value
                    record.updated_at = datetime.utcnow()
                else:
                    session.add(KeyValueRecord(key=key, value=value))

                await session.commit()
                logger.debug(f"Stored key {key} ({len(value)} bytes)")
        except SQLAlchemyError as e:
            logger.error(f"Failed to write key {key}: {str(e)}")
            raise StorageError("Failed to write to key-value store", original_error=e)

    async def delete(self, key: str) -> None:
        """値を削除

        Args:
            key: キー
        """
        try:
            async with self.session_maker() as session:
                await session.execute(delete(KeyValueRecord).where(KeyValueRecord.key == key))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete key {key}: {str(e)}")
            raise StorageError("Failed to delete from key-value store", original_error=e)

    async def keys(self, prefix: str = "") -> list[str]:
        """キー一覧を取得

        Args:
            prefix: キーのプレフィックス

        Returns:
            キーのリスト
        """
        try:
            async with self.session_maker() as session:
                stmt = select(KeyValueRecord.key)
                if prefix:
                    stmt = stmt.where(KeyValueRecord.key.startswith(prefix))
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list keys: {str(e)}")
            raise StorageError("Failed to list key-value store keys", original_error=e)
