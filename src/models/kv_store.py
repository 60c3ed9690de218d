"""
キーバリューストア関連モデル

KeyValueRecord
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.connection import Base


class KeyValueRecord(Base):
    """永続化キーバリューレコード（値は JSON テキスト）"""

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<KeyValueRecord(key={self.key}, size={len(self.value)})>"
