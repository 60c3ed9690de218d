"""
発見履歴サービス

プレイヤーが回答・出題で出会った映画と俳優を、回数とレアリティ付きで記録する。
"""

import json
from datetime import datetime

from pydantic import ValidationError

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.models.game import GameItem, ItemType, PlayerHistory, PlayerHistoryItem, Rarity
from src.models.tmdb import Actor, Movie
from src.services.kv_store import KeyValueStore
from src.services.rarity import calculate_actor_rarity, calculate_movie_rarity

logger = get_logger(__name__)

HISTORY_KEY_PREFIX = "movieGamePlayerHistory"

RARITY_ORDER = [Rarity.LEGENDARY, Rarity.EPIC, Rarity.RARE, Rarity.UNCOMMON, Rarity.COMMON]


def history_key(player_id: str) -> str:
    """プレイヤーごとの保存キー"""
    return f"{HISTORY_KEY_PREFIX}:{player_id}"


def rarity_for_item(item: GameItem) -> Rarity:
    """GameItem のレアリティ（未設定なら詳細から算出）"""
    if item.rarity:
        return item.rarity

    details = {"id": item.id, **item.details}
    try:
        if item.type == ItemType.MOVIE:
            return calculate_movie_rarity(Movie.model_validate(details))
        return calculate_actor_rarity(Actor.model_validate(details))
    except ValidationError:
        return Rarity.COMMON


class PlayerHistoryService:
    """発見履歴の読み書き"""

    def __init__(self, store: KeyValueStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    async def load(self, player_id: str) -> PlayerHistory:
        """発見履歴を読み込む（壊れたデータは空として扱う）"""
        raw = await self.store.get(history_key(player_id))
        if not raw:
            return PlayerHistory()

        try:
            return PlayerHistory.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error loading player history: {str(e)}", extra={"player_id": player_id})
            return PlayerHistory()

    async def save(self, player_id: str, history: PlayerHistory) -> None:
        """発見履歴を保存"""
        await self.store.set(history_key(player_id), history.model_dump_json())

    async def add_item(self, player_id: str, item: GameItem) -> PlayerHistory:
        """アイテムを履歴に追加

        既存のアイテムは回数を加算して先頭に移動し、新しいアイテムは先頭に追加して
        上限件数を超えた分を切り詰める。

        Args:
            player_id: プレイヤー ID
            item: 追加するアイテム

        Returns:
            更新後の履歴
        """
        history = await self.load(player_id)
        items = history.items_for(item.type)
        now = datetime.utcnow().isoformat()
        rarity = rarity_for_item(item)

        index = next((i for i, entry in enumerate(items) if entry.id == item.id), None)
        if index is not None:
            entry = items.pop(index)
            entry.count += 1
            entry.date = now
            if not entry.rarity:
                entry.rarity = rarity
            items.insert(0, entry)
        else:
            items.insert(
                0,
                PlayerHistoryItem(
                    id=item.id, name=item.name, date=now, count=1, image=item.image, rarity=rarity
                ),
            )
            del items[self.settings.max_history_items :]

        await self.save(player_id, history)
        logger.debug(
            f"Recorded {item.type.value} {item.id} in player history", extra={"player_id": player_id}
        )
        return history

    async def is_new_item(self, player_id: str, item: GameItem) -> bool:
        """履歴にないアイテムかどうか"""
        history = await self.load(player_id)
        return all(entry.id != item.id for entry in history.items_for(item.type))

    async def get_most_used_items(
        self, player_id: str, item_type: ItemType, limit: int = 10
    ) -> list[PlayerHistoryItem]:
        """使用回数の多い順"""
        history = await self.load(player_id)
        return sorted(history.items_for(item_type), key=lambda entry: entry.count, reverse=True)[:limit]

    async def get_recent_items(
        self, player_id: str, item_type: ItemType, limit: int = 10
    ) -> list[PlayerHistoryItem]:
        """最近使用した順（履歴は新しい順に並んでいる）"""
        history = await self.load(player_id)
        return history.items_for(item_type)[:limit]

    async def get_items_by_rarity(
        self, player_id: str, item_type: ItemType, rarity: Rarity | None = None
    ) -> list[PlayerHistoryItem]:
        """レアリティで絞り込み、指定がなければレアな順に並べる"""
        history = await self.load(player_id)
        items = history.items_for(item_type)
        if rarity is not None:
            return [entry for entry in items if entry.rarity == rarity]
        return sorted(items, key=lambda entry: RARITY_ORDER.index(entry.rarity or Rarity.COMMON))

    async def clear(self, player_id: str) -> None:
        """発見履歴を削除"""
        await self.store.delete(history_key(player_id))
        logger.info("Player history cleared", extra={"player_id": player_id})
