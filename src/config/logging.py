"""
ログ設定モジュール

構造化ログを提供します。ゲームセッション・プレイヤー・キャッシュキーを
コンテキストとして 1 行に出力します。
"""

import logging
import re
import sys
from typing import Any

from src.config.settings import get_settings

# セッション ID は uuid4 の hex。先頭だけで十分に識別できる
SESSION_ID_DISPLAY_LENGTH = 8

# discover のキーはクエリが長くなるため切り詰める
CACHE_QUERY_DISPLAY_LENGTH = 60

_API_KEY_PATTERN = re.compile(r"(api_key=)[^&\s]+")


def format_session_id(session_id: Any) -> str:
    """セッション ID を短縮表示"""
    text = str(session_id)
    return text[:SESSION_ID_DISPLAY_LENGTH]


def format_cache_key(cache_key: Any) -> str:
    """キャッシュキーを表示用に整形

    リクエストボディ部分（``|`` 以降）は省き、長いクエリは切り詰める

    Args:
        cache_key: tmdb_client.build_cache_key が生成したキー

    Returns:
        表示用の文字列
    """
    text = str(cache_key).split("|", 1)[0]
    path, _, query = text.partition("?")
    if not query:
        return path
    if len(query) > CACHE_QUERY_DISPLAY_LENGTH:
        query = query[:CACHE_QUERY_DISPLAY_LENGTH] + "..."
    return f"{path}?{query}"


def redact_api_key(text: str) -> str:
    """URL に含まれる TMDB の api_key を伏せる"""
    return _API_KEY_PATTERN.sub(r"\1***", text)


class StructuredFormatter(logging.Formatter):
    """構造化ログフォーマッター"""

    def format(self, record: logging.LogRecord) -> str:
        """ログレコードをフォーマット"""
        # 基本情報
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_api_key(record.getMessage()),
        }

        # ゲームのコンテキスト
        if getattr(record, "session_id", None):
            log_data["session"] = format_session_id(record.session_id)

        if getattr(record, "player_id", None):
            log_data["player"] = record.player_id

        if getattr(record, "cache_key", None):
            log_data["cache_key"] = format_cache_key(record.cache_key)

        # HTTP リクエスト（main.py の例外ハンドラー）
        if hasattr(record, "method") and hasattr(record, "path"):
            log_data["request"] = f"{record.method} {record.path}"

        # エラー情報
        if record.exc_info:
            log_data["exception"] = redact_api_key(self.formatException(record.exc_info))

        parts = [f"{k}={v}" for k, v in log_data.items()]
        return " | ".join(parts)


def setup_logging() -> None:
    """ログ設定を初期化"""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # lifespan の再実行でハンドラーが重複しないようにする
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, StructuredFormatter):
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    # httpx は api_key 付きの URL を INFO で出す
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """ロガーを取得

    Args:
        name: ロガー名

    Returns:
        ロガーインスタンス
    """
    return logging.getLogger(name)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """セッション・プレイヤーを付与するロガーアダプター"""

    def process(self, msg: str, kwargs: Any) -> tuple[str, Any]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger_with_context(name: str, **context: Any) -> SessionLoggerAdapter:
    """コンテキスト付きロガーを取得

    Args:
        name: ロガー名
        **context: コンテキスト情報（session_id, player_id, cache_key）

    Returns:
        ロガーアダプター
    """
    return SessionLoggerAdapter(get_logger(name), context)
