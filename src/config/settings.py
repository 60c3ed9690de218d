"""
設定管理モジュール

環境変数を読み込み、アプリケーション全体で使用する設定を提供します。
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

HOUR = 60 * 60
DAY = 24 * HOUR


class Settings(BaseSettings):
    """アプリケーション設定"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # TMDB API Configuration
    tmdb_api_key: str = Field(default="", description="TMDB API キー")
    tmdb_api_url: str = Field(default="https://api.themoviedb.org/3", description="TMDB API URL")
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w500", description="画像 URL のプレフィックス"
    )
    tmdb_api_timeout: float = Field(default=30.0, description="TMDB API タイムアウト（秒）")

    # Rate Limit / Retry Configuration
    max_requests_per_second: int = Field(default=4, description="1秒あたりの最大リクエスト数")
    rate_limit_buffer: float = Field(default=0.01, description="レート制限待機時のバッファ（秒）")
    max_retries: int = Field(default=3, description="最大試行回数")
    initial_retry_delay: float = Field(default=1.0, description="初期バックオフ時間（秒）")

    # Cache TTL Configuration（秒）
    cache_ttl_movie_details: int = Field(default=7 * DAY, description="映画詳細の TTL")
    cache_ttl_actor_details: int = Field(default=7 * DAY, description="俳優詳細の TTL")
    cache_ttl_movie_credits: int = Field(default=3 * DAY, description="映画クレジットの TTL")
    cache_ttl_actor_credits: int = Field(default=3 * DAY, description="俳優出演作の TTL")
    cache_ttl_discover: int = Field(default=DAY, description="discover エンドポイントの TTL")
    cache_ttl_popular: int = Field(default=12 * HOUR, description="人気リストの TTL")
    cache_ttl_default: int = Field(default=DAY, description="その他エンドポイントの TTL")

    # Cache Size / Persistence Configuration
    cache_max_items: int = Field(default=500, description="メモリキャッシュの最大件数")
    cache_max_persist_bytes: int = Field(
        default=5 * 1024 * 1024, description="永続化キャッシュの最大サイズ（バイト）"
    )
    cache_persist_fallback_items: int = Field(
        default=100, description="サイズ超過時に永続化する最新エントリ数"
    )
    cache_persist_interval: float = Field(default=5 * 60, description="永続化間隔（秒）")
    cache_sweep_interval: float = Field(default=HOUR, description="期限切れ掃除の間隔（秒）")

    # Game Configuration
    fuzzy_match_threshold: float = Field(default=0.8, description="あいまい一致の閾値")
    recent_franchise_window: int = Field(default=5, description="直近フランチャイズの保持数")
    recent_actor_type_window: int = Field(default=2, description="直近俳優タイプの保持数")
    recent_item_window: int = Field(default=10, description="直近選択 ID の保持数")
    prefetch_batch_size: int = Field(default=5, description="プリフェッチする候補数")
    max_history_items: int = Field(default=100, description="発見履歴の最大件数（種別ごと）")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/database.db", description="データベース URL"
    )

    # Application Configuration
    log_level: str = Field(default="INFO", description="ログレベル")
    environment: str = Field(default="development", description="実行環境")


@lru_cache()
def get_settings() -> Settings:
    """設定インスタンスを取得（シングルトン）"""
    return Settings()
