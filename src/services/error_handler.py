"""
エラーハンドリングユーティリティ

一貫したエラーレスポンスを提供します。
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from src.config.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """エラーコード"""

    # 一般エラー
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # TMDB API 関連
    TMDB_API_ERROR = "TMDB_API_ERROR"
    TMDB_API_TIMEOUT = "TMDB_API_TIMEOUT"
    PAYLOAD_INVALID = "PAYLOAD_INVALID"

    # ストレージ関連
    STORAGE_ERROR = "STORAGE_ERROR"

    # ゲーム関連
    SELECTION_ERROR = "SELECTION_ERROR"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # 回答検証関連
    NOT_FOUND = "NOT_FOUND"
    NO_OPTIONS = "NO_OPTIONS"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    API_ERROR = "API_ERROR"
    INVALID_TYPE = "INVALID_TYPE"


class ErrorResponse(BaseModel):
    """エラーレスポンス"""

    code: ErrorCode
    message: str
    details: Optional[dict[str, Any]] = None


class ApplicationError(Exception):
    """アプリケーション基底例外"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """ErrorResponse に変換"""
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class TMDBAPIError(ApplicationError):
    """TMDB API エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.TMDB_API_ERROR, message=message, details=details, **kwargs)


class TMDBTimeoutError(ApplicationError):
    """TMDB API タイムアウトエラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.TMDB_API_TIMEOUT, message=message, details=details, **kwargs
        )


class PayloadValidationError(ApplicationError):
    """TMDB レスポンス形式エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.PAYLOAD_INVALID, message=message, details=details, **kwargs)


class StorageError(ApplicationError):
    """永続化ストレージエラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.STORAGE_ERROR, message=message, details=details, **kwargs)


class SelectionError(ApplicationError):
    """映画・俳優の選出エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(code=ErrorCode.SELECTION_ERROR, message=message, details=details, **kwargs)


class SessionNotFoundError(ApplicationError):
    """ゲームセッション未検出エラー"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, **kwargs):
        super().__init__(
            code=ErrorCode.SESSION_NOT_FOUND, message=message, details=details, **kwargs
        )


def handle_error(error: Exception, context: Optional[dict[str, Any]] = None) -> ErrorResponse:
    """エラーをハンドリングして ErrorResponse を返す

    Args:
        error: 例外
        context: コンテキスト情報

    Returns:
        ErrorResponse
    """
    context = context or {}

    if isinstance(error, ApplicationError):
        logger.error(
            f"Application error: {error.code} - {error.message}",
            extra={"error_details": error.details, **context},
        )
        return error.to_response()

    # 予期しないエラー
    logger.exception("Unexpected error", extra=context)
    return ErrorResponse(
        code=ErrorCode.INTERNAL_ERROR,
        message="予期しないエラーが発生しました",
        details={"original_error": str(error)},
    )
