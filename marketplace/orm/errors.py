"""ORM client 的錯誤型別。

所有資料層錯誤都從 ClientError 衍生，讓 service / API 層可以一致地處理；
SQLAlchemy 或 driver 的例外在 client 邊界由 translate_db_error 轉換。
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError, SQLAlchemyError

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Base class for every error raised by the data client."""

    def __init__(self, message: str, client_version: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.client_version = client_version


class KnownRequestError(ClientError):
    """The database rejected the request for a known reason (carries a code)."""

    def __init__(self, message: str, code: str, meta: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = code
        self.meta = meta or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class RecordNotFoundError(KnownRequestError):
    """find_*_or_throw / update / delete 找不到紀錄"""

    def __init__(self, message: str, model: Optional[str] = None, **kwargs):
        super().__init__(message, code="P2025", meta={"modelName": model} if model else None, **kwargs)


class UniqueConstraintError(KnownRequestError):
    def __init__(self, message: str, target: Optional[list] = None, **kwargs):
        super().__init__(message, code="P2002", meta={"target": target or []}, **kwargs)


class ForeignKeyConstraintError(KnownRequestError):
    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="P2003", **kwargs)


class NullConstraintError(KnownRequestError):
    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="P2011", **kwargs)


class UnknownRequestError(ClientError):
    """Opaque driver failure the client cannot classify."""


class InitializationError(ClientError):
    """連線或設定錯誤 (例如資料庫無法連線、URL 不合法)"""

    def __init__(self, message: str, error_code: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.error_code = error_code


class ValidationError(ClientError):
    """呼叫參數不合法；在送出任何 SQL 之前就會被拋出。"""


# PostgreSQL SQLSTATE
_PG_UNIQUE_VIOLATION = "23505"
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_NOT_NULL_VIOLATION = "23502"

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<cols>[\w., ]+)")


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_db_error(exc: SQLAlchemyError) -> ClientError:
    """把 SQLAlchemy / driver 例外轉成對應的 ClientError"""
    message = str(getattr(exc, "orig", None) or exc)
    code = _sqlstate(exc) if isinstance(exc, DBAPIError) else None
    lowered = message.lower()

    if isinstance(exc, IntegrityError):
        if code == _PG_UNIQUE_VIOLATION or "unique" in lowered:
            target = []
            match = _SQLITE_UNIQUE.search(message)
            if match:
                target = [col.strip().split(".")[-1] for col in match.group("cols").split(",")]
            return UniqueConstraintError(f"Unique constraint failed: {message}", target=target)
        if code == _PG_FOREIGN_KEY_VIOLATION or "foreign key" in lowered:
            return ForeignKeyConstraintError(f"Foreign key constraint failed: {message}")
        if code == _PG_NOT_NULL_VIOLATION or "not null" in lowered:
            return NullConstraintError(f"Null constraint violation: {message}")

    if isinstance(exc, (OperationalError, InterfaceError)) and "connect" in lowered:
        return InitializationError(f"Can't reach database server: {message}")

    logger.warning(f"Unclassified database error: {message}")
    return UnknownRequestError(message)
