"""Runtime values exported next to the generated client surface."""

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

CLIENT_VERSION = "1.0.0"
__version__ = CLIENT_VERSION


@dataclass(frozen=True)
class BatchPayload:
    """create_many / update_many / delete_many 的回傳值"""
    count: int


class SortOrder(str, enum.Enum):
    asc = "asc"
    desc = "desc"


class NullsOrder(str, enum.Enum):
    first = "first"
    last = "last"


class QueryMode(str, enum.Enum):
    default = "default"
    insensitive = "insensitive"


class TransactionIsolationLevel(str, enum.Enum):
    ReadUncommitted = "ReadUncommitted"
    ReadCommitted = "ReadCommitted"
    RepeatableRead = "RepeatableRead"
    Serializable = "Serializable"


# 對應 SQLAlchemy 的 isolation_level execution option
ISOLATION_LEVELS = {
    TransactionIsolationLevel.ReadUncommitted: "READ UNCOMMITTED",
    TransactionIsolationLevel.ReadCommitted: "READ COMMITTED",
    TransactionIsolationLevel.RepeatableRead: "REPEATABLE READ",
    TransactionIsolationLevel.Serializable: "SERIALIZABLE",
}

LOG_LEVELS = ("query", "info", "warn", "error")


def get_log_level(log: Optional[Iterable]) -> Optional[str]:
    """
    從 log 設定中挑出最詳細的等級 ('query' > 'info')，其餘回傳 None。

    log 的每個元素可以是字串 ('query') 或 {"level": "query", "emit": "stdout"}。
    """
    levels = set()
    for definition in log or ():
        level = definition.get("level") if isinstance(definition, dict) else definition
        levels.add(level)
    if "query" in levels:
        return "query"
    if "info" in levels:
        return "info"
    return None
