# marketplace/orm/raw.py
# Raw SQL 組字工具：sql("... WHERE email = {}", email) 會把值變成 bound parameter
import re
from typing import Any, Dict, Iterable, List, Tuple

from marketplace.orm.errors import ValidationError

_POSITIONAL = re.compile(r"\$(\d+)")


class _Param:
    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value


class Sql:
    """由 SQL 片段與參數組成；巢狀的 Sql 會被直接展開"""

    def __init__(self, parts: Iterable[Any] = ()):
        self.parts: List[Any] = []
        for part in parts:
            if isinstance(part, Sql):
                self.parts.extend(part.parts)
            else:
                self.parts.append(part)

    @property
    def values(self) -> List[Any]:
        return [part.value for part in self.parts if isinstance(part, _Param)]

    def compile(self) -> Tuple[str, Dict[str, Any]]:
        """轉成 SQLAlchemy text() 可用的 (語句, 參數)，參數名稱為 p1, p2 ..."""
        chunks = []
        params = {}
        for part in self.parts:
            if isinstance(part, _Param):
                name = f"p{len(params) + 1}"
                params[name] = part.value
                chunks.append(f":{name}")
            else:
                chunks.append(part)
        return "".join(chunks), params

    @property
    def text(self) -> str:
        return self.compile()[0]

    def __add__(self, other: "Sql") -> "Sql":
        return Sql([self, other])

    def __repr__(self) -> str:
        return f"Sql({self.text!r}, values={self.values!r})"


def sql(template: str, *values: Any) -> Sql:
    """
    sql("SELECT * FROM users WHERE role = {} AND name LIKE {}", "client", "A%")

    每個 {} 對應一個值；值是 Sql 時直接嵌入 (例如 join(...) 或 raw(...))。
    """
    pieces = template.split("{}")
    if len(pieces) - 1 != len(values):
        raise ValidationError(
            f"sql() template has {len(pieces) - 1} placeholder(s) but {len(values)} value(s) were given"
        )
    parts: List[Any] = [pieces[0]]
    for value, piece in zip(values, pieces[1:]):
        parts.append(value if isinstance(value, Sql) else _Param(value))
        parts.append(piece)
    return Sql(parts)


def join(values: Iterable[Any], separator: str = ", ", prefix: str = "", suffix: str = "") -> Sql:
    """把多個值變成以 separator 分隔的參數列表 (e.g., IN ({}))"""
    items = list(values)
    if not items:
        raise ValidationError("join() expects at least one value")
    parts: List[Any] = [prefix]
    for index, value in enumerate(items):
        if index:
            parts.append(separator)
        parts.append(value if isinstance(value, Sql) else _Param(value))
    parts.append(suffix)
    return Sql(parts)


def raw(text: str) -> Sql:
    """不經參數化、直接嵌入的 SQL 片段 (不要放使用者輸入)"""
    return Sql([text])


empty = Sql()


def positional(query: str, values: Tuple[Any, ...]) -> Tuple[str, Dict[str, Any]]:
    """把 $1..$n 佔位符轉成 :p1..:pn"""
    used = {int(match) for match in _POSITIONAL.findall(query)}
    if used and (max(used) > len(values) or min(used) < 1):
        raise ValidationError(f"Query references ${max(used)} but only {len(values)} value(s) were given")
    text = _POSITIONAL.sub(lambda match: f":p{match.group(1)}", query)
    return text, {f"p{index}": value for index, value in enumerate(values, start=1)}
