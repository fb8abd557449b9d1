# marketplace/orm/ordering.py
# order_by 編譯 + cursor 分頁條件
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_, select

from marketplace.orm.errors import ValidationError
from marketplace.orm.schema import JSON_KIND, ModelSpec, Schema

DIRECTIONS = ("asc", "desc")
NULLS = ("first", "last")

# 這些資料庫把 NULL 當成最小值 (asc 時排在最前面)；PostgreSQL / Oracle 則相反
NULLS_LOW_DIALECTS = ("sqlite", "mysql", "mariadb", "mssql")


@dataclass(frozen=True)
class OrderTerm:
    expr: Any
    descending: bool = False
    nulls: Optional[str] = None
    # 只有「本 Model 的 scalar 欄位」才有 field (cursor 分頁需要)
    field: Optional[str] = None

    def flipped(self) -> "OrderTerm":
        nulls = {"first": "last", "last": "first"}.get(self.nulls) if self.nulls else None
        return replace(self, descending=not self.descending, nulls=nulls)

    def clause(self):
        ordered = self.expr.desc() if self.descending else self.expr.asc()
        if self.nulls == "first":
            ordered = ordered.nulls_first()
        elif self.nulls == "last":
            ordered = ordered.nulls_last()
        return ordered

    def nulls_last(self, nulls_low: bool) -> bool:
        """NULL 是否排在非 NULL 值之後 (未指定 nulls 時依資料庫預設)"""
        if self.nulls is not None:
            return self.nulls == "last"
        return self.descending == nulls_low


def sort_direction(value: Any, label: str) -> bool:
    if value not in DIRECTIONS:
        raise ValidationError(f"Invalid sort order `{value}` for `{label}`, expected asc or desc")
    return value == "desc"


class OrderBuilder:
    def __init__(self, schema: Schema):
        self.schema = schema

    def build(self, model: ModelSpec, order_by: Any) -> List[OrderTerm]:
        if order_by is None:
            return []
        items = order_by if isinstance(order_by, (list, tuple)) else [order_by]
        terms = []
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError(f"Argument `order_by` of {model.name} must be an object or a list of objects")
            for key, value in item.items():
                terms.extend(self._terms(model, key, value))
        return terms

    def _terms(self, model: ModelSpec, key: str, value: Any) -> List[OrderTerm]:
        label = f"{model.name}.{key}"
        field = model.get_field(key)
        if field is not None:
            if field.kind == JSON_KIND:
                raise ValidationError(f"Cannot order by Json field `{label}`")
            if isinstance(value, dict):
                if not set(value) <= {"sort", "nulls"} or "sort" not in value:
                    raise ValidationError(f"Argument `{label}` of order_by needs `sort` (and optional `nulls`)")
                nulls = value.get("nulls")
                if nulls is not None and nulls not in NULLS:
                    raise ValidationError(f"Invalid nulls order `{nulls}` for `{label}`")
                return [OrderTerm(model.column(key), sort_direction(value["sort"], label), nulls, key)]
            return [OrderTerm(model.column(key), sort_direction(value, label), None, key)]

        relation = model.get_relation(key)
        if relation is None:
            raise ValidationError(f"Unknown field `{key}` in {model.name}OrderByWithRelationInput")

        target = self.schema[relation.target]
        join = target.column(relation.remote_field) == model.column(relation.local_field)

        if relation.is_list:
            # 一對多只能依關聯筆數排序：{"proposals": {"_count": "desc"}}
            if not isinstance(value, dict) or set(value) != {"_count"}:
                raise ValidationError(f"Argument `{label}` of order_by accepts only `_count`")
            count = select(func.count()).select_from(target.cls).where(join).scalar_subquery()
            return [OrderTerm(count, sort_direction(value["_count"], label))]

        if not isinstance(value, dict):
            raise ValidationError(f"Argument `{label}` of order_by must be a nested order_by object")
        nested = []
        for sub_key, sub_value in value.items():
            for term in self._terms(target, sub_key, sub_value):
                wrapped = select(term.expr).where(join).scalar_subquery()
                nested.append(OrderTerm(wrapped, term.descending, term.nulls))
        return nested

    def with_tiebreaker(self, model: ModelSpec, terms: List[OrderTerm]) -> List[OrderTerm]:
        """永遠加上主鍵排序，讓分頁結果穩定"""
        id_name = model.id_field.name
        if any(t.field == id_name for t in terms):
            return terms
        return terms + [OrderTerm(model.column(id_name), False, None, id_name)]


def _equals(expr, value):
    return expr.is_(None) if value is None else expr == value


def _after(term: OrderTerm, value: Any, nulls_low: bool):
    """排在 value 之後 (不含相等) 的條件；沒有任何值排在後面時回傳 None"""
    nulls_last = term.nulls_last(nulls_low)
    if value is None:
        return None if nulls_last else term.expr.is_not(None)
    after = term.expr < value if term.descending else term.expr > value
    return or_(after, term.expr.is_(None)) if nulls_last else after


def cursor_condition(terms: List[OrderTerm], values: Dict[str, Any], nulls_low: bool = True):
    """
    產生「從 cursor 這筆開始 (包含)」的條件。

    依照排序欄位做字典序比較：
    (a > v1) OR (a = v1 AND b > v2) OR ... OR (全部相等 = cursor 本身)

    「>」依方向與 NULL 的位置決定，nulls_low 表示資料庫預設把 NULL 當成最小值。
    """
    branches = []
    for index, term in enumerate(terms):
        after = _after(term, values[term.field], nulls_low)
        if after is None:
            continue
        previous = [_equals(t.expr, values[t.field]) for t in terms[:index]]
        branches.append(and_(*previous, after))
    branches.append(and_(*[_equals(t.expr, values[t.field]) for t in terms]))
    return or_(*branches)
