# marketplace/orm/filters.py
# 將 where 字典 (e.g. {"status": "open", "budget_max": {"gte": 500}}) 轉成 SQLAlchemy 條件式
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import Text, and_, cast, false, func, not_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from marketplace.orm.errors import ValidationError
from marketplace.orm.inputs import coerce_value, scalar_filter_model, validate
from marketplace.orm.schema import JSON_KIND, STRING, ModelSpec, RelationField, ScalarField, Schema

LOGICAL_KEYS = ("AND", "OR", "NOT")
LIST_RELATION_KEYS = ("some", "every", "none")
ONE_RELATION_KEYS = ("is", "is_not")
_JSON_FILTER_KEYS = {"equals", "not"}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _combine(clauses: List[ColumnElement]) -> Optional[ColumnElement]:
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)


def _is_filter_object(field: ScalarField, value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    if field.kind == JSON_KIND:
        # Json 欄位：只有 key 完全是 filter 運算子時才視為 filter，否則是要比對的值
        return bool(value) and set(value) <= _JSON_FILTER_KEYS
    return True


def scalar_condition(expr, field: ScalarField, value: Any, label: str) -> ColumnElement:
    """
    單一 scalar 欄位的條件式。

    expr 通常是 Model 欄位，但 group_by 的 having 也會傳入聚合函式 (e.g. avg(price))。
    """
    if not _is_filter_object(field, value):
        value = {"equals": value}
    operations = validate(scalar_filter_model(field), value, label)
    insensitive = operations.pop("mode", None) == "insensitive" and field.kind == STRING
    target = func.lower(expr) if insensitive else expr

    def operand(raw):
        return raw.lower() if insensitive and isinstance(raw, str) else raw

    clauses = []
    for op, raw in operations.items():
        if op == "not":
            if _is_filter_object(field, raw):
                nested = dict(raw)
                if insensitive:
                    nested.setdefault("mode", "insensitive")
                clauses.append(not_(scalar_condition(expr, field, nested, label)))
            else:
                coerced = coerce_value(field, raw, label)
                if coerced is None:
                    clauses.append(expr.is_not(None))
                elif field.kind == JSON_KIND:
                    clauses.append(cast(expr, Text) != json.dumps(coerced))
                else:
                    clauses.append(target != operand(coerced))
        elif op == "equals":
            if raw is None:
                clauses.append(expr.is_(None))
            elif field.kind == JSON_KIND:
                clauses.append(cast(expr, Text) == json.dumps(raw))
            else:
                clauses.append(target == operand(raw))
        elif op == "in":
            clauses.append(target.in_([operand(v) for v in raw]))
        elif op == "not_in":
            clauses.append(target.not_in([operand(v) for v in raw]))
        elif op == "lt":
            clauses.append(target < operand(raw))
        elif op == "lte":
            clauses.append(target <= operand(raw))
        elif op == "gt":
            clauses.append(target > operand(raw))
        elif op == "gte":
            clauses.append(target >= operand(raw))
        elif op == "contains":
            clauses.append(expr.icontains(raw, autoescape=True) if insensitive else expr.contains(raw, autoescape=True))
        elif op == "starts_with":
            clauses.append(expr.istartswith(raw, autoescape=True) if insensitive else expr.startswith(raw, autoescape=True))
        elif op == "ends_with":
            clauses.append(expr.iendswith(raw, autoescape=True) if insensitive else expr.endswith(raw, autoescape=True))
    # 空的 filter 物件 ({}) 代表不過濾
    return _combine(clauses) if clauses else true()


class WhereBuilder:
    """依照 Schema 遞迴編譯 where / where-unique 物件"""

    def __init__(self, schema: Schema):
        self.schema = schema

    def build(self, model: ModelSpec, where: Optional[Dict[str, Any]]) -> Optional[ColumnElement]:
        if where is None:
            return None
        if not isinstance(where, dict):
            raise ValidationError(f"Argument `where` of type {model.name}WhereInput must be an object")

        compounds = model.compound_selectors()
        clauses = []
        for key, value in where.items():
            if key in LOGICAL_KEYS:
                clauses.extend(self._logical(model, key, value))
                continue

            field = model.get_field(key)
            if field is not None:
                clauses.append(scalar_condition(model.column(key), field, value, f"{model.name}.{key}"))
                continue

            relation = model.get_relation(key)
            if relation is not None:
                clauses.append(self._relation(model, relation, value))
                continue

            if key in compounds:
                clauses.append(self._compound(model, key, compounds[key], value))
                continue

            raise ValidationError(f"Unknown argument `{key}` in {model.name}WhereInput")
        return _combine(clauses)

    def build_unique(self, model: ModelSpec, where: Optional[Dict[str, Any]], label: str = "where") -> ColumnElement:
        """
        where-unique：至少要有一個 unique selector (id / email / 複合鍵)，
        其他欄位可以再額外過濾。
        """
        if not isinstance(where, dict) or not where:
            raise ValidationError(self._missing_unique_message(model, label))
        if not any(self._has_selector(model, selector, where) for selector in model.unique_selectors):
            raise ValidationError(self._missing_unique_message(model, label))
        return self.build(model, where)

    def _has_selector(self, model: ModelSpec, selector, where: Dict[str, Any]) -> bool:
        if len(selector) > 1:
            return isinstance(where.get("_".join(selector)), dict)
        value = where.get(selector[0])
        if isinstance(value, dict):
            return value.get("equals") is not None and set(value) == {"equals"}
        return value is not None

    def _missing_unique_message(self, model: ModelSpec, label: str) -> str:
        names = ", ".join(f"`{'_'.join(s)}`" for s in model.unique_selectors)
        return f"Argument `{label}` of type {model.name}WhereUniqueInput needs at least one of {names} arguments."

    def _logical(self, model: ModelSpec, key: str, value: Any) -> List[ColumnElement]:
        built = [self.build(model, item) for item in _as_list(value)]
        if key == "AND":
            return [c for c in built if c is not None]
        if key == "OR":
            # OR: [] 不會匹配任何資料
            return [or_(*[true() if c is None else c for c in built]) if built else false()]
        # NOT: [a, b] => NOT a AND NOT b
        return [not_(c) for c in built if c is not None]

    def _compound(self, model: ModelSpec, key: str, selector, value: Any) -> ColumnElement:
        if not isinstance(value, dict) or set(value) != set(selector):
            raise ValidationError(
                f"Argument `{key}` of {model.name}WhereUniqueInput needs exactly {', '.join(selector)}"
            )
        clauses = []
        for name in selector:
            field = model.get_field(name)
            clauses.append(model.column(name) == coerce_value(field, value[name], f"{key}.{name}"))
        return and_(*clauses)

    def _relation(self, model: ModelSpec, relation: RelationField, value: Any) -> ColumnElement:
        target = self.schema[relation.target]
        attr = model.column(relation.name)

        if relation.is_list:
            if not isinstance(value, dict) or not set(value) <= set(LIST_RELATION_KEYS):
                raise ValidationError(
                    f"Argument `{relation.name}` of {model.name}WhereInput accepts only some / every / none"
                )
            clauses = []
            for op, sub_where in value.items():
                condition = self.build(target, sub_where)
                if op == "some":
                    clauses.append(attr.any(condition) if condition is not None else attr.any())
                elif op == "none":
                    clauses.append(~(attr.any(condition) if condition is not None else attr.any()))
                else:
                    # every：沒有任何一筆「不符合」
                    clauses.append(~attr.any(not_(condition)) if condition is not None else true())
            return _combine(clauses) if clauses else true()

        if value is None:
            return ~attr.has()
        if not isinstance(value, dict):
            raise ValidationError(f"Argument `{relation.name}` of {model.name}WhereInput must be an object")
        if not value or not set(value) <= set(ONE_RELATION_KEYS):
            # 直接傳入關聯的 where，等同 is
            value = {"is": value}

        clauses = []
        for op, sub_where in value.items():
            if sub_where is None:
                clauses.append(~attr.has() if op == "is" else attr.has())
                continue
            condition = self.build(target, sub_where)
            matched = attr.has(condition) if condition is not None else attr.has()
            clauses.append(matched if op == "is" else ~matched)
        return _combine(clauses)
