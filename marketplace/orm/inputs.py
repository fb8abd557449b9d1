"""
Runtime input shapes generated from the schema with pydantic.

每個 Model 會產生：
- <Model>Record          : 完整的紀錄資料 (所有 scalar 欄位)
- <Model>CreateInput     : create 時的 scalar 欄位 (必填欄位 = 非 null、無預設值、非外鍵)
- <Model>UpdateInput     : update 時的 scalar 欄位 (全部可選，可帶 atomic 運算)
以及各欄位種類共用的 scalar filter (StringFilter, IntFilter ...)。
"""

from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional, Type, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, create_model

from marketplace.orm.errors import ValidationError
from marketplace.orm.schema import (
    BOOLEAN, DATETIME, ENUM, FLOAT, INT, JSON_KIND, STRING, ModelSpec, ScalarField
)

_FORBID = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

# 各欄位種類支援的 filter 運算子
FILTER_OPERATORS = {
    STRING: ("equals", "in", "not_in", "lt", "lte", "gt", "gte", "contains", "starts_with", "ends_with", "mode", "not"),
    INT: ("equals", "in", "not_in", "lt", "lte", "gt", "gte", "not"),
    FLOAT: ("equals", "in", "not_in", "lt", "lte", "gt", "gte", "not"),
    DATETIME: ("equals", "in", "not_in", "lt", "lte", "gt", "gte", "not"),
    BOOLEAN: ("equals", "not"),
    ENUM: ("equals", "in", "not_in", "not"),
    JSON_KIND: ("equals", "not"),
}

# 數值欄位的 atomic update 運算
NUMBER_UPDATE_OPERATIONS = ("set", "increment", "decrement", "multiply", "divide")


def format_errors(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(parts)


def validate(model_cls: Type[BaseModel], data: Any, label: str) -> Dict[str, Any]:
    """用 pydantic 驗證並回傳有被設定的欄位 (exclude_unset)"""
    if not isinstance(data, dict):
        raise ValidationError(f"Argument `{label}` must be an object, got {type(data).__name__}")
    try:
        parsed = model_cls.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid argument `{label}`: {format_errors(exc)}") from exc
    return parsed.model_dump(exclude_unset=True, by_alias=True)


def filter_name(field: ScalarField) -> str:
    base = field.enum_class.__name__ if field.kind == ENUM else field.kind
    prefix = "Enum" if field.kind == ENUM else ""
    return f"{prefix}{base}{'Nullable' if field.nullable else ''}Filter"


@lru_cache(maxsize=None)
def _scalar_filter_model(kind: str, python_type: Any, nullable: bool, name: str) -> Type[BaseModel]:
    value_type = Optional[python_type] if nullable else python_type
    specs = {
        "equals": (value_type, None),
        "in_": (Optional[List[python_type]], Field(None, alias="in")),
        "not_in": (Optional[List[python_type]], None),
        "lt": (Optional[python_type], None),
        "lte": (Optional[python_type], None),
        "gt": (Optional[python_type], None),
        "gte": (Optional[python_type], None),
        "contains": (Optional[str], None),
        "starts_with": (Optional[str], None),
        "ends_with": (Optional[str], None),
        "mode": (Optional[Literal["default", "insensitive"]], None),
        # not 可以是單一值或巢狀 filter，交給 filters 模組遞迴處理
        "not_": (Any, Field(None, alias="not")),
    }
    allowed = FILTER_OPERATORS[kind]
    fields = {}
    for attr, spec in specs.items():
        operator = attr.rstrip("_")
        if operator in allowed:
            if attr == "equals" and not nullable:
                fields[attr] = (Optional[python_type], None)
            else:
                fields[attr] = spec
    return create_model(name, __config__=_FORBID, **fields)


def scalar_filter_model(field: ScalarField) -> Type[BaseModel]:
    return _scalar_filter_model(field.kind, field.python_type, field.nullable, filter_name(field))


def coerce_value(field: ScalarField, value: Any, label: Optional[str] = None) -> Any:
    """把單一值依欄位型別轉換 (e.g., ISO 字串 → datetime, 'client' → UserRole.client)"""
    parsed = validate(scalar_filter_model(field), {"equals": value}, label or field.name)
    return parsed.get("equals")


def _python_type(field: ScalarField) -> Any:
    return Any if field.kind == JSON_KIND else field.python_type


@lru_cache(maxsize=None)
def record_model(model: ModelSpec) -> Type[BaseModel]:
    fields = {}
    for field in model.fields:
        python_type = _python_type(field)
        fields[field.name] = (Optional[python_type], None) if field.nullable else (python_type, ...)
    return create_model(f"{model.name}Record", __config__=ConfigDict(arbitrary_types_allowed=True), **fields)


@lru_cache(maxsize=None)
def create_input_model(model: ModelSpec) -> Type[BaseModel]:
    fields = {}
    for field in model.fields:
        python_type = _python_type(field)
        if field.is_required_on_create:
            fields[field.name] = (python_type, ...)
        elif field.nullable:
            fields[field.name] = (Optional[python_type], None)
        else:
            # 有預設值或由關聯提供的外鍵：可省略，但不能是 null
            fields[field.name] = (python_type, None)
    return create_model(f"{model.name}CreateInput", __config__=_FORBID, **fields)


@lru_cache(maxsize=None)
def _update_operations_model(kind: str, python_type: Any, nullable: bool) -> Type[BaseModel]:
    value_type = Optional[python_type] if nullable else python_type
    operations = NUMBER_UPDATE_OPERATIONS if kind in (INT, FLOAT) else ("set",)
    fields = {
        op: ((value_type if op == "set" else python_type), None)
        for op in operations
    }
    prefix = "Nullable" if nullable else ""
    label = "Number" if kind in (INT, FLOAT) else kind
    return create_model(
        f"{prefix}{label}{python_type.__name__.title()}FieldUpdateOperationsInput",
        __config__=_FORBID,
        **fields,
    )


@lru_cache(maxsize=None)
def update_input_model(model: ModelSpec) -> Type[BaseModel]:
    fields = {}
    for field in model.fields:
        if field.kind == JSON_KIND:
            fields[field.name] = (Any, None)
            continue
        operations = _update_operations_model(field.kind, field.python_type, field.nullable)
        value_type = Union[field.python_type, operations]
        fields[field.name] = (Optional[value_type] if field.nullable else value_type, None)
    return create_model(f"{model.name}UpdateInput", __config__=_FORBID, **fields)
