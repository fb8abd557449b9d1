"""
Schema description used by the client and the type generator.

build_schema() 讀取 SQLAlchemy declarative registry，轉成不可變的
ModelSpec / ScalarField / RelationField 描述；之後所有的 filter、ordering、
nested write 與型別產生都只依賴這份描述，不直接碰 Model 類別的細節。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import RelationshipProperty, class_mapper

# 欄位種類 (kind)
STRING = "String"
INT = "Int"
FLOAT = "Float"
BOOLEAN = "Boolean"
DATETIME = "DateTime"
JSON_KIND = "Json"
ENUM = "Enum"

NUMERIC_KINDS = (INT, FLOAT)

_PYTHON_TYPES = {
    STRING: str,
    INT: int,
    FLOAT: float,
    BOOLEAN: bool,
    DATETIME: datetime,
    JSON_KIND: Any,
}


class SchemaError(Exception):
    """The declarative models cannot be described (unsupported mapping)."""


@dataclass(frozen=True)
class ScalarField:
    name: str
    kind: str
    nullable: bool
    is_id: bool = False
    is_unique: bool = False
    has_default: bool = False
    is_foreign_key: bool = False
    enum_class: Optional[type] = None

    @property
    def python_type(self) -> Any:
        if self.kind == ENUM:
            return self.enum_class
        return _PYTHON_TYPES[self.kind]

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def is_comparable(self) -> bool:
        return self.kind != JSON_KIND

    @property
    def is_required_on_create(self) -> bool:
        return not (self.nullable or self.has_default or self.is_foreign_key)


@dataclass(frozen=True)
class RelationField:
    name: str
    target: str
    is_list: bool
    # [(local field, remote field)]，例如 Service.freelancer: [("freelancer_id", "id")]
    pairs: Tuple[Tuple[str, str], ...]
    required: bool = True

    @property
    def local_field(self) -> str:
        return self.pairs[0][0]

    @property
    def remote_field(self) -> str:
        return self.pairs[0][1]

    @property
    def owns_foreign_key(self) -> bool:
        """to-one 關聯且外鍵在本表 (e.g., Proposal.project)"""
        return not self.is_list


@dataclass(frozen=True)
class ModelSpec:
    name: str
    table: str
    cls: type
    fields: Tuple[ScalarField, ...]
    relations: Tuple[RelationField, ...]
    # 每個 selector 是一組欄位；單欄位 unique 與複合 unique 都在這裡
    unique_selectors: Tuple[Tuple[str, ...], ...]

    @property
    def id_field(self) -> ScalarField:
        return next(f for f in self.fields if f.is_id)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def numeric_fields(self) -> List[ScalarField]:
        return [f for f in self.fields if f.is_numeric]

    @property
    def comparable_fields(self) -> List[ScalarField]:
        return [f for f in self.fields if f.is_comparable]

    @property
    def list_relations(self) -> List[RelationField]:
        return [r for r in self.relations if r.is_list]

    @property
    def delegate_name(self) -> str:
        return self.name[0].lower() + self.name[1:]

    def get_field(self, name: str) -> Optional[ScalarField]:
        return next((f for f in self.fields if f.name == name), None)

    def get_relation(self, name: str) -> Optional[RelationField]:
        return next((r for r in self.relations if r.name == name), None)

    def column(self, name: str):
        """回傳 ORM 類別上的 InstrumentedAttribute (可直接用於 SQL 表達式)"""
        return getattr(self.cls, name)

    def compound_selectors(self) -> Dict[str, Tuple[str, ...]]:
        """複合 unique 的名稱 → 欄位，例如 project_id_freelancer_id"""
        return {
            compound_name(selector): selector
            for selector in self.unique_selectors
            if len(selector) > 1
        }

    def scalar_field_enum(self) -> type:
        return enum.Enum(f"{self.name}ScalarFieldEnum", [(n, n) for n in self.field_names], type=str)


def compound_name(selector: Tuple[str, ...]) -> str:
    return "_".join(selector)


@dataclass(frozen=True)
class Schema:
    models: Dict[str, ModelSpec] = field(default_factory=dict)

    def __getitem__(self, name: str) -> ModelSpec:
        return self.models[name]

    def __iter__(self):
        return iter(self.models.values())

    def __len__(self) -> int:
        return len(self.models)

    @property
    def metadata(self):
        """所有 Model 共用的 MetaData (push_schema 用來建立資料表)"""
        first = next(iter(self.models.values()))
        return first.cls.metadata

    def model_name_enum(self) -> type:
        return enum.Enum("ModelName", [(name, name) for name in self.models], type=str)


def _field_kind(column) -> Tuple[str, Optional[type]]:
    col_type = column.type
    # 注意：Enum 是 String 的子類別，必須先判斷
    if isinstance(col_type, Enum):
        if col_type.enum_class is None:
            raise SchemaError(f"Column {column} must use a Python enum class")
        return ENUM, col_type.enum_class
    if isinstance(col_type, JSON):
        return JSON_KIND, None
    if isinstance(col_type, Boolean):
        return BOOLEAN, None
    if isinstance(col_type, DateTime):
        return DATETIME, None
    if isinstance(col_type, Integer):
        return INT, None
    if isinstance(col_type, (Float, Numeric)):
        return FLOAT, None
    if isinstance(col_type, String):
        return STRING, None
    raise SchemaError(f"Unsupported column type {col_type!r} on {column}")


def _unique_selectors(mapper, column_names: Dict[Any, str]) -> Tuple[Tuple[str, ...], ...]:
    table = mapper.local_table
    selectors: List[Tuple[str, ...]] = []

    def add(columns):
        names = tuple(column_names[c] for c in columns)
        if names and names not in selectors:
            selectors.append(names)

    add(list(table.primary_key.columns))
    for column in table.columns:
        if column.unique:
            add([column])
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            add(list(constraint.columns))
    for index in table.indexes:
        if index.unique:
            add(list(index.columns))
    return tuple(selectors)


def describe_model(cls) -> ModelSpec:
    mapper = class_mapper(cls)
    table = mapper.local_table
    if len(table.primary_key.columns) != 1:
        raise SchemaError(f"{cls.__name__} must have exactly one primary key column")

    column_names = {}
    fields = []
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        column_names[column] = prop.key
        kind, enum_class = _field_kind(column)
        fields.append(
            ScalarField(
                name=prop.key,
                kind=kind,
                nullable=bool(column.nullable) and not column.primary_key,
                is_id=column.primary_key,
                is_unique=bool(column.unique) or column.primary_key,
                has_default=column.default is not None or column.server_default is not None,
                is_foreign_key=bool(column.foreign_keys),
                enum_class=enum_class,
            )
        )

    relations = []
    for prop in mapper.relationships:
        if not isinstance(prop, RelationshipProperty) or prop.secondary is not None:
            raise SchemaError(f"{cls.__name__}.{prop.key}: many-to-many relations are not supported")
        pairs = tuple(
            (prop.parent.get_property_by_column(local).key, prop.mapper.get_property_by_column(remote).key)
            for local, remote in prop.local_remote_pairs
        )
        if len(pairs) != 1:
            raise SchemaError(f"{cls.__name__}.{prop.key}: composite foreign keys are not supported")
        local_column = prop.local_remote_pairs[0][0]
        relations.append(
            RelationField(
                name=prop.key,
                target=prop.mapper.class_.__name__,
                is_list=bool(prop.uselist),
                pairs=pairs,
                required=bool(prop.uselist) or not local_column.nullable,
            )
        )

    return ModelSpec(
        name=cls.__name__,
        table=table.name,
        cls=cls,
        fields=tuple(fields),
        relations=tuple(relations),
        unique_selectors=_unique_selectors(mapper, column_names),
    )


def build_schema(base) -> Schema:
    """
    將 declarative Base 上註冊的所有 Model 描述成 Schema。

    Model 依照資料表宣告 (匯入) 的順序排列，讓型別產生器的輸出保持穩定。
    """
    by_table = {m.local_table.name: m.class_ for m in base.registry.mappers}
    models = {}
    for table_name in base.metadata.tables:
        cls = by_table.get(table_name)
        if cls is None:
            continue
        spec = describe_model(cls)
        models[spec.name] = spec
    for spec in models.values():
        for relation in spec.relations:
            if relation.target not in models:
                raise SchemaError(f"{spec.name}.{relation.name} points at unknown model {relation.target}")
    return Schema(models=models)
