"""
Typed client surface generator.

render_types(schema) 依照 Schema 產生 Python typing stub (TypedDict / Protocol)：
record、where / where-unique、order_by、select / include / omit、create / update
(含巢狀寫入)、聚合、group_by、各操作的參數，以及 delegate 與 client 的 Protocol。

輸出只依賴 Schema 的內容與順序，同一份 Schema 會得到完全相同的原始碼。
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from marketplace.orm.inputs import FILTER_OPERATORS, NUMBER_UPDATE_OPERATIONS, filter_name
from marketplace.orm.schema import (
    BOOLEAN, DATETIME, ENUM, FLOAT, INT, JSON_KIND, STRING,
    ModelSpec, RelationField, ScalarField, Schema, SchemaError, compound_name,
)

_TYPE_NAMES = {
    STRING: "str",
    INT: "int",
    FLOAT: "float",
    BOOLEAN: "bool",
    DATETIME: "datetime",
    JSON_KIND: "Any",
}

_HEADER = '''\
# Generated by marketplace.orm.codegen from the SQLAlchemy models. Do not edit by hand.
"""Typed surface of the data client."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from typing_extensions import Literal, NotRequired, Protocol, TypedDict

from marketplace.orm.raw import Sql
from marketplace.orm.runtime import BatchPayload
'''

Entry = Tuple[str, str, bool]


def _req(key: str, annotation: str) -> Entry:
    return key, annotation, True


def _opt(key: str, annotation: str) -> Entry:
    return key, annotation, False


def _q(name: str) -> str:
    return f'"{name}"'


def _camel(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


def _one_or_many(annotation: str) -> str:
    return f"Union[{annotation}, List[{annotation}]]"


def _literal(values: List[str]) -> str:
    return "Literal[" + ", ".join(_q(v) for v in values) + "]"


def _value_type(field: ScalarField) -> str:
    if field.kind == ENUM:
        return field.enum_class.__name__
    return _TYPE_NAMES[field.kind]


def _nullable_type(field: ScalarField) -> str:
    value = _value_type(field)
    return f"Optional[{value}]" if field.nullable and value != "Any" else value


def _update_ops_name(field: ScalarField) -> str:
    base = f"Enum{field.enum_class.__name__}" if field.kind == ENUM else field.kind
    return f"{'Nullable' if field.nullable else ''}{base}FieldUpdateOperationsInput"


class _Source:
    def __init__(self):
        self.lines: List[str] = []

    def add(self, text: str = ""):
        self.lines.append(text)

    def typed_dict(self, name: str, entries: List[Entry]):
        self.add(f"{name} = TypedDict(")
        self.add(f"    {_q(name)},")
        self.add("    {")
        for key, annotation, required in entries:
            wrapped = annotation if required else f"NotRequired[{annotation}]"
            self.add(f"        {_q(key)}: {wrapped},")
        self.add("    },")
        self.add(")")
        self.add("")

    def alias(self, name: str, annotation: str):
        self.add(f"{name} = {annotation}")
        self.add("")

    def render(self) -> str:
        while self.lines and not self.lines[-1]:
            self.lines.pop()
        return "\n".join(self.lines) + "\n"


class _Renderer:
    def __init__(self, schema: Schema):
        if not len(schema):
            raise SchemaError("Cannot generate types for an empty schema")
        self.schema = schema
        self.out = _Source()

    # ---------- 共用 ----------

    def back_relation(self, model: ModelSpec, relation: RelationField) -> RelationField:
        """一對多關聯在子表上對應的 to-one 關聯 (e.g., User.projects ↔ Project.client)"""
        target = self.schema[relation.target]
        reversed_pairs = tuple((remote, local) for local, remote in relation.pairs)
        for candidate in target.relations:
            if candidate.target == model.name and not candidate.is_list and candidate.pairs == reversed_pairs:
                return candidate
        raise SchemaError(f"{model.name}.{relation.name} has no matching relation on {target.name}")

    def scalar_fields(self) -> List[ScalarField]:
        return [field for model in self.schema for field in model.fields]

    def render(self) -> str:
        self.out.add(_HEADER)
        self.enums()
        self.common()
        for model in self.schema:
            self.model(model)
        for model in self.schema:
            self.delegate(model)
        self.client()
        return self.out.render()

    def enums(self):
        seen: Dict[str, type] = {}
        for field in self.scalar_fields():
            if field.kind == ENUM:
                seen.setdefault(field.enum_class.__name__, field.enum_class)
        for name, enum_class in seen.items():
            self.out.add("")
            self.out.add(f"class {name}(str, enum.Enum):")
            for member in enum_class:
                self.out.add(f"    {member.name} = {_q(member.value)}")
            self.out.add("")
        self.out.add("")

    def common(self):
        out = self.out
        out.alias("SortOrder", _literal(["asc", "desc"]))
        out.alias("NullsOrder", _literal(["first", "last"]))
        out.alias("QueryMode", _literal(["default", "insensitive"]))
        out.alias(
            "TransactionIsolationLevel",
            _literal(["ReadUncommitted", "ReadCommitted", "RepeatableRead", "Serializable"]),
        )
        out.alias("ModelName", _literal([model.name for model in self.schema]))
        for model in self.schema:
            out.alias(f"{model.name}ScalarFieldEnum", _literal(model.field_names))

        out.typed_dict("SortOrderInput", [_req("sort", "SortOrder"), _opt("nulls", "NullsOrder")])
        out.typed_dict("OrderByRelationAggregateInput", [_req("_count", "SortOrder")])
        out.typed_dict(
            "AggregateFilterInput",
            [_opt(bucket, "Dict[str, Any]") for bucket in ("_count", "_avg", "_sum", "_min", "_max")],
        )

        filters: Dict[str, ScalarField] = {}
        updates: Dict[str, ScalarField] = {}
        for field in self.scalar_fields():
            filters.setdefault(filter_name(field), field)
            if field.kind != JSON_KIND:
                updates.setdefault(_update_ops_name(field), field)
        for name, field in filters.items():
            self.scalar_filter(name, field)
        for name, field in updates.items():
            operations = NUMBER_UPDATE_OPERATIONS if field.is_numeric else ("set",)
            entries = [
                _opt(op, _nullable_type(field) if op == "set" else _value_type(field))
                for op in operations
            ]
            out.typed_dict(name, entries)

    def scalar_filter(self, name: str, field: ScalarField):
        value = _value_type(field)
        nullable = _nullable_type(field)
        annotations = {
            "equals": nullable,
            "in": f"List[{value}]",
            "not_in": f"List[{value}]",
            "lt": value,
            "lte": value,
            "gt": value,
            "gte": value,
            "contains": "str",
            "starts_with": "str",
            "ends_with": "str",
            "mode": "QueryMode",
            "not": f"Union[{nullable}, {_q(name)}]",
        }
        self.out.typed_dict(name, [_opt(op, annotations[op]) for op in FILTER_OPERATORS[field.kind]])

    # ---------- 每個 Model ----------

    def model(self, model: ModelSpec):
        self.out.add(f"# ---------- {model.name} ----------")
        self.out.add("")
        self.record(model)
        self.where(model)
        self.where_unique(model)
        self.order_by(model)
        self.projection(model)
        self.create_inputs(model)
        self.update_inputs(model)
        self.nested_inputs(model)
        self.aggregates(model)
        self.args(model)

    def record(self, model: ModelSpec):
        self.out.typed_dict(model.name, [_req(f.name, _nullable_type(f)) for f in model.fields])
        if model.list_relations:
            self.out.typed_dict(
                f"{model.name}CountOutputType",
                [_req(r.name, "int") for r in model.list_relations],
            )

    def where_entries(self, model: ModelSpec) -> List[Entry]:
        where = _q(f"{model.name}WhereInput")
        entries = [_opt(key, _one_or_many(where)) for key in ("AND", "OR", "NOT")]
        for field in model.fields:
            entries.append(_opt(field.name, f"Union[{_nullable_type(field)}, {_q(filter_name(field))}]"))
        for relation in model.relations:
            target = relation.target
            if relation.is_list:
                entries.append(_opt(relation.name, _q(f"{target}ListRelationFilter")))
            else:
                annotation = f"Union[{_q(f'{target}RelationFilter')}, {_q(f'{target}WhereInput')}]"
                if not relation.required:
                    annotation = f"Optional[{annotation}]"
                entries.append(_opt(relation.name, annotation))
        return entries

    def where(self, model: ModelSpec):
        name = model.name
        where = _q(f"{name}WhereInput")
        self.out.typed_dict(f"{name}WhereInput", self.where_entries(model))
        self.out.typed_dict(
            f"{name}ListRelationFilter",
            [_opt(key, where) for key in ("some", "every", "none")],
        )
        self.out.typed_dict(
            f"{name}RelationFilter",
            [_opt(key, f"Optional[{where}]") for key in ("is", "is_not")],
        )

    def where_unique(self, model: ModelSpec):
        name = model.name
        compounds = model.compound_selectors()
        for key, selector in compounds.items():
            self.out.typed_dict(
                f"{name}{_camel(key)}CompoundUniqueInput",
                [_req(field, _value_type(model.get_field(field))) for field in selector],
            )

        base = self.where_entries(model)
        base += [_opt(key, _q(f"{name}{_camel(key)}CompoundUniqueInput")) for key in compounds]
        variants = []
        for selector in model.unique_selectors:
            key = compound_name(selector)
            if len(selector) > 1:
                required = _req(key, _q(f"{name}{_camel(key)}CompoundUniqueInput"))
            else:
                required = _req(key, _value_type(model.get_field(key)))
            variant = f"{name}WhereUniqueInputBy{_camel(key)}"
            self.out.typed_dict(variant, [required] + [entry for entry in base if entry[0] != key])
            variants.append(variant)
        self.out.alias(f"{name}WhereUniqueInput", f"Union[{', '.join(variants)}]")

    def order_by(self, model: ModelSpec):
        entries = [
            _opt(field.name, f"Union[SortOrder, {_q('SortOrderInput')}]")
            for field in model.fields
            if field.is_comparable
        ]
        for relation in model.relations:
            if relation.is_list:
                entries.append(_opt(relation.name, _q("OrderByRelationAggregateInput")))
            else:
                entries.append(_opt(relation.name, _q(f"{relation.target}OrderByWithRelationInput")))
        self.out.typed_dict(f"{model.name}OrderByWithRelationInput", entries)

    def relation_arg(self, relation: RelationField) -> str:
        suffix = "ListRelationArgs" if relation.is_list else "RelationArgs"
        return f"Union[bool, {_q(relation.target + suffix)}]"

    def projection(self, model: ModelSpec):
        name = model.name
        count = [_opt("_count", f"Union[bool, {_q(name + 'CountOutputTypeArgs')}]")] if model.list_relations else []
        relations = [_opt(r.name, self.relation_arg(r)) for r in model.relations]

        self.out.typed_dict(f"{name}Select", [_opt(f.name, "bool") for f in model.fields] + relations + count)
        self.out.typed_dict(f"{name}Include", relations + count)
        self.out.typed_dict(f"{name}Omit", [_opt(f.name, "bool") for f in model.fields])

        projection = [
            _opt("select", _q(f"{name}Select")),
            _opt("include", _q(f"{name}Include")),
            _opt("omit", _q(f"{name}Omit")),
        ]
        self.out.typed_dict(f"{name}RelationArgs", projection)
        self.out.typed_dict(
            f"{name}ListRelationArgs",
            [
                _opt("where", _q(f"{name}WhereInput")),
                _opt("order_by", _one_or_many(_q(f"{name}OrderByWithRelationInput"))),
                _opt("take", "int"),
                _opt("skip", "int"),
                _opt("distinct", _one_or_many(f"{name}ScalarFieldEnum")),
            ] + projection,
        )
        self.out.typed_dict(f"{name}CountWhereArgs", [_opt("where", _q(f"{name}WhereInput"))])
        if model.list_relations:
            self.out.typed_dict(
                f"{name}CountOutputTypeSelect",
                [
                    _opt(r.name, f"Union[bool, {_q(r.target + 'CountWhereArgs')}]")
                    for r in model.list_relations
                ],
            )
            self.out.typed_dict(
                f"{name}CountOutputTypeArgs",
                [_opt("select", _q(f"{name}CountOutputTypeSelect"))],
            )

    # ---------- create / update ----------

    def _scalar_create_entry(self, field: ScalarField, checked: bool) -> Optional[Entry]:
        if field.is_foreign_key and checked:
            return None
        annotation = _nullable_type(field)
        if field.is_foreign_key:
            required = not (field.nullable or field.has_default)
            return (field.name, annotation, required)
        return (field.name, annotation, field.is_required_on_create)

    def _many_nested(self, model: ModelSpec, relation: RelationField, kind: str) -> str:
        back = self.back_relation(model, relation)
        return _q(f"{relation.target}{kind}Without{_camel(back.name)}{'NestedInput' if kind == 'UpdateMany' else 'Input'}")

    def create_entries(self, model: ModelSpec, checked: bool, without: Optional[RelationField] = None) -> List[Entry]:
        entries = []
        for field in model.fields:
            if without is not None and field.name == without.local_field:
                continue
            entry = self._scalar_create_entry(field, checked)
            if entry is not None:
                entries.append(entry)
        for relation in model.relations:
            if without is not None and relation.name == without.name:
                continue
            if relation.is_list:
                entries.append(_opt(relation.name, self._many_nested(model, relation, "CreateNestedMany")))
            elif checked:
                entries.append((relation.name, _q(f"{relation.target}CreateNestedOneInput"), relation.required))
        return entries

    def create_inputs(self, model: ModelSpec):
        name = model.name
        self.out.typed_dict(f"{name}CreateInput", self.create_entries(model, checked=True))
        self.out.typed_dict(f"{name}UncheckedCreateInput", self.create_entries(model, checked=False))
        self.out.alias(f"{name}CreateInputs", f"Union[{name}CreateInput, {name}UncheckedCreateInput]")
        self.out.typed_dict(
            f"{name}CreateManyInput",
            [entry for entry in (self._scalar_create_entry(f, checked=False) for f in model.fields)],
        )
        self.out.typed_dict(
            f"{name}CreateOrConnectInput",
            [_req("where", _q(f"{name}WhereUniqueInput")), _req("create", _q(f"{name}CreateInputs"))],
        )
        self.out.typed_dict(
            f"{name}CreateNestedOneInput",
            [
                _opt("create", _q(f"{name}CreateInputs")),
                _opt("connect", _q(f"{name}WhereUniqueInput")),
                _opt("connect_or_create", _q(f"{name}CreateOrConnectInput")),
            ],
        )

    def _update_value(self, field: ScalarField) -> str:
        if field.kind == JSON_KIND:
            return "Any"
        return f"Union[{_nullable_type(field)}, {_q(_update_ops_name(field))}]"

    def update_inputs(self, model: ModelSpec):
        name = model.name
        checked = [_opt(f.name, self._update_value(f)) for f in model.fields if not f.is_foreign_key]
        unchecked = [_opt(f.name, self._update_value(f)) for f in model.fields]
        for relation in model.relations:
            if relation.is_list:
                nested = _opt(relation.name, self._many_nested(model, relation, "UpdateMany"))
                checked.append(nested)
                unchecked.append(nested)
            else:
                checked.append(_opt(relation.name, _q(f"{relation.target}UpdateOneNestedInput")))
        self.out.typed_dict(f"{name}UpdateInput", checked)
        self.out.typed_dict(f"{name}UncheckedUpdateInput", unchecked)
        self.out.alias(f"{name}UpdateInputs", f"Union[{name}UpdateInput, {name}UncheckedUpdateInput]")
        self.out.typed_dict(f"{name}UpdateManyMutationInput", [_opt(f.name, self._update_value(f)) for f in model.fields])
        self.out.typed_dict(
            f"{name}UpdateManyWithWhereInput",
            [_req("where", _q(f"{name}WhereInput")), _req("data", _q(f"{name}UpdateManyMutationInput"))],
        )
        self.out.typed_dict(
            f"{name}UpdateOneNestedInput",
            [
                _opt("create", _q(f"{name}CreateInputs")),
                _opt("connect", _q(f"{name}WhereUniqueInput")),
                _opt("connect_or_create", _q(f"{name}CreateOrConnectInput")),
                _opt("update", _q(f"{name}UpdateInputs")),
            ],
        )

    def nested_inputs(self, model: ModelSpec):
        """子表 (外鍵在本表) 被父表的一對多關聯巢狀寫入時用的型別，扣掉指回父表的關聯"""
        name = model.name
        for relation in model.relations:
            if relation.is_list:
                continue
            suffix = f"Without{_camel(relation.name)}"
            checked = f"{name}Create{suffix}Input"
            unchecked = f"{name}UncheckedCreate{suffix}Input"
            inputs = f"{name}Create{suffix}Inputs"
            self.out.typed_dict(checked, self.create_entries(model, checked=True, without=relation))
            self.out.typed_dict(unchecked, self.create_entries(model, checked=False, without=relation))
            self.out.alias(inputs, f"Union[{checked}, {unchecked}]")
            self.out.typed_dict(
                f"{name}CreateMany{suffix}Input",
                [
                    entry for entry in (self._scalar_create_entry(f, checked=False) for f in model.fields)
                    if entry[0] != relation.local_field
                ],
            )
            self.out.typed_dict(
                f"{name}CreateMany{suffix}Envelope",
                [
                    _req("data", _one_or_many(_q(f"{name}CreateMany{suffix}Input"))),
                    _opt("skip_duplicates", "bool"),
                ],
            )
            self.out.typed_dict(
                f"{name}CreateOrConnect{suffix}Input",
                [_req("where", _q(f"{name}WhereUniqueInput")), _req("create", _q(inputs))],
            )
            many = [
                _opt("create", _one_or_many(_q(inputs))),
                _opt("create_many", _q(f"{name}CreateMany{suffix}Envelope")),
                _opt("connect", _one_or_many(_q(f"{name}WhereUniqueInput"))),
                _opt("connect_or_create", _one_or_many(_q(f"{name}CreateOrConnect{suffix}Input"))),
            ]
            self.out.typed_dict(f"{name}CreateNestedMany{suffix}Input", many)
            self.out.typed_dict(
                f"{name}UpdateMany{suffix}NestedInput",
                many + [
                    _opt("update_many", _one_or_many(_q(f"{name}UpdateManyWithWhereInput"))),
                    _opt("delete_many", _one_or_many(_q(f"{name}WhereInput"))),
                ],
            )

    # ---------- 聚合 ----------

    def aggregates(self, model: ModelSpec):
        name = model.name
        numeric = model.numeric_fields
        comparable = model.comparable_fields
        out = self.out

        out.typed_dict(f"{name}CountAggregateInput", [_opt("_all", "bool")] + [_opt(f.name, "bool") for f in model.fields])
        out.typed_dict(f"{name}CountAggregateOutput", [_req("_all", "int")] + [_req(f.name, "int") for f in model.fields])
        if numeric:
            out.typed_dict(f"{name}AvgAggregateInput", [_opt(f.name, "bool") for f in numeric])
            out.typed_dict(f"{name}SumAggregateInput", [_opt(f.name, "bool") for f in numeric])
            out.typed_dict(f"{name}AvgAggregateOutput", [_req(f.name, "Optional[float]") for f in numeric])
            out.typed_dict(f"{name}SumAggregateOutput", [_req(f.name, f"Optional[{_value_type(f)}]") for f in numeric])
        for bucket in ("Min", "Max"):
            out.typed_dict(f"{name}{bucket}AggregateInput", [_opt(f.name, "bool") for f in comparable])
            out.typed_dict(
                f"{name}{bucket}AggregateOutput",
                [_req(f.name, f"Optional[{_value_type(f)}]") for f in comparable],
            )

        buckets = [_opt("_count", f"Union[int, {_q(name + 'CountAggregateOutput')}]")]
        if numeric:
            buckets += [
                _opt("_avg", _q(f"{name}AvgAggregateOutput")),
                _opt("_sum", _q(f"{name}SumAggregateOutput")),
            ]
        buckets += [
            _opt("_min", _q(f"{name}MinAggregateOutput")),
            _opt("_max", _q(f"{name}MaxAggregateOutput")),
        ]
        out.typed_dict(f"{name}AggregateResult", buckets)
        group_buckets = [
            _opt(key, _q(f"{name}CountAggregateOutput") if key == "_count" else annotation)
            for key, annotation, _ in buckets
        ]
        out.typed_dict(
            f"{name}GroupByOutput",
            [_opt(f.name, _nullable_type(f)) for f in model.fields]
            + group_buckets,
        )

        where = _q(f"{name}ScalarWhereWithAggregatesInput")
        out.typed_dict(
            f"{name}ScalarWhereWithAggregatesInput",
            [_opt(key, _one_or_many(where)) for key in ("AND", "OR", "NOT")]
            + [
                _opt(f.name, f"Union[{_nullable_type(f)}, {_q(filter_name(f))}, {_q('AggregateFilterInput')}]")
                for f in model.fields
            ],
        )
        out.typed_dict(
            f"{name}OrderByWithAggregationInput",
            [_opt(f.name, f"Union[SortOrder, {_q('SortOrderInput')}]") for f in comparable]
            + [_opt(bucket, "Dict[str, SortOrder]") for bucket in self.bucket_names(model)],
        )

    def bucket_names(self, model: ModelSpec) -> List[str]:
        if model.numeric_fields:
            return ["_count", "_avg", "_sum", "_min", "_max"]
        return ["_count", "_min", "_max"]

    def bucket_inputs(self, model: ModelSpec) -> List[Entry]:
        name = model.name
        inputs = {
            "_count": f"Union[bool, {_q(name + 'CountAggregateInput')}]",
            "_avg": _q(f"{name}AvgAggregateInput"),
            "_sum": _q(f"{name}SumAggregateInput"),
            "_min": _q(f"{name}MinAggregateInput"),
            "_max": _q(f"{name}MaxAggregateInput"),
        }
        return [_opt(bucket, inputs[bucket]) for bucket in self.bucket_names(model)]

    # ---------- 操作參數 ----------

    def args(self, model: ModelSpec):
        name = model.name
        out = self.out
        unique = _q(f"{name}WhereUniqueInput")
        where = _q(f"{name}WhereInput")
        order = _one_or_many(_q(f"{name}OrderByWithRelationInput"))
        projection = [
            _opt("select", _q(f"{name}Select")),
            _opt("include", _q(f"{name}Include")),
            _opt("omit", _q(f"{name}Omit")),
        ]
        page = [_opt("where", where), _opt("order_by", order), _opt("cursor", unique), _opt("take", "int"), _opt("skip", "int")]

        out.typed_dict(f"{name}FindUniqueArgs", [_req("where", unique)] + projection)
        out.typed_dict(
            f"{name}FindManyArgs",
            page + [_opt("distinct", _one_or_many(f"{name}ScalarFieldEnum"))] + projection,
        )
        out.alias(f"{name}FindFirstArgs", f"{name}FindManyArgs")
        out.typed_dict(f"{name}CreateArgs", [_req("data", _q(f"{name}CreateInputs"))] + projection)
        create_many = [
            _req("data", _one_or_many(_q(f"{name}CreateManyInput"))),
            _opt("skip_duplicates", "bool"),
        ]
        out.typed_dict(f"{name}CreateManyArgs", create_many)
        out.typed_dict(f"{name}CreateManyAndReturnArgs", create_many + projection)
        out.typed_dict(f"{name}UpdateArgs", [_req("where", unique), _req("data", _q(f"{name}UpdateInputs"))] + projection)
        update_many = [_opt("where", where), _req("data", _q(f"{name}UpdateManyMutationInput"))]
        out.typed_dict(f"{name}UpdateManyArgs", update_many)
        out.typed_dict(f"{name}UpdateManyAndReturnArgs", update_many + projection)
        out.typed_dict(
            f"{name}UpsertArgs",
            [
                _req("where", unique),
                _req("create", _q(f"{name}CreateInputs")),
                _req("update", _q(f"{name}UpdateInputs")),
            ] + projection,
        )
        out.typed_dict(f"{name}DeleteArgs", [_req("where", unique)] + projection)
        out.typed_dict(f"{name}DeleteManyArgs", [_opt("where", where)])
        out.typed_dict(f"{name}CountArgs", page + [_opt("select", _q(f"{name}CountAggregateInput"))])
        out.typed_dict(f"{name}AggregateArgs", page + self.bucket_inputs(model))
        out.typed_dict(
            f"{name}GroupByArgs",
            [
                _req("by", _one_or_many(f"{name}ScalarFieldEnum")),
                _opt("where", where),
                _opt("having", _q(f"{name}ScalarWhereWithAggregatesInput")),
                _opt("order_by", _one_or_many(_q(f"{name}OrderByWithAggregationInput"))),
                _opt("take", "int"),
                _opt("skip", "int"),
            ] + self.bucket_inputs(model),
        )

    # ---------- Protocols ----------

    def delegate(self, model: ModelSpec):
        name = model.name
        projection = (
            f"select: Optional[{name}Select] = None, include: Optional[{name}Include] = None, "
            f"omit: Optional[{name}Omit] = None"
        )
        page = (
            f"where: Optional[{name}WhereInput] = None, "
            f"order_by: Optional[Union[{name}OrderByWithRelationInput, List[{name}OrderByWithRelationInput]]] = None, "
            f"cursor: Optional[{name}WhereUniqueInput] = None, take: Optional[int] = None, skip: Optional[int] = None"
        )
        distinct = f"distinct: Optional[Union[{name}ScalarFieldEnum, List[{name}ScalarFieldEnum]]] = None"
        buckets = ", ".join(
            f"{bucket}: Optional[{annotation}] = None"
            for bucket, annotation, _ in self.bucket_inputs(model)
        )
        create_many = (
            f"data: Union[{name}CreateManyInput, List[{name}CreateManyInput]], skip_duplicates: bool = False"
        )
        methods = [
            ("find_unique", f"where: {name}WhereUniqueInput, {projection}", f"Optional[{name}]"),
            ("find_unique_or_throw", f"where: {name}WhereUniqueInput, {projection}", name),
            ("find_first", f"{page}, {distinct}, {projection}", f"Optional[{name}]"),
            ("find_first_or_throw", f"{page}, {distinct}, {projection}", name),
            ("find_many", f"{page}, {distinct}, {projection}", f"List[{name}]"),
            ("create", f"data: {name}CreateInputs, {projection}", name),
            ("create_many", create_many, "BatchPayload"),
            ("create_many_and_return", f"{create_many}, {projection}", f"List[{name}]"),
            ("update", f"where: {name}WhereUniqueInput, data: {name}UpdateInputs, {projection}", name),
            ("update_many", f"data: {name}UpdateManyMutationInput, where: Optional[{name}WhereInput] = None", "BatchPayload"),
            (
                "update_many_and_return",
                f"data: {name}UpdateManyMutationInput, where: Optional[{name}WhereInput] = None, {projection}",
                f"List[{name}]",
            ),
            (
                "upsert",
                f"where: {name}WhereUniqueInput, create: {name}CreateInputs, update: {name}UpdateInputs, {projection}",
                name,
            ),
            ("delete", f"where: {name}WhereUniqueInput, {projection}", name),
            ("delete_many", f"where: Optional[{name}WhereInput] = None", "BatchPayload"),
            (
                "count",
                f"{page}, select: Optional[{name}CountAggregateInput] = None",
                f"Union[int, {name}CountAggregateOutput]",
            ),
            ("aggregate", f"{page}, {buckets}", f"{name}AggregateResult"),
            (
                "group_by",
                f"by: Union[{name}ScalarFieldEnum, List[{name}ScalarFieldEnum]], "
                f"where: Optional[{name}WhereInput] = None, "
                f"having: Optional[{name}ScalarWhereWithAggregatesInput] = None, "
                f"order_by: Optional[Union[{name}OrderByWithAggregationInput, "
                f"List[{name}OrderByWithAggregationInput]]] = None, "
                f"take: Optional[int] = None, skip: Optional[int] = None, {buckets}",
                f"List[{name}GroupByOutput]",
            ),
        ]
        self.out.add("")
        self.out.add(f"class {name}Delegate(Protocol):")
        for method, params, returns in methods:
            self.out.add(f"    def {method}(self, *, {params}) -> Awaitable[{returns}]: ...")
        self.out.add("")

    def client(self):
        delegates = [f"    {model.delegate_name}: {model.name}Delegate" for model in self.schema]
        raw = [
            "    def query_raw(self, query: Sql) -> Awaitable[List[Dict[str, Any]]]: ...",
            "    def execute_raw(self, query: Sql) -> Awaitable[int]: ...",
            "    def query_raw_unsafe(self, query: str, *values: Any) -> Awaitable[List[Dict[str, Any]]]: ...",
            "    def execute_raw_unsafe(self, query: str, *values: Any) -> Awaitable[int]: ...",
        ]
        out = self.out
        out.add("")
        out.add("class TransactionClientProtocol(Protocol):")
        for line in delegates + raw:
            out.add(line)
        out.add("")
        out.add("")
        out.add("class ClientProtocol(Protocol):")
        for line in delegates:
            out.add(line)
        out.add("")
        out.add("    async def connect(self) -> None: ...")
        out.add("    async def disconnect(self) -> None: ...")
        out.add("    async def push_schema(self) -> None: ...")
        for line in raw:
            out.add(line)
        out.add("    async def transaction(")
        out.add("        self,")
        out.add("        operations: Union[Sequence[Awaitable[Any]], Callable[[TransactionClientProtocol], Awaitable[Any]]],")
        out.add("        *,")
        out.add("        isolation_level: Optional[TransactionIsolationLevel] = None,")
        out.add("        max_wait: Optional[int] = None,")
        out.add("        timeout: Optional[int] = None,")
        out.add("    ) -> Any: ...")


def render_types(schema: Schema) -> str:
    """產生 typing stub 的原始碼 (str)"""
    return _Renderer(schema).render()


def write_types(schema: Schema, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_types(schema), encoding="utf-8", newline="\n")
    return target
