# marketplace/orm/projection.py
# 解析 select / include / omit，決定每筆紀錄要回傳哪些欄位與關聯
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from marketplace.orm.errors import ValidationError
from marketplace.orm.schema import ModelSpec, RelationField, Schema

# 一對多關聯可以帶的巢狀參數
LIST_RELATION_ARGS = {"where", "order_by", "take", "skip", "distinct", "select", "include", "omit"}
# 一對一關聯只能再選欄位
ONE_RELATION_ARGS = {"select", "include", "omit"}


@dataclass
class RelationSelection:
    relation: RelationField
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Projection:
    fields: List[str]
    relations: List[RelationSelection] = field(default_factory=list)
    # 關聯名稱 → where (None 代表全部)
    counts: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)

    def columns(self, model: ModelSpec, extra: Optional[List[str]] = None) -> List[str]:
        """查詢時實際要撈的欄位：回傳欄位 + 主鍵 + 載入關聯需要的 key"""
        needed = [model.id_field.name] + list(self.fields)
        for selection in self.relations:
            needed.append(selection.relation.local_field)
        for name in self.counts:
            needed.append(model.get_relation(name).local_field)
        needed.extend(extra or [])
        return list(dict.fromkeys(needed))

    def shape(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = {name: row[name] for name in self.fields}
        for selection in self.relations:
            record[selection.relation.name] = row[selection.relation.name]
        if self.counts:
            record["_count"] = row["_count"]
        return record


def _relation_args(model: ModelSpec, relation: RelationField, value: Any) -> Optional[Dict[str, Any]]:
    if value is False or value is None:
        return None
    if value is True:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid value for relation `{model.name}.{relation.name}`, expected a bool or an object")
    allowed = LIST_RELATION_ARGS if relation.is_list else ONE_RELATION_ARGS
    unknown = set(value) - allowed
    if unknown:
        raise ValidationError(
            f"Unknown argument(s) {', '.join(sorted(unknown))} for relation `{model.name}.{relation.name}`"
        )
    return dict(value)


def _count_selection(model: ModelSpec, value: Any) -> Dict[str, Optional[Dict[str, Any]]]:
    if value is False or value is None:
        return {}
    if value is True:
        return {relation.name: None for relation in model.list_relations}
    if not isinstance(value, dict) or set(value) != {"select"} or not isinstance(value["select"], dict):
        raise ValidationError(f"Argument `_count` of {model.name} must be true or {{'select': {{...}}}}")

    counts = {}
    for name, spec in value["select"].items():
        relation = model.get_relation(name)
        if relation is None or not relation.is_list:
            raise ValidationError(f"Unknown field `{name}` for _count on model {model.name}")
        if spec is False:
            continue
        if spec is True:
            counts[name] = None
        elif isinstance(spec, dict) and set(spec) <= {"where"}:
            counts[name] = spec.get("where")
        else:
            raise ValidationError(f"Invalid _count selection for `{model.name}.{name}`")
    return counts


def _omitted(model: ModelSpec, omit: Any) -> set:
    if omit is None:
        return set()
    if not isinstance(omit, dict):
        raise ValidationError(f"Argument `omit` of {model.name} must be an object")
    hidden = set()
    for name, flag in omit.items():
        if model.get_field(name) is None:
            raise ValidationError(f"Unknown field `{name}` for omit statement on model {model.name}")
        if flag:
            hidden.add(name)
    return hidden


def parse_projection(
    schema: Schema,
    model: ModelSpec,
    select: Optional[Dict[str, Any]] = None,
    include: Optional[Dict[str, Any]] = None,
    omit: Optional[Dict[str, Any]] = None,
) -> Projection:
    if select is not None and include is not None:
        raise ValidationError("Please either use `include` or `select`, but not both at the same time.")
    if select is not None and omit is not None:
        raise ValidationError("Please either use `select` or `omit`, but not both at the same time.")

    if select is not None:
        if not isinstance(select, dict):
            raise ValidationError(f"Argument `select` of {model.name} must be an object")
        projection = Projection(fields=[])
        for name, value in select.items():
            if name == "_count":
                projection.counts = _count_selection(model, value)
                continue
            if model.get_field(name) is not None:
                if value:
                    projection.fields.append(name)
                continue
            relation = model.get_relation(name)
            if relation is None:
                raise ValidationError(f"Unknown field `{name}` for select statement on model {model.name}")
            args = _relation_args(model, relation, value)
            if args is not None:
                projection.relations.append(RelationSelection(relation, args))
        # 依照 Model 欄位順序回傳
        projection.fields = [name for name in model.field_names if name in projection.fields]
        return projection

    hidden = _omitted(model, omit)
    projection = Projection(fields=[name for name in model.field_names if name not in hidden])
    if include is None:
        return projection
    if not isinstance(include, dict):
        raise ValidationError(f"Argument `include` of {model.name} must be an object")
    for name, value in include.items():
        if name == "_count":
            projection.counts = _count_selection(model, value)
            continue
        relation = model.get_relation(name)
        if relation is None:
            raise ValidationError(f"Unknown field `{name}` for include statement on model {model.name}")
        args = _relation_args(model, relation, value)
        if args is not None:
            projection.relations.append(RelationSelection(relation, args))
    return projection
