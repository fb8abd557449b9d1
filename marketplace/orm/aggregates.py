# marketplace/orm/aggregates.py
# count / aggregate / group_by
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, not_, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.orm.errors import ValidationError
from marketplace.orm.filters import LOGICAL_KEYS, scalar_condition
from marketplace.orm.ordering import NULLS, OrderTerm, sort_direction
from marketplace.orm.reads import Reader, _int_arg
from marketplace.orm.schema import FLOAT, INT, JSON_KIND, ModelSpec, ScalarField

BUCKETS = ("_count", "_avg", "_sum", "_min", "_max")

_FUNCTIONS = {
    "_avg": func.avg,
    "_sum": func.sum,
    "_min": func.min,
    "_max": func.max,
}


def _label(bucket: str, name: str) -> str:
    return f"{bucket}__{name}"


def _bucket_fields(model: ModelSpec, bucket: str, spec: Any) -> List[str]:
    """驗證某個聚合 bucket 要計算哪些欄位"""
    if bucket == "_count" and spec is True:
        return ["_all"]
    if not isinstance(spec, dict):
        raise ValidationError(f"Argument `{bucket}` of {model.name} must be an object")
    names = []
    for name, flag in spec.items():
        if not flag:
            continue
        if bucket == "_count" and name == "_all":
            names.append(name)
            continue
        field = model.get_field(name)
        if field is None:
            raise ValidationError(f"Unknown field `{name}` in {bucket} of model {model.name}")
        if bucket in ("_avg", "_sum") and not field.is_numeric:
            raise ValidationError(f"Field `{name}` of {model.name} is not numeric and cannot be used in {bucket}")
        if bucket in ("_min", "_max") and not field.is_comparable:
            raise ValidationError(f"Json field `{name}` of {model.name} cannot be used in {bucket}")
        names.append(name)
    return names


def _aggregate_expr(bucket: str, column):
    if bucket == "_count":
        return func.count() if column is None else func.count(column)
    return _FUNCTIONS[bucket](column)


def _convert(field: Optional[ScalarField], bucket: str, value: Any) -> Any:
    if value is None:
        return 0 if bucket == "_count" else None
    if bucket == "_count":
        return int(value)
    if bucket == "_avg":
        return float(value)
    if bucket == "_sum":
        return int(value) if field.kind == INT else float(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


class Aggregator:
    def __init__(self, reader: Reader):
        self.reader = reader
        self.schema = reader.schema
        self.where_builder = reader.where_builder

    def _buckets(self, model: ModelSpec, args: Dict[str, Any]) -> Dict[str, List[str]]:
        return {
            bucket: _bucket_fields(model, bucket, args[bucket])
            for bucket in BUCKETS
            if args.get(bucket)
        }

    def _results(self, model: ModelSpec, args: Dict[str, Any], buckets: Dict[str, List[str]], row) -> Dict[str, Any]:
        result = {}
        for bucket, names in buckets.items():
            if bucket == "_count" and args["_count"] is True:
                result["_count"] = _convert(None, "_count", row[_label("_count", "_all")])
                continue
            result[bucket] = {
                name: _convert(model.get_field(name), bucket, row[_label(bucket, name)])
                for name in names
            }
        return result

    async def count(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any]):
        selection = args.get("select")
        names = _bucket_fields(model, "_count", selection) if selection else ["_all"]
        columns = [model.id_field.name] + [name for name in names if name != "_all"]
        stmt, _ = await self.reader.statement(session, model, args, list(dict.fromkeys(columns)))
        if stmt is None:
            totals = {name: 0 for name in names}
        else:
            sub = stmt.subquery()
            exprs = [
                (func.count() if name == "_all" else func.count(sub.c[name])).label(name)
                for name in names
            ]
            row = (await session.execute(select(*exprs).select_from(sub))).mappings().one()
            totals = {name: int(row[name]) for name in names}
        return totals if selection else totals["_all"]

    async def aggregate(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any]) -> Dict[str, Any]:
        buckets = self._buckets(model, args)
        columns = [model.id_field.name]
        for names in buckets.values():
            columns.extend(name for name in names if name != "_all")
        stmt, _ = await self.reader.statement(session, model, args, list(dict.fromkeys(columns)))

        if stmt is None:
            empty = {_label(bucket, name): None for bucket, names in buckets.items() for name in names}
            return self._results(model, args, buckets, empty)

        sub = stmt.subquery()
        exprs = [
            _aggregate_expr(bucket, None if name == "_all" else sub.c[name]).label(_label(bucket, name))
            for bucket, names in buckets.items()
            for name in names
        ]
        if not exprs:
            return {}
        row = (await session.execute(select(*exprs).select_from(sub))).mappings().one()
        return self._results(model, args, buckets, row)

    # ---------- group_by ----------

    def _by_fields(self, model: ModelSpec, by: Any) -> List[str]:
        names = [by] if isinstance(by, str) else list(by or [])
        if not names:
            raise ValidationError(f"Argument `by` of {model.name}.group_by must contain at least one field")
        for name in names:
            field = model.get_field(name)
            if field is None:
                raise ValidationError(f"Unknown field `{name}` in `by` of model {model.name}")
            if field.kind == JSON_KIND:
                raise ValidationError(f"Cannot group by Json field `{model.name}.{name}`")
        return names

    def _having(self, model: ModelSpec, by: List[str], having: Any):
        if having is None:
            return None
        if not isinstance(having, dict):
            raise ValidationError(f"Argument `having` of {model.name}.group_by must be an object")
        clauses = []
        for key, value in having.items():
            if key in LOGICAL_KEYS:
                items = value if isinstance(value, (list, tuple)) else [value]
                built = [self._having(model, by, item) for item in items]
                built = [true() if clause is None else clause for clause in built]
                if key == "AND":
                    clauses.extend(built)
                elif key == "OR":
                    clauses.append(or_(*built) if built else not_(true()))
                else:
                    clauses.extend(not_(clause) for clause in built)
                continue

            field = model.get_field(key)
            if field is None:
                raise ValidationError(f"Unknown field `{key}` in `having` of model {model.name}")
            label = f"having.{key}"
            if isinstance(value, dict) and value and set(value) <= set(BUCKETS):
                for bucket, condition in value.items():
                    expr, target = self._having_target(model, field, bucket)
                    clauses.append(scalar_condition(expr, target, condition, f"{label}.{bucket}"))
                continue
            if key not in by:
                raise ValidationError(
                    "Every field used for `having` filters must either be an aggregation filter "
                    f"or be included in the selection of the `by` argument (`{key}`)."
                )
            clauses.append(scalar_condition(model.column(key), field, value, label))
        if not clauses:
            return None
        return clauses[0] if len(clauses) == 1 else and_(*clauses)

    def _having_target(self, model: ModelSpec, field: ScalarField, bucket: str):
        column = model.column(field.name)
        if bucket == "_count":
            return func.count(column), ScalarField(field.name, INT, nullable=False)
        if bucket in ("_avg", "_sum") and not field.is_numeric:
            raise ValidationError(f"Field `{field.name}` of {model.name} is not numeric and cannot be used in {bucket}")
        if bucket in ("_min", "_max") and not field.is_comparable:
            raise ValidationError(f"Json field `{field.name}` of {model.name} cannot be used in {bucket}")
        kind = FLOAT if bucket == "_avg" else field.kind
        target = ScalarField(field.name, kind, nullable=True, enum_class=field.enum_class)
        return _FUNCTIONS[bucket](column), target

    def _group_order(self, model: ModelSpec, by: List[str], order_by: Any) -> List[OrderTerm]:
        items = order_by if isinstance(order_by, (list, tuple)) else [order_by]
        terms = []
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError(f"Argument `order_by` of {model.name}.group_by must be an object or a list")
            for key, value in item.items():
                if key in BUCKETS:
                    if not isinstance(value, dict):
                        raise ValidationError(f"Argument `order_by.{key}` must be an object of field directions")
                    for name, direction in value.items():
                        if key == "_count" and name == "_all":
                            column = None
                        else:
                            _bucket_fields(model, key, {name: True})
                            column = model.column(name)
                        terms.append(OrderTerm(_aggregate_expr(key, column), sort_direction(direction, f"{key}.{name}")))
                    continue
                if model.get_field(key) is None:
                    raise ValidationError(f"Unknown field `{key}` in order_by of model {model.name}")
                if key not in by:
                    raise ValidationError(
                        f"Every field used for `order_by` must be included in the `by`-arguments of the query (`{key}`)."
                    )
                nulls = None
                if isinstance(value, dict):
                    nulls = value.get("nulls")
                    if nulls is not None and nulls not in NULLS:
                        raise ValidationError(f"Invalid nulls order `{nulls}` for `{key}`")
                    value = value.get("sort")
                terms.append(OrderTerm(model.column(key), sort_direction(value, key), nulls, key))
        return terms

    async def group_by(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        by = self._by_fields(model, args.get("by"))
        buckets = self._buckets(model, args)
        take = _int_arg(args.get("take"), "take")
        skip = _int_arg(args.get("skip"), "skip")
        order_by = args.get("order_by")
        if (take is not None or skip is not None) and not order_by:
            raise ValidationError("Argument `order_by` is required when using `take` or `skip` with group_by")

        exprs = [model.column(name) for name in by]
        for bucket, names in buckets.items():
            for name in names:
                column = None if name == "_all" else model.column(name)
                exprs.append(_aggregate_expr(bucket, column).label(_label(bucket, name)))

        stmt = select(*exprs).group_by(*[model.column(name) for name in by])
        clause = self.where_builder.build(model, args.get("where"))
        if clause is not None:
            stmt = stmt.where(clause)
        having = self._having(model, by, args.get("having"))
        if having is not None:
            stmt = stmt.having(having)
        if order_by:
            stmt = stmt.order_by(*[term.clause() for term in self._group_order(model, by, order_by)])
        if skip:
            stmt = stmt.offset(skip)
        if take is not None:
            stmt = stmt.limit(take)

        groups = []
        for row in (await session.execute(stmt)).mappings().all():
            group = {name: row[name] for name in by}
            group.update(self._results(model, args, buckets, row))
            groups.append(group)
        return groups