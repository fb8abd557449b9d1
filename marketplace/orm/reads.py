# marketplace/orm/reads.py
# 讀取：where / order_by / cursor / take / skip / distinct + 關聯載入
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.orm.errors import ValidationError
from marketplace.orm.filters import WhereBuilder
from marketplace.orm.ordering import NULLS_LOW_DIALECTS, OrderBuilder, cursor_condition
from marketplace.orm.projection import Projection, RelationSelection, parse_projection
from marketplace.orm.schema import JSON_KIND, ModelSpec, Schema

logger = logging.getLogger(__name__)

PROJECTION_ARGS = ("select", "include", "omit")


def _int_arg(value: Any, name: str, allow_negative: bool = False) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Argument `{name}` must be an integer, got {value!r}")
    if value < 0 and not allow_negative:
        raise ValidationError(f"Argument `{name}` must be a non-negative integer")
    return value


def _distinct_fields(model: ModelSpec, distinct: Any) -> List[str]:
    if distinct is None:
        return []
    names = [distinct] if isinstance(distinct, str) else list(distinct)
    for name in names:
        field = model.get_field(name)
        if field is None:
            raise ValidationError(f"Unknown field `{name}` in distinct of model {model.name}")
        if field.kind == JSON_KIND:
            raise ValidationError(f"Cannot use Json field `{model.name}.{name}` in distinct")
    return names


def _dedupe(rows: List[Dict[str, Any]], fields: List[str]) -> List[Dict[str, Any]]:
    if not fields:
        return rows
    seen = set()
    unique = []
    for row in rows:
        key = tuple(row[name] for name in fields)
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return unique


def paginate(rows: List[Any], skip: Optional[int], take: Optional[int]) -> List[Any]:
    """
    在記憶體中套用 skip / take。

    take 為負數時從尾端取：先略過尾端 skip 筆，再取最後 |take| 筆 (順序不變)。
    """
    skip = skip or 0
    if take is None:
        return rows[skip:]
    if take >= 0:
        return rows[skip:skip + take]
    end = max(len(rows) - skip, 0)
    return rows[max(end + take, 0):end]


class Reader:
    def __init__(self, schema: Schema):
        self.schema = schema
        self.where_builder = WhereBuilder(schema)
        self.order_builder = OrderBuilder(schema)

    def projection(self, model: ModelSpec, args: Dict[str, Any]) -> Projection:
        return parse_projection(self.schema, model, args.get("select"), args.get("include"), args.get("omit"))

    async def statement(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any],
                        columns: List[str], extra_where=None, paginate_in_sql: bool = True):
        """
        組出 SELECT 語句；cursor 指向的紀錄不存在時回傳 None (代表結果必為空)。

        回傳 (statement, backwards)：backwards 為 True 時排序已被反轉，取回後要再反轉一次。
        """
        take = _int_arg(args.get("take"), "take", allow_negative=True)
        skip = _int_arg(args.get("skip"), "skip")
        terms = self.order_builder.with_tiebreaker(model, self.order_builder.build(model, args.get("order_by")))
        backwards = take is not None and take < 0
        if backwards:
            terms = [term.flipped() for term in terms]

        conditions = []
        clause = self.where_builder.build(model, args.get("where"))
        if clause is not None:
            conditions.append(clause)
        if extra_where is not None:
            conditions.append(extra_where)

        cursor = args.get("cursor")
        if cursor is not None:
            if any(term.field is None for term in terms):
                raise ValidationError("Cursor pagination requires order_by on scalar fields only")
            cursor_clause = self.where_builder.build_unique(model, cursor, "cursor")
            cursor_stmt = select(*[term.expr for term in terms]).where(cursor_clause).limit(1)
            found = (await session.execute(cursor_stmt)).first()
            if found is None:
                return None, backwards
            values = {term.field: value for term, value in zip(terms, found)}
            nulls_low = session.get_bind().dialect.name in NULLS_LOW_DIALECTS
            conditions.append(cursor_condition(terms, values, nulls_low))

        stmt = select(*[model.column(name) for name in columns])
        if conditions:
            stmt = stmt.where(*conditions)
        stmt = stmt.order_by(*[term.clause() for term in terms])
        if paginate_in_sql:
            if skip:
                stmt = stmt.offset(skip)
            if take is not None:
                stmt = stmt.limit(abs(take))
        return stmt, backwards

    async def fetch_rows(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any],
                         columns: List[str], extra_where=None) -> List[Dict[str, Any]]:
        distinct = _distinct_fields(model, args.get("distinct"))
        columns = list(dict.fromkeys(columns + distinct))
        # distinct 要在 skip / take 之前套用，所以改在記憶體中分頁
        stmt, backwards = await self.statement(
            session, model, args, columns, extra_where=extra_where, paginate_in_sql=not distinct
        )
        if stmt is None:
            return []
        rows = [dict(row) for row in (await session.execute(stmt)).mappings().all()]
        if distinct:
            take = args.get("take")
            rows = paginate(_dedupe(rows, distinct), args.get("skip"), None if take is None else abs(take))
        if backwards:
            rows.reverse()
        return rows

    async def find_many(self, session: AsyncSession, model: ModelSpec, args: Dict[str, Any],
                        extra_where=None) -> List[Dict[str, Any]]:
        projection = self.projection(model, args)
        rows = await self.fetch_rows(session, model, args, projection.columns(model), extra_where=extra_where)
        if rows:
            await self.attach(session, model, rows, projection)
        return [projection.shape(row) for row in rows]

    async def find_by_ids(self, session: AsyncSession, model: ModelSpec, ids: List[Any],
                          args: Dict[str, Any]) -> List[Dict[str, Any]]:
        """依照 ids 的順序回傳紀錄 (create / update 之後重新讀取用)"""
        if not ids:
            return []
        id_name = model.id_field.name
        projection_args = {key: args[key] for key in PROJECTION_ARGS if args.get(key) is not None}
        projection = self.projection(model, projection_args)
        rows = await self.fetch_rows(
            session, model, {}, projection.columns(model), extra_where=model.column(id_name).in_(ids)
        )
        await self.attach(session, model, rows, projection)
        by_id = {row[id_name]: row for row in rows}
        return [projection.shape(by_id[record_id]) for record_id in ids if record_id in by_id]

    async def attach(self, session: AsyncSession, model: ModelSpec, rows: List[Dict[str, Any]],
                     projection: Projection):
        """每一層關聯只發一次查詢 (以父紀錄的 key 做 IN 查詢)"""
        if not rows:
            return
        for selection in projection.relations:
            await self._load_relation(session, model, rows, selection)
        if projection.counts:
            await self._load_counts(session, model, rows, projection.counts)

    async def _load_relation(self, session: AsyncSession, model: ModelSpec, rows: List[Dict[str, Any]],
                             selection: RelationSelection):
        relation = selection.relation
        target = self.schema[relation.target]
        args = selection.args
        nested = self.projection(target, args)
        remote = relation.remote_field
        keys = list(dict.fromkeys(row[relation.local_field] for row in rows if row[relation.local_field] is not None))

        children = []
        if keys:
            child_args = {"where": args.get("where"), "order_by": args.get("order_by")}
            children = await self.fetch_rows(
                session, target, child_args, nested.columns(target, [remote]),
                extra_where=target.column(remote).in_(keys),
            )
            await self.attach(session, target, children, nested)
        logger.debug(f"loaded {len(children)} {target.name} row(s) for {model.name}.{relation.name}")

        if relation.is_list:
            groups = defaultdict(list)
            for child in children:
                groups[child[remote]].append(child)
            distinct = _distinct_fields(target, args.get("distinct"))
            skip = _int_arg(args.get("skip"), "skip")
            take = _int_arg(args.get("take"), "take", allow_negative=True)
            for row in rows:
                items = paginate(_dedupe(groups.get(row[relation.local_field], []), distinct), skip, take)
                row[relation.name] = [nested.shape(child) for child in items]
        else:
            by_key = {child[remote]: child for child in children}
            for row in rows:
                child = by_key.get(row[relation.local_field])
                row[relation.name] = nested.shape(child) if child is not None else None

    async def _load_counts(self, session: AsyncSession, model: ModelSpec, rows: List[Dict[str, Any]],
                           counts: Dict[str, Optional[Dict[str, Any]]]):
        for row in rows:
            row["_count"] = {}
        for name, where in counts.items():
            relation = model.get_relation(name)
            target = self.schema[relation.target]
            remote = target.column(relation.remote_field)
            keys = list(dict.fromkeys(row[relation.local_field] for row in rows))
            stmt = select(remote, func.count()).where(remote.in_(keys)).group_by(remote)
            clause = self.where_builder.build(target, where)
            if clause is not None:
                stmt = stmt.where(clause)
            counted = {key: total for key, total in (await session.execute(stmt)).all()}
            for row in rows:
                row["_count"][name] = counted.get(row[relation.local_field], 0)
