"""
Per-model delegates.

每個 Model 在 client 上有一個 delegate (client.user, client.project ...)，
所有操作都回傳 Query：一個延遲執行的查詢，await 時才真正送出 SQL，
也可以放進 client.transaction([...]) 依序在同一個交易中執行。
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.orm.aggregates import Aggregator
from marketplace.orm.errors import RecordNotFoundError
from marketplace.orm.reads import Reader
from marketplace.orm.runtime import BatchPayload
from marketplace.orm.schema import ModelSpec
from marketplace.orm.writes import Writer

logger = logging.getLogger(__name__)

Runner = Callable[[AsyncSession], Awaitable[Any]]


def _args(**kwargs) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


class Query:
    """
    延遲執行的查詢 (query handle)。

    - await query：透過建立它的 client 執行 (每次 await 都會重新執行)
    - client.transaction([q1, q2])：在同一個交易中依序執行
    """

    def __init__(self, executor, model: Optional[str], action: str, args: Dict[str, Any], runner: Runner):
        self._executor = executor
        self.model = model
        self.action = action
        self.args = args
        self._runner = runner

    def __await__(self):
        return self._executor._execute(self).__await__()

    async def run(self, session: AsyncSession) -> Any:
        return await self._runner(session)

    def __repr__(self) -> str:
        target = f"{self.model}." if self.model else ""
        return f"<Query {target}{self.action}>"


class ModelDelegate:
    def __init__(self, executor, model: ModelSpec, reader: Reader, writer: Writer, aggregator: Aggregator):
        self._executor = executor
        self._model = model
        self._reader = reader
        self._writer = writer
        self._aggregator = aggregator

    @property
    def name(self) -> str:
        return self._model.name

    def _query(self, action: str, args: Dict[str, Any], runner: Runner) -> Query:
        return Query(self._executor, self._model.name, action, args, runner)

    def _not_found(self, action: str) -> RecordNotFoundError:
        return RecordNotFoundError(f"No {self._model.name} found ({action})", model=self._model.name)

    # ---------- 讀取 ----------

    def find_unique(self, *, where: Dict[str, Any], select=None, include=None, omit=None) -> Query:
        args = _args(where=where, select=select, include=include, omit=omit)

        async def run(session):
            model = self._model
            self._reader.where_builder.build_unique(model, where)
            rows = await self._reader.find_many(session, model, dict(args, take=1))
            return rows[0] if rows else None

        return self._query("find_unique", args, run)

    def find_unique_or_throw(self, *, where: Dict[str, Any], select=None, include=None, omit=None) -> Query:
        inner = self.find_unique(where=where, select=select, include=include, omit=omit)

        async def run(session):
            record = await inner.run(session)
            if record is None:
                raise self._not_found("find_unique_or_throw")
            return record

        return self._query("find_unique_or_throw", inner.args, run)

    def find_first(self, *, where=None, order_by=None, cursor=None, take=None, skip=None, distinct=None,
                   select=None, include=None, omit=None) -> Query:
        args = _args(where=where, order_by=order_by, cursor=cursor, take=take, skip=skip, distinct=distinct,
                     select=select, include=include, omit=omit)

        async def run(session):
            query_args = dict(args)
            query_args.setdefault("take", 1)
            rows = await self._reader.find_many(session, self._model, query_args)
            return rows[0] if rows else None

        return self._query("find_first", args, run)

    def find_first_or_throw(self, *, where=None, order_by=None, cursor=None, take=None, skip=None, distinct=None,
                            select=None, include=None, omit=None) -> Query:
        inner = self.find_first(where=where, order_by=order_by, cursor=cursor, take=take, skip=skip,
                                distinct=distinct, select=select, include=include, omit=omit)

        async def run(session):
            record = await inner.run(session)
            if record is None:
                raise self._not_found("find_first_or_throw")
            return record

        return self._query("find_first_or_throw", inner.args, run)

    def find_many(self, *, where=None, order_by=None, cursor=None, take=None, skip=None, distinct=None,
                  select=None, include=None, omit=None) -> Query:
        args = _args(where=where, order_by=order_by, cursor=cursor, take=take, skip=skip, distinct=distinct,
                     select=select, include=include, omit=omit)

        async def run(session):
            return await self._reader.find_many(session, self._model, args)

        return self._query("find_many", args, run)

    # ---------- 新增 ----------

    def create(self, *, data: Dict[str, Any], select=None, include=None, omit=None) -> Query:
        args = _args(data=data, select=select, include=include, omit=omit)

        async def run(session):
            record_id = await self._writer.create(session, self._model, data)
            records = await self._reader.find_by_ids(session, self._model, [record_id], args)
            return records[0]

        return self._query("create", args, run)

    def create_many(self, *, data: List[Dict[str, Any]], skip_duplicates: bool = False) -> Query:
        args = _args(data=data, skip_duplicates=skip_duplicates)

        async def run(session):
            ids = await self._writer.insert_many(session, self._model, data, skip_duplicates)
            return BatchPayload(count=len(ids))

        return self._query("create_many", args, run)

    def create_many_and_return(self, *, data: List[Dict[str, Any]], skip_duplicates: bool = False,
                               select=None, include=None, omit=None) -> Query:
        args = _args(data=data, skip_duplicates=skip_duplicates, select=select, include=include, omit=omit)

        async def run(session):
            ids = await self._writer.insert_many(session, self._model, data, skip_duplicates)
            return await self._reader.find_by_ids(session, self._model, ids, args)

        return self._query("create_many_and_return", args, run)

    # ---------- 更新 ----------

    def update(self, *, where: Dict[str, Any], data: Dict[str, Any], select=None, include=None, omit=None) -> Query:
        args = _args(where=where, data=data, select=select, include=include, omit=omit)

        async def run(session):
            record_id = await self._writer.update(session, self._model, where, data)
            records = await self._reader.find_by_ids(session, self._model, [record_id], args)
            return records[0]

        return self._query("update", args, run)

    def update_many(self, *, data: Dict[str, Any], where=None) -> Query:
        args = _args(where=where, data=data)

        async def run(session):
            clause = self._reader.where_builder.build(self._model, where)
            return BatchPayload(count=await self._writer.update_where(session, self._model, clause, data))

        return self._query("update_many", args, run)

    def update_many_and_return(self, *, data: Dict[str, Any], where=None, select=None, include=None,
                               omit=None) -> Query:
        args = _args(where=where, data=data, select=select, include=include, omit=omit)

        async def run(session):
            model = self._model
            id_column = model.column(model.id_field.name)
            rows = await self._reader.fetch_rows(session, model, {"where": where}, [model.id_field.name])
            ids = [row[model.id_field.name] for row in rows]
            if not ids:
                return []
            await self._writer.update_where(session, model, id_column.in_(ids), data)
            return await self._reader.find_by_ids(session, model, ids, args)

        return self._query("update_many_and_return", args, run)

    def upsert(self, *, where: Dict[str, Any], create: Dict[str, Any], update: Dict[str, Any],
               select=None, include=None, omit=None) -> Query:
        args = _args(where=where, create=create, update=update, select=select, include=include, omit=omit)

        async def run(session):
            model = self._model
            record = await self._writer.lookup(session, model, where)
            if record is None:
                record_id = await self._writer.create(session, model, create)
            else:
                record_id = await self._writer.apply_update(session, model, record, update)
            records = await self._reader.find_by_ids(session, model, [record_id], args)
            return records[0]

        return self._query("upsert", args, run)

    # ---------- 刪除 ----------

    def delete(self, *, where: Dict[str, Any], select=None, include=None, omit=None) -> Query:
        args = _args(where=where, select=select, include=include, omit=omit)

        async def run(session):
            model = self._model
            found = await self._writer.lookup(session, model, where, [model.id_field.name])
            if found is None:
                raise RecordNotFoundError(
                    "An operation failed because it depends on one or more records that were required "
                    "but not found. Record to delete does not exist.",
                    model=model.name,
                )
            record_id = found[model.id_field.name]
            # 回傳刪除前的資料
            records = await self._reader.find_by_ids(session, model, [record_id], args)
            await self._writer.delete_by_id(session, model, record_id)
            return records[0]

        return self._query("delete", args, run)

    def delete_many(self, *, where=None) -> Query:
        args = _args(where=where)

        async def run(session):
            clause = self._reader.where_builder.build(self._model, where)
            return BatchPayload(count=await self._writer.delete_where(session, self._model, clause))

        return self._query("delete_many", args, run)

    # ---------- 聚合 ----------

    def count(self, *, where=None, order_by=None, cursor=None, take=None, skip=None, select=None) -> Query:
        args = _args(where=where, order_by=order_by, cursor=cursor, take=take, skip=skip, select=select)

        async def run(session):
            return await self._aggregator.count(session, self._model, args)

        return self._query("count", args, run)

    def aggregate(self, *, where=None, order_by=None, cursor=None, take=None, skip=None,
                  _count=None, _avg=None, _sum=None, _min=None, _max=None) -> Query:
        args = _args(where=where, order_by=order_by, cursor=cursor, take=take, skip=skip,
                     _count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)

        async def run(session):
            return await self._aggregator.aggregate(session, self._model, args)

        return self._query("aggregate", args, run)

    def group_by(self, *, by, where=None, having=None, order_by=None, take=None, skip=None,
                 _count=None, _avg=None, _sum=None, _min=None, _max=None) -> Query:
        args = _args(by=by, where=where, having=having, order_by=order_by, take=take, skip=skip,
                     _count=_count, _avg=_avg, _sum=_sum, _min=_min, _max=_max)

        async def run(session):
            return await self._aggregator.group_by(session, self._model, args)

        return self._query("group_by", args, run)
