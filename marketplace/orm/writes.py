# marketplace/orm/writes.py
# 寫入：create / update / delete + 巢狀寫入 (nested writes) + atomic number 運算
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, insert, select, true, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.orm.errors import RecordNotFoundError, ValidationError
from marketplace.orm.inputs import create_input_model, update_input_model, validate
from marketplace.orm.reads import Reader
from marketplace.orm.schema import INT, JSON_KIND, ModelSpec, RelationField, Schema

logger = logging.getLogger(__name__)

ONE_CREATE_OPS = ("create", "connect", "connect_or_create")
ONE_UPDATE_OPS = ONE_CREATE_OPS + ("update",)
MANY_CREATE_OPS = ("create", "create_many", "connect", "connect_or_create")
MANY_UPDATE_OPS = MANY_CREATE_OPS + ("update_many", "delete_many")

# skip_duplicates 需要 ON CONFLICT DO NOTHING
_CONFLICT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

_NOT_FOUND = "An operation failed because it depends on one or more records that were required but not found."


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _expect_keys(value: Any, keys: Tuple[str, ...], label: str) -> Dict[str, Any]:
    if not isinstance(value, dict) or not set(keys) <= set(value) or set(value) - set(keys):
        raise ValidationError(f"Argument `{label}` needs exactly {', '.join(keys)}")
    return value


class Writer:
    def __init__(self, schema: Schema, reader: Reader):
        self.schema = schema
        self.reader = reader
        self.where_builder = reader.where_builder

    # ---------- 共用 ----------

    def _split(self, model: ModelSpec, data: Any, label: str):
        if not isinstance(data, dict):
            raise ValidationError(f"Argument `data` of type {label} must be an object")
        scalars, relations = {}, {}
        for key, value in data.items():
            if model.get_field(key) is not None:
                scalars[key] = value
            elif model.get_relation(key) is not None:
                relations[key] = value
            else:
                raise ValidationError(f"Unknown argument `{key}` in {label}")
        return scalars, relations

    def _new_id(self, model: ModelSpec) -> Any:
        """主鍵在 Python 端產生 (Column default)，這樣不需要 RETURNING 也能重新讀取"""
        column = model.cls.__table__.c[model.id_field.name]
        default = column.default
        if default is None or not default.is_callable:
            raise ValidationError(f"Argument `{model.id_field.name}` is missing in {model.name}CreateInput")
        return default.arg(None)

    async def lookup(self, session: AsyncSession, model: ModelSpec, where: Any,
                     columns: Optional[List[str]] = None, label: str = "where") -> Optional[Dict[str, Any]]:
        """以 unique where 找一筆紀錄，只取需要的欄位"""
        clause = self.where_builder.build_unique(model, where, label)
        names = columns or model.field_names
        stmt = select(*[model.column(name) for name in names]).where(clause).limit(1)
        row = (await session.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    async def _lookup_by(self, session: AsyncSession, model: ModelSpec, name: str, value: Any) -> Optional[Dict[str, Any]]:
        stmt = select(*[model.column(n) for n in model.field_names]).where(model.column(name) == value).limit(1)
        row = (await session.execute(stmt)).mappings().first()
        return dict(row) if row is not None else None

    def _check_required_relations(self, model: ModelSpec, values: Dict[str, Any], label: str):
        for relation in model.relations:
            if relation.is_list or not relation.required:
                continue
            if values.get(relation.local_field) is None:
                raise ValidationError(
                    f"Argument `{relation.name}` (or `{relation.local_field}`) is missing in {label}"
                )

    # ---------- create ----------

    async def create(self, session: AsyncSession, model: ModelSpec, data: Any,
                     fixed: Optional[Dict[str, Any]] = None) -> Any:
        """建立一筆紀錄 (含巢狀寫入)，回傳主鍵"""
        label = f"{model.name}CreateInput"
        scalars, relations = self._split(model, data, label)
        fixed = fixed or {}
        for name in fixed:
            if name in scalars:
                raise ValidationError(f"Argument `{name}` is set by the parent relation in {label}")

        values = validate(create_input_model(model), scalars, label)
        values.update(fixed)

        # 外鍵在本表的關聯要先處理，才知道外鍵的值
        for name, ops in relations.items():
            relation = model.get_relation(name)
            if relation.is_list:
                continue
            if relation.local_field in values:
                raise ValidationError(
                    f"Cannot set both `{relation.local_field}` and `{name}` in {label}"
                )
            values[relation.local_field] = await self._one_for_create(session, model, relation, ops)

        self._check_required_relations(model, values, label)
        id_name = model.id_field.name
        if values.get(id_name) is None:
            values[id_name] = self._new_id(model)

        await session.execute(insert(model.cls.__table__).values(**values))
        logger.debug(f"inserted {model.name} {values[id_name]}")

        for name, ops in relations.items():
            relation = model.get_relation(name)
            if relation.is_list:
                await self._write_many(session, relation, values[relation.local_field], ops, MANY_CREATE_OPS)
        return values[id_name]

    async def _remote_value(self, session: AsyncSession, target: ModelSpec, relation: RelationField,
                            record_id: Any) -> Any:
        if relation.remote_field == target.id_field.name:
            return record_id
        record = await self._lookup_by(session, target, target.id_field.name, record_id)
        return record[relation.remote_field]

    async def _connect_value(self, session: AsyncSession, target: ModelSpec, relation: RelationField,
                             where: Any, required: bool = True) -> Any:
        found = await self.lookup(session, target, where, [relation.remote_field], label="connect")
        if found is None:
            if not required:
                return None
            raise RecordNotFoundError(
                f"{_NOT_FOUND} No '{target.name}' record was found for a nested connect on relation '{relation.name}'.",
                model=target.name,
            )
        return found[relation.remote_field]

    async def _one_for_create(self, session: AsyncSession, model: ModelSpec, relation: RelationField, ops: Any) -> Any:
        target = self.schema[relation.target]
        if not isinstance(ops, dict) or len(ops) != 1 or next(iter(ops)) not in ONE_CREATE_OPS:
            raise ValidationError(
                f"Argument `{relation.name}` of {model.name} needs exactly one of {', '.join(ONE_CREATE_OPS)}"
            )
        op, arg = next(iter(ops.items()))
        if op == "create":
            return await self._remote_value(session, target, relation, await self.create(session, target, arg))
        if op == "connect":
            return await self._connect_value(session, target, relation, arg)
        # connect_or_create
        arg = _expect_keys(arg, ("where", "create"), f"{relation.name}.connect_or_create")
        value = await self._connect_value(session, target, relation, arg["where"], required=False)
        if value is not None:
            return value
        return await self._remote_value(session, target, relation, await self.create(session, target, arg["create"]))

    async def insert_many(self, session: AsyncSession, model: ModelSpec, data: Any,
                          skip_duplicates: bool = False, fixed: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        create_many：只接受 scalar 欄位 (不支援巢狀寫入)。
        回傳實際新增的主鍵 (依輸入順序)。
        """
        label = f"{model.name}CreateManyInput"
        fixed = fixed or {}
        id_name = model.id_field.name
        rows = []
        for item in _as_list(data):
            scalars, relations = self._split(model, item, label)
            if relations:
                raise ValidationError(f"Nested writes are not supported in create_many ({', '.join(relations)})")
            for name in fixed:
                if name in scalars:
                    raise ValidationError(f"Argument `{name}` is set by the parent relation in {label}")
            values = validate(create_input_model(model), scalars, label)
            values.update(fixed)
            self._check_required_relations(model, values, label)
            if values.get(id_name) is None:
                values[id_name] = self._new_id(model)
            rows.append(values)
        if not rows:
            return []

        # executemany 需要每一列的欄位相同，依欄位組合分批
        groups: Dict[Tuple[str, ...], List[Dict[str, Any]]] = {}
        for row in rows:
            groups.setdefault(tuple(sorted(row)), []).append(row)

        ids = [row[id_name] for row in rows]
        table = model.cls.__table__
        if not skip_duplicates:
            for group in groups.values():
                await session.execute(insert(table), group)
            return ids

        dialect = session.get_bind().dialect.name
        conflict_insert = _CONFLICT_INSERTS.get(dialect)
        if conflict_insert is None:
            raise ValidationError(f"skip_duplicates is not supported on {dialect}")
        before = await self._existing_ids(session, model, ids)
        for group in groups.values():
            await session.execute(conflict_insert(table).on_conflict_do_nothing(), group)
        after = await self._existing_ids(session, model, ids)
        inserted = [record_id for record_id in ids if record_id in after and record_id not in before]
        logger.debug(f"create_many {model.name}: {len(inserted)} inserted, {len(ids) - len(inserted)} skipped")
        return inserted

    async def _existing_ids(self, session: AsyncSession, model: ModelSpec, ids: List[Any]) -> set:
        column = model.column(model.id_field.name)
        result = await session.execute(select(column).where(column.in_(ids)))
        return set(result.scalars().all())

    # ---------- update ----------

    def update_values(self, model: ModelSpec, data: Dict[str, Any], label: str) -> Dict[str, Any]:
        """scalar 欄位的更新值；數值欄位可以用 increment / decrement / multiply / divide"""
        parsed = validate(update_input_model(model), data, label)
        values = {}
        for name, value in parsed.items():
            field = model.get_field(name)
            if field.kind == JSON_KIND or not isinstance(value, dict):
                values[name] = value
                continue
            if len(value) != 1:
                raise ValidationError(f"Argument `{name}` of {label} needs exactly one operation")
            op, operand = next(iter(value.items()))
            column = model.column(name)
            if op == "set":
                values[name] = operand
            elif operand is None:
                raise ValidationError(f"Argument `{name}.{op}` of {label} must not be null")
            elif op == "increment":
                values[name] = column + operand
            elif op == "decrement":
                values[name] = column - operand
            elif op == "multiply":
                values[name] = column * operand
            elif op == "divide":
                # Int 欄位是整數除法
                values[name] = column // operand if field.kind == INT else column / operand
        return values

    async def update(self, session: AsyncSession, model: ModelSpec, where: Any, data: Any) -> Any:
        record = await self.lookup(session, model, where)
        if record is None:
            raise RecordNotFoundError(f"{_NOT_FOUND} Record to update not found.", model=model.name)
        return await self.apply_update(session, model, record, data)

    async def apply_update(self, session: AsyncSession, model: ModelSpec, record: Dict[str, Any], data: Any) -> Any:
        """更新一筆已知的紀錄 (含巢狀寫入)，回傳更新後的主鍵"""
        label = f"{model.name}UpdateInput"
        scalars, relations = self._split(model, data, label)
        values = self.update_values(model, scalars, label)

        for name, ops in relations.items():
            relation = model.get_relation(name)
            if relation.is_list:
                continue
            if relation.local_field in values:
                raise ValidationError(f"Cannot set both `{relation.local_field}` and `{name}` in {label}")
            changed, value = await self._one_for_update(session, model, relation, record, ops)
            if changed:
                values[relation.local_field] = value

        id_name = model.id_field.name
        if values:
            stmt = (
                update(model.cls)
                .where(model.column(id_name) == record[id_name])
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
        record_id = values.get(id_name, record[id_name])

        many = [(model.get_relation(name), ops) for name, ops in relations.items() if model.get_relation(name).is_list]
        if many:
            current = await self._lookup_by(session, model, id_name, record_id)
            for relation, ops in many:
                await self._write_many(session, relation, current[relation.local_field], ops, MANY_UPDATE_OPS)
        return record_id

    async def _one_for_update(self, session: AsyncSession, model: ModelSpec, relation: RelationField,
                              record: Dict[str, Any], ops: Any):
        if not isinstance(ops, dict) or len(ops) != 1 or next(iter(ops)) not in ONE_UPDATE_OPS:
            raise ValidationError(
                f"Argument `{relation.name}` of {model.name} needs exactly one of {', '.join(ONE_UPDATE_OPS)}"
            )
        op, arg = next(iter(ops.items()))
        if op != "update":
            return True, await self._one_for_create(session, model, relation, ops)

        target = self.schema[relation.target]
        related = None
        if record[relation.local_field] is not None:
            related = await self._lookup_by(session, target, relation.remote_field, record[relation.local_field])
        if related is None:
            raise RecordNotFoundError(
                f"{_NOT_FOUND} No '{target.name}' record was found for a nested update on relation '{relation.name}'.",
                model=target.name,
            )
        await self.apply_update(session, target, related, arg)
        return False, None

    async def _write_many(self, session: AsyncSession, relation: RelationField, parent_value: Any,
                          ops: Any, allowed: Tuple[str, ...]):
        """一對多關聯的巢狀寫入 (外鍵在子表)"""
        target = self.schema[relation.target]
        if not isinstance(ops, dict):
            raise ValidationError(f"Argument `{relation.name}` must be an object of nested operations")
        fixed = {relation.remote_field: parent_value}
        remote = target.column(relation.remote_field)

        for op, arg in ops.items():
            if op not in allowed:
                raise ValidationError(
                    f"Unknown nested operation `{op}` on `{relation.name}`, expected one of {', '.join(allowed)}"
                )
            if op == "create":
                for item in _as_list(arg):
                    await self.create(session, target, item, fixed=fixed)
            elif op == "create_many":
                if not isinstance(arg, dict) or "data" not in arg or set(arg) - {"data", "skip_duplicates"}:
                    raise ValidationError(f"Argument `{relation.name}.create_many` needs `data`")
                await self.insert_many(session, target, arg["data"], arg.get("skip_duplicates", False), fixed=fixed)
            elif op == "connect":
                for where in _as_list(arg):
                    if not await self._connect_child(session, target, relation, parent_value, where):
                        raise RecordNotFoundError(
                            f"{_NOT_FOUND} Expected a '{target.name}' record to connect on relation "
                            f"'{relation.name}', found none.",
                            model=target.name,
                        )
            elif op == "connect_or_create":
                for item in _as_list(arg):
                    item = _expect_keys(item, ("where", "create"), f"{relation.name}.connect_or_create")
                    if not await self._connect_child(session, target, relation, parent_value, item["where"]):
                        await self.create(session, target, item["create"], fixed=fixed)
            elif op == "update_many":
                for item in _as_list(arg):
                    item = _expect_keys(item, ("where", "data"), f"{relation.name}.update_many")
                    clause = self.where_builder.build(target, item["where"])
                    await self.update_where(session, target, and_(remote == parent_value, clause if clause is not None else true()), item["data"])
            elif op == "delete_many":
                for where in _as_list(arg):
                    clause = self.where_builder.build(target, where)
                    await self.delete_where(session, target, and_(remote == parent_value, clause if clause is not None else true()))

    async def _connect_child(self, session: AsyncSession, target: ModelSpec, relation: RelationField,
                             parent_value: Any, where: Any) -> bool:
        clause = self.where_builder.build_unique(target, where, "connect")
        stmt = (
            update(target.cls)
            .where(clause)
            .values({relation.remote_field: parent_value})
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def update_where(self, session: AsyncSession, model: ModelSpec, clause, data: Any) -> int:
        """update_many：只能更新 scalar 欄位，回傳影響筆數"""
        label = f"{model.name}UpdateManyMutationInput"
        scalars, relations = self._split(model, data, label)
        if relations:
            raise ValidationError(f"Nested writes are not supported in update_many ({', '.join(relations)})")
        values = self.update_values(model, scalars, label)
        if not values:
            stmt = select(func.count()).select_from(model.cls)
            if clause is not None:
                stmt = stmt.where(clause)
            return (await session.execute(stmt)).scalar_one()
        stmt = update(model.cls).values(**values).execution_options(synchronize_session=False)
        if clause is not None:
            stmt = stmt.where(clause)
        result = await session.execute(stmt)
        return result.rowcount

    # ---------- delete ----------

    async def delete_where(self, session: AsyncSession, model: ModelSpec, clause) -> int:
        stmt = delete(model.cls).execution_options(synchronize_session=False)
        if clause is not None:
            stmt = stmt.where(clause)
        result = await session.execute(stmt)
        return result.rowcount

    async def delete_by_id(self, session: AsyncSession, model: ModelSpec, record_id: Any) -> int:
        return await self.delete_where(session, model, model.column(model.id_field.name) == record_id)
