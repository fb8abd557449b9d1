"""
The data client: connection lifecycle, query execution, raw SQL and transactions.

Client 依照 Schema 為每個 Model 建立一個 delegate (client.user, client.project ...)；
delegate 回傳的 Query 在 await 時由 client 開一個 session、包在交易裡執行。
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from marketplace.orm.aggregates import Aggregator
from marketplace.orm.delegate import ModelDelegate, Query
from marketplace.orm.errors import InitializationError, KnownRequestError, ValidationError, translate_db_error
from marketplace.orm.raw import Sql, positional
from marketplace.orm.reads import Reader
from marketplace.orm.runtime import CLIENT_VERSION, ISOLATION_LEVELS, TransactionIsolationLevel, get_log_level
from marketplace.orm.schema import Schema
from marketplace.orm.writes import Writer

logger = logging.getLogger(__name__)

DEFAULT_MAX_WAIT = 2000
DEFAULT_TIMEOUT = 5000


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite 預設不檢查外鍵
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class _BaseClient:
    """Client 與 TransactionClient 共用：delegates + raw SQL"""

    def __init__(self, schema: Schema, reader: Reader, writer: Writer, aggregator: Aggregator):
        self._schema = schema
        self._log_level = None
        for model in schema:
            setattr(self, model.delegate_name, ModelDelegate(self, model, reader, writer, aggregator))

    async def _run(self, query: Query) -> Any:
        raise NotImplementedError

    async def _execute(self, query: Query) -> Any:
        message = f"{query.model or 'raw'}.{query.action}"
        if self._log_level in ("info", "query"):
            logger.info(message)
        else:
            logger.debug(message)
        try:
            return await self._run(query)
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

    # ---------- raw SQL ----------

    def query_raw(self, query: Sql) -> Query:
        """回傳 list[dict]"""
        statement, params = self._compile(query)

        async def run(session: AsyncSession):
            result = await session.execute(text(statement), params)
            return [dict(row) for row in result.mappings().all()]

        return Query(self, None, "query_raw", {"query": statement}, run)

    def execute_raw(self, query: Sql) -> Query:
        """回傳影響筆數"""
        statement, params = self._compile(query)

        async def run(session: AsyncSession):
            result = await session.execute(text(statement), params)
            return result.rowcount

        return Query(self, None, "execute_raw", {"query": statement}, run)

    def query_raw_unsafe(self, query: str, *values: Any) -> Query:
        """query 使用 $1..$n 佔位符；不要把使用者輸入直接拼進 query"""
        return self.query_raw(_Positional(query, values))

    def execute_raw_unsafe(self, query: str, *values: Any) -> Query:
        return self.execute_raw(_Positional(query, values))

    def _compile(self, query: Union[Sql, "_Positional"]):
        if isinstance(query, _Positional):
            return positional(query.text, query.values)
        if not isinstance(query, Sql):
            raise ValidationError("Raw queries must be built with sql(...); use *_unsafe for plain strings")
        return query.compile()


class _Positional:
    def __init__(self, text: str, values: Sequence[Any]):
        self.text = text
        self.values = tuple(values)


class TransactionClient(_BaseClient):
    """互動式交易中傳給 callback 的 client：同樣的 delegates 與 raw SQL，共用一個 session"""

    def __init__(self, parent: "Client", session: AsyncSession):
        super().__init__(parent._schema, parent._reader, parent._writer, parent._aggregator)
        self._log_level = parent._log_level
        self._session = session

    async def _run(self, query: Query) -> Any:
        return await query.run(self._session)


class Client(_BaseClient):
    def __init__(
        self,
        schema: Schema,
        database_url: Optional[str] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        log: Optional[List[Any]] = None,
        engine_options: Optional[Dict[str, Any]] = None,
        transaction_options: Optional[Dict[str, Any]] = None,
    ):
        if database_url is None and engine is None:
            raise InitializationError("Either a database_url or an engine is required", client_version=CLIENT_VERSION)
        self._reader = Reader(schema)
        self._writer = Writer(schema, self._reader)
        self._aggregator = Aggregator(self._reader)
        super().__init__(schema, self._reader, self._writer, self._aggregator)

        self._database_url = database_url
        self._engine = engine
        self._engine_options = dict(engine_options or {})
        self._log_level = get_log_level(log)
        options = transaction_options or {}
        self._max_wait = options.get("max_wait", DEFAULT_MAX_WAIT)
        self._timeout = options.get("timeout", DEFAULT_TIMEOUT)
        self._isolation_level = options.get("isolation_level")

        self._session_factory = None
        self._connected = False
        self._lock = asyncio.Lock()

    # ---------- 連線 ----------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _create_engine(self) -> AsyncEngine:
        try:
            engine = create_async_engine(
                self._database_url,
                echo=self._log_level == "query",
                **self._engine_options,
            )
        except (SQLAlchemyError, ImportError) as exc:
            raise InitializationError(f"Invalid database configuration: {exc}", client_version=CLIENT_VERSION) from exc
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    async def connect(self):
        async with self._lock:
            if self._connected:
                return
            if self._engine is None:
                self._engine = self._create_engine()
            try:
                async with self._engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (SQLAlchemyError, OSError) as exc:
                raise InitializationError(
                    f"Can't reach database server: {exc}", client_version=CLIENT_VERSION
                ) from exc
            self._session_factory = sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            self._connected = True
            logger.info(f"Connected to {self._engine.url.render_as_string(hide_password=True)}")

    async def disconnect(self):
        async with self._lock:
            if self._engine is not None and self._connected:
                await self._engine.dispose()
                logger.info("Disconnected from database")
            self._connected = False

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    async def push_schema(self):
        """建立尚未存在的資料表 (開發 / 測試用)"""
        await self.connect()
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self._schema.metadata.create_all)
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

    # ---------- 執行 ----------

    async def _run(self, query: Query) -> Any:
        if not self._connected:
            await self.connect()
        async with self._session_factory() as session:
            async with session.begin():
                return await query.run(session)

    async def transaction(
        self,
        operations: Union[Sequence[Query], Callable[[TransactionClient], Any]],
        *,
        isolation_level: Optional[Union[str, TransactionIsolationLevel]] = None,
        max_wait: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> Any:
        """
        在同一個交易中執行：

        - operations 為 Query list：依序執行，回傳各自的結果
        - operations 為 async callback：傳入 TransactionClient，回傳 callback 的回傳值

        任何錯誤都會 rollback；超過 timeout (毫秒) 會拋出 P2028。
        """
        if callable(operations):
            batch = None
        else:
            batch = list(operations)
            for item in batch:
                if not isinstance(item, Query):
                    raise ValidationError(f"transaction() expects Query objects, got {type(item).__name__}")

        max_wait = self._max_wait if max_wait is None else max_wait
        timeout = self._timeout if timeout is None else timeout
        isolation_level = isolation_level or self._isolation_level
        level = None
        if isolation_level is not None:
            try:
                level = ISOLATION_LEVELS[TransactionIsolationLevel(isolation_level)]
            except ValueError:
                raise ValidationError(f"Invalid isolation level `{isolation_level}`")
        if not self._connected:
            await self.connect()

        try:
            conn = await asyncio.wait_for(self._engine.connect().start(), max_wait / 1000)
        except asyncio.TimeoutError:
            raise KnownRequestError(
                f"Transaction API error: Unable to start a transaction in the given time ({max_wait} ms).",
                code="P2028",
            )
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

        try:
            if level is not None:
                conn = await conn.execution_options(isolation_level=level)
            async with self._session_factory(bind=conn) as session:
                async with session.begin():
                    if batch is None:
                        tx = TransactionClient(self, session)
                        return await asyncio.wait_for(operations(tx), timeout / 1000)
                    return await asyncio.wait_for(self._run_batch(session, batch), timeout / 1000)
        except asyncio.TimeoutError:
            raise KnownRequestError(
                f"Transaction API error: Transaction already closed: the timeout ({timeout} ms) was exceeded "
                "and the transaction was rolled back.",
                code="P2028",
            )
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc
        finally:
            await conn.close()

    async def _run_batch(self, session: AsyncSession, batch: List[Query]) -> List[Any]:
        results = []
        for query in batch:
            logger.debug(f"transaction step {query!r}")
            results.append(await query.run(session))
        return results

