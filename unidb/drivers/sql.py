"""
SQL translator - maps the builder surface onto single-use QueryBuilders.

Provides:
- QuerySession: replaceable reference to the current native builder
- SqlDriver: relational driver (SqliteDriver, PostgresDriver, MySqlDriver)

Every terminal call runs inside ``QuerySession.terminal``: the builder it
yields is marked spent afterwards and replaced by a fresh one scoped to
the same table, so predicates never leak into the next call chain.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from decimal import Decimal
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ..backends import AdapterTransaction, DatabaseAdapter, SqlExecutor, create_adapter
from ..connections import DEFAULT_CONNECTION, ConnectionConfig
from ..faults import (
    Fault,
    OperationNotSupportedError,
    QueryExecutionError,
    TableNotSetError,
)
from ..schema import TableBuilder, column_ddl
from ..sql_builder import CreateTableBuilder, InsertBuilder, QueryBuilder, quote_identifier
from ..transaction import Transaction
from .base import BackendKind, Driver, Listener, Statement, TableCallback, driver_options, resolve

if TYPE_CHECKING:
    from .factory import DriverFactory, DriverHandle

logger = logging.getLogger("unidb.drivers.sql")

__all__ = ["QuerySession", "SqlDriver", "SqliteDriver", "PostgresDriver", "MySqlDriver"]

# Raw statements whose result is a row set
_ROW_COMMANDS = frozenset({"SELECT", "WITH", "PRAGMA", "SHOW", "EXPLAIN", "VALUES", "DESCRIBE"})

_PLACEHOLDER_RE = re.compile(r"\?\?|\?")


class QuerySession:
    """
    Holds the current ``QueryBuilder`` for one driver.

    ``terminal(method)`` hands the builder to a terminal operation and
    swaps in a fresh generation afterwards, whether the operation
    succeeded or raised.
    """

    TERMINAL_METHODS: ClassVar[frozenset] = frozenset({
        "find",
        "find_many",
        "insert",
        "insert_and_get",
        "update",
        "update_and_get",
        "delete",
        "count",
        "count_distinct",
        "min",
        "max",
        "sum",
        "sum_distinct",
        "avg",
        "avg_distinct",
        "increment",
        "decrement",
        "pluck",
    })

    def __init__(self, dialect: str, table: Optional[str] = None):
        self._dialect = dialect
        self._table = table
        self._builder = QueryBuilder(table, dialect)
        self._generation = 0

    @property
    def builder(self) -> QueryBuilder:
        return self._builder

    @property
    def table(self) -> Optional[str]:
        return self._table

    @property
    def generation(self) -> int:
        return self._generation

    def set_table(self, table: str) -> None:
        self._table = table
        self._builder.table(table)

    def copy(self) -> QuerySession:
        other = QuerySession(self._dialect, self._table)
        other._builder = self._builder.clone()
        return other

    @contextmanager
    def terminal(self, method: str) -> Iterator[QueryBuilder]:
        if method not in self.TERMINAL_METHODS:
            raise ValueError(f"'{method}' is not a terminal method")
        if not self._table:
            raise TableNotSetError(method)
        builder = self._builder
        try:
            yield builder
        finally:
            builder.mark_spent()
            self._builder = QueryBuilder(self._table, self._dialect)
            self._generation += 1


def _to_number(value: Any) -> Any:
    """Coerce driver-native numeric representations to int/float."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (str, bytes)):
        text = value.decode() if isinstance(value, bytes) else value
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return value
    return value


def _rows(values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    if isinstance(values, Mapping):
        return [dict(values)]
    return [dict(row) for row in values]


def _assignments(key: Statement, value: Any) -> Dict[str, Any]:
    if isinstance(key, Mapping):
        return dict(key)
    return {key: value}


class SqlDriver(Driver):
    """
    Relational driver over a ``DatabaseAdapter``.

    Outside a transaction statements go through the adapter (pooled,
    auto-commit). Inside one they go through the ``AdapterTransaction``
    bound at construction.
    """

    kind = BackendKind.RELATIONAL
    name: ClassVar[str] = "sql"
    dialect: ClassVar[str] = "sqlite"

    def __init__(
        self,
        factory: Optional["DriverFactory"] = None,
        connection: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
        *,
        handle: Optional["DriverHandle"] = None,
        executor: Optional[AdapterTransaction] = None,
        session: Optional[QuerySession] = None,
        listeners: Optional[Dict[str, List[Listener]]] = None,
    ):
        super().__init__(factory, connection, runtime_config, handle=handle, listeners=listeners)
        self._executor = executor
        self._session = session or QuerySession(self.dialect)

    # ── Client lifecycle ─────────────────────────────────────────────

    @classmethod
    async def open_client(cls, config: ConnectionConfig) -> DatabaseAdapter:
        adapter = create_adapter(cls.dialect)
        await adapter.connect(config.dsn(), pool=config.pool, **driver_options(config))
        return adapter

    @classmethod
    async def close_client(cls, client: DatabaseAdapter) -> None:
        await client.disconnect()

    def _spawn(self, **kwargs: Any) -> SqlDriver:
        params = dict(
            factory=self._factory,
            connection=self._connection,
            runtime_config=self._runtime_config,
            handle=self._handle,
            executor=self._executor,
            session=QuerySession(self.dialect, self._session.table),
            listeners=self._listeners,
        )
        params.update(kwargs)
        return type(self)(**params)

    def clone(self) -> SqlDriver:
        return self._spawn(session=self._session.copy())

    @property
    def session(self) -> QuerySession:
        return self._session

    @property
    def table_name(self) -> Optional[str]:
        return self._session.table

    @property
    def in_transaction(self) -> bool:
        return self._executor is not None

    async def _adapter(self) -> DatabaseAdapter:
        handle = self._handle if self._executor is not None else await self._ensure_connected()
        return handle.client

    async def _target(self) -> SqlExecutor:
        if self._executor is not None:
            return self._executor
        return await self._adapter()

    async def _run(self, operation: str, method: str, sql: str, params: Sequence[Any], *extra: Any) -> Any:
        """Execute through the current executor, translating backend errors."""
        executor = await self._target()
        logger.debug(f"[{self._connection}] {operation}: {sql} {list(params)}")
        await self._emit("query", operation=operation, sql=sql, bindings=list(params))
        try:
            return await getattr(executor, method)(sql, params, *extra)
        except Fault:
            raise
        except Exception as exc:
            raise QueryExecutionError(
                operation,
                str(exc),
                table=self.table_name,
                metadata={"sql": sql[:200]},
            ) from exc

    # ── Builder surface ──────────────────────────────────────────────

    def build_table(self, table: str) -> SqlDriver:
        self._session.set_table(table)
        return self

    def build_select(self, *columns: str) -> SqlDriver:
        self._session.builder.select(*columns)
        return self

    def _where(self, statement: Statement, value: Any, connector: str, negate: bool = False) -> SqlDriver:
        builder = self._session.builder
        if isinstance(statement, Mapping):
            builder.where_mapping(statement, connector=connector, negate=negate)
        else:
            builder.where(statement, value, connector=connector, negate=negate)
        return self

    def build_where(self, statement: Statement, value: Any = None) -> SqlDriver:
        return self._where(statement, value, "AND")

    def build_or_where(self, statement: Statement, value: Any = None) -> SqlDriver:
        return self._where(statement, value, "OR")

    def build_where_not(self, statement: Statement, value: Any = None) -> SqlDriver:
        return self._where(statement, value, "AND", negate=True)

    def _like(self, statement: Statement, value: Any, case_insensitive: bool) -> SqlDriver:
        pairs = statement.items() if isinstance(statement, Mapping) else [(statement, value)]
        for column, pattern in pairs:
            self._session.builder.where_like(column, pattern, case_insensitive=case_insensitive)
        return self

    def build_where_like(self, statement: Statement, value: Any = None) -> SqlDriver:
        return self._like(statement, value, case_insensitive=False)

    def build_where_ilike(self, statement: Statement, value: Any = None) -> SqlDriver:
        return self._like(statement, value, case_insensitive=True)

    def build_where_in(self, column: str, values: Sequence[Any]) -> SqlDriver:
        self._session.builder.where_in(column, values)
        return self

    def build_where_not_in(self, column: str, values: Sequence[Any]) -> SqlDriver:
        self._session.builder.where_in(column, values, negate=True)
        return self

    def build_where_null(self, column: str) -> SqlDriver:
        self._session.builder.where_null(column)
        return self

    def build_where_not_null(self, column: str) -> SqlDriver:
        self._session.builder.where_null(column, negate=True)
        return self

    def build_where_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        """``clause`` is a subquery: SQL text with ``?`` params, or a QueryBuilder."""
        self._session.builder.where_exists(clause, params)
        return self

    def build_where_not_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        self._session.builder.where_exists(clause, params, negate=True)
        return self

    def build_where_between(self, column: str, values: Tuple[Any, Any]) -> SqlDriver:
        low, high = values
        self._session.builder.where_between(column, low, high)
        return self

    def build_where_not_between(self, column: str, values: Tuple[Any, Any]) -> SqlDriver:
        low, high = values
        self._session.builder.where_between(column, low, high, negate=True)
        return self

    def build_where_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        self._session.builder.where_raw(sql, params)
        return self

    def build_join(
        self,
        table: str,
        column1: str,
        operator: str,
        column2: Optional[str] = None,
        join_type: str = "join",
    ) -> SqlDriver:
        self._session.builder.join(table, column1, operator, column2, join_type=join_type)
        return self

    def build_join_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        self._session.builder.join_raw(sql, params)
        return self

    def build_distinct(self, *columns: str) -> SqlDriver:
        self._session.builder.distinct(*columns)
        return self

    def build_group_by(self, *columns: str) -> SqlDriver:
        self._session.builder.group_by(*columns)
        return self

    def build_group_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        self._session.builder.group_by_raw(sql, params)
        return self

    def build_having(self, column: str, operator: str, value: Any = None) -> SqlDriver:
        if value is None:
            operator, value = "=", operator
        self._session.builder.having(column, operator, value)
        return self

    def build_order_by(self, column: str, direction: str = "asc") -> SqlDriver:
        self._session.builder.order_by(column, direction)
        return self

    def build_order_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> SqlDriver:
        self._session.builder.order_by_raw(sql, params)
        return self

    def build_skip(self, number: int) -> SqlDriver:
        self._session.builder.offset(number)
        return self

    def build_limit(self, number: int) -> SqlDriver:
        self._session.builder.limit(number)
        return self

    # ── Reads ────────────────────────────────────────────────────────

    async def find(self) -> Optional[Dict[str, Any]]:
        with self._session.terminal("find") as builder:
            sql, params = builder.to_select(limit=1)
            return await self._run("find", "fetch_one", sql, params)

    async def find_many(self) -> List[Dict[str, Any]]:
        with self._session.terminal("find_many") as builder:
            sql, params = builder.to_select()
            return await self._run("find_many", "fetch_all", sql, params)

    async def pluck(self, column: str) -> List[Any]:
        with self._session.terminal("pluck") as builder:
            sql, params = builder.to_pluck(column)
            rows = await self._run("pluck", "fetch_all", sql, params)
        return [next(iter(row.values())) for row in rows]

    async def _fetch_by_keys(self, operation: str, table: str, keys: List[Any]) -> List[Dict[str, Any]]:
        if not keys:
            return []
        sql, params = QueryBuilder(table, self.dialect).where_in(self.primary_key, keys).to_select()
        rows = await self._run(operation, "fetch_all", sql, params)
        by_key = {str(row[self.primary_key]): row for row in rows}
        return [by_key[str(key)] for key in keys if str(key) in by_key]

    # ── Writes ───────────────────────────────────────────────────────

    async def _insert_rows(self, operation: str, table: str, rows: List[Dict[str, Any]]) -> List[Any]:
        keys = []
        # One statement per row keeps generated keys in input order
        for row in rows:
            sql, params = InsertBuilder(table).from_dict(row).build()
            key = await self._run(operation, "execute_insert", sql, params, self.primary_key)
            keys.append(row[self.primary_key] if row.get(self.primary_key) is not None else key)
        return keys

    async def insert(self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[str]:
        with self._session.terminal("insert") as builder:
            keys = await self._insert_rows("insert", builder.table_name, _rows(values))
        return [str(key) for key in keys]

    async def insert_and_get(
        self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]
    ) -> List[Dict[str, Any]]:
        with self._session.terminal("insert_and_get") as builder:
            table = builder.table_name
            keys = await self._insert_rows("insert_and_get", table, _rows(values))
            return await self._fetch_by_keys("insert_and_get", table, keys)

    async def _update_rows(self, operation: str, builder: QueryBuilder, values: Dict[str, Any]) -> List[Any]:
        adapter = await self._adapter()
        if adapter.capabilities.supports_returning:
            sql, params = builder.to_update(values, returning=self.primary_key)
            rows = await self._run(operation, "fetch_all", sql, params)
            return [row[self.primary_key] for row in rows]

        sql, params = builder.to_keys(self.primary_key)
        keys = [next(iter(row.values())) for row in await self._run(operation, "fetch_all", sql, params)]
        if not keys:
            return []
        sql, params = QueryBuilder(builder.table_name, self.dialect).where_in(self.primary_key, keys).to_update(values)
        await self._run(operation, "execute", sql, params)
        return keys

    async def update(self, key: Statement, value: Any = None) -> List[str]:
        """Update matching rows. Returns their keys as strings, ``[]`` when none match."""
        with self._session.terminal("update") as builder:
            keys = await self._update_rows("update", builder, _assignments(key, value))
        return [str(k) for k in keys]

    async def update_and_get(self, key: Statement, value: Any = None) -> List[Dict[str, Any]]:
        with self._session.terminal("update_and_get") as builder:
            keys = await self._update_rows("update_and_get", builder, _assignments(key, value))
            return await self._fetch_by_keys("update_and_get", builder.table_name, keys)

    async def delete(self) -> int:
        with self._session.terminal("delete") as builder:
            sql, params = builder.to_delete()
            return await self._run("delete", "execute", sql, params)

    async def increment(self, column: str, value: Union[int, float] = 1) -> int:
        with self._session.terminal("increment") as builder:
            sql, params = builder.to_increment(column, value)
            return await self._run("increment", "execute", sql, params)

    async def decrement(self, column: str, value: Union[int, float] = 1) -> int:
        with self._session.terminal("decrement") as builder:
            sql, params = builder.to_increment(column, -value)
            return await self._run("decrement", "execute", sql, params)

    # ── Aggregates ───────────────────────────────────────────────────

    async def _aggregate(self, operation: str, function: str, column: str, distinct: bool = False) -> Any:
        with self._session.terminal(operation) as builder:
            sql, params = builder.to_aggregate(function, column, distinct=distinct)
            value = await self._run(operation, "fetch_val", sql, params)
        # MIN/MAX keep text values as they are; only driver numerics are coerced
        if function in ("MIN", "MAX") and not isinstance(value, Decimal):
            return value
        return _to_number(value)

    async def count(self, column: str = "*") -> int:
        return int(await self._aggregate("count", "COUNT", column) or 0)

    async def count_distinct(self, column: str) -> int:
        return int(await self._aggregate("count_distinct", "COUNT", column, distinct=True) or 0)

    async def min(self, column: str) -> Any:
        return await self._aggregate("min", "MIN", column)

    async def max(self, column: str) -> Any:
        return await self._aggregate("max", "MAX", column)

    async def sum(self, column: str) -> Any:
        return await self._aggregate("sum", "SUM", column)

    async def sum_distinct(self, column: str) -> Any:
        return await self._aggregate("sum_distinct", "SUM", column, distinct=True)

    async def avg(self, column: str) -> Any:
        return await self._aggregate("avg", "AVG", column)

    async def avg_distinct(self, column: str) -> Any:
        return await self._aggregate("avg_distinct", "AVG", column, distinct=True)

    # ── Introspection / raw ──────────────────────────────────────────

    async def column_info(self, column: Optional[str] = None) -> Dict[str, Any]:
        table = self.table_name
        if not table:
            raise TableNotSetError("column_info")
        adapter = await self._adapter()
        try:
            columns = await adapter.get_columns(table, self._executor)
        except Fault:
            raise
        except Exception as exc:
            raise QueryExecutionError("column_info", str(exc), table=table) from exc
        info = {c.name: c.to_dict() for c in columns}
        if column is None:
            return info
        return info.get(column, {})

    async def raw(self, query: str, values: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """
        Run backend-native SQL.

        ``?`` binds the next value as a parameter; ``??`` splices the next
        value in as a quoted identifier.
        """
        remaining = iter(values or [])
        params: List[Any] = []

        def _substitute(match: re.Match) -> str:
            try:
                value = next(remaining)
            except StopIteration:
                raise ValueError(f"Not enough values for placeholders in: {query}") from None
            if match.group(0) == "??":
                return quote_identifier(str(value))
            params.append(value)
            return "?"

        sql = _PLACEHOLDER_RE.sub(_substitute, query)
        command = sql.lstrip().split(None, 1)[0].upper() if sql.strip() else ""
        if command in _ROW_COMMANDS:
            rows = await self._run("raw", "fetch_all", sql, params)
            return {"command": command, "row_count": len(rows), "rows": rows}
        affected = await self._run("raw", "execute", sql, params)
        return {"command": command, "row_count": affected, "rows": []}

    # ── DDL ──────────────────────────────────────────────────────────

    async def truncate(self, table: str) -> None:
        adapter = await self._adapter()
        if adapter.capabilities.supports_truncate:
            sql = f"TRUNCATE TABLE {quote_identifier(table)}"
        else:
            sql = f"DELETE FROM {quote_identifier(table)}"
        await self._run("truncate", "execute", sql, [])

    async def create_table(self, name: str, callback: TableCallback) -> None:
        table = TableBuilder(name)
        await resolve(callback(table))
        ddl = CreateTableBuilder(name)
        for spec in table.columns:
            ddl.column(column_ddl(spec, self.dialect))
        await self._run("create_table", "execute", ddl.build(), [])

    async def drop_table(self, name: str) -> None:
        await self._run("drop_table", "execute", f"DROP TABLE IF EXISTS {quote_identifier(name)}", [])

    async def create_database(self, name: str) -> None:
        adapter = await self._adapter()
        if not adapter.capabilities.supports_create_database:
            raise OperationNotSupportedError("create_database", self.name)
        await self._run("create_database", "execute", f"CREATE DATABASE {quote_identifier(name)}", [])

    async def drop_database(self, name: str) -> None:
        adapter = await self._adapter()
        if not adapter.capabilities.supports_create_database:
            raise OperationNotSupportedError("drop_database", self.name)
        await self._run("drop_database", "execute", f"DROP DATABASE IF EXISTS {quote_identifier(name)}", [])

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> Transaction:
        if self._executor is not None:
            raise OperationNotSupportedError("nested begin_transaction", self.name)
        adapter = await self._adapter()
        try:
            scope = await adapter.begin_transaction()
        except Fault:
            raise
        except Exception as exc:
            raise QueryExecutionError("begin_transaction", str(exc), table=self.table_name) from exc
        logger.info(f"[{self._connection}] transaction started ({self.name})")
        return Transaction(self._spawn(executor=scope, factory=None), scope)


class SqliteDriver(SqlDriver):
    name = "sqlite"
    dialect = "sqlite"


class PostgresDriver(SqlDriver):
    name = "postgres"
    dialect = "postgresql"


class MySqlDriver(SqlDriver):
    name = "mysql"
    dialect = "mysql"
