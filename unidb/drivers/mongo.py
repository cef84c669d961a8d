"""
Document translator - maps the builder surface onto an aggregation pipeline.

Two accumulators are kept side by side:

- ``_where``: a single filter document, used by writes
  (``update_many`` / ``delete_many`` take a filter, not a pipeline);
- ``_pipeline``: the aggregation stages, used by reads and aggregates.

Every where-family call updates both, and the two always describe the
same predicate set. Stages are appended in call order: ``build_where``
after ``build_limit`` filters the limited page, not the collection.
The one exception is ``build_or_where``, which folds every pending
predicate stage into a single ``$or`` stage placed where the first of
them stood.

Every read, aggregate and write drains both accumulators.
"""

from __future__ import annotations

import copy
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
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
from urllib.parse import urlsplit

from bson import ObjectId, json_util
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from ..connections import DEFAULT_CONNECTION, ConnectionConfig
from ..faults import (
    ConfigurationError,
    Fault,
    InvalidJoinError,
    OperationNotSupportedError,
    QueryExecutionError,
    TableNotSetError,
)
from ..schema import TableBuilder
from ..transaction import Transaction
from .base import BackendKind, Driver, Listener, Statement, TableCallback, driver_options, resolve

if TYPE_CHECKING:
    from .factory import DriverFactory, DriverHandle

logger = logging.getLogger("unidb.drivers.mongo")

__all__ = ["MongoDriver", "MongoConnection", "MongoSessionScope"]

_HAVING_OPERATORS = {
    "=": "$eq",
    "!=": "$ne",
    "<>": "$ne",
    ">": "$gt",
    ">=": "$gte",
    "<": "$lt",
    "<=": "$lte",
}

_PLACEHOLDER_RE = re.compile(r"\?\?|\?")


@dataclass
class MongoConnection:
    """The client plus the database selected by the connection config."""

    client: Any
    database: Any


class MongoSessionScope:
    """A started client session with an open multi-document transaction."""

    def __init__(self, session: Any):
        self.session = session
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def commit(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await resolve(self.session.commit_transaction())
        finally:
            await resolve(self.session.end_session())

    async def rollback(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await resolve(self.session.abort_transaction())
        finally:
            await resolve(self.session.end_session())


def like_to_regex(pattern: str) -> str:
    """Translate a SQL LIKE pattern into an anchored regular expression."""
    parts = []
    for char in str(pattern):
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "^" + "".join(parts) + "$"


def _field(column: str) -> Tuple[Optional[str], str]:
    """Split ``table.field`` into (table, field)."""
    if "." in column:
        table, name = column.split(".", 1)
        return table, name
    return None, column


def _is_operator_doc(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(str(k).startswith("$") for k in value)


def _merge_filter(target: Dict[str, Any], new: Mapping[str, Any]) -> None:
    """
    AND ``new`` into ``target``.

    Operator documents on the same field merge when their operators do not
    overlap. Any other collision is moved under ``$and``.
    """
    for key, value in new.items():
        if key not in target:
            target[key] = value
        elif (
            _is_operator_doc(target[key])
            and _is_operator_doc(value)
            and not set(target[key]) & set(value)
        ):
            target[key] = {**target[key], **value}
        else:
            target.setdefault("$and", []).append({key: value})


class MongoDriver(Driver):
    """
    Document driver over pymongo's asyncio client.

    ``client_class`` is the client constructor used by ``open_client``.
    """

    kind = BackendKind.DOCUMENT
    name: ClassVar[str] = "mongodb"
    default_primary_key: ClassVar[str] = "_id"
    client_class: ClassVar[Any] = AsyncMongoClient

    def __init__(
        self,
        factory: Optional["DriverFactory"] = None,
        connection: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
        *,
        handle: Optional["DriverHandle"] = None,
        session: Any = None,
        table: Optional[str] = None,
        listeners: Optional[Dict[str, List[Listener]]] = None,
    ):
        super().__init__(factory, connection, runtime_config, handle=handle, listeners=listeners)
        self._session = session
        self._table = table
        self._where: Dict[str, Any] = {}
        self._pipeline: List[Dict[str, Any]] = []
        # ``$match`` stages added by where-family calls, in pipeline order
        self._predicates: List[Dict[str, Any]] = []

    # ── Client lifecycle ─────────────────────────────────────────────

    @classmethod
    async def open_client(cls, config: ConnectionConfig) -> MongoConnection:
        url = config.dsn()
        database_name = config.database or urlsplit(url).path.lstrip("/").split("?", 1)[0]
        if not database_name:
            raise ConfigurationError("no database name in config or URL", connection=config.name)
        client = cls.client_class(url, **driver_options(config))
        database = client[database_name]
        try:
            await resolve(database.command("ping"))
        except Exception:
            await resolve(client.close())
            raise
        logger.info(f"MongoDB connected: {config.masked_dsn()} (database '{database_name}')")
        return MongoConnection(client=client, database=database)

    @classmethod
    async def close_client(cls, client: MongoConnection) -> None:
        await resolve(client.client.close())
        logger.info("MongoDB disconnected")

    def clone(self) -> MongoDriver:
        other = type(self)(
            self._factory,
            self._connection,
            self._runtime_config,
            handle=self._handle,
            session=self._session,
            table=self._table,
            listeners=self._listeners,
        )
        other._where, other._pipeline, other._predicates = copy.deepcopy(
            (self._where, self._pipeline, self._predicates)
        )
        return other

    @property
    def table_name(self) -> Optional[str]:
        return self._table

    @property
    def in_transaction(self) -> bool:
        return self._session is not None

    @property
    def pipeline(self) -> List[Dict[str, Any]]:
        return list(self._pipeline)

    @property
    def filter(self) -> Dict[str, Any]:
        return dict(self._where)

    async def _connection_state(self) -> MongoConnection:
        handle = self._handle if self._session is not None else await self._ensure_connected()
        return handle.client

    async def _collection(self, operation: str) -> Any:
        if not self._table:
            raise TableNotSetError(operation, driver=self.name)
        conn = await self._connection_state()
        return conn.database[self._table]

    def _reset(self) -> None:
        self._where = {}
        self._pipeline = []
        self._predicates = []

    @contextmanager
    def _translate(self, operation: str) -> Iterator[None]:
        try:
            yield
        except Fault:
            raise
        except Exception as exc:
            raise QueryExecutionError(operation, str(exc), table=self._table) from exc

    @contextmanager
    def _terminal(self, operation: str) -> Iterator[None]:
        """Translate backend errors and drain the accumulators afterwards."""
        try:
            with self._translate(operation):
                yield
        finally:
            self._reset()

    # ── Predicate helpers ────────────────────────────────────────────

    def _coerce(self, column: str, value: Any) -> Any:
        """Turn ObjectId-shaped strings into ObjectIds on the ``_id`` field."""
        if column != "_id":
            return value
        if isinstance(value, (list, tuple)):
            return [self._coerce(column, v) for v in value]
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        return value

    def _statement(self, statement: Statement, value: Any) -> Dict[str, Any]:
        if isinstance(statement, Mapping):
            return {k: self._coerce(k, v) for k, v in statement.items()}
        return {statement: self._coerce(statement, value)}

    def _push_match(self, condition: Dict[str, Any]) -> MongoDriver:
        _merge_filter(self._where, copy.deepcopy(condition))
        stage = {"$match": condition}
        self._pipeline.append(stage)
        self._predicates.append(stage)
        return self

    # ── Builder surface ──────────────────────────────────────────────

    def build_table(self, table: str) -> MongoDriver:
        self._table = table
        return self

    def build_select(self, *columns: str) -> MongoDriver:
        self._pipeline.append({"$project": {column: 1 for column in columns}})
        return self

    def build_where(self, statement: Statement, value: Any = None) -> MongoDriver:
        return self._push_match(self._statement(statement, value))

    def build_or_where(self, statement: Statement, value: Any = None) -> MongoDriver:
        """
        OR ``statement`` with every predicate added so far.

        The pending predicate stages are replaced by one ``$or`` stage at
        the position of the first of them. Join and having filters are
        not predicates and stay where they are.
        """
        condition = self._statement(statement, value)
        if not self._predicates:
            return self._push_match(condition)

        pending = {id(stage) for stage in self._predicates}
        first = next(i for i, stage in enumerate(self._pipeline) if id(stage) in pending)
        self._pipeline = [stage for stage in self._pipeline if id(stage) not in pending]

        stage = {"$match": {"$or": [copy.deepcopy(self._where), condition]}}
        self._pipeline.insert(first, stage)
        self._predicates = [stage]
        self._where = {"$or": [self._where, copy.deepcopy(condition)]}
        return self

    def build_where_not(self, statement: Statement, value: Any = None) -> MongoDriver:
        if isinstance(statement, Mapping):
            return self._push_match({"$nor": [self._statement(statement, value)]})
        return self._push_match({statement: {"$ne": self._coerce(statement, value)}})

    def _like(self, statement: Statement, value: Any, case_insensitive: bool) -> MongoDriver:
        pairs = statement.items() if isinstance(statement, Mapping) else [(statement, value)]
        for column, pattern in pairs:
            regex: Dict[str, Any] = {"$regex": like_to_regex(pattern)}
            if case_insensitive:
                regex["$options"] = "i"
            self._push_match({column: regex})
        return self

    def build_where_like(self, statement: Statement, value: Any = None) -> MongoDriver:
        return self._like(statement, value, case_insensitive=False)

    def build_where_ilike(self, statement: Statement, value: Any = None) -> MongoDriver:
        return self._like(statement, value, case_insensitive=True)

    def build_where_in(self, column: str, values: Sequence[Any]) -> MongoDriver:
        return self._push_match({column: {"$in": self._coerce(column, list(values))}})

    def build_where_not_in(self, column: str, values: Sequence[Any]) -> MongoDriver:
        return self._push_match({column: {"$nin": self._coerce(column, list(values))}})

    def build_where_null(self, column: str) -> MongoDriver:
        return self._push_match({column: None})

    def build_where_not_null(self, column: str) -> MongoDriver:
        return self._push_match({column: {"$ne": None}})

    def build_where_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        """``clause`` names a field that must be present."""
        return self._push_match({str(clause): {"$exists": True}})

    def build_where_not_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        return self._push_match({str(clause): {"$exists": False}})

    def build_where_between(self, column: str, values: Tuple[Any, Any]) -> MongoDriver:
        low, high = values
        return self._push_match({column: {"$gte": low, "$lte": high}})

    def build_where_not_between(self, column: str, values: Tuple[Any, Any]) -> MongoDriver:
        low, high = values
        return self._push_match({column: {"$not": {"$gte": low, "$lte": high}}})

    def build_where_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        raise OperationNotSupportedError("build_where_raw", self.name)

    def build_join(
        self,
        table: str,
        column1: str,
        operator: str,
        column2: Optional[str] = None,
        join_type: str = "join",
    ) -> MongoDriver:
        """
        Append a ``$lookup`` from ``table``, nested under ``table``.

        ``column1`` is the local field and ``column2`` the foreign one;
        qualified names must point at the current and joined table.
        Inner joins also drop documents without matches.
        """
        if column2 is None:
            operator, column2 = "=", operator
        if operator != "=":
            raise OperationNotSupportedError(f"join with operator '{operator}'", self.name)

        local_table, local_field = _field(column1)
        foreign_table, foreign_field = _field(column2)
        if foreign_table is not None and foreign_table != table:
            raise InvalidJoinError(table, column2)
        if local_table is not None and local_table not in (self._table, table):
            raise InvalidJoinError(table, column1)
        if local_table == table and foreign_table is None:
            # Arguments given foreign-first: ``table.fk = parent_field``
            local_field, foreign_field = foreign_field, local_field

        self._pipeline.append({
            "$lookup": {
                "from": table,
                "localField": local_field,
                "foreignField": foreign_field,
                "as": table,
            }
        })
        if join_type.lower() in ("join", "inner"):
            self._pipeline.append({"$match": {table: {"$ne": []}}})
        return self

    def build_join_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        raise OperationNotSupportedError("build_join_raw", self.name)

    def _group(self, columns: Sequence[str]) -> MongoDriver:
        if columns:
            key: Any = {column: f"${column}" for column in columns}
        else:
            key = "$$ROOT"
        self._pipeline.append({"$group": {"_id": key}})
        self._pipeline.append({"$replaceRoot": {"newRoot": "$_id"}})
        return self

    def build_distinct(self, *columns: str) -> MongoDriver:
        return self._group(columns)

    def build_group_by(self, *columns: str) -> MongoDriver:
        return self._group(columns)

    def build_group_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        raise OperationNotSupportedError("build_group_by_raw", self.name)

    def build_having(self, column: str, operator: str, value: Any = None) -> MongoDriver:
        if value is None:
            operator, value = "=", operator
        mongo_op = _HAVING_OPERATORS.get(operator)
        if mongo_op is None:
            raise OperationNotSupportedError(f"having with operator '{operator}'", self.name)
        self._pipeline.append({"$match": {column: {mongo_op: value}}})
        return self

    def build_order_by(self, column: str, direction: str = "asc") -> MongoDriver:
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Order direction must be 'asc' or 'desc', got {direction!r}")
        order = 1 if direction == "asc" else -1
        if self._pipeline and "$sort" in self._pipeline[-1]:
            self._pipeline[-1]["$sort"][column] = order
        else:
            self._pipeline.append({"$sort": {column: order}})
        return self

    def build_order_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> MongoDriver:
        raise OperationNotSupportedError("build_order_by_raw", self.name)

    def build_skip(self, number: int) -> MongoDriver:
        self._pipeline.append({"$skip": int(number)})
        return self

    def build_limit(self, number: int) -> MongoDriver:
        self._pipeline.append({"$limit": int(number)})
        return self

    # ── Execution helpers ────────────────────────────────────────────

    async def _aggregate(
        self, operation: str, collection: Any, pipeline: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        logger.debug(f"[{self._connection}] {operation} {self._table}: {pipeline}")
        await self._emit("query", operation=operation, pipeline=pipeline)
        cursor = await resolve(collection.aggregate(pipeline, session=self._session))
        return await cursor.to_list(None)

    async def _matching_ids(self, collection: Any) -> List[Any]:
        cursor = collection.find(self._where, {"_id": 1}, session=self._session)
        return [doc["_id"] for doc in await cursor.to_list(None)]

    async def _fetch_by_ids(self, collection: Any, ids: List[Any]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        cursor = collection.find({"_id": {"$in": ids}}, session=self._session)
        by_id = {doc["_id"]: doc for doc in await cursor.to_list(None)}
        return [by_id[i] for i in ids if i in by_id]

    # ── Reads ────────────────────────────────────────────────────────

    async def find(self) -> Optional[Dict[str, Any]]:
        with self._terminal("find"):
            collection = await self._collection("find")
            rows = await self._aggregate("find", collection, self._pipeline + [{"$limit": 1}])
            return rows[0] if rows else None

    async def find_many(self) -> List[Dict[str, Any]]:
        with self._terminal("find_many"):
            collection = await self._collection("find_many")
            return await self._aggregate("find_many", collection, list(self._pipeline))

    async def pluck(self, column: str) -> List[Any]:
        with self._terminal("pluck"):
            collection = await self._collection("pluck")
            rows = await self._aggregate("pluck", collection, self._pipeline + [{"$project": {column: 1}}])
            return [row.get(column) for row in rows]

    # ── Writes ───────────────────────────────────────────────────────

    async def _insert(self, collection: Any, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Any]:
        documents = [dict(values)] if isinstance(values, Mapping) else [dict(v) for v in values]
        if not documents:
            return []
        await self._emit("query", operation="insert", documents=documents)
        result = await collection.insert_many(documents, session=self._session)
        return list(result.inserted_ids)

    async def insert(self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[str]:
        with self._terminal("insert"):
            collection = await self._collection("insert")
            return [str(i) for i in await self._insert(collection, values)]

    async def insert_and_get(
        self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]
    ) -> List[Dict[str, Any]]:
        with self._terminal("insert_and_get"):
            collection = await self._collection("insert_and_get")
            ids = await self._insert(collection, values)
            return await self._fetch_by_ids(collection, ids)

    async def _update(self, collection: Any, key: Statement, value: Any) -> List[Any]:
        assignments = dict(key) if isinstance(key, Mapping) else {key: value}
        await self._emit("query", operation="update", filter=self._where, update={"$set": assignments})
        ids = await self._matching_ids(collection)
        if not ids:
            return []
        await collection.update_many({"_id": {"$in": ids}}, {"$set": assignments}, session=self._session)
        return ids

    async def update(self, key: Statement, value: Any = None) -> List[str]:
        with self._terminal("update"):
            collection = await self._collection("update")
            return [str(i) for i in await self._update(collection, key, value)]

    async def update_and_get(self, key: Statement, value: Any = None) -> List[Dict[str, Any]]:
        with self._terminal("update_and_get"):
            collection = await self._collection("update_and_get")
            ids = await self._update(collection, key, value)
            return await self._fetch_by_ids(collection, ids)

    async def delete(self) -> int:
        with self._terminal("delete"):
            collection = await self._collection("delete")
            await self._emit("query", operation="delete", filter=self._where)
            result = await collection.delete_many(self._where, session=self._session)
            return result.deleted_count

    async def _inc(self, operation: str, column: str, value: Union[int, float]) -> int:
        with self._terminal(operation):
            collection = await self._collection(operation)
            await self._emit("query", operation=operation, filter=self._where, update={"$inc": {column: value}})
            result = await collection.update_many(self._where, {"$inc": {column: value}}, session=self._session)
            return result.modified_count

    async def increment(self, column: str, value: Union[int, float] = 1) -> int:
        return await self._inc("increment", column, value)

    async def decrement(self, column: str, value: Union[int, float] = 1) -> int:
        return await self._inc("decrement", column, -value)

    # ── Aggregates ───────────────────────────────────────────────────

    def _filtering_stages(self) -> List[Dict[str, Any]]:
        """
        The pending stages that decide which documents are aggregated:
        every predicate, plus the joins (``$lookup`` and the inner-join
        ``$match``) that come before any grouping. Sorting, paging,
        projection and having are left out.
        """
        predicates = {id(stage) for stage in self._predicates}
        stages = []
        grouped = False
        for stage in self._pipeline:
            if "$group" in stage:
                grouped = True
            if id(stage) in predicates or (not grouped and ("$lookup" in stage or "$match" in stage)):
                stages.append(stage)
        return stages

    async def _aggregate_value(
        self,
        operation: str,
        accumulator: Dict[str, Any],
        column: Optional[str] = None,
        project: Optional[Dict[str, Any]] = None,
    ) -> Any:
        with self._terminal(operation):
            collection = await self._collection(operation)
            pipeline = self._filtering_stages()
            if column is not None:
                pipeline.append({"$match": {column: {"$ne": None}}})
            pipeline.append({"$group": {"_id": None, "aggregate": accumulator}})
            if project is not None:
                pipeline.append({"$project": {"_id": 0, "aggregate": project}})
            rows = await self._aggregate(operation, collection, pipeline)
            return rows[0].get("aggregate") if rows else None

    async def _distinct_value(self, operation: str, column: str, reducer: str) -> Any:
        return await self._aggregate_value(
            operation,
            {"$addToSet": f"${column}"},
            column=column,
            project={reducer: "$aggregate"},
        )

    async def count(self, column: str = "*") -> int:
        value = await self._aggregate_value(
            "count", {"$sum": 1}, column=None if column == "*" else column
        )
        return int(value or 0)

    async def count_distinct(self, column: str) -> int:
        return int(await self._distinct_value("count_distinct", column, "$size") or 0)

    async def min(self, column: str) -> Any:
        return await self._aggregate_value("min", {"$min": f"${column}"}, column=column)

    async def max(self, column: str) -> Any:
        return await self._aggregate_value("max", {"$max": f"${column}"}, column=column)

    async def sum(self, column: str) -> Any:
        return await self._aggregate_value("sum", {"$sum": f"${column}"}, column=column)

    async def sum_distinct(self, column: str) -> Any:
        return await self._distinct_value("sum_distinct", column, "$sum")

    async def avg(self, column: str) -> Any:
        return await self._aggregate_value("avg", {"$avg": f"${column}"}, column=column)

    async def avg_distinct(self, column: str) -> Any:
        return await self._distinct_value("avg_distinct", column, "$avg")

    # ── Introspection / raw ──────────────────────────────────────────

    async def column_info(self, column: Optional[str] = None) -> Dict[str, Any]:
        """Describe the fields of one sample document."""
        collection = await self._collection("column_info")
        with self._translate("column_info"):
            sample = await collection.find_one({}, session=self._session)
        info = {
            name: {
                "type": type(value).__name__,
                "nullable": True,
                "default_value": None,
                "max_length": None,
                "primary_key": name == "_id",
            }
            for name, value in (sample or {}).items()
        }
        if column is None:
            return info
        return info.get(column, {})

    async def raw(self, query: str, values: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """
        Run a database command given as extended JSON.

        Each ``?`` or ``??`` is replaced textually by the JSON encoding of
        the next value. The result is not sanitized: only pass trusted
        command text.
        """
        remaining = iter(values or [])

        def _substitute(match: re.Match) -> str:
            try:
                return json_util.dumps(next(remaining))
            except StopIteration:
                raise ValueError(f"Not enough values for placeholders in: {query}") from None

        text = _PLACEHOLDER_RE.sub(_substitute, query)
        command = json_util.loads(text)
        conn = await self._connection_state()
        logger.debug(f"[{self._connection}] command: {text}")
        with self._translate("raw"):
            reply = await conn.database.command(command, session=self._session)
        cursor = reply.get("cursor") if isinstance(reply, Mapping) else None
        rows = list(cursor.get("firstBatch", [])) if cursor else [reply]
        return {"command": next(iter(command), ""), "row_count": len(rows), "rows": rows}

    # ── DDL ──────────────────────────────────────────────────────────

    async def truncate(self, table: str) -> None:
        conn = await self._connection_state()
        with self._translate("truncate"):
            await conn.database[table].delete_many({}, session=self._session)

    async def create_table(self, name: str, callback: TableCallback) -> None:
        table = TableBuilder(name)
        await resolve(callback(table))
        conn = await self._connection_state()
        with self._translate("create_table"):
            if name not in await conn.database.list_collection_names(session=self._session):
                await conn.database.create_collection(name, session=self._session)
            for spec in table.columns:
                if spec.type == "increments" or spec.name == "_id":
                    continue
                if spec.is_unique or spec.is_primary:
                    await conn.database[name].create_index(
                        [(spec.name, ASCENDING)], unique=True, session=self._session
                    )
        logger.info(f"[{self._connection}] created collection '{name}'")

    async def drop_table(self, name: str) -> None:
        conn = await self._connection_state()
        with self._translate("drop_table"):
            await conn.database.drop_collection(name, session=self._session)

    async def create_database(self, name: str) -> None:
        logger.info(f"[{self._connection}] create_database('{name}'): MongoDB creates databases on first write")

    async def drop_database(self, name: str) -> None:
        conn = await self._connection_state()
        with self._translate("drop_database"):
            await conn.client.drop_database(name)

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> Transaction:
        if self._session is not None:
            raise OperationNotSupportedError("nested begin_transaction", self.name)
        conn = await self._connection_state()
        with self._translate("begin_transaction"):
            session = await resolve(conn.client.start_session())
            await resolve(session.start_transaction(
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
            ))
        logger.info(f"[{self._connection}] transaction started ({self.name})")
        driver = type(self)(
            None,
            self._connection,
            self._runtime_config,
            handle=self._handle,
            session=session,
            table=self._table,
            listeners=self._listeners,
        )
        return Transaction(driver, MongoSessionScope(session))
