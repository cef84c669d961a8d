"""
Driver interface shared by every backend variant.

Provides:
- BackendKind: the closed set of backend families
- Driver: the capability interface the facade forwards to
- driver_options(): backend kwargs from ConnectionConfig.options
- resolve(): await a value that may or may not be awaitable
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ..connections import DEFAULT_CONNECTION, ConnectionConfig
from ..pagination import PaginatedResponse, paginate

if TYPE_CHECKING:
    from ..schema import TableBuilder
    from ..transaction import Transaction
    from .factory import DriverFactory, DriverHandle

logger = logging.getLogger("unidb.drivers")

__all__ = ["BackendKind", "Driver", "Listener", "driver_options", "resolve", "RESERVED_OPTIONS"]

# Options consumed by unidb itself, never forwarded to the client library
RESERVED_OPTIONS = frozenset({"connect_retries", "connect_retry_delay", "primary_key"})

Statement = Union[str, Mapping[str, Any]]
TableCallback = Callable[["TableBuilder"], Any]
Listener = Callable[[Dict[str, Any]], Any]


class BackendKind(str, Enum):
    RELATIONAL = "relational"
    DOCUMENT = "document"


def driver_options(config: ConnectionConfig) -> Dict[str, Any]:
    return {k: v for k, v in config.options.items() if k not in RESERVED_OPTIONS}


async def resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Driver(ABC):
    """
    One backend variant: a translator plus its query state.

    A driver borrows its client from the ``DriverHandle`` that the
    ``DriverFactory`` owns. It connects lazily: the first terminal call
    fabricates (or reuses) the handle for its logical connection.

    Builder methods mutate the query state and return the driver.
    Terminal methods execute and reset or drain that state.
    """

    kind: ClassVar[BackendKind]
    name: ClassVar[str]
    default_primary_key: ClassVar[str] = "id"

    def __init__(
        self,
        factory: Optional["DriverFactory"] = None,
        connection: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
        *,
        handle: Optional["DriverHandle"] = None,
        listeners: Optional[Dict[str, List[Listener]]] = None,
    ):
        self._factory = factory
        # Shared with clones and transaction drivers spawned from this one
        self._listeners: Dict[str, List[Listener]] = listeners if listeners is not None else {}
        self._connection = connection
        self._runtime_config = dict(runtime_config or {})
        self._handle: Optional["DriverHandle"] = None
        self.primary_key = self.default_primary_key
        if handle is not None:
            self._bind(handle)

    # ── Client lifecycle (class level, used by the factory) ──────────

    @classmethod
    @abstractmethod
    async def open_client(cls, config: ConnectionConfig) -> Any:
        """Open the backend client described by ``config``."""
        ...

    @classmethod
    @abstractmethod
    async def close_client(cls, client: Any) -> None:
        """Close a client returned by ``open_client``."""
        ...

    # ── Connection ───────────────────────────────────────────────────

    @property
    def connection_name(self) -> str:
        return self._connection

    @property
    def handle(self) -> Optional["DriverHandle"]:
        return self._handle

    @property
    def is_connected(self) -> bool:
        return self._handle is not None and not self._handle.closed

    def _bind(self, handle: "DriverHandle") -> None:
        self._handle = handle
        self.primary_key = handle.config.options.get("primary_key", self.default_primary_key)

    async def connect(self, force: bool = False) -> Driver:
        if self._factory is None:
            raise RuntimeError(f"{type(self).__name__} is bound to a transaction and cannot reconnect")
        handle = await self._factory.fabricate(self._connection, self._runtime_config, force=force)
        self._bind(handle)
        return self

    async def close(self) -> None:
        if self._factory is not None:
            await self._factory.close(self._connection)
        self._handle = None

    async def _ensure_connected(self) -> "DriverHandle":
        """Ensure a live handle exists, reconnecting if it was closed."""
        if self._handle is None or self._handle.closed:
            await self.connect()
        return self._handle

    # ── Events ───────────────────────────────────────────────────────

    def on(self, event: str, callback: Listener) -> Driver:
        """
        Register ``callback`` for ``event``.

        Drivers emit ``"query"`` before each statement or pipeline is sent
        to the backend. The callback receives a dict with ``connection``,
        ``driver``, ``operation`` and ``table``, plus ``sql`` and
        ``bindings`` for relational drivers. Document drivers send
        ``pipeline`` for reads and aggregates, and ``filter``,
        ``documents`` or ``update`` for writes. Coroutine callbacks are
        awaited. A callback that raises is logged at ERROR and the query
        goes ahead.
        """
        if not callable(callback):
            raise TypeError(f"Listener for '{event}' must be callable, got {type(callback).__name__}")
        self._listeners.setdefault(event, []).append(callback)
        return self

    async def _emit(self, event: str, **payload: Any) -> None:
        callbacks = self._listeners.get(event)
        if not callbacks:
            return
        payload = {
            "connection": self._connection,
            "driver": self.name,
            "table": self.table_name,
            **payload,
        }
        for callback in list(callbacks):
            try:
                await resolve(callback(payload))
            except Exception as exc:
                name = getattr(callback, "__name__", repr(callback))
                logger.error(
                    f"Listener {name} for '{event}' on '{self._connection}' "
                    f"raised {exc.__class__.__name__}: {exc}"
                )

    @abstractmethod
    def clone(self) -> Driver:
        """A driver sharing this client, with a copy of the query state."""
        ...

    # ── Builder surface ──────────────────────────────────────────────

    @property
    @abstractmethod
    def table_name(self) -> Optional[str]:
        ...

    @abstractmethod
    def build_table(self, table: str) -> Driver: ...

    @abstractmethod
    def build_select(self, *columns: str) -> Driver: ...

    @abstractmethod
    def build_where(self, statement: Statement, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_or_where(self, statement: Statement, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_where_not(self, statement: Statement, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_where_like(self, statement: Statement, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_where_ilike(self, statement: Statement, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_where_in(self, column: str, values: Sequence[Any]) -> Driver: ...

    @abstractmethod
    def build_where_not_in(self, column: str, values: Sequence[Any]) -> Driver: ...

    @abstractmethod
    def build_where_null(self, column: str) -> Driver: ...

    @abstractmethod
    def build_where_not_null(self, column: str) -> Driver: ...

    @abstractmethod
    def build_where_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_where_not_exists(self, clause: Any, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_where_between(self, column: str, values: Tuple[Any, Any]) -> Driver: ...

    @abstractmethod
    def build_where_not_between(self, column: str, values: Tuple[Any, Any]) -> Driver: ...

    @abstractmethod
    def build_where_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_join(
        self,
        table: str,
        column1: str,
        operator: str,
        column2: Optional[str] = None,
        join_type: str = "join",
    ) -> Driver: ...

    @abstractmethod
    def build_join_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_distinct(self, *columns: str) -> Driver: ...

    @abstractmethod
    def build_group_by(self, *columns: str) -> Driver: ...

    @abstractmethod
    def build_group_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_having(self, column: str, operator: str, value: Any = None) -> Driver: ...

    @abstractmethod
    def build_order_by(self, column: str, direction: str = "asc") -> Driver: ...

    @abstractmethod
    def build_order_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> Driver: ...

    @abstractmethod
    def build_skip(self, number: int) -> Driver: ...

    @abstractmethod
    def build_limit(self, number: int) -> Driver: ...

    # ── Terminal surface ─────────────────────────────────────────────

    @abstractmethod
    async def find(self) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def find_many(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def insert(self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[str]: ...

    @abstractmethod
    async def insert_and_get(
        self, values: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]
    ) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def update(self, key: Statement, value: Any = None) -> List[str]: ...

    @abstractmethod
    async def update_and_get(self, key: Statement, value: Any = None) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def delete(self) -> int: ...

    @abstractmethod
    async def truncate(self, table: str) -> None: ...

    @abstractmethod
    async def count(self, column: str = "*") -> int: ...

    @abstractmethod
    async def count_distinct(self, column: str) -> int: ...

    @abstractmethod
    async def min(self, column: str) -> Any: ...

    @abstractmethod
    async def max(self, column: str) -> Any: ...

    @abstractmethod
    async def sum(self, column: str) -> Any: ...

    @abstractmethod
    async def sum_distinct(self, column: str) -> Any: ...

    @abstractmethod
    async def avg(self, column: str) -> Any: ...

    @abstractmethod
    async def avg_distinct(self, column: str) -> Any: ...

    @abstractmethod
    async def increment(self, column: str, value: Union[int, float] = 1) -> int: ...

    @abstractmethod
    async def decrement(self, column: str, value: Union[int, float] = 1) -> int: ...

    @abstractmethod
    async def pluck(self, column: str) -> List[Any]: ...

    @abstractmethod
    async def column_info(self, column: Optional[str] = None) -> Dict[str, Any]: ...

    @abstractmethod
    async def raw(self, query: str, values: Optional[Sequence[Any]] = None) -> Dict[str, Any]: ...

    # ── DDL ──────────────────────────────────────────────────────────

    @abstractmethod
    async def create_database(self, name: str) -> None: ...

    @abstractmethod
    async def drop_database(self, name: str) -> None: ...

    @abstractmethod
    async def create_table(self, name: str, callback: TableCallback) -> None: ...

    @abstractmethod
    async def drop_table(self, name: str) -> None: ...

    # ── Transactions ─────────────────────────────────────────────────

    @abstractmethod
    async def begin_transaction(self) -> "Transaction": ...

    async def transaction(self, callback: Callable[["Transaction"], Awaitable[Any]]) -> Any:
        """
        Run ``callback`` inside a transaction.

        Commits when the callback returns and rolls back when it raises.
        A callback that commits or rolls back itself is left alone.
        """
        trx = await self.begin_transaction()
        try:
            result = await resolve(callback(trx))
        except BaseException:
            if not trx.closed:
                await trx.rollback()
            raise
        if not trx.closed:
            await trx.commit()
        return result

    # ── Composite reads ──────────────────────────────────────────────

    async def for_page(self, page: int, limit: int) -> List[Dict[str, Any]]:
        return await self.build_skip(page * limit).build_limit(limit).find_many()

    async def paginate(self, page: int = 0, limit: int = 10, resource_url: str = "/api") -> PaginatedResponse:
        """
        Read one page and count the full predicate set.

        The query state is cloned before ``find_many`` drains it, so the
        count sees the same predicates as the page.
        """
        counter = self.clone()
        rows = await self.build_skip(page * limit).build_limit(limit).find_many()
        total = await counter.count()
        return paginate(rows, total, page, limit, resource_url)
