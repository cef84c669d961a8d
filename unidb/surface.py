"""
QuerySurface - the builder/terminal surface shared by the facade and
the transaction wrapper.

Subclasses implement ``_target(operation)``, which returns the driver an
operation should run on (or raises). Builder methods return the surface
object itself so chains stay on the facade or transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

if TYPE_CHECKING:
    from .drivers.base import Driver, Listener, Statement, TableCallback
    from .pagination import PaginatedResponse

__all__ = ["QuerySurface"]

Rows = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]


class QuerySurface:
    """Forwards every query operation to ``self._target(operation)``."""

    def _target(self, operation: str) -> "Driver":
        raise NotImplementedError

    def on(self, event: str, callback: "Listener"):
        """Register an event listener on the underlying driver."""
        self._target("on").on(event, callback)
        return self

    # ── Builder surface ──────────────────────────────────────────────

    def build_table(self, table: str):
        self._target("build_table").build_table(table)
        return self

    def build_select(self, *columns: str):
        self._target("build_select").build_select(*columns)
        return self

    def build_where(self, statement: "Statement", value: Any = None):
        self._target("build_where").build_where(statement, value)
        return self

    def build_or_where(self, statement: "Statement", value: Any = None):
        self._target("build_or_where").build_or_where(statement, value)
        return self

    def build_where_not(self, statement: "Statement", value: Any = None):
        self._target("build_where_not").build_where_not(statement, value)
        return self

    def build_where_like(self, statement: "Statement", value: Any = None):
        self._target("build_where_like").build_where_like(statement, value)
        return self

    def build_where_ilike(self, statement: "Statement", value: Any = None):
        self._target("build_where_ilike").build_where_ilike(statement, value)
        return self

    def build_where_in(self, column: str, values: Sequence[Any]):
        self._target("build_where_in").build_where_in(column, values)
        return self

    def build_where_not_in(self, column: str, values: Sequence[Any]):
        self._target("build_where_not_in").build_where_not_in(column, values)
        return self

    def build_where_null(self, column: str):
        self._target("build_where_null").build_where_null(column)
        return self

    def build_where_not_null(self, column: str):
        self._target("build_where_not_null").build_where_not_null(column)
        return self

    def build_where_exists(self, clause: Any, params: Optional[Sequence[Any]] = None):
        self._target("build_where_exists").build_where_exists(clause, params)
        return self

    def build_where_not_exists(self, clause: Any, params: Optional[Sequence[Any]] = None):
        self._target("build_where_not_exists").build_where_not_exists(clause, params)
        return self

    def build_where_between(self, column: str, values: Tuple[Any, Any]):
        self._target("build_where_between").build_where_between(column, values)
        return self

    def build_where_not_between(self, column: str, values: Tuple[Any, Any]):
        self._target("build_where_not_between").build_where_not_between(column, values)
        return self

    def build_where_raw(self, sql: str, params: Optional[Sequence[Any]] = None):
        self._target("build_where_raw").build_where_raw(sql, params)
        return self

    def build_join(
        self,
        table: str,
        column1: str,
        operator: str,
        column2: Optional[str] = None,
        join_type: str = "join",
    ):
        self._target("build_join").build_join(table, column1, operator, column2, join_type)
        return self

    def build_join_raw(self, sql: str, params: Optional[Sequence[Any]] = None):
        self._target("build_join_raw").build_join_raw(sql, params)
        return self

    def build_distinct(self, *columns: str):
        self._target("build_distinct").build_distinct(*columns)
        return self

    def build_group_by(self, *columns: str):
        self._target("build_group_by").build_group_by(*columns)
        return self

    def build_group_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None):
        self._target("build_group_by_raw").build_group_by_raw(sql, params)
        return self

    def build_having(self, column: str, operator: str, value: Any = None):
        self._target("build_having").build_having(column, operator, value)
        return self

    def build_order_by(self, column: str, direction: str = "asc"):
        self._target("build_order_by").build_order_by(column, direction)
        return self

    def build_order_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None):
        self._target("build_order_by_raw").build_order_by_raw(sql, params)
        return self

    def build_skip(self, number: int):
        self._target("build_skip").build_skip(number)
        return self

    def build_limit(self, number: int):
        self._target("build_limit").build_limit(number)
        return self

    # ── Terminal surface ─────────────────────────────────────────────

    async def find(self) -> Optional[Dict[str, Any]]:
        return await self._target("find").find()

    async def find_many(self) -> List[Dict[str, Any]]:
        return await self._target("find_many").find_many()

    async def insert(self, values: Rows) -> List[str]:
        return await self._target("insert").insert(values)

    async def insert_and_get(self, values: Rows) -> List[Dict[str, Any]]:
        return await self._target("insert_and_get").insert_and_get(values)

    async def update(self, key: "Statement", value: Any = None) -> List[str]:
        return await self._target("update").update(key, value)

    async def update_and_get(self, key: "Statement", value: Any = None) -> List[Dict[str, Any]]:
        return await self._target("update_and_get").update_and_get(key, value)

    async def delete(self) -> int:
        return await self._target("delete").delete()

    async def truncate(self, table: str) -> None:
        await self._target("truncate").truncate(table)

    async def for_page(self, page: int, limit: int) -> List[Dict[str, Any]]:
        return await self._target("for_page").for_page(page, limit)

    async def paginate(self, page: int = 0, limit: int = 10, resource_url: str = "/api") -> "PaginatedResponse":
        return await self._target("paginate").paginate(page, limit, resource_url)

    async def count(self, column: str = "*") -> int:
        return await self._target("count").count(column)

    async def count_distinct(self, column: str) -> int:
        return await self._target("count_distinct").count_distinct(column)

    async def min(self, column: str) -> Any:
        return await self._target("min").min(column)

    async def max(self, column: str) -> Any:
        return await self._target("max").max(column)

    async def sum(self, column: str) -> Any:
        return await self._target("sum").sum(column)

    async def sum_distinct(self, column: str) -> Any:
        return await self._target("sum_distinct").sum_distinct(column)

    async def avg(self, column: str) -> Any:
        return await self._target("avg").avg(column)

    async def avg_distinct(self, column: str) -> Any:
        return await self._target("avg_distinct").avg_distinct(column)

    async def increment(self, column: str, value: Union[int, float] = 1) -> int:
        return await self._target("increment").increment(column, value)

    async def decrement(self, column: str, value: Union[int, float] = 1) -> int:
        return await self._target("decrement").decrement(column, value)

    async def pluck(self, column: str) -> List[Any]:
        return await self._target("pluck").pluck(column)

    async def column_info(self, column: Optional[str] = None) -> Dict[str, Any]:
        return await self._target("column_info").column_info(column)

    async def raw(self, query: str, values: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        return await self._target("raw").raw(query, values)

    # ── DDL ──────────────────────────────────────────────────────────

    async def create_database(self, name: str) -> None:
        await self._target("create_database").create_database(name)

    async def drop_database(self, name: str) -> None:
        await self._target("drop_database").drop_database(name)

    async def create_table(self, name: str, callback: "TableCallback") -> None:
        await self._target("create_table").create_table(name, callback)

    async def drop_table(self, name: str) -> None:
        await self._target("drop_table").drop_table(name)
