"""
unidb SQL Builder - safe, parameterized SQL generation.

Provides a fluent, single-use builder that produces parameterized SQL
and bind-parameter lists. All user values are bound as ``?`` parameters;
identifiers are double-quoted.

Usage:
    from unidb.sql_builder import QueryBuilder

    sql, params = (
        QueryBuilder("users")
        .select("id", "name")
        .where("active", True)
        .where("age", 18, op=">")
        .order_by("name")
        .limit(10)
        .to_select()
    )
    # sql = 'SELECT "id", "name" FROM "users" WHERE ("active" = ?) AND ("age" > ?) ORDER BY "name" ASC LIMIT 10'
    # params = [True, 18]
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


__all__ = [
    "QueryBuilder",
    "InsertBuilder",
    "CreateTableBuilder",
    "quote_identifier",
    "COMPARISON_OPERATORS",
    "JOIN_TYPES",
]


COMPARISON_OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE",
})

JOIN_TYPES = {
    "join": "INNER JOIN",
    "inner": "INNER JOIN",
    "left": "LEFT JOIN",
    "left_outer": "LEFT OUTER JOIN",
    "right": "RIGHT JOIN",
    "right_outer": "RIGHT OUTER JOIN",
    "full_outer": "FULL OUTER JOIN",
    "cross": "CROSS JOIN",
}

_ALIAS_RE = re.compile(r"^(?P<expr>.+?)\s+as\s+(?P<alias>[A-Za-z_][A-Za-z0-9_]*)$", re.IGNORECASE)

# OFFSET needs a LIMIT on these dialects
_NO_LIMIT = {
    "sqlite": "-1",
    "mysql": "18446744073709551615",
}


def quote_identifier(name: str) -> str:
    """
    Quote a column or table reference.

    ``users.id`` becomes ``"users"."id"``, ``name as n`` becomes
    ``"name" AS "n"``. Expressions containing parentheses are left raw.
    """
    name = name.strip()
    match = _ALIAS_RE.match(name)
    if match:
        return f'{quote_identifier(match.group("expr"))} AS {_quote_part(match.group("alias"))}'
    if name == "*" or _is_raw(name):
        return name
    return ".".join(part if part == "*" else _quote_part(part) for part in name.split("."))


def _quote_part(part: str) -> str:
    return '"' + part.replace('"', '""') + '"'


def _is_raw(col: str) -> bool:
    """Check if a column reference is a raw expression (contains parens, spaces, etc)."""
    return any(c in col for c in ("(", ")", " ", "'"))


def _check_operator(op: str) -> str:
    normalized = op.strip().upper()
    if normalized not in COMPARISON_OPERATORS:
        raise ValueError(f"Unsupported comparison operator: {op!r}")
    return normalized


@dataclass
class _Clause:
    connector: str  # AND | OR
    sql: str
    params: List[Any] = field(default_factory=list)


class QueryBuilder:
    """
    SELECT / UPDATE / DELETE builder with safe parameter binding.

    A builder serves exactly one terminal statement. Once the owner marks
    it spent, every chain call raises ``RuntimeError``; a fresh builder
    must be used for the next query.
    """

    def __init__(self, table: Optional[str] = None, dialect: str = "sqlite"):
        self._table = table
        self._dialect = dialect
        self._columns: List[str] = []
        self._distinct = False
        self._joins: List[str] = []
        self._join_params: List[Any] = []
        self._wheres: List[_Clause] = []
        self._group_by: List[str] = []
        self._group_params: List[Any] = []
        self._having: List[str] = []
        self._having_params: List[Any] = []
        self._order_by: List[str] = []
        self._order_params: List[Any] = []
        self._limit_val: Optional[int] = None
        self._offset_val: Optional[int] = None
        self._spent = False

    # ── State ────────────────────────────────────────────────────────

    @property
    def table_name(self) -> Optional[str]:
        return self._table

    @property
    def dialect(self) -> str:
        return self._dialect

    @property
    def spent(self) -> bool:
        return self._spent

    @property
    def has_predicates(self) -> bool:
        return bool(self._wheres)

    def mark_spent(self) -> None:
        self._spent = True

    def clone(self) -> QueryBuilder:
        """Copy of the accumulated state, never spent."""
        other = copy.copy(self)
        for name in (
            "_columns", "_joins", "_join_params", "_group_by", "_group_params",
            "_having", "_having_params", "_order_by", "_order_params",
        ):
            setattr(other, name, list(getattr(self, name)))
        other._wheres = [_Clause(c.connector, c.sql, list(c.params)) for c in self._wheres]
        other._spent = False
        return other

    def _check(self) -> None:
        if self._spent:
            raise RuntimeError(
                "QueryBuilder already executed; start a new query instead of reusing it"
            )

    # ── Chain-extending calls ────────────────────────────────────────

    def table(self, name: str) -> QueryBuilder:
        self._check()
        self._table = name
        return self

    def select(self, *columns: str) -> QueryBuilder:
        self._check()
        self._columns.extend(columns)
        return self

    def distinct(self, *columns: str) -> QueryBuilder:
        self._check()
        self._distinct = True
        self._columns.extend(columns)
        return self

    def _add_where(self, clause: str, params: Sequence[Any], connector: str = "AND") -> QueryBuilder:
        self._check()
        self._wheres.append(_Clause(connector, clause, list(params)))
        return self

    def where(
        self,
        column: str,
        value: Any,
        op: str = "=",
        *,
        connector: str = "AND",
        negate: bool = False,
    ) -> QueryBuilder:
        """Add ``column <op> ?``. A None value with ``=`` renders IS NULL."""
        if value is None and op in ("=", "!=", "<>"):
            return self.where_null(column, negate=(op != "=") != negate, connector=connector)
        clause = f"{quote_identifier(column)} {_check_operator(op)} ?"
        if negate:
            clause = f"NOT ({clause})"
        return self._add_where(clause, [value], connector)

    def where_mapping(
        self,
        values: Mapping[str, Any],
        *,
        connector: str = "AND",
        negate: bool = False,
    ) -> QueryBuilder:
        """AND together ``key = value`` pairs as one grouped predicate."""
        parts: List[str] = []
        params: List[Any] = []
        for column, value in values.items():
            if value is None:
                parts.append(f"{quote_identifier(column)} IS NULL")
            else:
                parts.append(f"{quote_identifier(column)} = ?")
                params.append(value)
        if not parts:
            return self
        clause = " AND ".join(parts)
        if negate:
            clause = f"NOT ({clause})"
        return self._add_where(clause, params, connector)

    def where_like(
        self,
        column: str,
        pattern: Any,
        *,
        case_insensitive: bool = False,
        connector: str = "AND",
    ) -> QueryBuilder:
        col = quote_identifier(column)
        if not case_insensitive:
            return self._add_where(f"{col} LIKE ?", [pattern], connector)
        if self._dialect == "postgresql":
            return self._add_where(f"{col} ILIKE ?", [pattern], connector)
        return self._add_where(f"LOWER({col}) LIKE LOWER(?)", [pattern], connector)

    def where_in(
        self,
        column: str,
        values: Sequence[Any],
        *,
        negate: bool = False,
        connector: str = "AND",
    ) -> QueryBuilder:
        values = list(values)
        if not values:
            # IN () is always false, NOT IN () always true
            return self._add_where("1 = 1" if negate else "1 = 0", [], connector)
        placeholders = ", ".join("?" for _ in values)
        keyword = "NOT IN" if negate else "IN"
        return self._add_where(f"{quote_identifier(column)} {keyword} ({placeholders})", values, connector)

    def where_null(self, column: str, *, negate: bool = False, connector: str = "AND") -> QueryBuilder:
        keyword = "IS NOT NULL" if negate else "IS NULL"
        return self._add_where(f"{quote_identifier(column)} {keyword}", [], connector)

    def where_between(
        self,
        column: str,
        low: Any,
        high: Any,
        *,
        negate: bool = False,
        connector: str = "AND",
    ) -> QueryBuilder:
        keyword = "NOT BETWEEN" if negate else "BETWEEN"
        return self._add_where(f"{quote_identifier(column)} {keyword} ? AND ?", [low, high], connector)

    def where_exists(
        self,
        subquery: str | QueryBuilder,
        params: Optional[Sequence[Any]] = None,
        *,
        negate: bool = False,
        connector: str = "AND",
    ) -> QueryBuilder:
        if isinstance(subquery, QueryBuilder):
            subquery, params = subquery.to_select()
        keyword = "NOT EXISTS" if negate else "EXISTS"
        return self._add_where(f"{keyword} ({subquery})", params or [], connector)

    def where_raw(self, sql: str, params: Optional[Sequence[Any]] = None, *, connector: str = "AND") -> QueryBuilder:
        return self._add_where(sql, params or [], connector)

    def join(
        self,
        table: str,
        first: str,
        op: str = "=",
        second: Optional[str] = None,
        join_type: str = "join",
    ) -> QueryBuilder:
        """Add ``<type> JOIN table ON first <op> second``."""
        self._check()
        keyword = JOIN_TYPES.get(join_type.lower())
        if keyword is None:
            raise ValueError(f"Unsupported join type: {join_type!r}")
        if second is None:
            op, second = "=", op
        self._joins.append(
            f"{keyword} {quote_identifier(table)} ON "
            f"{quote_identifier(first)} {_check_operator(op)} {quote_identifier(second)}"
        )
        return self

    def join_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryBuilder:
        self._check()
        self._joins.append(sql)
        self._join_params.extend(params or [])
        return self

    def group_by(self, *columns: str) -> QueryBuilder:
        self._check()
        self._group_by.extend(quote_identifier(c) for c in columns)
        return self

    def group_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryBuilder:
        self._check()
        self._group_by.append(sql)
        self._group_params.extend(params or [])
        return self

    def having(self, column: str, op: str, value: Any) -> QueryBuilder:
        self._check()
        self._having.append(f"{quote_identifier(column)} {_check_operator(op)} ?")
        self._having_params.append(value)
        return self

    def order_by(self, column: str, direction: str = "asc") -> QueryBuilder:
        self._check()
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ValueError(f"Order direction must be 'asc' or 'desc', got {direction!r}")
        self._order_by.append(f"{quote_identifier(column)} {direction}")
        return self

    def order_by_raw(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryBuilder:
        self._check()
        self._order_by.append(sql)
        self._order_params.extend(params or [])
        return self

    def limit(self, n: int) -> QueryBuilder:
        self._check()
        self._limit_val = int(n)
        return self

    def offset(self, n: int) -> QueryBuilder:
        self._check()
        self._offset_val = int(n)
        return self

    # ── Rendering ────────────────────────────────────────────────────

    def _from(self, parts: List[str], params: List[Any]) -> None:
        parts.append(f"FROM {quote_identifier(self._table)}")
        parts.extend(self._joins)
        params.extend(self._join_params)

    def _where(self, parts: List[str], params: List[Any]) -> None:
        if not self._wheres:
            return
        rendered = []
        for index, clause in enumerate(self._wheres):
            prefix = "" if index == 0 else f"{clause.connector} "
            rendered.append(f"{prefix}({clause.sql})")
            params.extend(clause.params)
        parts.append("WHERE " + " ".join(rendered))

    def _columns_sql(self) -> str:
        cols = ", ".join(quote_identifier(c) for c in self._columns) if self._columns else "*"
        return f"DISTINCT {cols}" if self._distinct else cols

    def to_select(self, limit: Optional[int] = None) -> Tuple[str, List[Any]]:
        """
        Build the SELECT statement.

        Args:
            limit: Overrides the accumulated LIMIT (``find`` passes 1).

        Returns:
            Tuple of (sql_string, params_list)
        """
        parts: List[str] = [f"SELECT {self._columns_sql()}"]
        params: List[Any] = []
        self._from(parts, params)
        self._where(parts, params)

        if self._group_by:
            parts.append("GROUP BY " + ", ".join(self._group_by))
            params.extend(self._group_params)

        if self._having:
            parts.append("HAVING " + " AND ".join(f"({h})" for h in self._having))
            params.extend(self._having_params)

        if self._order_by:
            parts.append("ORDER BY " + ", ".join(self._order_by))
            params.extend(self._order_params)

        limit_val = limit if limit is not None else self._limit_val
        if limit_val is not None:
            parts.append(f"LIMIT {int(limit_val)}")
        elif self._offset_val is not None and self._dialect in _NO_LIMIT:
            parts.append(f"LIMIT {_NO_LIMIT[self._dialect]}")
        if self._offset_val is not None:
            parts.append(f"OFFSET {int(self._offset_val)}")

        return " ".join(parts), params

    def to_aggregate(self, function: str, column: str = "*", distinct: bool = False) -> Tuple[str, List[Any]]:
        """Build ``SELECT FN([DISTINCT] column) AS "aggregate"`` over the predicates."""
        target = quote_identifier(column)
        if distinct:
            target = f"DISTINCT {target}"
        parts: List[str] = [f'SELECT {function.upper()}({target}) AS "aggregate"']
        params: List[Any] = []
        self._from(parts, params)
        self._where(parts, params)
        return " ".join(parts), params

    def to_pluck(self, column: str) -> Tuple[str, List[Any]]:
        saved = self._columns
        self._columns = [column]
        try:
            return self.to_select()
        finally:
            self._columns = saved

    def to_keys(self, primary_key: str) -> Tuple[str, List[Any]]:
        """Select the primary keys of the rows matched by the predicates."""
        column = f"{self._table}.{primary_key}" if self._joins else primary_key
        parts: List[str] = [f"SELECT {quote_identifier(column)}"]
        params: List[Any] = []
        self._from(parts, params)
        self._where(parts, params)
        return " ".join(parts), params

    def to_update(self, values: Mapping[str, Any], returning: Optional[str] = None) -> Tuple[str, List[Any]]:
        if not values:
            raise ValueError("No values to update")
        set_parts = [f"{quote_identifier(k)} = ?" for k in values]
        params: List[Any] = list(values.values())
        parts = [f"UPDATE {quote_identifier(self._table)} SET {', '.join(set_parts)}"]
        self._where(parts, params)
        if returning:
            parts.append(f"RETURNING {quote_identifier(returning)}")
        return " ".join(parts), params

    def to_increment(self, column: str, amount: Any) -> Tuple[str, List[Any]]:
        col = quote_identifier(column)
        params: List[Any] = [amount]
        parts = [f"UPDATE {quote_identifier(self._table)} SET {col} = {col} + ?"]
        self._where(parts, params)
        return " ".join(parts), params

    def to_delete(self) -> Tuple[str, List[Any]]:
        params: List[Any] = []
        parts = [f"DELETE FROM {quote_identifier(self._table)}"]
        self._where(parts, params)
        return " ".join(parts), params


class InsertBuilder:
    """INSERT query builder."""

    def __init__(self, table: str):
        self._table = table
        self._columns: List[str] = []
        self._values: List[Any] = []

    def from_dict(self, data: Dict[str, Any]) -> InsertBuilder:
        """Set columns and values from a dict."""
        self._columns = list(data.keys())
        self._values = list(data.values())
        return self

    def build(self) -> Tuple[str, List[Any]]:
        if not self._columns:
            return f"INSERT INTO {quote_identifier(self._table)} DEFAULT VALUES", []
        col_names = ", ".join(quote_identifier(c) for c in self._columns)
        placeholders = ", ".join("?" for _ in self._columns)
        sql = f"INSERT INTO {quote_identifier(self._table)} ({col_names}) VALUES ({placeholders})"
        return sql, list(self._values)


class CreateTableBuilder:
    """CREATE TABLE DDL builder."""

    def __init__(self, table: str, if_not_exists: bool = True):
        self._table = table
        self._if_not_exists = if_not_exists
        self._columns: List[str] = []
        self._constraints: List[str] = []

    def column(self, definition: str) -> CreateTableBuilder:
        self._columns.append(definition)
        return self

    def constraint(self, definition: str) -> CreateTableBuilder:
        self._constraints.append(definition)
        return self

    def build(self) -> str:
        ine = "IF NOT EXISTS " if self._if_not_exists else ""
        body = ",\n  ".join(self._columns + self._constraints)
        return f"CREATE TABLE {ine}{quote_identifier(self._table)} (\n  {body}\n)"
