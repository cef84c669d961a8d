"""
unidb backend - Base adapter interface.

All relational backends implement this interface. The SQL translator
executes rendered statements through a ``SqlExecutor``, which is either
the adapter itself (auto-commit, pooled) or an ``AdapterTransaction``
bound to one dedicated connection.

This interface abstracts differences between SQLite, PostgreSQL, and MySQL:
- Parameter placeholder style (?, %s, $1)
- Transaction scoping
- Introspection queries
- RETURNING clause support
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from ..connections import PoolConfig

logger = logging.getLogger("unidb.backends")

__all__ = [
    "SqlExecutor",
    "DatabaseAdapter",
    "AdapterTransaction",
    "AdapterCapabilities",
    "ColumnInfo",
]


@dataclass(frozen=True)
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_returning: bool = False
    supports_ilike: bool = False
    supports_truncate: bool = True
    supports_create_database: bool = True
    param_style: str = "qmark"  # qmark (?) | format (%s) | numeric ($1)
    name: str = "base"


@dataclass
class ColumnInfo:
    """Introspection result for a single column."""

    name: str
    data_type: str
    nullable: bool = True
    default: Optional[str] = None
    primary_key: bool = False
    max_length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.data_type,
            "nullable": self.nullable,
            "default_value": self.default,
            "max_length": self.max_length,
            "primary_key": self.primary_key,
        }


class SqlExecutor(ABC):
    """Executes ``?``-placeholder SQL and returns plain Python values."""

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement. Returns the number of affected rows."""
        ...

    @abstractmethod
    async def execute_insert(
        self, sql: str, params: Optional[Sequence[Any]], primary_key: str
    ) -> Any:
        """Execute an INSERT and return the generated primary key."""
        ...

    @abstractmethod
    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute and return all rows as dicts."""
        ...

    @abstractmethod
    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute and return one row as dict, or None."""
        ...

    @abstractmethod
    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute and return a scalar value."""
        ...


class AdapterTransaction(SqlExecutor):
    """
    A transaction bound to one connection.

    ``commit`` and ``rollback`` end the transaction and release the
    connection. Calling either on a finished transaction is a no-op here;
    the transaction wrapper enforces single use.
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


class DatabaseAdapter(SqlExecutor):
    """
    Abstract database adapter interface.

    Owns the pool (or single connection) for one logical connection.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, pool: Optional["PoolConfig"] = None, **options) -> None:
        """Open the pool or connection."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the pool or connection."""
        ...

    @abstractmethod
    async def begin_transaction(self) -> AdapterTransaction:
        """Start a transaction on a dedicated connection."""
        ...

    # ── Introspection ────────────────────────────────────────────────

    @abstractmethod
    async def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        ...

    @abstractmethod
    async def get_tables(self) -> List[str]:
        """List all table names."""
        ...

    @abstractmethod
    async def get_columns(self, table_name: str, executor: Optional[SqlExecutor] = None) -> List[ColumnInfo]:
        """Get column info for a table, reading through ``executor`` when given."""
        ...

    # ── SQL adaptation ───────────────────────────────────────────────

    def adapt_sql(self, sql: str) -> str:
        """
        Adapt SQL placeholders from qmark (?) to the backend's param style.

        Override this in backends that use a different param style.
        """
        return sql

    @property
    def is_connected(self) -> bool:
        return False

    @property
    def dialect(self) -> str:
        return self.capabilities.name


def replace_placeholders(sql: str, render) -> str:
    """
    Replace ``?`` placeholders outside single-quoted literals.

    ``render`` receives the 1-based placeholder index.
    """
    result: list[str] = []
    param_idx = 0
    in_string = False
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch == "'" and not in_string:
            in_string = True
            result.append(ch)
        elif ch == "'" and in_string:
            # Escaped quote ''
            if i + 1 < len(sql) and sql[i + 1] == "'":
                result.append("''")
                i += 2
                continue
            in_string = False
            result.append(ch)
        elif ch == "?" and not in_string:
            param_idx += 1
            result.append(render(param_idx))
        else:
            result.append(ch)
        i += 1
    return "".join(result)
