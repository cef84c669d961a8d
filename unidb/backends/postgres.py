"""
unidb backend - PostgreSQL adapter via asyncpg.

Provides full async PostgreSQL support with connection pooling,
per-transaction dedicated connections, and introspection.

Requires asyncpg:
    pip install unidb[postgres]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from ..connections import mask_url
from .base import (
    DatabaseAdapter,
    AdapterTransaction,
    AdapterCapabilities,
    ColumnInfo,
    SqlExecutor,
    replace_placeholders,
)

if TYPE_CHECKING:
    from ..connections import PoolConfig

logger = logging.getLogger("unidb.backends.postgres")

__all__ = ["PostgresAdapter", "PostgresTransaction"]

# Try importing async postgres driver
try:
    import asyncpg
    _HAS_ASYNCPG = True
except ImportError:
    asyncpg = None  # type: ignore
    _HAS_ASYNCPG = False


def _adapt(sql: str) -> str:
    return replace_placeholders(sql, lambda idx: f"${idx}")


def _rowcount(status: str) -> int:
    """Parse the affected-row count out of a command tag like ``UPDATE 3``."""
    tail = (status or "").rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _returning(sql: str, primary_key: str) -> str:
    pk = primary_key.replace('"', '""')
    return f'{sql} RETURNING "{pk}"'


class PostgresAdapter(DatabaseAdapter):
    """
    PostgreSQL adapter using asyncpg with connection pooling.

    Features:
    - Connection pool via asyncpg.create_pool, bounded by PoolConfig
    - Acquire timeout applied on every pool checkout
    - Transactions on a dedicated pooled connection
    - Introspection via information_schema
    - Automatic ``?`` to ``$N`` placeholder conversion (string-literal safe)
    """

    capabilities = AdapterCapabilities(
        supports_returning=True,
        supports_ilike=True,
        supports_truncate=True,
        supports_create_database=True,
        param_style="numeric",  # $1, $2, ...
        name="postgresql",
    )

    def __init__(self):
        self._pool: Any = None
        self._connected = False
        self._acquire_timeout: Optional[float] = None

    async def connect(self, url: str, pool: Optional["PoolConfig"] = None, **options) -> None:
        if self._connected:
            return

        if not _HAS_ASYNCPG:
            raise ImportError(
                "asyncpg is required for PostgreSQL support.\n"
                "Install: pip install unidb[postgres]"
            )

        min_size = pool.min_size if pool else 2
        max_size = pool.max_size if pool else 20
        self._acquire_timeout = pool.acquire_timeout if pool else 60.0
        self._pool = await asyncpg.create_pool(
            url, min_size=min_size, max_size=max_size, **options
        )
        self._connected = True
        logger.info(f"PostgreSQL connected via asyncpg: {mask_url(url)} (pool {min_size}..{max_size})")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        if self._pool:
            await self._pool.close()
            self._pool = None
        self._connected = False
        logger.info("PostgreSQL disconnected")

    def adapt_sql(self, sql: str) -> str:
        """
        Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg.

        String-literal safe: skips ``?`` inside single-quoted strings.
        """
        return _adapt(sql)

    def _acquire(self):
        if not self._connected:
            raise RuntimeError("Not connected to PostgreSQL")
        return self._pool.acquire(timeout=self._acquire_timeout)

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        async with self._acquire() as conn:
            return _rowcount(await conn.execute(_adapt(sql), *(params or [])))

    async def execute_insert(self, sql: str, params: Optional[Sequence[Any]], primary_key: str) -> Any:
        async with self._acquire() as conn:
            return await conn.fetchval(_adapt(_returning(sql, primary_key)), *(params or []))

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        async with self._acquire() as conn:
            rows = await conn.fetch(_adapt(sql), *(params or []))
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        async with self._acquire() as conn:
            row = await conn.fetchrow(_adapt(sql), *(params or []))
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        async with self._acquire() as conn:
            return await conn.fetchval(_adapt(sql), *(params or []))

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> PostgresTransaction:
        """Acquire a dedicated connection and start a transaction."""
        if not self._connected:
            raise RuntimeError("Not connected to PostgreSQL")
        conn = await self._pool.acquire(timeout=self._acquire_timeout)
        try:
            txn = conn.transaction()
            await txn.start()
        except BaseException:
            await self._pool.release(conn)
            raise
        return PostgresTransaction(self._pool, conn, txn)

    # ── Introspection ────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT EXISTS(SELECT 1 FROM information_schema.tables "
            "WHERE table_schema='public' AND table_name=?) AS e",
            [table_name],
        )
        return bool(row and row.get("e"))

    async def get_tables(self) -> List[str]:
        rows = await self.fetch_all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema='public' ORDER BY table_name"
        )
        return [r["table_name"] for r in rows]

    async def get_columns(self, table_name: str, executor: Optional[SqlExecutor] = None) -> List[ColumnInfo]:
        rows = await (executor or self).fetch_all(
            "SELECT column_name, data_type, is_nullable, column_default, "
            "character_maximum_length "
            "FROM information_schema.columns "
            "WHERE table_schema='public' AND table_name=? "
            "ORDER BY ordinal_position",
            [table_name],
        )
        columns = []
        for row in rows:
            columns.append(ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                default=row.get("column_default"),
                max_length=row.get("character_maximum_length"),
            ))
        return columns

    @property
    def is_connected(self) -> bool:
        return self._connected and self._pool is not None

    @property
    def dialect(self) -> str:
        return "postgresql"


class PostgresTransaction(AdapterTransaction):
    """asyncpg transaction on a connection checked out of the pool."""

    def __init__(self, pool: Any, conn: Any, txn: Any):
        super().__init__()
        self._pool = pool
        self._conn = conn
        self._txn = txn

    def _require_open(self) -> Any:
        if self._closed:
            raise RuntimeError("PostgreSQL transaction already finished")
        return self._conn

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        return _rowcount(await self._require_open().execute(_adapt(sql), *(params or [])))

    async def execute_insert(self, sql: str, params: Optional[Sequence[Any]], primary_key: str) -> Any:
        return await self._require_open().fetchval(_adapt(_returning(sql, primary_key)), *(params or []))

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._require_open().fetch(_adapt(sql), *(params or []))
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._require_open().fetchrow(_adapt(sql), *(params or []))
        return dict(row) if row is not None else None

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        return await self._require_open().fetchval(_adapt(sql), *(params or []))

    async def commit(self) -> None:
        """Commit the transaction and release the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._txn.commit()
        finally:
            await self._pool.release(self._conn)

    async def rollback(self) -> None:
        """Rollback the transaction and release the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._txn.rollback()
        finally:
            await self._pool.release(self._conn)

