"""
unidb backend - SQLite adapter via aiosqlite.

A single shared connection, handed out like a pool of one. An open
transaction checks the connection out from ``BEGIN`` until commit or
rollback; statements issued outside it wait for the connection (up to
``PoolConfig.acquire_timeout``) instead of joining the transaction.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional, Sequence

import aiosqlite

from .base import (
    DatabaseAdapter,
    AdapterTransaction,
    AdapterCapabilities,
    ColumnInfo,
    SqlExecutor,
)

if TYPE_CHECKING:
    from ..connections import PoolConfig

logger = logging.getLogger("unidb.backends.sqlite")

__all__ = ["SQLiteAdapter", "SQLiteTransaction"]


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite adapter using aiosqlite.

    Features:
    - WAL journal mode for concurrent reads
    - Foreign key enforcement
    - Introspection via PRAGMA table_info
    """

    capabilities = AdapterCapabilities(
        supports_returning=False,
        supports_ilike=False,
        supports_truncate=False,
        supports_create_database=False,
        param_style="qmark",
        name="sqlite",
    )

    def __init__(self):
        self._connection: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        # Held by the open transaction, if any
        self._checkout = asyncio.Lock()
        self._acquire_timeout = 60.0
        self._in_transaction = False

    async def connect(self, url: str, pool: Optional["PoolConfig"] = None, **options) -> None:
        if self._connected:
            return
        async with self._lock:
            if self._connected:
                return
            db_path = self._parse_url(url)
            self._acquire_timeout = pool.acquire_timeout if pool else 60.0
            self._connection = await aiosqlite.connect(db_path, **options)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.row_factory = aiosqlite.Row
            self._connected = True
            logger.info(f"SQLite connected: {db_path}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
            self._connected = False
            if self._in_transaction:
                logger.warning("SQLite disconnected with an open transaction; it was rolled back")
            self._release_transaction()
            logger.info("SQLite disconnected")

    def _require_connection(self) -> Any:
        if not self._connected:
            raise RuntimeError("Not connected to SQLite")
        return self._connection

    @asynccontextmanager
    async def _checked_out(self) -> AsyncIterator[None]:
        """Wait until no transaction holds the connection."""
        self._require_connection()
        await asyncio.wait_for(self._checkout.acquire(), self._acquire_timeout)
        try:
            yield
        finally:
            self._checkout.release()

    # ── Statements on the raw connection ─────────────────────────────

    async def _maybe_commit(self) -> None:
        if not self._in_transaction:
            await self._connection.commit()

    async def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> Any:
        conn = self._require_connection()
        cursor = await conn.execute(sql, list(params or []))
        await self._maybe_commit()
        return cursor

    async def _fetch(self, sql: str, params: Optional[Sequence[Any]], many: bool) -> Any:
        conn = self._require_connection()
        cursor = await conn.execute(sql, list(params or []))
        if many:
            return await cursor.fetchall()
        return await cursor.fetchone()

    # ── SqlExecutor ──────────────────────────────────────────────────

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        async with self._checked_out():
            cursor = await self._execute(sql, params)
            return cursor.rowcount

    async def execute_insert(self, sql: str, params: Optional[Sequence[Any]], primary_key: str) -> Any:
        async with self._checked_out():
            cursor = await self._execute(sql, params)
            return cursor.lastrowid

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        async with self._checked_out():
            rows = await self._fetch(sql, params, many=True)
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        async with self._checked_out():
            row = await self._fetch(sql, params, many=False)
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        async with self._checked_out():
            row = await self._fetch(sql, params, many=False)
        if row is None:
            return None
        return row[0]

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> SQLiteTransaction:
        self._require_connection()
        await asyncio.wait_for(self._checkout.acquire(), self._acquire_timeout)
        try:
            await self._require_connection().execute("BEGIN")
        except BaseException:
            self._checkout.release()
            raise
        self._in_transaction = True
        return SQLiteTransaction(self)

    async def _end_transaction(self, commit: bool) -> None:
        try:
            conn = self._require_connection()
            if commit:
                await conn.commit()
            else:
                await conn.rollback()
        finally:
            self._release_transaction()

    def _release_transaction(self) -> None:
        if self._in_transaction:
            self._in_transaction = False
            self._checkout.release()

    # ── Introspection ────────────────────────────────────────────────

    async def table_exists(self, table_name: str) -> bool:
        row = await self.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            [table_name],
        )
        return row is not None

    async def get_tables(self) -> List[str]:
        rows = await self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [r["name"] for r in rows]

    async def get_columns(self, table_name: str, executor: Optional[SqlExecutor] = None) -> List[ColumnInfo]:
        safe_name = table_name.replace('"', '""')
        rows = await (executor or self).fetch_all(f'PRAGMA table_info("{safe_name}")')
        columns = []
        for row in rows:
            columns.append(ColumnInfo(
                name=row["name"],
                data_type=row["type"],
                nullable=not row["notnull"],
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
            ))
        return columns

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def dialect(self) -> str:
        return "sqlite"

    @staticmethod
    def _parse_url(url: str) -> str:
        """Extract file path from sqlite URL."""
        for prefix in ("sqlite:///", "sqlite://"):
            if url.startswith(prefix):
                path = url[len(prefix):]
                return path or ":memory:"
        return url.replace("sqlite:", "").lstrip("/") or ":memory:"


class SQLiteTransaction(AdapterTransaction):
    """Runs on the adapter's connection while holding its checkout."""

    def __init__(self, adapter: SQLiteAdapter):
        super().__init__()
        self._adapter = adapter

    def _require_open(self) -> SQLiteAdapter:
        if self._closed:
            raise RuntimeError("SQLite transaction is already closed")
        return self._adapter

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        cursor = await self._require_open()._execute(sql, params)
        return cursor.rowcount

    async def execute_insert(self, sql: str, params: Optional[Sequence[Any]], primary_key: str) -> Any:
        cursor = await self._require_open()._execute(sql, params)
        return cursor.lastrowid

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._require_open()._fetch(sql, params, many=True)
        return [dict(row) for row in rows]

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._require_open()._fetch(sql, params, many=False)
        if row is None:
            return None
        return dict(row)

    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        row = await self._require_open()._fetch(sql, params, many=False)
        if row is None:
            return None
        return row[0]

    async def commit(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._adapter._end_transaction(commit=True)

    async def rollback(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._adapter._end_transaction(commit=False)
