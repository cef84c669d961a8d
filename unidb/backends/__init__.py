"""
unidb relational backends.

Provides:
- DatabaseAdapter / AdapterTransaction / SqlExecutor interfaces
- SQLite (aiosqlite), PostgreSQL (asyncpg), MySQL (aiomysql) adapters
- create_adapter(): dialect name -> adapter instance
"""

from .base import (
    AdapterCapabilities,
    AdapterTransaction,
    ColumnInfo,
    DatabaseAdapter,
    SqlExecutor,
)

__all__ = [
    "AdapterCapabilities",
    "AdapterTransaction",
    "ColumnInfo",
    "DatabaseAdapter",
    "SqlExecutor",
    "create_adapter",
]


def create_adapter(dialect: str) -> DatabaseAdapter:
    """Factory: instantiate the backend adapter for ``dialect``."""
    if dialect == "sqlite":
        from .sqlite import SQLiteAdapter
        return SQLiteAdapter()
    elif dialect in ("postgresql", "postgres"):
        from .postgres import PostgresAdapter
        return PostgresAdapter()
    elif dialect == "mysql":
        from .mysql import MySQLAdapter
        return MySQLAdapter()
    raise ValueError(f"No adapter registered for dialect: {dialect}")
