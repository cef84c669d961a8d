"""
unidb drivers - one translator per backend family.

Provides:
- Driver / BackendKind: the shared capability interface
- SqlDriver (SQLite, PostgreSQL, MySQL) and MongoDriver
- DriverFactory / DriverHandle: client ownership and caching
"""

from .base import BackendKind, Driver
from .sql import MySqlDriver, PostgresDriver, QuerySession, SqlDriver, SqliteDriver
from .mongo import MongoConnection, MongoDriver, MongoSessionScope
from .factory import BUILTIN_DRIVERS, DriverFactory, DriverHandle

__all__ = [
    "BackendKind",
    "Driver",
    "SqlDriver",
    "SqliteDriver",
    "PostgresDriver",
    "MySqlDriver",
    "QuerySession",
    "MongoDriver",
    "MongoConnection",
    "MongoSessionScope",
    "DriverFactory",
    "DriverHandle",
    "BUILTIN_DRIVERS",
]
