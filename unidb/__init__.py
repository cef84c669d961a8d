"""
unidb - one async query surface over relational and document databases.

Complete integration of:
- Connections: logical connection names resolved from layered config
- Drivers: SQL translator (SQLite, PostgreSQL, MySQL) and MongoDB pipeline translator
- Factory: one cached, pooled client per logical connection
- Transactions: the same surface scoped to one backend transaction
- Faults: structured error handling with fault domains
"""

__version__ = "0.1.0"

# ============================================================================
# Core
# ============================================================================

from .config import ConfigLoader, default_database_config
from .connections import (
    DEFAULT_CONNECTION,
    ConnectionConfig,
    ConnectionRegistry,
    PoolConfig,
)
from .database import Database
from .transaction import Transaction

# ============================================================================
# Drivers
# ============================================================================

from .drivers import (
    BackendKind,
    Driver,
    DriverFactory,
    DriverHandle,
    MongoDriver,
    MySqlDriver,
    PostgresDriver,
    QuerySession,
    SqlDriver,
    SqliteDriver,
)

# ============================================================================
# Collaborators
# ============================================================================

from .schema import ColumnSpec, TableBuilder
from .pagination import PaginatedResponse, paginate
from .relations import one_to_many
from .sql_builder import QueryBuilder

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigurationError,
    UnknownDriverError,
    DriverAlreadyExistsError,
    ConnectionFailedError,
    TableNotSetError,
    QueryExecutionError,
    InvalidJoinError,
    OperationNotSupportedError,
    TransactionClosedError,
)

__all__ = [
    "__version__",
    # Core
    "ConfigLoader",
    "default_database_config",
    "DEFAULT_CONNECTION",
    "ConnectionConfig",
    "ConnectionRegistry",
    "PoolConfig",
    "Database",
    "Transaction",
    # Drivers
    "BackendKind",
    "Driver",
    "DriverFactory",
    "DriverHandle",
    "MongoDriver",
    "MySqlDriver",
    "PostgresDriver",
    "QuerySession",
    "SqlDriver",
    "SqliteDriver",
    # Collaborators
    "ColumnSpec",
    "TableBuilder",
    "PaginatedResponse",
    "paginate",
    "one_to_many",
    "QueryBuilder",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigurationError",
    "UnknownDriverError",
    "DriverAlreadyExistsError",
    "ConnectionFailedError",
    "TableNotSetError",
    "QueryExecutionError",
    "InvalidJoinError",
    "OperationNotSupportedError",
    "TransactionClosedError",
]
