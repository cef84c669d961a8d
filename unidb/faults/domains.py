"""
unidb faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- DRIVER faults
- CONNECTION faults
- QUERY faults
- TRANSACTION faults
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigurationError(ConfigFault):
    """Connection configuration is missing or invalid."""

    def __init__(self, reason: str, connection: Optional[str] = None, **kwargs):
        where = f" for connection '{connection}'" if connection else ""
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid database configuration{where}: {reason}",
            metadata={"connection": connection, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.connection = connection
        self.reason = reason


# ============================================================================
# DRIVER Faults
# ============================================================================

class DriverFault(Fault):
    """Base class for driver registration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.DRIVER,
            severity=Severity.FATAL,
            retryable=False,
            metadata=metadata,
        )


class UnknownDriverError(DriverFault):
    """No driver is registered under the requested name."""

    def __init__(self, driver: str, connection: Optional[str] = None, **kwargs):
        where = f" (connection '{connection}')" if connection else ""
        super().__init__(
            code="DRIVER_UNKNOWN",
            message=f"No driver registered for '{driver}'{where}",
            metadata={"driver": driver, "connection": connection, **kwargs.get("metadata", {})},
        )
        self.driver = driver


class DriverAlreadyExistsError(DriverFault):
    """A driver with the same name is already registered."""

    def __init__(self, driver: str, **kwargs):
        super().__init__(
            code="DRIVER_EXISTS",
            message=f"Driver '{driver}' already exists",
            metadata={"driver": driver, **kwargs.get("metadata", {})},
        )
        self.driver = driver


# ============================================================================
# CONNECTION Faults
# ============================================================================

class ConnectionFault(Fault):
    """Base class for backend connection faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONNECTION,
            severity=severity,
            retryable=True,
            metadata=metadata,
        )


class ConnectionFailedError(ConnectionFault):
    """Opening the backend client failed."""

    def __init__(self, url: str, reason: str, **kwargs):
        super().__init__(
            code="DB_CONNECTION_FAILED",
            message=f"Database connection failed ({url}): {reason}",
            severity=Severity.FATAL,
            metadata={"url": url, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.reason = reason


# ============================================================================
# QUERY Faults
# ============================================================================

class QueryFault(Fault):
    """Base class for query faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.QUERY,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class TableNotSetError(QueryFault):
    """A terminal operation ran before a table or collection was selected."""

    def __init__(self, operation: str, driver: Optional[str] = None, **kwargs):
        super().__init__(
            code="TABLE_NOT_SET",
            message=f"Cannot run '{operation}' without a table, call build_table() first",
            metadata={"operation": operation, "driver": driver, **kwargs.get("metadata", {})},
        )
        self.operation = operation


class QueryExecutionError(QueryFault):
    """The backend rejected the rendered query."""

    def __init__(self, operation: str, reason: str, table: Optional[str] = None, **kwargs):
        target = f"'{table}' " if table else ""
        super().__init__(
            code="QUERY_FAILED",
            message=f"Query on {target}({operation}) failed: {reason}",
            metadata={
                "operation": operation,
                "table": table,
                "reason": reason,
                **kwargs.get("metadata", {}),
            },
        )
        self.operation = operation
        self.reason = reason
        self.table = table


class InvalidJoinError(QueryFault):
    """A join descriptor references a field outside the join target."""

    def __init__(self, table: str, field: str, **kwargs):
        super().__init__(
            code="JOIN_INVALID",
            message=f"Join field '{field}' does not belong to joined table '{table}'",
            metadata={"table": table, "field": field, **kwargs.get("metadata", {})},
        )
        self.table = table
        self.field = field


class OperationNotSupportedError(QueryFault):
    """The operation has no translation for this backend."""

    def __init__(self, operation: str, driver: str, **kwargs):
        super().__init__(
            code="OPERATION_NOT_SUPPORTED",
            message=f"Operation '{operation}' is not supported by the {driver} driver",
            metadata={"operation": operation, "driver": driver, **kwargs.get("metadata", {})},
        )
        self.operation = operation
        self.driver = driver


# ============================================================================
# TRANSACTION Faults
# ============================================================================

class TransactionFault(Fault):
    """Base class for transaction faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.TRANSACTION,
            severity=Severity.ERROR,
            retryable=False,
            metadata=metadata,
        )


class TransactionClosedError(TransactionFault):
    """The transaction was already committed or rolled back."""

    def __init__(self, operation: str, state: str = "closed", **kwargs):
        super().__init__(
            code="TRANSACTION_CLOSED",
            message=f"Cannot call '{operation}' on a transaction that is already {state}",
            metadata={"operation": operation, "state": state, **kwargs.get("metadata", {})},
        )
        self.operation = operation
        self.state = state
