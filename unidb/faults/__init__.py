"""
unidb faults - structured error taxonomy for connections, drivers,
queries and transactions.
"""

from .core import Fault, FaultDomain, Severity
from .domains import (
    ConfigFault,
    ConfigurationError,
    DriverFault,
    UnknownDriverError,
    DriverAlreadyExistsError,
    ConnectionFault,
    ConnectionFailedError,
    QueryFault,
    TableNotSetError,
    QueryExecutionError,
    InvalidJoinError,
    OperationNotSupportedError,
    TransactionFault,
    TransactionClosedError,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "ConfigurationError",
    "DriverFault",
    "UnknownDriverError",
    "DriverAlreadyExistsError",
    "ConnectionFault",
    "ConnectionFailedError",
    "QueryFault",
    "TableNotSetError",
    "QueryExecutionError",
    "InvalidJoinError",
    "OperationNotSupportedError",
    "TransactionFault",
    "TransactionClosedError",
]
