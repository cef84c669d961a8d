"""
Fault Tests - codes, domains and metadata of the fault taxonomy.
"""

import pytest

from unidb.faults import (
    ConfigurationError,
    ConnectionFailedError,
    DriverAlreadyExistsError,
    Fault,
    FaultDomain,
    InvalidJoinError,
    OperationNotSupportedError,
    QueryExecutionError,
    Severity,
    TableNotSetError,
    TransactionClosedError,
    UnknownDriverError,
)


class TestFaultTaxonomy:
    """Each fault carries a stable code and domain."""

    @pytest.mark.parametrize(
        "fault, code, domain",
        [
            (ConfigurationError("missing 'driver'", connection="main"), "CONFIG_INVALID", FaultDomain.CONFIG),
            (UnknownDriverError("oracle"), "DRIVER_UNKNOWN", FaultDomain.DRIVER),
            (DriverAlreadyExistsError("sqlite"), "DRIVER_EXISTS", FaultDomain.DRIVER),
            (ConnectionFailedError("sqlite:///x", "refused"), "DB_CONNECTION_FAILED", FaultDomain.CONNECTION),
            (TableNotSetError("find"), "TABLE_NOT_SET", FaultDomain.QUERY),
            (QueryExecutionError("find", "syntax error"), "QUERY_FAILED", FaultDomain.QUERY),
            (InvalidJoinError("posts", "comments.id"), "JOIN_INVALID", FaultDomain.QUERY),
            (OperationNotSupportedError("raw", "mongodb"), "OPERATION_NOT_SUPPORTED", FaultDomain.QUERY),
            (TransactionClosedError("commit", "committed"), "TRANSACTION_CLOSED", FaultDomain.TRANSACTION),
        ],
    )
    def test_codes_and_domains(self, fault, code, domain):
        assert isinstance(fault, Fault)
        assert fault.code == code
        assert fault.domain == domain
        assert str(fault).startswith(f"[{code}]")

    def test_query_execution_metadata(self):
        fault = QueryExecutionError("update", "locked", table="people", metadata={"sql": "UPDATE"})
        assert fault.operation == "update"
        assert fault.reason == "locked"
        assert fault.table == "people"
        assert fault.metadata["sql"] == "UPDATE"
        assert "'people'" in fault.message

    def test_connection_failure_is_fatal(self):
        fault = ConnectionFailedError("mongodb://h/db", "timeout")
        assert fault.severity == Severity.FATAL
        assert fault.metadata["reason"] == "timeout"

    def test_to_dict(self):
        data = TableNotSetError("count", driver="sqlite").to_dict()
        assert data["code"] == "TABLE_NOT_SET"
        assert data["metadata"]["driver"] == "sqlite"
