"""
Unit tests for Tessera exceptions module.
Tests exception hierarchy and error mapping functionality.
"""

import grpc
import pytest

from tessera.exceptions import (
    CancelledError,
    ConnectError,
    DecodeError,
    NotFoundError,
    SchemaMismatchError,
    ServiceError,
    TerminalServiceError,
    TesseraError,
    TimeoutError,
    TransientServiceError,
    ValidationError,
    map_grpc_error,
    map_server_status,
)
from tessera.types import ServerCode

RETRYABLE = ("UNAVAILABLE", "RESOURCE_EXHAUSTED", "RATE_LIMIT", "NOT_READY")


class FakeRpcError(grpc.RpcError):
    """RpcError carrying a status code and details, like a failed call"""

    def __init__(self, code: grpc.StatusCode, details: str = "") -> None:
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


class TestTesseraExceptions:
    """Test Tessera exception classes"""

    def test_base_exception(self):
        """Test base TesseraError"""
        error = TesseraError("Test error")
        assert str(error) == "Test error"
        assert isinstance(error, Exception)

    def test_context_in_message(self):
        """Test error code, operation and collection appear in the message"""
        error = TesseraError("boom", error_code="X", operation="insert", collection_name="books")
        assert str(error) == "boom | Error Code: X | Operation: insert | Collection: books"

    def test_validation_error(self):
        """Test ValidationError"""
        error = ValidationError("Invalid input", field="limit")
        assert "VALIDATION_ERROR" in str(error)
        assert error.field == "limit"
        assert isinstance(error, TesseraError)

    def test_schema_mismatch_error(self):
        """Test SchemaMismatchError"""
        error = SchemaMismatchError("wrong type", field="age")
        assert "SCHEMA_MISMATCH" in str(error)
        assert error.field == "age"

    def test_connect_error(self):
        """Test ConnectError"""
        cause = OSError("refused")
        error = ConnectError("Connection failed", endpoint="localhost:19530", original_error=cause)
        assert "CONNECT_FAILED" in str(error)
        assert error.endpoint == "localhost:19530"
        assert error.original_error is cause

    def test_timeout_error_scopes(self):
        """Test attempt and sequence timeouts are distinguishable"""
        attempt = TimeoutError("slow", scope="attempt", timeout=1.0)
        sequence = TimeoutError("slower", scope="sequence", timeout=5.0)
        assert attempt.error_code == "TIMEOUT"
        assert sequence.error_code == "SEQUENCE_TIMEOUT"
        assert sequence.timeout == 5.0

    def test_service_error_hierarchy(self):
        """Test service error subclasses"""
        assert issubclass(TransientServiceError, ServiceError)
        assert issubclass(TerminalServiceError, ServiceError)
        assert issubclass(NotFoundError, TerminalServiceError)
        assert issubclass(CancelledError, TesseraError)
        assert issubclass(DecodeError, TesseraError)

    def test_builtin_timeout_not_shadowed(self):
        """Test the client TimeoutError is distinct from the builtin"""
        assert not issubclass(TimeoutError, OSError)


class TestGrpcErrorMapping:
    """Test mapping of transport errors"""

    def test_unavailable_is_transient(self):
        """Test UNAVAILABLE maps to a transient error"""
        error = map_grpc_error(FakeRpcError(grpc.StatusCode.UNAVAILABLE, "down"), RETRYABLE, operation="search")
        assert isinstance(error, TransientServiceError)
        assert error.code == "UNAVAILABLE"
        assert error.source == "transport"
        assert error.operation == "search"
        assert error.message == "down"

    def test_deadline_exceeded(self):
        """Test DEADLINE_EXCEEDED maps to an attempt timeout"""
        error = map_grpc_error(FakeRpcError(grpc.StatusCode.DEADLINE_EXCEEDED), RETRYABLE, timeout=2.0)
        assert isinstance(error, TimeoutError)
        assert error.scope == "attempt"
        assert error.timeout == 2.0

    def test_deadline_exceeded_configured_retryable(self):
        """Test configured codes take precedence over the default mapping"""
        error = map_grpc_error(FakeRpcError(grpc.StatusCode.DEADLINE_EXCEEDED), ["DEADLINE_EXCEEDED"])
        assert isinstance(error, TransientServiceError)

    def test_cancelled(self):
        """Test CANCELLED maps to CancelledError"""
        assert isinstance(map_grpc_error(FakeRpcError(grpc.StatusCode.CANCELLED), RETRYABLE), CancelledError)

    def test_not_found(self):
        """Test NOT_FOUND maps to NotFoundError"""
        assert isinstance(map_grpc_error(FakeRpcError(grpc.StatusCode.NOT_FOUND), RETRYABLE), NotFoundError)

    def test_other_codes_are_terminal(self):
        """Test remaining codes are terminal"""
        error = map_grpc_error(FakeRpcError(grpc.StatusCode.PERMISSION_DENIED, "nope"), RETRYABLE)
        assert isinstance(error, TerminalServiceError)
        assert not isinstance(error, NotFoundError)
        assert error.status_name == "PERMISSION_DENIED"


class TestServerStatusMapping:
    """Test mapping of service status codes"""

    def test_rate_limit_is_transient(self):
        """Test RATE_LIMIT maps to a transient error"""
        error = map_server_status({"code": ServerCode.RATE_LIMIT, "reason": "slow down"}, RETRYABLE)
        assert isinstance(error, TransientServiceError)
        assert error.code == 8
        assert error.status_name == "RATE_LIMIT"
        assert error.source == "server"
        assert error.message == "slow down"

    @pytest.mark.parametrize("code", [
        ServerCode.COLLECTION_NOT_FOUND,
        ServerCode.PARTITION_NOT_FOUND,
        ServerCode.INDEX_NOT_FOUND,
        ServerCode.DATABASE_NOT_FOUND,
        ServerCode.ALIAS_NOT_FOUND,
    ])
    def test_not_found_codes(self, code):
        """Test every not-found code maps to NotFoundError"""
        assert isinstance(map_server_status({"code": code, "reason": ""}, RETRYABLE), NotFoundError)

    def test_schema_mismatch(self):
        """Test SCHEMA_MISMATCH maps to SchemaMismatchError"""
        error = map_server_status({"code": ServerCode.SCHEMA_MISMATCH, "reason": "field x"}, RETRYABLE)
        assert isinstance(error, SchemaMismatchError)
        assert error.message == "field x"

    def test_unknown_code_is_terminal(self):
        """Test unknown codes keep their raw value"""
        error = map_server_status({"code": 4242, "reason": "odd"}, RETRYABLE, collection_name="books")
        assert isinstance(error, TerminalServiceError)
        assert error.code == 4242
        assert error.status_name == "UNKNOWN_4242"
        assert error.collection_name == "books"

    def test_detail_is_kept(self):
        """Test the status detail travels in the error details"""
        error = map_server_status({"code": ServerCode.ILLEGAL_ARGUMENT, "reason": "bad", "detail": "x > 3"})
        assert error.details == {"detail": "x > 3"}

    def test_reason_defaults_to_name(self):
        """Test an empty reason falls back to the code name"""
        error = map_server_status({"code": ServerCode.ALREADY_EXISTS, "reason": ""})
        assert error.message == "ALREADY_EXISTS"
