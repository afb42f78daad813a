"""
Tessera Python Client - Exceptions

Copyright 2025 Tessera Authors

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from typing import Any, Collection, Dict, Mapping, Optional, Union

import grpc

from .types import NOT_FOUND_CODES, ServerCode, server_code_name


class TesseraError(Exception):
    """Base exception for all Tessera client errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
        collection_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.operation = operation
        self.collection_name = collection_name

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_code:
            parts.append(f"Error Code: {self.error_code}")
        if self.operation:
            parts.append(f"Operation: {self.operation}")
        if self.collection_name:
            parts.append(f"Collection: {self.collection_name}")
        return " | ".join(parts)


class ValidationError(TesseraError):
    """Malformed request detected locally, before any network call"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs) -> None:
        kwargs.setdefault("error_code", "VALIDATION_ERROR")
        super().__init__(message, **kwargs)
        self.field = field


class SchemaMismatchError(TesseraError):
    """Payload does not match the declared or fetched collection schema"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs) -> None:
        kwargs.setdefault("error_code", "SCHEMA_MISMATCH")
        super().__init__(message, **kwargs)
        self.field = field


class ConnectError(TesseraError):
    """Channel could not be established or re-established"""

    def __init__(
        self,
        message: str = "Connection failed",
        endpoint: Optional[str] = None,
        original_error: Optional[Exception] = None,
        **kwargs
    ) -> None:
        kwargs.setdefault("error_code", "CONNECT_FAILED")
        super().__init__(message, **kwargs)
        self.endpoint = endpoint
        self.original_error = original_error


class ServiceError(TesseraError):
    """Non-success outcome reported by the service or the transport.

    ``code`` is the raw code (a service status integer or a gRPC status name),
    ``status_name`` its symbolic name and ``source`` either ``"server"`` or
    ``"transport"``.
    """

    def __init__(
        self,
        message: str,
        code: Union[int, str, None] = None,
        status_name: Optional[str] = None,
        source: str = "server",
        **kwargs
    ) -> None:
        kwargs.setdefault("error_code", status_name)
        super().__init__(message, **kwargs)
        self.code = code
        self.status_name = status_name
        self.source = source
        self.attempts = 0


class TransientServiceError(ServiceError):
    """Retryable status from the service or the transport"""


class TerminalServiceError(ServiceError):
    """Non-retryable status: invalid argument, permission denied, already exists, ..."""


class NotFoundError(TerminalServiceError):
    """Collection, partition, index, alias or database does not exist"""


class TimeoutError(TesseraError):
    """Deadline exceeded for a single attempt or for the whole retry sequence"""

    def __init__(
        self,
        message: str = "Request timed out",
        scope: str = "attempt",
        timeout: Optional[float] = None,
        **kwargs
    ) -> None:
        kwargs.setdefault("error_code", "SEQUENCE_TIMEOUT" if scope == "sequence" else "TIMEOUT")
        super().__init__(message, **kwargs)
        self.scope = scope
        self.timeout = timeout


class CancelledError(TesseraError):
    """Call was cancelled by the caller or by closing its connection"""

    def __init__(self, message: str = "Call cancelled", **kwargs) -> None:
        kwargs.setdefault("error_code", "CANCELLED")
        super().__init__(message, **kwargs)


class DecodeError(TesseraError):
    """Malformed or unexpected wire response"""

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("error_code", "DECODE_ERROR")
        super().__init__(message, **kwargs)


def map_grpc_error(
    grpc_error: grpc.RpcError,
    retryable_codes: Collection[str] = (),
    operation: Optional[str] = None,
    collection_name: Optional[str] = None,
    timeout: Optional[float] = None,
) -> TesseraError:
    """Map a gRPC error to the client taxonomy"""
    status_code = grpc_error.code()
    name = status_code.name if status_code is not None else "UNKNOWN"
    message = grpc_error.details() or name
    context = {"operation": operation, "collection_name": collection_name}

    if name in retryable_codes:
        return TransientServiceError(message, code=name, status_name=name, source="transport", **context)
    if status_code == grpc.StatusCode.CANCELLED:
        return CancelledError(message, **context)
    if status_code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return TimeoutError(message, scope="attempt", timeout=timeout, **context)
    if status_code == grpc.StatusCode.NOT_FOUND:
        return NotFoundError(message, code=name, status_name=name, source="transport", **context)
    return TerminalServiceError(message, code=name, status_name=name, source="transport", **context)


def map_server_status(
    status: Mapping[str, Any],
    retryable_codes: Collection[str] = (),
    operation: Optional[str] = None,
    collection_name: Optional[str] = None,
) -> TesseraError:
    """Map a non-success service status to the client taxonomy.

    The service code and reason are carried through unchanged.
    """
    code = status.get("code", ServerCode.UNEXPECTED_ERROR)
    name = server_code_name(code)
    message = status.get("reason") or name
    details = {"detail": status["detail"]} if status.get("detail") else None
    kwargs = {
        "code": code,
        "status_name": name,
        "source": "server",
        "details": details,
        "operation": operation,
        "collection_name": collection_name,
    }

    if name in retryable_codes:
        return TransientServiceError(message, **kwargs)
    if code in NOT_FOUND_CODES:
        return NotFoundError(message, **kwargs)
    if code == ServerCode.SCHEMA_MISMATCH:
        mismatch = SchemaMismatchError(
            message,
            details=details,
            operation=operation,
            collection_name=collection_name,
        )
        mismatch.code = code
        return mismatch
    return TerminalServiceError(message, **kwargs)
