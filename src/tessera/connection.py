"""
Tessera Python Client - Connection management

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

import collections
import getpass
import logging
import socket
import threading
import time
import weakref
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import grpc

from . import protocol
from .config import ClientConfig
from .exceptions import ConnectError, TesseraError, map_grpc_error, map_server_status

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    OPENING = "opening"
    READY = "ready"
    BROKEN = "broken"
    CLOSED = "closed"


class _ClientCallDetails(
    collections.namedtuple(
        "_ClientCallDetails",
        ("method", "timeout", "metadata", "credentials", "wait_for_ready", "compression"),
    ),
    grpc.ClientCallDetails,
):
    pass


class HeaderInterceptor(grpc.UnaryUnaryClientInterceptor):
    """Attaches the session metadata (authorization, dbname, ...) to every call"""

    def __init__(self, metadata: List[Tuple[str, str]]) -> None:
        self._metadata = list(metadata)

    def intercept_unary_unary(self, continuation, client_call_details, request):
        metadata = list(client_call_details.metadata or [])
        metadata.extend(self._metadata)
        details = _ClientCallDetails(
            client_call_details.method,
            client_call_details.timeout,
            metadata,
            client_call_details.credentials,
            getattr(client_call_details, "wait_for_ready", None),
            getattr(client_call_details, "compression", None),
        )
        return continuation(details, request)


class Connection:
    """One logical session to a service endpoint.

    Owns a single shared gRPC channel, the header interceptor carrying the
    credentials and the worker pool used for non-blocking calls. State
    transitions are guarded by one lock; calls themselves never hold it
    across a round trip.
    """

    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self.server_info: Dict[str, Any] = {}
        self.identifier = 0
        self._lock = threading.Lock()
        self._state = ConnectionState.OPENING
        self._raw_channel: Optional[grpc.Channel] = None
        self._channel: Optional[grpc.Channel] = None
        self._methods: Dict[str, grpc.UnaryUnaryMultiCallable] = {}
        self._last_used = 0.0
        self._active_calls: "weakref.WeakSet" = weakref.WeakSet()
        self._pool = ThreadPoolExecutor(
            max_workers=config.connection.max_workers,
            thread_name_prefix="tessera-call",
        )

    @classmethod
    def open(cls, config: ClientConfig) -> "Connection":
        """Open a connection, raising ConnectError when the service is unreachable"""
        connection = cls(config)
        try:
            with connection._lock:
                connection._establish()
        except ConnectError:
            connection._pool.shutdown(wait=False)
            raise
        return connection

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state == ConnectionState.CLOSED

    @property
    def endpoint(self) -> str:
        return self.config.get_target()

    def _create_channel(self) -> grpc.Channel:
        target = self.config.get_target()
        options = self.config.get_channel_options()
        if self.config.is_secure():
            try:
                credentials = self.config.tls.channel_credentials()
            except OSError as e:
                raise ConnectError(f"Failed to read TLS material: {e}", endpoint=target, original_error=e) from e
            return grpc.secure_channel(target, credentials, options=options)
        return grpc.insecure_channel(target, options=options)

    def _establish(self) -> None:
        """Create the channel, wait for readiness and handshake. Lock held."""
        target = self.config.get_target()
        timeout = self.config.connection.connect_timeout
        raw_channel = self._create_channel()

        ready = grpc.channel_ready_future(raw_channel)
        try:
            ready.result(timeout=timeout)
        except grpc.FutureTimeoutError as e:
            ready.cancel()
            raw_channel.close()
            self._state = ConnectionState.BROKEN
            raise ConnectError(
                f"Failed to connect to {target} within {timeout}s",
                endpoint=target,
                original_error=e,
            ) from e

        channel = grpc.intercept_channel(raw_channel, HeaderInterceptor(self.config.get_grpc_metadata()))
        try:
            self._handshake(channel, timeout)
        except ConnectError:
            raw_channel.close()
            self._state = ConnectionState.BROKEN
            raise

        self._raw_channel = raw_channel
        self._channel = channel
        self._methods = {}
        self._last_used = time.monotonic()
        self._state = ConnectionState.READY
        logger.info(f"Connected to {target}" + (f" (database {self.config.db_name})" if self.config.db_name else ""))

    def _handshake(self, channel: grpc.Channel, timeout: float) -> None:
        """Send client info with the Connect call and keep the server info"""
        from . import __version__

        try:
            user = self.config.user or getpass.getuser()
        except (KeyError, OSError):
            user = ""
        request = {
            "client_info": {
                "sdk_type": "Python",
                "sdk_version": __version__,
                "local_time": datetime.now(timezone.utc).isoformat(),
                "user": user,
                "host": socket.gethostname(),
            }
        }
        call = channel.unary_unary(protocol.method_path("Connect"))
        try:
            raw = call(protocol.serialize("ConnectRequest", request), timeout=timeout)
            response = protocol.deserialize("ConnectResponse", raw)
        except grpc.RpcError as e:
            error = map_grpc_error(e, operation="connect")
            raise ConnectError(f"Handshake with {self.endpoint} failed: {error.message}", endpoint=self.endpoint, original_error=e) from e
        except TesseraError as e:
            raise ConnectError(f"Handshake with {self.endpoint} failed: {e.message}", endpoint=self.endpoint, original_error=e) from e

        status = response["status"]
        if status["code"] != 0:
            error = map_server_status(status, operation="connect")
            raise ConnectError(f"Handshake rejected by {self.endpoint}: {error.message}", endpoint=self.endpoint, original_error=error)

        self.server_info = response.get("server_info") or {}
        self.identifier = response.get("identifier") or 0
        logger.debug(f"Handshake complete, server info: {self.server_info}")

    def _probe(self) -> bool:
        """Liveness probe on the existing channel. Lock held."""
        ready = grpc.channel_ready_future(self._raw_channel)
        try:
            ready.result(timeout=self.config.connection.probe_timeout)
            return True
        except grpc.FutureTimeoutError:
            return False
        finally:
            ready.cancel()

    def _reconnect(self) -> None:
        """Single reconnect attempt. Lock held."""
        logger.info(f"Reconnecting to {self.endpoint}")
        self._state = ConnectionState.BROKEN
        if self._raw_channel is not None:
            self._raw_channel.close()
        self._raw_channel = None
        self._channel = None
        self._methods = {}
        self._establish()

    def method(self, name: str) -> grpc.UnaryUnaryMultiCallable:
        """Callable for one service method on the shared channel.

        Probes the channel first when it has been idle longer than the
        configured threshold; a failed probe gets one reconnect attempt.
        """
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                raise ConnectError("Connection is closed", endpoint=self.endpoint)

            if self._state == ConnectionState.BROKEN:
                self._reconnect()
            else:
                idle = time.monotonic() - self._last_used
                if idle > self.config.connection.idle_probe_threshold and not self._probe():
                    logger.warning(f"Liveness probe failed after {idle:.1f}s idle")
                    self._state = ConnectionState.BROKEN
                    self._reconnect()

            self._last_used = time.monotonic()
            multicallable = self._methods.get(name)
            if multicallable is None:
                multicallable = self._channel.unary_unary(protocol.method_path(name))
                self._methods[name] = multicallable
            return multicallable

    def use_database(self, db_name: str) -> None:
        """Rebind the session to another database and reconnect"""
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                raise ConnectError("Connection is closed", endpoint=self.endpoint)
            self.config = self.config.model_copy(update={"db_name": db_name})
            self._reconnect()

    def track(self, call: Any) -> None:
        """Register an in-flight call so close() can cancel it"""
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                raise ConnectError("Connection is closed", endpoint=self.endpoint)
            self._active_calls.add(call)

    def untrack(self, call: Any) -> None:
        with self._lock:
            self._active_calls.discard(call)

    def submit(self, fn: Callable[[], Any]) -> Future:
        """Run work on the connection's worker pool"""
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                raise ConnectError("Connection is closed", endpoint=self.endpoint)
            return self._pool.submit(fn)

    def close(self) -> None:
        """Close the connection. Idempotent.

        In-flight calls are cancelled and observe CancelledError.
        """
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                return
            self._state = ConnectionState.CLOSED
            active = list(self._active_calls)
            self._active_calls.clear()
            channel, self._raw_channel, self._channel = self._raw_channel, None, None
            self._methods = {}

        for call in active:
            call.cancel()
        if channel is not None:
            channel.close()
        self._pool.shutdown(wait=False, cancel_futures=True)
        logger.info(f"Closed connection to {self.endpoint}")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Connection(endpoint={self.endpoint!r}, state={self._state.value})"
