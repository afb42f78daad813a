"""
Tessera Python Client - Call execution, retry and cancellation

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

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import grpc
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential_jitter,
)

from . import protocol
from .config import ClientConfig
from .exceptions import (
    CancelledError,
    ConnectError,
    TesseraError,
    TimeoutError,
    TransientServiceError,
    map_grpc_error,
    map_server_status,
)

logger = logging.getLogger(__name__)


@dataclass
class RpcRequest:
    """A validated, encoded request ready to be sent"""
    method: str
    payload: bytes
    operation: str
    collection_name: Optional[str] = None
    idempotent: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def response_type(self) -> str:
        return protocol.METHODS[self.method].response

    @property
    def message(self) -> Dict[str, Any]:
        """Decoded request body, for inspection"""
        return protocol.deserialize(protocol.METHODS[self.method].request, self.payload)


@dataclass(frozen=True)
class CallPolicy:
    """Timeout, retry and backoff policy applied to one call"""
    timeout: Optional[float] = 30.0
    total_timeout: Optional[float] = None
    max_attempts: int = 5
    initial_backoff: float = 0.01
    backoff_multiplier: float = 3.0
    max_backoff: float = 3.0
    jitter: float = 0.01
    retryable_codes: FrozenSet[str] = frozenset({"UNAVAILABLE", "RESOURCE_EXHAUSTED", "RATE_LIMIT", "NOT_READY"})
    retry_non_idempotent: bool = True

    @classmethod
    def from_config(cls, config: ClientConfig) -> "CallPolicy":
        retry = config.retry
        return cls(
            timeout=config.timeout,
            total_timeout=retry.total_timeout,
            max_attempts=retry.max_attempts,
            initial_backoff=retry.initial_backoff,
            backoff_multiplier=retry.backoff_multiplier,
            max_backoff=retry.max_backoff,
            jitter=retry.jitter,
            retryable_codes=frozenset(retry.retryable_codes),
            retry_non_idempotent=retry.retry_non_idempotent,
        )

    def with_overrides(self, **overrides) -> "CallPolicy":
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **overrides) if overrides else self

    def is_retryable(self, error: BaseException, idempotent: bool = True) -> bool:
        if not isinstance(error, TransientServiceError):
            return False
        return idempotent or self.retry_non_idempotent

    def attempt_timeout(self, deadline: Optional[float]) -> Tuple[Optional[float], bool]:
        """Timeout for the next attempt and whether the sequence deadline bounds it"""
        if deadline is None:
            return self.timeout, False
        remaining = deadline - time.monotonic()
        if self.timeout is None or remaining < self.timeout:
            return remaining, True
        return self.timeout, False


class CallState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS = {
    CallState.PENDING: {CallState.IN_FLIGHT, CallState.FAILED},
    CallState.IN_FLIGHT: {CallState.SUCCEEDED, CallState.RETRYING, CallState.FAILED},
    CallState.RETRYING: {CallState.IN_FLIGHT, CallState.FAILED},
    CallState.SUCCEEDED: set(),
    CallState.FAILED: set(),
}


class Call:
    """Per-call state machine record"""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.state = CallState.PENDING
        self.history: List[CallState] = [CallState.PENDING]
        self.attempts = 0
        self._lock = threading.Lock()

    def transition(self, new_state: CallState) -> None:
        with self._lock:
            if new_state not in _TRANSITIONS[self.state]:
                raise RuntimeError(f"Illegal call transition {self.state.value} -> {new_state.value}")
            self.state = new_state
            self.history.append(new_state)

    def fail(self) -> None:
        with self._lock:
            if self.state in (CallState.SUCCEEDED, CallState.FAILED):
                return
            self.state = CallState.FAILED
            self.history.append(CallState.FAILED)

    @property
    def done(self) -> bool:
        return self.state in (CallState.SUCCEEDED, CallState.FAILED)


class CancelToken:
    """Cancellation signal shared by a call, its backoff sleeps and its in-flight RPC"""

    def __init__(self) -> None:
        self.event = threading.Event()
        self._lock = threading.Lock()
        self._rpc: Optional[grpc.Future] = None

    @property
    def cancelled(self) -> bool:
        return self.event.is_set()

    def cancel(self) -> None:
        with self._lock:
            self.event.set()
            rpc = self._rpc
        if rpc is not None:
            rpc.cancel()

    def attach(self, rpc: grpc.Future) -> None:
        with self._lock:
            self._rpc = rpc
            cancelled = self.event.is_set()
        if cancelled:
            rpc.cancel()

    def detach(self) -> None:
        with self._lock:
            self._rpc = None

    def sleep(self, seconds: float) -> None:
        # wakes up early on cancellation
        self.event.wait(seconds)


class CallHandle:
    """Future-like handle for a non-blocking call"""

    def __init__(self, future: concurrent.futures.Future, token: CancelToken, call: Call) -> None:
        self._future = future
        self._token = token
        self._call = call

    @property
    def state(self) -> CallState:
        return self._call.state

    @property
    def attempts(self) -> int:
        return self._call.attempts

    def cancel(self) -> bool:
        """Request cancellation. Returns False when the call already completed."""
        if self._future.done():
            return False
        self._token.cancel()
        if self._future.cancel():
            self._call.fail()
        return True

    def cancelled(self) -> bool:
        if self._future.cancelled():
            return True
        return self._future.done() and isinstance(self._future.exception(), CancelledError)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Any:
        """Wait for the outcome.

        Raises concurrent.futures.TimeoutError when ``timeout`` elapses
        before the call completes; the call itself keeps running.
        """
        try:
            return self._future.result(timeout)
        except concurrent.futures.CancelledError as e:
            raise CancelledError(f"{self._call.operation} was cancelled before it started", operation=self._call.operation) from e

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        try:
            return self._future.exception(timeout)
        except concurrent.futures.CancelledError:
            return CancelledError(f"{self._call.operation} was cancelled before it started", operation=self._call.operation)

    def add_done_callback(self, fn: Callable[["CallHandle"], None]) -> None:
        self._future.add_done_callback(lambda _: fn(self))


class CallExecutor:
    """Issues requests over a connection under a retry policy.

    Each call runs the state machine PENDING -> IN_FLIGHT -> SUCCEEDED, or
    IN_FLIGHT -> RETRYING -> IN_FLIGHT while retryable errors occur and
    attempts remain, or -> FAILED with the last error surfaced verbatim.
    """

    def __init__(self, policy: CallPolicy) -> None:
        self.policy = policy

    def execute(
        self,
        connection,
        request: RpcRequest,
        policy: Optional[CallPolicy] = None,
        token: Optional[CancelToken] = None,
        call: Optional[Call] = None,
    ) -> Dict[str, Any]:
        """Run a request to completion and return the decoded response body"""
        policy = policy or self.policy
        token = token or CancelToken()
        call = call or Call(request.operation)
        deadline = None if policy.total_timeout is None else time.monotonic() + policy.total_timeout

        def backoff(retry_state: RetryCallState) -> float:
            delay = base_wait(retry_state)
            if deadline is not None:
                delay = min(delay, max(deadline - time.monotonic(), 0.0))
            return delay

        def before_sleep(retry_state: RetryCallState) -> None:
            call.transition(CallState.RETRYING)
            error = retry_state.outcome.exception()
            logger.warning(
                f"{request.operation} attempt {retry_state.attempt_number}/{policy.max_attempts} failed "
                f"({getattr(error, 'status_name', None) or type(error).__name__}), "
                f"retrying in {retry_state.next_action.sleep:.3f}s"
            )

        base_wait = wait_exponential_jitter(
            initial=policy.initial_backoff,
            max=policy.max_backoff,
            exp_base=policy.backoff_multiplier,
            jitter=policy.jitter,
        )
        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts) | stop_when_event_set(token.event),
            wait=backoff,
            retry=retry_if_exception(lambda e: policy.is_retryable(e, request.idempotent)),
            sleep=token.sleep,
            before_sleep=before_sleep,
            reraise=False,
        )

        try:
            connection.track(token)
        except TesseraError:
            call.fail()
            raise
        try:
            for attempt in retrying:
                with attempt:
                    response = self._attempt(connection, request, policy, token, call, deadline)
        except RetryError as e:
            call.fail()
            last = e.last_attempt.exception()
            if token.cancelled:
                raise CancelledError(f"{request.operation} was cancelled", operation=request.operation,
                                     collection_name=request.collection_name) from last
            last.attempts = call.attempts
            raise last
        except TesseraError:
            call.fail()
            raise
        finally:
            connection.untrack(token)

        call.transition(CallState.SUCCEEDED)
        logger.debug(f"{request.operation} succeeded after {call.attempts} attempt(s)")
        return response

    def _attempt(
        self,
        connection,
        request: RpcRequest,
        policy: CallPolicy,
        token: CancelToken,
        call: Call,
        deadline: Optional[float],
    ) -> Dict[str, Any]:
        context = {"operation": request.operation, "collection_name": request.collection_name}
        if token.cancelled or (call.attempts and connection.closed):
            raise CancelledError(f"{request.operation} was cancelled", **context)

        timeout, bounded_by_deadline = policy.attempt_timeout(deadline)
        if timeout is not None and timeout <= 0:
            raise TimeoutError(
                f"{request.operation} exceeded its total timeout of {policy.total_timeout}s "
                f"after {call.attempts} attempt(s)",
                scope="sequence",
                timeout=policy.total_timeout,
                **context,
            )

        call.transition(CallState.IN_FLIGHT)
        call.attempts += 1
        rpc = self._start(connection, request, token, timeout, context)
        token.attach(rpc)
        try:
            raw = rpc.result()
        except grpc.FutureCancelledError as e:
            raise CancelledError(f"{request.operation} was cancelled", **context) from e
        except grpc.RpcError as e:
            if token.cancelled:
                raise CancelledError(f"{request.operation} was cancelled", **context) from e
            error = map_grpc_error(e, policy.retryable_codes, timeout=timeout, **context)
            if isinstance(error, TimeoutError) and bounded_by_deadline:
                error = TimeoutError(
                    f"{request.operation} exceeded its total timeout of {policy.total_timeout}s",
                    scope="sequence",
                    timeout=policy.total_timeout,
                    **context,
                )
            raise error from e
        finally:
            token.detach()

        response = protocol.deserialize(request.response_type, raw)
        status = response.get("status") or {}
        if status.get("code", 0) != 0:
            raise map_server_status(status, policy.retryable_codes, **context)
        return response

    def _start(
        self,
        connection,
        request: RpcRequest,
        token: CancelToken,
        timeout: Optional[float],
        context: Dict[str, Any],
    ) -> grpc.Future:
        """Start the RPC on the current channel.

        grpc raises ValueError when the channel was closed after the
        multicallable was handed out. On a closed connection that is a
        cancellation; a channel swapped by a reconnect gets one more try.
        """
        error: Optional[Exception] = None
        for _ in range(2):
            try:
                return connection.method(request.method).future(request.payload, timeout=timeout)
            except (ValueError, ConnectError) as e:
                if token.cancelled or connection.closed:
                    raise CancelledError(f"{request.operation} was cancelled", **context) from e
                if isinstance(e, ConnectError):
                    raise
                error = e
                logger.debug(f"{request.operation} hit a closed channel, retrying on the current one")
        raise ConnectError(
            f"Channel to {connection.endpoint} closed while starting {request.operation}",
            endpoint=connection.endpoint,
            original_error=error,
            **context,
        ) from error

    def submit(
        self,
        connection,
        request: RpcRequest,
        policy: Optional[CallPolicy] = None,
        then: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> CallHandle:
        """Run a request on the connection's worker pool, returning a handle"""
        token = CancelToken()
        call = Call(request.operation)

        def run():
            response = self.execute(connection, request, policy, token, call)
            return then(response) if then is not None else response

        future = connection.submit(run)
        return CallHandle(future, token, call)
