"""
Retry, timeout, cancellation and schema cache behaviour against the mock service.
"""

import concurrent.futures
import threading
import time

import grpc
import pytest

from conftest import fast_config
from mock_server import Fault
from tessera import (
    CallState,
    CancelledError,
    CollectionSchema,
    ConnectError,
    DataType,
    NullSchemaCache,
    RetryConfig,
    SchemaMismatchError,
    TerminalServiceError,
    TesseraError,
    TesseraClient,
    TimeoutError,
    TransientServiceError,
)
from tessera.types import ServerCode

VECTOR = [0.1, 0.2, 0.3, 0.4]


@pytest.fixture
def simple(client, simple_schema):
    client.create_collection("simple", schema=simple_schema)
    client.insert("simple", rows=[{"id": i, "vector": [float(i)] * 4} for i in range(5)])
    return "simple"


def wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


class TestRetries:
    """Test retry behaviour end to end"""

    def test_transient_faults_are_retried(self, client, mock_service):
        """Test N UNAVAILABLE failures below the attempt limit are absorbed"""
        mock_service.inject("HasCollection", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE, times=3))
        assert client.has_collection("anything") is False
        assert mock_service.calls["HasCollection"] == 4

    def test_attempts_exhausted(self, client, mock_service):
        """Test the last error surfaces once max_attempts is reached"""
        mock_service.inject("HasCollection", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE, reason="down", times=10))
        with pytest.raises(TransientServiceError) as exc_info:
            client.has_collection("anything")
        assert mock_service.calls["HasCollection"] == 5
        assert exc_info.value.attempts == 5
        assert exc_info.value.status_name == "UNAVAILABLE"
        assert exc_info.value.message == "down"

    def test_rate_limit_status_is_retried(self, client, mock_service):
        """Test the service RATE_LIMIT status is transient"""
        mock_service.inject("ShowCollections", Fault(server_code=ServerCode.RATE_LIMIT, times=2))
        assert client.list_collections() == []
        assert mock_service.calls["ShowCollections"] == 3

    def test_terminal_fault_not_retried(self, client, mock_service):
        """Test a terminal status fails after one attempt"""
        mock_service.inject("ShowCollections", Fault(server_code=ServerCode.PERMISSION_DENIED, reason="denied"))
        with pytest.raises(TerminalServiceError) as exc_info:
            client.list_collections()
        assert mock_service.calls["ShowCollections"] == 1
        assert exc_info.value.code == ServerCode.PERMISSION_DENIED
        assert exc_info.value.operation == "list_collections"

    def test_terminal_transport_code(self, client, mock_service):
        """Test a non-retryable gRPC status fails after one attempt"""
        mock_service.inject("GetVersion", Fault(grpc_code=grpc.StatusCode.INVALID_ARGUMENT))
        with pytest.raises(TerminalServiceError) as exc_info:
            client.get_version()
        assert exc_info.value.status_name == "INVALID_ARGUMENT"
        assert mock_service.calls["GetVersion"] == 1

    def test_non_idempotent_retried_by_default(self, client, mock_service, simple_schema):
        """Test DDL is retried at-least-once by default"""
        mock_service.inject("CreateCollection", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE))
        client.create_collection("simple", schema=simple_schema)
        assert client.has_collection("simple")
        assert mock_service.calls["CreateCollection"] == 2

    def test_non_idempotent_not_retried_when_disabled(self, mock_server, mock_service, simple_schema):
        """Test retry_non_idempotent=False leaves DDL to the caller"""
        retry = RetryConfig(initial_backoff=0.001, max_backoff=0.01, jitter=0.0, retry_non_idempotent=False)
        with TesseraClient(config=fast_config(mock_server.uri, retry=retry)) as client:
            mock_service.inject("CreateCollection", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE))
            with pytest.raises(TransientServiceError):
                client.create_collection("simple", schema=simple_schema)
            assert mock_service.calls["CreateCollection"] == 1

            mock_service.inject("HasCollection", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE))
            assert client.has_collection("simple") is False
            assert mock_service.calls["HasCollection"] == 2


class TestTimeouts:
    """Test attempt and sequence deadlines end to end"""

    def test_attempt_timeout(self, client, mock_service):
        """Test a slow response exceeds the per-call timeout"""
        mock_service.inject("GetVersion", Fault(delay=1.0))
        with pytest.raises(TimeoutError) as exc_info:
            client.get_version(timeout=0.1)
        assert exc_info.value.scope == "attempt"
        assert mock_service.calls["GetVersion"] == 1

    def test_timeout_from_config(self, mock_server, mock_service):
        """Test the configured timeout applies when no override is given"""
        with TesseraClient(config=fast_config(mock_server.uri, timeout=0.1)) as client:
            mock_service.inject("GetVersion", Fault(delay=1.0))
            with pytest.raises(TimeoutError):
                client.get_version()
            assert client.get_version() == "2.4.0-mock"

    def test_total_timeout(self, mock_server, mock_service):
        """Test the total timeout bounds a retry sequence"""
        retry = RetryConfig(max_attempts=100, initial_backoff=0.05, max_backoff=0.05, jitter=0.0, total_timeout=0.3)
        with TesseraClient(config=fast_config(mock_server.uri, retry=retry)) as client:
            mock_service.inject("GetVersion", Fault(grpc_code=grpc.StatusCode.UNAVAILABLE, times=1000))
            started = time.monotonic()
            with pytest.raises(TimeoutError) as exc_info:
                client.get_version()
            assert exc_info.value.scope == "sequence"
            assert time.monotonic() - started < 3.0
            assert 1 < mock_service.calls["GetVersion"] < 100


class TestCancellation:
    """Test cancelling in-flight calls"""

    def test_cancel_hanging_search(self, client, mock_service, simple):
        """Test a never-responding search is cancelled and the channel stays usable"""
        mock_service.inject("Search", Fault(hang=True))
        handle = client.search_async(simple, [VECTOR], limit=1)
        wait_for(lambda: mock_service.calls["Search"] == 1)
        with pytest.raises(concurrent.futures.TimeoutError):
            handle.result(timeout=0.05)

        assert handle.cancel() is True
        with pytest.raises(CancelledError):
            handle.result(timeout=5.0)
        assert handle.cancelled()
        assert handle.state == CallState.FAILED

        assert client.search(simple, [VECTOR], limit=1)[0][0].id == 0

    def test_close_cancels_in_flight(self, mock_server, mock_service, simple_schema):
        """Test closing the client cancels outstanding calls"""
        client = TesseraClient(config=fast_config(mock_server.uri))
        client.create_collection("simple", schema=simple_schema)
        mock_service.inject("Query", Fault(hang=True))
        handle = client.query_async("simple", limit=1)
        wait_for(lambda: mock_service.calls["Query"] == 1)

        client.close()
        with pytest.raises(CancelledError):
            handle.result(timeout=5.0)
        with pytest.raises(ConnectError):
            client.get_version()
        client.close()

    def test_close_races_concurrent_calls(self, mock_server, mock_service):
        """Test calls racing close() fail only with client errors"""
        for _ in range(10):
            client = TesseraClient(config=fast_config(mock_server.uri))
            stop = threading.Event()
            foreign = []

            def loop():
                while not stop.is_set():
                    try:
                        client.get_version()
                    except TesseraError:
                        pass
                    except Exception as e:
                        foreign.append(e)

            threads = [threading.Thread(target=loop) for _ in range(4)]
            for thread in threads:
                thread.start()
            time.sleep(0.02)
            client.close()
            stop.set()
            for thread in threads:
                thread.join(5.0)
            assert foreign == []

    def test_concurrent_calls(self, client, simple):
        """Test calls from many threads share one client"""
        with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda i: client.search(simple, [[float(i)] * 4], limit=1), range(5)))
        assert [r[0][0].id for r in results] == [0, 1, 2, 3, 4]


class TestSchemaCache:
    """Test collection description caching"""

    def test_description_is_cached(self, client, mock_service, simple):
        """Test data calls reuse the cached description"""
        before = mock_service.calls["DescribeCollection"]
        client.search(simple, [VECTOR], limit=1)
        client.query(simple, ids=[1])
        client.insert(simple, rows=[{"id": 9, "vector": VECTOR}])
        assert mock_service.calls["DescribeCollection"] == before
        assert ("", simple) in client.schema_cache

    def test_drop_invalidates(self, client, mock_service, simple):
        """Test dropping and recreating picks up the new schema"""
        client.drop_collection(simple)
        assert ("", simple) not in client.schema_cache
        schema = (
            CollectionSchema(name=simple)
            .add_field("id", DataType.INT64, is_primary=True)
            .add_field("vector", DataType.FLOAT_VECTOR, dim=2)
        )
        client.create_collection(simple, schema=schema)
        client.insert(simple, rows=[{"id": 1, "vector": [1.0, 2.0]}])
        assert client.describe_collection(simple).collection_schema.get_field("vector").dim == 2

    def test_stale_schema_surfaces_mismatch(self, mock_server, client, mock_service, simple):
        """Test a schema changed by another client is reported, then fixed by dropping the cached entry"""
        with TesseraClient(config=fast_config(mock_server.uri)) as other:
            other.drop_collection(simple)
            schema = (
                CollectionSchema(name=simple)
                .add_field("id", DataType.INT64, is_primary=True)
                .add_field("vector", DataType.FLOAT_VECTOR, dim=4)
                .add_field("year", DataType.INT32)
            )
            other.create_collection(simple, schema=schema)

        with pytest.raises(SchemaMismatchError):
            client.insert(simple, rows=[{"id": 1, "vector": VECTOR}])

        client.drop_cached_schema(simple)
        with pytest.raises(SchemaMismatchError) as exc_info:
            client.insert(simple, rows=[{"id": 1, "vector": VECTOR}])
        assert exc_info.value.field == "year"
        assert client.insert(simple, rows=[{"id": 1, "vector": VECTOR, "year": 2001}]).insert_count == 1

    def test_null_cache_always_describes(self, mock_server, mock_service, simple):
        """Test a disabled cache fetches the description on every call"""
        with TesseraClient(config=fast_config(mock_server.uri), schema_cache=NullSchemaCache()) as client:
            before = mock_service.calls["DescribeCollection"]
            client.search(simple, [VECTOR], limit=1)
            client.search(simple, [VECTOR], limit=1)
            assert mock_service.calls["DescribeCollection"] == before + 2

    def test_shared_cache(self, mock_server, mock_service, client, simple):
        """Test two clients may share one cache"""
        with TesseraClient(config=fast_config(mock_server.uri), schema_cache=client.schema_cache) as other:
            before = mock_service.calls["DescribeCollection"]
            other.search(simple, [VECTOR], limit=1)
            assert mock_service.calls["DescribeCollection"] == before
