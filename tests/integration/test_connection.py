"""
Tests for connection lifecycle against the in-process mock service.
"""

import socket
import time
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from conftest import fast_config
from tessera import TesseraClient, protocol
from tessera.config import ConnectionConfig
from tessera.connection import Connection, ConnectionState, HeaderInterceptor
from tessera.exceptions import ConnectError
from tessera.executor import CancelToken


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestHeaderInterceptor:
    """Test metadata injection"""

    def test_metadata_appended(self):
        """Test session metadata is added to existing call metadata"""
        interceptor = HeaderInterceptor([("authorization", "abc"), ("dbname", "films")])
        seen = {}

        def continuation(details, request):
            seen["details"] = details
            return "response"

        details = SimpleNamespace(method="/x/Y", timeout=1.0, metadata=[("trace", "1")], credentials=None)
        assert interceptor.intercept_unary_unary(continuation, details, b"") == "response"
        assert seen["details"].method == "/x/Y"
        assert seen["details"].timeout == 1.0
        assert list(seen["details"].metadata) == [("trace", "1"), ("authorization", "abc"), ("dbname", "films")]


class TestConnectionLifecycle:
    """Test open, use and close"""

    def test_open_handshake(self, mock_server, mock_service):
        """Test a successful open records the server info"""
        with Connection.open(fast_config(mock_server.uri)) as connection:
            assert connection.state == ConnectionState.READY
            assert connection.identifier == 42
            assert connection.server_info["deploy_mode"] == "STANDALONE"
            assert mock_service.calls["Connect"] == 1

    def test_unreachable(self):
        """Test opening against nothing raises ConnectError"""
        config = fast_config(f"http://127.0.0.1:{free_port()}", connection=ConnectionConfig(connect_timeout=0.5))
        started = time.monotonic()
        with pytest.raises(ConnectError) as exc_info:
            Connection.open(config)
        assert time.monotonic() - started < 5.0
        assert exc_info.value.endpoint.endswith(str(config.get_host_port()[1]))

    def test_headers_reach_server(self, mock_server, mock_service):
        """Test authorization and database metadata are sent"""
        config = fast_config(mock_server.uri, token="root:secret", db_name="default", custom_headers={"X-Trace": "t1"})
        with Connection.open(config) as connection:
            connection.method("GetVersion")(protocol.serialize("EmptyRequest", {}), timeout=5.0)
        metadata = mock_service.metadata["GetVersion"]
        assert metadata["authorization"] == config.get_authorization()
        assert metadata["dbname"] == "default"
        assert metadata["x-trace"] == "t1"

    def test_method_is_cached(self, mock_server):
        """Test the same multicallable is reused for a method"""
        with Connection.open(fast_config(mock_server.uri)) as connection:
            assert connection.method("Search") is connection.method("Search")

    def test_close_idempotent(self, mock_server):
        """Test closing twice is harmless"""
        connection = Connection.open(fast_config(mock_server.uri))
        connection.close()
        connection.close()
        assert connection.closed
        with pytest.raises(ConnectError):
            connection.method("GetVersion")
        with pytest.raises(ConnectError):
            connection.submit(lambda: None)

    def test_close_cancels_tracked(self, mock_server):
        """Test close cancels every tracked call"""
        connection = Connection.open(fast_config(mock_server.uri))
        token = CancelToken()
        connection.track(token)
        connection.close()
        assert token.cancelled
        with pytest.raises(ConnectError):
            connection.track(CancelToken())

    def test_use_database_rebinds(self, mock_server, mock_service):
        """Test switching database updates the session metadata"""
        with Connection.open(fast_config(mock_server.uri)) as connection:
            connection.use_database("films")
            assert connection.config.db_name == "films"
            assert mock_service.calls["Connect"] == 2
            connection.method("GetVersion")(protocol.serialize("EmptyRequest", {}), timeout=5.0)
        assert mock_service.metadata["GetVersion"]["dbname"] == "films"

    def test_idle_liveness_check(self, mock_server, mock_service):
        """Test a call after the idle threshold checks liveness and still succeeds"""
        config = fast_config(mock_server.uri, connection=ConnectionConfig(idle_probe_threshold=0.0))
        with Connection.open(config) as connection:
            time.sleep(0.01)
            raw = connection.method("GetVersion")(protocol.serialize("EmptyRequest", {}), timeout=5.0)
            assert protocol.deserialize("VersionResponse", raw)["version"] == "2.4.0-mock"
            assert connection.state == ConnectionState.READY

    def test_reconnect_when_broken(self, mock_server, mock_service):
        """Test a broken session reconnects once on next use"""
        with Connection.open(fast_config(mock_server.uri)) as connection:
            connection._state = ConnectionState.BROKEN
            connection.method("GetVersion")
            assert connection.state == ConnectionState.READY
            assert mock_service.calls["Connect"] == 2

    def test_liveness_failure_against_dead_service(self, mock_server, mock_service):
        """Test a failed idle liveness check gets exactly one reconnect before ConnectError"""
        settings = ConnectionConfig(idle_probe_threshold=0.0, probe_timeout=0.2, connect_timeout=0.5)
        with Connection.open(fast_config(mock_server.uri, connection=settings)) as connection:
            mock_server.stop(grace=0)
            time.sleep(0.01)
            with patch.object(connection, "_reconnect", wraps=connection._reconnect) as reconnect:
                with pytest.raises(ConnectError) as exc_info:
                    connection.method("GetVersion")
            assert reconnect.call_count == 1
            assert exc_info.value.endpoint == connection.endpoint
            assert connection.state == ConnectionState.BROKEN
            assert mock_service.calls["Connect"] == 1

    def test_client_call_against_dead_service(self, mock_server):
        """Test a client call surfaces ConnectError once the service is gone"""
        settings = ConnectionConfig(idle_probe_threshold=0.0, probe_timeout=0.2, connect_timeout=0.5)
        client = TesseraClient(config=fast_config(mock_server.uri, connection=settings))
        try:
            mock_server.stop(grace=0)
            started = time.monotonic()
            with pytest.raises(ConnectError):
                client.get_version()
            assert time.monotonic() - started < 5.0
        finally:
            client.close()
