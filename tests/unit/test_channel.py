"""
Unit tests for channel setup and handshake, with gRPC patched out.
"""

from unittest.mock import Mock, patch

import grpc
import pytest

from tessera import protocol
from tessera.config import ClientConfig, ConnectionConfig
from tessera.connection import Connection, ConnectionState
from tessera.exceptions import ConnectError


def ready_future(ready: bool = True) -> Mock:
    future = Mock()
    if not ready:
        future.result.side_effect = grpc.FutureTimeoutError()
    return future


def connect_response(code: int = 0, reason: str = "") -> bytes:
    return protocol.serialize("ConnectResponse", {
        "status": {"code": code, "reason": reason},
        "server_info": {"build_tags": "v1", "build_time": "", "git_commit": "abc", "deploy_mode": "CLUSTER"},
        "identifier": 7,
    })


@pytest.fixture
def config():
    return ClientConfig(uri="http://db.example:19530", connection=ConnectionConfig(connect_timeout=0.1))


class TestChannelSetup:
    """Test channel creation and readiness"""

    @patch("tessera.connection.grpc.channel_ready_future")
    @patch("tessera.connection.grpc.insecure_channel")
    def test_not_ready(self, mock_insecure, mock_ready, config):
        """Test a channel that never becomes ready"""
        channel = Mock()
        mock_insecure.return_value = channel
        mock_ready.return_value = ready_future(False)

        with pytest.raises(ConnectError) as exc_info:
            Connection.open(config)
        assert exc_info.value.endpoint == "db.example:19530"
        assert isinstance(exc_info.value.original_error, grpc.FutureTimeoutError)
        mock_ready.return_value.cancel.assert_called_once()
        channel.close.assert_called_once()
        mock_insecure.assert_called_once_with("db.example:19530", options=config.get_channel_options())

    @patch("tessera.connection.grpc.channel_ready_future")
    @patch("tessera.connection.grpc.secure_channel")
    def test_secure_scheme(self, mock_secure, mock_ready):
        """Test https selects a TLS channel on port 443"""
        mock_ready.return_value = ready_future(False)
        with pytest.raises(ConnectError):
            Connection.open(ClientConfig(uri="https://db.example", connection=ConnectionConfig(connect_timeout=0.1)))
        target, credentials = mock_secure.call_args[0]
        assert target == "db.example:443"
        assert isinstance(credentials, grpc.ChannelCredentials)

    def test_missing_tls_material(self, tmp_path):
        """Test unreadable certificate files fail the connect"""
        config = ClientConfig(uri="grpcs://db.example:19530", tls={"ca_cert": str(tmp_path / "missing.pem")})
        with pytest.raises(ConnectError) as exc_info:
            Connection.open(config)
        assert "TLS" in exc_info.value.message


class TestHandshake:
    """Test the Connect handshake"""

    def open_with(self, config, response=None, error=None) -> Connection:
        call = Mock(return_value=response, side_effect=error)
        channel = Mock()
        channel.unary_unary.return_value = call
        with patch("tessera.connection.grpc.insecure_channel"), \
                patch("tessera.connection.grpc.channel_ready_future", return_value=ready_future()), \
                patch("tessera.connection.grpc.intercept_channel", return_value=channel):
            connection = Connection.open(config)
        channel.unary_unary.assert_any_call(protocol.method_path("Connect"))
        request = protocol.deserialize("ConnectRequest", call.call_args[0][0])
        assert request["client_info"]["sdk_type"] == "Python"
        return connection

    def test_server_info_recorded(self, config):
        """Test the handshake keeps the server info and identifier"""
        connection = self.open_with(config, response=connect_response())
        assert connection.state == ConnectionState.READY
        assert connection.identifier == 7
        assert connection.server_info["deploy_mode"] == "CLUSTER"
        connection.close()

    def test_rejected(self, config):
        """Test a non-success handshake status"""
        with pytest.raises(ConnectError) as exc_info:
            self.open_with(config, response=connect_response(1200, "bad token"))
        assert "bad token" in exc_info.value.message

    def test_transport_failure(self, config):
        """Test a handshake that fails at the transport"""
        error = grpc.RpcError()
        error.code = lambda: grpc.StatusCode.UNAUTHENTICATED
        error.details = lambda: "no credentials"
        with pytest.raises(ConnectError) as exc_info:
            self.open_with(config, error=error)
        assert "no credentials" in exc_info.value.message


class TestLivenessCheck:
    """Test the idle liveness check"""

    @patch("tessera.connection.grpc.channel_ready_future")
    def test_readiness_future_cancelled(self, mock_ready, config):
        """Test the readiness future is cancelled whatever the liveness outcome"""
        connection = Connection(config)
        connection._raw_channel = Mock()

        mock_ready.return_value = ready_future()
        assert connection._probe() is True
        mock_ready.return_value.cancel.assert_called_once()

        mock_ready.return_value = ready_future(False)
        assert connection._probe() is False
        mock_ready.return_value.cancel.assert_called_once()
        connection._pool.shutdown(wait=False)
