"""
Tessera Python Client - Configuration

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

import base64
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import grpc
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_URI = "http://localhost:19530"
SECURE_SCHEMES = ("https", "grpcs")
SUPPORTED_SCHEMES = ("http", "https", "grpc", "grpcs", "tcp")


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RetryConfig(BaseModel):
    """Retry and backoff policy for remote calls"""
    max_attempts: int = Field(default=5, ge=1, le=100)
    initial_backoff: float = Field(default=0.01, ge=0.0)
    backoff_multiplier: float = Field(default=3.0, ge=1.0, le=10.0)
    max_backoff: float = Field(default=3.0, ge=0.0)
    jitter: float = Field(default=0.01, ge=0.0)
    total_timeout: Optional[float] = Field(default=None, gt=0.0)
    # Names of gRPC status codes or service status codes
    retryable_codes: List[str] = Field(
        default_factory=lambda: ["UNAVAILABLE", "RESOURCE_EXHAUSTED", "RATE_LIMIT", "NOT_READY"]
    )
    retry_non_idempotent: bool = True

    @field_validator("retryable_codes")
    def normalize_codes(cls, v: List[str]) -> List[str]:
        return [code.strip().upper() for code in v if code.strip()]


class ConnectionConfig(BaseModel):
    """Channel and worker pool configuration"""
    connect_timeout: float = Field(default=10.0, gt=0.0)
    keepalive_time: float = Field(default=10.0, gt=0.0)
    keepalive_timeout: float = Field(default=5.0, gt=0.0)
    keepalive_without_calls: bool = True
    idle_probe_threshold: float = Field(default=60.0, ge=0.0)
    probe_timeout: float = Field(default=5.0, gt=0.0)
    max_workers: int = Field(default=8, ge=1, le=256)
    max_message_size: int = Field(default=-1, ge=-1)


class TLSConfig(BaseModel):
    """TLS/SSL configuration"""
    ca_cert: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    server_name: Optional[str] = None

    def channel_credentials(self) -> grpc.ChannelCredentials:
        """Build gRPC channel credentials from the configured PEM files"""
        def read(path: Optional[str]) -> Optional[bytes]:
            return Path(path).read_bytes() if path else None

        return grpc.ssl_channel_credentials(
            root_certificates=read(self.ca_cert),
            private_key=read(self.key_file),
            certificate_chain=read(self.cert_file),
        )


class ClientConfig(BaseModel):
    """Complete client configuration"""

    # Connection settings
    uri: str = Field(default=DEFAULT_URI, description="Service endpoint URI")
    token: Optional[str] = Field(default=None, description="API token")
    user: Optional[str] = None
    password: Optional[str] = None
    db_name: str = Field(default="", description="Database to bind the session to")

    # Per-attempt deadline in seconds
    timeout: Optional[float] = Field(default=30.0, gt=0.0, le=3600.0)

    retry: RetryConfig = Field(default_factory=RetryConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    tls: TLSConfig = Field(default_factory=TLSConfig)

    # Headers and metadata
    user_agent: Optional[str] = Field(default=None, description="Custom user agent")
    custom_headers: Dict[str, str] = Field(default_factory=dict)

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO)
    enable_debug_logging: bool = False

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("uri")
    def validate_uri(cls, v: str) -> str:
        """Validate and normalize the endpoint URI"""
        if not v:
            raise ValueError("URI cannot be empty")

        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            v = f"http://{v}"
            parsed = urlparse(v)

        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"URI scheme must be one of {', '.join(SUPPORTED_SCHEMES)}")

        if not parsed.hostname:
            raise ValueError("URI must include hostname")

        return v

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """Create configuration from environment variables"""
        config_dict = {}

        if uri := os.getenv("TESSERA_URI"):
            config_dict["uri"] = uri
        if token := os.getenv("TESSERA_TOKEN"):
            config_dict["token"] = token
        if user := os.getenv("TESSERA_USER"):
            config_dict["user"] = user
        if password := os.getenv("TESSERA_PASSWORD"):
            config_dict["password"] = password
        if db_name := os.getenv("TESSERA_DB_NAME"):
            config_dict["db_name"] = db_name
        if timeout := os.getenv("TESSERA_TIMEOUT"):
            config_dict["timeout"] = float(timeout)

        retry_config = {}
        if max_attempts := os.getenv("TESSERA_MAX_ATTEMPTS"):
            retry_config["max_attempts"] = int(max_attempts)
        if total_timeout := os.getenv("TESSERA_RETRY_TIMEOUT"):
            retry_config["total_timeout"] = float(total_timeout)
        if retryable := os.getenv("TESSERA_RETRYABLE_CODES"):
            retry_config["retryable_codes"] = retryable.split(",")
        if retry_config:
            config_dict["retry"] = RetryConfig(**retry_config)

        connection_config = {}
        if connect_timeout := os.getenv("TESSERA_CONNECT_TIMEOUT"):
            connection_config["connect_timeout"] = float(connect_timeout)
        if max_workers := os.getenv("TESSERA_MAX_WORKERS"):
            connection_config["max_workers"] = int(max_workers)
        if connection_config:
            config_dict["connection"] = ConnectionConfig(**connection_config)

        tls_config = {}
        if ca_cert := os.getenv("TESSERA_CA_CERT"):
            tls_config["ca_cert"] = ca_cert
        if cert_file := os.getenv("TESSERA_CERT_FILE"):
            tls_config["cert_file"] = cert_file
        if key_file := os.getenv("TESSERA_KEY_FILE"):
            tls_config["key_file"] = key_file
        if server_name := os.getenv("TESSERA_SERVER_NAME"):
            tls_config["server_name"] = server_name
        if tls_config:
            config_dict["tls"] = TLSConfig(**tls_config)

        if log_level := os.getenv("TESSERA_LOG_LEVEL"):
            config_dict["log_level"] = log_level.upper()
        if debug := os.getenv("TESSERA_DEBUG"):
            config_dict["enable_debug_logging"] = debug.lower() in ("true", "1", "yes")

        config_dict.update(overrides)
        return cls(**config_dict)

    def _get_version(self) -> str:
        from . import __version__
        return __version__

    def get_user_agent(self) -> str:
        return self.user_agent or f"tessera-python/{self._get_version()}"

    def get_authorization(self) -> Optional[str]:
        """Value of the authorization header, or None without credentials"""
        if self.token:
            raw = self.token
        elif self.user and self.password is not None:
            raw = f"{self.user}:{self.password}"
        else:
            return None
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def get_grpc_metadata(self) -> List[Tuple[str, str]]:
        """Metadata attached to every call on the channel"""
        metadata = []

        if authorization := self.get_authorization():
            metadata.append(("authorization", authorization))
        if self.db_name:
            metadata.append(("dbname", self.db_name))

        for key, value in self.custom_headers.items():
            metadata.append((key.lower(), value))

        return metadata

    def is_secure(self) -> bool:
        """Check if connection should use TLS"""
        return urlparse(self.uri).scheme in SECURE_SCHEMES

    def get_host_port(self) -> Tuple[str, int]:
        parsed = urlparse(self.uri)
        host = parsed.hostname or "localhost"
        port = parsed.port or (443 if self.is_secure() else 19530)
        return host, port

    def get_target(self) -> str:
        """gRPC target string, host:port without a scheme"""
        host, port = self.get_host_port()
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{port}"

    def get_channel_options(self) -> List[Tuple[str, object]]:
        conn = self.connection
        options = [
            ("grpc.max_send_message_length", conn.max_message_size),
            ("grpc.max_receive_message_length", conn.max_message_size),
            ("grpc.keepalive_time_ms", int(conn.keepalive_time * 1000)),
            ("grpc.keepalive_timeout_ms", int(conn.keepalive_timeout * 1000)),
            ("grpc.keepalive_permit_without_calls", int(conn.keepalive_without_calls)),
            ("grpc.enable_retries", 0),
            ("grpc.primary_user_agent", self.get_user_agent()),
        ]
        if self.is_secure() and self.tls.server_name:
            options.append(("grpc.ssl_target_name_override", self.tls.server_name))
        return options


def load_config(
    uri: Optional[str] = None,
    token: Optional[str] = None,
    config_file: Optional[str] = None,
    **kwargs
) -> ClientConfig:
    """Load configuration from multiple sources with precedence:
    1. Explicit parameters
    2. Configuration file
    3. Environment variables
    4. Defaults
    """
    config_dict = {}

    if config_file:
        config_dict.update(load_config_file(config_file))

    if uri:
        config_dict["uri"] = uri
    if token:
        config_dict["token"] = token

    config_dict.update(kwargs)

    return ClientConfig.from_env(**config_dict)


def load_config_file(file_path: str) -> dict:
    """Load configuration from file (JSON, YAML, or TOML)"""
    import json

    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    content = path.read_text()

    if file_path.endswith((".yml", ".yaml")):
        try:
            import yaml
        except ImportError as e:
            raise ImportError("PyYAML is required to load YAML configuration files") from e
        try:
            return yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

    elif file_path.endswith(".toml"):
        try:
            import tomli
        except ImportError as e:
            raise ImportError("tomli is required to load TOML configuration files") from e
        return tomli.loads(content)

    else:  # JSON
        return json.loads(content)
