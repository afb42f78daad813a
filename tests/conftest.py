"""
Tessera Python Client Test Configuration
Shared fixtures and configuration for all test modules
"""

import logging
import os
from typing import Generator

import pytest

from mock_server import MockServer, MockTesseraService
from tessera import ClientConfig, CollectionSchema, DataType, RetryConfig, TesseraClient
from tessera.config import ConnectionConfig

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

LIVE_URI = os.environ.get("TESSERA_TEST_URI")


def fast_config(uri: str, **overrides) -> ClientConfig:
    """Client configuration with short backoff, suited to a local mock"""
    retry = RetryConfig(initial_backoff=0.001, max_backoff=0.01, jitter=0.0, max_attempts=5)
    connection = ConnectionConfig(connect_timeout=5.0, max_workers=4)
    settings = {"uri": uri, "timeout": 5.0, "retry": retry, "connection": connection}
    settings.update(overrides)
    return ClientConfig(**settings)


@pytest.fixture
def mock_server() -> Generator[MockServer, None, None]:
    """In-process Tessera service on a free local port"""
    server = MockServer().start()
    yield server
    server.stop(grace=0)


@pytest.fixture
def mock_service(mock_server) -> MockTesseraService:
    return mock_server.service


@pytest.fixture
def client(mock_server) -> Generator[TesseraClient, None, None]:
    """Client connected to the mock service"""
    client = TesseraClient(config=fast_config(mock_server.uri))
    yield client
    client.close()


@pytest.fixture
def simple_schema() -> CollectionSchema:
    """{id INT64 primary key, vector FLOAT_VECTOR[4]}"""
    return (
        CollectionSchema(name="simple")
        .add_field("id", DataType.INT64, is_primary=True)
        .add_field("vector", DataType.FLOAT_VECTOR, dim=4)
    )


@pytest.fixture
def rich_schema() -> CollectionSchema:
    """Schema exercising scalar, nullable, default and dynamic fields"""
    return (
        CollectionSchema(name="rich", enable_dynamic_field=True)
        .add_field("pk", DataType.VARCHAR, is_primary=True, max_length=64)
        .add_field("embedding", DataType.FLOAT_VECTOR, dim=3)
        .add_field("age", DataType.INT32)
        .add_field("score", DataType.DOUBLE, nullable=True)
        .add_field("label", DataType.VARCHAR, max_length=32, default_value="none")
        .add_field("tags", DataType.ARRAY, element_type=DataType.VARCHAR, max_length=16, max_capacity=4)
        .add_field("info", DataType.JSON, nullable=True)
    )


# Test markers
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests that run without any service"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run against the in-process mock service"
    )
    config.addinivalue_line(
        "markers", "live: marks tests that need a real service at TESSERA_TEST_URI"
    )


# Pytest hooks
def pytest_collection_modifyitems(config, items):
    """Mark tests by directory and skip live tests without a service"""
    skip_live = pytest.mark.skip(reason="TESSERA_TEST_URI not set")
    for item in items:
        path = str(item.fspath)
        if f"{os.sep}unit{os.sep}" in path:
            item.add_marker(pytest.mark.unit)
        elif f"{os.sep}integration{os.sep}" in path:
            item.add_marker(pytest.mark.integration)
        if "live" in item.keywords and not LIVE_URI:
            item.add_marker(skip_live)
