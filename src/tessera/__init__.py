"""
Tessera Python Client SDK

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

# Client interface
from .client import TesseraClient, connect
from .config import ClientConfig, ConnectionConfig, RetryConfig, TLSConfig, load_config
from .cache import InMemorySchemaCache, NullSchemaCache, SchemaCache
from .column import Column
from .executor import CallHandle, CallPolicy, CallState
from .iterator import QueryIterator
from .ranker import AnnSearchRequest, BaseRanker, RRFRanker, WeightedRanker
from .schema import CollectionSchema, FieldSchema
from .types import (
    ConsistencyLevel,
    DataType,
    IndexType,
    LoadState,
    MetricType,
    ServerCode,
)
from .models import (
    CollectionDescription,
    CollectionStats,
    FlushResult,
    HealthStatus,
    Hit,
    IndexDescription,
    MutationResult,
    QueryResult,
    SearchResult,
    ServerInfo,
)
from .exceptions import (
    TesseraError,
    ValidationError,
    SchemaMismatchError,
    ConnectError,
    ServiceError,
    TransientServiceError,
    TerminalServiceError,
    NotFoundError,
    TimeoutError,
    CancelledError,
    DecodeError,
)

__version__ = "0.1.0"

__all__ = [
    # Client interface
    "TesseraClient",
    "connect",
    "ClientConfig",
    "ConnectionConfig",
    "RetryConfig",
    "TLSConfig",
    "load_config",
    "SchemaCache",
    "InMemorySchemaCache",
    "NullSchemaCache",
    "CallHandle",
    "CallPolicy",
    "CallState",
    "QueryIterator",

    # Schema and data
    "Column",
    "CollectionSchema",
    "FieldSchema",
    "ConsistencyLevel",
    "DataType",
    "IndexType",
    "LoadState",
    "MetricType",
    "ServerCode",
    "AnnSearchRequest",
    "BaseRanker",
    "RRFRanker",
    "WeightedRanker",

    # Results
    "CollectionDescription",
    "CollectionStats",
    "FlushResult",
    "HealthStatus",
    "Hit",
    "IndexDescription",
    "MutationResult",
    "QueryResult",
    "SearchResult",
    "ServerInfo",

    # Exceptions
    "TesseraError",
    "ValidationError",
    "SchemaMismatchError",
    "ConnectError",
    "ServiceError",
    "TransientServiceError",
    "TerminalServiceError",
    "NotFoundError",
    "TimeoutError",
    "CancelledError",
    "DecodeError",
]
