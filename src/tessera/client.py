"""
Tessera Python Client - Synchronous Client

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

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as ConfigValidationError

from .cache import InMemorySchemaCache, SchemaCache
from .column import Column
from .config import ClientConfig, load_config
from .connection import Connection
from .decoder import decode_response
from .exceptions import TimeoutError, ValidationError
from .executor import CallExecutor, CallHandle, CallPolicy, RpcRequest
from .iterator import QueryIterator
from .models import (
    CollectionDescription,
    CollectionStats,
    FlushResult,
    HealthStatus,
    IndexDescription,
    MutationResult,
    QueryResult,
    SearchResult,
    ServerInfo,
)
from .prepare import Prepare
from .ranker import AnnSearchRequest, BaseRanker
from .schema import CollectionSchema, check_name
from .types import DataType, IndexType, LoadState

logger = logging.getLogger(__name__)

Rows = Sequence[Dict[str, Any]]


class TesseraClient:
    """Synchronous Tessera client.

    Every operation blocks until it completes; insert, upsert, delete,
    search, hybrid_search and query also have ``*_async`` variants returning a CallHandle.
    All calls share one gRPC channel and may be issued from any thread.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        schema_cache: Optional[SchemaCache] = None,
        config_file: Optional[str] = None,
        **kwargs
    ) -> None:
        """Initialize the client and open its connection

        Args:
            uri: Service URI, e.g. http://localhost:19530
            token: API token, or "user:password"
            config: Client configuration object
            schema_cache: Cache of collection descriptions, may be shared between clients
            config_file: JSON, YAML or TOML configuration file
            **kwargs: Additional configuration parameters

        Raises:
            ValidationError: Invalid configuration
            ConnectError: The service could not be reached
        """
        if config is None:
            try:
                config = load_config(uri=uri, token=token, config_file=config_file, **kwargs)
            except ConfigValidationError as e:
                raise ValidationError(f"Invalid client configuration: {e}", field="config") from e
            except (ValueError, OSError, ImportError) as e:
                raise ValidationError(f"Could not load client configuration: {e}", field="config") from e

        self.config = config
        self._setup_logging()

        self._connection = Connection.open(config)
        self._executor = CallExecutor(CallPolicy.from_config(config))
        self._schema_cache = schema_cache if schema_cache is not None else InMemorySchemaCache()

        logger.info(f"Initialized Tessera client for {self._connection.endpoint}")

    def _setup_logging(self) -> None:
        """Setup logging configuration"""
        if self.config.enable_debug_logging:
            level = logging.DEBUG
        else:
            level = getattr(logging, self.config.log_level)

        logging.getLogger("tessera").setLevel(level)

    @property
    def db_name(self) -> str:
        return self._connection.config.db_name

    @property
    def server_info(self) -> ServerInfo:
        return ServerInfo(**self._connection.server_info)

    @property
    def closed(self) -> bool:
        return self._connection.closed

    @property
    def schema_cache(self) -> SchemaCache:
        return self._schema_cache

    def _policy(self, timeout: Optional[float]) -> CallPolicy:
        return self._executor.policy.with_overrides(timeout=timeout)

    def _call(self, request: RpcRequest, timeout: Optional[float] = None) -> Any:
        response = self._executor.execute(self._connection, request, self._policy(timeout))
        return decode_response(request, response)

    def _submit(self, request: RpcRequest, timeout: Optional[float] = None) -> CallHandle:
        return self._executor.submit(
            self._connection,
            request,
            self._policy(timeout),
            then=lambda response: decode_response(request, response),
        )

    def _cache_key(self, collection_name: str):
        return (self.db_name, collection_name)

    def _schema(self, collection_name: str, timeout: Optional[float] = None) -> CollectionSchema:
        return self.describe_collection(collection_name, timeout=timeout).collection_schema

    # Server

    def check_health(self, timeout: Optional[float] = None) -> HealthStatus:
        """Check service health"""
        return self._call(Prepare.check_health(), timeout)

    def get_version(self, timeout: Optional[float] = None) -> str:
        return self._call(Prepare.get_version(), timeout)

    # Collections

    def create_collection(
        self,
        collection_name: str,
        dimension: Optional[int] = None,
        schema: Optional[CollectionSchema] = None,
        primary_field_name: str = "id",
        vector_field_name: str = "vector",
        metric_type: str = "COSINE",
        auto_id: bool = False,
        consistency_level: Any = None,
        num_shards: int = 1,
        num_partitions: int = 0,
        properties: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Create a collection

        Either pass a full ``schema``, or only a ``dimension`` for the quick
        setup: an INT64 primary key plus one FLOAT_VECTOR field, indexed with
        AUTOINDEX and loaded.

        Example:
            >>> client = TesseraClient()
            >>> client.create_collection("products", dimension=128)
        """
        quick = schema is None
        if quick:
            if dimension is None:
                raise ValidationError("Provide either a schema or a dimension", field="dimension")
            schema = CollectionSchema(name=collection_name)
            schema.add_field(primary_field_name, DataType.INT64, is_primary=True, auto_id=auto_id)
            schema.add_field(vector_field_name, DataType.FLOAT_VECTOR, dim=dimension)
        elif not isinstance(schema, CollectionSchema):
            raise ValidationError("schema must be a CollectionSchema", field="schema")
        else:
            schema = schema.model_copy(update={"name": collection_name}, deep=True)

        request = Prepare.create_collection(
            schema,
            consistency_level=consistency_level,
            num_shards=num_shards,
            num_partitions=num_partitions,
            properties=properties,
            db_name=self.db_name,
        )
        self._call(request, timeout)
        self._schema_cache.invalidate(self._cache_key(collection_name))
        logger.info(f"Created collection {collection_name}")

        if quick:
            self.create_index(collection_name, vector_field_name, IndexType.AUTOINDEX, metric_type, timeout=timeout)
            self.load_collection(collection_name, timeout=timeout)

    def drop_collection(self, collection_name: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.drop_collection(collection_name, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(collection_name))
        logger.info(f"Dropped collection {collection_name}")

    def has_collection(self, collection_name: str, timeout: Optional[float] = None) -> bool:
        return self._call(Prepare.has_collection(collection_name, self.db_name), timeout)

    def describe_collection(self, collection_name: str, timeout: Optional[float] = None) -> CollectionDescription:
        """Describe a collection, served from the schema cache when present"""
        key = self._cache_key(collection_name)
        description = self._schema_cache.get(key)
        if description is None:
            description = self._call(Prepare.describe_collection(collection_name, self.db_name), timeout)
            self._schema_cache.put(key, description)
        return description

    def drop_cached_schema(self, collection_name: Optional[str] = None) -> None:
        """Forget the cached description of one collection, or of all collections of the current database"""
        if collection_name is None:
            self._schema_cache.clear(self.db_name)
        else:
            self._schema_cache.invalidate(self._cache_key(collection_name))

    def list_collections(self, timeout: Optional[float] = None) -> List[str]:
        return self._call(Prepare.list_collections(self.db_name), timeout)

    def rename_collection(
        self,
        old_name: str,
        new_name: str,
        new_db_name: str = "",
        timeout: Optional[float] = None,
    ) -> None:
        self._call(Prepare.rename_collection(old_name, new_name, new_db_name, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(old_name))
        self._schema_cache.invalidate((new_db_name or self.db_name, new_name))

    def alter_collection_properties(
        self,
        collection_name: str,
        properties: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> None:
        """Set collection properties such as ``collection.ttl.seconds`` or ``mmap.enabled``"""
        self._call(Prepare.alter_collection_properties(collection_name, properties, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(collection_name))

    def drop_collection_properties(
        self,
        collection_name: str,
        property_keys: List[str],
        timeout: Optional[float] = None,
    ) -> None:
        self._call(Prepare.drop_collection_properties(collection_name, property_keys, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(collection_name))

    def get_collection_stats(self, collection_name: str, timeout: Optional[float] = None) -> CollectionStats:
        return self._call(Prepare.get_collection_stats(collection_name, self.db_name), timeout)

    def load_collection(
        self,
        collection_name: str,
        replica_number: int = 1,
        wait: bool = True,
        load_timeout: float = 60.0,
        poll_interval: float = 0.2,
        timeout: Optional[float] = None,
    ) -> None:
        """Load a collection into memory

        Args:
            collection_name: Collection to load
            replica_number: Number of in-memory replicas
            wait: Block until the collection reports LOADED
            load_timeout: Maximum seconds to wait for LOADED
            poll_interval: Seconds between load state checks
            timeout: Per-attempt deadline override

        Raises:
            TimeoutError: The collection did not finish loading in time
        """
        self._call(Prepare.load_collection(collection_name, replica_number, self.db_name), timeout)
        if wait:
            self._wait_for_load(collection_name, None, load_timeout, poll_interval, timeout)

    def _wait_for_load(
        self,
        collection_name: str,
        partition_names: Optional[List[str]],
        load_timeout: float,
        poll_interval: float,
        timeout: Optional[float],
    ) -> None:
        deadline = time.monotonic() + load_timeout
        while True:
            state = self.get_load_state(collection_name, partition_names, timeout=timeout)
            if state == LoadState.LOADED:
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"Collection {collection_name} still {state.name} after {load_timeout}s",
                    scope="load",
                    timeout=load_timeout,
                    operation="load_collection",
                    collection_name=collection_name,
                )
            logger.debug(f"Waiting for {collection_name} to load, state {state.name}")
            time.sleep(poll_interval)

    def release_collection(self, collection_name: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.release_collection(collection_name, self.db_name), timeout)

    def get_load_state(
        self,
        collection_name: str,
        partition_names: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> LoadState:
        return self._call(Prepare.get_load_state(collection_name, partition_names, self.db_name), timeout)

    # Partitions

    def create_partition(self, collection_name: str, partition_name: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.create_partition(collection_name, partition_name, self.db_name), timeout)

    def drop_partition(self, collection_name: str, partition_name: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.drop_partition(collection_name, partition_name, self.db_name), timeout)

    def has_partition(self, collection_name: str, partition_name: str, timeout: Optional[float] = None) -> bool:
        return self._call(Prepare.has_partition(collection_name, partition_name, self.db_name), timeout)

    def list_partitions(self, collection_name: str, timeout: Optional[float] = None) -> List[str]:
        return self._call(Prepare.list_partitions(collection_name, self.db_name), timeout)

    def load_partitions(
        self,
        collection_name: str,
        partition_names: List[str],
        replica_number: int = 1,
        wait: bool = True,
        load_timeout: float = 60.0,
        poll_interval: float = 0.2,
        timeout: Optional[float] = None,
    ) -> None:
        request = Prepare.load_partitions(collection_name, partition_names, replica_number, self.db_name)
        self._call(request, timeout)
        if wait:
            self._wait_for_load(collection_name, partition_names, load_timeout, poll_interval, timeout)

    def release_partitions(self, collection_name: str, partition_names: List[str], timeout: Optional[float] = None) -> None:
        self._call(Prepare.release_partitions(collection_name, partition_names, self.db_name), timeout)

    # Indexes

    def create_index(
        self,
        collection_name: str,
        field_name: str,
        index_type: Union[IndexType, str] = IndexType.AUTOINDEX,
        metric_type: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        index_name: str = "",
        timeout: Optional[float] = None,
    ) -> None:
        """Build an index on a field

        Example:
            >>> client.create_index("products", "vector", "HNSW", "L2", {"M": 16, "efConstruction": 200})
        """
        request = Prepare.create_index(
            collection_name, field_name, index_type, metric_type, params, index_name, self.db_name,
        )
        self._call(request, timeout)

    def describe_index(
        self,
        collection_name: str,
        index_name: str = "",
        field_name: str = "",
        timeout: Optional[float] = None,
    ) -> List[IndexDescription]:
        return self._call(Prepare.describe_index(collection_name, index_name, field_name, self.db_name), timeout)

    def list_indexes(self, collection_name: str, timeout: Optional[float] = None) -> List[str]:
        return [d.index_name for d in self.describe_index(collection_name, timeout=timeout)]

    def drop_index(
        self,
        collection_name: str,
        index_name: str = "",
        field_name: str = "",
        timeout: Optional[float] = None,
    ) -> None:
        self._call(Prepare.drop_index(collection_name, index_name, field_name, self.db_name), timeout)

    def alter_index_properties(
        self,
        collection_name: str,
        index_name: str,
        properties: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> None:
        """Set properties of an existing index, e.g. {"mmap.enabled": True}"""
        self._call(Prepare.alter_index_properties(collection_name, index_name, properties, self.db_name), timeout)

    def drop_index_properties(
        self,
        collection_name: str,
        index_name: str,
        property_keys: List[str],
        timeout: Optional[float] = None,
    ) -> None:
        self._call(Prepare.drop_index_properties(collection_name, index_name, property_keys, self.db_name), timeout)

    # Data

    def _mutation_request(
        self,
        upsert: bool,
        collection_name: str,
        rows: Optional[Rows],
        columns: Optional[Sequence[Column]],
        partition_name: str,
        timeout: Optional[float],
    ) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        schema = self._schema(collection_name, timeout)
        build = Prepare.upsert if upsert else Prepare.insert
        return build(collection_name, schema, columns=columns, rows=rows,
                     partition_name=partition_name, db_name=self.db_name)

    def insert(
        self,
        collection_name: str,
        rows: Optional[Rows] = None,
        columns: Optional[Sequence[Column]] = None,
        partition_name: str = "",
        timeout: Optional[float] = None,
    ) -> MutationResult:
        """Insert rows or columns into a collection

        Args:
            collection_name: Target collection
            rows: Row dicts keyed by field name
            columns: Columns, one per field, all the same length
            partition_name: Optional target partition
            timeout: Per-attempt deadline override

        Returns:
            Primary keys and count of inserted rows

        Raises:
            ValidationError: Malformed input
            SchemaMismatchError: Input does not match the collection schema
        """
        request = self._mutation_request(False, collection_name, rows, columns, partition_name, timeout)
        return self._call(request, timeout)

    def insert_async(
        self,
        collection_name: str,
        rows: Optional[Rows] = None,
        columns: Optional[Sequence[Column]] = None,
        partition_name: str = "",
        timeout: Optional[float] = None,
    ) -> CallHandle:
        """Non-blocking insert, validation errors are raised before the handle is returned"""
        request = self._mutation_request(False, collection_name, rows, columns, partition_name, timeout)
        return self._submit(request, timeout)

    def upsert(
        self,
        collection_name: str,
        rows: Optional[Rows] = None,
        columns: Optional[Sequence[Column]] = None,
        partition_name: str = "",
        timeout: Optional[float] = None,
    ) -> MutationResult:
        """Insert or replace rows by primary key"""
        request = self._mutation_request(True, collection_name, rows, columns, partition_name, timeout)
        return self._call(request, timeout)

    def upsert_async(
        self,
        collection_name: str,
        rows: Optional[Rows] = None,
        columns: Optional[Sequence[Column]] = None,
        partition_name: str = "",
        timeout: Optional[float] = None,
    ) -> CallHandle:
        request = self._mutation_request(True, collection_name, rows, columns, partition_name, timeout)
        return self._submit(request, timeout)

    def _delete_request(
        self,
        collection_name: str,
        filter: Optional[str],
        ids: Any,
        partition_name: str,
        consistency_level: Any,
        timeout: Optional[float],
    ) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        # ids are turned into a filter on the primary key
        schema = self._schema(collection_name, timeout) if ids is not None and filter is None else None
        return Prepare.delete(collection_name, filter, ids, partition_name, consistency_level, schema, self.db_name)

    def delete(
        self,
        collection_name: str,
        filter: Optional[str] = None,
        ids: Any = None,
        partition_name: str = "",
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> MutationResult:
        """Delete entities matching a filter expression, or by primary keys

        Exactly one of ``filter`` and ``ids`` must be given.
        """
        request = self._delete_request(collection_name, filter, ids, partition_name, consistency_level, timeout)
        return self._call(request, timeout)

    def delete_async(
        self,
        collection_name: str,
        filter: Optional[str] = None,
        ids: Any = None,
        partition_name: str = "",
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> CallHandle:
        request = self._delete_request(collection_name, filter, ids, partition_name, consistency_level, timeout)
        return self._submit(request, timeout)

    def _search_request(self, collection_name: str, data: Any, timeout: Optional[float], **kwargs) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        schema = self._schema(collection_name, timeout)
        return Prepare.search(collection_name, schema, data, db_name=self.db_name, **kwargs)

    def search(
        self,
        collection_name: str,
        data: Any,
        anns_field: Optional[str] = None,
        limit: int = 10,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        metric_type: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        round_decimal: int = -1,
        group_by_field: Optional[str] = None,
        ignore_growing: bool = False,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Approximate nearest neighbour search

        Args:
            collection_name: Collection to search
            data: Query vectors, one per query
            anns_field: Vector field, inferred when the collection has exactly one
            limit: Hits per query, 1 to 16384
            filter: Boolean filter expression on scalar fields
            output_fields: Fields returned with each hit
            partition_names: Restrict the search to these partitions
            metric_type: Distance metric
            params: Search parameters, e.g. {"nprobe": 10} or {"radius": 0.5, "range_filter": 1.0}
            offset: Hits to skip, limit + offset must not exceed 16384
            round_decimal: Digits kept in distances, -1 keeps all
            group_by_field: Scalar field to group hits by
            ignore_growing: Skip growing segments
            consistency_level: Overrides the collection consistency level
            timeout: Per-attempt deadline override

        Returns:
            Hits per query, ordered by rank

        Example:
            >>> result = client.search("products", [[0.1, 0.2, 0.3, 0.4]], limit=5)
            >>> result[0][0].id, result[0][0].distance
        """
        request = self._search_request(
            collection_name, data, timeout,
            anns_field=anns_field, limit=limit, offset=offset, filter=filter, output_fields=output_fields,
            partition_names=partition_names, metric_type=metric_type, params=params,
            round_decimal=round_decimal, group_by_field=group_by_field, ignore_growing=ignore_growing,
            consistency_level=consistency_level,
        )
        return self._call(request, timeout)

    def search_async(
        self,
        collection_name: str,
        data: Any,
        anns_field: Optional[str] = None,
        limit: int = 10,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        metric_type: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        round_decimal: int = -1,
        group_by_field: Optional[str] = None,
        ignore_growing: bool = False,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> CallHandle:
        request = self._search_request(
            collection_name, data, timeout,
            anns_field=anns_field, limit=limit, offset=offset, filter=filter, output_fields=output_fields,
            partition_names=partition_names, metric_type=metric_type, params=params,
            round_decimal=round_decimal, group_by_field=group_by_field, ignore_growing=ignore_growing,
            consistency_level=consistency_level,
        )
        return self._submit(request, timeout)

    def _hybrid_search_request(
        self,
        collection_name: str,
        reqs: Sequence[AnnSearchRequest],
        ranker: BaseRanker,
        timeout: Optional[float],
        **kwargs
    ) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        schema = self._schema(collection_name, timeout)
        return Prepare.hybrid_search(collection_name, schema, reqs, ranker, db_name=self.db_name, **kwargs)

    def hybrid_search(
        self,
        collection_name: str,
        reqs: Sequence[AnnSearchRequest],
        ranker: BaseRanker,
        limit: int = 10,
        offset: int = 0,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        round_decimal: int = -1,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Run several vector searches and fuse their hits with a ranker

        Args:
            collection_name: Collection to search
            reqs: One AnnSearchRequest per vector search, all with the same number of queries
            ranker: RRFRanker or WeightedRanker
            limit: Fused hits per query, 1 to 16384
            offset: Fused hits to skip
            output_fields: Fields returned with each hit
            partition_names: Restrict every search to these partitions
            round_decimal: Digits kept in fused scores, -1 keeps all
            consistency_level: Overrides the collection consistency level
            timeout: Per-attempt deadline override

        Returns:
            Hits per query ordered by fused score, highest first

        Example:
            >>> reqs = [
            ...     AnnSearchRequest([[0.1, 0.2]], "dense", limit=20),
            ...     AnnSearchRequest([{3: 0.4}], "sparse", limit=20),
            ... ]
            >>> client.hybrid_search("docs", reqs, RRFRanker(), limit=5)
        """
        request = self._hybrid_search_request(
            collection_name, reqs, ranker, timeout,
            limit=limit, offset=offset, output_fields=output_fields, partition_names=partition_names,
            round_decimal=round_decimal, consistency_level=consistency_level,
        )
        return self._call(request, timeout)

    def hybrid_search_async(
        self,
        collection_name: str,
        reqs: Sequence[AnnSearchRequest],
        ranker: BaseRanker,
        limit: int = 10,
        offset: int = 0,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        round_decimal: int = -1,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> CallHandle:
        request = self._hybrid_search_request(
            collection_name, reqs, ranker, timeout,
            limit=limit, offset=offset, output_fields=output_fields, partition_names=partition_names,
            round_decimal=round_decimal, consistency_level=consistency_level,
        )
        return self._submit(request, timeout)

    def _query_request(
        self,
        collection_name: str,
        filter: Optional[str],
        ids: Any,
        output_fields: Optional[List[str]],
        partition_names: Optional[List[str]],
        limit: Optional[int],
        offset: Optional[int],
        consistency_level: Any,
        timeout: Optional[float],
    ) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        schema = self._schema(collection_name, timeout)
        return Prepare.query(
            collection_name, schema, filter, ids, output_fields, partition_names,
            limit, offset, consistency_level, self.db_name,
        )

    def query(
        self,
        collection_name: str,
        filter: Optional[str] = None,
        ids: Any = None,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> QueryResult:
        """Fetch entities matching a filter expression or primary keys"""
        request = self._query_request(
            collection_name, filter, ids, output_fields, partition_names, limit, offset, consistency_level, timeout,
        )
        return self._call(request, timeout)

    def query_async(
        self,
        collection_name: str,
        filter: Optional[str] = None,
        ids: Any = None,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> CallHandle:
        request = self._query_request(
            collection_name, filter, ids, output_fields, partition_names, limit, offset, consistency_level, timeout,
        )
        return self._submit(request, timeout)

    def get(
        self,
        collection_name: str,
        ids: Any,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch entities by primary key"""
        result = self.query(
            collection_name, ids=ids, output_fields=output_fields, partition_names=partition_names, timeout=timeout,
        )
        return result.rows

    def query_iterator(
        self,
        collection_name: str,
        batch_size: int = 1000,
        limit: Optional[int] = None,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        offset: int = 0,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> QueryIterator:
        """Iterate over matching entities in primary key ordered batches, see QueryIterator"""
        return QueryIterator(
            self, collection_name, batch_size, limit, filter, output_fields, partition_names, offset,
            consistency_level, timeout,
        )

    def flush(self, collection_names: Union[str, List[str]], timeout: Optional[float] = None) -> FlushResult:
        """Seal growing segments of the given collections"""
        return self._call(Prepare.flush(collection_names, self.db_name), timeout)

    # Aliases

    def create_alias(self, collection_name: str, alias: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.create_alias(collection_name, alias, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(alias))

    def drop_alias(self, alias: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.drop_alias(alias, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(alias))

    def alter_alias(self, collection_name: str, alias: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.alter_alias(collection_name, alias, self.db_name), timeout)
        self._schema_cache.invalidate(self._cache_key(alias))

    def list_aliases(self, collection_name: str = "", timeout: Optional[float] = None) -> List[str]:
        return self._call(Prepare.list_aliases(collection_name, self.db_name), timeout)

    # Databases

    def create_database(self, db_name: str, properties: Optional[Dict[str, Any]] = None,
                        timeout: Optional[float] = None) -> None:
        self._call(Prepare.create_database(db_name, properties), timeout)

    def drop_database(self, db_name: str, timeout: Optional[float] = None) -> None:
        self._call(Prepare.drop_database(db_name), timeout)
        self._schema_cache.clear(db_name)

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        return self._call(Prepare.list_databases(), timeout)

    def use_database(self, db_name: str) -> None:
        """Rebind the session to another database, reconnecting the channel"""
        check_name(db_name, "db_name", "Database name")
        self._connection.use_database(db_name)
        logger.info(f"Using database {db_name}")

    def close(self) -> None:
        """Close the client, cancelling in-flight calls"""
        self._connection.close()

    def __enter__(self) -> "TesseraClient":
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit"""
        self.close()

    def __repr__(self) -> str:
        return f"TesseraClient(endpoint={self._connection.endpoint!r}, db_name={self.db_name!r})"


# Convenience functions
def connect(
    uri: Optional[str] = None,
    token: Optional[str] = None,
    **kwargs
) -> TesseraClient:
    """Create a Tessera client with simplified parameters"""
    return TesseraClient(uri=uri, token=token, **kwargs)
