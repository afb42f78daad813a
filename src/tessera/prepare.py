"""
Tessera Python Client - Request builders

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

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

import numpy as np

from . import codec, protocol
from .column import Column
from .exceptions import ValidationError
from .executor import RpcRequest
from .ranker import AnnSearchRequest, BaseRanker
from .schema import CollectionSchema, FieldSchema, check_name, rows_to_columns, validate_columns
from .types import (
    DEFAULT_CONSISTENCY_LEVEL,
    MAX_TOPK,
    ConsistencyLevel,
    DataType,
    IndexType,
    MetricType,
)

logger = logging.getLogger(__name__)

ScalarParam = Union[str, int, float, bool]


def _request(
    method: str,
    body: Dict[str, Any],
    operation: str,
    collection_name: Optional[str] = None,
    idempotent: bool = True,
    **context
) -> RpcRequest:
    payload = protocol.serialize(protocol.METHODS[method].request, body)
    return RpcRequest(
        method=method,
        payload=payload,
        operation=operation,
        collection_name=collection_name,
        idempotent=idempotent,
        context=context,
    )


def _consistency(value: Any) -> Optional[ConsistencyLevel]:
    """Resolve a consistency level given as enum, int or name"""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            return ConsistencyLevel[value.upper()]
        except KeyError:
            raise ValidationError(f"Unknown consistency level '{value}'", field="consistency_level") from None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Invalid consistency level {value!r}", field="consistency_level")
    try:
        return ConsistencyLevel(value)
    except ValueError:
        raise ValidationError(f"Unknown consistency level {value}", field="consistency_level") from None


def _enum_value(enum: Type[Enum], value: Any, field: str) -> str:
    if isinstance(value, enum):
        return value.value
    if isinstance(value, str):
        try:
            return enum(value).value
        except ValueError:
            try:
                return enum[value.upper()].value
            except KeyError:
                pass
    raise ValidationError(f"Unknown {field} {value!r}", field=field)


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer, got {value!r}", field=field)
    return value


def _string_map(value: Optional[Dict[str, Any]], field: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be a dict", field=field)
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


def _names(values: Any, field: str, kind: str, allow_empty: bool = True) -> List[str]:
    if values is None:
        values = []
    elif isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list of names", field=field)
    if not values and not allow_empty:
        raise ValidationError(f"{field} must not be empty", field=field)
    return [check_name(v, field, kind) for v in values]


def _output_fields(values: Optional[Sequence[str]]) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ValidationError("output_fields must be a list of field names", field="output_fields")
    for value in values:
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Invalid output field {value!r}", field="output_fields")
    return list(values)


def _ids_expression(schema: Optional[CollectionSchema], ids: Any) -> str:
    """Build ``<pk> in [...]`` from a list of primary keys"""
    if schema is None or schema.primary_field is None:
        raise ValidationError("A schema with a primary key is required to filter by ids", field="ids")
    pk = schema.primary_field
    if isinstance(ids, (str, int, np.integer)) and not isinstance(ids, bool):
        ids = [ids]
    if isinstance(ids, np.ndarray):
        ids = ids.tolist()
    if not isinstance(ids, (list, tuple)) or not ids:
        raise ValidationError("ids must be a non-empty list", field="ids")

    keys = []
    for value in ids:
        if pk.data_type == DataType.INT64:
            if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
                raise ValidationError(f"Primary key '{pk.name}' is INT64, got {value!r}", field="ids")
            keys.append(int(value))
        else:
            if not isinstance(value, str):
                raise ValidationError(f"Primary key '{pk.name}' is VARCHAR, got {value!r}", field="ids")
            keys.append(value)
    return f"{pk.name} in {json.dumps(keys, ensure_ascii=False)}"


def _filter_or_ids(schema: Optional[CollectionSchema], filter: Optional[str], ids: Any, required: bool) -> str:
    if filter is not None and ids is not None:
        raise ValidationError("Ambiguous filter parameter, provide either filter or ids", field="filter")
    if ids is not None:
        return _ids_expression(schema, ids)
    if filter is None:
        if required:
            raise ValidationError("Ambiguous filter parameter, provide either filter or ids", field="filter")
        return ""
    if not isinstance(filter, str):
        raise ValidationError(f"filter must be a string, got {type(filter).__name__}", field="filter")
    if required and not filter.strip():
        raise ValidationError("filter must not be empty", field="filter")
    return filter


class Prepare:
    """Builds validated, encoded requests for every service method.

    Every builder raises ValidationError (or SchemaMismatchError for payload
    versus schema problems) before anything is sent.
    """

    # Server

    @classmethod
    def check_health(cls) -> RpcRequest:
        return _request("CheckHealth", {}, "check_health")

    @classmethod
    def get_version(cls) -> RpcRequest:
        return _request("GetVersion", {}, "get_version")

    # Collections

    @classmethod
    def create_collection(
        cls,
        schema: CollectionSchema,
        consistency_level: Any = None,
        num_shards: int = 1,
        num_partitions: int = 0,
        properties: Optional[Dict[str, Any]] = None,
        db_name: str = "",
    ) -> RpcRequest:
        """
        Build a CreateCollection request.

        Args:
            schema: Collection schema, its name is the collection name
            consistency_level: Default consistency level of the collection
            num_shards: Number of shards
            num_partitions: Number of partitions when the schema has a partition key
            properties: Collection properties
            db_name: Target database

        Returns:
            Encoded request
        """
        if not isinstance(schema, CollectionSchema):
            raise ValidationError("schema must be a CollectionSchema", field="schema")
        check_name(schema.name, "collection_name", "Collection name")
        schema.check()
        level = _consistency(consistency_level)
        if level is None:
            level = schema.consistency_level
        _positive_int(num_shards, "num_shards")
        if isinstance(num_partitions, bool) or not isinstance(num_partitions, int) or num_partitions < 0:
            raise ValidationError("num_partitions must be a non-negative integer", field="num_partitions")

        body = {
            "db_name": db_name,
            "collection_name": schema.name,
            "schema": codec.encode_schema(schema),
            "shards_num": num_shards,
            "consistency_level": int(level),
            "num_partitions": num_partitions,
            "properties": _string_map(properties, "properties"),
        }
        return _request("CreateCollection", body, "create_collection", schema.name, idempotent=False)

    @classmethod
    def _collection(cls, method: str, operation: str, collection_name: str, db_name: str, idempotent: bool = True) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {"db_name": db_name, "collection_name": collection_name}
        return _request(method, body, operation, collection_name, idempotent=idempotent)

    @classmethod
    def drop_collection(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("DropCollection", "drop_collection", collection_name, db_name, idempotent=False)

    @classmethod
    def has_collection(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("HasCollection", "has_collection", collection_name, db_name)

    @classmethod
    def describe_collection(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("DescribeCollection", "describe_collection", collection_name, db_name)

    @classmethod
    def get_collection_stats(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("GetCollectionStatistics", "get_collection_stats", collection_name, db_name)

    @classmethod
    def release_collection(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("ReleaseCollection", "release_collection", collection_name, db_name)

    @classmethod
    def list_collections(cls, db_name: str = "") -> RpcRequest:
        return _request("ShowCollections", {"db_name": db_name}, "list_collections")

    @classmethod
    def rename_collection(cls, old_name: str, new_name: str, new_db_name: str = "", db_name: str = "") -> RpcRequest:
        check_name(old_name, "old_name", "Collection name")
        check_name(new_name, "new_name", "Collection name")
        if new_db_name:
            check_name(new_db_name, "new_db_name", "Database name")
        body = {"db_name": db_name, "old_name": old_name, "new_name": new_name, "new_db_name": new_db_name}
        return _request("RenameCollection", body, "rename_collection", old_name, idempotent=False)

    @classmethod
    def load_collection(cls, collection_name: str, replica_number: int = 1, db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "replica_number": _positive_int(replica_number, "replica_number"),
        }
        return _request("LoadCollection", body, "load_collection", collection_name)

    @classmethod
    def get_load_state(cls, collection_name: str, partition_names: Optional[List[str]] = None, db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_names": _names(partition_names, "partition_names", "Partition name"),
        }
        return _request("GetLoadState", body, "get_load_state", collection_name)

    @classmethod
    def _properties(cls, properties: Optional[Dict[str, Any]], delete_keys: Optional[List[str]]) -> Dict[str, Any]:
        props = _string_map(properties, "properties")
        if delete_keys is None:
            keys = []
        elif isinstance(delete_keys, str) or not isinstance(delete_keys, (list, tuple)):
            raise ValidationError("delete_keys must be a list of property names", field="delete_keys")
        else:
            keys = list(delete_keys)
        for key in list(props) + keys:
            if not isinstance(key, str) or not key.strip():
                raise ValidationError(f"Property name {key!r} must be a non-empty string", field="properties")
        if not props and not keys:
            raise ValidationError("Provide properties to set or keys to delete", field="properties")
        return {"properties": props, "delete_keys": keys}

    @classmethod
    def alter_collection_properties(cls, collection_name: str, properties: Dict[str, Any], db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {"db_name": db_name, "collection_name": collection_name, **cls._properties(properties, None)}
        return _request("AlterCollection", body, "alter_collection_properties", collection_name)

    @classmethod
    def drop_collection_properties(cls, collection_name: str, property_keys: List[str], db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {"db_name": db_name, "collection_name": collection_name, **cls._properties(None, property_keys)}
        return _request("AlterCollection", body, "drop_collection_properties", collection_name)

    # Partitions

    @classmethod
    def _partition(cls, method: str, operation: str, collection_name: str, partition_name: str, db_name: str,
                   idempotent: bool = True) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        check_name(partition_name, "partition_name", "Partition name")
        body = {"db_name": db_name, "collection_name": collection_name, "partition_name": partition_name}
        return _request(method, body, operation, collection_name, idempotent=idempotent)

    @classmethod
    def create_partition(cls, collection_name: str, partition_name: str, db_name: str = "") -> RpcRequest:
        return cls._partition("CreatePartition", "create_partition", collection_name, partition_name, db_name, idempotent=False)

    @classmethod
    def drop_partition(cls, collection_name: str, partition_name: str, db_name: str = "") -> RpcRequest:
        return cls._partition("DropPartition", "drop_partition", collection_name, partition_name, db_name, idempotent=False)

    @classmethod
    def has_partition(cls, collection_name: str, partition_name: str, db_name: str = "") -> RpcRequest:
        return cls._partition("HasPartition", "has_partition", collection_name, partition_name, db_name)

    @classmethod
    def list_partitions(cls, collection_name: str, db_name: str = "") -> RpcRequest:
        return cls._collection("ShowPartitions", "list_partitions", collection_name, db_name)

    @classmethod
    def _partitions(cls, method: str, operation: str, collection_name: str, partition_names: List[str],
                    replica_number: int, db_name: str) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_names": _names(partition_names, "partition_names", "Partition name", allow_empty=False),
            "replica_number": _positive_int(replica_number, "replica_number"),
        }
        return _request(method, body, operation, collection_name)

    @classmethod
    def load_partitions(cls, collection_name: str, partition_names: List[str], replica_number: int = 1,
                        db_name: str = "") -> RpcRequest:
        return cls._partitions("LoadPartitions", "load_partitions", collection_name, partition_names, replica_number, db_name)

    @classmethod
    def release_partitions(cls, collection_name: str, partition_names: List[str], db_name: str = "") -> RpcRequest:
        return cls._partitions("ReleasePartitions", "release_partitions", collection_name, partition_names, 1, db_name)

    # Indexes

    @classmethod
    def create_index(
        cls,
        collection_name: str,
        field_name: str,
        index_type: Any = IndexType.AUTOINDEX,
        metric_type: Any = None,
        params: Optional[Dict[str, Any]] = None,
        index_name: str = "",
        db_name: str = "",
    ) -> RpcRequest:
        """
        Build a CreateIndex request.

        ``index_type``, ``metric_type`` and the JSON encoded ``params`` travel
        in the extra_params map.
        """
        check_name(collection_name, "collection_name", "Collection name")
        check_name(field_name, "field_name", "Field name")
        if index_name:
            check_name(index_name, "index_name", "Index name")
        if params is not None and not isinstance(params, dict):
            raise ValidationError("Index params must be a dict", field="params")

        extra_params = {"index_type": _enum_value(IndexType, index_type, "index_type")}
        if metric_type is not None:
            extra_params["metric_type"] = _enum_value(MetricType, metric_type, "metric_type")
        extra_params["params"] = json.dumps(params or {})

        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "field_name": field_name,
            "index_name": index_name,
            "extra_params": extra_params,
        }
        return _request("CreateIndex", body, "create_index", collection_name, idempotent=False)

    @classmethod
    def _index(cls, method: str, operation: str, collection_name: str, index_name: str, field_name: str,
               db_name: str, idempotent: bool = True) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        if index_name:
            check_name(index_name, "index_name", "Index name")
        if field_name:
            check_name(field_name, "field_name", "Field name")
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "field_name": field_name or "",
            "index_name": index_name or "",
        }
        return _request(method, body, operation, collection_name, idempotent=idempotent)

    @classmethod
    def describe_index(cls, collection_name: str, index_name: str = "", field_name: str = "", db_name: str = "") -> RpcRequest:
        return cls._index("DescribeIndex", "describe_index", collection_name, index_name, field_name, db_name)

    @classmethod
    def drop_index(cls, collection_name: str, index_name: str = "", field_name: str = "", db_name: str = "") -> RpcRequest:
        if not index_name and not field_name:
            raise ValidationError("Provide index_name or field_name", field="index_name")
        return cls._index("DropIndex", "drop_index", collection_name, index_name, field_name, db_name, idempotent=False)

    @classmethod
    def _alter_index(cls, operation: str, collection_name: str, index_name: str, properties: Optional[Dict[str, Any]],
                     delete_keys: Optional[List[str]], db_name: str) -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        check_name(index_name, "index_name", "Index name")
        changes = cls._properties(properties, delete_keys)
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "index_name": index_name,
            "extra_params": changes["properties"],
            "delete_keys": changes["delete_keys"],
        }
        return _request("AlterIndex", body, operation, collection_name)

    @classmethod
    def alter_index_properties(cls, collection_name: str, index_name: str, properties: Dict[str, Any],
                               db_name: str = "") -> RpcRequest:
        return cls._alter_index("alter_index_properties", collection_name, index_name, properties, None, db_name)

    @classmethod
    def drop_index_properties(cls, collection_name: str, index_name: str, property_keys: List[str],
                              db_name: str = "") -> RpcRequest:
        return cls._alter_index("drop_index_properties", collection_name, index_name, None, property_keys, db_name)

    # Data

    @classmethod
    def _mutation(
        cls,
        method: str,
        collection_name: str,
        schema: CollectionSchema,
        columns: Optional[Sequence[Column]],
        rows: Optional[Sequence[Dict[str, Any]]],
        partition_name: str,
        db_name: str,
    ) -> RpcRequest:
        is_upsert = method == "Upsert"
        operation = method.lower()
        check_name(collection_name, "collection_name", "Collection name")
        if partition_name:
            check_name(partition_name, "partition_name", "Partition name")
        if not isinstance(schema, CollectionSchema):
            raise ValidationError("schema must be a CollectionSchema", field="schema")
        if (columns is None) == (rows is None):
            raise ValidationError("Provide exactly one of columns or rows", field="columns")

        if rows is not None:
            columns = rows_to_columns(schema, rows, is_upsert)
        else:
            if isinstance(columns, Column) or not isinstance(columns, (list, tuple)):
                raise ValidationError("columns must be a list of Column", field="columns")
            for column in columns:
                if not isinstance(column, Column):
                    raise ValidationError(f"Expected a Column, got {type(column).__name__}", field="columns")

        num_rows = validate_columns(schema, columns, is_upsert)
        batch = codec.encode(schema, columns)

        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_name": partition_name or "",
            "fields_data": batch["fields_data"],
            "num_rows": num_rows,
        }
        primary = schema.primary_field
        # resending rows with service generated keys would duplicate them
        idempotent = is_upsert or primary is None or not primary.auto_id
        logger.debug(f"Prepared {operation} of {num_rows} rows into {collection_name}")
        return _request(method, body, operation, collection_name, idempotent=idempotent,
                        schema=schema, num_rows=num_rows)

    @classmethod
    def insert(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        columns: Optional[Sequence[Column]] = None,
        rows: Optional[Sequence[Dict[str, Any]]] = None,
        partition_name: str = "",
        db_name: str = "",
    ) -> RpcRequest:
        """
        Build an Insert request from either columns or row dicts.

        Args:
            collection_name: Target collection
            schema: Schema the payload is validated against
            columns: Column list, one per field
            rows: Row dicts keyed by field name
            partition_name: Optional target partition
            db_name: Target database

        Returns:
            Encoded request

        Raises:
            ValidationError: Malformed input or misaligned columns
            SchemaMismatchError: Payload does not match the schema
        """
        return cls._mutation("Insert", collection_name, schema, columns, rows, partition_name, db_name)

    @classmethod
    def upsert(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        columns: Optional[Sequence[Column]] = None,
        rows: Optional[Sequence[Dict[str, Any]]] = None,
        partition_name: str = "",
        db_name: str = "",
    ) -> RpcRequest:
        """Same as insert, primary keys are always supplied"""
        return cls._mutation("Upsert", collection_name, schema, columns, rows, partition_name, db_name)

    @classmethod
    def delete(
        cls,
        collection_name: str,
        filter: Optional[str] = None,
        ids: Any = None,
        partition_name: str = "",
        consistency_level: Any = None,
        schema: Optional[CollectionSchema] = None,
        db_name: str = "",
    ) -> RpcRequest:
        """Build a Delete request from a filter expression or a list of primary keys"""
        check_name(collection_name, "collection_name", "Collection name")
        if partition_name:
            check_name(partition_name, "partition_name", "Partition name")
        expr = _filter_or_ids(schema, filter, ids, required=True)
        level = _consistency(consistency_level)
        if level is None:
            level = DEFAULT_CONSISTENCY_LEVEL
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_name": partition_name or "",
            "expr": expr,
            "consistency_level": int(level),
        }
        return _request("Delete", body, "delete", collection_name)

    @classmethod
    def _anns_field(cls, schema: CollectionSchema, anns_field: Optional[str]) -> FieldSchema:
        if anns_field is None:
            vector_fields = schema.vector_fields
            if len(vector_fields) != 1:
                raise ValidationError(
                    f"anns_field is required when the collection has {len(vector_fields)} vector fields",
                    field="anns_field",
                )
            return vector_fields[0]
        field = schema.get_field(anns_field)
        if field is None or not field.data_type.is_vector:
            raise ValidationError(f"'{anns_field}' is not a vector field of the collection", field="anns_field")
        return field

    @classmethod
    def _search_vectors(cls, field: FieldSchema, data: Any) -> Column:
        if isinstance(data, np.ndarray):
            if data.ndim != 2:
                raise ValidationError(f"Search data must be a 2-D array, got shape {data.shape}", field="data")
        elif isinstance(data, (str, bytes, dict)) or not isinstance(data, (list, tuple)):
            raise ValidationError("Search data must be a list of vectors", field="data")
        if len(data) == 0:
            raise ValidationError("Search data must not be empty", field="data")

        try:
            vectors = Column(field.name, field.data_type, data)
        except ValidationError as e:
            raise ValidationError(f"Invalid search data: {e.message}", field="data") from e
        if vectors.null_count:
            raise ValidationError("Search data must not contain null vectors", field="data")
        if field.data_type.is_dense_vector:
            widths = {len(v) * 8 if field.data_type == DataType.BINARY_VECTOR else len(v) for v in vectors}
            if widths != {field.dim}:
                raise ValidationError(
                    f"Search vectors have dim {sorted(widths)}, field '{field.name}' expects {field.dim}",
                    field="data",
                )
        return vectors

    @classmethod
    def search(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        data: Any,
        anns_field: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        metric_type: Any = None,
        params: Optional[Dict[str, ScalarParam]] = None,
        round_decimal: int = -1,
        group_by_field: Optional[str] = None,
        ignore_growing: bool = False,
        consistency_level: Any = None,
        db_name: str = "",
    ) -> RpcRequest:
        """
        Build a Search request.

        Args:
            collection_name: Target collection
            schema: Collection schema used to resolve and check the vector field
            data: Query vectors, one per query
            anns_field: Vector field to search, inferred when there is only one
            limit: Hits per query, 1 to 16384
            offset: Hits to skip, limit + offset must not exceed 16384
            filter: Boolean filter expression
            output_fields: Fields returned with each hit
            partition_names: Partitions to search
            metric_type: Distance metric, defaults to the index metric
            params: Index specific search parameters (nprobe, ef, radius, range_filter, ...)
            round_decimal: Digits kept in distances, -1 keeps all
            group_by_field: Scalar field to group hits by
            ignore_growing: Skip growing segments
            consistency_level: Overrides the collection consistency level

        Returns:
            Encoded request
        """
        check_name(collection_name, "collection_name", "Collection name")
        if not isinstance(schema, CollectionSchema):
            raise ValidationError("schema must be a CollectionSchema", field="schema")
        cls._check_page(limit, offset)
        if isinstance(round_decimal, bool) or not isinstance(round_decimal, int) or not -1 <= round_decimal <= 6:
            raise ValidationError("round_decimal must be an integer in [-1, 6]", field="round_decimal")

        body, nq = cls._search_body(
            collection_name, schema, data, anns_field, limit, filter, partition_names, metric_type, params,
            db_name,
        )
        body["search_params"]["round_decimal"] = str(round_decimal)
        body["search_params"]["ignore_growing"] = json.dumps(bool(ignore_growing))
        if offset:
            body["search_params"]["offset"] = str(offset)
        if group_by_field is not None:
            check_name(group_by_field, "group_by_field", "Field name")
            body["search_params"]["group_by_field"] = group_by_field

        level = _consistency(consistency_level)
        output = _output_fields(output_fields)
        body.update({
            "output_fields": output,
            "consistency_level": int(level if level is not None else DEFAULT_CONSISTENCY_LEVEL),
            "use_default_consistency": level is None,
        })
        return _request("Search", body, "search", collection_name,
                        schema=schema, nq=nq, limit=limit, output_fields=output)

    @classmethod
    def _check_page(cls, limit: Any, offset: Any) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_TOPK:
            raise ValidationError(f"limit must be an integer in [1, {MAX_TOPK}], got {limit!r}", field="limit")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError(f"offset must be a non-negative integer, got {offset!r}", field="offset")
        if limit + offset > MAX_TOPK:
            raise ValidationError(f"limit + offset must not exceed {MAX_TOPK}", field="offset")

    @classmethod
    def _search_body(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        data: Any,
        anns_field: Optional[str],
        limit: int,
        filter: str,
        partition_names: Optional[List[str]],
        metric_type: Any,
        params: Optional[Dict[str, ScalarParam]],
        db_name: str,
    ) -> Tuple[Dict[str, Any], int]:
        """SearchRequest body shared by plain and hybrid search, with the query count"""
        if not isinstance(filter, str):
            raise ValidationError(f"filter must be a string, got {type(filter).__name__}", field="filter")
        params = params or {}
        if not isinstance(params, dict):
            raise ValidationError("Search params must be a dict", field="params")
        for key, value in params.items():
            if not isinstance(key, str) or not isinstance(value, (str, int, float, bool)):
                raise ValidationError(f"Search param {key!r} must map a string to a scalar", field="params")

        field = cls._anns_field(schema, anns_field)
        vectors = cls._search_vectors(field, data)
        nq = len(vectors)

        search_params = {
            "topk": str(limit),
            "anns_field": field.name,
            "params": json.dumps(params),
        }
        if metric_type is not None:
            search_params["metric_type"] = _enum_value(MetricType, metric_type, "metric_type")

        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_names": _names(partition_names, "partition_names", "Partition name"),
            "dsl": filter,
            "placeholder_group": codec.encode_placeholder(field.data_type, vectors.values, field.dim or 0),
            "search_params": search_params,
            "nq": nq,
        }
        return body, nq

    @classmethod
    def hybrid_search(
        cls,
        collection_name: str,
        schema: CollectionSchema,
        reqs: Sequence[AnnSearchRequest],
        ranker: BaseRanker,
        limit: int = 10,
        offset: int = 0,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        round_decimal: int = -1,
        consistency_level: Any = None,
        db_name: str = "",
    ) -> RpcRequest:
        """
        Build a HybridSearch request.

        Each AnnSearchRequest becomes one SearchRequest sharing the partitions
        of the hybrid search. The service fuses the per-request hits with the
        ranker and keeps ``limit`` hits per query.

        Args:
            collection_name: Target collection
            schema: Collection schema used to resolve and check each vector field
            reqs: Vector searches to fuse, all with the same number of queries
            ranker: RRFRanker or WeightedRanker
            limit: Fused hits per query, 1 to 16384
            offset: Fused hits to skip
            output_fields: Fields returned with each hit
            partition_names: Partitions to search
            round_decimal: Digits kept in scores, -1 keeps all
            consistency_level: Overrides the collection consistency level

        Returns:
            Encoded request
        """
        check_name(collection_name, "collection_name", "Collection name")
        if not isinstance(schema, CollectionSchema):
            raise ValidationError("schema must be a CollectionSchema", field="schema")
        if isinstance(reqs, AnnSearchRequest) or not isinstance(reqs, (list, tuple)) or not reqs:
            raise ValidationError("Hybrid search requires a non-empty list of AnnSearchRequest", field="reqs")
        if not all(isinstance(req, AnnSearchRequest) for req in reqs):
            raise ValidationError("Hybrid search requests must be AnnSearchRequest instances", field="reqs")
        if not isinstance(ranker, BaseRanker):
            raise ValidationError("ranker must be an RRFRanker or a WeightedRanker", field="ranker")
        ranker.check(len(reqs))
        cls._check_page(limit, offset)
        if isinstance(round_decimal, bool) or not isinstance(round_decimal, int) or not -1 <= round_decimal <= 6:
            raise ValidationError("round_decimal must be an integer in [-1, 6]", field="round_decimal")

        partitions = _names(partition_names, "partition_names", "Partition name")
        level = _consistency(consistency_level)
        consistency = {
            "consistency_level": int(level if level is not None else DEFAULT_CONSISTENCY_LEVEL),
            "use_default_consistency": level is None,
        }

        requests = []
        counts = set()
        for req in reqs:
            if isinstance(req.limit, bool) or not isinstance(req.limit, int) or not 1 <= req.limit <= MAX_TOPK:
                raise ValidationError(
                    f"limit of the search on '{req.anns_field}' must be an integer in [1, {MAX_TOPK}]",
                    field="reqs",
                )
            if req.anns_field is None:
                raise ValidationError("Every hybrid search request names its anns_field", field="anns_field")
            body, nq = cls._search_body(
                collection_name, schema, req.data, req.anns_field, req.limit, req.filter, partitions,
                req.metric_type, req.params, db_name,
            )
            body.update(consistency)
            requests.append(body)
            counts.add(nq)
        if len(counts) != 1:
            raise ValidationError(
                f"Hybrid search requests carry different numbers of queries: {sorted(counts)}",
                field="reqs",
            )
        nq = counts.pop()

        rank_params = ranker.rank_params()
        rank_params["limit"] = str(limit)
        rank_params["round_decimal"] = str(round_decimal)
        if offset:
            rank_params["offset"] = str(offset)

        output = _output_fields(output_fields)
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "partition_names": partitions,
            "requests": requests,
            "rank_params": rank_params,
            "output_fields": output,
            **consistency,
        }
        return _request("HybridSearch", body, "hybrid_search", collection_name,
                        schema=schema, nq=nq, limit=limit, output_fields=output)

    @classmethod
    def query(
        cls,
        collection_name: str,
        schema: Optional[CollectionSchema] = None,
        filter: Optional[str] = None,
        ids: Any = None,
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        consistency_level: Any = None,
        db_name: str = "",
        iterator: bool = False,
    ) -> RpcRequest:
        """Build a Query request. Needs a filter, ids or a limit.

        With ``iterator`` set the service returns rows in primary key order,
        which QueryIterator relies on to page with a key cursor.
        """
        check_name(collection_name, "collection_name", "Collection name")
        expr = _filter_or_ids(schema, filter, ids, required=False)

        query_params = {}
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_TOPK:
                raise ValidationError(f"limit must be an integer in [1, {MAX_TOPK}], got {limit!r}", field="limit")
            query_params["limit"] = str(limit)
        if offset is not None:
            if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
                raise ValidationError(f"offset must be a non-negative integer, got {offset!r}", field="offset")
            if (limit or 0) + offset > MAX_TOPK:
                raise ValidationError(f"limit + offset must not exceed {MAX_TOPK}", field="offset")
            query_params["offset"] = str(offset)
        if iterator:
            query_params["iterator"] = "true"
        if not expr.strip() and limit is None:
            raise ValidationError("Query requires a filter, ids or a limit", field="filter")

        level = _consistency(consistency_level)
        output = _output_fields(output_fields)
        body = {
            "db_name": db_name,
            "collection_name": collection_name,
            "expr": expr,
            "output_fields": output,
            "partition_names": _names(partition_names, "partition_names", "Partition name"),
            "query_params": query_params,
            "consistency_level": int(level if level is not None else DEFAULT_CONSISTENCY_LEVEL),
            "use_default_consistency": level is None,
        }
        return _request("Query", body, "query", collection_name, schema=schema, output_fields=output)

    @classmethod
    def flush(cls, collection_names: Union[str, List[str]], db_name: str = "") -> RpcRequest:
        names = _names(collection_names, "collection_names", "Collection name", allow_empty=False)
        body = {"db_name": db_name, "collection_names": names}
        return _request("Flush", body, "flush", names[0] if len(names) == 1 else None)

    # Aliases

    @classmethod
    def _alias(cls, method: str, operation: str, collection_name: str, alias: str, db_name: str) -> RpcRequest:
        if collection_name:
            check_name(collection_name, "collection_name", "Collection name")
        check_name(alias, "alias", "Alias")
        body = {"db_name": db_name, "collection_name": collection_name or "", "alias": alias}
        return _request(method, body, operation, collection_name or None, idempotent=False)

    @classmethod
    def create_alias(cls, collection_name: str, alias: str, db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        return cls._alias("CreateAlias", "create_alias", collection_name, alias, db_name)

    @classmethod
    def drop_alias(cls, alias: str, db_name: str = "") -> RpcRequest:
        return cls._alias("DropAlias", "drop_alias", "", alias, db_name)

    @classmethod
    def alter_alias(cls, collection_name: str, alias: str, db_name: str = "") -> RpcRequest:
        check_name(collection_name, "collection_name", "Collection name")
        return cls._alias("AlterAlias", "alter_alias", collection_name, alias, db_name)

    @classmethod
    def list_aliases(cls, collection_name: str = "", db_name: str = "") -> RpcRequest:
        if collection_name:
            check_name(collection_name, "collection_name", "Collection name")
        body = {"db_name": db_name, "collection_name": collection_name or ""}
        return _request("ListAliases", body, "list_aliases", collection_name or None)

    # Databases

    @classmethod
    def create_database(cls, db_name: str, properties: Optional[Dict[str, Any]] = None) -> RpcRequest:
        check_name(db_name, "db_name", "Database name")
        body = {"db_name": db_name, "properties": _string_map(properties, "properties")}
        return _request("CreateDatabase", body, "create_database", idempotent=False)

    @classmethod
    def drop_database(cls, db_name: str) -> RpcRequest:
        check_name(db_name, "db_name", "Database name")
        return _request("DropDatabase", {"db_name": db_name}, "drop_database", idempotent=False)

    @classmethod
    def list_databases(cls) -> RpcRequest:
        return _request("ListDatabases", {}, "list_databases")
