"""
Tessera wire protocol: Avro message schemas carried in gRPC unary calls

Every service method exchanges one Avro binary record each way. Every
response record carries a ``status`` of type ``Status``.

Copyright 2025 Tessera Authors
Licensed under the Apache License, Version 2.0
"""

import copy
import io
from typing import Any, Dict, NamedTuple

import avro.io
import avro.schema

from .exceptions import DecodeError, ValidationError

SERVICE_NAME = "tessera.v1.TesseraService"

# Shared records
AVRO_STATUS_SCHEMA = """
{
  "type": "record",
  "name": "Status",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "code", "type": "int", "default": 0},
    {"name": "reason", "type": "string", "default": ""},
    {"name": "retriable", "type": "boolean", "default": false},
    {"name": "detail", "type": "string", "default": ""}
  ]
}
"""

AVRO_FIELD_SCHEMA_SCHEMA = """
{
  "type": "record",
  "name": "FieldSchema",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "field_id", "type": "long", "default": 0},
    {"name": "name", "type": "string"},
    {"name": "description", "type": "string", "default": ""},
    {"name": "data_type", "type": "int"},
    {"name": "element_type", "type": "int", "default": 0},
    {"name": "is_primary_key", "type": "boolean", "default": false},
    {"name": "auto_id", "type": "boolean", "default": false},
    {"name": "nullable", "type": "boolean", "default": false},
    {"name": "is_partition_key", "type": "boolean", "default": false},
    {"name": "type_params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "default_value", "type": ["null", "string"], "default": null}
  ]
}
"""

AVRO_COLLECTION_SCHEMA_SCHEMA = """
{
  "type": "record",
  "name": "CollectionSchema",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "name", "type": "string"},
    {"name": "description", "type": "string", "default": ""},
    {"name": "fields", "type": {"type": "array", "items": "FieldSchema"}},
    {"name": "enable_dynamic_field", "type": "boolean", "default": false}
  ]
}
"""

# Columnar payload for one field. Fixed-width scalars and dense vectors are
# packed little-endian into ``data``; strings, JSON and per-row payloads use
# the list members. ``valid_data`` is an LSB-first null bitmap and only the
# valid rows are present in the payload.
AVRO_FIELD_DATA_SCHEMA = """
{
  "type": "record",
  "name": "FieldData",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "field_name", "type": "string"},
    {"name": "data_type", "type": "int"},
    {"name": "element_type", "type": "int", "default": 0},
    {"name": "dim", "type": "long", "default": 0},
    {"name": "num_rows", "type": "long", "default": 0},
    {"name": "data", "type": ["null", "bytes"], "default": null},
    {"name": "strings", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "rows", "type": {"type": "array", "items": "bytes"}, "default": []},
    {"name": "string_rows", "type": {"type": "array", "items": {"type": "array", "items": "string"}}, "default": []},
    {"name": "valid_data", "type": ["null", "bytes"], "default": null}
  ]
}
"""

AVRO_IDS_SCHEMA = """
{
  "type": "record",
  "name": "IDs",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "int_ids", "type": {"type": "array", "items": "long"}, "default": []},
    {"name": "str_ids", "type": {"type": "array", "items": "string"}, "default": []}
  ]
}
"""

AVRO_PLACEHOLDER_GROUP_SCHEMA = """
{
  "type": "record",
  "name": "PlaceholderGroup",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "tag", "type": "string", "default": "$0"},
    {"name": "data_type", "type": "int"},
    {"name": "dim", "type": "long", "default": 0},
    {"name": "values", "type": {"type": "array", "items": "bytes"}}
  ]
}
"""

AVRO_INDEX_DESCRIPTION_SCHEMA = """
{
  "type": "record",
  "name": "IndexDescription",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "index_name", "type": "string"},
    {"name": "field_name", "type": "string"},
    {"name": "params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "state", "type": "int", "default": 0},
    {"name": "indexed_rows", "type": "long", "default": 0},
    {"name": "total_rows", "type": "long", "default": 0},
    {"name": "pending_index_rows", "type": "long", "default": 0},
    {"name": "fail_reason", "type": "string", "default": ""}
  ]
}
"""

AVRO_CLIENT_INFO_SCHEMA = """
{
  "type": "record",
  "name": "ClientInfo",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "sdk_type", "type": "string"},
    {"name": "sdk_version", "type": "string"},
    {"name": "local_time", "type": "string"},
    {"name": "user", "type": "string", "default": ""},
    {"name": "host", "type": "string", "default": ""},
    {"name": "reserved", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_SERVER_INFO_SCHEMA = """
{
  "type": "record",
  "name": "ServerInfo",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "build_tags", "type": "string", "default": ""},
    {"name": "build_time", "type": "string", "default": ""},
    {"name": "git_commit", "type": "string", "default": ""},
    {"name": "deploy_mode", "type": "string", "default": ""},
    {"name": "reserved", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_SEARCH_RESULT_DATA_SCHEMA = """
{
  "type": "record",
  "name": "SearchResultData",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "num_queries", "type": "long", "default": 0},
    {"name": "top_k", "type": "long", "default": 0},
    {"name": "topks", "type": {"type": "array", "items": "long"}, "default": []},
    {"name": "ids", "type": "IDs"},
    {"name": "scores", "type": {"type": "array", "items": "float"}, "default": []},
    {"name": "fields_data", "type": {"type": "array", "items": "FieldData"}, "default": []},
    {"name": "output_fields", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "primary_field_name", "type": "string", "default": ""}
  ]
}
"""

# Requests
AVRO_EMPTY_REQUEST_SCHEMA = """
{"type": "record", "name": "EmptyRequest", "namespace": "tessera.v1", "fields": []}
"""

AVRO_CONNECT_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "ConnectRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "client_info", "type": "ClientInfo"}
  ]
}
"""

AVRO_COLLECTION_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "CollectionRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"}
  ]
}
"""

AVRO_CREATE_COLLECTION_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "CreateCollectionRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "schema", "type": "CollectionSchema"},
    {"name": "shards_num", "type": "int", "default": 1},
    {"name": "consistency_level", "type": "int", "default": 2},
    {"name": "num_partitions", "type": "long", "default": 0},
    {"name": "properties", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_RENAME_COLLECTION_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "RenameCollectionRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "old_name", "type": "string"},
    {"name": "new_name", "type": "string"},
    {"name": "new_db_name", "type": "string", "default": ""}
  ]
}
"""

AVRO_LOAD_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "LoadRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_names", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "replica_number", "type": "int", "default": 1}
  ]
}
"""

AVRO_PARTITION_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "PartitionRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_name", "type": "string"}
  ]
}
"""

AVRO_LIST_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "ListRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string", "default": ""}
  ]
}
"""

AVRO_INDEX_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "IndexRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "field_name", "type": "string", "default": ""},
    {"name": "index_name", "type": "string", "default": ""},
    {"name": "extra_params", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_INSERT_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "InsertRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_name", "type": "string", "default": ""},
    {"name": "fields_data", "type": {"type": "array", "items": "FieldData"}},
    {"name": "num_rows", "type": "long"}
  ]
}
"""

AVRO_DELETE_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "DeleteRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_name", "type": "string", "default": ""},
    {"name": "expr", "type": "string"},
    {"name": "consistency_level", "type": "int", "default": 2}
  ]
}
"""

AVRO_SEARCH_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "SearchRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_names", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "dsl", "type": "string", "default": ""},
    {"name": "placeholder_group", "type": "PlaceholderGroup"},
    {"name": "output_fields", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "search_params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "nq", "type": "long"},
    {"name": "consistency_level", "type": "int", "default": 2},
    {"name": "use_default_consistency", "type": "boolean", "default": true}
  ]
}
"""

AVRO_QUERY_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "QueryRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "expr", "type": "string", "default": ""},
    {"name": "output_fields", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "partition_names", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "query_params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "consistency_level", "type": "int", "default": 2},
    {"name": "use_default_consistency", "type": "boolean", "default": true}
  ]
}
"""

AVRO_HYBRID_SEARCH_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "HybridSearchRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "partition_names", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "requests", "type": {"type": "array", "items": "SearchRequest"}},
    {"name": "rank_params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "output_fields", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "consistency_level", "type": "int", "default": 2},
    {"name": "use_default_consistency", "type": "boolean", "default": true}
  ]
}
"""

AVRO_ALTER_COLLECTION_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "AlterCollectionRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "properties", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "delete_keys", "type": {"type": "array", "items": "string"}, "default": []}
  ]
}
"""

AVRO_ALTER_INDEX_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "AlterIndexRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string"},
    {"name": "index_name", "type": "string"},
    {"name": "extra_params", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "delete_keys", "type": {"type": "array", "items": "string"}, "default": []}
  ]
}
"""

AVRO_FLUSH_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "FlushRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_names", "type": {"type": "array", "items": "string"}}
  ]
}
"""

AVRO_ALIAS_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "AliasRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "collection_name", "type": "string", "default": ""},
    {"name": "alias", "type": "string"}
  ]
}
"""

AVRO_DATABASE_REQUEST_SCHEMA = """
{
  "type": "record",
  "name": "DatabaseRequest",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "db_name", "type": "string"},
    {"name": "properties", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

# Responses
AVRO_STATUS_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "StatusResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"}
  ]
}
"""

AVRO_BOOL_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "BoolResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "value", "type": "boolean", "default": false}
  ]
}
"""

AVRO_STRING_LIST_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "StringListResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "values", "type": {"type": "array", "items": "string"}, "default": []}
  ]
}
"""

AVRO_CONNECT_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "ConnectResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "server_info", "type": ["null", "ServerInfo"], "default": null},
    {"name": "identifier", "type": "long", "default": 0}
  ]
}
"""

AVRO_CHECK_HEALTH_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "CheckHealthResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "is_healthy", "type": "boolean", "default": false},
    {"name": "reasons", "type": {"type": "array", "items": "string"}, "default": []}
  ]
}
"""

AVRO_VERSION_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "VersionResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "version", "type": "string", "default": ""}
  ]
}
"""

AVRO_DESCRIBE_COLLECTION_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "DescribeCollectionResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "schema", "type": ["null", "CollectionSchema"], "default": null},
    {"name": "collection_id", "type": "long", "default": 0},
    {"name": "db_name", "type": "string", "default": ""},
    {"name": "consistency_level", "type": "int", "default": 2},
    {"name": "shards_num", "type": "int", "default": 1},
    {"name": "aliases", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "properties", "type": {"type": "map", "values": "string"}, "default": {}},
    {"name": "created_timestamp", "type": "long", "default": 0},
    {"name": "updated_timestamp", "type": "long", "default": 0}
  ]
}
"""

AVRO_STATS_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "StatsResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "stats", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_LOAD_STATE_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "LoadStateResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "state", "type": "int", "default": 0}
  ]
}
"""

AVRO_DESCRIBE_INDEX_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "DescribeIndexResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "index_descriptions", "type": {"type": "array", "items": "IndexDescription"}, "default": []}
  ]
}
"""

AVRO_MUTATION_RESULT_SCHEMA = """
{
  "type": "record",
  "name": "MutationResult",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "ids", "type": ["null", "IDs"], "default": null},
    {"name": "insert_cnt", "type": "long", "default": 0},
    {"name": "delete_cnt", "type": "long", "default": 0},
    {"name": "upsert_cnt", "type": "long", "default": 0},
    {"name": "timestamp", "type": "long", "default": 0}
  ]
}
"""

AVRO_SEARCH_RESULTS_SCHEMA = """
{
  "type": "record",
  "name": "SearchResults",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "results", "type": ["null", "SearchResultData"], "default": null},
    {"name": "collection_name", "type": "string", "default": ""},
    {"name": "extra", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_QUERY_RESULTS_SCHEMA = """
{
  "type": "record",
  "name": "QueryResults",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "fields_data", "type": {"type": "array", "items": "FieldData"}, "default": []},
    {"name": "output_fields", "type": {"type": "array", "items": "string"}, "default": []},
    {"name": "collection_name", "type": "string", "default": ""},
    {"name": "extra", "type": {"type": "map", "values": "string"}, "default": {}}
  ]
}
"""

AVRO_FLUSH_RESPONSE_SCHEMA = """
{
  "type": "record",
  "name": "FlushResponse",
  "namespace": "tessera.v1",
  "fields": [
    {"name": "status", "type": "Status"},
    {"name": "flush_ts", "type": {"type": "map", "values": "long"}, "default": {}},
    {"name": "segment_ids", "type": {"type": "map", "values": {"type": "array", "items": "long"}}, "default": {}}
  ]
}
"""

# Order matters: named types must be declared before they are referenced
_ALL_SCHEMAS = [
    AVRO_STATUS_SCHEMA,
    AVRO_FIELD_SCHEMA_SCHEMA,
    AVRO_COLLECTION_SCHEMA_SCHEMA,
    AVRO_FIELD_DATA_SCHEMA,
    AVRO_IDS_SCHEMA,
    AVRO_PLACEHOLDER_GROUP_SCHEMA,
    AVRO_INDEX_DESCRIPTION_SCHEMA,
    AVRO_CLIENT_INFO_SCHEMA,
    AVRO_SERVER_INFO_SCHEMA,
    AVRO_SEARCH_RESULT_DATA_SCHEMA,
    AVRO_EMPTY_REQUEST_SCHEMA,
    AVRO_CONNECT_REQUEST_SCHEMA,
    AVRO_COLLECTION_REQUEST_SCHEMA,
    AVRO_CREATE_COLLECTION_REQUEST_SCHEMA,
    AVRO_RENAME_COLLECTION_REQUEST_SCHEMA,
    AVRO_LOAD_REQUEST_SCHEMA,
    AVRO_PARTITION_REQUEST_SCHEMA,
    AVRO_LIST_REQUEST_SCHEMA,
    AVRO_INDEX_REQUEST_SCHEMA,
    AVRO_INSERT_REQUEST_SCHEMA,
    AVRO_DELETE_REQUEST_SCHEMA,
    AVRO_SEARCH_REQUEST_SCHEMA,
    AVRO_QUERY_REQUEST_SCHEMA,
    AVRO_HYBRID_SEARCH_REQUEST_SCHEMA,
    AVRO_ALTER_COLLECTION_REQUEST_SCHEMA,
    AVRO_ALTER_INDEX_REQUEST_SCHEMA,
    AVRO_FLUSH_REQUEST_SCHEMA,
    AVRO_ALIAS_REQUEST_SCHEMA,
    AVRO_DATABASE_REQUEST_SCHEMA,
    AVRO_STATUS_RESPONSE_SCHEMA,
    AVRO_BOOL_RESPONSE_SCHEMA,
    AVRO_STRING_LIST_RESPONSE_SCHEMA,
    AVRO_CONNECT_RESPONSE_SCHEMA,
    AVRO_CHECK_HEALTH_RESPONSE_SCHEMA,
    AVRO_VERSION_RESPONSE_SCHEMA,
    AVRO_DESCRIBE_COLLECTION_RESPONSE_SCHEMA,
    AVRO_STATS_RESPONSE_SCHEMA,
    AVRO_LOAD_STATE_RESPONSE_SCHEMA,
    AVRO_DESCRIBE_INDEX_RESPONSE_SCHEMA,
    AVRO_MUTATION_RESULT_SCHEMA,
    AVRO_SEARCH_RESULTS_SCHEMA,
    AVRO_QUERY_RESULTS_SCHEMA,
    AVRO_FLUSH_RESPONSE_SCHEMA,
]

# A top-level JSON array parses as a union, which lets later records refer
# to earlier ones by name.
SCHEMAS: Dict[str, avro.schema.RecordSchema] = {
    schema.name: schema
    for schema in avro.schema.parse("[" + ",".join(_ALL_SCHEMAS) + "]").schemas
}


class MethodSpec(NamedTuple):
    request: str
    response: str


METHODS: Dict[str, MethodSpec] = {
    "Connect": MethodSpec("ConnectRequest", "ConnectResponse"),
    "CheckHealth": MethodSpec("EmptyRequest", "CheckHealthResponse"),
    "GetVersion": MethodSpec("EmptyRequest", "VersionResponse"),
    "CreateCollection": MethodSpec("CreateCollectionRequest", "StatusResponse"),
    "DropCollection": MethodSpec("CollectionRequest", "StatusResponse"),
    "HasCollection": MethodSpec("CollectionRequest", "BoolResponse"),
    "DescribeCollection": MethodSpec("CollectionRequest", "DescribeCollectionResponse"),
    "ShowCollections": MethodSpec("ListRequest", "StringListResponse"),
    "RenameCollection": MethodSpec("RenameCollectionRequest", "StatusResponse"),
    "GetCollectionStatistics": MethodSpec("CollectionRequest", "StatsResponse"),
    "AlterCollection": MethodSpec("AlterCollectionRequest", "StatusResponse"),
    "LoadCollection": MethodSpec("LoadRequest", "StatusResponse"),
    "ReleaseCollection": MethodSpec("CollectionRequest", "StatusResponse"),
    "GetLoadState": MethodSpec("LoadRequest", "LoadStateResponse"),
    "CreatePartition": MethodSpec("PartitionRequest", "StatusResponse"),
    "DropPartition": MethodSpec("PartitionRequest", "StatusResponse"),
    "HasPartition": MethodSpec("PartitionRequest", "BoolResponse"),
    "ShowPartitions": MethodSpec("CollectionRequest", "StringListResponse"),
    "LoadPartitions": MethodSpec("LoadRequest", "StatusResponse"),
    "ReleasePartitions": MethodSpec("LoadRequest", "StatusResponse"),
    "CreateIndex": MethodSpec("IndexRequest", "StatusResponse"),
    "DescribeIndex": MethodSpec("IndexRequest", "DescribeIndexResponse"),
    "DropIndex": MethodSpec("IndexRequest", "StatusResponse"),
    "AlterIndex": MethodSpec("AlterIndexRequest", "StatusResponse"),
    "Insert": MethodSpec("InsertRequest", "MutationResult"),
    "Upsert": MethodSpec("InsertRequest", "MutationResult"),
    "Delete": MethodSpec("DeleteRequest", "MutationResult"),
    "Search": MethodSpec("SearchRequest", "SearchResults"),
    "HybridSearch": MethodSpec("HybridSearchRequest", "SearchResults"),
    "Query": MethodSpec("QueryRequest", "QueryResults"),
    "Flush": MethodSpec("FlushRequest", "FlushResponse"),
    "CreateAlias": MethodSpec("AliasRequest", "StatusResponse"),
    "DropAlias": MethodSpec("AliasRequest", "StatusResponse"),
    "AlterAlias": MethodSpec("AliasRequest", "StatusResponse"),
    "ListAliases": MethodSpec("ListRequest", "StringListResponse"),
    "CreateDatabase": MethodSpec("DatabaseRequest", "StatusResponse"),
    "DropDatabase": MethodSpec("DatabaseRequest", "StatusResponse"),
    "ListDatabases": MethodSpec("EmptyRequest", "StringListResponse"),
}


def method_path(method: str) -> str:
    """Fully qualified gRPC method path"""
    return f"/{SERVICE_NAME}/{method}"


def complete(schema: avro.schema.Schema, datum: Any) -> Any:
    """Fill missing record fields from their declared defaults, recursively"""
    kind = schema.type
    if kind == "record" and isinstance(datum, dict):
        result = {}
        for field in schema.fields:
            if field.name in datum:
                result[field.name] = complete(field.type, datum[field.name])
            elif field.has_default:
                result[field.name] = copy.deepcopy(field.default)
            else:
                result[field.name] = None
        return result
    if kind == "array" and isinstance(datum, (list, tuple)):
        return [complete(schema.items, item) for item in datum]
    if kind == "map" and isinstance(datum, dict):
        return {key: complete(schema.values, value) for key, value in datum.items()}
    if kind == "union" and isinstance(datum, dict):
        for branch in schema.schemas:
            if branch.type == "record":
                return complete(branch, datum)
    return datum


def serialize(message: str, datum: Dict[str, Any]) -> bytes:
    """Encode a message dict as Avro binary"""
    schema = SCHEMAS[message]
    bytes_writer = io.BytesIO()
    encoder = avro.io.BinaryEncoder(bytes_writer)
    try:
        avro.io.DatumWriter(schema).write(complete(schema, datum), encoder)
    except Exception as e:
        raise ValidationError(f"Request does not conform to {message}: {e}", field=message) from e
    return bytes_writer.getvalue()


def deserialize(message: str, data: bytes) -> Dict[str, Any]:
    """Decode Avro binary into a message dict"""
    schema = SCHEMAS[message]
    try:
        decoder = avro.io.BinaryDecoder(io.BytesIO(data))
        return avro.io.DatumReader(schema).read(decoder)
    except Exception as e:
        raise DecodeError(f"Malformed {message} payload ({len(data)} bytes): {e}") from e
