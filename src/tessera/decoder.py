"""
Tessera Python Client - Response decoding

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
from typing import Any, Callable, Dict, List, Optional

from . import codec
from .column import Column
from .exceptions import DecodeError
from .executor import RpcRequest
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
from .schema import CollectionSchema
from .types import DYNAMIC_FIELD_NAME, IndexState, LoadState

logger = logging.getLogger(__name__)

Response = Dict[str, Any]


def decode_ids(ids: Optional[Dict[str, Any]]) -> List[Any]:
    """Primary keys from an IDs record, either all integers or all strings"""
    if not ids:
        return []
    int_ids = ids.get("int_ids") or []
    str_ids = ids.get("str_ids") or []
    if int_ids and str_ids:
        raise DecodeError(f"Response carries both integer and string ids ({len(int_ids)} and {len(str_ids)})")
    return list(int_ids or str_ids)


def _row_fields(columns: List[Column], row: int) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for column in columns:
        value = column.values[row]
        if column.name == DYNAMIC_FIELD_NAME:
            if isinstance(value, dict):
                fields.update(value)
        else:
            fields[column.name] = value
    return fields


def _none(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> None:
    return None


def _bool(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> bool:
    return bool(response["value"])


def _strings(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> List[str]:
    return list(response.get("values") or [])


def _version(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> str:
    return response["version"]


def _health(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> HealthStatus:
    return HealthStatus(is_healthy=response["is_healthy"], reasons=response.get("reasons") or [])


def _server_info(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> ServerInfo:
    return ServerInfo(**(response.get("server_info") or {}))


def _collection(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> CollectionDescription:
    record = response.get("schema")
    if record is None:
        raise DecodeError("DescribeCollection response carries no schema")
    collection_schema = codec.decode_schema(record, response["consistency_level"])
    return CollectionDescription(
        name=collection_schema.name or request.collection_name or "",
        collection_schema=collection_schema,
        collection_id=response["collection_id"],
        db_name=response.get("db_name") or "",
        consistency_level=collection_schema.consistency_level,
        num_shards=response["shards_num"],
        aliases=response.get("aliases") or [],
        properties=response.get("properties") or {},
        created_timestamp=response["created_timestamp"],
        updated_timestamp=response["updated_timestamp"],
    )


def _stats(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> CollectionStats:
    stats = dict(response.get("stats") or {})
    return CollectionStats(row_count=int(stats.get("row_count", 0)), stats=stats)


def _load_state(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> LoadState:
    return LoadState(response["state"])


def _indexes(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> List[IndexDescription]:
    indexes = []
    for desc in response.get("index_descriptions") or []:
        params = dict(desc.get("params") or {})
        index_type = params.pop("index_type", None)
        metric_type = params.pop("metric_type", None)
        extra = params.pop("params", None)
        if extra:
            params.update(json.loads(extra))
        indexes.append(IndexDescription(
            index_name=desc["index_name"],
            field_name=desc["field_name"],
            index_type=index_type,
            metric_type=metric_type,
            params=params,
            state=IndexState(desc["state"]),
            indexed_rows=desc["indexed_rows"],
            total_rows=desc["total_rows"],
            pending_index_rows=desc["pending_index_rows"],
            fail_reason=desc.get("fail_reason") or "",
        ))
    return indexes


def _mutation(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> MutationResult:
    return MutationResult(
        ids=decode_ids(response.get("ids")),
        insert_count=response["insert_cnt"],
        delete_count=response["delete_cnt"],
        upsert_count=response["upsert_cnt"],
        timestamp=response["timestamp"],
    )


def _search(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> SearchResult:
    extra = dict(response.get("extra") or {})
    results = response.get("results")
    if results is None:
        return SearchResult(hits=[[] for _ in range(request.context.get("nq", 0))], extra=extra)

    topks = results.get("topks") or []
    ids = decode_ids(results.get("ids"))
    scores = results.get("scores") or []
    total = sum(topks)
    if any(k < 0 for k in topks) or len(ids) != total or len(scores) != total:
        raise DecodeError(
            f"Search result shape mismatch: topks sum to {total}, got {len(ids)} ids and {len(scores)} scores"
        )
    num_queries = results.get("num_queries") or 0
    if num_queries and num_queries != len(topks):
        raise DecodeError(f"Search result declares {num_queries} queries but carries {len(topks)} topks")

    columns = codec.decode(schema, {"fields_data": results.get("fields_data") or [], "num_rows": total})

    hits = []
    offset = 0
    for topk in topks:
        hits.append([
            Hit(id=ids[i], distance=scores[i], fields=_row_fields(columns, i))
            for i in range(offset, offset + topk)
        ])
        offset += topk
    return SearchResult(hits=hits, extra=extra)


def _query(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> QueryResult:
    columns = codec.decode(schema, {"fields_data": response.get("fields_data") or [], "num_rows": None})
    num_rows = len(columns[0]) if columns else 0
    rows = [_row_fields(columns, i) for i in range(num_rows)]
    return QueryResult(rows=rows, extra=dict(response.get("extra") or {}))


def _flush(request: RpcRequest, response: Response, schema: Optional[CollectionSchema]) -> FlushResult:
    return FlushResult(
        flush_ts=dict(response.get("flush_ts") or {}),
        segment_ids={k: list(v) for k, v in (response.get("segment_ids") or {}).items()},
    )


_CONVERTERS: Dict[str, Callable[[RpcRequest, Response, Optional[CollectionSchema]], Any]] = {
    "Connect": _server_info,
    "CheckHealth": _health,
    "GetVersion": _version,
    "HasCollection": _bool,
    "HasPartition": _bool,
    "ShowCollections": _strings,
    "ShowPartitions": _strings,
    "ListAliases": _strings,
    "ListDatabases": _strings,
    "DescribeCollection": _collection,
    "GetCollectionStatistics": _stats,
    "GetLoadState": _load_state,
    "DescribeIndex": _indexes,
    "Insert": _mutation,
    "Upsert": _mutation,
    "Delete": _mutation,
    "Search": _search,
    "HybridSearch": _search,
    "Query": _query,
    "Flush": _flush,
}


def decode_response(request: RpcRequest, response: Response, schema: Optional[CollectionSchema] = None) -> Any:
    """
    Convert a successful response body into the typed result of its method.

    Status-only methods return None. Any inconsistency in the response
    raises DecodeError and no partial result is returned.

    Args:
        request: The request the response answers
        response: Deserialized response body
        schema: Collection schema for typing returned columns, defaults to
            the schema the request was built with

    Returns:
        Typed result
    """
    converter = _CONVERTERS.get(request.method, _none)
    if schema is None:
        schema = request.context.get("schema")
    try:
        return converter(request, response, schema)
    except DecodeError as e:
        e.operation = e.operation or request.operation
        e.collection_name = e.collection_name or request.collection_name
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(
            f"Unexpected {request.response_type} content: {e}",
            operation=request.operation,
            collection_name=request.collection_name,
        ) from e
