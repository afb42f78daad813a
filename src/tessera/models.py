"""
Tessera Python Client - Result models

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

from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, Field

from .schema import CollectionSchema
from .types import DEFAULT_CONSISTENCY_LEVEL, ConsistencyLevel, IndexState

PrimaryKey = Union[int, str]


class MutationResult(BaseModel):
    """Outcome of an insert, upsert or delete"""
    ids: List[PrimaryKey] = Field(default_factory=list)
    insert_count: int = 0
    delete_count: int = 0
    upsert_count: int = 0
    timestamp: int = 0

    @property
    def primary_keys(self) -> List[PrimaryKey]:
        return self.ids


class Hit(BaseModel):
    """One search hit: primary key, distance and the requested output fields"""
    id: PrimaryKey
    distance: float
    fields: Dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class SearchResult(BaseModel):
    """Hits per query vector, in query order, each list ordered by rank"""
    hits: List[List[Hit]] = Field(default_factory=list)
    extra: Dict[str, str] = Field(default_factory=dict)

    @property
    def num_queries(self) -> int:
        return len(self.hits)

    def __len__(self) -> int:
        return len(self.hits)

    def __getitem__(self, index: int) -> List[Hit]:
        return self.hits[index]

    def __iter__(self) -> Iterator[List[Hit]]:  # type: ignore[override]
        return iter(self.hits)


class QueryResult(BaseModel):
    """Matching entities as row dicts"""
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    extra: Dict[str, str] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> Dict[str, Any]:
        return self.rows[index]

    def __iter__(self) -> Iterator[Dict[str, Any]]:  # type: ignore[override]
        return iter(self.rows)


class CollectionDescription(BaseModel):
    """Collection metadata returned by describe_collection"""
    name: str
    collection_schema: CollectionSchema
    collection_id: int = 0
    db_name: str = ""
    consistency_level: ConsistencyLevel = DEFAULT_CONSISTENCY_LEVEL
    num_shards: int = 1
    aliases: List[str] = Field(default_factory=list)
    properties: Dict[str, str] = Field(default_factory=dict)
    created_timestamp: int = 0
    updated_timestamp: int = 0

    @property
    def created_at(self) -> Optional[datetime]:
        # hybrid timestamps carry physical milliseconds in the high bits
        if not self.created_timestamp:
            return None
        return datetime.fromtimestamp((self.created_timestamp >> 18) / 1000.0, tz=timezone.utc)


class IndexDescription(BaseModel):
    index_name: str
    field_name: str
    index_type: Optional[str] = None
    metric_type: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    state: IndexState = IndexState.NONE
    indexed_rows: int = 0
    total_rows: int = 0
    pending_index_rows: int = 0
    fail_reason: str = ""


class CollectionStats(BaseModel):
    row_count: int = 0
    stats: Dict[str, str] = Field(default_factory=dict)


class FlushResult(BaseModel):
    """Flush timestamps and sealed segment ids per collection"""
    flush_ts: Dict[str, int] = Field(default_factory=dict)
    segment_ids: Dict[str, List[int]] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    is_healthy: bool
    reasons: List[str] = Field(default_factory=list)


class ServerInfo(BaseModel):
    """Build information reported by the service during the handshake"""
    build_tags: str = ""
    build_time: str = ""
    git_commit: str = ""
    deploy_mode: str = ""
    reserved: Dict[str, str] = Field(default_factory=dict)
