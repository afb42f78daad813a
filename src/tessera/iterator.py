"""
Tessera Python Client - Query iterator

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
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from .exceptions import DecodeError, ValidationError
from .prepare import Prepare
from .schema import CollectionSchema, check_name
from .types import MAX_TOPK, DataType

if TYPE_CHECKING:
    from .client import TesseraClient

logger = logging.getLogger(__name__)


class QueryIterator:
    """
    Pages through the entities matching a filter in primary key order.

    Each batch is one Query call bounded by ``batch_size``. Instead of a
    growing offset the iterator keeps the last primary key it returned and
    narrows the next filter to keys above it, so batches stay cheap however
    deep the iteration goes. Entities inserted behind the cursor while
    iterating are not returned.

    Args:
        client: Client issuing the Query calls
        collection_name: Collection to iterate
        batch_size: Entities per batch, 1 to 16384
        limit: Total entities to return, None or -1 for no limit
        filter: Boolean filter expression
        output_fields: Fields returned with each entity
        partition_names: Restrict the iteration to these partitions
        offset: Matching entities to skip before the first batch
        consistency_level: Overrides the collection consistency level
        timeout: Per-attempt deadline override for every call

    Example:
        >>> for batch in client.query_iterator("products", batch_size=500, filter="price > 10"):
        ...     process(batch)
    """

    def __init__(
        self,
        client: "TesseraClient",
        collection_name: str,
        batch_size: int = 1000,
        limit: Optional[int] = None,
        filter: str = "",
        output_fields: Optional[List[str]] = None,
        partition_names: Optional[List[str]] = None,
        offset: int = 0,
        consistency_level: Any = None,
        timeout: Optional[float] = None,
    ) -> None:
        check_name(collection_name, "collection_name", "Collection name")
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or not 1 <= batch_size <= MAX_TOPK:
            raise ValidationError(f"batch_size must be an integer in [1, {MAX_TOPK}], got {batch_size!r}",
                                  field="batch_size")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < -1):
            raise ValidationError(f"limit must be None, -1 or a non-negative integer, got {limit!r}", field="limit")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError(f"offset must be a non-negative integer, got {offset!r}", field="offset")
        if not isinstance(filter, str):
            raise ValidationError(f"filter must be a string, got {type(filter).__name__}", field="filter")

        self._client = client
        self.collection_name = collection_name
        self.batch_size = batch_size
        self.limit = None if limit is None or limit < 0 else limit
        self._filter = filter.strip()
        self._output_fields = output_fields
        self._partition_names = partition_names
        self._offset = offset
        self._consistency_level = consistency_level
        self._timeout = timeout

        self._schema: CollectionSchema = client.describe_collection(collection_name, timeout=timeout).collection_schema
        self._pk = self._schema.primary_field
        if self._pk is None:
            raise ValidationError(f"Collection '{collection_name}' has no primary key", field="collection_name")
        self._cursor: Optional[str] = None
        self._returned = 0
        self._exhausted = self.limit == 0

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def _expression(self) -> str:
        if self._cursor is None:
            return self._filter
        bound = f"{self._pk.name} > {self._cursor}"
        return f"({self._filter}) and {bound}" if self._filter else bound

    def _advance(self, rows: List[Dict[str, Any]]) -> None:
        value = rows[-1].get(self._pk.name)
        if value is None:
            raise DecodeError(
                f"Query result lacks primary key '{self._pk.name}', cannot continue iterating",
                operation="query_iterator",
                collection_name=self.collection_name,
            )
        if self._pk.data_type == DataType.INT64:
            self._cursor = str(int(value))
        else:
            self._cursor = json.dumps(str(value))

    def _fetch(self, size: int, output_fields: Optional[List[str]]) -> List[Dict[str, Any]]:
        request = Prepare.query(
            self.collection_name,
            self._schema,
            filter=self._expression(),
            output_fields=output_fields,
            partition_names=self._partition_names,
            limit=size,
            consistency_level=self._consistency_level,
            db_name=self._client.db_name,
            iterator=True,
        )
        rows = self._client._call(request, self._timeout).rows
        if rows:
            self._advance(rows)
        if len(rows) < size:
            self._exhausted = True
        return rows

    def _seek(self) -> None:
        remaining, self._offset = self._offset, 0
        logger.debug(f"Skipping {remaining} entities of {self.collection_name} before iterating")
        while remaining > 0 and not self._exhausted:
            skipped = self._fetch(min(remaining, MAX_TOPK), [self._pk.name])
            remaining -= len(skipped)

    def next(self) -> List[Dict[str, Any]]:
        """Return the next batch, or an empty list once the iteration is done"""
        if self._offset:
            self._seek()
        if self._exhausted:
            return []
        size = self.batch_size
        if self.limit is not None:
            size = min(size, self.limit - self._returned)
        rows = self._fetch(size, self._output_fields)
        self._returned += len(rows)
        if self.limit is not None and self._returned >= self.limit:
            self._exhausted = True
        return rows

    def close(self) -> None:
        """Stop the iteration, later calls to next return nothing"""
        self._exhausted = True

    def __iter__(self) -> Iterator[List[Dict[str, Any]]]:
        while True:
            batch = self.next()
            if not batch:
                return
            yield batch

    def __repr__(self) -> str:
        return (f"QueryIterator(collection={self.collection_name!r}, batch_size={self.batch_size}, "
                f"returned={self._returned}, exhausted={self._exhausted})")
