"""
Tessera Python Client - Schema cache

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
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class SchemaCache(ABC):
    """Cache of collection descriptions keyed by (db_name, collection_name).

    Entries are never refreshed implicitly; callers invalidate after any
    schema-altering operation.
    """

    @abstractmethod
    def get(self, key: CacheKey) -> Optional[Any]:
        ...

    @abstractmethod
    def put(self, key: CacheKey, value: Any) -> None:
        ...

    @abstractmethod
    def invalidate(self, key: CacheKey) -> None:
        ...

    @abstractmethod
    def clear(self, db_name: Optional[str] = None) -> None:
        ...


class InMemorySchemaCache(SchemaCache):
    """Thread-safe dictionary cache, shareable between clients"""

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
        logger.debug(f"Cached schema for {key[0] or 'default'}.{key[1]}")

    def invalidate(self, key: CacheKey) -> None:
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed is not None:
            logger.debug(f"Dropped cached schema for {key[0] or 'default'}.{key[1]}")

    def clear(self, db_name: Optional[str] = None) -> None:
        with self._lock:
            if db_name is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == db_name]:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries


class NullSchemaCache(SchemaCache):
    """Cache that stores nothing, every lookup goes to the service"""

    def get(self, key: CacheKey) -> Optional[Any]:
        return None

    def put(self, key: CacheKey, value: Any) -> None:
        pass

    def invalidate(self, key: CacheKey) -> None:
        pass

    def clear(self, db_name: Optional[str] = None) -> None:
        pass
