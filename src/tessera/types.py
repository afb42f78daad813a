"""
Tessera Python Client - Core enumerations and constants

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

from enum import Enum, IntEnum
from typing import Optional

import numpy as np


class DataType(IntEnum):
    """Logical field data types understood by the service"""
    NONE = 0
    BOOL = 1
    INT8 = 2
    INT16 = 3
    INT32 = 4
    INT64 = 5
    FLOAT = 10
    DOUBLE = 11
    VARCHAR = 21
    ARRAY = 22
    JSON = 23
    BINARY_VECTOR = 100
    FLOAT_VECTOR = 101
    FLOAT16_VECTOR = 102
    SPARSE_FLOAT_VECTOR = 104

    @property
    def is_vector(self) -> bool:
        return self in _VECTOR_TYPES

    @property
    def is_dense_vector(self) -> bool:
        return self in (DataType.FLOAT_VECTOR, DataType.FLOAT16_VECTOR, DataType.BINARY_VECTOR)

    @property
    def is_integer(self) -> bool:
        return self in INT_RANGES

    @property
    def is_floating(self) -> bool:
        return self in (DataType.FLOAT, DataType.DOUBLE)

    @property
    def is_fixed_width(self) -> bool:
        """Scalars packed as one contiguous little-endian buffer"""
        return self in NUMPY_DTYPES

    @property
    def numpy_dtype(self) -> Optional[np.dtype]:
        return NUMPY_DTYPES.get(self)


_VECTOR_TYPES = frozenset({
    DataType.BINARY_VECTOR,
    DataType.FLOAT_VECTOR,
    DataType.FLOAT16_VECTOR,
    DataType.SPARSE_FLOAT_VECTOR,
})

# Wire dtypes are always little-endian
NUMPY_DTYPES = {
    DataType.BOOL: np.dtype("?"),
    DataType.INT8: np.dtype("<i1"),
    DataType.INT16: np.dtype("<i2"),
    DataType.INT32: np.dtype("<i4"),
    DataType.INT64: np.dtype("<i8"),
    DataType.FLOAT: np.dtype("<f4"),
    DataType.DOUBLE: np.dtype("<f8"),
}

VECTOR_DTYPES = {
    DataType.FLOAT_VECTOR: np.dtype("<f4"),
    DataType.FLOAT16_VECTOR: np.dtype("<f2"),
}

INT_RANGES = {
    DataType.INT8: (-(2 ** 7), 2 ** 7 - 1),
    DataType.INT16: (-(2 ** 15), 2 ** 15 - 1),
    DataType.INT32: (-(2 ** 31), 2 ** 31 - 1),
    DataType.INT64: (-(2 ** 63), 2 ** 63 - 1),
}

# Element types allowed inside an ARRAY field
ARRAY_ELEMENT_TYPES = frozenset({
    DataType.BOOL,
    DataType.INT8,
    DataType.INT16,
    DataType.INT32,
    DataType.INT64,
    DataType.FLOAT,
    DataType.DOUBLE,
    DataType.VARCHAR,
})


class MetricType(str, Enum):
    """Distance metrics for vector similarity"""
    L2 = "L2"
    IP = "IP"
    COSINE = "COSINE"
    HAMMING = "HAMMING"
    JACCARD = "JACCARD"

    @property
    def larger_is_closer(self) -> bool:
        return self in (MetricType.IP, MetricType.COSINE)


class IndexType(str, Enum):
    """Index types accepted by the service"""
    FLAT = "FLAT"
    IVF_FLAT = "IVF_FLAT"
    IVF_SQ8 = "IVF_SQ8"
    IVF_PQ = "IVF_PQ"
    HNSW = "HNSW"
    DISKANN = "DISKANN"
    AUTOINDEX = "AUTOINDEX"
    BIN_FLAT = "BIN_FLAT"
    BIN_IVF_FLAT = "BIN_IVF_FLAT"
    SPARSE_INVERTED_INDEX = "SPARSE_INVERTED_INDEX"
    SPARSE_WAND = "SPARSE_WAND"
    INVERTED = "INVERTED"
    TRIE = "Trie"
    STL_SORT = "STL_SORT"


class ConsistencyLevel(IntEnum):
    """Staleness bound for reads against recently written data"""
    STRONG = 0
    SESSION = 1
    BOUNDED = 2
    EVENTUALLY = 3
    CUSTOMIZED = 4


class LoadState(IntEnum):
    """Load state of a collection or partition"""
    NOT_EXIST = 0
    NOT_LOAD = 1
    LOADING = 2
    LOADED = 3


class IndexState(IntEnum):
    NONE = 0
    UNISSUED = 1
    IN_PROGRESS = 2
    FINISHED = 3
    FAILED = 4
    RETRY = 5


class ServerCode(IntEnum):
    """Status codes carried in every service response"""
    SUCCESS = 0
    UNEXPECTED_ERROR = 1
    RATE_LIMIT = 8
    FORCE_DENY = 9
    NOT_READY = 10
    SCHEMA_MISMATCH = 11
    COLLECTION_NOT_FOUND = 100
    PARTITION_NOT_FOUND = 200
    INDEX_NOT_FOUND = 700
    DATABASE_NOT_FOUND = 800
    ILLEGAL_ARGUMENT = 1100
    PERMISSION_DENIED = 1200
    ALREADY_EXISTS = 1300
    ALIAS_NOT_FOUND = 1600


NOT_FOUND_CODES = frozenset({
    ServerCode.COLLECTION_NOT_FOUND,
    ServerCode.PARTITION_NOT_FOUND,
    ServerCode.INDEX_NOT_FOUND,
    ServerCode.DATABASE_NOT_FOUND,
    ServerCode.ALIAS_NOT_FOUND,
})


def server_code_name(code: int) -> str:
    """Symbolic name for a service status code, stable for unknown codes"""
    try:
        return ServerCode(code).name
    except ValueError:
        return f"UNKNOWN_{code}"


DEFAULT_CONSISTENCY_LEVEL = ConsistencyLevel.BOUNDED
DEFAULT_PARTITION_NAME = "_default"
DYNAMIC_FIELD_NAME = "$meta"

MAX_TOPK = 16384
MAX_NAME_LENGTH = 255
MAX_VARCHAR_LENGTH = 65535
MAX_ARRAY_CAPACITY = 4096
MAX_DIMENSION = 32768
