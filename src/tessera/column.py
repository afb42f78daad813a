"""
Tessera Python Client - Typed column data

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
import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .exceptions import ValidationError
from .types import ARRAY_ELEMENT_TYPES, INT_RANGES, DataType

MAX_SPARSE_INDEX = 2 ** 32 - 2


def _fail(column: str, row: Optional[int], message: str) -> ValidationError:
    where = f"field '{column}'" if row is None else f"field '{column}' row {row}"
    return ValidationError(f"Invalid value for {where}: {message}", field=column)


def _normalize_bool(value, column, row):
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    raise _fail(column, row, f"expected bool, got {type(value).__name__}")


def _integer_normalizer(data_type: DataType):
    low, high = INT_RANGES[data_type]
    expected = data_type.numpy_dtype

    def normalize(value, column, row):
        if isinstance(value, (bool, np.bool_)):
            raise _fail(column, row, f"expected {data_type.name}, got bool")
        if isinstance(value, np.integer):
            # numpy scalars carry a width; only the exact width is accepted
            if value.dtype.newbyteorder("<") != expected:
                raise _fail(column, row, f"expected {data_type.name}, got numpy {value.dtype}")
            return int(value)
        if not isinstance(value, int):
            raise _fail(column, row, f"expected {data_type.name}, got {type(value).__name__}")
        if not low <= value <= high:
            raise _fail(column, row, f"{value} is out of range for {data_type.name}")
        return value

    return normalize


def _floating_normalizer(data_type: DataType):
    accepted = (np.float32, np.float64) if data_type == DataType.FLOAT else (np.float64,)
    cast = np.float32 if data_type == DataType.FLOAT else np.float64

    def normalize(value, column, row):
        if isinstance(value, (bool, np.bool_, np.integer)):
            raise _fail(column, row, f"expected {data_type.name}, got {type(value).__name__}")
        if isinstance(value, np.floating):
            if not isinstance(value, accepted):
                raise _fail(column, row, f"expected {data_type.name}, got numpy {value.dtype}")
        elif not isinstance(value, (int, float)):
            raise _fail(column, row, f"expected {data_type.name}, got {type(value).__name__}")
        try:
            source = float(value)
            with np.errstate(over="ignore"):
                converted = float(cast(value))
        except OverflowError as e:
            raise _fail(column, row, f"value is out of range for {data_type.name}") from e
        if math.isinf(converted) and not math.isinf(source):
            raise _fail(column, row, f"{value} is out of range for {data_type.name}")
        return converted

    return normalize


def _normalize_varchar(value, column, row):
    if isinstance(value, str):
        return str(value)
    raise _fail(column, row, f"expected str, got {type(value).__name__}")


def _normalize_json(value, column, row):
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise _fail(column, row, f"value is not JSON serializable: {e}") from e
    return value


def _dense_vector_normalizer(data_type: DataType):
    target = np.float32 if data_type == DataType.FLOAT_VECTOR else np.float16
    accepted = (np.dtype(np.float64), np.dtype(target))

    def normalize(value, column, row):
        if isinstance(value, np.ndarray):
            if value.dtype not in accepted:
                raise _fail(column, row, f"numpy vectors must be {np.dtype(target)} or float64, got {value.dtype}")
            array = value
        elif isinstance(value, (list, tuple)):
            if any(isinstance(x, (bool, np.bool_)) or not isinstance(x, (int, float, np.floating)) for x in value):
                raise _fail(column, row, "vector elements must be numbers")
            try:
                array = np.asarray(value, dtype=np.float64)
            except OverflowError as e:
                raise _fail(column, row, f"vector element out of range for {np.dtype(target)}") from e
        else:
            raise _fail(column, row, f"expected a sequence of floats, got {type(value).__name__}")
        if array.ndim != 1:
            raise _fail(column, row, f"vector must be one-dimensional, got shape {array.shape}")
        if array.size == 0:
            raise _fail(column, row, "zero-length vector")
        with np.errstate(over="ignore"):
            converted = array.astype(target)
        if np.isinf(converted).sum() != np.isinf(array).sum():
            raise _fail(column, row, f"vector element out of range for {np.dtype(target)}")
        return converted.astype(np.float64).tolist()

    return normalize


def _normalize_binary_vector(value, column, row):
    if isinstance(value, np.ndarray):
        if value.dtype != np.uint8 or value.ndim != 1:
            raise _fail(column, row, "numpy binary vectors must be one-dimensional uint8 arrays")
        value = value.tobytes()
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise _fail(column, row, f"expected bytes, got {type(value).__name__}")
    value = bytes(value)
    if not value:
        raise _fail(column, row, "zero-length vector")
    return value


def _sparse_pairs(value, column, row) -> Iterable:
    if isinstance(value, dict):
        if "indices" in value and "values" in value:
            indices, values = value["indices"], value["values"]
            if len(indices) != len(values):
                raise _fail(column, row, "sparse indices and values differ in length")
            return zip(indices, values)
        return value.items()
    if isinstance(value, (list, tuple)):
        try:
            return [(idx, val) for idx, val in value]
        except (TypeError, ValueError) as e:
            raise _fail(column, row, "sparse rows must be (index, value) pairs") from e
    raise _fail(column, row, f"expected a sparse vector, got {type(value).__name__}")


def _normalize_sparse(value, column, row):
    result: Dict[int, float] = {}
    for idx, val in _sparse_pairs(value, column, row):
        if isinstance(idx, (bool, np.bool_)) or not isinstance(idx, (int, np.integer)):
            raise _fail(column, row, f"sparse index {idx!r} is not an integer")
        idx = int(idx)
        if not 0 <= idx <= MAX_SPARSE_INDEX:
            raise _fail(column, row, f"sparse index {idx} out of range [0, {MAX_SPARSE_INDEX}]")
        if idx in result:
            raise _fail(column, row, f"duplicated sparse index {idx}")
        if isinstance(val, (bool, np.bool_)) or not isinstance(val, (int, float, np.floating)):
            raise _fail(column, row, f"sparse value {val!r} is not a number")
        try:
            source = float(val)
        except OverflowError as e:
            raise _fail(column, row, f"sparse value at index {idx} is out of range for float32") from e
        with np.errstate(over="ignore"):
            converted = float(np.float32(source))
        if math.isinf(converted) and not math.isinf(source):
            raise _fail(column, row, f"sparse value at index {idx} is out of range for float32")
        result[idx] = converted
    return dict(sorted(result.items()))


_NORMALIZERS: Dict[DataType, Callable[[Any, str, Optional[int]], Any]] = {
    DataType.BOOL: _normalize_bool,
    DataType.INT8: _integer_normalizer(DataType.INT8),
    DataType.INT16: _integer_normalizer(DataType.INT16),
    DataType.INT32: _integer_normalizer(DataType.INT32),
    DataType.INT64: _integer_normalizer(DataType.INT64),
    DataType.FLOAT: _floating_normalizer(DataType.FLOAT),
    DataType.DOUBLE: _floating_normalizer(DataType.DOUBLE),
    DataType.VARCHAR: _normalize_varchar,
    DataType.JSON: _normalize_json,
    DataType.FLOAT_VECTOR: _dense_vector_normalizer(DataType.FLOAT_VECTOR),
    DataType.FLOAT16_VECTOR: _dense_vector_normalizer(DataType.FLOAT16_VECTOR),
    DataType.BINARY_VECTOR: _normalize_binary_vector,
    DataType.SPARSE_FLOAT_VECTOR: _normalize_sparse,
}


def _array_normalizer(element_type: DataType):
    normalize_element = _NORMALIZERS[element_type]

    def normalize(value, column, row):
        if isinstance(value, np.ndarray):
            value = value.tolist() if value.dtype.kind not in "iuf" else list(value)
        if not isinstance(value, (list, tuple)):
            raise _fail(column, row, f"expected a list, got {type(value).__name__}")
        return [normalize_element(item, column, row) for item in value]

    return normalize


def _same(a, b) -> bool:
    """Equality that treats NaN as equal to NaN"""
    if isinstance(a, float) and isinstance(b, float):
        return a == b or (math.isnan(a) and math.isnan(b))
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_same(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_same(a[k], b[k]) for k in a)
    return type(a) is type(b) and a == b


class Column:
    """A named, typed, ordered sequence of values.

    Values are canonicalized for their data type on construction, ``None``
    marks a null row. Numpy arrays are accepted only with the exact dtype of
    the column (float64 is accepted for the floating types).
    """

    __slots__ = ("name", "data_type", "element_type", "values")

    def __init__(
        self,
        name: str,
        data_type: DataType,
        values: Sequence[Any],
        element_type: Optional[DataType] = None,
    ) -> None:
        if not isinstance(name, str) or not name:
            raise ValidationError("Column name must be a non-empty string", field="name")
        try:
            data_type = DataType(data_type)
        except ValueError as e:
            raise ValidationError(f"Unknown data type {data_type!r} for column '{name}'", field=name) from e
        if data_type == DataType.NONE:
            raise ValidationError(f"Column '{name}' has no data type", field=name)

        if data_type == DataType.ARRAY:
            if element_type is None or DataType(element_type) not in ARRAY_ELEMENT_TYPES:
                raise ValidationError(f"Array column '{name}' requires a scalar element type", field=name)
            element_type = DataType(element_type)
            normalize = _array_normalizer(element_type)
        else:
            element_type = None
            normalize = _NORMALIZERS[data_type]

        self.name = name
        self.data_type = data_type
        self.element_type = element_type
        self.values = self._normalize_all(values, normalize)

    def _normalize_all(self, values, normalize) -> List[Any]:
        if isinstance(values, np.ndarray):
            if self.data_type.is_fixed_width:
                expected = self.data_type.numpy_dtype
                allowed = (expected, np.dtype("<f8")) if self.data_type.is_floating else (expected,)
                if values.ndim != 1 or values.dtype.newbyteorder("<") not in allowed:
                    raise ValidationError(
                        f"Column '{self.name}' expects a 1-D {expected} array, got {values.dtype} {values.shape}",
                        field=self.name,
                    )
                # pass numpy scalars through so width checks apply per element
                values = list(values)
            elif values.ndim == 2 and self.data_type in (DataType.FLOAT_VECTOR, DataType.FLOAT16_VECTOR, DataType.BINARY_VECTOR):
                values = list(values)
            else:
                values = values.tolist()
        elif isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
            raise ValidationError(f"Column '{self.name}' values must be a sequence", field=self.name)

        normalized = [None if v is None else normalize(v, self.name, i) for i, v in enumerate(values)]

        if self.data_type.is_dense_vector:
            widths = {len(v) for v in normalized if v is not None}
            if len(widths) > 1:
                raise ValidationError(
                    f"Vectors in column '{self.name}' have inconsistent dimensions {sorted(widths)}",
                    field=self.name,
                )
        return normalized

    @classmethod
    def trusted(cls, name: str, data_type: DataType, values: List[Any], element_type: Optional[DataType] = None) -> "Column":
        """Build a column from already canonical values, skipping normalization"""
        column = cls.__new__(cls)
        column.name = name
        column.data_type = DataType(data_type)
        column.element_type = DataType(element_type) if element_type else None
        column.values = values
        return column

    @property
    def dim(self) -> Optional[int]:
        """Vector dimension, taken from the first non-null row"""
        if not self.data_type.is_dense_vector:
            return None
        for value in self.values:
            if value is not None:
                return len(value) * 8 if self.data_type == DataType.BINARY_VECTOR else len(value)
        return None

    @property
    def null_count(self) -> int:
        return sum(1 for v in self.values if v is None)

    @property
    def valid_mask(self) -> List[bool]:
        return [v is not None for v in self.values]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __getitem__(self, index):
        return self.values[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Column):
            return NotImplemented
        return (
            self.name == other.name
            and self.data_type == other.data_type
            and self.element_type == other.element_type
            and len(self.values) == len(other.values)
            and all(_same(a, b) for a, b in zip(self.values, other.values))
        )

    __hash__ = None

    def __repr__(self) -> str:
        type_name = self.data_type.name
        if self.element_type is not None:
            type_name = f"{type_name}<{self.element_type.name}>"
        return f"Column(name={self.name!r}, type={type_name}, rows={len(self.values)})"
