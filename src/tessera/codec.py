"""
Tessera Python Client - Columnar wire codec

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
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from .column import Column
from .exceptions import DecodeError, SchemaMismatchError, ValidationError
from .schema import CollectionSchema, FieldSchema
from .types import DYNAMIC_FIELD_NAME, NUMPY_DTYPES, VECTOR_DTYPES, ConsistencyLevel, DataType

logger = logging.getLogger(__name__)

WireBatch = Dict[str, Any]
FieldData = Dict[str, Any]

# Sparse rows are (uint32 index, float32 value) little-endian pairs
SPARSE_PAIR_DTYPE = np.dtype([("index", "<u4"), ("value", "<f4")])


def pack_bitmap(valid: Sequence[bool]) -> bytes:
    """LSB-first validity bitmap, ceil(n/8) bytes"""
    return np.packbits(np.asarray(valid, dtype=bool), bitorder="little").tobytes()


def unpack_bitmap(bitmap: bytes, num_rows: int) -> List[bool]:
    expected = (num_rows + 7) // 8
    if len(bitmap) != expected:
        raise DecodeError(f"Validity bitmap has {len(bitmap)} bytes, expected {expected} for {num_rows} rows")
    if num_rows == 0:
        return []
    bits = np.unpackbits(np.frombuffer(bitmap, dtype=np.uint8), count=num_rows, bitorder="little")
    return bits.astype(bool).tolist()


def encode_sparse_row(row: Dict[int, float]) -> bytes:
    pairs = np.empty(len(row), dtype=SPARSE_PAIR_DTYPE)
    if row:
        pairs["index"] = list(row.keys())
        pairs["value"] = list(row.values())
    return pairs.tobytes()


def decode_sparse_row(blob: bytes) -> Dict[int, float]:
    if len(blob) % SPARSE_PAIR_DTYPE.itemsize:
        raise DecodeError(f"Sparse row of {len(blob)} bytes is not a whole number of pairs")
    pairs = np.frombuffer(blob, dtype=SPARSE_PAIR_DTYPE)
    indices = pairs["index"].tolist()
    if any(a >= b for a, b in zip(indices, indices[1:])):
        raise DecodeError("Sparse row indices are not strictly increasing")
    return dict(zip(indices, pairs["value"].astype(np.float64).tolist()))


def _frombuffer(data: Optional[bytes], dtype: np.dtype, count: int, name: str) -> np.ndarray:
    data = data or b""
    if len(data) != count * dtype.itemsize:
        raise DecodeError(
            f"Field '{name}' carries {len(data)} bytes, expected {count * dtype.itemsize} "
            f"for {count} values of {dtype}"
        )
    return np.frombuffer(data, dtype=dtype, count=count)


# Encoders fill the payload members of a FieldData dict from the non-null values

def _encode_fixed(fd: FieldData, values: List[Any], dtype: np.dtype) -> None:
    fd["data"] = np.asarray(values, dtype=dtype).tobytes()


def _encode_strings(fd: FieldData, values: List[Any]) -> None:
    fd["strings"] = list(values)


def _encode_json(fd: FieldData, values: List[Any]) -> None:
    fd["strings"] = [json.dumps(v, separators=(",", ":"), ensure_ascii=False) for v in values]


def _encode_dense_vector(fd: FieldData, values: List[Any], dtype: np.dtype) -> None:
    dim = fd["dim"]
    fd["data"] = np.asarray(values, dtype=dtype).reshape(len(values), dim).tobytes() if values else b""


def _encode_binary_vector(fd: FieldData, values: List[Any]) -> None:
    fd["data"] = b"".join(values)


def _encode_sparse(fd: FieldData, values: List[Any]) -> None:
    fd["rows"] = [encode_sparse_row(v) for v in values]


def _encode_array(fd: FieldData, values: List[Any], element_type: DataType) -> None:
    if element_type == DataType.VARCHAR:
        fd["string_rows"] = [list(v) for v in values]
    else:
        dtype = NUMPY_DTYPES[element_type]
        fd["rows"] = [np.asarray(v, dtype=dtype).tobytes() for v in values]


# Decoders return the non-null values from the payload members

def _decode_fixed(fd: FieldData, count: int, dtype: np.dtype) -> List[Any]:
    return _frombuffer(fd.get("data"), dtype, count, fd["field_name"]).tolist()


def _decode_strings(fd: FieldData, count: int) -> List[Any]:
    strings = fd.get("strings") or []
    if len(strings) != count:
        raise DecodeError(f"Field '{fd['field_name']}' carries {len(strings)} strings, expected {count}")
    return list(strings)


def _decode_json(fd: FieldData, count: int) -> List[Any]:
    try:
        return [json.loads(s) for s in _decode_strings(fd, count)]
    except ValueError as e:
        raise DecodeError(f"Field '{fd['field_name']}' carries invalid JSON: {e}") from e


def _decode_dense_vector(fd: FieldData, count: int, dtype: np.dtype) -> List[Any]:
    dim = fd.get("dim") or 0
    if dim <= 0 and count:
        raise DecodeError(f"Vector field '{fd['field_name']}' has no dimension")
    array = _frombuffer(fd.get("data"), dtype, count * dim, fd["field_name"])
    return array.reshape(count, dim).astype(np.float64).tolist() if count else []


def _decode_binary_vector(fd: FieldData, count: int) -> List[Any]:
    dim = fd.get("dim") or 0
    if dim <= 0 or dim % 8:
        if count:
            raise DecodeError(f"Binary vector field '{fd['field_name']}' has invalid dimension {dim}")
        return []
    stride = dim // 8
    data = _frombuffer(fd.get("data"), np.dtype(np.uint8), count * stride, fd["field_name"]).tobytes()
    return [data[i * stride:(i + 1) * stride] for i in range(count)]


def _decode_rows(fd: FieldData, count: int) -> List[bytes]:
    rows = fd.get("rows") or []
    if len(rows) != count:
        raise DecodeError(f"Field '{fd['field_name']}' carries {len(rows)} rows, expected {count}")
    return rows


def _decode_sparse(fd: FieldData, count: int) -> List[Any]:
    return [decode_sparse_row(blob) for blob in _decode_rows(fd, count)]


def _decode_array(fd: FieldData, count: int, element_type: DataType) -> List[Any]:
    if element_type == DataType.VARCHAR:
        rows = fd.get("string_rows") or []
        if len(rows) != count:
            raise DecodeError(f"Field '{fd['field_name']}' carries {len(rows)} rows, expected {count}")
        return [list(r) for r in rows]
    dtype = NUMPY_DTYPES.get(element_type)
    if dtype is None:
        raise DecodeError(f"Field '{fd['field_name']}' has unsupported array element type {element_type}")
    result = []
    for blob in _decode_rows(fd, count):
        if len(blob) % dtype.itemsize:
            raise DecodeError(f"Array row of field '{fd['field_name']}' is not a whole number of {dtype}")
        result.append(np.frombuffer(blob, dtype=dtype).tolist())
    return result


_ENCODERS: Dict[DataType, Callable[..., None]] = {
    DataType.VARCHAR: _encode_strings,
    DataType.JSON: _encode_json,
    DataType.BINARY_VECTOR: _encode_binary_vector,
    DataType.SPARSE_FLOAT_VECTOR: _encode_sparse,
}

_DECODERS: Dict[DataType, Callable[..., List[Any]]] = {
    DataType.VARCHAR: _decode_strings,
    DataType.JSON: _decode_json,
    DataType.BINARY_VECTOR: _decode_binary_vector,
    DataType.SPARSE_FLOAT_VECTOR: _decode_sparse,
}

for _dt, _dtype in NUMPY_DTYPES.items():
    _ENCODERS[_dt] = (lambda dtype: lambda fd, values: _encode_fixed(fd, values, dtype))(_dtype)
    _DECODERS[_dt] = (lambda dtype: lambda fd, count: _decode_fixed(fd, count, dtype))(_dtype)

for _dt, _dtype in VECTOR_DTYPES.items():
    _ENCODERS[_dt] = (lambda dtype: lambda fd, values: _encode_dense_vector(fd, values, dtype))(_dtype)
    _DECODERS[_dt] = (lambda dtype: lambda fd, count: _decode_dense_vector(fd, count, dtype))(_dtype)


def encode_field(column: Column, field: Optional[FieldSchema] = None) -> FieldData:
    """Encode one column into a FieldData record.

    A validity bitmap is emitted when the field is nullable or has a default
    value, or, without a field descriptor, when the column holds nulls.
    """
    values = column.values
    if field is not None:
        nullable = field.nullable or field.default_value is not None
        dim = field.dim if field.data_type.is_dense_vector else 0
    else:
        nullable = column.null_count > 0
        dim = column.dim or 0

    fd: FieldData = {
        "field_name": column.name,
        "data_type": int(column.data_type),
        "element_type": int(column.element_type or DataType.NONE),
        "dim": dim or 0,
        "num_rows": len(values),
        "data": None,
        "strings": [],
        "rows": [],
        "string_rows": [],
        "valid_data": None,
    }

    present = values
    if nullable:
        valid = column.valid_mask
        fd["valid_data"] = pack_bitmap(valid)
        present = [v for v in values if v is not None]
    elif column.null_count:
        raise SchemaMismatchError(f"Field '{column.name}' is not nullable but contains null values", field=column.name)

    if column.data_type == DataType.ARRAY:
        _encode_array(fd, present, column.element_type)
    else:
        _ENCODERS[column.data_type](fd, present)
    return fd


def decode_field(fd: FieldData, field: Optional[FieldSchema] = None) -> Column:
    """Decode one FieldData record back into a column"""
    name = fd.get("field_name") or ""
    try:
        data_type = DataType(fd["data_type"])
        element_type = DataType(fd.get("element_type") or 0)
    except ValueError as e:
        raise DecodeError(f"Field '{name}' has unknown data type: {e}") from e

    if field is not None and field.data_type != data_type:
        raise DecodeError(f"Field '{name}' arrived as {data_type.name}, schema declares {field.data_type.name}")
    if data_type == DataType.NONE or (data_type not in _DECODERS and data_type != DataType.ARRAY):
        raise DecodeError(f"Field '{name}' has unsupported data type {data_type.name}")

    num_rows = fd.get("num_rows") or 0
    if num_rows < 0:
        raise DecodeError(f"Field '{name}' has negative row count")

    bitmap = fd.get("valid_data")
    valid = unpack_bitmap(bitmap, num_rows) if bitmap is not None else [True] * num_rows
    count = sum(valid)

    if data_type == DataType.ARRAY:
        present = _decode_array(fd, count, element_type)
    else:
        present = _DECODERS[data_type](fd, count)

    if len(valid) == count:
        values = list(present)
    else:
        it = iter(present)
        values = [next(it) if ok else None for ok in valid]

    return Column.trusted(name, data_type, values, element_type if data_type == DataType.ARRAY else None)


def encode(schema: CollectionSchema, columns: Sequence[Column]) -> WireBatch:
    """Encode validated columns into a wire batch, preserving row order"""
    fields_data = []
    num_rows = len(columns[0]) if columns else 0
    for column in columns:
        if len(column) != num_rows:
            raise ValidationError(
                f"Field data size misaligned for field '{column.name}': {len(column)} != {num_rows}",
                field=column.name,
            )
        fields_data.append(encode_field(column, schema.get_field(column.name)))
    return {"num_rows": num_rows, "fields_data": fields_data}


def decode(schema: Optional[CollectionSchema], batch: WireBatch) -> List[Column]:
    """Exact inverse of encode"""
    fields_data = batch.get("fields_data") or []
    columns = []
    for fd in fields_data:
        field = schema.get_field(fd.get("field_name")) if schema is not None else None
        columns.append(decode_field(fd, field))

    num_rows = batch.get("num_rows")
    counts = {len(c) for c in columns}
    if len(counts) > 1 or (num_rows is not None and counts and counts != {num_rows}):
        raise DecodeError(f"Inconsistent row counts in wire batch: {sorted(counts)} (declared {num_rows})")
    return columns


def encode_placeholder(data_type: DataType, vectors: Sequence[Any], dim: int = 0) -> Dict[str, Any]:
    """Pack query vectors, one blob per query"""
    if data_type == DataType.SPARSE_FLOAT_VECTOR:
        values = [encode_sparse_row(v) for v in vectors]
    elif data_type == DataType.BINARY_VECTOR:
        values = [bytes(v) for v in vectors]
    elif data_type in VECTOR_DTYPES:
        dtype = VECTOR_DTYPES[data_type]
        values = [np.asarray(v, dtype=dtype).tobytes() for v in vectors]
    else:
        raise ValidationError(f"{data_type.name} cannot be used as a search target", field="data")
    return {"tag": "$0", "data_type": int(data_type), "dim": dim, "values": values}


def decode_placeholder(group: Dict[str, Any]) -> List[Any]:
    """Unpack query vectors from a placeholder group"""
    data_type = DataType(group["data_type"])
    values = group.get("values") or []
    if data_type == DataType.SPARSE_FLOAT_VECTOR:
        return [decode_sparse_row(v) for v in values]
    if data_type == DataType.BINARY_VECTOR:
        return list(values)
    dtype = VECTOR_DTYPES[data_type]
    return [np.frombuffer(v, dtype=dtype).astype(np.float64).tolist() for v in values]


def encode_schema(schema: CollectionSchema) -> Dict[str, Any]:
    """Map a collection schema onto its wire record"""
    fields = []
    for index, field in enumerate(schema.fields):
        type_params = {}
        if field.dim is not None:
            type_params["dim"] = str(field.dim)
        if field.max_length is not None:
            type_params["max_length"] = str(field.max_length)
        if field.max_capacity is not None:
            type_params["max_capacity"] = str(field.max_capacity)
        fields.append({
            "field_id": 100 + index,
            "name": field.name,
            "description": field.description,
            "data_type": int(field.data_type),
            "element_type": int(field.element_type or DataType.NONE),
            "is_primary_key": field.is_primary,
            "auto_id": field.auto_id,
            "nullable": field.nullable,
            "is_partition_key": field.is_partition_key,
            "type_params": type_params,
            "default_value": None if field.default_value is None else json.dumps(field.default_value),
        })
    return {
        "name": schema.name,
        "description": schema.description,
        "fields": fields,
        "enable_dynamic_field": schema.enable_dynamic_field,
    }


def decode_schema(record: Dict[str, Any], consistency_level: int = ConsistencyLevel.BOUNDED) -> CollectionSchema:
    """Rebuild a collection schema from its wire record"""
    try:
        fields = []
        for f in record.get("fields") or []:
            if f["name"] == DYNAMIC_FIELD_NAME:
                continue
            params = f.get("type_params") or {}
            element_type = f.get("element_type") or 0
            default = f.get("default_value")
            fields.append(FieldSchema(
                name=f["name"],
                data_type=DataType(f["data_type"]),
                description=f.get("description") or "",
                is_primary=f.get("is_primary_key", False),
                auto_id=f.get("auto_id", False),
                nullable=f.get("nullable", False),
                is_partition_key=f.get("is_partition_key", False),
                dim=int(params["dim"]) if "dim" in params else None,
                max_length=int(params["max_length"]) if "max_length" in params else None,
                max_capacity=int(params["max_capacity"]) if "max_capacity" in params else None,
                element_type=DataType(element_type) if element_type else None,
                default_value=json.loads(default) if default is not None else None,
            ))
        return CollectionSchema(
            name=record.get("name") or "",
            description=record.get("description") or "",
            fields=fields,
            enable_dynamic_field=record.get("enable_dynamic_field", False),
            consistency_level=ConsistencyLevel(consistency_level),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(f"Malformed collection schema: {e}") from e
