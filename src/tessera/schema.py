"""
Tessera Python Client - Collection schema model and validation

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

import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .column import Column
from .exceptions import SchemaMismatchError, ValidationError
from .types import (
    ARRAY_ELEMENT_TYPES,
    DEFAULT_CONSISTENCY_LEVEL,
    DYNAMIC_FIELD_NAME,
    MAX_ARRAY_CAPACITY,
    MAX_DIMENSION,
    MAX_NAME_LENGTH,
    MAX_VARCHAR_LENGTH,
    ConsistencyLevel,
    DataType,
)

_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_name(value: Any, field: str, kind: str = "name") -> str:
    """Validate an identifier-shaped name (collection, field, alias, ...)"""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{kind} must be a non-empty string", field=field)
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(f"{kind} '{value}' exceeds {MAX_NAME_LENGTH} characters", field=field)
    if not _NAME_PATTERN.match(value):
        raise ValidationError(
            f"{kind} '{value}' may only contain letters, digits and underscores, and must not start with a digit",
            field=field,
        )
    return value


class FieldSchema(BaseModel):
    """Field descriptor"""
    name: str
    data_type: DataType
    description: str = ""
    is_primary: bool = False
    auto_id: bool = False
    nullable: bool = False
    is_partition_key: bool = False
    dim: Optional[int] = None
    max_length: Optional[int] = None
    element_type: Optional[DataType] = None
    max_capacity: Optional[int] = None
    default_value: Optional[Any] = None

    @property
    def is_input(self) -> bool:
        """False for fields whose values the service generates on insert"""
        return not (self.is_primary and self.auto_id)

    @property
    def is_required(self) -> bool:
        return not self.nullable and self.default_value is None

    def check(self) -> None:
        """Check the declaration itself, raising ValidationError"""
        check_name(self.name, "fields", "Field name")
        dt = self.data_type

        if dt == DataType.NONE:
            raise ValidationError(f"Field '{self.name}' has no data type", field=self.name)

        if dt.is_dense_vector:
            if self.dim is None or isinstance(self.dim, bool) or self.dim <= 0:
                raise ValidationError(f"Vector field '{self.name}' requires a positive dim", field=self.name)
            if self.dim > MAX_DIMENSION:
                raise ValidationError(f"Vector field '{self.name}' dim exceeds {MAX_DIMENSION}", field=self.name)
            if dt == DataType.BINARY_VECTOR and self.dim % 8:
                raise ValidationError(f"Binary vector field '{self.name}' dim must be a multiple of 8", field=self.name)

        if dt == DataType.VARCHAR or (dt == DataType.ARRAY and self.element_type == DataType.VARCHAR):
            if self.max_length is None or not 0 < self.max_length <= MAX_VARCHAR_LENGTH:
                raise ValidationError(
                    f"Varchar field '{self.name}' requires max_length in [1, {MAX_VARCHAR_LENGTH}]",
                    field=self.name,
                )

        if dt == DataType.ARRAY:
            if self.element_type not in ARRAY_ELEMENT_TYPES:
                raise ValidationError(f"Array field '{self.name}' has unsupported element type", field=self.name)
            if self.max_capacity is None or not 0 < self.max_capacity <= MAX_ARRAY_CAPACITY:
                raise ValidationError(
                    f"Array field '{self.name}' requires max_capacity in [1, {MAX_ARRAY_CAPACITY}]",
                    field=self.name,
                )

        if self.is_primary:
            if dt not in (DataType.INT64, DataType.VARCHAR):
                raise ValidationError(f"Primary key '{self.name}' must be INT64 or VARCHAR", field=self.name)
            if self.nullable:
                raise ValidationError(f"Primary key '{self.name}' cannot be nullable", field=self.name)
        elif self.auto_id:
            raise ValidationError(f"auto_id is only allowed on the primary key, not '{self.name}'", field=self.name)

        if self.default_value is not None:
            if dt.is_vector or dt in (DataType.JSON, DataType.ARRAY):
                raise ValidationError(f"Field '{self.name}' does not support a default value", field=self.name)
            try:
                self.make_column([self.default_value])
            except ValidationError as e:
                raise ValidationError(f"Default value of '{self.name}' is invalid: {e.message}", field=self.name) from e

    def make_column(self, values: Sequence[Any]) -> Column:
        return Column(self.name, self.data_type, values, self.element_type)


class CollectionSchema(BaseModel):
    """Ordered field descriptors plus collection level metadata"""
    name: str = ""
    description: str = ""
    fields: List[FieldSchema] = Field(default_factory=list)
    enable_dynamic_field: bool = False
    consistency_level: ConsistencyLevel = DEFAULT_CONSISTENCY_LEVEL

    def add_field(self, name: str, data_type: DataType, **kwargs) -> "CollectionSchema":
        self.fields.append(FieldSchema(name=name, data_type=data_type, **kwargs))
        return self

    @property
    def primary_field(self) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.is_primary:
                return field
        return None

    @property
    def vector_fields(self) -> List[FieldSchema]:
        return [f for f in self.fields if f.data_type.is_vector]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def input_fields(self, is_upsert: bool = False) -> List[FieldSchema]:
        """Fields a caller supplies values for"""
        return [f for f in self.fields if f.is_input or is_upsert]

    def check(self) -> None:
        """Check the declaration, raising ValidationError"""
        if self.name:
            check_name(self.name, "collection_name", "Collection name")
        if not self.fields:
            raise ValidationError("Schema must declare at least one field", field="fields")

        seen = set()
        for field in self.fields:
            field.check()
            if field.name in seen:
                raise ValidationError(f"Duplicated field name '{field.name}'", field=field.name)
            seen.add(field.name)

        primaries = [f.name for f in self.fields if f.is_primary]
        if len(primaries) != 1:
            raise ValidationError(
                f"Schema must have exactly one primary key field, found {len(primaries)}",
                field="fields",
            )

        if not self.vector_fields:
            raise ValidationError("Schema must declare at least one vector field", field="fields")

        if sum(1 for f in self.fields if f.is_partition_key) > 1:
            raise ValidationError("Schema may declare at most one partition key field", field="fields")


def validate_column(field: FieldSchema, column: Column) -> None:
    """Check one column against its field descriptor.

    Raises SchemaMismatchError on type, element type, dimension, nullability,
    length or capacity incompatibility.
    """
    name = field.name
    if column.data_type != field.data_type:
        raise SchemaMismatchError(
            f"Field '{name}' expects {field.data_type.name}, got {column.data_type.name}",
            field=name,
        )
    if field.data_type == DataType.ARRAY and column.element_type != field.element_type:
        got = column.element_type.name if column.element_type is not None else None
        raise SchemaMismatchError(
            f"Array field '{name}' expects {field.element_type.name} elements, got {got}",
            field=name,
        )
    if field.data_type.is_dense_vector and column.dim is not None and column.dim != field.dim:
        raise SchemaMismatchError(
            f"Vector field '{name}' expects dim {field.dim}, got {column.dim}",
            field=name,
        )
    if not field.nullable and field.default_value is None and column.null_count:
        raise SchemaMismatchError(f"Field '{name}' is not nullable but contains null values", field=name)

    if field.max_length is not None:
        is_string = field.data_type == DataType.VARCHAR
        is_string_array = field.data_type == DataType.ARRAY and field.element_type == DataType.VARCHAR
        for row, value in enumerate(column.values):
            if value is None:
                continue
            strings = [value] if is_string else value if is_string_array else ()
            for item in strings:
                if len(item) > field.max_length:
                    raise SchemaMismatchError(
                        f"Field '{name}' row {row} exceeds max_length {field.max_length}",
                        field=name,
                    )

    if field.data_type == DataType.ARRAY and field.max_capacity is not None:
        for row, value in enumerate(column.values):
            if value is not None and len(value) > field.max_capacity:
                raise SchemaMismatchError(
                    f"Field '{name}' row {row} exceeds max_capacity {field.max_capacity}",
                    field=name,
                )


def check_row_counts(columns: Sequence[Column]) -> int:
    """Enforce the row-count invariant, returning the shared row count"""
    counts = {len(c) for c in columns}
    if len(counts) > 1:
        sizes = ", ".join(f"{c.name}={len(c)}" for c in columns)
        first = columns[0]
        offender = next(c for c in columns if len(c) != len(first))
        raise ValidationError(f"Field data size misaligned: {sizes}", field=offender.name)
    return counts.pop() if counts else 0


def validate_columns(schema: CollectionSchema, columns: Sequence[Column], is_upsert: bool = False) -> int:
    """Validate a full column set against a schema, returning the row count"""
    if not columns:
        raise ValidationError("No column data provided", field="columns")

    names = [c.name for c in columns]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValidationError(f"Duplicated columns: {', '.join(duplicates)}", field=duplicates[0])

    num_rows = check_row_counts(columns)

    for column in columns:
        if column.name == DYNAMIC_FIELD_NAME and schema.enable_dynamic_field:
            if column.data_type != DataType.JSON:
                raise SchemaMismatchError("Dynamic field must be JSON", field=DYNAMIC_FIELD_NAME)
            continue
        field = schema.get_field(column.name)
        if field is None:
            raise SchemaMismatchError(f"Field '{column.name}' is not defined in the schema", field=column.name)
        if not field.is_input and not is_upsert:
            raise SchemaMismatchError(
                f"Field '{column.name}' is an auto_id primary key, no need to provide data",
                field=column.name,
            )
        validate_column(field, column)

    provided = set(names)
    for field in schema.input_fields(is_upsert):
        if field.name not in provided and field.is_required:
            raise SchemaMismatchError(f"Missing data for required field '{field.name}'", field=field.name)

    return num_rows


def rows_to_columns(schema: CollectionSchema, rows: Sequence[Dict[str, Any]], is_upsert: bool = False) -> List[Column]:
    """Transpose row dicts into columns in schema order.

    Keys not declared in the schema go to the dynamic field when it is
    enabled, otherwise they are a SchemaMismatchError.
    """
    if isinstance(rows, dict) or not isinstance(rows, (list, tuple)):
        raise ValidationError("Rows must be a list of dicts", field="rows")

    fields = schema.input_fields(is_upsert)
    known = {f.name for f in fields}
    values: Dict[str, List[Any]] = {f.name: [] for f in fields}
    dynamic: List[Dict[str, Any]] = []

    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValidationError(f"Row {index} is not a dict", field="rows")
        extra = {k: v for k, v in row.items() if k not in known}
        if extra:
            generated = [k for k in extra if schema.get_field(k) is not None]
            if generated:
                raise SchemaMismatchError(
                    f"Field '{generated[0]}' is an auto_id primary key, no need to provide data",
                    field=generated[0],
                )
            if not schema.enable_dynamic_field:
                name = sorted(extra)[0]
                raise SchemaMismatchError(f"Field '{name}' is not defined in the schema", field=name)
        dynamic.append(extra)
        for field in fields:
            value = row.get(field.name)
            if value is None and field.default_value is not None:
                values[field.name].append(field.default_value)
            elif field.name in row:
                values[field.name].append(value)
            elif field.is_required:
                raise SchemaMismatchError(f"Row {index} is missing required field '{field.name}'", field=field.name)
            else:
                values[field.name].append(field.default_value)

    columns = [f.make_column(values[f.name]) for f in fields]
    if schema.enable_dynamic_field:
        columns.append(Column(DYNAMIC_FIELD_NAME, DataType.JSON, dynamic))
    return columns
