"""
Unit tests for the columnar wire codec.
"""

import math

import numpy as np
import pytest

from tessera import codec, protocol
from tessera.column import Column
from tessera.exceptions import DecodeError, SchemaMismatchError, ValidationError
from tessera.schema import CollectionSchema
from tessera.types import ConsistencyLevel, DataType


def all_types_schema() -> CollectionSchema:
    return (
        CollectionSchema(name="everything")
        .add_field("pk", DataType.INT64, is_primary=True)
        .add_field("flag", DataType.BOOL)
        .add_field("i8", DataType.INT8)
        .add_field("i16", DataType.INT16)
        .add_field("i32", DataType.INT32)
        .add_field("f32", DataType.FLOAT)
        .add_field("f64", DataType.DOUBLE)
        .add_field("text", DataType.VARCHAR, max_length=64)
        .add_field("doc", DataType.JSON)
        .add_field("ints", DataType.ARRAY, element_type=DataType.INT32, max_capacity=8)
        .add_field("words", DataType.ARRAY, element_type=DataType.VARCHAR, max_length=8, max_capacity=8)
        .add_field("dense", DataType.FLOAT_VECTOR, dim=3)
        .add_field("half", DataType.FLOAT16_VECTOR, dim=2)
        .add_field("bits", DataType.BINARY_VECTOR, dim=16)
        .add_field("sparse", DataType.SPARSE_FLOAT_VECTOR)
    )


def all_types_columns():
    return [
        Column("pk", DataType.INT64, [-(2 ** 63), 2 ** 63 - 1]),
        Column("flag", DataType.BOOL, [True, False]),
        Column("i8", DataType.INT8, [-128, 127]),
        Column("i16", DataType.INT16, [-(2 ** 15), 2 ** 15 - 1]),
        Column("i32", DataType.INT32, [-(2 ** 31), 2 ** 31 - 1]),
        Column("f32", DataType.FLOAT, [0.5, float("nan")]),
        Column("f64", DataType.DOUBLE, [float("-inf"), 1e300]),
        Column("text", DataType.VARCHAR, ["", "ünïcode"]),
        Column("doc", DataType.JSON, [{"a": [1, 2]}, "plain"]),
        Column("ints", DataType.ARRAY, [[1, 2, 3], []], element_type=DataType.INT32),
        Column("words", DataType.ARRAY, [["x"], ["y", "z"]], element_type=DataType.VARCHAR),
        Column("dense", DataType.FLOAT_VECTOR, [[0.0, 1.5, -2.0], [3.0, 4.0, 5.0]]),
        Column("half", DataType.FLOAT16_VECTOR, [[0.5, 1.0], [2.0, -1.0]]),
        Column("bits", DataType.BINARY_VECTOR, [b"\x01\x80", b"\xff\x00"]),
        Column("sparse", DataType.SPARSE_FLOAT_VECTOR, [{0: 1.0, 9: 0.5}, {}]),
    ]


class TestBitmap:
    """Test validity bitmaps"""

    def test_lsb_first(self):
        """Test bit i of byte i//8 holds row i"""
        assert codec.pack_bitmap([True, False, False, False, False, False, False, False, True]) == b"\x01\x01"

    def test_round_trip(self):
        """Test unpack reverses pack"""
        valid = [True, False, True, True, False]
        assert codec.unpack_bitmap(codec.pack_bitmap(valid), 5) == valid

    def test_wrong_length(self):
        """Test bitmap length must be ceil(n/8)"""
        with pytest.raises(DecodeError):
            codec.unpack_bitmap(b"\x00\x00", 3)


class TestSparseRows:
    """Test sparse row blobs"""

    def test_layout(self):
        """Test (uint32 index, float32 value) little-endian pairs"""
        blob = codec.encode_sparse_row({1: 1.0})
        assert blob == b"\x01\x00\x00\x00\x00\x00\x80\x3f"
        assert codec.decode_sparse_row(blob) == {1: 1.0}

    def test_unsorted_indices_rejected(self):
        """Test indices must be strictly increasing"""
        blob = codec.encode_sparse_row({5: 1.0}) + codec.encode_sparse_row({2: 1.0})
        with pytest.raises(DecodeError):
            codec.decode_sparse_row(blob)

    def test_truncated(self):
        """Test partial pairs are rejected"""
        with pytest.raises(DecodeError):
            codec.decode_sparse_row(b"\x01\x00\x00")


class TestRoundTrip:
    """Test decode(encode(columns)) == columns"""

    def test_all_types(self):
        """Test every data type survives the round trip"""
        schema = all_types_schema()
        columns = all_types_columns()
        batch = codec.encode(schema, columns)
        assert batch["num_rows"] == 2
        assert codec.decode(schema, batch) == columns

    def test_through_avro(self):
        """Test the batch survives Avro serialization of an Insert request"""
        schema = all_types_schema()
        columns = all_types_columns()
        batch = codec.encode(schema, columns)
        body = {"collection_name": "everything", **batch}
        decoded = protocol.deserialize("InsertRequest", protocol.serialize("InsertRequest", body))
        assert codec.decode(schema, decoded) == columns

    def test_nulls(self):
        """Test nullable fields keep null positions"""
        schema = (
            CollectionSchema(name="n")
            .add_field("score", DataType.DOUBLE, nullable=True)
            .add_field("name", DataType.VARCHAR, max_length=8, nullable=True)
        )
        columns = [
            Column("score", DataType.DOUBLE, [None, 1.5, None]),
            Column("name", DataType.VARCHAR, ["a", None, "c"]),
        ]
        batch = codec.encode(schema, columns)
        assert batch["fields_data"][0]["valid_data"] == codec.pack_bitmap([False, True, False])
        assert np.frombuffer(batch["fields_data"][0]["data"], dtype="<f8").tolist() == [1.5]
        assert codec.decode(schema, batch) == columns

    def test_zero_rows(self):
        """Test a zero-row batch"""
        schema = all_types_schema()
        columns = [Column(f.name, f.data_type, [], f.element_type) for f in schema.fields]
        batch = codec.encode(schema, columns)
        assert batch["num_rows"] == 0
        assert codec.decode(schema, batch) == columns

    def test_nan_preserved(self):
        """Test NaN is carried bit for bit"""
        schema = CollectionSchema(name="n").add_field("f", DataType.DOUBLE)
        decoded = codec.decode(schema, codec.encode(schema, [Column("f", DataType.DOUBLE, [float("nan")])]))
        assert math.isnan(decoded[0].values[0])

    def test_order_preserved(self):
        """Test row order is preserved"""
        schema = CollectionSchema(name="n").add_field("n", DataType.INT64)
        values = list(range(100, 0, -1))
        decoded = codec.decode(schema, codec.encode(schema, [Column("n", DataType.INT64, values)]))
        assert decoded[0].values == values

    def test_without_schema(self):
        """Test decoding without a schema relies on the wire types"""
        schema = all_types_schema()
        columns = all_types_columns()
        assert codec.decode(None, codec.encode(schema, columns)) == columns


class TestEncodeErrors:
    """Test encode side failures"""

    def test_misaligned(self):
        """Test columns of different length"""
        schema = CollectionSchema(name="n").add_field("a", DataType.INT64).add_field("b", DataType.INT64)
        with pytest.raises(ValidationError):
            codec.encode(schema, [Column("a", DataType.INT64, [1]), Column("b", DataType.INT64, [1, 2])])

    def test_nulls_without_nullable(self):
        """Test nulls in a non-nullable field"""
        schema = CollectionSchema(name="n").add_field("a", DataType.INT64)
        with pytest.raises(SchemaMismatchError):
            codec.encode(schema, [Column("a", DataType.INT64, [None])])


class TestDecodeErrors:
    """Test decode side failures"""

    def field_data(self, **overrides):
        fd = {
            "field_name": "n", "data_type": int(DataType.INT32), "element_type": 0, "dim": 0,
            "num_rows": 2, "data": b"\x01\x00\x00\x00\x02\x00\x00\x00", "strings": [], "rows": [],
            "string_rows": [], "valid_data": None,
        }
        fd.update(overrides)
        return fd

    def test_valid(self):
        """Test the fixture decodes"""
        assert codec.decode_field(self.field_data()).values == [1, 2]

    def test_short_buffer(self):
        """Test a truncated data buffer"""
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(data=b"\x01\x00\x00\x00"))

    def test_unknown_type(self):
        """Test an unknown data type"""
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(data_type=77))

    def test_type_disagrees_with_schema(self):
        """Test wire type must match the schema"""
        schema = CollectionSchema(name="n").add_field("n", DataType.INT64)
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(), schema.get_field("n"))

    def test_string_count(self):
        """Test string count must match the row count"""
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(data_type=int(DataType.VARCHAR), data=None, strings=["a"]))

    def test_invalid_json(self):
        """Test undecodable JSON"""
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(data_type=int(DataType.JSON), data=None, strings=["{", "1"]))

    def test_vector_without_dim(self):
        """Test vectors need a dimension"""
        with pytest.raises(DecodeError):
            codec.decode_field(self.field_data(data_type=int(DataType.FLOAT_VECTOR)))

    def test_inconsistent_batch(self):
        """Test columns disagreeing with the declared row count"""
        with pytest.raises(DecodeError):
            codec.decode(None, {"fields_data": [self.field_data()], "num_rows": 3})


class TestPlaceholders:
    """Test query vector packing"""

    def test_float_vectors(self):
        """Test float vectors pack as float32 blobs"""
        group = codec.encode_placeholder(DataType.FLOAT_VECTOR, [[1.0, 2.0], [3.0, 4.0]], 2)
        assert group["values"][0] == np.array([1.0, 2.0], dtype="<f4").tobytes()
        assert codec.decode_placeholder(group) == [[1.0, 2.0], [3.0, 4.0]]

    def test_sparse_vectors(self):
        """Test sparse query vectors"""
        group = codec.encode_placeholder(DataType.SPARSE_FLOAT_VECTOR, [{3: 0.5}])
        assert codec.decode_placeholder(group) == [{3: 0.5}]

    def test_binary_vectors(self):
        """Test binary query vectors"""
        group = codec.encode_placeholder(DataType.BINARY_VECTOR, [b"\x0f"], 8)
        assert codec.decode_placeholder(group) == [b"\x0f"]

    def test_scalar_rejected(self):
        """Test scalars are not search targets"""
        with pytest.raises(ValidationError):
            codec.encode_placeholder(DataType.INT64, [1])


class TestSchemaRecords:
    """Test schema wire records"""

    def test_round_trip(self):
        """Test encode_schema and decode_schema are inverse"""
        schema = all_types_schema()
        schema.fields[1].default_value = True
        record = codec.encode_schema(schema)
        decoded = codec.decode_schema(record, ConsistencyLevel.BOUNDED)
        assert decoded == schema

    def test_dynamic_field_skipped(self):
        """Test the service side $meta field is hidden"""
        record = codec.encode_schema(all_types_schema())
        record["fields"].append({"name": "$meta", "data_type": int(DataType.JSON)})
        decoded = codec.decode_schema(record)
        assert "$meta" not in decoded.field_names

    def test_malformed(self):
        """Test malformed records raise DecodeError"""
        with pytest.raises(DecodeError):
            codec.decode_schema({"name": "x", "fields": [{"name": "a", "data_type": 999}]})
