"""
Unit tests for the Avro wire protocol.
"""

import pytest

from tessera import protocol
from tessera.exceptions import DecodeError, ValidationError


class TestMethods:
    """Test the method table"""

    def test_every_method_has_schemas(self):
        """Test request and response schemas exist for every method"""
        for name, spec in protocol.METHODS.items():
            assert spec.request in protocol.SCHEMAS, name
            assert spec.response in protocol.SCHEMAS, name

    def test_every_response_has_status(self):
        """Test every response carries a status"""
        for spec in protocol.METHODS.values():
            fields = [f.name for f in protocol.SCHEMAS[spec.response].fields]
            assert fields[0] == "status"

    def test_method_path(self):
        """Test fully qualified gRPC paths"""
        assert protocol.method_path("Search") == f"/{protocol.SERVICE_NAME}/Search"


class TestSerialization:
    """Test Avro encode and decode"""

    def test_defaults_are_filled(self):
        """Test omitted fields take their declared defaults"""
        raw = protocol.serialize("CollectionRequest", {"collection_name": "books"})
        assert protocol.deserialize("CollectionRequest", raw) == {"db_name": "", "collection_name": "books"}

    def test_nested_defaults(self):
        """Test defaults are filled inside nested records"""
        raw = protocol.serialize("StatusResponse", {"status": {"code": 100}})
        status = protocol.deserialize("StatusResponse", raw)["status"]
        assert status == {"code": 100, "reason": "", "retriable": False, "detail": ""}

    def test_defaults_inside_record_arrays(self):
        """Test defaults are filled for records nested in arrays"""
        search = {
            "collection_name": "books",
            "placeholder_group": {"data_type": 101, "values": [b"\x00" * 8]},
            "nq": 1,
        }
        raw = protocol.serialize("HybridSearchRequest", {"collection_name": "books", "requests": [search]})
        [decoded] = protocol.deserialize("HybridSearchRequest", raw)["requests"]
        assert decoded["dsl"] == ""
        assert decoded["consistency_level"] == 2
        assert decoded["placeholder_group"]["tag"] == "$0"

    def test_union_record(self):
        """Test optional nested records"""
        body = {"status": {"code": 0}, "ids": {"int_ids": [1, 2]}, "insert_cnt": 2}
        decoded = protocol.deserialize("MutationResult", protocol.serialize("MutationResult", body))
        assert decoded["ids"] == {"int_ids": [1, 2], "str_ids": []}
        assert decoded["insert_cnt"] == 2

    def test_non_conforming_request(self):
        """Test a request that does not match its schema"""
        with pytest.raises(ValidationError):
            protocol.serialize("CollectionRequest", {"collection_name": 42})

    def test_missing_required_field(self):
        """Test a missing field without default"""
        with pytest.raises(ValidationError):
            protocol.serialize("CollectionRequest", {})

    def test_malformed_payload(self):
        """Test garbage bytes raise DecodeError"""
        with pytest.raises(DecodeError):
            protocol.deserialize("DescribeCollectionResponse", b"\xff\xff\xff\xff\xff\xff\xff\xff\xff\xff\xff")

    def test_complete_leaves_values(self):
        """Test complete keeps supplied values"""
        schema = protocol.SCHEMAS["ListRequest"]
        assert protocol.complete(schema, {"db_name": "x"}) == {"db_name": "x", "collection_name": ""}
