"""
Unit tests for hybrid search requests and rankers.
"""

import json

import pytest

from tessera.exceptions import ValidationError
from tessera.ranker import AnnSearchRequest, RRFRanker, WeightedRanker


class TestRRFRanker:
    """Test reciprocal rank fusion settings"""

    def test_default(self):
        """Test the default smoothing constant"""
        ranker = RRFRanker()
        assert ranker.rank_params() == {"strategy": "rrf", "params": json.dumps({"k": 60})}

    @pytest.mark.parametrize("k", [0, -1, 16384, 1.5, True, "60"])
    def test_invalid_k(self, k):
        """Test k must be an integer in (0, 16384)"""
        with pytest.raises(ValidationError) as exc_info:
            RRFRanker(k)
        assert exc_info.value.field == "ranker"

    def test_any_request_count(self):
        """Test RRF accepts any number of searches"""
        RRFRanker(10).check(5)


class TestWeightedRanker:
    """Test weighted fusion settings"""

    def test_params(self):
        """Test weights are carried as floats"""
        ranker = WeightedRanker(1, 0.5)
        assert ranker.params == {"weights": [1.0, 0.5]}
        assert json.loads(ranker.rank_params()["params"]) == {"weights": [1.0, 0.5]}
        assert ranker.rank_params()["strategy"] == "weighted"

    @pytest.mark.parametrize("weights", [(), (1.5,), (-0.1,), (float("nan"),), (float("inf"),), ("0.5",), (True,)])
    def test_invalid_weights(self, weights):
        """Test weights must be numbers in [0, 1]"""
        with pytest.raises(ValidationError):
            WeightedRanker(*weights)

    def test_one_weight_per_request(self):
        """Test the weight count is checked against the searches"""
        ranker = WeightedRanker(0.2, 0.8)
        ranker.check(2)
        with pytest.raises(ValidationError):
            ranker.check(3)


class TestAnnSearchRequest:
    """Test single search descriptions"""

    def test_defaults(self):
        """Test optional settings"""
        req = AnnSearchRequest([[0.1, 0.2]], "dense")
        assert req.params == {}
        assert req.limit == 10
        assert req.filter == ""
        assert req.metric_type is None
        assert "dense" in repr(req)
