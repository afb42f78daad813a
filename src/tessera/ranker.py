"""
Tessera Python Client - Hybrid search requests and rankers

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
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .types import MAX_TOPK


class AnnSearchRequest:
    """One vector search inside a hybrid search.

    Args:
        data: Query vectors, one per query. Every request of a hybrid search
            carries the same number of queries.
        anns_field: Vector field this request searches
        params: Index specific search parameters
        limit: Candidates this request contributes per query
        filter: Boolean filter expression on scalar fields
        metric_type: Distance metric, defaults to the index metric
    """

    def __init__(
        self,
        data: Any,
        anns_field: str,
        params: Optional[Dict[str, Any]] = None,
        limit: int = 10,
        filter: str = "",
        metric_type: Optional[str] = None,
    ) -> None:
        self.data = data
        self.anns_field = anns_field
        self.params = params or {}
        self.limit = limit
        self.filter = filter
        self.metric_type = metric_type

    def __repr__(self) -> str:
        return f"AnnSearchRequest(anns_field={self.anns_field!r}, limit={self.limit}, filter={self.filter!r})"


class BaseRanker:
    """Fusion strategy applied by the service to the per-request hit lists"""

    strategy = ""

    @property
    def params(self) -> Dict[str, Any]:
        raise NotImplementedError

    def rank_params(self) -> Dict[str, str]:
        """Ranker settings as carried in the hybrid search rank_params map"""
        return {"strategy": self.strategy, "params": json.dumps(self.params)}

    def check(self, num_requests: int) -> None:
        """Validate against the number of search requests, raising ValidationError"""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params})"


class RRFRanker(BaseRanker):
    """Reciprocal rank fusion: each hit scores the sum of 1 / (k + rank)"""

    strategy = "rrf"

    def __init__(self, k: int = 60) -> None:
        if isinstance(k, bool) or not isinstance(k, int) or not 0 < k < MAX_TOPK:
            raise ValidationError(f"RRF k must be an integer in (0, {MAX_TOPK}), got {k!r}", field="ranker")
        self.k = k

    @property
    def params(self) -> Dict[str, Any]:
        return {"k": self.k}


class WeightedRanker(BaseRanker):
    """Weighted sum of normalized scores, one weight per search request"""

    strategy = "weighted"

    def __init__(self, *weights: float) -> None:
        if not weights:
            raise ValidationError("WeightedRanker requires at least one weight", field="ranker")
        for weight in weights:
            if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not math.isfinite(weight):
                raise ValidationError(f"Ranker weight {weight!r} is not a number", field="ranker")
            if not 0.0 <= weight <= 1.0:
                raise ValidationError(f"Ranker weight {weight} must be in [0, 1]", field="ranker")
        self.weights: List[float] = [float(w) for w in weights]

    @property
    def params(self) -> Dict[str, Any]:
        return {"weights": self.weights}

    def check(self, num_requests: int) -> None:
        if len(self.weights) != num_requests:
            raise ValidationError(
                f"WeightedRanker has {len(self.weights)} weights for {num_requests} search requests",
                field="ranker",
            )
