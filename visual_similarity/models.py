"""
Value types shared across the store, the search engine and diagnostics.

Records are frozen so that a reader holding a record can never observe a
half-written vector: an upsert swaps the whole record instead of editing it.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EmbeddingRecord:
    """One stored embedding, keyed by image_id within its tenant."""

    image_id: str
    tenant_id: str
    vector: Tuple[float, ...]
    model_id: str
    created_at: datetime = field(default_factory=utc_now)
    product_id: Optional[str] = None

    @property
    def dimension(self) -> int:
        return len(self.vector)

    @property
    def resolved_product_id(self) -> str:
        """Product used for dedupe; the image itself when no join was supplied."""
        return self.product_id if self.product_id is not None else self.image_id


@dataclass(frozen=True)
class ProductAvailability:
    """Catalog projection consulted by the availability filter."""

    product_id: str
    available_for_sale: bool = True
    total_inventory: Optional[int] = None


@dataclass(frozen=True)
class SearchQuery:
    tenant_id: str
    vector: Tuple[float, ...]
    top_k: int = 10
    min_similarity: float = 0.4
    hide_unavailable: bool = False


class SearchOutcome(enum.Enum):
    """Terminal states of a search."""

    EMPTY_INDEX = "empty_index"
    NO_MATCHING_DIMENSION = "no_matching_dimension"
    EXHAUSTED = "exhausted"
    OK = "ok"


@dataclass(frozen=True)
class SearchHit:
    image_id: str
    product_id: str
    similarity: float
    rank: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "image_id": self.image_id,
            "product_id": self.product_id,
            "similarity": self.similarity,
            "rank": self.rank,
        }


@dataclass
class SearchResponse:
    """
    Result of SearchEngine.search().

    Attributes:
        outcome: Which terminal state the search ended in.
        results: Ranked hits; empty unless outcome is OK.
        effective_threshold: Threshold of the rung that produced results.
        thresholds_tried: Every threshold attempted, in order.
        candidate_count: Records whose dimension matched the query.
        skipped_dimension_mismatch: Records excluded for a different dimension.
    """

    outcome: SearchOutcome
    results: List[SearchHit] = field(default_factory=list)
    effective_threshold: Optional[float] = None
    thresholds_tried: List[float] = field(default_factory=list)
    candidate_count: int = 0
    skipped_dimension_mismatch: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is SearchOutcome.OK


@dataclass(frozen=True)
class RecentEmbedding:
    image_id: str
    model_id: str
    created_at: datetime


@dataclass(frozen=True)
class StatsReport:
    tenant_id: str
    total_count: int
    recent_records: List[RecentEmbedding]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "total_count": self.total_count,
            "recent_records": [
                {
                    "image_id": r.image_id,
                    "model_id": r.model_id,
                    "created_at": r.created_at.isoformat(),
                }
                for r in self.recent_records
            ],
        }
