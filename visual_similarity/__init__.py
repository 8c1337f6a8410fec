"""
visual_similarity — Tenant-scoped embedding index and similarity search.

Stores precomputed image embeddings per tenant and ranks catalog products
against a query embedding by cosine similarity, with per-product dedupe,
optional hiding of unavailable products and adaptive threshold relaxation.

Modules:
    service        VisualSearchCore facade
    engine         SearchEngine query pipeline
    store          Thread-safe per-tenant EmbeddingStore
    scoring        Candidate scoring, ranking, dedupe, threshold ladder
    vector_math    Cosine similarity and batched scoring
    availability   Product availability rule
    stats          Count and recency diagnostics
    settings       Per-tenant search settings
    snapshot       Save/load a store to disk
    models         Value types
    errors         Exceptions
"""

from .engine import SearchEngine
from .errors import StorageError, ValidationError, VisualSimilarityError
from .models import (
    EmbeddingRecord, ProductAvailability, SearchHit, SearchOutcome,
    SearchQuery, SearchResponse, StatsReport,
)
from .service import VisualSearchCore
from .store import EmbeddingStore

__version__ = "1.0.0"

__all__ = [
    "EmbeddingRecord", "EmbeddingStore", "ProductAvailability", "SearchEngine",
    "SearchHit", "SearchOutcome", "SearchQuery", "SearchResponse",
    "StatsReport", "StorageError", "ValidationError", "VisualSearchCore",
    "VisualSimilarityError",
]
