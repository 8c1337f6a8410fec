"""
Visual similarity search engine.

Runs the query pipeline against one tenant's embeddings:
    1. Validate the query (no store access on bad input)
    2. Select candidates whose dimension matches the query
    3. Score every candidate by cosine similarity
    4. Threshold, hide unavailable products, rank, dedupe per product
    5. Relax the threshold when a rung produces nothing

The engine never mutates the store. Every search ends in exactly one
SearchOutcome so callers can tell "nothing indexed yet" apart from
"nothing similar found".
"""

import math
import numbers
import logging
from typing import Dict, List, Optional, Tuple

from .availability import AvailabilityProvider, filter_available
from .errors import (
    EmptyVector, InvalidThreshold, MissingAvailabilityProvider,
    NonPositiveTopK, ValidationError,
)
from .models import SearchHit, SearchOutcome, SearchQuery, SearchResponse
from .scoring import (
    ScoredCandidate, apply_threshold, dedupe_by_product, rank_candidates,
    score_candidates, threshold_ladder,
)
from .store import EmbeddingStore
from .vector_math import sanitize_vector

logger = logging.getLogger(__name__)


class SearchEngine:
    """
    Nearest-neighbor search over an EmbeddingStore.

    Uses a linear scan over the tenant's records; availability is looked up
    through the provider only for products that pass a threshold.
    """

    def __init__(self,
                 store: EmbeddingStore,
                 availability_provider: Optional[AvailabilityProvider] = None,
                 parallel_threshold: Optional[int] = None,
                 relaxation_guard: Optional[float] = None,
                 relaxation_floor: Optional[float] = None,
                 scoring_workers: Optional[int] = None):
        """
        Args:
            store: Source of embedding records.
            availability_provider: Callable mapping product ids to
                ProductAvailability. Required for hide_unavailable queries.
            parallel_threshold: Candidate count above which scoring is
                prefiltered by FAISS and split across threads. Defaults to
                PARALLEL_SCORING_THRESHOLD.
            relaxation_guard: Defaults to RELAXATION_GUARD.
            relaxation_floor: Defaults to RELAXATION_FLOOR.
            scoring_workers: Defaults to SCORING_WORKERS.
        """
        self.store = store
        self.availability_provider = availability_provider
        self.parallel_threshold = parallel_threshold
        self.relaxation_guard = relaxation_guard
        self.relaxation_floor = relaxation_floor
        self.scoring_workers = scoring_workers

    def validate(self, query: SearchQuery) -> Tuple[float, ...]:
        """
        Check a query and return its sanitized vector.

        Raises:
            ValidationError: Or one of its subclasses, on any invalid field.
        """
        if not query.tenant_id:
            raise ValidationError("tenant_id is required")

        vector = sanitize_vector(query.vector)
        if not vector:
            raise EmptyVector("Query vector must not be empty")

        top_k = query.top_k
        if isinstance(top_k, bool) or not isinstance(top_k, numbers.Integral) or top_k <= 0:
            raise NonPositiveTopK(f"top_k must be a positive integer, got {top_k!r}")

        threshold = query.min_similarity
        if (isinstance(threshold, bool)
                or not isinstance(threshold, numbers.Real)
                or not math.isfinite(threshold)
                or not -1.0 <= threshold <= 1.0):
            raise InvalidThreshold(
                f"min_similarity must be a finite number in [-1, 1], got {threshold!r}"
            )

        if query.hide_unavailable and self.availability_provider is None:
            raise MissingAvailabilityProvider(
                "hide_unavailable requires an availability provider"
            )

        return vector

    def search(self, query: SearchQuery) -> SearchResponse:
        """
        Find the products most visually similar to the query vector.

        Args:
            query: Tenant, query vector, top_k, threshold and filter toggle.

        Returns:
            SearchResponse whose outcome is one of EMPTY_INDEX,
            NO_MATCHING_DIMENSION, EXHAUSTED or OK. Results are only
            non-empty for OK.

        Raises:
            ValidationError: Before any store access, on invalid input.
        """
        query_vector = self.validate(query)
        dimension = len(query_vector)

        records = self.store.all_for_tenant(query.tenant_id)
        if not records:
            logger.info(f"Tenant {query.tenant_id} has no embeddings indexed")
            return SearchResponse(outcome=SearchOutcome.EMPTY_INDEX)

        eligible = [r for r in records if r.dimension == dimension]
        skipped = len(records) - len(eligible)
        if skipped:
            logger.warning(
                f"Skipped {skipped} of {len(records)} embeddings for tenant "
                f"{query.tenant_id}: dimension differs from query ({dimension}d)"
            )

        if not eligible:
            return SearchResponse(
                outcome=SearchOutcome.NO_MATCHING_DIMENSION,
                skipped_dimension_mismatch=skipped,
            )

        ladder = threshold_ladder(query.min_similarity,
                                  guard=self.relaxation_guard,
                                  floor=self.relaxation_floor)
        scored = score_candidates(query_vector, eligible, self.parallel_threshold,
                                  floor=min(ladder), workers=self.scoring_workers)

        availability: Dict[str, bool] = {}
        tried: List[float] = []

        for threshold in ladder:
            tried.append(threshold)
            hits = self._collect(scored, threshold, query, availability)
            logger.debug(f"Threshold {threshold:.4f}: {len(hits)} results")

            if hits:
                if len(tried) > 1:
                    logger.info(
                        f"Relaxed threshold {query.min_similarity} -> {threshold} "
                        f"for tenant {query.tenant_id}"
                    )
                logger.info(
                    f"Search complete: {len(eligible)} candidates -> {len(hits)} results"
                )
                return SearchResponse(
                    outcome=SearchOutcome.OK,
                    results=hits,
                    effective_threshold=threshold,
                    thresholds_tried=tried,
                    candidate_count=len(eligible),
                    skipped_dimension_mismatch=skipped,
                )

        logger.warning(
            f"No results for tenant {query.tenant_id} after thresholds {tried}"
        )
        return SearchResponse(
            outcome=SearchOutcome.EXHAUSTED,
            thresholds_tried=tried,
            candidate_count=len(eligible),
            skipped_dimension_mismatch=skipped,
        )

    def _collect(self,
                 scored: List[ScoredCandidate],
                 threshold: float,
                 query: SearchQuery,
                 availability: Dict[str, bool]) -> List[SearchHit]:
        passing = apply_threshold(scored, threshold)

        if query.hide_unavailable and passing:
            self._resolve_availability({c.product_id for c in passing}, availability)
            passing = [c for c in passing if availability[c.product_id]]

        return dedupe_by_product(rank_candidates(passing), query.top_k)

    def _resolve_availability(self, product_ids, availability: Dict[str, bool]) -> None:
        """Fetch availability for products not looked up by an earlier rung."""
        missing = sorted(pid for pid in product_ids if pid not in availability)
        if not missing:
            return

        projections = self.availability_provider(missing)
        kept = filter_available(missing, projections)
        for product_id in missing:
            availability[product_id] = product_id in kept
