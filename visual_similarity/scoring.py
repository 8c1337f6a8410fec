"""
Candidate scoring, ranking and threshold relaxation.

The search engine composes these pure functions; none of them touch the
store. Thresholds and the parallel scoring cutoff are policy, not domain
law, so they can be tuned from the environment.

Every similarity that is compared against a threshold or reported is an
exact float64 cosine. FAISS float32 scores are only used to discard
candidates far below the lowest threshold a search can reach.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, NamedTuple, Optional, Sequence, Set

import numpy as np

from .models import EmbeddingRecord, SearchHit
from .vector_math import as_matrix, cosine_similarity_batch, inner_product_scan

logger = logging.getLogger(__name__)

# Candidate count above which scoring is split into row chunks scored on a
# thread pool. Below it a single NumPy pass has less overhead.
PARALLEL_SCORING_THRESHOLD = int(os.environ.get("PARALLEL_SCORING_THRESHOLD", "1000"))

# Worker threads for chunked scoring. NumPy releases the GIL in matmul.
SCORING_WORKERS = int(os.environ.get("SCORING_WORKERS", str(min(8, os.cpu_count() or 1))))

# Slack below the floor threshold when trusting a FAISS float32 score to
# reject a candidate outright.
PREFILTER_MARGIN = float(os.environ.get("PREFILTER_MARGIN", "1e-3"))

# Relaxation only runs when the requested threshold is above this guard.
RELAXATION_GUARD = float(os.environ.get("RELAXATION_GUARD", "0.1"))

# Fixed permissive threshold used as the last rung of the ladder.
RELAXATION_FLOOR = float(os.environ.get("RELAXATION_FLOOR", "0.1"))


class ScoredCandidate(NamedTuple):
    """A candidate record with its similarity and enumeration position."""

    position: int
    image_id: str
    product_id: str
    similarity: float


def exact_scores_parallel(query_vector: Sequence[float],
                          matrix: np.ndarray,
                          workers: Optional[int] = None) -> np.ndarray:
    """
    Exact cosine similarities, scored in row chunks across a thread pool.

    Returns:
        Float64 array matching cosine_similarity_batch(query, matrix).
    """
    n = matrix.shape[0]
    workers = max(1, min(workers or SCORING_WORKERS, n))
    if workers == 1:
        return cosine_similarity_batch(query_vector, matrix)

    chunks = np.array_split(np.arange(n), workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        parts = list(pool.map(
            lambda rows: cosine_similarity_batch(query_vector, matrix[rows]), chunks
        ))
    return np.concatenate(parts)


def score_candidates(query_vector: Sequence[float],
                     records: Sequence[EmbeddingRecord],
                     parallel_threshold: Optional[int] = None,
                     floor: Optional[float] = None,
                     workers: Optional[int] = None) -> List[ScoredCandidate]:
    """
    Score every record against the query.

    All records must share the query's dimension. Scoring is independent per
    candidate, so large candidate sets are split across worker threads.
    When floor is given, a FAISS scan first drops candidates that are
    clearly below it and only the rest are scored exactly; dropped
    candidates keep their FAISS score, which stays below floor.

    Args:
        query_vector: Query embedding.
        records: Candidates in enumeration order.
        parallel_threshold: Override for PARALLEL_SCORING_THRESHOLD.
        floor: Lowest threshold any rung of the search will apply.
        workers: Override for SCORING_WORKERS.

    Returns:
        ScoredCandidates in the same order as records.
    """
    if not records:
        return []

    if parallel_threshold is None:
        parallel_threshold = PARALLEL_SCORING_THRESHOLD

    vectors = [record.vector for record in records]
    if len(records) <= parallel_threshold:
        similarities = cosine_similarity_batch(query_vector, vectors)
    else:
        matrix = as_matrix(vectors)
        if floor is None:
            similarities = exact_scores_parallel(query_vector, matrix, workers)
        else:
            similarities = inner_product_scan(query_vector, matrix)
            survivors = np.flatnonzero(similarities >= floor - PREFILTER_MARGIN)
            if survivors.size:
                similarities[survivors] = exact_scores_parallel(
                    query_vector, matrix[survivors], workers
                )
            logger.debug(
                f"Prefilter kept {survivors.size} of {len(records)} candidates "
                f"at floor {floor}"
            )

    return [
        ScoredCandidate(i, record.image_id, record.resolved_product_id, float(similarity))
        for i, (record, similarity) in enumerate(zip(records, similarities))
    ]


def apply_threshold(candidates: Iterable[ScoredCandidate],
                    threshold: float) -> List[ScoredCandidate]:
    return [c for c in candidates if c.similarity >= threshold]


def rank_candidates(candidates: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    """
    Sort by similarity, highest first.

    Python's sort is stable, so ties keep their enumeration order.
    """
    return sorted(candidates, key=lambda c: -c.similarity)


def dedupe_by_product(ranked: Iterable[ScoredCandidate], top_k: int) -> List[SearchHit]:
    """
    Keep the first (best) image per product, up to top_k products.

    Args:
        ranked: Candidates sorted by rank_candidates().
        top_k: Maximum number of distinct products to keep.

    Returns:
        SearchHits with 1-based ranks in collection order.
    """
    seen: Set[str] = set()
    hits: List[SearchHit] = []

    for candidate in ranked:
        if len(hits) >= top_k:
            break
        if candidate.product_id in seen:
            continue
        seen.add(candidate.product_id)
        hits.append(SearchHit(
            image_id=candidate.image_id,
            product_id=candidate.product_id,
            similarity=candidate.similarity,
            rank=len(hits) + 1,
        ))

    return hits


def threshold_ladder(min_similarity: float,
                     guard: float = None,
                     floor: float = None) -> List[float]:
    """
    Thresholds to try in order: the requested one, half of it, then floor.

    Relaxation only happens when min_similarity is above the guard. A rung
    that is not lower than one already tried is dropped, since it cannot
    admit anything the lower rung rejected.

    Examples:
        threshold_ladder(0.8)  -> [0.8, 0.4, 0.1]
        threshold_ladder(0.15) -> [0.15, 0.075]
        threshold_ladder(0.05) -> [0.05]
    """
    guard = RELAXATION_GUARD if guard is None else guard
    floor = RELAXATION_FLOOR if floor is None else floor

    rungs = [min_similarity]
    if min_similarity > guard:
        for threshold in (min_similarity / 2, floor):
            if threshold < min(rungs):
                rungs.append(threshold)
    return rungs
