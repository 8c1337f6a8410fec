"""
Vector math for embedding similarity.

Every function here is total: malformed input (missing or non-numeric
components, zero vectors, length mismatches, overflow) degrades to a
similarity of 0.0 rather than raising. A single corrupt stored vector must
not abort a ranking pass over thousands of candidates.

Two batched paths are provided for scoring many candidates at once:
    cosine_similarity_batch  NumPy matrix product, exact float64
    inner_product_scan       FAISS IndexFlatIP brute-force scan, float32;
                             approximate, so only fit for prefiltering
"""

import logging
import math
import numbers
from typing import Iterable, Optional, Sequence, Tuple

import faiss
import numpy as np

logger = logging.getLogger(__name__)


def _component(value) -> float:
    if isinstance(value, numbers.Real):
        value = float(value)
        if math.isfinite(value):
            return value
    return 0.0


def sanitize_vector(values: Optional[Iterable]) -> Tuple[float, ...]:
    """
    Coerce an arbitrary sequence into a tuple of finite floats.

    Non-numeric, missing or non-finite components become 0.0. A value that
    is not iterable at all yields an empty tuple.
    """
    if values is None:
        return ()
    if isinstance(values, np.ndarray) and np.issubdtype(values.dtype, np.number):
        arr = np.nan_to_num(values.astype(np.float64, copy=False).ravel(),
                            nan=0.0, posinf=0.0, neginf=0.0)
        return tuple(float(x) for x in arr)
    try:
        return tuple(_component(v) for v in values)
    except TypeError:
        return ()


def as_array(values) -> np.ndarray:
    """Sanitized 1-D float64 array for a vector-like input."""
    if isinstance(values, np.ndarray) and np.issubdtype(values.dtype, np.number):
        return np.nan_to_num(values.astype(np.float64).ravel(),
                             nan=0.0, posinf=0.0, neginf=0.0)
    return np.asarray(sanitize_vector(values), dtype=np.float64)


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product; 0.0 when lengths differ or the result is not finite."""
    va, vb = as_array(a), as_array(b)
    if va.shape != vb.shape:
        return 0.0
    with np.errstate(all="ignore"):
        result = float(np.dot(va, vb))
    return result if math.isfinite(result) else 0.0


def norm(a: Sequence[float]) -> float:
    """Euclidean norm; 0.0 when the result is not finite."""
    with np.errstate(all="ignore"):
        result = float(np.linalg.norm(as_array(a)))
    return result if math.isfinite(result) else 0.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, in [-1, 1].

    Returns 0.0 instead of failing when either vector is empty or has zero
    norm, when the lengths differ, or when the ratio is not finite.
    """
    va, vb = as_array(a), as_array(b)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0

    with np.errstate(all="ignore"):
        norm_a = np.linalg.norm(va)
        norm_b = np.linalg.norm(vb)
        denominator = norm_a * norm_b
        if not np.isfinite(denominator) or denominator == 0:
            return 0.0
        similarity = float(np.dot(va, vb) / denominator)

    if not math.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


def as_matrix(vectors) -> np.ndarray:
    """Sanitized (N, D) float64 matrix from an array or a sequence of vectors."""
    if isinstance(vectors, np.ndarray) and vectors.ndim == 2:
        matrix = vectors.astype(np.float64)
    else:
        rows = [as_array(v) for v in vectors]
        if not rows:
            return np.zeros((0, 0), dtype=np.float64)
        matrix = np.vstack(rows)
    return np.nan_to_num(matrix, nan=0.0, posinf=0.0, neginf=0.0)


def _clean(similarities: np.ndarray) -> np.ndarray:
    similarities[~np.isfinite(similarities)] = 0.0
    return np.clip(similarities, -1.0, 1.0)


def cosine_similarity_batch(query: Sequence[float], vectors) -> np.ndarray:
    """
    Cosine similarity of one query against N vectors of the same dimension.

    Args:
        query: Query vector of dimension D.
        vectors: (N, D) array or a sequence of N vectors of dimension D.

    Returns:
        Float64 array of N similarities. Zero-norm rows score 0.0.
    """
    q = as_array(query)
    matrix = as_matrix(vectors)
    n = matrix.shape[0]
    if n == 0 or q.size == 0 or matrix.shape[1] != q.size:
        return np.zeros(n, dtype=np.float64)

    with np.errstate(all="ignore"):
        dots = matrix @ q
        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        mask = np.isfinite(denominators) & (denominators > 0)
        similarities = np.zeros(n, dtype=np.float64)
        similarities[mask] = dots[mask] / denominators[mask]

    return _clean(similarities)


def _l2_normalize_rows(matrix: np.ndarray) -> np.ndarray:
    with np.errstate(all="ignore"):
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        valid = np.isfinite(norms) & (norms > 0)
        safe = np.where(valid, norms, 1.0)
        normalized = np.where(valid, matrix / safe, 0.0)
    return normalized


def inner_product_scan(query: Sequence[float], vectors) -> np.ndarray:
    """
    Cosine similarity of one query against N vectors via a FAISS flat scan.

    Rows and query are L2-normalized up front so the inner product equals
    cosine similarity. IndexFlatIP is an exhaustive scan, so the scores
    match cosine_similarity_batch up to float32 rounding. Scores near a
    threshold must be recomputed with cosine_similarity_batch before any
    comparison.

    Returns:
        Float64 array of N similarities, in input order.
    """
    q = as_array(query)
    matrix = as_matrix(vectors)
    n = matrix.shape[0]
    if n == 0 or q.size == 0 or matrix.shape[1] != q.size:
        return np.zeros(n, dtype=np.float64)

    q_unit = _l2_normalize_rows(q.reshape(1, -1))
    if not np.any(q_unit):
        return np.zeros(n, dtype=np.float64)

    index = faiss.IndexFlatIP(q.size)
    index.add(np.ascontiguousarray(_l2_normalize_rows(matrix), dtype=np.float32))
    distances, indices = index.search(
        np.ascontiguousarray(q_unit, dtype=np.float32), n
    )

    similarities = np.zeros(n, dtype=np.float64)
    found = indices[0] >= 0
    similarities[indices[0][found]] = distances[0][found]
    logger.debug(f"FAISS scan scored {n} vectors, {q.size}d")

    return _clean(similarities)
