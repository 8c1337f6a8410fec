"""
Error taxonomy for the similarity search core.

Validation errors are raised before the store is touched. Storage errors
wrap failures from the persistence layer and are never retried here.
Degenerate vectors are not errors at all; they score 0.0.
"""


class VisualSimilarityError(Exception):
    """Base class for all errors raised by visual_similarity."""


class ValidationError(VisualSimilarityError, ValueError):
    """A request was rejected before any store access."""


class EmptyVector(ValidationError):
    """The query vector has no components."""


class NonPositiveTopK(ValidationError):
    """top_k must be a positive integer."""


class InvalidThreshold(ValidationError):
    """min_similarity is not a finite number in [-1, 1]."""


class MissingAvailabilityProvider(ValidationError):
    """hide_unavailable was requested but no availability provider is configured."""


class StorageError(VisualSimilarityError):
    """Reading or writing persisted embedding records failed."""
