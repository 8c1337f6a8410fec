"""
Per-tenant visual search settings.

Each tenant can hide out-of-stock products and pick its own similarity
threshold. Unset tenants get the defaults. Values that fail validation on
update fall back to the default instead of being stored.
"""

import os
import math
import numbers
import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = float(os.environ.get("SIMILARITY_THRESHOLD", "0.4"))
DEFAULT_HIDE_OUT_OF_STOCK = False


@dataclass(frozen=True)
class SearchSettings:
    hide_out_of_stock: bool = DEFAULT_HIDE_OUT_OF_STOCK
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD


def _normalize_threshold(value) -> float:
    if (isinstance(value, bool)
            or not isinstance(value, numbers.Real)
            or not math.isfinite(value)
            or not 0.0 <= value <= 1.0):
        return DEFAULT_SIMILARITY_THRESHOLD
    return float(value)


def _normalize_hide(value) -> bool:
    return value if isinstance(value, bool) else DEFAULT_HIDE_OUT_OF_STOCK


class SettingsRegistry:
    """In-memory settings keyed by tenant."""

    def __init__(self):
        self._settings: Dict[str, SearchSettings] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str) -> SearchSettings:
        if not tenant_id:
            raise ValidationError("tenant_id is required to load search settings")
        with self._lock:
            return self._settings.get(tenant_id, SearchSettings())

    def update(self, tenant_id: str, **changes) -> SearchSettings:
        """
        Store new settings for a tenant and return the effective result.

        Only hide_out_of_stock and similarity_threshold are accepted. A
        supplied value that is invalid resets that field to its default;
        omitted fields keep their current value.
        """
        if not tenant_id:
            raise ValidationError("tenant_id is required to update search settings")

        unknown = set(changes) - {"hide_out_of_stock", "similarity_threshold"}
        if unknown:
            raise ValidationError(f"Unknown search settings: {sorted(unknown)}")

        normalized = {}
        if "hide_out_of_stock" in changes:
            normalized["hide_out_of_stock"] = _normalize_hide(changes["hide_out_of_stock"])
        if "similarity_threshold" in changes:
            normalized["similarity_threshold"] = _normalize_threshold(changes["similarity_threshold"])

        with self._lock:
            current = self._settings.get(tenant_id, SearchSettings())
            updated = replace(current, **normalized)
            self._settings[tenant_id] = updated

        logger.info(
            f"Search settings for {tenant_id}: threshold={updated.similarity_threshold}, "
            f"hide_out_of_stock={updated.hide_out_of_stock}"
        )
        return updated

    def reset(self, tenant_id: str) -> None:
        with self._lock:
            self._settings.pop(tenant_id, None)
