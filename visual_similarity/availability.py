"""
Product availability rule used when hiding unavailable products.

A product is hidden when it is not available for sale, or when its
inventory is known and not positive. Unknown inventory on a product that
is for sale counts as available. The rule is exposed standalone so batch
jobs can apply it without going through a search.
"""

import logging
from typing import Callable, Iterable, Mapping, Optional, Set

from .models import ProductAvailability

logger = logging.getLogger(__name__)

# Given product ids, return projections for the ones the catalog knows about.
AvailabilityProvider = Callable[[Iterable[str]], Mapping[str, ProductAvailability]]


def is_available(projection: Optional[ProductAvailability]) -> bool:
    """
    Apply the availability rule to one product projection.

    A missing projection means the catalog has nothing on the product;
    it is kept, matching the treatment of unknown inventory.
    """
    if projection is None:
        return True
    if projection.available_for_sale is False:
        return False
    inventory = projection.total_inventory
    if inventory is not None:
        return inventory > 0
    return True


def filter_available(product_ids: Iterable[str],
                     projections: Mapping[str, ProductAvailability]) -> Set[str]:
    """
    Return the subset of product_ids that pass the availability rule.

    Args:
        product_ids: Candidate product ids.
        projections: Availability keyed by product id.

    Returns:
        Set of product ids to keep.
    """
    kept = set()
    dropped = 0
    for product_id in product_ids:
        if is_available(projections.get(product_id)):
            kept.add(product_id)
        else:
            dropped += 1

    if dropped:
        logger.debug(f"Availability filter dropped {dropped} products")
    return kept


def static_provider(projections: Iterable[ProductAvailability]) -> AvailabilityProvider:
    """Build a provider backed by a fixed set of projections."""
    table = {p.product_id: p for p in projections}

    def provide(product_ids: Iterable[str]) -> Mapping[str, ProductAvailability]:
        return {pid: table[pid] for pid in product_ids if pid in table}

    return provide
