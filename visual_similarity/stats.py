"""Count and recency reporting for a tenant's embeddings."""

import os
import logging

from .models import RecentEmbedding, StatsReport
from .store import EmbeddingStore

logger = logging.getLogger(__name__)

STATS_RECENT_LIMIT = int(os.environ.get("STATS_RECENT_LIMIT", "5"))


def embedding_stats(store: EmbeddingStore, tenant_id: str,
                    recent_limit: int = None) -> StatsReport:
    """
    Report how many embeddings a tenant has and which were written last.

    Pure read; no scoring or filtering.

    Args:
        store: Store to inspect.
        tenant_id: Tenant scope.
        recent_limit: Number of recent records to list.
            Defaults to STATS_RECENT_LIMIT.
    """
    if recent_limit is None:
        recent_limit = STATS_RECENT_LIMIT

    recent = [
        RecentEmbedding(image_id=r.image_id, model_id=r.model_id, created_at=r.created_at)
        for r in store.recent(tenant_id, recent_limit)
    ]
    return StatsReport(
        tenant_id=tenant_id,
        total_count=store.count(tenant_id),
        recent_records=recent,
    )
