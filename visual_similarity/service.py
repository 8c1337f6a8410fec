"""
In-process entry points for catalog sync and query handlers.

VisualSearchCore wires the store, search engine, stats and per-tenant
settings behind the small surface that collaborators call.
"""

import os
import logging
from typing import Optional, Sequence

from .availability import AvailabilityProvider
from .engine import SearchEngine
from .models import SearchQuery, SearchResponse, StatsReport
from .settings import SettingsRegistry
from .stats import embedding_stats
from .store import EmbeddingStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = int(os.environ.get("DEFAULT_TOP_K", "10"))


class VisualSearchCore:
    """Facade over the embedding store and similarity search."""

    def __init__(self,
                 store: Optional[EmbeddingStore] = None,
                 availability_provider: Optional[AvailabilityProvider] = None,
                 settings: Optional[SettingsRegistry] = None,
                 **engine_options):
        self.store = store if store is not None else EmbeddingStore()
        self.settings = settings if settings is not None else SettingsRegistry()
        self.engine = SearchEngine(self.store, availability_provider, **engine_options)

    def upsert_embedding(self, image_id: str, tenant_id: str,
                         vector: Sequence[float], model_id: str,
                         product_id: Optional[str] = None) -> None:
        self.store.upsert(image_id, tenant_id, vector, model_id, product_id=product_id)

    def delete_embedding(self, image_id: str, tenant_id: Optional[str] = None) -> bool:
        return self.store.delete(image_id, tenant_id)

    def delete_all_embeddings(self, tenant_id: str) -> int:
        return self.store.delete_all_for_tenant(tenant_id)

    def search(self, query: SearchQuery) -> SearchResponse:
        return self.engine.search(query)

    def search_tenant(self, tenant_id: str, vector: Sequence[float],
                      top_k: int = None) -> SearchResponse:
        """
        Search using the tenant's stored threshold and stock filter.

        Args:
            tenant_id: Tenant scope.
            vector: Query embedding.
            top_k: Maximum results. Defaults to DEFAULT_TOP_K.
        """
        settings = self.settings.get(tenant_id)
        query = SearchQuery(
            tenant_id=tenant_id,
            vector=tuple(vector),
            top_k=DEFAULT_TOP_K if top_k is None else top_k,
            min_similarity=settings.similarity_threshold,
            hide_unavailable=settings.hide_out_of_stock,
        )
        logger.debug(
            f"Searching {tenant_id} with threshold {settings.similarity_threshold}, "
            f"hide_out_of_stock={settings.hide_out_of_stock}"
        )
        return self.engine.search(query)

    def stats(self, tenant_id: str, recent_limit: int = None) -> StatsReport:
        return embedding_stats(self.store, tenant_id, recent_limit)
