"""
Tenant-scoped in-memory store of embedding records.

Records live in one partition per tenant, each guarded by its own lock, so
ingest or search on one tenant never waits on another. Within a partition
records are kept in first-insertion order; re-upserting an image replaces
the record in place, which keeps enumeration order stable across calls.

Records are immutable. An upsert builds a complete new record and swaps it
in under the partition lock, so readers see either the old vector or the
new one, never a mix.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import EmptyVector, ValidationError
from .models import EmbeddingRecord, utc_now
from .vector_math import sanitize_vector

logger = logging.getLogger(__name__)


class _Partition:
    """Records of a single tenant plus the lock that guards them."""

    __slots__ = ("lock", "records", "detached")

    def __init__(self):
        self.lock = threading.Lock()
        self.records: Dict[str, EmbeddingRecord] = {}
        # Set once the partition is unregistered by a tenant wipe; writers
        # that still hold a reference must fetch a fresh partition.
        self.detached = False


class EmbeddingStore:
    """
    Keyed collection of EmbeddingRecords, at most one per (tenant, image).

    Safe for concurrent writers and readers. Bulk tenant deletes unregister
    the tenant's partition and clear it in one step under its lock.
    """

    def __init__(self, clock: Callable = utc_now):
        """
        Args:
            clock: Zero-argument callable returning the timestamp stamped on
                   upserted records. Injected so tests can control ordering.
        """
        self._clock = clock
        self._partitions: Dict[str, _Partition] = {}
        self._registry_lock = threading.Lock()

    def _partition(self, tenant_id: str, create: bool = False) -> Optional[_Partition]:
        with self._registry_lock:
            partition = self._partitions.get(tenant_id)
            if partition is None and create:
                partition = _Partition()
                self._partitions[tenant_id] = partition
            return partition

    def _all_partitions(self) -> List[_Partition]:
        with self._registry_lock:
            return list(self._partitions.values())

    def _write(self, tenant_id: str,
               build: Callable[[], EmbeddingRecord]) -> Tuple[EmbeddingRecord, bool]:
        """
        Build a record and store it under the tenant's partition lock.

        build() runs while the lock is held so timestamps follow write
        order. Retries when a concurrent tenant wipe detached the partition.

        Returns:
            The stored record and whether it replaced an existing one.
        """
        while True:
            partition = self._partition(tenant_id, create=True)
            with partition.lock:
                if partition.detached:
                    continue
                record = build()
                replaced = record.image_id in partition.records
                partition.records[record.image_id] = record
                return record, replaced

    def upsert(self,
               image_id: str,
               tenant_id: str,
               vector: Sequence[float],
               model_id: str,
               product_id: Optional[str] = None) -> EmbeddingRecord:
        """
        Insert or replace the embedding for an image.

        Last write wins. Replacing keeps the record's enumeration position
        and refreshes created_at.

        Args:
            image_id: Image key, unique within the tenant.
            tenant_id: Tenant scope.
            vector: Embedding components; non-numeric or non-finite entries
                    are stored as 0.0.
            model_id: Tag of the model generation that produced the vector.
            product_id: Product the image belongs to, if known.

        Returns:
            The stored record.

        Raises:
            ValidationError: If image_id or tenant_id is empty, or the
                vector has no components.
        """
        if not image_id:
            raise ValidationError("image_id is required")
        if not tenant_id:
            raise ValidationError("tenant_id is required")

        components = sanitize_vector(vector)
        if not components:
            raise EmptyVector(f"Refusing to store empty vector for image {image_id}")

        def build():
            return EmbeddingRecord(
                image_id=image_id,
                tenant_id=tenant_id,
                vector=components,
                model_id=model_id,
                created_at=self._clock(),
                product_id=product_id,
            )

        record, replaced = self._write(tenant_id, build)

        logger.debug(
            f"{'Replaced' if replaced else 'Stored'} embedding for image {image_id} "
            f"({len(components)}d, model {model_id}) in tenant {tenant_id}"
        )
        return record

    def upsert_many(self, records: Iterable[EmbeddingRecord]) -> int:
        """Upsert a batch of records as produced by catalog sync. Returns the count."""
        stored = 0
        for record in records:
            self.upsert(record.image_id, record.tenant_id, record.vector,
                        record.model_id, product_id=record.product_id)
            stored += 1
        logger.info(f"Upserted {stored} embeddings")
        return stored

    def put(self, record: EmbeddingRecord) -> None:
        """Store a fully-formed record as is, keeping its created_at."""
        self._write(record.tenant_id, lambda: record)

    def get(self, image_id: str, tenant_id: Optional[str] = None) -> Optional[EmbeddingRecord]:
        if tenant_id is not None:
            partitions = [self._partition(tenant_id)]
        else:
            partitions = self._all_partitions()

        for partition in partitions:
            if partition is None:
                continue
            with partition.lock:
                record = partition.records.get(image_id)
            if record is not None:
                return record
        return None

    def delete(self, image_id: str, tenant_id: Optional[str] = None) -> bool:
        """
        Remove an image's embedding.

        With tenant_id, only that tenant's record is removed; otherwise the
        image is removed from every tenant holding it.

        Returns:
            True if at least one record existed and was removed.
        """
        if tenant_id is not None:
            partition = self._partition(tenant_id)
            partitions = [partition] if partition is not None else []
        else:
            partitions = self._all_partitions()

        removed = False
        for partition in partitions:
            with partition.lock:
                removed = partition.records.pop(image_id, None) is not None or removed

        logger.debug(f"Delete embedding for image {image_id}: {'removed' if removed else 'not found'}")
        return removed

    def delete_all_for_tenant(self, tenant_id: str) -> int:
        """
        Remove every record of a tenant. Returns how many were removed.

        The tenant's partition is unregistered as well, so wiped tenants
        leave nothing behind in the store.
        """
        with self._registry_lock:
            partition = self._partitions.pop(tenant_id, None)
        if partition is None:
            return 0

        with partition.lock:
            partition.detached = True
            count = len(partition.records)
            partition.records.clear()

        logger.info(f"Deleted {count} embeddings for tenant {tenant_id}")
        return count

    def all_for_tenant(self, tenant_id: str) -> List[EmbeddingRecord]:
        """Snapshot of a tenant's records in stable enumeration order."""
        partition = self._partition(tenant_id)
        if partition is None:
            return []
        with partition.lock:
            return list(partition.records.values())

    def count(self, tenant_id: str) -> int:
        partition = self._partition(tenant_id)
        if partition is None:
            return 0
        with partition.lock:
            return len(partition.records)

    def recent(self, tenant_id: str, n: int) -> List[EmbeddingRecord]:
        """Up to n records, newest created_at first."""
        if n <= 0:
            return []
        records = self.all_for_tenant(tenant_id)
        return sorted(records, key=lambda r: r.created_at, reverse=True)[:n]

    def tenants(self) -> List[str]:
        """Tenant ids that currently hold at least one record."""
        with self._registry_lock:
            items = list(self._partitions.items())
        return [tenant_id for tenant_id, partition in items if partition.records]

    def __len__(self) -> int:
        return sum(self.count(tenant_id) for tenant_id in self.tenants())
