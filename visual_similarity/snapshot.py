"""
Save and load an EmbeddingStore as a compressed NumPy archive.

Archive layout (.npz, no pickled objects):
    vectors   float64, every record's components concatenated
    lengths   int64, dimension of each record, in the same order
    metadata  JSON string, one entry per record with image_id,
              tenant_id, model_id, product_id and created_at

Records are written tenant by tenant in enumeration order, so loading
restores the same order. Records of different dimensions can share one
archive.
"""

import os
import json
import logging
import zipfile
from datetime import datetime
from typing import Optional

import numpy as np

from .errors import StorageError
from .models import EmbeddingRecord
from .store import EmbeddingStore

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def save_store(store: EmbeddingStore, path: str) -> dict:
    """
    Write every record in the store to path.

    The archive is written to a temporary file first and moved into place,
    so an interrupted save leaves any previous archive intact.

    Returns:
        Dict with 'records', 'tenants' and 'path'.

    Raises:
        StorageError: If the archive cannot be written.
    """
    records = []
    tenants = store.tenants()
    for tenant_id in tenants:
        records.extend(store.all_for_tenant(tenant_id))

    metadata = [
        {
            "image_id": r.image_id,
            "tenant_id": r.tenant_id,
            "model_id": r.model_id,
            "product_id": r.product_id,
            "created_at": r.created_at.isoformat(),
        }
        for r in records
    ]
    lengths = np.array([r.dimension for r in records], dtype=np.int64)
    if records:
        vectors = np.concatenate([np.asarray(r.vector, dtype=np.float64) for r in records])
    else:
        vectors = np.zeros(0, dtype=np.float64)

    tmp_path = f"{path}.tmp"
    try:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with open(tmp_path, "wb") as f:
            np.savez_compressed(
                f,
                vectors=vectors,
                lengths=lengths,
                metadata=np.array(json.dumps({"version": FORMAT_VERSION, "records": metadata})),
            )
        os.replace(tmp_path, path)
    except OSError as e:
        logger.error(f"Failed to save embedding snapshot to {path}: {e}")
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError as cleanup_error:
                logger.warning(f"Could not remove partial snapshot {tmp_path}: {cleanup_error}")
        raise StorageError(f"Could not write snapshot {path}: {e}") from e

    logger.info(f"Saved {len(records)} embeddings for {len(tenants)} tenants to {path}")
    return {"records": len(records), "tenants": len(tenants), "path": path}


def load_store(path: str, store: Optional[EmbeddingStore] = None) -> EmbeddingStore:
    """
    Read an archive written by save_store().

    Args:
        path: Archive path.
        store: Store to load into. A new store is created when omitted.
               Loaded records replace existing ones with the same key.

    Returns:
        The populated store.

    Raises:
        StorageError: If the file is missing, unreadable or malformed.
    """
    store = store if store is not None else EmbeddingStore()

    try:
        with np.load(path, allow_pickle=False) as data:
            vectors = data["vectors"]
            lengths = data["lengths"]
            header = json.loads(str(data["metadata"]))

        if header.get("version") != FORMAT_VERSION:
            raise ValueError(f"unsupported snapshot version {header.get('version')!r}")

        entries = header["records"]
        if len(entries) != len(lengths) or int(lengths.sum()) != vectors.size:
            raise ValueError("record count or vector size does not match metadata")

        records = []
        offset = 0
        for entry, length in zip(entries, lengths):
            end = offset + int(length)
            records.append(EmbeddingRecord(
                image_id=entry["image_id"],
                tenant_id=entry["tenant_id"],
                vector=tuple(float(x) for x in vectors[offset:end]),
                model_id=entry["model_id"],
                created_at=datetime.fromisoformat(entry["created_at"]),
                product_id=entry.get("product_id"),
            ))
            offset = end

    except (OSError, ValueError, KeyError, TypeError, AttributeError,
            zipfile.BadZipFile) as e:
        logger.error(f"Failed to load embedding snapshot from {path}: {e}")
        raise StorageError(f"Could not read snapshot {path}: {e}") from e

    for record in records:
        store.put(record)

    logger.info(f"Loaded {len(records)} embeddings from {path}")
    return store
