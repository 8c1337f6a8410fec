"""Shared test fixtures for similarity search tests."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from visual_similarity.availability import static_provider
from visual_similarity.models import ProductAvailability
from visual_similarity.store import EmbeddingStore


class TickingClock:
    """Deterministic clock: each call is one second after the previous."""

    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    return EmbeddingStore(clock=clock)


@pytest.fixture
def catalog():
    """Availability for the three-product example catalog."""
    return [
        ProductAvailability("p1", available_for_sale=True, total_inventory=5),
        ProductAvailability("p2", available_for_sale=True, total_inventory=0),
        ProductAvailability("p3", available_for_sale=True, total_inventory=10),
    ]


@pytest.fixture
def provider(catalog):
    return static_provider(catalog)


@pytest.fixture
def example_store(store):
    """Tenant T1 with three 3-d embeddings, one image per product."""
    store.upsert("img1", "T1", [1.0, 0.0, 0.0], "clip-v1", product_id="p1")
    store.upsert("img2", "T1", [0.9, 0.1, 0.0], "clip-v1", product_id="p2")
    store.upsert("img3", "T1", [0.0, 1.0, 0.0], "clip-v1", product_id="p3")
    return store


@pytest.fixture
def random_vectors():
    """200 reproducible 64-d vectors."""
    rng = np.random.RandomState(42)
    return rng.normal(size=(200, 64))
