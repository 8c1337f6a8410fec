"""Tests for candidate scoring, ranking, dedupe and the threshold ladder."""

import pytest

from visual_similarity.models import EmbeddingRecord
from visual_similarity.vector_math import cosine_similarity_batch
from visual_similarity.scoring import (
    ScoredCandidate, apply_threshold, dedupe_by_product, rank_candidates,
    score_candidates, threshold_ladder,
)


def _candidate(position, image_id, product_id, similarity):
    return ScoredCandidate(position, image_id, product_id, similarity)


class TestScoreCandidates:
    """Tests for per-candidate scoring."""

    def test_scores_in_input_order(self, example_store):
        records = example_store.all_for_tenant("T1")
        scored = score_candidates([1, 0, 0], records)
        assert [c.image_id for c in scored] == ["img1", "img2", "img3"]
        assert scored[0].similarity == pytest.approx(1.0)
        assert scored[1].similarity == pytest.approx(0.99388, abs=1e-4)
        assert scored[2].similarity == 0.0

    def test_parallel_path_agrees(self, example_store):
        records = example_store.all_for_tenant("T1")
        serial = score_candidates([1, 0, 0], records, parallel_threshold=1000)
        parallel = score_candidates([1, 0, 0], records, parallel_threshold=0, workers=2)
        for a, b in zip(serial, parallel):
            assert a.image_id == b.image_id
            assert a.similarity == pytest.approx(b.similarity, abs=1e-12)

    def test_prefilter_survivors_scored_exactly(self, random_vectors):
        records = [EmbeddingRecord(f"img{i}", "T1", tuple(v), "m")
                   for i, v in enumerate(random_vectors)]
        query = random_vectors[3]
        exact = cosine_similarity_batch(query, random_vectors)

        scored = score_candidates(query, records, parallel_threshold=10,
                                  floor=0.1, workers=4)

        for candidate, similarity in zip(scored, exact):
            if similarity >= 0.1:
                assert candidate.similarity == pytest.approx(similarity, abs=1e-12)
            else:
                assert candidate.similarity < 0.1

    def test_product_falls_back_to_image(self):
        records = [EmbeddingRecord("img1", "T1", (1.0,), "m")]
        assert score_candidates([1.0], records)[0].product_id == "img1"

    def test_empty(self):
        assert score_candidates([1, 0], []) == []


class TestRanking:
    """Tests for thresholding, ordering and per-product dedupe."""

    def test_threshold_inclusive(self):
        candidates = [_candidate(0, "a", "p1", 0.5), _candidate(1, "b", "p2", 0.49)]
        assert [c.image_id for c in apply_threshold(candidates, 0.5)] == ["a"]

    def test_sorted_descending(self):
        candidates = [
            _candidate(0, "a", "p1", 0.2),
            _candidate(1, "b", "p2", 0.9),
            _candidate(2, "c", "p3", 0.5),
        ]
        assert [c.image_id for c in rank_candidates(candidates)] == ["b", "c", "a"]

    def test_ties_keep_enumeration_order(self):
        candidates = [
            _candidate(0, "a", "p1", 0.7),
            _candidate(1, "b", "p2", 0.7),
            _candidate(2, "c", "p3", 0.7),
        ]
        assert [c.image_id for c in rank_candidates(candidates)] == ["a", "b", "c"]

    def test_dedupe_keeps_best_image_per_product(self):
        ranked = rank_candidates([
            _candidate(0, "a", "p1", 0.6),
            _candidate(1, "b", "p1", 0.9),
            _candidate(2, "c", "p2", 0.8),
        ])
        hits = dedupe_by_product(ranked, top_k=10)
        assert [(h.image_id, h.rank) for h in hits] == [("b", 1), ("c", 2)]

    def test_dedupe_stops_at_top_k_distinct_products(self):
        ranked = rank_candidates([
            _candidate(0, "a", "p1", 0.9),
            _candidate(1, "b", "p1", 0.85),
            _candidate(2, "c", "p2", 0.8),
            _candidate(3, "d", "p3", 0.7),
        ])
        hits = dedupe_by_product(ranked, top_k=2)
        assert [h.product_id for h in hits] == ["p1", "p2"]

    def test_dedupe_empty(self):
        assert dedupe_by_product([], top_k=5) == []


class TestThresholdLadder:
    """Tests for the relaxation ladder."""

    def test_full_ladder(self):
        assert threshold_ladder(0.8) == pytest.approx([0.8, 0.4, 0.1])

    def test_no_relaxation_at_or_below_guard(self):
        assert threshold_ladder(0.1) == [0.1]
        assert threshold_ladder(0.05) == [0.05]
        assert threshold_ladder(0.0) == [0.0]

    def test_redundant_floor_dropped(self):
        assert threshold_ladder(0.15) == pytest.approx([0.15, 0.075])
        assert threshold_ladder(0.2) == pytest.approx([0.2, 0.1])

    def test_custom_guard_and_floor(self):
        assert threshold_ladder(0.6, guard=0.5, floor=0.05) == pytest.approx([0.6, 0.3, 0.05])
        assert threshold_ladder(0.4, guard=0.5) == [0.4]
