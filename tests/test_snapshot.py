"""Tests for saving and loading stores."""

import pytest

from visual_similarity.errors import StorageError
from visual_similarity.snapshot import load_store, save_store
from visual_similarity.store import EmbeddingStore


class TestSnapshotRoundTrip:
    """Tests for archive contents."""

    def test_restores_records_and_order(self, example_store, tmp_path):
        example_store.upsert("wide", "T2", [0.5, 0.5, 0.5, 0.5], "clip-v2")
        path = str(tmp_path / "embeddings.npz")

        summary = save_store(example_store, path)
        assert summary == {"records": 4, "tenants": 2, "path": path}

        loaded = load_store(path)
        assert [r.image_id for r in loaded.all_for_tenant("T1")] == ["img1", "img2", "img3"]
        original = example_store.get("img2", "T1")
        restored = loaded.get("img2", "T1")
        assert restored == original
        assert loaded.get("wide", "T2").dimension == 4

    def test_empty_store(self, tmp_path):
        path = str(tmp_path / "empty.npz")
        save_store(EmbeddingStore(), path)
        assert len(load_store(path)) == 0

    def test_load_into_existing_store(self, example_store, tmp_path):
        path = str(tmp_path / "embeddings.npz")
        save_store(example_store, path)
        target = EmbeddingStore()
        target.upsert("keep", "T9", [1.0], "m")
        load_store(path, target)
        assert target.count("T1") == 3
        assert target.count("T9") == 1

    def test_path_without_extension(self, example_store, tmp_path):
        path = str(tmp_path / "snapshot")
        save_store(example_store, path)
        assert load_store(path).count("T1") == 3


class TestSnapshotErrors:
    """Failures surface as StorageError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            load_store(str(tmp_path / "absent.npz"))

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "corrupt.npz"
        path.write_bytes(b"definitely not an archive")
        with pytest.raises(StorageError):
            load_store(str(path))

    def test_unwritable_path(self, example_store, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StorageError):
            save_store(example_store, str(blocker / "nested" / "embeddings.npz"))

    def test_failed_replace_removes_temporary_file(self, example_store, tmp_path):
        target = tmp_path / "occupied"
        target.mkdir()
        with pytest.raises(StorageError):
            save_store(example_store, str(target))
        assert not (tmp_path / "occupied.tmp").exists()
        assert target.is_dir()
