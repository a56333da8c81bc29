"""Tests for the file-backed vector store: persistence, migration and upserts."""

import struct
import threading
from pathlib import Path

import numpy as np
import pytest

from relnote.config import StorePaths
from relnote.errors import DimensionMismatch, StoreReadFailure, StoreWriteFailure
from relnote.vectordb.file_store import FileVectorStore


def test_missing_file_loads_empty(binary_store: FileVectorStore) -> None:
    """No file on disk yields an empty store without warnings."""
    binary_store.load()
    assert len(binary_store) == 0
    assert binary_store.last_warning is None
    assert binary_store.needs_migration is False


def test_upsert_replaces_existing_record(binary_store: FileVectorStore) -> None:
    """A second upsert for the same path replaces the first in place."""
    binary_store.upsert("a.md", [1.0, 0.0], 1)
    binary_store.upsert("b.md", [0.0, 1.0], 1)
    binary_store.upsert("a.md", [0.5, 0.5], 2)

    assert [r.path for r in binary_store.records()] == ["a.md", "b.md"]
    rec = binary_store.get("a.md")
    assert rec is not None and rec.mtime == 2
    np.testing.assert_allclose(rec.embedding, [0.5, 0.5])


def test_upsert_rejects_empty_embedding(binary_store: FileVectorStore) -> None:
    """An empty vector never enters the store."""
    with pytest.raises(ValueError):
        binary_store.upsert("a.md", [], 1)


def test_upsert_enforces_single_dimension(binary_store: FileVectorStore) -> None:
    """Records must share the store's dimension."""
    binary_store.upsert("a.md", [1.0, 0.0, 0.0], 1)
    with pytest.raises(DimensionMismatch) as exc:
        binary_store.upsert("b.md", [1.0, 0.0], 1)
    assert (exc.value.expected, exc.value.actual) == (3, 2)
    assert "b.md" not in binary_store


def test_only_record_may_change_dimension(binary_store: FileVectorStore) -> None:
    """Replacing the sole record can switch models (no other record to conflict with)."""
    binary_store.upsert("a.md", [1.0, 0.0, 0.0], 1)
    binary_store.upsert("a.md", [1.0, 0.0], 2)
    assert binary_store.dimension == 2


def test_concurrent_upserts_never_duplicate(binary_store: FileVectorStore) -> None:
    """Racing upserts for the same paths leave exactly one record per path."""
    paths = [f"n{i}.md" for i in range(20)]

    def worker(seed: int) -> None:
        for p in paths:
            binary_store.upsert(p, [float(seed), 1.0], seed)

    threads = [threading.Thread(target=worker, args=(s,)) for s in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = [r.path for r in binary_store.records()]
    assert sorted(stored) == sorted(paths)
    assert len(stored) == len(set(stored))


def test_binary_save_and_reload(store_paths: StorePaths) -> None:
    """A saved store reloads with the same records."""
    store = FileVectorStore(store_paths, vector_format="binary")
    store.upsert("a.md", [0.25, 0.5, 1.0], 1_700_000_000_000)
    store.upsert("sub/b.md", [1.0, 2.0, 3.0], 5)
    store.save()

    assert store_paths.binary_path.exists()
    assert not store_paths.json_path.exists()

    again = FileVectorStore(store_paths, vector_format="binary").load()
    assert len(again) == 2
    np.testing.assert_array_equal(again.get("sub/b.md").embedding, [1.0, 2.0, 3.0])
    assert again.get("a.md").mtime == 1_700_000_000_000


def test_empty_store_save_writes_header(binary_store: FileVectorStore, store_paths: StorePaths) -> None:
    """Saving an empty store writes a header with count 0 and dim 0."""
    binary_store.save()
    assert store_paths.binary_path.read_bytes() == b"VEC1" + struct.pack("<II", 0, 0)


def test_json_format_saves_legacy_file(store_paths: StorePaths) -> None:
    """With the json format configured the binary file is never written."""
    store = FileVectorStore(store_paths, vector_format="json")
    store.upsert("a.md", [1.0, 2.0], 3)
    store.save()

    assert store_paths.json_path.exists()
    assert not store_paths.binary_path.exists()
    assert len(FileVectorStore(store_paths, vector_format="json").load()) == 1


def test_legacy_json_migrates_to_binary(store_paths: StorePaths) -> None:
    """Legacy JSON is loaded under the binary format and removed after the first binary save."""
    legacy = FileVectorStore(store_paths, vector_format="json")
    legacy.upsert("a.md", [1.0, 0.0], 1)
    legacy.upsert("b.md", [0.0, 1.0], 2)
    legacy.save()

    store = FileVectorStore(store_paths, vector_format="binary").load()
    assert store.needs_migration is True
    assert len(store) == 2

    store.save()
    assert store.needs_migration is False
    assert store_paths.binary_path.exists()
    assert not store_paths.json_path.exists()
    assert len(FileVectorStore(store_paths, vector_format="binary").load()) == 2


def test_binary_file_wins_over_json(store_paths: StorePaths) -> None:
    """When both files exist the binary one is authoritative."""
    legacy = FileVectorStore(store_paths, vector_format="json")
    legacy.upsert("old.md", [1.0], 1)
    legacy.save()
    current = FileVectorStore(store_paths, vector_format="binary")
    current.upsert("new.md", [1.0], 1)
    _write_binary_only(current)

    store = FileVectorStore(store_paths, vector_format="binary").load()
    assert [r.path for r in store.records()] == ["new.md"]
    assert store.needs_migration is False


def _write_binary_only(store: FileVectorStore) -> None:
    json_bytes = store.paths.json_path.read_bytes()
    store.save()
    store.paths.json_path.write_bytes(json_bytes)


def test_corrupt_binary_file_yields_empty_store_and_warning(store_paths: StorePaths) -> None:
    """A file with a wrong magic is ignored with a warning, never a crash."""
    store_paths.binary_path.parent.mkdir(parents=True)
    store_paths.binary_path.write_bytes(b"JUNKJUNKJUNKJUNK")

    store = FileVectorStore(store_paths, vector_format="binary").load()
    assert len(store) == 0
    assert store.last_warning is not None
    assert store.last_warning.path == store_paths.binary_path

    store.upsert("a.md", [1.0], 1)
    store.save()
    assert len(FileVectorStore(store_paths, vector_format="binary").load()) == 1


def test_truncated_binary_file_is_corrupt(store_paths: StorePaths) -> None:
    """A snapshot cut mid-record loads as empty with a warning."""
    store = FileVectorStore(store_paths, vector_format="binary")
    store.upsert("a.md", [1.0, 2.0, 3.0], 1)
    store.save()
    raw = store_paths.binary_path.read_bytes()
    store_paths.binary_path.write_bytes(raw[:-3])

    again = FileVectorStore(store_paths, vector_format="binary").load()
    assert len(again) == 0
    assert again.last_warning is not None


def test_unreadable_file_raises_read_failure(store_paths: StorePaths) -> None:
    """A path that exists but cannot be read is an I/O error, not corruption."""
    store_paths.binary_path.mkdir(parents=True)
    with pytest.raises(StoreReadFailure):
        FileVectorStore(store_paths, vector_format="binary").load()


def test_save_failure_raises_write_failure(tmp_path: Path) -> None:
    """A snapshot that cannot be written raises StoreWriteFailure."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    store = FileVectorStore(StorePaths.in_dir(blocker / "store"), vector_format="binary")
    store.upsert("a.md", [1.0], 1)
    with pytest.raises(StoreWriteFailure):
        store.save()


def test_prune_removes_dead_paths(binary_store: FileVectorStore) -> None:
    """prune keeps only live paths and reports how many were removed."""
    for name in ("a.md", "b.md", "c.md"):
        binary_store.upsert(name, [1.0, 1.0], 1)
    assert binary_store.prune(["a.md", "c.md", "unknown.md"]) == 1
    assert [r.path for r in binary_store.records()] == ["a.md", "c.md"]
    assert binary_store.get("b.md") is None


def test_search_excludes_path(binary_store: FileVectorStore) -> None:
    """search ranks by cosine similarity and honours `exclude`."""
    binary_store.upsert("a.md", [1.0, 0.0], 1)
    binary_store.upsert("b.md", [0.9, 0.1], 1)
    binary_store.upsert("c.md", [0.0, 1.0], 1)

    hits = binary_store.search([1.0, 0.0], top_k=2, exclude="a.md")
    assert [h.path for h in hits] == ["b.md", "c.md"]


def test_clear_deletes_both_files(store_paths: StorePaths) -> None:
    """clear empties memory and removes both encodings from disk."""
    legacy =FileVectorStore(store_paths, vector_format="json")
    legacy.upsert("a.md", [1.0], 1)
    legacy.save()
    store = FileVectorStore(store_paths, vector_format="binary")
    store.upsert("a.md", [1.0], 1)
    _write_binary_only(store)

    store.clear()
    assert len(store) == 0
    assert not store_paths.binary_path.exists()
    assert not store_paths.json_path.exists()


def test_stats_reports_shape(binary_store: FileVectorStore) -> None:
    """stats exposes count, dimension and format."""
    binary_store.upsert("a.md", [1.0, 2.0, 3.0], 1)
    stats = binary_store.stats()
    assert stats["vectors"] == 1
    assert stats["dimension"] == 3
    assert stats["format"] == "binary"


def test_unknown_format_is_rejected(store_paths: StorePaths) -> None:
    """Only json and binary formats exist."""
    with pytest.raises(ValueError):
        FileVectorStore(store_paths, vector_format="parquet")


def test_zero_dimension_file_is_discarded(store_paths: StorePaths) -> None:
    """Records without a dimension never block later upserts."""
    store_paths.binary_path.parent.mkdir(parents=True)
    store_paths.binary_path.write_bytes(
        b"VEC1" + struct.pack("<II", 1, 0) + struct.pack("<I", 4) + b"a.md" + struct.pack("<d", 1.0)
    )
    store = FileVectorStore(store_paths, vector_format="binary").load()
    assert len(store) == 0
    assert store.last_warning is not None
    store.upsert("b.md", [1.0, 2.0], 1)
    assert store.dimension == 2
