from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from relnote.config import StorePaths
from relnote.embeddings.base import Embedder
from relnote.errors import EmbeddingUnavailable
from relnote.ingest.scanner import Document
from relnote.vectordb.file_store import FileVectorStore


class FakeEmbedder(Embedder):
    """Deterministic embedder that records every call.

    Vectors come from `vectors` when the text is a key, otherwise from a
    simple character histogram so different texts get different directions.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, fail_on: Tuple[str, ...] = ()) -> None:
        self.vectors = vectors or {}
        self.fail_on = fail_on
        self.calls: List[Tuple[str, Optional[str]]] = []

    def embed(self, text: str, title: Optional[str] = None) -> List[float]:
        self.calls.append((text, title))
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingUnavailable([f"full: refused {title}"])
        if text in self.vectors:
            return list(self.vectors[text])
        return [
            1.0 + text.count("a"),
            1.0 + text.count("e"),
            1.0 + text.count("o"),
            float(len(text) % 7),
        ]


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    """A fresh FakeEmbedder."""
    return FakeEmbedder()


@pytest.fixture
def store_paths(tmp_path: Path) -> StorePaths:
    """Store file locations inside a temporary directory."""
    return StorePaths.in_dir(tmp_path / "store")


@pytest.fixture
def binary_store(store_paths: StorePaths) -> FileVectorStore:
    """An empty store configured for the binary format."""
    return FileVectorStore(store_paths, vector_format="binary")


@pytest.fixture
def make_docs() -> Callable[..., List[Document]]:
    """Build in-memory notes `note-000.md`, `note-001.md`, ... with distinct content."""

    def _make(count: int, mtime: int = 1_000) -> List[Document]:
        return [
            Document.from_text(f"note-{i:03d}.md", f"note number {i} " + "a" * (i % 5) + "e" * (i % 3), mtime)
            for i in range(count)
        ]

    return _make
