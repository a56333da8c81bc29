"""Vector store interfaces.

A vector store is responsible for:
  - Holding one embedding per note, keyed by the note path
  - Persisting the whole set as a snapshot
  - Searching for the notes most similar to a query embedding
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np


@dataclass(eq=False)
class VectorRecord:
    """One indexed note.

    Attributes:
        path: Unique note identifier.
        embedding: float32 vector; all records of a store share its length.
        mtime: Modification time of the note when the embedding was produced.
    """

    path: str
    embedding: np.ndarray
    mtime: float

    @staticmethod
    def create(path: str, embedding: Sequence[float], mtime: float) -> "VectorRecord":
        vec = np.asarray(embedding, dtype=np.float32)
        if vec.ndim != 1:
            raise ValueError(f"Embedding for {path} must be one-dimensional")
        return VectorRecord(path=path, embedding=vec, mtime=float(mtime))


@dataclass
class SearchHit:
    """A similar note with its cosine similarity score."""

    path: str
    score: float


class VectorStore:
    """Vector store interface."""

    def get(self, path: str) -> Optional[VectorRecord]:
        """Return the record for `path`, if indexed."""
        raise NotImplementedError

    def upsert(self, path: str, embedding: Sequence[float], mtime: float) -> VectorRecord:
        """Replace the record for `path`, or append a new one."""
        raise NotImplementedError

    def prune(self, live_paths: Iterable[str]) -> int:
        """Remove records whose path is not in `live_paths`; return how many."""
        raise NotImplementedError

    def records(self) -> List[VectorRecord]:
        """Snapshot of all records in insertion order."""
        raise NotImplementedError

    def search(self, query_vec: Sequence[float], top_k: int, exclude: Optional[str] = None) -> List[SearchHit]:
        """Search the notes most similar to a query embedding."""
        raise NotImplementedError

    @property
    def dimension(self) -> int:
        """Length shared by every stored embedding; 0 when empty."""
        raise NotImplementedError

    def stats(self) -> dict:
        """Return basic stats about the store."""
        raise NotImplementedError

    def reset(self) -> None:
        """Delete all stored data for this workspace."""
        raise NotImplementedError
