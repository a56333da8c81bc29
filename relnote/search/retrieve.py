# relnote/search/retrieve.py
"""Query operations: related notes and free-text search."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..embeddings.base import Embedder
from ..errors import DimensionMismatch
from ..vectordb.base import SearchHit, VectorStore


def _live_only(hits: List[SearchHit], live_paths: Optional[Iterable[str]]) -> List[SearchHit]:
    if live_paths is None:
        return hits
    live = set(live_paths)
    return [h for h in hits if h.path in live]


def find_related(
    store: VectorStore, path: str, top_k: int, live_paths: Optional[Iterable[str]] = None
) -> List[SearchHit]:
    """
    Notes most similar to an indexed note.

    Args:
        store: Vector store.
        path: The reference note. If it is not indexed yet the result is empty;
            callers index it on demand first.
        top_k: Number of hits.
        live_paths: When given, hits for notes no longer in the corpus are dropped.

    Returns:
        Hits excluding the note itself, best first.
    """
    target = store.get(path)
    if target is None:
        return []
    hits = store.search(query_vec=target.embedding, top_k=top_k, exclude=path)
    return _live_only(hits, live_paths)


def search_by_text(
    store: VectorStore,
    embedder: Embedder,
    query: str,
    top_k: int,
    live_paths: Optional[Iterable[str]] = None,
) -> List[SearchHit]:
    """
    Notes most similar to a free-text query.

    The query goes through the same fallback protocol as a note, without a title.

    Args:
        store: Vector store.
        embedder: Embedding backend.
        query: Raw query string.
        top_k: Number of hits.
        live_paths: When given, hits for notes no longer in the corpus are dropped.

    Returns:
        Hits over all notes, best first.

    Raises:
        DimensionMismatch: The query embedding and the index come from models
            with different output sizes.
    """
    qvec = embedder.embed(query)
    dim = store.dimension
    if dim and len(qvec) != dim:
        raise DimensionMismatch("<query>", dim, len(qvec))
    hits = store.search(query_vec=qvec, top_k=top_k)
    return _live_only(hits, live_paths)
