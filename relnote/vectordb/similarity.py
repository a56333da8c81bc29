"""Cosine similarity and exhaustive top-k ranking.

There is no ANN index: every query scans all vectors, O(n * d). A personal
notes corpus is thousands of notes, not millions.
"""

from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from .base import SearchHit, VectorRecord


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors.

    A zero-norm vector has no direction, so its similarity to anything is
    defined as 0.0. Non-finite results (overflow, NaN inputs) are also 0.0.

    Args:
        a: First vector.
        b: Second vector, same length as `a`.

    Returns:
        Similarity, nominally in [-1, 1].

    Raises:
        ValueError: If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} != {vb.shape[0]}")

    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0

    score = float(np.dot(va, vb)) / (na * nb)
    if not math.isfinite(score):
        return 0.0
    return score


def top_k(query: Sequence[float], candidates: Sequence[VectorRecord], k: int) -> List[SearchHit]:
    """
    Rank candidates by similarity to `query`.

    Args:
        query: Query embedding.
        candidates: Records to score (the caller excludes the query's own note).
        k: Maximum number of hits, >= 0.

    Returns:
        Up to `k` hits, best first; equal scores keep candidate order.

    Raises:
        ValueError: If `k` is negative.
    """
    if k < 0:
        raise ValueError(f"k must be >= 0, got {k}")
    if k == 0 or not candidates:
        return []

    scores = [cosine_similarity(query, c.embedding) for c in candidates]
    order = sorted(range(len(candidates)), key=lambda i: -scores[i])
    return [SearchHit(path=candidates[i].path, score=scores[i]) for i in order[:k]]
