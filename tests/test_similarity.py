"""Tests for cosine similarity and top-k ranking."""

import numpy as np
import pytest

from relnote.vectordb.base import VectorRecord
from relnote.vectordb.similarity import cosine_similarity, top_k


def test_cosine_basic_angles() -> None:
    """Identical, orthogonal and opposite vectors score 1, 0 and -1."""
    assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)


def test_cosine_is_symmetric_and_bounded() -> None:
    """cos(a, b) == cos(b, a) and stays within [-1, 1]."""
    rng = np.random.default_rng(7)
    for _ in range(50):
        a, b = rng.normal(size=16), rng.normal(size=16)
        ab = cosine_similarity(a, b)
        assert ab == pytest.approx(cosine_similarity(b, a))
        assert -1.0 - 1e-9 <= ab <= 1.0 + 1e-9


def test_cosine_zero_norm_is_zero() -> None:
    """A zero vector has no direction; similarity is 0.0."""
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_non_finite_is_zero() -> None:
    """NaN input produces 0.0 rather than NaN."""
    assert cosine_similarity([float("nan"), 1.0], [1.0, 1.0]) == 0.0


def test_cosine_length_mismatch_raises() -> None:
    """Vectors of different length cannot be compared."""
    with pytest.raises(ValueError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def _rec(path, vec):
    return VectorRecord.create(path, vec, 0)


def test_top_k_orders_best_first() -> None:
    """Hits come back by descending score, cut at k."""
    cands = [_rec("far", [0.0, 1.0]), _rec("near", [1.0, 0.1]), _rec("mid", [1.0, 1.0])]
    hits = top_k([1.0, 0.0], cands, 2)
    assert [h.path for h in hits] == ["near", "mid"]
    assert hits[0].score > hits[1].score


def test_top_k_ties_keep_candidate_order() -> None:
    """Equal scores are returned in the order the candidates were given."""
    cands = [_rec("first", [2.0, 0.0]), _rec("second", [1.0, 0.0]), _rec("third", [5.0, 0.0])]
    assert [h.path for h in top_k([1.0, 0.0], cands, 3)] == ["first", "second", "third"]


def test_top_k_bounds() -> None:
    """k=0 and an empty candidate list give []; k larger than n returns all."""
    cands = [_rec("a", [1.0]), _rec("b", [1.0])]
    assert top_k([1.0], cands, 0) == []
    assert top_k([1.0], [], 5) == []
    assert len(top_k([1.0], cands, 10)) == 2


def test_top_k_negative_raises() -> None:
    """A negative k is a caller error."""
    with pytest.raises(ValueError):
        top_k([1.0], [_rec("a", [1.0])], -1)
