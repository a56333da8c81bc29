"""Tests for the binary and legacy JSON vector encodings."""

import json
import struct

import numpy as np
import pytest

from relnote.errors import StoreCorrupt
from relnote.vectordb.base import VectorRecord
from relnote.vectordb.codec import decode_binary, decode_json, encode_binary, encode_json


def _records():
    return [
        VectorRecord.create("a.md", [0.1, 0.2, 0.3], 1_700_000_000_123),
        VectorRecord.create("dir/b.md", [-1.0, 0.0, 2.5], 1_700_000_000_456),
        VectorRecord.create("notes/café ☕.md", [3.0, 2.0, 1.0], 42),
    ]


def _by_path(records):
    return {r.path: r for r in records}


def test_binary_round_trip_preserves_records() -> None:
    """encode_binary then decode_binary yields the same set of records."""
    original = _records()
    decoded = decode_binary(encode_binary(original))

    assert len(decoded) == len(original)
    got = _by_path(decoded)
    for r in original:
        assert got[r.path].mtime == r.mtime
        np.testing.assert_array_equal(got[r.path].embedding, r.embedding)


def test_binary_layout_is_little_endian_with_single_dimension() -> None:
    """Header holds magic, count and dimension; each record holds path, mtime, floats."""
    rec = VectorRecord.create("x", [1.0, 2.0], 5.0)
    buf = encode_binary([rec])

    assert buf[:4] == b"VEC1"
    assert struct.unpack_from("<II", buf, 4) == (1, 2)
    assert struct.unpack_from("<I", buf, 12) == (1,)
    assert buf[16:17] == b"x"
    assert struct.unpack_from("<d", buf, 17) == (5.0,)
    assert struct.unpack_from("<2f", buf, 25) == (1.0, 2.0)
    assert len(buf) == 12 + 4 + 1 + 8 + 2 * 4


def test_binary_empty_store_is_header_only() -> None:
    """An empty store encodes to a 12-byte header and decodes to nothing."""
    buf = encode_binary([])
    assert buf == b"VEC1" + struct.pack("<II", 0, 0)
    assert decode_binary(buf) == []


def test_encode_binary_rejects_mixed_dimensions() -> None:
    """All records of one file must share a dimension."""
    with pytest.raises(ValueError):
        encode_binary([VectorRecord.create("a", [1.0], 0), VectorRecord.create("b", [1.0, 2.0], 0)])


def test_decode_binary_rejects_bad_magic() -> None:
    """A buffer not starting with VEC1 is corrupt."""
    buf = b"VEC2" + encode_binary(_records())[4:]
    with pytest.raises(StoreCorrupt, match="magic"):
        decode_binary(buf)


@pytest.mark.parametrize("cut", [3, 11, 20, -1])
def test_decode_binary_rejects_truncated_buffer(cut: int) -> None:
    """Cutting the buffer anywhere makes it corrupt."""
    buf = encode_binary(_records())
    with pytest.raises(StoreCorrupt):
        decode_binary(buf[:cut])


def test_decode_binary_rejects_trailing_bytes() -> None:
    """Bytes after the last record are treated as corruption."""
    with pytest.raises(StoreCorrupt, match="trailing"):
        decode_binary(encode_binary(_records()) + b"\x00")


def test_json_round_trip_and_legacy_shape() -> None:
    """The JSON document is a list of {path, embedding, mtime} objects."""
    text = encode_json(_records())
    data = json.loads(text)
    assert [set(item) for item in data] == [{"path", "embedding", "mtime"}] * 3

    decoded = _by_path(decode_json(text))
    for r in _records():
        np.testing.assert_allclose(decoded[r.path].embedding, r.embedding)
        assert decoded[r.path].mtime == r.mtime


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        '{"path": "a"}',
        '[{"path": "a", "embedding": [1.0]}]',
        '[{"path": "a", "embedding": ["x"], "mtime": 1}]',
        '[{"path": "a", "embedding": [1.0], "mtime": 1}, {"path": "b", "embedding": [1.0, 2.0], "mtime": 1}]',
    ],
)
def test_decode_json_rejects_malformed_documents(text: str) -> None:
    """Invalid JSON, wrong shapes and mixed dimensions are corrupt."""
    with pytest.raises(StoreCorrupt):
        decode_json(text)


def test_decode_binary_rejects_records_without_dimension() -> None:
    """count > 0 with dimension 0 would load unusable empty vectors."""
    buf = b"VEC1" + struct.pack("<II", 1, 0) + struct.pack("<I", 1) + b"a" + struct.pack("<d", 0.0)
    with pytest.raises(StoreCorrupt, match="dimension 0"):
        decode_binary(buf)


def test_decode_json_rejects_empty_embedding() -> None:
    """A legacy record with an empty vector is corrupt."""
    with pytest.raises(StoreCorrupt, match="empty embedding"):
        decode_json('[{"path": "a", "embedding": [], "mtime": 1}]')
