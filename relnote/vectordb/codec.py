"""On-disk encodings of a vector store.

Binary (``vectors.bin``), all integers little-endian::

    magic "VEC1" | count: uint32 | dimension: uint32
    count x { path_len: uint32 | path: utf-8 | mtime: float64 | dimension x float32 }

The dimension is written once per file. An empty store encodes as a header
with count 0 and dimension 0.

Legacy JSON (``vectors.json``): a list of ``{"path", "embedding", "mtime"}``
objects. It is still written when the JSON format is configured, and is the
migration source once the binary format is adopted.
"""

from __future__ import annotations

import json
import struct
from typing import List, Sequence

import numpy as np

from ..errors import StoreCorrupt
from .base import VectorRecord

MAGIC = b"VEC1"
_HEADER = struct.Struct("<4sII")
_PATH_LEN = struct.Struct("<I")
_MTIME = struct.Struct("<d")
_F32 = np.dtype("<f4")


def _dimension_of(records: Sequence[VectorRecord]) -> int:
    if not records:
        return 0
    dim = len(records[0].embedding)
    for r in records:
        if len(r.embedding) != dim:
            raise ValueError(f"Inconsistent dimension for {r.path}: {len(r.embedding)} != {dim}")
    return dim


def encode_binary(records: Sequence[VectorRecord]) -> bytes:
    """
    Encode records in the binary format.

    Raises:
        ValueError: If the records do not share one dimension.
    """
    dim = _dimension_of(records)
    parts = [_HEADER.pack(MAGIC, len(records), dim)]
    for r in records:
        path_bytes = r.path.encode("utf-8")
        parts.append(_PATH_LEN.pack(len(path_bytes)))
        parts.append(path_bytes)
        parts.append(_MTIME.pack(float(r.mtime)))
        parts.append(np.asarray(r.embedding, dtype=_F32).tobytes())
    return b"".join(parts)


def decode_binary(buf: bytes) -> List[VectorRecord]:
    """
    Decode the binary format.

    Raises:
        StoreCorrupt: Bad magic, zero dimension with records, truncated buffer,
            invalid UTF-8 path or trailing bytes.
    """
    if len(buf) < _HEADER.size:
        raise StoreCorrupt(f"truncated header ({len(buf)} bytes)")
    magic, count, dim = _HEADER.unpack_from(buf, 0)
    if magic != MAGIC:
        raise StoreCorrupt(f"bad magic {magic!r}")
    if count and not dim:
        raise StoreCorrupt(f"{count} records with dimension 0")

    vec_bytes = dim * _F32.itemsize
    records: List[VectorRecord] = []
    offset = _HEADER.size
    for i in range(count):
        if offset + _PATH_LEN.size > len(buf):
            raise StoreCorrupt(f"truncated at record {i}")
        (path_len,) = _PATH_LEN.unpack_from(buf, offset)
        offset += _PATH_LEN.size

        end = offset + path_len + _MTIME.size + vec_bytes
        if end > len(buf):
            raise StoreCorrupt(f"truncated at record {i}")
        try:
            path = buf[offset : offset + path_len].decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreCorrupt(f"invalid path encoding at record {i}") from e
        offset += path_len

        (mtime,) = _MTIME.unpack_from(buf, offset)
        offset += _MTIME.size

        embedding = np.frombuffer(buf, dtype=_F32, count=dim, offset=offset).astype(np.float32)
        offset += vec_bytes

        records.append(VectorRecord(path=path, embedding=embedding, mtime=mtime))

    if offset != len(buf):
        raise StoreCorrupt(f"{len(buf) - offset} trailing bytes after {count} records")
    return records


def encode_json(records: Sequence[VectorRecord]) -> str:
    """Encode records as the legacy JSON document."""
    data = [
        {"path": r.path, "embedding": [float(x) for x in r.embedding], "mtime": r.mtime}
        for r in records
    ]
    return json.dumps(data, indent=2)


def decode_json(text: str) -> List[VectorRecord]:
    """
    Decode the legacy JSON document.

    Raises:
        StoreCorrupt: Invalid JSON, unexpected shape, empty or mixed-length embeddings.
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise StoreCorrupt(f"invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise StoreCorrupt("expected a list of records")

    records: List[VectorRecord] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise StoreCorrupt(f"record {i} is not an object")
        path, emb, mtime = item.get("path"), item.get("embedding"), item.get("mtime")
        if not isinstance(path, str) or not isinstance(emb, list) or not isinstance(mtime, (int, float)):
            raise StoreCorrupt(f"record {i} is missing path/embedding/mtime")
        if not emb:
            raise StoreCorrupt(f"record {i} has an empty embedding")
        try:
            records.append(VectorRecord.create(path, emb, mtime))
        except (TypeError, ValueError) as e:
            raise StoreCorrupt(f"record {i} has a non-numeric embedding") from e

    try:
        _dimension_of(records)
    except ValueError as e:
        raise StoreCorrupt(str(e)) from e
    return records
