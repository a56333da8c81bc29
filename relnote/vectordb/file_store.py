"""File-backed vector store (local-first, zero extra services).

Storage:
  - The whole store lives in memory as an ordered list of records
  - Snapshots are written to `vectors.bin` (binary) or `vectors.json` (legacy)
  - Writes go to a temporary file first and are moved into place

Migration:
  - With the binary format configured and only `vectors.json` on disk, the JSON
    file is loaded and dropped once the first binary snapshot has been written.

Retrieval:
  - Exhaustive cosine similarity over all records (see `similarity.top_k`).
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..config import VECTOR_FORMATS, StorePaths
from ..errors import DimensionMismatch, StoreCorrupt, StoreReadFailure, StoreWriteFailure
from .base import SearchHit, VectorRecord, VectorStore
from .codec import decode_binary, decode_json, encode_binary, encode_json
from .similarity import top_k as rank_top_k

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, data: bytes) -> None:
    """Write `data` to `path` through a temp file in the same directory."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise StoreWriteFailure(path, e) from e


class FileVectorStore(VectorStore):
    """In-memory vector store persisted as a single snapshot file.

    Mutations and snapshots are guarded by a lock, so an upsert racing another
    upsert for the same path can never leave two records for that path.

    Attributes:
        paths: Locations of the binary and legacy JSON files.
        vector_format: "binary" or "json"; decides what `load`/`save` use.
        needs_migration: True after loading the legacy file under the binary format.
        last_warning: The `StoreCorrupt` recovered from by the last `load`, if any.
    """

    def __init__(self, paths: StorePaths, vector_format: str = "binary") -> None:
        if vector_format not in VECTOR_FORMATS:
            raise ValueError(f"Unknown vector format: {vector_format}")
        self.paths = paths
        self.vector_format = vector_format
        self.needs_migration = False
        self.last_warning: Optional[StoreCorrupt] = None
        self._records: List[VectorRecord] = []
        self._index: Dict[str, int] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, path: object) -> bool:
        return path in self._index

    @property
    def dimension(self) -> int:
        with self._lock:
            return len(self._records[0].embedding) if self._records else 0

    def _replace_all(self, records: Iterable[VectorRecord]) -> None:
        self._records = []
        self._index = {}
        for r in records:
            pos = self._index.get(r.path)
            if pos is None:
                self._index[r.path] = len(self._records)
                self._records.append(r)
            else:
                self._records[pos] = r

    def _load_file(self, path: Path, decode: Callable[[bytes], List[VectorRecord]]) -> bool:
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise StoreReadFailure(path, e) from e
        try:
            records = decode(raw)
        except StoreCorrupt as e:
            e.path = path
            self.last_warning = e
            logger.warning("Ignoring unreadable vector file %s: %s", path, e.reason)
            return False
        self._replace_all(records)
        logger.info("Loaded %d vectors from %s", len(self._records), path.name)
        return True

    @staticmethod
    def _decode_json_bytes(raw: bytes) -> List[VectorRecord]:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreCorrupt("legacy file is not UTF-8") from e
        return decode_json(text)

    def load(self) -> "FileVectorStore":
        """
        Replace the in-memory records with the persisted ones.

        A missing file yields an empty store. A corrupt file also yields an
        empty store, logs a warning and sets `last_warning`.

        Returns:
            self, for chaining.

        Raises:
            StoreReadFailure: The file exists but cannot be read.
        """
        with self._lock:
            self._replace_all([])
            self.needs_migration = False
            self.last_warning = None

            if self.vector_format == "binary":
                if self.paths.binary_path.exists():
                    self._load_file(self.paths.binary_path, decode_binary)
                elif self.paths.json_path.exists():
                    self._load_file(self.paths.json_path, self._decode_json_bytes)
                    self.needs_migration = True
                    logger.info("Legacy vector file will be converted to binary on next save")
            elif self.paths.json_path.exists():
                self._load_file(self.paths.json_path, self._decode_json_bytes)
        return self

    def save(self) -> None:
        """
        Persist a full snapshot in the configured format.

        On binary save, a leftover legacy JSON file is removed.

        Raises:
            StoreWriteFailure: The snapshot could not be written.
        """
        with self._lock:
            records = list(self._records)
            if self.vector_format == "binary":
                _atomic_write(self.paths.binary_path, encode_binary(records))
                logger.debug("Saved %d vectors to %s", len(records), self.paths.binary_path.name)
                if self.paths.json_path.exists():
                    try:
                        self.paths.json_path.unlink()
                        logger.info("Removed legacy vector file %s", self.paths.json_path)
                    except OSError as e:
                        logger.warning("Could not remove legacy vector file %s: %s", self.paths.json_path, e)
                self.needs_migration = False
            else:
                _atomic_write(self.paths.json_path, encode_json(records).encode("utf-8"))
                logger.debug("Saved %d vectors to %s", len(records), self.paths.json_path.name)

    def get(self, path: str) -> Optional[VectorRecord]:
        with self._lock:
            pos = self._index.get(path)
            return self._records[pos] if pos is not None else None

    def upsert(self, path: str, embedding: Sequence[float], mtime: float) -> VectorRecord:
        """
        Replace the record for `path` if present, else append it.

        Raises:
            ValueError: Empty embedding.
            DimensionMismatch: The embedding length differs from the store's.
        """
        record = VectorRecord.create(path, embedding, mtime)
        dim = len(record.embedding)
        if dim == 0:
            raise ValueError(f"Empty embedding for {path}")

        with self._lock:
            pos = self._index.get(path)
            others = len(self._records) - (1 if pos is not None else 0)
            if others > 0:
                expected = self._dimension_excluding(pos)
                if expected != dim:
                    raise DimensionMismatch(path, expected, dim)
            if pos is None:
                self._index[path] = len(self._records)
                self._records.append(record)
            else:
                self._records[pos] = record
        return record

    def _dimension_excluding(self, pos: Optional[int]) -> int:
        for i, r in enumerate(self._records):
            if i != pos:
                return len(r.embedding)
        return 0

    def prune(self, live_paths: Iterable[str]) -> int:
        live = set(live_paths)
        with self._lock:
            before = len(self._records)
            self._replace_all(r for r in self._records if r.path in live)
            return before - len(self._records)

    def records(self) -> List[VectorRecord]:
        with self._lock:
            return list(self._records)

    def search(self, query_vec: Sequence[float], top_k: int, exclude: Optional[str] = None) -> List[SearchHit]:
        candidates = [r for r in self.records() if r.path != exclude]
        return rank_top_k(query_vec, candidates, top_k)

    def stats(self) -> dict:
        with self._lock:
            return {
                "vectors": len(self._records),
                "dimension": self.dimension,
                "format": self.vector_format,
                "binary_path": str(self.paths.binary_path),
                "json_path": str(self.paths.json_path),
                "needs_migration": self.needs_migration,
            }

    def clear(self) -> None:
        """
        Empty the store and delete both on-disk files.

        Raises:
            StoreWriteFailure: A file exists but could not be deleted.
        """
        with self._lock:
            self._replace_all([])
            self.needs_migration = False
            for p in (self.paths.binary_path, self.paths.json_path):
                try:
                    p.unlink(missing_ok=True)
                except OSError as e:
                    raise StoreWriteFailure(p, e) from e
        logger.info("Index cleared")

    def reset(self) -> None:
        self.clear()
