"""Workspace scanner.

This module provides:
  - the `Document` handle the indexing pipeline consumes
  - note listing for a workspace folder

Notes:
  - Uses IgnoreMatcher (default excludes + optional .gitignore)
  - Filters by extension
  - Skips large files
  - Content is read lazily, when a note actually needs embedding
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

from ..config import IndexOptions
from .ignore_rules import build_ignore_matcher
from .loaders import read_text_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Document:
    """A note of the corpus.

    Attributes:
        path: Stable identifier, workspace-relative with "/" separators.
        title: Display title (file name without extension).
        mtime: Last modification time in integer milliseconds.
        reader: Returns the current note content.
    """

    path: str
    title: str
    mtime: int
    reader: Callable[[], str]

    def read(self) -> str:
        return self.reader()

    @staticmethod
    def from_file(root: Path, file: Path, max_bytes: int) -> "Document":
        st = file.stat()
        return Document(
            path=file.relative_to(root).as_posix(),
            title=file.stem,
            mtime=st.st_mtime_ns // 1_000_000,
            reader=lambda: read_text_file(file, max_bytes),
        )

    @staticmethod
    def from_text(path: str, text: str, mtime: int = 0) -> "Document":
        return Document(path=path, title=Path(path).stem, mtime=mtime, reader=lambda: text)


def list_documents(root: Path, opts: IndexOptions) -> List[Document]:
    """List the indexable notes of a workspace.

    Args:
        root: Workspace root folder.
        opts: Index options.

    Returns:
        Documents sorted by path.
    """
    matcher = build_ignore_matcher(root, opts)
    include_set = {e.lower().lstrip(".") for e in opts.include_ext}
    max_bytes = int(opts.max_file_mb * 1024 * 1024)

    docs: List[Document] = []
    for p in root.rglob("*"):
        try:
            if (not opts.follow_symlinks) and p.is_symlink():
                continue
            if p.is_dir():
                continue
            if p.suffix.lower().lstrip(".") not in include_set:
                continue
            if matcher.matches(p):
                continue
            if p.stat().st_size > max_bytes:
                logger.debug("Skipping %s: larger than %.1f MB", p, opts.max_file_mb)
                continue
            docs.append(Document.from_file(root, p, max_bytes))
        except OSError as e:
            logger.warning("Skipping %s: %s", p, e)
            continue
    docs.sort(key=lambda d: d.path)
    return docs
