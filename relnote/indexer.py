"""Indexing pipeline.

Owns the vector store for one workspace and keeps it in sync with the corpus:
  - `index_one`: embed a single note unless its stored mtime is current
  - `index_all`: one batch session over the whole corpus, with checkpoints,
    cooperative cancellation and pruning of deleted notes

A failed note is logged, counted and skipped. A failed store write is not:
it propagates and ends the session.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .embeddings.base import Embedder
from .ingest.normalize import preprocess_content
from .ingest.scanner import Document
from .observer import Observer
from .vectordb.file_store import FileVectorStore

logger = logging.getLogger(__name__)

CHECKPOINT_EVERY = 10
YIELD_EVERY = 5


class Outcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ALREADY_RUNNING = "already_running"


class CancellationToken:
    """A flag the batch checks once per document, before processing it."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class IndexingSession:
    """State of the running `index_all` call."""

    total: int
    token: CancellationToken
    processed: int = 0

    @property
    def cancel_requested(self) -> bool:
        return self.token.cancelled

    def snapshot(self) -> Dict[str, object]:
        return {
            "is_running": True,
            "processed": self.processed,
            "total": self.total,
            "cancel_requested": self.cancel_requested,
        }


@dataclass
class IndexReport:
    """Result of one `index_all` call."""

    outcome: Outcome
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    pruned: int = 0
    failed_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "outcome": self.outcome.value,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "pruned": self.pruned,
            "failed_paths": list(self.failed_paths),
        }


class IndexingPipeline:
    """
    Keeps one workspace's vector store up to date.

    Attributes:
        store: The vector store this pipeline owns.
        embedder: Embedding backend.
        last_report: Report of the most recent finished `index_all`, if any.
    """

    def __init__(
        self,
        store: FileVectorStore,
        embedder: Embedder,
        normalize: Callable[[str], str] = preprocess_content,
        pause: Callable[[], None] = lambda: time.sleep(0),
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.last_report: Optional[IndexReport] = None
        self._normalize = normalize
        self._pause = pause
        self._session: Optional[IndexingSession] = None
        self._guard = threading.Lock()

    @property
    def session(self) -> Optional[IndexingSession]:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._session is not None

    def index_one(self, doc: Document) -> bool:
        """
        Embed a note and upsert it, unless the stored record is up to date.

        Args:
            doc: The note.

        Returns:
            True if an embedding was produced and stored, False on a cache hit.

        Raises:
            Any embedding or read error for this note.
        """
        existing = self.store.get(doc.path)
        if existing is not None and existing.mtime == doc.mtime:
            logger.debug("Skipping %s: up to date (mtime %s)", doc.path, doc.mtime)
            return False

        logger.debug("Indexing %s...", doc.path)
        content = self._normalize(doc.read())
        embedding = self.embedder.embed(content, title=doc.title)
        # upsert looks the path up again under the store lock
        self.store.upsert(doc.path, embedding, doc.mtime)
        return True

    def cancel(self) -> None:
        """Ask the running session to stop; no-op when idle."""
        session = self._session
        if session is not None:
            session.token.cancel()
            logger.info("Indexing cancellation requested")

    def index_all(
        self,
        documents: Iterable[Document],
        observer: Optional[Observer] = None,
        token: Optional[CancellationToken] = None,
    ) -> IndexReport:
        """
        Index every document, then prune records of deleted notes.

        Args:
            documents: The whole corpus, processed in order.
            observer: Receives `on_progress(processed, total)` after every document.
            token: Cancellation token; a fresh one is created when omitted.

        Returns:
            IndexReport. Outcome is ALREADY_RUNNING when another session is active,
            CANCELLED when the token fired (partial progress is saved, nothing is pruned).

        Raises:
            StoreWriteFailure: A checkpoint or final save failed.
        """
        docs = list(documents)
        observer = observer or Observer()

        with self._guard:
            if self._session is not None:
                logger.info("Indexing already in progress")
                return IndexReport(outcome=Outcome.ALREADY_RUNNING, total=len(docs))
            session = IndexingSession(total=len(docs), token=token or CancellationToken())
            self._session = session

        report = IndexReport(outcome=Outcome.COMPLETED, total=len(docs))
        try:
            for doc in docs:
                if session.token.cancelled:
                    report.outcome = Outcome.CANCELLED
                    break

                try:
                    updated = self.index_one(doc)
                except Exception as e:
                    logger.warning("Failed to index %s: %s", doc.path, e)
                    report.failed += 1
                    report.failed_paths.append(doc.path)
                    updated = False
                else:
                    if not updated:
                        report.skipped += 1

                if updated:
                    report.succeeded += 1
                    if report.succeeded % CHECKPOINT_EVERY == 0:
                        self.store.save()

                session.processed += 1
                report.processed = session.processed
                observer.on_progress(session.processed, session.total)
                if session.processed % YIELD_EVERY == 0:
                    self._pause()

            if report.outcome is Outcome.CANCELLED:
                if report.succeeded > 0:
                    self.store.save()
                logger.info("Indexing cancelled after %d of %d notes", report.processed, report.total)
            else:
                if report.succeeded > 0:
                    self.store.save()
                report.pruned = self.store.prune(d.path for d in docs)
                if report.pruned > 0:
                    logger.info("Pruned %d deleted notes from index", report.pruned)
                    self.store.save()
                logger.info(
                    "Indexing complete: %d succeeded, %d failed, %d pruned",
                    report.succeeded,
                    report.failed,
                    report.pruned,
                )
            if report.failed_paths:
                logger.debug("Failed notes: %s", report.failed_paths)
            self.last_report = report
            return report
        finally:
            with self._guard:
                self._session = None


def index_stats(store: FileVectorStore, documents: Iterable[Document]) -> Dict[str, int]:
    """
    Count how much of the corpus is indexed.

    Only records of notes that still exist are counted.

    Returns:
        {"indexed", "total", "missing", "stale"}; stale records have an outdated mtime.
    """
    docs = list(documents)
    indexed = 0
    stale = 0
    for d in docs:
        rec = store.get(d.path)
        if rec is None:
            continue
        indexed += 1
        if rec.mtime != d.mtime:
            stale += 1
    return {"indexed": indexed, "total": len(docs), "missing": len(docs) - indexed, "stale": stale}
