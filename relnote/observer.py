"""Host callbacks for long-running operations.

The core never renders anything itself; it reports to an observer. Callbacks
run in the same thread that drives the operation.
"""

from __future__ import annotations


class Observer:
    """No-op observer; subclass and override what you need."""

    def on_progress(self, processed: int, total: int) -> None:
        """Called after every document of an indexing run."""

    def on_chunk(self, text: str) -> None:
        """Called with the accumulated text of a streamed answer so far."""
