# relnote/embeddings/base.py
"""Embedding interfaces."""

from __future__ import annotations

from typing import List, Optional


class Embedder:
    """
    Embedder interface for turning one note into a vector.
    """

    def embed(self, text: str, title: Optional[str] = None) -> List[float]:
        """
        Return the embedding for a text.

        Args:
            text: Input string.
            title: Optional note title, used as a last-resort prompt.

        Returns:
            Embedding vector.

        Raises:
            NotImplementedError: If not implemented.
        """
        raise NotImplementedError
