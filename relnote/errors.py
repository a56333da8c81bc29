"""Error types raised by relnote.

Provider-side errors carry enough context (url, attempts, status, body) to
diagnose a failure without reproducing it. Store I/O errors are fatal for the
operation that hit them; a corrupt store file is not (see ``StoreCorrupt``).
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional


class RelnoteError(Exception):
    """Base error for relnote."""

    pass


class EmbeddingConnectionError(RelnoteError, ConnectionError):
    """The embedding provider could not be reached after all retries."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to connect to {url} after {attempts} attempt(s){detail}")
        self.url = url
        self.attempts = attempts
        self.cause = cause


class ProviderError(RelnoteError):
    """The provider answered with a non-success status that is not retryable."""

    def __init__(self, status: int, body: str, mode: str = "full") -> None:
        super().__init__(f"Provider error ({mode} mode): {status} - {body[:800]}")
        self.status = status
        self.body = body
        self.mode = mode


class EmbeddingUnavailable(RelnoteError):
    """Every embedding mode (full text, safe, title-only) failed."""

    def __init__(self, failures: List[str]) -> None:
        chain = "; ".join(failures) if failures else "no attempts recorded"
        super().__init__(f"Embedding unavailable after all fallback modes: {chain}")
        self.failures = list(failures)


class StoreCorrupt(RelnoteError):
    """A persisted vector file could not be decoded."""

    def __init__(self, reason: str, path: Optional[Path] = None) -> None:
        where = f" ({path})" if path is not None else ""
        super().__init__(f"Corrupt vector store{where}: {reason}")
        self.reason = reason
        self.path = path


class StoreIOError(RelnoteError):
    """Reading or writing a vector file failed at the filesystem level."""

    verb = "access"

    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(f"Failed to {self.verb} vector store {path}: {cause}")
        self.path = path
        self.cause = cause


class StoreReadFailure(StoreIOError):
    verb = "read"


class StoreWriteFailure(StoreIOError):
    verb = "write"


class DimensionMismatch(RelnoteError, ValueError):
    """An embedding does not match the dimension already used by the store."""

    def __init__(self, path: str, expected: int, actual: int) -> None:
        super().__init__(f"Embedding for {path} has dimension {actual}, store uses {expected}")
        self.path = path
        self.expected = expected
        self.actual = actual
