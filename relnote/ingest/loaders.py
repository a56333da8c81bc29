"""Note loading utilities.

relnote indexes *text* notes only. This module includes:
  - best-effort text/binary sniffing
  - safe reads with encoding fallback
"""

from __future__ import annotations

from pathlib import Path

_TEXT_CHARS = bytearray({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)))


def is_probably_binary(data: bytes) -> bool:
    """Heuristic binary detection."""
    if not data:
        return False
    if b"\x00" in data:
        return True
    nontext = data.translate(None, _TEXT_CHARS)
    return float(len(nontext)) / float(len(data)) > 0.30


def read_text_file(path: Path, max_bytes: int) -> str:
    """Read file content up to `max_bytes`.

    Args:
        path: File path.
        max_bytes: Maximum bytes to read.

    Returns:
        Decoded content (UTF-8, falling back to latin-1).

    Raises:
        ValueError: If file appears to be binary.
        OSError: If the file cannot be read.
    """
    with path.open("rb") as fh:
        raw = fh.read(max_bytes)
    if is_probably_binary(raw):
        raise ValueError(f"Binary file detected: {path}")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")
