"""Text normalization before embedding.

Notes often carry blocks that say nothing about their meaning (query
blocks, drawing data, clipped HTML). Removing them keeps the embedding
focused and the prompt short.
"""

from __future__ import annotations

import re

_FENCED_BLOCKS = re.compile(r"```(?:dataviewjs|dataview|excalidraw)[\s\S]*?```")
_EXCALIDRAW_DATA = re.compile(r"## Excalidraw Data[\s\S]*$")
_TAGS = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")

_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&nbsp;", " "),
    # last, so "&amp;lt;" decodes to "&lt;" and not "<"
    ("&amp;", "&"),
)


def strip_markup(text: str) -> str:
    """Replace tags with spaces and collapse whitespace."""
    return _WHITESPACE.sub(" ", _TAGS.sub(" ", text)).strip()


def preprocess_content(content: str) -> str:
    """
    Clean a note's raw content for embedding.

    Args:
        content: Raw note text.

    Returns:
        Content without query/drawing blocks, HTML tags or entity escapes,
        on a single whitespace-collapsed line.
    """
    clean = _FENCED_BLOCKS.sub("", content)
    clean = _EXCALIDRAW_DATA.sub("", clean)
    clean = _TAGS.sub(" ", clean)
    for entity, char in _ENTITIES:
        clean = clean.replace(entity, char)
    return _WHITESPACE.sub(" ", clean).strip()
