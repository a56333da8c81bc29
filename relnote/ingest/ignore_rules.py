# relnote/ingest/ignore_rules.py
"""Which workspace files are never notes.

App folders (`.obsidian`, `.trash`), relnote's own `.relnote` store and VCS
metadata are excluded by default; a root `.gitignore` adds to that list.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

import pathspec

from ..config import IndexOptions


@dataclass(frozen=True)
class IgnoreMatcher:
    """
    Compiled exclude rules for one workspace.

    Exclude globs and `.gitignore` lines share gitwildmatch semantics, so
    `**/.obsidian/**` also hides an `.obsidian` folder at the workspace root.
    """

    root: Path
    spec: pathspec.PathSpec

    @staticmethod
    def compile(root: Path, patterns: Iterable[str]) -> "IgnoreMatcher":
        return IgnoreMatcher(root=root, spec=pathspec.PathSpec.from_lines("gitwildmatch", patterns))

    def matches(self, path: Path) -> bool:
        """True if `path` (a file inside `root`) is excluded."""
        return self.spec.match_file(path.relative_to(self.root).as_posix())


def load_gitignore(root: Path) -> List[str]:
    """Lines of `<root>/.gitignore`, or [] if there is none or it cannot be read."""
    gi = root / ".gitignore"
    try:
        return gi.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError:
        return []


def build_ignore_matcher(root: Path, opts: IndexOptions) -> IgnoreMatcher:
    """
    Compile the exclude globs of `opts`, plus `.gitignore` when enabled.

    Args:
        root: Workspace root.
        opts: Index options (`exclude_globs`, `use_gitignore`).

    Returns:
        IgnoreMatcher.
    """
    patterns = list(opts.exclude_globs)
    if opts.use_gitignore:
        patterns.extend(load_gitignore(root))
    return IgnoreMatcher.compile(root, patterns)
