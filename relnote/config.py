"""Configuration models and path helpers.

This module centralizes:
  - Workspace identification
  - Storage layout (where vector files live)
  - Default scan options
  - Provider/runtime options, with environment overrides

Terminology:
  - Workspace: a folder of notes you want relnote to index.
  - Index: the vector store produced for a workspace.
  - Note: one text document of the workspace.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_INCLUDE_EXT: List[str] = ["md"]

DEFAULT_EXCLUDE_GLOBS: List[str] = [
    "**/.obsidian/**", "**/.trash/**", "**/.relnote/**",
    "**/node_modules/**", "**/.venv/**", "**/venv/**",
    "**/.git/**", "**/.svn/**", "**/.hg/**",
]

SETTINGS_DIR = ".relnote"
DEFAULT_SETTINGS_FILE = Path(SETTINGS_DIR) / "settings.json"

VECTOR_FORMATS = ("json", "binary")
JSON_FILE = "vectors.json"
BINARY_FILE = "vectors.bin"


@dataclass(frozen=True)
class Workspace:
    """Represents a folder of notes.

    Attributes:
        root: Absolute, normalized path to the workspace root.
        name: Optional friendly name for display/logging.
    """

    root: Path
    name: Optional[str] = None

    @staticmethod
    def from_path(path: str, name: Optional[str] = None) -> "Workspace":
        """Create a workspace from a user-provided path."""
        p = Path(path).expanduser().resolve()
        return Workspace(root=p, name=name)

    @property
    def id(self) -> str:
        """Stable workspace id derived from absolute path."""
        h = hashlib.sha1(str(self.root).encode("utf-8")).hexdigest()
        return h[:16]


@dataclass(frozen=True)
class StorePaths:
    """The two on-disk encodings of one workspace's vector store."""

    json_path: Path
    binary_path: Path

    @staticmethod
    def in_dir(store_dir: Path) -> "StorePaths":
        return StorePaths(json_path=store_dir / JSON_FILE, binary_path=store_dir / BINARY_FILE)


@dataclass
class StoreLayout:
    """Defines where relnote stores its index data."""

    base_dir: Path

    def workspace_dir(self, ws: Workspace) -> Path:
        """Return the directory holding data for a workspace."""
        return self.base_dir / "workspaces" / ws.id

    def ensure(self, ws: Workspace) -> Path:
        """Create required directories and return workspace dir."""
        wdir = self.workspace_dir(ws)
        wdir.mkdir(parents=True, exist_ok=True)
        return wdir

    def paths(self, ws: Workspace) -> StorePaths:
        return StorePaths.in_dir(self.workspace_dir(ws))


def default_store_dir(local_store: bool, workspace_root: Path) -> Path:
    """Compute default storage directory.

    Args:
        local_store: If True, store index inside the workspace under `.relnote/`.
            If False, store index under the user's home directory `~/.relnote/`.
        workspace_root: Workspace path.

    Returns:
        A path to the storage root directory.
    """
    if local_store:
        return workspace_root / SETTINGS_DIR
    return Path.home() / SETTINGS_DIR


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class IndexOptions:
    """Options for enumerating the notes of a workspace."""

    include_ext: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_EXT))
    exclude_globs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_GLOBS))
    max_file_mb: float = 2.0
    follow_symlinks: bool = False
    use_gitignore: bool = True


@dataclass
class ProviderOptions:
    """Embedding/chat provider options.

    Environment variables:
      - RELNOTE_OLLAMA_HOST, RELNOTE_EMBED_MODEL, RELNOTE_CHAT_MODEL
      - RELNOTE_BEARER_TOKEN
      - RELNOTE_EMBED_TIMEOUT    (default 180)
      - RELNOTE_EMBED_MAX_CHARS  (default 32000, roughly 8000 tokens)
      - RELNOTE_EMBED_SAFE_CHARS (default 2000)
      - RELNOTE_EMBED_RETRIES    (default 3)
      - RELNOTE_EMBED_BACKOFF    (default 1.0 seconds)
    """

    ollama_host: str = field(default_factory=lambda: os.getenv("RELNOTE_OLLAMA_HOST", "http://localhost:11434"))
    embed_model: str = field(default_factory=lambda: os.getenv("RELNOTE_EMBED_MODEL", "nomic-embed-text"))
    chat_model: str = field(default_factory=lambda: os.getenv("RELNOTE_CHAT_MODEL", "llama3.1:8b"))
    bearer_token: str = field(default_factory=lambda: os.getenv("RELNOTE_BEARER_TOKEN", ""))
    timeout: int = field(default_factory=lambda: _env_int("RELNOTE_EMBED_TIMEOUT", 180))
    max_chars: int = field(default_factory=lambda: _env_int("RELNOTE_EMBED_MAX_CHARS", 32000))
    safe_chars: int = field(default_factory=lambda: _env_int("RELNOTE_EMBED_SAFE_CHARS", 2000))
    retries: int = field(default_factory=lambda: _env_int("RELNOTE_EMBED_RETRIES", 3))
    backoff_seconds: float = field(default_factory=lambda: _env_float("RELNOTE_EMBED_BACKOFF", 1.0))


@dataclass
class RuntimeOptions:
    """Runtime options for storage and queries."""

    vector_format: str = "binary"  # "json" | "binary"
    max_related: int = 5
    debug: bool = False

    def __post_init__(self) -> None:
        if self.vector_format not in VECTOR_FORMATS:
            raise ValueError(f"Unknown vector format: {self.vector_format}")
        self.max_related = min(20, max(1, int(self.max_related)))


@dataclass
class Settings:
    """Everything read from a workspace settings file."""

    index: IndexOptions = field(default_factory=IndexOptions)
    provider: ProviderOptions = field(default_factory=ProviderOptions)
    runtime: RuntimeOptions = field(default_factory=RuntimeOptions)


def _str_list(value) -> Optional[List[str]]:
    if isinstance(value, list) and all(isinstance(x, str) for x in value):
        return value
    return None


def load_settings(workspace_root: Path) -> Settings:
    """Load settings from .relnote/settings.json if present.

    Unknown or ill-typed keys are ignored; an unreadable file yields defaults.

    Args:
        workspace_root: Workspace root directory.

    Returns:
        Settings with defaults overridden by any settings file values.
    """
    settings = Settings()
    settings_path = workspace_root / DEFAULT_SETTINGS_FILE
    if not settings_path.exists():
        return settings

    try:
        payload = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return settings

    if not isinstance(payload, dict):
        return settings

    idx = settings.index
    if _str_list(payload.get("include_ext")) is not None:
        idx.include_ext = payload["include_ext"]
    if _str_list(payload.get("exclude_globs")) is not None:
        idx.exclude_globs = payload["exclude_globs"]
    if isinstance(payload.get("max_file_mb"), (int, float)):
        idx.max_file_mb = float(payload["max_file_mb"])
    if isinstance(payload.get("follow_symlinks"), bool):
        idx.follow_symlinks = payload["follow_symlinks"]
    if isinstance(payload.get("use_gitignore"), bool):
        idx.use_gitignore = payload["use_gitignore"]

    prov = settings.provider
    for key in ("ollama_host", "embed_model", "chat_model", "bearer_token"):
        if isinstance(payload.get(key), str):
            setattr(prov, key, payload[key])

    rt = settings.runtime
    if payload.get("vector_format") in VECTOR_FORMATS:
        rt.vector_format = payload["vector_format"]
    if isinstance(payload.get("max_related"), int):
        rt.max_related = min(20, max(1, payload["max_related"]))
    if isinstance(payload.get("debug"), bool):
        rt.debug = payload["debug"]

    return settings
