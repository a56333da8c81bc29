# relnote/cli_actions.py
"""
Reusable CLI actions.

The main CLI (`relnote.cli`) calls these functions; the HTTP API reuses
`open_workspace` to build the same store/embedder/pipeline wiring.

This keeps the CLI thin and makes behaviors testable.
"""

from __future__ import annotations

import functools
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import requests
import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from .config import Settings, StoreLayout, StorePaths, Workspace, default_store_dir, load_settings
from .embeddings.ollama import OllamaEmbedder
from .errors import RelnoteError
from .indexer import CancellationToken, IndexingPipeline, Outcome, index_stats
from .ingest.scanner import Document, list_documents
from .observer import Observer
from .ollama_client import check_ollama, list_models
from .search.explain import OllamaChat, explain_relation
from .search.retrieve import find_related, search_by_text
from .vectordb.base import SearchHit
from .vectordb.file_store import FileVectorStore

console = Console()

F = TypeVar("F", bound=Callable[..., None])


def setup_logging(debug: bool = False) -> None:
    """Route library logging through rich; DEBUG when `debug` is set."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def handle_errors(fn: F) -> F:
    """Turn a `RelnoteError` or HTTP failure into a red message and exit code 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (RelnoteError, requests.RequestException) as e:
            console.print(f"[red]{type(e).__name__}:[/red] {e}")
            raise typer.Exit(code=1) from e

    return wrapper  # type: ignore[return-value]


@dataclass
class WorkspaceContext:
    """Everything an action needs to work on one workspace."""

    workspace: Workspace
    wdir: Path
    settings: Settings
    store: FileVectorStore
    embedder: OllamaEmbedder
    pipeline: IndexingPipeline

    def documents(self) -> List[Document]:
        return list_documents(self.workspace.root, self.settings.index)


def open_workspace(
    path: str,
    local_store: bool,
    vector_format: Optional[str] = None,
    ollama_host: Optional[str] = None,
    embed_model: Optional[str] = None,
    chat_model: Optional[str] = None,
    bearer_token: Optional[str] = None,
    debug: Optional[bool] = None,
    store_dir: Optional[Path] = None,
) -> WorkspaceContext:
    """
    Load settings, hydrate the vector store and wire the pipeline.

    Explicit arguments override `.relnote/settings.json`; None keeps the setting.

    Args:
        path: Workspace root path.
        local_store: Store in <workspace>/.relnote if True, else ~/.relnote.
        vector_format: "json" or "binary".
        ollama_host: Ollama base URL.
        embed_model: Embedding model.
        chat_model: Chat model for explanations.
        bearer_token: Optional bearer token.
        debug: Verbose logging.
        store_dir: Override the base store directory.

    Returns:
        WorkspaceContext.
    """
    ws = Workspace.from_path(path)
    settings = load_settings(ws.root)

    prov = settings.provider
    if ollama_host is not None:
        prov.ollama_host = ollama_host
    if embed_model is not None:
        prov.embed_model = embed_model
    if chat_model is not None:
        prov.chat_model = chat_model
    if bearer_token is not None:
        prov.bearer_token = bearer_token
    if vector_format is not None:
        if vector_format not in ("json", "binary"):
            raise typer.BadParameter(f"Unknown vector format: {vector_format}")
        settings.runtime.vector_format = vector_format
    if debug is not None:
        settings.runtime.debug = debug
    if settings.runtime.debug:
        logging.getLogger("relnote").setLevel(logging.DEBUG)

    base = store_dir or default_store_dir(local_store=local_store, workspace_root=ws.root)
    wdir = StoreLayout(base_dir=base).ensure(ws)

    store = FileVectorStore(StorePaths.in_dir(wdir), vector_format=settings.runtime.vector_format).load()
    if store.last_warning is not None:
        console.print(f"[yellow]Vector store was unreadable and has been reset:[/yellow] {store.last_warning}")

    embedder = OllamaEmbedder(prov)
    pipeline = IndexingPipeline(store=store, embedder=embedder)
    return WorkspaceContext(ws, wdir, settings, store, embedder, pipeline)


def resolve_note(ctx: WorkspaceContext, note: str, docs: List[Document]) -> Document:
    """
    Find a note by workspace-relative path or by a filesystem path inside the workspace.

    Raises:
        typer.BadParameter: If no such note is part of the corpus.
    """
    candidates = [note.replace("\\", "/")]
    p = Path(note).expanduser()
    if p.exists():
        try:
            candidates.append(p.resolve().relative_to(ctx.workspace.root).as_posix())
        except ValueError:
            pass
    by_path = {d.path: d for d in docs}
    for c in candidates:
        if c in by_path:
            return by_path[c]
    raise typer.BadParameter(f"Note not found in workspace: {note}")


def _print_hits(hits: List[SearchHit], title: str) -> None:
    if not hits:
        console.print("[yellow]No related notes found.[/yellow]")
        return
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Note")
    for h in hits:
        table.add_row(f"{h.score:.3f}", h.path)
    console.print(table)


class ProgressObserver(Observer):
    """Feeds indexing progress into a rich progress bar."""

    def __init__(self, progress: Progress, task: TaskID) -> None:
        self.progress = progress
        self.task = task

    def on_progress(self, processed: int, total: int) -> None:
        self.progress.update(self.task, completed=processed, total=total)


class LiveTextObserver(Observer):
    """Re-renders the accumulated answer of a streamed explanation."""

    def __init__(self, live: Live) -> None:
        self.live = live

    def on_chunk(self, text: str) -> None:
        self.live.update(Text(text))


@handle_errors
def do_index(path: str, local_store: bool, **overrides) -> None:
    """
    Index or update a workspace with a progress bar. Ctrl-C cancels cooperatively.

    Args:
        path: Workspace root folder path.
        local_store: Storage mode.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    console.print("[dim]Scanning workspace for notes...[/dim]")
    docs = ctx.documents()

    token = CancellationToken()

    def _on_sigint(signum, frame):
        console.print("\n[yellow]Cancelling after the current note...[/yellow]")
        token.cancel()

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        with progress:
            task = progress.add_task("Indexing notes", total=len(docs))
            report = ctx.pipeline.index_all(docs, observer=ProgressObserver(progress, task), token=token)
    finally:
        signal.signal(signal.SIGINT, previous)

    if report.outcome is Outcome.CANCELLED:
        console.print("\n[bold yellow]Indexing cancelled.[/bold yellow] Partial progress was saved.")
    else:
        console.print(f"\n[bold green]Indexed workspace:[/bold green] {ctx.workspace.root}")
    console.print(f"Store: {ctx.wdir}")
    console.print(f"Notes: {report.total}")
    console.print(f"Embedded (this run): {report.succeeded}")
    console.print(f"Up to date: {report.skipped}")
    console.print(f"Pruned: {report.pruned}")
    if report.failed:
        console.print(f"[red]Failed: {report.failed}[/red]")
        for p in report.failed_paths:
            console.print(f" - {p}")


@handle_errors
def do_related(path: str, note: str, local_store: bool, top_k: Optional[int] = None, **overrides) -> None:
    """
    Show the notes most similar to `note`, indexing it first if needed.

    Args:
        path: Workspace root path.
        note: Workspace-relative or filesystem path of the note.
        local_store: Storage mode.
        top_k: Number of notes; defaults to the `max_related` setting.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    docs = ctx.documents()
    doc = resolve_note(ctx, note, docs)
    if ctx.pipeline.index_one(doc):
        ctx.store.save()
    k = top_k if top_k is not None else ctx.settings.runtime.max_related
    hits = find_related(ctx.store, doc.path, k, live_paths=[d.path for d in docs])
    _print_hits(hits, f"Related to {doc.path}")


@handle_errors
def do_search(path: str, query: str, local_store: bool, top_k: Optional[int] = None, **overrides) -> None:
    """
    Show the notes most similar to a free-text query.

    Args:
        path: Workspace root path.
        query: Query text.
        local_store: Storage mode.
        top_k: Number of notes; defaults to the `max_related` setting.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    if len(ctx.store) == 0:
        console.print("[yellow]The index is empty. Run `relnote index` first.[/yellow]")
        return
    k = top_k if top_k is not None else ctx.settings.runtime.max_related
    live = [d.path for d in ctx.documents()]
    hits = search_by_text(ctx.store, ctx.embedder, query, k, live_paths=live)
    _print_hits(hits, f"Search: {query}")


@handle_errors
def do_explain(path: str, note_a: str, note_b: str, local_store: bool, **overrides) -> None:
    """
    Stream a chat-model explanation of why two notes are related.

    Args:
        path: Workspace root path.
        note_a: First note.
        note_b: Second note.
        local_store: Storage mode.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    if not ctx.settings.provider.chat_model:
        console.print("[yellow]No chat model configured; explanations are disabled.[/yellow]")
        return
    docs = ctx.documents()
    doc_a = resolve_note(ctx, note_a, docs)
    doc_b = resolve_note(ctx, note_b, docs)
    chat = OllamaChat.from_options(ctx.settings.provider)

    console.print(f"[bold]Why are {doc_a.path} and {doc_b.path} related?[/bold]\n")
    with Live(Text(""), console=console, refresh_per_second=8) as live:
        explain_relation(chat, doc_a, doc_b, observer=LiveTextObserver(live))


@handle_errors
def do_status(path: str, local_store: bool, **overrides) -> None:
    """
    Show index statistics for a workspace.

    Args:
        path: Workspace root path.
        local_store: Storage mode.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    counts = index_stats(ctx.store, ctx.documents())
    console.print(f"Workspace: {ctx.workspace.root}")
    console.print(f"Indexed notes: {counts['indexed']} / {counts['total']}")
    console.print(f"Missing from index: {counts['missing']}")
    console.print(f"Outdated: {counts['stale']}")
    for k, v in ctx.store.stats().items():
        console.print(f"- {k}: {v}")


@handle_errors
def do_reset(path: str, local_store: bool, **overrides) -> None:
    """
    Delete the vector index of a workspace (both encodings).

    Args:
        path: Workspace root.
        local_store: Storage mode.
        **overrides: Forwarded to `open_workspace`.
    """
    ctx = open_workspace(path, local_store, **overrides)
    ctx.store.clear()
    console.print(f"[bold yellow]Index reset for workspace[/bold yellow] {ctx.workspace.root}")


def do_check(ollama_host: str, bearer_token: str = "") -> bool:
    """
    Test the connection to Ollama and list installed models.

    Returns:
        True if Ollama answered.
    """
    if not check_ollama(ollama_host, bearer_token=bearer_token):
        console.print("[red]✗ Failed to connect to Ollama.[/red] Make sure Ollama is running.")
        return False
    console.print(f"[green]✓ Connected to Ollama[/green] at {ollama_host}")
    try:
        models = list_models(ollama_host, bearer_token=bearer_token)
    except requests.RequestException as e:
        console.print(f"[yellow]Could not list models:[/yellow] {e}")
        return True
    for m in models:
        console.print(f" - {m}")
    return True
