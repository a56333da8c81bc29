"""relnote CLI.

Commands:
  - index: embed every note of a workspace (incremental, Ctrl-C to cancel)
  - related: notes most similar to a given note
  - search: notes most similar to a free-text query
  - explain: stream a chat-model explanation of why two notes are related
  - status: show index stats
  - reset: delete the index
  - check: test the connection to Ollama
  - serve: local JSON API over one workspace

Ollama:
  - API base is served by default at http://localhost:11434/api
  - Embeddings endpoint: /api/embeddings
  - Chat endpoint: /api/chat
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from .cli_actions import (
    do_check,
    do_explain,
    do_index,
    do_related,
    do_reset,
    do_search,
    do_status,
    setup_logging,
)
from .config import ProviderOptions

app = typer.Typer(add_completion=False, help="relnote: find related notes with local embeddings.")

_LOCAL_STORE = typer.Option(False, "--local-store", help="Store index inside workspace under .relnote/")
_FORMAT = typer.Option(None, "--format", help="Vector file format: binary|json (default from settings).")
_OLLAMA_HOST = typer.Option(None, "--ollama-host", help="Ollama host URL.")
_EMBED_MODEL = typer.Option(None, "--embed-model", help="Ollama embedding model name.")
_BEARER = typer.Option(None, "--bearer-token", help="Authorization token for a protected Ollama endpoint.")
_DEBUG = typer.Option(False, "--debug", help="Verbose logging.")


@app.command()
def index(
    path: str = typer.Argument(..., help="Workspace folder path to index."),
    local_store: bool = _LOCAL_STORE,
    vector_format: Optional[str] = _FORMAT,
    ollama_host: Optional[str] = _OLLAMA_HOST,
    embed_model: Optional[str] = _EMBED_MODEL,
    bearer_token: Optional[str] = _BEARER,
    debug: bool = _DEBUG,
):
    """Index or update a workspace folder."""
    setup_logging(debug)
    do_index(
        path=path,
        local_store=local_store,
        vector_format=vector_format,
        ollama_host=ollama_host,
        embed_model=embed_model,
        bearer_token=bearer_token,
        debug=debug or None,
    )


@app.command()
def related(
    path: str = typer.Argument(..., help="Workspace folder path."),
    note: str = typer.Argument(..., help="Note path (workspace-relative or on disk)."),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="How many notes to show (default: max_related)."),
    local_store: bool = _LOCAL_STORE,
    vector_format: Optional[str] = _FORMAT,
    ollama_host: Optional[str] = _OLLAMA_HOST,
    embed_model: Optional[str] = _EMBED_MODEL,
    bearer_token: Optional[str] = _BEARER,
    debug: bool = _DEBUG,
):
    """Show notes related to a note (indexes it first if needed)."""
    setup_logging(debug)
    do_related(
        path=path,
        note=note,
        local_store=local_store,
        top_k=top_k,
        vector_format=vector_format,
        ollama_host=ollama_host,
        embed_model=embed_model,
        bearer_token=bearer_token,
        debug=debug or None,
    )


@app.command()
def search(
    path: str = typer.Argument(..., help="Workspace folder path (must be indexed first)."),
    query: str = typer.Argument(..., help="Free-text query."),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="How many notes to show (default: max_related)."),
    local_store: bool = _LOCAL_STORE,
    vector_format: Optional[str] = _FORMAT,
    ollama_host: Optional[str] = _OLLAMA_HOST,
    embed_model: Optional[str] = _EMBED_MODEL,
    bearer_token: Optional[str] = _BEARER,
    debug: bool = _DEBUG,
):
    """Search notes by meaning."""
    setup_logging(debug)
    do_search(
        path=path,
        query=query,
        local_store=local_store,
        top_k=top_k,
        vector_format=vector_format,
        ollama_host=ollama_host,
        embed_model=embed_model,
        bearer_token=bearer_token,
        debug=debug or None,
    )


@app.command()
def explain(
    path: str = typer.Argument(..., help="Workspace folder path."),
    note_a: str = typer.Argument(..., help="First note."),
    note_b: str = typer.Argument(..., help="Second note."),
    chat_model: Optional[str] = typer.Option(None, "--model", help="Ollama chat model."),
    local_store: bool = _LOCAL_STORE,
    ollama_host: Optional[str] = _OLLAMA_HOST,
    bearer_token: Optional[str] = _BEARER,
    debug: bool = _DEBUG,
):
    """Explain why two notes are related."""
    setup_logging(debug)
    do_explain(
        path=path,
        note_a=note_a,
        note_b=note_b,
        local_store=local_store,
        chat_model=chat_model,
        ollama_host=ollama_host,
        bearer_token=bearer_token,
        debug=debug or None,
    )


@app.command()
def status(
    path: str = typer.Argument(..., help="Workspace folder path."),
    local_store: bool = _LOCAL_STORE,
    vector_format: Optional[str] = _FORMAT,
):
    """Show index stats for a workspace."""
    setup_logging(False)
    do_status(path=path, local_store=local_store, vector_format=vector_format)


@app.command()
def reset(
    path: str = typer.Argument(..., help="Workspace folder path."),
    local_store: bool = _LOCAL_STORE,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Reset (delete) index data for a workspace."""
    setup_logging(False)
    if not yes and not typer.confirm("Delete the entire index? This cannot be undone."):
        raise typer.Abort()
    do_reset(path=path, local_store=local_store)


@app.command()
def check(
    ollama_host: Optional[str] = _OLLAMA_HOST,
    bearer_token: Optional[str] = _BEARER,
):
    """Test the connection to Ollama."""
    prov = ProviderOptions()
    ok = do_check(ollama_host or prov.ollama_host, bearer_token if bearer_token is not None else prov.bearer_token)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def serve(
    path: Path = typer.Argument(..., help="Workspace folder path."),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind."),
    port: int = typer.Option(17864, "--port", help="Port to bind."),
    local_store: bool = _LOCAL_STORE,
    vector_format: Optional[str] = _FORMAT,
    ollama_host: Optional[str] = _OLLAMA_HOST,
    embed_model: Optional[str] = _EMBED_MODEL,
    bearer_token: Optional[str] = _BEARER,
    debug: bool = _DEBUG,
):
    """Start the local relnote JSON API for one workspace."""
    import uvicorn

    from .server.api import create_app

    setup_logging(debug)
    api = create_app(
        path=str(path),
        local_store=local_store,
        vector_format=vector_format,
        ollama_host=ollama_host,
        embed_model=embed_model,
        bearer_token=bearer_token,
        debug=debug or None,
    )
    uvicorn.run(api, host=host, port=port, log_level="debug" if debug else "info")


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
