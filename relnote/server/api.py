# relnote/server/api.py
"""
relnote JSON API for local clients (editor plugins, scripts).

Serves one workspace:
  - GET  /health
  - GET  /related?path=<note>&k=<n>   notes related to a note (indexed on demand)
  - GET  /search?q=<text>&k=<n>       notes related to a free-text query
  - GET  /explain?a=<note>&b=<note>   SSE stream of growing answer snapshots
  - POST /index                       start a background indexing session
  - POST /index/cancel                cooperative cancellation
  - GET  /index/status                session progress and last report

Only one indexing session runs at a time; a second POST /index gets 409.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Iterable, Optional

import requests
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from ..cli_actions import WorkspaceContext, open_workspace
from ..errors import RelnoteError
from ..ingest.normalize import preprocess_content
from ..ingest.scanner import Document
from ..search.explain import OllamaChat, build_messages
from ..search.retrieve import find_related, search_by_text

logger = logging.getLogger(__name__)


def create_app(
    path: Optional[str] = None,
    local_store: bool = False,
    context: Optional[WorkspaceContext] = None,
    chat: Optional[OllamaChat] = None,
    **overrides: Any,
) -> FastAPI:
    """
    Create the FastAPI app for one workspace.

    Args:
        path: Workspace root path (ignored when `context` is given).
        local_store: Serve the local store (<workspace>/.relnote) when True.
        context: Pre-built workspace wiring (tests, embedding hosts).
        chat: Chat backend for /explain; built from the provider options when omitted.
        **overrides: Forwarded to `open_workspace`.

    Returns:
        FastAPI app.
    """
    if context is None:
        if path is None:
            raise ValueError("Either path or context is required")
        context = open_workspace(path, local_store, **overrides)
    ctx = context
    chat_backend = chat or OllamaChat.from_options(ctx.settings.provider)

    app = FastAPI(title="relnote API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state: Dict[str, Any] = {"thread": None, "last_error": None}

    def _documents_by_path() -> Dict[str, Document]:
        return {d.path: d for d in ctx.documents()}

    def _note(docs: Dict[str, Document], path: str) -> Document:
        doc = docs.get(path)
        if doc is None:
            raise HTTPException(status_code=404, detail=f"Note not found: {path}")
        return doc

    def _hits(hits) -> Dict[str, Any]:
        return {"results": [{"path": h.path, "score": h.score} for h in hits]}

    @app.get("/health")
    def health():
        return {"ok": True, "workspace": str(ctx.workspace.root), "vectors": len(ctx.store)}

    @app.get("/related")
    def related(path: str, k: Optional[int] = Query(None, ge=0)):
        docs = _documents_by_path()
        doc = _note(docs, path)
        try:
            if ctx.pipeline.index_one(doc):
                ctx.store.save()
        except (RelnoteError, requests.RequestException, OSError, ValueError) as e:
            raise HTTPException(status_code=502, detail=f"Could not index {path}: {e}")
        top_k = k if k is not None else ctx.settings.runtime.max_related
        return _hits(find_related(ctx.store, doc.path, top_k, live_paths=docs.keys()))

    @app.get("/search")
    def search(q: str, k: Optional[int] = Query(None, ge=0)):
        if not q.strip():
            raise HTTPException(status_code=400, detail="Empty query.")
        top_k = k if k is not None else ctx.settings.runtime.max_related
        try:
            hits = search_by_text(ctx.store, ctx.embedder, q, top_k, live_paths=_documents_by_path().keys())
        except RelnoteError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return _hits(hits)

    @app.get("/explain")
    def explain(a: str, b: str):
        docs = _documents_by_path()
        doc_a, doc_b = _note(docs, a), _note(docs, b)
        messages = build_messages(
            doc_a.title, preprocess_content(doc_a.read()), doc_b.title, preprocess_content(doc_b.read())
        )

        def sse() -> Iterable[bytes]:
            try:
                for text in chat_backend.stream(messages):
                    yield b"data: " + json.dumps({"text": text}).encode("utf-8") + b"\n\n"
            except (requests.RequestException, ValueError) as e:
                logger.warning("Explanation stream failed: %s", e)
                yield b"data: " + json.dumps({"error": str(e)}).encode("utf-8") + b"\n\n"
            yield b"data: [DONE]\n\n"

        return StreamingResponse(sse(), media_type="text/event-stream")

    def _run_index(docs) -> None:
        try:
            ctx.pipeline.index_all(docs)
        except RelnoteError as e:
            state["last_error"] = str(e)
            logger.error("Indexing failed: %s", e)
        except Exception as e:
            state["last_error"] = f"{type(e).__name__}: {e}"
            logger.exception("Indexing crashed")

    @app.post("/index")
    def start_index():
        thread = state["thread"]
        if ctx.pipeline.is_running or (thread is not None and thread.is_alive()):
            return JSONResponse({"status": "already_running"}, status_code=409)
        docs = ctx.documents()
        state["last_error"] = None
        thread = threading.Thread(target=_run_index, args=(docs,), name="relnote-index", daemon=True)
        state["thread"] = thread
        thread.start()
        return JSONResponse({"status": "started", "total": len(docs)}, status_code=202)

    @app.post("/index/cancel")
    def cancel_index():
        running = ctx.pipeline.is_running
        ctx.pipeline.cancel()
        return {"cancelled": running}

    @app.get("/index/status")
    def index_status():
        session = ctx.pipeline.session
        body: Dict[str, Any] = session.snapshot() if session is not None else {"is_running": False}
        report = ctx.pipeline.last_report
        body["last_report"] = report.to_dict() if report is not None else None
        body["last_error"] = state["last_error"]
        return body

    return app
