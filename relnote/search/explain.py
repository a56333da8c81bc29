"""
"Why related?" explanations.

This module asks a chat model why two notes are related and streams the
answer back.

Notes:
  - The answer is delivered as growing-prefix snapshots (the full text so far),
    not as deltas, so a host can simply re-render the latest snapshot.
  - Backends should raise on non-2xx responses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import requests

from ..config import ProviderOptions
from ..ingest.normalize import preprocess_content
from ..ingest.scanner import Document
from ..observer import Observer
from ..ollama_client import auth_headers

SYSTEM_PROMPT = (
    "You explain how two notes from a personal knowledge base relate.\n"
    "Use ONLY the two excerpts provided.\n"
    "Name the shared topics, ideas or entities in two or three sentences.\n"
    "If they do not seem related, say so.\n"
)

EXCERPT_CHARS = 1500


def build_messages(title_a: str, text_a: str, title_b: str, text_b: str, max_chars: int = EXCERPT_CHARS) -> List[Dict[str, str]]:
    """
    Build an Ollama-style chat payload for two note excerpts.

    Args:
        title_a: Title of the first note.
        text_a: Content of the first note.
        title_b: Title of the second note.
        text_b: Content of the second note.
        max_chars: Excerpt cap per note.

    Returns:
        List of chat messages.
    """
    user = (
        f"NOTE A: {title_a}\n{text_a[:max_chars]}\n\n"
        f"NOTE B: {title_b}\n{text_b[:max_chars]}\n\n"
        "Why are these notes related?"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


@dataclass
class OllamaChat:
    """
    Streaming chat backend using Ollama's chat API.

    Ollama streams newline-delimited JSON objects from
      POST /api/chat  {"model": ..., "messages": [...], "stream": true}
    each carrying {"message": {"content": "<delta>"}, "done": bool}.

    Attributes:
        host: Base URL for Ollama (e.g. http://localhost:11434).
        model: Ollama chat model name/tag (e.g. llama3.1:8b).
        bearer_token: Optional bearer token.
        timeout: Request timeout in seconds.
    """

    host: str
    model: str
    bearer_token: str = ""
    timeout: int = 600

    @staticmethod
    def from_options(options: ProviderOptions) -> "OllamaChat":
        return OllamaChat(host=options.ollama_host, model=options.chat_model, bearer_token=options.bearer_token)

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        """
        Stream the assistant answer.

        Args:
            messages: Chat messages.

        Yields:
            The accumulated answer text after each received piece.

        Raises:
            requests.HTTPError: On non-2xx HTTP responses.
            requests.RequestException: On connection/timeout errors.
            ValueError: If a streamed line is not valid JSON or reports an error.
        """
        url = f"{self.host.rstrip('/')}/api/chat"
        payload = {"model": self.model, "messages": messages, "stream": True}

        with requests.post(
            url, json=payload, headers=auth_headers(self.bearer_token), timeout=self.timeout, stream=True
        ) as r:
            r.raise_for_status()
            text = ""
            for line in r.iter_lines(decode_unicode=True):
                if not line:
                    continue
                data = json.loads(line)
                if isinstance(data, dict) and data.get("error"):
                    raise ValueError(f"Ollama chat error: {data['error']}")
                piece = ((data or {}).get("message") or {}).get("content") or ""
                if piece:
                    text += piece
                    yield text
                if (data or {}).get("done"):
                    break


def explain_relation(
    chat: OllamaChat, doc_a: Document, doc_b: Document, observer: Optional[Observer] = None
) -> str:
    """
    Explain why two notes are related, streaming snapshots to `observer`.

    Args:
        chat: Chat backend.
        doc_a: First note.
        doc_b: Second note.
        observer: Receives every accumulated snapshot through `on_chunk`.

    Returns:
        The final answer text (trimmed).
    """
    observer = observer or Observer()
    messages = build_messages(
        doc_a.title, preprocess_content(doc_a.read()), doc_b.title, preprocess_content(doc_b.read())
    )
    text = ""
    for text in chat.stream(messages):
        observer.on_chunk(text)
    return text.strip()
