# relnote/embeddings/ollama.py
"""
Ollama embedding backend.

This embedder calls the Ollama HTTP API to produce one embedding per note.

It degrades instead of giving up:
  1) full text (control characters stripped, truncated to ``max_chars``),
     retried with exponential backoff on transport and transient errors
  2) Safe Mode: markup stripped, whitespace collapsed, truncated to ``safe_chars``
  3) Title-Only Mode: ``"Note title: <title>"`` when a title is known

Provider errors are classified by substring checks on the response body
(see ``classify_error``), since Ollama does not return structured error codes.

Endpoint:
  - POST /api/embeddings with {"model": "...", "prompt": "..."}
  - Response: {"embedding": [...]}
"""

from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import requests

from ..config import ProviderOptions
from ..errors import EmbeddingConnectionError, EmbeddingUnavailable, ProviderError
from ..ingest.normalize import strip_markup
from ..ollama_client import auth_headers
from .base import Embedder

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


class ErrorKind(str, Enum):
    """How a non-success provider response is handled."""

    CONTEXT_LENGTH = "context_length"
    TRANSIENT = "transient"
    FATAL = "fatal"


# Checked in order; the first marker contained in the body wins.
ERROR_MARKERS: Tuple[Tuple[str, ErrorKind], ...] = (
    ("context length", ErrorKind.CONTEXT_LENGTH),
    ("context_length", ErrorKind.CONTEXT_LENGTH),
    ("EOF", ErrorKind.TRANSIENT),
    ("connection", ErrorKind.TRANSIENT),
)


def classify_error(text: str) -> ErrorKind:
    """
    Classify a provider error body.

    Args:
        text: Status text and/or response body.

    Returns:
        CONTEXT_LENGTH, TRANSIENT, or FATAL when no marker matches.
    """
    for marker, kind in ERROR_MARKERS:
        if marker in text:
            return kind
    return ErrorKind.FATAL


def sanitize_text(s: Any) -> str:
    """
    Remove NULs and other control characters (tabs and newlines are kept).

    Args:
        s: Any object convertible to str.

    Returns:
        Cleaned string.
    """
    if not isinstance(s, str):
        s = str(s)
    s = s.replace("\r\n", "\n")
    return _CONTROL_CHARS.sub("", s)


def _response_text(r: requests.Response) -> str:
    try:
        return r.text or ""
    except (UnicodeDecodeError, AttributeError):
        return "<no body>"


class OllamaEmbedder(Embedder):
    """
    Compute embeddings via Ollama's HTTP API with a retry/fallback protocol.

    Attributes:
        host: Ollama base URL.
        model: Embedding model name.
        max_chars: Character budget for the full-text attempt.
        safe_chars: Character budget for Safe Mode.
        retries: Retries after the first full-text attempt.
        backoff_seconds: Base delay; attempt ``n`` waits ``backoff_seconds * 2**n``.
        timeout: HTTP timeout seconds.
    """

    def __init__(self, options: ProviderOptions, sleep: Callable[[float], None] = time.sleep) -> None:
        self.host = options.ollama_host.rstrip("/")
        self.model = options.embed_model
        self.bearer_token = options.bearer_token
        self.max_chars = int(options.max_chars)
        self.safe_chars = int(options.safe_chars)
        self.retries = max(0, int(options.retries))
        self.backoff_seconds = float(options.backoff_seconds)
        self.timeout = options.timeout
        self._sleep = sleep

    @property
    def url(self) -> str:
        return f"{self.host}/api/embeddings"

    def _post(self, prompt: str) -> requests.Response:
        payload = {"model": self.model, "prompt": prompt}
        return requests.post(self.url, json=payload, headers=auth_headers(self.bearer_token), timeout=self.timeout)

    @staticmethod
    def _extract_embedding(data: Any) -> Optional[List[float]]:
        """
        Extract a single embedding from Ollama response JSON.

        Accepts the legacy ``{"embedding": [...]}`` shape and the newer
        ``{"embeddings": [[...]]}`` shape.

        Args:
            data: Parsed JSON.

        Returns:
            Non-empty numeric vector, or None if malformed.
        """
        if not isinstance(data, dict):
            return None

        vec = data.get("embedding")
        if vec is None:
            embs = data.get("embeddings")
            if isinstance(embs, list) and embs:
                vec = embs[0]

        if not isinstance(vec, list) or not vec:
            return None
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vec):
            return None
        return [float(x) for x in vec]

    def _parse(self, r: requests.Response) -> Optional[List[float]]:
        try:
            data = r.json()
        except ValueError:
            return None
        return self._extract_embedding(data)

    def _backoff(self, attempt: int) -> None:
        delay = self.backoff_seconds * (2 ** attempt)
        logger.debug("Retrying in %.2fs...", delay)
        self._sleep(delay)

    def _embed_full(self, prompt: str, failures: List[str]) -> Optional[List[float]]:
        """
        Full-text attempts.

        Returns:
            The embedding, or None when the caller should fall back to Safe Mode.

        Raises:
            EmbeddingConnectionError: Transport failures outlasted the retries.
            ProviderError: Non-success response that is neither transient nor a context-length error.
        """
        attempts = self.retries + 1
        for attempt in range(attempts):
            try:
                r = self._post(prompt)
            except requests.RequestException as e:
                logger.warning("Embedding request failed (attempt %d/%d): %s", attempt + 1, attempts, e)
                if attempt < self.retries:
                    self._backoff(attempt)
                    continue
                raise EmbeddingConnectionError(self.url, attempts, e) from e

            if 200 <= r.status_code < 300:
                vec = self._parse(r)
                if vec is not None:
                    return vec
                failures.append(f"full: malformed response (attempt {attempt + 1})")
                return None

            body = _response_text(r)
            kind = classify_error(body)
            logger.debug("Ollama API error (attempt %d/%d, %s): %s", attempt + 1, attempts, kind.value, body[:200])

            if kind is ErrorKind.CONTEXT_LENGTH:
                failures.append(f"full: context length exceeded (status={r.status_code})")
                return None
            if kind is ErrorKind.TRANSIENT:
                failures.append(f"full: transient error (status={r.status_code}, attempt {attempt + 1})")
                if attempt < self.retries:
                    self._backoff(attempt)
                    continue
                return None
            raise ProviderError(r.status_code, body, mode="full")
        return None

    def _embed_once(self, mode: str, prompt: str, failures: List[str]) -> Optional[List[float]]:
        """Single fallback attempt; every failure is recorded, never raised."""
        if not prompt:
            failures.append(f"{mode}: empty prompt")
            return None
        logger.debug("Attempting %s mode (%d chars)...", mode, len(prompt))
        try:
            r = self._post(prompt)
        except requests.RequestException as e:
            failures.append(f"{mode}: request failed ({e})")
            return None
        if not 200 <= r.status_code < 300:
            failures.append(f"{mode}: status={r.status_code} {_response_text(r)[:200]}")
            return None
        vec = self._parse(r)
        if vec is None:
            failures.append(f"{mode}: malformed response")
            return None
        logger.debug("%s mode succeeded", mode)
        return vec

    def embed(self, text: str, title: Optional[str] = None) -> List[float]:
        """
        Generate an embedding for one note.

        Args:
            text: Note content (already normalized by the caller, if desired).
            title: Optional note title for Title-Only Mode.

        Returns:
            Embedding vector.

        Raises:
            EmbeddingConnectionError: Ollama unreachable after all retries.
            ProviderError: Non-retryable provider error on the full-text attempt.
            EmbeddingUnavailable: Full text, Safe Mode and Title-Only Mode all failed.
        """
        cleaned = sanitize_text(text)
        full = cleaned[: self.max_chars] if self.max_chars > 0 else cleaned

        failures: List[str] = []
        vec = self._embed_full(full, failures)
        if vec is not None:
            return vec

        safe = strip_markup(cleaned)[: self.safe_chars]
        vec = self._embed_once("safe", safe, failures)
        if vec is not None:
            return vec

        if title:
            vec = self._embed_once("title-only", f"Note title: {title}", failures)
            if vec is not None:
                return vec

        raise EmbeddingUnavailable(failures)
