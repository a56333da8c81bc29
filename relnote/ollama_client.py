"""Small helpers shared by every Ollama call: auth headers, health check, model list."""

from __future__ import annotations

from typing import Dict, List

import requests

DEFAULT_HOST = "http://localhost:11434"


def auth_headers(bearer_token: str = "") -> Dict[str, str]:
    """JSON content type, plus `Authorization: Bearer <token>` when a token is set."""
    headers = {"Content-Type": "application/json"}
    if bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    return headers


def _get(host: str, endpoint: str, bearer_token: str, timeout: float) -> requests.Response:
    return requests.get(host.rstrip("/") + endpoint, headers=auth_headers(bearer_token), timeout=timeout)


def check_ollama(host: str = DEFAULT_HOST, bearer_token: str = "", timeout: float = 3) -> bool:
    """
    Probe `/api/tags`, then `/api/version`.

    Returns:
        True as soon as one of them answers 2xx; False if neither does or
        the host cannot be reached.
    """
    for endpoint in ("/api/tags", "/api/version"):
        try:
            r = _get(host, endpoint, bearer_token, timeout)
        except requests.RequestException:
            continue
        if r.ok:
            return True
    return False


def list_models(host: str = DEFAULT_HOST, bearer_token: str = "", timeout: float = 5) -> List[str]:
    """
    Names of the models installed on the Ollama host.

    Raises:
        requests.RequestException: Unreachable host or non-2xx response.
    """
    r = _get(host, "/api/tags", bearer_token, timeout)
    r.raise_for_status()
    payload = r.json() or {}
    return [m["name"] for m in payload.get("models", []) if isinstance(m, dict) and m.get("name")]
