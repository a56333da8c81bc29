"""Tests for the Ollama health check and model listing."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from relnote.ollama_client import auth_headers, check_ollama, list_models

GET = "relnote.ollama_client.requests.get"


def _resp(ok: bool, data=None) -> MagicMock:
    r = MagicMock()
    r.ok = ok
    r.json.return_value = data
    if not ok:
        r.raise_for_status.side_effect = requests.HTTPError("404")
    return r


def test_auth_headers() -> None:
    assert auth_headers() == {"Content-Type": "application/json"}
    assert auth_headers("abc")["Authorization"] == "Bearer abc"


def test_check_falls_back_to_version_endpoint() -> None:
    """A failing /api/tags is followed by /api/version."""
    with patch(GET, side_effect=[_resp(False), _resp(True)]) as get:
        assert check_ollama("http://ollama:11434/", bearer_token="t") is True
    urls = [c.args[0] for c in get.call_args_list]
    assert urls == ["http://ollama:11434/api/tags", "http://ollama:11434/api/version"]
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer t"


def test_check_unreachable_host() -> None:
    """Transport errors mean the host is not available."""
    with patch(GET, side_effect=requests.ConnectionError("refused")):
        assert check_ollama("http://nowhere:1") is False


def test_list_models() -> None:
    """Model names come from /api/tags; entries without a name are skipped."""
    data = {"models": [{"name": "nomic-embed-text:latest"}, {"size": 1}, {"name": "llama3.1:8b"}]}
    with patch(GET, return_value=_resp(True, data)):
        assert list_models() == ["nomic-embed-text:latest", "llama3.1:8b"]


def test_list_models_http_error() -> None:
    with patch(GET, return_value=_resp(False)):
        with pytest.raises(requests.HTTPError):
            list_models()
